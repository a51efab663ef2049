"""Object API router.

Single-shot object operations against the default bucket: upload (optionally
with SSE-S3), download, list, delete, version listing, tagging and presigned
URL issuance. Object keys may contain slashes.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request, Response, status
from starlette.concurrency import run_in_threadpool

from objgw.api.v1.deps import get_app_settings, get_services
from objgw.api.v1.schemas.buckets import MessageOut
from objgw.api.v1.schemas.objects import (
    ObjectListOut,
    ObjectStoredOut,
    ObjectTagIn,
    ObjectVersionOut,
    ObjectVersionsOut,
    PresignedUrlOut,
)
from objgw.api.v1.utils import (
    ensure_content_length,
    invalid_operation_http_error,
    storage_http_error,
)
from objgw.common.config import Settings
from objgw.infra.storage.client import StorageError
from objgw.services.base import InvalidObjectOperationError
from objgw.services.bundle import ServiceBundle

router = APIRouter()

DEFAULT_CONTENT_TYPE = "application/octet-stream"


@router.get("/objects", response_model=ObjectListOut, summary="List objects")
def list_objects(
    prefix: str | None = Query(default=None),
    services: ServiceBundle = Depends(get_services),
) -> ObjectListOut:
    try:
        keys = services.objects().list_objects(prefix)
    except StorageError as exc:
        raise storage_http_error(exc) from exc
    return ObjectListOut(prefix=prefix, keys=keys)


@router.put(
    "/objects/{key:path}",
    response_model=ObjectStoredOut,
    status_code=status.HTTP_201_CREATED,
    summary="Upload object",
    description=(
        "Store the raw request body as an object in one request. "
        "Pass encrypted=true to request SSE-S3 (AES256) encryption."
    ),
)
async def put_object(
    key: str,
    request: Request,
    encrypted: bool = Query(default=False),
    services: ServiceBundle = Depends(get_services),
    settings: Settings = Depends(get_app_settings),
) -> ObjectStoredOut:
    ensure_content_length(request, settings.STORAGE_MAX_UPLOAD_BYTES)
    body = await request.body()
    content_type = request.headers.get("Content-Type") or DEFAULT_CONTENT_TYPE
    objects = services.objects()
    store = objects.put_encrypted_object if encrypted else objects.put_object
    try:
        etag = await run_in_threadpool(store, key, body, content_type=content_type)
    except InvalidObjectOperationError as exc:
        raise invalid_operation_http_error(exc) from exc
    except StorageError as exc:
        raise storage_http_error(exc) from exc

    message = (
        f"File uploaded with SSE-S3: {key}"
        if encrypted
        else f"File uploaded successfully: {key}"
    )
    return ObjectStoredOut(
        key=key,
        etag=etag,
        size_bytes=len(body),
        encrypted=encrypted,
        message=message,
    )


@router.get(
    "/objects/{key:path}",
    response_class=Response,
    summary="Download object",
    responses={200: {"content": {DEFAULT_CONTENT_TYPE: {}}}},
)
def get_object(key: str, services: ServiceBundle = Depends(get_services)) -> Response:
    try:
        content = services.objects().get_object(key)
    except InvalidObjectOperationError as exc:
        raise invalid_operation_http_error(exc) from exc
    except StorageError as exc:
        raise storage_http_error(exc) from exc
    return Response(content=content, media_type=DEFAULT_CONTENT_TYPE)


@router.delete(
    "/objects/{key:path}", response_model=MessageOut, summary="Delete object"
)
def delete_object(
    key: str, services: ServiceBundle = Depends(get_services)
) -> MessageOut:
    try:
        services.objects().delete_object(key)
    except InvalidObjectOperationError as exc:
        raise invalid_operation_http_error(exc) from exc
    except StorageError as exc:
        raise storage_http_error(exc) from exc
    return MessageOut(message=f"Object deleted: {key}")


@router.get(
    "/versions/{key:path}",
    response_model=ObjectVersionsOut,
    summary="List object versions",
)
def list_object_versions(
    key: str, services: ServiceBundle = Depends(get_services)
) -> ObjectVersionsOut:
    try:
        versions = services.objects().list_object_versions(key)
    except InvalidObjectOperationError as exc:
        raise invalid_operation_http_error(exc) from exc
    except StorageError as exc:
        raise storage_http_error(exc) from exc
    return ObjectVersionsOut(
        key=key,
        versions=[ObjectVersionOut.model_validate(v) for v in versions],
    )


@router.post("/tags/{key:path}", response_model=MessageOut, summary="Tag object")
def tag_object(
    key: str,
    payload: ObjectTagIn,
    services: ServiceBundle = Depends(get_services),
) -> MessageOut:
    try:
        services.objects().tag_object(key, payload.key, payload.value)
    except InvalidObjectOperationError as exc:
        raise invalid_operation_http_error(exc) from exc
    except StorageError as exc:
        raise storage_http_error(exc) from exc
    return MessageOut(message=f"Tag added to {key}")


@router.get(
    "/presigned/download/{key:path}",
    response_model=PresignedUrlOut,
    summary="Presign download URL",
)
def presign_download(
    key: str,
    expires_in: int | None = Query(default=None, ge=1),
    filename: str | None = Query(default=None),
    services: ServiceBundle = Depends(get_services),
) -> PresignedUrlOut:
    try:
        presigned = services.objects().presign_download(
            key, expires_in=expires_in, filename=filename
        )
    except InvalidObjectOperationError as exc:
        raise invalid_operation_http_error(exc) from exc
    except StorageError as exc:
        raise storage_http_error(exc) from exc
    return PresignedUrlOut(
        key=key,
        url=presigned.url,
        method=presigned.method,
        expires_in=presigned.expires_in,
    )


@router.get(
    "/presigned/upload/{key:path}",
    response_model=PresignedUrlOut,
    summary="Presign upload URL",
)
def presign_upload(
    key: str,
    expires_in: int | None = Query(default=None, ge=1),
    content_type: str | None = Query(default=None),
    services: ServiceBundle = Depends(get_services),
) -> PresignedUrlOut:
    try:
        presigned = services.objects().presign_upload(
            key, expires_in=expires_in, content_type=content_type
        )
    except InvalidObjectOperationError as exc:
        raise invalid_operation_http_error(exc) from exc
    except StorageError as exc:
        raise storage_http_error(exc) from exc
    return PresignedUrlOut(
        key=key,
        url=presigned.url,
        method=presigned.method,
        expires_in=presigned.expires_in,
    )
