"""Multipart upload API router.

Accepts a whole payload and stores it through the multipart orchestrator.
The response reports every uploaded part; failures carry the orchestrator's
error code and, when cleanup also failed, the abort error.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request, status
from starlette.concurrency import run_in_threadpool

from objgw.api.v1.deps import get_app_settings, get_services
from objgw.api.v1.schemas.multipart import MultipartUploadOut, UploadedPartOut
from objgw.api.v1.utils import (
    ensure_content_length,
    invalid_operation_http_error,
    upload_failure_http_error,
)
from objgw.common.config import Settings
from objgw.services.base import InvalidObjectOperationError
from objgw.services.bundle import ServiceBundle

router = APIRouter()


@router.post(
    "/multipart/{key:path}",
    response_model=MultipartUploadOut,
    status_code=status.HTTP_201_CREATED,
    summary="Multipart upload",
    description=(
        "Upload the raw request body through initiate, upload-part and "
        "complete. A failed upload is aborted before the error is returned."
    ),
)
async def multipart_upload(
    key: str,
    request: Request,
    services: ServiceBundle = Depends(get_services),
    settings: Settings = Depends(get_app_settings),
) -> MultipartUploadOut:
    ensure_content_length(request, settings.STORAGE_MAX_UPLOAD_BYTES)
    payload = await request.body()
    multipart = services.multipart()
    try:
        outcome = await run_in_threadpool(
            multipart.upload,
            key,
            payload,
            content_type=request.headers.get("Content-Type"),
        )
    except InvalidObjectOperationError as exc:
        raise invalid_operation_http_error(exc) from exc

    if not outcome.ok:
        raise upload_failure_http_error(outcome)

    if outcome.state is None:
        raise RuntimeError(f"Upload of {key} finished without a state")
    return MultipartUploadOut(
        key=outcome.key,
        upload_id=outcome.upload_id,
        state=outcome.state.value,
        size_bytes=len(payload),
        part_size_bytes=multipart.part_size,
        parts=[UploadedPartOut.model_validate(p) for p in outcome.parts],
    )
