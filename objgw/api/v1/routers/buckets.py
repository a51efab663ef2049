"""Bucket API router.

Create, list and delete buckets, and configure versioning and lifecycle
rules on them.
"""

from __future__ import annotations

from fastapi import APIRouter, Body, Depends, status

from objgw.api.v1.deps import get_services
from objgw.api.v1.schemas.buckets import (
    BucketListOut,
    LifecycleRuleIn,
    LifecycleRuleOut,
    MessageOut,
)
from objgw.api.v1.utils import invalid_operation_http_error, storage_http_error
from objgw.infra.storage.client import StorageError
from objgw.services.base import InvalidObjectOperationError
from objgw.services.bundle import ServiceBundle

router = APIRouter()


@router.post(
    "/buckets/{name}",
    response_model=MessageOut,
    status_code=status.HTTP_201_CREATED,
    summary="Create bucket",
)
def create_bucket(name: str, services: ServiceBundle = Depends(get_services)) -> MessageOut:
    try:
        services.objects().create_bucket(name)
    except InvalidObjectOperationError as exc:
        raise invalid_operation_http_error(exc) from exc
    except StorageError as exc:
        raise storage_http_error(exc) from exc
    return MessageOut(message=f"Bucket created: {name}")


@router.get("/buckets", response_model=BucketListOut, summary="List buckets")
def list_buckets(services: ServiceBundle = Depends(get_services)) -> BucketListOut:
    try:
        return BucketListOut(buckets=services.objects().list_buckets())
    except StorageError as exc:
        raise storage_http_error(exc) from exc


@router.delete("/buckets/{name}", response_model=MessageOut, summary="Delete bucket")
def delete_bucket(name: str, services: ServiceBundle = Depends(get_services)) -> MessageOut:
    try:
        services.objects().delete_bucket(name)
    except InvalidObjectOperationError as exc:
        raise invalid_operation_http_error(exc) from exc
    except StorageError as exc:
        raise storage_http_error(exc) from exc
    return MessageOut(message=f"Bucket deleted: {name}")


@router.post(
    "/buckets/{name}/versioning",
    response_model=MessageOut,
    summary="Enable versioning",
)
def enable_versioning(
    name: str, services: ServiceBundle = Depends(get_services)
) -> MessageOut:
    try:
        services.objects().enable_versioning(name)
    except InvalidObjectOperationError as exc:
        raise invalid_operation_http_error(exc) from exc
    except StorageError as exc:
        raise storage_http_error(exc) from exc
    return MessageOut(message=f"Versioning enabled for {name}")


@router.post(
    "/buckets/{name}/lifecycle",
    response_model=LifecycleRuleOut,
    summary="Set lifecycle rule",
    description="Replace the bucket lifecycle configuration with a single transition rule.",
)
def set_lifecycle_rule(
    name: str,
    payload: LifecycleRuleIn | None = Body(default=None),
    services: ServiceBundle = Depends(get_services),
) -> LifecycleRuleOut:
    rule_in = payload or LifecycleRuleIn()
    try:
        rule = services.objects().set_lifecycle_rule(name, rule_in.to_rule())
    except InvalidObjectOperationError as exc:
        raise invalid_operation_http_error(exc) from exc
    except StorageError as exc:
        raise storage_http_error(exc) from exc
    return LifecycleRuleOut(
        bucket=name,
        rule_id=rule.rule_id,
        prefix=rule.prefix,
        transition_days=rule.transition_days,
        storage_class=rule.storage_class,
        enabled=rule.enabled,
    )
