from __future__ import annotations

import logging
from functools import lru_cache

from fastapi import Depends, Header, HTTPException

from objgw.common.config import Settings, get_settings
from objgw.infra.storage.client import StorageClient
from objgw.services.base import StorageBackendNotConfiguredError, build_storage_client
from objgw.services.bundle import ServiceBundle, get_service_bundle

logger = logging.getLogger("http")


@lru_cache(maxsize=1)
def _shared_storage_client() -> StorageClient:
    return build_storage_client(get_settings())


def reset_storage_client() -> None:
    _shared_storage_client.cache_clear()


def get_storage_client() -> StorageClient:
    try:
        return _shared_storage_client()
    except StorageBackendNotConfiguredError as exc:
        logger.error("storage_not_configured error=%s", exc)
        raise HTTPException(
            status_code=503,
            detail={
                "message": str(exc),
                "error_code": "storage_not_configured",
            },
        ) from exc


def get_app_settings() -> Settings:
    return get_settings()


def get_services(
    storage: StorageClient = Depends(get_storage_client),
    settings: Settings = Depends(get_app_settings),
) -> ServiceBundle:
    if not settings.S3_BUCKET:
        raise HTTPException(
            status_code=503,
            detail={
                "message": "S3_BUCKET is required",
                "error_code": "storage_not_configured",
            },
        )
    return get_service_bundle(storage, settings)


def require_api_key(x_api_key: str | None = Header(default=None)) -> None:
    settings = get_settings()
    if settings.API_KEY_ENABLED:
        api_key_expected = getattr(settings, "API_KEY", None)
        if not x_api_key or (api_key_expected and x_api_key != api_key_expected):
            preview = f"{x_api_key[:4]}***" if x_api_key else "<missing>"
            logger.warning("api_key_mismatch api_key_preview=%s", preview)
            raise HTTPException(status_code=401, detail="Invalid API key")
