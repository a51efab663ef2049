from __future__ import annotations

from objgw.common.config import Settings
from objgw.infra.storage.client import StorageClient
from objgw.infra.storage.s3_client import S3StorageClient


class ServiceError(Exception):
    """Base class for application service level exceptions."""


class StorageBackendNotConfiguredError(ServiceError):
    """Raised when the storage backend is not properly configured."""


class InvalidObjectOperationError(ServiceError, ValueError):
    """Raised when a request cannot be forwarded to the storage backend."""


class PayloadTooLargeError(InvalidObjectOperationError):
    """Raised when a payload exceeds the configured upload limit."""


def build_storage_client(settings: Settings) -> StorageClient:
    """Build the S3 client, checking the settings it cannot work without."""
    if not settings.S3_BUCKET:
        raise StorageBackendNotConfiguredError("S3_BUCKET is required")
    if not settings.S3_ACCESS_KEY_ID or not settings.S3_SECRET_ACCESS_KEY:
        raise StorageBackendNotConfiguredError(
            "S3_ACCESS_KEY_ID and S3_SECRET_ACCESS_KEY are required"
        )
    return S3StorageClient(settings=settings)


class BaseService:
    """Holds the storage client and the bucket a service operates on."""

    def __init__(self, storage: StorageClient, *, bucket: str):
        if not bucket:
            raise StorageBackendNotConfiguredError("A target bucket is required")
        self._storage = storage
        self._bucket = bucket

    @property
    def bucket(self) -> str:
        return self._bucket

    @property
    def storage(self) -> StorageClient:
        return self._storage

    @staticmethod
    def _ensure_key(key: str | None) -> str:
        if not key or not key.strip():
            raise InvalidObjectOperationError("object key must not be empty")
        return key
