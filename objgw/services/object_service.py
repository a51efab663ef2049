"""Single-shot bucket and object operations.

Each method forwards one request to the storage backend. StorageError from
the backend propagates unchanged.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from objgw.common.config import Settings
from objgw.infra.storage.client import (
    LifecycleRule,
    ObjectHead,
    ObjectVersion,
    StorageClient,
)
from objgw.services.base import (
    BaseService,
    InvalidObjectOperationError,
    PayloadTooLargeError,
)

logger = logging.getLogger("objgw.objects")

SSE_ALGORITHM = "AES256"
DEFAULT_PRESIGN_EXPIRES_SECONDS = 600
# SigV4 presigned URLs are valid for at most seven days.
MAX_PRESIGN_EXPIRES_SECONDS = 7 * 24 * 3600


@dataclass(frozen=True, slots=True)
class PresignedUrl:
    """Presigned URL and its validity window."""

    url: str
    method: str
    expires_in: int


class ObjectService(BaseService):
    """Bucket and object operations against the configured default bucket."""

    def __init__(
        self,
        storage: StorageClient,
        *,
        bucket: str,
        presign_expires_in: int = DEFAULT_PRESIGN_EXPIRES_SECONDS,
        max_upload_bytes: int | None = None,
    ) -> None:
        super().__init__(storage, bucket=bucket)
        self._presign_expires_in = presign_expires_in
        self._max_upload_bytes = max_upload_bytes

    @classmethod
    def from_settings(cls, storage: StorageClient, settings: Settings) -> "ObjectService":
        return cls(
            storage,
            bucket=settings.S3_BUCKET or "",
            presign_expires_in=settings.STORAGE_PRESIGN_EXPIRES_SECONDS,
            max_upload_bytes=settings.STORAGE_MAX_UPLOAD_BYTES,
        )

    # Buckets

    def create_bucket(self, name: str) -> None:
        self._storage.create_bucket(bucket=self._ensure_bucket(name))
        logger.info("bucket_created bucket=%s", name)

    def list_buckets(self) -> list[str]:
        return self._storage.list_buckets()

    def delete_bucket(self, name: str) -> None:
        self._storage.delete_bucket(bucket=self._ensure_bucket(name))
        logger.info("bucket_deleted bucket=%s", name)

    def enable_versioning(self, name: str) -> None:
        self._storage.enable_versioning(bucket=self._ensure_bucket(name))
        logger.info("bucket_versioning_enabled bucket=%s", name)

    def set_lifecycle_rule(self, name: str, rule: LifecycleRule | None = None) -> LifecycleRule:
        rule = rule or LifecycleRule()
        if rule.transition_days < 0:
            raise InvalidObjectOperationError("transition_days must not be negative")
        self._storage.put_lifecycle_rule(bucket=self._ensure_bucket(name), rule=rule)
        logger.info(
            "bucket_lifecycle_set bucket=%s rule_id=%s prefix=%s days=%s storage_class=%s",
            name,
            rule.rule_id,
            rule.prefix,
            rule.transition_days,
            rule.storage_class,
        )
        return rule

    # Objects

    def put_object(
        self, key: str, body: bytes, *, content_type: str | None = None
    ) -> str | None:
        return self._put(key, body, content_type=content_type, encryption=None)

    def put_encrypted_object(
        self, key: str, body: bytes, *, content_type: str | None = None
    ) -> str | None:
        """Store an object with SSE-S3 (AES256) server-side encryption."""
        return self._put(key, body, content_type=content_type, encryption=SSE_ALGORITHM)

    def _put(
        self,
        key: str,
        body: bytes,
        *,
        content_type: str | None,
        encryption: str | None,
    ) -> str | None:
        key = self._ensure_key(key)
        if self._max_upload_bytes is not None and len(body) > self._max_upload_bytes:
            raise PayloadTooLargeError(
                f"Payload size ({len(body)} bytes) exceeds maximum allowed "
                f"({self._max_upload_bytes} bytes)"
            )
        etag = self._storage.put_object(
            bucket=self.bucket,
            object_key=key,
            body=body,
            content_type=content_type,
            server_side_encryption=encryption,
        )
        logger.info(
            "object_stored key=%s bytes=%s encryption=%s",
            key,
            len(body),
            encryption or "-",
        )
        return etag

    def get_object(self, key: str) -> bytes:
        return self._storage.get_object(bucket=self.bucket, object_key=self._ensure_key(key))

    def head_object(self, key: str) -> ObjectHead:
        return self._storage.head_object(bucket=self.bucket, object_key=self._ensure_key(key))

    def list_objects(self, prefix: str | None = None) -> list[str]:
        return self._storage.list_objects(bucket=self.bucket, prefix=prefix or None)

    def delete_object(self, key: str) -> None:
        self._storage.delete_object(bucket=self.bucket, object_key=self._ensure_key(key))
        logger.info("object_deleted key=%s", key)

    def list_object_versions(self, key: str) -> list[ObjectVersion]:
        # Versions are matched by prefix, so "a" also lists "a/b".
        return self._storage.list_object_versions(
            bucket=self.bucket, prefix=self._ensure_key(key)
        )

    def tag_object(self, key: str, tag_key: str, tag_value: str) -> None:
        if not tag_key:
            raise InvalidObjectOperationError("tag key must not be empty")
        self._storage.put_object_tagging(
            bucket=self.bucket,
            object_key=self._ensure_key(key),
            tags={tag_key: tag_value},
        )

    # Presigned URLs

    def presign_download(
        self,
        key: str,
        *,
        expires_in: int | None = None,
        filename: str | None = None,
    ) -> PresignedUrl:
        expires = self._resolve_expiry(expires_in)
        url = self._storage.presign_download(
            bucket=self.bucket,
            object_key=self._ensure_key(key),
            expires_in=expires,
            filename=filename,
        )
        return PresignedUrl(url=url, method="GET", expires_in=expires)

    def presign_upload(
        self,
        key: str,
        *,
        expires_in: int | None = None,
        content_type: str | None = None,
    ) -> PresignedUrl:
        expires = self._resolve_expiry(expires_in)
        url = self._storage.presign_upload(
            bucket=self.bucket,
            object_key=self._ensure_key(key),
            expires_in=expires,
            content_type=content_type,
        )
        return PresignedUrl(url=url, method="PUT", expires_in=expires)

    def _resolve_expiry(self, expires_in: int | None) -> int:
        expires = self._presign_expires_in if expires_in is None else int(expires_in)
        if expires <= 0 or expires > MAX_PRESIGN_EXPIRES_SECONDS:
            raise InvalidObjectOperationError(
                f"expires_in must be between 1 and {MAX_PRESIGN_EXPIRES_SECONDS} seconds"
            )
        return expires

    @staticmethod
    def _ensure_bucket(name: str) -> str:
        if not name or not name.strip():
            raise InvalidObjectOperationError("bucket name must not be empty")
        return name
