"""Storage client protocol and data types.

This module defines the abstract interface for object storage operations,
covering bucket management, single-shot object operations, multipart uploads,
presigned URLs, versioning, lifecycle rules and tagging.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Protocol, Sequence


class StorageError(RuntimeError):
    """Raised when object storage operations fail."""


@dataclass(frozen=True, slots=True)
class CompletedPart:
    """Represents a completed part in a multipart upload."""

    part_number: int
    etag: str


@dataclass(frozen=True, slots=True)
class MultipartUpload:
    """Result of initiating a multipart upload."""

    upload_id: str
    bucket: str
    object_key: str


@dataclass(frozen=True, slots=True)
class PendingUpload:
    """A multipart upload that was initiated but never completed or aborted."""

    object_key: str
    upload_id: str
    initiated_at: datetime | None


@dataclass(frozen=True, slots=True)
class ObjectHead:
    """Metadata from a HEAD object request."""

    size_bytes: int
    etag: str | None
    content_type: str | None


@dataclass(frozen=True, slots=True)
class ObjectVersion:
    """One entry of a bucket's version listing."""

    object_key: str
    version_id: str | None
    is_latest: bool
    size_bytes: int
    etag: str | None
    last_modified: datetime | None


@dataclass(frozen=True, slots=True)
class LifecycleRule:
    """Transition objects under a prefix to a colder storage class."""

    rule_id: str = "MoveToGlacierAfter30Days"
    prefix: str = "temp/"
    transition_days: int = 30
    storage_class: str = "GLACIER"
    enabled: bool = True


class StorageClient(Protocol):
    """Protocol defining the interface for object storage backends.

    Implementations must provide all methods defined here and raise
    StorageError for every backend failure.
    """

    def create_bucket(self, *, bucket: str) -> None:
        """Create a bucket.

        Raises:
            StorageError: If the bucket exists or the operation fails.
        """
        ...

    def list_buckets(self) -> list[str]:
        """Return the names of all buckets visible to the credentials."""
        ...

    def head_bucket(self, *, bucket: str) -> None:
        """Check that a bucket exists and is reachable.

        Raises:
            StorageError: If the bucket is missing or the backend is unreachable.
        """
        ...

    def delete_bucket(self, *, bucket: str) -> None:
        """Delete an empty bucket.

        Raises:
            StorageError: If the bucket is not empty or the operation fails.
        """
        ...

    def put_object(
        self,
        *,
        bucket: str,
        object_key: str,
        body: bytes,
        content_type: str | None = None,
        server_side_encryption: str | None = None,
        metadata: dict[str, str] | None = None,
    ) -> str | None:
        """Store an object in a single request.

        Args:
            bucket: Target bucket name.
            object_key: Object key (path) in the bucket.
            body: Full object content.
            content_type: MIME type of the object.
            server_side_encryption: SSE algorithm, e.g. "AES256".
            metadata: User metadata stored with the object.

        Returns:
            The ETag reported by the backend, if any.

        Raises:
            StorageError: If the operation fails.
        """
        ...

    def get_object(self, *, bucket: str, object_key: str) -> bytes:
        """Download an object's full content.

        Raises:
            StorageError: If the object doesn't exist or the operation fails.
        """
        ...

    def list_objects(self, *, bucket: str, prefix: str | None = None) -> list[str]:
        """List object keys in a bucket, optionally restricted to a prefix."""
        ...

    def delete_object(self, *, bucket: str, object_key: str) -> None:
        """Delete an object from storage.

        Raises:
            StorageError: If the operation fails.
        """
        ...

    def head_object(self, *, bucket: str, object_key: str) -> ObjectHead:
        """Get object metadata without downloading the content.

        Raises:
            StorageError: If the object doesn't exist or operation fails.
        """
        ...

    def enable_versioning(self, *, bucket: str) -> None:
        """Turn on object versioning for a bucket."""
        ...

    def list_object_versions(
        self, *, bucket: str, prefix: str
    ) -> list[ObjectVersion]:
        """List every stored version of the objects matching a prefix."""
        ...

    def put_lifecycle_rule(self, *, bucket: str, rule: LifecycleRule) -> None:
        """Replace the bucket lifecycle configuration with a single rule."""
        ...

    def put_object_tagging(
        self, *, bucket: str, object_key: str, tags: dict[str, str]
    ) -> None:
        """Replace the tag set of an object."""
        ...

    def presign_download(
        self,
        *,
        bucket: str,
        object_key: str,
        expires_in: int,
        filename: str | None = None,
    ) -> str:
        """Generate a presigned URL for downloading an object.

        Args:
            bucket: Target bucket name.
            object_key: Object key (path) in the bucket.
            expires_in: URL expiration time in seconds.
            filename: Optional filename for Content-Disposition header.

        Returns:
            Presigned URL for GET request.

        Raises:
            StorageError: If URL generation fails.
        """
        ...

    def presign_upload(
        self,
        *,
        bucket: str,
        object_key: str,
        expires_in: int,
        content_type: str | None = None,
    ) -> str:
        """Generate a presigned URL for uploading an object with PUT.

        Raises:
            StorageError: If URL generation fails.
        """
        ...

    def init_multipart_upload(
        self,
        *,
        bucket: str,
        object_key: str,
        content_type: str | None = None,
        metadata: dict[str, str] | None = None,
    ) -> MultipartUpload:
        """Initialize a multipart upload session.

        Args:
            bucket: Target bucket name.
            object_key: Object key (path) in the bucket.
            content_type: MIME type of the object.
            metadata: Custom metadata to attach to the object.

        Returns:
            MultipartUpload containing the upload_id for subsequent operations.

        Raises:
            StorageError: If the operation fails.
        """
        ...

    def upload_part(
        self,
        *,
        bucket: str,
        object_key: str,
        upload_id: str,
        part_number: int,
        body: bytes,
    ) -> str:
        """Upload one part of a multipart upload.

        Args:
            bucket: Target bucket name.
            object_key: Object key (path) in the bucket.
            upload_id: Multipart upload ID from init_multipart_upload.
            part_number: Part number (1-based, max 10000).
            body: Part content.

        Returns:
            The ETag the backend assigned to the part.

        Raises:
            StorageError: If the operation fails.
        """
        ...

    def complete_multipart_upload(
        self,
        *,
        bucket: str,
        object_key: str,
        upload_id: str,
        parts: Sequence[CompletedPart],
    ) -> None:
        """Complete a multipart upload by combining all parts.

        Args:
            bucket: Target bucket name.
            object_key: Object key (path) in the bucket.
            upload_id: Multipart upload ID.
            parts: List of completed parts with their ETags.

        Raises:
            StorageError: If the operation fails.
        """
        ...

    def abort_multipart_upload(
        self,
        *,
        bucket: str,
        object_key: str,
        upload_id: str,
    ) -> None:
        """Abort a multipart upload and clean up uploaded parts.

        Raises:
            StorageError: If the operation fails.
        """
        ...

    def list_multipart_uploads(
        self, *, bucket: str, prefix: str | None = None
    ) -> list[PendingUpload]:
        """List multipart uploads that are still open on the backend."""
        ...
