"""S3-compatible storage client implementation.

This module provides an S3-compatible storage client that works with
AWS S3, MinIO, and other S3-compatible object storage services.

Dependencies:
    - boto3
    - botocore
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Sequence

from objgw.infra.storage.client import (
    CompletedPart,
    LifecycleRule,
    MultipartUpload,
    ObjectHead,
    ObjectVersion,
    PendingUpload,
    StorageError,
)

if TYPE_CHECKING:
    from objgw.common.config import Settings

# us-east-1 rejects an explicit LocationConstraint.
_DEFAULT_REGION = "us-east-1"


class S3StorageClient:
    """S3-compatible object storage client.

    Supports AWS S3, MinIO, and other S3-compatible services.
    Uses boto3 for all storage operations. The underlying boto3 client is
    thread safe and shared by concurrent part uploads.
    """

    def __init__(self, *, settings: "Settings") -> None:
        """Initialize the S3 client with configuration from settings.

        Args:
            settings: Application settings containing S3 configuration.

        Raises:
            StorageError: If boto3 is not installed.
        """
        self._settings = settings
        self._region = settings.S3_REGION or _DEFAULT_REGION
        self._client = self._build_client(settings)

    @staticmethod
    def _build_client(settings: "Settings") -> Any:
        """Create a boto3 S3 client from settings."""
        try:
            import boto3
            from botocore.config import Config
        except ImportError as exc:
            raise StorageError(
                "boto3 and botocore are required for S3 storage backend. "
                "Install with: pip install boto3"
            ) from exc

        addressing_style = (settings.S3_ADDRESSING_STYLE or "path").strip().lower()
        config = Config(
            s3={"addressing_style": addressing_style},
            signature_version="s3v4",
            connect_timeout=settings.S3_CONNECT_TIMEOUT,
            read_timeout=settings.S3_READ_TIMEOUT,
            retries={"max_attempts": settings.S3_MAX_ATTEMPTS, "mode": "standard"},
            max_pool_connections=max(10, settings.MULTIPART_MAX_CONCURRENCY * 2),
        )

        return boto3.client(
            "s3",
            endpoint_url=settings.S3_ENDPOINT_URL,
            region_name=settings.S3_REGION,
            aws_access_key_id=settings.S3_ACCESS_KEY_ID,
            aws_secret_access_key=settings.S3_SECRET_ACCESS_KEY,
            use_ssl=bool(settings.S3_USE_SSL),
            config=config,
        )

    # Buckets

    def create_bucket(self, *, bucket: str) -> None:
        params: dict[str, Any] = {"Bucket": bucket}
        if self._region != _DEFAULT_REGION:
            params["CreateBucketConfiguration"] = {
                "LocationConstraint": self._region
            }
        try:
            self._client.create_bucket(**params)
        except Exception as exc:
            raise StorageError(f"Failed to create bucket: {exc}") from exc

    def list_buckets(self) -> list[str]:
        try:
            response = self._client.list_buckets()
        except Exception as exc:
            raise StorageError(f"Failed to list buckets: {exc}") from exc
        return [str(item["Name"]) for item in response.get("Buckets", [])]

    def head_bucket(self, *, bucket: str) -> None:
        try:
            self._client.head_bucket(Bucket=bucket)
        except Exception as exc:
            raise StorageError(f"Bucket is not reachable: {exc}") from exc

    def delete_bucket(self, *, bucket: str) -> None:
        try:
            self._client.delete_bucket(Bucket=bucket)
        except Exception as exc:
            raise StorageError(f"Failed to delete bucket: {exc}") from exc

    def enable_versioning(self, *, bucket: str) -> None:
        try:
            self._client.put_bucket_versioning(
                Bucket=bucket,
                VersioningConfiguration={"Status": "Enabled"},
            )
        except Exception as exc:
            raise StorageError(f"Failed to enable versioning: {exc}") from exc

    def put_lifecycle_rule(self, *, bucket: str, rule: LifecycleRule) -> None:
        configuration = {
            "Rules": [
                {
                    "ID": rule.rule_id,
                    "Status": "Enabled" if rule.enabled else "Disabled",
                    "Filter": {"Prefix": rule.prefix},
                    "Transitions": [
                        {
                            "Days": int(rule.transition_days),
                            "StorageClass": rule.storage_class,
                        }
                    ],
                }
            ]
        }
        try:
            self._client.put_bucket_lifecycle_configuration(
                Bucket=bucket,
                LifecycleConfiguration=configuration,
            )
        except Exception as exc:
            raise StorageError(f"Failed to set lifecycle configuration: {exc}") from exc

    # Objects

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
        params: dict[str, Any] = {"Bucket": bucket, "Key": object_key, "Body": body}
        if content_type:
            params["ContentType"] = content_type
        if server_side_encryption:
            params["ServerSideEncryption"] = server_side_encryption
        if metadata:
            params["Metadata"] = metadata

        try:
            response = self._client.put_object(**params)
        except Exception as exc:
            raise StorageError(f"Failed to put object: {exc}") from exc
        return response.get("ETag")

    def get_object(self, *, bucket: str, object_key: str) -> bytes:
        try:
            response = self._client.get_object(Bucket=bucket, Key=object_key)
            stream = response["Body"]
            try:
                return stream.read()
            finally:
                stream.close()
        except Exception as exc:
            raise StorageError(f"Failed to get object: {exc}") from exc

    def list_objects(self, *, bucket: str, prefix: str | None = None) -> list[str]:
        params: dict[str, Any] = {"Bucket": bucket}
        if prefix:
            params["Prefix"] = prefix

        keys: list[str] = []
        try:
            paginator = self._client.get_paginator("list_objects_v2")
            for page in paginator.paginate(**params):
                keys.extend(str(item["Key"]) for item in page.get("Contents", []))
        except Exception as exc:
            raise StorageError(f"Failed to list objects: {exc}") from exc
        return keys

    def delete_object(self, *, bucket: str, object_key: str) -> None:
        """Delete an object from storage."""
        try:
            self._client.delete_object(Bucket=bucket, Key=object_key)
        except Exception as exc:
            raise StorageError(f"Failed to delete object: {exc}") from exc

    def head_object(self, *, bucket: str, object_key: str) -> ObjectHead:
        """Get object metadata without downloading the content."""
        try:
            response = self._client.head_object(Bucket=bucket, Key=object_key)
        except Exception as exc:
            raise StorageError(f"Failed to get object metadata: {exc}") from exc

        size = response.get("ContentLength")
        return ObjectHead(
            size_bytes=int(size) if size is not None else 0,
            etag=response.get("ETag"),
            content_type=response.get("ContentType"),
        )

    def list_object_versions(
        self, *, bucket: str, prefix: str
    ) -> list[ObjectVersion]:
        versions: list[ObjectVersion] = []
        try:
            paginator = self._client.get_paginator("list_object_versions")
            for page in paginator.paginate(Bucket=bucket, Prefix=prefix):
                for item in page.get("Versions", []):
                    versions.append(
                        ObjectVersion(
                            object_key=str(item["Key"]),
                            version_id=item.get("VersionId"),
                            is_latest=bool(item.get("IsLatest", False)),
                            size_bytes=int(item.get("Size") or 0),
                            etag=item.get("ETag"),
                            last_modified=item.get("LastModified"),
                        )
                    )
        except Exception as exc:
            raise StorageError(f"Failed to list object versions: {exc}") from exc
        return versions

    def put_object_tagging(
        self, *, bucket: str, object_key: str, tags: dict[str, str]
    ) -> None:
        tag_set = [{"Key": key, "Value": value} for key, value in tags.items()]
        try:
            self._client.put_object_tagging(
                Bucket=bucket,
                Key=object_key,
                Tagging={"TagSet": tag_set},
            )
        except Exception as exc:
            raise StorageError(f"Failed to tag object: {exc}") from exc

    # Presigned URLs

    def presign_download(
        self,
        *,
        bucket: str,
        object_key: str,
        expires_in: int,
        filename: str | None = None,
    ) -> str:
        """Generate a presigned URL for downloading an object."""
        params: dict[str, Any] = {"Bucket": bucket, "Key": object_key}
        if filename:
            # Escape quotes in filename for Content-Disposition header
            safe_filename = filename.replace('"', '\\"')
            params["ResponseContentDisposition"] = (
                f'attachment; filename="{safe_filename}"'
            )

        return self._presign("get_object", params, expires_in)

    def presign_upload(
        self,
        *,
        bucket: str,
        object_key: str,
        expires_in: int,
        content_type: str | None = None,
    ) -> str:
        """Generate a presigned URL for uploading an object."""
        params: dict[str, Any] = {"Bucket": bucket, "Key": object_key}
        if content_type:
            params["ContentType"] = content_type

        return self._presign("put_object", params, expires_in)

    def _presign(self, operation: str, params: dict[str, Any], expires_in: int) -> str:
        try:
            url = self._client.generate_presigned_url(
                operation,
                Params=params,
                ExpiresIn=int(expires_in),
            )
        except Exception as exc:
            raise StorageError(f"Failed to generate presigned URL: {exc}") from exc

        if not url:
            raise StorageError("Generated presigned URL is empty")

        return str(url)

    # Multipart uploads

    def init_multipart_upload(
        self,
        *,
        bucket: str,
        object_key: str,
        content_type: str | None = None,
        metadata: dict[str, str] | None = None,
    ) -> MultipartUpload:
        """Initialize a multipart upload session."""
        params: dict[str, Any] = {"Bucket": bucket, "Key": object_key}
        if content_type:
            params["ContentType"] = content_type
        if metadata:
            params["Metadata"] = metadata

        try:
            response = self._client.create_multipart_upload(**params)
        except Exception as exc:
            raise StorageError(f"Failed to create multipart upload: {exc}") from exc

        upload_id = response.get("UploadId")
        if not upload_id:
            raise StorageError("S3 response missing UploadId")

        return MultipartUpload(
            upload_id=str(upload_id),
            bucket=bucket,
            object_key=object_key,
        )

    def upload_part(
        self,
        *,
        bucket: str,
        object_key: str,
        upload_id: str,
        part_number: int,
        body: bytes,
    ) -> str:
        """Upload one part and return its ETag."""
        try:
            response = self._client.upload_part(
                Bucket=bucket,
                Key=object_key,
                UploadId=upload_id,
                PartNumber=int(part_number),
                Body=body,
            )
        except Exception as exc:
            raise StorageError(
                f"Failed to upload part {part_number}: {exc}"
            ) from exc

        etag = response.get("ETag")
        if not etag:
            raise StorageError(f"S3 response missing ETag for part {part_number}")
        return str(etag)

    def complete_multipart_upload(
        self,
        *,
        bucket: str,
        object_key: str,
        upload_id: str,
        parts: Sequence[CompletedPart],
    ) -> None:
        """Complete a multipart upload by combining all parts."""
        multipart_payload = {
            "Parts": [
                {"ETag": part.etag, "PartNumber": int(part.part_number)}
                for part in sorted(parts, key=lambda p: p.part_number)
            ]
        }

        try:
            self._client.complete_multipart_upload(
                Bucket=bucket,
                Key=object_key,
                UploadId=upload_id,
                MultipartUpload=multipart_payload,
            )
        except Exception as exc:
            raise StorageError(f"Failed to complete multipart upload: {exc}") from exc

    def abort_multipart_upload(
        self,
        *,
        bucket: str,
        object_key: str,
        upload_id: str,
    ) -> None:
        """Abort a multipart upload and clean up uploaded parts."""
        try:
            self._client.abort_multipart_upload(
                Bucket=bucket,
                Key=object_key,
                UploadId=upload_id,
            )
        except Exception as exc:
            raise StorageError(f"Failed to abort multipart upload: {exc}") from exc

    def list_multipart_uploads(
        self, *, bucket: str, prefix: str | None = None
    ) -> list[PendingUpload]:
        params: dict[str, Any] = {"Bucket": bucket}
        if prefix:
            params["Prefix"] = prefix

        pending: list[PendingUpload] = []
        try:
            paginator = self._client.get_paginator("list_multipart_uploads")
            for page in paginator.paginate(**params):
                for item in page.get("Uploads", []):
                    pending.append(
                        PendingUpload(
                            object_key=str(item["Key"]),
                            upload_id=str(item["UploadId"]),
                            initiated_at=item.get("Initiated"),
                        )
                    )
        except Exception as exc:
            raise StorageError(f"Failed to list multipart uploads: {exc}") from exc
        return pending
