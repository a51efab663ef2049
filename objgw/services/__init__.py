from .base import (
    BaseService,
    InvalidObjectOperationError,
    PayloadTooLargeError,
    ServiceError,
    StorageBackendNotConfiguredError,
    build_storage_client,
)
from .bundle import ServiceBundle, get_service_bundle
from .chunk_planner import (
    DEFAULT_PART_SIZE_BYTES,
    MAX_PART_COUNT,
    ChunkPlan,
    PlannedPart,
    plan_chunks,
)
from .multipart_service import (
    AbortFailure,
    CompletionFailure,
    InitiationFailure,
    InvalidSessionTransition,
    MultipartUploadError,
    MultipartUploadService,
    PartResult,
    PartUploadFailure,
    UploadCancelled,
    UploadOutcome,
    UploadSession,
    UploadState,
)
from .object_service import ObjectService, PresignedUrl

__all__ = [
    "BaseService",
    "ServiceError",
    "StorageBackendNotConfiguredError",
    "InvalidObjectOperationError",
    "PayloadTooLargeError",
    "build_storage_client",
    "ServiceBundle",
    "get_service_bundle",
    "ChunkPlan",
    "PlannedPart",
    "plan_chunks",
    "DEFAULT_PART_SIZE_BYTES",
    "MAX_PART_COUNT",
    "MultipartUploadService",
    "UploadSession",
    "UploadState",
    "UploadOutcome",
    "PartResult",
    "MultipartUploadError",
    "InitiationFailure",
    "PartUploadFailure",
    "CompletionFailure",
    "UploadCancelled",
    "AbortFailure",
    "InvalidSessionTransition",
    "ObjectService",
    "PresignedUrl",
]
