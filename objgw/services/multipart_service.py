"""Multipart upload orchestration.

Drives the initiate -> upload parts -> complete protocol against a
StorageClient and guarantees that an initiated upload is either completed or
aborted before ``upload()`` returns. Failures are reported through an
``UploadOutcome`` value rather than raised, so the caller always sees both the
original failure and the result of the cleanup attempt.
"""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable

from objgw.common.config import MIN_PART_SIZE_BYTES, Settings
from objgw.infra.observability.metrics import (
    MULTIPART_DURATION,
    MULTIPART_PARTS,
    MULTIPART_UPLOADS,
)
from objgw.infra.storage.client import CompletedPart, StorageClient, StorageError
from objgw.services.base import (
    BaseService,
    InvalidObjectOperationError,
    PayloadTooLargeError,
)
from objgw.services.chunk_planner import (
    DEFAULT_PART_SIZE_BYTES,
    MAX_PART_COUNT,
    ChunkPlan,
    PlannedPart,
    plan_chunks,
)

logger = logging.getLogger("objgw.multipart")


class UploadState(str, Enum):
    INITIATED = "initiated"
    UPLOADING = "uploading"
    COMPLETED = "completed"
    FAILED = "failed"
    ABORTED = "aborted"


_ALLOWED_TRANSITIONS: dict[UploadState, frozenset[UploadState]] = {
    UploadState.INITIATED: frozenset({UploadState.UPLOADING, UploadState.FAILED}),
    UploadState.UPLOADING: frozenset({UploadState.COMPLETED, UploadState.FAILED}),
    UploadState.FAILED: frozenset({UploadState.ABORTED}),
    UploadState.COMPLETED: frozenset(),
    UploadState.ABORTED: frozenset(),
}


class InvalidSessionTransition(RuntimeError):
    """Raised when an upload session is driven through an illegal state change."""


class MultipartUploadError(Exception):
    """Base class for failures reported by the multipart orchestrator."""

    error_code = "multipart_upload_failed"

    def __init__(self, message: str, *, key: str, upload_id: str | None = None):
        super().__init__(message)
        self.key = key
        self.upload_id = upload_id


class InitiationFailure(MultipartUploadError):
    """The backend could not start the upload. Nothing was left to clean up."""

    error_code = "initiation_failed"


class PartUploadFailure(MultipartUploadError):
    """A part transfer failed after exhausting its retries."""

    error_code = "part_upload_failed"

    def __init__(
        self,
        message: str,
        *,
        key: str,
        upload_id: str | None = None,
        part_number: int | None = None,
    ):
        super().__init__(message, key=key, upload_id=upload_id)
        self.part_number = part_number


class CompletionFailure(MultipartUploadError):
    """The backend rejected the request combining the uploaded parts."""

    error_code = "completion_failed"


class UploadCancelled(MultipartUploadError):
    """The caller cancelled the upload or its deadline passed."""

    error_code = "upload_cancelled"


class AbortFailure(MultipartUploadError):
    """Cleanup of a failed upload did not succeed. Always secondary."""

    error_code = "abort_failed"


@dataclass(frozen=True, slots=True)
class PartResult:
    part_number: int
    etag: str
    size: int


@dataclass
class UploadSession:
    """In-memory record of one in-flight multipart upload."""

    key: str
    upload_id: str
    plan: ChunkPlan
    state: UploadState = UploadState.INITIATED
    _results: dict[int, PartResult] = field(default_factory=dict, repr=False)

    def transition(self, target: UploadState) -> None:
        if target not in _ALLOWED_TRANSITIONS[self.state]:
            raise InvalidSessionTransition(
                f"Cannot move upload {self.upload_id} from {self.state.value} "
                f"to {target.value}"
            )
        if target is UploadState.COMPLETED and self.missing_parts():
            raise InvalidSessionTransition(
                f"Upload {self.upload_id} is missing parts {self.missing_parts()}"
            )
        self.state = target

    def record(self, result: PartResult) -> None:
        if self.state is not UploadState.UPLOADING:
            raise InvalidSessionTransition(
                f"Cannot record parts while upload is {self.state.value}"
            )
        if result.part_number not in self.plan.part_numbers:
            raise InvalidSessionTransition(
                f"Part {result.part_number} is not part of the plan"
            )
        if result.part_number in self._results:
            raise InvalidSessionTransition(
                f"Part {result.part_number} was already recorded"
            )
        self._results[result.part_number] = result

    @property
    def parts(self) -> tuple[PartResult, ...]:
        return tuple(self._results[number] for number in sorted(self._results))

    def missing_parts(self) -> list[int]:
        return [n for n in self.plan.part_numbers if n not in self._results]

    def completed_parts(self) -> list[CompletedPart]:
        return [
            CompletedPart(part_number=part.part_number, etag=part.etag)
            for part in self.parts
        ]


@dataclass(frozen=True, slots=True)
class UploadOutcome:
    """Terminal result of ``MultipartUploadService.upload``.

    ``state`` is ``None`` when no session was created (initiation failed).
    ``abort_error`` is advisory and never replaces ``error``.
    """

    key: str
    upload_id: str | None
    state: UploadState | None
    parts: tuple[PartResult, ...] = ()
    error: MultipartUploadError | None = None
    abort_error: AbortFailure | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def size_bytes(self) -> int:
        return sum(part.size for part in self.parts)

    def raise_for_error(self) -> None:
        if self.error is not None:
            raise self.error


def _caused_by(error: MultipartUploadError, cause: BaseException) -> MultipartUploadError:
    error.__cause__ = cause
    return error


class MultipartUploadService(BaseService):
    """Uploads whole payloads through the S3 multipart protocol.

    Every payload, however small, goes through initiate, part upload and
    complete. Parts are sent one at a time unless ``max_concurrency`` is
    greater than one, in which case a bounded thread pool is used and the
    completion request is only built after every part has reported back.
    """

    def __init__(
        self,
        storage: StorageClient,
        *,
        bucket: str,
        part_size: int = DEFAULT_PART_SIZE_BYTES,
        max_concurrency: int = 1,
        part_retries: int = 0,
        retry_backoff: float = 0.5,
        upload_timeout: float | None = None,
        max_upload_bytes: int | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        super().__init__(storage, bucket=bucket)
        if part_size < MIN_PART_SIZE_BYTES:
            raise ValueError(
                f"part_size must be at least {MIN_PART_SIZE_BYTES} bytes"
            )
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        if part_retries < 0:
            raise ValueError("part_retries must not be negative")
        self._part_size = part_size
        self._max_concurrency = max_concurrency
        self._part_retries = part_retries
        self._retry_backoff = retry_backoff
        self._upload_timeout = upload_timeout
        self._max_upload_bytes = max_upload_bytes
        self._clock = clock

    @classmethod
    def from_settings(
        cls, storage: StorageClient, settings: Settings
    ) -> "MultipartUploadService":
        return cls(
            storage,
            bucket=settings.S3_BUCKET or "",
            part_size=settings.STORAGE_PART_SIZE_BYTES,
            max_concurrency=settings.MULTIPART_MAX_CONCURRENCY,
            part_retries=settings.MULTIPART_PART_RETRIES,
            retry_backoff=settings.MULTIPART_RETRY_BACKOFF_SECONDS,
            upload_timeout=settings.MULTIPART_UPLOAD_TIMEOUT_SECONDS,
            max_upload_bytes=settings.STORAGE_MAX_UPLOAD_BYTES,
        )

    @property
    def part_size(self) -> int:
        return self._part_size

    def upload(
        self,
        key: str,
        payload: bytes | bytearray | memoryview,
        *,
        content_type: str | None = None,
        metadata: dict[str, str] | None = None,
        cancel_event: threading.Event | None = None,
    ) -> UploadOutcome:
        """Upload ``payload`` to ``key`` and return the terminal outcome.

        Args:
            key: Target object key.
            payload: Full object content.
            content_type: MIME type stored with the object.
            metadata: Custom metadata stored with the object.
            cancel_event: Set by the caller to stop the upload; the
                orchestrator aborts and reports ``UploadCancelled``.

        Raises:
            InvalidObjectOperationError: If the key is empty or the payload
                cannot be uploaded with the configured part size. Raised
                before any backend call.
        """
        key = self._ensure_key(key)
        view = memoryview(payload).cast("B")
        if self._max_upload_bytes is not None and view.nbytes > self._max_upload_bytes:
            raise PayloadTooLargeError(
                f"Payload size ({view.nbytes} bytes) exceeds maximum allowed "
                f"({self._max_upload_bytes} bytes)"
            )
        plan = plan_chunks(view.nbytes, self._part_size)
        if len(plan) > MAX_PART_COUNT:
            raise InvalidObjectOperationError(
                f"Payload needs {len(plan)} parts, more than the {MAX_PART_COUNT} "
                "the backend accepts; raise the part size"
            )

        started = self._clock()
        deadline = started + self._upload_timeout if self._upload_timeout else None
        try:
            if not plan:
                outcome = self._put_empty(key, content_type, metadata)
            else:
                outcome = self._run(
                    key, view, plan, content_type, metadata, cancel_event, deadline
                )
        finally:
            MULTIPART_DURATION.observe(self._clock() - started)

        MULTIPART_UPLOADS.labels(
            outcome.state.value if outcome.state else "initiation_failed"
        ).inc()
        return outcome

    def _put_empty(
        self,
        key: str,
        content_type: str | None,
        metadata: dict[str, str] | None,
    ) -> UploadOutcome:
        # A zero-part completion is rejected by S3, so empty objects are written directly.
        logger.info(
            "multipart_empty_payload key=%s bucket=%s",
            key,
            self.bucket,
            extra={"extra": {"key": key, "bucket": self.bucket}},
        )
        try:
            self.storage.put_object(
                bucket=self.bucket,
                object_key=key,
                body=b"",
                content_type=content_type,
                metadata=metadata,
            )
        except StorageError as exc:
            logger.error(
                "multipart_initiation_failed key=%s error=%s",
                key,
                exc,
                extra={"extra": {"key": key, "error": str(exc)}},
            )
            error = _caused_by(
                InitiationFailure(f"Failed to store empty object: {exc}", key=key), exc
            )
            return UploadOutcome(key=key, upload_id=None, state=None, error=error)
        return UploadOutcome(key=key, upload_id=None, state=UploadState.COMPLETED)

    def _run(
        self,
        key: str,
        view: memoryview,
        plan: ChunkPlan,
        content_type: str | None,
        metadata: dict[str, str] | None,
        cancel_event: threading.Event | None,
        deadline: float | None,
    ) -> UploadOutcome:
        try:
            upload = self.storage.init_multipart_upload(
                bucket=self.bucket,
                object_key=key,
                content_type=content_type,
                metadata=metadata,
            )
        except StorageError as exc:
            logger.error(
                "multipart_initiation_failed key=%s error=%s",
                key,
                exc,
                extra={"extra": {"key": key, "bucket": self.bucket, "error": str(exc)}},
            )
            error = _caused_by(
                InitiationFailure(f"Failed to initiate upload: {exc}", key=key), exc
            )
            return UploadOutcome(key=key, upload_id=None, state=None, error=error)

        session = UploadSession(key=key, upload_id=upload.upload_id, plan=plan)
        logger.info(
            "multipart_initiated key=%s upload_id=%s parts=%s part_size=%s",
            key,
            session.upload_id,
            len(plan),
            plan.part_size,
            extra={
                "extra": {
                    "key": key,
                    "upload_id": session.upload_id,
                    "parts": len(plan),
                    "part_size": plan.part_size,
                    "payload_bytes": plan.payload_length,
                }
            },
        )

        try:
            session.transition(UploadState.UPLOADING)
            self._upload_parts(session, view, cancel_event, deadline)
            self._check_cancelled(session, cancel_event, None, deadline)
        except MultipartUploadError as exc:
            return self._fail(session, exc)
        except Exception as exc:
            return self._fail(
                session,
                _caused_by(
                    PartUploadFailure(
                        f"Unexpected error while uploading parts: {exc}",
                        key=key,
                        upload_id=session.upload_id,
                    ),
                    exc,
                ),
            )
        except BaseException:
            self._abort_interrupted(session)
            raise

        try:
            self.storage.complete_multipart_upload(
                bucket=self.bucket,
                object_key=key,
                upload_id=session.upload_id,
                parts=session.completed_parts(),
            )
        except Exception as exc:
            return self._fail(
                session,
                _caused_by(
                    CompletionFailure(
                        f"Failed to complete upload: {exc}",
                        key=key,
                        upload_id=session.upload_id,
                    ),
                    exc,
                ),
            )
        except BaseException:
            self._abort_interrupted(session)
            raise

        session.transition(UploadState.COMPLETED)
        logger.info(
            "multipart_completed key=%s upload_id=%s parts=%s bytes=%s",
            key,
            session.upload_id,
            len(session.parts),
            plan.payload_length,
            extra={
                "extra": {
                    "key": key,
                    "upload_id": session.upload_id,
                    "parts": len(session.parts),
                    "payload_bytes": plan.payload_length,
                }
            },
        )
        return UploadOutcome(
            key=key,
            upload_id=session.upload_id,
            state=session.state,
            parts=session.parts,
        )

    def _upload_parts(
        self,
        session: UploadSession,
        view: memoryview,
        cancel_event: threading.Event | None,
        deadline: float | None,
    ) -> None:
        stop = threading.Event()
        if self._max_concurrency == 1 or len(session.plan) == 1:
            for part in session.plan:
                session.record(
                    self._upload_part(session, view, part, cancel_event, stop, deadline)
                )
            return

        with ThreadPoolExecutor(
            max_workers=min(self._max_concurrency, len(session.plan)),
            thread_name_prefix="multipart",
        ) as executor:
            pending = {
                executor.submit(
                    self._upload_part, session, view, part, cancel_event, stop, deadline
                )
                for part in session.plan
            }
            try:
                while pending:
                    done, pending = wait(
                        pending,
                        timeout=self._remaining(deadline),
                        return_when=FIRST_EXCEPTION,
                    )
                    if not done:
                        raise UploadCancelled(
                            "Upload deadline passed while parts were in flight",
                            key=session.key,
                            upload_id=session.upload_id,
                        )
                    for future in done:
                        session.record(future.result())
            except BaseException:
                # Queued parts never start; in-flight ones are joined on exit.
                stop.set()
                for future in pending:
                    future.cancel()
                raise

    def _upload_part(
        self,
        session: UploadSession,
        view: memoryview,
        part: PlannedPart,
        cancel_event: threading.Event | None,
        stop: threading.Event,
        deadline: float | None,
    ) -> PartResult:
        attempts = self._part_retries + 1
        attempt = 0
        while True:
            attempt += 1
            self._check_cancelled(session, cancel_event, stop, deadline)
            try:
                etag = self.storage.upload_part(
                    bucket=self.bucket,
                    object_key=session.key,
                    upload_id=session.upload_id,
                    part_number=part.part_number,
                    body=ChunkPlan.slice(view, part).tobytes(),
                )
            except Exception as exc:
                if attempt == attempts:
                    MULTIPART_PARTS.labels("failure").inc()
                    logger.error(
                        "multipart_part_failed key=%s upload_id=%s part=%s attempts=%s error=%s",
                        session.key,
                        session.upload_id,
                        part.part_number,
                        attempt,
                        exc,
                        extra={
                            "extra": {
                                "key": session.key,
                                "upload_id": session.upload_id,
                                "part_number": part.part_number,
                                "attempts": attempt,
                                "error": str(exc),
                            }
                        },
                    )
                    raise PartUploadFailure(
                        f"Failed to upload part {part.part_number}: {exc}",
                        key=session.key,
                        upload_id=session.upload_id,
                        part_number=part.part_number,
                    ) from exc
                MULTIPART_PARTS.labels("retry").inc()
                backoff = self._retry_backoff * 2 ** (attempt - 1)
                logger.warning(
                    "multipart_part_retry key=%s upload_id=%s part=%s attempt=%s backoff=%.2f error=%s",
                    session.key,
                    session.upload_id,
                    part.part_number,
                    attempt,
                    backoff,
                    exc,
                )
                if stop.wait(backoff):
                    self._check_cancelled(session, cancel_event, stop, deadline)
                continue

            MULTIPART_PARTS.labels("success").inc()
            logger.debug(
                "multipart_part_uploaded key=%s upload_id=%s part=%s size=%s",
                session.key,
                session.upload_id,
                part.part_number,
                part.size,
            )
            return PartResult(part_number=part.part_number, etag=etag, size=part.size)

    def _check_cancelled(
        self,
        session: UploadSession,
        cancel_event: threading.Event | None,
        stop: threading.Event | None,
        deadline: float | None,
    ) -> None:
        if cancel_event is not None and cancel_event.is_set():
            raise UploadCancelled(
                "Upload cancelled by caller",
                key=session.key,
                upload_id=session.upload_id,
            )
        if deadline is not None and self._clock() >= deadline:
            raise UploadCancelled(
                "Upload deadline passed",
                key=session.key,
                upload_id=session.upload_id,
            )
        if stop is not None and stop.is_set():
            raise UploadCancelled(
                "Upload stopped after another part failed",
                key=session.key,
                upload_id=session.upload_id,
            )

    def _remaining(self, deadline: float | None) -> float | None:
        if deadline is None:
            return None
        return max(0.0, deadline - self._clock())

    def _fail(
        self, session: UploadSession, error: MultipartUploadError
    ) -> UploadOutcome:
        session.transition(UploadState.FAILED)
        logger.warning(
            "multipart_failed key=%s upload_id=%s error_code=%s error=%s",
            session.key,
            session.upload_id,
            error.error_code,
            error,
            extra={
                "extra": {
                    "key": session.key,
                    "upload_id": session.upload_id,
                    "error_code": error.error_code,
                    "recorded_parts": [p.part_number for p in session.parts],
                    "error": str(error),
                }
            },
        )
        abort_error = self._abort(session)
        session.transition(UploadState.ABORTED)
        return UploadOutcome(
            key=session.key,
            upload_id=session.upload_id,
            state=session.state,
            parts=session.parts,
            error=error,
            abort_error=abort_error,
        )

    def _abort_interrupted(self, session: UploadSession) -> None:
        # KeyboardInterrupt or SystemExit: abort once, the caller re-raises.
        logger.warning(
            "multipart_interrupted key=%s upload_id=%s",
            session.key,
            session.upload_id,
            extra={"extra": {"key": session.key, "upload_id": session.upload_id}},
        )
        session.transition(UploadState.FAILED)
        self._abort(session)
        session.transition(UploadState.ABORTED)

    def _abort(self, session: UploadSession) -> AbortFailure | None:
        try:
            self.storage.abort_multipart_upload(
                bucket=self.bucket,
                object_key=session.key,
                upload_id=session.upload_id,
            )
        except Exception as exc:
            logger.error(
                "multipart_abort_failed key=%s upload_id=%s error=%s",
                session.key,
                session.upload_id,
                exc,
                extra={
                    "extra": {
                        "key": session.key,
                        "upload_id": session.upload_id,
                        "error": str(exc),
                    }
                },
            )
            abort_error = AbortFailure(
                f"Failed to abort upload {session.upload_id}: {exc}",
                key=session.key,
                upload_id=session.upload_id,
            )
            abort_error.__cause__ = exc
            return abort_error

        logger.info(
            "multipart_aborted key=%s upload_id=%s",
            session.key,
            session.upload_id,
            extra={"extra": {"key": session.key, "upload_id": session.upload_id}},
        )
        return None
