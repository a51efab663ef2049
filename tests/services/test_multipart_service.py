"""Tests for the multipart upload orchestrator."""

from __future__ import annotations

import threading

import pytest
from prometheus_client import REGISTRY

from objgw.common.config import MIB, MIN_PART_SIZE_BYTES, Settings
from objgw.infra.storage.client import StorageError
from objgw.services.base import (
    InvalidObjectOperationError,
    PayloadTooLargeError,
    StorageBackendNotConfiguredError,
)
from objgw.services.chunk_planner import plan_chunks
from objgw.services.multipart_service import (
    AbortFailure,
    CompletionFailure,
    InitiationFailure,
    InvalidSessionTransition,
    MultipartUploadService,
    PartResult,
    PartUploadFailure,
    UploadCancelled,
    UploadSession,
    UploadState,
)
from tests.services.mock_storage import MockStorageClient

BUCKET = "test-bucket"
PART = MIN_PART_SIZE_BYTES


def _payload(size: int) -> bytes:
    block = bytes(range(256))
    return (block * (size // len(block) + 1))[:size]


@pytest.fixture
def storage() -> MockStorageClient:
    return MockStorageClient()


@pytest.fixture
def service(storage: MockStorageClient) -> MultipartUploadService:
    return MultipartUploadService(storage, bucket=BUCKET, part_size=PART)


def _sample(name: str, labels: dict[str, str]) -> float:
    return REGISTRY.get_sample_value(name, labels) or 0.0


class TestSuccessfulUploads:
    def test_two_full_parts(self, service, storage):
        payload = _payload(2 * PART)

        outcome = service.upload("data/two.bin", payload)

        assert outcome.ok
        assert outcome.state is UploadState.COMPLETED
        assert [p.part_number for p in outcome.parts] == [1, 2]
        assert [p.size for p in outcome.parts] == [PART, PART]
        assert storage.part_calls == [1, 2]
        assert storage.completions == [outcome.upload_id]
        assert storage.aborts == []

    def test_payload_below_part_size_is_single_part(self, service, storage):
        outcome = service.upload("data/small.bin", _payload(PART - 1))

        assert outcome.ok
        assert [p.part_number for p in outcome.parts] == [1]
        assert outcome.size_bytes == PART - 1
        assert storage.part_calls == [1]

    def test_trailing_byte_gets_its_own_part(self, service, storage):
        outcome = service.upload("data/odd.bin", _payload(PART + 1))

        assert outcome.ok
        assert [p.size for p in outcome.parts] == [PART, 1]

    def test_round_trip_returns_identical_bytes(self, service, storage):
        payload = _payload(2 * PART + 12345)

        outcome = service.upload("data/round-trip.bin", payload, content_type="application/x-test")

        assert outcome.ok
        assert storage.get_object(bucket=BUCKET, object_key="data/round-trip.bin") == payload
        head = storage.head_object(bucket=BUCKET, object_key="data/round-trip.bin")
        assert head.size_bytes == len(payload)
        assert head.content_type == "application/x-test"

    def test_accepts_bytearray_and_memoryview(self, service, storage):
        payload = _payload(PART + 10)

        assert service.upload("a.bin", bytearray(payload)).ok
        assert service.upload("b.bin", memoryview(payload)).ok
        assert storage.get_object(bucket=BUCKET, object_key="b.bin") == payload

    def test_completed_upload_counts_in_metrics(self, service):
        before = _sample("multipart_uploads_total", {"outcome": "completed"})

        service.upload("data/metric.bin", _payload(10))

        after = _sample("multipart_uploads_total", {"outcome": "completed"})
        assert after == before + 1


class TestZeroLengthPayload:
    def test_empty_payload_stored_without_multipart(self, service, storage):
        outcome = service.upload("data/empty.bin", b"")

        assert outcome.ok
        assert outcome.state is UploadState.COMPLETED
        assert outcome.upload_id is None
        assert outcome.parts == ()
        assert storage.uploads == {}
        assert storage.get_object(bucket=BUCKET, object_key="data/empty.bin") == b""

    def test_empty_payload_keeps_metadata(self, service, storage):
        outcome = service.upload(
            "data/empty.bin", b"", content_type="text/plain", metadata={"owner": "qa"}
        )

        assert outcome.ok
        stored = storage.objects[f"{BUCKET}/data/empty.bin"]
        assert stored["metadata"] == {"owner": "qa"}
        assert stored["content_type"] == "text/plain"

    def test_empty_payload_backend_failure(self, service, storage):
        storage.fail_put = True

        outcome = service.upload("data/empty.bin", b"")

        assert not outcome.ok
        assert isinstance(outcome.error, InitiationFailure)
        assert outcome.state is None


class TestRejectedBeforeBackend:
    @pytest.mark.parametrize("key", ["", "   "])
    def test_empty_key(self, service, storage, key):
        with pytest.raises(InvalidObjectOperationError, match="object key must not be empty"):
            service.upload(key, b"data")

        assert storage.uploads == {}
        assert storage.objects == {}

    def test_empty_key_is_value_error(self, service):
        with pytest.raises(ValueError):
            service.upload("", b"data")

    def test_payload_over_limit(self, storage):
        service = MultipartUploadService(
            storage, bucket=BUCKET, part_size=PART, max_upload_bytes=PART
        )

        with pytest.raises(PayloadTooLargeError):
            service.upload("big.bin", _payload(PART + 1))

        assert storage.uploads == {}

    def test_missing_bucket(self, storage):
        with pytest.raises(StorageBackendNotConfiguredError):
            MultipartUploadService(storage, bucket="")

    @pytest.mark.parametrize(
        "kwargs, message",
        [
            ({"part_size": PART - 1}, "part_size must be at least"),
            ({"max_concurrency": 0}, "max_concurrency must be at least 1"),
            ({"part_retries": -1}, "part_retries must not be negative"),
        ],
    )
    def test_invalid_configuration(self, storage, kwargs, message):
        with pytest.raises(ValueError, match=message):
            MultipartUploadService(storage, bucket=BUCKET, **kwargs)


class TestFailures:
    def test_initiation_failure_needs_no_abort(self, service, storage):
        storage.fail_initiate = True

        outcome = service.upload("data/x.bin", _payload(PART))

        assert not outcome.ok
        assert isinstance(outcome.error, InitiationFailure)
        assert outcome.error.error_code == "initiation_failed"
        assert isinstance(outcome.error.__cause__, StorageError)
        assert outcome.state is None
        assert outcome.upload_id is None
        assert storage.part_calls == []
        assert storage.aborts == []

    def test_failed_middle_part_aborts_and_skips_rest(self, service, storage):
        storage.fail_parts = {2: 99}

        outcome = service.upload("data/x.bin", _payload(3 * PART))

        assert not outcome.ok
        assert isinstance(outcome.error, PartUploadFailure)
        assert outcome.error.part_number == 2
        assert outcome.error.upload_id == outcome.upload_id
        assert isinstance(outcome.error.__cause__, StorageError)
        assert outcome.state is UploadState.ABORTED
        assert [p.part_number for p in outcome.parts] == [1]
        assert storage.part_calls == [1, 2]
        assert storage.aborts == [outcome.upload_id]
        assert storage.completions == []
        assert storage.list_multipart_uploads(bucket=BUCKET) == []

    def test_completion_failure_aborts(self, service, storage):
        storage.fail_complete = True

        outcome = service.upload("data/x.bin", _payload(2 * PART))

        assert isinstance(outcome.error, CompletionFailure)
        assert outcome.error.error_code == "completion_failed"
        assert outcome.state is UploadState.ABORTED
        assert storage.completions == [outcome.upload_id]
        assert storage.aborts == [outcome.upload_id]
        assert outcome.abort_error is None

    def test_abort_failure_does_not_mask_original_error(self, service, storage):
        storage.fail_complete = True
        storage.fail_abort = True

        outcome = service.upload("data/x.bin", _payload(PART))

        assert isinstance(outcome.error, CompletionFailure)
        assert isinstance(outcome.abort_error, AbortFailure)
        assert outcome.abort_error.error_code == "abort_failed"
        assert isinstance(outcome.abort_error.__cause__, StorageError)
        assert outcome.state is UploadState.ABORTED

    def test_part_failure_with_abort_failure(self, service, storage):
        storage.fail_parts = {1: 99}
        storage.fail_abort = True

        outcome = service.upload("data/x.bin", _payload(PART))

        assert isinstance(outcome.error, PartUploadFailure)
        assert isinstance(outcome.abort_error, AbortFailure)

    def test_unexpected_exception_is_reported_as_part_failure(self, service, storage):
        def explode(part_number: int) -> None:
            raise KeyError("boom")

        storage.on_upload_part = explode

        outcome = service.upload("data/x.bin", _payload(PART))

        assert isinstance(outcome.error, PartUploadFailure)
        assert storage.aborts == [outcome.upload_id]

    def test_interrupt_during_part_upload_still_aborts(self, service, storage):
        def interrupt(part_number: int) -> None:
            raise KeyboardInterrupt

        storage.on_upload_part = interrupt

        with pytest.raises(KeyboardInterrupt):
            service.upload("data/x.bin", _payload(2 * PART))

        assert list(storage.uploads) == storage.aborts
        assert len(storage.aborts) == 1
        assert storage.completions == []

    def test_interrupt_during_completion_still_aborts(self):
        class InterruptingStorage(MockStorageClient):
            def complete_multipart_upload(self, **kwargs):
                self.completions.append(kwargs["upload_id"])
                raise KeyboardInterrupt

        storage = InterruptingStorage()
        service = MultipartUploadService(storage, bucket=BUCKET, part_size=PART)

        with pytest.raises(KeyboardInterrupt):
            service.upload("data/x.bin", _payload(10))

        assert storage.aborts == storage.completions
        assert len(storage.aborts) == 1
        assert storage.list_multipart_uploads(bucket=BUCKET) == []

    def test_raise_for_error(self, service, storage):
        storage.fail_complete = True

        outcome = service.upload("data/x.bin", _payload(PART))

        with pytest.raises(CompletionFailure):
            outcome.raise_for_error()

    def test_aborted_upload_counts_in_metrics(self, service, storage):
        storage.fail_parts = {1: 99}
        before = _sample("multipart_uploads_total", {"outcome": "aborted"})

        service.upload("data/x.bin", _payload(PART))

        assert _sample("multipart_uploads_total", {"outcome": "aborted"}) == before + 1


class TestRetries:
    def test_transient_failure_is_retried(self, storage):
        storage.fail_parts = {1: 1}
        service = MultipartUploadService(
            storage, bucket=BUCKET, part_size=PART, part_retries=1, retry_backoff=0
        )

        outcome = service.upload("data/x.bin", _payload(PART + 1))

        assert outcome.ok
        assert storage.part_calls == [1, 1, 2]
        assert storage.aborts == []

    def test_retries_exhausted(self, storage):
        storage.fail_parts = {1: 3}
        service = MultipartUploadService(
            storage, bucket=BUCKET, part_size=PART, part_retries=2, retry_backoff=0
        )

        outcome = service.upload("data/x.bin", _payload(PART))

        assert isinstance(outcome.error, PartUploadFailure)
        assert storage.part_calls == [1, 1, 1]
        assert storage.aborts == [outcome.upload_id]


class TestConcurrentUploads:
    def test_parts_are_in_flight_together(self, storage):
        barrier = threading.Barrier(2, timeout=5)
        storage.on_upload_part = lambda part_number: barrier.wait()
        service = MultipartUploadService(
            storage, bucket=BUCKET, part_size=PART, max_concurrency=2
        )

        outcome = service.upload("data/x.bin", _payload(2 * PART))

        assert outcome.ok
        assert sorted(storage.part_calls) == [1, 2]

    def test_completion_lists_parts_in_order(self, storage):
        service = MultipartUploadService(
            storage, bucket=BUCKET, part_size=PART, max_concurrency=4
        )
        payload = _payload(4 * PART + 7)

        outcome = service.upload("data/x.bin", payload)

        assert outcome.ok
        assert [p.part_number for p in outcome.parts] == [1, 2, 3, 4, 5]
        assert storage.get_object(bucket=BUCKET, object_key="data/x.bin") == payload

    def test_part_failure_aborts_once(self, storage):
        storage.fail_parts = {2: 99}
        service = MultipartUploadService(
            storage, bucket=BUCKET, part_size=PART, max_concurrency=3
        )

        outcome = service.upload("data/x.bin", _payload(3 * PART))

        assert isinstance(outcome.error, PartUploadFailure)
        assert outcome.error.part_number == 2
        assert storage.aborts == [outcome.upload_id]
        assert storage.completions == []

    def test_interrupt_in_worker_aborts_once(self, storage):
        def interrupt(part_number: int) -> None:
            if part_number == 2:
                raise KeyboardInterrupt

        storage.on_upload_part = interrupt
        service = MultipartUploadService(
            storage, bucket=BUCKET, part_size=PART, max_concurrency=3
        )

        with pytest.raises(KeyboardInterrupt):
            service.upload("data/x.bin", _payload(3 * PART))

        assert list(storage.uploads) == storage.aborts
        assert len(storage.aborts) == 1
        assert storage.completions == []


class TestCancellation:
    def test_cancel_before_first_part(self, service, storage):
        cancel = threading.Event()
        cancel.set()

        outcome = service.upload("data/x.bin", _payload(PART), cancel_event=cancel)

        assert isinstance(outcome.error, UploadCancelled)
        assert storage.part_calls == []
        assert storage.aborts == [outcome.upload_id]

    def test_cancel_between_parts(self, service, storage):
        cancel = threading.Event()
        storage.on_upload_part = lambda part_number: cancel.set()

        outcome = service.upload("data/x.bin", _payload(3 * PART), cancel_event=cancel)

        assert isinstance(outcome.error, UploadCancelled)
        assert outcome.error.error_code == "upload_cancelled"
        assert storage.part_calls == [1]
        assert storage.completions == []
        assert storage.aborts == [outcome.upload_id]
        assert outcome.state is UploadState.ABORTED

    def test_deadline_stops_upload(self, storage):
        now = [0.0]

        def advance(part_number: int) -> None:
            now[0] += 10

        storage.on_upload_part = advance
        service = MultipartUploadService(
            storage,
            bucket=BUCKET,
            part_size=PART,
            upload_timeout=5,
            clock=lambda: now[0],
        )

        outcome = service.upload("data/x.bin", _payload(2 * PART))

        assert isinstance(outcome.error, UploadCancelled)
        assert "deadline" in str(outcome.error)
        assert storage.part_calls == [1]
        assert storage.aborts == [outcome.upload_id]


class TestUploadSession:
    def _session(self, length: int = 2 * MIB) -> UploadSession:
        return UploadSession(key="k", upload_id="u1", plan=plan_chunks(length, MIB))

    def test_happy_path_transitions(self):
        session = self._session()
        session.transition(UploadState.UPLOADING)
        session.record(PartResult(part_number=2, etag="e2", size=MIB))
        session.record(PartResult(part_number=1, etag="e1", size=MIB))
        session.transition(UploadState.COMPLETED)

        assert session.state is UploadState.COMPLETED
        assert [p.part_number for p in session.completed_parts()] == [1, 2]

    def test_cannot_complete_with_missing_parts(self):
        session = self._session()
        session.transition(UploadState.UPLOADING)
        session.record(PartResult(part_number=1, etag="e1", size=MIB))

        assert session.missing_parts() == [2]
        with pytest.raises(InvalidSessionTransition, match="missing parts"):
            session.transition(UploadState.COMPLETED)

    def test_cannot_skip_uploading(self):
        session = self._session()

        with pytest.raises(InvalidSessionTransition):
            session.transition(UploadState.COMPLETED)

    def test_terminal_states_are_final(self):
        session = self._session()
        session.transition(UploadState.FAILED)
        session.transition(UploadState.ABORTED)

        with pytest.raises(InvalidSessionTransition):
            session.transition(UploadState.UPLOADING)

    def test_duplicate_part_rejected(self):
        session = self._session()
        session.transition(UploadState.UPLOADING)
        session.record(PartResult(part_number=1, etag="e1", size=MIB))

        with pytest.raises(InvalidSessionTransition, match="already recorded"):
            session.record(PartResult(part_number=1, etag="e1", size=MIB))

    def test_unplanned_part_rejected(self):
        session = self._session()
        session.transition(UploadState.UPLOADING)

        with pytest.raises(InvalidSessionTransition, match="not part of the plan"):
            session.record(PartResult(part_number=3, etag="e3", size=MIB))

    def test_record_requires_uploading_state(self):
        session = self._session()

        with pytest.raises(InvalidSessionTransition):
            session.record(PartResult(part_number=1, etag="e1", size=MIB))


def test_from_settings(storage):
    settings = Settings(
        S3_BUCKET="configured",
        STORAGE_PART_SIZE_BYTES=8 * MIB,
        MULTIPART_MAX_CONCURRENCY=4,
        MULTIPART_PART_RETRIES=2,
    )

    service = MultipartUploadService.from_settings(storage, settings)

    assert service.bucket == "configured"
    assert service.part_size == 8 * MIB
