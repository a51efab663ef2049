from fastapi import HTTPException, status
from starlette.requests import Request

from objgw.infra.storage.client import StorageError
from objgw.services.base import InvalidObjectOperationError, PayloadTooLargeError
from objgw.services.multipart_service import UploadCancelled, UploadOutcome


def storage_http_error(exc: StorageError) -> HTTPException:
    """Backend failures surface as 502: the gateway itself worked."""
    return HTTPException(
        status_code=status.HTTP_502_BAD_GATEWAY,
        detail={"message": str(exc), "error_code": "storage_error"},
    )


def invalid_operation_http_error(exc: InvalidObjectOperationError) -> HTTPException:
    if isinstance(exc, PayloadTooLargeError):
        return HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE, detail=str(exc)
        )
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))


def upload_failure_http_error(outcome: UploadOutcome) -> HTTPException:
    error = outcome.error
    if error is None:
        raise RuntimeError("upload_failure_http_error called for a successful upload")
    detail: dict[str, object] = {
        "message": str(error),
        "error_code": error.error_code,
        "key": outcome.key,
        "upload_id": outcome.upload_id,
        "state": outcome.state.value if outcome.state else None,
    }
    part_number = getattr(error, "part_number", None)
    if part_number is not None:
        detail["part_number"] = part_number
    if outcome.abort_error is not None:
        detail["abort_error"] = str(outcome.abort_error)
    status_code = (
        status.HTTP_504_GATEWAY_TIMEOUT
        if isinstance(error, UploadCancelled)
        else status.HTTP_502_BAD_GATEWAY
    )
    return HTTPException(status_code=status_code, detail=detail)


def ensure_content_length(request: Request, limit: int) -> None:
    """Reject oversized bodies before they are read into memory."""
    raw = request.headers.get("Content-Length")
    if raw is None:
        return
    try:
        length = int(raw)
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid Content-Length header",
        ) from exc
    if length > limit:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"Payload size ({length} bytes) exceeds maximum allowed ({limit} bytes)",
        )
