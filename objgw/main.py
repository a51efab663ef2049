import logging
from urllib.parse import urlsplit

import uvicorn
from fastapi import Depends, FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from objgw.api.v1.deps import get_storage_client, require_api_key
from objgw.api.v1.routers.buckets import router as buckets_router
from objgw.api.v1.routers.multipart import router as multipart_router
from objgw.api.v1.routers.objects import router as objects_router
from objgw.common.config import Settings, get_settings
from objgw.common.logging import setup_logging
from objgw.infra.observability.metrics import metrics_app
from objgw.infra.observability.middleware import MetricsMiddleware
from objgw.infra.storage.client import StorageClient, StorageError

ERROR_CODE_BY_STATUS = {
    400: "bad_request",
    401: "unauthorized",
    403: "forbidden",
    404: "not_found",
    405: "method_not_allowed",
    409: "conflict",
    413: "payload_too_large",
    415: "unsupported_media_type",
    429: "too_many_requests",
    500: "internal_error",
    502: "bad_gateway",
    503: "service_unavailable",
    504: "gateway_timeout",
}


def _normalize_detail(detail):
    if isinstance(detail, dict):
        maybe_code = detail.get("error_code")
        cleaned = {k: v for k, v in detail.items() if k != "error_code"}
        if len(cleaned) == 1 and "message" in cleaned:
            cleaned = cleaned["message"]
        if not cleaned:
            cleaned = None
        return cleaned, maybe_code if isinstance(maybe_code, str) else None
    return detail, None


def _resolve_error_code(status_code: int, override: str | None = None) -> str:
    if override:
        return override
    if status_code == 422:
        return "validation_error"
    return ERROR_CODE_BY_STATUS.get(status_code, "unknown_error")


def _describe_storage_target(settings: Settings) -> str:
    endpoint = settings.S3_ENDPOINT_URL or "aws"
    if settings.S3_ENDPOINT_URL:
        parts = urlsplit(settings.S3_ENDPOINT_URL)
        endpoint = f"{parts.scheme}://{parts.netloc}" if parts.netloc else endpoint
    bucket = settings.S3_BUCKET or "?"
    return f"s3://{bucket} via {endpoint} ({settings.S3_REGION})"


def _format_storage_context(settings: Settings) -> str:
    pairs = {
        "storage_target": _describe_storage_target(settings),
        "addressing_style": settings.S3_ADDRESSING_STYLE,
        "part_size_bytes": settings.STORAGE_PART_SIZE_BYTES,
        "max_concurrency": settings.MULTIPART_MAX_CONCURRENCY,
        "part_retries": settings.MULTIPART_PART_RETRIES,
    }
    return ", ".join(f"{key}={value}" for key, value in pairs.items())


def _problem_response(request: Request, status_code: int, detail, code: str, title: str):
    return JSONResponse(
        status_code=status_code,
        media_type="application/problem+json",
        content={
            "type": "about:blank",
            "title": title,
            "status": status_code,
            "detail": detail,
            "error_code": code,
            "instance": str(request.url),
            "request_id": request.headers.get("X-Request-Id"),
        },
    )


def create_app() -> FastAPI:
    settings = get_settings()
    setup_logging()
    app = FastAPI(
        title="Object Storage Gateway",
        version="v1.0",
        description="Bucket and object operations over an S3-compatible backend",
    )

    # Optional CORS
    if settings.CORS_ENABLED:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.CORS_ORIGINS or ["*"],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    # Routers
    app.include_router(
        buckets_router,
        prefix="/api/v1",
        tags=["buckets"],
        dependencies=[Depends(require_api_key)],
    )
    app.include_router(
        objects_router,
        prefix="/api/v1",
        tags=["objects"],
        dependencies=[Depends(require_api_key)],
    )
    app.include_router(
        multipart_router,
        prefix="/api/v1",
        tags=["multipart"],
        dependencies=[Depends(require_api_key)],
    )

    # Metrics
    if settings.ENABLE_METRICS:
        app.add_middleware(MetricsMiddleware)
        app.mount("/metrics", metrics_app)

    @app.on_event("startup")
    def on_startup() -> None:
        startup_logger = logging.getLogger("objgw.startup")
        startup_logger.info(
            "Gateway starting. [event=startup] (%s)", _format_storage_context(settings)
        )
        if not settings.S3_BUCKET:
            startup_logger.warning(
                "S3_BUCKET is not set; object endpoints will answer 503."
                " [event=storage_not_configured]"
            )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        logger = logging.getLogger("http")
        normalized_detail, code_override = _normalize_detail(exc.detail)
        logger.log(
            logging.WARNING if exc.status_code < 500 else logging.ERROR,
            "http_exception status=%s detail=%s method=%s path=%s request_id=%s",
            exc.status_code,
            normalized_detail,
            request.method,
            request.url.path,
            request.headers.get("X-Request-Id"),
            extra={
                "extra": {
                    "status": exc.status_code,
                    "detail": normalized_detail,
                    "method": request.method,
                    "route": request.url.path,
                    "request_id": request.headers.get("X-Request-Id"),
                }
            },
        )
        return _problem_response(
            request,
            exc.status_code,
            normalized_detail,
            _resolve_error_code(exc.status_code, code_override),
            "HTTP Error",
        )

    @app.exception_handler(StorageError)
    async def storage_exception_handler(request: Request, exc: StorageError):
        logging.getLogger("http").error(
            "storage_error method=%s path=%s error=%s",
            request.method,
            request.url.path,
            exc,
        )
        return _problem_response(request, 502, str(exc), "storage_error", "Storage Error")

    @app.exception_handler(RequestValidationError)
    async def request_validation_exception_handler(
        request: Request, exc: RequestValidationError
    ):
        return _problem_response(
            request,
            422,
            jsonable_encoder(exc.errors()),
            _resolve_error_code(422),
            "Validation Error",
        )

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    @app.get("/ready")
    def ready(storage: StorageClient = Depends(get_storage_client)):
        # An unconfigured backend already fails the dependency with 503.
        try:
            storage.head_bucket(bucket=settings.S3_BUCKET or "")
        except StorageError as exc:
            return {"status": "not_ready", "detail": {"storage": str(exc)}}
        return {"status": "ready"}

    return app


app = create_app()

if __name__ == "__main__":
    uvicorn.run("objgw.main:app", host="0.0.0.0", port=8000, reload=True)
