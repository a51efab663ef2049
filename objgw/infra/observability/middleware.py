import json
import logging
import re
import time
import uuid
from typing import Any

from fastapi import Request
from starlette.concurrency import iterate_in_threadpool
from starlette.middleware.base import BaseHTTPMiddleware

from objgw.common.config import get_settings
from objgw.infra.observability.metrics import LATENCY, REQUESTS

TRACE_BODY_LIMIT = 2048
# Object payloads are opaque bytes; only these bodies are worth tracing.
TRACEABLE_CONTENT_TYPES = ("application/json", "application/problem+json", "text/")


class MetricsMiddleware(BaseHTTPMiddleware):
    SENSITIVE_KEYS = {
        "password",
        "secret",
        "token",
        "api_key",
        "x-api-key",
        "authorization",
        "aws_access_key_id",
        "aws_secret_access_key",
        "x-amz-signature",
        "x-amz-credential",
    }
    SENSITIVE_PATTERNS = (
        r"(?i)(token|secret|api_key|x-api-key|password|authorization)\s*[:=]\s*[^\s]+",
        r"(?i)(x-amz-signature|x-amz-credential|x-amz-security-token)=[^&\s\"]+",
    )

    def _mask_mapping(self, obj: Any) -> Any:
        if isinstance(obj, dict):
            masked: dict[str, Any] = {}
            for k, v in obj.items():
                if isinstance(k, str) and k.lower() in self.SENSITIVE_KEYS:
                    masked[k] = "***"
                else:
                    masked[k] = self._mask_mapping(v)
            return masked
        if isinstance(obj, list):
            return [self._mask_mapping(x) for x in obj]
        if isinstance(obj, str):
            return self._mask_text(obj)
        return obj

    def _mask_text(self, text: str) -> str:
        # Presigned URLs carry their signature in the query string.
        masked = text
        for pattern in self.SENSITIVE_PATTERNS:
            masked = re.sub(
                pattern,
                lambda m: re.split(r"[:=]", m.group(0), maxsplit=1)[0] + "=***",
                masked,
            )
        return masked

    def _render_body(self, raw: bytes, content_type: str | None) -> str | None:
        if not raw:
            return None
        if not content_type or not content_type.startswith(TRACEABLE_CONTENT_TYPES):
            return f"<{len(raw)} bytes {content_type or 'unknown'}>"
        decoded = raw.decode("utf-8", errors="replace")
        try:
            parsed = json.loads(decoded)
        except ValueError:
            rendered = self._mask_text(decoded)
        else:
            rendered = json.dumps(self._mask_mapping(parsed), ensure_ascii=False)
        if len(rendered) > TRACE_BODY_LIMIT:
            rendered = rendered[:TRACE_BODY_LIMIT] + "...<truncated>"
        return rendered

    @staticmethod
    def _client_ip(request: Request) -> str | None:
        forwarded = request.headers.get("X-Forwarded-For")
        if forwarded:
            return forwarded.split(",")[0].strip()
        if request.client:
            return request.client.host
        return None

    async def dispatch(self, request: Request, call_next):
        start = time.perf_counter()
        request_id = request.headers.get("X-Request-Id") or str(uuid.uuid4())
        client_ip = self._client_ip(request)
        logger = logging.getLogger("http")

        trace_http = get_settings().TRACE_HTTP
        request_body: str | None = None
        if trace_http:
            raw_body = await request.body()
            request_body = self._render_body(
                raw_body, request.headers.get("Content-Type")
            )

            async def receive():
                return {"type": "http.request", "body": raw_body, "more_body": False}

            request._receive = receive

        try:
            response = await call_next(request)
        except Exception as exc:
            elapsed = time.perf_counter() - start
            logger.exception(
                "request_error method=%s route=%s status=%s duration_ms=%.3f "
                "request_id=%s client_ip=%s",
                request.method,
                request.url.path,
                500,
                round(elapsed * 1000, 3),
                request_id,
                client_ip or "-",
                extra={
                    "extra": {
                        "method": request.method,
                        "route": request.url.path,
                        "status": 500,
                        "duration_ms": round(elapsed * 1000, 3),
                        "request_id": request_id,
                        "client_ip": client_ip,
                        "exception": repr(exc),
                    }
                },
            )
            raise

        elapsed = time.perf_counter() - start
        status_code = response.status_code

        route_template = request.scope.get("route", None)
        if route_template and hasattr(route_template, "path"):
            route = route_template.path
        else:
            route = request.url.path

        REQUESTS.labels(request.method, route, str(status_code)).inc()
        LATENCY.labels(request.method, route).observe(elapsed)

        if "X-Request-Id" not in response.headers:
            response.headers["X-Request-Id"] = request_id

        level = logging.INFO
        if status_code >= 500:
            level = logging.ERROR
        elif status_code >= 400:
            level = logging.WARNING

        response_body: str | None = None
        if trace_http:
            body_bytes = b""
            async for chunk in response.body_iterator:
                body_bytes += chunk
            response.body_iterator = iterate_in_threadpool(iter([body_bytes]))
            response_body = self._render_body(
                body_bytes, response.headers.get("Content-Type")
            )

        duration_ms = round(elapsed * 1000, 3)
        extra_payload = {
            "method": request.method,
            "route": route,
            "query": self._mask_text(request.url.query),
            "status": status_code,
            "duration_ms": duration_ms,
            "request_id": request_id,
            "client_ip": client_ip,
            "content_length": request.headers.get("Content-Length"),
            "user_agent": request.headers.get("User-Agent"),
        }
        if trace_http:
            extra_payload["request_body"] = request_body
            extra_payload["response_body"] = response_body

        logger.log(
            level,
            "request method=%s route=%s status=%s duration_ms=%.3f "
            "request_id=%s client_ip=%s content_length=%s",
            request.method,
            route,
            status_code,
            duration_ms,
            request_id,
            client_ip or "-",
            request.headers.get("Content-Length") or "-",
            extra={"extra": extra_payload},
        )
        return response
