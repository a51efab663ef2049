from __future__ import annotations

import os
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path

ENV_FILE = Path(".env")

MIB = 1024 * 1024
# S3 rejects non-final parts smaller than this.
MIN_PART_SIZE_BYTES = 5 * MIB


def _load_env_file() -> None:
    if not ENV_FILE.exists():
        return
    for raw_line in ENV_FILE.read_text(encoding="utf-8").splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        value = value.strip().strip('"').strip("'")
        if key and key not in os.environ:
            os.environ[key] = value


def _as_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    return value.lower() in {"1", "true", "t", "yes", "y", "on"}


def _as_list(value: str | None) -> list[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


def _as_optional_float(value: str | None) -> float | None:
    if value is None or not value.strip():
        return None
    return float(value)


@dataclass
class Settings:
    S3_ENDPOINT_URL: str | None = None
    S3_REGION: str = "us-east-1"
    S3_ACCESS_KEY_ID: str | None = None
    S3_SECRET_ACCESS_KEY: str | None = None
    S3_BUCKET: str | None = None
    S3_USE_SSL: bool = True
    S3_ADDRESSING_STYLE: str = "path"
    S3_CONNECT_TIMEOUT: float = 10.0
    S3_READ_TIMEOUT: float = 60.0
    S3_MAX_ATTEMPTS: int = 3
    STORAGE_PART_SIZE_BYTES: int = MIN_PART_SIZE_BYTES
    STORAGE_PRESIGN_EXPIRES_SECONDS: int = 600
    STORAGE_MAX_UPLOAD_BYTES: int = 5 * 1024 * MIB
    MULTIPART_MAX_CONCURRENCY: int = 1
    MULTIPART_PART_RETRIES: int = 0
    MULTIPART_RETRY_BACKOFF_SECONDS: float = 0.5
    MULTIPART_UPLOAD_TIMEOUT_SECONDS: float | None = None
    ENABLE_METRICS: bool = True
    API_KEY_ENABLED: bool = False
    API_KEY: str | None = None
    CORS_ENABLED: bool = False
    CORS_ORIGINS: list[str] = field(default_factory=list)
    TRACE_HTTP: bool = False

    def __post_init__(self) -> None:
        if self.STORAGE_PART_SIZE_BYTES < MIN_PART_SIZE_BYTES:
            raise ValueError(
                f"STORAGE_PART_SIZE_BYTES must be at least {MIN_PART_SIZE_BYTES} bytes."
            )
        if self.MULTIPART_MAX_CONCURRENCY < 1:
            raise ValueError("MULTIPART_MAX_CONCURRENCY must be at least 1.")
        if self.MULTIPART_PART_RETRIES < 0:
            raise ValueError("MULTIPART_PART_RETRIES must not be negative.")
        if (
            self.MULTIPART_UPLOAD_TIMEOUT_SECONDS is not None
            and self.MULTIPART_UPLOAD_TIMEOUT_SECONDS <= 0
        ):
            raise ValueError("MULTIPART_UPLOAD_TIMEOUT_SECONDS must be positive.")

    @classmethod
    def from_environment(cls) -> "Settings":
        _load_env_file()
        return cls(
            S3_ENDPOINT_URL=os.environ.get("S3_ENDPOINT_URL") or None,
            S3_REGION=os.environ.get("S3_REGION", cls.S3_REGION),
            S3_ACCESS_KEY_ID=os.environ.get("S3_ACCESS_KEY_ID"),
            S3_SECRET_ACCESS_KEY=os.environ.get("S3_SECRET_ACCESS_KEY"),
            S3_BUCKET=os.environ.get("S3_BUCKET"),
            S3_USE_SSL=_as_bool(os.environ.get("S3_USE_SSL"), cls.S3_USE_SSL),
            S3_ADDRESSING_STYLE=os.environ.get(
                "S3_ADDRESSING_STYLE", cls.S3_ADDRESSING_STYLE
            ),
            S3_CONNECT_TIMEOUT=float(
                os.environ.get("S3_CONNECT_TIMEOUT", cls.S3_CONNECT_TIMEOUT)
            ),
            S3_READ_TIMEOUT=float(
                os.environ.get("S3_READ_TIMEOUT", cls.S3_READ_TIMEOUT)
            ),
            S3_MAX_ATTEMPTS=int(os.environ.get("S3_MAX_ATTEMPTS", cls.S3_MAX_ATTEMPTS)),
            STORAGE_PART_SIZE_BYTES=int(
                os.environ.get("STORAGE_PART_SIZE_BYTES", cls.STORAGE_PART_SIZE_BYTES)
            ),
            STORAGE_PRESIGN_EXPIRES_SECONDS=int(
                os.environ.get(
                    "STORAGE_PRESIGN_EXPIRES_SECONDS",
                    cls.STORAGE_PRESIGN_EXPIRES_SECONDS,
                )
            ),
            STORAGE_MAX_UPLOAD_BYTES=int(
                os.environ.get("STORAGE_MAX_UPLOAD_BYTES", cls.STORAGE_MAX_UPLOAD_BYTES)
            ),
            MULTIPART_MAX_CONCURRENCY=int(
                os.environ.get(
                    "MULTIPART_MAX_CONCURRENCY", cls.MULTIPART_MAX_CONCURRENCY
                )
            ),
            MULTIPART_PART_RETRIES=int(
                os.environ.get("MULTIPART_PART_RETRIES", cls.MULTIPART_PART_RETRIES)
            ),
            MULTIPART_RETRY_BACKOFF_SECONDS=float(
                os.environ.get(
                    "MULTIPART_RETRY_BACKOFF_SECONDS",
                    cls.MULTIPART_RETRY_BACKOFF_SECONDS,
                )
            ),
            MULTIPART_UPLOAD_TIMEOUT_SECONDS=_as_optional_float(
                os.environ.get("MULTIPART_UPLOAD_TIMEOUT_SECONDS")
            ),
            ENABLE_METRICS=_as_bool(
                os.environ.get("ENABLE_METRICS"), cls.ENABLE_METRICS
            ),
            API_KEY_ENABLED=_as_bool(
                os.environ.get("API_KEY_ENABLED"), cls.API_KEY_ENABLED
            ),
            API_KEY=os.environ.get("API_KEY"),
            CORS_ENABLED=_as_bool(os.environ.get("CORS_ENABLED"), cls.CORS_ENABLED),
            CORS_ORIGINS=_as_list(os.environ.get("CORS_ORIGINS")),
            TRACE_HTTP=_as_bool(os.environ.get("TRACE_HTTP"), cls.TRACE_HTTP),
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings.from_environment()
