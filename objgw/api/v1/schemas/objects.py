"""Pydantic schemas for object, tagging and presigned URL endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class ObjectStoredOut(BaseModel):
    key: str
    etag: str | None = None
    size_bytes: int
    encrypted: bool = False
    message: str


class ObjectListOut(BaseModel):
    prefix: str | None = None
    keys: list[str]


class ObjectVersionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    object_key: str
    version_id: str | None = None
    is_latest: bool
    size_bytes: int
    etag: str | None = None
    last_modified: datetime | None = None


class ObjectVersionsOut(BaseModel):
    key: str
    versions: list[ObjectVersionOut]


class ObjectTagIn(BaseModel):
    """Request body for attaching a tag to an object."""

    key: str = Field(min_length=1, max_length=128)
    value: str = Field(default="", max_length=256)


class PresignedUrlOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    key: str
    url: str
    method: str
    expires_in: int
