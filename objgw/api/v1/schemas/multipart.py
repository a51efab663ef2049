"""Pydantic schemas for the multipart upload endpoint."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict


class UploadedPartOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    part_number: int
    etag: str
    size: int


class MultipartUploadOut(BaseModel):
    key: str
    upload_id: str | None = None
    state: str
    size_bytes: int
    part_size_bytes: int
    parts: list[UploadedPartOut]
    message: str = "Multipart upload complete"
