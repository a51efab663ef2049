from __future__ import annotations

from dataclasses import dataclass, field

from objgw.common.config import Settings
from objgw.infra.storage.client import StorageClient

from .multipart_service import MultipartUploadService
from .object_service import ObjectService


@dataclass
class ServiceBundle:
    """Lazily constructs application services sharing the same storage client."""

    storage: StorageClient
    settings: Settings
    _objects: ObjectService | None = field(default=None, init=False, repr=False)
    _multipart: MultipartUploadService | None = field(
        default=None, init=False, repr=False
    )

    def objects(self) -> ObjectService:
        if self._objects is None:
            self._objects = ObjectService.from_settings(self.storage, self.settings)
        return self._objects

    def multipart(self) -> MultipartUploadService:
        if self._multipart is None:
            self._multipart = MultipartUploadService.from_settings(
                self.storage, self.settings
            )
        return self._multipart


def get_service_bundle(storage: StorageClient, settings: Settings) -> ServiceBundle:
    return ServiceBundle(storage=storage, settings=settings)
