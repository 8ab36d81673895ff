"""
Storage backends and their factory.

The backend is chosen once at process start from ``Settings.storage_mode``
and injected into the coordinator; callers never branch on the mode.
"""

from sigillum.app.config import Settings
from sigillum.app.storage.base import (
    PresignedStorageService,
    StorageService,
    permanent_key,
    temp_upload_key,
)
from sigillum.app.storage.local import LocalStorageService


def build_storage(settings: Settings) -> StorageService:
    if settings.storage_mode == "r2":
        # boto3 is only imported when the object store is selected.
        from sigillum.app.storage.r2 import R2StorageService

        return R2StorageService.from_settings(settings)

    return LocalStorageService(settings.storage_root)


__all__ = [
    "LocalStorageService",
    "PresignedStorageService",
    "StorageService",
    "build_storage",
    "permanent_key",
    "temp_upload_key",
]
