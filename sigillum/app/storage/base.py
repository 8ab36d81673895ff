"""
Blob storage interfaces.

The coordinator depends only on these protocols. Keys are relative,
slash-separated paths such as ``documents/ABCDEF2G3H4J.pdf``; an
absolute filesystem path is never exposed through this boundary.

Stored objects are immutable: ``save`` only ever creates, and raises
Conflict when the key is already taken, so two writers racing on one
key cannot replace each other's bytes.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable


PERMANENT_PREFIX = "documents"
TEMP_UPLOAD_PREFIX = "uploads/temp"

DEFAULT_UPLOAD_URL_TTL = 300
DEFAULT_DOWNLOAD_URL_TTL = 60


def permanent_key(doc_code: str) -> str:
    return f"{PERMANENT_PREFIX}/{doc_code}.pdf"


def temp_upload_key(doc_code: str) -> str:
    return f"{TEMP_UPLOAD_PREFIX}/{doc_code}.pdf"


@runtime_checkable
class StorageService(Protocol):
    """Minimal capability set shared by every backend."""

    def save(self, data: bytes, key: str) -> str:
        """
        Create ``key`` holding ``data`` and return ``key``.

        Raises Conflict if an object already exists at ``key``.
        """
        ...

    def read(self, key: str) -> bytes:
        """Return the bytes at ``key``; raise NotFound if absent."""
        ...

    def exists(self, key: str) -> bool:
        """Never raises on absence."""
        ...


@runtime_checkable
class PresignedStorageService(StorageService, Protocol):
    """
    Object store capabilities used by the two-phase upload path and by
    redirect-based resolution.
    """

    def signed_upload_url(
        self,
        key: str,
        ttl: int = DEFAULT_UPLOAD_URL_TTL,
    ) -> str:
        ...

    def signed_download_url(
        self,
        key: str,
        ttl: int = DEFAULT_DOWNLOAD_URL_TTL,
    ) -> str:
        ...

    def delete(self, key: str) -> None:
        ...
