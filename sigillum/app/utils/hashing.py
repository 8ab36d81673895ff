"""
Content fingerprinting for certified documents.

This module hashes bytes, and bytes only. It has no knowledge of PDFs,
stamping, or storage.

IMPORTANT DESIGN RULE:
- Callers hash the FINAL bytes, i.e. exactly what is persisted at
  ``file_path`` after QR stamping. Hashing the pre-stamp input is a bug.
- One algorithm per deployment. Stored hashes and verification hashes
  must come from the same algorithm or every verification fails.

Whole-buffer and streaming modes produce identical digests for identical
bytes; streaming exists only to bound memory on large files.
"""

from __future__ import annotations

import hashlib
from typing import BinaryIO, Iterable, Literal, Union

import blake3


HashAlgorithm = Literal["sha256", "blake3"]

DEFAULT_CHUNK_SIZE = 1024 * 1024

_BytesLike = Union[bytes, bytearray, memoryview]


def _new_hasher(algorithm: str):
    if algorithm == "sha256":
        return hashlib.sha256()
    if algorithm == "blake3":
        return blake3.blake3()
    raise ValueError(f"Unsupported hash algorithm '{algorithm}'")


def _require_bytes(data: object, caller: str) -> None:
    if not isinstance(data, (bytes, bytearray, memoryview)):
        raise TypeError(
            f"{caller} expects bytes, got {type(data).__name__}"
        )


class Hasher:
    """
    Deterministic content hasher bound to a single algorithm.

    Both algorithms yield a 256-bit digest rendered as 64 lowercase hex
    characters.
    """

    def __init__(self, algorithm: HashAlgorithm = "sha256") -> None:
        # Fail at construction, not on the first registration.
        _new_hasher(algorithm)
        self.algorithm = algorithm

    def digest(self, data: _BytesLike) -> str:
        """Hash a complete in-memory buffer."""
        _require_bytes(data, "Hasher.digest")
        h = _new_hasher(self.algorithm)
        h.update(data)
        return h.hexdigest()

    def digest_stream(self, chunks: Iterable[_BytesLike]) -> str:
        """Hash an iterable of byte chunks incrementally."""
        h = _new_hasher(self.algorithm)
        for chunk in chunks:
            _require_bytes(chunk, "Hasher.digest_stream")
            h.update(chunk)
        return h.hexdigest()

    def digest_file(
        self,
        fileobj: BinaryIO,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> str:
        """Hash a binary file object from its current position to EOF."""
        return self.digest_stream(
            iter(lambda: fileobj.read(chunk_size), b"")
        )


def iter_chunks(
    data: _BytesLike,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> Iterable[memoryview]:
    """Yield zero-copy views over ``data`` of at most ``chunk_size`` bytes."""
    view = memoryview(data)
    for offset in range(0, len(view), chunk_size):
        yield view[offset:offset + chunk_size]


def compute_file_hash(
    data: _BytesLike,
    algorithm: HashAlgorithm = "sha256",
) -> str:
    """
    Compute the hex fingerprint of a complete file buffer.

    Returns:
        A 64-character lowercase hex digest, without algorithm prefix,
        as stored in ``documents.file_hash``.
    """
    return Hasher(algorithm).digest(data)
