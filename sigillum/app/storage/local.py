"""
Local filesystem storage backend.

All keys resolve beneath a single root directory. Absolute keys and
``..`` traversal are rejected before touching the filesystem.
"""

from __future__ import annotations

import logging
import os
import uuid
from pathlib import Path, PurePosixPath

from sigillum.app.errors import Conflict, NotFound, ValidationError

logger = logging.getLogger(__name__)


class LocalStorageService:
    """Filesystem implementation of ``StorageService``."""

    def __init__(self, root: Path) -> None:
        self._root = Path(root).expanduser().resolve()

    @property
    def root(self) -> Path:
        return self._root

    def _resolve(self, key: str) -> Path:
        relative = PurePosixPath(key)
        if (
            not key
            or relative.is_absolute()
            or ".." in relative.parts
            or "\\" in key
        ):
            raise ValidationError(f"Invalid storage key: {key!r}")

        path = self._root.joinpath(*relative.parts)
        if self._root not in path.parents:
            raise ValidationError(f"Invalid storage key: {key!r}")
        return path

    def save(self, data: bytes, key: str) -> str:
        path = self._resolve(key)
        path.parent.mkdir(parents=True, exist_ok=True)

        # Readers never observe a partially written file, and link() refuses
        # to replace an existing one.
        tmp_path = path.with_name(f".{path.name}.{uuid.uuid4().hex}.partial")
        tmp_path.write_bytes(data)
        try:
            os.link(tmp_path, path)
        except FileExistsError as exc:
            raise Conflict(f"Storage key '{key}' is already taken.") from exc
        finally:
            tmp_path.unlink(missing_ok=True)

        logger.debug("local_storage_saved", extra={"key": key, "size": len(data)})
        return key

    def read(self, key: str) -> bytes:
        path = self._resolve(key)
        try:
            return path.read_bytes()
        except FileNotFoundError as exc:
            raise NotFound(f"No stored object for key '{key}'.") from exc

    def exists(self, key: str) -> bool:
        try:
            return self._resolve(key).is_file()
        except ValidationError:
            return False
