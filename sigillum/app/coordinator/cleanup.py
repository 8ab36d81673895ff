"""
Best-effort cleanup of temporary uploads.

Runs only after a registration has completed. The permanent file and
record are already authoritative at that point, so a failed deletion is
reported on its own channel (log + callback) and never raised.
"""

from __future__ import annotations

import logging
from typing import Callable, Dict, Optional

from sigillum.app.storage import PresignedStorageService, StorageService

logger = logging.getLogger(__name__)


def delete_temp_upload(
    storage: StorageService,
    temp_key: str,
    on_failure: Optional[Callable[[Dict[str, str]], None]] = None,
) -> bool:
    """
    Delete ``temp_key`` if the backend supports deletion.

    Returns:
        True if the object was deleted, False otherwise.
    """
    if not isinstance(storage, PresignedStorageService):
        return False

    try:
        storage.delete(temp_key)
    except Exception as exc:
        details = {"key": temp_key, "error": type(exc).__name__}
        logger.warning("temp_upload_cleanup_failed", extra=details)
        if on_failure is not None:
            try:
                on_failure(details)
            except Exception:
                logger.debug("temp_cleanup_callback_failed", exc_info=True)
        return False

    logger.debug("temp_upload_deleted", extra={"key": temp_key})
    return True
