from __future__ import annotations

import logging
from typing import Protocol

from sigillum.app.events.models import (
    CertificationEvent,
    CertificationEventType,
)


class CertificationEventEmitter(Protocol):
    """
    Interface for broadcasting pipeline observations.

    Implementations must be fail-safe: an emission failure must never
    fail or roll back a registration.
    """

    def emit(self, event: CertificationEvent) -> None:
        ...


class NullEventEmitter:
    """A safe no-op emitter."""

    def emit(self, event: CertificationEvent) -> None:
        return


_WARNING_EVENTS = {
    CertificationEventType.STAMP_SAFE_MODE_APPLIED,
    CertificationEventType.TEMP_CLEANUP_FAILED,
    CertificationEventType.FAILED,
}


class LoggingEventEmitter:
    """Writes every event to the ``sigillum.events`` logger."""

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self._logger = logger or logging.getLogger("sigillum.events")

    def emit(self, event: CertificationEvent) -> None:
        if event.event_type == CertificationEventType.INTEGRITY_ALARM:
            level = logging.ERROR
        elif event.event_type in _WARNING_EVENTS:
            level = logging.WARNING
        else:
            level = logging.INFO

        try:
            self._logger.log(
                level,
                event.event_type.value,
                extra={
                    "doc_code": event.doc_code,
                    "event_id": str(event.event_id),
                    "details": event.details or {},
                },
            )
        except Exception:
            # Observability must never break the pipeline
            return
