from __future__ import annotations

from typing import Any, Dict, Optional
from enum import Enum
from datetime import datetime, timezone
from uuid import uuid4, UUID

from pydantic import BaseModel, Field, ConfigDict


# ----------------------------------------------------------------------
# Event Types
# ----------------------------------------------------------------------
class CertificationEventType(str, Enum):
    """
    Observable transitions of the certification pipeline.

    Registration walks strictly through
    received → stamped → hashed → stored → recorded → completed,
    or ends in failed.
    """

    # ------------------------------------------------------------------
    # Registration state machine
    # ------------------------------------------------------------------
    RECEIVED = "received"
    STAMPED = "stamped"
    HASHED = "hashed"
    STORED = "stored"
    RECORDED = "recorded"
    COMPLETED = "completed"
    FAILED = "failed"

    # ------------------------------------------------------------------
    # Side channels (never alter the primary outcome)
    # ------------------------------------------------------------------
    STAMP_SAFE_MODE_APPLIED = "stamp_safe_mode_applied"
    TEMP_CLEANUP_FAILED = "temp_cleanup_failed"
    INTEGRITY_ALARM = "integrity_alarm"
    DOCUMENT_REVOKED = "document_revoked"


# ----------------------------------------------------------------------
# Event Model
# ----------------------------------------------------------------------
class CertificationEvent(BaseModel):
    """
    An immutable observation of a pipeline transition.

    Events are observational only and never authoritative.
    """

    event_id: UUID = Field(default_factory=uuid4)
    doc_code: str = Field(..., description="Document the event belongs to")
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
    event_type: CertificationEventType

    details: Optional[Dict[str, Any]] = None

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
    )
