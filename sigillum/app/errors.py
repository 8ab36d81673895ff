"""
Typed failure taxonomy for the certification pipeline.

Every error carries a stable, machine-checkable ``kind`` and the HTTP
status the API layer maps it to. Messages are safe to return to callers:
they must never contain stack traces or absolute filesystem paths.
"""

from __future__ import annotations


class SigillumError(RuntimeError):
    """Base class for all pipeline failures surfaced to callers."""

    kind: str = "internal_error"
    status_code: int = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


# ------------------------------------------------------------------
# Client errors (never retried automatically)
# ------------------------------------------------------------------

class ValidationError(SigillumError):
    """Bad MIME type, size, or missing field."""

    kind = "validation_error"
    status_code = 400


class UnsupportedMediaType(ValidationError):
    kind = "unsupported_media_type"
    status_code = 415


class PayloadTooLarge(ValidationError):
    kind = "payload_too_large"
    status_code = 413


class InvalidInputDocument(ValidationError):
    """Input bytes could not be parsed as a PDF."""

    kind = "invalid_input_document"
    status_code = 400


class Unauthorized(SigillumError):
    """Missing or wrong admin credential. Raised by the HTTP layer only."""

    kind = "unauthorized"
    status_code = 401


# ------------------------------------------------------------------
# Conflicts (retry with fresh inputs)
# ------------------------------------------------------------------

class Conflict(SigillumError):
    kind = "conflict"
    status_code = 409


class DuplicateCode(Conflict):
    """doc_code already exists in the registry."""

    kind = "duplicate_code"


class AlreadyRevoked(Conflict):
    kind = "already_revoked"


# ------------------------------------------------------------------
# Lookup failures
# ------------------------------------------------------------------

class NotFound(SigillumError):
    kind = "not_found"
    status_code = 404


class NotRegistered(NotFound):
    kind = "not_registered"


class NoStoredHash(SigillumError):
    """Record exists but carries no file_hash (legacy row)."""

    kind = "no_stored_hash"
    status_code = 422


# ------------------------------------------------------------------
# Server-side failures
# ------------------------------------------------------------------

class DataIntegrityError(SigillumError):
    """
    Record exists but its blob does not.

    Indicates registry/storage desync; distinct from NotFound.
    """

    kind = "data_integrity_error"
    status_code = 500


class UpstreamUnavailable(SigillumError):
    """Object store or remote database unreachable. Safe to retry."""

    kind = "upstream_unavailable"
    status_code = 503


class InternalError(SigillumError):
    kind = "internal_error"
    status_code = 500


class StampingFailed(InternalError):
    """QR embedding or PDF serialization failed."""

    kind = "stamping_failed"
