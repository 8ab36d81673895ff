"""
Document registry records and certification flow payloads.

``DocumentRecord`` is the only persistent entity. Every field except
``revoked`` is immutable once written, and ``revoked`` only ever moves
from False to True.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class NewDocumentRecord(BaseModel):
    """Fields supplied by the caller when registering a document."""

    doc_code: str = Field(..., min_length=1)
    file_path: str = Field(
        ...,
        min_length=1,
        description="Relative storage key of the final (stamped) PDF",
    )
    file_hash: Optional[str] = Field(
        default=None,
        description="Hex digest of the bytes stored at file_path",
    )
    uploaded_at: str = Field(..., description="ISO-8601 registration time")

    model_config = ConfigDict(frozen=True, extra="forbid")


class DocumentRecord(NewDocumentRecord):
    """A registered document as stored in the registry."""

    id: int
    revoked: bool = False

    model_config = ConfigDict(frozen=True, extra="forbid", from_attributes=True)


# ----------------------------------------------------------------------
# Flow payloads
# ----------------------------------------------------------------------

class RegistrationResult(BaseModel):
    doc_code: str
    verify_url: str
    file_path: str
    file_hash: Optional[str]


class UploadTicket(BaseModel):
    """Phase one of the presigned upload path."""

    doc_code: str
    upload_url: str
    temp_key: str


class ResolvedDocument(BaseModel):
    """
    Result of resolving a doc_code.

    Exactly one of ``content`` (local mode) or ``redirect_url`` (object
    store mode) is set. Revoked documents stay resolvable; callers read
    ``record.revoked`` and must surface it.
    """

    record: DocumentRecord
    content: Optional[bytes] = None
    redirect_url: Optional[str] = None


class VerificationResult(BaseModel):
    doc_code: str
    uploaded_hash: str
    stored_hash: str
    match: bool


class RevocationResult(BaseModel):
    doc_code: str
    revoked: bool = True
