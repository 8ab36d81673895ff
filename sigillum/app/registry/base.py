"""
Document registry interface.

Both backends honour the same contract:

- ``create`` fails with DuplicateCode when the doc_code exists; the
  store's unique constraint is authoritative, not an in-process lock.
- ``get_by_code`` is an exact match.
- ``list`` is newest ``uploaded_at`` first and fully materialized.
- ``revoke`` returns True only if a row moved from active to revoked.
- Records are never deleted.
"""

from __future__ import annotations

from typing import List, Optional, Protocol, runtime_checkable

from sigillum.app.schemas.document import DocumentRecord, NewDocumentRecord


@runtime_checkable
class DocumentRegistry(Protocol):

    def create(self, new: NewDocumentRecord) -> DocumentRecord:
        ...

    def get_by_code(self, doc_code: str) -> Optional[DocumentRecord]:
        ...

    def list(self) -> List[DocumentRecord]:
        ...

    def revoke(self, doc_code: str) -> bool:
        ...

    def close(self) -> None:
        ...
