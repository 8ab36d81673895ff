"""
SQLAlchemy Core implementation shared by the embedded and remote
registry backends.

The ``documents`` table is the only persistent structure. Schema
creation is idempotent, and databases created before revocation existed
are migrated by adding the ``revoked`` column.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Iterator, List, Mapping, Optional

from sqlalchemy import (
    Column,
    Integer,
    MetaData,
    Table,
    Text,
    inspect,
    insert,
    select,
    text,
    update,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import (
    IntegrityError,
    InterfaceError,
    OperationalError,
    SQLAlchemyError,
)

from sigillum.app.errors import (
    DuplicateCode,
    InternalError,
    UpstreamUnavailable,
)
from sigillum.app.schemas.document import DocumentRecord, NewDocumentRecord

logger = logging.getLogger(__name__)


metadata = MetaData()

documents = Table(
    "documents",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("doc_code", Text, nullable=False, unique=True),
    Column("file_path", Text, nullable=False),
    Column("file_hash", Text, nullable=True),
    Column("uploaded_at", Text, nullable=False),
    Column("revoked", Integer, nullable=False, server_default=text("0")),
)


def _format_timestamp(value: datetime) -> str:
    # Pre-existing Postgres tables may declare uploaded_at as TIMESTAMPTZ.
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="milliseconds")


def _to_record(values: Mapping[str, Any]) -> DocumentRecord:
    values = dict(values)
    if isinstance(values.get("uploaded_at"), datetime):
        values["uploaded_at"] = _format_timestamp(values["uploaded_at"])
    return DocumentRecord.model_validate(values)


def _is_unique_violation(exc: IntegrityError) -> bool:
    orig = exc.orig
    # psycopg exposes the SQLSTATE; sqlite3 only the message.
    if getattr(orig, "sqlstate", None) == "23505":
        return True
    return "unique constraint" in str(orig).lower()


class SqlDocumentRegistry:
    """
    Registry over any SQLAlchemy engine.

    Subclasses own engine construction; this class owns the schema and
    the contract.
    """

    backend_name = "sql"

    def __init__(self, engine: Engine) -> None:
        self._engine = engine
        with self._translate_errors("initialize schema"):
            self._ensure_schema()

    @property
    def engine(self) -> Engine:
        return self._engine

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _ensure_schema(self) -> None:
        metadata.create_all(self._engine)

        columns = {
            c["name"] for c in inspect(self._engine).get_columns("documents")
        }
        if "revoked" not in columns:
            logger.info("registry_migrating_revoked_column")
            with self._engine.begin() as conn:
                conn.execute(
                    text(
                        "ALTER TABLE documents "
                        "ADD COLUMN revoked INTEGER NOT NULL DEFAULT 0"
                    )
                )

    @contextmanager
    def _translate_errors(self, operation: str) -> Iterator[None]:
        try:
            yield
        except (OperationalError, InterfaceError) as exc:
            logger.exception(
                "registry_unavailable",
                extra={"backend": self.backend_name, "operation": operation},
            )
            raise UpstreamUnavailable(
                f"Document registry unavailable during {operation}."
            ) from exc
        except IntegrityError:
            raise
        except SQLAlchemyError as exc:
            logger.exception(
                "registry_error",
                extra={"backend": self.backend_name, "operation": operation},
            )
            raise InternalError(
                f"Document registry failed during {operation}."
            ) from exc

    # ------------------------------------------------------------------
    # DocumentRegistry
    # ------------------------------------------------------------------

    def create(self, new: NewDocumentRecord) -> DocumentRecord:
        try:
            with self._translate_errors("create"):
                with self._engine.begin() as conn:
                    result = conn.execute(
                        insert(documents).values(
                            doc_code=new.doc_code,
                            file_path=new.file_path,
                            file_hash=new.file_hash,
                            uploaded_at=new.uploaded_at,
                        )
                    )
                    new_id = result.inserted_primary_key[0]
                    row = conn.execute(
                        select(documents).where(documents.c.id == new_id)
                    ).one()
        except IntegrityError as exc:
            if _is_unique_violation(exc):
                raise DuplicateCode(
                    f"doc_code '{new.doc_code}' is already registered."
                ) from exc
            logger.exception(
                "registry_integrity_error",
                extra={"backend": self.backend_name, "operation": "create"},
            )
            raise InternalError(
                "Document registry rejected the record."
            ) from exc

        return _to_record(row._mapping)

    def get_by_code(self, doc_code: str) -> Optional[DocumentRecord]:
        with self._translate_errors("lookup"):
            with self._engine.connect() as conn:
                row = conn.execute(
                    select(documents).where(documents.c.doc_code == doc_code)
                ).first()

        return _to_record(row._mapping) if row is not None else None

    def list(self) -> List[DocumentRecord]:
        with self._translate_errors("list"):
            with self._engine.connect() as conn:
                rows = conn.execute(
                    select(documents).order_by(
                        documents.c.uploaded_at.desc(),
                        documents.c.id.desc(),
                    )
                ).all()

        return [_to_record(row._mapping) for row in rows]

    def revoke(self, doc_code: str) -> bool:
        with self._translate_errors("revoke"):
            with self._engine.begin() as conn:
                result = conn.execute(
                    update(documents)
                    .where(documents.c.doc_code == doc_code)
                    .where(documents.c.revoked == 0)
                    .values(revoked=1)
                )

        return result.rowcount > 0

    def close(self) -> None:
        self._engine.dispose()
