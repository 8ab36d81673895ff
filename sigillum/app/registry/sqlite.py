"""
Embedded registry backend (SQLite).

One engine per registry instance, constructed explicitly and disposed on
shutdown. Every connection runs in WAL mode so readers are not blocked
by the single writer.
"""

from __future__ import annotations

from pathlib import Path

from sqlalchemy import create_engine, event

from sigillum.app.registry.sql import SqlDocumentRegistry


def _apply_pragmas(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    try:
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA busy_timeout=5000")
    finally:
        cursor.close()


class SQLiteDocumentRegistry(SqlDocumentRegistry):

    backend_name = "sqlite"

    def __init__(self, path: Path) -> None:
        path = Path(path).expanduser()
        path.parent.mkdir(parents=True, exist_ok=True)

        engine = create_engine(
            f"sqlite:///{path}",
            connect_args={"check_same_thread": False},
        )
        event.listen(engine, "connect", _apply_pragmas)

        self.path = path
        super().__init__(engine)
