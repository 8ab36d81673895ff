"""
Document registry backends and their factory.

Resolved once at process start from ``Settings.db_mode``. The returned
instance owns its connection pool; call ``close()`` on shutdown.
"""

from sigillum.app.config import Settings
from sigillum.app.registry.base import DocumentRegistry
from sigillum.app.registry.sql import SqlDocumentRegistry
from sigillum.app.registry.sqlite import SQLiteDocumentRegistry


def build_registry(settings: Settings) -> DocumentRegistry:
    if settings.db_mode == "postgres":
        from sigillum.app.registry.postgres import PostgresDocumentRegistry

        return PostgresDocumentRegistry(settings.database_url)

    return SQLiteDocumentRegistry(settings.sqlite_path)


__all__ = [
    "DocumentRegistry",
    "SQLiteDocumentRegistry",
    "SqlDocumentRegistry",
    "build_registry",
]
