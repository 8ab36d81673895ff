"""
Remote registry backend (managed Postgres).

Connection failures surface as UpstreamUnavailable and are safe for the
caller to retry with backoff.
"""

from __future__ import annotations

from sqlalchemy import create_engine
from sqlalchemy.engine import URL, make_url

from sigillum.app.registry.sql import SqlDocumentRegistry


# Driverless schemes resolve to psycopg2, which is not installed.
_PLAIN_SCHEMES = ("postgres", "postgresql")
DRIVER_NAME = "postgresql+psycopg"


def normalize_url(url: str) -> URL:
    """Pin plain ``postgres://`` / ``postgresql://`` URLs to psycopg 3."""
    parsed = make_url(url)
    if parsed.drivername in _PLAIN_SCHEMES:
        parsed = parsed.set(drivername=DRIVER_NAME)
    return parsed


class PostgresDocumentRegistry(SqlDocumentRegistry):

    backend_name = "postgres"

    def __init__(self, url: str) -> None:
        engine = create_engine(
            normalize_url(url),
            pool_pre_ping=True,
            pool_size=5,
            max_overflow=5,
        )
        super().__init__(engine)
