"""
Database Sessions
=================

Backends the execution engine runs blocks through.
"""

from tutorial_verifier.db.base import DatabaseSession, QueryOutput
from tutorial_verifier.db.sqlite import SqliteSession
from tutorial_verifier.errors import ConfigurationError


def open_session(dsn: str, connect_timeout: int = 10) -> DatabaseSession:
    """
    Open a session for a connection string.

    ``sqlite://`` URLs (``sqlite:///path/to.db``, ``sqlite://`` for memory)
    and ``:memory:`` open SQLite; anything else, including an empty string
    that defers to the PG* environment variables, goes to PostgreSQL.
    """
    if dsn == ":memory:":
        return SqliteSession()
    if dsn.startswith("sqlite:"):
        path = dsn[len("sqlite:"):]
        if path.startswith("///"):
            path = path[3:]
        elif path.startswith("//"):
            path = path[2:]
        return SqliteSession(path or ":memory:")
    if dsn.split("://", 1)[0] not in ("postgresql", "postgres") and "://" in dsn:
        raise ConfigurationError(f"Unsupported database URL scheme in {dsn.split('://', 1)[0]!r}")

    from tutorial_verifier.db.postgres import PostgresSession

    return PostgresSession(dsn, connect_timeout=connect_timeout)


__all__ = ["DatabaseSession", "QueryOutput", "SqliteSession", "open_session"]
