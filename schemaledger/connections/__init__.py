"""
schemaledger Connections.

Database adapters implementing the ``MigrationConnection`` capability, and
a URL-based factory used by the command line.
"""

from pathlib import Path
from typing import Any, Optional

from schemaledger.connections.base import MigrationConnection, parse_applied_at
from schemaledger.connections.sqlite import SQLiteMigrationConnection
from schemaledger.exceptions import ConfigurationError


def connect(
    database_url: str,
    log_sql: bool = False,
    table_name: Optional[str] = None,
    **kwargs: Any,
) -> MigrationConnection:
    """
    Open a migration connection from a database URL.

    ``table_name`` is the configured ledger table; PostgreSQL derives its
    advisory lock key from it so runners sharing a ledger share a lock.

    Supported forms:
        sqlite:///app.db, sqlite:////var/lib/app.db, sqlite::memory:,
        sqlite:path.db, plain paths ending in .db/.sqlite/.sqlite3,
        postgres://... and postgresql://...

    Raises:
        ConfigurationError: If the URL scheme is not supported
    """
    if not database_url:
        raise ConfigurationError("No database URL configured")

    if database_url.startswith(("postgres://", "postgresql://")):
        from schemaledger.connections.postgresql import PostgreSQLMigrationConnection

        if table_name:
            kwargs.setdefault("lock_name", table_name)
        return PostgreSQLMigrationConnection.from_url(
            database_url, log_sql=log_sql, **kwargs
        )

    if database_url.startswith("sqlite:"):
        path = database_url[len("sqlite:") :]
        # sqlite:///app.db is relative, sqlite:////var/app.db is absolute
        if path.startswith("///"):
            path = path[3:]
        elif path.startswith("//"):
            path = path[2:]
        return SQLiteMigrationConnection(path or ":memory:", log_sql=log_sql, **kwargs)

    if Path(database_url).suffix in (".db", ".sqlite", ".sqlite3"):
        return SQLiteMigrationConnection(database_url, log_sql=log_sql, **kwargs)

    raise ConfigurationError(f"Unsupported database URL: {database_url}")


__all__ = [
    "MigrationConnection",
    "SQLiteMigrationConnection",
    "connect",
    "parse_applied_at",
]
