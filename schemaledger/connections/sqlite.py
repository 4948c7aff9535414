"""
schemaledger Connections - SQLite.

Migration connection over the standard library ``sqlite3`` module.
"""

import sqlite3
from pathlib import Path
from typing import Any, List, Optional, Sequence, Union

from schemaledger.connections.base import MigrationConnection
from schemaledger.exceptions import DatabaseError
from schemaledger.observability.logging import StructuredLogger

# Substrings of sqlite3.OperationalError messages that indicate contention
_TRANSIENT_MESSAGES = ("database is locked", "database table is locked", "busy")


class SQLiteMigrationConnection(MigrationConnection):
    """
    SQLite migration connection.

    The underlying connection runs in autocommit mode
    (``isolation_level=None``) so that the explicit ``BEGIN``/``COMMIT``
    issued by the runner are the only transaction boundaries. DDL is
    transactional in SQLite, so a failed migration leaves no trace.

    Example:
        with SQLiteMigrationConnection("app.db") as conn:
            runner.run(conn)
    """

    database_type = "sqlite"
    placeholder = "?"

    def __init__(
        self,
        db_path: Union[str, Path] = ":memory:",
        log_sql: bool = False,
        logger: Optional[StructuredLogger] = None,
        connection: Optional[sqlite3.Connection] = None,
    ):
        """
        Initialize SQLite connection.

        Args:
            db_path: Path to the database file, ":memory:" for a private
                in-memory database
            log_sql: Trace every statement at DEBUG level
            logger: Logger for SQL tracing
            connection: Existing sqlite3 connection to wrap instead of
                opening ``db_path``. It is switched to autocommit mode.
        """
        super().__init__(log_sql=log_sql, logger=logger)
        if connection is not None:
            self.db_path = None
            self._conn = connection
            self._conn.isolation_level = None
            self._owns_connection = False
        else:
            self.db_path = str(db_path)
            if self.db_path != ":memory:":
                Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
            try:
                self._conn = sqlite3.connect(self.db_path, isolation_level=None)
            except sqlite3.Error as e:
                raise _translate_error(e) from e
            self._owns_connection = True

    @property
    def raw_connection(self) -> sqlite3.Connection:
        """The wrapped ``sqlite3.Connection``."""
        return self._conn

    def _execute(self, sql: str, params: Optional[Sequence[Any]] = None) -> int:
        try:
            cursor = self._conn.execute(sql, tuple(params or ()))
        except sqlite3.Error as e:
            raise _translate_error(e) from e
        return cursor.rowcount

    def _fetch_all(
        self, sql: str, params: Optional[Sequence[Any]] = None
    ) -> List[Sequence[Any]]:
        try:
            return self._conn.execute(sql, tuple(params or ())).fetchall()
        except sqlite3.Error as e:
            raise _translate_error(e) from e

    def table_exists(self, table_name: str) -> bool:
        schema, _, name = table_name.rpartition(".")
        master = f"{schema}.sqlite_master" if schema else "sqlite_master"
        rows = self.fetch_all(
            f"SELECT name FROM {master} WHERE type = 'table' AND name = ?",
            (name,),
        )
        return bool(rows)

    def acquire_lock(self, timeout: float) -> None:
        """
        Bound how long writers wait on SQLite's own file lock.

        SQLite serializes writers itself; a concurrent runner blocks on
        ``BEGIN``/``INSERT`` for up to ``timeout`` seconds and then fails
        with a retryable ``DatabaseError``.
        """
        self.execute(f"PRAGMA busy_timeout = {int(timeout * 1000)}")

    def close(self) -> None:
        if self._owns_connection:
            self._conn.close()


def _translate_error(error: sqlite3.Error) -> DatabaseError:
    message = str(error)
    retryable = isinstance(error, sqlite3.OperationalError) and any(
        fragment in message.lower() for fragment in _TRANSIENT_MESSAGES
    )
    return DatabaseError(message, cause=error, retryable=retryable)
