"""
schemaledger Connections - Base Class.

Defines the narrow database capability the migration runner needs. The
runner never talks to a driver directly, which keeps it usable with any
database that can execute SQL and run transactions.
"""

import logging
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Iterator, List, Optional, Sequence

from schemaledger.config.settings import TableConfig
from schemaledger.exceptions import DatabaseError
from schemaledger.observability.logging import StructuredLogger, get_logger
from schemaledger.types import MigrationRecord

SAVEPOINT_NAME = "migration_savepoint"

_APPLIED_AT_FORMATS = ("%Y-%m-%d %H:%M:%S", "%Y-%m-%d %H:%M:%S.%f")


class MigrationConnection(ABC):
    """
    Abstract connection used by the migration runner.

    Subclasses implement raw statement execution and row fetching for their
    driver and translate driver errors into ``DatabaseError``. Transaction
    control, savepoint nesting, SQL tracing and ledger row decoding are
    shared here.

    Transactions are explicit: ``begin_transaction`` issues ``BEGIN`` and the
    connection tracks whether one is open. ``transaction()`` nests by using a
    single savepoint when a transaction is already in progress.
    """

    #: Dialect name used to pick the ledger DDL ("sqlite", "postgresql")
    database_type: str = ""
    #: Parameter placeholder style of the driver
    placeholder: str = "?"

    def __init__(
        self,
        log_sql: bool = False,
        logger: Optional[StructuredLogger] = None,
    ):
        self.log_sql = log_sql
        self._logger = logger or get_logger(__name__)
        self._in_transaction = False

    @property
    def in_transaction(self) -> bool:
        return self._in_transaction

    # ==================== Driver hooks ====================

    @abstractmethod
    def _execute(self, sql: str, params: Optional[Sequence[Any]] = None) -> int:
        """Run one statement, returning the affected row count."""
        pass

    @abstractmethod
    def _fetch_all(
        self, sql: str, params: Optional[Sequence[Any]] = None
    ) -> List[Sequence[Any]]:
        """Run one query, returning all rows as sequences."""
        pass

    @abstractmethod
    def table_exists(self, table_name: str) -> bool:
        """Check whether a table (optionally schema-qualified) exists."""
        pass

    @abstractmethod
    def close(self) -> None:
        pass

    # ==================== Statement execution ====================

    def _trace(self, sql: str, params: Optional[Sequence[Any]]) -> None:
        if self.log_sql:
            self._logger.debug(
                f"SQL: {sql.strip()}",
                database=self.database_type,
                params=list(params) if params else None,
            )

    def execute(self, sql: str, params: Optional[Sequence[Any]] = None) -> None:
        """
        Execute a single statement.

        Raises:
            DatabaseError: If the driver reports a failure
        """
        self._trace(sql, params)
        self._execute(sql, params)

    def execute_with_result(
        self, sql: str, params: Optional[Sequence[Any]] = None
    ) -> int:
        """Execute a single statement and return the number of affected rows."""
        self._trace(sql, params)
        return max(self._execute(sql, params), 0)

    def fetch_all(
        self, sql: str, params: Optional[Sequence[Any]] = None
    ) -> List[Sequence[Any]]:
        self._trace(sql, params)
        return self._fetch_all(sql, params)

    def query_migrations(self, table: TableConfig) -> List[MigrationRecord]:
        """
        Read every ledger row, ordered by version.

        Args:
            table: Ledger table naming

        Returns:
            Decoded ledger records
        """
        rows = self.fetch_all(
            f"SELECT {table.select_columns} FROM {table.table_name} "
            f"ORDER BY {table.version_column}"
        )
        return [self._row_to_record(row) for row in rows]

    def _row_to_record(self, row: Sequence[Any]) -> MigrationRecord:
        version, name, applied_at, checksum, execution_time, success = row
        return MigrationRecord(
            version=int(version),
            name=name,
            applied_at=parse_applied_at(applied_at),
            checksum=checksum,
            execution_time_ms=int(execution_time) if execution_time is not None else None,
            success=True if success is None else bool(success),
        )

    # ==================== Transactions ====================

    def begin_transaction(self) -> None:
        if self._in_transaction:
            raise DatabaseError("Transaction already in progress")
        self.execute("BEGIN")
        self._in_transaction = True

    def commit_transaction(self) -> None:
        """
        Commit the open transaction.

        A failed ``COMMIT`` (a deferred constraint, a dropped connection) may
        leave the driver transaction open, so it is rolled back before the
        commit error is re-raised. Either way no transaction is open after
        this returns or raises.
        """
        try:
            self.execute("COMMIT")
        except BaseException:
            self._rollback_after_error("ROLLBACK")
            raise
        finally:
            self._in_transaction = False

    def rollback_transaction(self) -> None:
        try:
            self.execute("ROLLBACK")
        finally:
            self._in_transaction = False

    def _rollback_after_error(self, statement: str) -> None:
        """Undo work after a failure, logging a failed undo instead of masking the failure."""
        try:
            self.execute(statement)
        except DatabaseError as e:
            self._logger.error(
                f"{statement} failed after an earlier error: {e}",
                database=self.database_type,
            )

    @contextmanager
    def transaction(self) -> Iterator["MigrationConnection"]:
        """
        Run the block atomically.

        Commits on success and rolls back when the block raises. Inside an
        already open transaction a savepoint is used instead, so only the
        block's own work is undone. The block's own error is always the one
        re-raised, even if the rollback fails too.
        """
        if self._in_transaction:
            self.execute(f"SAVEPOINT {SAVEPOINT_NAME}")
            try:
                yield self
            except BaseException:
                self._rollback_after_error(f"ROLLBACK TO SAVEPOINT {SAVEPOINT_NAME}")
                raise
            self.execute(f"RELEASE SAVEPOINT {SAVEPOINT_NAME}")
            return

        self.begin_transaction()
        try:
            yield self
        except BaseException:
            try:
                self._rollback_after_error("ROLLBACK")
            finally:
                self._in_transaction = False
            raise
        self.commit_transaction()

    # ==================== Locking ====================

    def acquire_lock(self, timeout: float) -> None:
        """
        Take the exclusive migration lock, waiting at most ``timeout`` seconds.

        The default does nothing; backends with a locking primitive
        override it.

        Raises:
            LockError: If the lock cannot be obtained in time
        """
        pass

    def release_lock(self) -> None:
        pass

    def __enter__(self) -> "MigrationConnection":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False


def parse_applied_at(value: Any) -> datetime:
    """
    Decode a ledger timestamp into an aware UTC datetime.

    Drivers return native datetimes; SQLite stores text in either ISO 8601
    or ``CURRENT_TIMESTAMP`` format. Unparseable values fall back to now.
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        parsed = _parse_timestamp_text(value)
    else:
        parsed = None

    if parsed is None:
        logging.getLogger(__name__).warning(
            f"Unparseable applied_at value {value!r}, using current time"
        )
        return datetime.now(timezone.utc)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _parse_timestamp_text(value: str) -> Optional[datetime]:
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        pass
    for fmt in _APPLIED_AT_FORMATS:
        try:
            return datetime.strptime(value, fmt)
        except ValueError:
            continue
    return None
