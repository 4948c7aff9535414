"""
Unit tests for the PostgreSQL migration connection.

The psycopg connection is replaced with a MagicMock; these tests check the
SQL issued and the error translation, not a live server.
"""

from unittest.mock import MagicMock, patch

import pytest

psycopg = pytest.importorskip("psycopg")

from schemaledger.connections import connect, postgresql  # noqa: E402
from schemaledger.connections.postgresql import (  # noqa: E402
    PostgreSQLMigrationConnection,
    advisory_lock_key,
)
from schemaledger.exceptions import DatabaseError, LockError  # noqa: E402


def make_conn(rows=None):
    raw = MagicMock()
    cursor = MagicMock()
    cursor.rowcount = 1
    cursor.fetchall.return_value = rows if rows is not None else []
    raw.execute.return_value = cursor
    return raw, PostgreSQLMigrationConnection(raw)


class TestPostgreSQLConnection:
    """Tests for statement execution and metadata queries."""

    def test_autocommit_enabled(self):
        raw, _ = make_conn()
        assert raw.autocommit is True

    def test_placeholder(self):
        assert PostgreSQLMigrationConnection.placeholder == "%s"
        assert PostgreSQLMigrationConnection.database_type == "postgresql"

    def test_execute_passes_params(self):
        raw, conn = make_conn()
        conn.execute("INSERT INTO t VALUES (%s)", (1,))
        raw.execute.assert_called_with("INSERT INTO t VALUES (%s)", (1,))

    def test_table_exists_uses_current_schema(self):
        raw, conn = make_conn(rows=[(True,)])

        assert conn.table_exists("parsql_migrations")

        sql, params = raw.execute.call_args[0]
        assert "information_schema.tables" in sql
        assert params == (None, "parsql_migrations")

    def test_table_exists_with_schema(self):
        raw, conn = make_conn(rows=[(False,)])

        assert not conn.table_exists("ops.parsql_migrations")
        assert raw.execute.call_args[0][1] == ("ops", "parsql_migrations")

    def test_driver_errors_translated(self):
        raw, conn = make_conn()
        raw.execute.side_effect = psycopg.errors.SyntaxError("syntax error")

        with pytest.raises(DatabaseError) as exc_info:
            conn.execute("SELEC 1")

        assert not exc_info.value.retryable

    def test_serialization_failure_is_retryable(self):
        raw, conn = make_conn()
        raw.execute.side_effect = psycopg.errors.SerializationFailure("conflict")

        with pytest.raises(DatabaseError) as exc_info:
            conn.execute("UPDATE t SET x = 1")

        assert exc_info.value.retryable

    def test_close_returns_connection_to_pool(self):
        pool = MagicMock()
        raw = MagicMock()
        pool.getconn.return_value = raw

        conn = PostgreSQLMigrationConnection.from_pool(pool)
        conn.close()

        pool.putconn.assert_called_once_with(raw)
        raw.close.assert_not_called()

    def test_close_dedicated_connection(self):
        raw, conn = make_conn()
        conn.close()
        raw.close.assert_called_once()


class TestAdvisoryLock:
    """Tests for the advisory migration lock."""

    def test_lock_key_is_stable(self):
        assert advisory_lock_key("parsql_migrations") == advisory_lock_key(
            "parsql_migrations"
        )
        assert advisory_lock_key("a") != advisory_lock_key("b")

    def test_acquire_and_release(self):
        raw, conn = make_conn(rows=[(True,)])

        conn.acquire_lock(5)
        conn.release_lock()

        statements = [c[0][0] for c in raw.execute.call_args_list]
        assert statements[0] == "SET lock_timeout = 5000"
        assert "pg_try_advisory_lock" in statements[1]
        assert "pg_advisory_unlock" in statements[2]

    def test_release_without_lock_is_noop(self):
        raw, conn = make_conn()
        conn.release_lock()
        raw.execute.assert_not_called()

    def test_lock_timeout(self):
        raw, conn = make_conn(rows=[(False,)])

        with patch.object(postgresql, "LOCK_POLL_INTERVAL", 0.01):
            with pytest.raises(LockError):
                conn.acquire_lock(0.05)

    def test_zero_timeout_still_bounds_ddl_waits(self):
        raw, conn = make_conn(rows=[(True,)])

        conn.acquire_lock(0)

        assert raw.execute.call_args_list[0][0][0] == "SET lock_timeout = 1"

    def test_lock_key_follows_configured_table(self):
        raw = MagicMock()
        with patch.object(postgresql.psycopg, "connect", return_value=raw):
            conn = connect("postgresql://app@localhost/app", table_name="schema_history")

        assert conn._lock_key == advisory_lock_key("schema_history")
        assert conn._lock_key != advisory_lock_key("parsql_migrations")
