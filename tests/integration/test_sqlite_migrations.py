"""
Integration tests running migrations against SQLite.

Unlike the unit tests these use a real database, so they check that DDL
and ledger writes really commit or roll back together.
"""

from typing import List

import pytest

from schemaledger.config.settings import MigrationConfig
from schemaledger.connections.sqlite import SQLiteMigrationConnection
from schemaledger.exceptions import MigrationGapError
from schemaledger.migrations.base import SQLMigration
from schemaledger.migrations.runner import MigrationRunner


def columns(conn: SQLiteMigrationConnection, table: str) -> List[str]:
    return [row[1] for row in conn.fetch_all(f"PRAGMA table_info({table})")]


def has_index(conn: SQLiteMigrationConnection, name: str) -> bool:
    rows = conn.fetch_all(
        "SELECT name FROM sqlite_master WHERE type = 'index' AND name = ?", (name,)
    )
    return bool(rows)


def ledger_versions(conn: SQLiteMigrationConnection) -> List[int]:
    return [
        row[0]
        for row in conn.fetch_all("SELECT version FROM parsql_migrations ORDER BY version")
    ]


class TestCatalogScenario:
    """Create table, add column, add index, then roll back to the table."""

    def test_apply_status_and_rollback(self, sqlite_conn, catalog_migrations, metrics):
        runner = MigrationRunner(MigrationConfig(), catalog_migrations, metrics=metrics)

        report = runner.run(sqlite_conn)

        assert report.successful_count() == 3
        assert report.failed_count() == 0
        assert all(s.applied for s in runner.status(sqlite_conn))
        assert columns(sqlite_conn, "items") == ["id", "name", "price"]
        assert has_index(sqlite_conn, "idx_items_price")

        rollback = runner.rollback(sqlite_conn, 1)

        assert rollback.successful_count() == 2
        assert [r.version for r in rollback.successful] == [3, 2]
        assert sqlite_conn.table_exists("items")
        assert columns(sqlite_conn, "items") == ["id", "name"]
        assert not has_index(sqlite_conn, "idx_items_price")
        assert ledger_versions(sqlite_conn) == [1]

    def test_data_survives_rollback(self, sqlite_conn, catalog_migrations, metrics):
        runner = MigrationRunner(MigrationConfig(), catalog_migrations, metrics=metrics)
        runner.run(sqlite_conn)
        sqlite_conn.execute(
            "INSERT INTO items (id, name, price) VALUES (?, ?, ?)", (1, "widget", 5)
        )

        runner.rollback(sqlite_conn, 1)

        assert sqlite_conn.fetch_all("SELECT id, name FROM items") == [(1, "widget")]

    def test_second_run_skips_everything(self, sqlite_conn, catalog_migrations, metrics):
        runner = MigrationRunner(MigrationConfig(), catalog_migrations, metrics=metrics)
        runner.run(sqlite_conn)

        report = runner.run(sqlite_conn)

        assert report.successful_count() == 0
        assert report.skipped == [1, 2, 3]
        assert report.checksum_mismatches == []

    def test_ledger_survives_reconnect(self, tmp_path, catalog_migrations, metrics):
        path = tmp_path / "catalog.db"
        runner = MigrationRunner(MigrationConfig(), catalog_migrations, metrics=metrics)
        with SQLiteMigrationConnection(path) as conn:
            runner.run(conn, target_version=2)

        with SQLiteMigrationConnection(path) as conn:
            statuses = runner.status(conn)

        assert [s.applied for s in statuses] == [True, True, False]
        assert all(s.checksum_ok for s in statuses[:2])


class TestAtomicity:
    """A failed migration leaves neither schema change nor ledger row."""

    def test_failed_statement_rolls_back_earlier_ones(self, sqlite_conn, metrics):
        broken = SQLMigration(
            1,
            "half_broken",
            "CREATE TABLE first_half (id INTEGER); CREAT TABLE second_half (id INTEGER);",
        )
        runner = MigrationRunner(MigrationConfig(), [broken], metrics=metrics)

        report = runner.run(sqlite_conn)

        assert report.failed_count() == 1
        assert not sqlite_conn.table_exists("first_half")
        assert ledger_versions(sqlite_conn) == []

    def test_duplicate_ledger_row_rolls_back_schema(self, sqlite_conn, metrics):
        """A pre-existing ledger row for the version makes the insert fail."""
        config = MigrationConfig(allow_out_of_order=True)
        migration = SQLMigration(1, "create_a", "CREATE TABLE a (id INTEGER);")
        runner = MigrationRunner(config, [migration], metrics=metrics)
        sqlite_conn.execute(config.create_table_sql_for("sqlite"))
        sqlite_conn.execute(
            "INSERT INTO parsql_migrations (version, name) VALUES (1, 'other')"
        )

        result = runner._execute_migration(sqlite_conn, migration)

        assert not result.success
        assert not sqlite_conn.table_exists("a")

    def test_continue_on_error_runs_independent_migrations(self, sqlite_conn, metrics):
        migrations = [
            SQLMigration(1, "broken", "CREAT TABLE nope (id INTEGER);"),
            SQLMigration(2, "create_b", "CREATE TABLE b (id INTEGER);"),
        ]
        config = MigrationConfig(stop_on_error=False)

        report = MigrationRunner(config, migrations, metrics=metrics).run(sqlite_conn)

        assert [r.version for r in report.failed] == [1]
        assert [r.version for r in report.successful] == [2]
        assert ledger_versions(sqlite_conn) == [2]


    def test_failed_commit_does_not_swallow_later_migrations(self, sqlite_conn, metrics):
        """A deferred constraint failing at COMMIT leaves no open transaction."""
        sqlite_conn.execute("PRAGMA foreign_keys = ON")
        migrations = [
            SQLMigration(1, "create_parent", "CREATE TABLE parent (id INTEGER PRIMARY KEY);"),
            SQLMigration(
                2,
                "create_child",
                "CREATE TABLE child (id INTEGER PRIMARY KEY, parent_id INTEGER "
                "REFERENCES parent (id) DEFERRABLE INITIALLY DEFERRED); "
                "INSERT INTO child (id, parent_id) VALUES (1, 99);",
            ),
            SQLMigration(3, "create_other", "CREATE TABLE other (id INTEGER);"),
        ]
        config = MigrationConfig(stop_on_error=False)

        report = MigrationRunner(config, migrations, metrics=metrics).run(sqlite_conn)

        assert [r.version for r in report.failed] == [2]
        assert [r.version for r in report.successful] == [1, 3]
        assert "FOREIGN KEY" in report.failed[0].error
        assert not sqlite_conn.in_transaction
        assert not sqlite_conn.raw_connection.in_transaction

        with SQLiteMigrationConnection(sqlite_conn.db_path) as fresh:
            assert ledger_versions(fresh) == [1, 3]
            assert fresh.table_exists("other")
            assert not fresh.table_exists("child")


class TestOrderingAndGaps:
    def test_gap_rejected(self, sqlite_conn, catalog_migrations, metrics):
        """Given {1, 3} with 1 applied, adding 2 fails and 3 is not applied."""
        v1, v2, v3 = catalog_migrations
        MigrationRunner(MigrationConfig(), [v1, v3], metrics=metrics).run(
            sqlite_conn, target_version=1
        )

        runner = MigrationRunner(MigrationConfig(), [v1, v2, v3], metrics=metrics)
        with pytest.raises(MigrationGapError) as exc_info:
            runner.run(sqlite_conn)

        assert exc_info.value.version == 2
        assert ledger_versions(sqlite_conn) == [1]
        assert not has_index(sqlite_conn, "idx_items_price")

    def test_checksum_drift(self, sqlite_conn, catalog_migrations, metrics):
        MigrationRunner(MigrationConfig(), catalog_migrations, metrics=metrics).run(
            sqlite_conn
        )

        renamed = SQLMigration(
            1,
            "create_items_table",
            catalog_migrations[0].up_sql,
            catalog_migrations[0].down_sql,
        )
        runner = MigrationRunner(
            MigrationConfig(), [renamed, *catalog_migrations[1:]], metrics=metrics
        )

        mismatches = runner.verify_checksums(sqlite_conn)

        assert [m.version for m in mismatches] == [1]
        assert runner.run(sqlite_conn).checksum_mismatches[0].version == 1


pytestmark = pytest.mark.integration
