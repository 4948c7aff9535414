"""
Unit tests for schemaledger runner configuration.
"""

import pytest

from schemaledger.config.settings import (
    MigrationConfig,
    MigrationConfigBuilder,
    TableConfig,
)
from schemaledger.exceptions import ConfigurationError


class TestTableConfig:
    """Tests for ledger table naming."""

    def test_defaults(self):
        table = TableConfig()
        assert table.table_name == "parsql_migrations"
        assert table.version_column == "version"

    def test_select_columns(self):
        assert TableConfig().select_columns == (
            "version, name, applied_at, checksum, execution_time_ms, success"
        )

    def test_schema_qualified_table(self):
        assert TableConfig(table_name="ops.migrations").table_name == "ops.migrations"

    @pytest.mark.parametrize("name", ["", "1abc", "drop table x", "a;b", "a.b.c"])
    def test_rejects_unsafe_table_name(self, name):
        with pytest.raises(ConfigurationError):
            TableConfig(table_name=name)

    def test_rejects_qualified_column(self):
        with pytest.raises(ConfigurationError):
            TableConfig(version_column="t.version")


class TestMigrationConfig:
    """Tests for runner configuration."""

    def test_defaults(self):
        config = MigrationConfig()

        assert config.transaction_per_migration
        assert config.lock_timeout == 10.0
        assert config.verify_checksums
        assert not config.allow_out_of_order
        assert config.auto_create_table
        assert config.max_retries == 3
        assert config.retry_delay == 0.1
        assert config.stop_on_error
        assert config.create_table_sql is None

    def test_fluent_copies(self):
        base = MigrationConfig()
        changed = base.with_table_name("history").with_transactions(False)

        assert changed.table.table_name == "history"
        assert not changed.transaction_per_migration
        assert base.table.table_name == "parsql_migrations"
        assert base.transaction_per_migration

    def test_without_lock_timeout(self):
        assert MigrationConfig().without_lock_timeout().lock_timeout is None

    @pytest.mark.parametrize(
        "kwargs", [{"max_retries": -1}, {"retry_delay": -0.5}, {"lock_timeout": -1}]
    )
    def test_rejects_negative_values(self, kwargs):
        with pytest.raises(ConfigurationError):
            MigrationConfig(**kwargs)

    def test_postgres_ddl(self):
        sql = MigrationConfig().create_table_sql_for("postgresql")
        assert "CREATE TABLE IF NOT EXISTS parsql_migrations" in sql
        assert "BIGINT PRIMARY KEY" in sql
        assert "TIMESTAMPTZ" in sql

    def test_sqlite_ddl(self):
        sql = MigrationConfig().with_table_name("history").create_table_sql_for("sqlite")
        assert "CREATE TABLE IF NOT EXISTS history" in sql
        assert "INTEGER PRIMARY KEY" in sql

    def test_custom_ddl_wins(self):
        config = MigrationConfig().with_create_table_sql("CREATE TABLE x (v INT)")
        assert config.create_table_sql_for("postgresql") == "CREATE TABLE x (v INT)"
        assert config.create_table_sql_for("mysql") == "CREATE TABLE x (v INT)"

    def test_unsupported_database(self):
        with pytest.raises(ConfigurationError):
            MigrationConfig().create_table_sql_for("mysql")


class TestMigrationConfigFromDict:
    """Tests for building configuration from a config file section."""

    def test_from_dict(self):
        config = MigrationConfig.from_dict(
            {
                "directory": "db/migrations",
                "table_name": "schema_history",
                "transaction_per_migration": "false",
                "allow_out_of_order": True,
                "lock_timeout": 30,
                "max_retries": "5",
                "retry_delay": 0.5,
            }
        )

        assert config.table.table_name == "schema_history"
        assert not config.transaction_per_migration
        assert config.allow_out_of_order
        assert config.lock_timeout == 30.0
        assert config.max_retries == 5
        assert config.retry_delay == 0.5

    def test_lock_timeout_none_disables_locking(self):
        assert MigrationConfig.from_dict({"lock_timeout": None}).lock_timeout is None

    def test_table_section(self):
        config = MigrationConfig.from_dict(
            {"table": {"table_name": "h", "checksum_column": "digest"}}
        )
        assert config.table.table_name == "h"
        assert config.table.checksum_column == "digest"

    def test_invalid_boolean(self):
        with pytest.raises(ConfigurationError):
            MigrationConfig.from_dict({"stop_on_error": "maybe"})


class TestMigrationConfigBuilder:
    def test_builder(self):
        config = (
            MigrationConfigBuilder()
            .table_name("custom_migrations")
            .without_transactions()
            .lock_timeout(30)
            .skip_checksum_verification()
            .allow_out_of_order()
            .continue_on_error()
            .build()
        )

        assert config.table.table_name == "custom_migrations"
        assert not config.transaction_per_migration
        assert config.lock_timeout == 30
        assert not config.verify_checksums
        assert config.allow_out_of_order
        assert not config.stop_on_error
