"""
schemaledger Runner Configuration.

Value objects controlling ledger naming and runner behavior. They carry no
lifecycle beyond construction and are consumed read-only by the runner.
"""

import re
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any, Dict, Optional

from schemaledger.exceptions import ConfigurationError

if TYPE_CHECKING:
    from schemaledger.observability.logging import StructuredLogger

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*(\.[A-Za-z_][A-Za-z0-9_]*)?$")

POSTGRES_TYPES = ("postgresql", "postgres")
SQLITE_TYPES = ("sqlite",)


@dataclass(frozen=True)
class TableConfig:
    """
    Names of the ledger table and its columns.

    Attributes:
        table_name: Ledger table, optionally schema-qualified ("ops.migrations")
        version_column: Primary key column holding the migration version
        name_column: Human-readable migration name
        applied_at_column: Timestamp the migration was applied
        checksum_column: Digest of the migration definition
        execution_time_column: Apply duration in milliseconds
        success_column: Whether the recorded apply succeeded
        rolled_back_at_column: Reserved for soft rollback bookkeeping
    """

    table_name: str = "parsql_migrations"
    version_column: str = "version"
    name_column: str = "name"
    applied_at_column: str = "applied_at"
    checksum_column: str = "checksum"
    execution_time_column: str = "execution_time_ms"
    success_column: str = "success"
    rolled_back_at_column: str = "rolled_back_at"

    def __post_init__(self) -> None:
        for attr, value in self.__dict__.items():
            if not isinstance(value, str) or not _IDENTIFIER.match(value):
                raise ConfigurationError(
                    f"Invalid SQL identifier for {attr}: {value!r}"
                )
            if attr != "table_name" and "." in value:
                raise ConfigurationError(
                    f"Column name for {attr} cannot be qualified: {value!r}"
                )

    @property
    def select_columns(self) -> str:
        """Column list used when reading the ledger."""
        return ", ".join(
            [
                self.version_column,
                self.name_column,
                self.applied_at_column,
                self.checksum_column,
                self.execution_time_column,
                self.success_column,
            ]
        )


@dataclass(frozen=True)
class MigrationConfig:
    """
    Configuration for the migration runner.

    Attributes:
        table: Ledger table naming
        transaction_per_migration: Wrap each migration and its ledger write
            in one transaction
        lock_timeout: Seconds to wait for the migration lock, None disables
            locking
        verify_checksums: Compare stored and current checksums of applied
            migrations during runs
        allow_out_of_order: Apply migrations older than already-applied ones
            instead of failing with a gap error
        auto_create_table: Create the ledger table if it does not exist
        max_retries: Retries for transient errors on retryable operations
        retry_delay: Initial delay in seconds between retries (doubles
            per attempt)
        stop_on_error: Stop at the first failed migration
        create_table_sql: Custom DDL replacing the generated ledger table
        logger: Logger receiving runner events, defaults to the module logger
        log_sql: Trace ledger SQL issued by the runner at DEBUG level
    """

    table: TableConfig = field(default_factory=TableConfig)
    transaction_per_migration: bool = True
    lock_timeout: Optional[float] = 10.0
    verify_checksums: bool = True
    allow_out_of_order: bool = False
    auto_create_table: bool = True
    max_retries: int = 3
    retry_delay: float = 0.1
    stop_on_error: bool = True
    create_table_sql: Optional[str] = None
    logger: Optional["StructuredLogger"] = field(default=None, compare=False)
    log_sql: bool = False

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ConfigurationError("max_retries cannot be negative")
        if self.retry_delay < 0:
            raise ConfigurationError("retry_delay cannot be negative")
        if self.lock_timeout is not None and self.lock_timeout < 0:
            raise ConfigurationError("lock_timeout cannot be negative")

    # Fluent copies. The config is immutable so each returns a new instance.

    def with_table_name(self, name: str) -> "MigrationConfig":
        return replace(self, table=replace(self.table, table_name=name))

    def with_transactions(self, enabled: bool) -> "MigrationConfig":
        return replace(self, transaction_per_migration=enabled)

    def with_lock_timeout(self, timeout: Optional[float]) -> "MigrationConfig":
        return replace(self, lock_timeout=timeout)

    def without_lock_timeout(self) -> "MigrationConfig":
        return replace(self, lock_timeout=None)

    def with_checksum_verification(self, enabled: bool) -> "MigrationConfig":
        return replace(self, verify_checksums=enabled)

    def with_out_of_order(self, enabled: bool) -> "MigrationConfig":
        return replace(self, allow_out_of_order=enabled)

    def with_auto_create_table(self, enabled: bool) -> "MigrationConfig":
        return replace(self, auto_create_table=enabled)

    def with_max_retries(self, retries: int) -> "MigrationConfig":
        return replace(self, max_retries=retries)

    def with_retry_delay(self, delay: float) -> "MigrationConfig":
        return replace(self, retry_delay=delay)

    def with_stop_on_error(self, enabled: bool) -> "MigrationConfig":
        return replace(self, stop_on_error=enabled)

    def with_create_table_sql(self, sql: str) -> "MigrationConfig":
        return replace(self, create_table_sql=sql)

    def with_logger(
        self, logger: "StructuredLogger", log_sql: Optional[bool] = None
    ) -> "MigrationConfig":
        return replace(
            self,
            logger=logger,
            log_sql=self.log_sql if log_sql is None else log_sql,
        )

    # DDL

    def postgres_create_table_sql(self) -> str:
        """Ledger DDL for PostgreSQL."""
        if self.create_table_sql:
            return self.create_table_sql
        t = self.table
        return f"""CREATE TABLE IF NOT EXISTS {t.table_name} (
                {t.version_column} BIGINT PRIMARY KEY,
                {t.name_column} VARCHAR(255) NOT NULL,
                {t.applied_at_column} TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP,
                {t.checksum_column} VARCHAR(64),
                {t.execution_time_column} BIGINT,
                {t.success_column} BOOLEAN NOT NULL DEFAULT TRUE,
                {t.rolled_back_at_column} TIMESTAMPTZ
            )"""

    def sqlite_create_table_sql(self) -> str:
        """Ledger DDL for SQLite."""
        if self.create_table_sql:
            return self.create_table_sql
        t = self.table
        return f"""CREATE TABLE IF NOT EXISTS {t.table_name} (
                {t.version_column} INTEGER PRIMARY KEY,
                {t.name_column} TEXT NOT NULL,
                {t.applied_at_column} TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
                {t.checksum_column} TEXT,
                {t.execution_time_column} INTEGER,
                {t.success_column} INTEGER NOT NULL DEFAULT 1,
                {t.rolled_back_at_column} TEXT
            )"""

    def create_table_sql_for(self, database_type: str) -> str:
        """
        Pick the ledger DDL for a connection's declared database type.

        Custom ``create_table_sql`` is used as-is for any database type.

        Raises:
            ConfigurationError: If the database type is not supported
        """
        if self.create_table_sql:
            return self.create_table_sql
        db = database_type.lower()
        if db in POSTGRES_TYPES:
            return self.postgres_create_table_sql()
        if db in SQLITE_TYPES:
            return self.sqlite_create_table_sql()
        raise ConfigurationError(f"Unsupported database type: {database_type}")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MigrationConfig":
        """
        Build a config from the ``migrations`` section of a config file.

        Unknown keys are ignored so the same section can carry settings for
        file discovery (``directory``).
        """
        table_keys = {f for f in TableConfig.__dataclass_fields__}
        table_values = {
            k: v for k, v in (data.get("table") or {}).items() if k in table_keys
        }
        if "table_name" in data:
            table_values["table_name"] = data["table_name"]

        kwargs: Dict[str, Any] = {"table": TableConfig(**table_values)}
        for key in (
            "transaction_per_migration",
            "verify_checksums",
            "allow_out_of_order",
            "auto_create_table",
            "stop_on_error",
            "log_sql",
        ):
            if key in data and data[key] is not None:
                kwargs[key] = _as_bool(key, data[key])
        if "lock_timeout" in data:
            value = data["lock_timeout"]
            kwargs["lock_timeout"] = None if value is None else float(value)
        if data.get("max_retries") is not None:
            kwargs["max_retries"] = int(data["max_retries"])
        if data.get("retry_delay") is not None:
            kwargs["retry_delay"] = float(data["retry_delay"])
        if data.get("create_table_sql"):
            kwargs["create_table_sql"] = data["create_table_sql"]
        return cls(**kwargs)


def _as_bool(key: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.lower() in ("true", "yes", "1", "on"):
        return True
    if isinstance(value, str) and value.lower() in ("false", "no", "0", "off"):
        return False
    raise ConfigurationError(f"Expected a boolean for {key}, got {value!r}")


class MigrationConfigBuilder:
    """
    Fluent builder for ``MigrationConfig``.

    Example:
        config = (
            MigrationConfigBuilder()
            .table_name("schema_history")
            .without_transactions()
            .allow_out_of_order()
            .build()
        )
    """

    def __init__(self) -> None:
        self._config = MigrationConfig()

    def table_name(self, name: str) -> "MigrationConfigBuilder":
        self._config = self._config.with_table_name(name)
        return self

    def with_transactions(self) -> "MigrationConfigBuilder":
        self._config = self._config.with_transactions(True)
        return self

    def without_transactions(self) -> "MigrationConfigBuilder":
        self._config = self._config.with_transactions(False)
        return self

    def lock_timeout(self, timeout: float) -> "MigrationConfigBuilder":
        self._config = self._config.with_lock_timeout(timeout)
        return self

    def verify_checksums(self) -> "MigrationConfigBuilder":
        self._config = self._config.with_checksum_verification(True)
        return self

    def skip_checksum_verification(self) -> "MigrationConfigBuilder":
        self._config = self._config.with_checksum_verification(False)
        return self

    def allow_out_of_order(self) -> "MigrationConfigBuilder":
        self._config = self._config.with_out_of_order(True)
        return self

    def continue_on_error(self) -> "MigrationConfigBuilder":
        self._config = self._config.with_stop_on_error(False)
        return self

    def build(self) -> MigrationConfig:
        return self._config
