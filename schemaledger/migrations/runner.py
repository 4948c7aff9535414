"""
schemaledger Migrations - Migration Runner.

Applies, reverts and inspects migrations against a connection, keeping the
ledger table in step with the schema.
"""

import time
from typing import Any, Callable, Dict, Iterable, List, Optional, TypeVar

from schemaledger.config.settings import MigrationConfig
from schemaledger.connections.base import MigrationConnection
from schemaledger.exceptions import (
    AlreadyAppliedError,
    ChecksumMismatchError,
    ConfigurationError,
    DatabaseError,
    DuplicateVersionError,
    FailedStateError,
    InvalidVersionError,
    IrreversibleMigrationError,
    MigrationError,
    MigrationGapError,
    NotFoundError,
)
from schemaledger.migrations.base import Migration, MigrationRegistry, get_registry
from schemaledger.observability.logging import get_logger
from schemaledger.observability.metrics import MigrationMetrics, get_metrics
from schemaledger.observability.tracing import TracingContext
from schemaledger.types import (
    MigrationRecord,
    MigrationReport,
    MigrationResult,
    MigrationStatus,
    ValidationReport,
)

T = TypeVar("T")

Ledger = Dict[int, MigrationRecord]

HOOK_EVENTS = ("pre_migrate", "post_migrate", "pre_rollback", "post_rollback")


def _elapsed_ms(start: float) -> int:
    return int((time.perf_counter() - start) * 1000)


class MigrationRunner:
    """
    Executes schema migrations and tracks them in the ledger table.

    Handles:
    - Forward migrations in ascending version order
    - Rollbacks in descending order down to a target version
    - Gap detection and checksum verification
    - Dry runs, per-migration transactions and the migration lock

    Per-migration failures are recorded in the returned report. Validation
    failures (duplicate or invalid versions, gaps, failed ledger rows) are
    raised before anything is executed.

    Example:
        runner = MigrationRunner(config).add_migrations(
            load_migrations_from_directory("migrations")
        )
        report = runner.run(connection)
        print(report.summary())
    """

    def __init__(
        self,
        config: Optional[MigrationConfig] = None,
        migrations: Optional[Iterable[Migration]] = None,
        metrics: Optional[MigrationMetrics] = None,
        tracing: Optional[TracingContext] = None,
    ):
        """
        Initialize migration runner.

        Args:
            config: Runner configuration (defaults if not provided)
            migrations: Initial migration set
            metrics: Metrics sink (the global instance if not provided)
            tracing: Tracing context for spans
        """
        self.config = config or MigrationConfig()
        self._migrations: List[Migration] = list(migrations or [])
        self._logger = self.config.logger or get_logger(__name__)
        self._metrics = metrics or get_metrics()
        self._tracing = tracing or TracingContext()
        self._hooks: Dict[str, List[Callable[..., Any]]] = {
            event: [] for event in HOOK_EVENTS
        }

    @classmethod
    def from_registry(
        cls,
        registry: Optional[MigrationRegistry] = None,
        config: Optional[MigrationConfig] = None,
    ) -> "MigrationRunner":
        """Create a runner over every migration in a registry."""
        registry = registry or get_registry()
        return cls(config=config, migrations=registry.get_all_migrations())

    # ==================== Migration set ====================

    def add_migration(self, migration: Migration) -> "MigrationRunner":
        self._migrations.append(migration)
        return self

    def add_migrations(self, migrations: Iterable[Migration]) -> "MigrationRunner":
        self._migrations.extend(migrations)
        return self

    @property
    def migrations(self) -> List[Migration]:
        """The migration set sorted by version."""
        return self._sorted()

    def _sorted(self, reverse: bool = False) -> List[Migration]:
        return sorted(self._migrations, key=lambda m: m.version, reverse=reverse)

    def _find(self, version: int) -> Migration:
        for migration in self._migrations:
            if migration.version == version:
                return migration
        raise NotFoundError(version)

    # ==================== Hooks ====================

    def add_hook(self, event: str, callback: Callable[..., Any]) -> None:
        """
        Add a hook callback for migration events.

        Callbacks receive ``(migration, connection)``. A failing hook is
        logged and does not affect the migration.

        Args:
            event: One of pre_migrate, post_migrate, pre_rollback, post_rollback
            callback: Function to call
        """
        if event not in self._hooks:
            raise ValueError(f"Unknown hook event: {event}")
        self._hooks[event].append(callback)

    def _run_hooks(self, event: str, *args: Any) -> None:
        for callback in self._hooks[event]:
            try:
                callback(*args)
            except Exception as e:
                self._logger.warning(
                    f"Hook {getattr(callback, '__name__', callback)} failed: {e}",
                    hook_event=event,
                )

    # ==================== Internals ====================

    def _with_retries(self, operation: str, fn: Callable[[], T]) -> T:
        """Run ``fn``, retrying transient database errors with backoff."""
        delay = self.config.retry_delay
        attempt = 0
        while True:
            try:
                return fn()
            except DatabaseError as e:
                if not e.retryable or attempt >= self.config.max_retries:
                    raise
                attempt += 1
                self._logger.warning(
                    f"Transient error during {operation}, retrying "
                    f"({attempt}/{self.config.max_retries}): {e}",
                    operation=operation,
                    attempt=attempt,
                )
                time.sleep(delay)
                delay *= 2

    def _validate_versions(self, migrations: List[Migration]) -> None:
        seen = set()
        for migration in migrations:
            version = migration.version
            if not isinstance(version, int) or isinstance(version, bool) or version <= 0:
                raise InvalidVersionError(version)
            if version in seen:
                raise DuplicateVersionError(version)
            seen.add(version)

    def _ensure_table(self, connection: MigrationConnection) -> None:
        ddl = self.config.create_table_sql_for(connection.database_type)
        self._with_retries("create_table", lambda: connection.execute(ddl))

    def _load_ledger(self, connection: MigrationConnection) -> Ledger:
        records = self._with_retries(
            "load_ledger", lambda: connection.query_migrations(self.config.table)
        )
        return {record.version: record for record in records}

    def _read_ledger(self, connection: MigrationConnection) -> Ledger:
        """Load the ledger, treating a missing table as empty."""
        if not connection.table_exists(self.config.table.table_name):
            return {}
        return self._load_ledger(connection)

    def _prepare_ledger(self, connection: MigrationConnection) -> Ledger:
        if self.config.auto_create_table:
            self._ensure_table(connection)
            return self._load_ledger(connection)
        if not connection.table_exists(self.config.table.table_name):
            raise ConfigurationError(
                f"Migration table {self.config.table.table_name} does not exist "
                "and auto_create_table is disabled"
            )
        return self._load_ledger(connection)

    @staticmethod
    def _check_failed_state(ledger: Ledger) -> None:
        for version in sorted(ledger):
            if not ledger[version].success:
                raise FailedStateError(version)

    def _find_gaps(
        self,
        pending: List[Migration],
        migrations: List[Migration],
        ledger: Ledger,
        first_only: bool = True,
    ) -> List[int]:
        """
        Find unapplied versions sitting below a pending migration.

        For each pending migration, any unapplied version between the highest
        applied version below it and the migration itself is a gap. Only
        checked when the ledger is non-empty and out-of-order application
        is disallowed.
        """
        if self.config.allow_out_of_order or not ledger:
            return []

        gaps: List[int] = []
        for migration in pending:
            max_applied = max((v for v in ledger if v < migration.version), default=0)
            for other in migrations:
                v = other.version
                if max_applied < v < migration.version and v not in ledger:
                    if first_only:
                        return [v]
                    if v not in gaps:
                        gaps.append(v)
        return sorted(gaps)

    def _compare_checksum(
        self, migration: Migration, record: MigrationRecord
    ) -> Optional[ChecksumMismatchError]:
        if record.checksum is None:
            return None
        actual = migration.checksum()
        if actual == record.checksum:
            return None
        self._metrics.record_checksum_mismatch(migration.version)
        return ChecksumMismatchError(migration.version, record.checksum, actual)

    def _acquire_lock(self, connection: MigrationConnection) -> bool:
        timeout = self.config.lock_timeout
        if timeout is None:
            return False
        start = time.perf_counter()
        try:
            self._with_retries("acquire_lock", lambda: connection.acquire_lock(timeout))
        except MigrationError:
            self._metrics.record_lock_wait(_elapsed_ms(start), acquired=False)
            raise
        self._metrics.record_lock_wait(_elapsed_ms(start), acquired=True)
        return True

    def _insert_record(
        self, connection: MigrationConnection, migration: Migration, execution_ms: int
    ) -> None:
        t = self.config.table
        p = connection.placeholder
        connection.execute(
            f"INSERT INTO {t.table_name} ({t.version_column}, {t.name_column}, "
            f"{t.checksum_column}, {t.execution_time_column}, {t.success_column}) "
            f"VALUES ({p}, {p}, {p}, {p}, {p})",
            (migration.version, migration.name, migration.checksum(), execution_ms, True),
        )

    def _delete_record(self, connection: MigrationConnection, version: int) -> None:
        t = self.config.table
        connection.execute(
            f"DELETE FROM {t.table_name} WHERE {t.version_column} = {connection.placeholder}",
            (version,),
        )

    def _apply(self, connection: MigrationConnection, migration: Migration) -> None:
        start = time.perf_counter()
        migration.upgrade(connection)
        if not migration.post_check(connection):
            raise MigrationError(
                f"Post-check failed for migration {migration.version}",
                version=migration.version,
            )
        self._insert_record(connection, migration, _elapsed_ms(start))

    def _revert(self, connection: MigrationConnection, migration: Migration) -> None:
        migration.downgrade(connection)
        self._delete_record(connection, migration.version)

    def _execute_migration(
        self, connection: MigrationConnection, migration: Migration
    ) -> MigrationResult:
        """Apply one migration and its ledger row, capturing any failure."""
        version, name = migration.version, migration.name
        self._logger.info(
            f"Applying migration {version}: {name}", version=version, migration=name
        )
        start = time.perf_counter()

        with self._tracing.span(
            "migration.apply",
            attributes={"migration.version": version, "migration.name": name},
        ) as span:
            try:
                self._run_hooks("pre_migrate", migration, connection)
                if not migration.pre_check(connection):
                    raise MigrationError(
                        f"Pre-check failed for migration {version}", version=version
                    )
                if self.config.transaction_per_migration:
                    with connection.transaction():
                        self._apply(connection, migration)
                else:
                    self._apply(connection, migration)
            except Exception as e:
                elapsed = _elapsed_ms(start)
                span.set_attribute("migration.success", False)
                self._metrics.record_apply(
                    version, elapsed, False, connection.database_type
                )
                self._logger.error(
                    f"Migration {version} failed: {e}",
                    version=version,
                    migration=name,
                    duration_ms=elapsed,
                )
                return MigrationResult.failure(version, name, str(e), elapsed)

            elapsed = _elapsed_ms(start)
            span.set_attribute("migration.success", True)

        self._metrics.record_apply(version, elapsed, True, connection.database_type)
        self._logger.info(
            f"Applied migration {version}",
            version=version,
            migration=name,
            duration_ms=elapsed,
        )
        self._run_hooks("post_migrate", migration, connection)
        return MigrationResult.ok(version, name, elapsed)

    def _execute_rollback(
        self, connection: MigrationConnection, migration: Migration
    ) -> MigrationResult:
        """Revert one migration and delete its ledger row, capturing any failure."""
        version, name = migration.version, migration.name
        self._logger.info(
            f"Rolling back migration {version}: {name}", version=version, migration=name
        )
        start = time.perf_counter()

        with self._tracing.span(
            "migration.rollback",
            attributes={"migration.version": version, "migration.name": name},
        ) as span:
            try:
                self._run_hooks("pre_rollback", migration, connection)
                if self.config.transaction_per_migration:
                    with connection.transaction():
                        self._revert(connection, migration)
                else:
                    self._revert(connection, migration)
            except Exception as e:
                elapsed = _elapsed_ms(start)
                span.set_attribute("migration.success", False)
                self._metrics.record_rollback(
                    version, elapsed, False, connection.database_type
                )
                self._logger.error(
                    f"Rollback of migration {version} failed: {e}",
                    version=version,
                    migration=name,
                    duration_ms=elapsed,
                )
                return MigrationResult.failure(version, name, str(e), elapsed)

            elapsed = _elapsed_ms(start)
            span.set_attribute("migration.success", True)

        self._metrics.record_rollback(version, elapsed, True, connection.database_type)
        self._logger.info(
            f"Rolled back migration {version}",
            version=version,
            migration=name,
            duration_ms=elapsed,
        )
        self._run_hooks("post_rollback", migration, connection)
        return MigrationResult.ok(version, name, elapsed)

    # ==================== Operations ====================

    def run(
        self,
        connection: MigrationConnection,
        target_version: Optional[int] = None,
        dry_run: bool = False,
    ) -> MigrationReport:
        """
        Apply all pending migrations in ascending version order.

        Args:
            connection: Connection to migrate
            target_version: Highest version to apply (all if not specified)
            dry_run: Plan only; no DDL, no lock and nothing executed

        Returns:
            Completed report of applied, failed and skipped migrations

        Raises:
            DuplicateVersionError: If two migrations share a version
            InvalidVersionError: If a version is not positive
            FailedStateError: If the ledger holds a failed migration
            MigrationGapError: If an unapplied migration sits below a pending one
            LockError: If the migration lock cannot be acquired
            DatabaseError: If the ledger cannot be created or read
        """
        report = MigrationReport(dry_run=dry_run)
        migrations = self._sorted()
        self._validate_versions(migrations)

        with self._tracing.span(
            "migration.run",
            attributes={
                "db.system": connection.database_type,
                "migration.dry_run": dry_run,
                "migration.target_version": target_version,
            },
        ):
            if dry_run:
                ledger = self._read_ledger(connection)
                self._plan_run(migrations, ledger, target_version, report)
                report.complete()
                return report

            ledger = self._prepare_ledger(connection)
            lock_held = self._acquire_lock(connection)
            try:
                # Re-read under the lock so a concurrent runner's work is seen
                if lock_held:
                    ledger = self._load_ledger(connection)
                self._check_failed_state(ledger)

                pending = self._pending_from(migrations, ledger, target_version)
                gaps = self._find_gaps(pending, migrations, ledger)
                if gaps:
                    raise MigrationGapError(gaps[0])
                self._metrics.set_pending(len(pending), connection.database_type)

                if not pending:
                    self._logger.info("No pending migrations")

                for migration in migrations:
                    if target_version is not None and migration.version > target_version:
                        break
                    record = ledger.get(migration.version)
                    if record is not None:
                        report.add_skipped(migration.version)
                        if self.config.verify_checksums:
                            mismatch = self._compare_checksum(migration, record)
                            if mismatch is not None:
                                self._logger.warning(
                                    str(mismatch), version=migration.version
                                )
                                report.checksum_mismatches.append(mismatch)
                        continue

                    result = self._execute_migration(connection, migration)
                    if result.success:
                        report.add_success(result)
                    else:
                        report.add_failure(result)
                        if self.config.stop_on_error:
                            break
            finally:
                if lock_held:
                    connection.release_lock()

        report.complete()
        self._logger.info(report.summary())
        return report

    def _plan_run(
        self,
        migrations: List[Migration],
        ledger: Ledger,
        target_version: Optional[int],
        report: MigrationReport,
    ) -> None:
        self._check_failed_state(ledger)
        pending = self._pending_from(migrations, ledger, target_version)
        gaps = self._find_gaps(pending, migrations, ledger)
        if gaps:
            raise MigrationGapError(gaps[0])
        for migration in migrations:
            if target_version is not None and migration.version > target_version:
                break
            if migration.version in ledger:
                report.add_skipped(migration.version)
        for migration in pending:
            self._logger.info(
                f"[DRY RUN] Would apply migration {migration.version}: {migration.name}",
                version=migration.version,
                migration=migration.name,
            )
            report.planned.append(migration.version)

    @staticmethod
    def _pending_from(
        migrations: List[Migration], ledger: Ledger, target_version: Optional[int]
    ) -> List[Migration]:
        return [
            m
            for m in migrations
            if m.version not in ledger
            and (target_version is None or m.version <= target_version)
        ]

    def rollback(
        self,
        connection: MigrationConnection,
        target_version: int,
        dry_run: bool = False,
    ) -> MigrationReport:
        """
        Revert every applied migration with a version above ``target_version``.

        Migrations are reverted newest first. Versions at or below the target
        are never touched. Irreversible migrations are skipped with a warning
        and keep their ledger row.

        Args:
            connection: Connection to roll back
            target_version: New floor version (0 reverts everything)
            dry_run: Plan only; nothing executed

        Returns:
            Completed report of reverted, failed and skipped migrations
        """
        report = MigrationReport(dry_run=dry_run)
        migrations = self._sorted(reverse=True)

        with self._tracing.span(
            "migration.rollback_run",
            attributes={
                "db.system": connection.database_type,
                "migration.dry_run": dry_run,
                "migration.target_version": target_version,
            },
        ):
            ledger = self._read_ledger(connection)
            lock_held = False if dry_run else self._acquire_lock(connection)
            try:
                if lock_held:
                    ledger = self._read_ledger(connection)

                for migration in migrations:
                    if migration.version <= target_version:
                        break
                    if migration.version not in ledger:
                        continue
                    if not migration.reversible:
                        self._logger.warning(
                            f"Migration {migration.version} does not support "
                            "rollback, skipping",
                            version=migration.version,
                            migration=migration.name,
                        )
                        report.add_skipped(migration.version)
                        continue

                    if dry_run:
                        self._logger.info(
                            f"[DRY RUN] Would roll back migration {migration.version}",
                            version=migration.version,
                            migration=migration.name,
                        )
                        report.planned.append(migration.version)
                        continue

                    result = self._execute_rollback(connection, migration)
                    if result.success:
                        report.add_success(result)
                    else:
                        report.add_failure(result)
                        if self.config.stop_on_error:
                            break
            finally:
                if lock_held:
                    connection.release_lock()

        report.complete()
        self._logger.info(report.summary())
        return report

    def apply_one(self, connection: MigrationConnection, version: int) -> MigrationResult:
        """
        Apply a single migration by version, bypassing gap detection.

        Raises:
            NotFoundError: If the version is not in the migration set
            AlreadyAppliedError: If the version is already in the ledger
        """
        migration = self._find(version)
        self._validate_versions(self._sorted())
        ledger = self._prepare_ledger(connection)
        if version in ledger:
            raise AlreadyAppliedError(version)

        lock_held = self._acquire_lock(connection)
        try:
            return self._execute_migration(connection, migration)
        finally:
            if lock_held:
                connection.release_lock()

    def revert_one(self, connection: MigrationConnection, version: int) -> MigrationResult:
        """
        Revert a single applied migration by version.

        Raises:
            NotFoundError: If the version is unknown or not in the ledger
            IrreversibleMigrationError: If the migration has no down action
        """
        migration = self._find(version)
        ledger = self._read_ledger(connection)
        if version not in ledger:
            raise NotFoundError(version)
        if not migration.reversible:
            raise IrreversibleMigrationError(version)

        lock_held = self._acquire_lock(connection)
        try:
            return self._execute_rollback(connection, migration)
        finally:
            if lock_held:
                connection.release_lock()

    def status(self, connection: MigrationConnection) -> List[MigrationStatus]:
        """
        Join the migration set against the ledger.

        Pure read: no DDL and no transaction. A missing ledger table reads
        as an empty ledger.
        """
        ledger = self._read_ledger(connection)
        statuses = []
        for migration in self._sorted():
            record = ledger.get(migration.version)
            if record is None:
                statuses.append(
                    MigrationStatus(
                        version=migration.version, name=migration.name, applied=False
                    )
                )
                continue
            statuses.append(
                MigrationStatus(
                    version=migration.version,
                    name=migration.name,
                    applied=True,
                    applied_at=record.applied_at,
                    execution_time_ms=record.execution_time_ms,
                    checksum_ok=None
                    if record.checksum is None
                    else record.checksum == migration.checksum(),
                )
            )
        return statuses

    def pending(self, connection: MigrationConnection) -> List[Migration]:
        """Migrations not yet in the ledger, in ascending order."""
        ledger = self._read_ledger(connection)
        return self._pending_from(self._sorted(), ledger, None)

    def plan_rollback(
        self, connection: MigrationConnection, target_version: int
    ) -> List[Migration]:
        """Applied migrations above ``target_version``, newest first."""
        ledger = self._read_ledger(connection)
        return [
            m
            for m in self._sorted(reverse=True)
            if m.version > target_version and m.version in ledger
        ]

    def verify_checksums(
        self, connection: MigrationConnection, raise_on_mismatch: bool = False
    ) -> List[ChecksumMismatchError]:
        """
        Compare stored checksums against the current migration definitions.

        Ledger rows without a checksum are ignored. The ledger is never
        rewritten.

        Raises:
            ChecksumMismatchError: First mismatch, when ``raise_on_mismatch``
        """
        ledger = self._read_ledger(connection)
        mismatches = []
        for migration in self._sorted():
            record = ledger.get(migration.version)
            if record is None:
                continue
            mismatch = self._compare_checksum(migration, record)
            if mismatch is None:
                continue
            if raise_on_mismatch:
                raise mismatch
            self._logger.warning(str(mismatch), version=migration.version)
            mismatches.append(mismatch)
        return mismatches

    def validate(
        self, connection: Optional[MigrationConnection] = None
    ) -> ValidationReport:
        """
        Check the migration set, and the ledger when a connection is given.

        Unlike ``run`` nothing is raised: every problem found is collected
        into the returned report.
        """
        report = ValidationReport()
        seen = set()
        for migration in self._sorted():
            version = migration.version
            if not isinstance(version, int) or isinstance(version, bool) or version <= 0:
                report.invalid_versions.append(version)
            elif version in seen:
                if version not in report.duplicate_versions:
                    report.duplicate_versions.append(version)
            seen.add(version)

        versions = sorted(v for v in seen if isinstance(v, int) and v > 0)
        report.version_gaps = [
            (a, b) for a, b in zip(versions, versions[1:]) if b - a > 1
        ]

        if connection is None:
            return report

        ledger = self._read_ledger(connection)
        report.failed_versions = sorted(v for v, r in ledger.items() if not r.success)
        migrations = self._sorted()
        report.pending_gaps = self._find_gaps(
            self._pending_from(migrations, ledger, None),
            migrations,
            ledger,
            first_only=False,
        )
        for migration in migrations:
            record = ledger.get(migration.version)
            if record is not None:
                mismatch = self._compare_checksum(migration, record)
                if mismatch is not None:
                    report.checksum_mismatches.append(mismatch)
        return report
