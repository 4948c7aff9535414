"""
schemaledger Command Line Interface.

Usage:
    # Scaffold a new migration pair in ./migrations
    schemaledger create add_users_table

    # Apply pending migrations (or preview them)
    schemaledger --database-url sqlite:///app.db run
    schemaledger run --dry-run --target 20240101120000

    # Roll back everything above a version
    schemaledger rollback --to 20240101120000

    # Inspect
    schemaledger status --detailed
    schemaledger list --pending
    schemaledger validate --check-gaps --verify-checksums
"""

import argparse
import logging
import sys
from contextlib import closing
from typing import Any, Dict, List, Optional

from schemaledger.config.loader import ConfigLoader
from schemaledger.config.settings import MigrationConfig
from schemaledger.connections import MigrationConnection, connect
from schemaledger.exceptions import SchemaLedgerError
from schemaledger.migrations.loader import (
    create_migration_files,
    load_migrations_from_directory,
)
from schemaledger.migrations.runner import MigrationRunner
from schemaledger.observability.config import configure_observability
from schemaledger.types import MigrationReport

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "schemaledger.yaml"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="schemaledger",
        description="schemaledger - versioned database migrations",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    schemaledger create add_users_table
    schemaledger --database-url postgresql://localhost/app run --dry-run
    schemaledger rollback --to 20240101120000
        """,
    )
    parser.add_argument(
        "--config",
        type=str,
        default=DEFAULT_CONFIG_PATH,
        help=f"Path to config file (default: {DEFAULT_CONFIG_PATH})",
    )
    parser.add_argument(
        "--database-url",
        type=str,
        default=None,
        help="Database URL, overrides the config file",
    )
    parser.add_argument(
        "--directory",
        "-d",
        type=str,
        default=None,
        help="Migrations directory, overrides the config file",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable debug logging and SQL tracing",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    create = subparsers.add_parser("create", help="Create a new migration pair")
    create.add_argument("name", help="Migration name")
    create.add_argument("--version", type=int, default=None, help="Explicit version")

    run = subparsers.add_parser("run", help="Apply pending migrations")
    run.add_argument("--dry-run", action="store_true", help="Show what would run")
    run.add_argument("--target", type=int, default=None, help="Highest version to apply")

    rollback = subparsers.add_parser("rollback", help="Roll back migrations")
    rollback.add_argument(
        "--to", dest="target", type=int, required=True, help="Version to roll back to"
    )
    rollback.add_argument(
        "--dry-run", action="store_true", help="Show what would be rolled back"
    )

    status = subparsers.add_parser("status", help="Show migration status")
    status.add_argument(
        "--detailed", action="store_true", help="Include checksums and timings"
    )

    validate = subparsers.add_parser("validate", help="Validate migrations")
    validate.add_argument("--check-gaps", action="store_true", help="Check version gaps")
    validate.add_argument(
        "--verify-checksums", action="store_true", help="Verify applied checksums"
    )

    list_cmd = subparsers.add_parser("list", help="List migrations")
    which = list_cmd.add_mutually_exclusive_group()
    which.add_argument("--pending", action="store_true", help="Only pending")
    which.add_argument("--applied", action="store_true", help="Only applied")

    return parser


class CommandContext:
    """Resolved settings shared by the subcommands."""

    def __init__(self, args: argparse.Namespace, config: Dict[str, Any]):
        self.args = args
        self.config = config
        migrations_section = dict(config.get("migrations") or {})
        if args.verbose:
            migrations_section["log_sql"] = True
        self.directory: str = args.directory or migrations_section.get(
            "directory", "migrations"
        )
        self.database_url: Optional[str] = args.database_url or config.get(
            "database_url"
        )
        self.migration_config = MigrationConfig.from_dict(migrations_section)

    def runner(self) -> MigrationRunner:
        return MigrationRunner(self.migration_config).add_migrations(
            load_migrations_from_directory(self.directory)
        )

    def connect(self) -> MigrationConnection:
        return connect(
            self.database_url or "",
            log_sql=self.migration_config.log_sql,
            table_name=self.migration_config.table.table_name,
        )


def _print_report(report: MigrationReport, action: str) -> None:
    if report.dry_run:
        if report.planned:
            print(f"Would {action} {len(report.planned)} migration(s):")
            for version in report.planned:
                print(f"  {version}")
        else:
            print(f"Nothing to {action}")
        return

    for result in report.successful:
        print(f"  OK      {result.version} {result.name} ({result.execution_time_ms}ms)")
    for result in report.failed:
        print(f"  FAILED  {result.version} {result.name}: {result.error}")
    for mismatch in report.checksum_mismatches:
        print(f"  WARNING {mismatch}")
    print(report.summary())


def cmd_create(ctx: CommandContext) -> int:
    up_path, down_path = create_migration_files(
        ctx.directory, ctx.args.name, version=ctx.args.version
    )
    print(f"Created {up_path}")
    print(f"Created {down_path}")
    return 0


def cmd_run(ctx: CommandContext) -> int:
    runner = ctx.runner()
    with closing(ctx.connect()) as conn:
        report = runner.run(conn, target_version=ctx.args.target, dry_run=ctx.args.dry_run)
    _print_report(report, "apply")
    return 0 if report.is_success() else 1


def cmd_rollback(ctx: CommandContext) -> int:
    runner = ctx.runner()
    with closing(ctx.connect()) as conn:
        report = runner.rollback(conn, ctx.args.target, dry_run=ctx.args.dry_run)
    _print_report(report, "roll back")
    for version in report.skipped:
        print(f"  SKIPPED {version} (irreversible)")
    return 0 if report.is_success() else 1


def cmd_status(ctx: CommandContext) -> int:
    runner = ctx.runner()
    with closing(ctx.connect()) as conn:
        statuses = runner.status(conn)

    if not statuses:
        print(f"No migrations found in {ctx.directory}")
        return 0

    for status in statuses:
        state = "applied" if status.applied else "pending"
        line = f"{status.version:>16}  {state:8s} {status.name}"
        if status.applied and status.applied_at:
            line += f"  ({status.applied_at:%Y-%m-%d %H:%M:%S})"
        if ctx.args.detailed and status.applied:
            checksum = {True: "ok", False: "MISMATCH", None: "n/a"}[status.checksum_ok]
            line += f"  checksum={checksum} time={status.execution_time_ms}ms"
        print(line)

    applied = sum(1 for s in statuses if s.applied)
    print(f"{applied} applied, {len(statuses) - applied} pending")
    return 0


def cmd_validate(ctx: CommandContext) -> int:
    check_gaps = ctx.args.check_gaps
    verify = ctx.args.verify_checksums
    if not check_gaps and not verify:
        check_gaps = verify = True

    runner = ctx.runner()
    if ctx.database_url:
        with closing(ctx.connect()) as conn:
            report = runner.validate(conn)
    else:
        report = runner.validate()

    errors: List[str] = []
    errors.extend(f"Duplicate version {v}" for v in report.duplicate_versions)
    errors.extend(f"Invalid version {v}" for v in report.invalid_versions)
    errors.extend(f"Migration {v} is in a failed state" for v in report.failed_versions)

    if check_gaps:
        for low, high in report.version_gaps:
            print(f"Warning: gap between versions {low} and {high}")
        errors.extend(
            f"Migration {v} is unapplied below a pending migration"
            for v in report.pending_gaps
        )
    if verify:
        errors.extend(str(m) for m in report.checksum_mismatches)

    for error in errors:
        print(f"Error: {error}")
    if errors:
        return 1
    print("All migrations valid")
    return 0


def cmd_list(ctx: CommandContext) -> int:
    runner = ctx.runner()
    if ctx.args.pending or ctx.args.applied:
        with closing(ctx.connect()) as conn:
            statuses = runner.status(conn)
        wanted = [s for s in statuses if s.applied == bool(ctx.args.applied)]
        for status in wanted:
            print(f"{status.version}  {status.name}")
        return 0

    for migration in runner.migrations:
        kind = "reversible" if migration.reversible else "irreversible"
        print(f"{migration.version}  {migration.name}  [{kind}]")
    return 0


COMMANDS = {
    "create": cmd_create,
    "run": cmd_run,
    "rollback": cmd_rollback,
    "status": cmd_status,
    "validate": cmd_validate,
    "list": cmd_list,
}


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point. Returns the process exit code."""
    parser = build_parser()
    args = parser.parse_args(argv)

    config = ConfigLoader.load(
        args.config, warn_missing=args.config != DEFAULT_CONFIG_PATH
    )
    logging_section = config.get("logging") or {}
    configure_observability(
        log_level="DEBUG" if args.verbose else logging_section.get("level", "INFO"),
        log_format=logging_section.get("format", "text"),
    )

    try:
        ctx = CommandContext(args, config)
        return COMMANDS[args.command](ctx)
    except SchemaLedgerError as e:
        logger.debug("Command failed", exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
