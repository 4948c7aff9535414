"""
schemaledger Migrations.

Versioned schema changes, the runner that applies them, and discovery of
SQL migration files.

Usage:
    from schemaledger.migrations import MigrationRunner, load_migrations_from_directory

    runner = MigrationRunner().add_migrations(
        load_migrations_from_directory("migrations")
    )
    report = runner.run(connection)
"""

from schemaledger.migrations.base import (
    CallableMigration,
    Migration,
    MigrationRegistry,
    SQLMigration,
    compute_checksum,
    get_registry,
    register_migration,
)
from schemaledger.migrations.loader import (
    create_migration_files,
    load_migrations_from_directory,
)
from schemaledger.migrations.runner import MigrationRunner
from schemaledger.migrations.sql import split_sql_statements

__all__ = [
    "CallableMigration",
    "Migration",
    "MigrationRegistry",
    "MigrationRunner",
    "SQLMigration",
    "compute_checksum",
    "create_migration_files",
    "get_registry",
    "load_migrations_from_directory",
    "register_migration",
    "split_sql_statements",
]
