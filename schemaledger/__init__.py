"""
schemaledger - Versioned Database Migrations

Applies, tracks, verifies and reverses ordered schema changes against a
relational database. Every applied migration is recorded in a ledger table
together with a checksum of its definition, so later edits are detected
and rollbacks know exactly what to undo.

Quick start:

    from schemaledger import MigrationRunner, SQLMigration
    from schemaledger.connections import SQLiteMigrationConnection

    runner = MigrationRunner().add_migrations([
        SQLMigration(1, "create_users",
                     "CREATE TABLE users (id INTEGER PRIMARY KEY)",
                     "DROP TABLE users"),
    ])
    with SQLiteMigrationConnection("app.db") as conn:
        report = runner.run(conn)
        print(report.summary())

Testing Support:
    For testing code that runs migrations, use the `schemaledger.testing`
    module:

        from schemaledger.testing import InMemoryConnection, create_test_migrations

        def test_deploy():
            conn = InMemoryConnection()
            runner = MigrationRunner(migrations=create_test_migrations(3))
            assert runner.run(conn).successful_count() == 3
"""

__version__ = "0.1.0"

# Configuration
from schemaledger.config import (
    ConfigLoader,
    MigrationConfig,
    MigrationConfigBuilder,
    TableConfig,
)

# Connections
from schemaledger.connections import (
    MigrationConnection,
    SQLiteMigrationConnection,
    connect,
)

# Exceptions
from schemaledger.exceptions import (
    AlreadyAppliedError,
    ChecksumMismatchError,
    ConfigurationError,
    DatabaseError,
    DuplicateVersionError,
    FailedStateError,
    InvalidVersionError,
    IrreversibleMigrationError,
    LockError,
    MigrationError,
    MigrationGapError,
    NotFoundError,
    SchemaLedgerError,
)

# Migrations
from schemaledger.migrations import (
    CallableMigration,
    Migration,
    MigrationRegistry,
    MigrationRunner,
    SQLMigration,
    create_migration_files,
    get_registry,
    load_migrations_from_directory,
    register_migration,
)

# Types
from schemaledger.types import (
    MigrationRecord,
    MigrationReport,
    MigrationResult,
    MigrationStatus,
    ValidationReport,
)

__all__ = [
    "__version__",
    # Configuration
    "ConfigLoader",
    "MigrationConfig",
    "MigrationConfigBuilder",
    "TableConfig",
    # Connections
    "MigrationConnection",
    "SQLiteMigrationConnection",
    "connect",
    # Exceptions
    "AlreadyAppliedError",
    "ChecksumMismatchError",
    "ConfigurationError",
    "DatabaseError",
    "DuplicateVersionError",
    "FailedStateError",
    "InvalidVersionError",
    "IrreversibleMigrationError",
    "LockError",
    "MigrationError",
    "MigrationGapError",
    "NotFoundError",
    "SchemaLedgerError",
    # Migrations
    "CallableMigration",
    "Migration",
    "MigrationRegistry",
    "MigrationRunner",
    "SQLMigration",
    "create_migration_files",
    "get_registry",
    "load_migrations_from_directory",
    "register_migration",
    # Types
    "MigrationRecord",
    "MigrationReport",
    "MigrationResult",
    "MigrationStatus",
    "ValidationReport",
]
