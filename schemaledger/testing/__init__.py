"""
schemaledger Testing Module.

Reusable test utilities for code that runs migrations:

- InMemoryConnection: Fake connection with a simulated ledger and schema
- Factory functions: Create migrations and ledger records with defaults

Example usage:
    >>> from schemaledger.migrations import MigrationRunner
    >>> from schemaledger.testing import InMemoryConnection, create_test_migrations
    >>>
    >>> def test_deploy_applies_everything():
    ...     conn = InMemoryConnection()
    ...     runner = MigrationRunner(migrations=create_test_migrations(3))
    ...     report = runner.run(conn)
    ...     assert report.successful_count() == 3
"""

from schemaledger.testing.factories import (
    create_test_migration,
    create_test_migrations,
    create_test_record,
)
from schemaledger.testing.mocks import InMemoryConnection

__all__ = [
    # Mocks
    "InMemoryConnection",
    # Factories
    "create_test_migration",
    "create_test_migrations",
    "create_test_record",
]
