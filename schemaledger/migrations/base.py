"""
schemaledger Migrations - Base Classes.

Provides the migration abstraction, SQL- and callable-backed migrations, and
a registry for collecting migrations declared in code.
"""

import hashlib
import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Callable, Dict, List, Optional, Type, Union

from schemaledger.exceptions import (
    DuplicateVersionError,
    InvalidVersionError,
    IrreversibleMigrationError,
)
from schemaledger.migrations.sql import split_sql_statements

if TYPE_CHECKING:
    from schemaledger.connections.base import MigrationConnection

logger = logging.getLogger(__name__)


def compute_checksum(*parts: str) -> str:
    """SHA-256 hex digest over the concatenated parts."""
    hasher = hashlib.sha256()
    for part in parts:
        hasher.update(part.encode("utf-8"))
    return hasher.hexdigest()


class Migration(ABC):
    """
    Abstract base class for schema migrations.

    Subclasses set ``version`` (a positive integer, unique within the active
    set) and ``name``, implement ``upgrade()`` and optionally
    ``downgrade()``. A migration that does not override ``downgrade()`` is
    irreversible: rollback skips it and keeps its ledger row.

    Example:
        class AddTagsColumn(Migration):
            version = 3
            name = "add_tags_column"

            def upgrade(self, connection):
                connection.execute("ALTER TABLE posts ADD COLUMN tags TEXT")

            def downgrade(self, connection):
                connection.execute("ALTER TABLE posts DROP COLUMN tags")
    """

    # These must be set by subclasses
    version: int = 0
    name: str = ""

    @abstractmethod
    def upgrade(self, connection: "MigrationConnection") -> None:
        """
        Apply the migration.

        Args:
            connection: Connection to run statements on
        """
        pass

    def downgrade(self, connection: "MigrationConnection") -> None:
        """
        Revert the migration.

        Raises:
            IrreversibleMigrationError: If the migration has no down action
        """
        raise IrreversibleMigrationError(self.version)

    @property
    def reversible(self) -> bool:
        return type(self).downgrade is not Migration.downgrade

    def checksum(self) -> str:
        """
        Digest identifying this migration's definition.

        Defaults to SHA-256 over the version and name. Subclasses that
        carry a body should include it so edits after apply are detected.
        """
        return compute_checksum(str(self.version), self.name)

    def pre_check(self, connection: "MigrationConnection") -> bool:
        """
        Optional pre-migration check.

        Returns:
            True if migration can proceed, False otherwise
        """
        return True

    def post_check(self, connection: "MigrationConnection") -> bool:
        """
        Optional post-migration verification.

        Returns:
            True if migration was successful
        """
        return True

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.version} {self.name!r}>"


class SQLMigration(Migration):
    """
    Migration defined by SQL text.

    Scripts may hold several statements; they are split and executed one at
    a time. Without ``down_sql`` the migration is irreversible.
    """

    def __init__(
        self,
        version: int,
        name: str,
        up_sql: str,
        down_sql: Optional[str] = None,
    ):
        self.version = version
        self.name = name
        self.up_sql = up_sql
        self.down_sql = down_sql

    def upgrade(self, connection: "MigrationConnection") -> None:
        for statement in split_sql_statements(self.up_sql):
            connection.execute(statement)

    def downgrade(self, connection: "MigrationConnection") -> None:
        if self.down_sql is None:
            raise IrreversibleMigrationError(self.version)
        for statement in split_sql_statements(self.down_sql):
            connection.execute(statement)

    @property
    def reversible(self) -> bool:
        return self.down_sql is not None

    def checksum(self) -> str:
        return compute_checksum(
            str(self.version), self.name, self.up_sql, self.down_sql or ""
        )


MigrationFn = Callable[["MigrationConnection"], None]


class CallableMigration(Migration):
    """Migration wrapping plain functions, for data fixes written in Python."""

    def __init__(
        self,
        version: int,
        name: str,
        up: MigrationFn,
        down: Optional[MigrationFn] = None,
    ):
        self.version = version
        self.name = name
        self._up = up
        self._down = down

    def upgrade(self, connection: "MigrationConnection") -> None:
        self._up(connection)

    def downgrade(self, connection: "MigrationConnection") -> None:
        if self._down is None:
            raise IrreversibleMigrationError(self.version)
        self._down(connection)

    @property
    def reversible(self) -> bool:
        return self._down is not None


MigrationLike = Union[Migration, Type[Migration]]


class MigrationRegistry:
    """
    Registry for migrations declared in code.

    Accepts instances or classes (instantiated without arguments) and
    rejects invalid or duplicate versions at registration time.
    """

    def __init__(self) -> None:
        self._migrations: Dict[int, Migration] = {}

    def register(self, migration: MigrationLike) -> MigrationLike:
        """
        Register a migration.

        Args:
            migration: Migration instance or class

        Returns:
            The argument unchanged (for use as decorator)

        Raises:
            InvalidVersionError: If the version is not a positive integer
            DuplicateVersionError: If the version is already registered
        """
        instance = migration() if isinstance(migration, type) else migration
        version = instance.version
        if not isinstance(version, int) or isinstance(version, bool) or version <= 0:
            raise InvalidVersionError(version)
        if version in self._migrations:
            raise DuplicateVersionError(version)

        self._migrations[version] = instance
        logger.debug(f"Registered migration {version}: {instance.name}")
        return migration

    def get_migration(self, version: int) -> Optional[Migration]:
        return self._migrations.get(version)

    def get_all_migrations(self) -> List[Migration]:
        """All registered migrations in ascending version order."""
        return [self._migrations[v] for v in sorted(self._migrations)]

    def clear(self) -> None:
        self._migrations.clear()

    def __len__(self) -> int:
        return len(self._migrations)

    def __contains__(self, version: object) -> bool:
        return version in self._migrations


# Global registry instance
_global_registry = MigrationRegistry()


def register_migration(
    registry: Optional[MigrationRegistry] = None,
) -> Callable[[Type[Migration]], Type[Migration]]:
    """
    Decorator to register a migration class.

    Args:
        registry: Registry to add to (the global one if not given)

    Example:
        @register_migration()
        class CreateUsers(Migration):
            version = 1
            name = "create_users"
            ...
    """

    def decorator(cls: Type[Migration]) -> Type[Migration]:
        (registry or _global_registry).register(cls)
        return cls

    return decorator


def get_registry() -> MigrationRegistry:
    """Get the global migration registry."""
    return _global_registry
