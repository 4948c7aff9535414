"""
schemaledger Exception Hierarchy

Custom exceptions for the migration runner, separating configuration
problems, validation failures detected before any side effect, and
per-migration execution failures.
"""

from typing import Optional


class SchemaLedgerError(Exception):
    """Base exception for all schemaledger errors."""

    pass


class ConfigurationError(SchemaLedgerError):
    """Raised when configuration is invalid or missing."""

    pass


class MigrationError(SchemaLedgerError):
    """Exception raised when a migration operation fails."""

    def __init__(
        self,
        message: str,
        version: Optional[int] = None,
        cause: Optional[Exception] = None,
    ):
        self.version = version
        self.cause = cause
        super().__init__(message)


class DatabaseError(MigrationError):
    """
    Opaque failure reported by the connection capability.

    Attributes:
        retryable: True when the failure is transient (locked database,
            serialization failure, dropped connection) and the operation
            may be attempted again.
    """

    def __init__(
        self,
        message: str,
        version: Optional[int] = None,
        cause: Optional[Exception] = None,
        retryable: bool = False,
    ):
        self.retryable = retryable
        super().__init__(f"Database error: {message}", version=version, cause=cause)


class DuplicateVersionError(MigrationError):
    """Raised when two migrations in the active set share a version."""

    def __init__(self, version: int):
        super().__init__(f"Duplicate migration version: {version}", version=version)


class InvalidVersionError(MigrationError):
    """Raised when a migration version is not strictly positive."""

    def __init__(self, version: int):
        super().__init__(f"Invalid migration version: {version}", version=version)


class MigrationGapError(MigrationError):
    """Raised when an unapplied migration sits below a pending one."""

    def __init__(self, version: int):
        super().__init__(
            f"Migration gap detected: missing version {version}", version=version
        )


class ChecksumMismatchError(MigrationError):
    """Raised when an applied migration was edited after being applied."""

    def __init__(self, version: int, expected: str, actual: str):
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Checksum mismatch for migration {version}: "
            f"expected {expected}, got {actual}",
            version=version,
        )


class AlreadyAppliedError(MigrationError):
    """Raised when asked to apply a migration that is already in the ledger."""

    def __init__(self, version: int):
        super().__init__(
            f"Migration {version} has already been applied", version=version
        )


class LockError(MigrationError):
    """Raised when the migration lock cannot be acquired in time."""

    def __init__(self, message: str, cause: Optional[Exception] = None):
        super().__init__(f"Failed to acquire migration lock: {message}", cause=cause)


class FailedStateError(MigrationError):
    """Raised when the ledger holds a migration marked as failed."""

    def __init__(self, version: int):
        super().__init__(
            f"Migration {version} is in a failed state and must be resolved manually",
            version=version,
        )


class NotFoundError(MigrationError):
    """Raised when a version is not part of the configured migration set."""

    def __init__(self, version: int):
        super().__init__(f"Migration {version} not found", version=version)


class IrreversibleMigrationError(MigrationError):
    """Raised when a migration without a down action is asked to revert."""

    def __init__(self, version: int):
        super().__init__(
            f"Migration {version} does not support rollback", version=version
        )
