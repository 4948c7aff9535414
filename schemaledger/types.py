"""
schemaledger Types

Defines the ledger record, per-migration results, run reports and the
derived status view produced by the migration runner.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Tuple

if TYPE_CHECKING:
    from schemaledger.exceptions import ChecksumMismatchError


def utcnow() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


@dataclass
class MigrationRecord:
    """
    A persisted ledger row, one per applied migration.

    A record exists for a version if and only if that version has been
    applied successfully and not rolled back since.
    """

    version: int
    name: str
    applied_at: datetime = field(default_factory=utcnow)
    checksum: Optional[str] = None
    execution_time_ms: Optional[int] = None
    success: bool = True


@dataclass
class MigrationResult:
    """Outcome of applying or reverting a single migration."""

    version: int
    name: str
    success: bool
    execution_time_ms: int = 0
    error: Optional[str] = None
    executed_at: datetime = field(default_factory=utcnow)

    @classmethod
    def ok(cls, version: int, name: str, execution_time_ms: int) -> "MigrationResult":
        """Create a successful result."""
        return cls(
            version=version,
            name=name,
            success=True,
            execution_time_ms=execution_time_ms,
        )

    @classmethod
    def failure(
        cls, version: int, name: str, error: str, execution_time_ms: int
    ) -> "MigrationResult":
        """Create a failed result."""
        return cls(
            version=version,
            name=name,
            success=False,
            error=error,
            execution_time_ms=execution_time_ms,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "name": self.name,
            "success": self.success,
            "error": self.error,
            "execution_time_ms": self.execution_time_ms,
            "executed_at": self.executed_at.isoformat(),
        }


@dataclass
class MigrationReport:
    """
    Summary of one run or rollback invocation.

    The report is ephemeral; the ledger remains the durable record of what
    was actually applied. ``complete()`` may be called exactly once, after
    which ``completed_at`` and ``total_time_ms`` are fixed.
    """

    successful: List[MigrationResult] = field(default_factory=list)
    failed: List[MigrationResult] = field(default_factory=list)
    skipped: List[int] = field(default_factory=list)
    checksum_mismatches: List["ChecksumMismatchError"] = field(default_factory=list)
    planned: List[int] = field(default_factory=list)
    dry_run: bool = False
    started_at: datetime = field(default_factory=utcnow)
    completed_at: Optional[datetime] = None
    total_time_ms: int = 0

    def add_success(self, result: MigrationResult) -> None:
        self.successful.append(result)

    def add_failure(self, result: MigrationResult) -> None:
        self.failed.append(result)

    def add_skipped(self, version: int) -> None:
        self.skipped.append(version)

    def complete(self) -> None:
        """Mark the report as completed and derive the total time."""
        if self.completed_at is not None:
            raise RuntimeError("Migration report has already been completed")
        self.completed_at = utcnow()
        delta = self.completed_at - self.started_at
        self.total_time_ms = int(delta.total_seconds() * 1000)

    @property
    def is_complete(self) -> bool:
        return self.completed_at is not None

    def successful_count(self) -> int:
        return len(self.successful)

    def failed_count(self) -> int:
        return len(self.failed)

    def is_success(self) -> bool:
        """True when no migration failed."""
        return not self.failed

    def summary(self) -> str:
        return (
            f"Migration Report: {self.successful_count()} successful, "
            f"{self.failed_count()} failed, {len(self.skipped)} skipped "
            f"({self.total_time_ms}ms)"
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert report to a JSON-serializable dictionary."""
        return {
            "successful": [r.to_dict() for r in self.successful],
            "failed": [r.to_dict() for r in self.failed],
            "skipped": list(self.skipped),
            "planned": list(self.planned),
            "dry_run": self.dry_run,
            "checksum_mismatches": [
                {"version": e.version, "expected": e.expected, "actual": e.actual}
                for e in self.checksum_mismatches
            ],
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat()
            if self.completed_at
            else None,
            "total_time_ms": self.total_time_ms,
        }


@dataclass
class MigrationStatus:
    """
    Derived view of one configured migration joined against the ledger.

    ``checksum_ok`` is None when the migration is not applied or the
    ledger row carries no checksum.
    """

    version: int
    name: str
    applied: bool
    applied_at: Optional[datetime] = None
    execution_time_ms: Optional[int] = None
    checksum_ok: Optional[bool] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "name": self.name,
            "applied": self.applied,
            "applied_at": self.applied_at.isoformat() if self.applied_at else None,
            "execution_time_ms": self.execution_time_ms,
            "checksum_ok": self.checksum_ok,
        }


@dataclass
class ValidationReport:
    """
    Result of validating the migration set, optionally against a ledger.

    ``version_gaps`` lists numeric holes between consecutive versions of the
    set. They are informational only, since timestamp versions are sparse.
    """

    duplicate_versions: List[int] = field(default_factory=list)
    invalid_versions: List[int] = field(default_factory=list)
    version_gaps: List[Tuple[int, int]] = field(default_factory=list)
    pending_gaps: List[int] = field(default_factory=list)
    failed_versions: List[int] = field(default_factory=list)
    checksum_mismatches: List["ChecksumMismatchError"] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not (
            self.duplicate_versions
            or self.invalid_versions
            or self.pending_gaps
            or self.failed_versions
            or self.checksum_mismatches
        )
