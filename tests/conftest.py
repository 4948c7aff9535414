"""
schemaledger Shared Test Fixtures.

Provides common fixtures for unit and integration tests:
1. Connections (in-memory fake, real SQLite)
2. Runners over small migration sets
3. Isolation of process-global state (metrics, registry)
"""

from pathlib import Path
from typing import Generator, List

import pytest

from schemaledger.config.settings import MigrationConfig
from schemaledger.connections.sqlite import SQLiteMigrationConnection
from schemaledger.migrations.base import SQLMigration, get_registry
from schemaledger.migrations.runner import MigrationRunner
from schemaledger.observability.metrics import (
    MetricsCollector,
    MigrationMetrics,
    set_metrics,
)
from schemaledger.testing import InMemoryConnection, create_test_migrations

# =============================================================================
# Global state
# =============================================================================


@pytest.fixture(autouse=True)
def reset_global_state() -> Generator[None, None, None]:
    """Reset the global metrics instance and registry around every test."""
    set_metrics(None)
    get_registry().clear()
    yield
    set_metrics(None)
    get_registry().clear()


@pytest.fixture
def metrics() -> MigrationMetrics:
    """Metrics sink that records in memory only."""
    return MigrationMetrics(MetricsCollector(use_otel=False))


# =============================================================================
# Connections
# =============================================================================


@pytest.fixture
def memory_conn() -> InMemoryConnection:
    """Fake connection with a simulated ledger."""
    return InMemoryConnection()


@pytest.fixture
def sqlite_conn(tmp_path: Path) -> Generator[SQLiteMigrationConnection, None, None]:
    """Real SQLite connection on a temporary database file."""
    conn = SQLiteMigrationConnection(tmp_path / "test.db")
    yield conn
    conn.close()


# =============================================================================
# Runners
# =============================================================================


@pytest.fixture
def fast_config() -> MigrationConfig:
    """Config with no retry delay, so retry tests do not sleep."""
    return MigrationConfig(retry_delay=0.0)


@pytest.fixture
def three_migrations() -> List[SQLMigration]:
    return create_test_migrations(3)


@pytest.fixture
def runner(
    fast_config: MigrationConfig,
    three_migrations: List[SQLMigration],
    metrics: MigrationMetrics,
) -> MigrationRunner:
    """Runner over three reversible test migrations."""
    return MigrationRunner(fast_config, three_migrations, metrics=metrics)
