"""
schemaledger Observability Module.

Structured logging, OpenTelemetry tracing and metrics for migration runs.

Usage:
    from schemaledger.observability import configure_observability, get_logger

    configure_observability(log_level="DEBUG", log_format="json")
    logger = get_logger(__name__)
    logger.info("Starting deploy", environment="staging")
"""

from schemaledger.observability.config import (
    ObservabilityConfig,
    configure_observability,
    shutdown_observability,
)
from schemaledger.observability.logging import (
    JSONFormatter,
    StructuredLogger,
    TextFormatter,
    get_logger,
    setup_logging,
)
from schemaledger.observability.metrics import (
    InMemoryMetricsCollector,
    MetricsCollector,
    MigrationMetrics,
    get_meter,
    get_metrics,
    set_metrics,
)
from schemaledger.observability.tracing import (
    TracingContext,
    get_tracer,
    trace_method,
)

__all__ = [
    # Configuration
    "ObservabilityConfig",
    "configure_observability",
    "shutdown_observability",
    # Logging
    "JSONFormatter",
    "StructuredLogger",
    "TextFormatter",
    "get_logger",
    "setup_logging",
    # Metrics
    "InMemoryMetricsCollector",
    "MetricsCollector",
    "MigrationMetrics",
    "get_meter",
    "get_metrics",
    "set_metrics",
    # Tracing
    "TracingContext",
    "get_tracer",
    "trace_method",
]
