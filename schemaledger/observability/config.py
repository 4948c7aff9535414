"""
schemaledger Observability Configuration.

Centralized setup for logging, tracing and metrics. Called once by the
command line, or by applications embedding the runner that want its spans
and metrics exported.
"""

import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from opentelemetry import metrics, trace
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.sampling import TraceIdRatioBased

from schemaledger.exceptions import ConfigurationError
from schemaledger.observability.logging import DEFAULT_SERVICE_NAME, setup_logging

# Global state for observability configuration
_observability_initialized = False
_tracer_provider: Optional[TracerProvider] = None
_meter_provider: Optional[MeterProvider] = None


@dataclass
class ObservabilityConfig:
    """
    Configuration for schemaledger observability features.

    Attributes:
        service_name: Name of the service for tracing/metrics
        environment: Deployment environment (dev, staging, prod)
        enable_tracing: Install an SDK tracer provider
        enable_metrics: Install an SDK meter provider
        enable_logging: Configure the ``schemaledger`` logger hierarchy
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: Log format ("json" or "text")
        otlp_endpoint: OpenTelemetry collector endpoint, None disables export
        trace_sample_rate: Sampling rate for traces (0.0-1.0)
        metric_export_interval_ms: How often to export metrics
    """

    service_name: str = DEFAULT_SERVICE_NAME
    environment: str = field(
        default_factory=lambda: os.environ.get("SCHEMALEDGER_ENVIRONMENT", "development")
    )
    enable_tracing: bool = False
    enable_metrics: bool = False
    enable_logging: bool = True
    log_level: str = "INFO"
    log_format: str = "text"
    otlp_endpoint: Optional[str] = field(
        default_factory=lambda: os.environ.get("OTEL_EXPORTER_OTLP_ENDPOINT")
    )
    trace_sample_rate: float = 1.0
    metric_export_interval_ms: int = 60000

    def to_dict(self) -> Dict[str, Any]:
        return {
            "service_name": self.service_name,
            "environment": self.environment,
            "enable_tracing": self.enable_tracing,
            "enable_metrics": self.enable_metrics,
            "enable_logging": self.enable_logging,
            "log_level": self.log_level,
            "log_format": self.log_format,
            "otlp_endpoint": self.otlp_endpoint,
            "trace_sample_rate": self.trace_sample_rate,
            "metric_export_interval_ms": self.metric_export_interval_ms,
        }


def configure_observability(
    service_name: str = DEFAULT_SERVICE_NAME,
    environment: Optional[str] = None,
    enable_tracing: bool = False,
    enable_metrics: bool = False,
    enable_logging: bool = True,
    log_level: str = "INFO",
    log_format: str = "text",
    otlp_endpoint: Optional[str] = None,
    trace_sample_rate: float = 1.0,
) -> ObservabilityConfig:
    """
    Configure schemaledger observability features.

    Args:
        service_name: Name of the service
        environment: Deployment environment
        enable_tracing: Enable distributed tracing
        enable_metrics: Enable metrics collection
        enable_logging: Enable structured logging
        log_level: Logging level
        log_format: Log format ("json" or "text")
        otlp_endpoint: OpenTelemetry collector endpoint
        trace_sample_rate: Sampling rate for traces

    Returns:
        ObservabilityConfig with applied settings
    """
    global _observability_initialized, _tracer_provider, _meter_provider

    config = ObservabilityConfig(
        service_name=service_name,
        enable_tracing=enable_tracing,
        enable_metrics=enable_metrics,
        enable_logging=enable_logging,
        log_level=log_level,
        log_format=log_format,
        trace_sample_rate=trace_sample_rate,
    )
    if environment:
        config.environment = environment
    if otlp_endpoint:
        config.otlp_endpoint = otlp_endpoint

    if config.enable_logging:
        setup_logging(
            level=config.log_level,
            format_type=config.log_format,
            service_name=config.service_name,
        )

    if config.enable_tracing:
        _tracer_provider = _setup_tracing(config)

    if config.enable_metrics:
        _meter_provider = _setup_metrics(config)

    _observability_initialized = True

    logging.getLogger(__name__).debug(
        "schemaledger observability configured",
        extra={
            "service_name": config.service_name,
            "environment": config.environment,
            "tracing_enabled": config.enable_tracing,
            "metrics_enabled": config.enable_metrics,
        },
    )

    return config


def _resource(config: ObservabilityConfig) -> Resource:
    return Resource.create(
        {
            "service.name": config.service_name,
            "deployment.environment": config.environment,
        }
    )


def _setup_tracing(config: ObservabilityConfig) -> TracerProvider:
    provider = TracerProvider(
        resource=_resource(config),
        sampler=TraceIdRatioBased(config.trace_sample_rate),
    )

    if config.otlp_endpoint:
        from opentelemetry.sdk.trace.export import BatchSpanProcessor

        exporter_module = _import_otlp_exporter("trace_exporter")
        provider.add_span_processor(
            BatchSpanProcessor(
                exporter_module.OTLPSpanExporter(endpoint=config.otlp_endpoint)
            )
        )

    trace.set_tracer_provider(provider)
    return provider


def _setup_metrics(config: ObservabilityConfig) -> MeterProvider:
    readers = []
    if config.otlp_endpoint:
        from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader

        exporter_module = _import_otlp_exporter("metric_exporter")
        readers.append(
            PeriodicExportingMetricReader(
                exporter_module.OTLPMetricExporter(endpoint=config.otlp_endpoint),
                export_interval_millis=config.metric_export_interval_ms,
            )
        )

    provider = MeterProvider(resource=_resource(config), metric_readers=readers)
    metrics.set_meter_provider(provider)
    return provider


def _import_otlp_exporter(name: str):
    import importlib

    try:
        return importlib.import_module(
            f"opentelemetry.exporter.otlp.proto.grpc.{name}"
        )
    except ImportError as e:
        raise ConfigurationError(
            "OTLP export requires the exporter package. "
            "Install with: pip install 'schemaledger[otlp]'"
        ) from e


def shutdown_observability():
    """
    Shutdown observability providers, flushing pending telemetry.
    """
    global _observability_initialized, _tracer_provider, _meter_provider

    if _tracer_provider is not None:
        _tracer_provider.shutdown()

    if _meter_provider is not None:
        _meter_provider.shutdown()

    _observability_initialized = False
    _tracer_provider = None
    _meter_provider = None


def is_observability_initialized() -> bool:
    return _observability_initialized
