"""
schemaledger Distributed Tracing.

Spans around migration runs using the OpenTelemetry API. Without an SDK
configured (see ``configure_observability``) the API hands out
non-recording spans, so tracing costs nothing unless it is enabled.
"""

import functools
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterator, Optional, TypeVar, Union

from opentelemetry import trace
from opentelemetry.trace import SpanKind, Status, StatusCode

# Type variable for decorated functions
F = TypeVar("F", bound=Callable[..., Any])

TRACER_NAME = "schemaledger"


class TracingContext:
    """
    Context for span creation around runner operations.

    Usage:
        tracing = TracingContext()
        with tracing.span("migration.apply", attributes={"migration.version": 3}):
            ...
    """

    def __init__(self, tracer_name: str = TRACER_NAME):
        self.tracer_name = tracer_name
        self._tracer = None

    @property
    def tracer(self) -> trace.Tracer:
        """Get the tracer (lazy initialization)."""
        if self._tracer is None:
            self._tracer = get_tracer(self.tracer_name)
        return self._tracer

    @contextmanager
    def span(
        self,
        name: str,
        kind: SpanKind = SpanKind.INTERNAL,
        attributes: Optional[Dict[str, Any]] = None,
    ) -> Iterator[trace.Span]:
        """
        Create a span set as current for the duration of the block.

        Exceptions escaping the block are recorded on the span and mark it
        as errored before propagating.
        """
        with self.tracer.start_as_current_span(
            name,
            kind=kind,
            attributes=_clean_attributes(attributes),
            record_exception=False,
            set_status_on_exception=False,
        ) as span:
            try:
                yield span
            except Exception as e:
                span.record_exception(e)
                span.set_status(Status(StatusCode.ERROR, str(e)))
                raise


def get_tracer(name: str = TRACER_NAME) -> trace.Tracer:
    """Get an OpenTelemetry tracer for the given name."""
    return trace.get_tracer(name)


def get_current_span() -> trace.Span:
    return trace.get_current_span()


def trace_method(
    name: Optional[str] = None,
    kind: SpanKind = SpanKind.INTERNAL,
    record_args: bool = False,
) -> Callable[[F], F]:
    """
    Decorator to trace a synchronous function or method.

    Args:
        name: Span name (defaults to the function's qualified name)
        kind: Span kind
        record_args: Record keyword arguments as ``arg.*`` attributes

    Usage:
        @trace_method(name="migrations.load_directory")
        def load_migrations_from_directory(directory):
            ...
    """

    def decorator(func: F) -> F:
        span_name = name or func.__qualname__

        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            attributes: Dict[str, Any] = {
                "code.function": func.__name__,
                "code.namespace": func.__module__,
            }
            if record_args:
                for key, value in kwargs.items():
                    attributes[f"arg.{key}"] = _safe_attribute_value(value)

            with TracingContext(func.__module__).span(
                span_name, kind=kind, attributes=attributes
            ):
                return func(*args, **kwargs)

        return wrapper  # type: ignore

    return decorator


def _clean_attributes(
    attributes: Optional[Dict[str, Any]],
) -> Optional[Dict[str, Union[str, int, float, bool]]]:
    if not attributes:
        return None
    cleaned = {}
    for key, value in attributes.items():
        safe = _safe_attribute_value(value)
        if safe is not None:
            cleaned[key] = safe
    return cleaned


def _safe_attribute_value(value: Any) -> Optional[Union[str, int, float, bool]]:
    """
    Convert a value to a safe attribute value for tracing.

    OpenTelemetry only supports primitive types for attributes.
    """
    if value is None:
        return None
    if isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, (list, tuple)):
        if len(value) <= 10:
            return str(value)
        return f"[{len(value)} items]"
    return f"<{type(value).__name__}>"
