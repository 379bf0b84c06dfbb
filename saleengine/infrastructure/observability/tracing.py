"""Optional OpenTelemetry tracing for the engine's critical sections.

Spans wrap bid placement, settlement sweeps and line transitions. Tracing is
off until :func:`configure_tracing` runs (the API does so from the
``tracing`` config section); while off, :func:`trace_span` yields ``None``
and :func:`set_span_attribute` does nothing.

    configure_tracing(service_name="saleengine-api", endpoint="http://localhost:4317")

    with trace_span("bid.place", item_id=item_id):
        ...
        set_span_attribute("bid.outcome", "accepted")
"""

from __future__ import annotations

import os
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, Iterator, Mapping

from opentelemetry import trace
from opentelemetry.sdk.resources import SERVICE_NAME, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import ConsoleSpanExporter, SimpleSpanProcessor
from opentelemetry.sdk.trace.sampling import TraceIdRatioBased
from opentelemetry.trace import Span, Status, StatusCode

from saleengine.domain.errors import EngineError

from .logging import get_logger

logger = get_logger(__name__)

_tracer: trace.Tracer | None = None

# Trace/span ids of the innermost engine span, for log correlation.
_trace_context: ContextVar[dict[str, str]] = ContextVar("saleengine_trace_context", default={})


def is_tracing_enabled() -> bool:
    return _tracer is not None


def get_trace_context() -> dict[str, str]:
    return dict(_trace_context.get())


def configure_tracing(
    *,
    service_name: str = "saleengine",
    endpoint: str | None = None,
    enable: bool = True,
    sample_rate: float = 1.0,
) -> bool:
    """Install a tracer provider for the engine.

    Args:
        service_name: ``service.name`` resource attribute.
        endpoint: OTLP gRPC endpoint. Exporting there needs the ``otlp``
            extra; without an endpoint spans go to stdout when
            ``OTEL_TRACES_CONSOLE=true`` and are otherwise only sampled.
        enable: ``False`` turns tracing off again.
        sample_rate: Fraction of root spans to keep.

    Returns:
        Whether tracing is now on.
    """
    global _tracer

    if not enable:
        _tracer = None
        return False

    provider = TracerProvider(
        resource=Resource.create({SERVICE_NAME: service_name}),
        sampler=TraceIdRatioBased(sample_rate),
    )
    if endpoint:
        try:
            from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
            from opentelemetry.sdk.trace.export import BatchSpanProcessor
        except ImportError:
            logger.warning("Install saleengine[otlp] to export traces to %s", endpoint)
        else:
            provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=endpoint)))
    elif os.environ.get("OTEL_TRACES_CONSOLE", "").lower() == "true":
        provider.add_span_processor(SimpleSpanProcessor(ConsoleSpanExporter()))

    # The provider is kept local; the global one belongs to the host process.
    _tracer = provider.get_tracer("saleengine")
    logger.info("Tracing enabled for %s (sample rate %.2f)", service_name, sample_rate)
    return True


def configure_tracing_from_config(section: Mapping[str, Any]) -> bool:
    """Apply the ``tracing`` config section; tracing stays off unless enabled."""
    if not section.get("enabled", False):
        return configure_tracing(enable=False)
    return configure_tracing(
        service_name=str(section.get("service_name", "saleengine")),
        endpoint=section.get("endpoint") or None,
        sample_rate=float(section.get("sample_rate", 1.0)),
    )


@contextmanager
def trace_span(name: str, **attributes: Any) -> Iterator[Span | None]:
    """Run the block inside a span named ``name``.

    ``None`` attributes are skipped and the rest are stored as strings.
    Engine errors leaving the block mark the span as failed; they are
    expected outcomes (a low bid, an empty line), so they are recorded as
    an ``error.type`` attribute instead of an exception event.
    """
    if _tracer is None:
        yield None
        return
    with _tracer.start_as_current_span(
        name, record_exception=False, set_status_on_exception=False
    ) as span:
        for key, value in attributes.items():
            if value is not None:
                span.set_attribute(key, str(value))
        span_ctx = span.get_span_context()
        token = _trace_context.set(
            {
                "trace_id": format(span_ctx.trace_id, "032x"),
                "span_id": format(span_ctx.span_id, "016x"),
            }
        )
        try:
            yield span
        except EngineError as exc:
            span.set_attribute("error.type", type(exc).__name__)
            span.set_status(Status(StatusCode.ERROR, str(exc)))
            raise
        except Exception as exc:
            span.record_exception(exc)
            span.set_status(Status(StatusCode.ERROR, str(exc)))
            raise
        finally:
            _trace_context.reset(token)


def set_span_attribute(key: str, value: Any) -> None:
    """Set ``key`` on the current span, if one is recording."""
    if _tracer is None:
        return
    span = trace.get_current_span()
    if span.is_recording():
        span.set_attribute(key, str(value))
