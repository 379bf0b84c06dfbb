"""Observability and logging facades."""

from .logging import (
    configure_logging,
    get_log_context,
    get_logger,
    log_context,
    log_exception,
)
from .metrics import (
    format_prometheus,
    get_metrics_summary,
    get_registry,
    record_bid,
    record_line_transition,
    record_notification,
    record_settlement,
    record_sweep_duration,
    sweep_timer,
)
from .tracing import (
    configure_tracing,
    configure_tracing_from_config,
    get_trace_context,
    is_tracing_enabled,
    set_span_attribute,
    trace_span,
)

__all__ = [
    # Logging
    "configure_logging",
    "get_log_context",
    "get_logger",
    "log_context",
    "log_exception",
    # Metrics
    "format_prometheus",
    "get_metrics_summary",
    "get_registry",
    "record_bid",
    "record_line_transition",
    "record_notification",
    "record_settlement",
    "record_sweep_duration",
    "sweep_timer",
    # Tracing
    "configure_tracing",
    "configure_tracing_from_config",
    "get_trace_context",
    "is_tracing_enabled",
    "set_span_attribute",
    "trace_span",
]
