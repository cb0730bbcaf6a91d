"""Tracing and metrics capabilities with no-op defaults."""

from jobnik.telemetry.metrics import MetricsRecorder, NoopMetrics, RequestTimings
from jobnik.telemetry.tracing import (
    NoopSpan,
    NoopTracer,
    Span,
    SpanKind,
    SpanStatus,
    TraceContext,
    TracePropagator,
    Tracer,
    W3CTraceContextPropagator,
)

__all__ = [
    "MetricsRecorder",
    "NoopMetrics",
    "NoopSpan",
    "NoopTracer",
    "RequestTimings",
    "Span",
    "SpanKind",
    "SpanStatus",
    "TraceContext",
    "TracePropagator",
    "Tracer",
    "W3CTraceContextPropagator",
]
