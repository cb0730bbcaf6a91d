"""Tracing capability, trace context and W3C carrier propagation.

Components take a ``Tracer`` at construction time and use ``NoopTracer``
when none is supplied. An OpenTelemetry tracer can be adapted to the
``Tracer``/``Span`` protocols without this package depending on it.
"""

from __future__ import annotations

import re
from collections.abc import Iterator, Mapping, MutableMapping
from contextlib import AbstractContextManager, contextmanager
from dataclasses import dataclass
from enum import Enum
from typing import Any, ClassVar, Protocol, runtime_checkable

from jobnik.core.types import TRACEPARENT_KEY, TRACESTATE_KEY

# =============================================================================
# Semantic convention attribute names
# =============================================================================

ATTR_MESSAGING_SYSTEM = "messaging.system"
ATTR_MESSAGING_OPERATION = "messaging.operation.type"
ATTR_MESSAGING_DESTINATION = "messaging.destination.name"
ATTR_MESSAGING_MESSAGE_ID = "messaging.message.id"
ATTR_TASK_STATUS = "job_manager.task.status"
ATTR_TASK_ATTEMPTS = "job_manager.task.attempts"
ATTR_HTTP_METHOD = "http.request.method"
ATTR_HTTP_STATUS = "http.response.status_code"
ATTR_URL = "url.full"
ATTR_OPERATION_ID = "api.operation_id"
ATTR_ERROR_TYPE = "error.type"

MESSAGING_SYSTEM = "job_manager"


class SpanKind(str, Enum):
    INTERNAL = "internal"
    CLIENT = "client"
    CONSUMER = "consumer"


class SpanStatus(str, Enum):
    UNSET = "unset"
    OK = "ok"
    ERROR = "error"


@dataclass(frozen=True)
class TraceContext:
    """A W3C trace context: trace id, parent span id, flags and vendor state.

    ``TraceContext.EMPTY`` stands for "no context"; it is not valid and is
    never linked.
    """

    trace_id: str = "0" * 32
    span_id: str = "0" * 16
    trace_flags: int = 0
    trace_state: str | None = None

    EMPTY: ClassVar[TraceContext]

    @property
    def is_valid(self) -> bool:
        return (
            _HEX32.fullmatch(self.trace_id) is not None
            and _HEX16.fullmatch(self.span_id) is not None
            and self.trace_id != "0" * 32
            and self.span_id != "0" * 16
        )

    @property
    def is_sampled(self) -> bool:
        return bool(self.trace_flags & 0x01)

    def to_traceparent(self) -> str:
        return f"00-{self.trace_id}-{self.span_id}-{self.trace_flags:02x}"


TraceContext.EMPTY = TraceContext()

_HEX32 = re.compile(r"[0-9a-f]{32}")
_HEX16 = re.compile(r"[0-9a-f]{16}")
_TRACEPARENT = re.compile(
    r"(?P<version>[0-9a-f]{2})-(?P<trace_id>[0-9a-f]{32})-"
    r"(?P<span_id>[0-9a-f]{16})-(?P<flags>[0-9a-f]{2})(?:-.*)?"
)


# =============================================================================
# Capabilities
# =============================================================================


@runtime_checkable
class Span(Protocol):
    def set_attribute(self, key: str, value: Any) -> None: ...

    def add_link(self, context: TraceContext, attributes: Mapping[str, Any] | None = None) -> None: ...

    def record_exception(self, exc: BaseException) -> None: ...

    def set_status(self, status: SpanStatus, description: str | None = None) -> None: ...


@runtime_checkable
class Tracer(Protocol):
    def start_span(
        self,
        name: str,
        kind: SpanKind = SpanKind.INTERNAL,
        attributes: Mapping[str, Any] | None = None,
    ) -> AbstractContextManager[Span]:
        """Start a span that is current for the duration of the ``with`` block."""
        ...


@runtime_checkable
class TracePropagator(Protocol):
    def extract(self, carrier: Mapping[str, str]) -> TraceContext: ...

    def inject(self, context: TraceContext, carrier: MutableMapping[str, str]) -> None: ...


class NoopSpan:
    """Span that records nothing."""

    def set_attribute(self, key: str, value: Any) -> None:
        pass

    def add_link(self, context: TraceContext, attributes: Mapping[str, Any] | None = None) -> None:
        pass

    def record_exception(self, exc: BaseException) -> None:
        pass

    def set_status(self, status: SpanStatus, description: str | None = None) -> None:
        pass


_NOOP_SPAN = NoopSpan()


class NoopTracer:
    """Tracer that yields a shared no-op span."""

    @contextmanager
    def start_span(
        self,
        name: str,
        kind: SpanKind = SpanKind.INTERNAL,
        attributes: Mapping[str, Any] | None = None,
    ) -> Iterator[Span]:
        yield _NOOP_SPAN


class W3CTraceContextPropagator:
    """Reads and writes ``traceparent``/``tracestate`` carriers.

    Malformed or all-zero identifiers extract as ``TraceContext.EMPTY``.
    Version ``ff`` is rejected as the W3C recommendation requires.
    """

    def extract(self, carrier: Mapping[str, str]) -> TraceContext:
        traceparent = (carrier.get(TRACEPARENT_KEY) or "").strip().lower()
        match = _TRACEPARENT.fullmatch(traceparent)
        if match is None or match["version"] == "ff":
            return TraceContext.EMPTY
        if match["version"] == "00" and len(traceparent) != 55:
            return TraceContext.EMPTY

        context = TraceContext(
            trace_id=match["trace_id"],
            span_id=match["span_id"],
            trace_flags=int(match["flags"], 16),
            trace_state=(carrier.get(TRACESTATE_KEY) or None),
        )
        return context if context.is_valid else TraceContext.EMPTY

    def inject(self, context: TraceContext, carrier: MutableMapping[str, str]) -> None:
        if not context.is_valid:
            return
        carrier[TRACEPARENT_KEY] = context.to_traceparent()
        if context.trace_state:
            carrier[TRACESTATE_KEY] = context.trace_state
