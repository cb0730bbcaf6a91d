"""Metrics capability and request timing correlation.

The client never imports a metrics library. Callers that want metrics pass
an object implementing ``MetricsRecorder`` (for example an adapter over
their Prometheus registry); everyone else gets ``NoopMetrics``.
"""

from __future__ import annotations

import itertools
import time
from typing import Protocol, runtime_checkable


@runtime_checkable
class MetricsRecorder(Protocol):
    """Metric sink used by the transport and the consumer.

    Status labels are pre-normalized (see ``normalize_status_code``) so the
    label set stays bounded.
    """

    def observe_http_request(
        self, method: str, status_code: str, retried: bool, duration_seconds: float
    ) -> None: ...

    def observe_http_request_size(self, method: str, size_bytes: int) -> None: ...

    def increment_http_retries(self, method: str, reason: str) -> None: ...

    def observe_dequeue(self, stage_type: str, outcome: str, duration_seconds: float) -> None: ...

    def observe_task_update(self, status: str, result: str, duration_seconds: float) -> None: ...


class NoopMetrics:
    """Metric sink that discards everything."""

    def observe_http_request(
        self, method: str, status_code: str, retried: bool, duration_seconds: float
    ) -> None:
        pass

    def observe_http_request_size(self, method: str, size_bytes: int) -> None:
        pass

    def increment_http_retries(self, method: str, reason: str) -> None:
        pass

    def observe_dequeue(self, stage_type: str, outcome: str, duration_seconds: float) -> None:
        pass

    def observe_task_update(self, status: str, result: str, duration_seconds: float) -> None:
        pass


class RequestTimings:
    """Correlation table of in-flight request start times.

    Keys combine method, URL and a high-resolution timestamp plus a sequence
    number, so concurrent identical requests never collide. Every ``start``
    must be paired with ``finish`` or the table grows without bound.
    """

    def __init__(self) -> None:
        self._starts: dict[str, int] = {}
        self._sequence = itertools.count()

    def start(self, method: str, url: str) -> str:
        now = time.perf_counter_ns()
        key = f"{method}:{url}:{now}:{next(self._sequence)}"
        self._starts[key] = now
        return key

    def finish(self, key: str) -> float | None:
        """Remove ``key`` and return the elapsed seconds, or None if unknown."""
        started = self._starts.pop(key, None)
        if started is None:
            return None
        return (time.perf_counter_ns() - started) / 1e9

    def __len__(self) -> int:
        return len(self._starts)

    def __contains__(self, key: object) -> bool:
        return key in self._starts
