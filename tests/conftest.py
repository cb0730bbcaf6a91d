"""Pytest fixtures for jobnik tests."""

import logging
from collections.abc import Callable, Iterator, Mapping
from contextlib import contextmanager
from typing import Any, Generator
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
import structlog

from jobnik.cli import helpers as cli_helpers
from jobnik.core.config import RetryConfig
from jobnik.telemetry.metrics import NoopMetrics
from jobnik.telemetry.tracing import SpanKind, SpanStatus, TraceContext
from jobnik.transport.client import ApiClient

BASE_URL = "http://job-manager.test"
TRACEPARENT = "00-4bf92f3577b34da6a3ce929d0e0e4736-00f067aa0ba902b7-01"

Handler = Callable[[httpx.Request], httpx.Response]


@pytest.fixture(autouse=True)
def reset_logging_state() -> Generator[None, None, None]:
    """Reset logging and CLI state before and after each test.

    This ensures test isolation for logging configuration.
    """
    cli_helpers.reset_state()
    structlog.reset_defaults()

    root_logger = logging.getLogger()
    original_handlers = root_logger.handlers[:]
    original_level = root_logger.level
    for handler in original_handlers:
        root_logger.removeHandler(handler)

    yield

    cli_helpers.reset_state()
    structlog.reset_defaults()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
    for handler in original_handlers:
        root_logger.addHandler(handler)
    root_logger.setLevel(original_level)


# =============================================================================
# Tracing fakes
# =============================================================================


class RecordingSpan:
    """Span that keeps everything set on it."""

    def __init__(self, name: str, kind: SpanKind, attributes: Mapping[str, Any] | None) -> None:
        self.name = name
        self.kind = kind
        self.attributes: dict[str, Any] = dict(attributes or {})
        self.links: list[TraceContext] = []
        self.exceptions: list[BaseException] = []
        self.status = SpanStatus.UNSET
        self.description: str | None = None

    def set_attribute(self, key: str, value: Any) -> None:
        self.attributes[key] = value

    def add_link(self, context: TraceContext, attributes: Mapping[str, Any] | None = None) -> None:
        self.links.append(context)

    def record_exception(self, exc: BaseException) -> None:
        self.exceptions.append(exc)

    def set_status(self, status: SpanStatus, description: str | None = None) -> None:
        self.status = status
        self.description = description


class RecordingTracer:
    """Tracer that records every span it starts, in start order."""

    def __init__(self) -> None:
        self.spans: list[RecordingSpan] = []

    @contextmanager
    def start_span(
        self,
        name: str,
        kind: SpanKind = SpanKind.INTERNAL,
        attributes: Mapping[str, Any] | None = None,
    ) -> Iterator[RecordingSpan]:
        span = RecordingSpan(name, kind, attributes)
        self.spans.append(span)
        yield span

    def named(self, name: str) -> list[RecordingSpan]:
        return [span for span in self.spans if span.name == name]


@pytest.fixture
def tracer() -> RecordingTracer:
    return RecordingTracer()


@pytest.fixture
def metrics() -> MagicMock:
    """Metric sink that records calls."""
    return MagicMock(spec=NoopMetrics)


@pytest.fixture
def logger() -> MagicMock:
    """Logger that records calls (debug/info/warning/error)."""
    return MagicMock()


@pytest.fixture
def sleep() -> AsyncMock:
    """Sleep replacement so retries never wait."""
    return AsyncMock()


# =============================================================================
# HTTP fixtures
# =============================================================================


@pytest.fixture
def base_url() -> str:
    return BASE_URL


@pytest.fixture
def no_retry() -> RetryConfig:
    return RetryConfig(max_retries=0)


@pytest.fixture
def make_api(
    logger: MagicMock,
    metrics: MagicMock,
    tracer: RecordingTracer,
    sleep: AsyncMock,
) -> Callable[..., ApiClient]:
    """Factory for an ApiClient backed by ``httpx.MockTransport``."""

    def _make(handler: Handler, retry: RetryConfig | None = None) -> ApiClient:
        return ApiClient(
            BASE_URL,
            retry or RetryConfig(disable_jitter=True),
            logger=logger,
            metrics=metrics,
            tracer=tracer,
            http_transport=httpx.MockTransport(handler),
            sleep=sleep,
        )

    return _make


@pytest.fixture
def task_payload() -> dict[str, Any]:
    """Return a task as the service serializes it."""
    return {
        "id": "0b9e2a4c-5d1f-4a3e-9c7b-1f2e3d4c5b6a",
        "stageId": "6f1c2d3e-4b5a-4c6d-8e7f-9a0b1c2d3e4f",
        "status": "IN_PROGRESS",
        "attempts": 1,
        "maxAttempts": 3,
        "data": {"image": "s3://bucket/cat.png", "width": 128},
        "userMetadata": {"requestedBy": "ops"},
        "creationTime": "2026-01-05T10:00:00Z",
        "updateTime": "2026-01-05T10:00:05Z",
        "traceparent": TRACEPARENT,
        "tracestate": "vendor=test",
    }
