"""Tests for TaskConsumer: dequeue, lookup and validated status updates."""

import json
from collections.abc import Callable
from typing import Any
from unittest.mock import MagicMock

import httpx
import pytest

from jobnik.consumer import TaskConsumer
from jobnik.core.config import RetryConfig
from jobnik.core.errors import (
    APIError,
    ConsumerError,
    ErrorCode,
    InvalidStateTransitionError,
    NetworkError,
    NotFoundError,
)
from jobnik.core.logging import get_current_context
from jobnik.core.types import Task, TaskId, TaskStatus
from jobnik.telemetry.tracing import SpanStatus, TracePropagator, W3CTraceContextPropagator
from jobnik.transport.client import ApiClient

from .conftest import RecordingTracer


class FakeService:
    """In-memory stand-in for the service's task endpoints."""

    def __init__(self, task: dict[str, Any] | None) -> None:
        self.task = task
        self.requests: list[httpx.Request] = []
        self.dequeue_status = 200
        self.get_status = 200
        self.put_status = 200
        self.contexts: list[Any] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        self.contexts.append(get_current_context())
        path = request.url.path
        if request.method == "PATCH" and path.endswith("/tasks/dequeue"):
            if self.task is None:
                return httpx.Response(404, json={"message": "No pending tasks"})
            if self.dequeue_status != 200:
                return httpx.Response(self.dequeue_status, json={"message": "dequeue failed"})
            return httpx.Response(200, json=self.task)
        if request.method == "GET" and path.startswith("/tasks/"):
            if self.get_status != 200:
                return httpx.Response(self.get_status, json={"message": "lookup failed"})
            return httpx.Response(200, json=self.task)
        if request.method == "PUT" and path.endswith("/status"):
            if self.put_status != 200:
                return httpx.Response(self.put_status, json={"message": "update rejected"})
            assert self.task is not None
            self.task = {**self.task, **json.loads(request.content)}
            return httpx.Response(200, json=self.task)
        return httpx.Response(405)

    def calls(self, method: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.method == method]


@pytest.fixture
def consumer_factory(
    make_api: Callable[..., ApiClient],
    logger: MagicMock,
    tracer: RecordingTracer,
    metrics: MagicMock,
) -> Callable[..., TaskConsumer]:
    def _make(
        service: FakeService,
        retry: RetryConfig | None = None,
        propagator: TracePropagator | None = None,
    ) -> TaskConsumer:
        return TaskConsumer(
            make_api(service, retry),
            logger=logger,
            tracer=tracer,
            propagator=propagator,
            metrics=metrics,
        )

    return _make


# =============================================================================
# Dequeue
# =============================================================================


class TestDequeueTask:
    """Tests for TaskConsumer.dequeue_task()."""

    async def test_returns_task(
        self,
        consumer_factory: Callable[..., TaskConsumer],
        task_payload: dict[str, Any],
        tracer: RecordingTracer,
        metrics: MagicMock,
        logger: MagicMock,
    ) -> None:
        service = FakeService(task_payload)
        task = await consumer_factory(service).dequeue_task("resize")

        assert task is not None
        assert task.id == task_payload["id"]
        assert task.status == TaskStatus.IN_PROGRESS
        assert service.requests[0].url.path == "/stages/resize/tasks/dequeue"

        (span,) = tracer.named("receive resize")
        assert span.attributes["messaging.destination.name"] == "resize"
        assert span.attributes["messaging.message.id"] == task.id
        assert span.attributes["job_manager.task.attempts"] == 1
        assert span.status == SpanStatus.OK

        stage_type, outcome, _ = metrics.observe_dequeue.call_args.args
        assert (stage_type, outcome) == ("resize", "success")
        assert logger.info.call_args.args[0] == "task_dequeued"

    async def test_empty_queue_returns_none(
        self, consumer_factory: Callable[..., TaskConsumer], metrics: MagicMock
    ) -> None:
        task = await consumer_factory(FakeService(None)).dequeue_task("resize")
        assert task is None
        assert metrics.observe_dequeue.call_args.args[1] == "empty"

    async def test_request_context_is_set(
        self, consumer_factory: Callable[..., TaskConsumer], task_payload: dict[str, Any]
    ) -> None:
        service = FakeService(task_payload)
        await consumer_factory(service).dequeue_task("resize")
        assert service.contexts[0].stage_type == "resize"
        assert get_current_context() is None

    async def test_error_response_wrapped(
        self,
        consumer_factory: Callable[..., TaskConsumer],
        task_payload: dict[str, Any],
        tracer: RecordingTracer,
    ) -> None:
        service = FakeService(task_payload)
        service.dequeue_status = 400
        with pytest.raises(ConsumerError) as exc_info:
            await consumer_factory(service).dequeue_task("resize")

        error = exc_info.value
        assert error.error_code == ErrorCode.REQUEST_FAILED_ERROR
        assert error.message == "Failed to dequeue task for stage type resize"
        assert isinstance(error.cause, APIError)
        assert error.cause.status_code == 400
        span = tracer.named("receive resize")[0]
        assert span.status == SpanStatus.ERROR
        assert span.attributes["error.type"] == "HTTP_BAD_REQUEST"

    async def test_infrastructure_error_wrapped(
        self,
        consumer_factory: Callable[..., TaskConsumer],
        task_payload: dict[str, Any],
        no_retry: RetryConfig,
        metrics: MagicMock,
    ) -> None:
        service = FakeService(task_payload)
        service.dequeue_status = 503
        with pytest.raises(ConsumerError) as exc_info:
            await consumer_factory(service, no_retry).dequeue_task("resize")
        assert isinstance(exc_info.value.cause, APIError)
        assert exc_info.value.cause.error_code == ErrorCode.HTTP_SERVICE_UNAVAILABLE
        assert metrics.observe_dequeue.call_args.args[1] == "error"

    async def test_network_error_wrapped(
        self,
        consumer_factory: Callable[..., TaskConsumer],
        no_retry: RetryConfig,
        logger: MagicMock,
    ) -> None:
        def refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("[Errno 111] Connection refused")

        consumer = consumer_factory(refuse, no_retry)
        with pytest.raises(ConsumerError) as exc_info:
            await consumer.dequeue_task("resize")
        cause = exc_info.value.cause
        assert isinstance(cause, NetworkError)
        assert cause.error_code == ErrorCode.NETWORK_CONNECTION_REFUSED
        assert exc_info.value.__cause__ is cause
        assert logger.error.call_args.args[0] == "dequeue_failed"

    async def test_malformed_task_wrapped(
        self, consumer_factory: Callable[..., TaskConsumer]
    ) -> None:
        service = FakeService({"id": "t-1"})
        with pytest.raises(ConsumerError, match="malformed task"):
            await consumer_factory(service).dequeue_task("resize")


# =============================================================================
# Lookup
# =============================================================================


class TestGetTask:
    """Tests for TaskConsumer.get_task()."""

    async def test_returns_task(
        self, consumer_factory: Callable[..., TaskConsumer], task_payload: dict[str, Any]
    ) -> None:
        service = FakeService(task_payload)
        task = await consumer_factory(service).get_task(TaskId(task_payload["id"]))
        assert task.stage_id == task_payload["stageId"]
        assert service.requests[0].url.path == f"/tasks/{task_payload['id']}"

    @pytest.mark.parametrize("status", ["ABORTED", "PAUSED"])
    async def test_service_only_statuses_parse(
        self,
        consumer_factory: Callable[..., TaskConsumer],
        task_payload: dict[str, Any],
        status: str,
    ) -> None:
        service = FakeService({**task_payload, "status": status})
        task = await consumer_factory(service).get_task(TaskId(task_payload["id"]))
        assert task.status == TaskStatus(status)

    async def test_not_found_wrapped(
        self, consumer_factory: Callable[..., TaskConsumer], task_payload: dict[str, Any]
    ) -> None:
        service = FakeService(task_payload)
        service.get_status = 404
        with pytest.raises(ConsumerError) as exc_info:
            await consumer_factory(service).get_task(TaskId("t-missing"))
        assert exc_info.value.message == "Failed to retrieve task t-missing"
        assert isinstance(exc_info.value.cause, NotFoundError)


# =============================================================================
# Status transitions
# =============================================================================


class TestMarkTask:
    """Tests for mark_task_completed() / mark_task_failed()."""

    async def test_complete_in_progress_task(
        self,
        consumer_factory: Callable[..., TaskConsumer],
        task_payload: dict[str, Any],
        tracer: RecordingTracer,
        metrics: MagicMock,
        logger: MagicMock,
    ) -> None:
        service = FakeService(task_payload)
        task = Task.model_validate(task_payload)
        await consumer_factory(service).mark_task_completed(task)

        assert service.calls("GET") == []
        (put,) = service.calls("PUT")
        assert put.url.path == f"/tasks/{task.id}/status"
        assert json.loads(put.content) == {"status": "COMPLETED"}
        assert service.task is not None and service.task["status"] == "COMPLETED"

        (span,) = tracer.named("update_status")
        assert span.attributes["job_manager.task.status"] == "COMPLETED"
        assert span.attributes["messaging.message.id"] == task.id
        assert span.status == SpanStatus.OK
        (link,) = span.links
        assert link.trace_id == "4bf92f3577b34da6a3ce929d0e0e4736"
        assert link.span_id == "00f067aa0ba902b7"
        assert link.trace_state == "vendor=test"

        status, result, _ = metrics.observe_task_update.call_args.args
        assert (status, result) == ("COMPLETED", "success")
        assert logger.info.call_args.args[0] == "task_status_updated"

    async def test_fail_by_id_fetches_first(
        self, consumer_factory: Callable[..., TaskConsumer], task_payload: dict[str, Any]
    ) -> None:
        service = FakeService(task_payload)
        await consumer_factory(service).mark_task_failed(TaskId(task_payload["id"]))

        assert [r.method for r in service.requests] == ["GET", "PUT"]
        assert json.loads(service.calls("PUT")[0].content) == {"status": "FAILED"}

    @pytest.mark.parametrize(
        "status", ["FAILED", "COMPLETED", "PENDING", "ABORTED", "PAUSED", "CREATED", "RETRIED"]
    )
    async def test_invalid_transition_sends_no_update(
        self,
        consumer_factory: Callable[..., TaskConsumer],
        task_payload: dict[str, Any],
        status: str,
    ) -> None:
        service = FakeService({**task_payload, "status": status})
        task = Task.model_validate(service.task)
        with pytest.raises(InvalidStateTransitionError) as exc_info:
            await consumer_factory(service).mark_task_completed(task)

        assert service.calls("PUT") == []
        error = exc_info.value
        assert error.error_code == ErrorCode.TASK_INVALID_STATE_TRANSITION
        assert error.current_status == status
        assert error.expected_status == "IN_PROGRESS"
        assert error.target_status == "COMPLETED"

    async def test_invalid_transition_by_id(
        self,
        consumer_factory: Callable[..., TaskConsumer],
        task_payload: dict[str, Any],
        tracer: RecordingTracer,
        metrics: MagicMock,
        logger: MagicMock,
    ) -> None:
        service = FakeService({**task_payload, "status": "FAILED"})
        task_id = task_payload["id"]
        with pytest.raises(InvalidStateTransitionError) as exc_info:
            await consumer_factory(service).mark_task_failed(TaskId(task_id))

        assert exc_info.value.message == (
            f"Cannot mark task {task_id} as failed: task is in FAILED state, expected IN_PROGRESS"
        )
        assert service.calls("PUT") == []
        span = tracer.named("update_status")[0]
        assert span.status == SpanStatus.ERROR
        assert span.attributes["error.type"] == "TASK_INVALID_STATE_TRANSITION"
        assert metrics.observe_task_update.call_args.args[:2] == ("FAILED", "error")
        assert logger.error.call_args.args[0] == "status_update_failed"

    @pytest.mark.parametrize("status", ["ABORTED", "PAUSED"])
    async def test_service_only_status_by_id_rejected(
        self,
        consumer_factory: Callable[..., TaskConsumer],
        task_payload: dict[str, Any],
        status: str,
    ) -> None:
        service = FakeService({**task_payload, "status": status})
        with pytest.raises(InvalidStateTransitionError) as exc_info:
            await consumer_factory(service).mark_task_completed(TaskId(task_payload["id"]))

        assert exc_info.value.error_code == ErrorCode.TASK_INVALID_STATE_TRANSITION
        assert exc_info.value.current_status == status
        assert [r.method for r in service.requests] == ["GET"]

    async def test_raising_propagator_is_not_fatal(
        self,
        consumer_factory: Callable[..., TaskConsumer],
        task_payload: dict[str, Any],
        tracer: RecordingTracer,
        logger: MagicMock,
    ) -> None:
        propagator = MagicMock(spec=W3CTraceContextPropagator)
        propagator.extract.side_effect = ValueError("bad carrier")
        service = FakeService(task_payload)
        consumer = consumer_factory(service, propagator=propagator)
        await consumer.mark_task_completed(Task.model_validate(task_payload))

        assert len(service.calls("PUT")) == 1
        span = tracer.named("update_status")[0]
        assert span.links == []
        assert span.status == SpanStatus.OK
        warning = logger.warning.call_args
        assert warning.args[0] == "trace_context_missing"
        assert warning.kwargs["error_code"] == "TRACE_CONTEXT_EXTRACT_ERROR"
        assert warning.kwargs["error"] == "bad carrier"

    async def test_missing_trace_context_is_not_fatal(
        self,
        consumer_factory: Callable[..., TaskConsumer],
        task_payload: dict[str, Any],
        tracer: RecordingTracer,
        logger: MagicMock,
    ) -> None:
        payload = {k: v for k, v in task_payload.items() if k not in ("traceparent", "tracestate")}
        service = FakeService(payload)
        await consumer_factory(service).mark_task_completed(Task.model_validate(payload))

        assert len(service.calls("PUT")) == 1
        assert tracer.named("update_status")[0].links == []
        warning = logger.warning.call_args
        assert warning.args[0] == "trace_context_missing"
        assert warning.kwargs["error_code"] == "TRACE_CONTEXT_EXTRACT_ERROR"

    async def test_malformed_trace_context_is_not_fatal(
        self,
        consumer_factory: Callable[..., TaskConsumer],
        task_payload: dict[str, Any],
        tracer: RecordingTracer,
    ) -> None:
        payload = {**task_payload, "traceparent": "not-a-traceparent"}
        service = FakeService(payload)
        await consumer_factory(service).mark_task_completed(Task.model_validate(payload))
        assert len(service.calls("PUT")) == 1
        assert tracer.named("update_status")[0].links == []

    async def test_update_rejected_wrapped(
        self,
        consumer_factory: Callable[..., TaskConsumer],
        task_payload: dict[str, Any],
        no_retry: RetryConfig,
    ) -> None:
        service = FakeService(task_payload)
        service.put_status = 500
        task = Task.model_validate(task_payload)
        with pytest.raises(ConsumerError) as exc_info:
            await consumer_factory(service, no_retry).mark_task_completed(task)

        error = exc_info.value
        assert not isinstance(error, InvalidStateTransitionError)
        assert error.error_code == ErrorCode.REQUEST_FAILED_ERROR
        assert error.message == f"Failed to mark task {task.id} as completed"
        assert isinstance(error.cause, APIError)
        assert error.cause.status_code == 500

    async def test_fetch_failure_wrapped(
        self, consumer_factory: Callable[..., TaskConsumer], task_payload: dict[str, Any]
    ) -> None:
        service = FakeService(task_payload)
        service.get_status = 404
        with pytest.raises(ConsumerError) as exc_info:
            await consumer_factory(service).mark_task_completed(TaskId("t-gone"))
        assert exc_info.value.message == "Failed to retrieve task t-gone for status update"
        assert service.calls("PUT") == []
