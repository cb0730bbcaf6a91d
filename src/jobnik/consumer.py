"""Task consumer: dequeue tasks and report their outcome.

The consumer enforces the client side of the task state machine: a task
may only be marked COMPLETED or FAILED while it is IN_PROGRESS, and that
check happens before any status update reaches the service.

Example:
    async with ApiClient(base_url) as api:
        consumer = TaskConsumer(api, logger=get_logger("consumer"))
        task = await consumer.dequeue_task("resize")
        if task is not None:
            ...
            await consumer.mark_task_completed(task)
"""

from __future__ import annotations

import time
from typing import Any

from pydantic import ValidationError

from jobnik.core.errors import (
    ConsumerError,
    ErrorCode,
    InvalidStateTransitionError,
    JobnikError,
)
from jobnik.core.logging import Logger, NullLogger, RequestContext, with_context
from jobnik.core.types import ALLOWED_TRANSITIONS, Task, TaskId, TaskStatus
from jobnik.telemetry.metrics import MetricsRecorder, NoopMetrics
from jobnik.telemetry.tracing import (
    ATTR_ERROR_TYPE,
    ATTR_MESSAGING_DESTINATION,
    ATTR_MESSAGING_MESSAGE_ID,
    ATTR_MESSAGING_OPERATION,
    ATTR_MESSAGING_SYSTEM,
    ATTR_TASK_ATTEMPTS,
    ATTR_TASK_STATUS,
    MESSAGING_SYSTEM,
    NoopTracer,
    Span,
    SpanKind,
    SpanStatus,
    TraceContext,
    TracePropagator,
    Tracer,
    W3CTraceContextPropagator,
)
from jobnik.transport.client import ApiClient, ApiResponse

DEQUEUE_PATH = "/stages/{stageType}/tasks/dequeue"
TASK_PATH = "/tasks/{taskId}"
TASK_STATUS_PATH = "/tasks/{taskId}/status"


class TaskConsumer:
    """Dequeues tasks of a stage type and performs validated status updates."""

    def __init__(
        self,
        api: ApiClient,
        logger: Logger | None = None,
        tracer: Tracer | None = None,
        propagator: TracePropagator | None = None,
        metrics: MetricsRecorder | None = None,
    ) -> None:
        self._api = api
        self._logger = logger or NullLogger()
        self._tracer = tracer or NoopTracer()
        self._propagator = propagator or W3CTraceContextPropagator()
        self._metrics = metrics or NoopMetrics()

    # =========================================================================
    # Dequeue
    # =========================================================================

    async def dequeue_task(self, stage_type: str) -> Task | None:
        """Dequeue the next pending task of ``stage_type``.

        The service marks the returned task IN_PROGRESS and hands it to this
        caller only.

        Returns:
            The task, or None when the queue is empty (404).

        Raises:
            ConsumerError: REQUEST_FAILED_ERROR for any other failure, with
                the classified error as ``cause``.
        """
        started = time.perf_counter()
        with (
            with_context(RequestContext(stage_type=stage_type)),
            self._tracer.start_span(
                f"receive {stage_type}",
                kind=SpanKind.CLIENT,
                attributes={
                    ATTR_MESSAGING_SYSTEM: MESSAGING_SYSTEM,
                    ATTR_MESSAGING_OPERATION: "receive",
                    ATTR_MESSAGING_DESTINATION: stage_type,
                },
            ) as span,
        ):
            self._logger.debug("dequeue_started", stage_type=stage_type)
            try:
                result = await self._api.patch(
                    DEQUEUE_PATH, path_params={"stageType": stage_type}
                )
            except JobnikError as exc:
                self._fail_dequeue(span, stage_type, started, exc)
                raise ConsumerError(
                    f"Failed to dequeue task for stage type {stage_type}",
                    ErrorCode.REQUEST_FAILED_ERROR,
                    exc,
                ) from exc

            if result.status_code == 404:
                self._metrics.observe_dequeue(stage_type, "empty", time.perf_counter() - started)
                self._logger.debug("dequeue_empty", stage_type=stage_type)
                span.set_status(SpanStatus.OK)
                return None

            if result.error is not None:
                self._fail_dequeue(span, stage_type, started, result.error)
                raise ConsumerError(
                    f"Failed to dequeue task for stage type {stage_type}",
                    ErrorCode.REQUEST_FAILED_ERROR,
                    result.error,
                ) from result.error

            task = self._parse_task(result, f"Failed to dequeue task for stage type {stage_type}")
            span.set_attribute(ATTR_MESSAGING_MESSAGE_ID, task.id)
            span.set_attribute(ATTR_TASK_ATTEMPTS, task.attempts)
            span.set_status(SpanStatus.OK)
            duration = time.perf_counter() - started
            self._metrics.observe_dequeue(stage_type, "success", duration)
            self._logger.info(
                "task_dequeued",
                stage_type=stage_type,
                task_id=task.id,
                attempts=task.attempts,
                duration_seconds=round(duration, 4),
            )
            return task

    def _fail_dequeue(
        self, span: Span, stage_type: str, started: float, error: JobnikError
    ) -> None:
        span.record_exception(error)
        span.set_attribute(ATTR_ERROR_TYPE, error.error_code.value)
        span.set_status(SpanStatus.ERROR, error.message)
        self._metrics.observe_dequeue(stage_type, "error", time.perf_counter() - started)
        self._logger.error(
            "dequeue_failed",
            stage_type=stage_type,
            error_code=error.error_code.value,
            error=error.message,
        )

    # =========================================================================
    # Task lookup
    # =========================================================================

    async def get_task(self, task_id: TaskId) -> Task:
        """Fetch the current state of a task.

        Raises:
            ConsumerError: REQUEST_FAILED_ERROR if the fetch fails.
        """
        return await self._fetch_task(task_id, f"Failed to retrieve task {task_id}")

    async def _fetch_task(self, task_id: TaskId, message: str) -> Task:
        try:
            result = await self._api.get(TASK_PATH, path_params={"taskId": task_id})
        except JobnikError as exc:
            raise ConsumerError(message, ErrorCode.REQUEST_FAILED_ERROR, exc) from exc
        if result.error is not None:
            raise ConsumerError(
                message, ErrorCode.REQUEST_FAILED_ERROR, result.error
            ) from result.error
        return self._parse_task(result, message)

    @staticmethod
    def _parse_task(result: ApiResponse, message: str) -> Task:
        try:
            return Task.model_validate(result.data)
        except ValidationError as exc:
            raise ConsumerError(
                f"{message}: malformed task in response",
                ErrorCode.REQUEST_FAILED_ERROR,
                exc,
            ) from exc

    # =========================================================================
    # Status transitions
    # =========================================================================

    async def mark_task_completed(self, task: Task | TaskId) -> None:
        """Mark an IN_PROGRESS task as COMPLETED.

        Args:
            task: The task, or its id (the task is then fetched first).

        Raises:
            InvalidStateTransitionError: The task is not IN_PROGRESS. No
                update was sent.
            ConsumerError: Fetching or updating the task failed.
        """
        await self._transition(task, TaskStatus.COMPLETED)

    async def mark_task_failed(self, task: Task | TaskId) -> None:
        """Mark an IN_PROGRESS task as FAILED. See ``mark_task_completed``."""
        await self._transition(task, TaskStatus.FAILED)

    async def _transition(self, task_or_id: Task | TaskId, target: TaskStatus) -> None:
        task_id = task_or_id.id if isinstance(task_or_id, Task) else task_or_id
        started = time.perf_counter()

        with (
            with_context(RequestContext(task_id=task_id)),
            self._tracer.start_span(
                "update_status",
                kind=SpanKind.CLIENT,
                attributes={
                    ATTR_MESSAGING_SYSTEM: MESSAGING_SYSTEM,
                    ATTR_MESSAGING_MESSAGE_ID: task_id,
                    ATTR_TASK_STATUS: target.value,
                },
            ) as span,
        ):
            self._logger.debug("status_update_started", task_id=task_id, target=target.value)
            try:
                if isinstance(task_or_id, Task):
                    task = task_or_id
                else:
                    task = await self._fetch_task(
                        task_id, f"Failed to retrieve task {task_id} for status update"
                    )

                self._link_producer_span(span, task)
                self._check_transition(task, target)
                await self._put_status(task, target)
            except JobnikError as exc:
                span.record_exception(exc)
                span.set_attribute(ATTR_ERROR_TYPE, exc.error_code.value)
                span.set_status(SpanStatus.ERROR, exc.message)
                self._metrics.observe_task_update(
                    target.value, "error", time.perf_counter() - started
                )
                self._logger.error(
                    "status_update_failed",
                    task_id=task_id,
                    target=target.value,
                    error_code=exc.error_code.value,
                    error=exc.message,
                )
                raise

            span.set_status(SpanStatus.OK)
            duration = time.perf_counter() - started
            self._metrics.observe_task_update(target.value, "success", duration)
            self._logger.info(
                "task_status_updated",
                task_id=task_id,
                status=target.value,
                duration_seconds=round(duration, 4),
            )

    def _link_producer_span(self, span: Span, task: Task) -> None:
        """Link the current span to the span that created the task.

        A missing or malformed carrier, or a propagator that raises on it,
        is not an error: the update proceeds unlinked and a warning is logged.
        """
        reason: dict[str, str] = {}
        try:
            context = self._propagator.extract(task.trace_carrier)
        except Exception as exc:
            context = TraceContext.EMPTY
            reason["error"] = str(exc)
        if context.is_valid:
            span.add_link(context)
            return
        self._logger.warning(
            "trace_context_missing",
            task_id=task.id,
            error_code=ErrorCode.TRACE_CONTEXT_EXTRACT_ERROR.value,
            **reason,
        )

    @staticmethod
    def _check_transition(task: Task, target: TaskStatus) -> None:
        required = ALLOWED_TRANSITIONS[target]
        if task.status != required:
            raise InvalidStateTransitionError(
                task_id=task.id,
                current_status=task.status.value,
                expected_status=required.value,
                target_status=target.value,
            )

    async def _put_status(self, task: Task, target: TaskStatus) -> None:
        message = f"Failed to mark task {task.id} as {target.value.lower()}"
        body: dict[str, Any] = {"status": target.value}
        try:
            result = await self._api.put(
                TASK_STATUS_PATH, path_params={"taskId": task.id}, json=body
            )
        except JobnikError as exc:
            raise ConsumerError(message, ErrorCode.REQUEST_FAILED_ERROR, exc) from exc
        if result.error is not None:
            raise ConsumerError(
                message, ErrorCode.REQUEST_FAILED_ERROR, result.error
            ) from result.error
