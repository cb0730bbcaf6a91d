"""HTTP API client for the job-processing service.

Wraps an ``httpx.AsyncClient`` with the retry dispatcher and applies the
response policy shared by every call:

- transport failures raise a classified ``NetworkError``;
- 502/503/504 raise an ``APIError`` ("... Please retry later.");
- any other status >= 400 is *returned* as ``ApiResponse.error``;
- anything below 400 is returned as ``ApiResponse.data``.

Each call runs in a client span named ``API Request: {METHOD} {path}``.
"""

from __future__ import annotations

import asyncio
import random
import re
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from types import TracebackType
from typing import Any
from urllib.parse import quote

import httpx
import yaml

from jobnik import __version__
from jobnik.core.config import RetryConfig, TransportConfig, validate_base_url
from jobnik.core.constants import USER_AGENT
from jobnik.core.errors import (
    APIError,
    classify_http_response,
    classify_infrastructure_status,
    classify_transport_error,
    normalize_status_code,
)
from jobnik.core.logging import Logger, NullLogger
from jobnik.telemetry.metrics import MetricsRecorder, NoopMetrics, RequestTimings
from jobnik.telemetry.tracing import (
    ATTR_ERROR_TYPE,
    ATTR_HTTP_METHOD,
    ATTR_HTTP_STATUS,
    ATTR_OPERATION_ID,
    ATTR_URL,
    NoopTracer,
    SpanKind,
    SpanStatus,
    Tracer,
)
from jobnik.transport.backoff import RetryState
from jobnik.transport.dispatcher import RetryDispatcher, SleepFunc

OperationIds = Mapping[tuple[str, str], str]

#: Operation ids of the endpoints this client calls, keyed by (METHOD, path template)
DEFAULT_OPERATION_IDS: dict[tuple[str, str], str] = {
    ("GET", "/jobs"): "findJobs",
    ("GET", "/jobs/{jobId}"): "getJobById",
    ("GET", "/stages/{stageId}"): "getStageById",
    ("PATCH", "/stages/{stageType}/tasks/dequeue"): "dequeueTask",
    ("GET", "/tasks/{taskId}"): "getTaskById",
    ("PUT", "/tasks/{taskId}/status"): "updateTaskStatus",
}

_ID_ATTRIBUTES = ("jobId", "stageId", "taskId")
_PATH_PARAM = re.compile(r"\{(\w+)\}")
_HTTP_METHODS = ("get", "put", "post", "delete", "patch", "options", "head", "trace")


def load_operation_ids(path: Path) -> dict[tuple[str, str], str]:
    """Build an operation-id lookup table from an OpenAPI 3 YAML document."""
    with open(path) as f:
        document = yaml.safe_load(f) or {}

    table: dict[tuple[str, str], str] = {}
    for template, item in (document.get("paths") or {}).items():
        for method in _HTTP_METHODS:
            operation = (item or {}).get(method)
            if isinstance(operation, dict) and isinstance(operation.get("operationId"), str):
                table[(method.upper(), template)] = operation["operationId"]
    return table


def render_path(template: str, path_params: Mapping[str, Any] | None = None) -> str:
    """Substitute ``{name}`` placeholders with URL-quoted values.

    Raises:
        ValueError: If a placeholder has no value.
    """
    params = path_params or {}

    def substitute(match: re.Match[str]) -> str:
        name = match.group(1)
        if name not in params:
            raise ValueError(f"Missing path parameter {name!r} for {template}")
        return quote(str(params[name]), safe="")

    return _PATH_PARAM.sub(substitute, template)


@dataclass
class ApiResponse:
    """Outcome of a call that reached the service.

    Exactly one of ``data`` (status < 400) or ``error`` (status >= 400) is
    meaningful.
    """

    response: httpx.Response
    data: Any = None
    error: APIError | None = None

    @property
    def status_code(self) -> int:
        return self.response.status_code

    @property
    def ok(self) -> bool:
        return self.error is None


class ApiClient:
    """Async client for the service's REST API.

    Example:
        async with ApiClient("http://job-manager:8080") as api:
            result = await api.get("/tasks/{taskId}", path_params={"taskId": task_id})
            if result.error is not None:
                ...
    """

    def __init__(
        self,
        base_url: str | None,
        retry: RetryConfig | None = None,
        transport: TransportConfig | None = None,
        *,
        logger: Logger | None = None,
        metrics: MetricsRecorder | None = None,
        tracer: Tracer | None = None,
        operation_ids: OperationIds | None = None,
        http_transport: httpx.AsyncBaseTransport | None = None,
        sleep: SleepFunc = asyncio.sleep,
        rng: random.Random | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            base_url: Service root, e.g. ``http://job-manager:8080``.
            retry: Retry policy (defaults apply when None).
            transport: Connection options (defaults apply when None).
            logger: Logger; a no-op logger when None.
            metrics: Metric sink; a no-op sink when None.
            tracer: Tracer; a no-op tracer when None.
            operation_ids: (METHOD, path template) -> operationId lookup table.
            http_transport: Custom httpx transport (e.g. ``httpx.MockTransport``).
            sleep: Awaitable sleep used between retries.
            rng: Random source for jitter.

        Raises:
            ConfigurationError: If ``base_url`` is missing or malformed.
        """
        self.base_url = validate_base_url(base_url)
        transport_config = transport or TransportConfig()
        self._logger = logger or NullLogger()
        self._metrics = metrics or NoopMetrics()
        self._tracer = tracer or NoopTracer()
        self._operation_ids: OperationIds = (
            DEFAULT_OPERATION_IDS if operation_ids is None else operation_ids
        )
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=transport_config.timeout(),
            limits=transport_config.limits(),
            verify=transport_config.verify_tls,
            headers={"User-Agent": f"{USER_AGENT}/{__version__}", **transport_config.headers},
            transport=http_transport,
        )
        self._dispatcher = RetryDispatcher(
            self._client,
            retry,
            logger=self._logger,
            metrics=self._metrics,
            sleep=sleep,
            rng=rng,
        )
        self.timings = RequestTimings()

    async def __aenter__(self) -> ApiClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    def _span_attributes(
        self,
        method: str,
        path_template: str,
        path_params: Mapping[str, Any] | None,
        params: Mapping[str, Any] | None,
    ) -> dict[str, Any]:
        attributes: dict[str, Any] = {ATTR_HTTP_METHOD: method}
        for name in _ID_ATTRIBUTES:
            value = (path_params or {}).get(name, (params or {}).get(name))
            if isinstance(value, str):
                attributes[name] = value
        operation_id = self._operation_ids.get((method, path_template))
        if operation_id is not None:
            attributes[ATTR_OPERATION_ID] = operation_id
        return attributes

    async def request(
        self,
        method: str,
        path_template: str,
        *,
        path_params: Mapping[str, Any] | None = None,
        params: Mapping[str, Any] | None = None,
        json: Any = None,
    ) -> ApiResponse:
        """Send one logical request (with retries) and apply the response policy.

        Args:
            method: HTTP method.
            path_template: Path with ``{name}`` placeholders, e.g. ``/tasks/{taskId}``.
            path_params: Values for the placeholders.
            params: Query parameters.
            json: JSON request body.

        Returns:
            ApiResponse with ``data`` or ``error``.

        Raises:
            NetworkError: The request failed before a response was received.
            APIError: The service answered 502, 503 or 504.
        """
        method = method.upper()
        path = render_path(path_template, path_params)
        request = self._client.build_request(method, path, params=params, json=json)
        url = str(request.url)

        with self._tracer.start_span(
            f"API Request: {method} {path_template}",
            kind=SpanKind.CLIENT,
            attributes=self._span_attributes(method, path_template, path_params, params),
        ) as span:
            span.set_attribute(ATTR_URL, url)
            key = self.timings.start(method, url)
            if request.content:
                self._metrics.observe_http_request_size(method, len(request.content))

            state = RetryState()
            try:
                response = await self._dispatcher.send(request, state)
            except (httpx.TransportError, OSError) as exc:
                error = classify_transport_error(exc, method, url)
                span.record_exception(error)
                span.set_status(SpanStatus.ERROR, f"Request failed with error: {error.message}")
                self._logger.warning(
                    "request_failed",
                    method=method,
                    url=url,
                    error_code=error.error_code.value,
                    attempts=state.attempt,
                )
                raise error from exc
            except asyncio.CancelledError as exc:
                cancelled = classify_transport_error(exc, method, url)
                span.set_attribute(ATTR_ERROR_TYPE, cancelled.error_code.value)
                span.set_status(SpanStatus.ERROR, cancelled.message)
                # re-raised as is so asyncio cancellation keeps working
                exc.add_note(f"{cancelled.error_code.value}: {cancelled.message}")
                self._logger.info(
                    "request_cancelled",
                    method=method,
                    url=url,
                    error_code=cancelled.error_code.value,
                )
                raise
            finally:
                duration = self.timings.finish(key)

            status = response.status_code
            span.set_attribute(ATTR_HTTP_STATUS, status)
            if duration is not None:
                self._metrics.observe_http_request(
                    method, normalize_status_code(status), state.retries > 0, duration
                )
            self._logger.debug(
                "request_completed",
                method=method,
                url=url,
                status=status,
                attempts=state.attempt,
                duration_seconds=duration,
            )

            if status < 400:
                span.set_status(SpanStatus.OK)
                return ApiResponse(response, data=_decode_body(response))

            span.set_status(SpanStatus.ERROR)
            infrastructure = classify_infrastructure_status(status, method, url)
            if infrastructure is not None:
                raise infrastructure
            return ApiResponse(response, error=await classify_http_response(response, method, url))

    async def get(self, path_template: str, **kwargs: Any) -> ApiResponse:
        return await self.request("GET", path_template, **kwargs)

    async def put(self, path_template: str, **kwargs: Any) -> ApiResponse:
        return await self.request("PUT", path_template, **kwargs)

    async def patch(self, path_template: str, **kwargs: Any) -> ApiResponse:
        return await self.request("PATCH", path_template, **kwargs)

    async def post(self, path_template: str, **kwargs: Any) -> ApiResponse:
        return await self.request("POST", path_template, **kwargs)

    async def delete(self, path_template: str, **kwargs: Any) -> ApiResponse:
        return await self.request("DELETE", path_template, **kwargs)


def _decode_body(response: httpx.Response) -> Any:
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text
