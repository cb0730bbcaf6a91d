"""Retry dispatcher wrapping an httpx client.

Sends a request, and on a retryable failure waits with exponential backoff
and resends the same request unchanged. A failure is retryable when the
response status is in ``RetryConfig.status_codes`` or the transport
exception maps to a low-level code in ``RetryConfig.error_codes``.

The wait is an ``await`` on an injectable sleep (``asyncio.sleep`` by
default), so other tasks keep running while a request backs off.
"""

from __future__ import annotations

import asyncio
import random
from collections.abc import Awaitable, Callable

import httpx

from jobnik.core.config import RetryConfig
from jobnik.core.constants import NON_IDEMPOTENT_METHODS
from jobnik.core.errors import categorize_retry_reason, transport_error_code
from jobnik.core.logging import Logger, NullLogger
from jobnik.telemetry.metrics import MetricsRecorder, NoopMetrics
from jobnik.transport.backoff import RetryState, compute_backoff_delay

SleepFunc = Callable[[float], Awaitable[None]]


class RetryDispatcher:
    """Sends requests with bounded exponential-backoff retries.

    Retries apply to every HTTP method. Retrying POST or PATCH may repeat a
    side effect on the service; each such retry is logged as a
    ``non_idempotent_retry`` warning.

    On exhaustion the last failure is surfaced unchanged: the last response
    is returned, or the last transport exception is re-raised. Cancellation
    is never retried.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        config: RetryConfig | None = None,
        logger: Logger | None = None,
        metrics: MetricsRecorder | None = None,
        sleep: SleepFunc = asyncio.sleep,
        rng: random.Random | None = None,
    ) -> None:
        self._client = client
        self._config = config or RetryConfig()
        self._logger = logger or NullLogger()
        self._metrics = metrics or NoopMetrics()
        self._sleep = sleep
        self._rng = rng

    @property
    def config(self) -> RetryConfig:
        return self._config

    def _is_retryable_exception(self, exc: BaseException) -> bool:
        return transport_error_code(exc) in self._config.error_codes

    async def send(
        self,
        request: httpx.Request,
        state: RetryState | None = None,
    ) -> httpx.Response:
        """Send ``request``, retrying per the configured policy.

        Args:
            request: The request to send; it is resent unchanged on retry.
            state: Optional retry state to fill in, for callers that want to
                know how many attempts were made.

        Returns:
            The first non-retryable response, or the last response once
            retries are exhausted.

        Raises:
            httpx.TransportError: A non-retryable transport failure, or the
                last retryable one once retries are exhausted.
        """
        state = state if state is not None else RetryState()
        method = request.method
        url = str(request.url)

        while True:
            state.attempt += 1
            error: Exception | None = None
            response: httpx.Response | None = None
            try:
                response = await self._client.send(request)
            except (httpx.TransportError, OSError) as exc:
                if not self._is_retryable_exception(exc):
                    raise
                error = exc
                failure = str(exc) or type(exc).__name__
            else:
                if response.status_code not in self._config.status_codes:
                    return response
                failure = f"HTTP {response.status_code}"

            if state.attempt > self._config.max_retries:
                self._logger.warning(
                    "retries_exhausted",
                    method=method,
                    url=url,
                    attempts=state.attempt,
                    max_retries=self._config.max_retries,
                    failure=failure,
                )
                if error is not None:
                    raise error
                assert response is not None
                return response

            state.delay_ms = compute_backoff_delay(state.attempt - 1, self._config, self._rng)
            self._logger.info(
                "retry_scheduled",
                method=method,
                url=url,
                retry=state.attempt,
                delay_ms=state.delay_ms,
                failure=failure,
            )
            if method in NON_IDEMPOTENT_METHODS:
                self._logger.warning(
                    "non_idempotent_retry",
                    method=method,
                    url=url,
                    retry=state.attempt,
                )
            self._metrics.increment_http_retries(method, categorize_retry_reason(error))

            if response is not None:
                await response.aclose()
            await self._sleep(state.delay_ms / 1000)
