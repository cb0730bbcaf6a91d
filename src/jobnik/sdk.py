"""Client facade wiring configuration, transport and consumer together."""

from __future__ import annotations

import asyncio
from pathlib import Path
from types import TracebackType
from typing import Any

import httpx

from jobnik.consumer import TaskConsumer
from jobnik.core.config import ClientConfig, RetryConfig, TransportConfig, load_config
from jobnik.core.logging import Logger, NullLogger
from jobnik.telemetry.metrics import MetricsRecorder
from jobnik.telemetry.tracing import TracePropagator, Tracer
from jobnik.transport.client import ApiClient, OperationIds
from jobnik.transport.dispatcher import SleepFunc


class JobnikClient:
    """Entry point for applications talking to the job-processing service.

    Owns one ``ApiClient`` (and its connection pool) shared by the consumer.
    Use it as an async context manager, or call ``aclose()`` when done.

    Example:
        async with JobnikClient("http://job-manager:8080") as client:
            task = await client.consumer.dequeue_task("resize")
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
        propagator: TracePropagator | None = None,
        operation_ids: OperationIds | None = None,
        http_transport: httpx.AsyncBaseTransport | None = None,
        sleep: SleepFunc = asyncio.sleep,
    ) -> None:
        self._logger = logger or NullLogger()
        self._api = ApiClient(
            base_url,
            retry,
            transport,
            logger=self._logger,
            metrics=metrics,
            tracer=tracer,
            operation_ids=operation_ids,
            http_transport=http_transport,
            sleep=sleep,
        )
        self._consumer = TaskConsumer(
            self._api,
            logger=self._logger,
            tracer=tracer,
            propagator=propagator,
            metrics=metrics,
        )

    @classmethod
    def from_config(
        cls,
        config: ClientConfig,
        **kwargs: Any,
    ) -> JobnikClient:
        """Build a client from a ``ClientConfig``; kwargs are passed through."""
        return cls(config.base_url, config.retry, config.transport, **kwargs)

    @classmethod
    def from_file(cls, path: Path | None = None, **kwargs: Any) -> JobnikClient:
        """Build a client from a YAML file plus environment overrides."""
        return cls.from_config(load_config(path), **kwargs)

    @property
    def api(self) -> ApiClient:
        return self._api

    @property
    def consumer(self) -> TaskConsumer:
        return self._consumer

    async def aclose(self) -> None:
        await self._api.aclose()

    async def __aenter__(self) -> JobnikClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.aclose()
