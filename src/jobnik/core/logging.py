"""Structured logging for jobnik built on structlog.

Library classes never touch global logging state. They take a ``Logger``
and default to ``NullLogger``; only applications (the ``jobnik`` CLI among
them) call ``configure_logging()``, once, at startup.

    configure_logging(level="DEBUG", format="console")
    log = get_logger("consumer", stage_type="resize")
    log.info("task_dequeued", task_id="abc")

Everything logged inside ``with_context(RequestContext(...))`` carries the
stage type, task id and correlation id of that unit of work.
"""

from __future__ import annotations

import copy
import logging
import sys
import uuid
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Literal, Protocol, runtime_checkable

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

# Substrings of field names whose values are replaced before rendering
SENSITIVE_PATTERNS = frozenset(
    {
        "password", "secret", "token", "bearer", "credential",
        "auth", "authorization", "api_key", "apikey", "api-key",
    }
)

REDACTED = "[REDACTED]"

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR"]
LogFormat = Literal["json", "console"]


@runtime_checkable
class Logger(Protocol):
    """What jobnik components need from a logger: snake_case events plus fields."""

    def debug(self, event: str, **kw: Any) -> None: ...

    def info(self, event: str, **kw: Any) -> None: ...

    def warning(self, event: str, **kw: Any) -> None: ...

    def error(self, event: str, **kw: Any) -> None: ...


class NullLogger:
    """Drops every event. Used when no logger is injected."""

    def _discard(self, event: str, **kw: Any) -> None:
        return None

    debug = info = warning = error = _discard

    def bind(self, **context: Any) -> NullLogger:
        return self


@dataclass(frozen=True)
class RequestContext:
    """Fields attached to every log entry emitted for one unit of work."""

    stage_type: str | None = None
    task_id: str | None = None
    correlation_id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def with_task(self, task_id: str) -> RequestContext:
        """Same stage and correlation id, narrowed to ``task_id``."""
        return RequestContext(self.stage_type, task_id, self.correlation_id)

    def to_dict(self) -> dict[str, Any]:
        fields = {
            "correlation_id": self.correlation_id,
            "stage_type": self.stage_type,
            "task_id": self.task_id,
        }
        return {name: value for name, value in fields.items() if value is not None}


_request_context: ContextVar[RequestContext | None] = ContextVar(
    "jobnik_request_context", default=None
)


def get_current_context() -> RequestContext | None:
    """Context installed by the innermost active ``with_context()`` block."""
    return _request_context.get()


@contextmanager
def with_context(ctx: RequestContext) -> Iterator[RequestContext]:
    """Install ``ctx`` for the block and restore the previous one on exit.

    Each asyncio task gets its own copy of the context variable, so
    concurrent consumers never see each other's fields.
    """
    reset_token = _request_context.set(ctx)
    try:
        yield ctx
    finally:
        _request_context.reset(reset_token)


def _is_sensitive(key: str) -> bool:
    lowered = key.lower()
    return any(pattern in lowered for pattern in SENSITIVE_PATTERNS)


def _sanitize_value(key: str, value: Any) -> Any:
    return REDACTED if _is_sensitive(key) else value


def _sanitize_event_dict(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Redact sensitive fields, looking one level into mappings such as headers."""
    return {
        key: (
            {str(k): _sanitize_value(str(k), v) for k, v in value.items()}
            if isinstance(value, Mapping)
            else _sanitize_value(key, value)
        )
        for key, value in event_dict.items()
    }


def _add_context(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    ctx = _request_context.get()
    if ctx is None:
        return event_dict
    # explicitly passed fields win
    return {**ctx.to_dict(), **event_dict}


class JobnikLogger:
    """structlog-backed logger that carries a component name and bound fields.

    The structlog logger is looked up on each call, so instances created at
    import time pick up whatever ``configure_logging()`` installs later.
    """

    def __init__(self, component: str, **initial_context: Any) -> None:
        self._component = component
        self._context: dict[str, Any] = {"component": component, **initial_context}

    def bind(self, **context: Any) -> JobnikLogger:
        """Return a copy with ``context`` added to the bound fields."""
        bound = copy.copy(self)
        bound._context = {**self._context, **context}
        return bound

    def _emit(self, method: str, event: str, kw: dict[str, Any]) -> None:
        log = getattr(structlog.get_logger(), method)
        log(event, **{**self._context, **kw})

    def debug(self, event: str, **kw: Any) -> None:
        self._emit("debug", event, kw)

    def info(self, event: str, **kw: Any) -> None:
        self._emit("info", event, kw)

    def warning(self, event: str, **kw: Any) -> None:
        self._emit("warning", event, kw)

    def error(self, event: str, **kw: Any) -> None:
        self._emit("error", event, kw)

    def exception(self, event: str, **kw: Any) -> None:
        """Like ``error`` but attaches the active exception's traceback."""
        self._emit("exception", event, kw)


def _build_processors(format: LogFormat, include_timestamps: bool) -> list[Processor]:  # noqa: A002
    chain: list[Processor] = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_log_level,
        _add_context,
        _sanitize_event_dict,
    ]
    if include_timestamps:
        chain.append(structlog.processors.TimeStamper(fmt="iso", utc=True, key="timestamp"))
    chain += [
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]
    if format == "json":
        chain.append(structlog.processors.JSONRenderer())
    else:
        chain.append(structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()))
    return chain


def _build_handler(
    format: LogFormat,  # noqa: A002
    file_path: Path | None,
    max_bytes: int,
    backups: int,
) -> logging.Handler:
    if file_path is None:
        # stdout stays free for machine-readable output in console mode
        return logging.StreamHandler(sys.stderr if format == "console" else sys.stdout)
    file_path.parent.mkdir(parents=True, exist_ok=True)
    return RotatingFileHandler(
        file_path, maxBytes=max_bytes, backupCount=backups, encoding="utf-8"
    )


def configure_logging(
    level: LogLevel = "INFO",
    format: LogFormat = "console",  # noqa: A002
    file_path: Path | None = None,
    max_bytes: int = 10 * 1024 * 1024,
    backups: int = 3,
    include_timestamps: bool = True,
) -> None:
    """Route structlog through the stdlib root logger with a single handler.

    Console output goes to stderr. JSON goes to ``file_path`` (rotated at
    ``max_bytes``, keeping ``backups`` old files) or to stdout. Calling it
    again replaces the previous handler.

    Raises:
        ValueError: If ``file_path`` is given with the console format.
    """
    if file_path is not None and format != "json":
        raise ValueError("file_path requires format='json'")

    numeric_level = logging.getLevelName(level)
    handler = _build_handler(format, file_path, max_bytes, backups)
    handler.setLevel(numeric_level)

    root = logging.getLogger()
    for stale in list(root.handlers):
        root.removeHandler(stale)
    root.addHandler(handler)
    root.setLevel(numeric_level)

    structlog.configure(
        processors=_build_processors(format, include_timestamps),
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        # import-time loggers must follow reconfiguration
        cache_logger_on_first_use=False,
    )


def get_logger(component: str, **initial_context: Any) -> JobnikLogger:
    """Logger for ``component`` (e.g. "consumer", "dispatcher")."""
    return JobnikLogger(component, **initial_context)


__all__ = [
    "JobnikLogger",
    "LogFormat",
    "LogLevel",
    "Logger",
    "NullLogger",
    "REDACTED",
    "RequestContext",
    "SENSITIVE_PATTERNS",
    "configure_logging",
    "get_current_context",
    "get_logger",
    "with_context",
]
