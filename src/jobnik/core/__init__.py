"""Core domain types, configuration and error taxonomy."""

from jobnik.core.types import JobId, StageId, Task, TaskId, TaskStatus
from jobnik.core.errors import (
    APIError,
    ConfigurationError,
    ConsumerError,
    ErrorCode,
    InvalidStateTransitionError,
    JobnikError,
    NetworkError,
    NotFoundError,
)
from jobnik.core.config import ClientConfig, LogConfig, RetryConfig, TransportConfig

__all__ = [
    "APIError",
    "ClientConfig",
    "ConfigurationError",
    "ConsumerError",
    "ErrorCode",
    "InvalidStateTransitionError",
    "JobId",
    "JobnikError",
    "LogConfig",
    "NetworkError",
    "NotFoundError",
    "RetryConfig",
    "StageId",
    "Task",
    "TaskId",
    "TaskStatus",
    "TransportConfig",
]
