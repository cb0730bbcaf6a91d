"""jobnik: async client for the job-processing service.

Dequeue tasks, report their outcome, and talk to the service through a
transport that retries with exponential backoff and classifies every
failure into a stable error taxonomy.
"""

__version__ = "0.3.0"

from jobnik.consumer import TaskConsumer
from jobnik.core.config import ClientConfig, RetryConfig, TransportConfig, load_config
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
from jobnik.core.types import JobId, StageId, Task, TaskId, TaskStatus
from jobnik.sdk import JobnikClient
from jobnik.transport.client import ApiClient, ApiResponse

__all__ = [
    "APIError",
    "ApiClient",
    "ApiResponse",
    "ClientConfig",
    "ConfigurationError",
    "ConsumerError",
    "ErrorCode",
    "InvalidStateTransitionError",
    "JobId",
    "JobnikClient",
    "JobnikError",
    "NetworkError",
    "NotFoundError",
    "RetryConfig",
    "StageId",
    "Task",
    "TaskConsumer",
    "TaskId",
    "TaskStatus",
    "TransportConfig",
    "__version__",
    "load_config",
]
