"""HTTP transport: retry dispatcher, backoff and the API client."""

from jobnik.transport.backoff import RetryState, compute_backoff_delay
from jobnik.transport.client import (
    DEFAULT_OPERATION_IDS,
    ApiClient,
    ApiResponse,
    load_operation_ids,
    render_path,
)
from jobnik.transport.dispatcher import RetryDispatcher

__all__ = [
    "DEFAULT_OPERATION_IDS",
    "ApiClient",
    "ApiResponse",
    "RetryDispatcher",
    "RetryState",
    "compute_backoff_delay",
    "load_operation_ids",
    "render_path",
]
