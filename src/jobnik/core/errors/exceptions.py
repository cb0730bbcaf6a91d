"""Exception hierarchy for the jobnik client.

All client exceptions inherit from JobnikError, enabling callers to catch
broad (JobnikError) or narrow (e.g., InvalidStateTransitionError). Every
instance carries an ``ErrorCode`` and, where one exists, the low-level
exception that caused it (also set as ``__cause__`` by ``raise ... from``).
"""

from __future__ import annotations

from .codes import ErrorCode


class JobnikError(Exception):
    """Base exception for all jobnik errors.

    Attributes:
        message: Human-readable description.
        error_code: Classification of the failure.
        cause: Original exception, preserved for diagnostics.
    """

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.SDK_UNKNOWN_ERROR,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.cause = cause

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.message!r}, error_code={self.error_code.value})"


class NetworkError(JobnikError):
    """Raised when a request fails before a response is received."""


class ConfigurationError(JobnikError):
    """Raised for an invalid client configuration (URL, retry policy, ...)."""


class APIError(JobnikError):
    """An HTTP error response from the service.

    502/503/504 are raised; other error statuses are returned to the caller
    as values inside an ``ApiResponse``.

    Attributes:
        status_code: HTTP status code of the response.
        api_code: Optional machine code from the response body's ``code`` field.
    """

    def __init__(
        self,
        message: str,
        error_code: ErrorCode,
        status_code: int,
        api_code: str | None = None,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message, error_code, cause)
        self.status_code = status_code
        self.api_code = api_code


class NotFoundError(APIError):
    """A 404 with the resource type and id taken from the request URL."""

    def __init__(
        self,
        message: str,
        resource_type: str,
        resource_id: str,
        api_code: str | None = None,
    ) -> None:
        super().__init__(message, ErrorCode.HTTP_NOT_FOUND, 404, api_code)
        self.resource_type = resource_type
        self.resource_id = resource_id


class ConsumerError(JobnikError):
    """Raised when a task lifecycle operation fails."""


class InvalidStateTransitionError(ConsumerError):
    """Raised when a status change is requested from a disallowed status.

    Always raised before any mutating call reaches the service, so the
    caller may safely retry after refreshing the task.
    """

    def __init__(
        self,
        task_id: str,
        current_status: str,
        expected_status: str,
        target_status: str,
    ) -> None:
        super().__init__(
            f"Cannot mark task {task_id} as {target_status.lower()}: "
            f"task is in {current_status} state, expected {expected_status}",
            ErrorCode.TASK_INVALID_STATE_TRANSITION,
        )
        self.task_id = task_id
        self.current_status = current_status
        self.expected_status = expected_status
        self.target_status = target_status
