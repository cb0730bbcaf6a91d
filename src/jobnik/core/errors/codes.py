"""Error codes for the jobnik client.

Error Code Taxonomy
===================

Every failure surfaced by the client carries exactly one ``ErrorCode``.
Codes are string-valued so they serialize unchanged into logs and metrics.

**Network** - transport failures before any HTTP response was received.

    | Code | Retriable |
    |------|-----------|
    | NETWORK_CONNECTION_REFUSED | Yes |
    | NETWORK_TIMEOUT | Yes |
    | NETWORK_DNS_RESOLUTION_FAILED | Yes |
    | NETWORK_HOST_UNREACHABLE | Yes |
    | NETWORK_SSL_ERROR | No |
    | NETWORK_REQUEST_CANCELLED | No |
    | NETWORK_REQUEST_ABORTED | No |
    | NETWORK_UNKNOWN | Yes |

**HTTP** - the service answered with an error status.

    | Code | Status | Retriable |
    |------|--------|-----------|
    | HTTP_BAD_REQUEST | 400, other 4xx | No |
    | HTTP_NOT_FOUND | 404 | No |
    | HTTP_INTERNAL_ERROR | 500, other 5xx | Yes |
    | HTTP_BAD_GATEWAY | 502 | Yes |
    | HTTP_SERVICE_UNAVAILABLE | 503 | Yes |
    | HTTP_GATEWAY_TIMEOUT | 504 | Yes |
    | HTTP_UNEXPECTED_STATUS | 1xx-3xx | No |

**Consumer** - task lifecycle failures.

    | Code | Retriable |
    |------|-----------|
    | TRACE_CONTEXT_EXTRACT_ERROR | n/a (logged, never raised) |
    | TASK_INVALID_STATE_TRANSITION | No |
    | REQUEST_FAILED_ERROR | No |

**Configuration** - invalid client setup (never retriable).

    CONFIGURATION_INVALID_URL, CONFIGURATION_MISSING_REQUIRED_FIELD,
    CONFIGURATION_INVALID_RETRY_POLICY

``SDK_UNKNOWN_ERROR`` is the fallback for anything unclassified.
"""

from __future__ import annotations

from enum import Enum


class ErrorCode(str, Enum):
    """Closed set of error kinds surfaced by the client."""

    # Network
    NETWORK_CONNECTION_REFUSED = "NETWORK_CONNECTION_REFUSED"
    """The remote host actively refused the connection."""

    NETWORK_TIMEOUT = "NETWORK_TIMEOUT"
    """Connect, read, write or pool acquisition timed out."""

    NETWORK_DNS_RESOLUTION_FAILED = "NETWORK_DNS_RESOLUTION_FAILED"
    """The host name could not be resolved."""

    NETWORK_HOST_UNREACHABLE = "NETWORK_HOST_UNREACHABLE"
    """No route to the remote host."""

    NETWORK_SSL_ERROR = "NETWORK_SSL_ERROR"
    """TLS handshake or certificate verification failed."""

    NETWORK_REQUEST_CANCELLED = "NETWORK_REQUEST_CANCELLED"
    """The awaiting task was cancelled."""

    NETWORK_REQUEST_ABORTED = "NETWORK_REQUEST_ABORTED"
    """The request was cancelled by an explicit abort."""

    NETWORK_UNKNOWN = "NETWORK_UNKNOWN"
    """Transport failure matching no known pattern."""

    # HTTP
    HTTP_BAD_REQUEST = "HTTP_BAD_REQUEST"
    HTTP_NOT_FOUND = "HTTP_NOT_FOUND"
    HTTP_INTERNAL_ERROR = "HTTP_INTERNAL_ERROR"
    HTTP_BAD_GATEWAY = "HTTP_BAD_GATEWAY"
    HTTP_SERVICE_UNAVAILABLE = "HTTP_SERVICE_UNAVAILABLE"
    HTTP_GATEWAY_TIMEOUT = "HTTP_GATEWAY_TIMEOUT"
    HTTP_UNEXPECTED_STATUS = "HTTP_UNEXPECTED_STATUS"
    """A non-error status reached the error classifier."""

    # Consumer
    TRACE_CONTEXT_EXTRACT_ERROR = "TRACE_CONTEXT_EXTRACT_ERROR"
    """Task carried no usable trace context; an empty context was used."""

    TASK_INVALID_STATE_TRANSITION = "TASK_INVALID_STATE_TRANSITION"
    """Requested status change is not allowed from the task's current status."""

    REQUEST_FAILED_ERROR = "REQUEST_FAILED_ERROR"
    """A dequeue, fetch or status update call failed."""

    # Configuration
    CONFIGURATION_INVALID_URL = "CONFIGURATION_INVALID_URL"
    CONFIGURATION_MISSING_REQUIRED_FIELD = "CONFIGURATION_MISSING_REQUIRED_FIELD"
    CONFIGURATION_INVALID_RETRY_POLICY = "CONFIGURATION_INVALID_RETRY_POLICY"

    # Fallback
    SDK_UNKNOWN_ERROR = "SDK_UNKNOWN_ERROR"

    @property
    def category(self) -> str:
        """Get the high-level category of this code.

        Returns:
            One of "network", "http", "consumer", "configuration", "unknown".
        """
        if self.value.startswith("NETWORK_"):
            return "network"
        if self.value.startswith("HTTP_"):
            return "http"
        if self.value.startswith("CONFIGURATION_"):
            return "configuration"
        if self in _CONSUMER_CODES:
            return "consumer"
        return "unknown"

    @property
    def is_retriable(self) -> bool:
        """Check if failures with this code are transient."""
        return self in _RETRIABLE_CODES


_CONSUMER_CODES = frozenset({
    ErrorCode.TRACE_CONTEXT_EXTRACT_ERROR,
    ErrorCode.TASK_INVALID_STATE_TRANSITION,
    ErrorCode.REQUEST_FAILED_ERROR,
})

_RETRIABLE_CODES = frozenset({
    ErrorCode.NETWORK_CONNECTION_REFUSED,
    ErrorCode.NETWORK_TIMEOUT,
    ErrorCode.NETWORK_DNS_RESOLUTION_FAILED,
    ErrorCode.NETWORK_HOST_UNREACHABLE,
    ErrorCode.NETWORK_UNKNOWN,
    ErrorCode.HTTP_INTERNAL_ERROR,
    ErrorCode.HTTP_BAD_GATEWAY,
    ErrorCode.HTTP_SERVICE_UNAVAILABLE,
    ErrorCode.HTTP_GATEWAY_TIMEOUT,
})

#: Status codes the service's infrastructure (proxies, load balancers) emits
#: regardless of what the service itself declares.
INFRASTRUCTURE_STATUS_CODES: dict[int, ErrorCode] = {
    502: ErrorCode.HTTP_BAD_GATEWAY,
    503: ErrorCode.HTTP_SERVICE_UNAVAILABLE,
    504: ErrorCode.HTTP_GATEWAY_TIMEOUT,
}
