"""Error taxonomy, exception hierarchy and classification for jobnik.

This package is organized into focused modules:
- codes: ErrorCode enum and the infrastructure status mapping
- exceptions: JobnikError and its subclasses
- parsers: Error body and URL parsing helpers
- classifier: Pure classification of transport failures and HTTP statuses

All public symbols are re-exported here, so callers can simply use::

    from jobnik.core.errors import ErrorCode, NetworkError, classify_transport_error
"""

from .classifier import (
    categorize_error,
    categorize_retry_reason,
    classify_http_response,
    classify_infrastructure_status,
    classify_status,
    classify_transport_error,
    iter_cause_chain,
    normalize_status_code,
    transport_error_code,
)
from .codes import INFRASTRUCTURE_STATUS_CODES, ErrorCode
from .exceptions import (
    APIError,
    ConfigurationError,
    ConsumerError,
    InvalidStateTransitionError,
    JobnikError,
    NetworkError,
    NotFoundError,
)
from .parsers import extract_api_code, extract_resource_info, parse_error_response

__all__ = [
    "APIError",
    "ConfigurationError",
    "ConsumerError",
    "ErrorCode",
    "INFRASTRUCTURE_STATUS_CODES",
    "InvalidStateTransitionError",
    "JobnikError",
    "NetworkError",
    "NotFoundError",
    "categorize_error",
    "categorize_retry_reason",
    "classify_http_response",
    "classify_infrastructure_status",
    "classify_status",
    "classify_transport_error",
    "extract_api_code",
    "extract_resource_info",
    "iter_cause_chain",
    "normalize_status_code",
    "parse_error_response",
    "transport_error_code",
]
