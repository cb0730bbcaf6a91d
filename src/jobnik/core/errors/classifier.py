"""Pattern-based classification of transport failures and HTTP statuses.

Every function here is a pure function of its input: the same exception or
status always yields the same ``ErrorCode`` and message. The only I/O is the
best-effort body read in ``classify_http_response``.
"""

from __future__ import annotations

import asyncio
import errno
import re
import socket
import ssl
from typing import Literal

import httpx

from jobnik.core.constants import EXACT_STATUS_LABELS

from .codes import INFRASTRUCTURE_STATUS_CODES, ErrorCode
from .exceptions import APIError, JobnikError, NetworkError, NotFoundError
from .parsers import extract_api_code, extract_resource_info, parse_error_response

# =============================================================================
# Default pattern strings, checked in the order listed in _NETWORK_CHECKS.
# Each list matches messages from both Python's socket layer and the
# errno-style names other HTTP stacks put in their messages.
# =============================================================================

_REFUSED_PATTERNS: list[str] = [
    r"ECONNREFUSED",
    r"connection.?refused",
]

_DNS_PATTERNS: list[str] = [
    r"ENOTFOUND",
    r"EAI_AGAIN",
    r"getaddrinfo",
    r"name or service not known",
    r"nodename nor servname",
    r"temporary failure in name resolution",
    r"could not resolve",
    r"dns.?resolution",
]

_TIMEOUT_PATTERNS: list[str] = [
    r"ETIMEDOUT",
    r"time.?out",
    r"timed out",
]

_UNREACHABLE_PATTERNS: list[str] = [
    r"EHOSTUNREACH",
    r"ENETUNREACH",
    r"host.?unreachable",
    r"network.?unreachable",
    r"no route to host",
]

_TLS_PATTERNS: list[str] = [
    r"\bSSL",
    r"\bTLS",
    r"certificate",
]

_ABORT_PATTERNS: list[str] = [
    r"abort",
]

# Low-level codes for the retry decision, most specific first
_LOW_LEVEL_CODE_PATTERNS: list[tuple[str, list[str]]] = [
    ("ECONNRESET", [r"ECONNRESET", r"connection.?reset", r"reset by peer"]),
    ("ECONNREFUSED", _REFUSED_PATTERNS),
    ("EAI_AGAIN", [r"EAI_AGAIN", r"temporary failure in name resolution"]),
    ("ENOTFOUND", [
        r"ENOTFOUND",
        r"name or service not known",
        r"nodename nor servname",
        r"getaddrinfo failed",
    ]),
    ("ETIMEDOUT", _TIMEOUT_PATTERNS),
    ("EHOSTUNREACH", _UNREACHABLE_PATTERNS),
]

_ERRNO_CODES: dict[int, str] = {
    errno.ECONNRESET: "ECONNRESET",
    errno.ECONNREFUSED: "ECONNREFUSED",
    errno.ETIMEDOUT: "ETIMEDOUT",
    errno.EHOSTUNREACH: "EHOSTUNREACH",
}

_GAI_CODES: dict[int, str] = {
    socket.EAI_NONAME: "ENOTFOUND",
    socket.EAI_AGAIN: "EAI_AGAIN",
}


def _compile(strings: list[str]) -> re.Pattern[str]:
    """Compile pattern strings into one case-insensitive alternation."""
    return re.compile("|".join(f"(?:{p})" for p in strings), re.IGNORECASE)


_REFUSED = _compile(_REFUSED_PATTERNS)
_DNS = _compile(_DNS_PATTERNS)
_TIMEOUT = _compile(_TIMEOUT_PATTERNS)
_UNREACHABLE = _compile(_UNREACHABLE_PATTERNS)
_TLS = _compile(_TLS_PATTERNS)
_ABORT = _compile(_ABORT_PATTERNS)
_LOW_LEVEL_CODES = [(code, _compile(patterns)) for code, patterns in _LOW_LEVEL_CODE_PATTERNS]


# =============================================================================
# Cause chain helpers
# =============================================================================


def iter_cause_chain(exc: BaseException) -> list[BaseException]:
    """Return ``exc`` followed by its ``__cause__``/``__context__`` links.

    Cycles are cut; each exception appears at most once.
    """
    chain: list[BaseException] = []
    seen: set[int] = set()
    current: BaseException | None = exc
    while current is not None and id(current) not in seen:
        chain.append(current)
        seen.add(id(current))
        current = current.__cause__ or current.__context__
    return chain


def _describe(exc: BaseException) -> str:
    return str(exc) or type(exc).__name__


def _chain_text(chain: list[BaseException]) -> str:
    return " | ".join(_describe(link) for link in chain)


# =============================================================================
# Transport failures
# =============================================================================


def transport_error_code(exc: BaseException) -> str | None:
    """Map a transport exception to a low-level error code.

    Errno values and exception types are checked before message patterns.

    Returns:
        One of ECONNRESET, ECONNREFUSED, ETIMEDOUT, ENOTFOUND, EAI_AGAIN,
        EHOSTUNREACH, or None when nothing matches.
    """
    chain = iter_cause_chain(exc)
    for link in chain:
        if isinstance(link, socket.gaierror) and link.errno in _GAI_CODES:
            return _GAI_CODES[link.errno]
        if isinstance(link, OSError) and link.errno in _ERRNO_CODES:
            return _ERRNO_CODES[link.errno]
        if isinstance(link, ConnectionResetError):
            return "ECONNRESET"
        if isinstance(link, ConnectionRefusedError):
            return "ECONNREFUSED"
        if isinstance(link, (httpx.TimeoutException, TimeoutError)):
            return "ETIMEDOUT"

    text = _chain_text(chain)
    for code, pattern in _LOW_LEVEL_CODES:
        if pattern.search(text):
            return code
    return None


def _is_timeout(chain: list[BaseException], text: str) -> bool:
    if any(isinstance(link, (httpx.TimeoutException, TimeoutError)) for link in chain):
        return True
    return _TIMEOUT.search(text) is not None


def _is_tls(chain: list[BaseException], text: str) -> bool:
    if any(isinstance(link, ssl.SSLError) for link in chain):
        return True
    return _TLS.search(text) is not None


def classify_transport_error(exc: BaseException, method: str, url: str) -> NetworkError:
    """Classify a failure that happened before any response was received.

    Checks run in order: connection refused, DNS resolution, timeout, host
    unreachable, TLS, cancellation, then falls back to an unknown network
    error. The whole cause chain is inspected.

    Args:
        exc: The raised exception.
        method: Request method.
        url: Request URL.

    Returns:
        A NetworkError carrying the code, a message, and ``exc`` as cause.
    """
    chain = iter_cause_chain(exc)
    text = _chain_text(chain)

    if any(isinstance(link, ConnectionRefusedError) for link in chain) or _REFUSED.search(text):
        return NetworkError(
            f"Failed to connect to {url}: Connection refused",
            ErrorCode.NETWORK_CONNECTION_REFUSED,
            exc,
        )

    if any(isinstance(link, socket.gaierror) for link in chain) or _DNS.search(text):
        return NetworkError(
            f"DNS resolution failed for {url}",
            ErrorCode.NETWORK_DNS_RESOLUTION_FAILED,
            exc,
        )

    if _is_timeout(chain, text):
        return NetworkError(f"Request to {url} timed out", ErrorCode.NETWORK_TIMEOUT, exc)

    if _UNREACHABLE.search(text):
        return NetworkError(f"Host unreachable: {url}", ErrorCode.NETWORK_HOST_UNREACHABLE, exc)

    if _is_tls(chain, text):
        return NetworkError(
            f"SSL/TLS error when connecting to {url}",
            ErrorCode.NETWORK_SSL_ERROR,
            exc,
        )

    if any(isinstance(link, asyncio.CancelledError) for link in chain):
        if _ABORT.search(text):
            return NetworkError(
                f"Request to {method} {url} was aborted",
                ErrorCode.NETWORK_REQUEST_ABORTED,
                exc,
            )
        return NetworkError(
            f"Request to {method} {url} was cancelled",
            ErrorCode.NETWORK_REQUEST_CANCELLED,
            exc,
        )

    return NetworkError(
        f"Network error when requesting {method} {url}: {_describe(exc)}",
        ErrorCode.NETWORK_UNKNOWN,
        exc,
    )


# =============================================================================
# HTTP statuses
# =============================================================================


def classify_infrastructure_status(status: int, method: str, url: str) -> APIError | None:
    """Classify 502/503/504, which are always raised and always retry-eligible.

    Returns:
        The APIError, or None for any other status.
    """
    error_code = INFRASTRUCTURE_STATUS_CODES.get(status)
    if error_code is None:
        return None
    return APIError(
        f"Service temporarily unavailable for {method} {url}. Please retry later.",
        error_code,
        status,
    )


def classify_status(
    status: int,
    method: str,
    url: str,
    message: str | None = None,
    api_code: str | None = None,
) -> APIError:
    """Classify an HTTP status into an APIError.

    Args:
        status: HTTP status code.
        method: Request method.
        url: Request URL.
        message: Message parsed from the body; a generic one is used if None.
        api_code: Machine code parsed from the body, if any.

    Returns:
        APIError (NotFoundError for 404).
    """
    infrastructure = classify_infrastructure_status(status, method, url)
    if infrastructure is not None:
        return infrastructure

    if status < 400:
        return APIError(
            f"Unexpected status code {status} for {method} {url}",
            ErrorCode.HTTP_UNEXPECTED_STATUS,
            status,
            api_code,
        )

    text = message or f"HTTP {status} error for {method} {url}"
    if status == 404:
        resource_type, resource_id = extract_resource_info(url)
        return NotFoundError(text, resource_type, resource_id, api_code)
    if status >= 500:
        return APIError(text, ErrorCode.HTTP_INTERNAL_ERROR, status, api_code)
    return APIError(text, ErrorCode.HTTP_BAD_REQUEST, status, api_code)


async def classify_http_response(response: httpx.Response, method: str, url: str) -> APIError:
    """Classify an error response, reading its body for a message.

    Body read failures are ignored and the generic message is used.
    """
    body_text: str | None
    try:
        await response.aread()
        body_text = response.text
    except (httpx.HTTPError, httpx.StreamError):
        body_text = None

    return classify_status(
        response.status_code,
        method,
        url,
        message=parse_error_response(response.status_code, body_text, method, url),
        api_code=extract_api_code(body_text),
    )


# =============================================================================
# Metric label helpers
# =============================================================================

RetryReason = Literal["status_code", "timeout", "network_error"]
ErrorKind = Literal["timeout", "handler_error", "api_error"]


def normalize_status_code(code: int) -> str:
    """Collapse a status code to a bounded label set.

    200/201/204/404/500/502/503/504 are kept exactly; others become
    "2xx", "3xx", "4xx", "5xx" or "other".
    """
    if code in EXACT_STATUS_LABELS:
        return str(code)
    if 200 <= code < 300:
        return "2xx"
    if 300 <= code < 400:
        return "3xx"
    if 400 <= code < 500:
        return "4xx"
    if code >= 500:
        return "5xx"
    return "other"


def categorize_retry_reason(error: BaseException | None) -> RetryReason:
    """Bucket the cause of a retry for metric labels.

    ``None`` means the retry was triggered by a response status.
    """
    if error is None:
        return "status_code"
    if isinstance(error, httpx.TimeoutException):
        return "timeout"
    message = _describe(error).lower()
    if "timeout" in message or "timed out" in message:
        return "timeout"
    if isinstance(error, httpx.NetworkError) or any(
        needle in message for needle in ("network", "connect", "econnreset")
    ):
        return "network_error"
    return "status_code"


def categorize_error(error: BaseException) -> ErrorKind:
    """Bucket a task failure for metric labels."""
    if isinstance(error, NetworkError):
        if error.error_code in (
            ErrorCode.NETWORK_TIMEOUT,
            ErrorCode.NETWORK_REQUEST_CANCELLED,
            ErrorCode.NETWORK_REQUEST_ABORTED,
        ):
            return "timeout"
        return "api_error"
    if isinstance(error, APIError):
        return "api_error"
    if isinstance(error, JobnikError):
        return "handler_error"

    name = type(error).__name__.lower()
    message = str(error).lower()
    if isinstance(error, (TimeoutError, asyncio.CancelledError)) or "timeout" in message:
        return "timeout"
    if "abort" in name or "aborted" in message:
        return "timeout"
    if "breaker" in message or "circuit" in message:
        return "api_error"
    return "handler_error"
