"""Global constants for jobnik.

Centralizes the retry defaults, label sets and limits used throughout the
client so they stay consistent between configuration, transport and tests.
"""

# =============================================================================
# Retry Defaults
# =============================================================================

DEFAULT_MAX_RETRIES = 3
"""Retries allowed after the first attempt of one logical request."""

DEFAULT_RETRY_STATUS_CODES = frozenset({500, 502, 503, 504})
"""HTTP statuses that trigger a retry."""

DEFAULT_RETRY_ERROR_CODES = frozenset({
    "ECONNRESET",
    "ECONNREFUSED",
    "ETIMEDOUT",
    "ENOTFOUND",
    "EAI_AGAIN",
})
"""Low-level transport error codes that trigger a retry."""

DEFAULT_INITIAL_RETRY_DELAY_MS = 100
"""Base delay before the first retry (milliseconds)."""

DEFAULT_BACKOFF_FACTOR = 2.0
"""Multiplier applied to the delay for each further retry."""

DEFAULT_MAX_RETRY_DELAY_MS = 30_000
"""Upper bound for any single retry delay (milliseconds)."""

MAX_BACKOFF_EXPONENT = 15
"""Exponent cap so the delay computation never overflows."""

JITTER_MIN_FACTOR = 0.5
"""Lower bound of the jitter scaling range."""

DEFAULT_MAX_JITTER_FACTOR = 1.0
"""Width of the jitter scaling range above JITTER_MIN_FACTOR."""

NON_IDEMPOTENT_METHODS = frozenset({"POST", "PATCH"})
"""Methods whose retries may duplicate a side effect on the service."""

# =============================================================================
# Error Parsing
# =============================================================================

MAX_ERROR_TEXT_LENGTH = 200
"""Raw (non-JSON) error bodies longer than this are left out of messages."""

# =============================================================================
# Transport Defaults
# =============================================================================

DEFAULT_TIMEOUT_SECONDS = 30.0
"""Overall request timeout applied to the HTTP client."""

DEFAULT_CONNECT_TIMEOUT_SECONDS = 10.0
"""Timeout for establishing a connection."""

DEFAULT_MAX_CONNECTIONS = 100
"""Maximum concurrent connections in the HTTP pool."""

DEFAULT_MAX_KEEPALIVE_CONNECTIONS = 20
"""Maximum idle keep-alive connections in the HTTP pool."""

USER_AGENT = "jobnik-python"
"""Value sent in the User-Agent header (version appended at runtime)."""

# =============================================================================
# Environment Variables
# =============================================================================

ENV_BASE_URL = "JOBNIK_BASE_URL"
"""Overrides the configured service base URL."""

ENV_LOG_LEVEL = "JOBNIK_LOG_LEVEL"
"""Overrides the configured log level."""

# =============================================================================
# Metric Labels
# =============================================================================

EXACT_STATUS_LABELS = frozenset({200, 201, 204, 404, 500, 502, 503, 504})
"""Status codes kept verbatim as metric labels; others collapse to ranges."""
