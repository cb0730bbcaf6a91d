"""Configuration models for the jobnik client.

Defines Pydantic v2 models for the retry policy, HTTP transport options and
logging, plus YAML/environment loading. Retry fields accept both snake_case
and the service's camelCase option names (``maxRetries``, ``statusCodes``,
``errorCodes``, ``initialBaseRetryDelayMs``, ``disableJitter``,
``maxJitterFactor``).
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Literal
from urllib.parse import urlsplit

import httpx
import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from jobnik.core.constants import (
    DEFAULT_BACKOFF_FACTOR,
    DEFAULT_CONNECT_TIMEOUT_SECONDS,
    DEFAULT_INITIAL_RETRY_DELAY_MS,
    DEFAULT_MAX_CONNECTIONS,
    DEFAULT_MAX_JITTER_FACTOR,
    DEFAULT_MAX_KEEPALIVE_CONNECTIONS,
    DEFAULT_MAX_RETRIES,
    DEFAULT_MAX_RETRY_DELAY_MS,
    DEFAULT_RETRY_ERROR_CODES,
    DEFAULT_RETRY_STATUS_CODES,
    DEFAULT_TIMEOUT_SECONDS,
    ENV_BASE_URL,
    ENV_LOG_LEVEL,
)
from jobnik.core.errors import ConfigurationError, ErrorCode


class RetryConfig(BaseModel):
    """Retry policy for the dispatcher.

    ``max_retries`` counts retries, not attempts: 3 means up to 4 requests.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True, extra="forbid")

    max_retries: int = Field(
        default=DEFAULT_MAX_RETRIES,
        ge=0,
        alias="maxRetries",
        description="Retries allowed after the first attempt",
    )
    status_codes: frozenset[int] = Field(
        default=DEFAULT_RETRY_STATUS_CODES,
        alias="statusCodes",
        description="HTTP statuses that trigger a retry",
    )
    error_codes: frozenset[str] = Field(
        default=DEFAULT_RETRY_ERROR_CODES,
        alias="errorCodes",
        description="Low-level transport error codes that trigger a retry",
    )
    initial_base_retry_delay_ms: float = Field(
        default=DEFAULT_INITIAL_RETRY_DELAY_MS,
        ge=0,
        alias="initialBaseRetryDelayMs",
        description="Base delay before the first retry (ms)",
    )
    backoff_factor: float = Field(
        default=DEFAULT_BACKOFF_FACTOR,
        ge=1.0,
        alias="backoffFactor",
        description="Delay multiplier per further retry",
    )
    max_delay_ms: float = Field(
        default=DEFAULT_MAX_RETRY_DELAY_MS,
        ge=0,
        alias="maxDelayMs",
        description="Cap on any single retry delay (ms)",
    )
    disable_jitter: bool = Field(
        default=False,
        alias="disableJitter",
        description="Use the exact exponential delay without random scaling",
    )
    max_jitter_factor: float = Field(
        default=DEFAULT_MAX_JITTER_FACTOR,
        ge=0.0,
        le=1.0,
        alias="maxJitterFactor",
        description="Jitter scales delays by a factor in [0.5, 0.5 + maxJitterFactor]",
    )

    @model_validator(mode="after")
    def _check_delay_bounds(self) -> RetryConfig:
        if self.max_delay_ms < self.initial_base_retry_delay_ms:
            raise ValueError(
                f"maxDelayMs ({self.max_delay_ms}) must be >= "
                f"initialBaseRetryDelayMs ({self.initial_base_retry_delay_ms})"
            )
        return self


class TransportConfig(BaseModel):
    """Connection options passed to the underlying httpx client."""

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    timeout_seconds: float = Field(default=DEFAULT_TIMEOUT_SECONDS, gt=0)
    connect_timeout_seconds: float = Field(default=DEFAULT_CONNECT_TIMEOUT_SECONDS, gt=0)
    max_connections: int = Field(default=DEFAULT_MAX_CONNECTIONS, ge=1)
    max_keepalive_connections: int = Field(default=DEFAULT_MAX_KEEPALIVE_CONNECTIONS, ge=0)
    verify_tls: bool = Field(default=True, description="Verify server certificates")
    headers: dict[str, str] = Field(
        default_factory=dict,
        description="Extra headers sent with every request",
    )

    def timeout(self) -> httpx.Timeout:
        return httpx.Timeout(self.timeout_seconds, connect=self.connect_timeout_seconds)

    def limits(self) -> httpx.Limits:
        return httpx.Limits(
            max_connections=self.max_connections,
            max_keepalive_connections=self.max_keepalive_connections,
        )


class LogConfig(BaseModel):
    """Logging options applied by the CLI via ``configure_logging()``."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    format: Literal["json", "console"] = "console"
    file_path: Path | None = Field(
        default=None,
        description="Rotating JSON log file (requires format='json')",
    )

    @model_validator(mode="after")
    def _file_requires_json(self) -> LogConfig:
        if self.file_path is not None and self.format != "json":
            raise ValueError("logging.file_path requires logging.format='json'")
        return self


class ClientConfig(BaseModel):
    """Top-level client configuration.

    Example YAML::

        base_url: http://job-manager:8080
        retry:
          maxRetries: 5
          disableJitter: true
        transport:
          timeout_seconds: 10
        logging:
          level: DEBUG
    """

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    base_url: str | None = Field(default=None, alias="baseUrl")
    retry: RetryConfig = Field(default_factory=RetryConfig)
    transport: TransportConfig = Field(default_factory=TransportConfig)
    logging: LogConfig = Field(default_factory=LogConfig)

    @classmethod
    def from_yaml(cls, path: Path) -> ClientConfig:
        """Load client configuration from a YAML file.

        Raises:
            ConfigurationError: If the file is unreadable or invalid.
        """
        try:
            with open(path) as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as exc:
            raise ConfigurationError(
                f"Cannot read configuration file {path}: {exc}",
                ErrorCode.CONFIGURATION_MISSING_REQUIRED_FIELD,
                exc,
            ) from exc
        return cls.from_mapping(data)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> ClientConfig:
        """Validate a mapping, converting validation failures to ConfigurationError."""
        try:
            return cls.model_validate(data)
        except ValidationError as exc:
            raise ConfigurationError(
                f"Invalid configuration: {exc}",
                _validation_error_code(exc),
                exc,
            ) from exc

    def with_env_overrides(self, environ: Mapping[str, str] | None = None) -> ClientConfig:
        """Return a copy with ``JOBNIK_BASE_URL``/``JOBNIK_LOG_LEVEL`` applied."""
        env = os.environ if environ is None else environ
        update: dict[str, Any] = {}
        if env.get(ENV_BASE_URL):
            update["base_url"] = env[ENV_BASE_URL]
        if env.get(ENV_LOG_LEVEL):
            update["logging"] = LogConfig.model_validate(
                {**self.logging.model_dump(), "level": env[ENV_LOG_LEVEL].upper()}
            )
        return self.model_copy(update=update) if update else self


def _validation_error_code(exc: ValidationError) -> ErrorCode:
    locations = [error["loc"] for error in exc.errors()]
    if any(loc and loc[0] == "retry" for loc in locations):
        return ErrorCode.CONFIGURATION_INVALID_RETRY_POLICY
    if any(loc and loc[0] in ("base_url", "baseUrl") for loc in locations):
        return ErrorCode.CONFIGURATION_INVALID_URL
    return ErrorCode.CONFIGURATION_MISSING_REQUIRED_FIELD


def validate_base_url(base_url: str | None) -> str:
    """Check that a base URL is present and absolute http(s).

    Returns:
        The URL without a trailing slash.

    Raises:
        ConfigurationError: CONFIGURATION_MISSING_REQUIRED_FIELD when empty,
            CONFIGURATION_INVALID_URL when malformed.
    """
    if base_url is None or not base_url.strip():
        raise ConfigurationError(
            "base_url is required",
            ErrorCode.CONFIGURATION_MISSING_REQUIRED_FIELD,
        )
    candidate = base_url.strip()
    parts = urlsplit(candidate)
    if parts.scheme not in ("http", "https") or not parts.netloc:
        raise ConfigurationError(
            f"Invalid base_url {candidate!r}: expected an absolute http(s) URL",
            ErrorCode.CONFIGURATION_INVALID_URL,
        )
    return candidate.rstrip("/")


def load_config(path: Path | None = None, environ: Mapping[str, str] | None = None) -> ClientConfig:
    """Load configuration from an optional YAML file plus environment overrides."""
    config = ClientConfig.from_yaml(path) if path is not None else ClientConfig()
    return config.with_env_overrides(environ)
