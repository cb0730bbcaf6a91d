"""Tests for configuration models and loading."""

from pathlib import Path

import httpx
import pytest
from pydantic import ValidationError

from jobnik.core.config import (
    ClientConfig,
    LogConfig,
    RetryConfig,
    TransportConfig,
    load_config,
    validate_base_url,
)
from jobnik.core.errors import ConfigurationError, ErrorCode


class TestRetryConfig:
    """Tests for RetryConfig."""

    def test_defaults(self) -> None:
        config = RetryConfig()
        assert config.max_retries == 3
        assert config.status_codes == frozenset({500, 502, 503, 504})
        assert "ECONNRESET" in config.error_codes
        assert config.initial_base_retry_delay_ms == 100
        assert config.backoff_factor == 2.0
        assert not config.disable_jitter
        assert config.max_jitter_factor == 1.0

    def test_camel_case_aliases(self) -> None:
        config = RetryConfig.model_validate(
            {
                "maxRetries": 5,
                "statusCodes": [429, 503],
                "errorCodes": ["ECONNRESET"],
                "initialBaseRetryDelayMs": 50,
                "disableJitter": True,
                "maxJitterFactor": 0.3,
            }
        )
        assert config.max_retries == 5
        assert config.status_codes == frozenset({429, 503})
        assert config.error_codes == frozenset({"ECONNRESET"})
        assert config.initial_base_retry_delay_ms == 50
        assert config.disable_jitter
        assert config.max_jitter_factor == 0.3

    @pytest.mark.parametrize(
        "data",
        [
            {"maxRetries": -1},
            {"backoffFactor": 0.5},
            {"maxJitterFactor": 1.5},
            {"initialBaseRetryDelayMs": 500, "maxDelayMs": 100},
            {"retries": 2},
        ],
    )
    def test_invalid(self, data: dict) -> None:
        with pytest.raises(ValidationError):
            RetryConfig.model_validate(data)

    def test_frozen(self) -> None:
        config = RetryConfig()
        with pytest.raises(ValidationError):
            config.max_retries = 9  # type: ignore[misc]


class TestTransportConfig:
    """Tests for TransportConfig."""

    def test_httpx_objects(self) -> None:
        config = TransportConfig(timeout_seconds=5, connect_timeout_seconds=2, max_connections=4)
        timeout = config.timeout()
        assert isinstance(timeout, httpx.Timeout)
        assert timeout.read == 5
        assert timeout.connect == 2
        assert config.limits().max_connections == 4


class TestValidateBaseUrl:
    """Tests for validate_base_url()."""

    @pytest.mark.parametrize("value", [None, "", "   "])
    def test_missing(self, value: str | None) -> None:
        with pytest.raises(ConfigurationError) as exc_info:
            validate_base_url(value)
        assert exc_info.value.error_code == ErrorCode.CONFIGURATION_MISSING_REQUIRED_FIELD

    @pytest.mark.parametrize("value", ["job-manager:8080", "ftp://svc", "http://"])
    def test_malformed(self, value: str) -> None:
        with pytest.raises(ConfigurationError) as exc_info:
            validate_base_url(value)
        assert exc_info.value.error_code == ErrorCode.CONFIGURATION_INVALID_URL

    def test_valid(self) -> None:
        assert validate_base_url(" https://svc.example/api/ ") == "https://svc.example/api"


class TestClientConfig:
    """Tests for ClientConfig loading."""

    def test_from_yaml(self, tmp_path: Path) -> None:
        path = tmp_path / "jobnik.yaml"
        path.write_text(
            "base_url: http://job-manager:8080\n"
            "retry:\n"
            "  maxRetries: 5\n"
            "  disableJitter: true\n"
            "transport:\n"
            "  timeout_seconds: 10\n"
            "logging:\n"
            "  level: DEBUG\n"
        )
        config = ClientConfig.from_yaml(path)
        assert config.base_url == "http://job-manager:8080"
        assert config.retry.max_retries == 5
        assert config.retry.disable_jitter
        assert config.transport.timeout_seconds == 10
        assert config.logging.level == "DEBUG"

    def test_empty_yaml_gives_defaults(self, tmp_path: Path) -> None:
        path = tmp_path / "empty.yaml"
        path.write_text("")
        config = ClientConfig.from_yaml(path)
        assert config.base_url is None
        assert config.retry == RetryConfig()

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigurationError, match="Cannot read configuration file"):
            ClientConfig.from_yaml(tmp_path / "absent.yaml")

    def test_invalid_yaml(self, tmp_path: Path) -> None:
        path = tmp_path / "bad.yaml"
        path.write_text("retry: [unclosed\n")
        with pytest.raises(ConfigurationError):
            ClientConfig.from_yaml(path)

    def test_invalid_retry_policy_code(self) -> None:
        with pytest.raises(ConfigurationError) as exc_info:
            ClientConfig.from_mapping({"retry": {"maxRetries": -2}})
        assert exc_info.value.error_code == ErrorCode.CONFIGURATION_INVALID_RETRY_POLICY
        assert isinstance(exc_info.value.cause, ValidationError)

    def test_unknown_field_code(self) -> None:
        with pytest.raises(ConfigurationError) as exc_info:
            ClientConfig.from_mapping({"unexpected": 1})
        assert exc_info.value.error_code == ErrorCode.CONFIGURATION_MISSING_REQUIRED_FIELD

    def test_env_overrides(self) -> None:
        config = ClientConfig(base_url="http://from-file").with_env_overrides(
            {"JOBNIK_BASE_URL": "http://from-env", "JOBNIK_LOG_LEVEL": "warning"}
        )
        assert config.base_url == "http://from-env"
        assert config.logging.level == "WARNING"

    def test_env_overrides_absent(self) -> None:
        config = ClientConfig(base_url="http://from-file")
        assert config.with_env_overrides({}) is config

    def test_load_config_without_file(self) -> None:
        config = load_config(None, {"JOBNIK_BASE_URL": "http://svc"})
        assert config.base_url == "http://svc"


class TestLogConfig:
    """Tests for LogConfig."""

    def test_file_requires_json(self, tmp_path: Path) -> None:
        with pytest.raises(ValidationError):
            LogConfig(file_path=tmp_path / "x.log")
        assert LogConfig(format="json", file_path=tmp_path / "x.log").file_path is not None
