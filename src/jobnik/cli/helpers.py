"""Shared state and utilities for jobnik CLI commands.

Global options (base URL, config file, logging) are collected by the app
callback into a single ``CliState`` and read back by the commands.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Literal

import typer
from rich.console import Console

from jobnik.core.config import ClientConfig, load_config
from jobnik.core.errors import ConfigurationError, InvalidStateTransitionError, JobnikError
from jobnik.core.logging import configure_logging, get_logger
from jobnik.sdk import JobnikClient

from .output import output_error

EXIT_ERROR = 1
EXIT_INVALID_TRANSITION = 2


@dataclass
class CliState:
    """Options gathered from the global CLI callback."""

    base_url: str | None = None
    config_path: Path | None = None
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] | None = None
    log_format: Literal["json", "console"] | None = None
    logging_configured: bool = False


_state = CliState()


def get_state() -> CliState:
    return _state


def reset_state() -> None:
    """Reset global CLI state (primarily for testing)."""
    global _state
    _state = CliState()


def load_cli_config(console: Console) -> ClientConfig:
    """Load configuration from ``--config`` and the environment, then apply CLI overrides.

    Raises:
        typer.Exit: If the configuration is invalid.
    """
    try:
        config = load_config(_state.config_path)
    except ConfigurationError as e:
        output_error(e)
        raise typer.Exit(EXIT_ERROR) from None

    update: dict[str, object] = {}
    if _state.base_url:
        update["base_url"] = _state.base_url
    logging_update: dict[str, object] = {}
    if _state.log_level:
        logging_update["level"] = _state.log_level
    if _state.log_format:
        logging_update["format"] = _state.log_format
    if logging_update:
        update["logging"] = config.logging.model_copy(update=logging_update)
    return config.model_copy(update=update) if update else config


def configure_cli_logging(config: ClientConfig, console: Console) -> None:
    """Configure structured logging once per CLI session."""
    if _state.logging_configured:
        return
    try:
        configure_logging(
            level=config.logging.level,
            format=config.logging.format,
            file_path=config.logging.file_path,
        )
    except ValueError as e:
        console.print(f"[red]Logging configuration error:[/red] {e}")
        raise typer.Exit(EXIT_ERROR) from None
    _state.logging_configured = True


def create_client(config: ClientConfig, console: Console) -> JobnikClient:
    """Build a JobnikClient with a structlog-backed logger.

    Raises:
        typer.Exit: If the base URL is missing or invalid.
    """
    configure_cli_logging(config, console)
    try:
        return JobnikClient.from_config(config, logger=get_logger("cli"))
    except ConfigurationError as e:
        output_error(e)
        raise typer.Exit(EXIT_ERROR) from None


def exit_for_error(error: JobnikError, json_output: bool) -> typer.Exit:
    """Report ``error`` and return the Exit to raise for it."""
    output_error(error, json_output)
    if isinstance(error, InvalidStateTransitionError):
        return typer.Exit(EXIT_INVALID_TRANSITION)
    return typer.Exit(EXIT_ERROR)
