"""jobnik CLI.

A thin Typer front end over ``JobnikClient`` for operating on tasks by
hand: dequeue, inspect, complete and fail.
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer

from jobnik import __version__
from jobnik.core.constants import ENV_BASE_URL, ENV_LOG_LEVEL

from . import helpers
from .commands import complete, dequeue, fail, show_task
from .output import console

app = typer.Typer(
    name="jobnik",
    help="Work with tasks of the job-processing service",
    add_completion=False,
)


def version_callback(value: bool) -> None:
    """Eager ``--version`` handler."""
    if value:
        console.print(f"jobnik v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        callback=version_callback,
        is_eager=True,
        help="Print the jobnik version",
    ),
    base_url: Annotated[
        str | None,
        typer.Option(
            "--base-url",
            "-u",
            help="Service base URL",
            envvar=ENV_BASE_URL,
        ),
    ] = None,
    config: Annotated[
        Path | None,
        typer.Option(
            "--config",
            "-c",
            exists=True,
            dir_okay=False,
            help="YAML configuration file",
            envvar="JOBNIK_CONFIG",
        ),
    ] = None,
    log_level: Annotated[
        str | None,
        typer.Option(
            "--log-level",
            "-L",
            help="Logging level (DEBUG, INFO, WARNING, ERROR)",
            envvar=ENV_LOG_LEVEL,
        ),
    ] = None,
    log_format: Annotated[
        str | None,
        typer.Option(
            "--log-format",
            help="Log format: json or console",
            envvar="JOBNIK_LOG_FORMAT",
        ),
    ] = None,
) -> None:
    """jobnik - client for the job-processing service."""
    state = helpers.get_state()
    state.base_url = base_url
    state.config_path = config
    if log_level:
        level = log_level.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR"):
            raise typer.BadParameter(f"invalid log level {log_level!r}", param_hint="--log-level")
        state.log_level = level  # type: ignore[assignment]
    if log_format:
        if log_format not in ("json", "console"):
            raise typer.BadParameter(f"invalid log format {log_format!r}", param_hint="--log-format")
        state.log_format = log_format  # type: ignore[assignment]


app.command()(dequeue)
app.command(name="task")(show_task)
app.command()(complete)
app.command()(fail)


__all__ = ["app", "console", "main"]
