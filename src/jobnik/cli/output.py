"""Rich output formatting for the jobnik CLI."""

from __future__ import annotations

import json
from typing import Any

from rich.console import Console
from rich.table import Table

from jobnik.core.errors import JobnikError
from jobnik.core.types import Task, TaskStatus

# Command output goes to stdout; structured logs go to stderr
console = Console()


class StatusColors:
    """Color mapping for task statuses."""

    TASK_STATUS: dict[TaskStatus, str] = {
        TaskStatus.PENDING: "yellow",
        TaskStatus.CREATED: "yellow",
        TaskStatus.IN_PROGRESS: "blue",
        TaskStatus.COMPLETED: "green",
        TaskStatus.FAILED: "red",
        TaskStatus.ABORTED: "red",
        TaskStatus.PAUSED: "dim",
        TaskStatus.RETRIED: "magenta",
    }

    @classmethod
    def for_task(cls, status: TaskStatus) -> str:
        return cls.TASK_STATUS.get(status, "white")


def format_task_status(status: TaskStatus) -> str:
    color = StatusColors.for_task(status)
    return f"[{color}]{status.value}[/{color}]"


def create_task_table(task: Task) -> Table:
    """Build a two-column table describing a task."""
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column("Field", style="bold")
    table.add_column("Value")
    table.add_row("ID", task.id)
    table.add_row("Stage", task.stage_id)
    table.add_row("Status", format_task_status(task.status))
    attempts = str(task.attempts)
    if task.max_attempts is not None:
        attempts = f"{attempts}/{task.max_attempts}"
    table.add_row("Attempts", attempts)
    if task.creation_time is not None:
        table.add_row("Created", task.creation_time.isoformat())
    if task.update_time is not None:
        table.add_row("Updated", task.update_time.isoformat())
    if task.traceparent:
        table.add_row("Trace", task.traceparent)
    return table


def print_json(payload: Any) -> None:
    console.print_json(json.dumps(payload, default=str))


def output_error(error: JobnikError, json_output: bool = False) -> None:
    """Print an error with its code, and its cause if there is one."""
    if json_output:
        payload: dict[str, Any] = {
            "success": False,
            "error_code": error.error_code.value,
            "message": error.message,
        }
        if isinstance(error.cause, JobnikError):
            payload["cause"] = {
                "error_code": error.cause.error_code.value,
                "message": error.cause.message,
            }
        print_json(payload)
        return

    console.print(f"[red]Error ({error.error_code.value}):[/red] {error.message}")
    if isinstance(error.cause, JobnikError):
        console.print(f"  [dim]caused by ({error.cause.error_code.value}):[/dim] {error.cause.message}")
