"""Task commands for the jobnik CLI.

- ``dequeue STAGE_TYPE``: take the next task of a stage type
- ``task TASK_ID``: show a task
- ``complete TASK_ID`` / ``fail TASK_ID``: report a task's outcome

Exit codes: 0 on success, 1 on any error, 2 when the task is not in a
state that allows the requested transition.
"""

from __future__ import annotations

import asyncio

import typer

from jobnik.core.errors import JobnikError
from jobnik.core.types import Task, TaskId, TaskStatus
from jobnik.sdk import JobnikClient

from .helpers import create_client, exit_for_error, load_cli_config
from .output import console, create_task_table, print_json

_JSON_OPTION = typer.Option(False, "--json", "-j", help="Output result as JSON")


def _client() -> JobnikClient:
    return create_client(load_cli_config(console), console)


def _print_task(task: Task, json_output: bool) -> None:
    if json_output:
        print_json(task.model_dump(mode="json", by_alias=True, exclude_none=True))
    else:
        console.print(create_task_table(task))


def dequeue(
    stage_type: str = typer.Argument(..., help="Stage type to dequeue from"),
    json_output: bool = _JSON_OPTION,
) -> None:
    """Dequeue the next pending task of a stage type.

    Prints nothing but a notice when the queue is empty.

    Examples:
        jobnik dequeue resize
        jobnik dequeue resize --json
    """
    asyncio.run(_dequeue(stage_type, json_output))


async def _dequeue(stage_type: str, json_output: bool) -> None:
    async with _client() as client:
        try:
            task = await client.consumer.dequeue_task(stage_type)
        except JobnikError as e:
            raise exit_for_error(e, json_output) from None

    if task is None:
        if json_output:
            print_json({"success": True, "task": None})
        else:
            console.print(f"[dim]No tasks available for stage type {stage_type}[/dim]")
        return
    _print_task(task, json_output)


def show_task(
    task_id: str = typer.Argument(..., help="Task ID"),
    json_output: bool = _JSON_OPTION,
) -> None:
    """Show the current state of a task."""
    asyncio.run(_show_task(TaskId(task_id), json_output))


async def _show_task(task_id: TaskId, json_output: bool) -> None:
    async with _client() as client:
        try:
            task = await client.consumer.get_task(task_id)
        except JobnikError as e:
            raise exit_for_error(e, json_output) from None
    _print_task(task, json_output)


def complete(
    task_id: str = typer.Argument(..., help="Task ID"),
    json_output: bool = _JSON_OPTION,
) -> None:
    """Mark an IN_PROGRESS task as COMPLETED."""
    asyncio.run(_update(TaskId(task_id), TaskStatus.COMPLETED, json_output))


def fail(
    task_id: str = typer.Argument(..., help="Task ID"),
    json_output: bool = _JSON_OPTION,
) -> None:
    """Mark an IN_PROGRESS task as FAILED."""
    asyncio.run(_update(TaskId(task_id), TaskStatus.FAILED, json_output))


async def _update(task_id: TaskId, target: TaskStatus, json_output: bool) -> None:
    async with _client() as client:
        try:
            if target is TaskStatus.COMPLETED:
                await client.consumer.mark_task_completed(task_id)
            else:
                await client.consumer.mark_task_failed(task_id)
        except JobnikError as e:
            raise exit_for_error(e, json_output) from None

    if json_output:
        print_json({"success": True, "task_id": task_id, "status": target.value})
    else:
        console.print(f"[green]Task {task_id} marked as {target.value}[/green]")
