"""Domain types for the job-processing service.

Identifiers are ``NewType`` wrappers so a type checker rejects passing a
job id where a task id is expected; at runtime they are plain strings.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, NewType

from pydantic import BaseModel, ConfigDict, Field

JobId = NewType("JobId", str)
StageId = NewType("StageId", str)
TaskId = NewType("TaskId", str)


class TaskStatus(str, Enum):
    """Task status as reported by the service.

    The lifecycle is PENDING -> IN_PROGRESS -> COMPLETED | FAILED. CREATED,
    RETRIED, ABORTED and PAUSED are set by the service itself and are never
    a valid source for a client-side transition.
    """

    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    ABORTED = "ABORTED"
    PAUSED = "PAUSED"
    CREATED = "CREATED"
    RETRIED = "RETRIED"


#: Client-side transitions: target status -> required current status
ALLOWED_TRANSITIONS: dict[TaskStatus, TaskStatus] = {
    TaskStatus.COMPLETED: TaskStatus.IN_PROGRESS,
    TaskStatus.FAILED: TaskStatus.IN_PROGRESS,
}

TRACEPARENT_KEY = "traceparent"
TRACESTATE_KEY = "tracestate"


class Task(BaseModel):
    """A unit of work owned by the service.

    The client only holds a transient copy that may already be stale.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: TaskId
    stage_id: StageId = Field(alias="stageId")
    status: TaskStatus
    attempts: int = Field(default=0, ge=0)
    max_attempts: int | None = Field(default=None, ge=0, alias="maxAttempts")
    data: dict[str, Any] = Field(default_factory=dict)
    user_metadata: dict[str, Any] | None = Field(default=None, alias="userMetadata")
    creation_time: datetime | None = Field(default=None, alias="creationTime")
    update_time: datetime | None = Field(default=None, alias="updateTime")
    traceparent: str | None = None
    tracestate: str | None = None

    @property
    def trace_carrier(self) -> dict[str, str]:
        """The trace-context carrier attached by the producer (keys present only)."""
        carrier: dict[str, str] = {}
        if self.traceparent:
            carrier[TRACEPARENT_KEY] = self.traceparent
        if self.tracestate:
            carrier[TRACESTATE_KEY] = self.tracestate
        return carrier
