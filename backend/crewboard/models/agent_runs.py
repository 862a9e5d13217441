"""Agent run model: one execution attempt of an agent against a task."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from uuid import UUID, uuid4

from sqlalchemy import Column, Text
from sqlmodel import Field

from crewboard.core.time import utcnow
from crewboard.models.base import QueryModel

RUNTIME_ANNOTATION_TYPES = (datetime,)


class AgentRunStatus(str, Enum):
    """Lifecycle of a run; COMPLETED, FAILED, and CANCELLED are terminal."""

    QUEUED = "QUEUED"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


ACTIVE_RUN_STATUSES = frozenset({AgentRunStatus.QUEUED.value, AgentRunStatus.RUNNING.value})


class AgentRun(QueryModel, table=True):
    """Prompt snapshot, output, token accounting, and outcome of a run."""

    __tablename__ = "agent_runs"  # pyright: ignore[reportAssignmentType]

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    agent_id: UUID = Field(foreign_key="agent_profiles.id", index=True)
    task_id: UUID = Field(foreign_key="tasks.id", index=True)
    status: str = Field(default=AgentRunStatus.QUEUED.value, index=True)
    input: str = Field(sa_column=Column(Text, nullable=False))
    output: str | None = Field(default=None, sa_column=Column(Text))
    input_tokens: int = Field(default=0)
    output_tokens: int = Field(default=0)
    total_tokens: int = Field(default=0)
    cost: float | None = None
    tool_iterations: int = Field(default=0)
    error: str | None = Field(default=None, sa_column=Column(Text))
    started_at: datetime | None = None
    completed_at: datetime | None = None
    created_at: datetime = Field(default_factory=utcnow, index=True)

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_RUN_STATUSES
