"""Schemas for agent profiles, runs, and batch processing endpoints."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import Field
from sqlmodel import SQLModel

RUNTIME_ANNOTATION_TYPES = (datetime, UUID)


class AgentProfileRead(SQLModel):
    """Agent profile payload returned by read endpoints."""

    id: UUID
    name: str
    description: str | None = None
    model: str
    provider: str
    temperature: float
    max_tokens: int
    skills: list[str] = Field(default_factory=list)
    tools: list[str] = Field(default_factory=list)
    is_active: bool
    created_at: datetime
    updated_at: datetime


class AgentRunRequest(SQLModel):
    """Request to run the assigned agent against a task."""

    task_id: UUID = Field(description="Task to execute.")
    user_id: UUID | None = Field(
        default=None,
        description="User whose stored API key should be preferred.",
    )


class AgentRunEnqueued(SQLModel):
    queued: bool = Field(description="Whether the run request reached the queue.", examples=[True])


class TokenUsageRead(SQLModel):
    input: int = 0
    output: int = 0
    total: int = 0


class RunResultRead(SQLModel):
    """Outcome of a synchronous agent run."""

    success: bool
    run_id: UUID
    status: str = Field(examples=["COMPLETED", "FAILED"])
    output: str | None = None
    error: str | None = None
    tokens: TokenUsageRead
    cost: float | None = None
    tool_iterations: int = 0


class AgentRunRead(SQLModel):
    """Persisted agent run record."""

    id: UUID
    agent_id: UUID
    task_id: UUID
    status: str
    output: str | None = None
    error: str | None = None
    input_tokens: int
    output_tokens: int
    total_tokens: int
    cost: float | None = None
    tool_iterations: int
    started_at: datetime | None = None
    completed_at: datetime | None = None
    created_at: datetime


class ProcessRequest(SQLModel):
    limit: int = Field(default=5, ge=1, le=50)
    agent_name: str | None = None


class ProcessedTaskRead(SQLModel):
    task_id: UUID
    task_title: str
    status: str
    run_id: UUID | None = None
    error: str | None = None
    tokens: TokenUsageRead | None = None
    cost: float | None = None


class ProcessSummaryRead(SQLModel):
    message: str
    processed: int
    successful: int = 0
    failed: int = 0
    results: list[ProcessedTaskRead] = Field(default_factory=list)


class AgentBriefRead(SQLModel):
    id: UUID
    name: str
    model: str


class PendingSummaryRead(SQLModel):
    pending: int
    in_progress: int
    agents: list[AgentBriefRead] = Field(default_factory=list)
