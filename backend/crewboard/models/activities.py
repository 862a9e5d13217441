"""Append-only activity feed entries."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID, uuid4

from sqlmodel import Field

from crewboard.core.time import utcnow
from crewboard.models.base import QueryModel

RUNTIME_ANNOTATION_TYPES = (datetime,)


class Activity(QueryModel, table=True):
    """Board activity record (agent completions, failures, cancellations)."""

    __tablename__ = "activities"  # pyright: ignore[reportAssignmentType]

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    type: str = Field(index=True)
    message: str
    task_id: UUID | None = Field(default=None, foreign_key="tasks.id", index=True)
    agent_id: UUID | None = Field(default=None, foreign_key="agent_profiles.id", index=True)
    created_at: datetime = Field(default_factory=utcnow)
