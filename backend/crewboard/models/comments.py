"""Task comment model used for discussion and the agent audit trail."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import Column, Text
from sqlmodel import Field

from crewboard.core.time import utcnow
from crewboard.models.base import QueryModel

RUNTIME_ANNOTATION_TYPES = (datetime,)


class Comment(QueryModel, table=True):
    """Optionally threaded comment authored by a human or bot user."""

    __tablename__ = "comments"  # pyright: ignore[reportAssignmentType]

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    task_id: UUID = Field(foreign_key="tasks.id", index=True)
    author_id: UUID = Field(foreign_key="users.id", index=True)
    parent_id: UUID | None = Field(default=None, foreign_key="comments.id", index=True)
    content: str = Field(sa_column=Column(Text, nullable=False))
    created_at: datetime = Field(default_factory=utcnow, index=True)
