"""Agent profile model: a configured AI persona able to execute tasks."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from uuid import UUID, uuid4

from sqlalchemy import JSON, Column, Text
from sqlmodel import Field

from crewboard.core.time import utcnow
from crewboard.models.base import QueryModel

RUNTIME_ANNOTATION_TYPES = (datetime,)

_ANTHROPIC_MODEL_PREFIXES = ("claude", "anthropic")


class ProviderKind(str, Enum):
    """LLM backend family serving an agent's model."""

    ANTHROPIC = "ANTHROPIC"
    OPENAI = "OPENAI"

    @classmethod
    def for_model(cls, model: str) -> ProviderKind:
        """Classify a model identifier by its prefix."""
        normalized = model.strip().lower()
        if normalized.startswith(_ANTHROPIC_MODEL_PREFIXES):
            return cls.ANTHROPIC
        return cls.OPENAI


class AgentProfile(QueryModel, table=True):
    """Model, prompt, skills, and tool permissions for one agent persona."""

    __tablename__ = "agent_profiles"  # pyright: ignore[reportAssignmentType]

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    name: str = Field(index=True, unique=True)
    description: str | None = None
    model: str
    # Resolved once from `model` when the profile is written.
    provider: str = Field(default=ProviderKind.ANTHROPIC.value, index=True)
    system_prompt: str = Field(sa_column=Column(Text, nullable=False))
    temperature: float = Field(default=0.7)
    max_tokens: int = Field(default=4096)
    skills: list[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    tools: list[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    is_active: bool = Field(default=True, index=True)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def provider_kind(self) -> ProviderKind:
        try:
            return ProviderKind(self.provider)
        except ValueError:
            return ProviderKind.for_model(self.model)
