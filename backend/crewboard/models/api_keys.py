"""Per-user encrypted provider credentials (BYOK)."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from uuid import UUID, uuid4

from sqlalchemy import Column, Text, UniqueConstraint
from sqlmodel import Field

from crewboard.core.time import utcnow
from crewboard.models.base import QueryModel

RUNTIME_ANNOTATION_TYPES = (datetime,)


class ApiProvider(str, Enum):
    """Providers a user may store a key for."""

    ANTHROPIC = "ANTHROPIC"
    OPENAI = "OPENAI"
    GOOGLE = "GOOGLE"


class ApiKeyStatus(str, Enum):
    """Outcome of the last validation call against the provider."""

    PENDING = "PENDING"
    VALID = "VALID"
    INVALID = "INVALID"


class ApiKey(QueryModel, table=True):
    """Encrypted key plus display and validation metadata; one row per user and provider."""

    __tablename__ = "api_keys"  # pyright: ignore[reportAssignmentType]
    __table_args__ = (
        UniqueConstraint(
            "user_id",
            "provider",
            name="uq_api_keys_user_id_provider",
        ),
    )

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    user_id: UUID = Field(foreign_key="users.id", index=True)
    provider: str = Field(index=True)
    encrypted_key: str = Field(sa_column=Column(Text, nullable=False))
    last4: str | None = None
    status: str = Field(default=ApiKeyStatus.PENDING.value, index=True)
    last_checked_at: datetime | None = None
    error_message: str | None = Field(default=None, sa_column=Column(Text))
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
