"""Activity feed recording for agent lifecycle events."""

from __future__ import annotations

from typing import TYPE_CHECKING

from crewboard.core.time import utcnow
from crewboard.models.activities import Activity

if TYPE_CHECKING:
    from uuid import UUID

    from sqlmodel.ext.asyncio.session import AsyncSession

AGENT_COMPLETED = "agent_completed"
AGENT_FAILED = "agent_failed"
AGENT_CANCELLED = "agent_cancelled"


async def record_activity(
    session: AsyncSession,
    *,
    activity_type: str,
    message: str,
    task_id: UUID | None = None,
    agent_id: UUID | None = None,
    commit: bool = True,
) -> Activity:
    """Create an append-only activity entry."""
    entry = Activity(
        type=activity_type,
        message=message,
        task_id=task_id,
        agent_id=agent_id,
        created_at=utcnow(),
    )
    session.add(entry)
    if commit:
        await session.commit()
        await session.refresh(entry)
    return entry
