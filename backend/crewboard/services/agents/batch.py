"""Batch execution of TODO tasks assigned to bot users."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from sqlalchemy import func
from sqlmodel import col, select

from crewboard.core.logging import get_logger
from crewboard.models.agent_profiles import AgentProfile
from crewboard.models.agent_runs import AgentRunStatus
from crewboard.models.tasks import Task, TaskStatus
from crewboard.models.users import User
from crewboard.services.agents.errors import AgentPipelineError, AgentProfileMissingError

if TYPE_CHECKING:
    from uuid import UUID

    from sqlmodel.ext.asyncio.session import AsyncSession

    from crewboard.services.agents.runner import AgentRunner

logger = get_logger(__name__)

DEFAULT_BATCH_LIMIT = 5
SKIPPED = "SKIPPED"


@dataclass(frozen=True)
class ProcessedTask:
    task_id: UUID
    task_title: str
    status: str
    run_id: UUID | None = None
    output: str | None = None
    error: str | None = None
    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0
    cost: float | None = None


@dataclass(frozen=True)
class ProcessSummary:
    processed: int = 0
    successful: int = 0
    failed: int = 0
    results: list[ProcessedTask] = field(default_factory=list)

    @property
    def message(self) -> str:
        if self.processed == 0:
            return "No pending tasks for agents"
        return (
            f"Processed {self.processed} tasks: "
            f"{self.successful} successful, {self.failed} failed"
        )


@dataclass(frozen=True)
class AgentBrief:
    id: UUID
    name: str
    model: str


@dataclass(frozen=True)
class PendingSummary:
    pending: int
    in_progress: int
    agents: list[AgentBrief]


async def pending_bot_tasks(
    session: AsyncSession,
    *,
    limit: int = DEFAULT_BATCH_LIMIT,
    agent_name: str | None = None,
) -> list[Task]:
    """TODO tasks assigned to bot users, oldest first."""
    statement = (
        select(Task)
        .join(User, col(User.id) == col(Task.assignee_id))
        .where(col(Task.status) == TaskStatus.TODO.value)
        .where(col(User.is_bot).is_(True))
    )
    if agent_name:
        statement = statement.where(func.lower(col(User.name)) == agent_name.strip().lower())
    statement = statement.order_by(col(Task.created_at).asc()).limit(limit)
    result = await session.exec(statement)
    return list(result.all())


async def _count_bot_tasks(session: AsyncSession, status: TaskStatus) -> int:
    statement = (
        select(func.count())
        .select_from(Task)
        .join(User, col(User.id) == col(Task.assignee_id))
        .where(col(Task.status) == status.value)
        .where(col(User.is_bot).is_(True))
    )
    result = await session.exec(statement)
    return int(result.one())


async def process_pending_tasks(
    session: AsyncSession,
    runner: AgentRunner,
    *,
    limit: int = DEFAULT_BATCH_LIMIT,
    agent_name: str | None = None,
) -> ProcessSummary:
    """Run each pending bot-assigned task through its agent, sequentially."""
    tasks = await pending_bot_tasks(session, limit=limit, agent_name=agent_name)
    # Capture plain values; runs commit and roll back the shared session.
    queue = [(task.id, task.title) for task in tasks]
    results: list[ProcessedTask] = []
    for task_id, title in queue:
        task = await Task.objects.by_id(task_id).first(session)
        if task is None:
            continue
        try:
            agent = await runner.agent_for_task(task)
        except AgentProfileMissingError as exc:
            results.append(
                ProcessedTask(task_id=task_id, task_title=title, status=SKIPPED, error=str(exc))
            )
            continue
        except AgentPipelineError as exc:
            results.append(
                ProcessedTask(
                    task_id=task_id,
                    task_title=title,
                    status=AgentRunStatus.FAILED.value,
                    error=str(exc),
                )
            )
            continue

        try:
            outcome = await runner.run_agent(agent.id, task_id)
        except AgentPipelineError as exc:
            logger.warning(
                "agent.batch.run_rejected",
                extra={"task_id": str(task_id), "error": str(exc)},
            )
            results.append(
                ProcessedTask(
                    task_id=task_id,
                    task_title=title,
                    status=AgentRunStatus.FAILED.value,
                    error=str(exc),
                )
            )
            continue
        results.append(
            ProcessedTask(
                task_id=task_id,
                task_title=title,
                status=outcome.status.value,
                run_id=outcome.run_id,
                output=outcome.output,
                error=outcome.error,
                input_tokens=outcome.input_tokens,
                output_tokens=outcome.output_tokens,
                total_tokens=outcome.total_tokens,
                cost=outcome.cost,
            )
        )

    summary = ProcessSummary(
        processed=len(queue),
        successful=sum(1 for item in results if item.status == AgentRunStatus.COMPLETED.value),
        failed=sum(1 for item in results if item.status == AgentRunStatus.FAILED.value),
        results=results,
    )
    logger.info(
        "agent.batch.completed",
        extra={
            "processed": summary.processed,
            "successful": summary.successful,
            "failed": summary.failed,
        },
    )
    return summary


async def pending_summary(session: AsyncSession) -> PendingSummary:
    agents = (
        await AgentProfile.objects.filter_by(is_active=True)
        .order_by(col(AgentProfile.name).asc())
        .all(session)
    )
    return PendingSummary(
        pending=await _count_bot_tasks(session, TaskStatus.TODO),
        in_progress=await _count_bot_tasks(session, TaskStatus.IN_PROGRESS),
        agents=[AgentBrief(id=agent.id, name=agent.name, model=agent.model) for agent in agents],
    )
