"""Queue payloads and worker handler for triggered agent runs."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any
from uuid import UUID

from crewboard.core.config import settings
from crewboard.core.logging import get_logger
from crewboard.core.time import utcnow
from crewboard.db.session import async_session_maker
from crewboard.models.tasks import Task, TaskStatus
from crewboard.services.agents.errors import (
    AgentProfileMissingError,
    RunConflictError,
    TaskNotAssignedError,
)
from crewboard.services.agents.runner import AgentRunner
from crewboard.services.queue import QueuedTask, enqueue_task
from crewboard.services.queue import requeue_if_failed as generic_requeue_if_failed

logger = get_logger(__name__)
TASK_TYPE = "agent_run"


@dataclass(frozen=True)
class QueuedAgentRun:
    """Request to run the assigned agent against a task."""

    task_id: UUID
    requested_at: datetime
    user_id: UUID | None = None
    attempts: int = 0


def _task_from_payload(payload: QueuedAgentRun) -> QueuedTask:
    return QueuedTask(
        task_type=TASK_TYPE,
        payload={
            "task_id": str(payload.task_id),
            "user_id": str(payload.user_id) if payload.user_id is not None else None,
            "requested_at": payload.requested_at.isoformat(),
        },
        created_at=payload.requested_at,
        attempts=payload.attempts,
    )


def decode_agent_run_task(task: QueuedTask) -> QueuedAgentRun:
    if task.task_type != TASK_TYPE:
        raise ValueError(f"Unexpected task_type={task.task_type!r}; expected {TASK_TYPE!r}")
    payload: dict[str, Any] = task.payload
    raw_user_id = payload.get("user_id")
    raw_requested_at = payload.get("requested_at")
    return QueuedAgentRun(
        task_id=UUID(str(payload["task_id"])),
        user_id=UUID(raw_user_id) if isinstance(raw_user_id, str) and raw_user_id else None,
        requested_at=(
            datetime.fromisoformat(raw_requested_at)
            if isinstance(raw_requested_at, str)
            else task.created_at
        ),
        attempts=task.attempts,
    )


def enqueue_agent_run(task_id: UUID, user_id: UUID | None = None) -> bool:
    """Queue a run for the task's assigned agent; False when the queue is down."""
    payload = QueuedAgentRun(task_id=task_id, user_id=user_id, requested_at=utcnow())
    ok = enqueue_task(
        _task_from_payload(payload),
        settings.rq_queue_name,
        redis_url=settings.rq_redis_url,
    )
    if ok:
        logger.info("agent.queue.enqueued", extra={"task_id": str(task_id)})
    else:
        logger.warning("agent.queue.enqueue_failed", extra={"task_id": str(task_id)})
    return ok


def requeue_agent_run_task(task: QueuedTask, *, delay_seconds: float = 0) -> bool:
    """Requeue a failed agent run task with capped retries."""
    return generic_requeue_if_failed(
        task,
        settings.rq_queue_name,
        max_retries=settings.rq_dispatch_max_retries,
        redis_url=settings.rq_redis_url,
        delay_seconds=max(0.0, delay_seconds),
    )


async def process_agent_run_queue_task(task: QueuedTask) -> None:
    """Run the bot assignee's agent for a queued task that is still TODO."""
    payload = decode_agent_run_task(task)

    async with async_session_maker() as session:
        queued_task = await Task.objects.by_id(payload.task_id).first(session)
        if queued_task is None:
            logger.info(
                "agent.queue.skip_missing_task",
                extra={"task_id": str(payload.task_id)},
            )
            return
        if queued_task.status != TaskStatus.TODO.value:
            logger.info(
                "agent.queue.skip_not_todo",
                extra={"task_id": str(queued_task.id), "status": queued_task.status},
            )
            return

        runner = AgentRunner(session)
        try:
            agent = await runner.agent_for_task(queued_task)
        except (TaskNotAssignedError, AgentProfileMissingError) as exc:
            logger.info(
                "agent.queue.skip_unassigned",
                extra={"task_id": str(queued_task.id), "reason": str(exc)},
            )
            return

        try:
            result = await runner.run_agent(agent.id, queued_task.id, payload.user_id)
        except RunConflictError as exc:
            logger.info(
                "agent.queue.skip_active_run",
                extra={"task_id": str(payload.task_id), "run_id": str(exc.active_run_id)},
            )
            return
        logger.info(
            "agent.queue.run_finished",
            extra={
                "task_id": str(payload.task_id),
                "run_id": str(result.run_id),
                "status": result.status.value,
            },
        )
