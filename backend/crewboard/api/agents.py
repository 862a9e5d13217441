"""Agent directory, run, cancel, and batch-processing endpoints."""

from __future__ import annotations

from typing import TYPE_CHECKING
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from sqlmodel import col

from crewboard.api.deps import SESSION_DEP, get_agent_runner, require_agent_api_token
from crewboard.models.agent_runs import AgentRun
from crewboard.models.tasks import Task
from crewboard.schemas.agents import (
    AgentBriefRead,
    AgentProfileRead,
    AgentRunEnqueued,
    AgentRunRead,
    AgentRunRequest,
    PendingSummaryRead,
    ProcessedTaskRead,
    ProcessRequest,
    ProcessSummaryRead,
    RunResultRead,
    TokenUsageRead,
)
from crewboard.schemas.common import OkResponse
from crewboard.services.agents.batch import pending_summary, process_pending_tasks
from crewboard.services.agents.errors import (
    AgentProfileMissingError,
    RunConflictError,
    RunNotActiveError,
    RunNotFoundError,
    TaskNotAssignedError,
)
from crewboard.services.agents.queue import enqueue_agent_run

if TYPE_CHECKING:
    from sqlmodel.ext.asyncio.session import AsyncSession

    from crewboard.services.agents.runner import AgentRunner

router = APIRouter(
    prefix="/agents",
    tags=["agents"],
    dependencies=[Depends(require_agent_api_token)],
)
RUNNER_DEP = Depends(get_agent_runner)
RECENT_RUNS_LIMIT = 5


@router.get("", response_model=list[AgentProfileRead])
async def list_agents(runner: AgentRunner = RUNNER_DEP) -> list[AgentProfileRead]:
    """List active agent profiles ordered by name."""
    agents = await runner.list_agents()
    return [AgentProfileRead.model_validate(agent, from_attributes=True) for agent in agents]


@router.get("/by-name/{name}", response_model=AgentProfileRead)
async def get_agent_by_name(name: str, runner: AgentRunner = RUNNER_DEP) -> AgentProfileRead:
    agent = await runner.get_agent_by_name(name)
    if agent is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Agent not found")
    return AgentProfileRead.model_validate(agent, from_attributes=True)


@router.post("/run", response_model=RunResultRead)
async def run_agent(
    payload: AgentRunRequest,
    session: AsyncSession = SESSION_DEP,
    runner: AgentRunner = RUNNER_DEP,
) -> RunResultRead:
    """Run the task's assigned agent synchronously and report the outcome."""
    task = await Task.objects.by_id(payload.task_id).first(session)
    if task is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Task not found")
    try:
        agent = await runner.agent_for_task(task)
    except TaskNotAssignedError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except AgentProfileMissingError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc

    try:
        result = await runner.run_agent(agent.id, task.id, payload.user_id)
    except RunConflictError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    return RunResultRead(
        success=result.success,
        run_id=result.run_id,
        status=result.status.value,
        output=result.output,
        error=result.error,
        tokens=TokenUsageRead(
            input=result.input_tokens,
            output=result.output_tokens,
            total=result.total_tokens,
        ),
        cost=result.cost,
        tool_iterations=result.tool_iterations,
    )


@router.post(
    "/runs/enqueue",
    response_model=AgentRunEnqueued,
    status_code=status.HTTP_202_ACCEPTED,
)
async def enqueue_run(payload: AgentRunRequest) -> AgentRunEnqueued:
    """Queue a run for background execution by the worker."""
    return AgentRunEnqueued(queued=enqueue_agent_run(payload.task_id, payload.user_id))


@router.get("/runs", response_model=list[AgentRunRead])
async def list_runs(task_id: UUID, session: AsyncSession = SESSION_DEP) -> list[AgentRunRead]:
    """Latest runs for a task, newest first."""
    runs = (
        await AgentRun.objects.filter_by(task_id=task_id)
        .order_by(col(AgentRun.created_at).desc())
        .limit(RECENT_RUNS_LIMIT)
        .all(session)
    )
    return [AgentRunRead.model_validate(run, from_attributes=True) for run in runs]


@router.post("/runs/{run_id}/cancel", response_model=OkResponse)
async def cancel_run(run_id: UUID, runner: AgentRunner = RUNNER_DEP) -> OkResponse:
    try:
        await runner.cancel_agent_run(run_id)
    except RunNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except RunNotActiveError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    return OkResponse()


@router.post("/process", response_model=ProcessSummaryRead)
async def process_tasks(
    payload: ProcessRequest | None = None,
    session: AsyncSession = SESSION_DEP,
    runner: AgentRunner = RUNNER_DEP,
) -> ProcessSummaryRead:
    """Run every pending bot-assigned TODO task, up to ``limit``."""
    request = payload or ProcessRequest()
    summary = await process_pending_tasks(
        session,
        runner,
        limit=request.limit,
        agent_name=request.agent_name,
    )
    return ProcessSummaryRead(
        message=summary.message,
        processed=summary.processed,
        successful=summary.successful,
        failed=summary.failed,
        results=[
            ProcessedTaskRead(
                task_id=item.task_id,
                task_title=item.task_title,
                status=item.status,
                run_id=item.run_id,
                error=item.error,
                tokens=(
                    TokenUsageRead(
                        input=item.input_tokens,
                        output=item.output_tokens,
                        total=item.total_tokens,
                    )
                    if item.run_id is not None
                    else None
                ),
                cost=item.cost,
            )
            for item in summary.results
        ],
    )


@router.get("/process", response_model=PendingSummaryRead)
async def get_pending(session: AsyncSession = SESSION_DEP) -> PendingSummaryRead:
    """Counts of bot-assigned TODO and IN_PROGRESS tasks plus active agents."""
    summary = await pending_summary(session)
    return PendingSummaryRead(
        pending=summary.pending,
        in_progress=summary.in_progress,
        agents=[
            AgentBriefRead(id=agent.id, name=agent.name, model=agent.model)
            for agent in summary.agents
        ],
    )
