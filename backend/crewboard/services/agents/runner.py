"""Agent run orchestration: prompt, credential, provider rounds, persistence.

A run moves its task TODO -> IN_PROGRESS -> REVIEW on success, or back to
TODO on failure or cancellation. Every run leaves an ``AgentRun`` row, a bot
comment on the task (when a bot author can be found), and an activity entry.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import TYPE_CHECKING

from sqlalchemy import func
from sqlmodel import col

from crewboard.core.logging import get_logger
from crewboard.core.time import utcnow
from crewboard.models.agent_profiles import AgentProfile
from crewboard.models.agent_runs import AgentRun, AgentRunStatus
from crewboard.models.api_keys import ApiProvider
from crewboard.models.comments import Comment
from crewboard.models.projects import Project
from crewboard.models.tasks import Task, TaskStatus
from crewboard.models.users import User
from crewboard.services.activity import (
    AGENT_CANCELLED,
    AGENT_COMPLETED,
    AGENT_FAILED,
    record_activity,
)
from crewboard.services.agents.container import get_components
from crewboard.services.agents.errors import (
    AgentNotFoundError,
    AgentProfileMissingError,
    MissingCredentialError,
    RunConflictError,
    RunNotActiveError,
    RunNotFoundError,
    TaskNotAssignedError,
    TaskNotFoundError,
)
from crewboard.services.agents.prompts import TASK_USER_MESSAGE, build_prompt
from crewboard.services.agents.results import Failure
from crewboard.services.agents.tools import get_tools_for_agent
from crewboard.services.api_keys import resolve_api_key

if TYPE_CHECKING:
    from uuid import UUID

    from sqlmodel.ext.asyncio.session import AsyncSession

    from crewboard.services.agents.container import AgentComponents
    from crewboard.services.agents.providers import ProviderAdapter
    from crewboard.services.agents.tools import ToolCall, ToolResult

logger = get_logger(__name__)

COMPLETED_COMMENT_PREFIX = "**🤖 Completed:**\n\n"
FAILED_COMMENT_PREFIX = "**🤖 Failed:**\n\n"
CANCELLED_OUTPUT = "Cancelled by user"
INTERRUPTED_ERROR = "Run interrupted before completion"


@dataclass(frozen=True)
class RunResult:
    """Outcome of ``run_agent``; failures are reported here rather than raised."""

    run_id: UUID
    status: AgentRunStatus
    output: str | None = None
    error: str | None = None
    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0
    cost: float | None = None
    tool_iterations: int = 0

    @property
    def success(self) -> bool:
        return self.status is AgentRunStatus.COMPLETED

    @classmethod
    def from_run(cls, run: AgentRun) -> RunResult:
        return cls(
            run_id=run.id,
            status=AgentRunStatus(run.status),
            output=run.output,
            error=run.error,
            input_tokens=run.input_tokens,
            output_tokens=run.output_tokens,
            total_tokens=run.total_tokens,
            cost=run.cost,
            tool_iterations=run.tool_iterations,
        )


@dataclass(frozen=True)
class CancelResult:
    run_id: UUID
    task_reverted: bool
    conversation_cancelled: bool


@dataclass(frozen=True)
class _ConversationOutcome:
    text: str
    input_tokens: int
    output_tokens: int
    tool_iterations: int


def truncate_comment(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return f"{text[:limit]}..."


class AgentRunner:
    """Runs agents against tasks within one database session."""

    def __init__(self, session: AsyncSession, components: AgentComponents | None = None) -> None:
        self.session = session
        self.components = components or get_components()

    async def list_agents(self) -> list[AgentProfile]:
        return (
            await AgentProfile.objects.filter_by(is_active=True)
            .order_by(col(AgentProfile.name).asc())
            .all(self.session)
        )

    async def get_agent_by_name(self, name: str) -> AgentProfile | None:
        """Case-insensitive lookup among active profiles."""
        normalized = name.strip().lower()
        if not normalized:
            return None
        return await AgentProfile.objects.filter(
            func.lower(col(AgentProfile.name)) == normalized,
            col(AgentProfile.is_active).is_(True),
        ).first(self.session)

    async def agent_for_task(self, task: Task) -> AgentProfile:
        """Profile of the bot user the task is assigned to."""
        assignee = None
        if task.assignee_id is not None:
            assignee = await User.objects.by_id(task.assignee_id).first(self.session)
        if assignee is None or not assignee.is_bot:
            raise TaskNotAssignedError(task.id)
        agent = await self.get_agent_by_name(assignee.name)
        if agent is None:
            raise AgentProfileMissingError(assignee.name)
        return agent

    async def _bot_author_id(self, agent: AgentProfile, task: Task) -> UUID | None:
        bot = await User.objects.filter(
            func.lower(col(User.name)) == agent.name.lower(),
            col(User.is_bot).is_(True),
        ).first(self.session)
        if bot is not None:
            return bot.id
        if task.assignee_id is not None:
            assignee = await User.objects.by_id(task.assignee_id).first(self.session)
            if assignee is not None and assignee.is_bot:
                return assignee.id
        logger.warning(
            "agent.run.comment_author_missing",
            extra={"agent_name": agent.name, "task_id": str(task.id)},
        )
        return None

    async def _add_bot_comment(self, agent: AgentProfile, task: Task, content: str) -> None:
        author_id = await self._bot_author_id(agent, task)
        if author_id is None:
            return
        self.session.add(
            Comment(task_id=task.id, author_id=author_id, content=content, created_at=utcnow())
        )

    async def _load_context(self, task: Task) -> tuple[str | None, list[str]]:
        project_name: str | None = None
        if task.project_id is not None:
            project = await Project.objects.by_id(task.project_id).first(self.session)
            project_name = project.name if project is not None else None
        comments = (
            await Comment.objects.filter_by(task_id=task.id)
            .order_by(col(Comment.created_at).desc())
            .limit(self.components.recent_comment_limit)
            .all(self.session)
        )
        return project_name, [comment.content for comment in comments]

    async def _converse(
        self,
        adapter: ProviderAdapter,
        agent: AgentProfile,
        system_prompt: str,
    ) -> _ConversationOutcome:
        tools = get_tools_for_agent(agent.name, agent.tools)
        conversation = adapter.start(system_prompt, TASK_USER_MESSAGE)
        texts: list[str] = []
        input_tokens = 0
        output_tokens = 0
        iterations = 0
        while True:
            result = await adapter.complete(conversation, tools)
            if isinstance(result, Failure):
                raise result.error
            reply = result.value
            input_tokens += reply.input_tokens
            output_tokens += reply.output_tokens
            if reply.text:
                texts.append(reply.text)
            if not reply.tool_calls:
                break
            if iterations >= self.components.max_tool_iterations:
                logger.warning(
                    "agent.run.tool_cap_reached",
                    extra={"agent_name": agent.name, "iterations": iterations},
                )
                break
            iterations += 1
            results: list[tuple[ToolCall, ToolResult]] = []
            for call in reply.tool_calls:
                outcome = await self.components.executor.execute_tool(
                    call.name,
                    call.input,
                    agent.name,
                )
                results.append((call, outcome))
            adapter.append_tool_results(conversation, reply, results)
        return _ConversationOutcome(
            text="\n\n".join(texts),
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            tool_iterations=iterations,
        )

    async def _execute(
        self,
        run: AgentRun,
        agent: AgentProfile,
        user_id: UUID | None,
    ) -> _ConversationOutcome:
        provider = ApiProvider(agent.provider_kind.value)
        credential = await resolve_api_key(self.session, provider, user_id)
        if credential.api_key is None:
            raise MissingCredentialError(provider.value)
        logger.info(
            "agent.run.credential_resolved",
            extra={"run_id": str(run.id), "provider": provider.value, "source": credential.source},
        )
        adapter = self.components.adapter_factory(agent, credential.api_key)
        conversation = asyncio.create_task(self._converse(adapter, agent, run.input))
        self.components.registry.register(run.id, conversation)
        try:
            return await conversation
        finally:
            self.components.registry.unregister(run.id)

    async def run_agent(
        self,
        agent_id: UUID,
        task_id: UUID,
        user_id: UUID | None = None,
    ) -> RunResult:
        """Execute one agent run for a task and persist the outcome."""
        agent = await AgentProfile.objects.by_id(agent_id).first(self.session)
        if agent is None:
            raise AgentNotFoundError(agent_id)
        task = await Task.objects.by_id(task_id).first(self.session)
        if task is None:
            raise TaskNotFoundError(task_id)
        active = await AgentRun.objects.filter_by(
            task_id=task.id,
            status=AgentRunStatus.RUNNING.value,
        ).first(self.session)
        if active is not None:
            raise RunConflictError(task.id, active.id)

        project_name, recent_comments = await self._load_context(task)
        prompt = build_prompt(
            agent,
            task,
            project_name=project_name,
            recent_comments=recent_comments,
            skills_prompt=self.components.skills.build_skills_prompt(agent.skills),
        )

        now = utcnow()
        run = AgentRun(
            agent_id=agent.id,
            task_id=task.id,
            status=AgentRunStatus.RUNNING.value,
            input=prompt,
            started_at=now,
            created_at=now,
        )
        self.session.add(run)
        await self.session.commit()
        await self.session.refresh(run)
        run_id = run.id
        logger.info(
            "agent.run.started",
            extra={"run_id": str(run_id), "agent_name": agent.name, "task_id": str(task.id)},
        )

        try:
            task.status = TaskStatus.IN_PROGRESS.value
            task.started_at = now
            task.updated_at = now
            self.session.add(task)
            await self.session.commit()
            outcome = await self._execute(run, agent, user_id)
        except asyncio.CancelledError:
            current = asyncio.current_task()
            if current is not None and current.cancelling():
                await self._record_failure(run_id, agent.id, task.id, INTERRUPTED_ERROR)
                raise
            return await self._cancelled_result(run_id)
        except Exception as exc:
            logger.exception(
                "agent.run.failed",
                extra={"run_id": str(run_id), "agent_name": agent.name},
            )
            return await self._record_failure(
                run_id,
                agent.id,
                task.id,
                str(exc) or exc.__class__.__name__,
            )

        try:
            return await self._record_success(run_id, agent.id, task.id, outcome)
        except Exception as exc:
            logger.exception("agent.run.persist_failed", extra={"run_id": str(run_id)})
            return await self._record_failure(
                run_id,
                agent.id,
                task.id,
                str(exc) or exc.__class__.__name__,
            )

    async def _reload(self, run_id: UUID, agent_id: UUID, task_id: UUID) -> tuple[
        AgentRun,
        AgentProfile,
        Task,
    ]:
        # Another session (cancel) may have written since we last read.
        run = await AgentRun.objects.by_id(run_id).first(self.session)
        agent = await AgentProfile.objects.by_id(agent_id).first(self.session)
        task = await Task.objects.by_id(task_id).first(self.session)
        if run is None:
            raise RunNotFoundError(run_id)
        if agent is None:
            raise AgentNotFoundError(agent_id)
        if task is None:
            raise TaskNotFoundError(task_id)
        await self.session.refresh(run)
        await self.session.refresh(task)
        return run, agent, task

    async def _cancelled_result(self, run_id: UUID) -> RunResult:
        await self.session.rollback()
        run = await AgentRun.objects.by_id(run_id).first(self.session)
        if run is None:
            raise RunNotFoundError(run_id)
        await self.session.refresh(run)
        logger.info("agent.run.cancelled", extra={"run_id": str(run_id)})
        return RunResult.from_run(run)

    async def _record_success(
        self,
        run_id: UUID,
        agent_id: UUID,
        task_id: UUID,
        outcome: _ConversationOutcome,
    ) -> RunResult:
        run, agent, task = await self._reload(run_id, agent_id, task_id)
        if run.status != AgentRunStatus.RUNNING.value:
            logger.info(
                "agent.run.completed_after_cancel",
                extra={"run_id": str(run_id), "status": run.status},
            )
            return RunResult.from_run(run)

        estimate = self.components.pricing.estimate(
            agent.model,
            outcome.input_tokens,
            outcome.output_tokens,
        )
        now = utcnow()
        run.status = AgentRunStatus.COMPLETED.value
        run.output = outcome.text
        run.input_tokens = outcome.input_tokens
        run.output_tokens = outcome.output_tokens
        run.total_tokens = outcome.input_tokens + outcome.output_tokens
        run.cost = estimate.cost
        run.tool_iterations = outcome.tool_iterations
        run.completed_at = now
        self.session.add(run)

        await self._add_bot_comment(
            agent,
            task,
            COMPLETED_COMMENT_PREFIX
            + truncate_comment(outcome.text, self.components.comment_max_chars),
        )
        task.status = TaskStatus.REVIEW.value
        task.updated_at = now
        self.session.add(task)
        await record_activity(
            self.session,
            activity_type=AGENT_COMPLETED,
            message=f"{agent.name} completed task",
            task_id=task.id,
            agent_id=agent.id,
            commit=False,
        )
        await self.session.commit()
        await self.session.refresh(run)
        logger.info(
            "agent.run.completed",
            extra={
                "run_id": str(run_id),
                "agent_name": agent.name,
                "total_tokens": run.total_tokens,
                "cost": run.cost,
                "tool_iterations": run.tool_iterations,
            },
        )
        return RunResult.from_run(run)

    async def _record_failure(
        self,
        run_id: UUID,
        agent_id: UUID,
        task_id: UUID,
        message: str,
    ) -> RunResult:
        await self.session.rollback()
        run, agent, task = await self._reload(run_id, agent_id, task_id)
        if run.status != AgentRunStatus.RUNNING.value:
            return RunResult.from_run(run)

        now = utcnow()
        run.status = AgentRunStatus.FAILED.value
        run.error = message
        run.completed_at = now
        self.session.add(run)

        await self._add_bot_comment(agent, task, FAILED_COMMENT_PREFIX + message)
        task.status = TaskStatus.TODO.value
        task.updated_at = now
        self.session.add(task)
        await record_activity(
            self.session,
            activity_type=AGENT_FAILED,
            message=f"{agent.name} failed task: {message}",
            task_id=task.id,
            agent_id=agent.id,
            commit=False,
        )
        await self.session.commit()
        await self.session.refresh(run)
        logger.warning(
            "agent.run.failed_recorded",
            extra={"run_id": str(run_id), "agent_name": agent.name, "error": message},
        )
        return RunResult.from_run(run)

    async def cancel_agent_run(self, run_id: UUID) -> CancelResult:
        """Cancel an active run and return its task to TODO."""
        run = await AgentRun.objects.by_id(run_id).first(self.session)
        if run is None:
            raise RunNotFoundError(run_id)
        if not run.is_active:
            raise RunNotActiveError(run_id, run.status)

        now = utcnow()
        run.status = AgentRunStatus.CANCELLED.value
        run.output = CANCELLED_OUTPUT
        run.completed_at = now
        self.session.add(run)

        task_reverted = False
        task = await Task.objects.by_id(run.task_id).first(self.session)
        if task is not None and task.status == TaskStatus.IN_PROGRESS.value:
            task.status = TaskStatus.TODO.value
            task.updated_at = now
            self.session.add(task)
            task_reverted = True

        agent = await AgentProfile.objects.by_id(run.agent_id).first(self.session)
        await record_activity(
            self.session,
            activity_type=AGENT_CANCELLED,
            message=f"{agent.name if agent else 'Agent'} run cancelled",
            task_id=run.task_id,
            agent_id=run.agent_id,
            commit=False,
        )
        await self.session.commit()

        conversation_cancelled = self.components.registry.cancel(run_id)
        logger.info(
            "agent.run.cancel_requested",
            extra={
                "run_id": str(run_id),
                "task_reverted": task_reverted,
                "conversation_cancelled": conversation_cancelled,
            },
        )
        return CancelResult(
            run_id=run_id,
            task_reverted=task_reverted,
            conversation_cancelled=conversation_cancelled,
        )
