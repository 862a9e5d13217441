# ruff: noqa: INP001
"""Agent run lifecycle tests against an in-memory database."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any

import anthropic
import httpx
import pytest
from sqlmodel import col

from crewboard.core.config import settings
from crewboard.core.time import utcnow
from crewboard.models.activities import Activity
from crewboard.models.agent_runs import AgentRun, AgentRunStatus
from crewboard.models.comments import Comment
from crewboard.models.tasks import Task, TaskStatus
from crewboard.services.agents.errors import (
    AgentProfileMissingError,
    RunConflictError,
    RunNotActiveError,
    RunNotFoundError,
    TaskNotAssignedError,
)
from crewboard.services.agents.providers import ProviderReply
from crewboard.services.agents.runner import (
    CANCELLED_OUTPUT,
    COMPLETED_COMMENT_PREFIX,
    FAILED_COMMENT_PREFIX,
    AgentRunner,
    truncate_comment,
)
from crewboard.services.agents.tools import ToolCall

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable
    from pathlib import Path
    from uuid import UUID

    from sqlmodel.ext.asyncio.session import AsyncSession

    from crewboard.services.agents.container import AgentComponents

PLATFORM_KEY = "sk-ant-platform-key"


@pytest.fixture(autouse=True)
def _platform_anthropic_key(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(settings, "anthropic_api_key", PLATFORM_KEY)


async def _comments(session: AsyncSession, task_id: UUID) -> list[Comment]:
    return await Comment.objects.filter_by(task_id=task_id).order_by(
        col(Comment.created_at).asc()
    ).all(session)


async def _activity_types(session: AsyncSession, task_id: UUID) -> list[str]:
    entries = await Activity.objects.filter_by(task_id=task_id).all(session)
    return [entry.type for entry in entries]


def test_truncate_comment() -> None:
    assert truncate_comment("short", 10) == "short"
    assert truncate_comment("abcdefghij", 4) == "abcd..."


@pytest.mark.asyncio
async def test_successful_run_with_tool_round(
    session: AsyncSession,
    components: AgentComponents,
    seed_board: Callable[..., Awaitable[Any]],
    script_provider: Callable[..., Any],
    tmp_path: Path,
) -> None:
    board = await seed_board(session)
    notes = tmp_path / "plan.md"
    notes.write_text("Ship on Friday.", encoding="utf-8")
    script = script_provider(
        ProviderReply(
            text="Reading the plan.",
            input_tokens=100,
            output_tokens=30,
            tool_calls=[ToolCall(id="t1", name="read_file", input={"path": str(notes)})],
        ),
        ProviderReply(text="The plan ships on Friday.", input_tokens=20, output_tokens=10),
    )
    runner = AgentRunner(session, components)

    result = await runner.run_agent(board.agent.id, board.task.id)

    assert result.success is True
    assert result.status is AgentRunStatus.COMPLETED
    assert result.output == "Reading the plan.\n\nThe plan ships on Friday."
    assert (result.input_tokens, result.output_tokens, result.total_tokens) == (120, 40, 160)
    assert result.cost == pytest.approx(0.00096)
    assert result.tool_iterations == 1
    assert script.api_keys == [PLATFORM_KEY]

    adapter = script.adapters[0]
    call, tool_result = adapter.tool_rounds[0][0]
    assert call.name == "read_file"
    assert tool_result.result == "Ship on Friday."
    assert adapter.requests[1][-1]["content"] == "Ship on Friday."

    run = await AgentRun.objects.by_id(result.run_id).first(session)
    assert run is not None
    assert run.status == AgentRunStatus.COMPLETED.value
    assert run.completed_at is not None
    assert "# Available Skills" in run.input
    assert f"## Task: {board.task.id}" in run.input
    assert "- Please prioritize this." in run.input
    assert "**Project:** Launch" in run.input

    task = await Task.objects.by_id(board.task.id).first(session)
    assert task is not None
    assert task.status == TaskStatus.REVIEW.value
    assert task.started_at is not None

    comments = await _comments(session, board.task.id)
    bot_comments = [comment for comment in comments if comment.author_id == board.bot.id]
    assert len(bot_comments) == 1
    assert bot_comments[0].content.startswith(COMPLETED_COMMENT_PREFIX)
    assert "ships on Friday" in bot_comments[0].content
    assert await _activity_types(session, board.task.id) == ["agent_completed"]


@pytest.mark.asyncio
async def test_long_output_is_truncated_in_comment_only(
    session: AsyncSession,
    components: AgentComponents,
    seed_board: Callable[..., Awaitable[Any]],
    script_provider: Callable[..., Any],
) -> None:
    board = await seed_board(session)
    long_text = "x" * 500
    script_provider(ProviderReply(text=long_text, input_tokens=1, output_tokens=1))

    result = await AgentRunner(session, components).run_agent(board.agent.id, board.task.id)

    assert result.output == long_text
    comments = await _comments(session, board.task.id)
    bot_comment = next(comment for comment in comments if comment.author_id == board.bot.id)
    assert bot_comment.content == COMPLETED_COMMENT_PREFIX + "x" * 200 + "..."


@pytest.mark.asyncio
async def test_provider_error_marks_run_failed(
    session: AsyncSession,
    components: AgentComponents,
    seed_board: Callable[..., Awaitable[Any]],
    script_provider: Callable[..., Any],
) -> None:
    board = await seed_board(session)
    script_provider(
        anthropic.AuthenticationError(
            message="invalid x-api-key",
            response=httpx.Response(
                401,
                request=httpx.Request("POST", "https://api.anthropic.com/v1/messages"),
            ),
            body=None,
        ),
    )

    result = await AgentRunner(session, components).run_agent(board.agent.id, board.task.id)

    assert result.success is False
    assert result.status is AgentRunStatus.FAILED
    assert result.error == "Anthropic API error: 401 - invalid x-api-key"

    task = await Task.objects.by_id(board.task.id).first(session)
    assert task is not None
    assert task.status == TaskStatus.TODO.value
    comments = await _comments(session, board.task.id)
    assert any(
        comment.content == FAILED_COMMENT_PREFIX + "Anthropic API error: 401 - invalid x-api-key"
        for comment in comments
    )
    assert await _activity_types(session, board.task.id) == ["agent_failed"]


@pytest.mark.asyncio
async def test_missing_credential_fails_run(
    session: AsyncSession,
    components: AgentComponents,
    seed_board: Callable[..., Awaitable[Any]],
    script_provider: Callable[..., Any],
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setattr(settings, "anthropic_api_key", "")
    board = await seed_board(session)
    script = script_provider(ProviderReply(text="never", input_tokens=0, output_tokens=0))

    result = await AgentRunner(session, components).run_agent(board.agent.id, board.task.id)

    assert result.status is AgentRunStatus.FAILED
    assert result.error == "No API key configured for ANTHROPIC"
    assert script.adapters == []


@pytest.mark.asyncio
async def test_tool_rounds_are_capped(
    session: AsyncSession,
    components: AgentComponents,
    seed_board: Callable[..., Awaitable[Any]],
    script_provider: Callable[..., Any],
    tmp_path: Path,
) -> None:
    board = await seed_board(session)
    components.max_tool_iterations = 2
    script = script_provider(
        ProviderReply(
            text="",
            input_tokens=10,
            output_tokens=5,
            tool_calls=[
                ToolCall(id="t", name="read_file", input={"path": str(tmp_path / "missing")})
            ],
        ),
    )

    result = await AgentRunner(session, components).run_agent(board.agent.id, board.task.id)

    assert result.status is AgentRunStatus.COMPLETED
    assert result.tool_iterations == 2
    assert len(script.adapters[0].requests) == 3
    assert result.input_tokens == 30
    failed_call = script.adapters[0].tool_rounds[0][0][1]
    assert failed_call.success is False


@pytest.mark.asyncio
async def test_always_calling_model_stops_at_default_cap(
    session: AsyncSession,
    components: AgentComponents,
    seed_board: Callable[..., Awaitable[Any]],
    script_provider: Callable[..., Any],
    tmp_path: Path,
) -> None:
    board = await seed_board(session)
    components.max_tool_iterations = settings.agent_max_tool_iterations
    script = script_provider(
        ProviderReply(
            text="still working",
            input_tokens=10,
            output_tokens=1,
            tool_calls=[
                ToolCall(id="t", name="read_file", input={"path": str(tmp_path / "missing")})
            ],
        ),
    )

    result = await AgentRunner(session, components).run_agent(board.agent.id, board.task.id)

    assert settings.agent_max_tool_iterations == 10
    assert result.status is AgentRunStatus.COMPLETED
    assert result.tool_iterations == 10
    assert len(script.adapters[0].requests) == 11
    assert len(script.adapters[0].tool_rounds) == 10
    assert result.total_tokens == 121
    task = await Task.objects.by_id(board.task.id).first(session)
    assert task is not None
    assert task.status == TaskStatus.REVIEW.value


@pytest.mark.asyncio
async def test_concurrent_run_is_rejected(
    session: AsyncSession,
    components: AgentComponents,
    seed_board: Callable[..., Awaitable[Any]],
) -> None:
    board = await seed_board(session)
    active = AgentRun(
        agent_id=board.agent.id,
        task_id=board.task.id,
        status=AgentRunStatus.RUNNING.value,
        input="prompt",
        started_at=utcnow(),
    )
    session.add(active)
    await session.commit()

    with pytest.raises(RunConflictError) as exc:
        await AgentRunner(session, components).run_agent(board.agent.id, board.task.id)

    assert exc.value.active_run_id == active.id
    runs = await AgentRun.objects.filter_by(task_id=board.task.id).all(session)
    assert len(runs) == 1


@pytest.mark.asyncio
async def test_cancel_running_run_reverts_task(
    session: AsyncSession,
    components: AgentComponents,
    seed_board: Callable[..., Awaitable[Any]],
) -> None:
    board = await seed_board(session, status=TaskStatus.IN_PROGRESS)
    run = AgentRun(
        agent_id=board.agent.id,
        task_id=board.task.id,
        status=AgentRunStatus.RUNNING.value,
        input="prompt",
        started_at=utcnow(),
    )
    session.add(run)
    await session.commit()

    outcome = await AgentRunner(session, components).cancel_agent_run(run.id)

    assert outcome.task_reverted is True
    assert outcome.conversation_cancelled is False
    stored = await AgentRun.objects.by_id(run.id).first(session)
    assert stored is not None
    assert stored.status == AgentRunStatus.CANCELLED.value
    assert stored.output == CANCELLED_OUTPUT
    assert stored.completed_at is not None
    task = await Task.objects.by_id(board.task.id).first(session)
    assert task is not None
    assert task.status == TaskStatus.TODO.value
    assert await _activity_types(session, board.task.id) == ["agent_cancelled"]


@pytest.mark.asyncio
async def test_cancel_rejects_terminal_and_unknown_runs(
    session: AsyncSession,
    components: AgentComponents,
    seed_board: Callable[..., Awaitable[Any]],
) -> None:
    board = await seed_board(session)
    run = AgentRun(
        agent_id=board.agent.id,
        task_id=board.task.id,
        status=AgentRunStatus.COMPLETED.value,
        input="prompt",
    )
    session.add(run)
    await session.commit()
    runner = AgentRunner(session, components)

    with pytest.raises(RunNotActiveError, match="Run is not active"):
        await runner.cancel_agent_run(run.id)
    with pytest.raises(RunNotFoundError):
        await runner.cancel_agent_run(board.task.id)


@pytest.mark.asyncio
async def test_cancel_during_conversation_stops_the_run(
    session: AsyncSession,
    components: AgentComponents,
    seed_board: Callable[..., Awaitable[Any]],
    script_provider: Callable[..., Any],
) -> None:
    board = await seed_board(session)
    runner = AgentRunner(session, components)

    async def _cancel_mid_flight(_adapter: Any) -> ProviderReply:
        active = await AgentRun.objects.filter_by(
            task_id=board.task.id,
            status=AgentRunStatus.RUNNING.value,
        ).first(session)
        assert active is not None
        outcome = await runner.cancel_agent_run(active.id)
        assert outcome.conversation_cancelled is True
        await asyncio.sleep(0)
        return ProviderReply(text="too late", input_tokens=1, output_tokens=1)

    script_provider(_cancel_mid_flight)

    result = await runner.run_agent(board.agent.id, board.task.id)

    assert result.status is AgentRunStatus.CANCELLED
    assert result.output == CANCELLED_OUTPUT
    assert len(components.registry) == 0
    task = await Task.objects.by_id(board.task.id).first(session)
    assert task is not None
    assert task.status == TaskStatus.TODO.value
    comments = await _comments(session, board.task.id)
    assert all(comment.author_id != board.bot.id for comment in comments)


@pytest.mark.asyncio
async def test_agent_for_task_requires_bot_assignee_with_profile(
    session: AsyncSession,
    components: AgentComponents,
    seed_board: Callable[..., Awaitable[Any]],
) -> None:
    unassigned = await seed_board(session, agent_name="Codex", model="gpt-4o", assign=False)
    orphan = await seed_board(session, agent_name="Ghost", with_profile=False)
    runner = AgentRunner(session, components)

    with pytest.raises(TaskNotAssignedError):
        await runner.agent_for_task(unassigned.task)
    with pytest.raises(AgentProfileMissingError, match="No agent profile found for: Ghost"):
        await runner.agent_for_task(orphan.task)


@pytest.mark.asyncio
async def test_agent_lookup_is_case_insensitive_and_active_only(
    session: AsyncSession,
    components: AgentComponents,
    seed_board: Callable[..., Awaitable[Any]],
) -> None:
    board = await seed_board(session)
    runner = AgentRunner(session, components)

    found = await runner.get_agent_by_name("harvis")
    assert found is not None
    assert found.id == board.agent.id

    board.agent.is_active = False
    session.add(board.agent)
    await session.commit()
    assert await runner.get_agent_by_name("Harvis") is None
    assert await runner.list_agents() == []
