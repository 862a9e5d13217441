# ruff: noqa: INP001
"""Pytest configuration shared across backend tests."""

import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

# Settings are read at import time; pin deterministic values regardless of shell env.
os.environ["ENVIRONMENT"] = "test"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["DB_AUTO_MIGRATE"] = "false"
os.environ["ENCRYPTION_KEY"] = "test-encryption-key-0123456789"
os.environ["AGENT_API_KEY"] = ""
os.environ["ANTHROPIC_API_KEY"] = ""
os.environ["OPENAI_API_KEY"] = ""
os.environ["GOOGLE_AI_API_KEY"] = ""
os.environ["BRAVE_API_KEY"] = ""

from collections.abc import AsyncIterator, Awaitable, Callable, Sequence  # noqa: E402
from dataclasses import dataclass, field  # noqa: E402
from typing import Any  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine  # noqa: E402
from sqlmodel import SQLModel  # noqa: E402
from sqlmodel.ext.asyncio.session import AsyncSession  # noqa: E402

from crewboard import models as _models  # noqa: E402
from crewboard.models.agent_profiles import AgentProfile, ProviderKind  # noqa: E402
from crewboard.models.comments import Comment  # noqa: E402
from crewboard.models.projects import Project  # noqa: E402
from crewboard.models.tasks import Task, TaskStatus  # noqa: E402
from crewboard.models.users import User  # noqa: E402
from crewboard.services.agents.container import AgentComponents  # noqa: E402
from crewboard.services.agents.pricing import PricingTable  # noqa: E402
from crewboard.services.agents.providers import (  # noqa: E402
    Conversation,
    ProviderAdapter,
    ProviderReply,
)
from crewboard.services.agents.sandbox import ToolExecutor  # noqa: E402
from crewboard.services.agents.skills import SkillCache  # noqa: E402

_MODEL_REGISTRY = _models

# A scripted step is a reply, an exception to raise, or a coroutine function
# receiving the adapter and returning a reply.
ScriptStep = ProviderReply | Exception | Callable[["ScriptedAdapter"], Awaitable[ProviderReply]]


class ScriptedAdapter(ProviderAdapter):
    """Adapter replaying canned provider replies; the last step repeats."""

    def __init__(self, agent: AgentProfile, *, api_key: str, steps: Sequence[ScriptStep]) -> None:
        super().__init__(agent, api_key=api_key, timeout=1)
        self.kind = agent.provider_kind
        self.steps = list(steps)
        self.requests: list[list[dict[str, Any]]] = []
        self.tool_rounds: list[list[tuple[Any, Any]]] = []

    async def _create(self, conversation: Conversation, tools: Sequence[Any]) -> ProviderReply:
        self.requests.append(list(conversation.messages))
        step = self.steps.pop(0) if len(self.steps) > 1 else self.steps[0]
        if isinstance(step, Exception):
            raise step
        if isinstance(step, ProviderReply):
            return step
        return await step(self)

    def append_tool_results(
        self,
        conversation: Conversation,
        reply: ProviderReply,
        results: Sequence[tuple[Any, Any]],
    ) -> None:
        self.tool_rounds.append(list(results))
        conversation.messages.append({"role": "assistant", "content": reply.text})
        conversation.messages.extend(
            {"role": "user", "content": result.content} for _, result in results
        )


@dataclass
class AdapterScript:
    """Adapter factory recording the credential each run was given."""

    steps: list[ScriptStep]
    adapters: list[ScriptedAdapter] = field(default_factory=list)
    api_keys: list[str] = field(default_factory=list)

    def __call__(self, agent: AgentProfile, api_key: str) -> ScriptedAdapter:
        adapter = ScriptedAdapter(agent, api_key=api_key, steps=self.steps)
        self.adapters.append(adapter)
        self.api_keys.append(api_key)
        return adapter


@dataclass
class SeededBoard:
    agent: AgentProfile | None
    bot: User
    human: User
    project: Project
    task: Task


@pytest_asyncio.fixture
async def session_maker() -> AsyncIterator[async_sessionmaker[AsyncSession]]:
    engine = create_async_engine("sqlite+aiosqlite:///:memory:")
    async with engine.connect() as conn, conn.begin():
        await conn.run_sync(SQLModel.metadata.create_all)
    try:
        yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    finally:
        await engine.dispose()


@pytest_asyncio.fixture
async def session(
    session_maker: async_sessionmaker[AsyncSession],
) -> AsyncIterator[AsyncSession]:
    async with session_maker() as db_session:
        yield db_session


@pytest.fixture
def components(tmp_path: Path) -> AgentComponents:
    skills_root = tmp_path / "skills"
    (skills_root / "coordinator").mkdir(parents=True)
    (skills_root / "coordinator" / "SKILL.md").write_text(
        "# Coordinator\n\nRoute work to the right agent.\n",
        encoding="utf-8",
    )
    return AgentComponents(
        skills=SkillCache(skills_root),
        executor=ToolExecutor(allowed_roots=[tmp_path]),
        pricing=PricingTable(),
        adapter_factory=AdapterScript([ProviderReply(text="ok", input_tokens=1, output_tokens=1)]),
        max_tool_iterations=3,
        comment_max_chars=200,
    )


async def _seed_board(
    session: AsyncSession,
    *,
    agent_name: str = "Harvis",
    model: str = "claude-sonnet-4",
    with_profile: bool = True,
    assign: bool = True,
    status: TaskStatus = TaskStatus.TODO,
    title: str = "Summarize the launch plan",
) -> SeededBoard:
    bot = User(name=agent_name, is_bot=True)
    human = User(name="Dana", email="dana@example.test")
    project = Project(name="Launch")
    session.add_all([bot, human, project])
    agent = None
    if with_profile:
        agent = AgentProfile(
            name=agent_name,
            model=model,
            provider=ProviderKind.for_model(model).value,
            system_prompt=f"You are {agent_name}.",
            skills=["coordinator"],
        )
        session.add(agent)
    task = Task(
        project_id=project.id,
        title=title,
        description="Read the plan and report back.",
        status=status.value,
        assignee_id=bot.id if assign else None,
    )
    session.add(task)
    session.add(Comment(task_id=task.id, author_id=human.id, content="Please prioritize this."))
    await session.commit()
    return SeededBoard(agent=agent, bot=bot, human=human, project=project, task=task)


@pytest.fixture
def seed_board() -> Callable[..., Awaitable[SeededBoard]]:
    return _seed_board


@pytest.fixture
def script_provider(components: AgentComponents) -> Callable[..., AdapterScript]:
    """Install canned provider replies on the ``components`` fixture."""

    def _install(*steps: ScriptStep) -> AdapterScript:
        script = AdapterScript(list(steps))
        components.adapter_factory = script
        return script

    return _install
