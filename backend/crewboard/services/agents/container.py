"""Composition root for the agent pipeline's long-lived collaborators."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from crewboard.core.config import settings
from crewboard.core.logging import get_logger
from crewboard.services.agents.pricing import PricingTable
from crewboard.services.agents.providers import create_adapter
from crewboard.services.agents.sandbox import ToolExecutor
from crewboard.services.agents.skills import SkillCache

if TYPE_CHECKING:
    from collections.abc import Callable
    from uuid import UUID

    from crewboard.models.agent_profiles import AgentProfile
    from crewboard.services.agents.providers import ProviderAdapter

    AdapterFactory = Callable[[AgentProfile, str], ProviderAdapter]

logger = get_logger(__name__)


class RunRegistry:
    """In-process map of run id to the asyncio task driving its conversation."""

    def __init__(self) -> None:
        self._tasks: dict[UUID, asyncio.Task[object]] = {}

    def register(self, run_id: UUID, task: asyncio.Task[object]) -> None:
        self._tasks[run_id] = task

    def unregister(self, run_id: UUID) -> None:
        self._tasks.pop(run_id, None)

    def cancel(self, run_id: UUID) -> bool:
        """Cancel the run's conversation if it is live in this process."""
        task = self._tasks.get(run_id)
        if task is None or task.done():
            return False
        task.cancel()
        logger.info("agent.run.conversation_cancelled", extra={"run_id": str(run_id)})
        return True

    def __len__(self) -> int:
        return sum(1 for task in self._tasks.values() if not task.done())


def _default_adapter_factory(agent: AgentProfile, api_key: str) -> ProviderAdapter:
    return create_adapter(agent, api_key=api_key, timeout=settings.provider_timeout_seconds)


@dataclass
class AgentComponents:
    """Shared pipeline state: skill cache, tool sandbox, pricing, live runs."""

    skills: SkillCache
    executor: ToolExecutor
    pricing: PricingTable
    registry: RunRegistry = field(default_factory=RunRegistry)
    adapter_factory: AdapterFactory = _default_adapter_factory
    max_tool_iterations: int = 10
    comment_max_chars: int = 2000
    recent_comment_limit: int = 5


def build_components() -> AgentComponents:
    """Assemble components from application settings."""
    return AgentComponents(
        skills=SkillCache(settings.skills_path),
        executor=ToolExecutor(
            allowed_roots=settings.tool_allowed_roots,
            exec_timeout_seconds=settings.tool_exec_timeout_seconds,
            output_max_chars=settings.tool_output_max_chars,
            brave_api_key=settings.brave_api_key,
        ),
        pricing=PricingTable.from_file(settings.model_pricing_file or None),
        max_tool_iterations=settings.agent_max_tool_iterations,
        comment_max_chars=settings.agent_comment_max_chars,
        recent_comment_limit=settings.agent_recent_comment_limit,
    )


_components: AgentComponents | None = None


def get_components() -> AgentComponents:
    global _components
    if _components is None:
        _components = build_components()
    return _components


def set_components(components: AgentComponents | None) -> None:
    """Replace (or clear, with None) the process-wide components."""
    global _components
    _components = components
