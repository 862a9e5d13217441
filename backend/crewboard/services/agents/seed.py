"""Default agent personas and the matching bot users they comment as."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from sqlalchemy import func
from sqlmodel import col

from crewboard.core.logging import get_logger
from crewboard.core.time import utcnow
from crewboard.models.agent_profiles import AgentProfile, ProviderKind
from crewboard.models.users import User
from crewboard.services.agents.tools import ToolName

if TYPE_CHECKING:
    from sqlmodel.ext.asyncio.session import AsyncSession

logger = get_logger(__name__)


@dataclass(frozen=True)
class AgentSeed:
    name: str
    description: str
    model: str
    system_prompt: str
    skills: tuple[str, ...]
    tools: tuple[ToolName, ...]
    max_tokens: int
    temperature: float


@dataclass(frozen=True)
class SeedOutcome:
    created: list[str]
    updated: list[str]


DEFAULT_AGENTS: tuple[AgentSeed, ...] = (
    AgentSeed(
        name="Harvis",
        description="AI Orchestrator - Coordinates tasks and manages other agents",
        model="claude-opus-4-5",
        system_prompt=(
            "You are Harvis, the AI orchestrator for Crewboard.\n\n"
            "Your role is to:\n"
            "- Analyze incoming tasks and determine the best agent to handle them\n"
            "- Coordinate work between multiple agents\n"
            "- Monitor task progress and quality\n"
            "- Provide status updates and summaries\n\n"
            "Be efficient, proactive, and maintain high quality standards."
        ),
        skills=("coordinator",),
        tools=(ToolName.READ_FILE, ToolName.WEB_SEARCH, ToolName.WEB_FETCH, ToolName.GITHUB_API),
        max_tokens=8192,
        temperature=0.7,
    ),
    AgentSeed(
        name="Codex",
        description="Coding Agent - Writes, reviews, and debugs code",
        model="gpt5.1.codex",
        system_prompt=(
            "You are Codex, a senior software engineer AI agent.\n\n"
            "Your expertise includes:\n"
            "- Full-stack development (React, Next.js, Node.js, Python)\n"
            "- Database design and optimization\n"
            "- API development and integration\n"
            "- Code review and refactoring\n"
            "- Testing and debugging\n\n"
            "Always write clean, maintainable code with proper error handling.\n"
            "Comment complex logic and document public APIs."
        ),
        skills=("coding-agent", "github"),
        tools=(
            ToolName.EXEC,
            ToolName.READ_FILE,
            ToolName.WRITE_FILE,
            ToolName.GITHUB_API,
            ToolName.WEB_SEARCH,
            ToolName.WEB_FETCH,
        ),
        max_tokens=16384,
        temperature=0.3,
    ),
    AgentSeed(
        name="Peter Designer",
        description="UI/UX Designer - Creates beautiful, functional interfaces",
        model="claude-sonnet-4-20250514",
        system_prompt=(
            "You are Peter Designer, a UI/UX design expert.\n\n"
            "Your expertise includes:\n"
            "- Responsive web design\n"
            "- Mobile-first design patterns\n"
            "- Design systems and component libraries\n"
            "- Accessibility (WCAG compliance)\n"
            "- Modern CSS and Tailwind\n\n"
            "Focus on clean, intuitive interfaces that delight users.\n"
            "Always consider mobile and tablet layouts."
        ),
        skills=("designer",),
        tools=(ToolName.READ_FILE, ToolName.WEB_SEARCH, ToolName.WEB_FETCH),
        max_tokens=4096,
        temperature=0.8,
    ),
)


async def _ensure_bot_user(session: AsyncSession, name: str) -> None:
    existing = await User.objects.filter(
        func.lower(col(User.name)) == name.lower(),
        col(User.is_bot).is_(True),
    ).first(session)
    if existing is None:
        session.add(User(name=name, is_bot=True))


async def seed_agent_profiles(
    session: AsyncSession,
    agents: tuple[AgentSeed, ...] = DEFAULT_AGENTS,
) -> SeedOutcome:
    """Create or update each persona by name, plus its bot user."""
    created: list[str] = []
    updated: list[str] = []
    for seed in agents:
        profile = await AgentProfile.objects.filter_by(name=seed.name).first(session)
        if profile is None:
            profile = AgentProfile(name=seed.name, model=seed.model, system_prompt="")
            created.append(seed.name)
        else:
            updated.append(seed.name)
        profile.description = seed.description
        profile.model = seed.model
        profile.provider = ProviderKind.for_model(seed.model).value
        profile.system_prompt = seed.system_prompt
        profile.skills = list(seed.skills)
        profile.tools = [tool.value for tool in seed.tools]
        profile.max_tokens = seed.max_tokens
        profile.temperature = seed.temperature
        profile.is_active = True
        profile.updated_at = utcnow()
        session.add(profile)
        await _ensure_bot_user(session, seed.name)
    await session.commit()
    logger.info("agent.seed.completed", extra={"created": len(created), "updated": len(updated)})
    return SeedOutcome(created=created, updated=updated)
