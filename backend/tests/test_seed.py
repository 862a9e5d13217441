# ruff: noqa: INP001
"""Default agent seeding tests."""

from __future__ import annotations

import pytest
from sqlmodel import col, select
from sqlmodel.ext.asyncio.session import AsyncSession

from crewboard.models.agent_profiles import AgentProfile
from crewboard.models.users import User
from crewboard.services.agents.seed import DEFAULT_AGENTS, seed_agent_profiles


@pytest.mark.asyncio
async def test_seed_creates_profiles_and_bot_users(session: AsyncSession) -> None:
    outcome = await seed_agent_profiles(session)

    assert outcome.created == ["Harvis", "Codex", "Peter Designer"]
    assert outcome.updated == []
    profiles = {
        profile.name: profile for profile in (await session.exec(select(AgentProfile))).all()
    }
    assert profiles["Harvis"].provider == "ANTHROPIC"
    assert profiles["Codex"].provider == "OPENAI"
    assert profiles["Peter Designer"].provider == "ANTHROPIC"
    assert profiles["Codex"].tools == [
        "exec",
        "read_file",
        "write_file",
        "github_api",
        "web_search",
        "web_fetch",
    ]
    assert profiles["Harvis"].skills == ["coordinator"]
    bots = (await session.exec(select(User).where(col(User.is_bot).is_(True)))).all()
    assert sorted(bot.name for bot in bots) == ["Codex", "Harvis", "Peter Designer"]


@pytest.mark.asyncio
async def test_seed_is_idempotent_and_updates_existing(session: AsyncSession) -> None:
    session.add(User(name="harvis", is_bot=True))
    session.add(
        AgentProfile(
            name="Harvis",
            model="gpt-4o",
            provider="OPENAI",
            system_prompt="stale",
            is_active=False,
        )
    )
    await session.commit()

    first = await seed_agent_profiles(session)
    second = await seed_agent_profiles(session)

    assert first.updated == ["Harvis"]
    assert second.created == []
    assert second.updated == [agent.name for agent in DEFAULT_AGENTS]
    harvis = await AgentProfile.objects.filter_by(name="Harvis").first(session)
    assert harvis is not None
    assert harvis.model == "claude-opus-4-5"
    assert harvis.provider == "ANTHROPIC"
    assert harvis.is_active is True
    assert harvis.system_prompt.startswith("You are Harvis")
    bots = (await session.exec(select(User).where(col(User.is_bot).is_(True)))).all()
    assert len(bots) == 3
