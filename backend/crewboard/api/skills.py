"""Skill listing and cache reload endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from crewboard.api.deps import require_agent_api_token
from crewboard.core.logging import get_logger
from crewboard.schemas.skills import SkillRead, SkillReloadResponse
from crewboard.services.agents.container import get_components

router = APIRouter(
    prefix="/skills",
    tags=["skills"],
    dependencies=[Depends(require_agent_api_token)],
)
logger = get_logger(__name__)


@router.get("", response_model=list[SkillRead])
def list_skills() -> list[SkillRead]:
    """Skills currently available for prompt injection."""
    return [
        SkillRead(id=skill.id, name=skill.name, description=skill.description)
        for skill in get_components().skills.list_skills()
    ]


@router.post("/reload", response_model=SkillReloadResponse)
def reload_skills() -> SkillReloadResponse:
    count = get_components().skills.reload()
    logger.info("skills.reloaded", extra={"count": count})
    return SkillReloadResponse(count=count)
