"""Reusable FastAPI dependencies for the agent API surface."""

from __future__ import annotations

import secrets
from typing import TYPE_CHECKING

from fastapi import Depends, Header, HTTPException, status

from crewboard.core.config import settings
from crewboard.core.logging import get_logger
from crewboard.db.session import get_session
from crewboard.services.agents.container import get_components
from crewboard.services.agents.runner import AgentRunner

if TYPE_CHECKING:
    from sqlmodel.ext.asyncio.session import AsyncSession

logger = get_logger(__name__)
SESSION_DEP = Depends(get_session)


def _bearer_token(authorization: str | None) -> str | None:
    if not authorization:
        return None
    value = authorization.strip()
    if value.lower().startswith("bearer "):
        return value.split(" ", 1)[1].strip() or None
    return None


def require_agent_api_token(
    authorization: str | None = Header(default=None, alias="Authorization"),
) -> None:
    """Require `Authorization: Bearer <AGENT_API_KEY>` when a key is configured."""
    expected = settings.agent_api_key.strip()
    if not expected:
        return
    token = _bearer_token(authorization)
    if token is None or not secrets.compare_digest(token, expected):
        logger.warning("agent_api.auth_rejected", extra={"has_header": bool(authorization)})
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")


def get_agent_runner(session: AsyncSession = SESSION_DEP) -> AgentRunner:
    return AgentRunner(session, get_components())
