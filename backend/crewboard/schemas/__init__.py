"""Public schema exports shared across API route modules."""

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
from crewboard.schemas.common import ErrorResponse, HealthStatusResponse, OkResponse
from crewboard.schemas.skills import SkillRead, SkillReloadResponse

__all__ = [
    "AgentBriefRead",
    "AgentProfileRead",
    "AgentRunEnqueued",
    "AgentRunRead",
    "AgentRunRequest",
    "ErrorResponse",
    "HealthStatusResponse",
    "OkResponse",
    "PendingSummaryRead",
    "ProcessRequest",
    "ProcessSummaryRead",
    "ProcessedTaskRead",
    "RunResultRead",
    "SkillRead",
    "SkillReloadResponse",
    "TokenUsageRead",
]
