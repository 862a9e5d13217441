"""Model exports for SQLAlchemy/SQLModel metadata discovery."""

from crewboard.models.activities import Activity
from crewboard.models.agent_profiles import AgentProfile, ProviderKind
from crewboard.models.agent_runs import AgentRun, AgentRunStatus
from crewboard.models.api_keys import ApiKey, ApiKeyStatus, ApiProvider
from crewboard.models.comments import Comment
from crewboard.models.projects import Project
from crewboard.models.tasks import Task, TaskStatus
from crewboard.models.users import User

__all__ = [
    "Activity",
    "AgentProfile",
    "AgentRun",
    "AgentRunStatus",
    "ApiKey",
    "ApiKeyStatus",
    "ApiProvider",
    "Comment",
    "Project",
    "ProviderKind",
    "Task",
    "TaskStatus",
    "User",
]
