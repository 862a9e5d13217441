"""Error taxonomy for the agent execution pipeline."""

from __future__ import annotations

from uuid import UUID


class AgentPipelineError(Exception):
    """Base class for errors raised by the agent pipeline."""


class AgentNotFoundError(AgentPipelineError):
    def __init__(self, agent_id: UUID | str) -> None:
        super().__init__(f"Agent not found: {agent_id}")
        self.agent_id = agent_id


class TaskNotFoundError(AgentPipelineError):
    def __init__(self, task_id: UUID | str) -> None:
        super().__init__(f"Task not found: {task_id}")
        self.task_id = task_id


class RunNotFoundError(AgentPipelineError):
    def __init__(self, run_id: UUID | str) -> None:
        super().__init__(f"Run not found: {run_id}")
        self.run_id = run_id


class RunConflictError(AgentPipelineError):
    """A task already has a RUNNING run; a second concurrent run is refused."""

    def __init__(self, task_id: UUID, active_run_id: UUID) -> None:
        super().__init__(f"Task {task_id} already has an active run: {active_run_id}")
        self.task_id = task_id
        self.active_run_id = active_run_id


class RunNotActiveError(AgentPipelineError):
    def __init__(self, run_id: UUID, status: str) -> None:
        super().__init__("Run is not active")
        self.run_id = run_id
        self.status = status


class MissingCredentialError(AgentPipelineError):
    def __init__(self, provider: str) -> None:
        super().__init__(f"No API key configured for {provider}")
        self.provider = provider


class ProviderError(AgentPipelineError):
    """Upstream LLM failure with the provider's status and message preserved."""

    def __init__(self, provider: str, message: str, *, status_code: int | None = None) -> None:
        label = "Anthropic" if provider == "ANTHROPIC" else "OpenAI"
        if status_code is not None:
            text = f"{label} API error: {status_code} - {message}"
        else:
            text = f"{label} API error: {message}"
        super().__init__(text)
        self.provider = provider
        self.status_code = status_code
        self.upstream_message = message


class TaskNotAssignedError(AgentPipelineError):
    def __init__(self, task_id: UUID) -> None:
        super().__init__("Task is not assigned to an agent")
        self.task_id = task_id


class AgentProfileMissingError(AgentPipelineError):
    """A bot user exists but no active agent profile matches its name."""

    def __init__(self, bot_name: str) -> None:
        super().__init__(f"No agent profile found for: {bot_name}")
        self.bot_name = bot_name
