"""Prompt assembly for agent runs."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Sequence

    from crewboard.models.agent_profiles import AgentProfile
    from crewboard.models.tasks import Task

TASK_USER_MESSAGE = (
    "Please execute this task. Provide a detailed response with your analysis and results."
)
CLOSING_INSTRUCTION = (
    "Please complete this task. Provide a clear summary of what you did and any relevant output."
)
SECTION_RULE = "---"


def _status_label(status: object) -> str:
    return str(getattr(status, "value", status))


def build_prompt(
    agent: AgentProfile,
    task: Task,
    *,
    project_name: str | None = None,
    recent_comments: Sequence[str] = (),
    skills_prompt: str = "",
) -> str:
    """Render the system prompt for one run.

    ``recent_comments`` must already be ordered newest-first.
    """
    comments = "\n".join(f"- {content}" for content in recent_comments) or "No comments yet"
    sections = [agent.system_prompt.rstrip()]
    if skills_prompt:
        sections.append(skills_prompt.rstrip())
    sections.append(
        "\n".join(
            [
                f"## Task: {task.id}",
                f"**Title:** {task.title}",
                f"**Project:** {project_name or 'Unknown'}",
                f"**Status:** {_status_label(task.status)}",
                "",
                "**Description:**",
                task.description or "No description provided.",
                "",
                "**Recent Comments:**",
                comments,
            ]
        )
    )
    sections.append(CLOSING_INSTRUCTION)
    return f"\n\n{SECTION_RULE}\n\n".join(sections)
