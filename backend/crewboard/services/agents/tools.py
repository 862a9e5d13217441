"""Tool catalog, typed tool inputs, and per-agent tool permissions."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, Field

if TYPE_CHECKING:
    from collections.abc import Iterable


class ToolName(str, Enum):
    """Tools an agent may call mid-conversation."""

    WEB_SEARCH = "web_search"
    WEB_FETCH = "web_fetch"
    EXEC = "exec"
    READ_FILE = "read_file"
    WRITE_FILE = "write_file"
    GITHUB_API = "github_api"


class _ToolInput(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class WebSearchInput(_ToolInput):
    query: str = Field(min_length=1, description="Search query string")
    count: int = Field(default=5, ge=1, le=10, description="Number of results (1-10)")


class WebFetchInput(_ToolInput):
    url: str = Field(min_length=1, description="URL to fetch")
    max_chars: int = Field(
        default=10_000,
        ge=1,
        le=100_000,
        alias="maxChars",
        description="Maximum characters to return",
    )


class ExecInput(_ToolInput):
    command: str = Field(min_length=1, description="Shell command to execute")
    workdir: str | None = Field(default=None, description="Working directory (optional)")


class ReadFileInput(_ToolInput):
    path: str = Field(min_length=1, description="Path to the file")
    max_lines: int = Field(
        default=500,
        ge=1,
        le=10_000,
        alias="maxLines",
        description="Maximum lines to read",
    )


class WriteFileInput(_ToolInput):
    path: str = Field(min_length=1, description="Path to the file")
    content: str = Field(description="Content to write")


class GitHubInput(_ToolInput):
    command: str = Field(min_length=1, description='gh CLI command (without "gh" prefix)')


@dataclass(frozen=True)
class ToolSpec:
    """Declared tool: name, model-facing description, and typed input."""

    name: ToolName
    description: str
    input_model: type[_ToolInput]

    @property
    def input_schema(self) -> dict[str, Any]:
        schema = self.input_model.model_json_schema(by_alias=True)
        schema.pop("title", None)
        return schema


@dataclass(frozen=True)
class ToolCall:
    """A tool invocation requested by the model."""

    id: str
    name: str
    input: dict[str, Any]


@dataclass(frozen=True)
class ToolResult:
    """Uniform envelope returned for every tool call."""

    success: bool
    result: str | None = None
    error: str | None = None

    @classmethod
    def ok(cls, result: str) -> ToolResult:
        return cls(success=True, result=result)

    @classmethod
    def fail(cls, error: str) -> ToolResult:
        return cls(success=False, error=error)

    @property
    def content(self) -> str:
        if self.success:
            return self.result or ""
        return f"Error: {self.error or 'unknown error'}"


AVAILABLE_TOOLS: tuple[ToolSpec, ...] = (
    ToolSpec(
        name=ToolName.WEB_SEARCH,
        description="Search the web using Brave Search API. Returns titles, URLs, and snippets.",
        input_model=WebSearchInput,
    ),
    ToolSpec(
        name=ToolName.WEB_FETCH,
        description="Fetch and extract readable text content from a URL.",
        input_model=WebFetchInput,
    ),
    ToolSpec(
        name=ToolName.EXEC,
        description=(
            "Execute a shell command (sandboxed, timeout 30s). "
            "Use for git, npm, file operations."
        ),
        input_model=ExecInput,
    ),
    ToolSpec(
        name=ToolName.READ_FILE,
        description="Read the contents of a file.",
        input_model=ReadFileInput,
    ),
    ToolSpec(
        name=ToolName.WRITE_FILE,
        description="Write content to a file (creates if not exists, overwrites if exists).",
        input_model=WriteFileInput,
    ),
    ToolSpec(
        name=ToolName.GITHUB_API,
        description=(
            "Call GitHub using the gh CLI. Examples: issue list, pr list, "
            "api /repos/{owner}/{repo}"
        ),
        input_model=GitHubInput,
    ),
)
TOOLS_BY_NAME: dict[str, ToolSpec] = {tool.name.value: tool for tool in AVAILABLE_TOOLS}

AGENT_TOOL_PERMISSIONS: dict[str, frozenset[ToolName]] = {
    "Harvis": frozenset(
        {ToolName.WEB_SEARCH, ToolName.WEB_FETCH, ToolName.READ_FILE, ToolName.GITHUB_API}
    ),
    "Codex": frozenset(
        {
            ToolName.EXEC,
            ToolName.READ_FILE,
            ToolName.WRITE_FILE,
            ToolName.GITHUB_API,
            ToolName.WEB_SEARCH,
            ToolName.WEB_FETCH,
        }
    ),
    "Peter Designer": frozenset({ToolName.WEB_SEARCH, ToolName.WEB_FETCH, ToolName.READ_FILE}),
    "Marketing Mike": frozenset({ToolName.WEB_SEARCH, ToolName.WEB_FETCH}),
    "QA Quinn": frozenset({ToolName.EXEC, ToolName.READ_FILE, ToolName.WEB_FETCH}),
    "Data Dave": frozenset(
        {ToolName.EXEC, ToolName.READ_FILE, ToolName.WRITE_FILE, ToolName.WEB_SEARCH}
    ),
}
DEFAULT_TOOL_PERMISSIONS: frozenset[ToolName] = frozenset(
    {ToolName.WEB_SEARCH, ToolName.WEB_FETCH}
)


def allowed_tools_for_agent(agent_name: str) -> frozenset[ToolName]:
    """Static allowlist for an agent name, or the minimal default."""
    return AGENT_TOOL_PERMISSIONS.get(agent_name, DEFAULT_TOOL_PERMISSIONS)


def is_tool_allowed(tool_name: str, agent_name: str) -> bool:
    return any(tool.value == tool_name for tool in allowed_tools_for_agent(agent_name))


def get_tools_for_agent(
    agent_name: str,
    requested_names: Iterable[str] | None = None,
) -> list[ToolSpec]:
    """Tools an agent may use, narrowed to ``requested_names`` when given."""
    allowed = allowed_tools_for_agent(agent_name)
    requested = set(requested_names or ())
    return [
        tool
        for tool in AVAILABLE_TOOLS
        if tool.name in allowed and (not requested or tool.name.value in requested)
    ]
