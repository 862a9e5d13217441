# ruff: noqa: INP001
"""Tool catalog and per-agent permission tests."""

from __future__ import annotations

import pytest

from crewboard.services.agents.tools import (
    AVAILABLE_TOOLS,
    DEFAULT_TOOL_PERMISSIONS,
    ReadFileInput,
    ToolName,
    ToolResult,
    get_tools_for_agent,
    is_tool_allowed,
)


def _names(agent_name: str, requested: list[str] | None = None) -> set[str]:
    return {tool.name.value for tool in get_tools_for_agent(agent_name, requested)}


def test_catalog_declares_every_tool_once() -> None:
    assert sorted(tool.name.value for tool in AVAILABLE_TOOLS) == sorted(
        tool.value for tool in ToolName
    )


def test_codex_gets_full_coding_toolset() -> None:
    assert _names("Codex") == {
        "exec",
        "read_file",
        "write_file",
        "github_api",
        "web_search",
        "web_fetch",
    }


def test_unknown_agent_gets_default_web_tools() -> None:
    assert _names("Somebody New") == {tool.value for tool in DEFAULT_TOOL_PERMISSIONS}
    assert not is_tool_allowed("exec", "Somebody New")


def test_requested_names_narrow_but_never_widen() -> None:
    assert _names("Peter Designer", ["read_file", "exec"]) == {"read_file"}
    assert _names("Harvis", ["web_search"]) == {"web_search"}


@pytest.mark.parametrize(
    ("agent_name", "tool", "allowed"),
    [
        ("Harvis", "github_api", True),
        ("Harvis", "exec", False),
        ("QA Quinn", "exec", True),
        ("Marketing Mike", "read_file", False),
        ("Data Dave", "write_file", True),
    ],
)
def test_is_tool_allowed(agent_name: str, tool: str, allowed: bool) -> None:
    assert is_tool_allowed(tool, agent_name) is allowed


def test_input_schema_uses_wire_aliases() -> None:
    tool = next(tool for tool in AVAILABLE_TOOLS if tool.name is ToolName.READ_FILE)

    schema = tool.input_schema

    assert "title" not in schema
    assert set(schema["properties"]) == {"path", "maxLines"}
    assert schema["required"] == ["path"]
    assert ReadFileInput.model_validate({"path": "/tmp/x", "maxLines": 3}).max_lines == 3


def test_tool_result_content_marks_errors() -> None:
    assert ToolResult.ok("done").content == "done"
    assert ToolResult.fail("nope").content == "Error: nope"
