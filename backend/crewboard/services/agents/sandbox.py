"""Sandboxed execution of agent tool calls.

Every call comes back as a ``ToolResult`` envelope. Policy violations,
validation errors, and upstream failures are reported to the model as
``success=False`` rather than raised.
"""

from __future__ import annotations

import asyncio
import re
import shlex
from pathlib import Path
from typing import TYPE_CHECKING, Any

import httpx
from pydantic import ValidationError

from crewboard.core.logging import get_logger
from crewboard.services.agents.tools import (
    TOOLS_BY_NAME,
    ExecInput,
    GitHubInput,
    ReadFileInput,
    ToolName,
    ToolResult,
    WebFetchInput,
    WebSearchInput,
    WriteFileInput,
    is_tool_allowed,
)

if TYPE_CHECKING:
    from collections.abc import Iterable

logger = get_logger(__name__)

BRAVE_SEARCH_URL = "https://api.search.brave.com/res/v1/web/search"
FETCH_USER_AGENT = "Mozilla/5.0 (compatible; CrewboardBot/1.0)"
BLOCKED_COMMAND_SUBSTRINGS: tuple[str, ...] = (
    "rm -rf /",
    "sudo",
    "chmod 777",
    "curl | sh",
    "wget | sh",
)
_PIPE_TO_SHELL = re.compile(r"\b(curl|wget)\b[^|]*\|\s*(sudo\s+)?(ba|z)?sh\b")
_SCRIPT_BLOCK = re.compile(r"<script\b[^>]*>.*?</script>", re.IGNORECASE | re.DOTALL)
_STYLE_BLOCK = re.compile(r"<style\b[^>]*>.*?</style>", re.IGNORECASE | re.DOTALL)
_HTML_TAG = re.compile(r"<[^>]+>")
_WHITESPACE = re.compile(r"\s+")
_HTTP_TIMEOUT_SECONDS = 30.0


def is_command_blocked(command: str) -> bool:
    """Return True when a shell command matches the exec blocklist."""
    normalized = " ".join(command.split())
    if any(blocked in normalized for blocked in BLOCKED_COMMAND_SUBSTRINGS):
        return True
    return bool(_PIPE_TO_SHELL.search(normalized))


def html_to_text(html: str) -> str:
    text = _SCRIPT_BLOCK.sub("", html)
    text = _STYLE_BLOCK.sub("", text)
    text = _HTML_TAG.sub(" ", text)
    return _WHITESPACE.sub(" ", text).strip()


def _truncate(text: str, limit: int, marker: str = "") -> str:
    if len(text) <= limit:
        return text
    return text[:limit] + marker


def _format_validation_error(exc: ValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()))
        parts.append(f"{location}: {error.get('msg', 'invalid')}" if location else error["msg"])
    return "; ".join(parts)


class ToolExecutor:
    """Runs tool calls under per-agent permissions and filesystem confinement."""

    def __init__(
        self,
        *,
        allowed_roots: Iterable[str | Path],
        exec_timeout_seconds: float = 30.0,
        output_max_chars: int = 50_000,
        brave_api_key: str = "",
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.allowed_roots = tuple(Path(root).expanduser().resolve() for root in allowed_roots)
        self.exec_timeout_seconds = exec_timeout_seconds
        self.output_max_chars = output_max_chars
        self.brave_api_key = brave_api_key
        self._http_client = http_client

    def is_path_allowed(self, path: str | Path) -> bool:
        """True when ``path`` resolves inside one of the allowed roots."""
        try:
            resolved = Path(path).expanduser().resolve()
        except (OSError, RuntimeError):
            return False
        return any(resolved.is_relative_to(root) for root in self.allowed_roots)

    async def execute_tool(
        self,
        tool_name: str,
        tool_input: dict[str, Any],
        agent_name: str,
    ) -> ToolResult:
        if not is_tool_allowed(tool_name, agent_name):
            logger.warning(
                "agent.tool.denied",
                extra={"tool": tool_name, "agent_name": agent_name},
            )
            return ToolResult.fail(f"Tool '{tool_name}' not allowed for agent '{agent_name}'")

        definition = TOOLS_BY_NAME.get(tool_name)
        if definition is None:
            return ToolResult.fail(f"Unknown tool: {tool_name}")

        try:
            parsed = definition.input_model.model_validate(tool_input or {})
        except ValidationError as exc:
            return ToolResult.fail(
                f"Invalid input for {tool_name}: {_format_validation_error(exc)}"
            )

        logger.info(
            "agent.tool.execute",
            extra={"tool": tool_name, "agent_name": agent_name},
        )
        try:
            return await self._dispatch(definition.name, parsed)
        except Exception as exc:
            logger.exception(
                "agent.tool.failed",
                extra={"tool": tool_name, "agent_name": agent_name},
            )
            return ToolResult.fail(str(exc) or exc.__class__.__name__)

    async def _dispatch(self, name: ToolName, parsed: Any) -> ToolResult:
        if name is ToolName.WEB_SEARCH:
            return await self.web_search(parsed)
        if name is ToolName.WEB_FETCH:
            return await self.web_fetch(parsed)
        if name is ToolName.EXEC:
            return await self.exec_command(parsed)
        if name is ToolName.READ_FILE:
            return self.read_file(parsed)
        if name is ToolName.WRITE_FILE:
            return self.write_file(parsed)
        return await self.github_api(parsed)

    async def _get(self, url: str, **kwargs: Any) -> httpx.Response:
        if self._http_client is not None:
            return await self._http_client.get(url, **kwargs)
        async with httpx.AsyncClient(
            timeout=_HTTP_TIMEOUT_SECONDS,
            follow_redirects=True,
        ) as client:
            return await client.get(url, **kwargs)

    async def web_search(self, params: WebSearchInput) -> ToolResult:
        if not self.brave_api_key:
            return ToolResult.fail("BRAVE_API_KEY not configured")
        response = await self._get(
            BRAVE_SEARCH_URL,
            params={"q": params.query, "count": params.count},
            headers={
                "Accept": "application/json",
                "X-Subscription-Token": self.brave_api_key,
            },
        )
        if response.status_code >= 400:
            return ToolResult.fail(f"Search failed: {response.status_code}")
        data = response.json()
        results = (data.get("web") or {}).get("results") or []
        if not results:
            return ToolResult.ok("No results found")
        lines = [
            f"{index}. {item.get('title', '')}\n   {item.get('url', '')}\n"
            f"   {item.get('description', '')}"
            for index, item in enumerate(results, start=1)
        ]
        return ToolResult.ok("\n\n".join(lines))

    async def web_fetch(self, params: WebFetchInput) -> ToolResult:
        response = await self._get(params.url, headers={"User-Agent": FETCH_USER_AGENT})
        if response.status_code >= 400:
            return ToolResult.fail(f"Fetch failed: {response.status_code}")
        text = html_to_text(response.text)
        return ToolResult.ok(_truncate(text, params.max_chars, "...[truncated]"))

    async def _communicate(self, process: asyncio.subprocess.Process) -> tuple[bytes, bytes] | None:
        try:
            return await asyncio.wait_for(
                process.communicate(),
                timeout=self.exec_timeout_seconds,
            )
        except TimeoutError:
            try:
                process.kill()
            except ProcessLookupError:
                pass
            await process.wait()
            return None

    def _process_output(self, stdout: bytes, stderr: bytes) -> str:
        output = stdout.decode("utf-8", errors="replace")
        err = stderr.decode("utf-8", errors="replace")
        if err.strip():
            output += f"\n[stderr]: {err}"
        return _truncate(output, self.output_max_chars)

    async def exec_command(self, params: ExecInput) -> ToolResult:
        if is_command_blocked(params.command):
            logger.warning("agent.tool.exec_blocked", extra={"command": params.command})
            return ToolResult.fail("Command blocked for safety")
        if params.workdir is not None and not self.is_path_allowed(params.workdir):
            return ToolResult.fail("Working directory not allowed")

        process = await asyncio.create_subprocess_shell(
            params.command,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=params.workdir,
        )
        streams = await self._communicate(process)
        if streams is None:
            return ToolResult.fail(f"Command timed out after {self.exec_timeout_seconds:g}s")
        output = self._process_output(*streams)
        if process.returncode:
            return ToolResult.fail(f"Command exited with status {process.returncode}: {output}")
        return ToolResult.ok(output)

    def read_file(self, params: ReadFileInput) -> ToolResult:
        if not self.is_path_allowed(params.path):
            return ToolResult.fail("Path not allowed")
        path = Path(params.path).expanduser().resolve()
        if not path.is_file():
            return ToolResult.fail(f"File not found: {params.path}")
        lines = path.read_text(encoding="utf-8", errors="replace").split("\n")
        if len(lines) > params.max_lines:
            head = "\n".join(lines[: params.max_lines])
            return ToolResult.ok(f"{head}\n...[truncated, {len(lines)} total lines]")
        return ToolResult.ok("\n".join(lines))

    def write_file(self, params: WriteFileInput) -> ToolResult:
        if not self.is_path_allowed(params.path):
            return ToolResult.fail("Path not allowed")
        path = Path(params.path).expanduser().resolve()
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(params.content, encoding="utf-8")
        size = len(params.content.encode("utf-8"))
        return ToolResult.ok(f"Wrote {size} bytes to {params.path}")

    async def github_api(self, params: GitHubInput) -> ToolResult:
        try:
            args = shlex.split(params.command)
        except ValueError as exc:
            return ToolResult.fail(f"Invalid gh command: {exc}")
        if args and args[0] == "gh":
            args = args[1:]
        if not args:
            return ToolResult.fail("Invalid gh command: empty")
        try:
            process = await asyncio.create_subprocess_exec(
                "gh",
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError:
            return ToolResult.fail("gh CLI is not installed")
        streams = await self._communicate(process)
        if streams is None:
            return ToolResult.fail(f"gh timed out after {self.exec_timeout_seconds:g}s")
        output = self._process_output(*streams)
        if process.returncode:
            return ToolResult.fail(f"gh exited with status {process.returncode}: {output}")
        return ToolResult.ok(output)
