"""LLM provider adapters normalizing Anthropic and OpenAI chat completions.

An adapter owns the provider-specific conversation shape. The runner only
sees ``Conversation``, ``ProviderReply``, and tool call/result pairs.
"""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, TypeAlias

import anthropic
import openai

from crewboard.core.logging import get_logger
from crewboard.models.agent_profiles import ProviderKind
from crewboard.services.agents.errors import ProviderError
from crewboard.services.agents.results import Failure, Success
from crewboard.services.agents.tools import ToolCall

if TYPE_CHECKING:
    from collections.abc import Sequence

    from crewboard.models.agent_profiles import AgentProfile
    from crewboard.services.agents.tools import ToolResult, ToolSpec

logger = get_logger(__name__)

DEFAULT_MODEL = "claude-sonnet-4-20250514"
MODEL_ALIASES: dict[str, str] = {
    "claude-opus-4-5": "claude-opus-4-5-20250514",
    "claude-sonnet-4": "claude-sonnet-4-20250514",
    "claude-haiku": "claude-3-5-haiku-20241022",
}


def resolve_model_id(model: str) -> str:
    """Map a friendly model name to the provider's API model id."""
    return MODEL_ALIASES.get(model, model) or DEFAULT_MODEL


@dataclass(frozen=True)
class ProviderReply:
    """One normalized completion round."""

    text: str
    input_tokens: int
    output_tokens: int
    tool_calls: list[ToolCall] = field(default_factory=list)
    stop_reason: str | None = None


ProviderResult: TypeAlias = "Success[ProviderReply] | Failure"


@dataclass
class Conversation:
    """Provider-shaped message history for one run."""

    system_prompt: str
    messages: list[dict[str, Any]] = field(default_factory=list)


class ProviderAdapter(ABC):
    """Shared request/response plumbing for one agent profile."""

    kind: ProviderKind

    def __init__(self, agent: AgentProfile, *, api_key: str, timeout: float) -> None:
        self.agent = agent
        self.model = resolve_model_id(agent.model)
        self.api_key = api_key
        self.timeout = timeout

    def start(self, system_prompt: str, user_message: str) -> Conversation:
        return Conversation(
            system_prompt=system_prompt,
            messages=[{"role": "user", "content": user_message}],
        )

    async def complete(
        self,
        conversation: Conversation,
        tools: Sequence[ToolSpec] = (),
    ) -> ProviderResult:
        """Run one completion round; SDK failures become ``Failure(ProviderError)``."""
        try:
            reply = await self._create(conversation, tools)
        except (anthropic.APIStatusError, openai.APIStatusError) as exc:
            logger.warning(
                "agent.provider.http_error",
                extra={
                    "provider": self.kind.value,
                    "model": self.model,
                    "status_code": exc.status_code,
                },
            )
            return Failure(ProviderError(self.kind.value, exc.message, status_code=exc.status_code))
        except (anthropic.APIError, openai.APIError) as exc:
            logger.warning(
                "agent.provider.request_failed",
                extra={"provider": self.kind.value, "model": self.model, "error": str(exc)},
            )
            return Failure(ProviderError(self.kind.value, str(exc)))
        logger.debug(
            "agent.provider.reply",
            extra={
                "provider": self.kind.value,
                "model": self.model,
                "input_tokens": reply.input_tokens,
                "output_tokens": reply.output_tokens,
                "tool_calls": len(reply.tool_calls),
            },
        )
        return Success(reply)

    @abstractmethod
    async def _create(
        self,
        conversation: Conversation,
        tools: Sequence[ToolSpec],
    ) -> ProviderReply: ...

    @abstractmethod
    def append_tool_results(
        self,
        conversation: Conversation,
        reply: ProviderReply,
        results: Sequence[tuple[ToolCall, ToolResult]],
    ) -> None:
        """Record the assistant turn and the tool outputs answering it."""


class AnthropicAdapter(ProviderAdapter):
    kind = ProviderKind.ANTHROPIC

    def __init__(
        self,
        agent: AgentProfile,
        *,
        api_key: str,
        timeout: float,
        client: anthropic.AsyncAnthropic | None = None,
    ) -> None:
        super().__init__(agent, api_key=api_key, timeout=timeout)
        self.client = client or anthropic.AsyncAnthropic(api_key=api_key, timeout=timeout)

    async def _create(
        self,
        conversation: Conversation,
        tools: Sequence[ToolSpec],
    ) -> ProviderReply:
        request: dict[str, Any] = {
            "model": self.model,
            "max_tokens": self.agent.max_tokens,
            "temperature": self.agent.temperature,
            "system": conversation.system_prompt,
            "messages": conversation.messages,
        }
        if tools:
            request["tools"] = [
                {
                    "name": definition.name.value,
                    "description": definition.description,
                    "input_schema": definition.input_schema,
                }
                for definition in tools
            ]
        response = await self.client.messages.create(**request)

        texts: list[str] = []
        tool_calls: list[ToolCall] = []
        for block in response.content:
            if block.type == "text":
                texts.append(block.text)
            elif block.type == "tool_use":
                tool_calls.append(
                    ToolCall(id=block.id, name=block.name, input=dict(block.input or {}))
                )
        usage = response.usage
        return ProviderReply(
            text="\n".join(texts),
            input_tokens=usage.input_tokens or 0,
            output_tokens=usage.output_tokens or 0,
            tool_calls=tool_calls,
            stop_reason=response.stop_reason,
        )

    def append_tool_results(
        self,
        conversation: Conversation,
        reply: ProviderReply,
        results: Sequence[tuple[ToolCall, ToolResult]],
    ) -> None:
        assistant_blocks: list[dict[str, Any]] = []
        if reply.text:
            assistant_blocks.append({"type": "text", "text": reply.text})
        assistant_blocks.extend(
            {"type": "tool_use", "id": call.id, "name": call.name, "input": call.input}
            for call, _ in results
        )
        conversation.messages.append({"role": "assistant", "content": assistant_blocks})
        conversation.messages.append(
            {
                "role": "user",
                "content": [
                    {
                        "type": "tool_result",
                        "tool_use_id": call.id,
                        "content": result.content,
                        "is_error": not result.success,
                    }
                    for call, result in results
                ],
            }
        )


class OpenAIAdapter(ProviderAdapter):
    kind = ProviderKind.OPENAI

    def __init__(
        self,
        agent: AgentProfile,
        *,
        api_key: str,
        timeout: float,
        client: openai.AsyncOpenAI | None = None,
    ) -> None:
        super().__init__(agent, api_key=api_key, timeout=timeout)
        self.client = client or openai.AsyncOpenAI(api_key=api_key, timeout=timeout)

    async def _create(
        self,
        conversation: Conversation,
        tools: Sequence[ToolSpec],
    ) -> ProviderReply:
        request: dict[str, Any] = {
            "model": self.model,
            "max_tokens": self.agent.max_tokens,
            "temperature": self.agent.temperature,
            "messages": [
                {"role": "system", "content": conversation.system_prompt},
                *conversation.messages,
            ],
        }
        if tools:
            request["tools"] = [
                {
                    "type": "function",
                    "function": {
                        "name": definition.name.value,
                        "description": definition.description,
                        "parameters": definition.input_schema,
                    },
                }
                for definition in tools
            ]
        response = await self.client.chat.completions.create(**request)

        choice = response.choices[0]
        tool_calls: list[ToolCall] = []
        for call in choice.message.tool_calls or []:
            try:
                arguments = json.loads(call.function.arguments or "{}")
            except json.JSONDecodeError:
                logger.warning(
                    "agent.provider.bad_tool_arguments",
                    extra={"tool": call.function.name, "call_id": call.id},
                )
                arguments = {}
            tool_calls.append(
                ToolCall(
                    id=call.id,
                    name=call.function.name,
                    input=arguments if isinstance(arguments, dict) else {},
                )
            )
        usage = response.usage
        return ProviderReply(
            text=choice.message.content or "",
            input_tokens=(usage.prompt_tokens if usage else 0) or 0,
            output_tokens=(usage.completion_tokens if usage else 0) or 0,
            tool_calls=tool_calls,
            stop_reason=choice.finish_reason,
        )

    def append_tool_results(
        self,
        conversation: Conversation,
        reply: ProviderReply,
        results: Sequence[tuple[ToolCall, ToolResult]],
    ) -> None:
        conversation.messages.append(
            {
                "role": "assistant",
                "content": reply.text or None,
                "tool_calls": [
                    {
                        "id": call.id,
                        "type": "function",
                        "function": {"name": call.name, "arguments": json.dumps(call.input)},
                    }
                    for call, _ in results
                ],
            }
        )
        conversation.messages.extend(
            {"role": "tool", "tool_call_id": call.id, "content": result.content}
            for call, result in results
        )


def create_adapter(
    agent: AgentProfile,
    *,
    api_key: str,
    timeout: float,
    client: Any | None = None,
) -> ProviderAdapter:
    """Build the adapter for the agent's stored provider kind."""
    if agent.provider_kind is ProviderKind.ANTHROPIC:
        return AnthropicAdapter(agent, api_key=api_key, timeout=timeout, client=client)
    return OpenAIAdapter(agent, api_key=api_key, timeout=timeout, client=client)


async def run_with_provider(
    agent: AgentProfile,
    system_prompt: str,
    user_message: str,
    api_key: str,
    *,
    timeout: float,
    client: Any | None = None,
) -> ProviderResult:
    """Single-shot completion without tools."""
    adapter = create_adapter(agent, api_key=api_key, timeout=timeout, client=client)
    return await adapter.complete(adapter.start(system_prompt, user_message))
