"""Model client abstraction with OpenRouter (OpenAI-compatible) and Anthropic API backends.

Callers always speak the chat-completions message format::

    {"role": "system" | "user" | "assistant" | "tool", "content": ...,
     "tool_calls": [...], "tool_call_id": ...}

and pass the tool catalog as ``{"type": "function", "function": {...}}`` entries.
Backends translate to and from their own wire format.
"""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

import httpx

from planner_bot.config import AnthropicConfig, OpenRouterConfig
from planner_bot.core.errors import ExternalServiceError
from planner_bot.log import get_logger

logger = get_logger(__name__)

RETRYABLE_STATUSES = frozenset({408, 409, 429, 500, 502, 503, 504})


@dataclass
class ToolCall:
    """A tool invocation requested by the model."""

    id: str
    name: str
    arguments: str  # JSON-encoded

    def parse_arguments(self) -> Any:
        """Decode the arguments; raises ``json.JSONDecodeError`` on malformed input."""
        return json.loads(self.arguments) if self.arguments else {}

    def to_api_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": "function",
            "function": {"name": self.name, "arguments": self.arguments},
        }


@dataclass
class AIResponse:
    """Unified response from any backend."""

    text: str
    finish_reason: str = "stop"  # "stop" | "tool_calls" | "length"
    tool_calls: list[ToolCall] = field(default_factory=list)
    input_tokens: int = 0
    output_tokens: int = 0
    raw: Any = None  # Backend-specific raw response

    @property
    def wants_tools(self) -> bool:
        return bool(self.tool_calls)


class AIClient(ABC):
    """Abstract base class for model backends."""

    @abstractmethod
    async def chat(
        self,
        messages: list[dict[str, Any]],
        model: str,
        max_tokens: int = 2048,
        temperature: float = 0.7,
        tools: list[dict[str, Any]] | None = None,
    ) -> AIResponse:
        """Send the conversation (system message first) and return the model's reply.

        Raises ``ExternalServiceError`` on any transport or protocol failure.
        """
        ...

    async def close(self) -> None:
        return None


class OpenRouterClient(AIClient):
    """OpenAI-compatible chat completions over HTTP."""

    def __init__(self, config: OpenRouterConfig, transport: httpx.AsyncBaseTransport | None = None):
        self._client = httpx.AsyncClient(
            base_url=config.base_url,
            timeout=config.timeout,
            transport=transport,
            headers={
                "Authorization": f"Bearer {config.api_key}",
                "Content-Type": "application/json",
                "HTTP-Referer": config.app_url,
                "X-Title": config.app_title,
            },
        )

    async def chat(
        self,
        messages: list[dict[str, Any]],
        model: str,
        max_tokens: int = 2048,
        temperature: float = 0.7,
        tools: list[dict[str, Any]] | None = None,
    ) -> AIResponse:
        payload: dict[str, Any] = {
            "model": model,
            "messages": messages,
            "max_tokens": max_tokens,
            "temperature": temperature,
        }
        if tools:
            payload["tools"] = tools

        logger.debug("model_request", backend="openrouter", model=model, message_count=len(messages))
        try:
            response = await self._client.post("/chat/completions", json=payload)
        except httpx.TimeoutException as e:
            raise ExternalServiceError(f"Model service timed out: {e}", retryable=True) from e
        except httpx.HTTPError as e:
            raise ExternalServiceError(f"Model service unreachable: {e}", retryable=True) from e

        if response.status_code >= 400:
            logger.error("model_http_error", status=response.status_code, body=response.text[:500])
            raise ExternalServiceError(
                f"Model API error ({response.status_code}): {response.text[:500]}",
                status=response.status_code,
                retryable=response.status_code in RETRYABLE_STATUSES,
            )

        try:
            return self._parse_response(response.json())
        except (KeyError, IndexError, TypeError, ValueError) as e:
            raise ExternalServiceError(f"Malformed model response: {e}") from e

    @staticmethod
    def _parse_response(data: dict[str, Any]) -> AIResponse:
        if "error" in data and not data.get("choices"):
            raise ExternalServiceError(f"Model API error: {data['error']}")

        choice = data["choices"][0]
        message = choice["message"]
        tool_calls = [
            ToolCall(
                id=call["id"],
                name=call["function"]["name"],
                arguments=call["function"].get("arguments") or "{}",
            )
            for call in message.get("tool_calls") or []
        ]
        usage = data.get("usage") or {}
        response = AIResponse(
            text=message.get("content") or "",
            finish_reason=choice.get("finish_reason") or ("tool_calls" if tool_calls else "stop"),
            tool_calls=tool_calls,
            input_tokens=usage.get("prompt_tokens", 0),
            output_tokens=usage.get("completion_tokens", 0),
            raw=data,
        )
        logger.debug(
            "model_response",
            finish_reason=response.finish_reason,
            tool_calls=len(tool_calls),
            input_tokens=response.input_tokens,
            output_tokens=response.output_tokens,
        )
        return response

    async def close(self) -> None:
        await self._client.aclose()


_ANTHROPIC_STOP_REASONS = {
    "end_turn": "stop",
    "stop_sequence": "stop",
    "tool_use": "tool_calls",
    "max_tokens": "length",
}


class AnthropicClient(AIClient):
    """Anthropic API backend using the official SDK."""

    def __init__(self, config: AnthropicConfig):
        import anthropic

        self._anthropic = anthropic
        # Retries are owned by the orchestrator so that they are bounded and logged in one place
        self._client = anthropic.AsyncAnthropic(
            api_key=config.api_key,
            base_url=config.base_url,
            max_retries=0,
            timeout=config.timeout,
        )

    async def chat(
        self,
        messages: list[dict[str, Any]],
        model: str,
        max_tokens: int = 2048,
        temperature: float = 0.7,
        tools: list[dict[str, Any]] | None = None,
    ) -> AIResponse:
        system, converted = to_anthropic_messages(messages)
        kwargs: dict[str, Any] = {
            "model": model,
            "max_tokens": max_tokens,
            "system": system,
            "messages": converted,
            "temperature": temperature,
        }
        if tools:
            kwargs["tools"] = [to_anthropic_tool(t) for t in tools]

        logger.debug("model_request", backend="anthropic", model=model, message_count=len(converted))
        try:
            response = await self._client.messages.create(**kwargs)
        except self._anthropic.APIStatusError as e:
            raise ExternalServiceError(
                f"Anthropic API error ({e.status_code}): {e.message}",
                status=e.status_code,
                retryable=e.status_code in RETRYABLE_STATUSES,
            ) from e
        except self._anthropic.APIError as e:
            raise ExternalServiceError(f"Anthropic API unreachable: {e}", retryable=True) from e

        texts = [b.text for b in response.content if b.type == "text"]
        tool_calls = [
            ToolCall(id=b.id, name=b.name, arguments=json.dumps(b.input))
            for b in response.content
            if b.type == "tool_use"
        ]
        logger.debug(
            "model_response",
            stop_reason=response.stop_reason,
            tool_calls=len(tool_calls),
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
        )
        return AIResponse(
            text="\n".join(texts),
            finish_reason=_ANTHROPIC_STOP_REASONS.get(response.stop_reason or "", "stop"),
            tool_calls=tool_calls,
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
            raw=response,
        )

    async def close(self) -> None:
        await self._client.close()


def to_anthropic_tool(tool: dict[str, Any]) -> dict[str, Any]:
    function = tool["function"]
    return {
        "name": function["name"],
        "description": function.get("description", ""),
        "input_schema": function["parameters"],
    }


def to_anthropic_messages(messages: list[dict[str, Any]]) -> tuple[str, list[dict[str, Any]]]:
    """Split out the system prompt and convert tool traffic into content blocks.

    Consecutive ``tool`` messages are grouped into one user message of
    ``tool_result`` blocks, as the Messages API requires.
    """
    system_parts: list[str] = []
    converted: list[dict[str, Any]] = []

    for msg in messages:
        role = msg["role"]
        if role == "system":
            system_parts.append(msg.get("content") or "")

        elif role == "tool":
            block = {
                "type": "tool_result",
                "tool_use_id": msg["tool_call_id"],
                "content": msg.get("content") or "",
            }
            last = converted[-1] if converted else None
            if last and last["role"] == "user" and isinstance(last["content"], list) and all(
                b.get("type") == "tool_result" for b in last["content"]
            ):
                last["content"].append(block)
            else:
                converted.append({"role": "user", "content": [block]})

        elif role == "assistant" and msg.get("tool_calls"):
            blocks: list[dict[str, Any]] = []
            if msg.get("content"):
                blocks.append({"type": "text", "text": msg["content"]})
            for call in msg["tool_calls"]:
                try:
                    tool_input = json.loads(call["function"].get("arguments") or "{}")
                except json.JSONDecodeError:
                    tool_input = {}
                blocks.append(
                    {
                        "type": "tool_use",
                        "id": call["id"],
                        "name": call["function"]["name"],
                        "input": tool_input,
                    }
                )
            converted.append({"role": "assistant", "content": blocks})

        else:
            converted.append({"role": role, "content": msg.get("content") or ""})

    return "\n\n".join(system_parts), converted
