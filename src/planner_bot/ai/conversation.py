"""Convert conversation history to chat-completions message format."""

from __future__ import annotations

from typing import Any

from planner_bot.ai.client import AIResponse
from planner_bot.ai.tools.base import ToolResult
from planner_bot.core.types import Role
from planner_bot.storage.models import Message


def build_messages(system_prompt: str, history: list[Message], user_text: str) -> list[dict[str, Any]]:
    """System instruction first, then prior turns, then the new user message.

    Only user and assistant text is stored, so prior tool traffic is not replayed;
    the assistant replies already summarize it.
    """
    messages: list[dict[str, Any]] = [{"role": Role.SYSTEM.value, "content": system_prompt}]
    for message in history:
        if message.role in (Role.USER, Role.ASSISTANT) and message.content:
            messages.append({"role": message.role, "content": message.content})
    messages.append({"role": Role.USER.value, "content": user_text})
    return messages


def assistant_tool_message(response: AIResponse) -> dict[str, Any]:
    """The assistant turn that requested tools, echoed back before the results."""
    return {
        "role": Role.ASSISTANT.value,
        "content": response.text or None,
        "tool_calls": [call.to_api_dict() for call in response.tool_calls],
    }


def tool_result_message(tool_call_id: str, result: ToolResult) -> dict[str, Any]:
    return {"role": Role.TOOL.value, "tool_call_id": tool_call_id, "content": result.to_content()}
