"""One conversational turn: prompt, model, tools, model again, persist.

A turn makes at most two model calls and runs at most one round of tools.
Nothing is written until the turn has produced its reply; the conversation and
its usage row are then persisted together.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable

from planner_bot.ai.client import AIClient, AIResponse
from planner_bot.ai.conversation import assistant_tool_message, build_messages, tool_result_message
from planner_bot.ai.prompts import PromptBuilder
from planner_bot.ai.tools.base import ToolContext, ToolServices
from planner_bot.ai.tools.registry import ToolRegistry
from planner_bot.config import AIConfig
from planner_bot.core.errors import ExternalServiceError
from planner_bot.core.session import UserSession
from planner_bot.core.types import Role
from planner_bot.log import bind_turn_context, get_logger
from planner_bot.storage.conversation_repo import ConversationRepository
from planner_bot.storage.models import Conversation, Message, ToolUsage, UsageRecord, utcnow

logger = get_logger(__name__)

FALLBACK_REPLY = {
    "it": "Scusa, non ho capito.",
    "en": "Sorry, I didn't understand that.",
}


def calculate_cost_cents(input_tokens: int, output_tokens: int, config: AIConfig) -> int:
    return round(
        input_tokens / 1000 * config.input_cost_per_1k + output_tokens / 1000 * config.output_cost_per_1k
    )


@dataclass
class TurnResult:
    conversation_id: str
    text: str
    input_tokens: int = 0
    output_tokens: int = 0
    cost_cents: int = 0
    tools_used: list[ToolUsage] = field(default_factory=list)

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


class Orchestrator:
    """Drives a single turn for an authenticated session."""

    def __init__(
        self,
        ai_client: AIClient,
        tool_registry: ToolRegistry,
        tool_services: ToolServices,
        conversation_repo: ConversationRepository,
        prompt_builder: PromptBuilder,
        ai_config: AIConfig,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self._ai_client = ai_client
        self._tool_registry = tool_registry
        self._tool_services = tool_services
        self._conversations = conversation_repo
        self._prompt_builder = prompt_builder
        self._config = ai_config
        self._sleep = sleep

    async def run_turn(
        self,
        session: UserSession,
        user_text: str,
        conversation_id: str | None = None,
        now: datetime | None = None,
    ) -> TurnResult:
        now = now or utcnow()
        conversation = await self._load_or_create(session, user_text, conversation_id)
        bind_turn_context(session.user_id, conversation.id)

        system_prompt = await self._prompt_builder.build(session, now)
        messages = build_messages(system_prompt, conversation.messages, user_text)
        tools = self._tool_registry.to_api_list()

        response = await self._call_model(messages, tools)
        input_tokens, output_tokens = response.input_tokens, response.output_tokens
        tools_used: list[ToolUsage] = []

        if response.wants_tools:
            ctx = ToolContext(session=session, services=self._tool_services, now=now)
            messages.append(assistant_tool_message(response))
            # Strictly sequential, in the order the model returned them
            for call in response.tool_calls:
                result = await self._tool_registry.dispatch(call.name, call.arguments, ctx)
                messages.append(tool_result_message(call.id, result))
                tools_used.append(ToolUsage(name=call.name, result=result.to_dict()))

            response = await self._call_model(messages, tools)
            input_tokens += response.input_tokens
            output_tokens += response.output_tokens
            if response.wants_tools:
                logger.warning("second_round_tool_calls_ignored", count=len(response.tool_calls))

        reply = response.text.strip() or FALLBACK_REPLY.get(session.language, FALLBACK_REPLY["it"])
        cost_cents = calculate_cost_cents(input_tokens, output_tokens, self._config)

        conversation.messages.append(Message(role=Role.USER.value, content=user_text, timestamp=now))
        conversation.messages.append(
            Message(role=Role.ASSISTANT.value, content=reply, tools_used=tools_used or None)
        )
        conversation.updated_at = utcnow()
        usage = UsageRecord(
            owner_id=session.user_id,
            conversation_id=conversation.id,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            model=self._config.model,
            cost_cents=cost_cents,
        )
        await self._conversations.persist_turn(conversation, usage)

        logger.info(
            "turn_completed",
            tools=[t.name for t in tools_used],
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            cost_cents=cost_cents,
        )
        return TurnResult(
            conversation_id=conversation.id,
            text=reply,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            cost_cents=cost_cents,
            tools_used=tools_used,
        )

    async def _load_or_create(
        self, session: UserSession, user_text: str, conversation_id: str | None
    ) -> Conversation:
        if conversation_id:
            conversation = await self._conversations.get(session.user_id, conversation_id)
            if conversation is not None:
                return conversation
            logger.warning("conversation_not_found", user_id=session.user_id, conversation_id=conversation_id)
        return self._conversations.new_conversation(session.user_id, user_text)

    async def _call_model(self, messages: list[dict[str, Any]], tools: list[dict[str, Any]]) -> AIResponse:
        """Call the model with bounded exponential backoff on retryable failures."""
        attempt = 0
        while True:
            try:
                return await self._ai_client.chat(
                    messages=messages,
                    model=self._config.model,
                    max_tokens=self._config.max_tokens,
                    temperature=self._config.temperature,
                    tools=tools or None,
                )
            except ExternalServiceError as e:
                if not e.retryable or attempt >= self._config.max_retries:
                    logger.error("model_call_failed", error=str(e), status=e.status, attempts=attempt + 1)
                    raise
                delay = self._config.retry_backoff * (2**attempt)
                attempt += 1
                logger.warning("model_retry", attempt=attempt, delay=delay, status=e.status, error=str(e))
                await self._sleep(delay)
