"""Inbound chat surface: authenticate, rate limit, run the turn, shape the reply."""

from __future__ import annotations

from datetime import timedelta
from typing import Any

from planner_bot.ai.orchestrator import Orchestrator
from planner_bot.config import AIConfig
from planner_bot.core.errors import AuthenticationError, RateLimitError
from planner_bot.core.session import SessionManager, UserSession
from planner_bot.log import get_logger
from planner_bot.storage.conversation_repo import ConversationRepository
from planner_bot.storage.models import utcnow

logger = get_logger(__name__)

MESSAGES = {
    "it": {
        "unauthenticated": "Non autenticato",
        "empty": "Il messaggio non può essere vuoto",
        "rate_limited": "Hai raggiunto il limite di {limit} messaggi all'ora. Riprova più tardi.",
        "processing": "Errore durante l'elaborazione del messaggio",
        "not_found": "Conversazione non trovata",
    },
    "en": {
        "unauthenticated": "Not authenticated",
        "empty": "Message must not be empty",
        "rate_limited": "You reached the limit of {limit} messages per hour. Try again later.",
        "processing": "Error while processing the message",
        "not_found": "Conversation not found",
    },
}


def _text(language: str, key: str, **kwargs: Any) -> str:
    table = MESSAGES.get(language, MESSAGES["it"])
    return table[key].format(**kwargs)


def _failure(error: str) -> dict[str, Any]:
    return {"success": False, "error": error}


class ChatHandler:
    """Every public method returns a result dict and never raises to the caller."""

    def __init__(
        self,
        session_manager: SessionManager,
        orchestrator: Orchestrator,
        conversation_repo: ConversationRepository,
        ai_config: AIConfig,
        default_language: str = "it",
    ):
        self._sessions = session_manager
        self._orchestrator = orchestrator
        self._conversations = conversation_repo
        self._config = ai_config
        self._default_language = default_language

    async def _authenticate(self, user_id: str | None) -> UserSession | None:
        try:
            return await self._sessions.authenticate(user_id)
        except AuthenticationError:
            return None

    async def _check_rate_limit(self, session: UserSession) -> None:
        limit = self._config.rate_limit_per_hour
        if not limit:
            return
        since = utcnow() - timedelta(hours=1)
        if await self._conversations.count_usage_since(session.user_id, since) >= limit:
            raise RateLimitError(limit)

    async def send_message(
        self, user_id: str | None, text: str, conversation_id: str | None = None
    ) -> dict[str, Any]:
        session = await self._authenticate(user_id)
        if session is None:
            return _failure(_text(self._default_language, "unauthenticated"))

        lang = session.language
        if not text or not text.strip():
            return _failure(_text(lang, "empty"))

        try:
            await self._check_rate_limit(session)
            result = await self._orchestrator.run_turn(session, text.strip(), conversation_id)
        except RateLimitError as e:
            logger.warning("rate_limited", user_id=session.user_id, limit=e.limit)
            return _failure(_text(lang, "rate_limited", limit=e.limit))
        except Exception as e:
            logger.exception("send_message_failed", user_id=session.user_id, error=str(e))
            return _failure(_text(lang, "processing"))

        return {
            "success": True,
            "conversationId": result.conversation_id,
            "assistantText": result.text,
            "totalTokens": result.total_tokens,
            "costCents": result.cost_cents,
        }

    async def get_conversation(self, user_id: str | None, conversation_id: str) -> dict[str, Any]:
        session = await self._authenticate(user_id)
        if session is None:
            return _failure(_text(self._default_language, "unauthenticated"))
        conversation = await self._conversations.get(session.user_id, conversation_id)
        if conversation is None:
            return _failure(_text(session.language, "not_found"))
        return {"success": True, "conversation": conversation.to_dict()}

    async def list_recent_conversations(self, user_id: str | None, limit: int = 10) -> dict[str, Any]:
        session = await self._authenticate(user_id)
        if session is None:
            return _failure(_text(self._default_language, "unauthenticated"))
        conversations = await self._conversations.list_recent(session.user_id, limit)
        return {
            "success": True,
            "conversations": [
                {
                    "id": c.id,
                    "title": c.title,
                    "updatedAt": c.updated_at.isoformat(),
                    "messageCount": len(c.messages),
                }
                for c in conversations
            ],
        }

    async def delete_conversation(self, user_id: str | None, conversation_id: str) -> dict[str, Any]:
        session = await self._authenticate(user_id)
        if session is None:
            return _failure(_text(self._default_language, "unauthenticated"))
        if not await self._conversations.delete(session.user_id, conversation_id):
            return _failure(_text(session.language, "not_found"))
        logger.info("conversation_deleted", user_id=session.user_id, conversation_id=conversation_id)
        return {"success": True}

    async def usage_stats(self, user_id: str | None) -> dict[str, Any]:
        session = await self._authenticate(user_id)
        if session is None:
            return _failure(_text(self._default_language, "unauthenticated"))
        summary = await self._conversations.usage_summary(session.user_id)
        recent = await self._conversations.list_usage(session.user_id, limit=10)
        return {
            "success": True,
            "stats": {
                "totalMessages": summary.total_messages,
                "totalTokens": summary.total_tokens,
                "totalCostCents": summary.total_cost_cents,
                "averageTokensPerMessage": summary.average_tokens_per_message,
            },
            "recent": [
                {
                    "conversationId": r.conversation_id,
                    "model": r.model,
                    "totalTokens": r.total_tokens,
                    "costCents": r.cost_cents,
                    "createdAt": r.created_at.isoformat(),
                }
                for r in recent
            ],
        }
