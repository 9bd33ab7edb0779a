"""Conversation store: AI conversations and the usage ledger."""

from __future__ import annotations

import json
from datetime import datetime

from planner_bot.log import get_logger
from planner_bot.storage.database import Database
from planner_bot.storage.models import (
    Conversation,
    Message,
    UsageRecord,
    UsageSummary,
    from_db,
    to_db,
)

logger = get_logger(__name__)

TITLE_MAX_LENGTH = 100


class ConversationRepository:
    """Owner-scoped CRUD over conversations plus the append-only usage ledger."""

    def __init__(self, db: Database):
        self._db = db

    @staticmethod
    def new_conversation(owner_id: str, first_message: str) -> Conversation:
        """Build an unsaved conversation; it is written together with its first turn."""
        title = first_message.strip()[:TITLE_MAX_LENGTH] or "New conversation"
        return Conversation(owner_id=owner_id, title=title)

    async def get(self, owner_id: str, conversation_id: str) -> Conversation | None:
        """Return the conversation, or None if it is missing or owned by someone else."""
        cursor = await self._db.conn.execute(
            "SELECT * FROM ai_conversations WHERE id = ? AND user_id = ?",
            (conversation_id, owner_id),
        )
        row = await cursor.fetchone()
        return self._row_to_conversation(row) if row else None

    async def list_recent(self, owner_id: str, limit: int = 10) -> list[Conversation]:
        cursor = await self._db.conn.execute(
            """SELECT * FROM ai_conversations
               WHERE user_id = ?
               ORDER BY updated_at DESC
               LIMIT ?""",
            (owner_id, limit),
        )
        rows = await cursor.fetchall()
        return [self._row_to_conversation(row) for row in rows]

    async def persist_turn(self, conversation: Conversation, usage: UsageRecord) -> None:
        """Write the full message list and the turn's usage row atomically."""
        messages_json = json.dumps([m.to_dict() for m in conversation.messages], ensure_ascii=False)
        async with self._db.transaction() as conn:
            await conn.execute(
                """INSERT INTO ai_conversations
                   (id, user_id, title, messages_json, created_at, updated_at)
                   VALUES (?, ?, ?, ?, ?, ?)
                   ON CONFLICT(id) DO UPDATE SET
                       messages_json = excluded.messages_json,
                       updated_at = excluded.updated_at""",
                (
                    conversation.id,
                    conversation.owner_id,
                    conversation.title,
                    messages_json,
                    to_db(conversation.created_at),
                    to_db(conversation.updated_at),
                ),
            )
            cursor = await conn.execute(
                """INSERT INTO ai_usage
                   (user_id, conversation_id, input_tokens, output_tokens,
                    cost_cents, model, created_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?)""",
                (
                    usage.owner_id,
                    usage.conversation_id,
                    usage.input_tokens,
                    usage.output_tokens,
                    usage.cost_cents,
                    usage.model,
                    to_db(usage.created_at),
                ),
            )
        usage.id = cursor.lastrowid
        logger.debug(
            "turn_persisted",
            conversation_id=conversation.id,
            message_count=len(conversation.messages),
            tokens=usage.total_tokens,
        )

    async def delete(self, owner_id: str, conversation_id: str) -> bool:
        async with self._db.transaction() as conn:
            cursor = await conn.execute(
                "DELETE FROM ai_conversations WHERE id = ? AND user_id = ?",
                (conversation_id, owner_id),
            )
        return cursor.rowcount > 0

    async def usage_summary(self, owner_id: str) -> UsageSummary:
        cursor = await self._db.conn.execute(
            """SELECT COUNT(*) AS turns,
                      COALESCE(SUM(input_tokens + output_tokens), 0) AS tokens,
                      COALESCE(SUM(cost_cents), 0) AS cost
               FROM ai_usage WHERE user_id = ?""",
            (owner_id,),
        )
        row = await cursor.fetchone()
        return UsageSummary(
            total_messages=row["turns"],
            total_tokens=row["tokens"],
            total_cost_cents=row["cost"],
        )

    async def list_usage(self, owner_id: str, limit: int = 50) -> list[UsageRecord]:
        cursor = await self._db.conn.execute(
            "SELECT * FROM ai_usage WHERE user_id = ? ORDER BY created_at DESC LIMIT ?",
            (owner_id, limit),
        )
        rows = await cursor.fetchall()
        return [
            UsageRecord(
                id=row["id"],
                owner_id=row["user_id"],
                conversation_id=row["conversation_id"],
                input_tokens=row["input_tokens"],
                output_tokens=row["output_tokens"],
                cost_cents=row["cost_cents"],
                model=row["model"],
                created_at=from_db(row["created_at"]),
            )
            for row in rows
        ]

    async def count_usage_since(self, owner_id: str, since: datetime) -> int:
        cursor = await self._db.conn.execute(
            "SELECT COUNT(*) FROM ai_usage WHERE user_id = ? AND created_at >= ?",
            (owner_id, to_db(since)),
        )
        row = await cursor.fetchone()
        return row[0]

    @staticmethod
    def _row_to_conversation(row) -> Conversation:
        return Conversation(
            id=row["id"],
            owner_id=row["user_id"],
            title=row["title"],
            messages=[Message.from_dict(m) for m in json.loads(row["messages_json"])],
            created_at=from_db(row["created_at"]),
            updated_at=from_db(row["updated_at"]),
        )
