"""User accounts."""

from __future__ import annotations

from planner_bot.storage.database import Database
from planner_bot.storage.models import User, from_db, new_id, to_db


class UserRepository:
    def __init__(self, db: Database):
        self._db = db

    async def create(
        self,
        name: str,
        email: str | None = None,
        language: str | None = None,
        timezone: str | None = None,
        user_id: str | None = None,
    ) -> User:
        user = User(id=user_id or new_id(), name=name, email=email, language=language, timezone=timezone)
        async with self._db.transaction() as conn:
            await conn.execute(
                """INSERT INTO users (id, name, email, language, timezone, created_at)
                   VALUES (?, ?, ?, ?, ?, ?)""",
                (user.id, user.name, user.email, user.language, user.timezone, to_db(user.created_at)),
            )
        return user

    async def get(self, user_id: str) -> User | None:
        cursor = await self._db.conn.execute("SELECT * FROM users WHERE id = ?", (user_id,))
        row = await cursor.fetchone()
        if row is None:
            return None
        return User(
            id=row["id"],
            name=row["name"],
            email=row["email"],
            language=row["language"],
            timezone=row["timezone"],
            created_at=from_db(row["created_at"]),
        )
