"""Caller identity: resolves a user id into the session every turn runs under."""

from __future__ import annotations

from dataclasses import dataclass
from zoneinfo import ZoneInfo

from planner_bot.config import AssistantConfig
from planner_bot.core.dates import get_zone
from planner_bot.core.errors import AuthenticationError
from planner_bot.log import get_logger
from planner_bot.storage.user_repo import UserRepository

logger = get_logger(__name__)


@dataclass(frozen=True)
class UserSession:
    user_id: str
    name: str
    language: str
    timezone: str
    email: str | None = None

    @property
    def zone(self) -> ZoneInfo:
        return get_zone(self.timezone)


class SessionManager:
    """Authenticates callers against the user table, filling in assistant defaults."""

    def __init__(self, user_repo: UserRepository, defaults: AssistantConfig):
        self._users = user_repo
        self._defaults = defaults

    async def authenticate(self, user_id: str | None) -> UserSession:
        if not user_id:
            raise AuthenticationError("Missing caller identity")
        user = await self._users.get(user_id)
        if user is None:
            logger.warning("authentication_failed", user_id=user_id)
            raise AuthenticationError(f"Unknown user: {user_id}")
        return UserSession(
            user_id=user.id,
            name=user.name,
            email=user.email,
            language=user.language or self._defaults.language,
            timezone=user.timezone or self._defaults.timezone,
        )
