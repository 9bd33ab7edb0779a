from datetime import datetime, timezone
from typing import Any

import pytest
import pytest_asyncio

from planner_bot.ai.client import AIClient, AIResponse, ToolCall
from planner_bot.ai.tools.base import ToolContext
from planner_bot.ai.tools.registry import ToolRegistry
from planner_bot.app import build_tool_services
from planner_bot.config import AIConfig, AssistantConfig
from planner_bot.core.errors import ExternalServiceError
from planner_bot.core.session import SessionManager, UserSession
from planner_bot.storage.conversation_repo import ConversationRepository
from planner_bot.storage.database import Database
from planner_bot.storage.user_repo import UserRepository

# Wednesday 15 January 2025, 10:30 in Rome
NOW = datetime(2025, 1, 15, 9, 30, tzinfo=timezone.utc)


class FakeAIClient(AIClient):
    """Replays scripted responses (or raises scripted errors) in order."""

    def __init__(self, script: list[AIResponse | Exception] | None = None):
        self.script = list(script or [])
        self.calls: list[dict[str, Any]] = []

    async def chat(self, messages, model, max_tokens=2048, temperature=0.7, tools=None) -> AIResponse:
        self.calls.append({"messages": [dict(m) for m in messages], "model": model, "tools": tools})
        if not self.script:
            raise ExternalServiceError("script exhausted")
        step = self.script.pop(0)
        if isinstance(step, Exception):
            raise step
        return step


def text_reply(text: str, input_tokens: int = 100, output_tokens: int = 20) -> AIResponse:
    return AIResponse(text=text, input_tokens=input_tokens, output_tokens=output_tokens)


def tool_reply(*calls: tuple[str, str], input_tokens: int = 100, output_tokens: int = 20) -> AIResponse:
    return AIResponse(
        text="",
        finish_reason="tool_calls",
        tool_calls=[ToolCall(id=f"call_{i}", name=name, arguments=args) for i, (name, args) in enumerate(calls)],
        input_tokens=input_tokens,
        output_tokens=output_tokens,
    )


@pytest_asyncio.fixture
async def db(tmp_path):
    database = Database(str(tmp_path / "test.db"))
    await database.initialize()
    yield database
    await database.close()


@pytest.fixture
def user_repo(db):
    return UserRepository(db)


@pytest.fixture
def conversation_repo(db):
    return ConversationRepository(db)


@pytest.fixture
def services(db):
    return build_tool_services(db)


@pytest.fixture
def session_manager(user_repo):
    return SessionManager(user_repo, AssistantConfig())


@pytest_asyncio.fixture
async def user(user_repo):
    return await user_repo.create(name="Mario", language="it", timezone="Europe/Rome")


@pytest_asyncio.fixture
async def other_user(user_repo):
    return await user_repo.create(name="Alice", language="en", timezone="UTC")


@pytest.fixture
def session(user):
    return UserSession(user_id=user.id, name=user.name, language="it", timezone="Europe/Rome")


@pytest.fixture
def ctx(session, services):
    return ToolContext(session=session, services=services, now=NOW)


@pytest.fixture
def registry():
    tool_registry = ToolRegistry()
    tool_registry.discover_and_register()
    return tool_registry


@pytest.fixture
def ai_config():
    return AIConfig(model="test-model", max_retries=2, retry_backoff=0.5, input_cost_per_1k=0.1, output_cost_per_1k=0.5)
