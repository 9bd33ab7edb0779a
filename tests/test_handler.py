import pytest
from conftest import FakeAIClient, text_reply

from planner_bot.ai.handler import ChatHandler
from planner_bot.ai.orchestrator import Orchestrator
from planner_bot.ai.prompts import PromptBuilder
from planner_bot.config import AIConfig
from planner_bot.core.errors import ExternalServiceError


def make_handler(client, registry, services, conversation_repo, session_manager, ai_config):
    orchestrator = Orchestrator(
        ai_client=client,
        tool_registry=registry,
        tool_services=services,
        conversation_repo=conversation_repo,
        prompt_builder=PromptBuilder(stats_repo=services.stats),
        ai_config=ai_config,
    )
    return ChatHandler(session_manager, orchestrator, conversation_repo, ai_config)


@pytest.fixture
def build(registry, services, conversation_repo, session_manager):
    def _build(client, ai_config=None):
        return make_handler(
            client, registry, services, conversation_repo, session_manager, ai_config or AIConfig(model="m")
        )

    return _build


@pytest.mark.asyncio
async def test_send_message_success(build, user):
    handler = build(FakeAIClient([text_reply("Ciao!", 100, 20)]))
    result = await handler.send_message(user.id, "  Ciao  ")

    assert result["success"] is True
    assert result["assistantText"] == "Ciao!"
    assert result["totalTokens"] == 120
    assert result["costCents"] == 0
    assert result["conversationId"]


@pytest.mark.asyncio
async def test_unknown_user_is_rejected(build):
    client = FakeAIClient([text_reply("never")])
    handler = build(client)

    assert await handler.send_message("nobody", "Ciao") == {"success": False, "error": "Non autenticato"}
    assert await handler.send_message(None, "Ciao") == {"success": False, "error": "Non autenticato"}
    assert client.calls == []


@pytest.mark.asyncio
async def test_empty_message_is_rejected(build, user):
    client = FakeAIClient()
    result = await build(client).send_message(user.id, "   ")
    assert result["success"] is False
    assert client.calls == []


@pytest.mark.asyncio
async def test_rate_limit(build, user):
    client = FakeAIClient([text_reply("uno"), text_reply("due"), text_reply("tre")])
    handler = build(client, AIConfig(model="m", rate_limit_per_hour=2))

    assert (await handler.send_message(user.id, "1"))["success"]
    assert (await handler.send_message(user.id, "2"))["success"]
    blocked = await handler.send_message(user.id, "3")

    assert blocked["success"] is False
    assert "2" in blocked["error"]
    assert len(client.calls) == 2


@pytest.mark.asyncio
async def test_model_failure_returns_generic_error(build, user, conversation_repo):
    client = FakeAIClient([ExternalServiceError("secret upstream detail", status=400)])
    result = await build(client).send_message(user.id, "Ciao")

    assert result == {"success": False, "error": "Errore durante l'elaborazione del messaggio"}
    assert await conversation_repo.list_recent(user.id) == []


@pytest.mark.asyncio
async def test_english_user_gets_english_errors(build, other_user):
    client = FakeAIClient([ExternalServiceError("boom", status=400)])
    result = await build(client).send_message(other_user.id, "Hi")
    assert result["error"] == "Error while processing the message"


@pytest.mark.asyncio
async def test_conversation_management(build, user, other_user):
    handler = build(FakeAIClient([text_reply("Ciao!")]))
    sent = await handler.send_message(user.id, "Ciao")
    conversation_id = sent["conversationId"]

    shown = await handler.get_conversation(user.id, conversation_id)
    assert shown["success"]
    assert len(shown["conversation"]["messages"]) == 2

    listed = await handler.list_recent_conversations(user.id)
    assert [c["id"] for c in listed["conversations"]] == [conversation_id]
    assert listed["conversations"][0]["title"] == "Ciao"

    assert (await handler.get_conversation(other_user.id, conversation_id))["error"] == "Conversation not found"
    assert (await handler.delete_conversation(other_user.id, conversation_id))["success"] is False

    usage = await handler.usage_stats(user.id)
    assert usage["stats"]["totalMessages"] == 1

    assert (await handler.delete_conversation(user.id, conversation_id)) == {"success": True}
    assert (await handler.get_conversation(user.id, conversation_id))["error"] == "Conversazione non trovata"
