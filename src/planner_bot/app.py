"""Application orchestrator - wires all components and manages lifecycle."""

from __future__ import annotations

from planner_bot.ai.client import AIClient, AnthropicClient, OpenRouterClient
from planner_bot.ai.handler import ChatHandler
from planner_bot.ai.orchestrator import Orchestrator
from planner_bot.ai.prompts import PromptBuilder
from planner_bot.ai.resolver import EntityResolver
from planner_bot.ai.tools.base import ToolServices
from planner_bot.ai.tools.registry import ToolRegistry
from planner_bot.config import AppConfig
from planner_bot.core.session import SessionManager
from planner_bot.core.types import EntityType
from planner_bot.log import get_logger
from planner_bot.storage.conversation_repo import ConversationRepository
from planner_bot.storage.database import Database
from planner_bot.storage.entity_repo import (
    EventRepository,
    NoteRepository,
    ProjectRepository,
    TagRepository,
    TaskRepository,
)
from planner_bot.storage.search import SearchService
from planner_bot.storage.stats_repo import StatsRepository
from planner_bot.storage.user_repo import UserRepository

logger = get_logger(__name__)


def build_tool_services(db: Database) -> ToolServices:
    """Repositories, search and resolver over one database."""
    tasks = TaskRepository(db)
    events = EventRepository(db)
    notes = NoteRepository(db)
    projects = ProjectRepository(db)
    search = SearchService(
        {
            EntityType.TASK: tasks,
            EntityType.EVENT: events,
            EntityType.NOTE: notes,
            EntityType.PROJECT: projects,
        }
    )
    return ToolServices(
        tasks=tasks,
        events=events,
        notes=notes,
        projects=projects,
        tags=TagRepository(db),
        stats=StatsRepository(db),
        search=search,
        resolver=EntityResolver(search),
    )


def create_ai_client(config: AppConfig) -> AIClient:
    """Create an AI client based on the configured backend."""
    match config.ai.backend:
        case "openrouter":
            if not config.openrouter:
                raise ValueError("AI backend is 'openrouter' but no 'openrouter' section in config")
            return OpenRouterClient(config.openrouter)
        case "anthropic":
            if not config.anthropic:
                raise ValueError("AI backend is 'anthropic' but no 'anthropic' section in config")
            return AnthropicClient(config.anthropic)
        case _:
            raise ValueError(f"Unknown AI backend: {config.ai.backend}")


class PlannerBotApp:
    """Top-level application orchestrator."""

    def __init__(self, config: AppConfig, ai_client: AIClient | None = None):
        self.config = config
        self.db = Database(config.storage.db_path)
        self.user_repo = UserRepository(self.db)
        self.conversation_repo = ConversationRepository(self.db)
        self.tool_services = build_tool_services(self.db)
        self.tool_registry = ToolRegistry()
        self.session_manager = SessionManager(self.user_repo, config.assistant)
        self._ai_client = ai_client
        self.handler: ChatHandler | None = None

    async def start(self) -> None:
        """Initialize and start all components."""
        # 1. Database
        await self.db.initialize()

        # 2. Tools
        self.tool_registry.discover_and_register()

        # 3. Model client and turn pipeline
        if self._ai_client is None:
            self._ai_client = create_ai_client(self.config)
        prompt_builder = PromptBuilder(
            stats_repo=self.tool_services.stats,
            app_name=self.config.assistant.app_name,
            include_examples=self.config.ai.include_examples,
        )
        orchestrator = Orchestrator(
            ai_client=self._ai_client,
            tool_registry=self.tool_registry,
            tool_services=self.tool_services,
            conversation_repo=self.conversation_repo,
            prompt_builder=prompt_builder,
            ai_config=self.config.ai,
        )
        self.handler = ChatHandler(
            session_manager=self.session_manager,
            orchestrator=orchestrator,
            conversation_repo=self.conversation_repo,
            ai_config=self.config.ai,
            default_language=self.config.assistant.language,
        )
        logger.info(
            "planner_bot_started",
            backend=self.config.ai.backend,
            model=self.config.ai.model,
            tools=len(self.tool_registry.all_tools()),
        )

    async def stop(self) -> None:
        """Gracefully shut down all components."""
        if self._ai_client is not None:
            try:
                await self._ai_client.close()
            except Exception as e:
                logger.error("ai_client_close_error", error=str(e))
        await self.db.close()
        logger.info("planner_bot_stopped")
