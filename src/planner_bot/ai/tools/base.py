"""Abstract tool interface for model tool calls."""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Generic, TypeVar
from zoneinfo import ZoneInfo

import pydantic
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from planner_bot.ai.resolver import EntityResolver, NotFound, Resolved
from planner_bot.core.dates import localize
from planner_bot.core.errors import ValidationError
from planner_bot.core.session import UserSession
from planner_bot.core.types import EntityType
from planner_bot.storage.entity_repo import (
    EntityRepository,
    EventRepository,
    NoteRepository,
    ProjectRepository,
    TagRepository,
    TaskRepository,
)
from planner_bot.storage.search import SearchService
from planner_bot.storage.stats_repo import StatsRepository

InputT = TypeVar("InputT", bound=BaseModel)


class ToolResult(BaseModel):
    """Outcome of one tool call. Always returned as data, never raised."""

    success: bool
    data: dict[str, Any] | None = None
    error: str | None = None

    @classmethod
    def ok(cls, data: dict[str, Any] | None = None) -> ToolResult:
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, error: str, data: dict[str, Any] | None = None) -> ToolResult:
        return cls(success=False, error=error, data=data)

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)

    def to_content(self) -> str:
        """Serialized form sent back to the model as the ``tool`` message content."""
        return json.dumps(self.to_dict(), ensure_ascii=False)


class ToolInput(BaseModel):
    """Base for tool inputs: camelCase on the wire, snake_case in Python.

    Strings are stripped before length checks, so a blank reference or title is rejected.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        str_strip_whitespace=True,
    )


def describe_validation_error(exc: pydantic.ValidationError) -> str:
    parts = []
    for err in exc.errors():
        location = ".".join(str(p) for p in err["loc"]) or "input"
        parts.append(f"{location}: {err['msg']}")
    return "; ".join(parts)


def validate_input(model: type[InputT], raw: Any) -> InputT:
    """Validate raw tool input, raising the planner ``ValidationError`` on failure."""
    try:
        return model.model_validate(raw)
    except pydantic.ValidationError as e:
        raise ValidationError(f"Invalid input: {describe_validation_error(e)}") from e


@dataclass
class ToolServices:
    """Domain collaborators shared by all tools, built once at startup."""

    tasks: TaskRepository
    events: EventRepository
    notes: NoteRepository
    projects: ProjectRepository
    tags: TagRepository
    stats: StatsRepository
    search: SearchService
    resolver: EntityResolver

    def repository(self, entity_type: EntityType) -> EntityRepository:
        return {
            EntityType.TASK: self.tasks,
            EntityType.EVENT: self.events,
            EntityType.NOTE: self.notes,
            EntityType.PROJECT: self.projects,
        }[entity_type]


@dataclass
class ToolContext:
    """Per-turn context: who is calling and when."""

    session: UserSession
    services: ToolServices
    now: datetime

    @property
    def user_id(self) -> str:
        return self.session.user_id

    @property
    def zone(self) -> ZoneInfo:
        return self.session.zone

    def local(self, value: datetime | None) -> datetime | None:
        """Attach the user's timezone to naive datetimes from tool input."""
        return localize(value, self.zone) if value is not None else None

    async def require(self, entity_type: EntityType, reference: str) -> str:
        return await self.services.resolver.require(self.user_id, entity_type, reference)

    async def optional_project(self, name: str | None) -> str | None:
        """Resolve an optional project name: unknown names yield None, ambiguous ones raise."""
        if not name:
            return None
        resolution = await self.services.resolver.resolve(self.user_id, EntityType.PROJECT, name)
        match resolution:
            case Resolved(id=project_id):
                return project_id
            case NotFound():
                return None
            case _:
                raise resolution.to_error()

    async def project_name(self, project_id: str | None) -> str | None:
        if not project_id:
            return None
        project = await self.services.projects.get(self.user_id, project_id)
        return project.name if project else None


class Tool(ABC, Generic[InputT]):
    """Base class for all model-callable tools."""

    input_model: type[InputT]

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique tool name sent to the model."""
        ...

    @property
    @abstractmethod
    def description(self) -> str:
        """Human-readable description for the model."""
        ...

    @property
    @abstractmethod
    def input_schema(self) -> dict[str, Any]:
        """JSON Schema dict describing accepted parameters."""
        ...

    @abstractmethod
    async def execute(self, params: InputT, ctx: ToolContext) -> ToolResult:
        """Run the tool. May raise planner errors; the registry turns them into results."""
        ...

    def parse(self, raw: Any) -> InputT:
        return validate_input(self.input_model, raw)

    async def run(self, raw: Any, ctx: ToolContext) -> ToolResult:
        return await self.execute(self.parse(raw), ctx)

    def to_api_dict(self) -> dict[str, Any]:
        """Serialize to the chat-completions tool definition format."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.input_schema,
            },
        }
