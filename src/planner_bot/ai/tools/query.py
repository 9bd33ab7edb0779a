"""Listing and free-text search tools."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import Field

from planner_bot.ai.tools.base import Tool, ToolContext, ToolInput, ToolResult
from planner_bot.ai.tools.projections import view
from planner_bot.core.types import EntityType
from planner_bot.log import get_logger
from planner_bot.storage.entity_repo import EntityFilters

logger = get_logger(__name__)

DEFAULT_LIMIT = 10
MAX_LIMIT = 50

_ENTITY_TYPES_SCHEMA = {
    "type": "array",
    "items": {"type": "string", "enum": [t.value for t in EntityType]},
}


def clamp_limit(limit: int | None) -> int:
    return max(1, min(limit or DEFAULT_LIMIT, MAX_LIMIT))


def filters_schema(description: str) -> dict[str, Any]:
    return {
        "type": "object",
        "description": description,
        "properties": {
            "status": {"type": "string", "description": "Filter by status (e.g. 'todo', 'done', 'active')"},
            "priority": {"type": "string", "description": "Filter by priority (low, medium, high, urgent)"},
            "projectName": {"type": "string", "description": "Filter by project name"},
            "tags": {
                "type": "array",
                "items": {"type": "string"},
                "description": "Filter by tags (items with ANY of these tags)",
            },
            "dateRange": {
                "type": "object",
                "properties": {
                    "start": {"type": "string", "description": "ISO 8601 date for range start"},
                    "end": {"type": "string", "description": "ISO 8601 date for range end"},
                },
            },
        },
    }


class DateRange(ToolInput):
    start: datetime | None = None
    end: datetime | None = None


class FiltersInput(ToolInput):
    status: str | None = None
    priority: str | None = None
    project_name: str | None = None
    tags: list[str] | None = None
    date_range: DateRange | None = None

    async def to_entity_filters(self, ctx: ToolContext) -> EntityFilters:
        """A project name filter must resolve to exactly one project."""
        project_id = await ctx.require(EntityType.PROJECT, self.project_name) if self.project_name else None
        date_range = self.date_range or DateRange()
        return EntityFilters(
            status=self.status,
            priority=self.priority,
            project_id=project_id,
            project_status=self.status,
            date_start=ctx.local(date_range.start),
            date_end=ctx.local(date_range.end),
            tags=[t.strip().lower() for t in self.tags] if self.tags else None,
        )


class QueryEntitiesInput(ToolInput):
    entity_types: list[EntityType] = Field(min_length=1)
    filters: FiltersInput | None = None
    sort_by: Literal["createdAt", "updatedAt", "dueDate", "startTime", "title"] | None = None
    sort_order: Literal["asc", "desc"] = "desc"
    limit: int | None = None


class SearchEntitiesInput(ToolInput):
    query: str = Field(min_length=1)
    entity_types: list[EntityType] | None = None
    filters: FiltersInput | None = None
    limit: int | None = None


def within_budget(hits: dict[EntityType, list[Any]], budget: int = MAX_LIMIT) -> dict[EntityType, list[Any]]:
    """Trim per-type hits, in request order, so no more than ``budget`` rows come back in total."""
    kept: dict[EntityType, list[Any]] = {}
    for entity_type, rows in hits.items():
        kept[entity_type] = rows[:budget]
        budget -= len(kept[entity_type])
    return kept


def grouped(ctx: ToolContext, hits: dict[EntityType, list[Any]]) -> dict[str, Any]:
    kept = within_budget(hits)
    results = {
        entity_type.plural: [view(entity_type, entity, ctx.zone) for entity in kept.get(entity_type, [])]
        for entity_type in EntityType
    }
    data: dict[str, Any] = {"total": sum(len(rows) for rows in results.values()), "results": results}
    if data["total"] < sum(len(rows) for rows in hits.values()):
        data["truncated"] = True
    return data


class QueryEntitiesTool(Tool):
    input_model = QueryEntitiesInput

    @property
    def name(self) -> str:
        return "query_entities"

    @property
    def description(self) -> str:
        return (
            "Retrieve a list of entities directly without text search. "
            "Use when the user asks for 'all', 'latest', 'recent', or lists of items. "
            "Examples: 'show me my notes', 'list all tasks', 'what are my recent projects'. "
            "More efficient than search_entities when no specific search term is needed."
        )

    @property
    def input_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "entityTypes": {**_ENTITY_TYPES_SCHEMA, "description": "Types of entities to retrieve (required)"},
                "filters": filters_schema("Optional filters to narrow results"),
                "sortBy": {
                    "type": "string",
                    "enum": ["createdAt", "updatedAt", "dueDate", "startTime", "title"],
                    "description": "Field to sort by (default: updatedAt)",
                },
                "sortOrder": {
                    "type": "string",
                    "enum": ["asc", "desc"],
                    "description": "Sort order (default: desc for most recent first)",
                },
                "limit": {
                    "type": "number",
                    "description": (
                        f"Maximum results per entity type (default: {DEFAULT_LIMIT}). "
                        f"At most {MAX_LIMIT} rows are returned in total."
                    ),
                },
            },
            "required": ["entityTypes"],
        }

    async def execute(self, params: QueryEntitiesInput, ctx: ToolContext) -> ToolResult:
        limit = clamp_limit(params.limit)
        filters = await params.filters.to_entity_filters(ctx) if params.filters else None

        hits: dict[EntityType, list[Any]] = {}
        for entity_type in dict.fromkeys(params.entity_types):
            hits[entity_type] = await ctx.services.repository(entity_type).list(
                ctx.user_id,
                filters=filters,
                sort_by=params.sort_by,
                sort_order=params.sort_order,
                limit=limit,
            )
        data = grouped(ctx, hits)
        logger.debug("query_entities_completed", total=data["total"], limit=limit)
        return ToolResult.ok(data)


class SearchEntitiesTool(Tool):
    input_model = SearchEntitiesInput

    @property
    def name(self) -> str:
        return "search_entities"

    @property
    def description(self) -> str:
        return (
            "Search across entities using a text query. "
            "Use when the user provides a specific search term or wants to find items matching keywords. "
            "Examples: 'find tasks about meeting', 'search notes containing API'. "
            "For listing without search, use query_entities instead."
        )

    @property
    def input_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "query": {
                    "type": "string",
                    "description": "Search text matched against titles, descriptions, and content",
                },
                "entityTypes": {
                    **_ENTITY_TYPES_SCHEMA,
                    "description": "Limit search to specific entity types. If empty, searches all types.",
                },
                "filters": filters_schema("Additional filters to narrow results"),
                "limit": {
                    "type": "number",
                    "description": (
                        f"Maximum results per entity type (default: {DEFAULT_LIMIT}). "
                        f"At most {MAX_LIMIT} rows are returned in total."
                    ),
                },
            },
            "required": ["query"],
        }

    async def execute(self, params: SearchEntitiesInput, ctx: ToolContext) -> ToolResult:
        limit = clamp_limit(params.limit)
        filters = await params.filters.to_entity_filters(ctx) if params.filters else None
        entity_types = list(dict.fromkeys(params.entity_types or EntityType))

        results = await ctx.services.search.search(
            ctx.user_id,
            params.query,
            entity_types=entity_types,
            limit=limit,
            filters=filters,
        )
        data = grouped(ctx, {t: results.for_type(t) for t in entity_types})
        logger.debug("search_entities_completed", query=params.query, total=data["total"])
        return ToolResult.ok(data)
