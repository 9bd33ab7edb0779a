"""Soft delete of any entity type."""

from __future__ import annotations

from typing import Any

from pydantic import Field

from planner_bot.ai.tools.base import Tool, ToolContext, ToolInput, ToolResult
from planner_bot.core.errors import NotFoundError
from planner_bot.core.types import EntityType
from planner_bot.log import get_logger

logger = get_logger(__name__)


class DeleteEntityInput(ToolInput):
    entity_type: EntityType
    entity_identifier: str = Field(min_length=1)


class DeleteEntityTool(Tool):
    input_model = DeleteEntityInput

    @property
    def name(self) -> str:
        return "delete_entity"

    @property
    def description(self) -> str:
        return (
            "Delete an entity (task, event, note, or project). "
            "IMPORTANT: Always ask for user confirmation before deleting unless they explicitly said "
            "'delete' or 'remove'. Deleted items are moved to trash and can be restored."
        )

    @property
    def input_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "entityType": {
                    "type": "string",
                    "enum": [t.value for t in EntityType],
                    "description": "Type of entity to delete",
                },
                "entityIdentifier": {
                    "type": "string",
                    "description": "Entity ID (UUID) or name/title to identify what to delete. Searched if not a UUID.",
                },
            },
            "required": ["entityType", "entityIdentifier"],
        }

    async def execute(self, params: DeleteEntityInput, ctx: ToolContext) -> ToolResult:
        entity_type = params.entity_type
        entity_id = await ctx.require(entity_type, params.entity_identifier)

        repo = ctx.services.repository(entity_type)
        entity = await repo.get(ctx.user_id, entity_id)
        if entity is None or not await repo.delete(ctx.user_id, entity_id):
            raise NotFoundError(entity_type, params.entity_identifier)

        logger.info("entity_deleted", entity_type=entity_type.value, entity_id=entity_id)
        return ToolResult.ok(
            {
                "message": f"{entity_type.value.capitalize()} deleted successfully",
                "id": entity_id,
                "title": entity.title or "Untitled",
            }
        )
