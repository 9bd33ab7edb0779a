"""Partial update tools. Every entity reference goes through the resolver first."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, ClassVar, Literal, get_args

from pydantic import Field
from pydantic.alias_generators import to_camel

from planner_bot.ai.tools.base import Tool, ToolContext, ToolInput, ToolResult
from planner_bot.ai.tools.projections import view
from planner_bot.core.errors import NotFoundError, ValidationError
from planner_bot.core.types import EntityType, NoteType, TaskPriority, TaskStatus

UpdatableProjectStatus = Literal["planning", "active", "on_hold", "completed", "cancelled"]


class TaskUpdates(ToolInput):
    title: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = None
    status: TaskStatus | None = None
    due_date: datetime | None = None
    priority: TaskPriority | None = None


class EventUpdates(ToolInput):
    title: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = None
    start_time: datetime | None = None
    end_time: datetime | None = None
    location: str | None = None
    all_day: bool | None = None


class NoteUpdates(ToolInput):
    title: str | None = Field(default=None, min_length=1, max_length=200)
    content: str | None = None
    type: NoteType | None = None


class ProjectUpdates(ToolInput):
    name: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = None
    status: UpdatableProjectStatus | None = None
    color: str | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None


class UpdateTaskInput(ToolInput):
    identifier: str = Field(alias="taskIdentifier", min_length=1)
    updates: TaskUpdates


class UpdateEventInput(ToolInput):
    identifier: str = Field(alias="eventIdentifier", min_length=1)
    updates: EventUpdates


class UpdateNoteInput(ToolInput):
    identifier: str = Field(alias="noteIdentifier", min_length=1)
    updates: NoteUpdates


class UpdateProjectInput(ToolInput):
    identifier: str = Field(alias="projectIdentifier", min_length=1)
    updates: ProjectUpdates


def _string(description: str) -> dict[str, Any]:
    return {"type": "string", "description": description}


class UpdateEntityTool(Tool):
    """Resolve the reference, then apply only the fields the model supplied."""

    entity_type: ClassVar[EntityType]
    identifier_field: ClassVar[str]
    update_properties: ClassVar[dict[str, Any]]
    clearable: ClassVar[frozenset[str]] = frozenset()

    @property
    def name(self) -> str:
        return f"update_{self.entity_type.value}"

    @property
    def input_schema(self) -> dict[str, Any]:
        identifier = self.identifier_field
        return {
            "type": "object",
            "properties": {
                identifier: _string(
                    f"{self.entity_type.value.capitalize()} ID (UUID) or partial title to identify it. "
                    "If a title is given, matching items are searched."
                ),
                "updates": {
                    "type": "object",
                    "description": "Only the properties to change",
                    "properties": self.update_properties,
                },
            },
            "required": [identifier, "updates"],
        }

    def changed_fields(self, updates: ToolInput, ctx: ToolContext) -> dict[str, Any]:
        """Supplied fields keyed by repository column (field names match the columns).

        An explicit null clears the field, but only for columns listed in ``clearable``.
        """
        fields: dict[str, Any] = {}
        for key, value in updates.model_dump(exclude_unset=True).items():
            if value is None and key not in self.clearable:
                raise ValidationError(f"{to_camel(key)} cannot be cleared")
            if isinstance(value, datetime):
                value = ctx.local(value)
            elif isinstance(value, Enum):
                value = value.value
            fields[key] = value
        if not fields:
            raise ValidationError("No fields to update")
        return fields

    async def apply(self, entity_id: str, fields: dict[str, Any], ctx: ToolContext) -> tuple[Any, str]:
        repo = ctx.services.repository(self.entity_type)
        entity = await repo.update(ctx.user_id, entity_id, fields)
        if entity is None:
            raise NotFoundError(self.entity_type, entity_id)
        label = self.entity_type.value.capitalize()
        return entity, f'{label} "{entity.title or "Untitled"}" updated successfully'

    async def execute(self, params: Any, ctx: ToolContext) -> ToolResult:
        entity_id = await ctx.require(self.entity_type, params.identifier)
        fields = self.changed_fields(params.updates, ctx)
        entity, message = await self.apply(entity_id, fields, ctx)
        return ToolResult.ok({"message": message, self.entity_type.value: view(self.entity_type, entity, ctx.zone)})


class UpdateTaskTool(UpdateEntityTool):
    input_model = UpdateTaskInput
    entity_type = EntityType.TASK
    identifier_field = "taskIdentifier"
    clearable = frozenset({"description", "due_date"})
    update_properties = {
        "title": _string("New task title"),
        "description": _string("New description"),
        "status": {
            "type": "string",
            "enum": [s.value for s in TaskStatus],
            "description": "New status. Use 'done' to mark as complete.",
        },
        "dueDate": _string("New due date (ISO 8601), or null to remove it"),
        "priority": {"type": "string", "enum": [p.value for p in TaskPriority], "description": "New priority level"},
    }

    @property
    def description(self) -> str:
        return (
            "Update an existing task's properties. Use when the user wants to modify a task's title, status, "
            "due date, or priority. Can mark tasks as complete, change priorities, reschedule, etc."
        )

    async def apply(self, entity_id: str, fields: dict[str, Any], ctx: ToolContext) -> tuple[Any, str]:
        if fields.get("status") != TaskStatus.DONE:
            return await super().apply(entity_id, fields, ctx)

        tasks = ctx.services.tasks
        others = {k: v for k, v in fields.items() if k != "status"}
        if others and await tasks.update(ctx.user_id, entity_id, others) is None:
            raise NotFoundError(self.entity_type, entity_id)
        task = await tasks.mark_complete(ctx.user_id, entity_id)
        if task is None:
            raise NotFoundError(self.entity_type, entity_id)
        return task, f'Task "{task.title}" marked as complete'


class UpdateEventTool(UpdateEntityTool):
    input_model = UpdateEventInput
    entity_type = EntityType.EVENT
    identifier_field = "eventIdentifier"
    clearable = frozenset({"description", "end_time", "location"})
    update_properties = {
        "title": _string("New event title"),
        "description": _string("New description"),
        "startTime": _string("New start (ISO 8601)"),
        "endTime": _string("New end (ISO 8601)"),
        "location": _string("New location"),
        "allDay": {"type": "boolean", "description": "Whether the event lasts all day"},
    }

    @property
    def description(self) -> str:
        return (
            "Update an existing calendar event. Use when the user wants to rename, reschedule, "
            "move or relocate an event."
        )

    async def apply(self, entity_id: str, fields: dict[str, Any], ctx: ToolContext) -> tuple[Any, str]:
        if "start_time" in fields or "end_time" in fields:
            current = await ctx.services.events.get(ctx.user_id, entity_id)
            if current is None:
                raise NotFoundError(self.entity_type, entity_id)
            start = fields.get("start_time", current.start_time)
            end = fields.get("end_time", current.end_time)
            if end is not None and end < start:
                raise ValidationError("endTime must not be before startTime")
        return await super().apply(entity_id, fields, ctx)


class UpdateNoteTool(UpdateEntityTool):
    input_model = UpdateNoteInput
    entity_type = EntityType.NOTE
    identifier_field = "noteIdentifier"
    clearable = frozenset({"title", "content"})
    update_properties = {
        "title": _string("New note title"),
        "content": _string("New content (replaces the existing content, Markdown supported)"),
        "type": {"type": "string", "enum": [t.value for t in NoteType], "description": "New note type"},
    }

    @property
    def description(self) -> str:
        return "Update an existing note's title, content or type."


class UpdateProjectTool(UpdateEntityTool):
    input_model = UpdateProjectInput
    entity_type = EntityType.PROJECT
    identifier_field = "projectIdentifier"
    clearable = frozenset({"description", "start_date", "end_date"})
    update_properties = {
        "name": _string("New project name"),
        "description": _string("New description"),
        "status": {
            "type": "string",
            "enum": list(get_args(UpdatableProjectStatus)),
            "description": "New project status",
        },
        "color": _string("New color code (e.g. '#3B82F6')"),
        "startDate": _string("New start date (ISO 8601)"),
        "endDate": _string("New target completion date (ISO 8601)"),
    }

    @property
    def description(self) -> str:
        return "Update an existing project's name, description, status, color or dates."
