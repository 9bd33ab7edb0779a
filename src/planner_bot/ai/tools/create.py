"""Creation tools: tasks and events in batches, single notes and projects."""

from __future__ import annotations

from abc import abstractmethod
from datetime import datetime
from typing import Any, Literal, get_args

from pydantic import BaseModel, Field

from planner_bot.ai.tools.base import Tool, ToolContext, ToolInput, ToolResult, validate_input
from planner_bot.ai.tools.projections import event_view, note_view, project_view, task_view
from planner_bot.core.errors import PlannerError, ValidationError
from planner_bot.core.types import EntityType, NoteType, TaskPriority
from planner_bot.log import get_logger

logger = get_logger(__name__)

# Archiving is a separate lifecycle step, not a status a project starts or is moved into here
NewProjectStatus = Literal["planning", "active", "on_hold", "completed", "cancelled"]

_TAGS_SCHEMA = {"type": "array", "items": {"type": "string"}}


class TaskItem(ToolInput):
    title: str = Field(min_length=1, max_length=200)
    description: str | None = None
    due_date: datetime | None = None
    duration: int | None = Field(default=None, ge=0)
    priority: TaskPriority = TaskPriority.MEDIUM
    project_name: str | None = None
    tags: list[str] = Field(default_factory=list)


class EventItem(ToolInput):
    title: str = Field(min_length=1, max_length=200)
    description: str | None = None
    start_time: datetime
    end_time: datetime | None = None
    location: str | None = None
    all_day: bool = False
    project_name: str | None = None
    tags: list[str] = Field(default_factory=list)


# Items stay raw here and are validated one by one, so a malformed item only fails itself
class CreateTasksInput(ToolInput):
    tasks: list[Any] = Field(min_length=1)


class CreateEventsInput(ToolInput):
    events: list[Any] = Field(min_length=1)


class CreateNoteInput(ToolInput):
    content: str = Field(min_length=1)
    title: str | None = Field(default=None, max_length=200)
    type: NoteType = NoteType.NOTE
    project_name: str | None = None
    tags: list[str] = Field(default_factory=list)


class CreateProjectInput(ToolInput):
    name: str = Field(min_length=1, max_length=200)
    description: str | None = None
    status: NewProjectStatus = "planning"
    color: str | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    tags: list[str] = Field(default_factory=list)


class BatchCreateTool(Tool):
    """Creates each item independently; failures are collected, never abort the batch."""

    entity_type: EntityType
    item_model: type[BaseModel]

    @abstractmethod
    def items(self, params: Any) -> list[Any]:
        ...

    @abstractmethod
    async def create_one(self, item: Any, ctx: ToolContext) -> dict[str, Any]:
        ...

    async def execute(self, params: Any, ctx: ToolContext) -> ToolResult:
        created: list[dict[str, Any]] = []
        errors: list[str] = []

        for index, raw in enumerate(self.items(params), start=1):
            label = raw.get("title") if isinstance(raw, dict) and raw.get("title") else f"#{index}"
            try:
                item = validate_input(self.item_model, raw)
                created.append(await self.create_one(item, ctx))
            except PlannerError as e:
                errors.append(f'Error creating {self.entity_type} "{label}": {e}')

        data: dict[str, Any] = {"created": len(created), self.entity_type.plural: created}
        if errors:
            data["errors"] = errors
            logger.warning("batch_create_partial", entity_type=self.entity_type.value, failed=len(errors))
        return ToolResult(success=not errors, data=data)


class CreateTaskTool(BatchCreateTool):
    input_model = CreateTasksInput
    entity_type = EntityType.TASK
    item_model = TaskItem

    @property
    def name(self) -> str:
        return "create_task"

    @property
    def description(self) -> str:
        return (
            "Create one or multiple tasks. Use this when the user wants to add tasks to their todo list. "
            "Tasks can have titles, descriptions, due dates, priorities, and be assigned to projects."
        )

    @property
    def input_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "tasks": {
                    "type": "array",
                    "description": "Array of tasks to create",
                    "items": {
                        "type": "object",
                        "properties": {
                            "title": {"type": "string", "description": "Task title (required, max 200 chars)"},
                            "description": {"type": "string", "description": "Detailed task description"},
                            "dueDate": {
                                "type": "string",
                                "description": (
                                    "ISO 8601 date-time for when the task is due (e.g. '2025-01-15T14:00:00+01:00'). "
                                    "Convert natural language dates like 'tomorrow' to specific dates."
                                ),
                            },
                            "duration": {"type": "number", "description": "Estimated duration in minutes"},
                            "priority": {
                                "type": "string",
                                "enum": [p.value for p in TaskPriority],
                                "description": "Task priority level (default: medium)",
                            },
                            "projectName": {
                                "type": "string",
                                "description": (
                                    "Name of the project to assign this task to. "
                                    "If not found, the task is created without a project."
                                ),
                            },
                            "tags": {**_TAGS_SCHEMA, "description": "Tag names to attach to this task"},
                        },
                        "required": ["title"],
                    },
                },
            },
            "required": ["tasks"],
        }

    def items(self, params: CreateTasksInput) -> list[Any]:
        return params.tasks

    async def create_one(self, item: TaskItem, ctx: ToolContext) -> dict[str, Any]:
        project_id = await ctx.optional_project(item.project_name)
        task = await ctx.services.tasks.create(
            ctx.user_id,
            title=item.title,
            description=item.description,
            due_date=ctx.local(item.due_date),
            duration=item.duration,
            priority=item.priority.value,
            project_id=project_id,
        )
        result = task_view(task, ctx.zone)
        result["project"] = await ctx.project_name(project_id)
        if item.tags:
            result["tags"] = await ctx.services.tags.attach(ctx.user_id, EntityType.TASK, task.id, item.tags)
        return result


class CreateEventTool(BatchCreateTool):
    input_model = CreateEventsInput
    entity_type = EntityType.EVENT
    item_model = EventItem

    @property
    def name(self) -> str:
        return "create_event"

    @property
    def description(self) -> str:
        return (
            "Create one or multiple calendar events. Use this when the user wants to schedule meetings, "
            "appointments, or events. Events must have a start time and can optionally have an end time, "
            "location, and be assigned to projects."
        )

    @property
    def input_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "events": {
                    "type": "array",
                    "description": "Array of events to create",
                    "items": {
                        "type": "object",
                        "properties": {
                            "title": {"type": "string", "description": "Event title (required, max 200 chars)"},
                            "description": {"type": "string", "description": "Event description with details"},
                            "startTime": {
                                "type": "string",
                                "description": "ISO 8601 date-time for the event start (required)",
                            },
                            "endTime": {
                                "type": "string",
                                "description": "ISO 8601 date-time for the event end. Defaults to startTime + 1 hour.",
                            },
                            "location": {
                                "type": "string",
                                "description": "Physical or virtual location (e.g. 'Room 201', a meeting URL)",
                            },
                            "allDay": {"type": "boolean", "description": "Whether this is an all-day event"},
                            "projectName": {
                                "type": "string",
                                "description": "Name of the project to assign this event to",
                            },
                            "tags": {**_TAGS_SCHEMA, "description": "Tag names"},
                        },
                        "required": ["title", "startTime"],
                    },
                },
            },
            "required": ["events"],
        }

    def items(self, params: CreateEventsInput) -> list[Any]:
        return params.events

    async def create_one(self, item: EventItem, ctx: ToolContext) -> dict[str, Any]:
        start = ctx.local(item.start_time)
        end = ctx.local(item.end_time)
        if end is not None and end < start:
            raise ValidationError("endTime must not be before startTime")
        project_id = await ctx.optional_project(item.project_name)
        event = await ctx.services.events.create(
            ctx.user_id,
            title=item.title,
            start_time=start,
            end_time=end,
            description=item.description,
            all_day=item.all_day,
            location=item.location,
            project_id=project_id,
        )
        result = event_view(event, ctx.zone)
        result["project"] = await ctx.project_name(project_id)
        if item.tags:
            result["tags"] = await ctx.services.tags.attach(ctx.user_id, EntityType.EVENT, event.id, item.tags)
        return result


class CreateNoteTool(Tool):
    input_model = CreateNoteInput

    @property
    def name(self) -> str:
        return "create_note"

    @property
    def description(self) -> str:
        return (
            "Create a note or document. Use when the user wants to save text, ideas, documentation, "
            "code snippets, or research. Notes can be categorized by type and assigned to projects."
        )

    @property
    def input_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "title": {
                    "type": "string",
                    "description": "Note title (optional, generated from the content when missing)",
                },
                "content": {
                    "type": "string",
                    "description": "The note content (required). Supports Markdown formatting.",
                },
                "type": {
                    "type": "string",
                    "enum": [t.value for t in NoteType],
                    "description": "Type/category of note (default: note)",
                },
                "projectName": {"type": "string", "description": "Project to assign this note to"},
                "tags": {**_TAGS_SCHEMA, "description": "Tags for categorization"},
            },
            "required": ["content"],
        }

    async def execute(self, params: CreateNoteInput, ctx: ToolContext) -> ToolResult:
        project_id = await ctx.optional_project(params.project_name)
        note = await ctx.services.notes.create(
            ctx.user_id,
            content=params.content,
            title=params.title,
            type=params.type.value,
            project_id=project_id,
        )
        result = note_view(note, ctx.zone)
        if params.tags:
            result["tags"] = await ctx.services.tags.attach(ctx.user_id, EntityType.NOTE, note.id, params.tags)
        return ToolResult.ok({"notes": [result]})


class CreateProjectTool(Tool):
    input_model = CreateProjectInput

    @property
    def name(self) -> str:
        return "create_project"

    @property
    def description(self) -> str:
        return (
            "Create a new project. Projects are containers for organizing related tasks, events, and notes. "
            "Use when the user wants to start tracking a new initiative, goal, or area of work."
        )

    @property
    def input_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "name": {"type": "string", "description": "Project name (required)"},
                "description": {"type": "string", "description": "Detailed project description and goals"},
                "status": {
                    "type": "string",
                    "enum": list(get_args(NewProjectStatus)),
                    "description": "Current project status (default: planning)",
                },
                "color": {"type": "string", "description": "Color code for visual identification (e.g. '#3B82F6')"},
                "startDate": {"type": "string", "description": "ISO 8601 date when the project starts"},
                "endDate": {"type": "string", "description": "ISO 8601 target completion date"},
                "tags": {**_TAGS_SCHEMA, "description": "Project tags"},
            },
            "required": ["name"],
        }

    async def execute(self, params: CreateProjectInput, ctx: ToolContext) -> ToolResult:
        project = await ctx.services.projects.create(
            ctx.user_id,
            name=params.name,
            description=params.description,
            status=params.status,
            color=params.color,
            start_date=ctx.local(params.start_date),
            end_date=ctx.local(params.end_date),
        )
        result = project_view(project, ctx.zone)
        if params.tags:
            result["tags"] = await ctx.services.tags.attach(
                ctx.user_id, EntityType.PROJECT, project.id, params.tags
            )
        return ToolResult.ok({"projects": [result]})
