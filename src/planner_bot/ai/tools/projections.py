"""Minimal, stable views of entities returned to the model."""

from __future__ import annotations

from datetime import datetime, tzinfo
from typing import Any

from planner_bot.core.types import EntityType
from planner_bot.storage.models import Event, Note, Project, Task


def iso(value: datetime | None, tz: tzinfo) -> str | None:
    return value.astimezone(tz).isoformat(timespec="minutes") if value else None


def task_view(task: Task, tz: tzinfo) -> dict[str, Any]:
    return {
        "id": task.id,
        "title": task.title,
        "status": task.status,
        "priority": task.priority,
        "dueDate": iso(task.due_date, tz),
    }


def event_view(event: Event, tz: tzinfo) -> dict[str, Any]:
    return {
        "id": event.id,
        "title": event.title,
        "startTime": iso(event.start_time, tz),
        "endTime": iso(event.end_time, tz),
        "allDay": event.all_day,
        "location": event.location,
    }


def note_view(note: Note, tz: tzinfo) -> dict[str, Any]:
    return {
        "id": note.id,
        "title": note.title or "Untitled",
        "type": note.type,
        "updatedAt": iso(note.updated_at, tz),
    }


def project_view(project: Project, tz: tzinfo) -> dict[str, Any]:
    return {
        "id": project.id,
        "name": project.name,
        "status": project.status,
        "color": project.color,
        "endDate": iso(project.end_date, tz),
    }


VIEWS = {
    EntityType.TASK: task_view,
    EntityType.EVENT: event_view,
    EntityType.NOTE: note_view,
    EntityType.PROJECT: project_view,
}


def view(entity_type: EntityType, entity: Any, tz: tzinfo) -> dict[str, Any]:
    return VIEWS[entity_type](entity, tz)
