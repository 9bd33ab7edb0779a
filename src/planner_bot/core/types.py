"""Shared types and enumerations."""

from __future__ import annotations

from enum import StrEnum


class EntityType(StrEnum):
    TASK = "task"
    EVENT = "event"
    NOTE = "note"
    PROJECT = "project"

    @property
    def plural(self) -> str:
        return f"{self.value}s"


class Role(StrEnum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


class TaskStatus(StrEnum):
    TODO = "todo"
    IN_PROGRESS = "in_progress"
    DONE = "done"
    CANCELLED = "cancelled"


class TaskPriority(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class NoteType(StrEnum):
    NOTE = "note"
    DOCUMENT = "document"
    RESEARCH = "research"
    IDEA = "idea"
    SNIPPET = "snippet"


class ProjectStatus(StrEnum):
    PLANNING = "planning"
    ACTIVE = "active"
    ON_HOLD = "on_hold"
    COMPLETED = "completed"
    ARCHIVED = "archived"
    CANCELLED = "cancelled"
