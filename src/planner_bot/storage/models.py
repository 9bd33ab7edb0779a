"""Data models for storage layer."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


def to_db(value: Optional[datetime]) -> Optional[str]:
    """Serialize to a fixed-width UTC ISO string so that text order is time order."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def from_db(value: Optional[str]) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.fromisoformat(value)


@dataclass
class User:
    id: str
    name: str
    email: Optional[str] = None
    language: Optional[str] = None
    timezone: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)


@dataclass
class Project:
    id: str
    user_id: str
    name: str
    description: Optional[str] = None
    status: str = "active"
    color: str = "#3b82f6"
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    @property
    def title(self) -> str:
        return self.name


@dataclass
class Task:
    id: str
    user_id: str
    title: str
    description: Optional[str] = None
    due_date: Optional[datetime] = None
    duration: Optional[int] = None  # minutes
    status: str = "todo"
    priority: str = "medium"
    completed_at: Optional[datetime] = None
    project_id: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)


@dataclass
class Event:
    id: str
    user_id: str
    title: str
    start_time: datetime
    end_time: Optional[datetime] = None
    description: Optional[str] = None
    all_day: bool = False
    location: Optional[str] = None
    project_id: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)


@dataclass
class Note:
    id: str
    user_id: str
    title: Optional[str]
    content: Optional[str] = None
    type: str = "note"
    project_id: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)


@dataclass
class ToolUsage:
    name: str
    result: dict[str, Any]

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "result": self.result}


@dataclass
class Message:
    role: str  # "user" | "assistant"
    content: str
    id: str = field(default_factory=new_id)
    timestamp: datetime = field(default_factory=utcnow)
    tools_used: Optional[list[ToolUsage]] = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "role": self.role,
            "content": self.content,
            "timestamp": to_db(self.timestamp),
        }
        if self.tools_used:
            data["toolsUsed"] = [t.to_dict() for t in self.tools_used]
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Message:
        tools = data.get("toolsUsed")
        return cls(
            id=data["id"],
            role=data["role"],
            content=data["content"],
            timestamp=datetime.fromisoformat(data["timestamp"]),
            tools_used=[ToolUsage(name=t["name"], result=t["result"]) for t in tools] if tools else None,
        )


@dataclass
class Conversation:
    owner_id: str
    title: str
    id: str = field(default_factory=new_id)
    messages: list[Message] = field(default_factory=list)
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "ownerId": self.owner_id,
            "title": self.title,
            "messages": [m.to_dict() for m in self.messages],
            "updatedAt": to_db(self.updated_at),
        }


@dataclass
class UsageRecord:
    owner_id: str
    conversation_id: str
    input_tokens: int
    output_tokens: int
    model: str
    cost_cents: int = 0
    created_at: datetime = field(default_factory=utcnow)
    id: Optional[int] = None

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


@dataclass
class UsageSummary:
    total_messages: int
    total_tokens: int
    total_cost_cents: int

    @property
    def average_tokens_per_message(self) -> int:
        return round(self.total_tokens / (self.total_messages or 1))


@dataclass
class UserStats:
    tasks_open: int = 0
    tasks_completed_today: int = 0
    tasks_due_today: int = 0
    tasks_due_tomorrow: int = 0
    tasks_overdue: int = 0
    events_today: int = 0
    events_tomorrow: int = 0
    active_projects: int = 0
    recent_project_names: list[str] = field(default_factory=list)
