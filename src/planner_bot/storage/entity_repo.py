"""Owner-scoped repositories for tasks, events, notes and projects."""

from __future__ import annotations

import random
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, ClassVar, Generic, Optional, TypeVar

from planner_bot.core.types import EntityType
from planner_bot.log import get_logger
from planner_bot.storage.database import Database
from planner_bot.storage.models import (
    Event,
    Note,
    Project,
    Task,
    from_db,
    new_id,
    to_db,
    utcnow,
)

logger = get_logger(__name__)

T = TypeVar("T")

PROJECT_COLORS = ["#3b82f6", "#8b5cf6", "#ec4899", "#f59e0b", "#10b981", "#06b6d4", "#6366f1"]
DEFAULT_EVENT_DURATION = timedelta(hours=1)


@dataclass
class EntityFilters:
    status: Optional[str] = None
    priority: Optional[str] = None
    project_id: Optional[str] = None
    project_status: Optional[str] = None
    note_type: Optional[str] = None
    date_start: Optional[datetime] = None
    date_end: Optional[datetime] = None
    tags: Optional[list[str]] = None


def _like_pattern(query: str) -> str:
    escaped = query.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def _db_value(value: Any) -> Any:
    if isinstance(value, datetime):
        return to_db(value)
    if isinstance(value, bool):
        return int(value)
    return value


class EntityRepository(ABC, Generic[T]):
    """Shared get/update/delete/list/search behaviour, always filtered by ``user_id``."""

    entity_type: ClassVar[EntityType]
    table: ClassVar[str]
    search_columns: ClassVar[tuple[str, ...]]
    updatable: ClassVar[frozenset[str]]
    # EntityFilters attribute -> column
    filter_columns: ClassVar[dict[str, str]] = {}
    date_column: ClassVar[Optional[str]] = None
    # API sort key -> column
    sort_columns: ClassVar[dict[str, str]] = {"createdAt": "created_at", "updatedAt": "updated_at"}

    def __init__(self, db: Database):
        self._db = db

    async def get(self, user_id: str, entity_id: str) -> T | None:
        cursor = await self._db.conn.execute(
            f"SELECT * FROM {self.table} WHERE id = ? AND user_id = ? AND deleted_at IS NULL",
            (entity_id, user_id),
        )
        row = await cursor.fetchone()
        return self._row_to_entity(row) if row else None

    async def update(self, user_id: str, entity_id: str, fields: dict[str, Any]) -> T | None:
        """Apply a partial update. Returns the updated entity, or None if not found."""
        unknown = set(fields) - self.updatable
        if unknown:
            raise ValueError(f"Cannot update {self.entity_type} fields: {', '.join(sorted(unknown))}")

        values = {k: _db_value(v) for k, v in fields.items()}
        values["updated_at"] = to_db(utcnow())
        assignments = ", ".join(f"{column} = ?" for column in values)
        async with self._db.transaction() as conn:
            cursor = await conn.execute(
                f"""UPDATE {self.table} SET {assignments}
                    WHERE id = ? AND user_id = ? AND deleted_at IS NULL""",
                (*values.values(), entity_id, user_id),
            )
        if cursor.rowcount == 0:
            return None
        return await self.get(user_id, entity_id)

    async def delete(self, user_id: str, entity_id: str) -> bool:
        """Soft-delete (move to trash). Returns False when nothing matched."""
        async with self._db.transaction() as conn:
            cursor = await conn.execute(
                f"""UPDATE {self.table} SET deleted_at = ?
                    WHERE id = ? AND user_id = ? AND deleted_at IS NULL""",
                (to_db(utcnow()), entity_id, user_id),
            )
        return cursor.rowcount > 0

    async def list(
        self,
        user_id: str,
        filters: EntityFilters | None = None,
        sort_by: str | None = None,
        sort_order: str = "desc",
        limit: int = 10,
    ) -> list[T]:
        clauses, params = self._filter_clauses(user_id, filters)
        column = self.sort_columns.get(sort_by or "", "updated_at")
        direction = "ASC" if sort_order == "asc" else "DESC"
        cursor = await self._db.conn.execute(
            f"""SELECT * FROM {self.table}
                WHERE {' AND '.join(clauses)}
                ORDER BY {column} {direction}
                LIMIT ?""",
            (*params, limit),
        )
        rows = await cursor.fetchall()
        return [self._row_to_entity(row) for row in rows]

    async def search(
        self,
        user_id: str,
        query: str,
        filters: EntityFilters | None = None,
        limit: int = 10,
    ) -> list[T]:
        """Case-insensitive substring match over the searchable text columns."""
        clauses, params = self._filter_clauses(user_id, filters)
        pattern = _like_pattern(query)
        clauses.append(
            "(" + " OR ".join(f"{column} LIKE ? ESCAPE '\\'" for column in self.search_columns) + ")"
        )
        params.extend([pattern] * len(self.search_columns))
        cursor = await self._db.conn.execute(
            f"""SELECT * FROM {self.table}
                WHERE {' AND '.join(clauses)}
                ORDER BY updated_at DESC
                LIMIT ?""",
            (*params, limit),
        )
        rows = await cursor.fetchall()
        return [self._row_to_entity(row) for row in rows]

    def _filter_clauses(self, user_id: str, filters: EntityFilters | None) -> tuple[list[str], list[Any]]:
        clauses = ["user_id = ?", "deleted_at IS NULL"]
        params: list[Any] = [user_id]
        if filters is None:
            return clauses, params

        for attr, column in self.filter_columns.items():
            value = getattr(filters, attr)
            if value is not None:
                clauses.append(f"{column} = ?")
                params.append(value)

        if self.date_column:
            if filters.date_start is not None:
                clauses.append(f"{self.date_column} >= ?")
                params.append(to_db(filters.date_start))
            if filters.date_end is not None:
                clauses.append(f"{self.date_column} < ?")
                params.append(to_db(filters.date_end))

        if filters.tags:
            placeholders = ", ".join("?" for _ in filters.tags)
            clauses.append(
                f"""id IN (SELECT et.entity_id FROM entity_tags et
                           JOIN tags t ON t.id = et.tag_id
                           WHERE et.entity_type = ? AND t.user_id = ?
                             AND t.name IN ({placeholders}))"""
            )
            params.extend([self.entity_type.value, user_id, *filters.tags])

        return clauses, params

    async def _insert(self, values: dict[str, Any]) -> None:
        columns = ", ".join(values)
        placeholders = ", ".join("?" for _ in values)
        async with self._db.transaction() as conn:
            await conn.execute(
                f"INSERT INTO {self.table} ({columns}) VALUES ({placeholders})",
                tuple(_db_value(v) for v in values.values()),
            )

    @staticmethod
    @abstractmethod
    def _row_to_entity(row) -> T:
        ...


class TaskRepository(EntityRepository[Task]):
    entity_type = EntityType.TASK
    table = "tasks"
    search_columns = ("title", "description")
    updatable = frozenset(
        {"title", "description", "due_date", "duration", "status", "priority", "project_id", "completed_at"}
    )
    filter_columns = {"status": "status", "priority": "priority", "project_id": "project_id"}
    date_column = "due_date"
    sort_columns = {
        "createdAt": "created_at",
        "updatedAt": "updated_at",
        "dueDate": "due_date",
        "title": "title",
    }

    async def create(
        self,
        user_id: str,
        title: str,
        description: str | None = None,
        due_date: datetime | None = None,
        duration: int | None = None,
        priority: str = "medium",
        status: str = "todo",
        project_id: str | None = None,
    ) -> Task:
        now = utcnow()
        task = Task(
            id=new_id(),
            user_id=user_id,
            title=title,
            description=description,
            due_date=due_date,
            duration=duration,
            status=status,
            priority=priority,
            completed_at=now if status == "done" else None,
            project_id=project_id,
            created_at=now,
            updated_at=now,
        )
        await self._insert(
            {
                "id": task.id,
                "user_id": user_id,
                "title": task.title,
                "description": task.description,
                "due_date": task.due_date,
                "duration": task.duration,
                "status": task.status,
                "priority": task.priority,
                "completed_at": task.completed_at,
                "project_id": task.project_id,
                "created_at": now,
                "updated_at": now,
            }
        )
        logger.debug("task_created", task_id=task.id)
        return task

    async def update(self, user_id: str, entity_id: str, fields: dict[str, Any]) -> Task | None:
        fields = dict(fields)
        if "status" in fields:
            current = await self.get(user_id, entity_id)
            if current is None:
                return None
            # completed_at follows the transition into and out of "done"
            if fields["status"] == "done":
                fields["completed_at"] = current.completed_at or utcnow()
            else:
                fields["completed_at"] = None
        return await super().update(user_id, entity_id, fields)

    async def mark_complete(self, user_id: str, task_id: str) -> Task | None:
        return await self.update(user_id, task_id, {"status": "done"})

    @staticmethod
    def _row_to_entity(row) -> Task:
        return Task(
            id=row["id"],
            user_id=row["user_id"],
            title=row["title"],
            description=row["description"],
            due_date=from_db(row["due_date"]),
            duration=row["duration"],
            status=row["status"],
            priority=row["priority"],
            completed_at=from_db(row["completed_at"]),
            project_id=row["project_id"],
            created_at=from_db(row["created_at"]),
            updated_at=from_db(row["updated_at"]),
        )


class EventRepository(EntityRepository[Event]):
    entity_type = EntityType.EVENT
    table = "events"
    search_columns = ("title", "description", "location")
    updatable = frozenset({"title", "description", "start_time", "end_time", "all_day", "location", "project_id"})
    filter_columns = {"project_id": "project_id"}
    date_column = "start_time"
    sort_columns = {
        "createdAt": "created_at",
        "updatedAt": "updated_at",
        "startTime": "start_time",
        "title": "title",
    }

    async def create(
        self,
        user_id: str,
        title: str,
        start_time: datetime,
        end_time: datetime | None = None,
        description: str | None = None,
        all_day: bool = False,
        location: str | None = None,
        project_id: str | None = None,
    ) -> Event:
        now = utcnow()
        event = Event(
            id=new_id(),
            user_id=user_id,
            title=title,
            start_time=start_time,
            end_time=end_time or start_time + DEFAULT_EVENT_DURATION,
            description=description,
            all_day=all_day,
            location=location,
            project_id=project_id,
            created_at=now,
            updated_at=now,
        )
        await self._insert(
            {
                "id": event.id,
                "user_id": user_id,
                "title": event.title,
                "description": event.description,
                "start_time": event.start_time,
                "end_time": event.end_time,
                "all_day": event.all_day,
                "location": event.location,
                "project_id": event.project_id,
                "created_at": now,
                "updated_at": now,
            }
        )
        logger.debug("event_created", event_id=event.id)
        return event

    @staticmethod
    def _row_to_entity(row) -> Event:
        return Event(
            id=row["id"],
            user_id=row["user_id"],
            title=row["title"],
            start_time=from_db(row["start_time"]),
            end_time=from_db(row["end_time"]),
            description=row["description"],
            all_day=bool(row["all_day"]),
            location=row["location"],
            project_id=row["project_id"],
            created_at=from_db(row["created_at"]),
            updated_at=from_db(row["updated_at"]),
        )


class NoteRepository(EntityRepository[Note]):
    entity_type = EntityType.NOTE
    table = "notes"
    search_columns = ("title", "content")
    updatable = frozenset({"title", "content", "type", "project_id"})
    filter_columns = {"project_id": "project_id", "note_type": "type"}
    sort_columns = {"createdAt": "created_at", "updatedAt": "updated_at", "title": "title"}

    async def create(
        self,
        user_id: str,
        content: str,
        title: str | None = None,
        type: str = "note",
        project_id: str | None = None,
    ) -> Note:
        now = utcnow()
        note = Note(
            id=new_id(),
            user_id=user_id,
            title=title or derive_note_title(content),
            content=content,
            type=type,
            project_id=project_id,
            created_at=now,
            updated_at=now,
        )
        await self._insert(
            {
                "id": note.id,
                "user_id": user_id,
                "title": note.title,
                "content": note.content,
                "type": note.type,
                "project_id": note.project_id,
                "created_at": now,
                "updated_at": now,
            }
        )
        logger.debug("note_created", note_id=note.id)
        return note

    @staticmethod
    def _row_to_entity(row) -> Note:
        return Note(
            id=row["id"],
            user_id=row["user_id"],
            title=row["title"],
            content=row["content"],
            type=row["type"],
            project_id=row["project_id"],
            created_at=from_db(row["created_at"]),
            updated_at=from_db(row["updated_at"]),
        )


def derive_note_title(content: str) -> str:
    """First line of the content without a leading markdown heading marker."""
    first_line = content.split("\n", 1)[0][:100].lstrip("#").strip()
    return first_line or "Untitled Note"


class ProjectRepository(EntityRepository[Project]):
    entity_type = EntityType.PROJECT
    table = "projects"
    search_columns = ("name", "description")
    updatable = frozenset({"name", "description", "status", "color", "start_date", "end_date"})
    filter_columns = {"project_status": "status"}
    sort_columns = {"createdAt": "created_at", "updatedAt": "updated_at", "title": "name"}

    async def create(
        self,
        user_id: str,
        name: str,
        description: str | None = None,
        status: str = "active",
        color: str | None = None,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
    ) -> Project:
        now = utcnow()
        project = Project(
            id=new_id(),
            user_id=user_id,
            name=name,
            description=description,
            status=status,
            color=color or random.choice(PROJECT_COLORS),
            start_date=start_date,
            end_date=end_date,
            created_at=now,
            updated_at=now,
        )
        await self._insert(
            {
                "id": project.id,
                "user_id": user_id,
                "name": project.name,
                "description": project.description,
                "status": project.status,
                "color": project.color,
                "start_date": project.start_date,
                "end_date": project.end_date,
                "created_at": now,
                "updated_at": now,
            }
        )
        logger.debug("project_created", project_id=project.id)
        return project

    @staticmethod
    def _row_to_entity(row) -> Project:
        return Project(
            id=row["id"],
            user_id=row["user_id"],
            name=row["name"],
            description=row["description"],
            status=row["status"],
            color=row["color"],
            start_date=from_db(row["start_date"]),
            end_date=from_db(row["end_date"]),
            created_at=from_db(row["created_at"]),
            updated_at=from_db(row["updated_at"]),
        )


class TagRepository:
    """Tags shared by all entity types."""

    def __init__(self, db: Database):
        self._db = db

    async def attach(self, user_id: str, entity_type: EntityType, entity_id: str, names: list[str]) -> list[str]:
        """Link tags (created on demand) to an entity. Returns the normalized names."""
        attached: list[str] = []
        async with self._db.transaction() as conn:
            for raw in names:
                name = raw.strip().lower()
                if not name or name in attached:
                    continue
                await conn.execute(
                    "INSERT OR IGNORE INTO tags (id, user_id, name) VALUES (?, ?, ?)",
                    (new_id(), user_id, name),
                )
                cursor = await conn.execute("SELECT id FROM tags WHERE user_id = ? AND name = ?", (user_id, name))
                row = await cursor.fetchone()
                await conn.execute(
                    "INSERT OR IGNORE INTO entity_tags (tag_id, entity_type, entity_id) VALUES (?, ?, ?)",
                    (row["id"], entity_type.value, entity_id),
                )
                attached.append(name)
        return attached

    async def names_for(self, user_id: str, entity_type: EntityType, entity_id: str) -> list[str]:
        cursor = await self._db.conn.execute(
            """SELECT t.name FROM tags t
               JOIN entity_tags et ON et.tag_id = t.id
               WHERE t.user_id = ? AND et.entity_type = ? AND et.entity_id = ?
               ORDER BY t.name""",
            (user_id, entity_type.value, entity_id),
        )
        rows = await cursor.fetchall()
        return [row["name"] for row in rows]
