"""Aggregate queries for the prompt snapshot and the statistics tool."""

from __future__ import annotations

from datetime import datetime, tzinfo
from typing import Any, Optional

from planner_bot.core.dates import start_of_day
from planner_bot.storage.database import Database
from planner_bot.storage.entity_repo import EventRepository, TaskRepository
from planner_bot.storage.models import Event, Task, UserStats, to_db

_OPEN = "status NOT IN ('done', 'cancelled')"
_LIVE = "deleted_at IS NULL"


class StatsRepository:
    def __init__(self, db: Database):
        self._db = db

    async def _scalar(self, sql: str, params: tuple[Any, ...]) -> int:
        cursor = await self._db.conn.execute(sql, params)
        row = await cursor.fetchone()
        return int(row[0] or 0)

    @staticmethod
    def _project_clause(project_id: Optional[str]) -> tuple[str, tuple[Any, ...]]:
        if project_id:
            return " AND project_id = ?", (project_id,)
        return "", ()

    async def snapshot(self, user_id: str, now: datetime, tz: tzinfo) -> UserStats:
        """Counts shown to the model at the start of every turn."""
        today = to_db(start_of_day(now, tz))
        tomorrow = to_db(start_of_day(now, tz, days=1))
        day_after = to_db(start_of_day(now, tz, days=2))

        task_sql = f"SELECT COUNT(*) FROM tasks WHERE user_id = ? AND {_LIVE}"
        event_sql = f"SELECT COUNT(*) FROM events WHERE user_id = ? AND {_LIVE}"

        cursor = await self._db.conn.execute(
            f"""SELECT name FROM projects
                WHERE user_id = ? AND status = 'active' AND {_LIVE}
                ORDER BY updated_at DESC""",
            (user_id,),
        )
        active = [row["name"] for row in await cursor.fetchall()]

        return UserStats(
            tasks_open=await self._scalar(f"{task_sql} AND {_OPEN}", (user_id,)),
            tasks_completed_today=await self._scalar(
                f"{task_sql} AND status = 'done' AND completed_at >= ?", (user_id, today)
            ),
            tasks_due_today=await self._scalar(
                f"{task_sql} AND {_OPEN} AND due_date >= ? AND due_date < ?", (user_id, today, tomorrow)
            ),
            tasks_due_tomorrow=await self._scalar(
                f"{task_sql} AND {_OPEN} AND due_date >= ? AND due_date < ?", (user_id, tomorrow, day_after)
            ),
            tasks_overdue=await self._scalar(f"{task_sql} AND {_OPEN} AND due_date < ?", (user_id, today)),
            events_today=await self._scalar(
                f"{event_sql} AND start_time >= ? AND start_time < ?", (user_id, today, tomorrow)
            ),
            events_tomorrow=await self._scalar(
                f"{event_sql} AND start_time >= ? AND start_time < ?", (user_id, tomorrow, day_after)
            ),
            active_projects=len(active),
            recent_project_names=active[:5],
        )

    async def count_completed_since(self, user_id: str, since: datetime, project_id: Optional[str] = None) -> int:
        extra, params = self._project_clause(project_id)
        return await self._scalar(
            f"""SELECT COUNT(*) FROM tasks
                WHERE user_id = ? AND {_LIVE} AND status = 'done' AND completed_at >= ?{extra}""",
            (user_id, to_db(since), *params),
        )

    async def overdue_tasks(
        self, user_id: str, now: datetime, project_id: Optional[str] = None, limit: int = 10
    ) -> tuple[int, list[Task]]:
        """Total overdue count plus the most overdue ``limit`` tasks."""
        extra, params = self._project_clause(project_id)
        where = f"user_id = ? AND {_LIVE} AND {_OPEN} AND due_date < ?{extra}"
        args = (user_id, to_db(now), *params)
        total = await self._scalar(f"SELECT COUNT(*) FROM tasks WHERE {where}", args)
        cursor = await self._db.conn.execute(
            f"SELECT * FROM tasks WHERE {where} ORDER BY due_date ASC LIMIT ?", (*args, limit)
        )
        rows = await cursor.fetchall()
        return total, [TaskRepository._row_to_entity(row) for row in rows]

    async def upcoming_events(
        self,
        user_id: str,
        start: datetime,
        end: datetime,
        project_id: Optional[str] = None,
        limit: int = 10,
    ) -> tuple[int, list[Event]]:
        extra, params = self._project_clause(project_id)
        where = f"user_id = ? AND {_LIVE} AND start_time >= ? AND start_time < ?{extra}"
        args = (user_id, to_db(start), to_db(end), *params)
        total = await self._scalar(f"SELECT COUNT(*) FROM events WHERE {where}", args)
        cursor = await self._db.conn.execute(
            f"SELECT * FROM events WHERE {where} ORDER BY start_time ASC LIMIT ?", (*args, limit)
        )
        rows = await cursor.fetchall()
        return total, [EventRepository._row_to_entity(row) for row in rows]

    async def task_breakdown(self, user_id: str, column: str, project_id: Optional[str] = None) -> dict[str, int]:
        if column not in ("status", "priority"):
            raise ValueError(f"Cannot group tasks by {column}")
        extra, params = self._project_clause(project_id)
        cursor = await self._db.conn.execute(
            f"""SELECT {column} AS bucket, COUNT(*) AS n FROM tasks
                WHERE user_id = ? AND {_LIVE}{extra}
                GROUP BY {column}""",
            (user_id, *params),
        )
        return {row["bucket"]: row["n"] for row in await cursor.fetchall()}

    async def project_progress(self, user_id: str, project_id: Optional[str] = None) -> list[dict[str, Any]]:
        """Done/total task counts per project (all non-archived projects when no id is given)."""
        where = f"p.user_id = ? AND p.{_LIVE}"
        params: tuple[Any, ...] = (user_id,)
        if project_id:
            where += " AND p.id = ?"
            params += (project_id,)
        else:
            where += " AND p.status NOT IN ('archived', 'cancelled')"
        cursor = await self._db.conn.execute(
            f"""SELECT p.id, p.name, p.status,
                       COUNT(t.id) AS total,
                       COALESCE(SUM(CASE WHEN t.status = 'done' THEN 1 ELSE 0 END), 0) AS done
                FROM projects p
                LEFT JOIN tasks t ON t.project_id = p.id AND t.deleted_at IS NULL
                WHERE {where}
                GROUP BY p.id
                ORDER BY p.updated_at DESC
                LIMIT 10""",
            params,
        )
        progress = []
        for row in await cursor.fetchall():
            total = row["total"]
            progress.append(
                {
                    "id": row["id"],
                    "name": row["name"],
                    "status": row["status"],
                    "total": total,
                    "done": row["done"],
                    "percent": round(100 * row["done"] / total) if total else 0,
                }
            )
        return progress
