"""Productivity statistics: one independently implemented function per metric."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Awaitable, Callable

from planner_bot.ai.tools.base import Tool, ToolContext, ToolInput, ToolResult
from planner_bot.ai.tools.projections import iso
from planner_bot.core.dates import start_of_day, start_of_month, start_of_week
from planner_bot.core.errors import NotFoundError
from planner_bot.core.types import EntityType


@dataclass
class MetricRequest:
    ctx: ToolContext
    project_id: str | None = None

    @property
    def stats(self):
        return self.ctx.services.stats


MetricFn = Callable[[MetricRequest], Awaitable[dict[str, Any]]]
METRICS: dict[str, MetricFn] = {}


def metric(name: str) -> Callable[[MetricFn], MetricFn]:
    def register(fn: MetricFn) -> MetricFn:
        METRICS[name] = fn
        return fn

    return register


@metric("tasks_completed_today")
async def tasks_completed_today(req: MetricRequest) -> dict[str, Any]:
    since = start_of_day(req.ctx.now, req.ctx.zone)
    return {"value": await req.stats.count_completed_since(req.ctx.user_id, since, req.project_id)}


@metric("tasks_completed_this_week")
async def tasks_completed_this_week(req: MetricRequest) -> dict[str, Any]:
    since = start_of_week(req.ctx.now, req.ctx.zone)
    return {"value": await req.stats.count_completed_since(req.ctx.user_id, since, req.project_id)}


@metric("tasks_completed_this_month")
async def tasks_completed_this_month(req: MetricRequest) -> dict[str, Any]:
    since = start_of_month(req.ctx.now, req.ctx.zone)
    return {"value": await req.stats.count_completed_since(req.ctx.user_id, since, req.project_id)}


@metric("overdue_tasks")
async def overdue_tasks(req: MetricRequest) -> dict[str, Any]:
    total, tasks = await req.stats.overdue_tasks(req.ctx.user_id, req.ctx.now, req.project_id)
    return {
        "count": total,
        "tasks": [
            {"id": t.id, "title": t.title, "dueDate": iso(t.due_date, req.ctx.zone), "priority": t.priority}
            for t in tasks
        ],
    }


@metric("upcoming_events")
async def upcoming_events(req: MetricRequest) -> dict[str, Any]:
    now = req.ctx.now
    total, events = await req.stats.upcoming_events(req.ctx.user_id, now, now + timedelta(days=7), req.project_id)
    return {
        "count": total,
        "events": [
            {"id": e.id, "title": e.title, "startTime": iso(e.start_time, req.ctx.zone), "location": e.location}
            for e in events
        ],
    }


@metric("project_progress")
async def project_progress(req: MetricRequest) -> dict[str, Any]:
    return {"projects": await req.stats.project_progress(req.ctx.user_id, req.project_id)}


@metric("tasks_by_priority")
async def tasks_by_priority(req: MetricRequest) -> dict[str, Any]:
    breakdown = await req.stats.task_breakdown(req.ctx.user_id, "priority", req.project_id)
    return {"breakdown": breakdown, "total": sum(breakdown.values())}


@metric("tasks_by_status")
async def tasks_by_status(req: MetricRequest) -> dict[str, Any]:
    breakdown = await req.stats.task_breakdown(req.ctx.user_id, "status", req.project_id)
    return {"breakdown": breakdown, "total": sum(breakdown.values())}


class GetStatisticsInput(ToolInput):
    # Free string so that unknown metric names reach the handler and get a named error
    metric: str
    project_name: str | None = None


class GetStatisticsTool(Tool):
    input_model = GetStatisticsInput

    @property
    def name(self) -> str:
        return "get_statistics"

    @property
    def description(self) -> str:
        return (
            "Get productivity statistics and insights. Use when the user asks about their progress, "
            "completion rates, overdue items, or wants a summary of their work. "
            "Can filter by project for project-specific stats."
        )

    @property
    def input_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "metric": {
                    "type": "string",
                    "enum": list(METRICS),
                    "description": "The metric/statistic to retrieve",
                },
                "projectName": {
                    "type": "string",
                    "description": "Optional: filter stats by a specific project name",
                },
            },
            "required": ["metric"],
        }

    async def execute(self, params: GetStatisticsInput, ctx: ToolContext) -> ToolResult:
        compute = METRICS.get(params.metric)
        if compute is None:
            return ToolResult.fail(f"Unknown metric: {params.metric}")

        project_id = None
        if params.project_name:
            project_id = await ctx.require(EntityType.PROJECT, params.project_name)
            if await ctx.services.projects.get(ctx.user_id, project_id) is None:
                raise NotFoundError(EntityType.PROJECT, params.project_name)

        data = {"metric": params.metric, **await compute(MetricRequest(ctx, project_id))}
        if params.project_name:
            data["project"] = await ctx.project_name(project_id)
        return ToolResult.ok(data)
