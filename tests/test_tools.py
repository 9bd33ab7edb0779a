import json
from datetime import datetime, timedelta, timezone

import pytest
from conftest import NOW

from planner_bot.ai.tools.query import MAX_LIMIT, clamp_limit
from planner_bot.ai.tools.statistics import METRICS
from planner_bot.core.types import EntityType


async def call(registry, ctx, name, args):
    return await registry.dispatch(name, json.dumps(args), ctx)


def test_registry_catalog(registry):
    names = {tool["function"]["name"] for tool in registry.to_api_list()}
    assert names == {
        "create_task",
        "create_event",
        "create_note",
        "create_project",
        "query_entities",
        "search_entities",
        "update_task",
        "update_event",
        "update_note",
        "update_project",
        "delete_entity",
        "get_statistics",
    }
    for tool in registry.to_api_list():
        assert tool["type"] == "function"
        assert tool["function"]["parameters"]["type"] == "object"


@pytest.mark.asyncio
async def test_unknown_tool(registry, ctx):
    result = await registry.dispatch("launch_rocket", "{}", ctx)
    assert not result.success
    assert result.error == "Unknown tool: launch_rocket"


@pytest.mark.asyncio
async def test_invalid_json_arguments(registry, ctx):
    result = await registry.dispatch("create_task", "{not json", ctx)
    assert not result.success
    assert result.error.startswith("Invalid JSON arguments")


@pytest.mark.asyncio
async def test_schema_violation_is_reported(registry, ctx):
    result = await call(registry, ctx, "create_task", {"tasks": []})
    assert not result.success
    assert result.error.startswith("Invalid input")


@pytest.mark.asyncio
async def test_create_tasks_with_local_due_date(registry, ctx, services, user):
    result = await call(
        registry,
        ctx,
        "create_task",
        {"tasks": [{"title": "Chiamare Luca", "dueDate": "2025-01-16T09:00:00", "priority": "high"}]},
    )
    assert result.success
    assert result.data["created"] == 1
    created = result.data["tasks"][0]
    assert created["dueDate"] == "2025-01-16T09:00+01:00"
    assert created["priority"] == "high"

    stored = await services.tasks.get(user.id, created["id"])
    assert stored.due_date == datetime(2025, 1, 16, 8, 0, tzinfo=timezone.utc)


@pytest.mark.asyncio
async def test_batch_create_partial_failure(registry, ctx, services, user):
    result = await call(
        registry,
        ctx,
        "create_task",
        {"tasks": [{"title": "Uno"}, {"title": ""}, {"title": "Tre", "priority": "low"}]},
    )
    assert not result.success
    assert result.data["created"] == 2
    assert len(result.data["errors"]) == 1
    assert "#2" in result.data["errors"][0]
    assert len(await services.tasks.list(user.id)) == 2


@pytest.mark.asyncio
async def test_create_task_unknown_project_is_unassigned(registry, ctx):
    result = await call(registry, ctx, "create_task", {"tasks": [{"title": "Spesa", "projectName": "Nessuno"}]})
    assert result.success
    assert result.data["tasks"][0]["project"] is None


@pytest.mark.asyncio
async def test_create_task_assigns_project_and_tags(registry, ctx, services, user):
    project = await services.projects.create(user.id, name="Ristrutturazione")
    result = await call(
        registry,
        ctx,
        "create_task",
        {"tasks": [{"title": "Preventivo", "projectName": "ristruttura", "tags": ["Casa"]}]},
    )
    assert result.success
    created = result.data["tasks"][0]
    assert created["project"] == "Ristrutturazione"
    assert created["tags"] == ["casa"]
    assert (await services.tasks.get(user.id, created["id"])).project_id == project.id


@pytest.mark.asyncio
async def test_create_event_rejects_end_before_start(registry, ctx):
    result = await call(
        registry,
        ctx,
        "create_event",
        {
            "events": [
                {"title": "Riunione", "startTime": "2025-01-16T15:00:00", "endTime": "2025-01-16T14:00:00"},
                {"title": "Dentista", "startTime": "2025-01-17T10:00:00"},
            ]
        },
    )
    assert not result.success
    assert result.data["created"] == 1
    assert result.data["events"][0]["endTime"] == "2025-01-17T11:00+01:00"
    assert "endTime" in result.data["errors"][0]


@pytest.mark.asyncio
async def test_create_note_derives_title(registry, ctx):
    result = await call(registry, ctx, "create_note", {"content": "# Idee regalo\n- libro", "type": "idea"})
    assert result.success
    note = result.data["notes"][0]
    assert note["title"] == "Idee regalo"
    assert note["type"] == "idea"


@pytest.mark.asyncio
async def test_create_project_defaults(registry, ctx):
    result = await call(registry, ctx, "create_project", {"name": "Viaggio in Giappone"})
    assert result.success
    project = result.data["projects"][0]
    assert project["status"] == "planning"
    assert project["color"].startswith("#")


def test_clamp_limit():
    assert clamp_limit(None) == 10
    assert clamp_limit(0) == 10
    assert clamp_limit(5) == 5
    assert clamp_limit(1000) == MAX_LIMIT


@pytest.mark.asyncio
async def test_query_limit_is_clamped(registry, ctx, services, user):
    for i in range(55):
        await services.tasks.create(user.id, title=f"Task {i}")

    result = await call(registry, ctx, "query_entities", {"entityTypes": ["task"], "limit": 1000})
    assert result.success
    assert len(result.data["results"]["tasks"]) == 50
    assert result.data["total"] == 50


@pytest.mark.asyncio
async def test_query_sorts_and_filters(registry, ctx, services, user):
    await services.tasks.create(user.id, title="B", due_date=NOW + timedelta(days=2))
    await services.tasks.create(user.id, title="A", due_date=NOW + timedelta(days=1))
    await services.tasks.create(user.id, title="Done", status="done")

    result = await call(
        registry,
        ctx,
        "query_entities",
        {"entityTypes": ["task"], "filters": {"status": "todo"}, "sortBy": "dueDate", "sortOrder": "asc"},
    )
    assert [t["title"] for t in result.data["results"]["tasks"]] == ["A", "B"]
    assert result.data["results"]["events"] == []


@pytest.mark.asyncio
async def test_query_with_unknown_project_filter_fails(registry, ctx):
    result = await call(
        registry, ctx, "query_entities", {"entityTypes": ["task"], "filters": {"projectName": "Fantasma"}}
    )
    assert not result.success
    assert "Fantasma" in result.error


@pytest.mark.asyncio
async def test_search_across_types(registry, ctx, services, user):
    await services.tasks.create(user.id, title="Preparare riunione budget")
    await services.notes.create(user.id, content="Appunti budget Q1")
    await services.events.create(user.id, title="Pranzo", start_time=NOW)

    result = await call(registry, ctx, "search_entities", {"query": "budget"})
    assert result.success
    assert result.data["total"] == 2
    assert len(result.data["results"]["tasks"]) == 1
    assert len(result.data["results"]["notes"]) == 1


@pytest.mark.asyncio
async def test_update_task_mark_complete_by_title(registry, ctx, services, user):
    task = await services.tasks.create(user.id, title="Report trimestrale")
    result = await call(
        registry, ctx, "update_task", {"taskIdentifier": "report", "updates": {"status": "done"}}
    )
    assert result.success
    assert result.data["message"] == 'Task "Report trimestrale" marked as complete'
    stored = await services.tasks.get(user.id, task.id)
    assert stored.status == "done"
    assert stored.completed_at is not None


@pytest.mark.asyncio
async def test_update_task_partial(registry, ctx, services, user):
    task = await services.tasks.create(user.id, title="Report", description="keep me")
    result = await call(
        registry, ctx, "update_task", {"taskIdentifier": task.id, "updates": {"priority": "urgent"}}
    )
    assert result.success
    stored = await services.tasks.get(user.id, task.id)
    assert stored.priority == "urgent"
    assert stored.description == "keep me"


@pytest.mark.asyncio
async def test_update_without_fields_fails(registry, ctx, services, user):
    task = await services.tasks.create(user.id, title="Report")
    result = await call(registry, ctx, "update_task", {"taskIdentifier": task.id, "updates": {}})
    assert not result.success
    assert result.error == "No fields to update"


@pytest.mark.asyncio
async def test_update_event_end_before_start(registry, ctx, services, user):
    event = await services.events.create(user.id, title="Riunione", start_time=NOW)
    result = await call(
        registry,
        ctx,
        "update_event",
        {"eventIdentifier": event.id, "updates": {"endTime": "2025-01-14T08:00:00"}},
    )
    assert not result.success
    assert "endTime" in result.error


@pytest.mark.asyncio
async def test_update_missing_identifier(registry, ctx):
    result = await call(
        registry,
        ctx,
        "update_note",
        {"noteIdentifier": "3f2b8a1e-9c4d-4e7f-a1b2-c3d4e5f60718", "updates": {"title": "Nuovo"}},
    )
    assert not result.success
    assert "No note found" in result.error


@pytest.mark.asyncio
async def test_delete_ambiguous_returns_matches(registry, ctx, services, user):
    await services.tasks.create(user.id, title="Foo uno")
    await services.tasks.create(user.id, title="Foo due")

    result = await call(registry, ctx, "delete_entity", {"entityType": "task", "entityIdentifier": "Foo"})
    assert not result.success
    assert len(result.data["matches"]) == 2
    assert {m["title"] for m in result.data["matches"]} == {"Foo uno", "Foo due"}
    assert len(await services.tasks.list(user.id)) == 2


@pytest.mark.asyncio
async def test_delete_by_title(registry, ctx, services, user):
    project = await services.projects.create(user.id, name="Vecchio progetto")
    result = await call(
        registry, ctx, "delete_entity", {"entityType": "project", "entityIdentifier": "vecchio"}
    )
    assert result.success
    assert result.data == {
        "message": "Project deleted successfully",
        "id": project.id,
        "title": "Vecchio progetto",
    }
    assert await services.projects.get(user.id, project.id) is None


@pytest.mark.asyncio
async def test_delete_invalid_entity_type(registry, ctx):
    result = await call(registry, ctx, "delete_entity", {"entityType": "contact", "entityIdentifier": "x"})
    assert not result.success
    assert result.error.startswith("Invalid input")


def test_all_metrics_registered():
    assert set(METRICS) == {
        "tasks_completed_today",
        "tasks_completed_this_week",
        "tasks_completed_this_month",
        "overdue_tasks",
        "upcoming_events",
        "project_progress",
        "tasks_by_priority",
        "tasks_by_status",
    }


@pytest.mark.asyncio
async def test_unknown_metric(registry, ctx):
    result = await call(registry, ctx, "get_statistics", {"metric": "bogus_metric"})
    assert not result.success
    assert result.error == "Unknown metric: bogus_metric"


@pytest.mark.asyncio
async def test_overdue_tasks_metric(registry, ctx, services, user):
    await services.tasks.create(user.id, title="Scaduto", due_date=NOW - timedelta(days=2))
    await services.tasks.create(user.id, title="Futuro", due_date=NOW + timedelta(days=2))
    await services.tasks.create(user.id, title="Fatto", due_date=NOW - timedelta(days=2), status="done")

    result = await call(registry, ctx, "get_statistics", {"metric": "overdue_tasks"})
    assert result.success
    assert result.data["count"] == 1
    assert result.data["tasks"][0]["title"] == "Scaduto"


@pytest.mark.asyncio
async def test_tasks_by_priority_for_project(registry, ctx, services, user):
    project = await services.projects.create(user.id, name="Casa")
    await services.tasks.create(user.id, title="A", priority="high", project_id=project.id)
    await services.tasks.create(user.id, title="B", priority="high", project_id=project.id)
    await services.tasks.create(user.id, title="C", priority="low")

    result = await call(registry, ctx, "get_statistics", {"metric": "tasks_by_priority", "projectName": "Casa"})
    assert result.success
    assert result.data["breakdown"] == {"high": 2}
    assert result.data["total"] == 2
    assert result.data["project"] == "Casa"


@pytest.mark.asyncio
async def test_completed_today_metric(registry, ctx, services, user):
    task = await services.tasks.create(user.id, title="Fatto oggi")
    await services.tasks.mark_complete(user.id, task.id)

    # Completion time is the wall clock, so compute "today" relative to it
    ctx.now = datetime.now(timezone.utc)
    result = await call(registry, ctx, "get_statistics", {"metric": "tasks_completed_today"})
    assert result.data["value"] == 1


@pytest.mark.asyncio
async def test_tool_results_are_owner_scoped(registry, ctx, services, other_user):
    await services.tasks.create(other_user.id, title="Segreto")
    result = await call(registry, ctx, "search_entities", {"query": "Segreto", "entityTypes": ["task"]})
    assert result.data["total"] == 0
    result = await call(registry, ctx, "delete_entity", {"entityType": "task", "entityIdentifier": "Segreto"})
    assert not result.success
    assert (await services.search.search(other_user.id, "Segreto", [EntityType.TASK])).total == 1


@pytest.mark.asyncio
async def test_batch_create_skips_non_object_items(registry, ctx, services, user):
    result = await call(registry, ctx, "create_task", {"tasks": [{"title": "a"}, "oops", {"title": "b"}]})
    assert not result.success
    assert result.data["created"] == 2
    assert len(result.data["errors"]) == 1
    assert "#2" in result.data["errors"][0]
    assert sorted(t.title for t in await services.tasks.list(user.id)) == ["a", "b"]


@pytest.mark.asyncio
async def test_query_total_is_capped_across_types(registry, ctx, services, user):
    for i in range(30):
        await services.tasks.create(user.id, title=f"Task {i}")
        await services.notes.create(user.id, content=f"Nota {i}")

    result = await call(registry, ctx, "query_entities", {"entityTypes": ["task", "note"], "limit": 1000})
    assert result.success
    assert result.data["total"] == MAX_LIMIT
    assert len(result.data["results"]["tasks"]) == 30
    assert len(result.data["results"]["notes"]) == 20
    assert result.data["truncated"] is True


@pytest.mark.asyncio
async def test_search_total_is_capped_across_types(registry, ctx, services, user):
    for i in range(30):
        await services.tasks.create(user.id, title=f"Spesa {i}")
        await services.notes.create(user.id, content=f"Spesa settimanale {i}")

    result = await call(
        registry, ctx, "search_entities", {"query": "spesa", "entityTypes": ["task", "note"], "limit": 1000}
    )
    assert result.success
    assert result.data["total"] == MAX_LIMIT
    assert sum(len(rows) for rows in result.data["results"].values()) == MAX_LIMIT


@pytest.mark.asyncio
async def test_blank_reference_never_mutates(registry, ctx, services, user):
    task = await services.tasks.create(user.id, title="Importante")

    deleted = await call(registry, ctx, "delete_entity", {"entityType": "task", "entityIdentifier": "   "})
    updated = await call(
        registry, ctx, "update_task", {"taskIdentifier": "  ", "updates": {"title": "Sovrascritto"}}
    )

    assert not deleted.success
    assert not updated.success
    stored = await services.tasks.get(user.id, task.id)
    assert stored is not None
    assert stored.title == "Importante"


@pytest.mark.asyncio
async def test_update_ambiguous_returns_matches_without_writing(registry, ctx, services, user):
    first = await services.tasks.create(user.id, title="Foo uno")
    second = await services.tasks.create(user.id, title="Foo due")

    result = await call(
        registry, ctx, "update_task", {"taskIdentifier": "Foo", "updates": {"priority": "urgent"}}
    )
    assert not result.success
    assert len(result.data["matches"]) == 2
    for task in (first, second):
        assert (await services.tasks.get(user.id, task.id)).priority == "medium"


@pytest.mark.asyncio
async def test_update_clears_due_date_with_null(registry, ctx, services, user):
    task = await services.tasks.create(user.id, title="Report", due_date=NOW)

    result = await call(registry, ctx, "update_task", {"taskIdentifier": task.id, "updates": {"dueDate": None}})
    assert result.success
    assert (await services.tasks.get(user.id, task.id)).due_date is None


@pytest.mark.asyncio
async def test_update_rejects_clearing_required_field(registry, ctx, services, user):
    task = await services.tasks.create(user.id, title="Report")

    result = await call(registry, ctx, "update_task", {"taskIdentifier": task.id, "updates": {"title": None}})
    assert not result.success
    assert result.error == "title cannot be cleared"
    assert (await services.tasks.get(user.id, task.id)).title == "Report"
