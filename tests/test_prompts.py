from datetime import timedelta

import pytest
from conftest import NOW

from planner_bot.ai.prompts import PromptBuilder, PromptContext, TemporalContext, build_system_prompt
from planner_bot.storage.models import UserStats


def test_temporal_context_italian():
    temporal = TemporalContext.create("Europe/Rome", "it", NOW)
    assert temporal.day_of_week == "mercoledì"
    assert temporal.date_text == "15 gennaio 2025"
    assert temporal.time_text == "10:30"


def test_temporal_context_english_and_unknown_language():
    assert TemporalContext.create("Europe/Rome", "en", NOW).date_text == "January 15, 2025"
    assert TemporalContext.create("Europe/Rome", "fr", NOW).language == "it"


def test_example_dates_are_relative_to_now():
    dates = TemporalContext.create("Europe/Rome", "it", NOW).example_dates()
    assert dates["today"] == "2025-01-15T10:30:00+01:00"
    assert dates["tomorrow_at_9"] == "2025-01-16T09:00:00+01:00"
    assert dates["today_at_15"] == "2025-01-15T15:00:00+01:00"
    assert dates["next_monday"] == "2025-01-20T00:00:00+01:00"


def test_sections_render_in_priority_order():
    ctx = PromptContext(user_name="Mario", temporal=TemporalContext.create("Europe/Rome", "it", NOW))
    prompt = build_system_prompt(ctx)

    positions = [
        prompt.index(marker)
        for marker in (
            "Mario",
            "<critical_rules>",
            "<tool_selection>",
            "<date_handling>",
            "<examples>",
            "<conversation_context>",
            "<response_formatting>",
            "<general_guidelines>",
        )
    ]
    assert positions == sorted(positions)


def test_examples_can_be_left_out():
    ctx = PromptContext(user_name="Mario", temporal=TemporalContext.create("Europe/Rome", "it", NOW))
    assert "<examples>" not in build_system_prompt(ctx, include_examples=False)


def test_stats_lines_skip_zero_counts():
    ctx = PromptContext(
        user_name="Alice",
        temporal=TemporalContext.create("UTC", "en", NOW),
        stats=UserStats(tasks_open=4, tasks_overdue=2, active_projects=1, recent_project_names=["Garden"]),
    )
    prompt = build_system_prompt(ctx)
    assert "ALICE'S SITUATION" in prompt
    assert "2 overdue tasks" in prompt
    assert "4 total open tasks" in prompt
    assert "1 active projects: Garden" in prompt


@pytest.mark.asyncio
async def test_builder_uses_live_stats(services, session, user):
    await services.tasks.create(user.id, title="In ritardo", due_date=NOW - timedelta(days=3))
    await services.tasks.create(user.id, title="Aperto")

    prompt = await PromptBuilder(stats_repo=services.stats).build(session, NOW)
    assert "SITUAZIONE DI MARIO" in prompt
    assert "1 task in ritardo" in prompt
    assert "2 task aperti totali" in prompt
    assert "Europe/Rome" in prompt
