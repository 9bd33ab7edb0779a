from datetime import datetime, timezone
from zoneinfo import ZoneInfo

import pytest

from planner_bot.core.dates import get_zone, next_weekday, start_of_day, start_of_month, start_of_week
from planner_bot.core.errors import AuthenticationError, ValidationError

ROME = ZoneInfo("Europe/Rome")


@pytest.mark.asyncio
async def test_authenticate_fills_defaults(session_manager, user_repo):
    user = await user_repo.create(name="Giulia")
    session = await session_manager.authenticate(user.id)
    assert session.language == "it"
    assert session.timezone == "Europe/Rome"
    assert session.zone == ROME


@pytest.mark.asyncio
async def test_authenticate_unknown_user(session_manager):
    with pytest.raises(AuthenticationError):
        await session_manager.authenticate("nobody")
    with pytest.raises(AuthenticationError):
        await session_manager.authenticate(None)


def test_unknown_timezone():
    with pytest.raises(ValidationError):
        get_zone("Mars/Olympus")


def test_calendar_boundaries_use_local_time():
    # 23:30 UTC on Sunday 19 January is already Monday in Rome
    now = datetime(2025, 1, 19, 23, 30, tzinfo=timezone.utc)
    assert start_of_day(now, ROME) == datetime(2025, 1, 20, tzinfo=ROME)
    assert start_of_week(now, ROME) == datetime(2025, 1, 20, tzinfo=ROME)
    assert start_of_month(now, ROME) == datetime(2025, 1, 1, tzinfo=ROME)
    assert next_weekday(now, ROME, 0) == datetime(2025, 1, 27, tzinfo=ROME)
