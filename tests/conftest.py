"""
Shared pytest fixtures for nextup tests.

This module provides common fixtures used across all test files, including:
- A fixed local zone and a fixed "now"
- Test environment setup with a temporary workspace home
- Database fixtures
- Event factories
"""

import pytest
from datetime import datetime, timedelta
from dateutil import tz
from freezegun import freeze_time

from nextup.nextup_env import NextupEnvironment
from nextup.events import EventInstance
from nextup.model import DatabaseManager, all_day_bounds

NEW_YORK = tz.gettz("America/New_York")


@pytest.fixture(autouse=True)
def nextup_home(tmp_path, monkeypatch):
    """
    Point NEXTUP_HOME at a temporary directory so config files and
    logs never land in the real workspace.
    """
    home = tmp_path / "nextup-home"
    monkeypatch.setenv("NEXTUP_HOME", str(home))
    return home


@pytest.fixture
def local_tz():
    return NEW_YORK


@pytest.fixture
def now(local_tz):
    """Sunday 2026-10-18 12:00 in New York (16:00 UTC)."""
    return datetime(2026, 10, 18, 12, 0, tzinfo=local_tz)


@pytest.fixture
def frozen_time():
    """
    Freezes the wall clock at the same instant as the ``now`` fixture.
    """
    with freeze_time("2026-10-18 16:00:00") as frozen:
        yield frozen


@pytest.fixture
def make_event(now):
    """
    Returns a factory for timed instances placed relative to ``now``.

    Usage:
        def test_something(make_event):
            standup = make_event(1, minutes=30, duration=15, title="Standup")
    """

    def _make(
        event_id,
        minutes: int = 0,
        duration: int = 60,
        title: str = "",
        location: str = "",
        calendar_id: int = 1,
    ) -> EventInstance:
        start = now + timedelta(minutes=minutes)
        return EventInstance(
            id=event_id,
            start=start,
            end=start + timedelta(minutes=duration),
            title=title,
            location=location,
            calendar_id=calendar_id,
        )

    return _make


@pytest.fixture
def make_all_day(now, local_tz):
    """
    Returns a factory for all-day instances ``days`` after the local date
    of ``now``, stored the way the record source stores them.
    """

    def _make(event_id, days: int = 0, length: int = 1, title: str = "", calendar_id: int = 1):
        first = now.astimezone(local_tz).date() + timedelta(days=days)
        start, end = all_day_bounds(first, first + timedelta(days=length - 1))
        return EventInstance(
            id=event_id,
            start=start,
            end=end,
            all_day=True,
            title=title,
            calendar_id=calendar_id,
        )

    return _make


@pytest.fixture
def test_env():
    """
    Provides a NextupEnvironment rooted in the temporary home.
    """
    env = NextupEnvironment()
    env.ensure(init_config=True)
    return env


@pytest.fixture
def temp_db_path(tmp_path):
    """
    Provides a temporary database path that will be cleaned up after the test.
    """
    db_path = tmp_path / "test_nextup.db"
    yield db_path


@pytest.fixture
def db_manager(temp_db_path, test_env):
    """
    Provides a DatabaseManager with a fresh database and one shown calendar.
    """
    dbm = DatabaseManager(str(temp_db_path), test_env, reset=True)
    dbm.add_calendar("Personal")
    yield dbm
    dbm.close()
