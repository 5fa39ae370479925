"""Shared fixtures for household scheduler tests."""

from datetime import UTC, datetime
from zoneinfo import ZoneInfo

import pytest

from household_scheduler.models import Horizon


def make_utc_dt(
    year: int, month: int, day: int, hour: int = 12, minute: int = 0, second: int = 0
) -> datetime:
    """Create a UTC datetime for testing."""
    return datetime(year, month, day, hour, minute, second, tzinfo=UTC)


@pytest.fixture
def oslo_tz() -> ZoneInfo:
    """Return the household timezone (Europe/Oslo, observes DST)."""
    return ZoneInfo("Europe/Oslo")


@pytest.fixture
def school_week() -> Horizon:
    """Horizon covering Mon 2025-03-10 .. Sun 2025-03-16 (UTC midnight bounds)."""
    return Horizon.starting_at(make_utc_dt(2025, 3, 10, 0))
