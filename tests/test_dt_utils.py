"""Tests for utils/dt_utils.py pure date helpers."""

from datetime import UTC, date, datetime
from zoneinfo import ZoneInfo

import pytest

from household_scheduler.utils.dt_utils import (
    as_utc,
    date_key,
    dt_add_calendar,
    dt_format_iso_ms,
    dt_format_rrule_until,
    dt_parse,
    dt_parse_date,
    dt_parse_rrule_until,
    get_time_zone,
    months_between,
    start_of_local_day,
)


class TestParsing:
    """String and datetime normalization."""

    def test_parse_naive_uses_default_zone(self, oslo_tz: ZoneInfo) -> None:
        parsed = dt_parse("2025-03-10T09:00:00", oslo_tz)
        assert as_utc(parsed) == datetime(2025, 3, 10, 8, tzinfo=UTC)

    @pytest.mark.parametrize("value", [None, "", "tomorrow", 42])
    def test_parse_invalid(self, value: object) -> None:
        assert dt_parse(value) is None

    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            ("2025-05-17", date(2025, 5, 17)),
            ("2025-05-17T10:00:00+02:00", date(2025, 5, 17)),
            (datetime(2025, 5, 17, 23, 0), date(2025, 5, 17)),
            ("17.05.2025", None),
        ],
    )
    def test_parse_date(self, value: object, expected: date | None) -> None:
        assert dt_parse_date(value) == expected

    def test_rrule_until(self) -> None:
        parsed = dt_parse_rrule_until("20250312T080000Z")
        assert parsed == datetime(2025, 3, 12, 8, tzinfo=UTC)
        assert dt_format_rrule_until(parsed) == "20250312T080000Z"
        assert dt_parse_rrule_until("2025-03-12T08:00:00Z") is None

    def test_unknown_time_zone(self) -> None:
        assert get_time_zone("Atlantis/Capital") is None
        assert get_time_zone(None) is None


class TestLocalCalendar:
    """Local-date helpers around DST transitions."""

    def test_start_of_local_day_on_dst_change(self, oslo_tz: ZoneInfo) -> None:
        midnight = start_of_local_day(datetime(2025, 3, 30, 12, tzinfo=UTC), oslo_tz)
        assert as_utc(midnight) == datetime(2025, 3, 29, 23, tzinfo=UTC)

    def test_date_key_uses_local_date(self, oslo_tz: ZoneInfo) -> None:
        assert date_key(datetime(2025, 5, 16, 22, 30, tzinfo=UTC), oslo_tz) == "2025-05-17"

    def test_add_months_clamps(self) -> None:
        assert dt_add_calendar(datetime(2025, 1, 31, 8), months=1) == datetime(2025, 2, 28, 8)
        assert dt_add_calendar(datetime(2025, 1, 31, 8), months=2) == datetime(2025, 3, 31, 8)

    def test_months_between(self) -> None:
        assert months_between(datetime(2024, 11, 30), datetime(2025, 2, 1)) == 3

    def test_iso_ms(self) -> None:
        assert dt_format_iso_ms(datetime(2025, 3, 11, 8, tzinfo=UTC)) == "2025-03-11T08:00:00.000Z"
        assert dt_format_iso_ms(None) is None
