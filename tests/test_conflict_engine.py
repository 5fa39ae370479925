"""Unit tests for conflict_engine.py detection passes.

Covers each detection pass, the closed-school rules, input validation,
severity ordering and determinism. Tests build plain payload dicts the way
the task store and calendar sync hand them over.
"""

from datetime import date, datetime, timedelta
import json
from typing import Any

from freezegun import freeze_time
import pytest

from household_scheduler.config import DetectorConfig
from household_scheduler.engines.conflict_engine import (
    detect_conflicts,
    is_school_closed,
    resolution_kinds,
)
from household_scheduler.errors import ConflictValidationError, HorizonTooLargeError
from household_scheduler.models import (
    ConflictType,
    Horizon,
    ResolutionKind,
    Severity,
    SourceKind,
)
from tests.conftest import make_utc_dt

# =============================================================================
# Payload builders
# =============================================================================


def task(
    task_id: str,
    child_ids: list[str],
    start: datetime,
    end: datetime | None = None,
    title: str | None = None,
) -> dict[str, Any]:
    """Build a task payload."""
    data: dict[str, Any] = {"id": task_id, "child_ids": child_ids, "start_at": start}
    if end is not None:
        data["due_at"] = end
    if title is not None:
        data["title"] = title
    return data


def item(
    item_id: str,
    start: datetime,
    end: datetime,
    title: str | None = None,
    item_type: str | None = None,
) -> dict[str, Any]:
    """Build a calendar item payload."""
    data: dict[str, Any] = {"id": item_id, "start": start, "end": end}
    if title is not None:
        data["title"] = title
    if item_type is not None:
        data["type"] = item_type
    return data


CHILDREN = [
    {"id": "c1", "name": "Emma"},
    {"id": "c2", "name": "Noah"},
    {"id": "c3", "name": "Olivia"},
    {"id": "c4", "name": "Liam"},
]


def lesson(item_id: str, start: datetime, end: datetime, title: str = "Math") -> dict[str, Any]:
    return item(item_id, start, end, title=title, item_type="lesson")


# =============================================================================
# Pass 1: school_task_overlap
# =============================================================================


class TestSchoolTaskOverlap:
    """Tasks overlapping a bound child's school items."""

    def test_overlap_with_lesson(self, school_week: Horizon) -> None:
        conflicts = detect_conflicts(
            [task("t1", ["c1"], make_utc_dt(2025, 3, 10, 9), make_utc_dt(2025, 3, 10, 10), "Dishes")],
            CHILDREN,
            {"c1": {"events": [lesson("l1", make_utc_dt(2025, 3, 10, 8, 30), make_utc_dt(2025, 3, 10, 9, 30))]}},
            [],
            school_week,
        )

        assert len(conflicts) == 1
        conflict = conflicts[0]
        assert conflict.id == "conflict_t1_l1"
        assert conflict.type is ConflictType.SCHOOL_TASK_OVERLAP
        assert conflict.severity is Severity.HIGH
        assert conflict.affected_tasks == ("t1",)
        assert conflict.affected_children == ("c1",)
        assert [event.id for event in conflict.conflicting_events] == ["l1"]
        assert "Emma" in conflict.description

    def test_auto_resolutions_carry_proposed_start(self, school_week: Horizon) -> None:
        conflicts = detect_conflicts(
            [task("t1", ["c1"], make_utc_dt(2025, 3, 10, 9), make_utc_dt(2025, 3, 10, 10))],
            CHILDREN,
            {"c1": {"events": [lesson("l1", make_utc_dt(2025, 3, 10, 8, 30), make_utc_dt(2025, 3, 10, 9, 30))]}},
            [],
            school_week,
        )

        after_school, weekend = conflicts[0].resolutions
        assert after_school.auto_applicable
        assert after_school.proposed_start == make_utc_dt(2025, 3, 10, 9, 30)
        # Monday 10:00 Oslo -> Saturday 10:00 Oslo
        assert weekend.auto_applicable
        assert weekend.proposed_start == make_utc_dt(2025, 3, 15, 9)

    @pytest.mark.parametrize(
        ("item_type", "severity"),
        [
            ("lesson", Severity.HIGH),
            (None, Severity.HIGH),
            ("assembly", Severity.MEDIUM),
            ("lunch", Severity.LOW),
            ("break", Severity.LOW),
            ("gym", Severity.LOW),
        ],
    )
    def test_severity_by_event_type(
        self, school_week: Horizon, item_type: str | None, severity: Severity
    ) -> None:
        conflicts = detect_conflicts(
            [task("t1", ["c1"], make_utc_dt(2025, 3, 10, 9), make_utc_dt(2025, 3, 10, 10))],
            CHILDREN,
            {"c1": {"events": [item("e1", make_utc_dt(2025, 3, 10, 9), make_utc_dt(2025, 3, 10, 11), item_type=item_type)]}},
            [],
            school_week,
        )

        assert [conflict.severity for conflict in conflicts] == [severity]

    def test_lunch_overlap_is_low(self, school_week: Horizon) -> None:
        conflicts = detect_conflicts(
            [task("t1", ["c1"], make_utc_dt(2025, 3, 10, 11), make_utc_dt(2025, 3, 10, 12))],
            CHILDREN,
            {"c1": {"events": [item("e1", make_utc_dt(2025, 3, 10, 11), make_utc_dt(2025, 3, 10, 11, 30), "Lunch", "lunch")]}},
            [],
            school_week,
        )

        assert [
            (conflict.type, conflict.severity, conflict.conflicting_events[0].source_kind)
            for conflict in conflicts
        ] == [(ConflictType.SCHOOL_TASK_OVERLAP, Severity.LOW, SourceKind.SCHOOL_OTHER)]

    def test_adjacent_intervals_do_not_conflict(self, school_week: Horizon) -> None:
        """Half-open intervals: a task starting when the lesson ends is fine."""
        conflicts = detect_conflicts(
            [task("t1", ["c1"], make_utc_dt(2025, 3, 10, 9, 30), make_utc_dt(2025, 3, 10, 10, 30))],
            CHILDREN,
            {"c1": {"events": [lesson("l1", make_utc_dt(2025, 3, 10, 8, 30), make_utc_dt(2025, 3, 10, 9, 30))]}},
            [],
            school_week,
        )

        assert conflicts == []

    def test_point_task_never_overlaps(self, school_week: Horizon) -> None:
        conflicts = detect_conflicts(
            [task("t1", ["c1"], make_utc_dt(2025, 3, 10, 9))],
            CHILDREN,
            {"c1": {"events": [lesson("l1", make_utc_dt(2025, 3, 10, 8, 30), make_utc_dt(2025, 3, 10, 9, 30))]}},
            [],
            school_week,
        )

        assert conflicts == []

    def test_other_childs_lesson_ignored(self, school_week: Horizon) -> None:
        conflicts = detect_conflicts(
            [task("t1", ["c1"], make_utc_dt(2025, 3, 10, 9), make_utc_dt(2025, 3, 10, 10))],
            CHILDREN,
            {"c2": {"events": [lesson("l1", make_utc_dt(2025, 3, 10, 8, 30), make_utc_dt(2025, 3, 10, 9, 30))]}},
            [],
            school_week,
        )

        assert conflicts == []


# =============================================================================
# Closed school days
# =============================================================================


class TestClosedSchoolDays:
    """Lessons on holidays or inside school breaks are not real lessons."""

    def test_lesson_on_school_holiday_ignored(self, school_week: Horizon) -> None:
        conflicts = detect_conflicts(
            [task("t1", ["c1"], make_utc_dt(2025, 3, 10, 9), make_utc_dt(2025, 3, 10, 10))],
            CHILDREN,
            {"c1": {"events": [lesson("l1", make_utc_dt(2025, 3, 10, 8, 30), make_utc_dt(2025, 3, 10, 9, 30))]}},
            [{"date": "2025-03-10", "name": "Planleggingsdag", "affects_schools": True}],
            school_week,
        )

        # Only the holiday pass fires
        assert [conflict.type for conflict in conflicts] == [ConflictType.NORWEGIAN_HOLIDAY]

    def test_holiday_not_affecting_schools_ignored(self, school_week: Horizon) -> None:
        conflicts = detect_conflicts(
            [task("t1", ["c1"], make_utc_dt(2025, 3, 10, 9), make_utc_dt(2025, 3, 10, 10))],
            CHILDREN,
            {"c1": {"events": [lesson("l1", make_utc_dt(2025, 3, 10, 8, 30), make_utc_dt(2025, 3, 10, 9, 30))]}},
            [{"date": "2025-03-10", "name": "Flag day", "affects_schools": False}],
            school_week,
        )

        assert [conflict.type for conflict in conflicts] == [ConflictType.SCHOOL_TASK_OVERLAP]

    @pytest.mark.parametrize("section", ["school_breaks", "events"])
    def test_lesson_inside_childs_break_ignored(
        self, school_week: Horizon, section: str
    ) -> None:
        closure = item(
            "winter",
            make_utc_dt(2025, 3, 9, 23),
            make_utc_dt(2025, 3, 14, 23),
            title="Vinterferie",
            item_type="school_break",
        )
        calendar: dict[str, list[dict[str, Any]]] = {
            "events": [lesson("l1", make_utc_dt(2025, 3, 10, 8, 30), make_utc_dt(2025, 3, 10, 9, 30))],
        }
        calendar.setdefault(section, []).append(closure)

        conflicts = detect_conflicts(
            [task("t1", ["c1"], make_utc_dt(2025, 3, 10, 9), make_utc_dt(2025, 3, 10, 10))],
            CHILDREN,
            {"c1": calendar},
            [],
            school_week,
        )

        assert conflicts == []


class TestIsSchoolClosed:
    """Reference table lookups."""

    @pytest.mark.parametrize(
        ("day", "closed"),
        [
            (date(2025, 5, 17), True),  # Grunnlovsdag
            (date(2025, 2, 18), True),  # Vinterferie
            (date(2025, 8, 20), True),  # Last day of Sommerferie
            (date(2025, 3, 10), False),
        ],
    )
    def test_default_tables(self, day: date, closed: bool) -> None:
        assert is_school_closed(day) is closed

    @pytest.mark.parametrize(("grade", "closed"), [(None, True), (1, True), (5, False)])
    def test_grade_filter(self, grade: int | None, closed: bool) -> None:
        breaks = [
            {
                "name": "Skidag",
                "start_date": "2025-03-10",
                "end_date": "2025-03-14",
                "affects_grades": (1, 2),
            }
        ]
        assert is_school_closed(date(2025, 3, 12), [], breaks, grade=grade) is closed

    def test_empty_tables(self) -> None:
        assert not is_school_closed(date(2025, 5, 17), [], [])


# =============================================================================
# Pass 2: norwegian_holiday
# =============================================================================


class TestHolidayConflicts:
    """Tasks on public holidays that close schools."""

    @pytest.fixture
    def may_week(self) -> Horizon:
        return Horizon.starting_at(make_utc_dt(2025, 5, 12, 0))

    def test_default_holiday_table(self, may_week: Horizon) -> None:
        conflicts = detect_conflicts(
            [task("t1", ["c1"], make_utc_dt(2025, 5, 17, 10), make_utc_dt(2025, 5, 17, 11), "Vacuum")],
            CHILDREN,
            {},
            None,
            may_week,
        )

        assert len(conflicts) == 1
        conflict = conflicts[0]
        assert conflict.id == "holiday_conflict_t1"
        assert conflict.type is ConflictType.NORWEGIAN_HOLIDAY
        assert conflict.severity is Severity.MEDIUM
        assert "Grunnlovsdag" in conflict.title

        day_before, accept = conflict.resolutions
        assert day_before.proposed_start == make_utc_dt(2025, 5, 16, 10)
        assert accept.kind is ResolutionKind.ACCEPT
        assert not accept.auto_applicable

    def test_uses_household_local_date(self, may_week: Horizon) -> None:
        """22:30 UTC on May 16 is 00:30 on May 17 in Oslo."""
        conflicts = detect_conflicts(
            [
                task("t1", ["c1"], make_utc_dt(2025, 5, 16, 22, 30)),
                task("t2", ["c2"], make_utc_dt(2025, 5, 17, 22, 30)),
            ],
            CHILDREN,
            {},
            None,
            may_week,
        )

        assert [conflict.id for conflict in conflicts] == ["holiday_conflict_t1"]


# =============================================================================
# Pass 3: multiple_children
# =============================================================================


class TestMultipleChildren:
    """Tasks for different children at the same time."""

    def test_two_children_same_time_single_conflict(self, school_week: Horizon) -> None:
        conflicts = detect_conflicts(
            [
                task("t1", ["c1"], make_utc_dt(2025, 3, 10, 16), make_utc_dt(2025, 3, 10, 17)),
                task("t2", ["c2"], make_utc_dt(2025, 3, 10, 16), make_utc_dt(2025, 3, 10, 17)),
            ],
            CHILDREN,
            {},
            [],
            school_week,
        )

        assert len(conflicts) == 1
        conflict = conflicts[0]
        assert conflict.type is ConflictType.MULTIPLE_CHILDREN
        assert conflict.severity is Severity.HIGH
        assert conflict.id == "multi_child_2025-03-10T16:00:00+00:00_t1"
        assert conflict.affected_tasks == ("t1", "t2")
        assert conflict.affected_children == ("c1", "c2")
        assert [r.kind for r in conflict.resolutions] == [
            ResolutionKind.RESCHEDULE,
            ResolutionKind.DELEGATE,
        ]
        assert not any(r.auto_applicable for r in conflict.resolutions)

    def test_chained_overlaps_form_one_conflict(self, school_week: Horizon) -> None:
        conflicts = detect_conflicts(
            [
                task("t1", ["c1"], make_utc_dt(2025, 3, 10, 16), make_utc_dt(2025, 3, 10, 17)),
                task("t2", ["c2"], make_utc_dt(2025, 3, 10, 16, 30), make_utc_dt(2025, 3, 10, 17, 30)),
                task("t3", ["c3"], make_utc_dt(2025, 3, 10, 17, 15), make_utc_dt(2025, 3, 10, 18)),
            ],
            CHILDREN,
            {},
            [],
            school_week,
        )

        assert len(conflicts) == 1
        assert conflicts[0].affected_tasks == ("t1", "t2", "t3")
        assert conflicts[0].affected_children == ("c1", "c2", "c3")

    def test_coinciding_point_tasks(self, school_week: Horizon) -> None:
        conflicts = detect_conflicts(
            [
                task("t1", ["c1"], make_utc_dt(2025, 3, 10, 16)),
                task("t2", ["c2"], make_utc_dt(2025, 3, 10, 16)),
            ],
            CHILDREN,
            {},
            [],
            school_week,
        )

        assert [conflict.type for conflict in conflicts] == [ConflictType.MULTIPLE_CHILDREN]

    def test_task_due_when_it_starts_is_a_point(self, school_week: Horizon) -> None:
        at = make_utc_dt(2025, 3, 10, 16)
        conflicts = detect_conflicts(
            [task("t1", ["c1"], at, at), task("t2", ["c2"], at, at)],
            CHILDREN,
            {},
            [],
            school_week,
        )

        assert [conflict.type for conflict in conflicts] == [ConflictType.MULTIPLE_CHILDREN]
        assert conflicts[0].affected_tasks == ("t1", "t2")

    def test_same_child_is_not_a_multi_child_conflict(self, school_week: Horizon) -> None:
        conflicts = detect_conflicts(
            [
                task("t1", ["c1"], make_utc_dt(2025, 3, 10, 16), make_utc_dt(2025, 3, 10, 17)),
                task("t2", ["c1"], make_utc_dt(2025, 3, 10, 16), make_utc_dt(2025, 3, 10, 17)),
            ],
            CHILDREN,
            {},
            [],
            school_week,
        )

        assert conflicts == []


# =============================================================================
# Pass 4: sfo_aks_conflict
# =============================================================================


class TestAfterSchoolConflicts:
    """Tasks overlapping SFO / AKS sessions."""

    @pytest.mark.parametrize(("section", "prefix"), [("sfo_activities", "sfo"), ("aks_activities", "aks")])
    def test_overlap_with_session(
        self, school_week: Horizon, section: str, prefix: str
    ) -> None:
        conflicts = detect_conflicts(
            [task("t1", ["c1"], make_utc_dt(2025, 3, 10, 15), make_utc_dt(2025, 3, 10, 15, 30))],
            CHILDREN,
            {"c1": {section: [item("s1", make_utc_dt(2025, 3, 10, 13), make_utc_dt(2025, 3, 10, 16), "Football")]}},
            [],
            school_week,
        )

        assert len(conflicts) == 1
        conflict = conflicts[0]
        assert conflict.id == f"{prefix}_conflict_t1_s1"
        assert conflict.type is ConflictType.SFO_AKS_CONFLICT
        assert conflict.severity is Severity.MEDIUM
        assert conflict.conflicting_events[0].source_kind is SourceKind(prefix)
        (resolution,) = conflict.resolutions
        assert resolution.auto_applicable
        assert resolution.proposed_start == make_utc_dt(2025, 3, 10, 16)


# =============================================================================
# Pass 5: travel_time
# =============================================================================


class TestTravelTime:
    """Too little time between an activity and a task."""

    def test_short_gap(self, school_week: Horizon) -> None:
        conflicts = detect_conflicts(
            [task("t1", ["c1"], make_utc_dt(2025, 3, 10, 13, 15), make_utc_dt(2025, 3, 10, 14))],
            CHILDREN,
            {"c1": {"events": [lesson("l1", make_utc_dt(2025, 3, 10, 8), make_utc_dt(2025, 3, 10, 13))]}},
            [],
            school_week,
        )

        assert len(conflicts) == 1
        conflict = conflicts[0]
        assert conflict.id == "travel_time_t1_l1"
        assert conflict.type is ConflictType.TRAVEL_TIME
        assert conflict.severity is Severity.LOW
        assert "15 minutes" in conflict.description
        buffer, accept = conflict.resolutions
        assert buffer.kind is ResolutionKind.MODIFY
        assert buffer.proposed_start == make_utc_dt(2025, 3, 10, 13, 30)
        assert accept.kind is ResolutionKind.ACCEPT

    @pytest.mark.parametrize("gap_minutes", [0, 30, 45])
    def test_enough_gap(self, school_week: Horizon, gap_minutes: int) -> None:
        start = make_utc_dt(2025, 3, 10, 13) + timedelta(minutes=gap_minutes)
        conflicts = detect_conflicts(
            [task("t1", ["c1"], start, start + timedelta(hours=1))],
            CHILDREN,
            {"c1": {"events": [lesson("l1", make_utc_dt(2025, 3, 10, 8), make_utc_dt(2025, 3, 10, 13))]}},
            [],
            school_week,
        )

        assert conflicts == []

    def test_configurable_threshold(self, school_week: Horizon) -> None:
        conflicts = detect_conflicts(
            [task("t1", ["c1"], make_utc_dt(2025, 3, 10, 13, 45), make_utc_dt(2025, 3, 10, 14))],
            CHILDREN,
            {"c1": {"events": [lesson("l1", make_utc_dt(2025, 3, 10, 8), make_utc_dt(2025, 3, 10, 13))]}},
            [],
            school_week,
            config=DetectorConfig(min_travel_time=timedelta(hours=1)),
        )

        assert [conflict.type for conflict in conflicts] == [ConflictType.TRAVEL_TIME]

    def test_lesson_ending_just_before_horizon(self, school_week: Horizon) -> None:
        """A lesson ending before the horizon still counts for the first task."""
        conflicts = detect_conflicts(
            [task("t1", ["c1"], make_utc_dt(2025, 3, 10, 0, 5), make_utc_dt(2025, 3, 10, 0, 30))],
            CHILDREN,
            {"c1": {"events": [lesson("l1", make_utc_dt(2025, 3, 9, 23), make_utc_dt(2025, 3, 9, 23, 50))]}},
            [],
            school_week,
        )

        assert [conflict.id for conflict in conflicts] == ["travel_time_t1_l1"]
        assert "15 minutes" in conflicts[0].description


# =============================================================================
# Pass 6: family_overload
# =============================================================================


class TestFamilyOverload:
    """Too many concurrent activities across the household."""

    @staticmethod
    def _lessons_for_all(item_id: str | None = None) -> dict[str, Any]:
        return {
            child["id"]: {
                "events": [
                    lesson(
                        item_id or f"l-{child['id']}",
                        make_utc_dt(2025, 3, 10, 8),
                        make_utc_dt(2025, 3, 10, 10),
                    )
                ]
            }
            for child in CHILDREN
        }

    def test_four_concurrent_lessons(self, school_week: Horizon) -> None:
        conflicts = detect_conflicts([], CHILDREN, self._lessons_for_all(), [], school_week)

        # Samples at 08:00 and 09:00 share the same active set: one conflict
        assert len(conflicts) == 1
        conflict = conflicts[0]
        assert conflict.id == "overload_2025-03-10T08:00:00+00:00"
        assert conflict.type is ConflictType.FAMILY_OVERLOAD
        assert conflict.severity is Severity.HIGH
        assert conflict.affected_tasks == ()
        assert conflict.affected_children == ("c1", "c2", "c3", "c4")
        assert len(conflict.conflicting_events) == 4
        assert [r.kind for r in conflict.resolutions] == [
            ResolutionKind.RESCHEDULE,
            ResolutionKind.CANCEL,
        ]

    def test_shared_event_counted_once(self, school_week: Horizon) -> None:
        conflicts = detect_conflicts(
            [], CHILDREN, self._lessons_for_all("assembly-1"), [], school_week
        )

        assert conflicts == []

    def test_threshold_is_strict(self, school_week: Horizon) -> None:
        calendars = self._lessons_for_all()
        del calendars["c4"]

        assert detect_conflicts([], CHILDREN, calendars, [], school_week) == []

    def test_tasks_count_towards_overload(self, school_week: Horizon) -> None:
        calendars = self._lessons_for_all()
        del calendars["c4"]
        tasks = [task("t1", ["c4"], make_utc_dt(2025, 3, 10, 9), make_utc_dt(2025, 3, 10, 9, 30))]

        conflicts = detect_conflicts(tasks, CHILDREN, calendars, [], school_week)

        assert [conflict.id for conflict in conflicts] == ["overload_2025-03-10T09:00:00+00:00"]
        assert conflicts[0].affected_tasks == ("t1",)


# =============================================================================
# Aggregation, validation, determinism
# =============================================================================


class TestDetectConflicts:
    """Pipeline behaviour across passes."""

    def test_empty_input(self, school_week: Horizon) -> None:
        assert detect_conflicts([], [], {}, [], school_week) == []

    def test_sorted_by_severity_with_stable_ties(self, school_week: Horizon) -> None:
        tasks = [
            task("t1", ["c1"], make_utc_dt(2025, 3, 10, 9), make_utc_dt(2025, 3, 10, 10)),
            task("t2", ["c1"], make_utc_dt(2025, 3, 11, 13, 15), make_utc_dt(2025, 3, 11, 14)),
            task("t3", ["c1"], make_utc_dt(2025, 3, 12, 15), make_utc_dt(2025, 3, 12, 16)),
            task("t4", ["c2"], make_utc_dt(2025, 3, 13, 16), make_utc_dt(2025, 3, 13, 17)),
            task("t5", ["c3"], make_utc_dt(2025, 3, 13, 16), make_utc_dt(2025, 3, 13, 17)),
        ]
        calendars = {
            "c1": {
                "events": [
                    lesson("l1", make_utc_dt(2025, 3, 10, 8, 30), make_utc_dt(2025, 3, 10, 9, 30)),
                    lesson("l2", make_utc_dt(2025, 3, 11, 8), make_utc_dt(2025, 3, 11, 13)),
                ]
            }
        }
        holidays = [{"date": "2025-03-12", "name": "Test holiday", "affects_schools": True}]

        conflicts = detect_conflicts(tasks, CHILDREN, calendars, holidays, school_week)

        assert [conflict.type for conflict in conflicts] == [
            ConflictType.SCHOOL_TASK_OVERLAP,
            ConflictType.MULTIPLE_CHILDREN,
            ConflictType.NORWEGIAN_HOLIDAY,
            ConflictType.TRAVEL_TIME,
        ]
        for conflict in conflicts:
            assert conflict.resolutions
            assert tuple(r.kind for r in conflict.resolutions) == resolution_kinds(conflict.type)

    def test_items_outside_horizon_ignored(self, school_week: Horizon) -> None:
        conflicts = detect_conflicts(
            [task("t1", ["c1"], make_utc_dt(2025, 3, 20, 9), make_utc_dt(2025, 3, 20, 10))],
            CHILDREN,
            {"c1": {"events": [lesson("l1", make_utc_dt(2025, 3, 20, 8, 30), make_utc_dt(2025, 3, 20, 9, 30))]}},
            [],
            school_week,
        )

        assert conflicts == []

    def test_string_datetimes_accepted(self, school_week: Horizon) -> None:
        conflicts = detect_conflicts(
            [{"id": "t1", "child_ids": ["c1"], "start_at": "2025-03-10T09:00:00Z", "due_at": "2025-03-10T10:00:00Z"}],
            CHILDREN,
            {"c1": {"events": [{"id": "l1", "start": "2025-03-10T09:30:00+01:00", "end": "2025-03-10T10:30:00+01:00"}]}},
            [],
            school_week,
        )

        assert [conflict.id for conflict in conflicts] == ["conflict_t1_l1"]

    def test_detected_at(self, school_week: Horizon) -> None:
        tasks = [
            task("t1", ["c1"], make_utc_dt(2025, 3, 10, 16)),
            task("t2", ["c2"], make_utc_dt(2025, 3, 10, 16)),
        ]
        now = make_utc_dt(2025, 3, 9, 18)

        assert detect_conflicts(tasks, CHILDREN, {}, [], school_week)[0].detected_at == (
            school_week.start
        )
        assert detect_conflicts(tasks, CHILDREN, {}, [], school_week, now=now)[0].detected_at == now

    def test_independent_of_clock(self, school_week: Horizon) -> None:
        tasks = [task("t1", ["c1"], make_utc_dt(2025, 3, 10, 9), make_utc_dt(2025, 3, 10, 10))]
        calendars = {"c1": {"events": [lesson("l1", make_utc_dt(2025, 3, 10, 8), make_utc_dt(2025, 3, 10, 13))]}}

        with freeze_time("2030-01-01 12:00:00"):
            first = detect_conflicts(tasks, CHILDREN, calendars, None, school_week)
        with freeze_time("2025-03-10 09:30:00"):
            second = detect_conflicts(tasks, CHILDREN, calendars, None, school_week)

        assert first == second

    def test_as_dict_is_json_serializable(self, school_week: Horizon) -> None:
        conflicts = detect_conflicts(
            [task("t1", ["c1"], make_utc_dt(2025, 3, 10, 9), make_utc_dt(2025, 3, 10, 10))],
            CHILDREN,
            {"c1": {"events": [lesson("l1", make_utc_dt(2025, 3, 10, 8, 30), make_utc_dt(2025, 3, 10, 9, 30))]}},
            [],
            school_week,
        )

        payload = json.loads(json.dumps(conflicts[0].as_dict()))

        assert payload["type"] == "school_task_overlap"
        assert payload["severity"] == "high"
        assert payload["detected_at"] == "2025-03-10T00:00:00.000Z"
        assert payload["conflicting_events"][0]["source_kind"] == "lesson"
        assert payload["resolutions"][0]["proposed_start"] == "2025-03-10T09:30:00.000Z"

    def test_resolution_kinds_defined_for_every_type(self) -> None:
        for conflict_type in ConflictType:
            assert resolution_kinds(conflict_type)


class TestInputValidation:
    """Structural errors are reported before any pass runs."""

    def test_task_due_before_start(self, school_week: Horizon) -> None:
        with pytest.raises(ConflictValidationError) as exc_info:
            detect_conflicts(
                [task("t1", ["c1"], make_utc_dt(2025, 3, 10, 10), make_utc_dt(2025, 3, 10, 9))],
                CHILDREN,
                {},
                [],
                school_week,
            )
        assert exc_info.value.path == "tasks[0].due_at"

    def test_missing_start(self, school_week: Horizon) -> None:
        with pytest.raises(ConflictValidationError) as exc_info:
            detect_conflicts([{"id": "t1"}], CHILDREN, {}, [], school_week)
        assert exc_info.value.path == "tasks[0].start_at"

    def test_unparseable_datetime(self, school_week: Horizon) -> None:
        with pytest.raises(ConflictValidationError) as exc_info:
            detect_conflicts(
                [{"id": "t1", "start_at": "next tuesday"}], CHILDREN, {}, [], school_week
            )
        assert exc_info.value.path == "tasks[0].start_at"

    def test_calendar_item_ends_before_start(self, school_week: Horizon) -> None:
        with pytest.raises(ConflictValidationError) as exc_info:
            detect_conflicts(
                [],
                CHILDREN,
                {"c1": {"events": [lesson("l1", make_utc_dt(2025, 3, 10, 10), make_utc_dt(2025, 3, 10, 9))]}},
                [],
                school_week,
            )
        assert exc_info.value.path == "calendars[c1].events[0].end"

    def test_children_without_calendars_are_fine(self, school_week: Horizon) -> None:
        conflicts = detect_conflicts(
            [task("t1", ["c1"], make_utc_dt(2025, 3, 10, 9), make_utc_dt(2025, 3, 10, 10))],
            CHILDREN,
            {"c1": None},
            [],
            school_week,
        )
        assert conflicts == []

    def test_horizon_too_large(self) -> None:
        horizon = Horizon.starting_at(make_utc_dt(2025, 3, 10, 0), days=30)
        config = DetectorConfig(overload_granularity=timedelta(minutes=1))

        with pytest.raises(HorizonTooLargeError) as exc_info:
            detect_conflicts([], CHILDREN, {}, [], horizon, config=config)

        assert exc_info.value.samples == 30 * 24 * 60
        assert isinstance(exc_info.value, ConflictValidationError)

    def test_horizon_end_before_start(self) -> None:
        with pytest.raises(ConflictValidationError):
            Horizon(make_utc_dt(2025, 3, 10), make_utc_dt(2025, 3, 9))

    def test_naive_horizon(self) -> None:
        with pytest.raises(ConflictValidationError):
            Horizon(datetime(2025, 3, 10), datetime(2025, 3, 11))
