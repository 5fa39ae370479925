"""Type definitions for the payloads exchanged with collaborators.

The conflict detector consumes plain dicts produced by out-of-scope
subsystems (task store, child registry, school calendar sync, holiday feed).
Their shapes are described here as TypedDicts.

NOTE: TypedDict is STATIC ANALYSIS ONLY. Runtime validation of these payloads
happens in engines/conflict_engine.py with voluptuous schemas before any
detection pass runs.

IMPORTANT: This file must NOT import from the engines to avoid circular
dependencies. Only typing machinery is imported here.
"""

from datetime import datetime
from typing import NotRequired, TypedDict

# =============================================================================
# Type Aliases (for readability)
# =============================================================================

TaskId = str
ChildId = str
EventId = str
ISODatetime = str  # ISO 8601 datetime string "2025-03-10T08:00:00+00:00"
ISODate = str  # ISO 8601 date string (no time) "2025-05-17"

DatetimeInput = datetime | ISODatetime


# =============================================================================
# Household
# =============================================================================


class TaskData(TypedDict):
    """One household task occurrence.

    A task without `due_at` is a point-in-time task (e.g. a reminder).
    """

    id: TaskId
    child_ids: list[ChildId]
    start_at: DatetimeInput
    due_at: NotRequired[DatetimeInput | None]
    title: NotRequired[str]


class ChildData(TypedDict):
    """A child of the household; the name is only used in conflict text."""

    id: ChildId
    name: NotRequired[str]


# =============================================================================
# External calendars
# =============================================================================


class CalendarItemData(TypedDict):
    """A school event, SFO/AKS session or school break."""

    id: EventId
    start: DatetimeInput
    end: DatetimeInput
    title: NotRequired[str]
    type: NotRequired[str]  # "lesson", "assembly", "holiday", "school_break", ...


class ChildCalendarData(TypedDict, total=False):
    """Calendar snapshot for one child. Every list is optional."""

    events: list[CalendarItemData]
    sfo_activities: list[CalendarItemData]
    aks_activities: list[CalendarItemData]
    school_breaks: list[CalendarItemData]


CalendarSnapshot = dict[ChildId, ChildCalendarData]


class HolidayData(TypedDict):
    """A public holiday."""

    date: ISODate
    name: str
    affects_schools: bool


class SchoolBreakData(TypedDict):
    """A school break period from the reference table (inclusive dates)."""

    name: str
    start_date: ISODate
    end_date: ISODate
    affects_grades: tuple[int, ...]
