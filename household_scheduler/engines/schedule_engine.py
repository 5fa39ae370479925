"""Schedule Engine - next-occurrence resolution for recurring household tasks.

Resolves a RecurringSchedule (anchor + RRULE subset + prep window) against an
explicit reference instant:

- Stepping is civil-calendar arithmetic on the anchor's local wall-clock time
  (`dateutil.relativedelta` for months/years, calendar days otherwise), so
  08:00 local stays 08:00 local on both sides of a DST change.
- Every occurrence is computed from the anchor (`anchor + k * step`), never
  from the previous occurrence, so month-end clamping does not drift
  (Jan 31 -> Feb 28 -> Mar 31).
- The occurrence index is estimated in closed form and corrected by a few
  steps; old anchors do not cause long loops.

ARCHITECTURE: Pure logic, no clock reads. The only notion of "now" is the
reference instant passed in by the caller.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from .. import const
from ..errors import ScheduleValidationError
from ..models import (
    NO_OCCURRENCE,
    Count,
    Frequency,
    OccurrenceResult,
    RecurrenceRule,
    RecurringSchedule,
    Until,
)
from ..utils.dt_utils import (
    as_local,
    as_utc,
    date_key,
    dt_add_calendar,
    localize_wall_time,
    months_between,
    start_of_local_day,
)

if TYPE_CHECKING:
    from ..models import Horizon
    from ..type_defs import TaskData

# Frequencies stepped in calendar days vs calendar months
_DAYS_PER_UNIT: dict[Frequency, int] = {
    Frequency.DAILY: 1,
    Frequency.WEEKLY: const.DAYS_PER_WEEK,
}
_MONTHS_PER_UNIT: dict[Frequency, int] = {
    Frequency.MONTHLY: 1,
    Frequency.YEARLY: const.MONTHS_PER_YEAR,
}

_ONE_MICROSECOND = timedelta(microseconds=1)


def parse_recurrence(expression: str) -> RecurrenceRule:
    """Parse a recurrence expression (see RecurrenceRule.parse)."""
    return RecurrenceRule.parse(expression)


class RecurrenceEngine:
    """Next-occurrence calculator for one RecurringSchedule.

    The engine holds no mutable state; instances can be shared between
    threads and queried with any reference instant.
    """

    def __init__(self, schedule: RecurringSchedule) -> None:
        """Initialize the engine for a validated schedule."""
        self._schedule = schedule
        self._rule = schedule.rule
        self._tz = schedule.tz
        # Anchor as naive local wall-clock time: all stepping happens here
        self._anchor_wall = as_local(schedule.anchor, self._tz).replace(tzinfo=None)

    @property
    def schedule(self) -> RecurringSchedule:
        return self._schedule

    def get_next_occurrence(self, after: datetime) -> OccurrenceResult:
        """Calculate the next occurrence strictly after `after`.

        Applies the pause window, skip dates and per-date shifts on top of
        the plain recurrence, then derives the prep window start.

        Args:
            after: Reference instant (timezone-aware).

        Returns:
            OccurrenceResult; NO_OCCURRENCE if the schedule has ended.

        Raises:
            ScheduleValidationError: If `after` is naive.
        """
        resolved = self._resolve(self._validate_reference(after))
        if resolved is None:
            return NO_OCCURRENCE
        _, occurrence = resolved
        return OccurrenceResult.for_occurrence(occurrence, self._schedule.prep_window_hours)

    def get_occurrences(
        self,
        start: datetime,
        end: datetime,
        limit: int = const.DEFAULT_OCCURRENCE_LIMIT,
    ) -> list[datetime]:
        """Generate occurrences within [start, end].

        Args:
            start: Range start (timezone-aware, inclusive).
            end: Range end (timezone-aware, inclusive).
            limit: Maximum occurrences to return (safety limit).

        Returns:
            Occurrence datetimes (UTC) in ascending order.
        """
        range_end = self._validate_reference(end)
        cursor = self._validate_reference(start) - _ONE_MICROSECOND

        occurrences: list[datetime] = []
        while len(occurrences) < limit:
            resolved = self._resolve(cursor)
            if resolved is None:
                break
            scheduled, occurrence = resolved
            if scheduled > range_end:
                break
            occurrences.append(occurrence)
            cursor = scheduled

        return occurrences

    def occurrence_at_index(self, index: int) -> datetime | None:
        """Return the index-th occurrence (0 = anchor), honouring the bound.

        Pause, skip dates and shifts are not applied here.
        """
        if index < 0:
            return None
        if self._rule is None:
            return self._schedule.anchor if index == 0 else None
        candidate = self._candidate(index)
        if candidate is None or self._beyond_bound(index, candidate):
            return None
        return candidate

    # =========================================================================
    # Private: reference handling, pause and skip dates
    # =========================================================================

    def _validate_reference(self, reference: datetime) -> datetime:
        if not isinstance(reference, datetime) or reference.tzinfo is None:
            raise ScheduleValidationError(
                "Reference instant must be a timezone-aware datetime", path="reference"
            )
        return as_utc(reference)

    def _resolve(self, reference_utc: datetime) -> tuple[datetime, datetime] | None:
        """Find the next usable occurrence after reference_utc.

        Returns:
            (scheduled, occurrence): the recurrence instant and the instant
            after applying that date's exception shift; None if exhausted.
        """
        cursor = reference_utc

        paused_until = self._schedule.paused_until
        if paused_until is not None:
            pause_start = as_utc(start_of_local_day(paused_until, self._tz))
            if cursor < pause_start:
                cursor = pause_start - _ONE_MICROSECOND

        for _ in range(const.MAX_SKIP_ITERATIONS):
            scheduled = self._next_after(cursor)
            if scheduled is None:
                return None

            day = date_key(scheduled, self._tz)
            if day in self._schedule.skip_dates:
                const.LOGGER.debug("RecurrenceEngine: Skipping occurrence on %s", day)
                cursor = scheduled
                continue

            shift_minutes = self._schedule.exception_shifts.get(day, 0)
            return scheduled, scheduled + timedelta(minutes=shift_minutes)

        const.LOGGER.warning(
            "RecurrenceEngine: Max skip iterations reached after %s", reference_utc
        )
        return None

    # =========================================================================
    # Private: closed-form stepping
    # =========================================================================

    def _next_after(self, reference_utc: datetime) -> datetime | None:
        """First plain recurrence instant strictly after reference_utc."""
        if self._rule is None:
            anchor = self._schedule.anchor
            return anchor if anchor > reference_utc else None

        index = self._estimate_index(reference_utc)
        candidate = self._candidate(index)
        if candidate is None:
            return None

        # Step back while the estimate overshoots
        while index > 0 and candidate > reference_utc:
            previous = self._candidate(index - 1)
            if previous is None or previous <= reference_utc:
                break
            index -= 1
            candidate = previous

        # Step forward to the first instant strictly after the reference
        steps = 0
        while candidate <= reference_utc:
            index += 1
            steps += 1
            candidate = self._candidate(index)
            if candidate is None:
                return None
        if steps > const.MAX_ADJUST_STEPS:
            const.LOGGER.warning(
                "RecurrenceEngine: Index estimate was off by %d steps for %s",
                steps,
                self._rule.to_rrule_string(),
            )

        if self._beyond_bound(index, candidate):
            return None
        return candidate

    def _estimate_index(self, reference_utc: datetime) -> int:
        """Estimate the occurrence index at or just before the reference.

        Uses the wall-clock distance from the anchor divided by the step.
        The result can be off by one either way; callers correct it.
        """
        rule = self._rule
        if rule is None:
            return 0

        reference_wall = as_local(reference_utc, self._tz).replace(tzinfo=None)
        if reference_wall <= self._anchor_wall:
            return 0

        if rule.frequency in _DAYS_PER_UNIT:
            step_days = _DAYS_PER_UNIT[rule.frequency] * rule.interval
            elapsed_days = (reference_wall - self._anchor_wall) / timedelta(days=1)
            return int(elapsed_days // step_days)

        step_months = _MONTHS_PER_UNIT[rule.frequency] * rule.interval
        return max(0, months_between(self._anchor_wall, reference_wall) // step_months)

    def _candidate(self, index: int) -> datetime | None:
        """UTC instant of the index-th step from the anchor, ignoring bounds.

        Returns None when the date falls outside the representable range.
        """
        rule = self._rule
        if index == 0:
            # The anchor instant itself, even inside an ambiguous local hour
            return self._schedule.anchor
        if rule is None:
            return None

        try:
            if rule.frequency in _DAYS_PER_UNIT:
                wall = dt_add_calendar(
                    self._anchor_wall,
                    days=_DAYS_PER_UNIT[rule.frequency] * rule.interval * index,
                )
            else:
                wall = dt_add_calendar(
                    self._anchor_wall,
                    months=_MONTHS_PER_UNIT[rule.frequency] * rule.interval * index,
                )
        except (OverflowError, ValueError):
            const.LOGGER.debug(
                "RecurrenceEngine: Occurrence %d is outside the supported date range",
                index,
            )
            return None

        return as_utc(localize_wall_time(wall, self._tz))

    def _beyond_bound(self, index: int, candidate: datetime) -> bool:
        bound = self._rule.bound if self._rule else None
        if isinstance(bound, Count):
            return index >= bound.n
        if isinstance(bound, Until):
            return candidate > bound.at
        return False


# =============================================================================
# Module-level API
# =============================================================================


def next_occurrence(schedule: RecurringSchedule, reference: datetime) -> OccurrenceResult:
    """Next occurrence of `schedule` strictly after `reference`.

    Pure and deterministic: identical inputs always give identical output.

    Example:
        >>> schedule = RecurringSchedule(
        ...     anchor=datetime(2025, 3, 10, 8, tzinfo=UTC),
        ...     recurrence="FREQ=DAILY;UNTIL=20250312T080000Z",
        ... )
        >>> next_occurrence(schedule, datetime(2025, 3, 11, 7, tzinfo=UTC)).as_dict()
        {'occurrence_at': '2025-03-11T08:00:00.000Z', 'prep_start_at': '2025-03-11T08:00:00.000Z'}
    """
    return RecurrenceEngine(schedule).get_next_occurrence(after=reference)


def occurrences_to_tasks(
    task_id: str,
    schedule: RecurringSchedule,
    horizon: Horizon,
    child_ids: list[str] | tuple[str, ...] = (),
    title: str | None = None,
    duration: timedelta | None = None,
    limit: int = const.DEFAULT_OCCURRENCE_LIMIT,
) -> list[TaskData]:
    """Materialize a schedule's occurrences inside a horizon as detector tasks.

    Each occurrence becomes one task dict with id "<task_id>@<local date>".
    With a duration the task gets a due time; without one it is a
    point-in-time task.
    """
    engine = RecurrenceEngine(schedule)
    # Horizon is half-open; get_occurrences is inclusive on both ends
    occurrences = engine.get_occurrences(
        horizon.start, horizon.end - _ONE_MICROSECOND, limit=limit
    )

    tasks: list[TaskData] = []
    for occurrence in occurrences:
        task: TaskData = {
            "id": f"{task_id}@{date_key(occurrence, schedule.tz)}",
            "child_ids": list(child_ids),
            "start_at": occurrence,
        }
        if duration is not None:
            task["due_at"] = occurrence + duration
        if title is not None:
            task["title"] = title
        tasks.append(task)
    return tasks
