"""Value types shared by the recurrence resolver and the conflict detector.

Every type here is an immutable value: frozen dataclasses holding UTC
datetimes, tuples of identifiers and enum tags. Nothing keeps a reference into
caller state, so results can be handed to other threads or serialized freely.

The closed vocabularies (frequencies, source kinds, conflict types, severities,
resolution kinds, effort) are StrEnums so exhaustive handling can be checked
and values serialize as plain strings.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from enum import StrEnum
import math
from types import MappingProxyType
from typing import Any
from zoneinfo import ZoneInfo

from . import const
from .errors import (
    ConflictingBoundError,
    ConflictValidationError,
    InvalidCountError,
    InvalidIntervalError,
    InvalidUntilError,
    MalformedExpressionError,
    ScheduleValidationError,
    UnknownFrequencyError,
)
from .utils.dt_utils import (
    as_utc,
    dt_format_iso_ms,
    dt_format_rrule_until,
    dt_parse_date,
    dt_parse_rrule_until,
    get_time_zone,
)

# =============================================================================
# ENUMS
# =============================================================================


class Frequency(StrEnum):
    """Supported RRULE FREQ values."""

    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"
    YEARLY = "YEARLY"


class SourceKind(StrEnum):
    """Where a CandidateEvent came from."""

    TASK = "task"
    LESSON = "lesson"
    ASSEMBLY = "assembly"
    SCHOOL_OTHER = "school_other"  # lunch, recess and other school items
    SFO = "sfo"
    AKS = "aks"
    HOLIDAY = "holiday"
    SCHOOL_BREAK = "school_break"


# Kinds that occupy a child's time (HOLIDAY / SCHOOL_BREAK only mark closed days)
ACTIVITY_KINDS: frozenset[SourceKind] = frozenset(
    {
        SourceKind.TASK,
        SourceKind.LESSON,
        SourceKind.ASSEMBLY,
        SourceKind.SCHOOL_OTHER,
        SourceKind.SFO,
        SourceKind.AKS,
    }
)
SCHOOL_KINDS: frozenset[SourceKind] = frozenset(
    {SourceKind.LESSON, SourceKind.ASSEMBLY, SourceKind.SCHOOL_OTHER}
)
AFTER_SCHOOL_KINDS: frozenset[SourceKind] = frozenset({SourceKind.SFO, SourceKind.AKS})


class Severity(StrEnum):
    """Ordered conflict severity (low < medium < high < critical)."""

    LOW = const.SEVERITY_LOW
    MEDIUM = const.SEVERITY_MEDIUM
    HIGH = const.SEVERITY_HIGH
    CRITICAL = const.SEVERITY_CRITICAL

    @property
    def weight(self) -> int:
        """Sort weight: critical=4, high=3, medium=2, low=1."""
        return const.SEVERITY_WEIGHTS[self.value]


class ConflictType(StrEnum):
    """The six conflict variants, in detection-pass order."""

    SCHOOL_TASK_OVERLAP = "school_task_overlap"
    NORWEGIAN_HOLIDAY = "norwegian_holiday"
    MULTIPLE_CHILDREN = "multiple_children"
    SFO_AKS_CONFLICT = "sfo_aks_conflict"
    TRAVEL_TIME = "travel_time"
    FAMILY_OVERLOAD = "family_overload"


class ResolutionKind(StrEnum):
    """What a suggested resolution does."""

    RESCHEDULE = "reschedule"
    DELEGATE = "delegate"
    CANCEL = "cancel"
    MODIFY = "modify"
    ACCEPT = "accept"


class Effort(StrEnum):
    """Effort needed to apply a resolution."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


# =============================================================================
# RECURRENCE RULE
# =============================================================================


@dataclass(frozen=True)
class Until:
    """Bound: occurrences up to and including `at` (UTC)."""

    at: datetime

    def __post_init__(self) -> None:
        if self.at.tzinfo is None:
            raise InvalidUntilError(
                "UNTIL must be timezone-aware",
                expression=f"UNTIL={self.at.isoformat()}",
                key=const.RRULE_KEY_UNTIL,
            )
        object.__setattr__(self, "at", as_utc(self.at))


@dataclass(frozen=True)
class Count:
    """Bound: only the first `n` occurrences exist."""

    n: int

    def __post_init__(self) -> None:
        if isinstance(self.n, bool) or not isinstance(self.n, int) or self.n < 1:
            raise InvalidCountError(
                "COUNT must be a positive integer",
                expression=f"COUNT={self.n}",
                key=const.RRULE_KEY_COUNT,
                value=str(self.n),
            )


RecurrenceBound = Until | Count | None


def _parse_positive_int(
    expression: str, key: str, value: str, error: type[InvalidIntervalError | InvalidCountError]
) -> int:
    try:
        number = int(value)
    except ValueError:
        raise error(
            f"{key} must be a positive integer", expression, key=key, value=value
        ) from None
    if number < 1:
        raise error(f"{key} must be a positive integer", expression, key=key, value=value)
    return number


@dataclass(frozen=True)
class RecurrenceRule:
    """Parsed form of a recurrence expression (FREQ/INTERVAL/UNTIL/COUNT)."""

    frequency: Frequency
    interval: int = const.DEFAULT_INTERVAL
    bound: RecurrenceBound = None

    def __post_init__(self) -> None:
        if isinstance(self.interval, bool) or not isinstance(self.interval, int) or self.interval < 1:
            raise InvalidIntervalError(
                "INTERVAL must be a positive integer",
                expression=f"INTERVAL={self.interval}",
                key=const.RRULE_KEY_INTERVAL,
                value=str(self.interval),
            )

    @classmethod
    def parse(cls, expression: str) -> RecurrenceRule:
        """Parse a ';'-separated KEY=VALUE recurrence expression.

        Example:
            >>> RecurrenceRule.parse("FREQ=DAILY;UNTIL=20250312T080000Z")
            RecurrenceRule(frequency=<Frequency.DAILY: 'DAILY'>, interval=1, ...)

        Raises:
            RecurrenceParseError: One of its subtypes describing the problem.
        """
        if not isinstance(expression, str) or not expression.strip():
            raise MalformedExpressionError(
                "Recurrence expression is empty", expression=str(expression)
            )

        text = expression.strip()
        if text.upper().startswith(const.RRULE_PREFIX):
            text = text[len(const.RRULE_PREFIX) :]

        pairs: dict[str, str] = {}
        for raw_pair in text.split(const.RRULE_PAIR_SEPARATOR):
            pair = raw_pair.strip()
            if not pair:
                # Tolerate a trailing separator ("FREQ=DAILY;")
                continue
            key, separator, value = pair.partition(const.RRULE_KEY_VALUE_SEPARATOR)
            key = key.strip().upper()
            value = value.strip()
            if not separator or not key:
                raise MalformedExpressionError(
                    f"Expected KEY=VALUE, got {pair!r}", expression
                )
            if key not in const.RRULE_SUPPORTED_KEYS:
                raise MalformedExpressionError(
                    f"Unsupported key {key}", expression, key=key, value=value
                )
            if key in pairs:
                raise MalformedExpressionError(
                    f"Duplicate key {key}", expression, key=key, value=value
                )
            pairs[key] = value

        if const.RRULE_KEY_FREQ not in pairs:
            raise MalformedExpressionError(
                "FREQ is required", expression, key=const.RRULE_KEY_FREQ
            )

        freq_value = pairs[const.RRULE_KEY_FREQ]
        try:
            frequency = Frequency(freq_value.upper())
        except ValueError:
            raise UnknownFrequencyError(
                f"Unknown frequency {freq_value!r}",
                expression,
                key=const.RRULE_KEY_FREQ,
                value=freq_value,
            ) from None

        if const.RRULE_KEY_UNTIL in pairs and const.RRULE_KEY_COUNT in pairs:
            raise ConflictingBoundError("UNTIL and COUNT are mutually exclusive", expression)

        interval = const.DEFAULT_INTERVAL
        if const.RRULE_KEY_INTERVAL in pairs:
            interval = _parse_positive_int(
                expression,
                const.RRULE_KEY_INTERVAL,
                pairs[const.RRULE_KEY_INTERVAL],
                InvalidIntervalError,
            )

        bound: RecurrenceBound = None
        if const.RRULE_KEY_UNTIL in pairs:
            until_value = pairs[const.RRULE_KEY_UNTIL]
            until_at = dt_parse_rrule_until(until_value)
            if until_at is None:
                raise InvalidUntilError(
                    "UNTIL must look like YYYYMMDDTHHMMSSZ",
                    expression,
                    key=const.RRULE_KEY_UNTIL,
                    value=until_value,
                )
            bound = Until(until_at)
        elif const.RRULE_KEY_COUNT in pairs:
            bound = Count(
                _parse_positive_int(
                    expression,
                    const.RRULE_KEY_COUNT,
                    pairs[const.RRULE_KEY_COUNT],
                    InvalidCountError,
                )
            )

        return cls(frequency=frequency, interval=interval, bound=bound)

    def to_rrule_string(self) -> str:
        """Generate the canonical expression (e.g. "FREQ=WEEKLY;INTERVAL=2;COUNT=5")."""
        parts = [
            f"{const.RRULE_KEY_FREQ}={self.frequency.value}",
            f"{const.RRULE_KEY_INTERVAL}={self.interval}",
        ]
        if isinstance(self.bound, Until):
            parts.append(f"{const.RRULE_KEY_UNTIL}={dt_format_rrule_until(self.bound.at)}")
        elif isinstance(self.bound, Count):
            parts.append(f"{const.RRULE_KEY_COUNT}={self.bound.n}")
        return const.RRULE_PAIR_SEPARATOR.join(parts)


# =============================================================================
# RECURRING SCHEDULE
# =============================================================================


def _normalize_date_key(value: str | date, field_name: str) -> str:
    parsed = dt_parse_date(value)
    if parsed is None:
        raise ScheduleValidationError(f"Invalid date {value!r}", path=field_name)
    return parsed.isoformat()


@dataclass(frozen=True)
class RecurringSchedule:
    """A task's timing: anchor, optional recurrence and prep window.

    The anchor is a wall-clock time in `timezone`; a naive anchor is read in
    that zone. The recurrence expression is parsed on construction, so an
    invalid expression never survives long enough to be queried.

    Attributes:
        anchor: First occurrence (stored in UTC)
        timezone: IANA timezone of the household
        recurrence: RRULE subset expression, or None for a one-off
        prep_window_hours: Lead time before each occurrence
        paused_until: Skip occurrences on local dates before this one
        skip_dates: Local dates ("YYYY-MM-DD") without an occurrence
        exception_shifts: Local date -> minutes to move that occurrence by
        rule: Parsed recurrence (derived)
    """

    anchor: datetime
    timezone: str = const.DEFAULT_TIME_ZONE
    recurrence: str | None = None
    prep_window_hours: int = const.DEFAULT_PREP_WINDOW_HOURS
    paused_until: datetime | None = None
    skip_dates: frozenset[str] = frozenset()
    exception_shifts: Mapping[str, int] = field(default_factory=dict, hash=False)
    rule: RecurrenceRule | None = field(init=False, default=None)

    def __post_init__(self) -> None:
        tz = get_time_zone(self.timezone)
        if tz is None:
            raise ScheduleValidationError(
                f"Unknown timezone {self.timezone!r}", path="timezone"
            )
        if not isinstance(self.anchor, datetime):
            raise ScheduleValidationError("Anchor must be a datetime", path="anchor")
        object.__setattr__(self, "anchor", as_utc(self.anchor, tz))

        hours = self.prep_window_hours
        if isinstance(hours, bool) or not isinstance(hours, int) or hours < 0:
            raise ScheduleValidationError(
                "Prep window must be a non-negative integer number of hours",
                path="prep_window_hours",
            )

        if self.paused_until is not None:
            object.__setattr__(self, "paused_until", as_utc(self.paused_until, tz))

        object.__setattr__(
            self,
            "skip_dates",
            frozenset(_normalize_date_key(day, "skip_dates") for day in self.skip_dates),
        )

        shifts: dict[str, int] = {}
        for day, minutes in self.exception_shifts.items():
            if isinstance(minutes, bool) or not isinstance(minutes, int):
                raise ScheduleValidationError(
                    f"Shift for {day} must be whole minutes", path="exception_shifts"
                )
            shifts[_normalize_date_key(day, "exception_shifts")] = minutes
        object.__setattr__(self, "exception_shifts", MappingProxyType(shifts))

        if self.recurrence:
            object.__setattr__(self, "rule", RecurrenceRule.parse(self.recurrence))

    @property
    def tz(self) -> ZoneInfo:
        """Resolved household timezone."""
        # Validated in __post_init__
        return ZoneInfo(self.timezone)

    @property
    def is_recurring(self) -> bool:
        return self.rule is not None


# =============================================================================
# RESOLVER OUTPUT
# =============================================================================


@dataclass(frozen=True)
class OccurrenceResult:
    """Next occurrence of a schedule and the start of its prep window.

    Both fields are None together; that is the "no further occurrence" result.
    """

    occurrence_at: datetime | None = None
    prep_start_at: datetime | None = None

    @classmethod
    def for_occurrence(cls, occurrence_at: datetime | None, prep_window_hours: int) -> OccurrenceResult:
        """Build a result, deriving prep_start_at from the prep window."""
        if occurrence_at is None:
            return NO_OCCURRENCE
        occurrence_at = as_utc(occurrence_at)
        return cls(
            occurrence_at=occurrence_at,
            prep_start_at=occurrence_at - timedelta(hours=prep_window_hours),
        )

    @property
    def found(self) -> bool:
        return self.occurrence_at is not None

    def as_dict(self) -> dict[str, str | None]:
        """JSON form: UTC ISO-8601 with milliseconds, or None."""
        return {
            "occurrence_at": dt_format_iso_ms(self.occurrence_at),
            "prep_start_at": dt_format_iso_ms(self.prep_start_at),
        }


NO_OCCURRENCE = OccurrenceResult()


# =============================================================================
# CONFLICT DETECTION VALUES
# =============================================================================


@dataclass(frozen=True)
class CandidateEvent:
    """A task or calendar item normalized to a common interval shape.

    `end` is None for point-in-time tasks (reminders without a due time).
    """

    id: str
    start: datetime
    end: datetime | None
    title: str
    source_kind: SourceKind
    child_ids: tuple[str, ...] = ()

    @property
    def is_point(self) -> bool:
        return self.end is None

    def overlaps(self, other: CandidateEvent) -> bool:
        """Half-open [start, end) intersection; point events never overlap."""
        if self.end is None or other.end is None:
            return False
        return self.start < other.end and other.start < self.end

    def coincides_with(self, other: CandidateEvent) -> bool:
        """Whether two events share an instant, point events included.

        Two points coincide when they are equal; a point coincides with an
        interval when it falls inside [start, end).
        """
        if self.end is None and other.end is None:
            return self.start == other.start
        if self.end is None:
            return other.active_at(self.start)
        if other.end is None:
            return self.active_at(other.start)
        return self.overlaps(other)

    def active_at(self, moment: datetime) -> bool:
        """Whether the event is in progress at `moment`."""
        if self.end is None:
            return self.start == moment
        return self.start <= moment < self.end

    def as_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "start": dt_format_iso_ms(self.start),
            "end": dt_format_iso_ms(self.end),
            "title": self.title,
            "source_kind": self.source_kind.value,
            "child_ids": list(self.child_ids),
        }


@dataclass(frozen=True)
class ConflictResolution:
    """A suggested fix for a conflict.

    Only pure time shifts are auto-applicable; they carry the start time
    they would move the task to in `proposed_start`.
    """

    id: str
    kind: ResolutionKind
    title: str
    description: str
    effort: Effort
    auto_applicable: bool = False
    impact: str = ""
    proposed_start: datetime | None = None

    def as_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "kind": self.kind.value,
            "title": self.title,
            "description": self.description,
            "effort": self.effort.value,
            "auto_applicable": self.auto_applicable,
            "impact": self.impact,
            "proposed_start": dt_format_iso_ms(self.proposed_start),
        }


@dataclass(frozen=True)
class ScheduleConflict:
    """One detected scheduling problem with its suggested resolutions."""

    id: str
    type: ConflictType
    severity: Severity
    title: str
    description: str
    affected_tasks: tuple[str, ...]
    affected_children: tuple[str, ...]
    conflicting_events: tuple[CandidateEvent, ...]
    resolutions: tuple[ConflictResolution, ...]
    detected_at: datetime

    def as_dict(self) -> dict[str, Any]:
        """JSON-serializable representation for the notification/UI layer."""
        return {
            "id": self.id,
            "type": self.type.value,
            "severity": self.severity.value,
            "title": self.title,
            "description": self.description,
            "affected_tasks": list(self.affected_tasks),
            "affected_children": list(self.affected_children),
            "conflicting_events": [event.as_dict() for event in self.conflicting_events],
            "resolutions": [resolution.as_dict() for resolution in self.resolutions],
            "detected_at": dt_format_iso_ms(self.detected_at),
        }


@dataclass(frozen=True)
class Horizon:
    """Half-open scan window [start, end) for conflict detection."""

    start: datetime
    end: datetime

    def __post_init__(self) -> None:
        if self.start.tzinfo is None or self.end.tzinfo is None:
            raise ConflictValidationError("Horizon bounds must be timezone-aware", path="horizon")
        object.__setattr__(self, "start", as_utc(self.start))
        object.__setattr__(self, "end", as_utc(self.end))
        if self.end <= self.start:
            raise ConflictValidationError("Horizon end must be after its start", path="horizon")

    @classmethod
    def starting_at(
        cls, start: datetime, days: int = const.DEFAULT_OVERLOAD_HORIZON_DAYS
    ) -> Horizon:
        """Horizon of `days` days from `start` (one week by default)."""
        return cls(start=start, end=start + timedelta(days=days))

    def contains(self, moment: datetime) -> bool:
        return self.start <= moment < self.end

    def intersects(self, event: CandidateEvent) -> bool:
        """Whether any part of `event` lies inside the horizon."""
        if event.end is None:
            return self.contains(event.start)
        return event.start < self.end and self.start < event.end

    def sample_count(self, granularity: timedelta) -> int:
        return math.ceil((self.end - self.start) / granularity)

    def sample_times(self, granularity: timedelta) -> Iterator[datetime]:
        """Sample instants start, start + granularity, ... before end."""
        for index in range(self.sample_count(granularity)):
            yield self.start + index * granularity
