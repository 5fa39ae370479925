"""Conflict Engine - Pure logic for household schedule conflict detection.

Cross-references household task occurrences with the children's external
calendars (lessons, assemblies, SFO/AKS sessions, school breaks) and the
public holiday table, and reports scheduling problems with suggested fixes.

Detection runs in two phases:
1. Validation + normalization: collaborator dicts are checked with voluptuous
   schemas and mapped to CandidateEvent values clipped to the horizon. Any
   structural problem raises ConflictValidationError here, before any pass.
2. Six independent passes, each a pure function returning its own list.
   The lists are concatenated in pass order and stably sorted by severity.

ARCHITECTURE: This is a pure logic engine. No clock reads, no I/O, no shared
mutable state; `now` and all reference data are parameters.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from types import MappingProxyType
from typing import Any, assert_never
from zoneinfo import ZoneInfo

import voluptuous as vol

from .. import const
from ..config import DEFAULT_DETECTOR_CONFIG, DetectorConfig
from ..errors import ConflictValidationError, HorizonTooLargeError
from ..models import (
    ACTIVITY_KINDS,
    AFTER_SCHOOL_KINDS,
    SCHOOL_KINDS,
    CandidateEvent,
    ConflictResolution,
    ConflictType,
    Effort,
    Horizon,
    ResolutionKind,
    ScheduleConflict,
    Severity,
    SourceKind,
)
from ..utils.dt_utils import (
    as_local,
    as_utc,
    dt_format_short,
    dt_parse,
    dt_parse_date,
    localize_wall_time,
)

# =============================================================================
# INPUT SCHEMAS
# =============================================================================


def _datetime_value(tz: ZoneInfo) -> Callable[[Any], datetime]:
    """Voluptuous validator: datetime or ISO string -> aware UTC datetime.

    Naive values are read as wall time in the household timezone.
    """

    def validate(value: Any) -> datetime:
        if isinstance(value, (datetime, str)):
            parsed = dt_parse(value, tz)
            if parsed is not None:
                return as_utc(parsed)
        raise vol.Invalid(f"Expected an ISO-8601 datetime, got {value!r}")

    return validate


def _date_value(value: Any) -> date:
    """Voluptuous validator: ISO date string or date -> date."""
    parsed = dt_parse_date(value) if isinstance(value, (str, date)) else None
    if parsed is None:
        raise vol.Invalid(f"Expected an ISO-8601 date, got {value!r}")
    return parsed


_ID = vol.All(vol.Coerce(str), vol.Length(min=1))
_TEXT = vol.Any(None, vol.Coerce(str))


def _item_list(item_schema: vol.Schema) -> vol.Any:
    return vol.Any(None, [item_schema])


def _build_schemas(tz: ZoneInfo) -> dict[str, vol.Schema]:
    """Schemas for one detection run (datetimes depend on the household tz)."""
    when = _datetime_value(tz)
    item = vol.Schema(
        {
            vol.Required(const.DATA_ITEM_ID): _ID,
            vol.Required(const.DATA_ITEM_START): when,
            vol.Required(const.DATA_ITEM_END): when,
            vol.Optional(const.DATA_ITEM_TITLE, default=None): _TEXT,
            vol.Optional(const.DATA_ITEM_TYPE, default=None): _TEXT,
        },
        extra=vol.ALLOW_EXTRA,
    )
    return {
        "task": vol.Schema(
            {
                vol.Required(const.DATA_TASK_ID): _ID,
                vol.Optional(const.DATA_TASK_CHILD_IDS, default=list): vol.Any(
                    None, [_ID]
                ),
                vol.Required(const.DATA_TASK_START_AT): when,
                vol.Optional(const.DATA_TASK_DUE_AT, default=None): vol.Any(None, when),
                vol.Optional(const.DATA_TASK_TITLE, default=None): _TEXT,
            },
            extra=vol.ALLOW_EXTRA,
        ),
        "child": vol.Schema(
            {
                vol.Required(const.DATA_CHILD_ID): _ID,
                vol.Optional(const.DATA_CHILD_NAME, default=None): _TEXT,
            },
            extra=vol.ALLOW_EXTRA,
        ),
        "calendar": vol.Any(
            None,
            vol.Schema(
                {
                    vol.Optional(const.DATA_CALENDAR_EVENTS, default=list): _item_list(item),
                    vol.Optional(const.DATA_CALENDAR_SFO, default=list): _item_list(item),
                    vol.Optional(const.DATA_CALENDAR_AKS, default=list): _item_list(item),
                    vol.Optional(const.DATA_CALENDAR_BREAKS, default=list): _item_list(item),
                },
                extra=vol.ALLOW_EXTRA,
            ),
        ),
        "holiday": vol.Schema(
            {
                vol.Required(const.DATA_HOLIDAY_DATE): _date_value,
                vol.Required(const.DATA_HOLIDAY_NAME): vol.Coerce(str),
                vol.Optional(const.DATA_HOLIDAY_AFFECTS_SCHOOLS, default=False): vol.Boolean(),
            },
            extra=vol.ALLOW_EXTRA,
        ),
    }


def _join_path(prefix: str, parts: Sequence[Any]) -> str:
    path = prefix
    for part in parts:
        path += f"[{part}]" if isinstance(part, int) else f".{part}"
    return path


def _validate(schema: Callable[[Any], Any], value: Any, path: str) -> Any:
    try:
        return schema(value)
    except vol.Invalid as err:
        raise ConflictValidationError(
            f"Invalid input: {err.msg}", path=_join_path(path, err.path)
        ) from err


# =============================================================================
# NORMALIZATION
# =============================================================================

# School calendar "type" -> SourceKind. Items without a type are lessons;
# unrecognised types are minor school items (lunch, recess, other).
_SCHOOL_EVENT_KINDS: Mapping[str, SourceKind] = MappingProxyType(
    {
        const.SCHOOL_EVENT_TYPE_LESSON: SourceKind.LESSON,
        const.SCHOOL_EVENT_TYPE_ASSEMBLY: SourceKind.ASSEMBLY,
        const.SCHOOL_EVENT_TYPE_HOLIDAY: SourceKind.HOLIDAY,
        const.SCHOOL_EVENT_TYPE_BREAK: SourceKind.SCHOOL_BREAK,
        const.SCHOOL_EVENT_TYPE_RECESS: SourceKind.SCHOOL_OTHER,
        const.SCHOOL_EVENT_TYPE_LUNCH: SourceKind.SCHOOL_OTHER,
        const.SCHOOL_EVENT_TYPE_OTHER: SourceKind.SCHOOL_OTHER,
    }
)

# Overlap severity by school item kind
_OVERLAP_SEVERITY: Mapping[SourceKind, Severity] = MappingProxyType(
    {
        SourceKind.LESSON: Severity.HIGH,
        SourceKind.ASSEMBLY: Severity.MEDIUM,
        SourceKind.SCHOOL_OTHER: Severity.LOW,
    }
)

_CALENDAR_SECTIONS: tuple[tuple[str, SourceKind | None], ...] = (
    (const.DATA_CALENDAR_EVENTS, None),
    (const.DATA_CALENDAR_SFO, SourceKind.SFO),
    (const.DATA_CALENDAR_AKS, SourceKind.AKS),
    (const.DATA_CALENDAR_BREAKS, SourceKind.SCHOOL_BREAK),
)


@dataclass(frozen=True)
class DetectionContext:
    """Validated, normalized input shared read-only by all passes."""

    horizon: Horizon
    config: DetectorConfig
    detected_at: datetime
    tasks: tuple[CandidateEvent, ...]
    child_names: Mapping[str, str]
    child_events: Mapping[str, tuple[CandidateEvent, ...]]
    school_holidays: Mapping[date, str]

    @property
    def tz(self) -> ZoneInfo:
        return self.config.tz

    def child_name(self, child_id: str) -> str:
        return self.child_names.get(child_id) or child_id

    def local_date(self, moment: datetime) -> date:
        return as_local(moment, self.tz).date()

    def events_for(self, child_id: str, kinds: frozenset[SourceKind]) -> list[CandidateEvent]:
        """A child's calendar events of the given kinds (empty without data)."""
        return [event for event in self.child_events.get(child_id, ()) if event.source_kind in kinds]

    def is_school_closed_for(self, child_id: str, event: CandidateEvent) -> bool:
        """Whether school is closed for the child when `event` starts.

        Closed means a school-affecting public holiday on that local date or a
        school break / holiday item in the child's own calendar covering it.
        """
        if self.local_date(event.start) in self.school_holidays:
            return True
        closures = self.events_for(
            child_id, frozenset({SourceKind.HOLIDAY, SourceKind.SCHOOL_BREAK})
        )
        return any(closure.active_at(event.start) for closure in closures)


def _normalize_tasks(
    tasks: Iterable[Mapping[str, Any]],
    schema: vol.Schema,
    horizon: Horizon,
) -> tuple[CandidateEvent, ...]:
    normalized: list[CandidateEvent] = []
    for index, raw in enumerate(tasks):
        path = f"tasks[{index}]"
        task = _validate(schema, raw, path)
        start: datetime = task[const.DATA_TASK_START_AT]
        due: datetime | None = task[const.DATA_TASK_DUE_AT]
        if due is not None and due < start:
            raise ConflictValidationError(
                "Task is due before it starts", path=f"{path}.{const.DATA_TASK_DUE_AT}"
            )
        event = CandidateEvent(
            id=task[const.DATA_TASK_ID],
            start=start,
            # A task due the moment it starts is a point in time
            end=due if due is not None and due > start else None,
            title=task[const.DATA_TASK_TITLE] or const.DISPLAY_UNTITLED_TASK,
            source_kind=SourceKind.TASK,
            child_ids=tuple(dict.fromkeys(task[const.DATA_TASK_CHILD_IDS] or ())),
        )
        if horizon.intersects(event):
            normalized.append(event)
    return tuple(normalized)


def _school_event_kind(event_type: str | None) -> SourceKind:
    if not event_type:
        return SourceKind.LESSON
    return _SCHOOL_EVENT_KINDS.get(event_type.lower(), SourceKind.SCHOOL_OTHER)


def _normalize_calendar(
    child_id: str,
    calendar: Mapping[str, Any] | None,
    schema: vol.Schema,
    horizon: Horizon,
    lookback: timedelta = timedelta(0),
) -> tuple[CandidateEvent, ...]:
    """Validate one child's calendar and keep the events relevant to `horizon`.

    Events ending up to `lookback` before the horizon starts are kept so the
    travel-time pass sees the gap before the first task.
    """
    path = f"calendars[{child_id}]"
    data = _validate(schema, calendar, path)
    if not data:
        return ()

    events: list[CandidateEvent] = []
    for section, section_kind in _CALENDAR_SECTIONS:
        for index, item in enumerate(data.get(section) or ()):
            start: datetime = item[const.DATA_ITEM_START]
            end: datetime = item[const.DATA_ITEM_END]
            if end < start:
                raise ConflictValidationError(
                    "Calendar item ends before it starts",
                    path=f"{path}.{section}[{index}].{const.DATA_ITEM_END}",
                )
            kind = section_kind or _school_event_kind(item[const.DATA_ITEM_TYPE])
            event = CandidateEvent(
                id=item[const.DATA_ITEM_ID],
                start=start,
                end=end,
                title=item[const.DATA_ITEM_TITLE] or kind.value,
                source_kind=kind,
                child_ids=(child_id,),
            )
            if horizon.intersects(event) or (
                horizon.start - lookback <= end <= horizon.start
            ):
                events.append(event)
    return tuple(events)


def _school_holidays(
    holidays: Iterable[Mapping[str, Any]], schema: vol.Schema
) -> Mapping[date, str]:
    by_date: dict[date, str] = {}
    for index, raw in enumerate(holidays):
        holiday = _validate(schema, raw, f"holidays[{index}]")
        if holiday[const.DATA_HOLIDAY_AFFECTS_SCHOOLS]:
            # First entry wins for duplicate dates
            by_date.setdefault(holiday[const.DATA_HOLIDAY_DATE], holiday[const.DATA_HOLIDAY_NAME])
    return MappingProxyType(by_date)


def build_context(
    tasks: Iterable[Mapping[str, Any]],
    children: Iterable[Mapping[str, Any]],
    calendars: Mapping[str, Any] | None,
    holidays: Iterable[Mapping[str, Any]] | None,
    horizon: Horizon,
    *,
    config: DetectorConfig | None = None,
    now: datetime | None = None,
) -> DetectionContext:
    """Validate and normalize detector input.

    Raises:
        ConflictValidationError: On structurally invalid input.
        HorizonTooLargeError: If the overload pass would need too many samples.
    """
    config = config or DEFAULT_DETECTOR_CONFIG
    if not isinstance(horizon, Horizon):
        raise ConflictValidationError("Horizon must be a Horizon", path="horizon")

    samples = horizon.sample_count(config.overload_granularity)
    if samples > config.max_overload_samples:
        raise HorizonTooLargeError(samples, config.max_overload_samples)

    if now is not None and now.tzinfo is None:
        raise ConflictValidationError("`now` must be timezone-aware", path="now")

    schemas = _build_schemas(config.tz)

    child_names: dict[str, str] = {}
    for index, raw in enumerate(children or ()):
        child = _validate(schemas["child"], raw, f"children[{index}]")
        child_names[child[const.DATA_CHILD_ID]] = (
            child[const.DATA_CHILD_NAME] or child[const.DATA_CHILD_ID]
        )

    child_events: dict[str, tuple[CandidateEvent, ...]] = {}
    for child_id, calendar in (calendars or {}).items():
        child_events[str(child_id)] = _normalize_calendar(
            str(child_id), calendar, schemas["calendar"], horizon, config.min_travel_time
        )

    for child_id in child_names:
        if not child_events.get(child_id):
            const.LOGGER.debug(
                "ConflictEngine: No calendar data for child %s, skipping calendar checks",
                child_id,
            )

    return DetectionContext(
        horizon=horizon,
        config=config,
        detected_at=as_utc(now) if now is not None else horizon.start,
        tasks=_normalize_tasks(tasks or (), schemas["task"], horizon),
        child_names=MappingProxyType(child_names),
        child_events=MappingProxyType(child_events),
        school_holidays=_school_holidays(
            const.DEFAULT_HOLIDAYS if holidays is None else holidays, schemas["holiday"]
        ),
    )


# =============================================================================
# RESOLUTION TEMPLATES
# =============================================================================


def resolution_kinds(conflict_type: ConflictType) -> tuple[ResolutionKind, ...]:
    """The fixed set of resolution kinds offered for a conflict type."""
    match conflict_type:
        case ConflictType.SCHOOL_TASK_OVERLAP:
            return (ResolutionKind.RESCHEDULE, ResolutionKind.RESCHEDULE)
        case ConflictType.NORWEGIAN_HOLIDAY:
            return (ResolutionKind.RESCHEDULE, ResolutionKind.ACCEPT)
        case ConflictType.MULTIPLE_CHILDREN:
            return (ResolutionKind.RESCHEDULE, ResolutionKind.DELEGATE)
        case ConflictType.SFO_AKS_CONFLICT:
            return (ResolutionKind.RESCHEDULE,)
        case ConflictType.TRAVEL_TIME:
            return (ResolutionKind.MODIFY, ResolutionKind.ACCEPT)
        case ConflictType.FAMILY_OVERLOAD:
            return (ResolutionKind.RESCHEDULE, ResolutionKind.CANCEL)
        case _:
            assert_never(conflict_type)


def _shift_wall_days(moment: datetime, days: int, tz: ZoneInfo) -> datetime:
    """Move by whole local calendar days keeping the local time of day."""
    wall = as_local(moment, tz).replace(tzinfo=None) + timedelta(days=days)
    return as_utc(localize_wall_time(wall, tz))


def _next_weekend_start(moment: datetime, tz: ZoneInfo) -> datetime:
    """The next Saturday after `moment` at the same local time."""
    weekday = as_local(moment, tz).weekday()
    days = (5 - weekday) % 7 or 7
    return _shift_wall_days(moment, days, tz)


def _school_task_resolutions(
    task: CandidateEvent, event: CandidateEvent, ctx: DetectionContext
) -> tuple[ConflictResolution, ...]:
    return (
        ConflictResolution(
            id="reschedule_after_school",
            kind=ResolutionKind.RESCHEDULE,
            title="Move to after school",
            description=f"Move {task.title} to after {event.title} has finished",
            effort=Effort.LOW,
            auto_applicable=True,
            impact="The child can focus on school without worrying about chores",
            proposed_start=event.end,
        ),
        ConflictResolution(
            id="reschedule_to_weekend",
            kind=ResolutionKind.RESCHEDULE,
            title="Move to the weekend",
            description=f"Move {task.title} to the weekend when there is more time",
            effort=Effort.LOW,
            auto_applicable=True,
            impact="Calmer weekdays, but may affect weekend plans",
            proposed_start=_next_weekend_start(task.start, ctx.tz),
        ),
    )


def _holiday_resolutions(
    task: CandidateEvent, holiday_name: str, ctx: DetectionContext
) -> tuple[ConflictResolution, ...]:
    return (
        ConflictResolution(
            id="reschedule_before_holiday",
            kind=ResolutionKind.RESCHEDULE,
            title="Move to the day before",
            description=f"Do {task.title} the day before {holiday_name}",
            effort=Effort.LOW,
            auto_applicable=True,
            impact="The task gets done without disturbing the holiday",
            proposed_start=_shift_wall_days(task.start, -1, ctx.tz),
        ),
        ConflictResolution(
            id="accept_holiday",
            kind=ResolutionKind.ACCEPT,
            title="Keep as planned",
            description=f"Keep {task.title} on {holiday_name}",
            effort=Effort.LOW,
            impact="The family decides whether the holiday plans allow it",
        ),
    )


def _multi_child_resolutions(
    tasks: Sequence[CandidateEvent], child_names: Sequence[str]
) -> tuple[ConflictResolution, ...]:
    titles = ", ".join(task.title for task in tasks)
    return (
        ConflictResolution(
            id="stagger_tasks",
            kind=ResolutionKind.RESCHEDULE,
            title="Stagger the tasks",
            description=f"Move some of {titles} to other times",
            effort=Effort.MEDIUM,
            impact="Less stress for the family",
        ),
        ConflictResolution(
            id="delegate_to_other_adult",
            kind=ResolutionKind.DELEGATE,
            title="Share the supervision",
            description=f"Ask another adult to help {', '.join(child_names)} at the same time",
            effort=Effort.MEDIUM,
            impact="Every child gets help without moving any task",
        ),
    )


def _after_school_resolutions(
    task: CandidateEvent, activity: CandidateEvent, child_name: str
) -> tuple[ConflictResolution, ...]:
    return (
        ConflictResolution(
            id=f"reschedule_after_{activity.source_kind.value}",
            kind=ResolutionKind.RESCHEDULE,
            title="Move to after SFO/AKS",
            description=f"Do {task.title} when {child_name} is home from {activity.title}",
            effort=Effort.LOW,
            auto_applicable=True,
            impact="The child gets to finish their activities",
            proposed_start=activity.end,
        ),
    )


def _travel_time_resolutions(
    task: CandidateEvent, event: CandidateEvent, ctx: DetectionContext
) -> tuple[ConflictResolution, ...]:
    buffer_minutes = int(ctx.config.min_travel_time.total_seconds() // 60)
    return (
        ConflictResolution(
            id="add_buffer_time",
            kind=ResolutionKind.MODIFY,
            title="Add travel time",
            description=(
                f"Start {task.title} {buffer_minutes} minutes after {event.title} ends"
            ),
            effort=Effort.LOW,
            auto_applicable=True,
            impact="The child has time to get home and unwind",
            proposed_start=event.end + ctx.config.min_travel_time,
        ),
        ConflictResolution(
            id="accept_short_gap",
            kind=ResolutionKind.ACCEPT,
            title="Keep as planned",
            description=f"Keep {task.title} right after {event.title}",
            effort=Effort.LOW,
            impact="Fine when the activities are close to home",
        ),
    )


def _overload_resolutions(
    active: Sequence[CandidateEvent],
) -> tuple[ConflictResolution, ...]:
    task_titles = [item.title for item in active if item.source_kind is SourceKind.TASK]
    cancel_hint = f" such as {task_titles[-1]}" if task_titles else ""
    return (
        ConflictResolution(
            id="redistribute_tasks",
            kind=ResolutionKind.RESCHEDULE,
            title="Redistribute tasks",
            description="Spread the activities over more days",
            effort=Effort.MEDIUM,
            impact="A more balanced family plan",
        ),
        ConflictResolution(
            id="cancel_optional_task",
            kind=ResolutionKind.CANCEL,
            title="Drop an optional task",
            description=f"Cancel a task that can wait{cancel_hint}",
            effort=Effort.LOW,
            impact="Frees up time during the busiest period",
        ),
    )


# =============================================================================
# DETECTION PASSES
# =============================================================================


def _conflict(
    ctx: DetectionContext,
    *,
    conflict_id: str,
    conflict_type: ConflictType,
    severity: Severity,
    title: str,
    description: str,
    tasks: Sequence[CandidateEvent],
    child_ids: Iterable[str],
    events: Sequence[CandidateEvent],
    resolutions: tuple[ConflictResolution, ...],
) -> ScheduleConflict:
    return ScheduleConflict(
        id=conflict_id,
        type=conflict_type,
        severity=severity,
        title=title,
        description=description,
        affected_tasks=tuple(task.id for task in tasks),
        affected_children=tuple(dict.fromkeys(child_ids)),
        conflicting_events=tuple(events),
        resolutions=resolutions,
        detected_at=ctx.detected_at,
    )


def detect_school_task_overlaps(ctx: DetectionContext) -> list[ScheduleConflict]:
    """Pass 1: tasks overlapping a bound child's school items."""
    conflicts: list[ScheduleConflict] = []
    for task in ctx.tasks:
        if task.is_point:
            continue
        for child_id in task.child_ids:
            for event in ctx.events_for(child_id, SCHOOL_KINDS):
                if not task.overlaps(event) or ctx.is_school_closed_for(child_id, event):
                    continue
                child_name = ctx.child_name(child_id)
                conflicts.append(
                    _conflict(
                        ctx,
                        conflict_id=f"conflict_{task.id}_{event.id}",
                        conflict_type=ConflictType.SCHOOL_TASK_OVERLAP,
                        severity=_OVERLAP_SEVERITY[event.source_kind],
                        title=f"{task.title} overlaps with {event.title}",
                        description=(
                            f"{child_name} has {event.title} at school while "
                            f"{task.title} should be done at home."
                        ),
                        tasks=[task],
                        child_ids=[child_id],
                        events=[event],
                        resolutions=_school_task_resolutions(task, event, ctx),
                    )
                )
    return conflicts


def detect_holiday_conflicts(ctx: DetectionContext) -> list[ScheduleConflict]:
    """Pass 2: tasks on a public holiday that affects schools."""
    conflicts: list[ScheduleConflict] = []
    for task in ctx.tasks:
        holiday_name = ctx.school_holidays.get(ctx.local_date(task.start))
        if holiday_name is None:
            continue
        conflicts.append(
            _conflict(
                ctx,
                conflict_id=f"holiday_conflict_{task.id}",
                conflict_type=ConflictType.NORWEGIAN_HOLIDAY,
                severity=Severity.MEDIUM,
                title=f"{task.title} planned on {holiday_name}",
                description=(
                    f"The task is planned on {holiday_name}, a public holiday. "
                    "The family may have other plans."
                ),
                tasks=[task],
                child_ids=task.child_ids,
                events=[],
                resolutions=_holiday_resolutions(task, holiday_name, ctx),
            )
        )
    return conflicts


def _coinciding_groups(tasks: Sequence[CandidateEvent]) -> list[list[CandidateEvent]]:
    """Group tasks into connected sets of coinciding tasks (input order kept)."""
    parent = list(range(len(tasks)))

    def find(index: int) -> int:
        while parent[index] != index:
            parent[index] = parent[parent[index]]
            index = parent[index]
        return index

    for i, first in enumerate(tasks):
        for j in range(i + 1, len(tasks)):
            if first.coincides_with(tasks[j]):
                root_i, root_j = find(i), find(j)
                if root_i != root_j:
                    parent[max(root_i, root_j)] = min(root_i, root_j)

    groups: dict[int, list[CandidateEvent]] = {}
    for index, task in enumerate(tasks):
        groups.setdefault(find(index), []).append(task)
    return sorted(groups.values(), key=lambda group: min(task.start for task in group))


def detect_multi_child_conflicts(ctx: DetectionContext) -> list[ScheduleConflict]:
    """Pass 3: tasks for different children at the same time."""
    bound_tasks = [task for task in ctx.tasks if task.child_ids]
    conflicts: list[ScheduleConflict] = []
    for group in _coinciding_groups(bound_tasks):
        if len(group) < 2:
            continue
        child_ids = list(dict.fromkeys(child for task in group for child in task.child_ids))
        if len(child_ids) < 2:
            continue
        first_start = min(task.start for task in group)
        names = [ctx.child_name(child_id) for child_id in child_ids]
        conflicts.append(
            _conflict(
                ctx,
                conflict_id=f"multi_child_{first_start.isoformat()}_{group[0].id}",
                conflict_type=ConflictType.MULTIPLE_CHILDREN,
                severity=Severity.HIGH,
                title="Several children have tasks at the same time",
                description=(
                    f"{', '.join(names)} all have tasks around "
                    f"{dt_format_short(first_start, ctx.tz)}."
                ),
                tasks=group,
                child_ids=child_ids,
                events=[],
                resolutions=_multi_child_resolutions(group, names),
            )
        )
    return conflicts


def detect_after_school_conflicts(ctx: DetectionContext) -> list[ScheduleConflict]:
    """Pass 4: tasks overlapping a bound child's SFO or AKS session."""
    conflicts: list[ScheduleConflict] = []
    for task in ctx.tasks:
        if task.is_point:
            continue
        for child_id in task.child_ids:
            for activity in ctx.events_for(child_id, AFTER_SCHOOL_KINDS):
                if not task.overlaps(activity):
                    continue
                child_name = ctx.child_name(child_id)
                program = activity.source_kind.value.upper()
                conflicts.append(
                    _conflict(
                        ctx,
                        conflict_id=(
                            f"{activity.source_kind.value}_conflict_{task.id}_{activity.id}"
                        ),
                        conflict_type=ConflictType.SFO_AKS_CONFLICT,
                        severity=Severity.MEDIUM,
                        title=f"{task.title} overlaps with {program}",
                        description=(
                            f"{child_name} is at {program} ({activity.title}) when "
                            f"{task.title} should be done."
                        ),
                        tasks=[task],
                        child_ids=[child_id],
                        events=[activity],
                        resolutions=_after_school_resolutions(task, activity, child_name),
                    )
                )
    return conflicts


def detect_travel_time_conflicts(ctx: DetectionContext) -> list[ScheduleConflict]:
    """Pass 5: too little time between an activity ending and a task starting."""
    minimum = ctx.config.min_travel_time
    conflicts: list[ScheduleConflict] = []
    for task in ctx.tasks:
        if task.is_point:
            continue
        for child_id in task.child_ids:
            for event in ctx.events_for(child_id, ACTIVITY_KINDS):
                if event.end is None:
                    continue
                gap = task.start - event.end
                if not timedelta(0) < gap < minimum:
                    continue
                if event.source_kind in SCHOOL_KINDS and ctx.is_school_closed_for(
                    child_id, event
                ):
                    continue
                child_name = ctx.child_name(child_id)
                gap_minutes = round(gap.total_seconds() / 60)
                conflicts.append(
                    _conflict(
                        ctx,
                        conflict_id=f"travel_time_{task.id}_{event.id}",
                        conflict_type=ConflictType.TRAVEL_TIME,
                        severity=Severity.LOW,
                        title=f"Too little time between {event.title} and {task.title}",
                        description=(
                            f"{child_name} only has {gap_minutes} minutes from the end of "
                            f"{event.title} until {task.title} starts."
                        ),
                        tasks=[task],
                        child_ids=[child_id],
                        events=[event],
                        resolutions=_travel_time_resolutions(task, event, ctx),
                    )
                )
    return conflicts


def _household_activities(ctx: DetectionContext) -> list[CandidateEvent]:
    """Tasks plus every distinct calendar activity of the household."""
    activities: list[CandidateEvent] = list(ctx.tasks)
    seen: set[tuple[SourceKind, str]] = set()
    for child_id, events in ctx.child_events.items():
        for event in events:
            if event.source_kind not in ACTIVITY_KINDS:
                continue
            key = (event.source_kind, event.id)
            if key in seen:
                continue
            if event.source_kind in SCHOOL_KINDS and ctx.is_school_closed_for(child_id, event):
                continue
            seen.add(key)
            activities.append(event)
    return activities


def _activity_keys(items: Sequence[CandidateEvent]) -> list[tuple[SourceKind, str]]:
    return [(item.source_kind, item.id) for item in items]


def detect_family_overload(ctx: DetectionContext) -> list[ScheduleConflict]:
    """Pass 6: too many concurrent activities across the household.

    The horizon is sampled every `overload_granularity`. Consecutive samples
    with the same overloaded set of activities are reported as one conflict.
    """
    limit = ctx.config.max_concurrent_activities
    activities = _household_activities(ctx)
    conflicts: list[ScheduleConflict] = []

    run_start: datetime | None = None
    run_last: datetime | None = None
    run_active: list[CandidateEvent] = []

    def close_run() -> None:
        if run_start is None or run_last is None:
            return
        tasks = [item for item in run_active if item.source_kind is SourceKind.TASK]
        events = [item for item in run_active if item.source_kind is not SourceKind.TASK]
        window = dt_format_short(run_start, ctx.tz)
        if run_last != run_start:
            window += f" - {dt_format_short(run_last, ctx.tz)}"
        conflicts.append(
            _conflict(
                ctx,
                conflict_id=f"overload_{run_start.isoformat()}",
                conflict_type=ConflictType.FAMILY_OVERLOAD,
                severity=Severity.HIGH,
                title="The family has too many activities",
                description=(
                    f"The family has {len(run_active)} activities at the same time "
                    f"around {window}."
                ),
                tasks=tasks,
                child_ids=[child for item in run_active for child in item.child_ids],
                events=events,
                resolutions=_overload_resolutions(run_active),
            )
        )

    for moment in ctx.horizon.sample_times(ctx.config.overload_granularity):
        active = [item for item in activities if item.active_at(moment)]
        if len(active) <= limit:
            close_run()
            run_start = run_last = None
            run_active = []
            continue
        if run_start is not None and _activity_keys(active) == _activity_keys(run_active):
            run_last = moment
            continue
        close_run()
        run_start = run_last = moment
        run_active = active

    close_run()
    return conflicts


# Pass order defines the tie-break order of the final list
DETECTION_PASSES: tuple[Callable[[DetectionContext], list[ScheduleConflict]], ...] = (
    detect_school_task_overlaps,
    detect_holiday_conflicts,
    detect_multi_child_conflicts,
    detect_after_school_conflicts,
    detect_travel_time_conflicts,
    detect_family_overload,
)


# =============================================================================
# PUBLIC API
# =============================================================================


def detect_conflicts(
    tasks: Iterable[Mapping[str, Any]],
    children: Iterable[Mapping[str, Any]],
    calendars: Mapping[str, Any] | None,
    holidays: Iterable[Mapping[str, Any]] | None,
    horizon: Horizon,
    *,
    config: DetectorConfig | None = None,
    now: datetime | None = None,
) -> list[ScheduleConflict]:
    """Detect schedule conflicts for one household.

    Args:
        tasks: Task occurrences ({id, child_ids, start_at, due_at?, title?}).
        children: Children ({id, name?}).
        calendars: Per-child calendar snapshot; children without an entry
            simply contribute no calendar conflicts.
        holidays: Holiday table; None uses the built-in Norwegian table.
        horizon: Scan window; items outside it are ignored.
        config: Thresholds and household timezone.
        now: Stamped on every conflict as detected_at (defaults to
            horizon.start so results never depend on the clock).

    Returns:
        Conflicts sorted by severity (critical first); ties keep pass order.

    Raises:
        ConflictValidationError: On structurally invalid input.
    """
    ctx = build_context(
        tasks, children, calendars, holidays, horizon, config=config, now=now
    )

    conflicts: list[ScheduleConflict] = []
    for detection_pass in DETECTION_PASSES:
        found = detection_pass(ctx)
        const.LOGGER.debug(
            "ConflictEngine: %s found %d conflicts", detection_pass.__name__, len(found)
        )
        conflicts.extend(found)

    return sorted(conflicts, key=lambda conflict: -conflict.severity.weight)


def is_school_closed(
    day: date,
    holidays: Iterable[Mapping[str, Any]] | None = None,
    breaks: Iterable[Mapping[str, Any]] | None = None,
    grade: int | None = None,
) -> bool:
    """Check if `day` is a school holiday or inside a school break.

    Args:
        day: Local calendar date.
        holidays: Holiday table (defaults to the built-in Norwegian table).
        breaks: School break table (defaults to the built-in table).
        grade: Only consider breaks affecting this grade (all if None).
    """
    for holiday in const.DEFAULT_HOLIDAYS if holidays is None else holidays:
        if holiday.get(const.DATA_HOLIDAY_AFFECTS_SCHOOLS) and dt_parse_date(
            holiday.get(const.DATA_HOLIDAY_DATE)
        ) == day:
            return True

    for school_break in const.DEFAULT_SCHOOL_BREAKS if breaks is None else breaks:
        grades = school_break.get(const.DATA_BREAK_GRADES)
        if grade is not None and grades is not None and grade not in grades:
            continue
        start = dt_parse_date(school_break.get(const.DATA_BREAK_START_DATE))
        end = dt_parse_date(school_break.get(const.DATA_BREAK_END_DATE))
        if start is not None and end is not None and start <= day <= end:
            return True

    return False
