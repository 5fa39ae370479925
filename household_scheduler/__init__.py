"""Household scheduling core.

Two pure engines make up the package:

- Recurrence resolution: given a task's anchor, recurrence expression and
  prep window, compute its next occurrence after a reference instant.
- Conflict detection: cross-reference task occurrences with the children's
  school calendars, SFO/AKS sessions and public holidays, and report
  conflicts with suggested resolutions.

Neither engine reads the clock or performs I/O; callers pass `now` and all
reference data explicitly.
"""

from __future__ import annotations

from .config import DEFAULT_DETECTOR_CONFIG, DetectorConfig
from .engines import (
    RecurrenceEngine,
    detect_conflicts,
    is_school_closed,
    next_occurrence,
    occurrences_to_tasks,
    parse_recurrence,
)
from .errors import (
    ConflictingBoundError,
    ConflictValidationError,
    HorizonTooLargeError,
    InvalidCountError,
    InvalidIntervalError,
    InvalidUntilError,
    MalformedExpressionError,
    RecurrenceParseError,
    ScheduleValidationError,
    SchedulingError,
    UnknownFrequencyError,
    ValidationError,
)
from .models import (
    NO_OCCURRENCE,
    CandidateEvent,
    ConflictResolution,
    ConflictType,
    Count,
    Effort,
    Frequency,
    Horizon,
    OccurrenceResult,
    RecurrenceRule,
    RecurringSchedule,
    ResolutionKind,
    ScheduleConflict,
    Severity,
    SourceKind,
    Until,
)

__all__ = [
    "DEFAULT_DETECTOR_CONFIG",
    "NO_OCCURRENCE",
    "CandidateEvent",
    "ConflictResolution",
    "ConflictType",
    "ConflictValidationError",
    "ConflictingBoundError",
    "Count",
    "DetectorConfig",
    "Effort",
    "Frequency",
    "Horizon",
    "HorizonTooLargeError",
    "InvalidCountError",
    "InvalidIntervalError",
    "InvalidUntilError",
    "MalformedExpressionError",
    "OccurrenceResult",
    "RecurrenceEngine",
    "RecurrenceParseError",
    "RecurrenceRule",
    "RecurringSchedule",
    "ResolutionKind",
    "ScheduleConflict",
    "ScheduleValidationError",
    "SchedulingError",
    "Severity",
    "SourceKind",
    "UnknownFrequencyError",
    "Until",
    "ValidationError",
    "detect_conflicts",
    "is_school_closed",
    "next_occurrence",
    "occurrences_to_tasks",
    "parse_recurrence",
]
