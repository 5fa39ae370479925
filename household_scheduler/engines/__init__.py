"""Engine modules for the household scheduling core.

Contains pure computation engines:
- schedule_engine: Next-occurrence resolution for recurring tasks
- conflict_engine: Conflict detection across tasks and external calendars
"""

# Use relative imports within package to avoid mypy module resolution issues
from .conflict_engine import (
    DETECTION_PASSES,
    DetectionContext,
    build_context,
    detect_conflicts,
    is_school_closed,
    resolution_kinds,
)
from .schedule_engine import (
    RecurrenceEngine,
    next_occurrence,
    occurrences_to_tasks,
    parse_recurrence,
)

__all__ = [
    "DETECTION_PASSES",
    "DetectionContext",
    "RecurrenceEngine",
    "build_context",
    "detect_conflicts",
    "is_school_closed",
    "next_occurrence",
    "occurrences_to_tasks",
    "parse_recurrence",
    "resolution_kinds",
]
