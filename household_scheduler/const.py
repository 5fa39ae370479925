# File: const.py
"""Constants for the household scheduling core.

This file centralizes defaults, thresholds, option keys, severity weights and
the identifiers shared by the recurrence resolver and the conflict detector.
Nothing in here is mutated at runtime; the reference tables are loaded once at
import and treated as read-only for the lifetime of the process.
"""

import logging

# ------------------------------------------------------------------------------------------------
# General
# ------------------------------------------------------------------------------------------------
# Logger
LOGGER = logging.getLogger(__package__)

# Household timezone used when a caller does not configure one
DEFAULT_TIME_ZONE = "Europe/Oslo"

# ------------------------------------------------------------------------------------------------
# Recurrence expressions (RRULE subset)
# ------------------------------------------------------------------------------------------------
RRULE_PREFIX = "RRULE:"
RRULE_PAIR_SEPARATOR = ";"
RRULE_KEY_VALUE_SEPARATOR = "="

RRULE_KEY_FREQ = "FREQ"
RRULE_KEY_INTERVAL = "INTERVAL"
RRULE_KEY_UNTIL = "UNTIL"
RRULE_KEY_COUNT = "COUNT"

RRULE_SUPPORTED_KEYS = frozenset(
    {RRULE_KEY_FREQ, RRULE_KEY_INTERVAL, RRULE_KEY_UNTIL, RRULE_KEY_COUNT}
)

DEFAULT_INTERVAL = 1
DEFAULT_PREP_WINDOW_HOURS = 0

DAYS_PER_WEEK = 7
MONTHS_PER_YEAR = 12

# Closed-form index estimation is corrected by at most this many steps
MAX_ADJUST_STEPS = 4

# Safety limit for skip-date / pause handling
MAX_SKIP_ITERATIONS = 50

# Safety limit for occurrence expansion over a range
DEFAULT_OCCURRENCE_LIMIT = 100

# ------------------------------------------------------------------------------------------------
# Conflict detection thresholds
# ------------------------------------------------------------------------------------------------
DEFAULT_MIN_TRAVEL_TIME_MINUTES = 30
DEFAULT_MAX_CONCURRENT_ACTIVITIES = 3
DEFAULT_OVERLOAD_GRANULARITY_MINUTES = 60
DEFAULT_OVERLOAD_HORIZON_DAYS = 7

# One year of hourly samples; anything denser or longer is rejected
DEFAULT_MAX_OVERLOAD_SAMPLES = 24 * 366

# Option keys accepted by DetectorConfig.from_options()
CONF_TIME_ZONE = "time_zone"
CONF_MIN_TRAVEL_TIME_MINUTES = "min_travel_time_minutes"
CONF_MAX_CONCURRENT_ACTIVITIES = "max_concurrent_activities"
CONF_OVERLOAD_GRANULARITY_MINUTES = "overload_granularity_minutes"
CONF_MAX_OVERLOAD_SAMPLES = "max_overload_samples"

# ------------------------------------------------------------------------------------------------
# Severity
# ------------------------------------------------------------------------------------------------
SEVERITY_LOW = "low"
SEVERITY_MEDIUM = "medium"
SEVERITY_HIGH = "high"
SEVERITY_CRITICAL = "critical"

SEVERITY_WEIGHTS = {
    SEVERITY_LOW: 1,
    SEVERITY_MEDIUM: 2,
    SEVERITY_HIGH: 3,
    SEVERITY_CRITICAL: 4,
}

# ------------------------------------------------------------------------------------------------
# Collaborator payload keys
# ------------------------------------------------------------------------------------------------
# Tasks
DATA_TASK_ID = "id"
DATA_TASK_CHILD_IDS = "child_ids"
DATA_TASK_START_AT = "start_at"
DATA_TASK_DUE_AT = "due_at"
DATA_TASK_TITLE = "title"

# Children
DATA_CHILD_ID = "id"
DATA_CHILD_NAME = "name"

# Calendar snapshot (per child)
DATA_CALENDAR_EVENTS = "events"
DATA_CALENDAR_SFO = "sfo_activities"
DATA_CALENDAR_AKS = "aks_activities"
DATA_CALENDAR_BREAKS = "school_breaks"

# Calendar items
DATA_ITEM_ID = "id"
DATA_ITEM_START = "start"
DATA_ITEM_END = "end"
DATA_ITEM_TITLE = "title"
DATA_ITEM_TYPE = "type"

# School event "type" values as delivered by the school calendar source
SCHOOL_EVENT_TYPE_LESSON = "lesson"
SCHOOL_EVENT_TYPE_ASSEMBLY = "assembly"
SCHOOL_EVENT_TYPE_HOLIDAY = "holiday"
SCHOOL_EVENT_TYPE_BREAK = "school_break"
SCHOOL_EVENT_TYPE_RECESS = "break"
SCHOOL_EVENT_TYPE_LUNCH = "lunch"
SCHOOL_EVENT_TYPE_OTHER = "other"

# Holidays
DATA_HOLIDAY_DATE = "date"
DATA_HOLIDAY_NAME = "name"
DATA_HOLIDAY_AFFECTS_SCHOOLS = "affects_schools"

# School breaks (reference table)
DATA_BREAK_START_DATE = "start_date"
DATA_BREAK_END_DATE = "end_date"
DATA_BREAK_GRADES = "affects_grades"

# Fallback labels used in human-readable conflict text
DISPLAY_UNTITLED_TASK = "Untitled task"

# ------------------------------------------------------------------------------------------------
# Norwegian reference tables (2025 school year)
# ------------------------------------------------------------------------------------------------
DEFAULT_HOLIDAYS: tuple[dict, ...] = (
    {"date": "2025-01-01", "name": "Nyttårsdag", "affects_schools": True},
    {"date": "2025-04-17", "name": "Skjærtorsdag", "affects_schools": True},
    {"date": "2025-04-18", "name": "Langfredag", "affects_schools": True},
    {"date": "2025-04-21", "name": "Andre påskedag", "affects_schools": True},
    {"date": "2025-05-01", "name": "Arbeidernes dag", "affects_schools": True},
    {"date": "2025-05-17", "name": "Grunnlovsdag", "affects_schools": True},
    {"date": "2025-05-29", "name": "Kristi himmelfartsdag", "affects_schools": True},
    {"date": "2025-06-09", "name": "Andre pinsedag", "affects_schools": True},
)

_ALL_GRADES = tuple(range(1, 11))

DEFAULT_SCHOOL_BREAKS: tuple[dict, ...] = (
    {
        "name": "Vinterferie",
        "start_date": "2025-02-17",
        "end_date": "2025-02-21",
        "affects_grades": _ALL_GRADES,
    },
    {
        "name": "Påskeferie",
        "start_date": "2025-04-14",
        "end_date": "2025-04-22",
        "affects_grades": _ALL_GRADES,
    },
    {
        "name": "Sommerferie",
        "start_date": "2025-06-20",
        "end_date": "2025-08-20",
        "affects_grades": _ALL_GRADES,
    },
    {
        "name": "Høstferie",
        "start_date": "2025-10-06",
        "end_date": "2025-10-10",
        "affects_grades": _ALL_GRADES,
    },
)
