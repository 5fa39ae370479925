"""Error hierarchy for the household scheduling core.

Two families of errors exist:

- RecurrenceParseError: a recurrence expression could not be parsed. Raised
  when a RecurringSchedule is constructed, never when it is queried.
- ValidationError: caller-supplied data breaks a structural invariant (an
  interval ending before it starts, an unknown timezone, a horizon that is
  too large to sample). Raised before any computation starts.

"No occurrence" and "no conflicts" are ordinary results and never raise.
"""

from __future__ import annotations


class SchedulingError(Exception):
    """Base class for every error raised by this package."""


# =============================================================================
# RECURRENCE PARSE ERRORS
# =============================================================================


class RecurrenceParseError(SchedulingError, ValueError):
    """Raised when a recurrence expression is malformed.

    Attributes:
        expression: The full expression that failed to parse
        key: The RRULE key at fault (e.g. "FREQ"), if known
        value: The offending value, if known
    """

    def __init__(
        self,
        message: str,
        expression: str,
        key: str | None = None,
        value: str | None = None,
    ) -> None:
        """Initialize RecurrenceParseError."""
        self.expression = expression
        self.key = key
        self.value = value
        super().__init__(f"{message} (expression: {expression!r})")


class UnknownFrequencyError(RecurrenceParseError):
    """FREQ is missing a supported value (DAILY, WEEKLY, MONTHLY, YEARLY)."""


class InvalidUntilError(RecurrenceParseError):
    """UNTIL is not in basic ISO-8601 UTC form (YYYYMMDDTHHMMSSZ)."""


class InvalidIntervalError(RecurrenceParseError):
    """INTERVAL is not a positive integer."""


class InvalidCountError(RecurrenceParseError):
    """COUNT is not a positive integer."""


class ConflictingBoundError(RecurrenceParseError):
    """UNTIL and COUNT were both given."""


class MalformedExpressionError(RecurrenceParseError):
    """The expression is not a ';'-separated list of supported KEY=VALUE pairs."""


# =============================================================================
# VALIDATION ERRORS
# =============================================================================


class ValidationError(SchedulingError, ValueError):
    """Raised when caller-supplied data is structurally invalid.

    Attributes:
        path: Location of the invalid value (e.g. "tasks[2].due_at"), if known
    """

    def __init__(self, message: str, path: str | None = None) -> None:
        """Initialize ValidationError."""
        self.path = path
        super().__init__(f"{message} @ {path}" if path else message)


class ScheduleValidationError(ValidationError):
    """A RecurringSchedule or resolver query is invalid."""


class ConflictValidationError(ValidationError):
    """Conflict detector input is invalid."""


class HorizonTooLargeError(ConflictValidationError):
    """The horizon/granularity combination needs too many overload samples.

    Attributes:
        samples: Number of samples the request would need
        max_samples: Configured upper bound
    """

    def __init__(self, samples: int, max_samples: int) -> None:
        """Initialize HorizonTooLargeError."""
        self.samples = samples
        self.max_samples = max_samples
        super().__init__(
            f"Horizon needs {samples} overload samples, "
            f"more than the allowed {max_samples}",
            path="horizon",
        )
