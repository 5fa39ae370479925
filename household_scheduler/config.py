"""Detector configuration.

DetectorConfig bundles the household timezone and the tunable thresholds of
the conflict detector. Defaults live in const.py; `from_options` accepts a
plain options mapping (as stored by the surrounding application) and
validates it with voluptuous before building the frozen config.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import timedelta
from typing import Any
from zoneinfo import ZoneInfo

import voluptuous as vol

from . import const
from .errors import ConflictValidationError
from .utils.dt_utils import get_time_zone


def _time_zone_name(value: Any) -> str:
    """Voluptuous validator: a known IANA timezone name."""
    name = vol.Coerce(str)(value)
    if get_time_zone(name) is None:
        raise vol.Invalid(f"Unknown timezone {name!r}")
    return name


DETECTOR_OPTIONS_SCHEMA = vol.Schema(
    {
        vol.Optional(const.CONF_TIME_ZONE, default=const.DEFAULT_TIME_ZONE): _time_zone_name,
        vol.Optional(
            const.CONF_MIN_TRAVEL_TIME_MINUTES,
            default=const.DEFAULT_MIN_TRAVEL_TIME_MINUTES,
        ): vol.All(vol.Coerce(int), vol.Range(min=0)),
        vol.Optional(
            const.CONF_MAX_CONCURRENT_ACTIVITIES,
            default=const.DEFAULT_MAX_CONCURRENT_ACTIVITIES,
        ): vol.All(vol.Coerce(int), vol.Range(min=1)),
        vol.Optional(
            const.CONF_OVERLOAD_GRANULARITY_MINUTES,
            default=const.DEFAULT_OVERLOAD_GRANULARITY_MINUTES,
        ): vol.All(vol.Coerce(int), vol.Range(min=1)),
        vol.Optional(
            const.CONF_MAX_OVERLOAD_SAMPLES,
            default=const.DEFAULT_MAX_OVERLOAD_SAMPLES,
        ): vol.All(vol.Coerce(int), vol.Range(min=1)),
    }
)


@dataclass(frozen=True)
class DetectorConfig:
    """Thresholds for the conflict detector.

    Attributes:
        time_zone: Household IANA timezone (used for local dates and text)
        min_travel_time: Smallest acceptable gap between an event and a task
        max_concurrent_activities: Overload threshold (strictly exceeded)
        overload_granularity: Sampling step for the family_overload pass
        max_overload_samples: Upper bound on overload samples per run
    """

    time_zone: str = const.DEFAULT_TIME_ZONE
    min_travel_time: timedelta = timedelta(minutes=const.DEFAULT_MIN_TRAVEL_TIME_MINUTES)
    max_concurrent_activities: int = const.DEFAULT_MAX_CONCURRENT_ACTIVITIES
    overload_granularity: timedelta = timedelta(
        minutes=const.DEFAULT_OVERLOAD_GRANULARITY_MINUTES
    )
    max_overload_samples: int = const.DEFAULT_MAX_OVERLOAD_SAMPLES

    def __post_init__(self) -> None:
        if get_time_zone(self.time_zone) is None:
            raise ConflictValidationError(
                f"Unknown timezone {self.time_zone!r}", path=const.CONF_TIME_ZONE
            )
        if self.min_travel_time < timedelta(0):
            raise ConflictValidationError(
                "Minimum travel time cannot be negative",
                path=const.CONF_MIN_TRAVEL_TIME_MINUTES,
            )
        if self.overload_granularity <= timedelta(0):
            raise ConflictValidationError(
                "Overload granularity must be positive",
                path=const.CONF_OVERLOAD_GRANULARITY_MINUTES,
            )
        if self.max_concurrent_activities < 1:
            raise ConflictValidationError(
                "Maximum concurrent activities must be at least 1",
                path=const.CONF_MAX_CONCURRENT_ACTIVITIES,
            )
        if self.max_overload_samples < 1:
            raise ConflictValidationError(
                "Maximum overload samples must be at least 1",
                path=const.CONF_MAX_OVERLOAD_SAMPLES,
            )

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.time_zone)

    @classmethod
    def from_options(cls, options: Mapping[str, Any] | None) -> DetectorConfig:
        """Build a config from a stored options mapping.

        Unknown keys are rejected; missing keys fall back to the defaults.

        Raises:
            ConflictValidationError: If an option is missing its type or range.
        """
        try:
            validated = DETECTOR_OPTIONS_SCHEMA(dict(options or {}))
        except vol.Invalid as err:
            path = ".".join(str(part) for part in err.path) or None
            raise ConflictValidationError(f"Invalid detector option: {err.msg}", path=path) from err

        return cls(
            time_zone=validated[const.CONF_TIME_ZONE],
            min_travel_time=timedelta(minutes=validated[const.CONF_MIN_TRAVEL_TIME_MINUTES]),
            max_concurrent_activities=validated[const.CONF_MAX_CONCURRENT_ACTIVITIES],
            overload_granularity=timedelta(
                minutes=validated[const.CONF_OVERLOAD_GRANULARITY_MINUTES]
            ),
            max_overload_samples=validated[const.CONF_MAX_OVERLOAD_SAMPLES],
        )

    def as_options(self) -> dict[str, Any]:
        """Inverse of from_options (whole minutes)."""
        return {
            const.CONF_TIME_ZONE: self.time_zone,
            const.CONF_MIN_TRAVEL_TIME_MINUTES: int(self.min_travel_time.total_seconds() // 60),
            const.CONF_MAX_CONCURRENT_ACTIVITIES: self.max_concurrent_activities,
            const.CONF_OVERLOAD_GRANULARITY_MINUTES: int(
                self.overload_granularity.total_seconds() // 60
            ),
            const.CONF_MAX_OVERLOAD_SAMPLES: self.max_overload_samples,
        }


DEFAULT_DETECTOR_CONFIG = DetectorConfig()
