"""Domain enumerations for the allocation engine.

All string-valued enums use str mixin so they serialize cleanly to JSON
and remain comparable to plain strings (Pydantic default behaviour).
"""

from enum import Enum


class Cadence(str, Enum):
    """Price resampling cadence: keep the last observation per bucket."""

    RAW = "raw"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    ANNUAL = "annual"

    @property
    def resample_rule(self) -> str | None:
        """pandas offset alias for this cadence; None means no resampling."""
        return {
            Cadence.RAW: None,
            Cadence.WEEKLY: "W-FRI",
            Cadence.MONTHLY: "ME",
            Cadence.QUARTERLY: "QE",
            Cadence.ANNUAL: "YE",
        }[self]

    @property
    def period_alias(self) -> str | None:
        """pandas Period frequency used to group observations into buckets."""
        return {
            Cadence.RAW: None,
            Cadence.WEEKLY: "W-FRI",
            Cadence.MONTHLY: "M",
            Cadence.QUARTERLY: "Q",
            Cadence.ANNUAL: "Y",
        }[self]

    @property
    def periods_per_year(self) -> int | None:
        """Standard annualisation factor; None for raw observations."""
        return {
            Cadence.RAW: None,
            Cadence.WEEKLY: 52,
            Cadence.MONTHLY: 12,
            Cadence.QUARTERLY: 4,
            Cadence.ANNUAL: 1,
        }[self]


class CovMethod(str, Enum):
    """Covariance matrix (Σ) estimation method."""

    SAMPLE = "sample"
    LEDOIT_WOLF = "ledoit_wolf"


class CompoundingMode(str, Enum):
    """How period returns are chained when aggregated."""

    ARITHMETIC = "arithmetic"
    GEOMETRIC = "geometric"


class RebalanceSchedule(str, Enum):
    EVERY_PERIOD = "every_period"
    NEVER = "never"
    INTERVAL = "interval"
    CALENDAR = "calendar"
    CUSTOM = "custom"
    THRESHOLD = "threshold"


class SolverStatus(str, Enum):
    OPTIMAL = "OPTIMAL"
    OPTIMAL_REGULARIZED = "OPTIMAL_REGULARIZED"
