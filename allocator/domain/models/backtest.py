"""Backtest domain models.

RebalancingPolicy  — when drifted weights reset to target, and how returns chain
PerformanceSummary — scalar risk / return statistics for a return series
"""

from __future__ import annotations

from collections.abc import Iterable

import numpy as np
import pandas as pd
from pydantic import BaseModel, ConfigDict, Field, model_validator

from .enums import Cadence, CompoundingMode, RebalanceSchedule


class RebalancingPolicy(BaseModel):
    """Rebalancing cadence and compounding mode for a simulation.

    Period t is a boundary when the weights carried into period t+1 are reset
    to target instead of drifting with realized returns.  Weights always
    start at target in period 0.

    schedule        — EVERY_PERIOD / NEVER need no parameter
    interval        — INTERVAL: reset after every `interval` periods
    calendar        — CALENDAR: reset at the last period of each calendar bucket
                      (requires a DatetimeIndex on the return matrix)
    periods         — CUSTOM: explicit 0-based period indices
    drift_threshold — THRESHOLD: reset when any weight drifts further than
                      this from target
    compounding     — governs aggregation only, never the per-period return
    """

    model_config = ConfigDict(frozen=True)

    schedule: RebalanceSchedule = RebalanceSchedule.EVERY_PERIOD
    interval: int | None = Field(default=None, gt=0)
    calendar: Cadence | None = None
    periods: frozenset[int] = Field(default_factory=frozenset)
    drift_threshold: float | None = Field(default=None, gt=0.0, le=1.0)
    compounding: CompoundingMode = CompoundingMode.GEOMETRIC

    @model_validator(mode="after")
    def _parameter_matches_schedule(self) -> RebalancingPolicy:
        if self.schedule == RebalanceSchedule.INTERVAL and self.interval is None:
            raise ValueError("interval is required when schedule is INTERVAL")
        if self.schedule == RebalanceSchedule.CALENDAR:
            if self.calendar is None or self.calendar == Cadence.RAW:
                raise ValueError("a non-raw calendar is required when schedule is CALENDAR")
        if self.schedule == RebalanceSchedule.THRESHOLD and self.drift_threshold is None:
            raise ValueError("drift_threshold is required when schedule is THRESHOLD")
        if self.schedule == RebalanceSchedule.CUSTOM and any(p < 0 for p in self.periods):
            raise ValueError("custom rebalance periods must be non-negative")
        return self

    @classmethod
    def every_period(cls, compounding: CompoundingMode = CompoundingMode.GEOMETRIC) -> RebalancingPolicy:
        return cls(schedule=RebalanceSchedule.EVERY_PERIOD, compounding=compounding)

    @classmethod
    def never(cls, compounding: CompoundingMode = CompoundingMode.GEOMETRIC) -> RebalancingPolicy:
        """Buy and hold: weights drift for the whole horizon."""
        return cls(schedule=RebalanceSchedule.NEVER, compounding=compounding)

    @classmethod
    def every(cls, interval: int, compounding: CompoundingMode = CompoundingMode.GEOMETRIC) -> RebalancingPolicy:
        return cls(schedule=RebalanceSchedule.INTERVAL, interval=interval, compounding=compounding)

    @classmethod
    def at(cls, periods: Iterable[int], compounding: CompoundingMode = CompoundingMode.GEOMETRIC) -> RebalancingPolicy:
        return cls(schedule=RebalanceSchedule.CUSTOM, periods=frozenset(periods), compounding=compounding)

    @classmethod
    def on_calendar(cls, calendar: Cadence, compounding: CompoundingMode = CompoundingMode.GEOMETRIC) -> RebalancingPolicy:
        return cls(schedule=RebalanceSchedule.CALENDAR, calendar=calendar, compounding=compounding)

    @classmethod
    def on_drift(cls, drift_threshold: float, compounding: CompoundingMode = CompoundingMode.GEOMETRIC) -> RebalancingPolicy:
        return cls(
            schedule=RebalanceSchedule.THRESHOLD,
            drift_threshold=drift_threshold,
            compounding=compounding,
        )

    def boundary_mask(self, index: pd.Index) -> np.ndarray:
        """Boolean array, True where period t is a scheduled rebalance boundary.

        THRESHOLD boundaries depend on realized drift and are decided by the
        rebalancing engine, so they are all False here.
        """
        t = len(index)
        positions = np.arange(t)

        if self.schedule == RebalanceSchedule.EVERY_PERIOD:
            return np.ones(t, dtype=bool)
        if self.schedule == RebalanceSchedule.INTERVAL:
            return (positions + 1) % self.interval == 0
        if self.schedule == RebalanceSchedule.CUSTOM:
            return np.isin(positions, list(self.periods))
        if self.schedule == RebalanceSchedule.CALENDAR:
            if not isinstance(index, pd.DatetimeIndex):
                raise ValueError("CALENDAR rebalancing requires a DatetimeIndex on the return matrix")
            buckets = index.to_period(self.calendar.period_alias)
            # last observation of each bucket; the final row closes its bucket
            return np.append(buckets[1:] != buckets[:-1], True) if t else np.zeros(0, dtype=bool)
        return np.zeros(t, dtype=bool)


class PerformanceSummary(BaseModel):
    """Risk / return statistics for one return series.

    mean_return and volatility are per period; volatility is the sample
    standard deviation (N−1).  sharpe is annualized:

        (mean_return − rf_period) / volatility × √periods_per_year

    and is None when volatility is zero.  max_drawdown ≤ 0; var_95 / cvar_95
    are loss magnitudes (negative only when even the tail is a gain).
    """

    model_config = ConfigDict(frozen=True)

    periods: int = Field(ge=2)
    mean_return: float
    volatility: float = Field(ge=0.0)
    sharpe: float | None = None
    annualized_return: float
    annualized_volatility: float = Field(ge=0.0)
    total_return: float
    max_drawdown: float = Field(le=0.0)
    var_95: float
    cvar_95: float
