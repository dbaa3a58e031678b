"""Rebalancing engine: turns static target weights into a realized return series.

For each period t, with current weights w (w = w* in period 0):

    r_p,t = w · r_t
    if t is a rebalance boundary:  w ← w*
    else:                          w_i ← w_i (1 + r_i,t) / Σ_j w_j (1 + r_j,t)

Drift always uses simple returns.  The compounding mode is carried on the
result and only affects aggregation (cumulative return, wealth index,
annualization); the per-period returns are identical in both modes.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import numpy as np
import pandas as pd

from allocator.domain.models.backtest import RebalancingPolicy
from allocator.domain.models.enums import CompoundingMode, RebalanceSchedule
from allocator.domain.models.optimization import OptimizationResult

logger = logging.getLogger(__name__)

_BUDGET_TOL = 1e-6


@dataclass(frozen=True)
class PortfolioReturnSeries:
    """Realized portfolio returns, one entry per row of the input return matrix.

    returns    — period portfolio return
    weights    — weights held during each period (before that period's drift)
    rebalanced — True where the weights were reset to target after the period
    turnover   — Σ|w* − drifted w| at each reset; 0.0 elsewhere (no costs applied)
    """

    returns: pd.Series
    weights: pd.DataFrame
    rebalanced: pd.Series
    turnover: pd.Series
    compounding: CompoundingMode

    def __len__(self) -> int:
        return len(self.returns)

    def items(self):
        """(period, realized return) pairs in chronological order."""
        return self.returns.items()

    def cumulative_return(self) -> float:
        if self.compounding == CompoundingMode.ARITHMETIC:
            return float(self.returns.sum())
        return float(np.prod(1.0 + self.returns.to_numpy()) - 1.0)

    def wealth_index(self) -> pd.Series:
        return pd.Series(
            wealth_index(self.returns.to_numpy(), self.compounding),
            index=self.returns.index,
            name="wealth",
        )

    def drawdown(self) -> pd.Series:
        """DD_t = V_t / max(V_u≤t) − 1, with V = 1 before the first period."""
        return pd.Series(
            drawdown(wealth_index(self.returns.to_numpy(), self.compounding)),
            index=self.returns.index,
            name="drawdown",
        )


def wealth_index(returns: np.ndarray, compounding: CompoundingMode) -> np.ndarray:
    """Value of one unit invested before the first period, after each period."""
    if compounding == CompoundingMode.ARITHMETIC:
        return 1.0 + np.cumsum(returns)
    return np.cumprod(1.0 + returns)


def drawdown(wealth: np.ndarray) -> np.ndarray:
    peak = np.maximum.accumulate(np.concatenate([[1.0], wealth]))[1:]
    return wealth / peak - 1.0


class RebalancingService:
    """Simulates a target allocation forward under a rebalancing policy.

    The class is stateless; all configuration is passed per-call.
    """

    def simulate(
        self,
        weights: np.ndarray | pd.Series | OptimizationResult,
        returns: pd.DataFrame,
        policy: RebalancingPolicy,
    ) -> PortfolioReturnSeries:
        """Produce the realized portfolio return series for a return matrix.

        Args:
            weights: Fully invested target weights w*.  A Series or
                OptimizationResult is aligned to the return columns by asset;
                an array must already follow the column order.
            returns: ReturnMatrix (T × n), chronologically ordered, complete.
            policy: Rebalancing schedule and compounding mode.

        Raises:
            ValueError: misaligned weights, missing returns, weights that do
                not sum to 1, or a portfolio value that falls to zero or below.
        """
        target = _align_weights(weights, returns)
        values = returns.to_numpy(dtype=float)
        if np.isnan(values).any():
            raise ValueError("Return matrix contains missing values; clean it before simulating.")

        n_periods = len(returns)
        boundaries = policy.boundary_mask(returns.index)
        threshold = (
            policy.drift_threshold if policy.schedule == RebalanceSchedule.THRESHOLD else None
        )

        held = np.empty((n_periods, len(target)))
        port = np.empty(n_periods)
        reset = np.zeros(n_periods, dtype=bool)
        turnover = np.zeros(n_periods)
        current = target.copy()

        for t in range(n_periods):
            held[t] = current
            port[t] = float(current @ values[t])

            grown = current * (1.0 + values[t])
            total = float(grown.sum())
            if total <= 0.0:
                raise ValueError(
                    f"Portfolio value is non-positive after period {returns.index[t]!r}; "
                    "drifted weights are undefined."
                )
            drifted = grown / total

            if boundaries[t] or (threshold is not None and np.max(np.abs(drifted - target)) > threshold):
                reset[t] = True
                turnover[t] = float(np.abs(target - drifted).sum())
                current = target.copy()
            else:
                current = drifted

        logger.debug(
            "Simulated %d period(s) with %d rebalance(s) under %s",
            n_periods, int(reset.sum()), policy.schedule.value,
        )
        return PortfolioReturnSeries(
            returns=pd.Series(port, index=returns.index, name="portfolio"),
            weights=pd.DataFrame(held, index=returns.index, columns=returns.columns),
            rebalanced=pd.Series(reset, index=returns.index, name="rebalanced"),
            turnover=pd.Series(turnover, index=returns.index, name="turnover"),
            compounding=policy.compounding,
        )


def _align_weights(
    weights: np.ndarray | pd.Series | OptimizationResult,
    returns: pd.DataFrame,
) -> np.ndarray:
    if isinstance(weights, OptimizationResult):
        weights = weights.weights_by_asset()

    if isinstance(weights, pd.Series):
        missing = [c for c in returns.columns if c not in weights.index]
        if missing:
            raise ValueError(f"No target weight for return column(s): {', '.join(map(str, missing))}")
        extra = [a for a in weights.index if a not in returns.columns]
        if extra:
            raise ValueError(f"Target weight for asset(s) without returns: {', '.join(map(str, extra))}")
        target = weights.reindex(returns.columns).to_numpy(dtype=float)
    else:
        target = np.array(weights, dtype=float)
        if target.shape != (returns.shape[1],):
            raise ValueError(
                f"weights must have shape ({returns.shape[1]},) to match the return columns, "
                f"got {target.shape}"
            )

    if abs(float(target.sum()) - 1.0) > _BUDGET_TOL:
        raise ValueError(
            f"Target weights sum to {target.sum():.6f}; simulation requires fully invested weights."
        )
    return target
