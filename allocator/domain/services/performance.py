"""Performance summarizer: scalar risk / return statistics of a return series.

    mean_return  = (1/T) Σ r_t
    volatility   = sample standard deviation (N−1)
    sharpe       = (mean_return − rf_period) / volatility × √m

The annual risk-free rate is converted to a per-period rate consistently with
the compounding mode: rf/m (arithmetic) or (1 + rf)^(1/m) − 1 (geometric).
Annualized return follows the same mode: mean × m, or (1 + total)^(m/T) − 1.
"""

from __future__ import annotations

import numpy as np
import pandas as pd

from allocator.domain.errors import InsufficientData
from allocator.domain.models.backtest import PerformanceSummary
from allocator.domain.models.enums import CompoundingMode

from .rebalancing import PortfolioReturnSeries, drawdown, wealth_index

_ZERO_VOL = 1e-14
_TAIL = 0.05


class PerformanceService:
    """Pure functions of a return series; no state."""

    def summarize(
        self,
        returns: PortfolioReturnSeries | pd.Series | np.ndarray,
        periods_per_year: int,
        risk_free_rate: float = 0.0,
        compounding: CompoundingMode | None = None,
    ) -> PerformanceSummary:
        """Summarize one return series.

        Args:
            returns: Realized portfolio series, or any 1-D sequence of
                per-period simple returns.
            periods_per_year: Annualization factor m (12 monthly, 252 daily).
            risk_free_rate: Annual risk-free rate.
            compounding: Defaults to the series' own mode, else GEOMETRIC.

        Raises:
            InsufficientData: fewer than two observations.
            ValueError: non-positive periods_per_year or missing values.
        """
        if isinstance(returns, PortfolioReturnSeries):
            compounding = compounding or returns.compounding
            values = returns.returns.to_numpy(dtype=float)
        else:
            values = np.asarray(returns, dtype=float).ravel()
        compounding = compounding or CompoundingMode.GEOMETRIC

        if periods_per_year <= 0:
            raise ValueError(f"periods_per_year must be positive, got {periods_per_year}")
        if np.isnan(values).any():
            raise ValueError("Return series contains missing values.")
        if len(values) < 2:
            raise InsufficientData(
                f"At least 2 return observations are required, got {len(values)}."
            )

        m = periods_per_year
        n_obs = len(values)
        mean = float(values.mean())
        vol = float(values.std(ddof=1))

        wealth = wealth_index(values, compounding)
        total = float(wealth[-1] - 1.0)
        if compounding == CompoundingMode.ARITHMETIC:
            rf_period = risk_free_rate / m
            annualized = mean * m
        else:
            rf_period = (1.0 + risk_free_rate) ** (1.0 / m) - 1.0
            annualized = (1.0 + total) ** (m / n_obs) - 1.0 if total > -1.0 else -1.0

        sharpe = (mean - rf_period) / vol * np.sqrt(m) if vol > _ZERO_VOL else None

        cutoff = float(np.quantile(values, _TAIL))
        return PerformanceSummary(
            periods=n_obs,
            mean_return=mean,
            volatility=vol,
            sharpe=float(sharpe) if sharpe is not None else None,
            annualized_return=float(annualized),
            annualized_volatility=vol * float(np.sqrt(m)),
            total_return=total,
            max_drawdown=min(float(drawdown(wealth).min()), 0.0),
            var_95=-cutoff,
            cvar_95=-float(values[values <= cutoff].mean()),
        )

    def summarize_assets(
        self,
        returns: pd.DataFrame,
        periods_per_year: int,
        risk_free_rate: float = 0.0,
        compounding: CompoundingMode = CompoundingMode.GEOMETRIC,
    ) -> dict[str, PerformanceSummary]:
        """Summarize each column of a return matrix independently."""
        return {
            str(col): self.summarize(returns[col], periods_per_year, risk_free_rate, compounding)
            for col in returns.columns
        }
