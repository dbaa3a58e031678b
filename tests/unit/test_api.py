"""End-to-end tests for the library functions in allocator/__init__.py.

prices → estimate_returns → build_spec / add_constraint / set_objective
       → solve → simulate → summarize
"""

from __future__ import annotations

import numpy as np
import pandas as pd
import pytest

import allocator
from allocator import (
    Box,
    Cadence,
    FullInvestment,
    InfeasibleConstraints,
    InsufficientData,
    MaximizeExpectedReturn,
    MinimizeVariance,
    RebalancingPolicy,
)


# ═══════════════════════════════════════════════════════════════════════════ #
# Fixtures                                                                     #
# ═══════════════════════════════════════════════════════════════════════════ #


@pytest.fixture
def prices() -> pd.DataFrame:
    rng = np.random.default_rng(42)
    index = pd.bdate_range("2023-01-02", periods=260)
    vols = np.array([0.012, 0.006, 0.009])
    shocks = rng.normal(0.0003, 1.0, size=(len(index), 3)) * vols
    return pd.DataFrame(
        100.0 * np.cumprod(1.0 + shocks, axis=0),
        index=index,
        columns=["SPY", "AGG", "GLD"],
    )


@pytest.fixture
def spec():
    s = allocator.build_spec(["SPY", "AGG", "GLD"])
    s = allocator.add_constraint(s, FullInvestment())
    return allocator.add_constraint(s, Box(min_weight=0.0, max_weight=0.6))


# ═══════════════════════════════════════════════════════════════════════════ #
# Pipeline                                                                     #
# ═══════════════════════════════════════════════════════════════════════════ #


class TestPipeline:
    def test_min_variance_pipeline(self, prices: pd.DataFrame, spec) -> None:
        returns, mu, sigma = allocator.estimate_returns(prices)
        result = allocator.solve(allocator.set_objective(spec, MinimizeVariance()), mu, sigma)

        w = result.weights
        assert abs(w.sum() - 1.0) <= 1e-8
        assert np.all(w >= -1e-8)
        assert np.all(w <= 0.6 + 1e-8)
        # the lowest-volatility asset carries the largest weight
        assert int(np.argmax(w)) == 1

        series = allocator.simulate(result, returns, RebalancingPolicy.every(21))
        assert len(series) == len(returns)

        summary = allocator.summarize(series, periods_per_year=252, risk_free_rate=0.02)
        assert summary.periods == len(returns)
        assert summary.volatility > 0.0
        assert summary.sharpe is not None

    def test_max_return_pipeline(self, prices: pd.DataFrame, spec) -> None:
        est = allocator.estimate_returns(prices)
        result = allocator.solve(
            allocator.set_objective(spec, MaximizeExpectedReturn()), est.mu, est.sigma
        )
        best = np.argsort(est.mu)[::-1]
        # cap 0.6 on the best asset, remainder on the runner-up
        assert result.weights[best[0]] == pytest.approx(0.6, abs=1e-9)
        assert result.weights[best[1]] == pytest.approx(0.4, abs=1e-9)

    def test_monthly_cadence(self, prices: pd.DataFrame) -> None:
        est = allocator.estimate_returns(prices, Cadence.MONTHLY)
        assert est.periods == 11

    def test_estimate_propagates_insufficient_data(self, prices: pd.DataFrame) -> None:
        with pytest.raises(InsufficientData):
            allocator.estimate_returns(prices.iloc[:3])

    def test_infeasible_box_rejected_at_build_time(self) -> None:
        s = allocator.add_constraint(allocator.build_spec(["A", "B", "C"]), FullInvestment())
        with pytest.raises(InfeasibleConstraints):
            allocator.add_constraint(s, Box(min_weight=0.5, max_weight=0.6))

    def test_builder_leaves_original_untouched(self, spec) -> None:
        allocator.set_objective(spec, MinimizeVariance())
        assert spec.objective is None
