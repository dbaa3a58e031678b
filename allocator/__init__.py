"""Constrained portfolio allocation engine.

    prices → estimate_returns → (R, μ, Σ)
           → build_spec / add_constraint / set_objective → solve → weights
           → simulate(weights, R, policy) → summarize

The functions below are thin wrappers over the domain services; use the
services directly to share solver settings across many calls.
"""

from __future__ import annotations

from collections.abc import Sequence

import numpy as np
import pandas as pd

from allocator.domain.errors import (
    AllocationError,
    IllConditionedCovariance,
    InfeasibleConstraints,
    InsufficientData,
    SolverDidNotConverge,
    Unbounded,
)
from allocator.domain.models import (
    AssetUniverse,
    Box,
    Cadence,
    CompoundingMode,
    Constraint,
    CovMethod,
    FullInvestment,
    MaximizeExpectedReturn,
    MinimizeVariance,
    MinimumReturn,
    Objective,
    PerformanceSummary,
    PortfolioSpec,
    RebalancingPolicy,
)
from allocator.domain.models.optimization import OptimizationResult
from allocator.domain.services import (
    EstimationService,
    OptimizationService,
    PerformanceService,
    PortfolioReturnSeries,
    RebalancingService,
    ReturnEstimate,
)

__version__ = "0.1.0"


def estimate_returns(
    prices: pd.DataFrame,
    cadence: Cadence = Cadence.RAW,
    method: CovMethod = CovMethod.SAMPLE,
) -> ReturnEstimate:
    return EstimationService().estimate(prices, cadence, method)


def build_spec(universe: Sequence[str] | AssetUniverse) -> PortfolioSpec:
    return PortfolioSpec.create(universe)


def add_constraint(spec: PortfolioSpec, constraint: Constraint) -> PortfolioSpec:
    return spec.with_constraint(constraint)


def set_objective(spec: PortfolioSpec, objective: Objective) -> PortfolioSpec:
    return spec.with_objective(objective)


def solve(
    spec: PortfolioSpec,
    mu: np.ndarray,
    sigma: np.ndarray | None,
    ridge_epsilon: float | None = None,
) -> OptimizationResult:
    return OptimizationService().solve(spec, mu, sigma, ridge_epsilon)


def simulate(
    weights: np.ndarray | pd.Series | OptimizationResult,
    returns: pd.DataFrame,
    policy: RebalancingPolicy,
) -> PortfolioReturnSeries:
    return RebalancingService().simulate(weights, returns, policy)


def summarize(
    series: PortfolioReturnSeries | pd.Series | np.ndarray,
    periods_per_year: int,
    risk_free_rate: float = 0.0,
    compounding: CompoundingMode | None = None,
) -> PerformanceSummary:
    return PerformanceService().summarize(series, periods_per_year, risk_free_rate, compounding)


__all__ = [
    # library surface
    "add_constraint",
    "build_spec",
    "estimate_returns",
    "set_objective",
    "simulate",
    "solve",
    "summarize",
    # values
    "AssetUniverse",
    "Box",
    "Cadence",
    "CompoundingMode",
    "CovMethod",
    "FullInvestment",
    "MaximizeExpectedReturn",
    "MinimizeVariance",
    "MinimumReturn",
    "OptimizationResult",
    "PerformanceSummary",
    "PortfolioReturnSeries",
    "PortfolioSpec",
    "RebalancingPolicy",
    "ReturnEstimate",
    # errors
    "AllocationError",
    "IllConditionedCovariance",
    "InfeasibleConstraints",
    "InsufficientData",
    "SolverDidNotConverge",
    "Unbounded",
]
