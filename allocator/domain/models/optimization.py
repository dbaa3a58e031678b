"""Optimization result value objects.

SolverDiagnostics  — iteration count, active set, multipliers, regularization
OptimizationResult — weights aligned to the universe plus objective and status

Both are created once per solver invocation and never mutated afterward;
the weight vector is flagged read-only.
"""

from __future__ import annotations

from dataclasses import dataclass, field

import numpy as np
import pandas as pd

from .enums import SolverStatus


@dataclass(frozen=True)
class SolverDiagnostics:
    """How a solve reached its answer.

    active_constraints — labels of the constraints binding at the solution,
                         e.g. "full_investment", "lower[SPY]", "upper[AGG]"
    multipliers        — Lagrange multiplier per active label
    ridge_epsilon      — ε when Σ + εI was used in place of Σ; None otherwise
    """

    method: str
    iterations: int
    active_constraints: tuple[str, ...] = ()
    multipliers: dict[str, float] = field(default_factory=dict)
    ridge_epsilon: float | None = None


@dataclass(frozen=True)
class OptimizationResult:
    assets: tuple[str, ...]
    weights: np.ndarray            # shape (n,), aligned to assets
    objective_value: float
    status: SolverStatus
    diagnostics: SolverDiagnostics
    expected_return: float | None = None    # μᵀw, when μ was supplied
    variance: float | None = None           # wᵀΣw, when Σ was supplied

    def __post_init__(self) -> None:
        self.weights.setflags(write=False)

    @property
    def stdev(self) -> float | None:
        if self.variance is None:
            return None
        return float(np.sqrt(max(self.variance, 0.0)))

    def weights_by_asset(self) -> pd.Series:
        return pd.Series(np.array(self.weights), index=list(self.assets), name="weight")
