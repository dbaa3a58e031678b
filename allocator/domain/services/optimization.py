"""Portfolio optimization service.

  - Objective dispatch: MinimizeVariance → QP solver, MaximizeExpectedReturn → LP solver
  - Efficient frontier: minimum-variance points between the MVP and max-return returns
  - Risk decomposition (MCR / CRC / PRC)

All methods are pure computation.  Inputs are validated against the spec's
universe before any solver runs; solver failures propagate as typed
AllocationError subclasses, never as placeholder weights.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace

import numpy as np

from allocator.config import SolverSettings
from allocator.config import settings as default_settings
from allocator.domain.errors import InfeasibleConstraints
from allocator.domain.models.constraints import MinimumReturn
from allocator.domain.models.optimization import OptimizationResult
from allocator.domain.models.portfolio import (
    MaximizeExpectedReturn,
    MinimizeVariance,
    PortfolioSpec,
)

from .linear import LinearProgramSolver
from .quadratic import QuadraticProgramSolver

logger = logging.getLogger(__name__)


@dataclass
class RiskDecompositionResult:
    """Per-asset risk contributions — positional arrays aligned to weight vector.

        g      = Σw
        MCR_i  = g_i / σ_p            (marginal contribution to risk)
        CRC_i  = w_i · MCR_i          (component contribution to risk)
        PRC_i  = CRC_i / σ_p          (percent risk contribution)

    Identities:  Σ CRC_i = σ_p,   Σ PRC_i = 1.
    """

    mcr: np.ndarray   # shape (n,)
    crc: np.ndarray   # shape (n,)
    prc: np.ndarray   # shape (n,)


class OptimizationService:
    """Solves a PortfolioSpec against estimated moments.

    The class holds only its solvers and settings; every call works on its
    own copies, so independent specs can be solved concurrently.
    """

    def __init__(self, settings: SolverSettings | None = None) -> None:
        self._settings = settings or default_settings
        self._qp = QuadraticProgramSolver(self._settings)
        self._lp = LinearProgramSolver(self._settings)

    def solve(
        self,
        spec: PortfolioSpec,
        mu: np.ndarray,
        sigma: np.ndarray | None,
        ridge_epsilon: float | None = None,
    ) -> OptimizationResult:
        """Optimize the spec's objective subject to its constraints.

        Args:
            spec: Universe, constraints, and objective.
            mu: Per-period expected returns, shape (n,).
            sigma: Per-period covariance, shape (n, n); optional for the
                max-return objective, where it only feeds result statistics.
            ridge_epsilon: Opt-in Σ + εI regularization for the QP.

        Returns:
            OptimizationResult with expected_return and variance filled in.

        Raises:
            ValueError: spec has no objective, or input shapes do not match.
            InfeasibleConstraints / IllConditionedCovariance /
            SolverDidNotConverge / Unbounded: propagated from the solver.
        """
        if spec.objective is None:
            raise ValueError("PortfolioSpec has no objective; set one with with_objective().")
        mu, sigma = _validate_inputs(spec, mu, sigma)
        system = spec.lower(mu)

        objective = spec.objective
        if isinstance(objective, MinimizeVariance):
            if sigma is None:
                raise ValueError("sigma is required to minimize variance")
            result = self._qp.minimize_variance(sigma, system, ridge_epsilon)
        elif isinstance(objective, MaximizeExpectedReturn):
            result = self._lp.maximize_return(mu, system)
        else:
            raise TypeError(f"Unsupported objective: {type(objective).__name__}")

        w = result.weights
        return replace(
            result,
            expected_return=float(mu @ w),
            variance=float(w @ sigma @ w) if sigma is not None else None,
        )

    def compute_efficient_frontier(
        self,
        spec: PortfolioSpec,
        mu: np.ndarray,
        sigma: np.ndarray,
        n_points: int = 20,
        ridge_epsilon: float | None = None,
    ) -> list[OptimizationResult]:
        """Minimum-variance portfolios for n_points return targets.

        The target grid spans [μ_MVP, μ_max] where μ_max is the return of the
        max-return portfolio under the same constraints.  Each point adds a
        MinimumReturn constraint to the spec; targets that turn out to be
        infeasible are skipped.

        Returns a single-element list containing the MVP when the grid
        degenerates (the MVP already attains the maximum return).
        """
        if n_points < 2:
            raise ValueError("n_points must be at least 2")

        mvp = self.solve(spec.with_objective(MinimizeVariance()), mu, sigma, ridge_epsilon)
        top = self.solve(spec.with_objective(MaximizeExpectedReturn()), mu, sigma)

        lower = mvp.expected_return
        upper = top.expected_return
        if upper <= lower + self._settings.weight_tol:
            return [mvp]

        points: list[OptimizationResult] = []
        for target in np.linspace(lower, upper, n_points):
            point_spec = spec.with_constraint(MinimumReturn(target=float(target)))
            try:
                points.append(
                    self.solve(point_spec.with_objective(MinimizeVariance()), mu, sigma, ridge_epsilon)
                )
            except InfeasibleConstraints as exc:
                logger.debug("Frontier point at target %.6g skipped: %s", target, exc.reason)
        return points

    def compute_risk_decomposition(
        self,
        weights: np.ndarray,
        sigma: np.ndarray,
    ) -> RiskDecompositionResult:
        """Compute MCR, CRC, and PRC for each asset.

        Returns zero arrays when portfolio volatility is effectively zero.
        """
        weights = np.asarray(weights, dtype=float)
        sigma = np.asarray(sigma, dtype=float)
        variance = float(weights @ sigma @ weights)
        stdev = float(np.sqrt(max(variance, 0.0)))

        if stdev < self._settings.weight_tol:
            zeros = np.zeros(len(weights))
            return RiskDecompositionResult(mcr=zeros, crc=zeros, prc=zeros)

        g = sigma @ weights
        mcr = g / stdev
        crc = weights * mcr
        prc = crc / stdev
        return RiskDecompositionResult(mcr=mcr, crc=crc, prc=prc)


def _validate_inputs(
    spec: PortfolioSpec,
    mu: np.ndarray,
    sigma: np.ndarray | None,
) -> tuple[np.ndarray, np.ndarray | None]:
    n = spec.n_assets
    mu = np.asarray(mu, dtype=float)
    if mu.shape != (n,):
        raise ValueError(f"mu must have shape ({n},) to match the universe, got {mu.shape}")
    if sigma is not None:
        sigma = np.asarray(sigma, dtype=float)
        if sigma.shape != (n, n):
            raise ValueError(f"sigma must have shape ({n}, {n}) to match the universe, got {sigma.shape}")
    return mu, sigma
