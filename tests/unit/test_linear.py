"""Unit tests for LinearProgramSolver (maximum expected return).

Closed-form references used:
  Long-only, full investment:   w* = e_k with k = argmax μ_k, objective max μ
  Cap u on every asset:         fill assets greedily by μ until Σw = 1
  Ties:                         lexicographically smallest optimal weight vector

Test layout:
  - Helpers / Fixtures
  - Vertex solutions
  - Tie-break
  - Failures
  - Diagnostics
"""

from __future__ import annotations

import numpy as np
import pytest
from scipy.optimize import OptimizeResult

from allocator.config import SolverSettings
from allocator.domain.errors import InfeasibleConstraints, SolverDidNotConverge, Unbounded
from allocator.domain.models.assets import AssetUniverse
from allocator.domain.models.constraints import (
    Box,
    ConstraintSet,
    FullInvestment,
    LinearSystem,
    MinimumReturn,
)
from allocator.domain.models.enums import SolverStatus
from allocator.domain.services import linear
from allocator.domain.services.linear import LinearProgramSolver


# ═══════════════════════════════════════════════════════════════════════════ #
# Helpers                                                                      #
# ═══════════════════════════════════════════════════════════════════════════ #


def _system(n: int, *constraints, mu: np.ndarray | None = None) -> LinearSystem:
    universe = AssetUniverse.of([f"A{i}" for i in range(n)])
    cs = ConstraintSet()
    for c in constraints:
        cs = cs.add(c)
    return cs.to_linear_system(universe, mu)


# ═══════════════════════════════════════════════════════════════════════════ #
# Fixtures                                                                     #
# ═══════════════════════════════════════════════════════════════════════════ #


@pytest.fixture
def solver() -> LinearProgramSolver:
    return LinearProgramSolver(SolverSettings())


@pytest.fixture
def long_only3() -> LinearSystem:
    return _system(3, FullInvestment(), Box())


# ═══════════════════════════════════════════════════════════════════════════ #
# Vertex solutions                                                             #
# ═══════════════════════════════════════════════════════════════════════════ #


class TestVertex:
    def test_one_hot_on_best_asset(self, solver: LinearProgramSolver, long_only3: LinearSystem) -> None:
        mu = np.array([0.01, 0.03, 0.02])
        result = solver.maximize_return(mu, long_only3)
        np.testing.assert_allclose(result.weights, [0.0, 1.0, 0.0], atol=1e-9)
        assert result.objective_value == pytest.approx(mu.max())
        assert result.expected_return == pytest.approx(mu.max())

    def test_cap_fills_greedily(self, solver: LinearProgramSolver) -> None:
        mu = np.array([0.01, 0.03, 0.02])
        system = _system(3, FullInvestment(), Box(min_weight=0.0, max_weight=0.5))
        result = solver.maximize_return(mu, system)
        np.testing.assert_allclose(result.weights, [0.0, 0.5, 0.5], atol=1e-9)
        assert result.objective_value == pytest.approx(0.025)

    def test_floor_on_worst_asset(self, solver: LinearProgramSolver) -> None:
        mu = np.array([0.01, 0.03, 0.02])
        system = _system(
            3,
            FullInvestment(),
            Box(),
            Box(min_weight=0.2, max_weight=1.0, assets=("A0",)),
        )
        result = solver.maximize_return(mu, system)
        np.testing.assert_allclose(result.weights, [0.2, 0.8, 0.0], atol=1e-9)

    def test_negative_returns_still_fully_invested(self, solver: LinearProgramSolver, long_only3: LinearSystem) -> None:
        mu = np.array([-0.02, -0.01, -0.03])
        result = solver.maximize_return(mu, long_only3)
        np.testing.assert_allclose(result.weights, [0.0, 1.0, 0.0], atol=1e-9)
        assert result.status == SolverStatus.OPTIMAL

    def test_inputs_not_mutated(self, solver: LinearProgramSolver, long_only3: LinearSystem) -> None:
        mu = np.array([0.01, 0.03, 0.02])
        solver.maximize_return(mu, long_only3)
        np.testing.assert_array_equal(mu, [0.01, 0.03, 0.02])


# ═══════════════════════════════════════════════════════════════════════════ #
# Tie-break                                                                    #
# ═══════════════════════════════════════════════════════════════════════════ #


class TestTieBreak:
    def test_tie_resolves_to_later_asset(self, solver: LinearProgramSolver, long_only3: LinearSystem) -> None:
        # (0, 1, 0) is lexicographically smaller than (1, 0, 0)
        result = solver.maximize_return(np.array([0.03, 0.03, 0.01]), long_only3)
        np.testing.assert_allclose(result.weights, [0.0, 1.0, 0.0], atol=1e-9)

    def test_tie_across_whole_universe(self, solver: LinearProgramSolver, long_only3: LinearSystem) -> None:
        result = solver.maximize_return(np.full(3, 0.02), long_only3)
        np.testing.assert_allclose(result.weights, [0.0, 0.0, 1.0], atol=1e-9)

    def test_tie_with_caps_picks_smallest_leading_weight(self, solver: LinearProgramSolver) -> None:
        # optimal face: w0 + w1 = 1, 0.4 ≤ w0 ≤ 0.6, w2 = 0
        system = _system(3, FullInvestment(), Box(min_weight=0.0, max_weight=0.6))
        result = solver.maximize_return(np.array([0.03, 0.03, 0.01]), system)
        np.testing.assert_allclose(result.weights, [0.4, 0.6, 0.0], atol=1e-9)

    def test_repeated_solves_identical(self, solver: LinearProgramSolver) -> None:
        system = _system(4, FullInvestment(), Box(min_weight=0.0, max_weight=0.5))
        mu = np.array([0.02, 0.02, 0.02, 0.01])
        first = solver.maximize_return(mu, system).weights
        for _ in range(5):
            np.testing.assert_array_equal(solver.maximize_return(mu, system).weights, first)

    def test_without_full_investment_every_tied_weight_is_minimized(
        self, solver: LinearProgramSolver
    ) -> None:
        # μ_1 = μ_2 = 0: any w_1, w_2 in [0, 1] is optimal; the smallest is 0
        system = _system(3, Box())
        result = solver.maximize_return(np.array([0.02, 0.0, 0.0]), system)
        np.testing.assert_allclose(result.weights, [1.0, 0.0, 0.0], atol=1e-9)

    def test_without_full_investment_last_asset_sits_at_its_floor(
        self, solver: LinearProgramSolver
    ) -> None:
        system = _system(3, Box(min_weight=-0.5, max_weight=1.0))
        result = solver.maximize_return(np.array([0.02, 0.0, 0.0]), system)
        np.testing.assert_allclose(result.weights, [1.0, -0.5, -0.5], atol=1e-9)


# ═══════════════════════════════════════════════════════════════════════════ #
# Failures                                                                     #
# ═══════════════════════════════════════════════════════════════════════════ #


class TestFailures:
    def test_missing_bounds_is_unbounded(self, solver: LinearProgramSolver) -> None:
        with pytest.raises(Unbounded):
            solver.maximize_return(np.array([0.01, 0.02]), _system(2, FullInvestment()))

    def test_unreachable_target_is_infeasible(self, solver: LinearProgramSolver) -> None:
        mu = np.array([0.01, 0.02])
        system = _system(2, FullInvestment(), Box(), MinimumReturn(target=0.05), mu=mu)
        with pytest.raises(InfeasibleConstraints):
            solver.maximize_return(mu, system)

    def test_mu_shape_mismatch(self, solver: LinearProgramSolver, long_only3: LinearSystem) -> None:
        with pytest.raises(ValueError, match="shape"):
            solver.maximize_return(np.zeros(2), long_only3)

    def test_non_finite_mu_rejected(self, solver: LinearProgramSolver, long_only3: LinearSystem) -> None:
        with pytest.raises(ValueError, match="non-finite"):
            solver.maximize_return(np.array([0.01, np.nan, 0.02]), long_only3)

    def test_iteration_limit_raises(
        self,
        solver: LinearProgramSolver,
        long_only3: LinearSystem,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        def stalled(*args, **kwargs) -> OptimizeResult:
            return OptimizeResult(
                status=1, message="Iteration limit reached.", x=None, fun=None, nit=500
            )

        monkeypatch.setattr(linear, "linprog", stalled)
        with pytest.raises(SolverDidNotConverge, match="iteration limit of 500"):
            solver.maximize_return(np.array([0.01, 0.02, 0.03]), long_only3)

    def test_numerical_failure_raises(
        self,
        solver: LinearProgramSolver,
        long_only3: LinearSystem,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        def broken(*args, **kwargs) -> OptimizeResult:
            return OptimizeResult(
                status=4, message="Numerical difficulties encountered.", x=None, fun=None, nit=3
            )

        monkeypatch.setattr(linear, "linprog", broken)
        with pytest.raises(SolverDidNotConverge, match="Numerical difficulties"):
            solver.maximize_return(np.array([0.01, 0.02, 0.03]), long_only3)

    def test_small_iteration_budget_is_passed_to_highs(
        self,
        long_only3: LinearSystem,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        seen: list[dict] = []

        def stalled(*args, **kwargs) -> OptimizeResult:
            seen.append(kwargs["options"])
            return OptimizeResult(status=1, message="Iteration limit reached.", x=None, fun=None, nit=1)

        monkeypatch.setattr(linear, "linprog", stalled)
        with pytest.raises(SolverDidNotConverge, match="iteration limit of 1 "):
            LinearProgramSolver(SolverSettings(max_iterations=1)).maximize_return(
                np.array([0.01, 0.02, 0.03]), long_only3
            )
        assert seen == [{"maxiter": 1}]


# ═══════════════════════════════════════════════════════════════════════════ #
# Diagnostics                                                                  #
# ═══════════════════════════════════════════════════════════════════════════ #


class TestDiagnostics:
    def test_active_constraints_at_vertex(self, solver: LinearProgramSolver, long_only3: LinearSystem) -> None:
        diag = solver.maximize_return(np.array([0.01, 0.03, 0.02]), long_only3).diagnostics
        assert diag.method == "highs_lexicographic"
        assert "full_investment" in diag.active_constraints
        assert {"lower[A0]", "upper[A1]", "lower[A2]"} <= set(diag.active_constraints)

    def test_full_investment_dual_is_best_return(self, solver: LinearProgramSolver) -> None:
        # relaxing Σw = 1 by δ adds δ of the best asset when it is uncapped
        system = _system(2, FullInvestment(), Box(min_weight=0.0, max_weight=2.0))
        diag = solver.maximize_return(np.array([0.01, 0.03]), system).diagnostics
        assert diag.multipliers["full_investment"] == pytest.approx(0.03)
