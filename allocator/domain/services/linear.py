"""Maximum-expected-return linear program.

    max_w  μᵀw   s.t.  A_eq w = b_eq,  A_ineq w ≤ b_ineq,  l ≤ w ≤ u

Solved as min −μᵀw with scipy.optimize.linprog (HiGHS).  A bounded optimum
sits on a vertex, but several vertices may tie.  The answer is made
independent of the backend by a lexicographic pass over the optimal face
(pinned by complementary slackness with the first solve's duals): minimize
w₀, fix it, minimize w₁, and so on.  The result is the lexicographically
smallest optimal point by asset order.
"""

from __future__ import annotations

import logging

import numpy as np
from scipy.optimize import OptimizeResult, linprog

from allocator.config import SolverSettings
from allocator.config import settings as default_settings
from allocator.domain.errors import InfeasibleConstraints, SolverDidNotConverge, Unbounded
from allocator.domain.models.constraints import LinearSystem
from allocator.domain.models.enums import SolverStatus
from allocator.domain.models.optimization import OptimizationResult, SolverDiagnostics

logger = logging.getLogger(__name__)

_METHOD = "highs_lexicographic"

# scipy.optimize.linprog status codes
_STATUS_OPTIMAL = 0
_STATUS_ITERATION_LIMIT = 1
_STATUS_INFEASIBLE = 2
_STATUS_UNBOUNDED = 3


class LinearProgramSolver:
    """Stateless maximum-return solver with a deterministic tie-break."""

    def __init__(self, settings: SolverSettings | None = None) -> None:
        self._settings = settings or default_settings

    def maximize_return(self, mu: np.ndarray, system: LinearSystem) -> OptimizationResult:
        """Solve max μᵀw over the lowered constraint system.

        Unbounded is raised only when some weight lacks a bound in a
        direction the objective rewards; the solver never assumes a Box
        constraint was supplied.

        Raises:
            InfeasibleConstraints: no point satisfies every constraint.
            Unbounded: μᵀw can grow without limit.
            SolverDidNotConverge: iteration limit or numerical failure.
        """
        mu = np.asarray(mu, dtype=float)
        if mu.shape != (system.n,):
            raise ValueError(f"mu must have shape ({system.n},), got {mu.shape}")
        if not np.all(np.isfinite(mu)):
            raise ValueError("mu contains non-finite entries")

        bounds = [
            (lo if np.isfinite(lo) else None, hi if np.isfinite(hi) else None)
            for lo, hi in zip(system.lower, system.upper)
        ]
        a_eq = system.a_eq if system.a_eq.shape[0] else None
        b_eq = system.b_eq if system.a_eq.shape[0] else None

        first = self._linprog(-mu, system.a_ineq, system.b_ineq, a_eq, b_eq, bounds, "maximize μᵀw")
        best = -float(first.fun)
        iterations = int(first.nit)

        face_bounds, a_face_eq, b_face_eq, a_face_ub, b_face_ub = self._optimal_face(
            mu, best, system, bounds, first
        )

        x = np.asarray(first.x, dtype=float)
        free = [i for i, (lo, hi) in enumerate(face_bounds) if lo is None or hi is None or lo < hi]
        # under full investment the last free coordinate follows from the others
        tied = free[:-1] if system.has_full_investment else free
        for i in tied:
            c = np.zeros(system.n)
            c[i] = 1.0
            res = self._linprog(
                c, a_face_ub, b_face_ub, a_face_eq, b_face_eq, face_bounds,
                f"tie-break on {system.assets[i]}",
            )
            iterations += int(res.nit)
            x = np.asarray(res.x, dtype=float)
            face_bounds[i] = (x[i], x[i])

        active, multipliers = self._activity(x, system, first)
        logger.debug("LP solved: μᵀw = %.6g after %d iteration(s)", best, iterations)
        return OptimizationResult(
            assets=system.assets,
            weights=x,
            objective_value=float(mu @ x),
            status=SolverStatus.OPTIMAL,
            diagnostics=SolverDiagnostics(
                method=_METHOD,
                iterations=iterations,
                active_constraints=active,
                multipliers=multipliers,
            ),
            expected_return=float(mu @ x),
        )

    def _linprog(
        self,
        c: np.ndarray,
        a_ub: np.ndarray,
        b_ub: np.ndarray,
        a_eq: np.ndarray | None,
        b_eq: np.ndarray | None,
        bounds: list[tuple[float | None, float | None]],
        stage: str,
    ) -> OptimizeResult:
        res = linprog(
            c,
            A_ub=a_ub if a_ub.shape[0] else None,
            b_ub=b_ub if a_ub.shape[0] else None,
            A_eq=a_eq,
            b_eq=b_eq,
            bounds=bounds,
            method="highs",
            options={"maxiter": self._settings.max_iterations},
        )
        if res.status == _STATUS_OPTIMAL:
            return res
        if res.status == _STATUS_INFEASIBLE:
            raise InfeasibleConstraints(f"No weight vector satisfies the constraints ({stage}): {res.message}")
        if res.status == _STATUS_UNBOUNDED:
            raise Unbounded(
                f"Objective is unbounded ({stage}); at least one weight lacks a finite bound: {res.message}"
            )
        if res.status == _STATUS_ITERATION_LIMIT:
            raise SolverDidNotConverge(
                f"LP iteration limit of {self._settings.max_iterations} reached ({stage})."
            )
        raise SolverDidNotConverge(f"LP solver failed ({stage}): {res.message}")

    def _optimal_face(
        self,
        mu: np.ndarray,
        best: float,
        system: LinearSystem,
        bounds: list[tuple[float | None, float | None]],
        first: OptimizeResult,
    ) -> tuple[list, np.ndarray | None, np.ndarray | None, np.ndarray, np.ndarray]:
        """Describe the set of all optimal points of the first solve.

        Every optimal point satisfies complementary slackness with the dual
        solution of the first solve: a weight with a non-zero reduced cost
        sits at its bound, an inequality with a non-zero dual is tight.  The
        row μᵀw ≥ v* − tol is kept as well so that a dual lost below the
        tolerance cannot let the tie-break leave the optimal face.
        """
        dual_tol = self._settings.lp_optimality_tol
        face_bounds = list(bounds)
        lower_duals = _marginals(first, "lower", system.n)
        upper_duals = _marginals(first, "upper", system.n)
        for i in range(system.n):
            if np.isfinite(system.lower[i]) and abs(lower_duals[i]) > dual_tol:
                face_bounds[i] = (system.lower[i], system.lower[i])
            elif np.isfinite(system.upper[i]) and abs(upper_duals[i]) > dual_tol:
                face_bounds[i] = (system.upper[i], system.upper[i])

        ineq_duals = _marginals(first, "ineqlin", len(system.ineq_labels))
        tight = np.abs(ineq_duals) > dual_tol
        a_face_eq = np.vstack([system.a_eq, system.a_ineq[tight]])
        b_face_eq = np.concatenate([system.b_eq, system.b_ineq[tight]])

        tol = dual_tol * max(1.0, abs(best))
        a_face_ub = np.vstack([system.a_ineq[~tight], -mu[np.newaxis, :]])
        b_face_ub = np.append(system.b_ineq[~tight], -(best - tol))

        if not a_face_eq.shape[0]:
            return face_bounds, None, None, a_face_ub, b_face_ub
        return face_bounds, a_face_eq, b_face_eq, a_face_ub, b_face_ub

    def _activity(
        self,
        x: np.ndarray,
        system: LinearSystem,
        first: OptimizeResult,
    ) -> tuple[tuple[str, ...], dict[str, float]]:
        """Binding constraints at x and their duals from the first solve.

        Duals are reported for max μᵀw, i.e. the negated HiGHS marginals of
        the min −μᵀw formulation.
        """
        tol = self._settings.weight_tol
        active: list[str] = []
        multipliers: dict[str, float] = {}

        eq_duals = _marginals(first, "eqlin", len(system.eq_labels))
        for label, dual in zip(system.eq_labels, eq_duals):
            active.append(label)
            multipliers[label] = float(-dual)

        ineq_duals = _marginals(first, "ineqlin", len(system.ineq_labels))
        slack = system.b_ineq - system.a_ineq @ x
        for label, s, dual in zip(system.ineq_labels, slack, ineq_duals):
            if abs(s) <= tol:
                active.append(label)
                multipliers[label] = float(-dual)

        lower_duals = _marginals(first, "lower", system.n)
        upper_duals = _marginals(first, "upper", system.n)
        for i, asset in enumerate(system.assets):
            if np.isfinite(system.lower[i]) and abs(x[i] - system.lower[i]) <= tol:
                active.append(f"lower[{asset}]")
                multipliers[f"lower[{asset}]"] = float(-lower_duals[i])
            if np.isfinite(system.upper[i]) and abs(x[i] - system.upper[i]) <= tol:
                active.append(f"upper[{asset}]")
                multipliers[f"upper[{asset}]"] = float(-upper_duals[i])

        return tuple(active), multipliers


def _marginals(res: OptimizeResult, key: str, size: int) -> np.ndarray:
    """HiGHS dual values for one constraint block; zeros when not reported."""
    block = res.get(key)
    marginals = getattr(block, "marginals", None) if block is not None else None
    if marginals is None or len(marginals) != size:
        return np.zeros(size)
    return np.asarray(marginals, dtype=float)
