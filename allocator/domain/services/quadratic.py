"""Minimum-variance quadratic program: dual active-set method (Goldfarb–Idnani).

    min_w  wᵀΣw   s.t.  A_eq w = b_eq,  A_ineq w ≤ b_ineq,  l ≤ w ≤ u

Every constraint is rewritten as nⱼᵀw ≥ bⱼ (or = bⱼ).  Starting from the
unconstrained minimizer w = 0 the method keeps the iterate dual feasible
and repeatedly:

  1. picks the most violated constraint p (equalities first, lowest index on ties);
  2. computes the primal direction z = J₂J₂ᵀnₚ and dual direction r = R⁻¹J₁ᵀnₚ
     from the factorization L⁻¹N_A = QR, J = L⁻ᵀQ, where Σ = LLᵀ;
  3. steps by t = min(full step t₂ that satisfies p, partial step t₁ at which
     an active inequality multiplier reaches zero), dropping that inequality
     on a partial step and adding p on a full step.

J and R are not refactorized when the working set changes: adding a
constraint rotates Jᵀnₚ into a new column of R, and dropping one deletes
its column and re-triangularizes R, both with Givens rotations.

It stops when no constraint is violated; the multipliers of active
inequalities are then non-negative, so the KKT conditions hold and the point
is the unique global minimum for a positive definite Σ.
"""

from __future__ import annotations

import logging

import numpy as np
from scipy.linalg import solve_triangular

from allocator.config import SolverSettings
from allocator.config import settings as default_settings
from allocator.domain.errors import (
    IllConditionedCovariance,
    InfeasibleConstraints,
    SolverDidNotConverge,
)
from allocator.domain.models.constraints import LinearSystem
from allocator.domain.models.enums import SolverStatus
from allocator.domain.models.optimization import OptimizationResult, SolverDiagnostics

logger = logging.getLogger(__name__)

_METHOD = "dual_active_set"
_DEPENDENCE_TOL = 1e-12     # ‖J₂ᵀnₚ‖² / ‖Jᵀnₚ‖² below this ⇒ nₚ in span of the active set
_STEP_TOL = 1e-12


class QuadraticProgramSolver:
    """Stateless minimum-variance solver.

    Inputs are never mutated; each call allocates its own working set, so a
    single instance may serve concurrent solves.
    """

    def __init__(self, settings: SolverSettings | None = None) -> None:
        self._settings = settings or default_settings

    def minimize_variance(
        self,
        sigma: np.ndarray,
        system: LinearSystem,
        ridge_epsilon: float | None = None,
    ) -> OptimizationResult:
        """Solve min wᵀΣw over the lowered constraint system.

        Args:
            sigma: Covariance matrix, shape (n, n), symmetric.
            system: Lowered constraints for the same n assets.
            ridge_epsilon: Opt-in regularization used only when Σ is not
                positive definite; falls back to settings.ridge_epsilon.

        Raises:
            IllConditionedCovariance: Σ not positive definite and no ridge requested.
            InfeasibleConstraints: no point satisfies every constraint.
            SolverDidNotConverge: settings.max_iterations exhausted.
        """
        sigma = _validate_sigma(sigma, system.n)

        if system.n == 1 and system.has_full_investment:
            return self._single_asset(sigma, system)

        chol, ridge = self._factorize(sigma, ridge_epsilon)
        normals, rhs, is_eq, labels = _stack_constraints(system)
        x, active, multipliers, iterations = self._dual_active_set(chol, normals, rhs, is_eq, labels)

        variance = float(x @ sigma @ x)
        logger.debug("QP solved in %d iteration(s); %d active constraint(s)", iterations, len(active))
        return OptimizationResult(
            assets=system.assets,
            weights=x,
            objective_value=variance,
            status=SolverStatus.OPTIMAL if ridge is None else SolverStatus.OPTIMAL_REGULARIZED,
            diagnostics=SolverDiagnostics(
                method=_METHOD,
                iterations=iterations,
                active_constraints=tuple(labels[k] for k in active),
                multipliers={labels[k]: float(m) for k, m in zip(active, multipliers)},
                ridge_epsilon=ridge,
            ),
            variance=variance,
        )

    # ─────────────────────────────────────────────────────────────────── #
    # Factorization                                                        #
    # ─────────────────────────────────────────────────────────────────── #

    def _factorize(
        self,
        sigma: np.ndarray,
        ridge_epsilon: float | None,
    ) -> tuple[np.ndarray, float | None]:
        """Cholesky factor of Σ, or of Σ + εI when regularization was requested."""
        try:
            return _cholesky(sigma, self._settings.pivot_tol), None
        except IllConditionedCovariance as exc:
            eps = ridge_epsilon if ridge_epsilon is not None else self._settings.ridge_epsilon
            if eps is None:
                raise
            logger.warning("%s Applying ridge regularization Σ + %gI.", exc.reason, eps)
            return _cholesky(sigma + eps * np.eye(len(sigma)), self._settings.pivot_tol), eps

    # ─────────────────────────────────────────────────────────────────── #
    # Dual active-set iteration                                            #
    # ─────────────────────────────────────────────────────────────────── #

    def _dual_active_set(
        self,
        chol: np.ndarray,
        normals: np.ndarray,
        rhs: np.ndarray,
        is_eq: np.ndarray,
        labels: list[str],
    ) -> tuple[np.ndarray, list[int], np.ndarray, int]:
        n = chol.shape[0]
        tol = self._settings.feasibility_tol
        max_iterations = self._settings.max_iterations

        # J = L⁻ᵀ and an empty R factor the unconstrained problem
        j_mat = solve_triangular(chol, np.eye(n), lower=True).T
        r_mat = np.zeros((0, 0))

        x = np.zeros(n)
        active: list[int] = []
        signs: dict[int, float] = {}
        u = np.zeros(0)
        iterations = 0

        while True:
            slack = normals @ x - rhs
            p = _most_violated(slack, is_eq, active, tol)
            if p is None:
                break

            # orient equalities so that the step increases nₚᵀx
            sign = -1.0 if is_eq[p] and slack[p] > 0 else 1.0
            n_p = sign * normals[p]
            b_p = sign * rhs[p]
            u_plus = np.append(u, 0.0)

            while True:
                iterations += 1
                if iterations > max_iterations:
                    raise SolverDidNotConverge(
                        f"Dual active-set method did not converge within {max_iterations} "
                        f"iterations (last violated constraint: {labels[p]})."
                    )

                q = len(active)
                d = j_mat.T @ n_p
                z = j_mat[:, q:] @ d[q:]
                r = solve_triangular(r_mat, d[:q]) if q else np.zeros(0)

                # partial step: first active inequality whose multiplier hits zero
                t1, drop = np.inf, None
                for idx, k in enumerate(active):
                    if not is_eq[k] and r[idx] > _STEP_TOL:
                        ratio = u_plus[idx] / r[idx]
                        if ratio < t1:
                            t1, drop = ratio, idx

                # full step: enough to satisfy constraint p
                zn = float(z @ n_p)
                if zn > _DEPENDENCE_TOL * max(float(d @ d), 1.0):
                    t2 = max(-(float(n_p @ x) - b_p) / zn, 0.0)
                else:
                    t2 = np.inf

                if not np.isfinite(t1) and not np.isfinite(t2):
                    raise InfeasibleConstraints(
                        f"Constraint {labels[p]} cannot be satisfied together with "
                        f"{', '.join(labels[k] for k in active) or 'the other constraints'}."
                    )

                if not np.isfinite(t2):
                    # nₚ depends on the active set: move in dual space only
                    u_plus[:q] -= t1 * r
                    u_plus[q] += t1
                    del active[drop]
                    u_plus = np.delete(u_plus, drop)
                    j_mat, r_mat = remove_constraint(j_mat, r_mat, drop)
                    continue

                t = min(t1, t2)
                x = x + t * z
                u_plus[:q] -= t * r
                u_plus[q] += t

                if t2 <= t1:
                    active.append(p)
                    signs[p] = sign
                    u = u_plus
                    j_mat, r_mat = append_constraint(j_mat, r_mat, d)
                    break

                del active[drop]
                u_plus = np.delete(u_plus, drop)
                j_mat, r_mat = remove_constraint(j_mat, r_mat, drop)

        # u belongs to ½wᵀΣw; the reported multipliers are for wᵀΣw
        multipliers = np.array([2.0 * signs[k] * u[i] for i, k in enumerate(active)])
        return x, active, multipliers, iterations

    def _single_asset(self, sigma: np.ndarray, system: LinearSystem) -> OptimizationResult:
        """Full investment leaves w = [1] as the only candidate."""
        x = np.ones(1)
        tol = self._settings.feasibility_tol
        if system.a_ineq.shape[0] and np.any(system.a_ineq @ x > system.b_ineq + tol):
            raise InfeasibleConstraints(
                "The only fully invested single-asset portfolio violates "
                f"{', '.join(system.ineq_labels)}."
            )
        return OptimizationResult(
            assets=system.assets,
            weights=x,
            objective_value=float(sigma[0, 0]),
            status=SolverStatus.OPTIMAL,
            diagnostics=SolverDiagnostics(
                method=_METHOD,
                iterations=0,
                active_constraints=("full_investment",),
            ),
            variance=float(sigma[0, 0]),
        )


# ─────────────────────────────────────────────────────────────────────────── #
# Module-level helpers (no self state needed)                                  #
# ─────────────────────────────────────────────────────────────────────────── #


def _validate_sigma(sigma: np.ndarray, n: int) -> np.ndarray:
    sigma = np.asarray(sigma, dtype=float)
    if sigma.shape != (n, n):
        raise ValueError(f"sigma must have shape ({n}, {n}), got {sigma.shape}")
    if not np.all(np.isfinite(sigma)):
        raise ValueError("sigma contains non-finite entries")
    if not np.allclose(sigma, sigma.T, rtol=1e-8, atol=1e-12):
        raise ValueError("sigma must be symmetric")
    return (sigma + sigma.T) / 2.0


def _cholesky(matrix: np.ndarray, pivot_tol: float) -> np.ndarray:
    """Lower Cholesky factor; rejects non-positive or relatively tiny pivots."""
    try:
        chol = np.linalg.cholesky(matrix)
    except np.linalg.LinAlgError:
        raise IllConditionedCovariance(
            "Covariance matrix is not positive definite: "
            "Cholesky factorization met a non-positive pivot."
        ) from None

    pivots = np.diag(chol) ** 2
    scale = max(float(np.max(np.diag(matrix))), np.finfo(float).tiny)
    smallest = float(pivots.min())
    if smallest <= pivot_tol * scale:
        raise IllConditionedCovariance(
            f"Covariance matrix is numerically singular: smallest Cholesky pivot "
            f"{smallest:.3g} is below {pivot_tol:g} × max variance {scale:.3g}."
        )
    return chol


def _stack_constraints(
    system: LinearSystem,
) -> tuple[np.ndarray, np.ndarray, np.ndarray, list[str]]:
    """Rewrite the system as rows nⱼᵀw ≥ bⱼ (inequalities) or = bⱼ (equalities)."""
    n = system.n
    eye = np.eye(n)
    rows: list[np.ndarray] = [system.a_eq, -system.a_ineq]
    rhs: list[np.ndarray] = [system.b_eq, -system.b_ineq]
    labels = list(system.eq_labels) + list(system.ineq_labels)

    lo = np.flatnonzero(np.isfinite(system.lower))
    hi = np.flatnonzero(np.isfinite(system.upper))
    rows += [eye[lo], -eye[hi]]
    rhs += [system.lower[lo], -system.upper[hi]]
    labels += [f"lower[{system.assets[i]}]" for i in lo]
    labels += [f"upper[{system.assets[i]}]" for i in hi]

    is_eq = np.zeros(len(labels), dtype=bool)
    is_eq[: len(system.eq_labels)] = True
    return np.vstack(rows), np.concatenate(rhs), is_eq, labels


def _most_violated(
    slack: np.ndarray,
    is_eq: np.ndarray,
    active: list[int],
    tol: float,
) -> int | None:
    """Index of the constraint to add next, or None when all are satisfied."""
    inactive = np.ones(len(slack), dtype=bool)
    inactive[active] = False

    eq_violation = np.where(is_eq & inactive, np.abs(slack), 0.0)
    if eq_violation.max(initial=0.0) > tol:
        return int(np.argmax(eq_violation))

    ineq_violation = np.where(~is_eq & inactive, -slack, 0.0)
    if ineq_violation.max(initial=0.0) > tol:
        return int(np.argmax(ineq_violation))
    return None


# ─────────────────────────────────────────────────────────────────────────── #
# Working-set factorization updates                                            #
# ─────────────────────────────────────────────────────────────────────────── #
#
# Invariant for q active normals N_A:  J[:, :q]ᵀ N_A = R (upper triangular),
# J[:, q:]ᵀ N_A = 0 and JJᵀ = Σ⁻¹.  Both updates apply plane rotations to
# pairs of columns of J, so JJᵀ never changes.


def _givens(a: float, b: float) -> tuple[float, float, float]:
    """(c, s, h) with [c s; −s c]·[a; b] = [h; 0]."""
    h = float(np.hypot(a, b))
    if h == 0.0:
        return 1.0, 0.0, 0.0
    return a / h, b / h, h


def _rotate_columns(j_mat: np.ndarray, i: int, c: float, s: float) -> None:
    left = j_mat[:, i].copy()
    right = j_mat[:, i + 1]
    j_mat[:, i] = c * left + s * right
    j_mat[:, i + 1] = -s * left + c * right


def append_constraint(
    j_mat: np.ndarray,
    r_mat: np.ndarray,
    d: np.ndarray,
) -> tuple[np.ndarray, np.ndarray]:
    """Add the normal n with d = Jᵀn as column q of the working set.

    Rotations from the bottom up fold d[q:] into d[q]; the leading q + 1
    entries become the new column of R.
    """
    j_mat = j_mat.copy()
    d = d.copy()
    q = r_mat.shape[0]
    for i in range(len(d) - 2, q - 1, -1):
        if d[i + 1] == 0.0:
            continue
        c, s, h = _givens(d[i], d[i + 1])
        d[i], d[i + 1] = h, 0.0
        _rotate_columns(j_mat, i, c, s)

    grown = np.zeros((q + 1, q + 1))
    grown[:q, :q] = r_mat
    grown[:, q] = d[: q + 1]
    return j_mat, grown


def remove_constraint(
    j_mat: np.ndarray,
    r_mat: np.ndarray,
    k: int,
) -> tuple[np.ndarray, np.ndarray]:
    """Drop active column k and restore R to upper triangular form.

    Deleting the column leaves R upper Hessenberg from column k on; one
    rotation per subdiagonal entry clears it, and the emptied last row and
    its column of J move to the free part of the factorization.
    """
    j_mat = j_mat.copy()
    r_mat = np.delete(r_mat, k, axis=1)
    q = r_mat.shape[0]
    for i in range(k, q - 1):
        c, s, h = _givens(r_mat[i, i], r_mat[i + 1, i])
        top = r_mat[i, i:].copy()
        bottom = r_mat[i + 1, i:]
        r_mat[i, i:] = c * top + s * bottom
        r_mat[i + 1, i:] = -s * top + c * bottom
        r_mat[i + 1, i] = 0.0
        _rotate_columns(j_mat, i, c, s)
    return j_mat, r_mat[: q - 1, :]
