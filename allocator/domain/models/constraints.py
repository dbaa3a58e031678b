"""Linear constraints over portfolio weights and their canonical lowering.

FullInvestment — Σwᵢ = 1
Box            — min_weight ≤ wᵢ ≤ max_weight for the listed assets (all when None)
MinimumReturn  — μᵀw ≥ target; lowered only once μ is known

ConstraintSet.to_linear_system() turns the abstract list into

    A_eq w = b_eq,   A_ineq w ≤ b_ineq,   lower ≤ w ≤ upper

and rejects bound systems that make full investment provably unsatisfiable
before any solver runs.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Annotated, Literal, Union

import numpy as np
from pydantic import BaseModel, ConfigDict, Field

from allocator.domain.errors import InfeasibleConstraints

from .assets import AssetUniverse

logger = logging.getLogger(__name__)

_BOUND_TOL = 1e-12


class FullInvestment(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["full_investment"] = "full_investment"


class Box(BaseModel):
    """Per-asset weight bounds [min_weight, max_weight].

    assets=None applies the range to every asset in the universe.  Adding
    several Box constraints intersects their ranges asset by asset.  An
    inverted range is not rejected here; lowering reports it as
    InfeasibleConstraints together with the asset it affects.
    """

    model_config = ConfigDict(frozen=True)

    kind: Literal["box"] = "box"
    min_weight: float = Field(default=0.0, allow_inf_nan=False)
    max_weight: float = Field(default=1.0, allow_inf_nan=False)
    assets: tuple[str, ...] | None = None


class MinimumReturn(BaseModel):
    """Floor on expected portfolio return: μᵀw ≥ target (per-period units)."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["minimum_return"] = "minimum_return"
    target: float = Field(allow_inf_nan=False)


Constraint = Annotated[
    Union[FullInvestment, Box, MinimumReturn],
    Field(discriminator="kind"),
]


@dataclass(frozen=True)
class LinearSystem:
    """Canonical constraint form consumed by the QP and LP solvers.

    Infinite entries in lower / upper mean the side is unbounded.  Arrays are
    read-only so a system can be shared between concurrent solves.
    """

    assets: tuple[str, ...]
    a_eq: np.ndarray        # shape (m_eq, n)
    b_eq: np.ndarray        # shape (m_eq,)
    a_ineq: np.ndarray      # shape (m_ineq, n)
    b_ineq: np.ndarray      # shape (m_ineq,)
    lower: np.ndarray       # shape (n,)
    upper: np.ndarray       # shape (n,)
    eq_labels: tuple[str, ...]
    ineq_labels: tuple[str, ...]

    def __post_init__(self) -> None:
        for arr in (self.a_eq, self.b_eq, self.a_ineq, self.b_ineq, self.lower, self.upper):
            arr.setflags(write=False)

    @property
    def n(self) -> int:
        return len(self.assets)

    @property
    def has_full_investment(self) -> bool:
        return "full_investment" in self.eq_labels

    @property
    def is_bounded(self) -> bool:
        """True when every weight has a finite lower and upper bound."""
        return bool(np.all(np.isfinite(self.lower)) and np.all(np.isfinite(self.upper)))


class ConstraintSet(BaseModel):
    """Ordered, append-only list of constraints.

    No de-duplication: order affects only the labels reported in solver
    diagnostics, never the solution.
    """

    model_config = ConfigDict(frozen=True)

    constraints: tuple[Constraint, ...] = ()

    def add(self, constraint: Constraint) -> ConstraintSet:
        return ConstraintSet(constraints=(*self.constraints, constraint))

    def __len__(self) -> int:
        return len(self.constraints)

    def to_linear_system(
        self,
        universe: AssetUniverse,
        mu: np.ndarray | None = None,
    ) -> LinearSystem:
        """Lower the constraint list for the given universe.

        MinimumReturn rows need μ; when mu is None they are deferred so that
        bound feasibility can still be checked while the spec is being built.

        Raises:
            InfeasibleConstraints: inverted bounds, or bounds incompatible
                with full investment.
            ValueError: a Box names an asset outside the universe, or mu has
                the wrong shape.
        """
        n = len(universe)
        if mu is not None:
            mu = np.asarray(mu, dtype=float)
            if mu.shape != (n,):
                raise ValueError(f"mu must have shape ({n},), got {mu.shape}")

        lower = np.full(n, -np.inf)
        upper = np.full(n, np.inf)
        full_investment = False
        ineq_rows: list[np.ndarray] = []
        ineq_rhs: list[float] = []
        ineq_labels: list[str] = []

        for c in self.constraints:
            if isinstance(c, FullInvestment):
                full_investment = True
            elif isinstance(c, Box):
                if c.assets is None:
                    idx = np.arange(n)
                else:
                    idx = np.array([universe.index_of(a) for a in c.assets], dtype=int)
                lower[idx] = np.maximum(lower[idx], c.min_weight)
                upper[idx] = np.minimum(upper[idx], c.max_weight)
            elif isinstance(c, MinimumReturn):
                if mu is None:
                    logger.debug("MinimumReturn(%g) deferred until mu is supplied", c.target)
                    continue
                # μᵀw ≥ target  ⇔  −μᵀw ≤ −target
                ineq_rows.append(-mu)
                ineq_rhs.append(-c.target)
                ineq_labels.append(f"min_return[{c.target:g}]")

        _check_bounds(universe, lower, upper, full_investment)

        if full_investment:
            a_eq = np.ones((1, n))
            b_eq = np.ones(1)
            eq_labels: tuple[str, ...] = ("full_investment",)
        else:
            a_eq = np.zeros((0, n))
            b_eq = np.zeros(0)
            eq_labels = ()

        a_ineq = np.vstack(ineq_rows) if ineq_rows else np.zeros((0, n))
        return LinearSystem(
            assets=universe.assets,
            a_eq=a_eq,
            b_eq=b_eq,
            a_ineq=a_ineq,
            b_ineq=np.asarray(ineq_rhs, dtype=float),
            lower=lower,
            upper=upper,
            eq_labels=eq_labels,
            ineq_labels=tuple(ineq_labels),
        )


def _check_bounds(
    universe: AssetUniverse,
    lower: np.ndarray,
    upper: np.ndarray,
    full_investment: bool,
) -> None:
    """Reject bound systems that no solver could satisfy."""
    inverted = [a for a, lo, hi in zip(universe.assets, lower, upper) if lo > hi + _BOUND_TOL]
    if inverted:
        raise InfeasibleConstraints(
            f"Lower bound exceeds upper bound for {', '.join(inverted)}; "
            "no weight can satisfy the box constraints."
        )
    if not full_investment:
        return

    total_min = float(np.sum(lower))
    if total_min > 1.0 + _BOUND_TOL:
        raise InfeasibleConstraints(
            f"Sum of minimum asset bounds ({total_min:.4f}) exceeds 1.0; "
            "full investment constraint cannot be satisfied."
        )
    total_max = float(np.sum(upper))
    if total_max < 1.0 - _BOUND_TOL:
        raise InfeasibleConstraints(
            f"Sum of maximum asset bounds ({total_max:.4f}) is below 1.0; "
            "full investment constraint cannot be satisfied."
        )
