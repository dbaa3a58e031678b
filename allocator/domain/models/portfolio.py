"""Portfolio definition: universe, constraints, and objective.

PortfolioSpec is an immutable builder.  with_constraint() and with_objective()
return new values, so a solver never observes a partially-built spec.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Annotated, Literal, Union

import numpy as np
from pydantic import BaseModel, ConfigDict, Field

from .assets import AssetUniverse
from .constraints import Constraint, ConstraintSet, LinearSystem


class MinimizeVariance(BaseModel):
    """min_w  wᵀΣw"""

    model_config = ConfigDict(frozen=True)

    kind: Literal["minimize_variance"] = "minimize_variance"


class MaximizeExpectedReturn(BaseModel):
    """max_w  μᵀw"""

    model_config = ConfigDict(frozen=True)

    kind: Literal["maximize_expected_return"] = "maximize_expected_return"


Objective = Annotated[
    Union[MinimizeVariance, MaximizeExpectedReturn],
    Field(discriminator="kind"),
]


class PortfolioSpec(BaseModel):
    model_config = ConfigDict(frozen=True)

    universe: AssetUniverse
    constraints: ConstraintSet = Field(default_factory=ConstraintSet)
    objective: Objective | None = None

    @classmethod
    def create(cls, universe: Sequence[str] | AssetUniverse) -> PortfolioSpec:
        return cls(universe=AssetUniverse.of(universe))

    @property
    def n_assets(self) -> int:
        return len(self.universe)

    def with_constraint(self, constraint: Constraint) -> PortfolioSpec:
        """Return a new spec with the constraint appended.

        The extended set is lowered immediately, so bounds that make full
        investment impossible raise InfeasibleConstraints here rather than
        inside a solver.
        """
        extended = self.constraints.add(constraint)
        extended.to_linear_system(self.universe)
        return self.model_copy(update={"constraints": extended})

    def with_objective(self, objective: Objective) -> PortfolioSpec:
        return self.model_copy(update={"objective": objective})

    def lower(self, mu: np.ndarray | None = None) -> LinearSystem:
        return self.constraints.to_linear_system(self.universe, mu)
