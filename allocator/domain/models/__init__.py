"""Value objects shared by the estimation, solver, and backtest services.

Models here hold data and validate it; none of them runs a solver.
"""

from .assets import AssetUniverse
from .backtest import PerformanceSummary, RebalancingPolicy
from .constraints import (
    Box,
    Constraint,
    ConstraintSet,
    FullInvestment,
    LinearSystem,
    MinimumReturn,
)
from .enums import (
    Cadence,
    CompoundingMode,
    CovMethod,
    RebalanceSchedule,
    SolverStatus,
)
from .portfolio import (
    MaximizeExpectedReturn,
    MinimizeVariance,
    Objective,
    PortfolioSpec,
)

__all__ = [
    # enums
    "Cadence",
    "CompoundingMode",
    "CovMethod",
    "RebalanceSchedule",
    "SolverStatus",
    # assets
    "AssetUniverse",
    # constraints
    "Box",
    "Constraint",
    "ConstraintSet",
    "FullInvestment",
    "LinearSystem",
    "MinimumReturn",
    # portfolio
    "MaximizeExpectedReturn",
    "MinimizeVariance",
    "Objective",
    "PortfolioSpec",
    # backtest
    "PerformanceSummary",
    "RebalancingPolicy",
]
