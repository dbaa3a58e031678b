"""Domain services package."""

from .estimation import EstimationService, ReturnEstimate
from .linear import LinearProgramSolver
from .optimization import OptimizationService, RiskDecompositionResult
from .performance import PerformanceService
from .quadratic import QuadraticProgramSolver
from .rebalancing import PortfolioReturnSeries, RebalancingService

__all__ = [
    "EstimationService",
    "LinearProgramSolver",
    "OptimizationService",
    "PerformanceService",
    "PortfolioReturnSeries",
    "QuadraticProgramSolver",
    "RebalancingService",
    "ReturnEstimate",
    "RiskDecompositionResult",
]
