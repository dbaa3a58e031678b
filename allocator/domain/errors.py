"""Typed failures raised by the allocation engine.

Every failure of an estimation or solve surfaces as one of these exceptions.
No operation substitutes a default (zero vector, equal weights) for a failed
computation; recovery such as ridge regularization is opt-in and reported in
the result diagnostics.
"""


class AllocationError(Exception):
    """Base class for all engine failures."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class InsufficientData(AllocationError):
    """Too few valid periods remain after cleaning the return matrix."""


class InfeasibleConstraints(AllocationError):
    """No weight vector satisfies every constraint."""


class IllConditionedCovariance(AllocationError):
    """Σ is not positive definite, so the QP has no unique minimizer."""


class SolverDidNotConverge(AllocationError):
    """The iteration budget was exhausted before optimality was proven."""


class Unbounded(AllocationError):
    """The LP objective has no finite optimum under the supplied constraints."""
