"""Solver settings, overridable through ALLOCATOR_* environment variables."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class SolverSettings(BaseSettings):
    """Numerical tolerances and budgets shared by the QP and LP solvers.

    ridge_epsilon — None disables regularization: a covariance matrix that is
                    not positive definite raises IllConditionedCovariance.
                    A positive value opts in to Σ' = Σ + εI on failure.
    """

    model_config = SettingsConfigDict(env_prefix="ALLOCATOR_", env_file=".env", extra="ignore")

    max_iterations: int = Field(default=500, gt=0)
    feasibility_tol: float = Field(default=1e-10, gt=0.0)
    pivot_tol: float = Field(default=1e-12, gt=0.0)
    lp_optimality_tol: float = Field(default=1e-9, gt=0.0)
    weight_tol: float = Field(default=1e-8, gt=0.0)
    ridge_epsilon: float | None = Field(default=None, gt=0.0)


settings = SolverSettings()
