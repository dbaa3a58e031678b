"""Tests for allocator/domain/models/portfolio.py."""

import numpy as np
import pytest
from pydantic import TypeAdapter, ValidationError

from allocator.domain.errors import InfeasibleConstraints
from allocator.domain.models.constraints import Box, FullInvestment, MinimumReturn
from allocator.domain.models.portfolio import (
    MaximizeExpectedReturn,
    MinimizeVariance,
    Objective,
    PortfolioSpec,
)


# --- Builder ---

def test_create_has_no_constraints_or_objective():
    spec = PortfolioSpec.create(["A", "B"])
    assert spec.n_assets == 2
    assert len(spec.constraints) == 0
    assert spec.objective is None


def test_with_constraint_returns_new_spec():
    base = PortfolioSpec.create(["A", "B"])
    extended = base.with_constraint(FullInvestment())
    assert len(base.constraints) == 0
    assert len(extended.constraints) == 1
    assert extended.universe == base.universe


def test_with_objective_returns_new_spec():
    base = PortfolioSpec.create(["A", "B"])
    spec = base.with_objective(MinimizeVariance())
    assert base.objective is None
    assert isinstance(spec.objective, MinimizeVariance)


def test_with_objective_replaces_previous():
    spec = (
        PortfolioSpec.create(["A", "B"])
        .with_objective(MinimizeVariance())
        .with_objective(MaximizeExpectedReturn())
    )
    assert isinstance(spec.objective, MaximizeExpectedReturn)


def test_spec_is_frozen():
    spec = PortfolioSpec.create(["A", "B"])
    with pytest.raises(ValidationError):
        spec.objective = MinimizeVariance()


# --- Eager feasibility ---

def test_infeasible_box_fails_when_added():
    spec = PortfolioSpec.create(["A", "B", "C"]).with_constraint(FullInvestment())
    with pytest.raises(InfeasibleConstraints):
        spec.with_constraint(Box(min_weight=0.5, max_weight=0.6))


def test_infeasible_box_fails_regardless_of_order():
    spec = PortfolioSpec.create(["A", "B", "C"]).with_constraint(Box(min_weight=0.5, max_weight=0.6))
    with pytest.raises(InfeasibleConstraints):
        spec.with_constraint(FullInvestment())


def test_minimum_return_accepted_before_mu_known():
    spec = PortfolioSpec.create(["A", "B"]).with_constraint(MinimumReturn(target=0.5))
    assert len(spec.constraints) == 1


# --- Lowering ---

def test_lower_with_mu_includes_minimum_return_row():
    spec = (
        PortfolioSpec.create(["A", "B"])
        .with_constraint(FullInvestment())
        .with_constraint(MinimumReturn(target=0.01))
    )
    system = spec.lower(np.array([0.0, 0.02]))
    assert system.ineq_labels == ("min_return[0.01]",)
    assert system.assets == ("A", "B")


# --- Objective union ---

def test_objective_parses_from_kind():
    obj = TypeAdapter(Objective).validate_python({"kind": "maximize_expected_return"})
    assert isinstance(obj, MaximizeExpectedReturn)


def test_unknown_objective_kind_rejected():
    with pytest.raises(ValidationError):
        TypeAdapter(Objective).validate_python({"kind": "maximize_sharpe"})
