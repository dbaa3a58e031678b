"""Tests for allocator/domain/models/assets.py."""

import pytest
from pydantic import ValidationError

from allocator.domain.models.assets import AssetUniverse


# --- Construction ---

def test_universe_preserves_order():
    u = AssetUniverse.of(["SPY", "AGG", "GLD"])
    assert u.assets == ("SPY", "AGG", "GLD")


def test_universe_len():
    assert len(AssetUniverse.of(["SPY", "AGG"])) == 2


def test_universe_of_returns_existing_instance():
    u = AssetUniverse.of(["SPY", "AGG"])
    assert AssetUniverse.of(u) is u


def test_universe_rejects_single_asset():
    with pytest.raises(ValidationError):
        AssetUniverse.of(["SPY"])


def test_universe_rejects_duplicates():
    with pytest.raises(ValidationError, match="duplicate asset identifiers: SPY"):
        AssetUniverse.of(["SPY", "AGG", "SPY"])


def test_universe_rejects_blank_identifier():
    with pytest.raises(ValidationError):
        AssetUniverse.of(["SPY", "  "])


# --- Lookup ---

def test_index_of_returns_position():
    u = AssetUniverse.of(["SPY", "AGG", "GLD"])
    assert u.index_of("GLD") == 2


def test_index_of_unknown_asset_raises():
    u = AssetUniverse.of(["SPY", "AGG"])
    with pytest.raises(ValueError, match="not in the universe"):
        u.index_of("QQQ")


def test_contains():
    u = AssetUniverse.of(["SPY", "AGG"])
    assert "SPY" in u
    assert "QQQ" not in u


# --- Immutability ---

def test_universe_is_frozen():
    u = AssetUniverse.of(["SPY", "AGG"])
    with pytest.raises(ValidationError):
        u.assets = ("QQQ", "TLT")
