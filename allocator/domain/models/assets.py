"""Asset universe: the ordered index mapping shared by every vector and matrix."""

from __future__ import annotations

from collections.abc import Sequence

from pydantic import BaseModel, ConfigDict, Field, field_validator


class AssetUniverse(BaseModel):
    """An ordered sequence of unique asset identifiers (N ≥ 2).

    Position i in `assets` is column i of every return matrix, entry i of μ,
    and row/column i of Σ.  Immutable once built.
    """

    model_config = ConfigDict(frozen=True)

    assets: tuple[str, ...] = Field(min_length=2)

    @field_validator("assets")
    @classmethod
    def _non_empty_and_unique(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        if any(not a.strip() for a in v):
            raise ValueError("asset identifiers must be non-empty strings")
        dupes = sorted({a for a in v if v.count(a) > 1})
        if dupes:
            raise ValueError(f"duplicate asset identifiers: {', '.join(dupes)}")
        return v

    @classmethod
    def of(cls, assets: Sequence[str] | AssetUniverse) -> AssetUniverse:
        if isinstance(assets, AssetUniverse):
            return assets
        return cls(assets=tuple(assets))

    def index_of(self, asset: str) -> int:
        try:
            return self.assets.index(asset)
        except ValueError:
            raise ValueError(f"Asset {asset!r} is not in the universe") from None

    def __len__(self) -> int:
        return len(self.assets)

    def __contains__(self, asset: object) -> bool:
        return asset in self.assets
