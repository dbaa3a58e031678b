"""Estimation service: return matrix, expected-return vector, and covariance matrix.

prices → resample to cadence (last observation per bucket)
       → simple returns rₜ = pₜ / pₜ₋₁ − 1
       → drop the leading row and every row with a missing value
       → μ = colMeans(R),  Σ = cov(R)  (N−1 denominator)

Simple returns only: they aggregate linearly across the cross-section of a
portfolio, log returns do not.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import numpy as np
import pandas as pd
from sklearn.covariance import LedoitWolf

from allocator.domain.errors import InsufficientData
from allocator.domain.models.enums import Cadence, CovMethod

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReturnEstimate:
    """Cleaned return matrix with its sample moments.

    Unpacks as (returns, mu, sigma).  mu and sigma are per period, aligned
    to the column order of returns, and read-only.
    """

    returns: pd.DataFrame     # shape (T, n), no missing values
    mu: np.ndarray            # shape (n,)
    sigma: np.ndarray         # shape (n, n)

    def __post_init__(self) -> None:
        self.mu.setflags(write=False)
        self.sigma.setflags(write=False)

    def __iter__(self):
        return iter((self.returns, self.mu, self.sigma))

    @property
    def assets(self) -> tuple[str, ...]:
        return tuple(str(c) for c in self.returns.columns)

    @property
    def periods(self) -> int:
        return len(self.returns)

    def correlation(self) -> np.ndarray:
        vols = np.sqrt(np.diag(self.sigma))
        return self.sigma / np.outer(vols, vols)


class EstimationService:
    """Pure computation service for return series and parameter estimation.

    Responsibilities (single, focused):
    - Resample prices to a cadence.
    - Convert price series to simple return series, complete cases only.
    - Estimate the expected-return vector (μ) and covariance matrix (Σ).

    The class is stateless; all configuration is passed per-call.
    """

    def resample_prices(self, prices: pd.DataFrame, cadence: Cadence) -> pd.DataFrame:
        """Keep the last observed price per calendar bucket.

        A missing price inside a bucket falls back to the last non-missing
        observation in that bucket.  Buckets with no observation in any column
        are dropped; they are gaps in the calendar, not missing values.

        Raises:
            ValueError: non-raw cadence on an index that is not a DatetimeIndex.
        """
        if cadence.resample_rule is None:
            return prices
        if not isinstance(prices.index, pd.DatetimeIndex):
            raise ValueError(
                f"Resampling to {cadence.value} requires a DatetimeIndex, "
                f"got {type(prices.index).__name__}."
            )
        return prices.resample(cadence.resample_rule).last().dropna(how="all")

    def compute_returns(self, prices: pd.DataFrame) -> pd.DataFrame:
        """Compute simple returns r_{i,t} = P_{i,t} / P_{i,t-1} − 1.

        The first row is always dropped because there is no prior period.
        Rows with a missing value in any column are dropped (complete-case
        policy, no imputation): a single missing price mid-series removes
        exactly the two returns computed from it.

        Args:
            prices: DataFrame with assets as columns and periods as index,
                chronologically ordered.

        Returns:
            DataFrame of returns with the same columns.

        Raises:
            ValueError: unsorted index, or a price that is zero or negative.
        """
        if not prices.index.is_monotonic_increasing:
            raise ValueError("Prices must be ordered chronologically (ascending index).")
        non_positive = (prices <= 0).any()
        if non_positive.any():
            bad = ", ".join(str(c) for c in non_positive[non_positive].index)
            raise ValueError(f"Prices must be strictly positive; non-positive values in: {bad}.")

        returns = (prices / prices.shift(1) - 1).iloc[1:]
        clean = returns.dropna(how="any")
        dropped = len(returns) - len(clean)
        if dropped:
            logger.debug("Dropped %d return row(s) with missing values", dropped)
        return clean

    def compute_mu(self, returns: pd.DataFrame) -> np.ndarray:
        """Per-period expected-return vector μ = colMeans(R), shape (n,)."""
        return returns.mean().to_numpy(dtype=float)

    def compute_sigma(
        self,
        returns: pd.DataFrame,
        method: CovMethod = CovMethod.SAMPLE,
    ) -> np.ndarray:
        """Per-period covariance matrix Σ, shape (n, n).

        Methods:
          SAMPLE      — standard sample covariance, normalized by N−1 (pandas default).
          LEDOIT_WOLF — shrinkage towards a scaled identity via
                        sklearn.covariance.LedoitWolf (opt-in; always PD).

        Raises:
            ValueError: If method is not a recognized estimation method.
        """
        if method == CovMethod.SAMPLE:
            cov = returns.cov().to_numpy(dtype=float)
        elif method == CovMethod.LEDOIT_WOLF:
            lw = LedoitWolf()
            lw.fit(returns.to_numpy(dtype=float))
            cov = lw.covariance_
        else:
            raise ValueError(
                f"Unknown covariance method: {method!r}. "
                "Use CovMethod.SAMPLE or CovMethod.LEDOIT_WOLF."
            )
        return (cov + cov.T) / 2.0

    def estimate(
        self,
        prices: pd.DataFrame,
        cadence: Cadence = Cadence.RAW,
        method: CovMethod = CovMethod.SAMPLE,
    ) -> ReturnEstimate:
        """Run the full pipeline from prices to (R, μ, Σ).

        Raises:
            InsufficientData: fewer than n + 1 complete return rows remain,
                so the sample covariance cannot be full rank.
        """
        n = prices.shape[1]
        if n == 0:
            raise InsufficientData("Price matrix has no asset columns.")

        resampled = self.resample_prices(prices, cadence)
        returns = self.compute_returns(resampled)

        if len(returns) < n + 1:
            raise InsufficientData(
                f"Only {len(returns)} complete return period(s) remain after cleaning; "
                f"at least {n + 1} are required for {n} assets."
            )

        mu = self.compute_mu(returns)
        sigma = self.compute_sigma(returns, method)
        logger.debug("Estimated moments from %d periods x %d assets", len(returns), n)
        return ReturnEstimate(returns=returns, mu=mu, sigma=sigma)
