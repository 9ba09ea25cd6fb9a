"""Correlation, beta and downside beta of asset returns against a market reference series."""
import math
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd

from crypto_digest.config import MIN_CORR_DAYS
from crypto_digest.constants import REFERENCE_COMPOSITE, REFERENCE_SNAPSHOT, REFERENCE_ZEROS
from crypto_digest.data.cleaner import PricePoint, points_to_series
from crypto_digest.data.schemas import GlobalMetrics
from crypto_digest.utils import setup_logger

logger = setup_logger(__name__)

SeriesInput = Union[pd.Series, Sequence[float]]


@dataclass
class CorrelationResult:
    asset_id: str
    correlation: float
    beta: float
    downside_beta: float
    samples: int
    symbol: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.asset_id,
            "symbol": self.symbol,
            "correlation": round(self.correlation, 4),
            "beta": round(self.beta, 4),
            "downsideBeta": round(self.downside_beta, 4),
            "samples": self.samples,
        }


@dataclass
class ReferenceSeries:
    values: pd.Series
    source: str


def _positional(values: SeriesInput) -> pd.Series:
    if isinstance(values, pd.Series):
        return values.astype(float).reset_index(drop=True)
    return pd.Series(list(values), dtype=float)


def simple_returns(values: SeriesInput) -> pd.Series:
    """
    Period-over-period returns ``(curr - prev) / prev``.

    A zero previous value yields a return of 0. The result is one shorter
    than the input and positionally indexed.
    """
    s = _positional(values)
    if len(s) < 2:
        return pd.Series(dtype=float)
    prev = s.iloc[:-1].to_numpy()
    curr = s.iloc[1:].to_numpy()
    out = np.zeros(len(curr), dtype=float)
    np.divide(curr - prev, prev, out=out, where=prev != 0)
    return pd.Series(out, dtype=float)


def tail_align(a: pd.Series, b: pd.Series) -> Tuple[pd.Series, pd.Series]:
    """Keep the most recent ``min(len(a), len(b))`` samples of each series."""
    n = min(len(a), len(b))
    return (
        a.iloc[len(a) - n:].reset_index(drop=True),
        b.iloc[len(b) - n:].reset_index(drop=True),
    )


def _variance(s: pd.Series) -> float:
    if len(s) < 2:
        return 0.0
    var = s.var(ddof=1)
    return 0.0 if pd.isna(var) else float(var)


def correlation(a: pd.Series, b: pd.Series) -> float:
    """Pearson correlation of two return series; 0 when either has zero variance."""
    a, b = tail_align(a, b)
    var_a, var_b = _variance(a), _variance(b)
    if var_a == 0 or var_b == 0:
        return 0.0
    corr = float(a.cov(b)) / math.sqrt(var_a * var_b)
    return max(-1.0, min(1.0, corr))


def beta(asset: pd.Series, reference: pd.Series) -> float:
    """cov(asset, reference) / var(reference); 0 when the reference has zero variance."""
    asset, reference = tail_align(asset, reference)
    var_ref = _variance(reference)
    if var_ref == 0:
        return 0.0
    return float(asset.cov(reference)) / var_ref


def downside_beta(asset: pd.Series, reference: pd.Series) -> float:
    """
    Beta over the samples where the reference return is negative.

    Computed as ``sum(asset * ref) / sum(ref ** 2)`` over that subset only;
    0 when the subset is empty or its denominator is 0.
    """
    asset, reference = tail_align(asset, reference)
    mask = reference < 0
    if not mask.any():
        return 0.0
    ref_down = reference[mask]
    denom = float((ref_down ** 2).sum())
    if denom == 0:
        return 0.0
    return float((asset[mask] * ref_down).sum()) / denom


def compute_correlation(
    asset_id: str,
    asset_prices: SeriesInput,
    reference_prices: SeriesInput,
    symbol: str = "",
) -> CorrelationResult:
    """
    Correlation, beta and downside beta of one asset against the reference.

    Both price series are turned into simple returns and tail-aligned before
    any statistic is computed.
    """
    asset_ret, ref_ret = tail_align(simple_returns(asset_prices), simple_returns(reference_prices))
    return CorrelationResult(
        asset_id=asset_id,
        correlation=correlation(asset_ret, ref_ret),
        beta=beta(asset_ret, ref_ret),
        downside_beta=downside_beta(asset_ret, ref_ret),
        samples=len(asset_ret),
        symbol=symbol,
    )


def build_composite_reference(
    btc_caps: Sequence[PricePoint],
    eth_caps: Sequence[PricePoint],
    combined_dominance_pct: float,
    min_points: int = MIN_CORR_DAYS + 1,
) -> pd.Series:
    """
    Market cap of "everything except BTC and ETH", estimated per day.

    The two flagship market caps are summed on their common dates and scaled
    by ``(1 - d) / d`` where ``d`` is their combined dominance share from the
    live /global snapshot.

    Raises:
        ValueError: dominance outside (0, 100) or fewer than ``min_points`` common days
    """
    share = combined_dominance_pct / 100.0
    if not 0 < share < 1:
        raise ValueError(f"combined dominance {combined_dominance_pct:.2f}% outside (0, 100)")

    btc = points_to_series(btc_caps)
    eth = points_to_series(eth_caps)
    combined = pd.concat([btc, eth], axis=1, join="inner").dropna()
    if len(combined) < min_points:
        raise ValueError(f"insufficient history: {len(combined)} common day(s), need {min_points}")

    flagship = combined.sum(axis=1)
    return (flagship * (1 - share) / share).astype(float)


def build_reference_series(
    btc_caps: Sequence[PricePoint],
    eth_caps: Sequence[PricePoint],
    metrics: Optional[GlobalMetrics],
    length: int,
    min_points: int = MIN_CORR_DAYS + 1,
) -> ReferenceSeries:
    """
    Reference series for correlation, degrading instead of failing.

    Tries the composite series first, then a flat series of the snapshot's
    total3 market cap, then all zeros. Both fallbacks have zero-variance
    returns, so every asset's correlation and beta collapse to 0 under them.

    Args:
        btc_caps: Bitcoin daily market caps
        eth_caps: Ethereum daily market caps
        metrics: Latest /global snapshot, if it was fetched
        length: Number of samples for the fallback series
        min_points: Minimum common history for the composite series

    Returns:
        ReferenceSeries tagged with the source that produced it
    """
    if metrics is not None:
        try:
            values = build_composite_reference(
                btc_caps, eth_caps, metrics.btc_dominance + metrics.eth_dominance, min_points
            )
            return ReferenceSeries(values=values.reset_index(drop=True), source=REFERENCE_COMPOSITE)
        except ValueError as e:
            logger.warning(f"⚠️  Composite reference unavailable ({e}); using snapshot fallback")

    if metrics is not None and metrics.total3_market_cap > 0 and length > 0:
        logger.warning(
            "⚠️  Reference series is flat: correlation and beta will be 0 for every asset"
        )
        return ReferenceSeries(
            values=pd.Series([metrics.total3_market_cap] * length, dtype=float),
            source=REFERENCE_SNAPSHOT,
        )

    logger.warning("⚠️  No market snapshot for reference series; using zeros")
    return ReferenceSeries(values=pd.Series([0.0] * max(length, 0), dtype=float), source=REFERENCE_ZEROS)


def rank_results(
    results: Iterable[CorrelationResult],
    size: int,
) -> Tuple[List[CorrelationResult], List[CorrelationResult]]:
    """Top ``size`` by correlation and top ``size`` by downside beta, both descending."""
    results = list(results)
    by_corr = sorted(results, key=lambda r: (-r.correlation, r.asset_id))[:size]
    by_downside = sorted(results, key=lambda r: (-r.downside_beta, r.asset_id))[:size]
    return by_corr, by_downside
