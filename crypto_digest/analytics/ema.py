"""Exponential moving averages and short/long EMA crossover detection."""
from dataclasses import dataclass
from typing import Optional, Sequence, Union

import numpy as np
import pandas as pd

from crypto_digest.constants import (
    CROSSOVER_LOOKBACK,
    EMA_LONG_PERIOD,
    EMA_SHORT_PERIOD,
    SIGNAL_BEARISH,
    SIGNAL_BULLISH,
    SIGNAL_NONE,
)

PriceInput = Union[pd.Series, Sequence[float]]


@dataclass(frozen=True)
class CrossoverEvent:
    index: int
    type: str


@dataclass(frozen=True)
class CrossoverSignal:
    signal: str
    days_ago: Optional[int]
    event: Optional[CrossoverEvent] = None

    @property
    def is_active(self) -> bool:
        return self.signal != SIGNAL_NONE

    def to_dict(self) -> dict:
        return {"signal": self.signal, "daysAgo": self.days_ago}


def _as_float_series(prices: PriceInput) -> pd.Series:
    if isinstance(prices, pd.Series):
        return prices.astype(float)
    return pd.Series(list(prices), dtype=float)


def ema_series(prices: PriceInput, period: int) -> pd.Series:
    """
    EMA aligned index-for-index with ``prices``.

    The first ``period - 1`` entries are NaN, entry ``period - 1`` is the simple
    average of the first ``period`` prices, and later entries follow
    ``ema[i] = price[i] * k + ema[i-1] * (1 - k)`` with ``k = 2 / (period + 1)``.

    Args:
        prices: Ordered price sequence (oldest first)
        period: EMA period

    Returns:
        Float Series with the same index as ``prices`` (positional if a plain sequence)
    """
    if period < 1:
        raise ValueError(f"period must be >= 1, got {period}")

    values = _as_float_series(prices)
    out = pd.Series(np.nan, index=values.index, dtype=float)
    if len(values) < period:
        return out

    # Seed with the SMA, then let ewm(adjust=False) run the recursion from there
    seeded = values.iloc[period - 1:].copy()
    seeded.iloc[0] = values.iloc[:period].mean()
    out.iloc[period - 1:] = seeded.ewm(span=period, adjust=False).mean().to_numpy()
    return out


def find_last_crossover(short_ema: pd.Series, long_ema: pd.Series) -> Optional[CrossoverEvent]:
    """
    Most recent sign flip of ``short_ema - long_ema``.

    Negative -> positive is bullish, positive -> negative is bearish. A
    comparison is skipped when either index is undefined. Exact ties carry
    the previous side forward, so touching without crossing is not a flip.
    Later flips overwrite earlier ones.
    """
    diff = (short_ema.to_numpy(dtype=float) - long_ema.to_numpy(dtype=float))
    last_event: Optional[CrossoverEvent] = None
    prev_sign = 0

    for i, d in enumerate(diff):
        if np.isnan(d):
            prev_sign = 0
            continue
        sign = 1 if d > 0 else -1 if d < 0 else 0
        if sign == 0:
            continue
        if prev_sign and sign != prev_sign:
            last_event = CrossoverEvent(index=i, type=SIGNAL_BULLISH if sign > 0 else SIGNAL_BEARISH)
        prev_sign = sign

    return last_event


def detect_crossover(
    prices: PriceInput,
    short_period: int = EMA_SHORT_PERIOD,
    long_period: int = EMA_LONG_PERIOD,
    lookback: int = CROSSOVER_LOOKBACK,
) -> Optional[CrossoverSignal]:
    """
    Current EMA crossover signal for one asset.

    A crossover counts only if it happened within the last ``lookback``
    samples (``daysAgo`` 0 is the latest sample); older crossovers give
    signal "none".

    Returns:
        CrossoverSignal, or None when there are fewer than
        ``max(short_period, long_period)`` samples (asset excluded)
    """
    values = _as_float_series(prices)
    if len(values) < max(short_period, long_period):
        return None

    event = find_last_crossover(ema_series(values, short_period), ema_series(values, long_period))
    if event is None:
        return CrossoverSignal(signal=SIGNAL_NONE, days_ago=None)

    days_ago = len(values) - 1 - event.index
    if days_ago < lookback:
        return CrossoverSignal(signal=event.type, days_ago=days_ago, event=event)
    return CrossoverSignal(signal=SIGNAL_NONE, days_ago=None, event=event)
