"""Parsing and cleaning of CoinGecko market_chart time series."""
from typing import Any, List, NamedTuple, Sequence

import pandas as pd

from crypto_digest.api.errors import MalformedResponse
from crypto_digest.utils import setup_logger

logger = setup_logger(__name__)


class PricePoint(NamedTuple):
    timestamp_ms: int
    value: float


def clean_points(raw_pairs: Any, coin_id: str = "", field: str = "prices") -> List[PricePoint]:
    """
    Turn raw ``[[ts_ms, value], ...]`` pairs into an ordered daily sequence.

    CoinGecko's daily charts end with an intraday point for "now", and the
    occasional day shows up twice. Points are bucketed by UTC day and the
    latest point of each day wins, so the result is strictly ascending with
    one sample per day. Pairs with a missing or non-numeric value are dropped.

    Args:
        raw_pairs: The list stored under ``prices``/``market_caps``/``total_volumes``
        coin_id: Coin identifier for logging
        field: Field name for error messages

    Returns:
        PricePoint list sorted by timestamp
    """
    if not isinstance(raw_pairs, list):
        raise MalformedResponse(f"{coin_id}: '{field}' is not a list")
    if not raw_pairs:
        return []

    rows = [p for p in raw_pairs if isinstance(p, (list, tuple)) and len(p) >= 2]
    if len(rows) < len(raw_pairs):
        logger.warning(f"{coin_id}: dropped {len(raw_pairs) - len(rows)} malformed {field} entries")
    if not rows:
        return []

    df = pd.DataFrame([(r[0], r[1]) for r in rows], columns=["ts", "value"])
    df["ts"] = pd.to_numeric(df["ts"], errors="coerce")
    df["value"] = pd.to_numeric(df["value"], errors="coerce")
    df = df.dropna()
    if df.empty:
        return []

    df["date"] = pd.to_datetime(df["ts"], unit="ms").dt.floor("D")
    df = df.sort_values("ts", kind="mergesort").groupby("date", as_index=False).last()

    return [PricePoint(int(ts), float(v)) for ts, v in zip(df["ts"], df["value"])]


def points_to_series(points: Sequence[PricePoint]) -> pd.Series:
    """Date-indexed float Series for a PricePoint sequence."""
    if not points:
        return pd.Series(dtype=float)
    index = pd.to_datetime([p.timestamp_ms for p in points], unit="ms").floor("D")
    return pd.Series([p.value for p in points], index=index, dtype=float).sort_index()


def values_of(points: Sequence[PricePoint]) -> List[float]:
    return [p.value for p in points]
