"""Top movers, BTC trend classification and narrative aggregation."""
from typing import Any, Dict, List, Mapping, Sequence

from crypto_digest.constants import (
    BTC_BEAR_THRESHOLDS,
    BTC_TREND_THRESHOLDS,
    MIN_NARRATIVE_COINS,
    NARRATIVE_TOP_PERFORMERS,
    TOP_PERFORMERS_SIZE,
)
from crypto_digest.data.schemas import AssetSummary


def top_performers(assets: Sequence[AssetSummary], size: int = TOP_PERFORMERS_SIZE) -> Dict[str, List[AssetSummary]]:
    """
    Split assets into 24h gainers, 24h losers and 7d gainers.

    Assets without the relevant change figure are left out.
    """
    gainers_24h = sorted(
        (a for a in assets if a.price_change_percentage_24h is not None and a.price_change_percentage_24h > 0),
        key=lambda a: a.price_change_percentage_24h,
        reverse=True,
    )
    losers_24h = sorted(
        (a for a in assets if a.price_change_percentage_24h is not None and a.price_change_percentage_24h < 0),
        key=lambda a: a.price_change_percentage_24h,
    )
    gainers_7d = sorted(
        (a for a in assets if a.price_change_percentage_7d is not None and a.price_change_percentage_7d > 0),
        key=lambda a: a.price_change_percentage_7d,
        reverse=True,
    )
    return {
        "topGainers24h": gainers_24h[:size],
        "topLosers24h": losers_24h[:size],
        "topGainers7d": gainers_7d[:size],
    }


def classify_trend(price_change_24h: float) -> str:
    """Label BTC's 24h move: strong_bull / bullish / neutral / bearish / strong_bear."""
    for threshold, label in BTC_TREND_THRESHOLDS:
        if price_change_24h > threshold:
            return label
    for threshold, label in BTC_BEAR_THRESHOLDS:
        if price_change_24h < threshold:
            return label
    return "neutral"


def aggregate_narratives(
    narratives: Mapping[str, Sequence[str]],
    assets: Sequence[AssetSummary],
    min_coins: int = MIN_NARRATIVE_COINS,
) -> Dict[str, Dict[str, Any]]:
    """
    Per-narrative averages over the coins that resolved to market data.

    Args:
        narratives: Narrative name -> coin ids
        assets: Market rows for (some of) those ids
        min_coins: Narratives with fewer resolved coins are dropped

    Returns:
        Narrative name -> change24h, change7d, marketCap, coinCount, topPerformers
    """
    by_id = {a.id: a for a in assets}
    out: Dict[str, Dict[str, Any]] = {}

    for narrative, coin_ids in narratives.items():
        coins = [by_id[c] for c in coin_ids if c in by_id]
        if len(coins) < min_coins:
            continue

        change_24h = [c.price_change_percentage_24h or 0.0 for c in coins]
        change_7d = [c.price_change_percentage_7d or 0.0 for c in coins]
        ranked = sorted(coins, key=lambda c: c.price_change_percentage_24h or 0.0, reverse=True)

        out[narrative] = {
            "change24h": round(sum(change_24h) / len(coins), 2),
            "change7d": round(sum(change_7d) / len(coins), 2),
            "marketCap": sum(c.market_cap for c in coins),
            "coinCount": len(coins),
            "topPerformers": [
                {
                    "id": c.id,
                    "symbol": c.symbol,
                    "name": c.name,
                    "change24h": c.price_change_percentage_24h,
                    "price": c.current_price,
                }
                for c in ranked[:NARRATIVE_TOP_PERFORMERS]
            ],
        }

    return out
