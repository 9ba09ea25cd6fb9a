"""
Typed views over CoinGecko responses.

Each schema states how absent fields are filled so callers never probe raw
dicts. Substitution rules:

- monetary totals (market cap, volume) and dominance percentages: missing -> 0
- percentage changes: missing -> None (the asset is left out of rankings
  that sort on that change rather than being treated as flat)
- 24h change prefers ``price_change_percentage_24h_in_currency`` and falls
  back to ``price_change_percentage_24h``
- symbol is upper-cased, missing text fields become ""
"""
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

from crypto_digest.api.errors import MalformedResponse
from crypto_digest.data.cleaner import PricePoint, clean_points


def _num(value: Any, default: Optional[float] = 0.0) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _first_present(data: Dict[str, Any], *keys: str) -> Any:
    for key in keys:
        value = data.get(key)
        if value is not None:
            return value
    return None


@dataclass
class AssetSummary:
    """One row of /coins/markets."""
    id: str
    symbol: str
    name: str
    current_price: Optional[float]
    market_cap: float
    market_cap_rank: Optional[int]
    total_volume: float
    price_change_percentage_24h: Optional[float]
    price_change_percentage_7d: Optional[float]
    image: Optional[str] = None

    @classmethod
    def from_api(cls, row: Dict[str, Any]) -> "AssetSummary":
        if not isinstance(row, dict) or not row.get("id"):
            raise MalformedResponse(f"market row without id: {row!r:.120}")
        rank = row.get("market_cap_rank")
        return cls(
            id=str(row["id"]),
            symbol=str(row.get("symbol") or "").upper(),
            name=str(row.get("name") or ""),
            current_price=_num(row.get("current_price"), None),
            market_cap=_num(row.get("market_cap")),
            market_cap_rank=int(rank) if isinstance(rank, (int, float)) else None,
            total_volume=_num(row.get("total_volume")),
            price_change_percentage_24h=_num(
                _first_present(row, "price_change_percentage_24h_in_currency", "price_change_percentage_24h"),
                None,
            ),
            price_change_percentage_7d=_num(row.get("price_change_percentage_7d_in_currency"), None),
            image=row.get("image"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class GlobalMetrics:
    """Aggregate totals from /global."""
    btc_dominance: float
    eth_dominance: float
    total_market_cap: float
    total3_market_cap: float
    volume_24h: float
    active_cryptocurrencies: int
    market_cap_change_24h: float
    dominance: Dict[str, float] = field(default_factory=dict)

    @classmethod
    def from_api(cls, payload: Any) -> "GlobalMetrics":
        data = payload.get("data") if isinstance(payload, dict) else None
        if not isinstance(data, dict):
            raise MalformedResponse("Invalid global data format: missing 'data'")

        dominance = {
            str(k): _num(v) for k, v in (data.get("market_cap_percentage") or {}).items()
        }
        btc = dominance.get("btc", 0.0)
        eth = dominance.get("eth", 0.0)
        total = _num((data.get("total_market_cap") or {}).get("usd"))
        volume = _num((data.get("total_volume") or {}).get("usd"))

        return cls(
            btc_dominance=btc,
            eth_dominance=eth,
            total_market_cap=total,
            total3_market_cap=total * (1 - ((btc + eth) / 100)),
            volume_24h=volume,
            active_cryptocurrencies=int(_num(data.get("active_cryptocurrencies"))),
            market_cap_change_24h=_num(data.get("market_cap_change_percentage_24h_usd")),
            dominance=dominance,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "btcDominance": self.btc_dominance,
            "ethDominance": self.eth_dominance,
            "totalMarketCap": self.total_market_cap,
            "total3MarketCap": self.total3_market_cap,
            "volume24h": self.volume_24h,
            "activeCryptocurrencies": self.active_cryptocurrencies,
            "totalVolume": self.volume_24h,
            "marketCapChange24h": self.market_cap_change_24h,
        }


@dataclass
class CoinSnapshot:
    """Market data block of /coins/{id}."""
    id: str
    current_price: float
    price_change_24h: float
    market_cap: float

    @classmethod
    def from_api(cls, payload: Any, coin_id: str) -> "CoinSnapshot":
        if not isinstance(payload, dict):
            raise MalformedResponse(f"{coin_id}: coin payload is not an object")
        market = payload.get("market_data") or {}
        return cls(
            id=coin_id,
            current_price=_num((market.get("current_price") or {}).get("usd")),
            price_change_24h=_num(market.get("price_change_percentage_24h")),
            market_cap=_num((market.get("market_cap") or {}).get("usd")),
        )


@dataclass
class MarketChart:
    """Daily series from /coins/{id}/market_chart."""
    coin_id: str
    prices: List[PricePoint]
    market_caps: List[PricePoint]

    @classmethod
    def from_api(cls, payload: Any, coin_id: str) -> "MarketChart":
        if not isinstance(payload, dict) or "prices" not in payload:
            raise MalformedResponse(f"{coin_id}: market_chart payload missing 'prices'")
        return cls(
            coin_id=coin_id,
            prices=clean_points(payload["prices"], coin_id, "prices"),
            market_caps=clean_points(payload.get("market_caps") or [], coin_id, "market_caps"),
        )
