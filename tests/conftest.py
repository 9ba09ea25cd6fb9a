import asyncio
import os
import tempfile
from typing import Any, Callable, Dict, List, Optional

import pytest

os.environ.setdefault("LOG_DIR", tempfile.mkdtemp(prefix="crypto_digest_logs_"))

from crypto_digest.api.client import RateLimitedClient  # noqa: E402
from crypto_digest.api.errors import AuthFailure  # noqa: E402
from crypto_digest.config import API_KEY_HEADER  # noqa: E402


class FakeClock:
    """Manual clock whose sleep advances time instead of waiting."""

    def __init__(self, start: float = 1_000_000.0):
        self.now = start
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class ScriptedTransport:
    """
    Returns (or raises) the scripted outcomes in order; the last one repeats.

    Every call is recorded as (time, url, params, headers).
    """

    def __init__(self, outcomes: List[Any], clock: Optional[FakeClock] = None):
        self.outcomes = list(outcomes)
        self.clock = clock
        self.calls: List[Dict[str, Any]] = []
        self.closed = False

    async def get(self, url: str, params: Dict[str, str], headers: Dict[str, str]) -> Any:
        self.calls.append({
            "time": self.clock() if self.clock else None,
            "url": url,
            "params": dict(params),
            "headers": dict(headers),
        })
        outcome = self.outcomes.pop(0) if len(self.outcomes) > 1 else self.outcomes[0]
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    async def close(self) -> None:
        self.closed = True


class RoutedTransport:
    """Dispatches on the request path to a handler ``(path, params) -> payload``."""

    def __init__(self, handler: Callable[[str, Dict[str, str]], Any]):
        self.handler = handler
        self.calls: List[Dict[str, Any]] = []

    async def get(self, url: str, params: Dict[str, str], headers: Dict[str, str]) -> Any:
        path = url.split("/api/v3", 1)[1]
        self.calls.append({"path": path, "params": dict(params), "headers": dict(headers)})
        return self.handler(path, dict(params))

    async def close(self) -> None:
        pass


class KeyRejectingTransport:
    """
    Rejects every keyed request with 401 after a short real delay, so several
    keyed requests are in flight together. Keyless requests go to ``handler``.
    """

    def __init__(self, handler: Callable[[str, Dict[str, str]], Any], delay: float = 0.02):
        self.handler = handler
        self.delay = delay
        self.keyed_calls = 0
        self.public_calls = 0

    async def get(self, url: str, params: Dict[str, str], headers: Dict[str, str]) -> Any:
        if API_KEY_HEADER in headers:
            self.keyed_calls += 1
            await asyncio.sleep(self.delay)
            raise AuthFailure("HTTP 401: unauthorized", status=401)
        self.public_calls += 1
        return self.handler(url.split("/api/v3", 1)[1], dict(params))

    async def close(self) -> None:
        pass


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def make_client(clock):
    def _make(transport, api_key: Optional[str] = None, rng=lambda: 0.0) -> RateLimitedClient:
        return RateLimitedClient(transport, api_key=api_key, clock=clock, sleep=clock.sleep, rng=rng)
    return _make


DAY_MS = 86_400_000
START_MS = 1_700_000_000_000 - (1_700_000_000_000 % DAY_MS)


def chart_payload(prices: List[float], market_caps: Optional[List[float]] = None) -> Dict[str, Any]:
    """market_chart-shaped payload with one point per day."""
    caps = market_caps if market_caps is not None else [p * 1_000_000 for p in prices]
    return {
        "prices": [[START_MS + i * DAY_MS, p] for i, p in enumerate(prices)],
        "market_caps": [[START_MS + i * DAY_MS, c] for i, c in enumerate(caps)],
        "total_volumes": [[START_MS + i * DAY_MS, 1.0] for i in range(len(prices))],
    }


def market_row(coin_id: str, change_24h: Optional[float] = 1.0, change_7d: Optional[float] = 2.0,
               market_cap: Optional[float] = 1e9, price: float = 10.0) -> Dict[str, Any]:
    return {
        "id": coin_id,
        "symbol": coin_id[:3],
        "name": coin_id.title(),
        "current_price": price,
        "market_cap": market_cap,
        "market_cap_rank": 1,
        "total_volume": 5e6,
        "price_change_percentage_24h": change_24h,
        "price_change_percentage_7d_in_currency": change_7d,
    }


GLOBAL_PAYLOAD = {
    "data": {
        "market_cap_percentage": {"btc": 50.0, "eth": 10.0},
        "total_market_cap": {"usd": 3.0e12},
        "total_volume": {"usd": 1.0e11},
        "active_cryptocurrencies": 12000,
        "market_cap_change_percentage_24h_usd": 1.5,
    }
}
