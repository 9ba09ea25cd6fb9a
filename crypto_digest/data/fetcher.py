"""Market snapshot fetching from the CoinGecko API through the rate-limited client."""
import asyncio
import math
from dataclasses import dataclass
from typing import Dict, Iterator, List, Sequence, Tuple

from crypto_digest.api.client import RateLimitedClient
from crypto_digest.api.errors import CoinGeckoError, MalformedResponse
from crypto_digest.config import (
    HISTORY_DAYS,
    NARRATIVE_BATCH_SIZE,
    PAGE_SIZE_LIMIT,
    VS_CURRENCY,
)
from crypto_digest.data.cleaner import PricePoint
from crypto_digest.data.schemas import AssetSummary, CoinSnapshot, GlobalMetrics, MarketChart
from crypto_digest.utils import format_number, setup_logger

logger = setup_logger(__name__)


@dataclass(frozen=True)
class PageRequest:
    page: int
    per_page: int


class PagePlan:
    """
    Finite, restartable sequence of /coins/markets page requests.

    Every page uses the same ``per_page`` so page offsets line up; the caller
    trims the last page down to ``total``.
    """

    def __init__(self, total: int, page_size: int = PAGE_SIZE_LIMIT):
        if total < 0:
            raise ValueError(f"total must be >= 0, got {total}")
        if not 1 <= page_size <= PAGE_SIZE_LIMIT:
            raise ValueError(f"page_size must be in [1, {PAGE_SIZE_LIMIT}], got {page_size}")
        self.total = total
        self.page_size = min(page_size, total) if total else page_size

    def __len__(self) -> int:
        return math.ceil(self.total / self.page_size) if self.total else 0

    def __iter__(self) -> Iterator[PageRequest]:
        for page in range(1, len(self) + 1):
            yield PageRequest(page=page, per_page=self.page_size)


def batched(items: Sequence[str], size: int) -> List[List[str]]:
    return [list(items[i:i + size]) for i in range(0, len(items), size)]


class MarketSnapshotFetcher:
    """Orchestrates the CoinGecko endpoints the digest needs. Retries live in the client."""

    def __init__(self, client: RateLimitedClient):
        self.client = client
        self.failed: List[Tuple[str, str]] = []

    async def fetch_top_assets(self, count: int) -> List[AssetSummary]:
        """
        Fetch the top ``count`` assets by market cap, paginating as needed.

        Pages that come back in an unexpected shape are logged and skipped.

        Raises:
            CoinGeckoError: no page yielded any data
        """
        plan = PagePlan(count)
        logger.info(f"📈 Fetching top {count} coins ({len(plan)} page(s))...")
        assets: List[AssetSummary] = []

        for request in plan:
            logger.info(f"   - Fetching page {request.page} ({request.per_page} coins)...")
            rows = await self.client.call("/coins/markets", {
                "vs_currency": VS_CURRENCY,
                "order": "market_cap_desc",
                "per_page": request.per_page,
                "page": request.page,
                "sparkline": False,
                "price_change_percentage": "24h,7d",
            })

            if not isinstance(rows, list):
                logger.error(f"❌ Invalid data format from API on page {request.page}: {type(rows).__name__}")
                continue

            assets.extend(self._parse_rows(rows))

            if len(rows) < request.per_page:
                break  # fewer listed coins than requested
            if request.page < len(plan):
                await self.client.page_pause()

        if not assets:
            raise CoinGeckoError("No coin data available")

        assets = assets[:count]
        logger.info(f"✅ Fetched {len(assets)} coins in total")
        return assets

    def _parse_rows(self, rows: list) -> List[AssetSummary]:
        parsed = []
        for row in rows:
            try:
                parsed.append(AssetSummary.from_api(row))
            except MalformedResponse as e:
                logger.warning(f"Skipping market row: {e}")
        return parsed

    async def fetch_global_metrics(self) -> GlobalMetrics:
        logger.info("🌍 Fetching global metrics...")
        metrics = GlobalMetrics.from_api(await self.client.call("/global"))
        logger.info(
            f"✅ BTC dominance: {metrics.btc_dominance:.1f}%, "
            f"Total cap: {format_number(metrics.total_market_cap)}"
        )
        return metrics

    async def fetch_coin_snapshot(self, coin_id: str) -> CoinSnapshot:
        payload = await self.client.call(f"/coins/{coin_id}", {
            "localization": False,
            "tickers": False,
            "market_data": True,
            "community_data": False,
            "developer_data": False,
            "sparkline": False,
        })
        return CoinSnapshot.from_api(payload, coin_id)

    async def fetch_market_chart(self, coin_id: str, days: int = HISTORY_DAYS) -> MarketChart:
        if days < 1:
            raise ValueError(f"days must be >= 1, got {days}")
        payload = await self.client.call(f"/coins/{coin_id}/market_chart", {
            "vs_currency": VS_CURRENCY,
            "days": days,
            "interval": "daily",
        })
        return MarketChart.from_api(payload, coin_id)

    async def fetch_history(self, coin_id: str, days: int = HISTORY_DAYS) -> List[PricePoint]:
        """Daily price history, ascending by time."""
        chart = await self.fetch_market_chart(coin_id, days)
        return chart.prices

    async def fetch_charts(self, coin_ids: Sequence[str], days: int = HISTORY_DAYS) -> Dict[str, MarketChart]:
        """
        Fetch market charts for many coins.

        On the Pro tier up to ``client.max_concurrent`` requests run at once;
        on the public tier they run one after another. After a downgrade in the
        middle of a parallel fetch, coins not yet started run one at a time;
        requests already in flight retry under the client's public-tier spacing.
        A coin whose fetch fails
        is logged, recorded in ``self.failed`` and left out of the result.

        Returns:
            Dictionary mapping coin id to its MarketChart, in input order
        """
        if self.client.is_privileged and self.client.max_concurrent > 1:
            charts = await self._fetch_charts_parallel(coin_ids, days)
        else:
            charts = await self._fetch_charts_sequential(coin_ids, days)
        logger.info(f"✅ Loaded history for {len(charts)}/{len(coin_ids)} coin(s)")
        return charts

    async def _fetch_charts_parallel(self, coin_ids: Sequence[str], days: int) -> Dict[str, MarketChart]:
        sem = asyncio.Semaphore(self.client.max_concurrent)
        public_gate = asyncio.Lock()

        async def fetch_one(coin_id: str) -> MarketChart:
            async with sem:
                if self.client.is_privileged:
                    return await self.fetch_market_chart(coin_id, days)
                # downgraded mid-fetch: one request at a time from here on
                async with public_gate:
                    return await self.fetch_market_chart(coin_id, days)

        outcomes = await asyncio.gather(*(fetch_one(c) for c in coin_ids), return_exceptions=True)

        charts: Dict[str, MarketChart] = {}
        for coin_id, outcome in zip(coin_ids, outcomes):
            if isinstance(outcome, CoinGeckoError):
                self._record_failure(coin_id, outcome)
            elif isinstance(outcome, BaseException):
                raise outcome
            else:
                charts[coin_id] = outcome
        return charts

    async def _fetch_charts_sequential(self, coin_ids: Sequence[str], days: int) -> Dict[str, MarketChart]:
        charts: Dict[str, MarketChart] = {}
        for coin_id in coin_ids:
            try:
                charts[coin_id] = await self.fetch_market_chart(coin_id, days)
            except CoinGeckoError as e:
                self._record_failure(coin_id, e)
        return charts

    def _record_failure(self, coin_id: str, error: Exception) -> None:
        self.failed.append((coin_id, str(error)))
        logger.error(f"Failed to fetch history for {coin_id}: {error}")

    async def fetch_markets_by_ids(self, coin_ids: Sequence[str]) -> List[AssetSummary]:
        """Market rows for an explicit id list, requested in batches."""
        unique_ids = list(dict.fromkeys(coin_ids))
        batches = batched(unique_ids, NARRATIVE_BATCH_SIZE)
        assets: List[AssetSummary] = []

        for idx, batch in enumerate(batches):
            logger.info(f"   - Fetching batch of {len(batch)} narrative coins...")
            rows = await self.client.call("/coins/markets", {
                "vs_currency": VS_CURRENCY,
                "ids": ",".join(batch),
                "price_change_percentage": "24h,7d",
                "per_page": PAGE_SIZE_LIMIT,
            })
            if isinstance(rows, list):
                assets.extend(self._parse_rows(rows))
            else:
                logger.error(f"❌ Invalid narrative batch format: {type(rows).__name__}")

            if idx < len(batches) - 1:
                await self.client.page_pause()

        return assets
