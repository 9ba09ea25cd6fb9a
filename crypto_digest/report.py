"""Daily report generation: fetch, analyse, assemble and persist."""
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional

from crypto_digest.analytics.correlation import (
    CorrelationResult,
    ReferenceSeries,
    build_reference_series,
    compute_correlation,
    rank_results,
)
from crypto_digest.analytics.ema import CrossoverSignal, detect_crossover
from crypto_digest.analytics.performers import aggregate_narratives, classify_trend, top_performers
from crypto_digest.api.client import RateLimitedClient
from crypto_digest.api.errors import CoinGeckoError
from crypto_digest.config import (
    ANALYTICS_ASSET_COUNT,
    GENERATED_BY,
    HISTORY_DAYS,
    MIN_CORR_DAYS,
    OUTPUT_DIR,
    RANKING_SIZE,
    REPORT_VERSION,
    TOP_ASSETS_COUNT,
)
from crypto_digest.constants import NARRATIVES, REFERENCE_ASSETS, SIGNAL_BEARISH, SIGNAL_BULLISH
from crypto_digest.data.cleaner import values_of
from crypto_digest.data.fetcher import MarketSnapshotFetcher
from crypto_digest.data.schemas import AssetSummary, GlobalMetrics, MarketChart
from crypto_digest.storage import save_report
from crypto_digest.utils import date_key_ny, format_number, setup_logger

logger = setup_logger(__name__)


@dataclass
class RunResult:
    """Outcome of one generation run."""
    success: bool
    message: str = ""
    duration: str = ""
    timestamp: str = ""
    file_path: Optional[str] = None
    data_points: Dict[str, int] = field(default_factory=dict)
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        if not self.success:
            return {"success": False, "error": self.error}
        return {
            "success": True,
            "message": self.message,
            "duration": self.duration,
            "timestamp": self.timestamp,
            "filePath": self.file_path,
            "dataPoints": self.data_points,
        }


def scan_crossovers(charts: Mapping[str, MarketChart], symbols: Mapping[str, str]) -> Dict[str, CrossoverSignal]:
    """EMA crossover signal per coin. Coins with short history or bad data are skipped."""
    signals: Dict[str, CrossoverSignal] = {}
    for coin_id, chart in charts.items():
        try:
            signal = detect_crossover(values_of(chart.prices))
        except Exception as e:
            logger.error(f"{symbols.get(coin_id, coin_id)}: EMA crossover failed -> {e}")
            continue
        if signal is not None:
            signals[coin_id] = signal
    return signals


def correlate_assets(
    charts: Mapping[str, MarketChart],
    reference: ReferenceSeries,
    symbols: Mapping[str, str],
    min_samples: int = MIN_CORR_DAYS,
) -> List[CorrelationResult]:
    """Correlation/beta/downside beta per coin against the reference series."""
    results: List[CorrelationResult] = []
    for coin_id, chart in charts.items():
        try:
            result = compute_correlation(
                coin_id,
                values_of(chart.prices),
                reference.values,
                symbol=symbols.get(coin_id, ""),
            )
        except Exception as e:
            logger.error(f"{symbols.get(coin_id, coin_id)}: correlation failed -> {e}")
            continue
        if result.samples < min_samples:
            logger.debug(f"{coin_id}: only {result.samples} aligned returns, skipping correlation")
            continue
        results.append(result)
    return results


class ReportAssembler:
    """Merges fetched data and analytics into the output document."""

    @staticmethod
    def crossover_section(signals: Mapping[str, CrossoverSignal], symbols: Mapping[str, str]) -> Dict[str, Any]:
        section: Dict[str, Any] = {SIGNAL_BULLISH: [], SIGNAL_BEARISH: [], "assetsScanned": len(signals)}
        for coin_id, signal in signals.items():
            if not signal.is_active:
                continue
            section[signal.signal].append({"id": coin_id, "symbol": symbols.get(coin_id, ""), **signal.to_dict()})
        for key in (SIGNAL_BULLISH, SIGNAL_BEARISH):
            section[key].sort(key=lambda row: (row["daysAgo"], row["id"]))
        return section

    @staticmethod
    def assemble(
        *,
        now: datetime,
        assets: List[AssetSummary],
        global_metrics: Optional[GlobalMetrics],
        btc_data: Optional[Dict[str, Any]],
        narrative_data: Dict[str, Any],
        crossovers: Mapping[str, CrossoverSignal],
        correlations: List[CorrelationResult],
        reference_source: str,
        ranking_size: int,
        client: RateLimitedClient,
    ) -> Dict[str, Any]:
        movers = top_performers(assets)
        top_corr, top_downside = rank_results(correlations, ranking_size)
        symbols = {a.id: a.symbol for a in assets}

        return {
            "date": date_key_ny(now),
            "timestamp": now.isoformat(),
            **{name: [a.to_dict() for a in rows] for name, rows in movers.items()},
            "globalMetrics": global_metrics.to_dict() if global_metrics else None,
            "btcData": btc_data,
            "narrativeData": narrative_data,
            "emaCrossovers": ReportAssembler.crossover_section(crossovers, symbols),
            "correlations": {
                "reference": reference_source,
                "assetsAnalyzed": len(correlations),
                "topCorrelated": [r.to_dict() for r in top_corr],
                "topDownsideBeta": [r.to_dict() for r in top_downside],
            },
            "metadata": {
                "totalCoinsAnalyzed": len(assets),
                "apiMode": client.api_mode,
                "downgraded": client.downgraded,
                "generatedBy": GENERATED_BY,
                "version": REPORT_VERSION,
            },
        }


class DailyDataGenerator:
    """
    Runs one full digest: top assets, global metrics, BTC snapshot,
    narratives, history-based signals, then writes the JSON report.

    Args:
        client: Shared rate-limited client
        output_dir: Directory for the dated report and latest.json
        top_count: Number of top assets to pull
        analytics_count: How many of those get history-based analytics
        history_days: Days of daily history per asset
        ranking_size: Length of the correlation / downside-beta rankings
        now: Source of the (timezone-aware) current time
    """

    def __init__(
        self,
        client: RateLimitedClient,
        output_dir: Path = OUTPUT_DIR,
        top_count: int = TOP_ASSETS_COUNT,
        analytics_count: int = ANALYTICS_ASSET_COUNT,
        history_days: int = HISTORY_DAYS,
        ranking_size: int = RANKING_SIZE,
        narratives: Mapping[str, List[str]] = NARRATIVES,
        now: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.client = client
        self.fetcher = MarketSnapshotFetcher(client)
        self.output_dir = Path(output_dir)
        self.top_count = top_count
        self.analytics_count = analytics_count
        self.history_days = history_days
        self.ranking_size = ranking_size
        self.narratives = narratives
        self._now = now

    async def get_global_metrics(self) -> Optional[GlobalMetrics]:
        try:
            return await self.fetcher.fetch_global_metrics()
        except CoinGeckoError as e:
            logger.error(f"❌ Error fetching global metrics: {e}")
            return None

    async def get_btc_data(self) -> Optional[Dict[str, Any]]:
        logger.info("₿ Fetching BTC data...")
        try:
            snapshot = await self.fetcher.fetch_coin_snapshot("bitcoin")
        except CoinGeckoError as e:
            logger.error(f"⚠️ BTC data error: {e}")
            return None

        trend = classify_trend(snapshot.price_change_24h)
        logger.info(
            f"✅ BTC: ${snapshot.current_price:,.2f} ({snapshot.price_change_24h:+.2f}%), Trend: {trend}"
        )
        return {
            "currentPrice": snapshot.current_price,
            "priceChange24h": snapshot.price_change_24h,
            "marketCap": snapshot.market_cap,
            "trend": trend,
        }

    async def get_narrative_data(self) -> Dict[str, Any]:
        logger.info("📊 Generating narrative data...")
        coin_ids = [c for ids in self.narratives.values() for c in ids]
        try:
            assets = await self.fetcher.fetch_markets_by_ids(coin_ids)
        except CoinGeckoError as e:
            logger.error(f"Error fetching narrative data: {e}")
            return {}
        data = aggregate_narratives(self.narratives, assets)
        logger.info(f"✅ Generated data for {len(data)} narratives")
        return data

    def analytics_universe(self, assets: List[AssetSummary]) -> List[str]:
        ids = [a.id for a in assets[:self.analytics_count]]
        return list(dict.fromkeys(ids + list(REFERENCE_ASSETS)))

    async def build_report(self) -> Dict[str, Any]:
        """
        Fetch everything and assemble the report document.

        Only the top-assets fetch is fatal; every other section degrades to an
        empty or null value when its data is unavailable.
        """
        now = self._now()
        assets = await self.fetcher.fetch_top_assets(self.top_count)
        symbols = {a.id: a.symbol for a in assets}

        global_metrics = await self.get_global_metrics()
        btc_data = await self.get_btc_data()
        narrative_data = await self.get_narrative_data()

        universe = self.analytics_universe(assets)
        logger.info(f"📉 Fetching {self.history_days}d history for {len(universe)} coins...")
        charts = await self.fetcher.fetch_charts(universe, self.history_days)

        crossovers = scan_crossovers(charts, symbols)

        btc_chart, eth_chart = (charts.get(coin_id) for coin_id in REFERENCE_ASSETS)
        reference = build_reference_series(
            btc_chart.market_caps if btc_chart else [],
            eth_chart.market_caps if eth_chart else [],
            global_metrics,
            length=self.history_days + 1,
        )
        analysed = {cid: chart for cid, chart in charts.items() if cid not in REFERENCE_ASSETS}
        correlations = correlate_assets(analysed, reference, symbols)

        return ReportAssembler.assemble(
            now=now,
            assets=assets,
            global_metrics=global_metrics,
            btc_data=btc_data,
            narrative_data=narrative_data,
            crossovers=crossovers,
            correlations=correlations,
            reference_source=reference.source,
            ranking_size=self.ranking_size,
            client=self.client,
        )

    async def generate(self) -> RunResult:
        """Build and save the report. Never raises; failures come back as RunResult."""
        logger.info("🚀 Starting daily crypto data generation...")
        start = time.monotonic()

        try:
            report = await self.build_report()
            file_path = save_report(report, self.output_dir, report["date"])
        except Exception as e:
            logger.exception(f"❌ Error generating daily data: {e}")
            return RunResult(success=False, error=str(e))

        duration = f"{time.monotonic() - start:.2f}s"
        crossovers = report["emaCrossovers"]
        data_points = {
            "gainers": len(report["topGainers24h"]),
            "losers": len(report["topLosers24h"]),
            "weeklyWinners": len(report["topGainers7d"]),
            "narratives": len(report["narrativeData"]),
            "crossovers": len(crossovers[SIGNAL_BULLISH]) + len(crossovers[SIGNAL_BEARISH]),
            "correlations": report["correlations"]["assetsAnalyzed"],
        }

        logger.info("📊 Data collection completed:")
        for name, count in data_points.items():
            logger.info(f"   - {name}: {count}")
        if report["globalMetrics"]:
            logger.info(f"   - Market cap: {format_number(report['globalMetrics']['totalMarketCap'])}")
        logger.info(
            f"✅ Daily data generated successfully in {duration} "
            f"({self.client.network_calls} API calls, {self.client.cache_hits} cache hits)"
        )

        return RunResult(
            success=True,
            message="Daily data generated successfully",
            duration=duration,
            timestamp=report["timestamp"],
            file_path=str(file_path),
            data_points=data_points,
        )
