import asyncio
import json
import math
from datetime import datetime, timezone

from crypto_digest.analytics.ema import CrossoverEvent, CrossoverSignal
from crypto_digest.api.errors import ServerError
from crypto_digest.constants import REFERENCE_COMPOSITE, REFERENCE_SNAPSHOT, SIGNAL_BEARISH, SIGNAL_BULLISH, SIGNAL_NONE
from crypto_digest import report as report_module
from crypto_digest.report import DailyDataGenerator, ReportAssembler, RunResult
from crypto_digest.storage import LATEST_FILENAME, report_filename

from conftest import GLOBAL_PAYLOAD, RoutedTransport, ScriptedTransport, chart_payload, market_row

TOP_IDS = ["bitcoin", "ethereum", "coin-a", "coin-b", "coin-c"]
NARRATIVES = {"Test": ["coin-a", "coin-b", "coin-c"], "Tiny": ["coin-a", "missing"]}
NOW = datetime(2024, 1, 1, 3, 0, tzinfo=timezone.utc)

BTC_SNAPSHOT = {
    "market_data": {
        "current_price": {"usd": 50_000.0},
        "price_change_percentage_24h": 2.5,
        "market_cap": {"usd": 1.0e12},
    }
}


def _wave(seed, n):
    return [100.0 + seed + 10.0 * math.sin(i * (seed + 1) / 7.0) + 0.1 * i for i in range(n)]


def _handler(fail_global=False):
    changes = {"bitcoin": 1.0, "ethereum": -2.0, "coin-a": 5.0, "coin-b": -4.0, "coin-c": 0.5}

    def handler(path, params):
        if path == "/coins/markets":
            if "ids" in params:
                return [market_row(i, change_24h=changes.get(i, 1.0)) for i in params["ids"].split(",")
                        if i in changes]
            return [market_row(i, change_24h=changes[i]) for i in TOP_IDS[:int(params["per_page"])]]
        if path == "/global":
            if fail_global:
                raise ServerError("HTTP 503", status=503)
            return GLOBAL_PAYLOAD
        if path.endswith("/market_chart"):
            coin_id = path.split("/")[2]
            return chart_payload(_wave(TOP_IDS.index(coin_id), int(params["days"]) + 1))
        if path == "/coins/bitcoin":
            return BTC_SNAPSHOT
        raise AssertionError(f"unexpected path {path}")
    return handler


def _generator(client, tmp_path):
    return DailyDataGenerator(
        client,
        output_dir=tmp_path,
        top_count=len(TOP_IDS),
        analytics_count=len(TOP_IDS),
        history_days=70,
        ranking_size=2,
        narratives=NARRATIVES,
        now=lambda: NOW,
    )


def test_generate_writes_dated_and_latest_report(make_client, tmp_path):
    client = make_client(RoutedTransport(_handler()))
    result = asyncio.run(_generator(client, tmp_path).generate())

    assert result.success, result.error
    dated = tmp_path / report_filename("2023-12-31")
    assert result.file_path == str(dated)
    assert dated.exists() and (tmp_path / LATEST_FILENAME).exists()

    report = json.loads(dated.read_text(encoding="utf-8"))
    assert report == json.loads((tmp_path / LATEST_FILENAME).read_text(encoding="utf-8"))
    assert report["date"] == "2023-12-31"

    assert [row["id"] for row in report["topGainers24h"]] == ["coin-a", "bitcoin", "coin-c"]
    assert [row["id"] for row in report["topLosers24h"]] == ["coin-b", "ethereum"]
    assert report["globalMetrics"]["btcDominance"] == 50.0
    assert report["btcData"]["trend"] == "strong_bull"
    assert set(report["narrativeData"]) == {"Test"}
    assert report["narrativeData"]["Test"]["coinCount"] == 3

    assert report["emaCrossovers"]["assetsScanned"] == len(TOP_IDS)

    corr = report["correlations"]
    assert corr["reference"] == REFERENCE_COMPOSITE
    assert corr["assetsAnalyzed"] == 3
    assert len(corr["topCorrelated"]) == 2
    assert not {"bitcoin", "ethereum"} & {row["id"] for row in corr["topCorrelated"]}
    assert all(-1.0 <= row["correlation"] <= 1.0 for row in corr["topCorrelated"])

    meta = report["metadata"]
    assert meta["totalCoinsAnalyzed"] == len(TOP_IDS)
    assert meta["apiMode"] == "free"
    assert meta["downgraded"] is False

    assert result.data_points["correlations"] == 3
    assert result.data_points["narratives"] == 1


def test_global_metrics_failure_is_not_fatal(make_client, tmp_path):
    client = make_client(RoutedTransport(_handler(fail_global=True)))
    result = asyncio.run(_generator(client, tmp_path).generate())

    assert result.success
    report = json.loads((tmp_path / LATEST_FILENAME).read_text(encoding="utf-8"))
    assert report["globalMetrics"] is None
    assert report["correlations"]["reference"] not in (REFERENCE_COMPOSITE, REFERENCE_SNAPSHOT)
    assert all(row["correlation"] == 0.0 for row in report["correlations"]["topCorrelated"])


def test_top_assets_failure_fails_the_run(clock, make_client, tmp_path):
    client = make_client(ScriptedTransport([ServerError("HTTP 500", status=500)], clock))
    result = asyncio.run(_generator(client, tmp_path).generate())

    assert result == RunResult(success=False, error=result.error)
    assert "failed after" in result.error
    assert result.to_dict() == {"success": False, "error": result.error}
    assert not list(tmp_path.iterdir())


def test_crossover_section_keeps_active_signals_only():
    signals = {
        "a": CrossoverSignal(SIGNAL_BULLISH, 2, CrossoverEvent(60, SIGNAL_BULLISH)),
        "b": CrossoverSignal(SIGNAL_BULLISH, 0, CrossoverEvent(62, SIGNAL_BULLISH)),
        "c": CrossoverSignal(SIGNAL_BEARISH, 1, CrossoverEvent(61, SIGNAL_BEARISH)),
        "d": CrossoverSignal(SIGNAL_NONE, None, CrossoverEvent(10, SIGNAL_BEARISH)),
    }
    section = ReportAssembler.crossover_section(signals, {"a": "AAA", "b": "BBB", "c": "CCC"})

    assert section["assetsScanned"] == 4
    assert [row["id"] for row in section[SIGNAL_BULLISH]] == ["b", "a"]
    assert section[SIGNAL_BEARISH] == [{"id": "c", "symbol": "CCC", "signal": SIGNAL_BEARISH, "daysAgo": 1}]


def test_failing_asset_analytics_are_skipped(make_client, tmp_path, monkeypatch):
    poisoned_first_price = _wave(TOP_IDS.index("coin-b"), 1)[0]
    real_detect = report_module.detect_crossover
    real_correlate = report_module.compute_correlation

    def detect(prices):
        if prices[0] == poisoned_first_price:
            raise ValueError("bad history")
        return real_detect(prices)

    def correlate(asset_id, *args, **kwargs):
        if asset_id == "coin-b":
            raise ValueError("bad history")
        return real_correlate(asset_id, *args, **kwargs)

    monkeypatch.setattr(report_module, "detect_crossover", detect)
    monkeypatch.setattr(report_module, "compute_correlation", correlate)

    client = make_client(RoutedTransport(_handler()))
    result = asyncio.run(_generator(client, tmp_path).generate())

    assert result.success, result.error
    report = json.loads((tmp_path / LATEST_FILENAME).read_text(encoding="utf-8"))
    assert report["emaCrossovers"]["assetsScanned"] == len(TOP_IDS) - 1
    assert report["correlations"]["assetsAnalyzed"] == 2
    assert {row["id"] for row in report["correlations"]["topCorrelated"]} == {"coin-a", "coin-c"}
