import pytest

from crypto_digest.api.errors import MalformedResponse
from crypto_digest.data.cleaner import PricePoint, clean_points, points_to_series
from crypto_digest.data.schemas import AssetSummary, CoinSnapshot, GlobalMetrics, MarketChart

from conftest import DAY_MS, GLOBAL_PAYLOAD, START_MS, market_row


def test_asset_summary_defaults():
    row = {"id": "foo", "symbol": "foo", "market_cap": None, "price_change_percentage_24h": "3.5"}
    asset = AssetSummary.from_api(row)

    assert asset.symbol == "FOO"
    assert asset.name == ""
    assert asset.market_cap == 0.0
    assert asset.total_volume == 0.0
    assert asset.current_price is None
    assert asset.price_change_percentage_24h == 3.5
    assert asset.price_change_percentage_7d is None


def test_asset_summary_prefers_in_currency_change():
    row = market_row("foo", change_24h=1.0)
    row["price_change_percentage_24h_in_currency"] = 1.7
    assert AssetSummary.from_api(row).price_change_percentage_24h == 1.7


def test_asset_summary_requires_id():
    with pytest.raises(MalformedResponse):
        AssetSummary.from_api({"symbol": "x"})


def test_global_metrics_total3():
    metrics = GlobalMetrics.from_api(GLOBAL_PAYLOAD)
    assert metrics.btc_dominance == 50.0
    assert metrics.eth_dominance == 10.0
    assert metrics.total3_market_cap == pytest.approx(1.2e12)
    assert metrics.active_cryptocurrencies == 12000
    assert metrics.to_dict()["total3MarketCap"] == pytest.approx(1.2e12)


@pytest.mark.parametrize("payload", [None, [], {"status": "error"}, {"data": "nope"}])
def test_global_metrics_rejects_bad_payload(payload):
    with pytest.raises(MalformedResponse):
        GlobalMetrics.from_api(payload)


def test_coin_snapshot_missing_market_data():
    snap = CoinSnapshot.from_api({"id": "bitcoin"}, "bitcoin")
    assert (snap.current_price, snap.price_change_24h, snap.market_cap) == (0.0, 0.0, 0.0)


def test_market_chart_requires_prices():
    with pytest.raises(MalformedResponse):
        MarketChart.from_api({"market_caps": []}, "x")


def test_clean_points_keeps_last_point_per_day():
    raw = [
        [START_MS + DAY_MS, 2.0],
        [START_MS, 1.0],
        [START_MS + DAY_MS + 3_600_000, 2.5],  # intraday point for the same day
        [START_MS + 2 * DAY_MS, None],
        ["bad"],
    ]
    points = clean_points(raw, "x")

    assert points == [PricePoint(START_MS, 1.0), PricePoint(START_MS + DAY_MS + 3_600_000, 2.5)]


def test_clean_points_rejects_non_list():
    with pytest.raises(MalformedResponse):
        clean_points({"oops": 1}, "x")


def test_points_to_series_is_date_indexed():
    series = points_to_series([PricePoint(START_MS, 1.0), PricePoint(START_MS + DAY_MS, 2.0)])
    assert list(series) == [1.0, 2.0]
    assert (series.index[1] - series.index[0]).days == 1
    assert points_to_series([]).empty
