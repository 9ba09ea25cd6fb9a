"""Data fetching, parsing and cleaning modules."""
from crypto_digest.data.cleaner import PricePoint, clean_points, points_to_series, values_of
from crypto_digest.data.fetcher import MarketSnapshotFetcher, PagePlan, PageRequest
from crypto_digest.data.schemas import AssetSummary, CoinSnapshot, GlobalMetrics, MarketChart

__all__ = [
    "MarketSnapshotFetcher",
    "PagePlan",
    "PageRequest",
    "PricePoint",
    "clean_points",
    "points_to_series",
    "values_of",
    "AssetSummary",
    "CoinSnapshot",
    "GlobalMetrics",
    "MarketChart",
]
