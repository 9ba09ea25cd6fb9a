"""Configuration settings for the daily digest."""
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

# Project root directory
PROJECT_ROOT = Path(__file__).parent.parent

# API Configuration
VS_CURRENCY = "usd"
HISTORY_DAYS = int(os.getenv("HISTORY_DAYS", "90"))
PAGE_SIZE_LIMIT = 250  # Maximum per_page accepted by /coins/markets
NARRATIVE_BATCH_SIZE = 100  # Keeps the ids= query string under URL length limits

# CoinGecko API Configuration
COINGECKO_API_KEY: Optional[str] = os.getenv("COINGECKO_API_KEY") or None
PRO_API_BASE = "https://pro-api.coingecko.com/api/v3"
PUBLIC_API_BASE = "https://api.coingecko.com/api/v3"
API_KEY_HEADER = "x-cg-pro-api-key"
USER_AGENT = "Mozilla/5.0 (compatible; CryptoDigest/2.0)"

# Request Configuration
REQUEST_TIMEOUT_SECONDS = 30
CACHE_FRESHNESS_SECONDS = 5 * 60
MAX_BACKOFF_MS = 30_000
JITTER_RATIO = 0.10
MIN_JITTER_MS = 100
MAX_JITTER_MS = 500

# Async Configuration
USE_ASYNC = os.getenv("USE_ASYNC_FETCH", "true").lower() == "true"


@dataclass(frozen=True)
class TierParams:
    """Request budget for one API tier."""
    name: str
    base_url: str
    min_delay_ms: int
    max_retries: int
    backoff_base_ms: int
    page_delay_ms: int
    max_concurrent: int


# Pro API allows a far higher per-minute budget, so calls are spaced tighter
# and a few history fetches may run side by side.
PRIVILEGED_TIER = TierParams(
    name="pro",
    base_url=PRO_API_BASE,
    min_delay_ms=250,
    max_retries=3,
    backoff_base_ms=1000,
    page_delay_ms=250,
    max_concurrent=5,
)

PUBLIC_TIER = TierParams(
    name="free",
    base_url=PUBLIC_API_BASE,
    min_delay_ms=2500,
    max_retries=5,
    backoff_base_ms=2000,
    page_delay_ms=2000,
    max_concurrent=1,
)

# Run Configuration
TOP_ASSETS_COUNT = int(os.getenv("TOP_ASSETS_COUNT", "500"))
ANALYTICS_ASSET_COUNT = int(os.getenv("ANALYTICS_ASSET_COUNT", "100"))
RANKING_SIZE = int(os.getenv("RANKING_SIZE", "10"))

# Correlation Configuration
MIN_CORR_DAYS = int(os.getenv("MIN_CORR_DAYS", "10"))

# Output Configuration
OUTPUT_DIR = Path(os.getenv("OUTPUT_DIR", str(PROJECT_ROOT / "data")))
REPORT_VERSION = "2.0"
GENERATED_BY = os.getenv("GENERATED_BY", "github-actions")

# Logging Configuration
LOG_DIR = Path(os.getenv("LOG_DIR", str(PROJECT_ROOT / "logs")))
