"""Constants and default values for the daily digest."""
from typing import Dict, List, Tuple

# Narrative definitions: narrative -> CoinGecko coin ids
NARRATIVES: Dict[str, List[str]] = {
    "AI": [
        "fet-ai", "the-graph", "ocean-protocol", "singularitynet",
        "fetch-ai", "numerai", "render-token", "akash-network",
        "helium", "theta-token", "filecoin",
    ],
    "DeFi": [
        "uniswap", "aave", "curve-dao-token", "compound-governance-token",
        "synthetix-network-token", "balancer", "yearn-finance", "maker",
        "lido-dao", "rocket-pool", "frax-ether",
    ],
    "L1": [
        "solana", "avalanche-2", "polkadot", "cosmos", "algorand",
        "near", "aptos", "sui", "hedera-hashgraph",
    ],
    "L2": [
        "arbitrum", "optimism", "matic-network", "loopring", "immutable-x",
        "starknet", "metis-token",
    ],
    "RWA": [
        "chainlink", "the-graph", "ocean-protocol", "injective-protocol",
        "band-protocol", "centrifuge", "goldfinch", "maple",
    ],
    "Gaming": [
        "axie-infinity", "the-sandbox", "decentraland", "gala", "illuvium",
        "wax", "ultra",
    ],
    "Meme": [
        "dogecoin", "shiba-inu", "pepe", "floki", "bonk",
        "dogwifhat", "babydoge",
    ],
    "Privacy": [
        "monero", "zcash", "horizen", "secret", "beam",
        "dusk-network", "railgun",
    ],
}
MIN_NARRATIVE_COINS = 3
NARRATIVE_TOP_PERFORMERS = 3

# Top performer lists
TOP_PERFORMERS_SIZE = 15

# BTC trend thresholds on 24h % change: (threshold, label), checked in order
BTC_TREND_THRESHOLDS: List[Tuple[float, str]] = [
    (2.0, "strong_bull"),
    (0.5, "bullish"),
]
BTC_BEAR_THRESHOLDS: List[Tuple[float, str]] = [
    (-2.0, "strong_bear"),
    (-0.5, "bearish"),
]

# EMA crossover configuration
EMA_SHORT_PERIOD = 21
EMA_LONG_PERIOD = 55
CROSSOVER_LOOKBACK = 3  # Crossover must sit within the last N samples
SIGNAL_BULLISH = "bullish"
SIGNAL_BEARISH = "bearish"
SIGNAL_NONE = "none"

# Reference ("rest of the market") series
REFERENCE_ASSETS: Tuple[str, str] = ("bitcoin", "ethereum")
REFERENCE_DOMINANCE_KEYS: Tuple[str, str] = ("btc", "eth")
REFERENCE_COMPOSITE = "composite"
REFERENCE_SNAPSHOT = "snapshot"
REFERENCE_ZEROS = "zeros"
