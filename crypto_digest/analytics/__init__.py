"""Signal computation: EMA crossovers, correlation/beta and top movers."""
from crypto_digest.analytics.correlation import (
    CorrelationResult,
    ReferenceSeries,
    beta,
    build_composite_reference,
    build_reference_series,
    compute_correlation,
    correlation,
    downside_beta,
    rank_results,
    simple_returns,
    tail_align,
)
from crypto_digest.analytics.ema import (
    CrossoverEvent,
    CrossoverSignal,
    detect_crossover,
    ema_series,
    find_last_crossover,
)
from crypto_digest.analytics.performers import aggregate_narratives, classify_trend, top_performers

__all__ = [
    "ema_series",
    "find_last_crossover",
    "detect_crossover",
    "CrossoverEvent",
    "CrossoverSignal",
    "simple_returns",
    "tail_align",
    "correlation",
    "beta",
    "downside_beta",
    "compute_correlation",
    "build_composite_reference",
    "build_reference_series",
    "rank_results",
    "CorrelationResult",
    "ReferenceSeries",
    "top_performers",
    "classify_trend",
    "aggregate_narratives",
]
