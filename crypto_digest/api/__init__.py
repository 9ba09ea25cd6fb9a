"""CoinGecko API access: transport, error taxonomy and the rate-limited client."""
from crypto_digest.api.client import (
    CacheEntry,
    ClientTierState,
    RateLimitedClient,
    cache_key,
    canonical_params,
    compute_backoff_ms,
)
from crypto_digest.api.errors import (
    RETRYABLE_ERRORS,
    AuthFailure,
    ClientRequestError,
    CoinGeckoError,
    Exhausted,
    MalformedResponse,
    RateLimited,
    ServerError,
    TransientNetworkError,
)
from crypto_digest.api.transport import (
    AiohttpTransport,
    RequestsTransport,
    classify_response,
    create_transport,
    parse_retry_after,
)

__all__ = [
    "RateLimitedClient",
    "ClientTierState",
    "CacheEntry",
    "cache_key",
    "canonical_params",
    "compute_backoff_ms",
    "AiohttpTransport",
    "RequestsTransport",
    "classify_response",
    "create_transport",
    "parse_retry_after",
    "CoinGeckoError",
    "AuthFailure",
    "RateLimited",
    "ServerError",
    "TransientNetworkError",
    "MalformedResponse",
    "ClientRequestError",
    "Exhausted",
    "RETRYABLE_ERRORS",
]
