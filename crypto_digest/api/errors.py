"""Error taxonomy for CoinGecko API access."""
from typing import Optional


class CoinGeckoError(RuntimeError):
    """Base class for every failure raised by the API layer."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class AuthFailure(CoinGeckoError):
    """HTTP 401/403. Triggers the Pro -> public downgrade."""


class RateLimited(CoinGeckoError):
    """HTTP 429, optionally carrying the server's Retry-After in seconds."""

    def __init__(self, message: str, retry_after: Optional[float] = None):
        super().__init__(message, status=429)
        self.retry_after = retry_after


class ServerError(CoinGeckoError):
    """HTTP 5xx."""


class TransientNetworkError(CoinGeckoError):
    """Connection reset, timeout or DNS failure."""


class MalformedResponse(CoinGeckoError):
    """Body could not be parsed as JSON, or lacks the fields its schema requires."""


class ClientRequestError(CoinGeckoError):
    """Any other non-200 status (404, 400, ...)."""


class Exhausted(CoinGeckoError):
    """Retries exhausted with no cached payload to fall back on."""


RETRYABLE_ERRORS = (RateLimited, ServerError, TransientNetworkError)
