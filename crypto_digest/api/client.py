"""Rate-limited CoinGecko client with response caching, retry/backoff and tier downgrade."""
import asyncio
import random
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional
from urllib.parse import urlencode

from crypto_digest.api.errors import (
    RETRYABLE_ERRORS,
    AuthFailure,
    CoinGeckoError,
    Exhausted,
    MalformedResponse,
)
from crypto_digest.config import (
    API_KEY_HEADER,
    CACHE_FRESHNESS_SECONDS,
    COINGECKO_API_KEY,
    JITTER_RATIO,
    MAX_BACKOFF_MS,
    MAX_JITTER_MS,
    MIN_JITTER_MS,
    PRIVILEGED_TIER,
    PUBLIC_TIER,
    USER_AGENT,
    TierParams,
)
from crypto_digest.utils import setup_logger

logger = setup_logger(__name__)


@dataclass
class CacheEntry:
    payload: Any
    fetched_at: float


@dataclass
class ClientTierState:
    """Current API tier. Moves from privileged to public at most once."""
    is_privileged: bool
    api_key: Optional[str]
    base_url: str
    min_delay_ms: int
    max_retries: int
    backoff_base_ms: int
    page_delay_ms: int
    max_concurrent: int
    name: str

    @classmethod
    def for_credential(cls, api_key: Optional[str]) -> "ClientTierState":
        tier = PRIVILEGED_TIER if api_key else PUBLIC_TIER
        return cls(is_privileged=bool(api_key), api_key=api_key or None, **_tier_fields(tier))

    def downgrade(self) -> bool:
        """Switch to public-tier parameters. Returns False if already public."""
        if not self.is_privileged:
            return False
        self.is_privileged = False
        self.api_key = None
        for field_name, value in _tier_fields(PUBLIC_TIER).items():
            setattr(self, field_name, value)
        return True


def _tier_fields(tier: TierParams) -> Dict[str, Any]:
    return {
        "name": tier.name,
        "base_url": tier.base_url,
        "min_delay_ms": tier.min_delay_ms,
        "max_retries": tier.max_retries,
        "backoff_base_ms": tier.backoff_base_ms,
        "page_delay_ms": tier.page_delay_ms,
        "max_concurrent": tier.max_concurrent,
    }


def canonical_params(params: Optional[Mapping[str, Any]]) -> Dict[str, str]:
    """
    Stringify query parameters and sort them by name.

    Booleans are rendered the way CoinGecko expects them ("true"/"false");
    None values are dropped.
    """
    if not params:
        return {}
    out: Dict[str, str] = {}
    for name in sorted(params):
        value = params[name]
        if value is None:
            continue
        if isinstance(value, bool):
            out[name] = "true" if value else "false"
        else:
            out[name] = str(value)
    return out


def cache_key(endpoint: str, query: Mapping[str, str]) -> str:
    qs = urlencode(query)
    return f"{endpoint}?{qs}" if qs else endpoint


def compute_backoff_ms(
    attempt: int,
    backoff_base_ms: float,
    retry_after: Optional[float] = None,
    rng: Callable[[], float] = random.random,
) -> float:
    """
    Delay before the next attempt.

    A server-provided Retry-After (seconds) is honoured as-is. Otherwise the
    delay is ``backoff_base_ms * 2**attempt`` plus 0-10 % jitter (clamped to
    100-500 ms), capped at MAX_BACKOFF_MS.
    """
    if retry_after is not None:
        return retry_after * 1000.0

    base = backoff_base_ms * (2 ** attempt)
    jitter = min(max(rng() * JITTER_RATIO * base, MIN_JITTER_MS), MAX_JITTER_MS)
    return min(base + jitter, MAX_BACKOFF_MS)


class RateLimitedClient:
    """
    Single entry point for every CoinGecko request.

    Holds the tier state and the in-memory response cache; both live on the
    instance, so callers pass the client around explicitly.

    Args:
        transport: Object with ``async get(url, params, headers)`` returning parsed JSON
        api_key: Pro API key; None starts the client on the public tier
        clock: Wall-clock source in seconds
        sleep: Coroutine used for every wait (spacing, backoff, page delays)
        rng: Source of jitter in [0, 1)
        freshness_seconds: Age below which a cache entry is served without a request
    """

    def __init__(
        self,
        transport,
        api_key: Optional[str] = COINGECKO_API_KEY,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rng: Callable[[], float] = random.random,
        freshness_seconds: float = CACHE_FRESHNESS_SECONDS,
    ):
        self.transport = transport
        self.state = ClientTierState.for_credential(api_key)
        self.cache: Dict[str, CacheEntry] = {}
        self.freshness_seconds = freshness_seconds
        self._clock = clock
        self._sleep = sleep
        self._rng = rng
        self._last_call: Optional[float] = None
        self._spacing_lock = asyncio.Lock()

        self.network_calls = 0
        self.cache_hits = 0
        self.stale_hits = 0
        self.downgraded = False

        logger.info(
            f"Using {'PRO' if self.state.is_privileged else 'FREE'} CoinGecko API "
            f"(base={self.state.base_url})"
        )

    @property
    def is_privileged(self) -> bool:
        return self.state.is_privileged

    @property
    def api_mode(self) -> str:
        return self.state.name

    @property
    def max_concurrent(self) -> int:
        return self.state.max_concurrent

    async def __aenter__(self) -> "RateLimitedClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def close(self) -> None:
        close = getattr(self.transport, "close", None)
        if close is not None:
            await close()

    async def pause(self, milliseconds: float) -> None:
        """Sleep through the client's sleep function (used for inter-page delays)."""
        if milliseconds > 0:
            await self._sleep(milliseconds / 1000.0)

    async def page_pause(self) -> None:
        await self.pause(self.state.page_delay_ms)

    def downgrade(self, reason: str = "") -> bool:
        """Irreversibly fall back to the public tier. Safe to call repeatedly."""
        if not self.state.downgrade():
            return False
        self.downgraded = True
        logger.warning(
            f"⚠️  Pro API authorization failed ({reason or 'no detail'}); "
            f"downgrading to FREE tier at {self.state.base_url}"
        )
        return True

    def _headers(self) -> Dict[str, str]:
        headers = {"User-Agent": USER_AGENT, "Accept": "application/json"}
        if self.state.api_key:
            headers[API_KEY_HEADER] = self.state.api_key
        return headers

    async def _wait_for_slot(self) -> None:
        """Block until min_delay_ms has passed since the previous network call."""
        async with self._spacing_lock:
            if self._last_call is not None:
                wait = self.state.min_delay_ms / 1000.0 - (self._clock() - self._last_call)
                if wait > 0:
                    await self._sleep(wait)
            self._last_call = self._clock()

    async def call(self, endpoint: str, params: Optional[Mapping[str, Any]] = None) -> Any:
        """
        GET ``endpoint`` with ``params`` and return the decoded JSON payload.

        Fresh cache entries short-circuit the network. Rate limits, 5xx and
        network failures are retried with backoff; an authorization failure on
        the Pro tier downgrades to the public tier and retries. When all else
        fails a cached payload of any age is served before giving up.

        Raises:
            MalformedResponse: the body was not valid JSON (never retried)
            Exhausted: retries ran out and nothing was cached
            CoinGeckoError: any other failure with nothing cached
        """
        if not endpoint or not endpoint.startswith("/"):
            raise ValueError(f"endpoint must start with '/': {endpoint!r}")

        query = canonical_params(params)
        key = cache_key(endpoint, query)

        cached = self.cache.get(key)
        if cached is not None and self._clock() - cached.fetched_at < self.freshness_seconds:
            self.cache_hits += 1
            logger.debug(f"Cache hit for: {key}")
            return cached.payload

        attempt = 0
        last_err: Optional[CoinGeckoError] = None
        exhausted = False

        while True:
            if attempt > self.state.max_retries:
                exhausted = True
                break

            await self._wait_for_slot()
            url = f"{self.state.base_url}{endpoint}"
            # Tier at send time; a concurrent request may downgrade before this one answers
            sent_privileged = self.state.is_privileged
            self.network_calls += 1
            logger.debug(f"API call: {endpoint} (attempt {attempt + 1}/{self.state.max_retries + 1})")

            try:
                payload = await self.transport.get(url, query, self._headers())
            except AuthFailure as e:
                last_err = e
                attempt += 1
                if sent_privileged:
                    self.downgrade(str(e))
                    continue
                logger.error(f"{endpoint}: {e}")
                break
            except RETRYABLE_ERRORS as e:
                last_err = e
                if attempt >= self.state.max_retries:
                    attempt += 1
                    continue
                delay_ms = compute_backoff_ms(
                    attempt,
                    self.state.backoff_base_ms,
                    retry_after=getattr(e, "retry_after", None),
                    rng=self._rng,
                )
                logger.warning(
                    f"{endpoint}: {e} (try {attempt + 1}/{self.state.max_retries + 1}) "
                    f"-> sleep {delay_ms / 1000:.1f}s"
                )
                await self._sleep(delay_ms / 1000.0)
                attempt += 1
                continue
            except MalformedResponse:
                raise
            except CoinGeckoError as e:
                last_err = e
                logger.error(f"{endpoint}: {e}")
                break

            self.cache[key] = CacheEntry(payload=payload, fetched_at=self._clock())
            return payload

        return self._fallback(key, endpoint, last_err, exhausted)

    def _fallback(self, key: str, endpoint: str, error: Optional[CoinGeckoError], exhausted: bool) -> Any:
        cached = self.cache.get(key)
        if cached is not None:
            self.stale_hits += 1
            age = self._clock() - cached.fetched_at
            logger.warning(f"⚠️  {endpoint}: using stale cache data ({age:.0f}s old) after: {error}")
            return cached.payload

        if exhausted:
            raise Exhausted(
                f"{endpoint}: failed after {self.state.max_retries + 1} attempts. last_err={error}",
                status=getattr(error, "status", None),
            ) from error
        raise error
