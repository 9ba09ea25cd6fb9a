"""HTTP transport: one GET, JSON parsing and status classification."""
import asyncio
import json
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Dict, Optional, Union

import aiohttp
import requests

from crypto_digest.api.errors import (
    AuthFailure,
    ClientRequestError,
    MalformedResponse,
    RateLimited,
    ServerError,
    TransientNetworkError,
)
from crypto_digest.config import REQUEST_TIMEOUT_SECONDS, USE_ASYNC


def parse_retry_after(value: Optional[str], now: Optional[datetime] = None) -> Optional[float]:
    """
    Parse a Retry-After header into seconds.

    Accepts both forms allowed by RFC 9110: delay-seconds ("2") and an
    HTTP-date. Returns None when the header is absent or unparseable.
    """
    if value is None:
        return None
    value = value.strip()
    if not value:
        return None
    try:
        seconds = float(value)
    except ValueError:
        try:
            when = parsedate_to_datetime(value)
        except (TypeError, ValueError):
            return None
        if when.tzinfo is None:
            when = when.replace(tzinfo=timezone.utc)
        now = now or datetime.now(timezone.utc)
        return max(0.0, (when - now).total_seconds())
    return seconds if seconds >= 0 else None


def classify_response(status: int, body: Union[str, bytes], retry_after: Optional[str], url: str) -> Any:
    """
    Turn a raw status/body pair into a JSON payload or a typed error.

    Args:
        status: HTTP status code
        body: Response body, as text or as raw bytes
        retry_after: Raw Retry-After header value, if any
        url: Request URL (for error messages)

    Returns:
        Parsed JSON payload for HTTP 200
    """
    if status == 200:
        try:
            return json.loads(body)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise MalformedResponse(f"JSON parse error for {url}: {e}", status=status) from e

    if isinstance(body, bytes):
        body = body.decode("utf-8", errors="replace")

    if status in (401, 403):
        raise AuthFailure(f"HTTP {status}: unauthorized - check API key ({url})", status=status)

    if status == 429:
        raise RateLimited(
            f"HTTP 429: rate limited ({url})",
            retry_after=parse_retry_after(retry_after),
        )

    if 500 <= status < 600:
        raise ServerError(f"HTTP {status}: server error ({url})", status=status)

    raise ClientRequestError(f"HTTP {status}: {body[:200]}", status=status)


class AiohttpTransport:
    """Async transport backed by a lazily created aiohttp session."""

    def __init__(self, timeout: float = REQUEST_TIMEOUT_SECONDS, session: Optional[aiohttp.ClientSession] = None):
        self.timeout = timeout
        self._session = session
        self._owns_session = session is None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    async def get(self, url: str, params: Dict[str, str], headers: Dict[str, str]) -> Any:
        session = await self._get_session()
        try:
            async with session.get(
                url,
                params=params,
                headers=headers,
                timeout=aiohttp.ClientTimeout(total=self.timeout),
            ) as r:
                status = r.status
                retry_after = r.headers.get("Retry-After")
                body = await r.read()
        except asyncio.TimeoutError as e:
            raise TransientNetworkError(f"Timeout after {self.timeout}s ({url})") from e
        except (aiohttp.ClientConnectionError, aiohttp.ClientPayloadError) as e:
            raise TransientNetworkError(f"Network error ({url}): {e}") from e

        return classify_response(status, body, retry_after, url)

    async def close(self) -> None:
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()


class RequestsTransport:
    """Blocking requests transport, run in a worker thread so callers can still await it."""

    def __init__(self, timeout: float = REQUEST_TIMEOUT_SECONDS, session: Optional[requests.Session] = None):
        self.timeout = timeout
        self._session = session or requests.Session()

    def _get_sync(self, url: str, params: Dict[str, str], headers: Dict[str, str]) -> Any:
        try:
            r = self._session.get(url, params=params, headers=headers, timeout=self.timeout)
        except requests.exceptions.Timeout as e:
            raise TransientNetworkError(f"Timeout after {self.timeout}s ({url})") from e
        except (requests.exceptions.ConnectionError, requests.exceptions.ChunkedEncodingError) as e:
            raise TransientNetworkError(f"Network error ({url}): {e}") from e

        return classify_response(r.status_code, r.text, r.headers.get("Retry-After"), url)

    async def get(self, url: str, params: Dict[str, str], headers: Dict[str, str]) -> Any:
        return await asyncio.to_thread(self._get_sync, url, params, headers)

    async def close(self) -> None:
        self._session.close()


def create_transport(use_async: bool = USE_ASYNC):
    """Pick the aiohttp transport, or the requests one when async fetching is disabled."""
    if use_async:
        return AiohttpTransport()
    return RequestsTransport()
