"""
Layer 1 – acquisition
Async Polygon.io REST client with bounded timeouts and 429 backoff.

Upstream "absent" (404 or an empty result set) is returned as None / [] and
is not an error; every other non-2xx response raises PolygonAPIError.
"""

import asyncio
import logging
from datetime import date
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx

from etf_data_service.config import DataServiceSettings
from etf_data_service.models.records import LatestQuote, PreviousClose

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


class PolygonAPIError(Exception):
    def __init__(self, message: str, status_code: Optional[int] = None, symbol: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.symbol = symbol


class PolygonRateLimitError(PolygonAPIError):
    """429 still returned after the retry ceiling"""


def _retry_after(response: httpx.Response, default: float) -> float:
    raw = response.headers.get("Retry-After")
    if raw is None:
        return default
    try:
        return max(float(raw), 0.0)
    except ValueError:
        return default


class PolygonClient:
    """Thin async wrapper over the Polygon aggregates / quotes endpoints"""

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.polygon.io",
        timeout: float = 30.0,
        max_retries: int = 3,
        retry_after_default: float = 5.0,
        http_client: Optional[httpx.AsyncClient] = None,
        sleep: Sleep = asyncio.sleep,
    ):
        self._api_key = api_key
        self._max_retries = max_retries
        self._retry_after_default = retry_after_default
        self._sleep = sleep
        self._client = http_client or httpx.AsyncClient(
            base_url=base_url,
            timeout=httpx.Timeout(timeout),
            headers={"Accept": "application/json"},
        )

    @classmethod
    def from_settings(cls, settings: DataServiceSettings, **kwargs) -> "PolygonClient":
        return cls(
            api_key=settings.POLYGON_API_KEY,
            base_url=settings.POLYGON_BASE_URL,
            timeout=settings.POLYGON_TIMEOUT_SECONDS,
            max_retries=settings.POLYGON_MAX_RETRIES,
            retry_after_default=settings.POLYGON_RETRY_AFTER_DEFAULT,
            **kwargs,
        )

    async def aclose(self):
        await self._client.aclose()

    # ── transport ─────────────────────────────────────────

    async def _request(self, path: str, params: Optional[Dict[str, Any]] = None) -> httpx.Response:
        """GET with retry; the last 429 response is returned once retries run out"""
        query = dict(params or {})
        query["apiKey"] = self._api_key
        attempt = 0
        while True:
            try:
                response = await self._client.get(path, params=query)
            except httpx.TransportError as exc:
                if attempt >= self._max_retries:
                    raise
                delay = 2 ** attempt
                logger.warning(f"Polygon request failed ({exc.__class__.__name__}), retry {attempt + 1} in {delay}s: {path}")
                await self._sleep(delay)
                attempt += 1
                continue

            if response.status_code == 429 and attempt < self._max_retries:
                delay = 2 ** attempt + _retry_after(response, self._retry_after_default)
                logger.warning(f"Polygon rate limited, retry {attempt + 1} in {delay:.1f}s: {path}")
                await self._sleep(delay)
                attempt += 1
                continue

            return response

    async def _get_json(self, path: str, symbol: str, params: Optional[Dict[str, Any]] = None) -> Optional[Dict[str, Any]]:
        response = await self._request(path, params)
        if response.status_code == 404:
            return None
        if response.status_code == 429:
            raise PolygonRateLimitError("Polygon rate limit exceeded", status_code=429, symbol=symbol)
        if response.status_code >= 400:
            raise PolygonAPIError(
                f"Polygon API error {response.status_code}: {response.text[:200]}",
                status_code=response.status_code,
                symbol=symbol,
            )
        data = response.json()
        if data.get("status") == "ERROR":
            raise PolygonAPIError(
                f"Polygon API error: {data.get('error') or data.get('message') or 'unknown'}",
                status_code=response.status_code,
                symbol=symbol,
            )
        return data

    # ── endpoints ─────────────────────────────────────────

    async def fetch_aggregates(
        self,
        symbol: str,
        start_date: date,
        end_date: date,
        timespan: str = "day",
        multiplier: int = 1,
    ) -> List[Dict[str, Any]]:
        """Raw aggregate bars ({t, o, h, l, c, v}) in ascending order"""
        path = (
            f"/v2/aggs/ticker/{symbol}/range/{multiplier}/{timespan}"
            f"/{start_date.isoformat()}/{end_date.isoformat()}"
        )
        data = await self._get_json(path, symbol, {"adjusted": "true", "sort": "asc", "limit": 50000})
        if not data:
            return []
        return data.get("results") or []

    async def fetch_latest_quote(self, symbol: str) -> Optional[LatestQuote]:
        data = await self._get_json(f"/v2/last/nbbo/{symbol}", symbol)
        results = (data or {}).get("results")
        if not results:
            return None
        last = results.get("last") or results
        bid = last.get("bid", last.get("p"))
        ask = last.get("ask", last.get("P"))
        if bid is None or ask is None:
            return None
        return LatestQuote(symbol=symbol, bid=bid, ask=ask, timestamp=last.get("t"))

    async def fetch_previous_close(self, symbol: str) -> Optional[PreviousClose]:
        data = await self._get_json(f"/v2/aggs/ticker/{symbol}/prev", symbol, {"adjusted": "true"})
        results = (data or {}).get("results") or []
        if not results:
            return None
        bar = results[0]
        return PreviousClose(
            symbol=symbol,
            open=bar.get("o", 0.0),
            high=bar.get("h", 0.0),
            low=bar.get("l", 0.0),
            close=bar["c"],
            volume=bar.get("v", 0.0),
            timestamp=bar.get("t"),
        )

    async def fetch_ticker_details(self, symbol: str) -> Optional[Dict[str, Any]]:
        data = await self._get_json(f"/v3/reference/tickers/{symbol}", symbol)
        return (data or {}).get("results")

    async def ping(self) -> bool:
        try:
            return await self.fetch_previous_close("SPY") is not None
        except (PolygonAPIError, httpx.HTTPError) as exc:
            logger.warning(f"Polygon ping failed: {exc}")
            return False
