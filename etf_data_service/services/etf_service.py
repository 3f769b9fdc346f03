"""
Read path for the dashboard: serves cached data annotated fresh / stale /
missing. Expired entries are still served (as stale) rather than hidden,
since the next scheduled run will replace them.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from etf_data_service import symbols as universe
from etf_data_service.ai.types import MarketSnapshot
from etf_data_service.layers.analysis import AnalysisLayer
from etf_data_service.layers.cache import CacheLayer
from etf_data_service.models.records import CacheEntry, CacheState
from etf_data_service.services.fetch_service import FetchOrchestrator

logger = logging.getLogger(__name__)

FRESH = "fresh"
STALE = "stale"
MISSING = "missing"


@dataclass
class CacheLookup:
    status: str
    entry: Optional[CacheEntry] = None

    @property
    def found(self) -> bool:
        return self.entry is not None

    def to_dict(self) -> Dict[str, Any]:
        if self.entry is None:
            return {"status": self.status, "data": None}
        return {
            "status": self.status,
            "fetched_at": self.entry.fetched_at.isoformat(),
            "expires_at": self.entry.expires_at.isoformat(),
            "data": self.entry.payload.model_dump(mode="json"),
        }


class ETFService:

    def __init__(
        self,
        cache: CacheLayer,
        orchestrator: Optional[FetchOrchestrator] = None,
        analysis: Optional[AnalysisLayer] = None,
    ):
        self._cache = cache
        self._orchestrator = orchestrator
        self._analysis = analysis or AnalysisLayer()

    def _lookup(self, entry: Optional[CacheEntry]) -> CacheLookup:
        if entry is None:
            return CacheLookup(MISSING)
        state = self._cache.state_of(entry)
        return CacheLookup(FRESH if state == CacheState.FRESH else STALE, entry)

    async def get_quote(self, symbol: str, refresh: bool = False) -> CacheLookup:
        symbol = symbol.upper()
        lookup = self._lookup(await self._cache.quotes.get(symbol))
        if refresh and lookup.status != FRESH and self._orchestrator is not None:
            try:
                refreshed = await self._orchestrator.refresh_quote(symbol)
            except Exception as exc:
                logger.warning(f"Quote refresh failed for {symbol}, serving cache: {exc}")
            else:
                if refreshed is not None:
                    lookup = self._lookup(refreshed)
        return lookup

    async def get_history(self, symbol: str, granularity: str = "day") -> CacheLookup:
        return self._lookup(await self._cache.historical.get(symbol.upper(), granularity))

    async def get_top_picks(self) -> CacheLookup:
        return self._lookup(await self._cache.top_picks.get())

    async def list_etfs(self, symbols: Optional[List[str]] = None) -> List[Dict[str, Any]]:
        rows = []
        for symbol in symbols or universe.TOP_50:
            lookup = self._lookup(await self._cache.quotes.get(symbol))
            quote = lookup.entry.payload if lookup.entry else None
            rows.append({
                "symbol": symbol,
                "name": universe.etf_name(symbol),
                "status": lookup.status,
                "price": quote.midpoint if quote else None,
                "change_percent": quote.change_percent if quote else None,
            })
        return rows

    async def market_snapshot(self, symbol: str) -> Optional[MarketSnapshot]:
        """Snapshot for on-demand scoring, built from whatever is cached"""
        symbol = symbol.upper()
        quote = await self._cache.quotes.get(symbol)
        series = await self._cache.historical.get(symbol)
        return self._analysis.build_snapshot(
            symbol,
            universe.etf_name(symbol),
            quote.payload if quote else None,
            series.payload.bars if series else [],
        )
