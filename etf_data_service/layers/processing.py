"""
Layer 3 – processing
Turns raw upstream payloads into the cached record shapes: Polygon
aggregates into ascending Bar lists, quotes into QuoteRecords, and scored
picks into a ranked board.
"""

import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

import pandas as pd

from etf_data_service.models.records import (
    Bar,
    LatestQuote,
    PreviousClose,
    QuoteRecord,
    TopPick,
)

logger = logging.getLogger(__name__)

_POLYGON_COLUMNS = {"t": "timestamp", "o": "open", "h": "high", "l": "low", "c": "close", "v": "volume"}
_BAR_COLUMNS = ["timestamp", "open", "high", "low", "close", "volume"]


class ProcessingLayer:

    def normalize_bars(self, records: List[Dict[str, Any]]) -> List[Bar]:
        """
        Polygon aggregate rows -> Bar list

        Rows without a timestamp or close are dropped, duplicate timestamps
        keep the last row, output is sorted ascending. Gaps are left as-is.
        """
        if not records:
            return []

        df = pd.DataFrame(records).rename(columns=_POLYGON_COLUMNS)
        for col in _BAR_COLUMNS:
            if col not in df.columns:
                df[col] = None
            df[col] = pd.to_numeric(df[col], errors="coerce")

        df = df.dropna(subset=["timestamp", "close"])
        if df.empty:
            return []
        for col in ("open", "high", "low"):
            df[col] = df[col].fillna(df["close"])
        df["volume"] = df["volume"].fillna(0.0)
        df["timestamp"] = df["timestamp"].astype("int64")

        df = df.drop_duplicates(subset=["timestamp"], keep="last")
        df = df.sort_values("timestamp").reset_index(drop=True)
        return [Bar(**row) for row in df[_BAR_COLUMNS].to_dict(orient="records")]

    def to_frame(self, bars: Sequence[Bar]) -> pd.DataFrame:
        """Bars -> DataFrame with a UTC ``date`` column, ready for the analysis layer"""
        if not bars:
            return pd.DataFrame(columns=["date"] + _BAR_COLUMNS)
        df = pd.DataFrame([b.model_dump() for b in bars])
        df["date"] = pd.to_datetime(df["timestamp"], unit="ms", utc=True)
        return df

    def build_quote_record(
        self,
        quote: LatestQuote,
        previous_close: Optional[PreviousClose] = None,
    ) -> QuoteRecord:
        return QuoteRecord.derive(quote, previous_close.close if previous_close else None)

    def weekly_history(self, bars: Sequence[Bar], days: int = 7) -> Tuple[List[float], float]:
        """Closing prices of the last ``days`` bars and their percent change"""
        closes = [b.close for b in bars][-days:]
        if len(closes) < 2 or not closes[0]:
            return closes, 0.0
        return closes, round((closes[-1] - closes[0]) / closes[0] * 100, 2)

    def rank_picks(self, picks: Sequence[TopPick]) -> List[TopPick]:
        """Sort by score descending (ties keep input order) and number 1..N"""
        ordered = sorted(picks, key=lambda p: p.ai_score, reverse=True)
        return [p.model_copy(update={"rank": i}) for i, p in enumerate(ordered, start=1)]
