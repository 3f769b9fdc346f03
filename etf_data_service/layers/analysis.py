"""
Layer 4 – technical analysis
Indicators computed on the processing layer's bar frame, and assembly of the
MarketSnapshot handed to AI scoring.
"""

import logging
import math
from typing import Any, Dict, List, Optional, Sequence

import pandas as pd

from etf_data_service.ai.types import MarketSnapshot
from etf_data_service.layers.processing import ProcessingLayer
from etf_data_service.models.records import Bar, QuoteRecord

logger = logging.getLogger(__name__)


class AnalysisLayer:
    """Indicators used by the scorers: SMA, RSI and annualised volatility"""

    def __init__(self, processing: Optional[ProcessingLayer] = None):
        self._processing = processing or ProcessingLayer()

    # ── moving averages ───────────────────────────────────

    def add_sma(self, df: pd.DataFrame, periods: List[int] = None) -> pd.DataFrame:
        if df.empty:
            return df
        df = df.copy()
        for p in (periods or [20, 50]):
            # no value until the window is full
            df[f"SMA{p}"] = df["close"].rolling(window=p, min_periods=p).mean().round(4)
        return df

    # ── RSI ───────────────────────────────────────────────

    def add_rsi(self, df: pd.DataFrame, period: int = 14) -> pd.DataFrame:
        if df.empty:
            return df
        df = df.copy()
        delta = df["close"].diff()
        gain = delta.clip(lower=0).rolling(window=period, min_periods=period).mean()
        loss = (-delta.clip(upper=0)).rolling(window=period, min_periods=period).mean()
        # loss == 0 gives rs = inf and RSI 100; a flat window reads as 50
        rs = gain / loss
        rsi = (100 - 100 / (1 + rs)).mask((gain == 0) & (loss == 0), 50.0)
        df[f"RSI{period}"] = rsi.round(4)
        return df

    # ── volatility ────────────────────────────────────────

    def add_volatility(self, df: pd.DataFrame, period: int = 20) -> pd.DataFrame:
        """Annualised standard deviation of daily returns, in percent"""
        if df.empty:
            return df
        df = df.copy()
        returns = df["close"].pct_change()
        std = returns.rolling(window=period, min_periods=2).std()
        df["VOLATILITY"] = (std * math.sqrt(252) * 100).round(4)
        return df

    def compute_all(self, df: pd.DataFrame) -> pd.DataFrame:
        df = self.add_sma(df)
        df = self.add_rsi(df)
        df = self.add_volatility(df)
        return df

    def to_indicator_summary(self, df: pd.DataFrame) -> Dict[str, Any]:
        """Latest row of the indicator frame, NaN mapped to None"""
        if df.empty:
            return {}
        last = df.iloc[-1]
        return {k: (None if pd.isna(v) else v) for k, v in last.items()}

    # ── snapshot assembly ─────────────────────────────────

    def build_snapshot(
        self,
        symbol: str,
        name: str,
        quote: Optional[QuoteRecord],
        bars: Sequence[Bar],
        recent: int = 24,
    ) -> Optional[MarketSnapshot]:
        """Combine the cached quote and series; None when neither has a price"""
        summary = self.to_indicator_summary(self.compute_all(self._processing.to_frame(bars)))
        last_close = summary.get("close")

        if quote is not None:
            price = quote.midpoint
            change = quote.change or 0.0
            change_percent = quote.change_percent or 0.0
        elif last_close is not None:
            price = float(last_close)
            prev = bars[-2].close if len(bars) > 1 else None
            change = price - prev if prev else 0.0
            change_percent = change / prev * 100 if prev else 0.0
        else:
            return None

        return MarketSnapshot(
            symbol=symbol,
            name=name,
            current_price=price,
            change=change,
            change_percent=change_percent,
            open=summary.get("open") or price,
            high=summary.get("high") or price,
            low=summary.get("low") or price,
            volume=summary.get("volume") or 0.0,
            recent_prices=[b.close for b in bars][-recent:],
            rsi=summary.get("RSI14"),
            sma20=summary.get("SMA20"),
            sma50=summary.get("SMA50"),
            volatility=summary.get("VOLATILITY"),
        )
