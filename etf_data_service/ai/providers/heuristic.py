"""
Rule-based scorer that needs no network access.

Used by the fetch orchestrator when no AI provider is configured and as a
deterministic provider in tests. It has no view of news or market mood, so
it does not claim the sentiment capability.
"""

from typing import List, Optional

from etf_data_service.ai.types import (
    AIError,
    AIService,
    AnalysisResult,
    Capability,
    Level,
    MarketSnapshot,
    SentimentResult,
    Signal,
)


def _bounded(value: float, limit: float) -> float:
    return max(-limit, min(limit, value))


class HeuristicProvider(AIService):
    provider_name = "heuristic"
    model_name = "rules-v1"
    capabilities = frozenset({Capability.SCORE, Capability.EXPLANATION})

    async def generate_score(self, symbol: str, data: MarketSnapshot) -> AnalysisResult:
        return self.score(symbol, data)

    def score(self, symbol: str, data: MarketSnapshot) -> AnalysisResult:
        score = 50.0
        factors: List[str] = []
        price = data.current_price

        if data.change_percent:
            score += _bounded(data.change_percent * 5, 15)
            direction = "Positive" if data.change_percent > 0 else "Negative"
            factors.append(f"{direction} daily momentum ({data.change_percent:+.2f}%)")

        if data.sma20 and data.sma50:
            if price > data.sma20 > data.sma50:
                score += 10
                factors.append("Price above rising moving averages")
            elif price < data.sma20 < data.sma50:
                score -= 10
                factors.append("Price below falling moving averages")
        elif data.sma20:
            score += 5 if price > data.sma20 else -5

        if data.rsi is not None:
            if data.rsi < 30:
                score += 8
                factors.append(f"RSI oversold ({data.rsi:.1f})")
            elif data.rsi > 70:
                score -= 8
                factors.append(f"RSI overbought ({data.rsi:.1f})")

        prices = data.recent_prices
        if len(prices) >= 2 and prices[0]:
            trend = (prices[-1] - prices[0]) / prices[0] * 100
            score += _bounded(trend * 2, 10)
            factors.append(f"Recent trend {trend:+.2f}%")

        if data.volatility is None:
            risk = Level.MEDIUM
        elif data.volatility < 15:
            risk = Level.LOW
        elif data.volatility < 30:
            risk = Level.MEDIUM
        else:
            risk = Level.HIGH
            score -= 5
            factors.append(f"Elevated volatility ({data.volatility:.1f}%)")

        if score >= 65:
            signal = Signal.BUY
        elif score <= 40:
            signal = Signal.SELL
        else:
            signal = Signal.HOLD

        available = sum(x is not None for x in (data.rsi, data.sma20, data.sma50, data.volatility))
        available += len(prices) >= 5
        confidence = Level.HIGH if available >= 4 else Level.MEDIUM if available >= 2 else Level.LOW

        return AnalysisResult(
            symbol=symbol,
            score=score,
            confidence=confidence,
            signal=signal,
            risk_level=risk,
            factors=factors,
            provider=self.provider_name,
        )

    async def generate_explanation(self, symbol: str, analysis: AnalysisResult) -> str:
        drivers = "; ".join(analysis.factors[:3]) or "limited market data"
        return (
            f"{symbol} scores {analysis.score}/100, which maps to a {analysis.signal.value} "
            f"signal with {analysis.risk_level.value} risk. Main drivers: {drivers}."
        )

    async def generate_sentiment(self, symbol: str, context: Optional[str] = None) -> SentimentResult:
        raise AIError(self.provider_name, "NOT_SUPPORTED", "Sentiment is not supported by the rule-based scorer")

    async def health_check(self) -> bool:
        return True
