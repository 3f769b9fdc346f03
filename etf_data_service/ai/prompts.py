"""Prompt templates shared by every chat-completion provider"""

from typing import Optional

from etf_data_service.ai.types import AnalysisResult, MarketSnapshot

SCORE_SYSTEM_PROMPT = """You are an expert ETF analyst. For the fund you are given, provide:
1. A score from 0-100 (higher is better)
2. A signal: buy, hold, or sell
3. A risk level: low, medium, or high
4. The key factors behind your decision

Weigh price momentum and trend, volatility, volume, technical indicators
(RSI, SMA20, SMA50) and the broader market.

Return ONLY a JSON object with this exact structure:
{
  "score": number (0-100),
  "signal": "buy" | "hold" | "sell",
  "confidence": "low" | "medium" | "high",
  "riskLevel": "low" | "medium" | "high",
  "factors": ["factor 1", "factor 2", ...]
}"""

EXPLANATION_SYSTEM_PROMPT = """You are a friendly financial advisor explaining an ETF recommendation to
retail investors. Use clear, non-technical language and keep it to 2-3
sentences with an actionable takeaway. Skip jargon and skip disclaimers."""

SENTIMENT_SYSTEM_PROMPT = """You are a market sentiment analyst. Assess the current market sentiment for the given ETF.

Return ONLY a JSON object with this exact structure:
{
  "sentiment": "bullish" | "bearish" | "neutral",
  "confidence": number (0-1),
  "reasons": ["reason 1", "reason 2", ...],
  "timeframe": "short" | "medium" | "long"
}"""

_SIGNAL_PHRASES = {
    "buy": "recommends buying",
    "hold": "suggests holding",
    "sell": "recommends selling",
}


def _money(value: Optional[float]) -> str:
    return f"${value:.2f}" if value is not None else "N/A"


def _signed(value: float) -> str:
    return f"+{value:.2f}" if value >= 0 else f"{value:.2f}"


def score_prompt(symbol: str, data: MarketSnapshot) -> str:
    if data.change_percent > 0:
        trend = "positive"
    elif data.change_percent < 0:
        trend = "negative"
    else:
        trend = "neutral"
    momentum = "strong" if abs(data.change_percent) > 1 else "modest"

    rsi_note = ""
    if data.rsi is not None:
        rsi_note = " (oversold)" if data.rsi < 30 else " (overbought)" if data.rsi > 70 else " (neutral)"
    rsi = f"{data.rsi:.1f}{rsi_note}" if data.rsi is not None else "N/A"
    volatility = f"{data.volatility:.2f}" if data.volatility is not None else "N/A"

    return (
        f"Analyze {symbol} ({data.name or symbol}):\n\n"
        f"Current Data:\n"
        f"- Price: {_money(data.current_price)}\n"
        f"- Change: {_signed(data.change)} ({_signed(data.change_percent)}%)\n"
        f"- Day Range: {_money(data.low)} - {_money(data.high)}\n"
        f"- Volume: {data.volume:,.0f}\n\n"
        f"Technical Indicators:\n"
        f"- RSI: {rsi}\n"
        f"- SMA20: {_money(data.sma20)}\n"
        f"- SMA50: {_money(data.sma50)}\n"
        f"- Volatility: {volatility}\n\n"
        f"Market Context:\n"
        f"- Trend: {trend}\n"
        f"- Momentum: {momentum}\n\n"
        f"Provide your analysis as JSON."
    )


def explanation_prompt(symbol: str, analysis: AnalysisResult) -> str:
    factors = ", ".join(analysis.factors) or "None provided"
    return (
        f"Our AI {_SIGNAL_PHRASES[analysis.signal.value]} {symbol} with a score of "
        f"{analysis.score}/100 and {analysis.confidence.value} confidence.\n\n"
        f"Key factors: {factors}\n\n"
        f"Explain in 2-3 sentences why this recommendation fits current market "
        f"conditions. Be specific about what drives the signal."
    )


def sentiment_prompt(symbol: str, context: Optional[str] = None) -> str:
    prompt = f"Analyze the market sentiment for {symbol}."
    if context:
        prompt += f"\n\nMarket Context: {context}"
    return prompt + (
        "\n\nConsider broader market conditions, sector performance and anything "
        "likely to move this ETF in the near term.\n\nProvide your analysis as JSON."
    )
