"""
Shared AI analysis types: inputs, validated outputs, errors and the
provider interface every backend implements.

Provider output is never trusted: the ``before`` validators on
AnalysisResult / SentimentResult clamp numbers and default unknown enum
values, so a result object is always in range no matter where it came from.
"""

import json
import math
import re
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional, Type

from pydantic import BaseModel, Field, field_validator


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ── Enumerations ──────────────────────────────────────────

class Level(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class Signal(str, Enum):
    BUY = "buy"
    HOLD = "hold"
    SELL = "sell"


class Sentiment(str, Enum):
    BULLISH = "bullish"
    BEARISH = "bearish"
    NEUTRAL = "neutral"


class Timeframe(str, Enum):
    SHORT = "short"
    MEDIUM = "medium"
    LONG = "long"


class Capability(str, Enum):
    SCORE = "score"
    EXPLANATION = "explanation"
    SENTIMENT = "sentiment"


ALL_CAPABILITIES: FrozenSet[Capability] = frozenset(Capability)


# ── Validators ────────────────────────────────────────────

def clamp_score(value: Any, default: int = 50) -> int:
    """Coerce to a number, clamp to [0, 100] and round half up"""
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if math.isnan(number):
        return default
    return int(math.floor(max(0.0, min(100.0, number)) + 0.5))


def clamp_unit(value: Any, default: float = 0.5) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if math.isnan(number):
        return default
    return max(0.0, min(1.0, number))


def coerce_choice(value: Any, enum_cls: Type[Enum], default: Enum) -> Enum:
    if isinstance(value, enum_cls):
        return value
    if isinstance(value, str):
        try:
            return enum_cls(value.strip().lower())
        except ValueError:
            pass
    return default


def _string_list(value: Any) -> List[str]:
    if not isinstance(value, (list, tuple)):
        return []
    return [str(v) for v in value if v is not None and str(v).strip()]


_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")


def extract_json(text: Optional[str], provider: str) -> Dict[str, Any]:
    """Pull the outermost JSON object out of a completion"""
    if not text:
        raise AIError(provider, "NO_CONTENT", "Empty response from API")
    match = _JSON_OBJECT.search(text)
    if not match:
        raise AIError(provider, "NO_JSON", "No JSON object in response")
    try:
        parsed = json.loads(match.group(0))
    except json.JSONDecodeError as exc:
        raise AIError(provider, "INVALID_JSON", f"Malformed JSON in response: {exc}") from exc
    if not isinstance(parsed, dict):
        raise AIError(provider, "INVALID_JSON", "Response JSON is not an object")
    return parsed


# ── Models ────────────────────────────────────────────────

class MarketSnapshot(BaseModel):
    symbol: str
    name: str = ""
    current_price: float
    change: float = 0.0
    change_percent: float = 0.0
    open: float = 0.0
    high: float = 0.0
    low: float = 0.0
    volume: float = 0.0
    recent_prices: List[float] = Field(default_factory=list)
    rsi: Optional[float] = None
    sma20: Optional[float] = None
    sma50: Optional[float] = None
    volatility: Optional[float] = None


class AnalysisResult(BaseModel):
    symbol: str
    score: int = 50
    confidence: Level = Level.MEDIUM
    signal: Signal = Signal.HOLD
    risk_level: Level = Level.MEDIUM
    factors: List[str] = Field(default_factory=list)
    analyzed_at: datetime = Field(default_factory=_utcnow)
    provider: Optional[str] = None

    @field_validator("score", mode="before")
    @classmethod
    def _score(cls, v):
        return clamp_score(v)

    @field_validator("confidence", "risk_level", mode="before")
    @classmethod
    def _level(cls, v):
        return coerce_choice(v, Level, Level.MEDIUM)

    @field_validator("signal", mode="before")
    @classmethod
    def _signal(cls, v):
        return coerce_choice(v, Signal, Signal.HOLD)

    @field_validator("factors", mode="before")
    @classmethod
    def _factors(cls, v):
        return _string_list(v)

    @classmethod
    def from_raw(cls, symbol: str, raw: Dict[str, Any], provider: Optional[str] = None) -> "AnalysisResult":
        """Build from a provider's JSON (accepts camelCase ``riskLevel``)"""
        return cls(
            symbol=symbol,
            score=raw.get("score"),
            confidence=raw.get("confidence"),
            signal=raw.get("signal"),
            risk_level=raw.get("risk_level", raw.get("riskLevel")),
            factors=raw.get("factors"),
            provider=provider,
        )


class SentimentResult(BaseModel):
    sentiment: Sentiment = Sentiment.NEUTRAL
    confidence: float = 0.5
    reasons: List[str] = Field(default_factory=list)
    timeframe: Timeframe = Timeframe.MEDIUM
    provider: Optional[str] = None

    @field_validator("sentiment", mode="before")
    @classmethod
    def _sentiment(cls, v):
        return coerce_choice(v, Sentiment, Sentiment.NEUTRAL)

    @field_validator("confidence", mode="before")
    @classmethod
    def _confidence(cls, v):
        return clamp_unit(v)

    @field_validator("timeframe", mode="before")
    @classmethod
    def _timeframe(cls, v):
        return coerce_choice(v, Timeframe, Timeframe.MEDIUM)

    @field_validator("reasons", mode="before")
    @classmethod
    def _reasons(cls, v):
        return _string_list(v)

    @classmethod
    def neutral(cls) -> "SentimentResult":
        return cls(reasons=["Sentiment analysis not available"])


# ── Errors ────────────────────────────────────────────────

class AIError(Exception):
    def __init__(self, provider: str, code: str, message: str):
        super().__init__(f"[{provider}] {code}: {message}")
        self.provider = provider
        self.code = code
        self.message = message


class AIRateLimitError(AIError):
    def __init__(self, provider: str, message: str = "Rate limit exceeded"):
        super().__init__(provider, "RATE_LIMIT", message)


class AITimeoutError(AIError):
    def __init__(self, provider: str, message: str = "Request timed out"):
        super().__init__(provider, "TIMEOUT", message)


class NoProviderAvailableError(AIError):
    def __init__(self, message: str = "No AI providers available"):
        super().__init__("manager", "NO_PROVIDER", message)


# ── Provider interface ────────────────────────────────────

class AIService(ABC):
    provider_name: str = ""
    model_name: str = ""
    capabilities: FrozenSet[Capability] = ALL_CAPABILITIES

    def supports(self, capability: Capability) -> bool:
        return capability in self.capabilities

    @abstractmethod
    async def generate_score(self, symbol: str, data: MarketSnapshot) -> AnalysisResult:
        ...

    @abstractmethod
    async def generate_explanation(self, symbol: str, analysis: AnalysisResult) -> str:
        ...

    @abstractmethod
    async def generate_sentiment(self, symbol: str, context: Optional[str] = None) -> SentimentResult:
        ...

    @abstractmethod
    async def health_check(self) -> bool:
        ...
