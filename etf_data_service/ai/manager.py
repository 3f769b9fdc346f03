"""
AI analysis manager.

Registers the providers whose credentials are present and whose health
check passes, then routes each task (scoring, explanation, sentiment) to
its configured provider. In ``single`` mode everything goes to the fallback
provider. Every routing change made because a provider is missing is logged
and appended to ``events`` so callers can see which backend answered.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Callable, Dict, List, Literal, Optional, Sequence, Tuple

from pydantic import BaseModel, Field

from etf_data_service.ai.providers import ClaudeProvider, HeuristicProvider, OpenAIProvider, XAIProvider
from etf_data_service.ai.types import (
    AIError,
    AIService,
    AnalysisResult,
    Capability,
    MarketSnapshot,
    NoProviderAvailableError,
    SentimentResult,
)
from etf_data_service.config import DataServiceSettings

logger = logging.getLogger(__name__)

ROLES = ("scoring", "explanation", "sentiment")


class AIManagerConfig(BaseModel):
    mode: Literal["hybrid", "single"] = "hybrid"
    scoring: str = "openai"
    explanation: str = "claude"
    sentiment: str = "xai"
    fallback: str = "openai"
    api_keys: Dict[str, str] = Field(default_factory=dict)
    models: Dict[str, str] = Field(default_factory=dict)
    xai_base_url: str = "https://api.x.ai/v1"
    enable_heuristic: bool = False
    batch_concurrency: int = 5
    timeout: float = 30.0

    @classmethod
    def from_settings(cls, settings: DataServiceSettings) -> "AIManagerConfig":
        return cls(
            mode="single" if settings.AI_MODE.lower() == "single" else "hybrid",
            scoring=settings.AI_SCORING_PROVIDER,
            explanation=settings.AI_EXPLANATION_PROVIDER,
            sentiment=settings.AI_SENTIMENT_PROVIDER,
            fallback=settings.AI_FALLBACK_PROVIDER,
            api_keys={
                "openai": settings.OPENAI_API_KEY,
                "claude": settings.ANTHROPIC_API_KEY,
                "xai": settings.XAI_API_KEY,
            },
            models={
                "openai": settings.OPENAI_MODEL,
                "claude": settings.ANTHROPIC_MODEL,
                "xai": settings.XAI_MODEL,
            },
            xai_base_url=settings.XAI_BASE_URL,
            enable_heuristic=settings.AI_HEURISTIC_ENABLED,
            batch_concurrency=settings.AI_BATCH_CONCURRENCY,
            timeout=settings.AI_REQUEST_TIMEOUT_SECONDS,
        )


class ProviderEvent(BaseModel):
    kind: str
    role: Optional[str] = None
    requested: Optional[str] = None
    resolved: Optional[str] = None
    reason: str = ""
    at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


ProviderFactory = Callable[[AIManagerConfig, str], AIService]

DEFAULT_FACTORIES: Dict[str, ProviderFactory] = {
    "openai": lambda cfg, key: OpenAIProvider(
        key, model=cfg.models.get("openai"), timeout=cfg.timeout
    ),
    "claude": lambda cfg, key: ClaudeProvider(
        key, model=cfg.models.get("claude"), timeout=cfg.timeout
    ),
    "xai": lambda cfg, key: XAIProvider(
        key, model=cfg.models.get("xai"), base_url=cfg.xai_base_url, timeout=cfg.timeout
    ),
}


class AIServiceManager:

    def __init__(self, config: AIManagerConfig, factories: Optional[Dict[str, ProviderFactory]] = None):
        self.config = config
        self._factories = factories if factories is not None else DEFAULT_FACTORIES
        self._providers: Dict[str, AIService] = {}
        self._roles: Dict[str, str] = {
            "scoring": config.scoring,
            "explanation": config.explanation,
            "sentiment": config.sentiment,
        }
        self._fallback = config.fallback
        self.events: List[ProviderEvent] = []
        self.initialized = False

    # ── setup ─────────────────────────────────────────────

    def _record(self, kind: str, role: Optional[str], requested: Optional[str],
                resolved: Optional[str], reason: str) -> None:
        self.events.append(ProviderEvent(
            kind=kind, role=role, requested=requested, resolved=resolved, reason=reason,
        ))

    def register(self, provider: AIService) -> None:
        self._providers[provider.provider_name] = provider
        logger.info(f"✅ AI provider registered: {provider.provider_name} ({provider.model_name})")

    async def initialize(self) -> None:
        if self.initialized:
            return

        for name, api_key in self.config.api_keys.items():
            if not api_key:
                continue
            factory = self._factories.get(name)
            if factory is None:
                logger.warning(f"Unknown AI provider '{name}', ignoring its credential")
                continue
            try:
                provider = factory(self.config, api_key)
                healthy = await provider.health_check()
            except Exception as exc:
                logger.error(f"Failed to initialize AI provider {name}: {exc}")
                self._record("provider_rejected", None, name, None, str(exc))
                continue
            if healthy:
                self.register(provider)
            else:
                logger.warning(f"⚠️ AI provider {name} failed its health check")
                self._record("provider_rejected", None, name, None, "health check failed")

        if self.config.enable_heuristic:
            self.register(HeuristicProvider())

        if not self._providers:
            raise NoProviderAvailableError("No AI providers passed initialization")

        if self._fallback not in self._providers:
            resolved = next(iter(self._providers))
            logger.warning(f"Fallback provider {self._fallback} unavailable, using {resolved}")
            self._record("fallback_repointed", "fallback", self._fallback, resolved,
                         "fallback provider not registered")
            self._fallback = resolved

        for role, name in self._roles.items():
            if name not in self._providers:
                logger.warning(f"{role} provider {name} unavailable, routing to {self._fallback}")
                self._record("role_repointed", role, name, self._fallback, "provider not registered")
                self._roles[role] = self._fallback

        self.initialized = True
        logger.info(
            f"AI manager ready (mode={self.config.mode}, providers={list(self._providers)}, "
            f"roles={self._roles}, fallback={self._fallback})"
        )

    # ── routing ───────────────────────────────────────────

    @property
    def providers(self) -> Dict[str, AIService]:
        return dict(self._providers)

    @property
    def fallback(self) -> str:
        return self._fallback

    def resolve(self, role: str) -> AIService:
        if role not in ROLES:
            raise ValueError(f"unknown role: {role}")
        if not self.initialized:
            raise AIError("manager", "NOT_INITIALIZED", "AI manager has not been initialized")

        if self.config.mode == "single":
            provider = self._providers.get(self._fallback)
        else:
            name = self._roles[role]
            provider = self._providers.get(name)
            if provider is None:
                logger.warning(f"{role} provider {name} unavailable, using fallback {self._fallback}")
                self._record("runtime_fallback", role, name, self._fallback, "provider not registered")
                provider = self._providers.get(self._fallback)

        if provider is None:
            raise NoProviderAvailableError(f"No provider available for {role}")
        return provider

    # ── tasks ─────────────────────────────────────────────

    async def generate_score(self, symbol: str, data: MarketSnapshot) -> AnalysisResult:
        return await self.resolve("scoring").generate_score(symbol, data)

    async def generate_explanation(self, symbol: str, analysis: AnalysisResult) -> str:
        return await self.resolve("explanation").generate_explanation(symbol, analysis)

    async def generate_sentiment(self, symbol: str, context: Optional[str] = None) -> SentimentResult:
        if self.config.mode == "single":
            return SentimentResult.neutral()
        provider = self.resolve("sentiment")
        if not provider.supports(Capability.SENTIMENT):
            return SentimentResult.neutral()
        return await provider.generate_sentiment(symbol, context)

    async def batch_analyze(self, items: Sequence[Tuple[str, MarketSnapshot]]) -> Dict[str, AnalysisResult]:
        """Score many symbols, ``batch_concurrency`` at a time; failures are dropped"""
        results: Dict[str, AnalysisResult] = {}
        size = max(1, self.config.batch_concurrency)
        for start in range(0, len(items), size):
            group = items[start:start + size]
            outcomes = await asyncio.gather(
                *(self.generate_score(symbol, data) for symbol, data in group),
                return_exceptions=True,
            )
            for (symbol, _), outcome in zip(group, outcomes):
                if isinstance(outcome, Exception):
                    logger.error(f"AI analysis failed for {symbol}: {outcome}")
                elif isinstance(outcome, BaseException):
                    raise outcome
                else:
                    results[symbol] = outcome
        return results

    def stats(self) -> dict:
        return {
            "initialized": self.initialized,
            "mode": self.config.mode,
            "providers": {
                name: {"model": p.model_name, "capabilities": sorted(c.value for c in p.capabilities)}
                for name, p in self._providers.items()
            },
            "roles": dict(self._roles),
            "fallback": self._fallback,
            "events": [e.model_dump(mode="json") for e in self.events],
        }
