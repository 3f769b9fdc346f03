"""Anthropic Claude provider (Messages API)"""

import logging
from typing import Optional

import anthropic
from anthropic import AsyncAnthropic

from etf_data_service.ai import prompts
from etf_data_service.ai.types import (
    AIError,
    AIRateLimitError,
    AIService,
    AITimeoutError,
    AnalysisResult,
    MarketSnapshot,
    SentimentResult,
    extract_json,
)

logger = logging.getLogger(__name__)


class ClaudeProvider(AIService):
    provider_name = "claude"
    model_name = "claude-3-5-sonnet-latest"

    def __init__(
        self,
        api_key: str,
        model: Optional[str] = None,
        timeout: float = 30.0,
        max_retries: int = 2,
        client: Optional[AsyncAnthropic] = None,
    ):
        if model:
            self.model_name = model
        self._client = client or AsyncAnthropic(
            api_key=api_key,
            timeout=timeout,
            max_retries=max_retries,
        )

    async def _complete(
        self,
        system_prompt: Optional[str],
        user_prompt: str,
        temperature: float = 0.3,
        max_tokens: int = 1024,
    ) -> str:
        kwargs = {
            "model": self.model_name,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "messages": [{"role": "user", "content": user_prompt}],
        }
        if system_prompt:
            kwargs["system"] = system_prompt
        try:
            response = await self._client.messages.create(**kwargs)
        except anthropic.RateLimitError as exc:
            raise AIRateLimitError(self.provider_name, str(exc)) from exc
        except anthropic.APITimeoutError as exc:
            raise AITimeoutError(self.provider_name, str(exc)) from exc
        except anthropic.APIError as exc:
            raise AIError(self.provider_name, "API_ERROR", str(exc)) from exc
        return "".join(
            block.text for block in response.content if getattr(block, "type", None) == "text"
        )

    async def generate_score(self, symbol: str, data: MarketSnapshot) -> AnalysisResult:
        content = await self._complete(
            prompts.SCORE_SYSTEM_PROMPT,
            prompts.score_prompt(symbol, data),
            temperature=0.3,
            max_tokens=1024,
        )
        return AnalysisResult.from_raw(symbol, extract_json(content, self.provider_name), self.provider_name)

    async def generate_explanation(self, symbol: str, analysis: AnalysisResult) -> str:
        content = await self._complete(
            prompts.EXPLANATION_SYSTEM_PROMPT,
            prompts.explanation_prompt(symbol, analysis),
            temperature=0.7,
            max_tokens=300,
        )
        return content.strip() or "Unable to generate explanation."

    async def generate_sentiment(self, symbol: str, context: Optional[str] = None) -> SentimentResult:
        content = await self._complete(
            prompts.SENTIMENT_SYSTEM_PROMPT,
            prompts.sentiment_prompt(symbol, context),
            temperature=0.4,
            max_tokens=500,
        )
        raw = extract_json(content, self.provider_name)
        return SentimentResult(
            sentiment=raw.get("sentiment"),
            confidence=raw.get("confidence"),
            reasons=raw.get("reasons"),
            timeframe=raw.get("timeframe"),
            provider=self.provider_name,
        )

    async def health_check(self) -> bool:
        try:
            return bool(await self._complete(None, "ping", temperature=0.0, max_tokens=10))
        except AIError as exc:
            logger.warning(f"claude health check failed: {exc}")
            return False
