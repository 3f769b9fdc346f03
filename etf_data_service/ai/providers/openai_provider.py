"""
OpenAI chat-completions provider.

Also the base for any OpenAI-compatible endpoint (see xai.py): subclasses
only swap the base_url, the default model and whether JSON mode is sent.
"""

import logging
from typing import Any, Dict, Optional

import openai
from openai import AsyncOpenAI

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


class OpenAICompatibleProvider(AIService):
    provider_name = "openai"
    model_name = "gpt-4o-mini"
    base_url: Optional[str] = None
    json_mode = True

    def __init__(
        self,
        api_key: str,
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: float = 30.0,
        max_retries: int = 2,
        client: Optional[AsyncOpenAI] = None,
    ):
        if model:
            self.model_name = model
        self._client = client or AsyncOpenAI(
            api_key=api_key,
            base_url=base_url or self.base_url,
            timeout=timeout,
            max_retries=max_retries,
        )

    # ── core completion ───────────────────────────────────

    async def _complete(
        self,
        system_prompt: Optional[str],
        user_prompt: str,
        temperature: float = 0.3,
        max_tokens: int = 500,
        json_output: bool = False,
    ) -> str:
        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": user_prompt})

        kwargs: Dict[str, Any] = {
            "model": self.model_name,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        if json_output and self.json_mode:
            kwargs["response_format"] = {"type": "json_object"}

        try:
            response = await self._client.chat.completions.create(**kwargs)
        except openai.RateLimitError as exc:
            raise AIRateLimitError(self.provider_name, str(exc)) from exc
        except openai.APITimeoutError as exc:
            raise AITimeoutError(self.provider_name, str(exc)) from exc
        except openai.APIError as exc:
            raise AIError(self.provider_name, "API_ERROR", str(exc)) from exc

        if not response.choices:
            return ""
        return response.choices[0].message.content or ""

    # ── capabilities ──────────────────────────────────────

    async def generate_score(self, symbol: str, data: MarketSnapshot) -> AnalysisResult:
        content = await self._complete(
            prompts.SCORE_SYSTEM_PROMPT,
            prompts.score_prompt(symbol, data),
            temperature=0.3,
            max_tokens=500,
            json_output=True,
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
            max_tokens=300,
            json_output=True,
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
            return bool(await self._complete(None, "ping", temperature=0.0, max_tokens=5))
        except AIError as exc:
            logger.warning(f"{self.provider_name} health check failed: {exc}")
            return False


class OpenAIProvider(OpenAICompatibleProvider):
    provider_name = "openai"
    model_name = "gpt-4o-mini"
