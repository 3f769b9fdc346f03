"""xAI (Grok) through its OpenAI-compatible API"""

from etf_data_service.ai.providers.openai_provider import OpenAICompatibleProvider


class XAIProvider(OpenAICompatibleProvider):
    provider_name = "xai"
    model_name = "grok-2"
    base_url = "https://api.x.ai/v1"
    # answers are parsed out of free text instead
    json_mode = False
