from etf_data_service.ai.providers.claude import ClaudeProvider
from etf_data_service.ai.providers.heuristic import HeuristicProvider
from etf_data_service.ai.providers.openai_provider import OpenAICompatibleProvider, OpenAIProvider
from etf_data_service.ai.providers.xai import XAIProvider

__all__ = [
    "ClaudeProvider",
    "HeuristicProvider",
    "OpenAICompatibleProvider",
    "OpenAIProvider",
    "XAIProvider",
]
