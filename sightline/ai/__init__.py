"""
Model surface: adapters, cache middleware and the tool-use loop.
"""

from sightline.ai.client import AIClient, AIResponse
from sightline.ai.middleware import CacheMiddleware
from sightline.ai.provider import (
    AnthropicLanguageModel,
    LanguageModel,
    OpenAILanguageModel,
    create_language_model,
)
from sightline.ai.validation import extract_json_payload

__all__ = [
    "AIClient",
    "AIResponse",
    "AnthropicLanguageModel",
    "CacheMiddleware",
    "LanguageModel",
    "OpenAILanguageModel",
    "create_language_model",
    "extract_json_payload",
]
