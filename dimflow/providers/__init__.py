"""Providers: the backends a dimension delegates its work to."""

from dimflow.providers.anthropic import AnthropicProvider
from dimflow.providers.base import BaseProvider
from dimflow.providers.gemini import GeminiProvider
from dimflow.providers.openai import OpenAIProvider
from dimflow.providers.registry import (
    PROVIDER_CLASSES,
    ProviderAdapter,
    ProviderRegistry,
    create_provider_adapter,
)

__all__ = [
    "AnthropicProvider",
    "BaseProvider",
    "GeminiProvider",
    "OpenAIProvider",
    "PROVIDER_CLASSES",
    "ProviderAdapter",
    "ProviderRegistry",
    "create_provider_adapter",
]
