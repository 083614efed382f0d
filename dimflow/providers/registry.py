"""Provider registry and adapter.

ProviderRegistry is the name -> provider map. ProviderAdapter is what the
engine talks to: it can be built from a plain config dict, e.g.

    {
        "anthropic": {"api_key": "...", "model": "claude-sonnet-4-6"},
        "gemini": {"gateway": "portkey", "gateway_api_key": "..."},
        "openai": {"model": "gpt-4o"},
    }

in which case each known provider key is instantiated through
PROVIDER_CLASSES.
"""

import logging
from typing import Any, Optional, Union

from dimflow.errors import ConfigurationError, ProviderNotFoundError
from dimflow.providers.anthropic import AnthropicProvider
from dimflow.providers.base import BaseProvider
from dimflow.providers.gemini import GeminiProvider
from dimflow.providers.openai import OpenAIProvider
from dimflow.schemas import ProviderRequest, ProviderResponse

logger = logging.getLogger(__name__)

PROVIDER_CLASSES: dict[str, type[BaseProvider]] = {
    "anthropic": AnthropicProvider,
    "gemini": GeminiProvider,
    "openai": OpenAIProvider,
}


class ProviderRegistry:
    """Name -> provider map."""

    def __init__(self):
        self._providers: dict[str, BaseProvider] = {}

    def register(self, provider: BaseProvider) -> None:
        if provider.name in self._providers:
            logger.warning(f"Replacing registered provider: {provider.name}")
        self._providers[provider.name] = provider

    def get(self, name: str) -> BaseProvider:
        """Look up a provider.

        Raises:
            ProviderNotFoundError: If no provider is registered under name.
        """
        provider = self._providers.get(name)
        if provider is None:
            raise ProviderNotFoundError(name, self.list_providers())
        return provider

    def has(self, name: str) -> bool:
        return name in self._providers

    def list_providers(self) -> list[str]:
        return list(self._providers.keys())


class ProviderAdapter:
    """Engine-facing access to the registered providers."""

    def __init__(self, registry: Optional[ProviderRegistry] = None):
        self.registry = registry or ProviderRegistry()

    @classmethod
    def from_config(cls, config: dict[str, dict[str, Any]]) -> "ProviderAdapter":
        """Instantiate every provider named in config.

        Raises:
            ConfigurationError: Unknown provider key, or a provider failed to
                initialize (e.g. missing API key).
        """
        adapter = cls()
        for name, provider_config in config.items():
            provider_cls = PROVIDER_CLASSES.get(name)
            if provider_cls is None:
                raise ConfigurationError(
                    f"Unknown provider: '{name}'. Expected one of: {', '.join(PROVIDER_CLASSES)}",
                    {"provider": name},
                )
            adapter.register_provider(provider_cls(config=provider_config or {}))
            logger.info(f"Initialized provider: {name}")
        return adapter

    def register_provider(self, provider: BaseProvider) -> None:
        self.registry.register(provider)

    def get_provider(self, name: str) -> BaseProvider:
        return self.registry.get(name)

    def has_provider(self, name: str) -> bool:
        return self.registry.has(name)

    def list_providers(self) -> list[str]:
        return self.registry.list_providers()

    async def execute(self, provider_name: str, request: ProviderRequest) -> ProviderResponse:
        return await self.registry.get(provider_name).execute(request)


def create_provider_adapter(
    providers: Union[ProviderAdapter, ProviderRegistry, dict[str, dict[str, Any]]],
) -> ProviderAdapter:
    """Normalize any supported providers value to a ProviderAdapter."""
    if isinstance(providers, ProviderAdapter):
        return providers
    if isinstance(providers, ProviderRegistry):
        return ProviderAdapter(providers)
    if isinstance(providers, dict):
        return ProviderAdapter.from_config(providers)
    raise ConfigurationError(
        f"Unsupported providers value: {type(providers).__name__}",
        {"type": type(providers).__name__},
    )
