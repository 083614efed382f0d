"""Provider contract.

A provider is the external computation backend a dimension delegates to.
The engine only relies on:

- ``name``: registry key, referenced from ProviderSelection
- ``async execute(request) -> ProviderResponse``: one call. Failures may be
  raised or returned as ``ProviderResponse(error=...)``; both count as a
  failed attempt.
- ``is_using_gateway()``: True when an intermediary (e.g. Portkey) owns
  retries and fallbacks, in which case the engine issues exactly one call.
"""

import logging
import os
from abc import ABC, abstractmethod
from typing import Any, Optional

from dimflow.schemas import ProviderRequest, ProviderResponse

logger = logging.getLogger(__name__)

GATEWAY_PORTKEY = "portkey"


class BaseProvider(ABC):
    """Base class for provider implementations."""

    def __init__(self, name: str, config: Optional[dict[str, Any]] = None):
        self.name = name
        self.config: dict[str, Any] = dict(config or {})

    @abstractmethod
    async def execute(self, request: ProviderRequest) -> ProviderResponse:
        ...

    def is_using_gateway(self) -> bool:
        return self.config.get("gateway") == GATEWAY_PORTKEY

    def get_gateway_api_key(self) -> Optional[str]:
        return self.config.get("gateway_api_key") or os.environ.get("PORTKEY_API_KEY")

    def get_gateway_config(self) -> Optional[str]:
        """Portkey routing config (retries/fallbacks), passed through as a header."""
        return self.config.get("gateway_config")

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r}, gateway={self.is_using_gateway()})"
