"""OpenAI provider.

Direct mode posts to the chat-completions endpoint over httpx; the payload
and response shapes are the ones the Portkey client already speaks.

Requires OPENAI_API_KEY (or ``api_key`` in the provider config). ``base_url``
points the provider at any OpenAI-compatible endpoint (e.g. OpenRouter).
"""

import logging
import os
import time
from typing import Any, Optional

import httpx

from dimflow.errors import ConfigurationError
from dimflow.providers.base import BaseProvider
from dimflow.providers.gateway import (
    execute_via_portkey,
    parse_chat_response,
    to_chat_request,
)
from dimflow.schemas import ProviderRequest, ProviderResponse

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gpt-4o"
DEFAULT_BASE_URL = "https://api.openai.com"
DEFAULT_TEMPERATURE = 0.1

OPENAI_TIMEOUT = httpx.Timeout(connect=30.0, read=300.0, write=30.0, pool=30.0)


class OpenAIProvider(BaseProvider):
    """GPT models via the chat-completions API."""

    def __init__(
        self,
        config: Optional[dict[str, Any]] = None,
        client: Optional[httpx.AsyncClient] = None,
        name: str = "openai",
    ):
        super().__init__(name, config)
        self.api_key = self.config.get("api_key") or os.environ.get("OPENAI_API_KEY")
        if not self.api_key:
            raise ConfigurationError(
                "OpenAI API key is required (set OPENAI_API_KEY)",
                {"provider": name},
            )
        self.default_model = self.config.get("model", DEFAULT_MODEL)
        self.base_url = self.config.get("base_url", DEFAULT_BASE_URL).rstrip("/")
        self._client = client

    async def execute(self, request: ProviderRequest) -> ProviderResponse:
        if self.is_using_gateway():
            return await execute_via_portkey(
                request,
                provider="openai",
                provider_api_key=self.api_key,
                gateway_api_key=self.get_gateway_api_key(),
                default_model=self.default_model,
                gateway_config=self.get_gateway_config(),
            )
        return await self._execute_direct(request)

    async def _execute_direct(self, request: ProviderRequest) -> ProviderResponse:
        payload = to_chat_request(request, self.default_model)
        payload.setdefault("temperature", DEFAULT_TEMPERATURE)

        label = request.dimension or "?"
        start_time = time.time()
        logger.info(f"[{label}] OpenAI call: model={payload['model']}, max_tokens={payload['max_tokens']}")

        owns_client = self._client is None
        http = self._client or httpx.AsyncClient(timeout=OPENAI_TIMEOUT)
        try:
            response = await http.post(
                f"{self.base_url}/v1/chat/completions",
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "Content-Type": "application/json",
                },
                json=payload,
            )
        finally:
            if owns_client:
                await http.aclose()

        if response.status_code >= 400:
            logger.error(f"[{label}] OpenAI error {response.status_code}: {response.text[:500]}")
            raise RuntimeError(f"OpenAI API error ({response.status_code}): {response.text}")

        result = parse_chat_response(response.json(), self.name)
        if result.metadata is not None:
            result.metadata.duration_ms = int((time.time() - start_time) * 1000)
        return result
