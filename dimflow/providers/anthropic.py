"""Anthropic Claude provider.

Direct mode calls the Messages API through ``anthropic.AsyncAnthropic``.
Gateway mode routes the same request through Portkey instead.

Requires ANTHROPIC_API_KEY (or ``api_key`` in the provider config).
"""

import logging
import os
import time
from typing import Any, Optional

import httpx
from anthropic import AsyncAnthropic

from dimflow.errors import ConfigurationError
from dimflow.providers.base import BaseProvider
from dimflow.providers.gateway import execute_via_portkey
from dimflow.providers.parsing import parse_json_content
from dimflow.schemas import ProviderMetadata, ProviderRequest, ProviderResponse, TokenUsage

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "claude-sonnet-4-6"
DEFAULT_MAX_TOKENS = 4096


class AnthropicProvider(BaseProvider):
    """Claude via the Anthropic Messages API."""

    def __init__(
        self,
        config: Optional[dict[str, Any]] = None,
        client: Optional[AsyncAnthropic] = None,
        name: str = "anthropic",
    ):
        super().__init__(name, config)
        self.api_key = self.config.get("api_key") or os.environ.get("ANTHROPIC_API_KEY")
        if not self.api_key and client is None:
            raise ConfigurationError(
                "Anthropic API key is required (set ANTHROPIC_API_KEY)",
                {"provider": name},
            )
        self.default_model = self.config.get("model", DEFAULT_MODEL)
        self._client = client

    def _get_client(self) -> AsyncAnthropic:
        if self._client is None:
            self._client = AsyncAnthropic(
                api_key=self.api_key,
                max_retries=0,  # the provider executor owns retries
                timeout=httpx.Timeout(
                    connect=60.0,
                    read=self.config.get("read_timeout", 600.0),
                    write=120.0,
                    pool=60.0,
                ),
            )
        return self._client

    async def execute(self, request: ProviderRequest) -> ProviderResponse:
        if self.is_using_gateway():
            return await execute_via_portkey(
                request,
                provider="anthropic",
                provider_api_key=self.api_key or "",
                gateway_api_key=self.get_gateway_api_key(),
                default_model=self.default_model,
                gateway_config=self.get_gateway_config(),
            )
        return await self._execute_direct(request)

    async def _execute_direct(self, request: ProviderRequest) -> ProviderResponse:
        options = request.options or {}
        model = options.get("model") or self.default_model
        inputs = request.input if isinstance(request.input, list) else [request.input]

        kwargs: dict[str, Any] = {
            "model": model,
            "max_tokens": options.get("max_tokens") or DEFAULT_MAX_TOKENS,
            "messages": [
                {"role": "user", "content": [{"type": "text", "text": text} for text in inputs]}
            ],
        }
        if options.get("system"):
            kwargs["system"] = options["system"]
        if options.get("temperature") is not None:
            kwargs["temperature"] = options["temperature"]

        label = request.dimension or "?"
        start_time = time.time()
        logger.info(f"[{label}] Anthropic call: model={model}, max_tokens={kwargs['max_tokens']}")

        response = await self._get_client().messages.create(**kwargs)

        duration_ms = int((time.time() - start_time) * 1000)
        raw_text = ""
        for block in response.content:
            if getattr(block, "type", None) == "text":
                raw_text += block.text

        if not raw_text.strip():
            return ProviderResponse(error=f"Empty response from {model}")

        logger.info(
            f"[{label}] Anthropic completed: {response.usage.input_tokens}+"
            f"{response.usage.output_tokens} tokens, {duration_ms}ms"
        )

        return ProviderResponse(
            data=parse_json_content(raw_text),
            metadata=ProviderMetadata(
                model=model,
                provider=self.name,
                tokens=TokenUsage(
                    input_tokens=response.usage.input_tokens,
                    output_tokens=response.usage.output_tokens,
                ),
                duration_ms=duration_ms,
            ),
        )
