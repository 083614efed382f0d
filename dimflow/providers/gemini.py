"""Google Gemini provider.

Uses the async surface of google-genai (``client.aio.models``).
Requires GEMINI_API_KEY (or ``api_key`` in the provider config).
"""

import logging
import os
import time
from typing import Any, Optional

from google import genai

from dimflow.errors import ConfigurationError
from dimflow.providers.base import BaseProvider
from dimflow.providers.gateway import execute_via_portkey
from dimflow.providers.parsing import parse_json_content
from dimflow.schemas import ProviderMetadata, ProviderRequest, ProviderResponse, TokenUsage

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gemini-2.5-flash"
MAX_OUTPUT_TOKENS = 65_536


class GeminiProvider(BaseProvider):
    """Gemini via google-genai."""

    # Map effort levels to thinking budgets (tokens)
    EFFORT_TO_BUDGET = {
        "low": 4096,
        "medium": 16384,
        "high": 32768,
    }

    def __init__(
        self,
        config: Optional[dict[str, Any]] = None,
        client: Optional[genai.Client] = None,
        name: str = "gemini",
    ):
        super().__init__(name, config)
        self.api_key = self.config.get("api_key") or os.environ.get("GEMINI_API_KEY")
        if not self.api_key and client is None:
            raise ConfigurationError(
                "Gemini API key is required (set GEMINI_API_KEY)",
                {"provider": name},
            )
        self.default_model = self.config.get("model", DEFAULT_MODEL)
        self._client = client

    def _get_client(self) -> genai.Client:
        if self._client is None:
            self._client = genai.Client(api_key=self.api_key)
        return self._client

    async def execute(self, request: ProviderRequest) -> ProviderResponse:
        if self.is_using_gateway():
            return await execute_via_portkey(
                request,
                provider="google",
                provider_api_key=self.api_key or "",
                gateway_api_key=self.get_gateway_api_key(),
                default_model=self.default_model,
                gateway_config=self.get_gateway_config(),
            )
        return await self._execute_direct(request)

    async def _execute_direct(self, request: ProviderRequest) -> ProviderResponse:
        options = request.options or {}
        model = options.get("model") or self.default_model
        contents = request.input if isinstance(request.input, list) else [request.input]

        config_kwargs: dict[str, Any] = {
            "max_output_tokens": min(options.get("max_tokens") or 8192, MAX_OUTPUT_TOKENS),
        }
        if options.get("system"):
            config_kwargs["system_instruction"] = options["system"]
        if options.get("temperature") is not None:
            config_kwargs["temperature"] = options["temperature"]
        effort = options.get("thinking_effort")
        if effort in self.EFFORT_TO_BUDGET:
            config_kwargs["thinking_config"] = genai.types.ThinkingConfig(
                thinking_budget=self.EFFORT_TO_BUDGET[effort],
            )
            config_kwargs["temperature"] = 1.0  # Required for thinking mode

        label = request.dimension or "?"
        start_time = time.time()
        logger.info(f"[{label}] Gemini call: model={model}, effort={effort or 'none'}")

        response = await self._get_client().aio.models.generate_content(
            model=model,
            contents=contents,
            config=genai.types.GenerateContentConfig(**config_kwargs),
        )

        duration_ms = int((time.time() - start_time) * 1000)

        # Extract text (separate thinking from output)
        raw_text = ""
        if response.candidates and response.candidates[0].content:
            for part in response.candidates[0].content.parts or []:
                if getattr(part, "thought", False):
                    continue
                raw_text += getattr(part, "text", "") or ""

        if not raw_text.strip():
            return ProviderResponse(error=f"Empty response from {model}")

        usage = getattr(response, "usage_metadata", None)
        input_tokens = (getattr(usage, "prompt_token_count", 0) or 0) if usage else 0
        output_tokens = (getattr(usage, "candidates_token_count", 0) or 0) if usage else 0

        logger.info(
            f"[{label}] Gemini completed: {input_tokens}+{output_tokens} tokens, {duration_ms}ms"
        )

        return ProviderResponse(
            data=parse_json_content(raw_text),
            metadata=ProviderMetadata(
                model=model,
                provider=self.name,
                tokens=TokenUsage(input_tokens=input_tokens, output_tokens=output_tokens),
                duration_ms=duration_ms,
            ),
        )
