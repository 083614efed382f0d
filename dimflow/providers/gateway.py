"""Portkey gateway client.

When a provider is configured with ``gateway: portkey``, calls go to the
Portkey chat-completions endpoint in OpenAI format. Portkey applies its own
retry/fallback config (``x-portkey-config``), which is why the provider
executor issues a single call per dimension in gateway mode.
"""

import logging
from typing import Any, Optional

import httpx

from dimflow.providers.parsing import parse_json_content
from dimflow.schemas import ProviderMetadata, ProviderRequest, ProviderResponse, TokenUsage

logger = logging.getLogger(__name__)

PORTKEY_URL = "https://api.portkey.ai/v1/chat/completions"
DEFAULT_MAX_TOKENS = 4096

GATEWAY_TIMEOUT = httpx.Timeout(connect=30.0, read=300.0, write=30.0, pool=30.0)


def to_chat_request(request: ProviderRequest, default_model: str) -> dict[str, Any]:
    """Convert a ProviderRequest to an OpenAI-style chat payload."""
    inputs = request.input if isinstance(request.input, list) else [request.input]
    options = request.options or {}
    payload: dict[str, Any] = {
        "model": options.get("model") or default_model,
        "messages": [{"role": "user", "content": text} for text in inputs],
        "max_tokens": options.get("max_tokens") or DEFAULT_MAX_TOKENS,
    }
    if options.get("temperature") is not None:
        payload["temperature"] = options["temperature"]
    if options.get("top_p") is not None:
        payload["top_p"] = options["top_p"]
    if options.get("system"):
        payload["messages"].insert(0, {"role": "system", "content": options["system"]})
    return payload


def parse_chat_response(
    data: dict[str, Any],
    provider: str,
    gateway: Optional[str] = None,
) -> ProviderResponse:
    """Parse an OpenAI-format completion into a ProviderResponse.

    Shared by the Portkey path and the direct OpenAI provider, which speak
    the same chat-completions format.
    """
    choices = data.get("choices") or []
    content = None
    if choices:
        content = (choices[0].get("message") or {}).get("content")
    if not content:
        return ProviderResponse(error=f"No content in {gateway or provider} response")

    usage = data.get("usage") or {}
    return ProviderResponse(
        data=parse_json_content(content),
        metadata=ProviderMetadata(
            model=data.get("model"),
            provider=provider,
            gateway=gateway,
            tokens=TokenUsage(
                input_tokens=usage.get("prompt_tokens", 0),
                output_tokens=usage.get("completion_tokens", 0),
                total_tokens=usage.get("total_tokens", 0),
            ),
        ),
    )


async def execute_via_portkey(
    request: ProviderRequest,
    *,
    provider: str,
    provider_api_key: str,
    gateway_api_key: Optional[str],
    default_model: str,
    gateway_config: Optional[str] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> ProviderResponse:
    """Send one request through Portkey.

    Raises:
        RuntimeError: Missing gateway key or non-2xx gateway response.
    """
    if not gateway_api_key:
        raise RuntimeError("Portkey API key is required when using gateway")

    headers = {
        "x-portkey-api-key": gateway_api_key,
        "x-portkey-provider": provider,
        "Authorization": f"Bearer {provider_api_key}",
        "Content-Type": "application/json",
    }
    if gateway_config:
        headers["x-portkey-config"] = gateway_config

    payload = to_chat_request(request, default_model)
    logger.info(
        f"[{request.dimension or '?'}] Portkey -> {provider}: model={payload['model']}, "
        f"max_tokens={payload['max_tokens']}"
    )

    owns_client = client is None
    http = client or httpx.AsyncClient(timeout=GATEWAY_TIMEOUT)
    try:
        response = await http.post(PORTKEY_URL, headers=headers, json=payload)
    finally:
        if owns_client:
            await http.aclose()

    if response.status_code >= 400:
        logger.error(f"Portkey error {response.status_code}: {response.text[:500]}")
        raise RuntimeError(f"Portkey API error ({response.status_code}): {response.text}")

    return parse_chat_response(response.json(), provider, gateway="portkey")
