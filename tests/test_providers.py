import asyncio
import json
from types import SimpleNamespace

import httpx
import pytest

from dimflow.errors import ConfigurationError, ProviderNotFoundError
from dimflow.providers.anthropic import AnthropicProvider
from dimflow.providers.gateway import PORTKEY_URL, execute_via_portkey, to_chat_request
from dimflow.providers.gemini import GeminiProvider
from dimflow.providers.openai import OpenAIProvider
from dimflow.providers.parsing import parse_json_content, strip_code_fences
from dimflow.providers.registry import ProviderAdapter, ProviderRegistry, create_provider_adapter
from dimflow.schemas import ProviderRequest
from tests.helpers import GatewayProvider, MockProvider


def test_strip_code_fences():
    assert strip_code_fences('```json\n{"a": 1}\n```') == '{"a": 1}'
    assert strip_code_fences("```\n[1, 2]\n```") == "[1, 2]"
    assert strip_code_fences("  plain  ") == "plain"


def test_parse_json_content():
    assert parse_json_content('```json\n{"score": 7}\n```') == {"score": 7}
    assert parse_json_content("[1, 2, 3]") == [1, 2, 3]
    assert parse_json_content("  Just prose.  ") == "Just prose."


def test_chat_request_options():
    request = ProviderRequest(
        input="hello",
        options={"model": "m-1", "temperature": 0.2, "system": "be brief"},
    )
    payload = to_chat_request(request, default_model="fallback")

    assert payload["model"] == "m-1"
    assert payload["temperature"] == 0.2
    assert payload["max_tokens"] == 4096
    assert payload["messages"] == [
        {"role": "system", "content": "be brief"},
        {"role": "user", "content": "hello"},
    ]


def _portkey_client(handler):
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def test_portkey_call():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["headers"] = request.headers
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={
            "model": "claude-x",
            "choices": [{"message": {"content": '```json\n{"ok": true}\n```'}}],
            "usage": {"prompt_tokens": 10, "completion_tokens": 5, "total_tokens": 15},
        })

    async def run():
        async with _portkey_client(handler) as client:
            return await execute_via_portkey(
                ProviderRequest(input="hi", dimension="tone"),
                provider="anthropic",
                provider_api_key="sk-test",
                gateway_api_key="pk-test",
                default_model="claude-x",
                gateway_config="cfg-1",
                client=client,
            )

    response = asyncio.run(run())

    assert response.data == {"ok": True}
    assert response.metadata.gateway == "portkey"
    assert response.metadata.tokens.total_tokens == 15
    assert seen["url"] == PORTKEY_URL
    assert seen["headers"]["x-portkey-api-key"] == "pk-test"
    assert seen["headers"]["x-portkey-provider"] == "anthropic"
    assert seen["headers"]["x-portkey-config"] == "cfg-1"
    assert seen["headers"]["authorization"] == "Bearer sk-test"
    assert seen["body"]["messages"] == [{"role": "user", "content": "hi"}]


def test_portkey_http_error_raises():
    def handler(request):
        return httpx.Response(502, text="bad gateway")

    async def run():
        async with _portkey_client(handler) as client:
            await execute_via_portkey(
                ProviderRequest(input="hi"),
                provider="anthropic",
                provider_api_key="k",
                gateway_api_key="pk",
                default_model="m",
                client=client,
            )

    with pytest.raises(RuntimeError, match="502"):
        asyncio.run(run())


def test_portkey_empty_content_is_error_response():
    def handler(request):
        return httpx.Response(200, json={"choices": []})

    async def run():
        async with _portkey_client(handler) as client:
            return await execute_via_portkey(
                ProviderRequest(input="hi"),
                provider="gemini",
                provider_api_key="k",
                gateway_api_key="pk",
                default_model="m",
                client=client,
            )

    assert asyncio.run(run()).error == "No content in portkey response"


def test_portkey_requires_key():
    with pytest.raises(RuntimeError, match="Portkey API key"):
        asyncio.run(execute_via_portkey(
            ProviderRequest(input="hi"),
            provider="anthropic",
            provider_api_key="k",
            gateway_api_key=None,
            default_model="m",
        ))


def test_gateway_flag():
    assert GatewayProvider().is_using_gateway()
    assert not MockProvider().is_using_gateway()


def test_registry_lookup():
    registry = ProviderRegistry()
    registry.register(MockProvider("a"))
    registry.register(MockProvider("b"))

    assert registry.list_providers() == ["a", "b"]
    assert registry.has("a")
    with pytest.raises(ProviderNotFoundError) as exc_info:
        registry.get("c")
    assert exc_info.value.available == ["a", "b"]


def test_adapter_execute_unknown_provider():
    adapter = ProviderAdapter()
    adapter.register_provider(MockProvider())

    with pytest.raises(ProviderNotFoundError):
        asyncio.run(adapter.execute("missing", ProviderRequest(input="x")))
    response = asyncio.run(adapter.execute("mock", ProviderRequest(input="x")))
    assert response.data == {"echo": "x"}


def test_adapter_from_config(monkeypatch):
    monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)

    adapter = create_provider_adapter({"anthropic": {"api_key": "sk-test", "model": "claude-x"}})
    provider = adapter.get_provider("anthropic")
    assert isinstance(provider, AnthropicProvider)
    assert provider.default_model == "claude-x"

    with pytest.raises(ConfigurationError, match="Unknown provider"):
        ProviderAdapter.from_config({"mistral": {}})
    with pytest.raises(ConfigurationError, match="API key"):
        ProviderAdapter.from_config({"anthropic": {}})


def test_create_provider_adapter_rejects_other_types():
    with pytest.raises(ConfigurationError):
        create_provider_adapter(["anthropic"])
    assert isinstance(create_provider_adapter(ProviderRegistry()), ProviderAdapter)


class _Recorder:
    """Async callable that records its kwargs and returns a canned response."""

    def __init__(self, response):
        self.response = response
        self.kwargs = None

    async def __call__(self, **kwargs):
        self.kwargs = kwargs
        return self.response


def _anthropic_client(blocks, input_tokens=12, output_tokens=3):
    create = _Recorder(SimpleNamespace(
        content=blocks,
        usage=SimpleNamespace(input_tokens=input_tokens, output_tokens=output_tokens),
    ))
    return SimpleNamespace(messages=SimpleNamespace(create=create)), create


def test_anthropic_direct_call():
    client, create = _anthropic_client([
        SimpleNamespace(type="text", text='```json\n{"tone": '),
        SimpleNamespace(type="tool_use", text="ignored"),
        SimpleNamespace(type="text", text='"calm"}\n```'),
    ])
    provider = AnthropicProvider({"model": "claude-x"}, client=client)

    response = asyncio.run(provider.execute(ProviderRequest(
        input=["first", "second"],
        options={"system": "be brief", "temperature": 0.3, "max_tokens": 100},
        dimension="tone",
    )))

    assert response.data == {"tone": "calm"}
    assert response.metadata.model == "claude-x"
    assert response.metadata.provider == "anthropic"
    assert response.metadata.tokens.total_tokens == 15
    assert create.kwargs["system"] == "be brief"
    assert create.kwargs["temperature"] == 0.3
    assert create.kwargs["max_tokens"] == 100
    assert create.kwargs["messages"] == [{
        "role": "user",
        "content": [{"type": "text", "text": "first"}, {"type": "text", "text": "second"}],
    }]


def test_anthropic_empty_text_is_error_response():
    client, create = _anthropic_client([SimpleNamespace(type="text", text="   ")])
    provider = AnthropicProvider(client=client)

    response = asyncio.run(provider.execute(ProviderRequest(input="hi")))

    assert response.error == "Empty response from claude-sonnet-4-6"
    assert "system" not in create.kwargs
    assert "temperature" not in create.kwargs


def _gemini_client(parts, usage=None):
    generate = _Recorder(SimpleNamespace(
        candidates=[SimpleNamespace(content=SimpleNamespace(parts=parts))],
        usage_metadata=usage,
    ))
    client = SimpleNamespace(aio=SimpleNamespace(models=SimpleNamespace(generate_content=generate)))
    return client, generate


def test_gemini_direct_call_skips_thoughts():
    client, generate = _gemini_client(
        [
            SimpleNamespace(thought=True, text="let me think"),
            SimpleNamespace(thought=False, text="[1, "),
            SimpleNamespace(text="2]"),
        ],
        usage=SimpleNamespace(prompt_token_count=40, candidates_token_count=2),
    )
    provider = GeminiProvider({"model": "gemini-x"}, client=client)

    response = asyncio.run(provider.execute(ProviderRequest(
        input="count",
        options={"system": "numbers only", "temperature": 0.2, "max_tokens": 500},
    )))

    assert response.data == [1, 2]
    assert response.metadata.tokens.input_tokens == 40
    assert response.metadata.tokens.output_tokens == 2
    assert generate.kwargs["model"] == "gemini-x"
    assert generate.kwargs["contents"] == ["count"]
    config = generate.kwargs["config"]
    assert config.system_instruction == "numbers only"
    assert config.temperature == 0.2
    assert config.max_output_tokens == 500
    assert config.thinking_config is None


def test_gemini_thinking_effort_sets_budget():
    client, generate = _gemini_client([SimpleNamespace(text="ok")])
    provider = GeminiProvider(client=client)

    response = asyncio.run(provider.execute(ProviderRequest(
        input="x", options={"thinking_effort": "medium", "temperature": 0.1},
    )))

    assert response.data == "ok"
    assert response.metadata.tokens.total_tokens == 0
    config = generate.kwargs["config"]
    assert config.thinking_config.thinking_budget == 16384
    assert config.temperature == 1.0


def test_gemini_only_thoughts_is_error_response():
    client, _ = _gemini_client([SimpleNamespace(thought=True, text="hmm")])
    provider = GeminiProvider(client=client)

    response = asyncio.run(provider.execute(ProviderRequest(input="x")))

    assert response.error == "Empty response from gemini-2.5-flash"


def test_openai_direct_call():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["headers"] = request.headers
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={
            "model": "gpt-x",
            "choices": [{"message": {"content": '{"label": "b"}'}}],
            "usage": {"prompt_tokens": 7, "completion_tokens": 4, "total_tokens": 11},
        })

    async def run():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            provider = OpenAIProvider(
                {"api_key": "sk-test", "model": "gpt-x", "base_url": "https://llm.local/"},
                client=client,
            )
            return await provider.execute(ProviderRequest(input="classify", dimension="label"))

    response = asyncio.run(run())

    assert response.data == {"label": "b"}
    assert response.metadata.provider == "openai"
    assert response.metadata.gateway is None
    assert response.metadata.tokens.total_tokens == 11
    assert response.metadata.duration_ms >= 0
    assert seen["url"] == "https://llm.local/v1/chat/completions"
    assert seen["headers"]["authorization"] == "Bearer sk-test"
    assert seen["body"]["model"] == "gpt-x"
    assert seen["body"]["temperature"] == 0.1
    assert seen["body"]["messages"] == [{"role": "user", "content": "classify"}]


def test_openai_http_error_raises():
    def handler(request):
        return httpx.Response(429, text="rate limited")

    async def run():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            provider = OpenAIProvider({"api_key": "k"}, client=client)
            await provider.execute(ProviderRequest(input="x"))

    with pytest.raises(RuntimeError, match="429"):
        asyncio.run(run())


def test_openai_from_config(monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)

    with pytest.raises(ConfigurationError, match="OPENAI_API_KEY"):
        ProviderAdapter.from_config({"openai": {}})

    monkeypatch.setenv("OPENAI_API_KEY", "sk-env")
    provider = ProviderAdapter.from_config({"openai": {"model": "gpt-x"}}).get_provider("openai")
    assert isinstance(provider, OpenAIProvider)
    assert provider.api_key == "sk-env"
    assert provider.default_model == "gpt-x"
