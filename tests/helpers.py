"""Fakes shared by the test suite."""

import asyncio
from typing import Any, Callable, Optional, Union

from dimflow.plugin.base import Plugin
from dimflow.plugin.contexts import PromptContext, SelectionContext
from dimflow.providers.base import BaseProvider
from dimflow.schemas import (
    Dimension,
    FallbackSpec,
    ProviderMetadata,
    ProviderRequest,
    ProviderResponse,
    ProviderSelection,
    SectionData,
    TokenUsage,
)


class MockProvider(BaseProvider):
    """Answers every request with ``respond(request)`` (default: echo the input)."""

    def __init__(
        self,
        name: str = "mock",
        respond: Optional[Callable[[ProviderRequest], Any]] = None,
        model: str = "mock-model",
        tokens: Optional[TokenUsage] = None,
        config: Optional[dict[str, Any]] = None,
    ):
        super().__init__(name, config)
        self.respond = respond or (lambda request: {"echo": request.input})
        self.model = model
        self.tokens = tokens
        self.requests: list[ProviderRequest] = []

    @property
    def calls(self) -> int:
        return len(self.requests)

    def calls_for(self, dimension: str) -> int:
        return sum(1 for r in self.requests if r.dimension == dimension)

    async def execute(self, request: ProviderRequest) -> ProviderResponse:
        self.requests.append(request)
        return ProviderResponse(
            data=self.respond(request),
            metadata=ProviderMetadata(model=self.model, provider=self.name, tokens=self.tokens),
        )


class FlakyProvider(MockProvider):
    """Fails the first ``failures`` calls, then succeeds.

    ``failures=None`` fails forever. ``as_response`` reports the failure in
    the response instead of raising.
    """

    def __init__(
        self,
        name: str = "flaky",
        failures: Optional[int] = 1,
        as_response: bool = False,
        **kwargs: Any,
    ):
        super().__init__(name, **kwargs)
        self.failures = failures
        self.as_response = as_response

    async def execute(self, request: ProviderRequest) -> ProviderResponse:
        if self.failures is None or self.calls < self.failures:
            self.requests.append(request)
            message = f"{self.name} failure #{self.calls}"
            if self.as_response:
                return ProviderResponse(error=message)
            raise RuntimeError(message)
        return await super().execute(request)


class GatewayProvider(FlakyProvider):
    """A provider that reports gateway routing."""

    def __init__(self, name: str = "gateway", failures: Optional[int] = 0, **kwargs: Any):
        super().__init__(name, failures=failures, config={"gateway": "portkey"}, **kwargs)


class SlowProvider(MockProvider):
    def __init__(self, name: str = "slow", delay: float = 1.0, **kwargs: Any):
        super().__init__(name, **kwargs)
        self.delay = delay

    async def execute(self, request: ProviderRequest) -> ProviderResponse:
        await asyncio.sleep(self.delay)
        return await super().execute(request)


class RecordingPlugin(Plugin):
    """Configurable plugin; hooks are passed as keyword arguments.

    The prompt is ``"<dimension>|<section contents joined by ;>"`` so
    providers can route on it.
    """

    def __init__(
        self,
        dimensions: list[Dimension],
        dependencies: Optional[dict[str, list[str]]] = None,
        provider: str = "mock",
        fallbacks: Optional[list[Union[str, FallbackSpec]]] = None,
        provider_options: Optional[dict[str, Any]] = None,
        **hooks: Callable,
    ):
        super().__init__("recording", "Recording plugin", "Test plugin")
        self.dimensions = list(dimensions)
        self._dependencies = dependencies or {}
        self.provider = provider
        self.fallbacks = [
            f if isinstance(f, FallbackSpec) else FallbackSpec(provider=f)
            for f in (fallbacks or [])
        ]
        self.provider_options = provider_options or {}
        self.prompts: list[PromptContext] = []
        for name, hook in hooks.items():
            setattr(self, name, hook)

    def get_dependencies(self) -> dict[str, list[str]]:
        return self._dependencies

    def create_prompt(self, context: PromptContext) -> str:
        self.prompts.append(context)
        return f"{context.dimension}|{';'.join(s.content for s in context.sections)}"

    def select_provider(
        self,
        dimension: str,
        sections: list[SectionData],
        context: SelectionContext,
    ) -> ProviderSelection:
        return ProviderSelection(
            provider=self.provider,
            options=dict(self.provider_options),
            fallbacks=list(self.fallbacks),
        )


def sections(*contents: str) -> list[SectionData]:
    return [SectionData(content=c) for c in contents]
