"""Plugin base class: the caller contract.

A plugin declares the dimensions, builds the payload for each call and
picks the provider chain. Everything else is an optional hook.

Optional hooks are class attributes that default to None. A subclass opts
in by defining a method with the same name; the engine checks presence
before calling and substitutes a neutral default otherwise. Hooks may be
plain functions or coroutines.

Hook reference (context type -> expected return):

- define_dependencies(ProcessContext) -> dict[str, list[str]]
- before_process_start(ProcessContext) -> ProcessStartResult | None
- after_process_complete(ProcessResultContext) -> ProcessResult | None
- handle_process_failure(ProcessFailureContext) -> ProcessResult | None
- should_skip_section_dimension(DimensionContext) -> bool | SkipWithResult
- should_skip_global_dimension(DimensionContext) -> bool | SkipWithResult
- transform_dependencies(DimensionContext) -> dict[str, DimensionResult]
- transform_sections(TransformSectionsContext) -> list[SectionData] | None
- before_dimension_execute(DimensionContext) -> None
- after_dimension_execute(DimensionResultContext) -> None
- before_provider_execute(ProviderContext) -> ProviderRequest | None
- after_provider_execute(ProviderResultContext) -> ProviderResponse | None
- handle_retry(RetryContext) -> RetryResponse | None
- handle_provider_fallback(FallbackContext) -> FallbackResponse | None
- handle_dimension_failure(FailureContext) -> DimensionResult | None
- finalize_results(FinalizeContext) -> dict[str, DimensionResult] | None
"""

from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Optional, Union

from dimflow.plugin.contexts import PromptContext, SelectionContext
from dimflow.schemas import (
    Dimension,
    DimensionConfig,
    DimensionScope,
    ProviderSelection,
    SectionData,
)

OptionalHook = Optional[Callable[..., Union[Any, Awaitable[Any]]]]


class Plugin(ABC):
    """Base class for caller-supplied dimension logic."""

    define_dependencies: OptionalHook = None
    before_process_start: OptionalHook = None
    after_process_complete: OptionalHook = None
    handle_process_failure: OptionalHook = None
    should_skip_section_dimension: OptionalHook = None
    should_skip_global_dimension: OptionalHook = None
    transform_dependencies: OptionalHook = None
    transform_sections: OptionalHook = None
    before_dimension_execute: OptionalHook = None
    after_dimension_execute: OptionalHook = None
    before_provider_execute: OptionalHook = None
    after_provider_execute: OptionalHook = None
    handle_retry: OptionalHook = None
    handle_provider_fallback: OptionalHook = None
    handle_dimension_failure: OptionalHook = None
    finalize_results: OptionalHook = None

    def __init__(
        self,
        id: str,
        name: str,
        description: str = "",
        config: Optional[dict[str, Any]] = None,
    ):
        self.id = id
        self.name = name
        self.description = description
        self.config = config or {}
        self.dimensions: list[Dimension] = []

    def get_dimension_names(self) -> list[str]:
        return [d if isinstance(d, str) else d.name for d in self.dimensions]

    def get_dimension_config(self, name: str) -> DimensionConfig:
        for d in self.dimensions:
            if isinstance(d, str):
                if d == name:
                    return DimensionConfig(name=name, scope=DimensionScope.SECTION)
            elif d.name == name:
                return d
        raise KeyError(f'Dimension "{name}" not found in plugin "{self.id}"')

    def has_dimension(self, name: str) -> bool:
        return name in self.get_dimension_names()

    def is_global_dimension(self, name: str) -> bool:
        return self.get_dimension_config(name).is_global

    def get_dependencies(self) -> dict[str, list[str]]:
        """Static dependency map, used when define_dependencies is not set."""
        return {}

    @abstractmethod
    def create_prompt(self, context: PromptContext) -> Union[str, list[str], Awaitable[Any]]:
        """Build the provider input for one dimension execution."""

    @abstractmethod
    def select_provider(
        self,
        dimension: str,
        sections: list[SectionData],
        context: SelectionContext,
    ) -> Union[ProviderSelection, dict, Awaitable[Any]]:
        """Return the provider chain (primary plus fallbacks) for a call."""
