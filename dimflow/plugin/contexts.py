"""Context objects handed to plugin hooks, plus per-run callbacks.

Contexts are plain dataclasses: hooks may read them freely, and the engine
builds a fresh one for every call so mutating a context never leaks into
run state.
"""

import time
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from dimflow.schemas import (
    AttemptRecord,
    DimensionResult,
    ProcessResult,
    ProgressUpdate,
    ProviderRequest,
    ProviderResponse,
    SectionData,
    TokenUsage,
)


@dataclass(kw_only=True)
class ProcessOptions:
    """Per-run callbacks. All optional."""

    process_id: Optional[str] = None
    on_dimension_start: Optional[Callable[[str], None]] = None
    on_dimension_complete: Optional[Callable[[str, DimensionResult], None]] = None
    on_section_start: Optional[Callable[[int, int], None]] = None
    on_section_complete: Optional[Callable[[int, int], None]] = None
    on_error: Optional[Callable[[str, BaseException], None]] = None
    on_progress: Optional[Callable[[ProgressUpdate], None]] = None
    update_every: int = 1


@dataclass(kw_only=True)
class BaseContext:
    process_id: str
    timestamp: float = field(default_factory=time.time)


@dataclass(kw_only=True)
class ProcessContext(BaseContext):
    sections: list[SectionData]
    options: ProcessOptions
    metadata: Optional[dict[str, Any]] = None


@dataclass(kw_only=True)
class ProcessResultContext(ProcessContext):
    result: ProcessResult
    duration: float
    total_dimensions: int
    successful_dimensions: int
    failed_dimensions: int


@dataclass(kw_only=True)
class ProcessFailureContext(ProcessContext):
    error: BaseException
    partial_results: ProcessResult
    duration: float


@dataclass(kw_only=True)
class PromptContext:
    sections: list[SectionData]
    dimension: str
    dependencies: dict[str, DimensionResult]
    is_global: bool


@dataclass(kw_only=True)
class SelectionContext:
    is_global: bool
    section_index: Optional[int] = None
    total_sections: Optional[int] = None


@dataclass(kw_only=True)
class DimensionContext(BaseContext):
    """Context for one dimension execution.

    ``section`` and ``section_index`` are set only for section dimensions.
    """

    dimension: str
    is_global: bool
    sections: list[SectionData]
    dependencies: dict[str, DimensionResult]
    global_results: dict[str, DimensionResult]
    section: Optional[SectionData] = None
    section_index: Optional[int] = None

    def describe(self) -> str:
        if self.section_index is not None:
            return f"{self.dimension} (section {self.section_index})"
        return self.dimension


@dataclass(kw_only=True)
class DimensionResultContext(DimensionContext):
    result: DimensionResult
    duration: float
    provider: str = "unknown"
    model: Optional[str] = None
    tokens_used: Optional[TokenUsage] = None
    cost: Optional[float] = None


@dataclass(kw_only=True)
class TransformSectionsContext(DimensionResultContext):
    current_sections: list[SectionData]


@dataclass(kw_only=True)
class ProviderContext(DimensionContext):
    request: ProviderRequest
    provider: str
    provider_options: dict[str, Any] = field(default_factory=dict)


@dataclass(kw_only=True)
class ProviderResultContext(ProviderContext):
    result: ProviderResponse
    duration: float
    tokens_used: Optional[TokenUsage] = None


@dataclass(kw_only=True)
class RetryContext(ProviderContext):
    error: BaseException
    attempt: int
    max_attempts: int
    previous_attempts: list[AttemptRecord] = field(default_factory=list)


@dataclass(kw_only=True)
class FallbackContext(RetryContext):
    failed_provider: str
    fallback_provider: str
    fallback_options: dict[str, Any] = field(default_factory=dict)


@dataclass(kw_only=True)
class FailureContext(RetryContext):
    total_attempts: int
    providers: list[str]


@dataclass(kw_only=True)
class FinalizeContext(BaseContext):
    results: dict[str, DimensionResult]
    sections: list[SectionData]
    global_results: dict[str, DimensionResult]
    transformed_sections: list[SectionData]
    duration: float
