"""Core data schemas: sections, dimensions, results, provider wire types.

These describe what flows through a run. Hook contexts (what a plugin hook
receives) live in dimflow.plugin.contexts; configuration lives in
dimflow.config.
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator


class DimensionScope(str, Enum):
    """Where a dimension runs."""
    SECTION = "section"  # once per section (item scope)
    GLOBAL = "global"    # once per batch


class SectionData(BaseModel):
    """One input record in the batch."""

    content: str
    metadata: dict[str, Any] = Field(default_factory=dict)


class DimensionConfig(BaseModel):
    """A named step in the graph.

    ``transform`` is the legacy single-function reshape form:
    ``transform(result, sections) -> list[SectionData]``. When set it takes
    precedence over the plugin's ``transform_sections`` hook.
    """

    name: str
    scope: DimensionScope = DimensionScope.SECTION
    transform: Optional[Callable[..., Any]] = None

    @property
    def is_global(self) -> bool:
        return self.scope == DimensionScope.GLOBAL


Dimension = Union[str, DimensionConfig]


class TokenUsage(BaseModel):
    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0

    @model_validator(mode="after")
    def _fill_total(self) -> "TokenUsage":
        if not self.total_tokens:
            self.total_tokens = self.input_tokens + self.output_tokens
        return self


class ProviderMetadata(BaseModel):
    """Metadata attached to provider responses and dimension results.

    Providers may add their own keys; the engine reads ``model``, ``tokens``,
    ``provider`` and ``cost`` and writes ``skipped``/``cached``/``reason``.
    """

    model_config = ConfigDict(extra="allow")

    model: Optional[str] = None
    provider: Optional[str] = None
    tokens: Optional[TokenUsage] = None
    cost: Optional[float] = None
    skipped: bool = False
    cached: bool = False
    reason: Optional[str] = None


class DimensionResult(BaseModel):
    """Outcome of one dimension execution: success (data) or error, never both."""

    data: Any = None
    error: Optional[str] = None
    metadata: Optional[ProviderMetadata] = None

    @model_validator(mode="after")
    def _success_or_error(self) -> "DimensionResult":
        if self.error is not None and self.data is not None:
            raise ValueError("DimensionResult cannot carry both data and error")
        return self

    @property
    def is_error(self) -> bool:
        return self.error is not None

    @property
    def is_skipped(self) -> bool:
        return bool(self.metadata and self.metadata.skipped)

    @property
    def is_cached(self) -> bool:
        return bool(self.metadata and self.metadata.cached)

    @classmethod
    def failure(cls, message: str) -> "DimensionResult":
        return cls(error=message)


class ProviderRequest(BaseModel):
    """The uniform call payload handed to a provider."""

    input: Union[str, list[str]]
    options: dict[str, Any] = Field(default_factory=dict)
    dimension: Optional[str] = None
    is_global: bool = False
    metadata: dict[str, Any] = Field(
        default_factory=dict,
        description="total_sections, and section_index for section dimensions",
    )


class ProviderResponse(BaseModel):
    data: Any = None
    error: Optional[str] = None
    metadata: Optional[ProviderMetadata] = None


class FallbackSpec(BaseModel):
    provider: str
    options: dict[str, Any] = Field(default_factory=dict)
    retry_after: Optional[float] = Field(
        default=None, description="Seconds to wait before switching to this provider"
    )


class ProviderSelection(BaseModel):
    """Provider chain chosen by the plugin for one dimension execution."""

    provider: str
    options: dict[str, Any] = Field(default_factory=dict)
    fallbacks: list[FallbackSpec] = Field(default_factory=list)


@dataclass
class ProviderAttempt:
    """One slot in the provider chain."""

    provider: str
    options: dict[str, Any] = field(default_factory=dict)
    retry_after: Optional[float] = None


@dataclass
class AttemptRecord:
    """A failed provider call, kept for diagnostics and hook context."""

    attempt: int
    error: BaseException
    provider: str
    timestamp: float = field(default_factory=time.time)


# --- Hook return types ---


class SkipWithResult(BaseModel):
    """Returned by a skip hook to short-circuit with a cached result."""

    skip: bool = True
    result: DimensionResult


class RetryResponse(BaseModel):
    should_retry: Optional[bool] = None
    delay: Optional[float] = Field(default=None, description="Seconds; replaces the computed backoff")
    modified_request: Optional[ProviderRequest] = None
    modified_provider: Optional[str] = None


class FallbackResponse(BaseModel):
    should_fallback: Optional[bool] = None
    delay: Optional[float] = None
    modified_request: Optional[ProviderRequest] = None


class ProcessStartResult(BaseModel):
    sections: Optional[list[SectionData]] = None
    metadata: Optional[dict[str, Any]] = None


# --- Planning ---


class ExecutionPlan(BaseModel):
    sorted_dimensions: list[str]
    execution_groups: list[list[str]]
    dependency_graph: dict[str, list[str]]


class GraphAnalytics(BaseModel):
    total_dimensions: int
    total_dependencies: int
    max_depth: int
    critical_path: list[str]
    parallel_groups: list[list[str]]
    independent_dimensions: list[str]
    bottlenecks: list[str]


# --- Costs ---


class ModelPricing(BaseModel):
    input_per_1m: float = Field(..., ge=0, description="USD per 1M input tokens")
    output_per_1m: float = Field(..., ge=0, description="USD per 1M output tokens")


class PricingConfig(BaseModel):
    models: dict[str, ModelPricing] = Field(default_factory=dict)
    last_updated: Optional[str] = None


class DimensionCost(BaseModel):
    cost: float = 0.0
    tokens: TokenUsage = Field(default_factory=TokenUsage)
    model: str
    provider: str


class ProviderCost(BaseModel):
    cost: float = 0.0
    tokens: TokenUsage = Field(default_factory=TokenUsage)
    models: list[str] = Field(default_factory=list)


class CostSummary(BaseModel):
    total_cost: float = 0.0
    total_tokens: int = 0
    by_dimension: dict[str, DimensionCost] = Field(default_factory=dict)
    by_provider: dict[str, ProviderCost] = Field(default_factory=dict)
    currency: str = "USD"


# --- Output ---


class SectionResults(BaseModel):
    section: SectionData
    results: dict[str, DimensionResult] = Field(default_factory=dict)


class ProcessResult(BaseModel):
    """Final payload of a run."""

    sections: list[SectionResults] = Field(default_factory=list)
    global_results: dict[str, DimensionResult] = Field(default_factory=dict)
    transformed_sections: list[SectionData] = Field(default_factory=list)
    costs: Optional[CostSummary] = None
    metadata: Optional[dict[str, Any]] = None


# --- Progress ---


class DimensionProgress(BaseModel):
    completed: int = 0
    failed: int = 0
    skipped: int = 0
    total: int = 0
    percent: float = 0.0
    cost: float = 0.0
    estimated_cost: float = 0.0
    eta_seconds: int = 0


class ProgressUpdate(BaseModel):
    completed: int = 0
    total: int = 0
    percent: float = 0.0
    cost: float = 0.0
    estimated_cost: float = 0.0
    elapsed_seconds: int = 0
    eta_seconds: int = 0
    current_dimension: str = ""
    current_section: int = 0
    dimensions: dict[str, DimensionProgress] = Field(default_factory=dict)
