"""dimflow: run a dependency graph of dimensions over a batch of sections."""

from dimflow.analysis.cost_calculator import CostCalculator
from dimflow.config import EngineConfig, ExecutionConfig, load_execution_config
from dimflow.engine import DagEngine
from dimflow.errors import (
    AllProvidersFailedError,
    CircularDependencyError,
    ConfigurationError,
    DagEngineError,
    DependencyError,
    DependencyNotFoundError,
    DimensionTimeoutError,
    ExecutionGroupingError,
    NoProvidersError,
    NoSectionsError,
    ProviderNotFoundError,
    ValidationError,
)
from dimflow.plugin import Plugin, ProcessOptions
from dimflow.providers import BaseProvider, ProviderAdapter, ProviderRegistry
from dimflow.schemas import (
    DimensionConfig,
    DimensionResult,
    DimensionScope,
    FallbackResponse,
    FallbackSpec,
    PricingConfig,
    ProcessResult,
    ProcessStartResult,
    ProviderMetadata,
    ProviderRequest,
    ProviderResponse,
    ProviderSelection,
    RetryResponse,
    SectionData,
    SkipWithResult,
    TokenUsage,
)

__all__ = [
    "DagEngine",
    "EngineConfig",
    "ExecutionConfig",
    "load_execution_config",
    "CostCalculator",
    "Plugin",
    "ProcessOptions",
    "BaseProvider",
    "ProviderAdapter",
    "ProviderRegistry",
    "DimensionConfig",
    "DimensionResult",
    "DimensionScope",
    "FallbackResponse",
    "FallbackSpec",
    "PricingConfig",
    "ProcessResult",
    "ProcessStartResult",
    "ProviderMetadata",
    "ProviderRequest",
    "ProviderResponse",
    "ProviderSelection",
    "RetryResponse",
    "SectionData",
    "SkipWithResult",
    "TokenUsage",
    "AllProvidersFailedError",
    "CircularDependencyError",
    "ConfigurationError",
    "DagEngineError",
    "DependencyError",
    "DependencyNotFoundError",
    "DimensionTimeoutError",
    "ExecutionGroupingError",
    "NoProvidersError",
    "NoSectionsError",
    "ProviderNotFoundError",
    "ValidationError",
]
