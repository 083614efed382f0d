"""Caller contract: the Plugin base class and the contexts its hooks receive."""

from dimflow.plugin.base import Plugin
from dimflow.plugin.contexts import (
    DimensionContext,
    DimensionResultContext,
    FailureContext,
    FallbackContext,
    FinalizeContext,
    ProcessContext,
    ProcessFailureContext,
    ProcessOptions,
    ProcessResultContext,
    PromptContext,
    ProviderContext,
    ProviderResultContext,
    RetryContext,
    SelectionContext,
    TransformSectionsContext,
)

__all__ = [
    "Plugin",
    "DimensionContext",
    "DimensionResultContext",
    "FailureContext",
    "FallbackContext",
    "FinalizeContext",
    "ProcessContext",
    "ProcessFailureContext",
    "ProcessOptions",
    "ProcessResultContext",
    "PromptContext",
    "ProviderContext",
    "ProviderResultContext",
    "RetryContext",
    "SelectionContext",
    "TransformSectionsContext",
]
