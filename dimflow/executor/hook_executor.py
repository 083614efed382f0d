"""Calls optional plugin hooks with neutral defaults.

Every hook is optional. When a hook is absent the neutral value is used;
when a hook raises, the policy depends on the hook:

- before_process_start, define_dependencies: propagate (the run cannot be
  planned without them)
- skip checks: treated as "do not skip"
- transform_dependencies: original dependencies are kept
- before/after_dimension_execute: logged, reported through on_error
- before/after_provider_execute: original request/response is kept
- handle_retry, handle_provider_fallback, handle_dimension_failure:
  treated as "no decision"
- transform_sections: no reshape, reported through on_error
- finalize_results, after_process_complete, handle_process_failure:
  treated as "no replacement"
"""

import inspect
import logging
from typing import Any, Optional, TypeVar, Union

from pydantic import BaseModel

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
    ProviderContext,
    ProviderResultContext,
    RetryContext,
    TransformSectionsContext,
)
from dimflow.schemas import (
    DimensionResult,
    FallbackResponse,
    ProcessResult,
    ProcessStartResult,
    ProviderRequest,
    ProviderResponse,
    RetryResponse,
    SectionData,
    SkipWithResult,
)

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


async def maybe_await(value: Any) -> Any:
    """Resolve hook return values that may or may not be awaitable."""
    if inspect.isawaitable(value):
        return await value
    return value


def coerce(model_cls: type[ModelT], value: Any) -> Optional[ModelT]:
    """Accept either a model instance or a plain dict from a hook."""
    if value is None or isinstance(value, model_cls):
        return value
    return model_cls.model_validate(value)


def notify_error(options: Optional[ProcessOptions], where: str, error: BaseException) -> None:
    """Invoke the on_error callback; a failing callback is logged, not raised."""
    if options is None or options.on_error is None:
        return
    try:
        options.on_error(where, error)
    except Exception as e:
        logger.warning(f"on_error callback failed for {where}: {e}", exc_info=True)


class HookExecutor:
    def __init__(self, plugin: Plugin, options: Optional[ProcessOptions] = None):
        self.plugin = plugin
        self.options = options

    def has(self, hook_name: str) -> bool:
        return getattr(self.plugin, hook_name, None) is not None

    async def _call(self, hook_name: str, context: Any) -> Any:
        hook = getattr(self.plugin, hook_name)
        return await maybe_await(hook(context))

    # --- Run lifecycle ---

    async def before_process_start(self, context: ProcessContext) -> Optional[ProcessStartResult]:
        if not self.has("before_process_start"):
            return None
        return coerce(ProcessStartResult, await self._call("before_process_start", context))

    async def define_dependencies(self, context: ProcessContext) -> dict[str, list[str]]:
        if not self.has("define_dependencies"):
            return dict(self.plugin.get_dependencies() or {})
        return dict(await self._call("define_dependencies", context) or {})

    async def finalize_results(
        self, context: FinalizeContext
    ) -> Optional[dict[str, DimensionResult]]:
        if not self.has("finalize_results"):
            return None
        try:
            value = await self._call("finalize_results", context)
        except Exception as e:
            logger.error(f"finalize_results hook failed: {e}", exc_info=True)
            notify_error(self.options, "finalize_results", e)
            return None
        if value is None:
            return None
        return {key: coerce(DimensionResult, result) for key, result in value.items()}

    async def after_process_complete(
        self, context: ProcessResultContext
    ) -> Optional[ProcessResult]:
        if not self.has("after_process_complete"):
            return None
        try:
            return coerce(ProcessResult, await self._call("after_process_complete", context))
        except Exception as e:
            logger.error(f"after_process_complete hook failed: {e}", exc_info=True)
            notify_error(self.options, "after_process_complete", e)
            return None

    async def handle_process_failure(
        self, context: ProcessFailureContext
    ) -> Optional[ProcessResult]:
        if not self.has("handle_process_failure"):
            return None
        try:
            return coerce(ProcessResult, await self._call("handle_process_failure", context))
        except Exception as e:
            logger.error(f"handle_process_failure hook failed: {e}", exc_info=True)
            return None

    # --- Dimension lifecycle ---

    async def should_skip(
        self, context: DimensionContext
    ) -> Union[bool, SkipWithResult]:
        hook_name = (
            "should_skip_global_dimension" if context.is_global
            else "should_skip_section_dimension"
        )
        if not self.has(hook_name):
            return False
        try:
            value = await self._call(hook_name, context)
        except Exception as e:
            logger.error(f"{hook_name} failed for {context.describe()}: {e}", exc_info=True)
            notify_error(self.options, f"{hook_name}:{context.describe()}", e)
            return False
        if isinstance(value, dict) and "result" in value:
            value = SkipWithResult.model_validate(value)
        if isinstance(value, SkipWithResult):
            return value if value.skip else False
        return bool(value)

    async def transform_dependencies(
        self, context: DimensionContext
    ) -> dict[str, DimensionResult]:
        if not self.has("transform_dependencies"):
            return context.dependencies
        try:
            value = await self._call("transform_dependencies", context)
        except Exception as e:
            logger.error(
                f"transform_dependencies failed for {context.describe()}: {e}", exc_info=True
            )
            notify_error(self.options, f"transform_dependencies:{context.describe()}", e)
            return context.dependencies
        if value is None:
            return context.dependencies
        return {name: coerce(DimensionResult, result) for name, result in value.items()}

    async def before_dimension_execute(self, context: DimensionContext) -> None:
        if not self.has("before_dimension_execute"):
            return
        try:
            await self._call("before_dimension_execute", context)
        except Exception as e:
            logger.error(
                f"before_dimension_execute failed for {context.describe()}: {e}", exc_info=True
            )
            notify_error(self.options, f"before_dimension_execute:{context.describe()}", e)

    async def after_dimension_execute(self, context: DimensionResultContext) -> None:
        if not self.has("after_dimension_execute"):
            return
        try:
            await self._call("after_dimension_execute", context)
        except Exception as e:
            logger.error(
                f"after_dimension_execute failed for {context.describe()}: {e}", exc_info=True
            )
            notify_error(self.options, f"after_dimension_execute:{context.describe()}", e)

    async def transform_sections(
        self, context: TransformSectionsContext
    ) -> Optional[list[SectionData]]:
        if not self.has("transform_sections"):
            return None
        try:
            value = await self._call("transform_sections", context)
        except Exception as e:
            logger.error(f"transform_sections failed for {context.dimension}: {e}", exc_info=True)
            notify_error(self.options, f"transform_sections:{context.dimension}", e)
            return None
        if value is None:
            return None
        return [coerce(SectionData, s) for s in value]

    # --- Provider lifecycle ---

    async def before_provider_execute(self, context: ProviderContext) -> ProviderRequest:
        if not self.has("before_provider_execute"):
            return context.request
        try:
            value = await self._call("before_provider_execute", context)
        except Exception as e:
            logger.error(
                f"before_provider_execute failed for {context.describe()}: {e}", exc_info=True
            )
            return context.request
        return coerce(ProviderRequest, value) or context.request

    async def after_provider_execute(self, context: ProviderResultContext) -> ProviderResponse:
        if not self.has("after_provider_execute"):
            return context.result
        try:
            value = await self._call("after_provider_execute", context)
        except Exception as e:
            logger.error(
                f"after_provider_execute failed for {context.describe()}: {e}", exc_info=True
            )
            return context.result
        return coerce(ProviderResponse, value) or context.result

    async def handle_retry(self, context: RetryContext) -> RetryResponse:
        if not self.has("handle_retry"):
            return RetryResponse()
        try:
            return coerce(RetryResponse, await self._call("handle_retry", context)) or RetryResponse()
        except Exception as e:
            logger.error(f"handle_retry failed for {context.describe()}: {e}", exc_info=True)
            return RetryResponse()

    async def handle_provider_fallback(self, context: FallbackContext) -> FallbackResponse:
        if not self.has("handle_provider_fallback"):
            return FallbackResponse()
        try:
            value = await self._call("handle_provider_fallback", context)
            return coerce(FallbackResponse, value) or FallbackResponse()
        except Exception as e:
            logger.error(
                f"handle_provider_fallback failed for {context.describe()}: {e}", exc_info=True
            )
            return FallbackResponse()

    async def handle_dimension_failure(self, context: FailureContext) -> Optional[DimensionResult]:
        if not self.has("handle_dimension_failure"):
            return None
        try:
            return coerce(DimensionResult, await self._call("handle_dimension_failure", context))
        except Exception as e:
            logger.error(
                f"handle_dimension_failure failed for {context.describe()}: {e}", exc_info=True
            )
            return None
