"""Reshapes the batch after a global dimension.

Each global dimension has at most one reshape strategy, fixed when the
manager is built: the dimension's own ``transform`` function when declared,
otherwise the plugin's ``transform_sections`` hook.

A strategy returning a non-empty list replaces the current sections and
clears every section result. An empty/None return or an exception leaves
the batch untouched.
"""

import logging
from typing import Awaitable, Callable, Optional

from dimflow.executor.hook_executor import HookExecutor, coerce, maybe_await, notify_error
from dimflow.executor.progress import ProgressTracker
from dimflow.executor.state import RunState
from dimflow.plugin.base import Plugin
from dimflow.plugin.contexts import ProcessOptions, TransformSectionsContext
from dimflow.schemas import DimensionResult, SectionData

logger = logging.getLogger(__name__)

ReshapeStrategy = Callable[[TransformSectionsContext], Awaitable[Optional[list[SectionData]]]]


class TransformationManager:
    def __init__(
        self,
        plugin: Plugin,
        hooks: HookExecutor,
        options: Optional[ProcessOptions] = None,
        progress: Optional[ProgressTracker] = None,
    ):
        self.plugin = plugin
        self.hooks = hooks
        self.options = options
        self.progress = progress
        self._strategies: dict[str, ReshapeStrategy] = {}
        for name in plugin.get_dimension_names():
            config = plugin.get_dimension_config(name)
            if not config.is_global:
                continue
            if config.transform is not None:
                self._strategies[name] = self._legacy_strategy(config.transform)
            elif hooks.has("transform_sections"):
                self._strategies[name] = hooks.transform_sections

    def has_strategy(self, dimension: str) -> bool:
        return dimension in self._strategies

    def _legacy_strategy(self, transform: Callable) -> ReshapeStrategy:
        async def run(context: TransformSectionsContext) -> Optional[list[SectionData]]:
            try:
                value = await maybe_await(transform(context.result, context.current_sections))
            except Exception as e:
                logger.error(f"Transform failed for {context.dimension}: {e}", exc_info=True)
                notify_error(self.options, f"transform-{context.dimension}", e)
                return None
            if value is None:
                return None
            return [coerce(SectionData, s) for s in value]
        return run

    async def apply_transformation(
        self,
        dimension: str,
        result: DimensionResult,
        state: RunState,
        duration: float = 0.0,
    ) -> bool:
        """Offer the current batch to the dimension's strategy.

        Returns True when the sections were replaced.
        """
        strategy = self._strategies.get(dimension)
        if strategy is None or result.is_error:
            return False

        metadata = result.metadata
        new_sections = await strategy(TransformSectionsContext(
            process_id=state.process_id,
            dimension=dimension,
            is_global=True,
            sections=list(state.sections),
            dependencies={},
            global_results=dict(state.global_results),
            result=result,
            duration=duration,
            provider=(metadata.provider if metadata and metadata.provider else "unknown"),
            model=metadata.model if metadata else None,
            tokens_used=metadata.tokens if metadata else None,
            cost=metadata.cost if metadata else None,
            current_sections=list(state.sections),
        ))

        if not new_sections:
            return False

        old_count = len(state.sections)
        state.replace_sections(new_sections)
        logger.info(f"Transform by '{dimension}': {old_count} -> {len(new_sections)} sections")
        if self.progress is not None:
            self.progress.update_total_sections(len(new_sections))
        return True
