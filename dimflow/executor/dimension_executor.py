"""Runs one dimension: once for a global dimension, once per section otherwise.

Per execution:
    build context (resolve dependencies) -> skip check -> transform_dependencies
    -> failed-dependency check -> before hook -> provider call (with timeout)
    -> after hook -> record

Failures are recorded as error results. They propagate only when
continue_on_error is disabled.
"""

import asyncio
import logging
import time
from typing import Optional, Union

from dimflow.config import ExecutionConfig
from dimflow.errors import DependencyError, DimensionTimeoutError
from dimflow.executor.dependency_resolver import DependencyResolver, find_failed_dependencies
from dimflow.executor.hook_executor import HookExecutor, notify_error
from dimflow.executor.progress import ProgressTracker
from dimflow.executor.provider_executor import ProviderExecutor
from dimflow.executor.state import RunState
from dimflow.executor.worker_pool import WorkerPool
from dimflow.plugin.contexts import DimensionContext, DimensionResultContext, ProcessOptions
from dimflow.schemas import DimensionResult, ProviderMetadata, SectionData, SkipWithResult

logger = logging.getLogger(__name__)

SKIP_REASON_GLOBAL = "Skipped by plugin should_skip_global_dimension"
SKIP_REASON_SECTION = "Skipped by plugin should_skip_section_dimension"


def skipped_result(reason: str) -> DimensionResult:
    return DimensionResult(
        data={"skipped": True, "reason": reason},
        metadata=ProviderMetadata(skipped=True, reason=reason),
    )


def cached_result(skip: SkipWithResult) -> DimensionResult:
    metadata = skip.result.metadata or ProviderMetadata()
    return skip.result.model_copy(update={"metadata": metadata.model_copy(update={"cached": True})})


class DimensionExecutor:
    def __init__(
        self,
        provider_executor: ProviderExecutor,
        hooks: HookExecutor,
        resolver: DependencyResolver,
        pool: WorkerPool,
        config: ExecutionConfig,
        options: ProcessOptions,
        progress: Optional[ProgressTracker] = None,
    ):
        self.provider_executor = provider_executor
        self.hooks = hooks
        self.resolver = resolver
        self.pool = pool
        self.config = config
        self.options = options
        self.progress = progress

    async def process_global_dimension(
        self,
        dimension: str,
        state: RunState,
        dependency_graph: dict[str, list[str]],
    ) -> DimensionResult:
        """Execute a global dimension and record its result in state.global_results."""
        self._callback("on_dimension_start", dimension)
        start = time.time()
        try:
            context = DimensionContext(
                process_id=state.process_id,
                dimension=dimension,
                is_global=True,
                sections=list(state.sections),
                dependencies=self.resolver.resolve_global_dependencies(
                    dimension,
                    state.global_results,
                    state.section_results.snapshot(),
                    len(state.sections),
                    dependency_graph,
                ),
                global_results=dict(state.global_results),
            )
            result = await self._execute(context, state.sections, len(state.sections))
        except Exception as e:
            logger.error(f"Global dimension '{dimension}' failed: {e}")
            notify_error(self.options, f"global-{dimension}", e)
            result = DimensionResult.failure(str(e))
            state.global_results[dimension] = result
            self._record(dimension, 0, result, time.time() - start)
            if not self.config.continue_on_error:
                raise
            return result

        state.global_results[dimension] = result
        self._record(dimension, 0, result, time.time() - start)
        self._callback("on_dimension_complete", dimension, result)
        return result

    async def process_section_dimension(
        self,
        dimension: str,
        state: RunState,
        dependency_graph: dict[str, list[str]],
    ) -> None:
        """Execute a section dimension for every current section on the worker pool."""
        self._callback("on_dimension_start", dimension)
        sections = list(state.sections)

        def job(index: int):
            return lambda: self._process_section(dimension, index, sections, state, dependency_graph)

        await self.pool.run_all(
            [job(i) for i in range(len(sections))],
            stop_on_error=not self.config.continue_on_error,
        )

        results = [state.section_results.get_result(i, dimension) for i in range(len(sections))]
        failed = sum(1 for r in results if r is not None and r.is_error)
        self._callback(
            "on_dimension_complete",
            dimension,
            DimensionResult(data={"sections": len(sections), "failed": failed}),
        )

    async def _process_section(
        self,
        dimension: str,
        index: int,
        sections: list[SectionData],
        state: RunState,
        dependency_graph: dict[str, list[str]],
    ) -> None:
        total = len(sections)
        section = sections[index]
        self._callback("on_section_start", index, total)
        start = time.time()
        try:
            context = DimensionContext(
                process_id=state.process_id,
                dimension=dimension,
                is_global=False,
                sections=[section],
                dependencies=self.resolver.resolve_section_dependencies(
                    dimension,
                    state.section_results.get(index),
                    state.global_results,
                    dependency_graph,
                ),
                global_results=dict(state.global_results),
                section=section,
                section_index=index,
            )
            result = await self._execute(context, [section], total)
        except Exception as e:
            logger.error(f"Dimension '{dimension}' failed for section {index}: {e}")
            notify_error(self.options, f"section-{index}-{dimension}", e)
            result = DimensionResult.failure(str(e))
            state.section_results.set(index, dimension, result)
            self._record(dimension, index, result, time.time() - start)
            self._callback("on_section_complete", index, total)
            if not self.config.continue_on_error:
                raise
            return

        state.section_results.set(index, dimension, result)
        self._record(dimension, index, result, time.time() - start)
        self._callback("on_section_complete", index, total)

    async def _execute(
        self,
        context: DimensionContext,
        sections: list[SectionData],
        total_sections: int,
    ) -> DimensionResult:
        skip = await self.hooks.should_skip(context)
        if isinstance(skip, SkipWithResult):
            logger.info(f"[{context.describe()}] Skipped with cached result")
            return cached_result(skip)
        if skip:
            logger.info(f"[{context.describe()}] Skipped by plugin")
            return skipped_result(SKIP_REASON_GLOBAL if context.is_global else SKIP_REASON_SECTION)

        context.dependencies = await self.hooks.transform_dependencies(context)

        failed = find_failed_dependencies(context.dependencies)
        if failed:
            if not self.config.continue_on_error:
                raise DependencyError(context.dimension, failed)
            logger.warning(
                f"[{context.describe()}] Executing with failed dependencies: "
                f"{', '.join(failed)}"
            )

        await self.hooks.before_dimension_execute(context)

        timeout = self.config.timeout_for(context.dimension)
        start = time.time()
        try:
            result = await asyncio.wait_for(
                self.provider_executor.execute(
                    context.dimension,
                    sections,
                    context.dependencies,
                    context.is_global,
                    context,
                    total_sections=total_sections,
                ),
                timeout=timeout,
            )
        except asyncio.TimeoutError as e:
            raise DimensionTimeoutError(context.dimension, timeout) from e
        duration = time.time() - start

        metadata = result.metadata
        await self.hooks.after_dimension_execute(DimensionResultContext(
            process_id=context.process_id,
            dimension=context.dimension,
            is_global=context.is_global,
            sections=context.sections,
            dependencies=context.dependencies,
            global_results=context.global_results,
            section=context.section,
            section_index=context.section_index,
            result=result,
            duration=duration,
            provider=(metadata.provider if metadata and metadata.provider else "unknown"),
            model=metadata.model if metadata else None,
            tokens_used=metadata.tokens if metadata else None,
            cost=metadata.cost if metadata else None,
        ))
        return result

    def _record(self, dimension: str, index: int, result: DimensionResult, duration: float) -> None:
        if self.progress is not None:
            self.progress.record(dimension, index, result, duration)

    def _callback(self, name: str, *args: Union[str, int, DimensionResult]) -> None:
        callback = getattr(self.options, name, None)
        if callback is None:
            return
        try:
            callback(*args)
        except Exception as e:
            logger.warning(f"{name} callback failed: {e}", exc_info=True)
