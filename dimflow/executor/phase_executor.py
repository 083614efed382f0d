"""Run phases for one DagEngine.process() call.

1. pre_process: before_process_start hook, section validation
2. plan_execution: dependency map, topological order, waves
3. execute_dimensions: waves in order; global dimensions concurrently,
   then their reshapes in wave order, then section dimensions one by one
4. finalize_results: finalize_results hook, cost summary
5. post_process: after_process_complete hook

handle_failure offers anything escaping the phases to
handle_process_failure along with the partial results.
"""

import asyncio
import logging
from typing import Optional

from dimflow.analysis.cost_calculator import CostCalculator
from dimflow.config import ExecutionConfig
from dimflow.errors import NoSectionsError
from dimflow.executor.dependency_resolver import DependencyResolver
from dimflow.executor.dimension_executor import DimensionExecutor
from dimflow.executor.hook_executor import HookExecutor
from dimflow.executor.progress import ProgressTracker
from dimflow.executor.provider_executor import ProviderExecutor
from dimflow.executor.state import RunState
from dimflow.executor.transformation_manager import TransformationManager
from dimflow.executor.worker_pool import WorkerPool
from dimflow.graph.manager import DependencyGraphManager
from dimflow.plugin.base import Plugin
from dimflow.plugin.contexts import (
    FinalizeContext,
    ProcessContext,
    ProcessFailureContext,
    ProcessOptions,
    ProcessResultContext,
)
from dimflow.providers.registry import ProviderAdapter
from dimflow.schemas import DimensionResult, ExecutionPlan, ProcessResult, SectionResults

logger = logging.getLogger(__name__)

SECTION_KEY = "{dimension}_section_{index}"


def flatten_results(
    section_results: list[SectionResults],
    global_results: dict[str, DimensionResult],
) -> dict[str, DimensionResult]:
    """Global results by name plus ``<dim>_section_<i>`` keys for section results."""
    flat = dict(global_results)
    for index, entry in enumerate(section_results):
        for dimension, result in entry.results.items():
            flat[SECTION_KEY.format(dimension=dimension, index=index)] = result
    return flat


def apply_finalized_results(
    section_results: list[SectionResults],
    finalized: dict[str, DimensionResult],
    global_results: dict[str, DimensionResult],
) -> list[SectionResults]:
    """Swap in replacements from finalize_results. Only existing keys are replaced."""
    updated = []
    for index, entry in enumerate(section_results):
        results = {
            dimension: finalized.get(SECTION_KEY.format(dimension=dimension, index=index)) or result
            for dimension, result in entry.results.items()
        }
        updated.append(SectionResults(section=entry.section, results=results))

    for dimension in list(global_results):
        if finalized.get(dimension) is not None:
            global_results[dimension] = finalized[dimension]
    return updated


def count_outcomes(
    section_results: list[SectionResults],
    global_results: dict[str, DimensionResult],
) -> tuple[int, int]:
    """(successful, failed) dimensions.

    A section dimension counts as failed if it failed on any section.
    """
    failed: dict[str, bool] = {name: r.is_error for name, r in global_results.items()}
    for entry in section_results:
        for dimension, result in entry.results.items():
            failed[dimension] = failed.get(dimension, False) or result.is_error
    failed_count = sum(failed.values())
    return len(failed) - failed_count, failed_count


class PhaseExecutor:
    """Owns the per-run executors. Build one per process() call."""

    def __init__(
        self,
        plugin: Plugin,
        adapter: ProviderAdapter,
        config: ExecutionConfig,
        options: Optional[ProcessOptions] = None,
        cost_calculator: Optional[CostCalculator] = None,
    ):
        self.plugin = plugin
        self.adapter = adapter
        self.config = config
        self.options = options or ProcessOptions()
        self.cost_calculator = cost_calculator

        self.hooks = HookExecutor(plugin, self.options)
        self.graph_manager = DependencyGraphManager(plugin)
        self.resolver = DependencyResolver(plugin)
        self.pool = WorkerPool(config.concurrency)
        self.progress: Optional[ProgressTracker] = None
        self.transformations: Optional[TransformationManager] = None
        self.dimension_executor: Optional[DimensionExecutor] = None

    def _process_context(self, state: RunState) -> ProcessContext:
        return ProcessContext(
            process_id=state.process_id,
            sections=list(state.sections),
            options=self.options,
            metadata=state.metadata,
        )

    # --- Phase 1 ---

    async def pre_process(self, state: RunState) -> None:
        """Apply before_process_start.

        Raises:
            NoSectionsError: If no sections remain.
        """
        start = await self.hooks.before_process_start(self._process_context(state))
        if start is not None:
            if start.sections is not None:
                state.replace_sections(start.sections)
            if start.metadata is not None:
                state.metadata = start.metadata

        if not state.sections:
            raise NoSectionsError()

    # --- Phase 2 ---

    async def plan_execution(self, state: RunState) -> ExecutionPlan:
        dependency_graph = await self.hooks.define_dependencies(self._process_context(state))
        names = self.plugin.get_dimension_names()
        sorted_dimensions = self.graph_manager.build_and_sort(names, dependency_graph)
        groups = self.graph_manager.group_for_parallel_execution(sorted_dimensions, dependency_graph)

        logger.info(
            f"Planned {len(sorted_dimensions)} dimensions in {len(groups)} wave(s) "
            f"for {len(state.sections)} sections"
        )
        return ExecutionPlan(
            sorted_dimensions=sorted_dimensions,
            execution_groups=groups,
            dependency_graph=dependency_graph,
        )

    # --- Phase 3 ---

    def _initialize_executors(self, state: RunState) -> None:
        names = self.plugin.get_dimension_names()
        global_dims = {n for n in names if self.plugin.is_global_dimension(n)}
        self.progress = ProgressTracker(
            total_sections=len(state.sections),
            dimension_names=names,
            global_dimensions=global_dims,
            on_progress=self.options.on_progress,
            update_every=self.options.update_every,
            cost_calculator=self.cost_calculator,
        )
        self.transformations = TransformationManager(
            self.plugin, self.hooks, self.options, self.progress,
        )
        provider_executor = ProviderExecutor(self.adapter, self.plugin, self.hooks, self.config)
        self.dimension_executor = DimensionExecutor(
            provider_executor,
            self.hooks,
            self.resolver,
            self.pool,
            self.config,
            self.options,
            self.progress,
        )

    async def execute_dimensions(self, state: RunState, plan: ExecutionPlan) -> None:
        self._initialize_executors(state)

        for wave_index, group in enumerate(plan.execution_groups, start=1):
            global_dims = [d for d in group if self.plugin.is_global_dimension(d)]
            section_dims = [d for d in group if not self.plugin.is_global_dimension(d)]
            logger.info(
                f"Wave {wave_index}/{len(plan.execution_groups)}: "
                f"global={global_dims}, section={section_dims}"
            )

            if global_dims:
                outcomes = await asyncio.gather(
                    *(
                        self.dimension_executor.process_global_dimension(
                            dimension, state, plan.dependency_graph,
                        )
                        for dimension in global_dims
                    ),
                    return_exceptions=True,
                )
                for outcome in outcomes:
                    if isinstance(outcome, BaseException):
                        raise outcome
                for dimension in global_dims:
                    result = state.global_results.get(dimension)
                    if result is not None:
                        await self.transformations.apply_transformation(dimension, result, state)

            for dimension in section_dims:
                await self.dimension_executor.process_section_dimension(
                    dimension, state, plan.dependency_graph,
                )

    # --- Phase 4 ---

    async def finalize_results(self, state: RunState) -> ProcessResult:
        section_results = state.build_section_results()

        finalized = await self.hooks.finalize_results(FinalizeContext(
            process_id=state.process_id,
            results=flatten_results(section_results, state.global_results),
            sections=list(state.sections),
            global_results=dict(state.global_results),
            transformed_sections=list(state.sections),
            duration=state.elapsed(),
        ))
        if finalized:
            section_results = apply_finalized_results(
                section_results, finalized, state.global_results,
            )

        costs = None
        if self.cost_calculator is not None:
            costs = self.cost_calculator.calculate(section_results, state.global_results)

        return ProcessResult(
            sections=section_results,
            global_results=dict(state.global_results),
            transformed_sections=list(state.sections),
            costs=costs,
            metadata=state.metadata,
        )

    # --- Phase 5 ---

    async def post_process(
        self,
        state: RunState,
        result: ProcessResult,
        plan: ExecutionPlan,
    ) -> ProcessResult:
        successful, failed = count_outcomes(result.sections, result.global_results)
        replacement = await self.hooks.after_process_complete(ProcessResultContext(
            process_id=state.process_id,
            sections=list(state.sections),
            options=self.options,
            metadata=state.metadata,
            result=result,
            duration=state.elapsed(),
            total_dimensions=len(plan.sorted_dimensions),
            successful_dimensions=successful,
            failed_dimensions=failed,
        ))
        return replacement or result

    # --- Failure ---

    async def handle_failure(self, state: RunState, error: Exception) -> ProcessResult:
        """Offer a failed run to handle_process_failure; re-raise if not recovered."""
        partial = ProcessResult(
            sections=state.build_section_results(),
            global_results=dict(state.global_results),
            transformed_sections=list(state.sections),
            metadata=state.metadata,
        )
        recovered = await self.hooks.handle_process_failure(ProcessFailureContext(
            process_id=state.process_id,
            sections=list(state.sections),
            options=self.options,
            metadata=state.metadata,
            error=error,
            partial_results=partial,
            duration=max(state.elapsed(), 0.001),
        ))
        if recovered is not None:
            logger.info(f"Run {state.process_id} recovered by handle_process_failure")
            return recovered
        raise error
