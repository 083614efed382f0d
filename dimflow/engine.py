"""DagEngine: the public entry point.

    engine = DagEngine(
        plugin=MyPlugin(),
        providers={"anthropic": {}},
        execution={"concurrency": 10, "max_retries": 2},
    )
    result = await engine.process([SectionData(content="...")])
"""

import logging
from typing import Any, Mapping, Optional, Union

from dimflow.analysis.cost_calculator import CostCalculator
from dimflow.config import (
    EngineConfig,
    ExecutionConfig,
    ProvidersSpec,
    build_execution_config,
    validate_engine_config,
)
from dimflow.errors import NoProvidersError
from dimflow.executor.phase_executor import PhaseExecutor
from dimflow.executor.state import RunState
from dimflow.graph.manager import DependencyGraphManager
from dimflow.plugin.base import Plugin
from dimflow.plugin.contexts import ProcessOptions
from dimflow.providers.registry import ProviderAdapter, create_provider_adapter
from dimflow.schemas import GraphAnalytics, PricingConfig, ProcessResult, SectionData

logger = logging.getLogger(__name__)


class DagEngine:
    def __init__(
        self,
        plugin: Optional[Plugin] = None,
        providers: Optional[ProvidersSpec] = None,
        execution: Optional[Union[ExecutionConfig, Mapping[str, Any]]] = None,
        pricing: Optional[PricingConfig] = None,
        config: Optional[EngineConfig] = None,
    ):
        if config is None:
            if not isinstance(execution, ExecutionConfig):
                execution = build_execution_config(execution)
            config = EngineConfig(
                plugin=plugin,
                providers=providers,
                execution=execution,
                pricing=pricing,
            )
        validate_engine_config(config)

        self.plugin: Plugin = config.plugin
        self.config = config
        self.adapter = create_provider_adapter(config.providers)
        if not self.adapter.list_providers():
            raise NoProvidersError()

        self.graph_manager = DependencyGraphManager(self.plugin)
        self.cost_calculator = CostCalculator(config.pricing) if config.pricing else None
        self._dependency_graph: Optional[dict[str, list[str]]] = None

        logger.info(
            f"DagEngine ready: plugin={self.plugin.id}, "
            f"dimensions={len(self.plugin.get_dimension_names())}, "
            f"providers={self.adapter.list_providers()}"
        )

    async def process(
        self,
        sections: list[SectionData],
        options: Optional[ProcessOptions] = None,
    ) -> ProcessResult:
        """Run every dimension over sections.

        Raises:
            NoSectionsError: No sections (after before_process_start).
            CircularDependencyError: The dependency map has a cycle.
            DagEngineError: Any run-level failure not recovered by
                handle_process_failure.
        """
        options = options or ProcessOptions()
        state = RunState.create(
            [s if isinstance(s, SectionData) else SectionData.model_validate(s) for s in sections],
            process_id=options.process_id,
        )
        phases = PhaseExecutor(
            self.plugin,
            self.adapter,
            self.config.execution,
            options,
            self.cost_calculator,
        )

        logger.info(f"Process {state.process_id} started: {len(state.sections)} sections")
        try:
            await phases.pre_process(state)
            plan = await phases.plan_execution(state)
            self._dependency_graph = plan.dependency_graph
            await phases.execute_dimensions(state, plan)
            result = await phases.finalize_results(state)
            result = await phases.post_process(state, result, plan)
        except Exception as e:
            logger.error(f"Process {state.process_id} failed: {e}", exc_info=True)
            return await phases.handle_failure(state, e)

        logger.info(f"Process {state.process_id} completed in {state.elapsed():.2f}s")
        return result

    def _graph_inputs(self) -> tuple[list[str], dict[str, list[str]]]:
        deps = self._dependency_graph
        if deps is None:
            deps = dict(self.plugin.get_dependencies() or {})
        return self.plugin.get_dimension_names(), deps

    def get_graph_analytics(self) -> GraphAnalytics:
        """Analytics over the dependency map of the last run (or the static one)."""
        return self.graph_manager.get_analytics(*self._graph_inputs())

    def export_graph_dot(self) -> str:
        return self.graph_manager.export_dot(*self._graph_inputs())

    def export_graph_json(self) -> dict[str, Any]:
        return self.graph_manager.export_json(*self._graph_inputs())

    def get_available_providers(self) -> list[str]:
        return self.adapter.list_providers()

    def get_execution_config(self) -> ExecutionConfig:
        return self.config.execution.model_copy()

    def get_adapter(self) -> ProviderAdapter:
        return self.adapter
