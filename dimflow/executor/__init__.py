"""Execution machinery for a single run."""

from dimflow.executor.dependency_resolver import DependencyResolver
from dimflow.executor.dimension_executor import DimensionExecutor
from dimflow.executor.hook_executor import HookExecutor
from dimflow.executor.phase_executor import PhaseExecutor
from dimflow.executor.progress import ProgressTracker
from dimflow.executor.provider_executor import ProviderExecutor
from dimflow.executor.state import RunState, SectionResultsTable
from dimflow.executor.transformation_manager import TransformationManager
from dimflow.executor.worker_pool import WorkerPool

__all__ = [
    "DependencyResolver",
    "DimensionExecutor",
    "HookExecutor",
    "PhaseExecutor",
    "ProgressTracker",
    "ProviderExecutor",
    "RunState",
    "SectionResultsTable",
    "TransformationManager",
    "WorkerPool",
]
