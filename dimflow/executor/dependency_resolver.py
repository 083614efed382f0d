"""Builds the dependency inputs a dimension execution receives.

Resolution never raises: anything missing becomes an error-valued
DimensionResult, and the dimension executor decides what to do with it.

A section dimension consumed by a global dimension is delivered as one
aggregated result:

    {"per_item_results": [...], "aggregated": True, "total_items": N}

with exactly one entry per current section, in section order.
"""

import logging
from typing import Optional

from dimflow.errors import DependencyNotFoundError
from dimflow.plugin.base import Plugin
from dimflow.schemas import DimensionResult

logger = logging.getLogger(__name__)


class DependencyResolver:
    def __init__(self, plugin: Plugin):
        self.plugin = plugin

    def resolve_global_dependencies(
        self,
        dimension: str,
        global_results: dict[str, DimensionResult],
        section_results: list[dict[str, DimensionResult]],
        total_sections: int,
        dependency_graph: dict[str, list[str]],
    ) -> dict[str, DimensionResult]:
        deps: dict[str, DimensionResult] = {}
        for dep in dependency_graph.get(dimension, []):
            if not self.plugin.has_dimension(dep):
                deps[dep] = _missing(dep, "plugin")
            elif self.plugin.is_global_dimension(dep):
                deps[dep] = global_results.get(dep) or _missing(dep, "global")
            else:
                deps[dep] = self._aggregate(dep, section_results, total_sections)
        return deps

    def resolve_section_dependencies(
        self,
        dimension: str,
        section_results: dict[str, DimensionResult],
        global_results: dict[str, DimensionResult],
        dependency_graph: dict[str, list[str]],
    ) -> dict[str, DimensionResult]:
        deps: dict[str, DimensionResult] = {}
        for dep in dependency_graph.get(dimension, []):
            if not self.plugin.has_dimension(dep):
                deps[dep] = _missing(dep, "plugin")
            elif self.plugin.is_global_dimension(dep):
                deps[dep] = global_results.get(dep) or _missing(dep, "global")
            else:
                deps[dep] = section_results.get(dep) or _missing(dep, "section")
        return deps

    @staticmethod
    def _aggregate(
        dep: str,
        section_results: list[dict[str, DimensionResult]],
        total_sections: int,
    ) -> DimensionResult:
        per_item: list[Optional[DimensionResult]] = [
            section_results[i].get(dep) if i < len(section_results) else None
            for i in range(total_sections)
        ]
        if not any(per_item):
            return _missing(dep, "unprocessed")

        placeholder = _missing(dep, "section")
        return DimensionResult(
            data={
                "per_item_results": [r if r is not None else placeholder for r in per_item],
                "aggregated": True,
                "total_items": total_sections,
            }
        )


def _missing(dep: str, context: str) -> DimensionResult:
    return DimensionResult.failure(DependencyNotFoundError(dep, context).message)


def find_failed_dependencies(deps: dict[str, DimensionResult]) -> dict[str, str]:
    """``name -> error`` for every dependency that resolved to an error."""
    return {name: result.error for name, result in deps.items() if result.is_error}
