"""Dependency graph operations: ordering, wave grouping, analytics, exports.

Edges run ``dependency -> dimension``. Dependencies naming dimensions the
plugin does not declare are ignored here; the dependency resolver turns
them into error results at run time instead.
"""

import logging
from typing import Any, Optional

from dimflow.errors import CircularDependencyError, ExecutionGroupingError
from dimflow.plugin.base import Plugin
from dimflow.schemas import GraphAnalytics

logger = logging.getLogger(__name__)

BOTTLENECK_MIN_DEPENDENTS = 3

# DFS colors
_WHITE, _GREY, _BLACK = 0, 1, 2


def _known_deps(
    dimension: str,
    dependencies: dict[str, list[str]],
    known: set[str],
) -> list[str]:
    return [d for d in dependencies.get(dimension, []) if d in known]


def _build_edges(
    dimensions: list[str],
    dependencies: dict[str, list[str]],
) -> dict[str, list[str]]:
    """Successor lists, in declaration order, deduplicated."""
    known = set(dimensions)
    successors: dict[str, list[str]] = {d: [] for d in dimensions}
    for dim in dimensions:
        for dep in _known_deps(dim, dependencies, known):
            if dim not in successors[dep]:
                successors[dep].append(dim)
    return successors


def _find_cycle(nodes: list[str], successors: dict[str, list[str]]) -> list[str]:
    """Return one cycle among nodes as a closed path (first node repeated).

    Iterative three-color DFS; ``path`` mirrors the grey nodes on the stack.
    """
    node_set = set(nodes)
    color = {n: _WHITE for n in nodes}

    for root in nodes:
        if color[root] != _WHITE:
            continue
        color[root] = _GREY
        path = [root]
        stack = [(root, iter(successors.get(root, [])))]
        while stack:
            node, children = stack[-1]
            for nxt in children:
                if nxt not in node_set:
                    continue
                if color[nxt] == _GREY:
                    return path[path.index(nxt):] + [nxt]
                if color[nxt] == _WHITE:
                    color[nxt] = _GREY
                    path.append(nxt)
                    stack.append((nxt, iter(successors.get(nxt, []))))
                    break
            else:
                stack.pop()
                path.pop()
                color[node] = _BLACK
    return []


class DependencyGraphManager:
    """Builds and analyzes the dimension dependency graph."""

    def __init__(self, plugin: Optional[Plugin] = None):
        self.plugin = plugin

    def build_and_sort(
        self,
        dimensions: list[str],
        dependencies: dict[str, list[str]],
    ) -> list[str]:
        """Topologically sort dimensions (Kahn's algorithm).

        Ties are broken by declaration order, so independent dimensions keep
        the order the plugin lists them in.

        Raises:
            CircularDependencyError: If the dependency map has a cycle.
        """
        successors = _build_edges(dimensions, dependencies)
        in_degree = {d: 0 for d in dimensions}
        for dim in dimensions:
            for nxt in successors[dim]:
                in_degree[nxt] += 1

        position = {d: i for i, d in enumerate(dimensions)}
        ready = [d for d in dimensions if in_degree[d] == 0]
        ordered: list[str] = []

        while ready:
            ready.sort(key=position.__getitem__)
            node = ready.pop(0)
            ordered.append(node)
            for nxt in successors[node]:
                in_degree[nxt] -= 1
                if in_degree[nxt] == 0:
                    ready.append(nxt)

        if len(ordered) < len(dimensions):
            done = set(ordered)
            remaining = [d for d in dimensions if d not in done]
            cycle = _find_cycle(remaining, successors)
            logger.error(f"Circular dependency: {' -> '.join(cycle)}")
            raise CircularDependencyError(cycle)

        return ordered

    def group_for_parallel_execution(
        self,
        sorted_dimensions: list[str],
        dependencies: dict[str, list[str]],
    ) -> list[list[str]]:
        """Build execution waves.

        Returns a list of groups. Dimensions within a group have all
        dependencies satisfied by earlier groups and can run in parallel.
        Groups must execute sequentially.

        Example for classify -> group -> analyze, with summary independent:
        - Group 1: [classify, summary]
        - Group 2: [group]
        - Group 3: [analyze]

        Raises:
            ExecutionGroupingError: If a pass admits no dimension.
        """
        known = set(sorted_dimensions)
        processed: set[str] = set()
        remaining = list(sorted_dimensions)
        groups: list[list[str]] = []

        while remaining:
            current = [
                dim for dim in remaining
                if all(dep in processed for dep in _known_deps(dim, dependencies, known))
            ]

            if not current:
                stuck = [
                    f"{dim} (waiting for: "
                    f"{', '.join(d for d in _known_deps(dim, dependencies, known) if d not in processed) or 'none'})"
                    for dim in remaining
                ]
                raise ExecutionGroupingError(
                    remaining,
                    {"stuck": stuck, "processed": sorted(processed)},
                )

            groups.append(current)
            processed.update(current)
            remaining = [d for d in remaining if d not in processed]

        logger.debug(f"Execution waves: {groups}")
        return groups

    def get_analytics(
        self,
        dimensions: list[str],
        dependencies: dict[str, list[str]],
    ) -> GraphAnalytics:
        ordered = self.build_and_sort(dimensions, dependencies)
        successors = _build_edges(dimensions, dependencies)
        known = set(dimensions)

        # Longest chain ending at each node, computed in topological order
        longest: dict[str, list[str]] = {}
        for dim in ordered:
            best: list[str] = []
            for dep in _known_deps(dim, dependencies, known):
                if len(longest[dep]) > len(best):
                    best = longest[dep]
            longest[dim] = best + [dim]

        critical_path: list[str] = []
        for dim in dimensions:
            if len(longest[dim]) > len(critical_path):
                critical_path = longest[dim]

        bottlenecks = sorted(
            (d for d in dimensions if len(successors[d]) >= BOTTLENECK_MIN_DEPENDENTS),
            key=lambda d: -len(successors[d]),
        )

        return GraphAnalytics(
            total_dimensions=len(dimensions),
            total_dependencies=sum(len(deps) for deps in dependencies.values()),
            max_depth=len(critical_path),
            critical_path=critical_path,
            parallel_groups=self._find_parallel_groups(dimensions, dependencies),
            independent_dimensions=[d for d in dimensions if not dependencies.get(d)],
            bottlenecks=bottlenecks,
        )

    def export_dot(
        self,
        dimensions: list[str],
        dependencies: dict[str, list[str]],
    ) -> str:
        """Render the graph as Graphviz DOT text."""
        self.build_and_sort(dimensions, dependencies)
        successors = _build_edges(dimensions, dependencies)

        lines = [
            "digraph DagWorkflow {",
            "  rankdir=LR;",
            "  node [shape=box, style=rounded];",
            "",
        ]
        for dim in dimensions:
            if self._is_global(dim):
                lines.append(f'  "{dim}" [fillcolor="lightblue", style="filled", shape="box"];')
            else:
                lines.append(f'  "{dim}" [fillcolor="lightgreen", style="filled", shape="ellipse"];')
        lines.append("")
        for dim in dimensions:
            for nxt in successors[dim]:
                lines.append(f'  "{dim}" -> "{nxt}";')
        lines.append("}")
        return "\n".join(lines) + "\n"

    def export_json(
        self,
        dimensions: list[str],
        dependencies: dict[str, list[str]],
    ) -> dict[str, Any]:
        """Nodes (with scope type) and links, for programmatic use."""
        self.build_and_sort(dimensions, dependencies)
        successors = _build_edges(dimensions, dependencies)
        return {
            "nodes": [
                {"id": d, "label": d, "type": "global" if self._is_global(d) else "section"}
                for d in dimensions
            ],
            "links": [
                {"source": d, "target": nxt}
                for d in dimensions
                for nxt in successors[d]
            ],
        }

    def _is_global(self, dimension: str) -> bool:
        if self.plugin is None or not self.plugin.has_dimension(dimension):
            return False
        return self.plugin.is_global_dimension(dimension)

    @staticmethod
    def _find_parallel_groups(
        dimensions: list[str],
        dependencies: dict[str, list[str]],
    ) -> list[list[str]]:
        """Dimensions sharing an identical dependency set (groups of 2+)."""
        groups: dict[frozenset, list[str]] = {}
        for dim in dimensions:
            groups.setdefault(frozenset(dependencies.get(dim, [])), []).append(dim)
        return [g for g in groups.values() if len(g) > 1]
