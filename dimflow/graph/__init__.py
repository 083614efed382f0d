"""Dependency graph: ordering, waves, analytics."""

from dimflow.graph.manager import DependencyGraphManager

__all__ = ["DependencyGraphManager"]
