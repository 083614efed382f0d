import pytest

from dimflow.errors import CircularDependencyError, ExecutionGroupingError
from dimflow.graph.manager import DependencyGraphManager
from dimflow.schemas import DimensionConfig, DimensionScope
from tests.helpers import RecordingPlugin


def _assert_valid_order(order, deps):
    position = {d: i for i, d in enumerate(order)}
    for dim, dim_deps in deps.items():
        for dep in dim_deps:
            if dep in position:
                assert position[dep] < position[dim], f"{dep} must precede {dim}"


def test_sort_respects_dependencies():
    manager = DependencyGraphManager()
    names = ["analyze", "group", "classify", "summary"]
    deps = {"group": ["classify"], "analyze": ["group", "classify"]}

    order = manager.build_and_sort(names, deps)

    assert sorted(order) == sorted(names)
    _assert_valid_order(order, deps)


def test_sort_keeps_declaration_order_for_independent_dimensions():
    manager = DependencyGraphManager()
    assert manager.build_and_sort(["c", "a", "b"], {}) == ["c", "a", "b"]


def test_unknown_dependencies_are_ignored_for_ordering():
    manager = DependencyGraphManager()
    order = manager.build_and_sort(["a", "b"], {"b": ["a", "missing"]})
    assert order == ["a", "b"]


def test_cycle_reports_real_path():
    manager = DependencyGraphManager()
    names = ["root", "a", "b", "c"]
    deps = {"a": ["root", "c"], "b": ["a"], "c": ["b"]}

    with pytest.raises(CircularDependencyError) as exc_info:
        manager.build_and_sort(names, deps)

    cycle = exc_info.value.cycle
    assert cycle[0] == cycle[-1]
    assert set(cycle[:-1]) == {"a", "b", "c"}
    assert "root" not in cycle
    assert exc_info.value.code == "CIRCULAR_DEPENDENCY"
    # consecutive pairs are real edges dep -> dependent
    for dep, dependent in zip(cycle, cycle[1:]):
        assert dep in deps[dependent]


def test_self_dependency_is_a_cycle():
    manager = DependencyGraphManager()
    with pytest.raises(CircularDependencyError) as exc_info:
        manager.build_and_sort(["a"], {"a": ["a"]})
    assert exc_info.value.cycle == ["a", "a"]


def test_long_cycle_is_reported_without_recursion_limit():
    names = [f"d{i}" for i in range(1500)]
    deps = {f"d{i}": [f"d{i - 1}"] for i in range(1, 1500)}
    deps["d0"] = ["d1499"]

    with pytest.raises(CircularDependencyError) as exc_info:
        DependencyGraphManager().build_and_sort(names, deps)

    cycle = exc_info.value.cycle
    assert len(cycle) == 1501
    assert cycle[0] == cycle[-1]
    for dep, dependent in zip(cycle, cycle[1:]):
        assert dep in deps[dependent]


def test_waves_only_depend_on_earlier_waves():
    manager = DependencyGraphManager()
    names = ["classify", "summary", "group", "analyze"]
    deps = {"group": ["classify"], "analyze": ["group"]}

    waves = manager.group_for_parallel_execution(manager.build_and_sort(names, deps), deps)

    assert waves == [["classify", "summary"], ["group"], ["analyze"]]


def test_grouping_error_names_stuck_dimensions():
    manager = DependencyGraphManager()
    with pytest.raises(ExecutionGroupingError) as exc_info:
        manager.group_for_parallel_execution(["a", "b"], {"a": ["b"], "b": ["a"]})
    assert exc_info.value.stuck == ["a", "b"]
    assert exc_info.value.code == "EXECUTION_GROUPING_ERROR"
    assert "a (waiting for: b)" in exc_info.value.details["stuck"]


def test_analytics():
    manager = DependencyGraphManager()
    names = ["base", "x", "y", "z", "final"]
    deps = {"x": ["base"], "y": ["base"], "z": ["base"], "final": ["x", "y"]}

    analytics = manager.get_analytics(names, deps)

    assert analytics.total_dimensions == 5
    assert analytics.total_dependencies == 5
    assert analytics.max_depth == 3
    assert analytics.critical_path in (["base", "x", "final"], ["base", "y", "final"])
    assert analytics.independent_dimensions == ["base"]
    assert analytics.bottlenecks == ["base"]
    assert ["x", "y", "z"] in analytics.parallel_groups


def test_exports_include_scope():
    plugin = RecordingPlugin(
        dimensions=["item", DimensionConfig(name="batch", scope=DimensionScope.GLOBAL)],
        dependencies={"batch": ["item"]},
    )
    manager = DependencyGraphManager(plugin)
    names = plugin.get_dimension_names()
    deps = plugin.get_dependencies()

    exported = manager.export_json(names, deps)
    assert {"id": "batch", "label": "batch", "type": "global"} in exported["nodes"]
    assert {"id": "item", "label": "item", "type": "section"} in exported["nodes"]
    assert exported["links"] == [{"source": "item", "target": "batch"}]

    dot = manager.export_dot(names, deps)
    assert dot.startswith("digraph DagWorkflow {")
    assert '"item" -> "batch";' in dot
    assert '"batch" [fillcolor="lightblue"' in dot
