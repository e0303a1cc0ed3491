"""Tests for task resolution and plan expansion."""

from __future__ import annotations

import pytest

from procyard.exceptions import (
    ConfigError,
    DuplicateNameError,
    TaskCycleError,
    TaskNotFoundError,
)
from procyard.tasks.graph import TaskGraph
from procyard.types import GroupTask, LeafTask, ProcessRefTask, ProcessSpec


def _graph(*tasks, processes=()):
    return TaskGraph(tasks, processes)


def test_separators_address_the_same_task():
    graph = _graph(LeafTask(name="build.frontend", cmd="npm run build"))
    assert graph.resolve("build:frontend") == graph.resolve("build.frontend") == "build.frontend"
    assert graph.plan("build:frontend").display_name == "build:frontend"


def test_unknown_task():
    graph = _graph(LeafTask(name="lint", cmd="ruff"))
    with pytest.raises(TaskNotFoundError):
        graph.plan("test")


def test_namespace_is_not_a_task():
    graph = _graph(LeafTask(name="build.frontend", cmd="x"))
    with pytest.raises(TaskNotFoundError, match="namespace"):
        graph.plan("build")


def test_children_resolve_in_group_scope_first():
    graph = _graph(
        LeafTask(name="lint", cmd="top-level lint"),
        LeafTask(name="ci.lint", cmd="ci lint"),
        GroupTask(name="ci", children=["lint"]),
    )
    plan = graph.plan("ci")
    assert [c.name for c in plan.children] == ["ci.lint"]


def test_children_fall_back_to_enclosing_namespaces():
    graph = _graph(
        LeafTask(name="lint", cmd="ruff"),
        LeafTask(name="build.frontend.compile", cmd="tsc"),
        GroupTask(name="build.frontend.all", children=["compile", "lint"]),
    )
    plan = graph.plan("build:frontend:all")
    assert [c.name for c in plan.children] == ["build.frontend.compile", "lint"]


def test_children_with_separator_are_absolute():
    graph = _graph(
        LeafTask(name="build.frontend", cmd="x"),
        LeafTask(name="ci.build.frontend", cmd="y"),
        GroupTask(name="ci", children=["build:frontend"]),
    )
    plan = graph.plan("ci")
    assert [c.name for c in plan.children] == ["build.frontend"]


def test_dangling_child_names_the_group():
    graph = _graph(GroupTask(name="ci", children=["missing"]))
    with pytest.raises(TaskNotFoundError, match="ci"):
        graph.plan("ci")


def test_direct_cycle():
    graph = _graph(GroupTask(name="a", children=["a"]))
    with pytest.raises(TaskCycleError) as exc:
        graph.plan("a")
    assert exc.value.chain == ["a", "a"]


def test_indirect_cycle_is_detected_without_recursing():
    graph = _graph(
        GroupTask(name="a", children=["b"]),
        GroupTask(name="b", children=["c"]),
        GroupTask(name="c", children=["a"]),
    )
    with pytest.raises(TaskCycleError, match="a -> b -> c -> a"):
        graph.validate()


def test_diamond_is_not_a_cycle():
    graph = _graph(
        LeafTask(name="base", cmd="true"),
        GroupTask(name="left", children=["base"]),
        GroupTask(name="right", children=["base"]),
        GroupTask(name="top", children=["left", "right"]),
    )
    names = [n.name for n in graph.plan("top").walk()]
    assert names == ["top", "left", "base", "right", "base"]


def test_deep_chain_does_not_hit_recursion_limit():
    tasks = [GroupTask(name=f"t{i}", children=[f"t{i + 1}"]) for i in range(3000)]
    tasks.append(LeafTask(name="t3000", cmd="true"))
    plan = TaskGraph(tasks).plan("t0")
    assert sum(1 for _ in plan.walk()) == 3001


def test_process_reference_resolves_specs():
    web = ProcessSpec(name="web", command="serve")
    graph = _graph(ProcessRefTask(name="dev", processes=["web"]), processes=[web])
    assert graph.plan("dev").processes == [web]


def test_unknown_process_reference():
    graph = _graph(ProcessRefTask(name="dev", processes=["nope"]))
    with pytest.raises(ConfigError, match="nope"):
        graph.plan("dev")


def test_duplicate_task_names():
    with pytest.raises(DuplicateNameError):
        _graph(LeafTask(name="a.b", cmd="x"), LeafTask(name="a:b", cmd="y"))


def test_duplicate_process_names():
    with pytest.raises(DuplicateNameError):
        _graph(processes=[ProcessSpec(name="w", command="x"), ProcessSpec(name="w", command="y")])


def test_group_cannot_carry_cwd():
    with pytest.raises(ValueError):
        GroupTask(name="ci", children=["a"], cwd="sub")
