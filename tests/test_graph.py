from __future__ import annotations

from dataclasses import dataclass

import allure
import pytest

from dagtasks.tracker.errors import GraphIntegrityError
from dagtasks.tracker.graph import (
    active_subgraph,
    build_dependency_map,
    find_cycle,
    find_order_conflicts,
    reachable_prerequisites,
    select_next,
    topological_order,
)
from dagtasks.tracker.models import TaskStatus

pytestmark = [
    allure.epic("Task Graph"),
    allure.feature("Graph Engine"),
]


@dataclass(slots=True)
class _Node:
    id: int
    manual_order: float
    status: TaskStatus = TaskStatus.PENDING


def _ids(nodes: list[_Node]) -> list[int]:
    return [node.id for node in nodes]


# Diamond: B and C depend on A, D depends on B and C.
A, B, C, D = 1, 2, 3, 4
DIAMOND_EDGES = [(B, A), (C, A), (D, B), (D, C)]


def test_diamond_places_root_first_and_sink_last() -> None:
    nodes = [_Node(D, 5.0), _Node(C, 30.0), _Node(B, 20.0), _Node(A, 40.0)]

    ordered = _ids(topological_order(nodes, DIAMOND_EDGES))

    assert ordered == [A, B, C, D]


def test_diamond_manual_order_only_swaps_independent_branches() -> None:
    nodes = [_Node(A, 10.0), _Node(B, 30.0), _Node(C, 20.0), _Node(D, 40.0)]

    ordered = _ids(topological_order(nodes, DIAMOND_EDGES))

    assert ordered == [A, C, B, D]


def test_topological_order_breaks_ties_by_id() -> None:
    nodes = [_Node(3, 10.0), _Node(1, 10.0), _Node(2, 10.0)]

    assert _ids(topological_order(nodes, [])) == [1, 2, 3]


def test_topological_order_ignores_edges_leaving_the_subset() -> None:
    nodes = [_Node(2, 20.0), _Node(3, 10.0)]

    ordered = _ids(topological_order(nodes, [(2, 1), (3, 2)]))

    assert ordered == [2, 3]


def test_topological_order_rejects_cyclic_edges() -> None:
    nodes = [_Node(1, 10.0), _Node(2, 20.0), _Node(3, 30.0)]

    with pytest.raises(GraphIntegrityError) as error:
        topological_order(nodes, [(1, 2), (2, 1)])

    assert error.value.unresolved == [1, 2]


def test_find_cycle_reports_path_closed_by_new_edge() -> None:
    edges = [(1, 2), (2, 3)]

    assert find_cycle(edges, 3, 1) == [1, 2, 3, 1]


def test_find_cycle_returns_none_for_safe_edge() -> None:
    edges = [(1, 2), (2, 3)]

    assert find_cycle(edges, 1, 3) is None
    assert find_cycle(DIAMOND_EDGES, D, A) is None


def test_find_cycle_rejects_self_edge() -> None:
    assert find_cycle([], 5, 5) == [5, 5]


def test_find_order_conflicts_flags_prerequisite_with_higher_order() -> None:
    nodes = [_Node(1, 50.0), _Node(2, 10.0)]
    edges = [(2, 1)]
    ordered = topological_order(nodes, edges)

    conflicts = find_order_conflicts(ordered, edges)

    assert _ids(ordered) == [1, 2]
    assert len(conflicts) == 1
    assert conflicts[0].task_id == 2
    assert conflicts[0].depends_on == 1
    assert conflicts[0].code == "order_conflict"


def test_find_order_conflicts_skips_completed_prerequisites() -> None:
    nodes = [_Node(1, 50.0, TaskStatus.COMPLETED), _Node(2, 10.0)]
    edges = [(2, 1)]

    assert find_order_conflicts(topological_order(nodes, edges), edges) == []


def test_reachable_prerequisites_includes_target() -> None:
    edges = [(10, 11), (11, 12), (20, 21)]

    assert reachable_prerequisites(10, edges) == {10, 11, 12}
    assert reachable_prerequisites(12, edges) == {12}


def test_active_subgraph_drops_completed_but_keeps_their_prerequisites() -> None:
    target, x, y = 1, 2, 3
    edges = [(target, x), (x, y)]

    only_y_done = {target: TaskStatus.PENDING, x: TaskStatus.PENDING, y: TaskStatus.COMPLETED}
    assert active_subgraph(target, edges, only_y_done) == {target, x}

    only_x_done = {target: TaskStatus.PENDING, x: TaskStatus.COMPLETED, y: TaskStatus.PENDING}
    assert active_subgraph(target, edges, only_x_done) == {target, y}

    all_done = dict.fromkeys((target, x, y), TaskStatus.COMPLETED)
    assert active_subgraph(target, edges, all_done) == set()


def test_select_next_requires_completed_direct_dependencies() -> None:
    nodes = [_Node(1, 10.0, TaskStatus.BLOCKED), _Node(2, 20.0), _Node(3, 30.0)]
    edges = [(2, 1)]
    statuses = {node.id: node.status for node in nodes}
    ordered = topological_order(nodes, edges)

    selected = select_next(ordered, build_dependency_map(edges), statuses)

    assert selected is not None
    assert selected.id == 3


def test_select_next_returns_none_when_nothing_is_startable() -> None:
    nodes = [_Node(1, 10.0, TaskStatus.IN_PROGRESS), _Node(2, 20.0)]
    edges = [(2, 1)]
    statuses = {node.id: node.status for node in nodes}

    ordered = topological_order(nodes, edges)

    assert select_next(ordered, build_dependency_map(edges), statuses) is None
