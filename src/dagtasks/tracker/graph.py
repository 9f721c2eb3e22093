"""Dependency graph algorithms over id-keyed adjacency maps.

Edges are ``(task_id, depends_on)`` pairs: ``task_id`` cannot start until
``depends_on`` is completed. Every function here is pure; callers load the
edge set inside their own transaction and pass it in.
"""

from __future__ import annotations

import heapq
from collections import defaultdict, deque
from collections.abc import Iterable, Mapping, Sequence
from typing import Protocol, TypeVar

from dagtasks.tracker.errors import GraphIntegrityError
from dagtasks.tracker.models import OrderConflict, TaskStatus

Edge = tuple[int, int]


class OrderedNode(Protocol):
    @property
    def id(self) -> int: ...

    @property
    def manual_order(self) -> float: ...


class StatusNode(OrderedNode, Protocol):
    @property
    def status(self) -> TaskStatus: ...


NodeT = TypeVar("NodeT", bound=OrderedNode)


def build_dependency_map(edges: Iterable[Edge]) -> dict[int, set[int]]:
    """Map each task id to the ids it directly depends on."""

    dependencies: dict[int, set[int]] = defaultdict(set)
    for task_id, depends_on in edges:
        dependencies[task_id].add(depends_on)
    return dict(dependencies)


def find_cycle(edges: Iterable[Edge], task_id: int, depends_on: int) -> list[int] | None:
    """Return the cycle that edge ``task_id -> depends_on`` would close, if any.

    The edge closes a cycle exactly when ``task_id`` is already reachable from
    ``depends_on`` along existing edges. The returned path starts at
    ``depends_on``, follows existing edges to ``task_id`` and ends with the
    proposed edge back to ``depends_on``: with ``1 -> 2 -> 3`` stored,
    proposing ``3 -> 1`` yields ``[1, 2, 3, 1]``.
    """

    if task_id == depends_on:
        return [task_id, task_id]

    dependencies = build_dependency_map(edges)
    parents: dict[int, int | None] = {depends_on: None}
    queue: deque[int] = deque([depends_on])
    while queue:
        current = queue.popleft()
        for nxt in sorted(dependencies.get(current, ())):
            if nxt in parents:
                continue
            parents[nxt] = current
            if nxt == task_id:
                return _unwind_path(parents, task_id) + [depends_on]
            queue.append(nxt)
    return None


def _unwind_path(parents: Mapping[int, int | None], end: int) -> list[int]:
    path = [end]
    node = parents[end]
    while node is not None:
        path.append(node)
        node = parents[node]
    path.reverse()
    return path


def topological_order(nodes: Iterable[NodeT], edges: Iterable[Edge]) -> list[NodeT]:
    """Order ``nodes`` so every prerequisite precedes its dependents.

    Only edges with both ends inside ``nodes`` are considered. Among tasks
    that are ready at the same time the lowest ``(manual_order, id)`` wins,
    which keeps the output deterministic regardless of input order.
    """

    by_id: dict[int, NodeT] = {node.id: node for node in nodes}
    in_degree: dict[int, int] = dict.fromkeys(by_id, 0)
    dependents: dict[int, list[int]] = defaultdict(list)
    for task_id, depends_on in set(edges):
        if task_id not in by_id or depends_on not in by_id:
            continue
        dependents[depends_on].append(task_id)
        in_degree[task_id] += 1

    frontier: list[tuple[float, int]] = [
        (by_id[task_id].manual_order, task_id)
        for task_id, degree in in_degree.items()
        if degree == 0
    ]
    heapq.heapify(frontier)

    ordered: list[NodeT] = []
    while frontier:
        _, task_id = heapq.heappop(frontier)
        ordered.append(by_id[task_id])
        for dependent in dependents.get(task_id, ()):
            in_degree[dependent] -= 1
            if in_degree[dependent] == 0:
                heapq.heappush(frontier, (by_id[dependent].manual_order, dependent))

    if len(ordered) != len(by_id):
        unresolved = sorted(task_id for task_id, degree in in_degree.items() if degree > 0)
        raise GraphIntegrityError(unresolved)
    return ordered


def find_order_conflicts(
    ordered: Sequence[StatusNode],
    edges: Iterable[Edge],
) -> list[OrderConflict]:
    """Flag tasks whose manual order is below an unmet prerequisite's.

    Purely informational: the sort result is never changed.
    """

    by_id = {node.id: node for node in ordered}
    position = {node.id: index for index, node in enumerate(ordered)}
    conflicts: list[OrderConflict] = []
    for task_id, depends_on in sorted(set(edges)):
        task = by_id.get(task_id)
        prerequisite = by_id.get(depends_on)
        if task is None or prerequisite is None:
            continue
        if prerequisite.status is TaskStatus.COMPLETED:
            continue
        if task.manual_order < prerequisite.manual_order:
            conflicts.append(
                OrderConflict(
                    task_id=task.id,
                    task_order=task.manual_order,
                    depends_on=prerequisite.id,
                    depends_on_order=prerequisite.manual_order,
                ),
            )
    conflicts.sort(key=lambda conflict: position[conflict.task_id])
    return conflicts


def reachable_prerequisites(target_id: int, edges: Iterable[Edge]) -> set[int]:
    """Transitive closure of ``depends_on`` edges from the target, target included."""

    dependencies = build_dependency_map(edges)
    seen = {target_id}
    queue: deque[int] = deque([target_id])
    while queue:
        current = queue.popleft()
        for depends_on in dependencies.get(current, ()):
            if depends_on not in seen:
                seen.add(depends_on)
                queue.append(depends_on)
    return seen


def active_subgraph(
    target_id: int,
    edges: Iterable[Edge],
    statuses: Mapping[int, TaskStatus],
) -> set[int]:
    """Target closure minus completed tasks.

    The closure is computed first and filtered afterwards, so a completed task
    in the middle of a chain does not hide its unfinished prerequisites.
    """

    closure = reachable_prerequisites(target_id, edges)
    return {
        task_id
        for task_id in closure
        if statuses.get(task_id) is not TaskStatus.COMPLETED
    }


def select_next(
    ordered: Sequence[StatusNode],
    dependencies: Mapping[int, set[int]],
    statuses: Mapping[int, TaskStatus],
) -> StatusNode | None:
    """First pending task in ``ordered`` whose direct dependencies are all completed."""

    for node in ordered:
        if node.status is not TaskStatus.PENDING:
            continue
        if all(
            statuses.get(depends_on) is TaskStatus.COMPLETED
            for depends_on in dependencies.get(node.id, ())
        ):
            return node
    return None
