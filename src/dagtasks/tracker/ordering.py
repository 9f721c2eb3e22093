"""Manual order arithmetic.

``manual_order`` is an unbounded float used only to break ties between tasks
with no dependency path between them. New values are spaced ``ORDER_STEP``
apart; insertions between two neighbours take the midpoint until floating
point runs out of room, at which point the caller must reindex.
"""

from __future__ import annotations

from collections.abc import Sequence

from dagtasks.tracker.errors import OrderExhaustedError

ORDER_STEP = 10.0


def midpoint(lower: float, upper: float) -> float:
    """Arithmetic midpoint, refusing to collide with either bound."""

    value = (lower + upper) / 2
    if value == lower or value == upper:
        raise OrderExhaustedError(lower, upper)
    return value


def insertion_order(
    *,
    max_order: float | None,
    after: float | None = None,
    before: float | None = None,
) -> float:
    """Order value for a task placed after and/or before the given neighbours.

    With no hint the task goes to the end: ``max_order + 10``, or ``10`` for
    an empty tracker.
    """

    if after is not None and before is not None:
        return midpoint(after, before)
    if after is not None:
        return after + ORDER_STEP
    if before is not None:
        return before - ORDER_STEP
    if max_order is None:
        return ORDER_STEP
    return max_order + ORDER_STEP


def reindex_plan(ordered_ids: Sequence[int]) -> dict[int, float]:
    """Evenly spaced orders ``10, 20, 30, ...`` preserving the given sequence."""

    return {task_id: ORDER_STEP * index for index, task_id in enumerate(ordered_ids, start=1)}
