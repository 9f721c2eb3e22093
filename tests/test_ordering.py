from __future__ import annotations

import math

import allure
import pytest

from dagtasks.tracker.errors import OrderExhaustedError
from dagtasks.tracker.ordering import ORDER_STEP, insertion_order, midpoint, reindex_plan

pytestmark = [
    allure.epic("Task Graph"),
    allure.feature("Manual Ordering"),
]


def test_midpoint_between_neighbours() -> None:
    assert midpoint(1.0, 2.0) == 1.5
    assert midpoint(10.0, 20.0) == 15.0


def test_midpoint_refuses_adjacent_floats() -> None:
    lower = 1.0
    upper = math.nextafter(lower, 2.0)

    with pytest.raises(OrderExhaustedError) as error:
        midpoint(lower, upper)

    assert error.value.code == "order_exhausted"
    assert "reindex" in error.value.message


def test_insertion_order_appends_without_hint() -> None:
    assert insertion_order(max_order=None) == ORDER_STEP
    assert insertion_order(max_order=30.0) == 40.0


@pytest.mark.parametrize(
    ("after", "before", "expected"),
    [
        (20.0, None, 30.0),
        (None, 20.0, 10.0),
        (10.0, 20.0, 15.0),
    ],
)
def test_insertion_order_honours_position_hints(
    after: float | None,
    before: float | None,
    expected: float,
) -> None:
    assert insertion_order(max_order=100.0, after=after, before=before) == expected


def test_reindex_plan_spaces_tasks_evenly_in_given_order() -> None:
    assert reindex_plan([7, 3, 5]) == {7: 10.0, 3: 20.0, 5: 30.0}
    assert reindex_plan([]) == {}
