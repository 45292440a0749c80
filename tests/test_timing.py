"""
Kitchen timing: elapsed time, preparation estimate, overdue flag and
priority buckets.
"""
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest

from tableside.models import OrderStatus
from tableside.services.timing import (
    PriorityBucket,
    TimingPolicy,
    annotate,
    annotate_all,
    estimated_minutes,
)

T0 = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def make_order(quantities=(1, 3), status=OrderStatus.RECEIVED, created_at=T0, order_id="ord_1"):
    return SimpleNamespace(
        id=order_id,
        status=status,
        created_at=created_at,
        items=[{"name": f"item {i}", "price": 5.0, "quantity": q} for i, q in enumerate(quantities)],
    )


def at(minutes, seconds=0):
    return T0 + timedelta(minutes=minutes, seconds=seconds)


def test_estimate_is_base_plus_per_item_quantity():
    assert estimated_minutes([{"quantity": 1}, {"quantity": 3}]) == 27
    assert estimated_minutes([]) == 15
    assert estimated_minutes([{"quantity": 2}], TimingPolicy(base_minutes=10, minutes_per_item=5)) == 20


def test_overdue_scenario_at_thirty_minutes():
    kitchen_order = annotate(make_order(), at(30))

    assert kitchen_order.estimated_total_minutes == 27
    assert kitchen_order.estimated_completion_time == at(27)
    assert kitchen_order.elapsed_minutes == 30
    assert kitchen_order.is_overdue is True
    assert kitchen_order.priority_bucket == PriorityBucket.OVERDUE


@pytest.mark.parametrize("minutes,bucket", [
    (0, PriorityBucket.FRESH),
    (10, PriorityBucket.FRESH),
    (11, PriorityBucket.AGING),
    (20, PriorityBucket.AGING),
    (21, PriorityBucket.STALE),
    (27, PriorityBucket.STALE),
])
def test_buckets_before_completion(minutes, bucket):
    kitchen_order = annotate(make_order(), at(minutes))
    assert kitchen_order.is_overdue is False
    assert kitchen_order.priority_bucket == bucket


def test_not_overdue_exactly_at_completion_time():
    assert annotate(make_order(), at(27)).is_overdue is False
    assert annotate(make_order(), at(27, 1)).is_overdue is True


@pytest.mark.parametrize("status", [OrderStatus.DELIVERED, OrderStatus.CANCELLED])
def test_finished_orders_are_never_overdue(status):
    kitchen_order = annotate(make_order(status=status), at(600))
    assert kitchen_order.is_overdue is False
    assert kitchen_order.priority_bucket == PriorityBucket.STALE


def test_elapsed_minutes_are_floored():
    assert annotate(make_order(), at(4, 59)).elapsed_minutes == 4


def test_future_creation_time_clamps_to_zero():
    assert annotate(make_order(), T0 - timedelta(minutes=3)).elapsed_minutes == 0


def test_naive_timestamps_are_read_as_utc():
    order = make_order(created_at=T0.replace(tzinfo=None))
    kitchen_order = annotate(order, at(12))
    assert kitchen_order.elapsed_minutes == 12
    assert kitchen_order.estimated_completion_time.tzinfo is not None


def test_annotate_is_pure():
    order = make_order()
    assert annotate(order, at(15)) == annotate(order, at(15))
    assert order.status == OrderStatus.RECEIVED


def test_elapsed_never_decreases_as_time_passes():
    order = make_order()
    elapsed = [annotate(order, at(m)).elapsed_minutes for m in range(0, 60, 7)]
    assert elapsed == sorted(elapsed)
    assert len(set(elapsed)) == len(elapsed)


def test_annotate_all_sorts_by_bucket_then_age():
    orders = [
        make_order(order_id="fresh", created_at=at(28)),
        make_order(order_id="aging_old", created_at=at(15)),
        make_order(order_id="aging_new", created_at=at(17)),
        make_order(order_id="overdue", created_at=T0),
    ]
    board = annotate_all(orders, at(30))
    assert [k.id for k in board] == ["overdue", "aging_old", "aging_new", "fresh"]


def test_items_may_be_objects():
    order = make_order()
    order.items = [SimpleNamespace(name="Soup", quantity=2)]
    assert annotate(order, at(1)).estimated_total_minutes == 21
