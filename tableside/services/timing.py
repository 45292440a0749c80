"""
Kitchen Timing / Priority Engine

Pure derived-state computation for the kitchen display. ``annotate`` has
no side effects and depends only on the order's creation time, items,
status and the supplied ``now``; the display rebuilds every KitchenOrder
from the latest order snapshot on each tick instead of patching old
values, so derived fields always follow the wall clock.

The preparation estimate is a policy heuristic, not measured throughput:

    estimated minutes = base (15) + per_item (3) * total item quantity

Author: Khalil Bannouri
Version: 1.0.0
"""

import enum
import math
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Iterable, Optional

from tableside.models import OrderStatus


class PriorityBucket(str, enum.Enum):
    """Presentation ordering/colouring only; never used for transitions."""
    OVERDUE = "overdue"
    STALE = "stale"
    AGING = "aging"
    FRESH = "fresh"

    @property
    def rank(self) -> int:
        return _BUCKET_RANK[self]


_BUCKET_RANK = {
    PriorityBucket.OVERDUE: 0,
    PriorityBucket.STALE: 1,
    PriorityBucket.AGING: 2,
    PriorityBucket.FRESH: 3,
}

_FINISHED = {OrderStatus.DELIVERED.value, OrderStatus.CANCELLED.value}


@dataclass(frozen=True)
class TimingPolicy:
    """Thresholds for the preparation estimate and priority buckets."""
    base_minutes: int = 15
    minutes_per_item: int = 3
    aging_after_minutes: int = 10
    stale_after_minutes: int = 20

    @classmethod
    def from_settings(cls, settings: Any) -> "TimingPolicy":
        return cls(
            base_minutes=settings.prep_base_minutes,
            minutes_per_item=settings.prep_minutes_per_item,
            aging_after_minutes=settings.aging_after_minutes,
            stale_after_minutes=settings.stale_after_minutes,
        )


DEFAULT_POLICY = TimingPolicy()


@dataclass(frozen=True)
class KitchenOrder:
    """
    An order decorated with display-only timing fields.

    Never persisted; rebuilt from the order snapshot on every tick.
    """
    order: Any
    elapsed_minutes: int
    estimated_total_minutes: int
    estimated_completion_time: datetime
    is_overdue: bool
    priority_bucket: PriorityBucket

    @property
    def id(self) -> str:
        return self.order.id

    @property
    def status(self) -> str:
        return _status_value(self.order.status)

    @property
    def created_at(self) -> datetime:
        return as_utc(self.order.created_at)


def as_utc(value: datetime) -> datetime:
    """Treat naive timestamps (e.g. from SQLite) as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _status_value(status: Any) -> str:
    return status.value if isinstance(status, enum.Enum) else str(status)


def _quantity(item: Any) -> int:
    if isinstance(item, Mapping):
        return int(item.get("quantity", 0))
    return int(item.quantity)


def total_quantity(items: Iterable[Any]) -> int:
    return sum(_quantity(item) for item in items)


def estimated_minutes(items: Iterable[Any], policy: TimingPolicy = DEFAULT_POLICY) -> int:
    return policy.base_minutes + policy.minutes_per_item * total_quantity(items)


def annotate(
    order: Any,
    now: datetime,
    policy: TimingPolicy = DEFAULT_POLICY,
) -> KitchenOrder:
    """
    Derive the kitchen timing fields for one order.

    Args:
        order: Anything with ``created_at``, ``items`` and ``status``
        now: Reference time (naive values are read as UTC)
        policy: Estimate and bucket thresholds

    Returns:
        KitchenOrder: The order with elapsed time, estimate, overdue flag and bucket
    """
    created_at = as_utc(order.created_at)
    now = as_utc(now)

    # Clock skew between client and server must not produce negative ages
    elapsed_minutes = max(0, math.floor((now - created_at).total_seconds() / 60))

    total_minutes = estimated_minutes(order.items, policy)
    completion = created_at + timedelta(minutes=total_minutes)

    is_overdue = now > completion and _status_value(order.status) not in _FINISHED

    if is_overdue:
        bucket = PriorityBucket.OVERDUE
    elif elapsed_minutes > policy.stale_after_minutes:
        bucket = PriorityBucket.STALE
    elif elapsed_minutes > policy.aging_after_minutes:
        bucket = PriorityBucket.AGING
    else:
        bucket = PriorityBucket.FRESH

    return KitchenOrder(
        order=order,
        elapsed_minutes=elapsed_minutes,
        estimated_total_minutes=total_minutes,
        estimated_completion_time=completion,
        is_overdue=is_overdue,
        priority_bucket=bucket,
    )


def priority_sort_key(kitchen_order: KitchenOrder) -> tuple[int, datetime]:
    """Most urgent bucket first, then oldest first within a bucket."""
    return (kitchen_order.priority_bucket.rank, kitchen_order.created_at)


def annotate_all(
    orders: Iterable[Any],
    now: datetime,
    policy: Optional[TimingPolicy] = None,
) -> tuple[KitchenOrder, ...]:
    """Annotate and sort a whole order set."""
    policy = policy or DEFAULT_POLICY
    annotated = [annotate(order, now, policy) for order in orders]
    return tuple(sorted(annotated, key=priority_sort_key))
