"""
Order Use Cases

Everything the HTTP routes do with orders, expressed without FastAPI so
the in-process kitchen source and the tests call the same code. Status
writes always go through ``lifecycle.apply_transition`` and
``OrderStore.apply``.

Author: Khalil Bannouri
Version: 1.0.0
"""

import logging
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from tableside.core.config import get_settings
from tableside.core.errors import Unauthorized, ValidationError
from tableside.core.security import Caller
from tableside.models import Order, OrderStatus, Restaurant, utcnow
from tableside.schemas import OrderCreate, OrderItemCreate
from tableside.services import lifecycle
from tableside.services.lifecycle import TransitionContext
from tableside.services.store import OrderStore
from tableside.services.timing import KitchenOrder, TimingPolicy, annotate_all

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
CUSTOMER_CANCELLATION_REASON = "Cancelled by customer"


# =============================================================================
# PRICING
# =============================================================================

def to_money(value) -> Decimal:
    """Exact two-decimal amount from a Decimal, int, float or string."""
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def calculate_total(items: Iterable) -> Decimal:
    """Sum of price * quantity over the items, in exact cents."""
    total = sum(
        (to_money(_field(item, "price")) * int(_field(item, "quantity")) for item in items),
        Decimal("0"),
    )
    return total.quantize(CENT, rounding=ROUND_HALF_UP)


def _field(item, name: str):
    return item[name] if isinstance(item, dict) else getattr(item, name)


def snapshot_items(items: Iterable[OrderItemCreate]) -> list[dict]:
    """Copy item data into the order; menu edits later never reach it."""
    return [
        {
            "name": item.name,
            "price": float(to_money(item.price)),
            "quantity": item.quantity,
            "modifications": list(item.modifications),
        }
        for item in items
    ]


# =============================================================================
# AUTHORIZATION HELPERS
# =============================================================================

def require_owner(restaurant: Restaurant, caller: Optional[Caller]) -> None:
    if caller is None or restaurant.owner_id != caller.user_id:
        logger.warning(
            f"Rejected owner action on restaurant {restaurant.id} "
            f"by {caller.user_id if caller else 'guest'}"
        )
        raise Unauthorized("Not authorized to manage this restaurant's orders")


def require_authenticated(caller: Optional[Caller]) -> Caller:
    if caller is None:
        raise Unauthorized("Sign in required")
    return caller


# =============================================================================
# CREATION
# =============================================================================

async def create_order(
    db: AsyncSession,
    payload: OrderCreate,
    caller: Optional[Caller],
) -> Order:
    """
    Place a new order in status ``received``.

    Authenticated callers are recorded as the customer; guests must
    supply complete contact details. The stored total is recomputed
    from the items; a client-supplied total is advisory only.

    Raises:
        ValidationError: No items, or a guest without contact details
        NotFound: Unknown restaurant
    """
    if not payload.items:
        raise ValidationError("An order must contain at least one item")

    store = OrderStore(db)
    await store.get_restaurant(payload.restaurant_id)

    total = calculate_total(payload.items)
    if payload.total_price is not None and to_money(payload.total_price) != total:
        logger.info(
            f"Client total {payload.total_price} differs from computed {total}; "
            f"using computed total"
        )

    now = utcnow()
    order = Order(
        restaurant_id=payload.restaurant_id,
        items=snapshot_items(payload.items),
        total_price=total,
        notes=(payload.notes or "").strip() or None,
        status=OrderStatus.RECEIVED,
        created_at=now,
        updated_at=now,
    )

    if caller is not None:
        order.customer_id = caller.user_id
    elif payload.guest_info is not None:
        order.guest_name = payload.guest_info.name
        order.guest_phone = payload.guest_info.phone
        order.guest_email = payload.guest_info.email
    else:
        raise ValidationError("Guest information is required for non-authenticated users")

    order = await store.create(order)
    logger.info(f"Order #{order.id} created: {len(order.items)} item(s), total {total}")
    return order


async def reorder(db: AsyncSession, order_id: str, caller: Optional[Caller]) -> Order:
    """Place a copy of a previous order for the same customer."""
    caller = require_authenticated(caller)
    store = OrderStore(db)
    previous = await store.get(order_id)
    if previous.customer_id != caller.user_id:
        raise Unauthorized("Not authorized to reorder this order")
    await store.get_restaurant(previous.restaurant_id)

    now = utcnow()
    items = [dict(item) for item in previous.items]
    order = Order(
        restaurant_id=previous.restaurant_id,
        customer_id=caller.user_id,
        items=items,
        total_price=calculate_total(items),
        status=OrderStatus.RECEIVED,
        created_at=now,
        updated_at=now,
    )
    order = await store.create(order)
    logger.info(f"Order #{order.id} re-placed from #{previous.id}")
    return order


# =============================================================================
# QUERIES
# =============================================================================

async def get_order(
    db: AsyncSession,
    order_id: str,
    caller: Optional[Caller],
    email: Optional[str] = None,
    phone: Optional[str] = None,
) -> Order:
    store = OrderStore(db)
    order = await store.get(order_id)
    restaurant = await store.get_restaurant(order.restaurant_id)
    lifecycle.authorize_view(order, caller, restaurant.owner_id, email=email, phone=phone)
    return order


async def list_restaurant_orders(
    db: AsyncSession,
    restaurant_id: str,
    caller: Optional[Caller],
    statuses: Optional[Iterable[OrderStatus]] = None,
) -> list[Order]:
    """All orders for a restaurant, newest first, optionally filtered by status."""
    store = OrderStore(db)
    restaurant = await store.get_restaurant(restaurant_id)
    require_owner(restaurant, caller)
    return await store.list_for_restaurant(restaurant_id, statuses=statuses)


async def list_active_orders(
    db: AsyncSession,
    restaurant_id: str,
    caller: Optional[Caller],
) -> list[Order]:
    """Every non-terminal order, oldest first."""
    store = OrderStore(db)
    restaurant = await store.get_restaurant(restaurant_id)
    require_owner(restaurant, caller)
    return await store.list_for_restaurant(
        restaurant_id,
        statuses=lifecycle.ACTIVE_STATUSES,
        newest_first=False,
    )


async def order_history(db: AsyncSession, caller: Optional[Caller]) -> list[Order]:
    caller = require_authenticated(caller)
    return await OrderStore(db).list_for_customer(caller.user_id)


async def kitchen_board(
    db: AsyncSession,
    restaurant_id: str,
    caller: Optional[Caller],
    now: Optional[datetime] = None,
) -> tuple[KitchenOrder, ...]:
    """Kitchen-visible orders annotated and sorted by priority."""
    store = OrderStore(db)
    restaurant = await store.get_restaurant(restaurant_id)
    require_owner(restaurant, caller)
    orders = await store.list_for_restaurant(
        restaurant_id,
        statuses=lifecycle.KITCHEN_STATUSES,
        newest_first=False,
    )
    policy = TimingPolicy.from_settings(get_settings())
    return annotate_all(orders, now or utcnow(), policy)


# =============================================================================
# STATUS CHANGES
# =============================================================================

async def update_order_status(
    db: AsyncSession,
    order_id: str,
    target_status: OrderStatus,
    caller: Optional[Caller],
    context: Optional[TransitionContext] = None,
) -> Order:
    """
    Owner/kitchen status change.

    Raises:
        NotFound: Unknown order or restaurant
        Unauthorized: Caller does not own the restaurant
        InvalidTransition: Not a legal move from the stored status
        ValidationError: Side data does not fit the target status
    """
    store = OrderStore(db)
    order = await store.get(order_id)
    restaurant = await store.get_restaurant(order.restaurant_id)
    require_owner(restaurant, caller)

    transition = lifecycle.apply_transition(order, target_status, context)
    return await store.apply(order, transition)


async def cancel_order(
    db: AsyncSession,
    order_id: str,
    caller: Optional[Caller],
    email: Optional[str] = None,
    phone: Optional[str] = None,
    reason: Optional[str] = None,
) -> Order:
    """
    Customer or guest cancellation.

    Authorization is checked before legality, so a caller with the wrong
    credentials learns nothing about the order's current status.
    """
    store = OrderStore(db)
    order = await store.get(order_id)
    lifecycle.authorize_cancellation(order, caller, email=email, phone=phone)

    context = TransitionContext(
        cancellation_reason=(reason or "").strip() or CUSTOMER_CANCELLATION_REASON
    )
    transition = lifecycle.apply_transition(order, OrderStatus.CANCELLED, context)
    return await store.apply(order, transition)
