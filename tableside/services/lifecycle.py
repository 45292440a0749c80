"""
Order Lifecycle State Machine

Single point of truth for which status changes are legal:

    received -> confirmed -> in_kitchen -> ready_for_pickup -> delivered
        \\            \\
         +------------+--> cancelled

``delivered`` and ``cancelled`` are terminal. Every status write in the
system (kitchen display, owner dashboard, customer cancellation) goes
through ``apply_transition`` and is then persisted by the order store
with a compare-and-set on the current status, so two identical requests
racing each other can never both succeed.

Author: Khalil Bannouri
Version: 1.0.0
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional, Union

from tableside.core.errors import InvalidTransition, Unauthorized, ValidationError
from tableside.core.security import Caller
from tableside.models import OrderStatus, utcnow

logger = logging.getLogger(__name__)


NEXT_STATUS: dict[OrderStatus, OrderStatus] = {
    OrderStatus.RECEIVED: OrderStatus.CONFIRMED,
    OrderStatus.CONFIRMED: OrderStatus.IN_KITCHEN,
    OrderStatus.IN_KITCHEN: OrderStatus.READY_FOR_PICKUP,
    OrderStatus.READY_FOR_PICKUP: OrderStatus.DELIVERED,
}

CANCELLABLE_STATUSES = frozenset({OrderStatus.RECEIVED, OrderStatus.CONFIRMED})
TERMINAL_STATUSES = frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED})

# Statuses shown on the kitchen display
KITCHEN_STATUSES = (OrderStatus.RECEIVED, OrderStatus.CONFIRMED, OrderStatus.IN_KITCHEN)

ACTIVE_STATUSES = tuple(s for s in OrderStatus if s not in TERMINAL_STATUSES)


def coerce_status(value: Union[str, OrderStatus]) -> OrderStatus:
    """Parse a status name, rejecting unknown values as a validation error."""
    if isinstance(value, OrderStatus):
        return value
    try:
        return OrderStatus(str(value).strip().lower())
    except ValueError:
        valid = [s.value for s in OrderStatus]
        raise ValidationError(f"Invalid status '{value}'. Options: {valid}")


def next_status(current: Union[str, OrderStatus]) -> Optional[OrderStatus]:
    """The single forward stage after ``current``, or None for the last stages."""
    return NEXT_STATUS.get(coerce_status(current))


def allowed_targets(current: Union[str, OrderStatus]) -> tuple[OrderStatus, ...]:
    current = coerce_status(current)
    targets = []
    if current in NEXT_STATUS:
        targets.append(NEXT_STATUS[current])
    if current in CANCELLABLE_STATUSES:
        targets.append(OrderStatus.CANCELLED)
    return tuple(targets)


def is_legal(current: Union[str, OrderStatus], target: Union[str, OrderStatus]) -> bool:
    return coerce_status(target) in allowed_targets(current)


@dataclass(frozen=True)
class TransitionContext:
    """Optional side data a transition may carry."""
    estimated_ready_time: Optional[datetime] = None
    cancellation_reason: Optional[str] = None


@dataclass(frozen=True)
class Transition:
    """
    A validated status change, ready to be persisted.

    Attributes:
        order_id: Order being changed
        from_status: Status the change was validated against
        to_status: New status
        updated_at: Timestamp of the change
        estimated_ready_time: New estimate, if one was supplied
        cancellation_reason: Reason, for cancellations only
    """
    order_id: str
    from_status: OrderStatus
    to_status: OrderStatus
    updated_at: datetime
    estimated_ready_time: Optional[datetime] = None
    cancellation_reason: Optional[str] = None

    def values(self) -> dict[str, Any]:
        """Column values written by this transition."""
        values: dict[str, Any] = {
            "status": self.to_status,
            "updated_at": self.updated_at,
        }
        if self.estimated_ready_time is not None:
            values["estimated_ready_time"] = self.estimated_ready_time
        if self.cancellation_reason is not None:
            values["cancellation_reason"] = self.cancellation_reason
        return values

    def apply_to(self, order: Any) -> Any:
        for field, value in self.values().items():
            setattr(order, field, value)
        return order


def apply_transition(
    order: Any,
    target_status: Union[str, OrderStatus],
    context: Optional[TransitionContext] = None,
    *,
    now: Optional[datetime] = None,
) -> Transition:
    """
    Validate a status change for ``order`` and describe its effect.

    Args:
        order: Anything with ``id`` and ``status``
        target_status: Requested status
        context: Estimated ready time and/or cancellation reason
        now: Timestamp to record (defaults to current UTC time)

    Returns:
        Transition: The change to persist

    Raises:
        ValidationError: Unknown status or side data that does not fit the target
        InvalidTransition: Target is not the next stage and not a legal cancellation
    """
    context = context or TransitionContext()
    current = coerce_status(order.status)
    target = coerce_status(target_status)

    if not is_legal(current, target):
        logger.warning(
            f"Rejected transition for order #{order.id}: "
            f"{current.value} -> {target.value}"
        )
        raise InvalidTransition(current.value, target.value)

    reason = None
    if target == OrderStatus.CANCELLED:
        reason = (context.cancellation_reason or "").strip()
        if not reason:
            raise ValidationError("A cancellation reason is required")
    elif context.cancellation_reason:
        raise ValidationError("A cancellation reason only applies when cancelling")

    if context.estimated_ready_time is not None and target in TERMINAL_STATUSES:
        raise ValidationError(
            f"An estimated ready time cannot be set when moving to '{target.value}'"
        )

    return Transition(
        order_id=order.id,
        from_status=current,
        to_status=target,
        updated_at=now or utcnow(),
        estimated_ready_time=context.estimated_ready_time,
        cancellation_reason=reason,
    )


# =============================================================================
# AUTHORIZATION
# =============================================================================

def guest_credentials_match(order: Any, email: Optional[str], phone: Optional[str]) -> bool:
    """Exact match of the weak guest credential pair."""
    if not email or not phone:
        return False
    if not order.guest_email or not order.guest_phone:
        return False
    return order.guest_email == email and order.guest_phone == phone


def authorize_cancellation(
    order: Any,
    caller: Optional[Caller],
    email: Optional[str] = None,
    phone: Optional[str] = None,
) -> None:
    """
    Check that the caller placed the order.

    Authenticated callers must be the order's customer; guests must
    present the email and phone the order was placed with.
    """
    if caller is not None:
        allowed = order.customer_id is not None and order.customer_id == caller.user_id
    else:
        allowed = guest_credentials_match(order, email, phone)

    if not allowed:
        logger.warning(f"Unauthorized cancellation attempt on order #{order.id}")
        raise Unauthorized("Not authorized to cancel this order")


def authorize_view(
    order: Any,
    caller: Optional[Caller],
    owner_id: Optional[str],
    email: Optional[str] = None,
    phone: Optional[str] = None,
) -> None:
    """Customers, the restaurant owner, or guests with matching credentials."""
    if caller is not None:
        allowed = caller.user_id in (order.customer_id, owner_id)
    else:
        allowed = guest_credentials_match(order, email, phone)

    if not allowed:
        raise Unauthorized("Not authorized to view this order")
