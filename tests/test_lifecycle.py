"""
Order lifecycle rules: legal moves, terminal states, side data, and who
may cancel or view an order.
"""
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest

from tableside.core.errors import InvalidTransition, Unauthorized, ValidationError
from tableside.core.security import Caller
from tableside.models import OrderStatus
from tableside.services.lifecycle import (
    TransitionContext,
    allowed_targets,
    apply_transition,
    authorize_cancellation,
    authorize_view,
    coerce_status,
    next_status,
)

NOW = datetime(2026, 3, 1, 18, 0, tzinfo=timezone.utc)


def make_order(status, **fields):
    defaults = {
        "id": "ord_1",
        "status": status,
        "customer_id": None,
        "guest_email": "jane@example.com",
        "guest_phone": "(555) 123-4567",
    }
    defaults.update(fields)
    return SimpleNamespace(**defaults)


# ─── Legality ──────────────────────────────────────────────────────────────────
@pytest.mark.parametrize("current,target", [
    (OrderStatus.RECEIVED, OrderStatus.CONFIRMED),
    (OrderStatus.CONFIRMED, OrderStatus.IN_KITCHEN),
    (OrderStatus.IN_KITCHEN, OrderStatus.READY_FOR_PICKUP),
    (OrderStatus.READY_FOR_PICKUP, OrderStatus.DELIVERED),
])
def test_forward_stage_is_legal(current, target):
    transition = apply_transition(make_order(current), target, now=NOW)
    assert transition.from_status == current
    assert transition.to_status == target
    assert transition.updated_at == NOW


def test_skipping_a_stage_is_rejected():
    with pytest.raises(InvalidTransition) as exc:
        apply_transition(make_order(OrderStatus.RECEIVED), OrderStatus.IN_KITCHEN)
    assert exc.value.current == "received"
    assert exc.value.requested == "in_kitchen"


def test_moving_backwards_is_rejected():
    with pytest.raises(InvalidTransition):
        apply_transition(make_order(OrderStatus.IN_KITCHEN), OrderStatus.CONFIRMED)


def test_same_status_is_rejected():
    """A duplicate "confirm" on an already confirmed order must not pass."""
    with pytest.raises(InvalidTransition):
        apply_transition(make_order(OrderStatus.CONFIRMED), OrderStatus.CONFIRMED)


@pytest.mark.parametrize("terminal", [OrderStatus.DELIVERED, OrderStatus.CANCELLED])
@pytest.mark.parametrize("target", list(OrderStatus))
def test_terminal_orders_reject_every_target(terminal, target):
    context = TransitionContext(cancellation_reason="late")
    with pytest.raises(InvalidTransition):
        apply_transition(make_order(terminal), target, context)


@pytest.mark.parametrize("current", [OrderStatus.RECEIVED, OrderStatus.CONFIRMED])
def test_cancel_allowed_before_kitchen(current):
    context = TransitionContext(cancellation_reason="Customer called")
    transition = apply_transition(make_order(current), OrderStatus.CANCELLED, context)
    assert transition.to_status == OrderStatus.CANCELLED
    assert transition.cancellation_reason == "Customer called"


@pytest.mark.parametrize("current", [OrderStatus.IN_KITCHEN, OrderStatus.READY_FOR_PICKUP])
def test_cancel_rejected_once_cooking(current):
    context = TransitionContext(cancellation_reason="Too slow")
    with pytest.raises(InvalidTransition):
        apply_transition(make_order(current), OrderStatus.CANCELLED, context)


def test_allowed_targets():
    assert allowed_targets("received") == (OrderStatus.CONFIRMED, OrderStatus.CANCELLED)
    assert allowed_targets("in_kitchen") == (OrderStatus.READY_FOR_PICKUP,)
    assert allowed_targets("delivered") == ()
    assert next_status("ready_for_pickup") == OrderStatus.DELIVERED
    assert next_status("delivered") is None


def test_unknown_status_is_a_validation_error():
    with pytest.raises(ValidationError):
        coerce_status("eaten")


# ─── Side data ─────────────────────────────────────────────────────────────────
def test_cancel_requires_reason():
    with pytest.raises(ValidationError):
        apply_transition(make_order(OrderStatus.RECEIVED), OrderStatus.CANCELLED,
                         TransitionContext(cancellation_reason="   "))


def test_reason_only_applies_to_cancel():
    with pytest.raises(ValidationError):
        apply_transition(make_order(OrderStatus.RECEIVED), OrderStatus.CONFIRMED,
                         TransitionContext(cancellation_reason="because"))


def test_estimated_ready_time_rejected_on_terminal_target():
    context = TransitionContext(estimated_ready_time=NOW + timedelta(minutes=5))
    with pytest.raises(ValidationError):
        apply_transition(make_order(OrderStatus.READY_FOR_PICKUP), OrderStatus.DELIVERED, context)


def test_estimated_ready_time_carried_and_applied():
    ready = NOW + timedelta(minutes=25)
    order = make_order(OrderStatus.RECEIVED)
    transition = apply_transition(order, OrderStatus.CONFIRMED,
                                  TransitionContext(estimated_ready_time=ready), now=NOW)

    assert transition.values() == {
        "status": OrderStatus.CONFIRMED,
        "updated_at": NOW,
        "estimated_ready_time": ready,
    }
    # Validation never mutates the order; only apply_to does
    assert order.status == OrderStatus.RECEIVED
    transition.apply_to(order)
    assert order.status == OrderStatus.CONFIRMED
    assert order.estimated_ready_time == ready


# ─── Authorization ─────────────────────────────────────────────────────────────
def test_guest_cancellation_with_matching_credentials():
    order = make_order(OrderStatus.RECEIVED)
    authorize_cancellation(order, None, email="jane@example.com", phone="(555) 123-4567")


@pytest.mark.parametrize("email,phone", [
    ("jane@example.com", "(555) 000-0000"),
    ("other@example.com", "(555) 123-4567"),
    (None, None),
    ("jane@example.com", None),
])
def test_guest_cancellation_with_wrong_credentials(email, phone):
    with pytest.raises(Unauthorized):
        authorize_cancellation(make_order(OrderStatus.RECEIVED), None, email=email, phone=phone)


def test_customer_can_only_cancel_own_order():
    order = make_order(OrderStatus.RECEIVED, customer_id="cust_1",
                       guest_email=None, guest_phone=None)
    authorize_cancellation(order, Caller("cust_1"))
    with pytest.raises(Unauthorized):
        authorize_cancellation(order, Caller("cust_2"))


def test_signed_in_user_cannot_cancel_guest_order():
    with pytest.raises(Unauthorized):
        authorize_cancellation(make_order(OrderStatus.RECEIVED), Caller("cust_1"),
                               email="jane@example.com", phone="(555) 123-4567")


def test_owner_may_view_any_order_of_their_restaurant():
    order = make_order(OrderStatus.RECEIVED)
    authorize_view(order, Caller("owner_1"), owner_id="owner_1")
    with pytest.raises(Unauthorized):
        authorize_view(order, Caller("someone"), owner_id="owner_1")
