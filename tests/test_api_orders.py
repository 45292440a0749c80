"""
Order API: creation, guest lookup/cancellation, owner status changes,
restaurant listings and the kitchen board, through the FastAPI app.
"""
import pytest

from tableside.core.errors import InvalidTransition
from tableside.models import OrderStatus
from tableside.services import orders as order_service
from tableside.services.lifecycle import apply_transition
from tableside.services.store import OrderStore

GUEST_CREDENTIALS = {"email": "jane@example.com", "phone": "(555) 123-4567"}


async def place(client, payload, headers=None):
    r = await client.post("/api/orders", json=payload, headers=headers or {})
    assert r.status_code == 201, r.text
    return r.json()


# ─── Creation ──────────────────────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_guest_order_created_as_received(client, order_payload):
    order = await place(client, order_payload())

    assert order["status"] == "received"
    assert order["customer_id"] is None
    assert order["guest_info"]["name"] == "Jane Doe"
    assert order["total_price"] == 32.96
    assert len(order["items"]) == 2


@pytest.mark.asyncio
async def test_total_is_exact_through_create_and_fetch(client, order_payload):
    """Items worth $38.47 come back as exactly 38.47."""
    items = [
        {"name": "Lasagna", "price": 12.49, "quantity": 2},
        {"name": "Espresso", "price": 3.33, "quantity": 3},
        {"name": "Cannoli", "price": 3.50, "quantity": 1},
    ]
    created = await place(client, order_payload(items=items))
    assert created["total_price"] == 38.47

    r = await client.get(f"/api/orders/{created['id']}", params=GUEST_CREDENTIALS)
    assert r.status_code == 200, r.text
    assert r.json()["total_price"] == 38.47
    assert f"{r.json()['total_price']:.2f}" == "38.47"


@pytest.mark.asyncio
async def test_client_total_is_ignored(client, order_payload):
    order = await place(client, order_payload(total_price=1.00))
    assert order["total_price"] == 32.96


@pytest.mark.asyncio
async def test_authenticated_order_records_customer(client, order_payload, customer_headers):
    payload = order_payload()
    payload.pop("guest_info")
    order = await place(client, payload, headers=customer_headers)
    assert order["customer_id"] == "customer_1"
    assert order["guest_info"] is None


@pytest.mark.asyncio
async def test_empty_items_rejected(client, order_payload):
    payload = order_payload()
    payload["items"] = []
    r = await client.post("/api/orders", json=payload)
    assert r.status_code == 400
    assert r.json()["error"] == "Validation Error"


@pytest.mark.asyncio
async def test_guest_without_contact_details_rejected(client, order_payload):
    payload = order_payload()
    payload.pop("guest_info")
    r = await client.post("/api/orders", json=payload)
    assert r.status_code == 400


@pytest.mark.asyncio
async def test_guest_with_bad_email_rejected(client, order_payload):
    payload = order_payload(guest_info={"name": "Jane", "phone": "555-123-4567", "email": "nope"})
    r = await client.post("/api/orders", json=payload)
    assert r.status_code == 400


@pytest.mark.asyncio
async def test_unknown_restaurant_is_not_found(client, order_payload):
    r = await client.post("/api/orders", json=order_payload(restaurant_id="missing"))
    assert r.status_code == 404
    assert r.json()["error"] == "Not Found"


# ─── Guest lookup & cancellation ───────────────────────────────────────────────
@pytest.mark.asyncio
async def test_guest_lookup_requires_matching_credentials(client, order_payload):
    order = await place(client, order_payload())

    r = await client.get(f"/api/orders/{order['id']}",
                         params={"email": "jane@example.com", "phone": "555-000-0000"})
    assert r.status_code == 403

    r = await client.get(f"/api/orders/{order['id']}")
    assert r.status_code == 403


@pytest.mark.asyncio
async def test_guest_cancellation_with_wrong_credentials_is_unauthorized(client, order_payload):
    order = await place(client, order_payload())

    r = await client.post(f"/api/orders/{order['id']}/cancel",
                          json={"email": "jane@example.com", "phone": "(555) 999-9999"})
    assert r.status_code == 403
    assert r.json()["error"] == "Unauthorized"


@pytest.mark.asyncio
async def test_guest_cancellation_with_matching_credentials(client, order_payload):
    order = await place(client, order_payload())

    r = await client.post(f"/api/orders/{order['id']}/cancel", json=GUEST_CREDENTIALS)
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["status"] == "cancelled"
    assert body["cancellation_reason"] == "Cancelled by customer"


@pytest.mark.asyncio
async def test_cannot_cancel_once_in_kitchen(client, order_payload, owner_headers):
    order = await place(client, order_payload())
    for status in ("confirmed", "in_kitchen"):
        r = await client.patch(f"/api/orders/{order['id']}/status",
                               json={"status": status}, headers=owner_headers)
        assert r.status_code == 200, r.text

    r = await client.post(f"/api/orders/{order['id']}/cancel", json=GUEST_CREDENTIALS)
    assert r.status_code == 409


# ─── Owner status changes ──────────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_full_lifecycle(client, order_payload, owner_headers):
    order = await place(client, order_payload())
    for status in ("confirmed", "in_kitchen", "ready_for_pickup", "delivered"):
        r = await client.patch(f"/api/orders/{order['id']}/status",
                               json={"status": status}, headers=owner_headers)
        assert r.status_code == 200, r.text
        assert r.json()["status"] == status


@pytest.mark.asyncio
async def test_skipping_a_stage_is_a_conflict(client, order_payload, owner_headers):
    order = await place(client, order_payload())
    r = await client.patch(f"/api/orders/{order['id']}/status",
                           json={"status": "in_kitchen"}, headers=owner_headers)
    assert r.status_code == 409
    assert r.json()["error"] == "Invalid Transition"


@pytest.mark.asyncio
async def test_double_confirm_applies_once(client, order_payload, owner_headers):
    order = await place(client, order_payload())
    url = f"/api/orders/{order['id']}/status"

    first = await client.patch(url, json={"status": "confirmed"}, headers=owner_headers)
    second = await client.patch(url, json={"status": "confirmed"}, headers=owner_headers)

    assert first.status_code == 200
    assert second.status_code == 409

    r = await client.get(f"/api/orders/{order['id']}", headers=owner_headers)
    assert r.json()["status"] == "confirmed"


@pytest.mark.asyncio
async def test_stale_confirm_loses_the_race(session_factory, client, order_payload, owner):
    """
    Two operators load the same received order, then both confirm it.
    The second write was validated against a status that no longer holds.
    """
    order = await place(client, order_payload())

    async with session_factory() as first, session_factory() as second:
        order_a = await OrderStore(first).get(order["id"])
        order_b = await OrderStore(second).get(order["id"])
        transition_a = apply_transition(order_a, OrderStatus.CONFIRMED)
        transition_b = apply_transition(order_b, OrderStatus.CONFIRMED)

        await OrderStore(first).apply(order_a, transition_a)
        with pytest.raises(InvalidTransition) as exc:
            await OrderStore(second).apply(order_b, transition_b)
        assert exc.value.current == "confirmed"

    async with session_factory() as session:
        stored = await order_service.get_order(session, order["id"], owner)
        assert stored.status == OrderStatus.CONFIRMED


@pytest.mark.asyncio
async def test_status_change_requires_owner(client, order_payload, customer_headers):
    order = await place(client, order_payload())
    r = await client.patch(f"/api/orders/{order['id']}/status",
                           json={"status": "confirmed"}, headers=customer_headers)
    assert r.status_code == 403


@pytest.mark.asyncio
async def test_status_change_requires_token(client, order_payload):
    order = await place(client, order_payload())
    r = await client.patch(f"/api/orders/{order['id']}/status", json={"status": "confirmed"})
    assert r.status_code == 401
    body = r.json()
    assert body["success"] is False
    assert body["error"] == "Unauthorized"
    assert "Bearer" in body["detail"]
    assert r.headers["WWW-Authenticate"] == "Bearer"


@pytest.mark.asyncio
async def test_unknown_status_value_is_bad_request(client, order_payload, owner_headers):
    order = await place(client, order_payload())
    r = await client.patch(f"/api/orders/{order['id']}/status",
                           json={"status": "eaten"}, headers=owner_headers)
    assert r.status_code == 400


@pytest.mark.asyncio
async def test_staff_cancellation_needs_reason(client, order_payload, owner_headers):
    order = await place(client, order_payload())
    url = f"/api/orders/{order['id']}/status"

    r = await client.patch(url, json={"status": "cancelled"}, headers=owner_headers)
    assert r.status_code == 400

    r = await client.patch(url, json={"status": "cancelled", "cancellation_reason": "Out of dough"},
                           headers=owner_headers)
    assert r.status_code == 200
    assert r.json()["cancellation_reason"] == "Out of dough"


@pytest.mark.asyncio
async def test_estimated_ready_time_is_stored(client, order_payload, owner_headers):
    order = await place(client, order_payload())
    r = await client.patch(f"/api/orders/{order['id']}/status",
                           json={"status": "confirmed",
                                 "estimated_ready_time": "2030-01-01T12:30:00+00:00"},
                           headers=owner_headers)
    assert r.status_code == 200
    assert r.json()["estimated_ready_time"].startswith("2030-01-01T12:30:00")


@pytest.mark.asyncio
async def test_unknown_order_is_not_found(client, owner_headers):
    r = await client.patch("/api/orders/nope/status", json={"status": "confirmed"},
                           headers=owner_headers)
    assert r.status_code == 404


# ─── Listings ──────────────────────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_restaurant_orders_filtered_by_status(client, order_payload, owner_headers, restaurant):
    first = await place(client, order_payload())
    await place(client, order_payload())
    await client.patch(f"/api/orders/{first['id']}/status",
                       json={"status": "confirmed"}, headers=owner_headers)

    r = await client.get(f"/api/restaurants/{restaurant.id}/orders", headers=owner_headers)
    assert r.json()["total"] == 2

    r = await client.get(f"/api/restaurants/{restaurant.id}/orders",
                         params={"status": "confirmed"}, headers=owner_headers)
    body = r.json()
    assert body["total"] == 1
    assert body["orders"][0]["id"] == first["id"]


@pytest.mark.asyncio
async def test_active_orders_exclude_finished(client, order_payload, owner_headers, restaurant):
    kept = await place(client, order_payload())
    cancelled = await place(client, order_payload())
    await client.post(f"/api/orders/{cancelled['id']}/cancel", json=GUEST_CREDENTIALS)

    r = await client.get(f"/api/restaurants/{restaurant.id}/orders/active", headers=owner_headers)
    assert [o["id"] for o in r.json()["orders"]] == [kept["id"]]


@pytest.mark.asyncio
async def test_other_owner_cannot_list(client, restaurant, customer_headers):
    r = await client.get(f"/api/restaurants/{restaurant.id}/orders", headers=customer_headers)
    assert r.status_code == 403


@pytest.mark.asyncio
async def test_kitchen_board(client, order_payload, owner_headers, restaurant):
    order = await place(client, order_payload())
    done = await place(client, order_payload())
    await client.post(f"/api/orders/{done['id']}/cancel", json=GUEST_CREDENTIALS)

    r = await client.get(f"/api/restaurants/{restaurant.id}/kitchen", headers=owner_headers)
    assert r.status_code == 200, r.text
    board = r.json()
    assert board["counts"] == {"received": 1, "confirmed": 0, "in_kitchen": 0}
    assert board["overdue"] == 0
    entry = board["orders"][0]
    assert entry["order"]["id"] == order["id"]
    assert entry["estimated_total_minutes"] == 15 + 3 * 4
    assert entry["priority_bucket"] == "fresh"
    assert entry["next_status"] == "confirmed"


# ─── Customer history & reorder ────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_history_and_reorder(client, order_payload, customer_headers):
    payload = order_payload()
    payload.pop("guest_info")
    original = await place(client, payload, headers=customer_headers)

    r = await client.post(f"/api/orders/{original['id']}/reorder", headers=customer_headers)
    assert r.status_code == 201, r.text
    copy = r.json()
    assert copy["id"] != original["id"]
    assert copy["status"] == "received"
    assert copy["total_price"] == original["total_price"]

    r = await client.get("/api/orders/history", headers=customer_headers)
    assert r.json()["total"] == 2


@pytest.mark.asyncio
async def test_health(client):
    r = await client.get("/health")
    assert r.status_code == 200
    assert r.json()["database"] == "healthy"
