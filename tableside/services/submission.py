"""
Guest/Customer Order Submission

Storefront side of order placement: a cart of menu items (with optional
price variants such as Small/Medium/Large), guest contact validation,
and the create-order request body.

The cart total is a convenience for display; the server recomputes the
authoritative total from the submitted items.

Usage:
    cart = Cart("rest_1")
    cart.add(margherita, variant_id="large")
    payload = build_order_payload("rest_1", cart, guest={
        "name": "Jane Doe", "phone": "(555) 123-4567", "email": "jane@example.com",
    })
    async with StorefrontClient("http://localhost:8001") as client:
        order = await client.place_order(payload)

Author: Khalil Bannouri
Version: 1.0.0
"""

import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Optional, Union

import httpx
from pydantic import ValidationError as PydanticValidationError

from tableside.core.errors import TransientIO, ValidationError
from tableside.schemas import GuestInfo, OrderListResponse, OrderResponse
from tableside.services.kitchen.http import error_from_response, parse_response

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")

# (555) 123-4567, 555-123-4567, 555.123.4567, 5551234567
US_PHONE_PATTERN = re.compile(r'^\(?([0-9]{3})\)?[-. ]?([0-9]{3})[-. ]?([0-9]{4})$')
EMAIL_PATTERN = re.compile(r'^[^\s@]+@[^\s@]+\.[^\s@]+$')


# =============================================================================
# MENU & CART
# =============================================================================

@dataclass(frozen=True)
class PriceVariant:
    """One price point of a menu item (e.g. "Large")."""
    id: str
    name: str
    price: Decimal


@dataclass(frozen=True)
class MenuItemRef:
    """
    A menu item as the storefront sees it.

    Attributes:
        id: Menu item id
        name: Display name
        price: Base price, used when no variant is selected
        variants: Optional price points
        available: Unavailable items cannot be added to a cart
    """
    id: str
    name: str
    price: Decimal
    variants: tuple[PriceVariant, ...] = ()
    available: bool = True

    def variant(self, variant_id: str) -> PriceVariant:
        for variant in self.variants:
            if variant.id == variant_id:
                return variant
        raise ValidationError(f"'{self.name}' has no price option '{variant_id}'")


@dataclass
class CartLine:
    item: MenuItemRef
    quantity: int = 1
    variant: Optional[PriceVariant] = None
    modifications: tuple[str, ...] = ()

    @property
    def key(self) -> str:
        """Lines for the same item, variant and modifications share a key."""
        key = f"{self.item.id}-{self.variant.id}" if self.variant else self.item.id
        if self.modifications:
            key += "|" + "|".join(sorted(self.modifications))
        return key

    @property
    def unit_price(self) -> Decimal:
        return Decimal(str(self.variant.price if self.variant else self.item.price))

    @property
    def display_name(self) -> str:
        return f"{self.item.name} ({self.variant.name})" if self.variant else self.item.name

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity


class Cart:
    """
    Shopping cart for one restaurant.

    Adding an item that is already in the cart with the same price
    variant and the same modifications bumps the existing line's quantity instead of adding a line.
    """

    def __init__(self, restaurant_id: Optional[str] = None):
        self.restaurant_id = restaurant_id
        self.lines: list[CartLine] = []

    def __len__(self) -> int:
        return len(self.lines)

    @property
    def is_empty(self) -> bool:
        return not self.lines

    @property
    def item_count(self) -> int:
        return sum(line.quantity for line in self.lines)

    @property
    def total(self) -> Decimal:
        """Advisory total; the server recomputes it."""
        total = sum((line.line_total for line in self.lines), Decimal("0"))
        return total.quantize(CENT, rounding=ROUND_HALF_UP)

    def set_restaurant(self, restaurant_id: str) -> None:
        """Switching restaurants empties the cart."""
        if self.restaurant_id and self.restaurant_id != restaurant_id:
            self.clear()
        self.restaurant_id = restaurant_id

    def add(
        self,
        item: MenuItemRef,
        quantity: int = 1,
        variant_id: Optional[str] = None,
        modifications: tuple[str, ...] = (),
    ) -> CartLine:
        if quantity < 1:
            raise ValidationError("Quantity must be at least 1")
        if not item.available:
            raise ValidationError(f"'{item.name}' is currently unavailable")

        variant = item.variant(variant_id) if variant_id else None
        line = CartLine(item=item, quantity=quantity, variant=variant,
                        modifications=tuple(modifications))

        existing = self.get(line.key)
        if existing is not None:
            existing.quantity += quantity
            return existing
        self.lines.append(line)
        return line

    def get(self, key: str) -> Optional[CartLine]:
        for line in self.lines:
            if line.key == key:
                return line
        return None

    def set_quantity(self, key: str, quantity: int) -> None:
        """Set a line's quantity; zero or less removes the line."""
        if quantity <= 0:
            self.remove(key)
            return
        line = self.get(key)
        if line is None:
            raise ValidationError(f"No cart line '{key}'")
        line.quantity = quantity

    def remove(self, key: str) -> None:
        self.lines = [line for line in self.lines if line.key != key]

    def clear(self) -> None:
        self.lines = []


# =============================================================================
# GUEST DETAILS
# =============================================================================

def validate_guest(guest: Union[GuestInfo, Mapping[str, Any]]) -> GuestInfo:
    """
    Check a guest form the way the storefront does before submitting.

    Raises:
        ValidationError: Listing every field that is missing or malformed
    """
    data = guest.model_dump() if isinstance(guest, GuestInfo) else dict(guest)
    name = (data.get("name") or "").strip()
    phone = (data.get("phone") or "").strip()
    email = (data.get("email") or "").strip()

    problems = []
    if not name:
        problems.append("Name is required")
    if not phone:
        problems.append("Phone number is required")
    elif not US_PHONE_PATTERN.match(phone):
        problems.append("Please enter a valid phone number")
    if not email:
        problems.append("Email is required")
    elif not EMAIL_PATTERN.match(email):
        problems.append("Please enter a valid email address")

    if problems:
        raise ValidationError("; ".join(problems))

    try:
        return GuestInfo(name=name, phone=phone, email=email)
    except PydanticValidationError as e:
        raise ValidationError(str(e)) from e


def build_order_payload(
    restaurant_id: str,
    cart: Cart,
    guest: Optional[Union[GuestInfo, Mapping[str, Any]]] = None,
    authenticated: bool = False,
    notes: Optional[str] = None,
) -> dict[str, Any]:
    """
    Build the create-order request body.

    Args:
        restaurant_id: Restaurant the order is for
        cart: Non-empty cart
        guest: Contact details, required unless ``authenticated``
        authenticated: Whether the request will carry a customer token
        notes: Free-text order notes

    Raises:
        ValidationError: Empty cart or missing/invalid guest details
    """
    if cart.is_empty:
        raise ValidationError("Your cart is empty")

    payload: dict[str, Any] = {
        "restaurant_id": restaurant_id,
        "items": [
            {
                "name": line.display_name,
                "price": float(line.unit_price),
                "quantity": line.quantity,
                "modifications": list(line.modifications),
            }
            for line in cart.lines
        ],
        "total_price": float(cart.total),
    }

    if not authenticated:
        if guest is None:
            raise ValidationError("Guest information is required for non-authenticated users")
        payload["guest_info"] = validate_guest(guest).model_dump()

    if notes and notes.strip():
        payload["notes"] = notes.strip()

    return payload


# =============================================================================
# HTTP CLIENT
# =============================================================================

class StorefrontClient:
    """
    Async client for the customer-facing order endpoints.

    Args:
        base_url: API root
        token: Customer bearer token; omit for guest checkout
        timeout: Request timeout in seconds
        client: Pre-built client (tests pass one bound to the app)
    """

    def __init__(
        self,
        base_url: str = "http://localhost:8001",
        token: Optional[str] = None,
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(base_url=base_url, timeout=timeout)
        self.headers = {"Authorization": f"Bearer {token}"} if token else {}

    @property
    def authenticated(self) -> bool:
        return bool(self.headers)

    async def __aenter__(self) -> "StorefrontClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        try:
            response = await self.client.request(method, url, headers=self.headers, **kwargs)
        except httpx.RequestError as e:
            logger.warning(f"{method} {url} failed: {e}")
            raise TransientIO(f"Cannot reach order API: {e}") from e
        if response.is_error:
            raise error_from_response(response)
        return response

    async def place_order(self, payload: dict[str, Any]) -> OrderResponse:
        response = await self._request("POST", "/api/orders", json=payload)
        order = parse_response(OrderResponse, response)
        logger.info(f"Placed order #{order.id} (total {order.total_price})")
        return order

    async def checkout(
        self,
        cart: Cart,
        guest: Optional[Union[GuestInfo, Mapping[str, Any]]] = None,
        notes: Optional[str] = None,
    ) -> OrderResponse:
        """Validate and submit the cart, emptying it once the order is placed."""
        if not cart.restaurant_id:
            raise ValidationError("Cart is not attached to a restaurant")
        payload = build_order_payload(
            cart.restaurant_id, cart, guest=guest,
            authenticated=self.authenticated, notes=notes,
        )
        order = await self.place_order(payload)
        cart.clear()
        return order

    async def get_order(
        self,
        order_id: str,
        email: Optional[str] = None,
        phone: Optional[str] = None,
    ) -> OrderResponse:
        params = {k: v for k, v in (("email", email), ("phone", phone)) if v}
        response = await self._request("GET", f"/api/orders/{order_id}", params=params)
        return parse_response(OrderResponse, response)

    async def cancel_order(
        self,
        order_id: str,
        email: Optional[str] = None,
        phone: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> OrderResponse:
        body = {"email": email, "phone": phone, "reason": reason}
        response = await self._request(
            "POST", f"/api/orders/{order_id}/cancel",
            json={k: v for k, v in body.items() if v is not None},
        )
        return parse_response(OrderResponse, response)

    async def order_history(self) -> list[OrderResponse]:
        response = await self._request("GET", "/api/orders/history")
        return parse_response(OrderListResponse, response).orders

    async def close(self) -> None:
        if self._owns_client:
            await self.client.aclose()
