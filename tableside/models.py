"""
SQLAlchemy Database Models

Multi-tenant order storage:
- Restaurants (tenants, owned by one user)
- Orders with an item snapshot, exact-cent totals and a strict status lifecycle

Author: Khalil Bannouri
Version: 1.0.0
"""

import enum
import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Column, DateTime, Enum, ForeignKey, Index, JSON, Numeric, String, Text

from tableside.database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return uuid.uuid4().hex


class OrderStatus(str, enum.Enum):
    """Order status workflow."""
    RECEIVED = "received"
    CONFIRMED = "confirmed"
    IN_KITCHEN = "in_kitchen"
    READY_FOR_PICKUP = "ready_for_pickup"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class RestaurantStatus(str, enum.Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    PENDING = "pending"


def _enum_values(enum_cls) -> list[str]:
    return [member.value for member in enum_cls]


class Restaurant(Base):
    """
    Tenant record.

    Restaurant management lives elsewhere; orders only need the id to
    resolve the tenant and the owner to authorize kitchen staff.
    """
    __tablename__ = "restaurants"

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String(120), nullable=False)
    owner_id = Column(String(64), nullable=False, index=True)
    status = Column(
        Enum(RestaurantStatus, name="restaurant_status", values_callable=_enum_values),
        default=RestaurantStatus.ACTIVE,
        nullable=False,
    )
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    def __repr__(self):
        return f"<Restaurant {self.id} - {self.name}>"


class Order(Base):
    """
    Main Order table.

    Items are a snapshot of menu data at order time; later menu edits
    never touch a placed order. Orders are never deleted.
    """
    __tablename__ = "orders"

    # Primary Key
    id = Column(String(36), primary_key=True, default=new_id)

    # =========================================================================
    # OWNERSHIP
    # =========================================================================
    restaurant_id = Column(
        String(36),
        ForeignKey("restaurants.id"),
        nullable=False,
    )
    customer_id = Column(String(64), nullable=True)

    # =========================================================================
    # GUEST CONTACT (only for unauthenticated orders)
    # =========================================================================
    guest_name = Column(String(100), nullable=True)
    guest_phone = Column(String(20), nullable=True)
    guest_email = Column(String(255), nullable=True)

    # =========================================================================
    # ORDER DETAILS
    # =========================================================================
    items = Column(JSON, nullable=False)  # [{name, price, quantity, modifications}]
    total_price = Column(Numeric(10, 2, asdecimal=True), nullable=False)
    notes = Column(Text, nullable=True)

    # =========================================================================
    # LIFECYCLE
    # =========================================================================
    status = Column(
        Enum(OrderStatus, name="order_status", values_callable=_enum_values),
        default=OrderStatus.RECEIVED,
        nullable=False,
        index=True,
    )
    estimated_ready_time = Column(DateTime(timezone=True), nullable=True)
    cancellation_reason = Column(Text, nullable=True)

    # =========================================================================
    # TIMESTAMPS
    # =========================================================================
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    __table_args__ = (
        Index("ix_orders_restaurant_created", "restaurant_id", "created_at"),
        Index("ix_orders_customer_created", "customer_id", "created_at"),
    )

    @property
    def guest_info(self) -> Optional[dict[str, Optional[str]]]:
        if not (self.guest_name or self.guest_phone or self.guest_email):
            return None
        return {
            "name": self.guest_name,
            "phone": self.guest_phone,
            "email": self.guest_email,
        }

    def __repr__(self):
        return f"<Order #{self.id} - {self.restaurant_id} - {self.status.value}>"
