"""
Pydantic Schemas for Request/Response Validation

Shared by the API server and the HTTP clients (kitchen display,
storefront) so both ends parse the same shapes.

Author: Khalil Bannouri
Version: 1.0.0
"""

import re
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_serializer, field_validator

from tableside.models import OrderStatus
from tableside.services.timing import as_utc


PHONE_DIGITS_MIN = 10
EMAIL_PATTERN = re.compile(r'^[^\s@]+@[^\s@]+\.[^\s@]+$')


def _utc_or_none(v: Optional[datetime]) -> Optional[datetime]:
    return as_utc(v) if isinstance(v, datetime) else v


# =============================================================================
# REQUEST SCHEMAS
# =============================================================================

class OrderItemCreate(BaseModel):
    """Single item in an order, copied from the menu at order time."""
    name: str = Field(..., min_length=1, max_length=100, examples=["Pizza Margherita"])
    price: Decimal = Field(..., ge=0, le=100000, examples=["14.99"])
    quantity: int = Field(..., ge=1, le=99, examples=[2])
    modifications: List[str] = Field(default_factory=list, examples=[["no onions"]])

    @field_validator('name')
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError('Item name must not be blank')
        return v

    @field_validator('modifications')
    @classmethod
    def strip_modifications(cls, v: List[str]) -> List[str]:
        return [m.strip() for m in v if m and m.strip()]


class GuestInfo(BaseModel):
    """Contact details for an unauthenticated order."""
    name: str = Field(..., min_length=1, max_length=100, examples=["Jane Doe"])
    phone: str = Field(..., min_length=10, max_length=20, examples=["555-123-4567"])
    email: str = Field(..., max_length=255, examples=["jane@example.com"])

    @field_validator('name')
    @classmethod
    def validate_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError('Name is required')
        return v

    @field_validator('phone')
    @classmethod
    def validate_phone(cls, v: str) -> str:
        v = v.strip()
        cleaned = re.sub(r'[^\d]', '', v)
        if len(cleaned) < PHONE_DIGITS_MIN:
            raise ValueError('Phone number must have at least 10 digits')
        return v

    @field_validator('email')
    @classmethod
    def validate_email(cls, v: str) -> str:
        v = v.strip()
        if not EMAIL_PATTERN.match(v):
            raise ValueError('Invalid email format')
        return v


class OrderCreate(BaseModel):
    """Request schema for creating a new order."""
    restaurant_id: str = Field(..., min_length=1, max_length=36)
    items: List[OrderItemCreate] = Field(..., min_length=1)
    guest_info: Optional[GuestInfo] = None
    notes: Optional[str] = Field(None, max_length=500)
    # Advisory client-side total; the server always recomputes
    total_price: Optional[Decimal] = Field(None, ge=0)


class StatusUpdateRequest(BaseModel):
    """Owner/kitchen request to move an order to another status."""
    status: OrderStatus
    estimated_ready_time: Optional[datetime] = None
    cancellation_reason: Optional[str] = Field(None, max_length=500)


class CancelOrderRequest(BaseModel):
    """Customer or guest cancellation."""
    email: Optional[str] = None
    phone: Optional[str] = None
    reason: Optional[str] = Field(None, max_length=500)


# =============================================================================
# RESPONSE SCHEMAS
# =============================================================================

class OrderItemResponse(BaseModel):
    name: str
    price: Decimal
    quantity: int
    modifications: List[str] = Field(default_factory=list)

    @field_serializer('price')
    def serialize_price(self, v: Decimal) -> float:
        return float(v)


class GuestInfoResponse(BaseModel):
    name: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None


class OrderResponse(BaseModel):
    """Response schema for a single order."""
    id: str
    restaurant_id: str
    customer_id: Optional[str] = None
    guest_info: Optional[GuestInfoResponse] = None
    items: List[OrderItemResponse]
    total_price: Decimal
    status: OrderStatus
    estimated_ready_time: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    notes: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True

    @field_validator('created_at', 'updated_at', 'estimated_ready_time')
    @classmethod
    def ensure_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return _utc_or_none(v)

    @field_serializer('total_price')
    def serialize_total(self, v: Decimal) -> float:
        return float(v.quantize(Decimal("0.01")))


class OrderListResponse(BaseModel):
    """Response for listing multiple orders."""
    total: int
    orders: List[OrderResponse]


class KitchenOrderResponse(BaseModel):
    """An order with its kitchen timing fields."""
    order: OrderResponse
    elapsed_minutes: int
    estimated_total_minutes: int
    estimated_completion_time: datetime
    is_overdue: bool
    priority_bucket: str
    next_status: Optional[OrderStatus] = None


class KitchenBoardResponse(BaseModel):
    """Server-annotated kitchen board for one restaurant."""
    restaurant_id: str
    generated_at: datetime
    orders: List[KitchenOrderResponse]
    counts: Dict[str, int]
    overdue: int


class ErrorResponse(BaseModel):
    """Standard error response."""
    success: bool = False
    error: str
    detail: Optional[str] = None


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    database: str
    timestamp: datetime
