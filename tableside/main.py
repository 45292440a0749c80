"""
FastAPI Application Entry Point

Tableside Ordering Platform - order API for storefronts, owner
dashboards and kitchen displays.

Endpoints:
    - POST /api/orders: Place an order (guest or authenticated)
    - GET /api/orders/history: Authenticated customer's orders
    - GET /api/orders/{id}: Fetch one order (guest credentials via query)
    - PATCH /api/orders/{id}/status: Owner/kitchen status change
    - POST /api/orders/{id}/cancel: Customer/guest cancellation
    - POST /api/orders/{id}/reorder: Re-place a previous order
    - GET /api/restaurants/{id}/orders: Restaurant orders
    - GET /api/restaurants/{id}/orders/active: Non-terminal orders
    - GET /api/restaurants/{id}/kitchen: Annotated kitchen board
    - GET /health: System health check

Author: Khalil Bannouri
Version: 1.0.0
"""

import asyncio
import logging
import sys
from collections import Counter
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from http import HTTPStatus
from typing import List, Optional

from fastapi import Depends, FastAPI, Query, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.exceptions import HTTPException as StarletteHTTPException

# Windows-specific event loop policy
if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

from tableside.core.config import get_settings, setup_logging
from tableside.core.errors import TablesideError
from tableside.core.security import Caller, optional_caller, require_caller
from tableside.database import engine, get_db, init_db
from tableside.models import OrderStatus
from tableside.schemas import (
    CancelOrderRequest,
    ErrorResponse,
    HealthResponse,
    KitchenBoardResponse,
    KitchenOrderResponse,
    OrderCreate,
    OrderListResponse,
    OrderResponse,
    StatusUpdateRequest,
)
from tableside.services import orders as order_service
from tableside.services.lifecycle import KITCHEN_STATUSES, TransitionContext, next_status
from tableside.services.timing import KitchenOrder

# Initialize configuration and logging
settings = get_settings()
setup_logging()
logger = logging.getLogger(__name__)


# =============================================================================
# APPLICATION LIFECYCLE
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage application startup and shutdown events.
    """
    # Startup
    logger.info("=" * 60)
    logger.info(f"🚀 Starting {settings.app_name}")
    logger.info(f"   Version: {settings.app_version}")
    logger.info(f"   Environment: {settings.env_mode.value}")
    logger.info(f"   Debug: {settings.debug}")
    logger.info("=" * 60)

    await init_db()
    logger.info("✅ Database initialized")

    missing = settings.validate_production_config()
    if missing:
        logger.warning(f"⚠️ Missing production config: {missing}")

    logger.info("✅ Application ready!")

    yield  # Application runs

    # Shutdown
    logger.info("Shutting down...")
    await engine.dispose()
    logger.info("✅ Cleanup complete")


# =============================================================================
# APPLICATION INSTANCE
# =============================================================================

app = FastAPI(
    title=settings.app_name,
    description=(
        "Multi-tenant restaurant ordering: guest and customer order placement, "
        "a strict order lifecycle and a polling kitchen display."
    ),
    version=settings.app_version,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def kitchen_order_response(kitchen_order: KitchenOrder) -> KitchenOrderResponse:
    return KitchenOrderResponse(
        order=OrderResponse.model_validate(kitchen_order.order),
        elapsed_minutes=kitchen_order.elapsed_minutes,
        estimated_total_minutes=kitchen_order.estimated_total_minutes,
        estimated_completion_time=kitchen_order.estimated_completion_time,
        is_overdue=kitchen_order.is_overdue,
        priority_bucket=kitchen_order.priority_bucket.value,
        next_status=next_status(kitchen_order.status),
    )


ERROR_RESPONSES = {
    400: {"model": ErrorResponse},
    403: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
}


# =============================================================================
# ROOT & HEALTH ENDPOINTS
# =============================================================================

@app.get("/", tags=["Root"])
async def root() -> dict[str, str]:
    """API root with navigation links."""
    return {
        "message": f"🍽️ Welcome to {settings.app_name}",
        "version": settings.app_version,
        "environment": settings.env_mode.value,
        "documentation": "/docs",
        "health": "/health",
    }


@app.get(
    "/health",
    response_model=HealthResponse,
    tags=["Health"],
    summary="System Health Check",
)
async def health_check(
    db: AsyncSession = Depends(get_db)
) -> HealthResponse:
    """Verify the order store is reachable."""
    db_status = "healthy"
    try:
        await db.execute(select(1))
    except Exception as e:
        db_status = f"unhealthy: {str(e)}"
        logger.error(f"Database health check failed: {e}")

    return HealthResponse(
        status="operational" if db_status == "healthy" else "degraded",
        database=db_status,
        timestamp=datetime.now(timezone.utc),
    )


# =============================================================================
# ORDER API ENDPOINTS
# =============================================================================

@app.post(
    "/api/orders",
    response_model=OrderResponse,
    status_code=status.HTTP_201_CREATED,
    responses=ERROR_RESPONSES,
    tags=["Orders"],
    summary="Place Order",
)
async def create_order(
    order_data: OrderCreate,
    db: AsyncSession = Depends(get_db),
    caller: Optional[Caller] = Depends(optional_caller),
) -> OrderResponse:
    """
    Place a new order.

    Guests must include ``guest_info``; authenticated customers are
    taken from the bearer token. The total is computed server-side.
    """
    logger.info(
        f"Creating order for restaurant {order_data.restaurant_id} "
        f"({'customer ' + caller.user_id if caller else 'guest'})"
    )
    order = await order_service.create_order(db, order_data, caller)
    return OrderResponse.model_validate(order)


@app.get(
    "/api/orders/history",
    response_model=OrderListResponse,
    tags=["Orders"],
    summary="Order History",
)
async def order_history(
    db: AsyncSession = Depends(get_db),
    caller: Caller = Depends(require_caller),
) -> OrderListResponse:
    """Orders placed by the authenticated customer, newest first."""
    orders = await order_service.order_history(db, caller)
    return OrderListResponse(
        total=len(orders),
        orders=[OrderResponse.model_validate(o) for o in orders],
    )


@app.get(
    "/api/orders/{order_id}",
    response_model=OrderResponse,
    responses=ERROR_RESPONSES,
    tags=["Orders"],
)
async def get_order(
    order_id: str,
    email: Optional[str] = Query(None),
    phone: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_db),
    caller: Optional[Caller] = Depends(optional_caller),
) -> OrderResponse:
    """Get a specific order; guests must pass the email and phone they ordered with."""
    order = await order_service.get_order(db, order_id, caller, email=email, phone=phone)
    return OrderResponse.model_validate(order)


@app.patch(
    "/api/orders/{order_id}/status",
    response_model=OrderResponse,
    responses={**ERROR_RESPONSES, 409: {"model": ErrorResponse}},
    tags=["Orders"],
    summary="Update Order Status",
)
async def update_order_status(
    order_id: str,
    update: StatusUpdateRequest,
    db: AsyncSession = Depends(get_db),
    caller: Caller = Depends(require_caller),
) -> OrderResponse:
    """Move an order along its lifecycle (restaurant owner only)."""
    context = TransitionContext(
        estimated_ready_time=update.estimated_ready_time,
        cancellation_reason=update.cancellation_reason,
    )
    order = await order_service.update_order_status(
        db, order_id, update.status, caller, context
    )
    return OrderResponse.model_validate(order)


@app.post(
    "/api/orders/{order_id}/cancel",
    response_model=OrderResponse,
    responses={**ERROR_RESPONSES, 409: {"model": ErrorResponse}},
    tags=["Orders"],
    summary="Cancel Order",
)
async def cancel_order(
    order_id: str,
    request_data: Optional[CancelOrderRequest] = None,
    db: AsyncSession = Depends(get_db),
    caller: Optional[Caller] = Depends(optional_caller),
) -> OrderResponse:
    """Cancel an order that has not reached the kitchen yet."""
    request_data = request_data or CancelOrderRequest()
    order = await order_service.cancel_order(
        db,
        order_id,
        caller,
        email=request_data.email,
        phone=request_data.phone,
        reason=request_data.reason,
    )
    return OrderResponse.model_validate(order)


@app.post(
    "/api/orders/{order_id}/reorder",
    response_model=OrderResponse,
    status_code=status.HTTP_201_CREATED,
    responses=ERROR_RESPONSES,
    tags=["Orders"],
)
async def reorder(
    order_id: str,
    db: AsyncSession = Depends(get_db),
    caller: Caller = Depends(require_caller),
) -> OrderResponse:
    """Place the same items again as a new order."""
    order = await order_service.reorder(db, order_id, caller)
    return OrderResponse.model_validate(order)


# =============================================================================
# RESTAURANT ORDER ENDPOINTS
# =============================================================================

@app.get(
    "/api/restaurants/{restaurant_id}/orders",
    response_model=OrderListResponse,
    responses=ERROR_RESPONSES,
    tags=["Restaurant Orders"],
)
async def list_restaurant_orders(
    restaurant_id: str,
    status_filter: Optional[List[OrderStatus]] = Query(None, alias="status"),
    db: AsyncSession = Depends(get_db),
    caller: Caller = Depends(require_caller),
) -> OrderListResponse:
    """All orders for a restaurant, newest first. Repeat ``status`` to filter."""
    orders = await order_service.list_restaurant_orders(
        db, restaurant_id, caller, statuses=status_filter
    )
    return OrderListResponse(
        total=len(orders),
        orders=[OrderResponse.model_validate(o) for o in orders],
    )


@app.get(
    "/api/restaurants/{restaurant_id}/orders/active",
    response_model=OrderListResponse,
    responses=ERROR_RESPONSES,
    tags=["Restaurant Orders"],
)
async def list_active_orders(
    restaurant_id: str,
    db: AsyncSession = Depends(get_db),
    caller: Caller = Depends(require_caller),
) -> OrderListResponse:
    """Every order not yet delivered or cancelled, oldest first."""
    orders = await order_service.list_active_orders(db, restaurant_id, caller)
    return OrderListResponse(
        total=len(orders),
        orders=[OrderResponse.model_validate(o) for o in orders],
    )


@app.get(
    "/api/restaurants/{restaurant_id}/kitchen",
    response_model=KitchenBoardResponse,
    responses=ERROR_RESPONSES,
    tags=["Kitchen"],
)
async def kitchen_board(
    restaurant_id: str,
    db: AsyncSession = Depends(get_db),
    caller: Caller = Depends(require_caller),
) -> KitchenBoardResponse:
    """Kitchen orders with elapsed time, estimate, overdue flag and priority."""
    now = datetime.now(timezone.utc)
    board = await order_service.kitchen_board(db, restaurant_id, caller, now=now)
    counts = Counter(k.status for k in board)
    return KitchenBoardResponse(
        restaurant_id=restaurant_id,
        generated_at=now,
        orders=[kitchen_order_response(k) for k in board],
        counts={s.value: counts.get(s.value, 0) for s in KITCHEN_STATUSES},
        overdue=sum(1 for k in board if k.is_overdue),
    )


# =============================================================================
# ERROR HANDLERS
# =============================================================================

@app.exception_handler(TablesideError)
async def domain_exception_handler(request: Request, exc: TablesideError) -> JSONResponse:
    """Render domain errors with their mapped status code."""
    if exc.status_code >= 500:
        logger.error(f"{exc.error} on {request.url.path}: {exc.detail}")
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(error=exc.error, detail=exc.detail).model_dump(),
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Auth rejections and unknown routes share the standard error body."""
    try:
        error = HTTPStatus(exc.status_code).phrase
    except ValueError:
        error = "HTTP Error"
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(error=error, detail=str(exc.detail)).model_dump(),
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Malformed input is a 400, like every other validation failure."""
    messages = "; ".join(
        f"{'.'.join(str(p) for p in err.get('loc', ()))}: {err.get('msg')}"
        for err in exc.errors()
    )
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=ErrorResponse(error="Validation Error", detail=messages).model_dump(),
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all exception handler."""
    # Rendered as 500 like TransientIO, so clients cannot tell a bug from
    # a store outage and will retry either one.
    logger.exception(f"Unhandled exception: {exc}")

    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": "Internal Server Error",
            "detail": str(exc) if settings.debug else "An unexpected error occurred",
        },
    )
