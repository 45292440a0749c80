"""
In-Process Order Source

Runs the kitchen display against the order service directly, without
HTTP. Used for single-process demos and tests; each call opens its own
session so the source behaves like one request per call.

Author: Khalil Bannouri
Version: 1.0.0
"""

import logging
from typing import Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tableside.core.security import Caller
from tableside.models import OrderStatus
from tableside.schemas import OrderResponse
from tableside.services import orders as order_service
from tableside.services.kitchen.base import OrderSource
from tableside.services.lifecycle import TransitionContext

logger = logging.getLogger(__name__)


class LocalOrderSource(OrderSource):
    """
    Order source over a session factory.

    Args:
        session_factory: Factory producing AsyncSession instances
        caller: Identity the display acts as (the restaurant owner)
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], caller: Caller):
        self.session_factory = session_factory
        self.caller = caller
        logger.info(f"LocalOrderSource initialized (acting as {caller.user_id})")

    @property
    def source_name(self) -> str:
        return "local"

    async def fetch_orders(self, restaurant_id: str) -> Sequence[OrderResponse]:
        async with self.session_factory() as session:
            orders = await order_service.list_restaurant_orders(
                session, restaurant_id, self.caller
            )
            return [OrderResponse.model_validate(o) for o in orders]

    async def update_status(
        self,
        order_id: str,
        target_status: OrderStatus,
        context: Optional[TransitionContext] = None,
    ) -> OrderResponse:
        async with self.session_factory() as session:
            order = await order_service.update_order_status(
                session, order_id, target_status, self.caller, context
            )
            return OrderResponse.model_validate(order)
