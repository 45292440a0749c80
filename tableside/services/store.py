"""
Order Store

Async repository over the orders and restaurants tables. Creation is
append-only; the only mutation is ``apply``, a single conditional UPDATE
that succeeds only while the row still has the status the transition
was validated against.

Author: Khalil Bannouri
Version: 1.0.0
"""

import logging
from contextlib import contextmanager
from typing import Iterable, Iterator, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import DBAPIError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from tableside.core.errors import InvalidTransition, NotFound, TransientIO
from tableside.models import Order, OrderStatus, Restaurant
from tableside.services.lifecycle import Transition

logger = logging.getLogger(__name__)


@contextmanager
def store_errors() -> Iterator[None]:
    """Surface connectivity failures as TransientIO."""
    try:
        yield
    except (OperationalError, InterfaceError) as e:
        logger.error(f"Order store unavailable: {e}")
        raise TransientIO("Order store unavailable") from e
    except DBAPIError as e:
        if e.connection_invalidated:
            logger.error(f"Order store connection lost: {e}")
            raise TransientIO("Order store connection lost") from e
        raise


class OrderStore:
    """Persistence operations for orders, bound to one session."""

    def __init__(self, session: AsyncSession):
        self.session = session

    # =========================================================================
    # RESTAURANTS
    # =========================================================================

    async def get_restaurant(self, restaurant_id: str) -> Restaurant:
        with store_errors():
            restaurant = await self.session.get(Restaurant, restaurant_id)
        if restaurant is None:
            raise NotFound(f"Restaurant {restaurant_id} not found")
        return restaurant

    # =========================================================================
    # ORDERS
    # =========================================================================

    async def create(self, order: Order) -> Order:
        with store_errors():
            self.session.add(order)
            await self.session.commit()
            await self.session.refresh(order)
        logger.info(f"Order #{order.id} stored for restaurant {order.restaurant_id}")
        return order

    async def get(self, order_id: str, *, fresh: bool = False) -> Order:
        query = select(Order).where(Order.id == order_id)
        if fresh:
            query = query.execution_options(populate_existing=True)
        with store_errors():
            result = await self.session.execute(query)
            order = result.scalar_one_or_none()
        if order is None:
            raise NotFound(f"Order #{order_id} not found")
        return order

    async def list_for_restaurant(
        self,
        restaurant_id: str,
        statuses: Optional[Iterable[OrderStatus]] = None,
        newest_first: bool = True,
    ) -> list[Order]:
        query = select(Order).where(Order.restaurant_id == restaurant_id)
        statuses = list(statuses) if statuses is not None else None
        if statuses:
            query = query.where(Order.status.in_(statuses))
        order_by = Order.created_at.desc() if newest_first else Order.created_at.asc()
        query = query.order_by(order_by)

        with store_errors():
            result = await self.session.execute(query)
            return list(result.scalars().all())

    async def list_for_customer(self, customer_id: str) -> list[Order]:
        query = (
            select(Order)
            .where(Order.customer_id == customer_id)
            .order_by(Order.created_at.desc())
        )
        with store_errors():
            result = await self.session.execute(query)
            return list(result.scalars().all())

    async def apply(self, order: Order, transition: Transition) -> Order:
        """
        Persist a validated transition atomically.

        Raises:
            InvalidTransition: The stored status moved on since validation
        """
        stmt = (
            update(Order)
            .where(
                Order.id == transition.order_id,
                Order.status == transition.from_status,
            )
            .values(**transition.values())
            .execution_options(synchronize_session=False)
        )

        with store_errors():
            result = await self.session.execute(stmt)
            if result.rowcount == 0:
                await self.session.rollback()
                current = await self.get(transition.order_id, fresh=True)
                logger.warning(
                    f"Order #{transition.order_id} changed concurrently: "
                    f"now {current.status.value}, wanted "
                    f"{transition.from_status.value} -> {transition.to_status.value}"
                )
                raise InvalidTransition(current.status.value, transition.to_status.value)

            await self.session.commit()
            await self.session.refresh(order)

        logger.info(
            f"Order #{order.id}: {transition.from_status.value} -> "
            f"{transition.to_status.value}"
        )
        return order
