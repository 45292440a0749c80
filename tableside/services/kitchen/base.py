"""
Kitchen Display Collaborator Interfaces

The display controller talks to two collaborators it does not own:

    OrderSource  - where orders come from and where transitions go
                   (HTTP API in production, in-process for tests/demos)
    AlertSink    - how a "new order arrived" event is made noticeable

Both are swappable the same way the rest of the platform swaps service
implementations: the controller only sees these base classes.

Author: Khalil Bannouri
Version: 1.0.0
"""

from abc import ABC, abstractmethod
from typing import Optional, Sequence

from tableside.models import OrderStatus
from tableside.schemas import OrderResponse
from tableside.services.lifecycle import TransitionContext


class OrderSource(ABC):
    """
    Abstract order source for one kitchen display.

    Implementations raise the domain error types from
    ``tableside.core.errors``; connectivity problems must surface as
    ``TransientIO`` so the controller can flip to disconnected.
    """

    @property
    @abstractmethod
    def source_name(self) -> str:
        """Short name used in log lines (e.g. "http", "local")."""
        pass

    @abstractmethod
    async def fetch_orders(self, restaurant_id: str) -> Sequence[OrderResponse]:
        """
        Fetch the current full order set for a restaurant.

        Args:
            restaurant_id: Restaurant whose orders to fetch

        Returns:
            Sequence[OrderResponse]: Every order, in any order
        """
        pass

    @abstractmethod
    async def update_status(
        self,
        order_id: str,
        target_status: OrderStatus,
        context: Optional[TransitionContext] = None,
    ) -> OrderResponse:
        """
        Request a lifecycle transition.

        Returns:
            OrderResponse: The order as stored after the change

        Raises:
            InvalidTransition: Stored status no longer allows the move
        """
        pass

    async def close(self) -> None:
        """Release any connections held by the source."""
        return None


class AlertSink(ABC):
    """Makes new-order events noticeable to kitchen staff."""

    @property
    @abstractmethod
    def sink_name(self) -> str:
        pass

    @abstractmethod
    async def play_sound(self, new_orders: int) -> None:
        """Audible alert for ``new_orders`` arrivals."""
        pass

    @abstractmethod
    async def flash(self, new_orders: int) -> None:
        """Transient visual alert for ``new_orders`` arrivals."""
        pass
