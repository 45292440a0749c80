"""
Kitchen Display Controller

Keeps a live, priority-sorted view of one restaurant's kitchen orders
(received, confirmed, in_kitchen) and dispatches operator transitions.

Two independent timers run on the event loop:

    poll   (default 10s)  fetch -> filter -> new-order check -> annotate -> swap
    clock  (default 60s)  re-annotate the current orders against "now", no fetch

Display connection state:

    disconnected --(successful fetch)--> connected
    connected    --(any failed fetch)--> disconnected

Retries happen on the fixed poll interval only, no backoff. Every
fetch is bounded by a request timeout shorter than the poll interval,
and each fetch carries a generation number so a slow fetch that
completes after a newer one is dropped instead of overwriting it.

The working set is only ever replaced as a whole. Status changes are
never shown optimistically: the display changes after the server
confirms and the follow-up refetch completes.

Author: Khalil Bannouri
Version: 1.0.0
"""

import asyncio
import enum
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Awaitable, Callable, Coroutine, Optional

from tableside.core.errors import InvalidTransition, TablesideError, TransientIO
from tableside.models import OrderStatus, utcnow
from tableside.services.kitchen.alerts import NullAlertSink
from tableside.services.kitchen.base import AlertSink, OrderSource
from tableside.services.lifecycle import (
    KITCHEN_STATUSES,
    TransitionContext,
    coerce_status,
    next_status,
)
from tableside.services.timing import KitchenOrder, TimingPolicy, annotate_all

logger = logging.getLogger(__name__)


class ConnectionState(str, enum.Enum):
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"


@dataclass(frozen=True)
class DisplaySnapshot:
    """
    Immutable view of the display at one instant.

    Attributes:
        restaurant_id: Restaurant shown
        orders: Annotated orders, most urgent first
        connection: Whether the last fetch succeeded
        error_message: Operator-facing error banner, if any
        now: Reference time used for the annotations
        last_fetched_at: Time of the last applied fetch
        auto_refresh: Whether scheduled polling is on
        audio_enabled: Whether new orders ring
        flash_enabled: Whether new orders flash
    """
    restaurant_id: str
    orders: tuple[KitchenOrder, ...]
    connection: ConnectionState
    error_message: Optional[str]
    now: datetime
    last_fetched_at: Optional[datetime]
    auto_refresh: bool
    audio_enabled: bool
    flash_enabled: bool

    @property
    def counts(self) -> dict[str, int]:
        counts = {status.value: 0 for status in KITCHEN_STATUSES}
        for kitchen_order in self.orders:
            counts[kitchen_order.status] = counts.get(kitchen_order.status, 0) + 1
        return counts

    @property
    def overdue_count(self) -> int:
        return sum(1 for k in self.orders if k.is_overdue)

    @property
    def is_connected(self) -> bool:
        return self.connection == ConnectionState.CONNECTED


Listener = Callable[[DisplaySnapshot], None]


class KitchenDisplayController:
    """
    Polling controller behind a kitchen display.

    Args:
        source: Where orders are fetched from and transitions sent to
        restaurant_id: Restaurant to display
        alerts: New-order alert sink (defaults to a silent sink)
        policy: Timing thresholds for the annotations
        poll_interval: Seconds between scheduled fetches
        clock_interval: Seconds between local re-annotations
        request_timeout: Seconds before a fetch or action is abandoned
        audio_enabled: Initial audio toggle
        flash_enabled: Initial flash toggle
        clock: Source of "now" (UTC)
    """

    def __init__(
        self,
        source: OrderSource,
        restaurant_id: str,
        alerts: Optional[AlertSink] = None,
        policy: Optional[TimingPolicy] = None,
        poll_interval: float = 10.0,
        clock_interval: float = 60.0,
        request_timeout: float = 8.0,
        audio_enabled: bool = True,
        flash_enabled: bool = True,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.source = source
        self.restaurant_id = restaurant_id
        self.alerts = alerts or NullAlertSink()
        self.policy = policy or TimingPolicy()
        self.poll_interval = poll_interval
        self.clock_interval = clock_interval
        self.request_timeout = request_timeout
        self.auto_refresh = True
        self.audio_enabled = audio_enabled
        self.flash_enabled = flash_enabled
        self._clock = clock

        self._connection = ConnectionState.DISCONNECTED
        self._orders: tuple[Any, ...] = ()
        self._board: tuple[KitchenOrder, ...] = ()
        self._now = clock()
        self._last_fetched_at: Optional[datetime] = None
        self._previous_count = 0
        self._fetch_error: Optional[str] = None
        self._action_error: Optional[str] = None

        self._generation = 0
        self._applied_generation = 0

        self.new_order_signals = 0
        self._alert_tasks: set[asyncio.Task] = set()
        self._listeners: list[Listener] = []
        self._stopped = asyncio.Event()

    # =========================================================================
    # STATE ACCESS
    # =========================================================================

    @property
    def connection(self) -> ConnectionState:
        return self._connection

    @property
    def orders(self) -> tuple[KitchenOrder, ...]:
        return self._board

    @property
    def error_message(self) -> Optional[str]:
        return self._action_error or self._fetch_error

    def snapshot(self) -> DisplaySnapshot:
        return DisplaySnapshot(
            restaurant_id=self.restaurant_id,
            orders=self._board,
            connection=self._connection,
            error_message=self.error_message,
            now=self._now,
            last_fetched_at=self._last_fetched_at,
            auto_refresh=self.auto_refresh,
            audio_enabled=self.audio_enabled,
            flash_enabled=self.flash_enabled,
        )

    def add_listener(self, listener: Listener) -> None:
        """Call ``listener`` with a fresh snapshot after every change."""
        self._listeners.append(listener)

    def _notify(self) -> None:
        if not self._listeners:
            return
        snapshot = self.snapshot()
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception as e:
                logger.exception(f"Display listener failed: {e}")

    def _set_connection(self, state: ConnectionState) -> None:
        if state == self._connection:
            return
        self._connection = state
        if state == ConnectionState.CONNECTED:
            logger.info(f"Kitchen display {self.restaurant_id}: connected")
        else:
            logger.warning(f"Kitchen display {self.restaurant_id}: disconnected, retrying on next poll")

    # =========================================================================
    # OPERATOR TOGGLES
    # =========================================================================

    def set_auto_refresh(self, enabled: bool) -> None:
        self.auto_refresh = enabled
        self._notify()

    def set_audio(self, enabled: bool) -> None:
        self.audio_enabled = enabled
        self._notify()

    def set_flash(self, enabled: bool) -> None:
        self.flash_enabled = enabled
        self._notify()

    def dismiss_error(self) -> None:
        self._action_error = None
        self._fetch_error = None
        self._notify()

    # =========================================================================
    # POLL CYCLE
    # =========================================================================

    async def _bounded(self, operation: Awaitable, description: str):
        try:
            return await asyncio.wait_for(operation, timeout=self.request_timeout)
        except asyncio.TimeoutError as e:
            raise TransientIO(
                f"{description} timed out after {self.request_timeout:g}s"
            ) from e

    async def refresh(self) -> bool:
        """
        Run one fetch cycle.

        Returns:
            bool: True if the fetched orders replaced the working set
        """
        self._generation += 1
        generation = self._generation

        try:
            fetched = await self._bounded(
                self.source.fetch_orders(self.restaurant_id), "Fetching orders"
            )
            active = tuple(o for o in fetched if coerce_status(o.status) in KITCHEN_STATUSES)
        except TablesideError as e:
            self._fetch_failed(generation, e)
            return False
        except Exception as e:
            logger.exception(f"Unexpected failure fetching orders for {self.restaurant_id}")
            self._fetch_failed(generation, TablesideError(f"Fetching orders failed: {e}"))
            return False

        if generation < self._applied_generation:
            logger.debug(f"Discarding stale fetch #{generation}")
            return False
        self._applied_generation = generation

        now = self._clock()

        arrived = len(active) - self._previous_count
        if arrived > 0:
            self._signal_new_orders(arrived)
        self._previous_count = len(active)

        self._orders = active
        self._board = annotate_all(active, now, self.policy)
        self._now = now
        self._last_fetched_at = now
        self._fetch_error = None
        self._set_connection(ConnectionState.CONNECTED)
        self._notify()
        return True

    def _fetch_failed(self, generation: int, error: TablesideError) -> None:
        if generation < self._applied_generation:
            logger.debug(f"Discarding stale fetch failure #{generation}: {error.detail}")
            return
        self._applied_generation = generation

        # Transient failures only show through the connection indicator
        self._fetch_error = None if error.retryable else error.detail
        if not error.retryable:
            logger.error(f"Fetching orders for {self.restaurant_id} failed: {error.detail}")
        self._set_connection(ConnectionState.DISCONNECTED)
        self._notify()

    def tick_clock(self) -> None:
        """Re-annotate the current working set against the current time."""
        now = self._clock()
        self._board = annotate_all(self._orders, now, self.policy)
        self._now = now
        self._notify()

    # =========================================================================
    # NEW ORDER ALERTS
    # =========================================================================

    def _signal_new_orders(self, count: int) -> None:
        self.new_order_signals += 1
        logger.info(f"Kitchen display {self.restaurant_id}: {count} new order(s)")
        if self.audio_enabled:
            self._fire(self.alerts.play_sound(count))
        if self.flash_enabled:
            self._fire(self.alerts.flash(count))

    def _fire(self, alert: Coroutine) -> None:
        task = asyncio.create_task(alert)
        self._alert_tasks.add(task)
        task.add_done_callback(self._alert_done)

    def _alert_done(self, task: asyncio.Task) -> None:
        self._alert_tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.warning(f"Alert via {self.alerts.sink_name} failed: {error}")

    # =========================================================================
    # OPERATOR ACTIONS
    # =========================================================================

    def _find(self, order_id: str) -> Optional[KitchenOrder]:
        for kitchen_order in self._board:
            if kitchen_order.id == order_id:
                return kitchen_order
        return None

    async def advance(self, order_id: str) -> bool:
        """Move a displayed order to its next stage (the "next stage" button)."""
        kitchen_order = self._find(order_id)
        target = next_status(kitchen_order.status) if kitchen_order else None
        if target is None:
            self._action_error = f"Order #{order_id} cannot be advanced from this display"
            self._notify()
            return False
        return await self.dispatch(order_id, target)

    async def dispatch(
        self,
        order_id: str,
        target_status: OrderStatus,
        context: Optional[TransitionContext] = None,
    ) -> bool:
        """
        Send a transition and refetch once the server confirms it.

        On failure the working set is left as it was and the error is
        shown; an InvalidTransition additionally triggers a refetch so
        the display catches up with the stored status.
        """
        try:
            await self._bounded(
                self.source.update_status(order_id, target_status, context),
                "Updating order",
            )
        except TablesideError as e:
            logger.warning(
                f"Transition of order #{order_id} to {OrderStatus(target_status).value} "
                f"failed: {e.detail}"
            )
            self._action_error = e.detail
            self._notify()
            if isinstance(e, InvalidTransition):
                await self.refresh()
            return False
        except Exception as e:
            logger.exception(f"Unexpected failure updating order #{order_id}")
            self._action_error = f"Updating order failed: {e}"
            self._notify()
            return False

        self._action_error = None
        await self.refresh()
        return True

    # =========================================================================
    # TIMERS
    # =========================================================================

    async def _every(self, interval: float, action: Callable[[], Awaitable[None]]) -> None:
        while not self._stopped.is_set():
            try:
                await asyncio.wait_for(self._stopped.wait(), timeout=interval)
            except asyncio.TimeoutError:
                try:
                    await action()
                except Exception:
                    # A failed tick must not end the timer
                    logger.exception(f"Kitchen display {self.restaurant_id}: scheduled task failed")

    async def _scheduled_poll(self) -> None:
        if self.auto_refresh:
            await self.refresh()

    async def _scheduled_tick(self) -> None:
        self.tick_clock()

    async def run(self) -> None:
        """Fetch once, then run both timers until ``stop`` is called."""
        self._stopped.clear()
        logger.info(
            f"Kitchen display for {self.restaurant_id} started "
            f"(source={self.source.source_name}, poll={self.poll_interval:g}s, "
            f"clock={self.clock_interval:g}s)"
        )
        await self.refresh()
        await asyncio.gather(
            self._every(self.poll_interval, self._scheduled_poll),
            self._every(self.clock_interval, self._scheduled_tick),
        )
        logger.info(f"Kitchen display for {self.restaurant_id} stopped")

    def stop(self) -> None:
        self._stopped.set()
