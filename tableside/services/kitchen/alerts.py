"""
New-Order Alert Sinks

Author: Khalil Bannouri
Version: 1.0.0
"""

import logging
import sys
from typing import TextIO

from tableside.services.kitchen.base import AlertSink

logger = logging.getLogger(__name__)


class TerminalAlertSink(AlertSink):
    """Rings the terminal bell and logs a highlighted line."""

    def __init__(self, stream: TextIO = sys.stdout):
        self.stream = stream

    @property
    def sink_name(self) -> str:
        return "terminal"

    async def play_sound(self, new_orders: int) -> None:
        self.stream.write("\a")
        self.stream.flush()

    async def flash(self, new_orders: int) -> None:
        plural = "s" if new_orders != 1 else ""
        logger.info(f"🔔 {new_orders} new order{plural} arrived")


class NullAlertSink(AlertSink):
    """Discards alerts. Used in tests and headless runs."""

    @property
    def sink_name(self) -> str:
        return "null"

    async def play_sound(self, new_orders: int) -> None:
        return None

    async def flash(self, new_orders: int) -> None:
        return None
