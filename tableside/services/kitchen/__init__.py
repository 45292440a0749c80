"""
Kitchen Display Factory

Single entry point for building a kitchen display controller from the
application settings.

Usage:
    from tableside.services.kitchen import get_kitchen_display

    display = get_kitchen_display(restaurant_id, token=owner_token)
    display.add_listener(render)
    await display.run()

Source Switching:
    - token given          -> HttpOrderSource against KITCHEN_API_BASE_URL
    - caller given         -> LocalOrderSource over the app's session factory

Author: Khalil Bannouri
Version: 1.0.0
"""

import logging
from typing import Optional

from tableside.core.config import get_settings
from tableside.core.security import Caller
from tableside.services.kitchen.alerts import NullAlertSink, TerminalAlertSink
from tableside.services.kitchen.base import AlertSink, OrderSource
from tableside.services.kitchen.display import (
    ConnectionState,
    DisplaySnapshot,
    KitchenDisplayController,
)
from tableside.services.kitchen.http import HttpOrderSource
from tableside.services.kitchen.local import LocalOrderSource
from tableside.services.timing import TimingPolicy

logger = logging.getLogger(__name__)


def get_kitchen_display(
    restaurant_id: str,
    token: Optional[str] = None,
    caller: Optional[Caller] = None,
    alerts: Optional[AlertSink] = None,
    base_url: Optional[str] = None,
) -> KitchenDisplayController:
    """
    Build a controller configured from settings.

    Args:
        restaurant_id: Restaurant to display
        token: Owner bearer token; selects the HTTP source
        caller: Owner identity; selects the in-process source
        alerts: Alert sink (defaults to the terminal bell)
        base_url: Overrides KITCHEN_API_BASE_URL

    Raises:
        ValueError: Neither a token nor a caller was given
    """
    settings = get_settings()

    source: OrderSource
    if token is not None:
        source = HttpOrderSource(
            base_url or settings.kitchen_api_base_url,
            token,
            timeout=settings.kitchen_request_timeout_seconds,
        )
    elif caller is not None:
        from tableside.database import async_session_maker

        source = LocalOrderSource(async_session_maker, caller)
    else:
        raise ValueError("A bearer token or a caller is required to build a kitchen display")

    logger.info(f"Kitchen display: using {source.source_name} order source")
    return KitchenDisplayController(
        source,
        restaurant_id,
        alerts=alerts or TerminalAlertSink(),
        policy=TimingPolicy.from_settings(settings),
        poll_interval=settings.kitchen_poll_interval_seconds,
        clock_interval=settings.kitchen_clock_interval_seconds,
        request_timeout=settings.kitchen_request_timeout_seconds,
        audio_enabled=settings.kitchen_audio_enabled,
        flash_enabled=settings.kitchen_flash_enabled,
    )


__all__ = [
    "get_kitchen_display",
    "AlertSink",
    "ConnectionState",
    "DisplaySnapshot",
    "HttpOrderSource",
    "KitchenDisplayController",
    "LocalOrderSource",
    "NullAlertSink",
    "OrderSource",
    "TerminalAlertSink",
]
