"""
Terminal Kitchen Display

Polls the order API for one restaurant and redraws the kitchen board
in the terminal whenever it changes.

Run from project root:
    python scripts/kitchen_display.py --restaurant <id> --token <owner token>

Commands while running (type and press Enter):
    <n>      advance the n-th order on the board to its next stage
    r        refresh now
    a        toggle audio alerts
    f        toggle flash alerts
    p        pause/resume auto refresh
    q        quit

Author: Khalil Bannouri
Version: 1.0.0
"""

import argparse
import asyncio
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
# Windows event loop fix
if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

from tableside.core.config import setup_logging
from tableside.services.kitchen import DisplaySnapshot, KitchenDisplayController, get_kitchen_display
from tableside.services.lifecycle import next_status

BUCKET_ICONS = {
    "overdue": "🔴",
    "stale": "🟠",
    "aging": "🟡",
    "fresh": "🟢",
}


def render(snapshot: DisplaySnapshot) -> None:
    """Print the board."""
    print("\n" + "=" * 70)
    connection = "🟢 connected" if snapshot.is_connected else "🔴 disconnected (retrying)"
    print(f"🍳 KITCHEN  {snapshot.restaurant_id}   {snapshot.now.strftime('%H:%M')}   {connection}")
    counts = "  ".join(f"{status}: {n}" for status, n in snapshot.counts.items())
    print(f"   {counts}   overdue: {snapshot.overdue_count}")
    toggles = (
        f"auto refresh {'on' if snapshot.auto_refresh else 'off'}, "
        f"audio {'on' if snapshot.audio_enabled else 'off'}, "
        f"flash {'on' if snapshot.flash_enabled else 'off'}"
    )
    print(f"   {toggles}")
    if snapshot.error_message:
        print(f"   ⚠️  {snapshot.error_message}")
    print("-" * 70)

    if not snapshot.orders:
        print("   No active orders")

    for position, kitchen_order in enumerate(snapshot.orders, start=1):
        order = kitchen_order.order
        icon = BUCKET_ICONS.get(kitchen_order.priority_bucket.value, " ")
        who = (order.guest_info.name if order.guest_info else None) or order.customer_id or "customer"
        upcoming = next_status(kitchen_order.status)
        button = f"[{position}] -> {upcoming.value}" if upcoming else ""
        print(
            f"{icon} #{order.id[:8]}  {kitchen_order.status:<12} "
            f"{kitchen_order.elapsed_minutes:>3}m / {kitchen_order.estimated_total_minutes}m  "
            f"{who:<18} {button}"
        )
        for item in order.items:
            mods = f" ({', '.join(item.modifications)})" if item.modifications else ""
            print(f"      {item.quantity}x {item.name}{mods}")
        if order.notes:
            print(f"      📝 {order.notes}")
    print("=" * 70)


async def handle_commands(display: KitchenDisplayController) -> None:
    """Read operator commands from stdin without blocking the timers."""
    while True:
        line = await asyncio.to_thread(sys.stdin.readline)
        if not line:
            display.stop()
            return
        command = line.strip().lower()

        if command == "q":
            display.stop()
            return
        elif command == "r":
            await display.refresh()
        elif command == "a":
            display.set_audio(not display.audio_enabled)
        elif command == "f":
            display.set_flash(not display.flash_enabled)
        elif command == "p":
            display.set_auto_refresh(not display.auto_refresh)
        elif command.isdigit():
            board = display.orders
            index = int(command) - 1
            if 0 <= index < len(board):
                await display.advance(board[index].id)
            else:
                print(f"No order at position {command}")


async def main(restaurant_id: str, token: str, base_url: str) -> None:
    display = get_kitchen_display(restaurant_id, token=token, base_url=base_url)
    display.add_listener(render)
    commands = asyncio.create_task(handle_commands(display))
    try:
        await display.run()
    finally:
        commands.cancel()
        await display.source.close()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Terminal kitchen display")
    parser.add_argument("--restaurant", required=True, help="Restaurant id")
    parser.add_argument("--token", required=True, help="Owner bearer token")
    parser.add_argument("--base-url", default=None, help="API root (defaults to KITCHEN_API_BASE_URL)")
    args = parser.parse_args()

    setup_logging()
    try:
        asyncio.run(main(args.restaurant, args.token, args.base_url))
    except KeyboardInterrupt:
        print("\n👋 Kitchen display closed")
