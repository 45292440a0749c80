"""
Order Rush Simulation Script

Fires concurrent guest orders at one restaurant to exercise the order
API and a running kitchen display. Optionally races duplicate status
updates to show that only one of two identical transitions can win.

Run from project root:
    python scripts/simulate.py --restaurant <id> --orders 30
    python scripts/simulate.py --restaurant <id> --race --token <owner token>

Author: Khalil Bannouri
Version: 1.0.0
"""

import argparse
import asyncio
import os
import random
import sys
import time
from datetime import datetime
from decimal import Decimal
from typing import Any

import httpx

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
# Windows event loop fix
if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

from tableside.core.errors import TablesideError
from tableside.services.submission import Cart, MenuItemRef, PriceVariant, StorefrontClient

# Configuration
API_BASE_URL = "http://localhost:8001"
TOTAL_ORDERS = 30

# Sample data for random orders
FIRST_NAMES = ["John", "Jane", "Mike", "Sarah", "Tom", "Emma", "David", "Lisa", "Chris", "Amy"]
LAST_NAMES = ["Smith", "Johnson", "Williams", "Brown", "Jones", "Garcia", "Miller", "Davis", "Wilson", "Taylor"]
MENU = [
    MenuItemRef("pizza-margherita", "Pizza Margherita", Decimal("14.99"), variants=(
        PriceVariant("small", "Small", Decimal("11.99")),
        PriceVariant("large", "Large", Decimal("18.99")),
    )),
    MenuItemRef("pepperoni", "Pepperoni Pizza", Decimal("16.99")),
    MenuItemRef("caesar", "Caesar Salad", Decimal("8.99")),
    MenuItemRef("garlic-bread", "Garlic Bread", Decimal("5.99")),
    MenuItemRef("carbonara", "Pasta Carbonara", Decimal("13.99")),
    MenuItemRef("tiramisu", "Tiramisu", Decimal("7.99")),
    MenuItemRef("coke", "Coke", Decimal("2.99")),
]
NOTES = [None, "Extra napkins", "No onions", "Allergic to nuts", "Well done"]


def generate_random_guest() -> dict[str, str]:
    """Generate random guest contact details."""
    first = random.choice(FIRST_NAMES)
    last = random.choice(LAST_NAMES)
    return {
        "name": f"{first} {last}",
        "phone": f"(555) {random.randint(100, 999)}-{random.randint(1000, 9999)}",
        "email": f"{first.lower()}.{last.lower()}{random.randint(1, 99)}@example.com",
    }


def generate_random_cart(restaurant_id: str) -> Cart:
    """Fill a cart with 1-4 random lines."""
    cart = Cart(restaurant_id)
    for _ in range(random.randint(1, 4)):
        item = random.choice(MENU)
        variant = random.choice(item.variants).id if item.variants else None
        cart.add(item, quantity=random.randint(1, 3), variant_id=variant)
    return cart


# =============================================================================
# ORDER RUSH
# =============================================================================

async def send_guest_order(
    client: StorefrontClient,
    restaurant_id: str,
    order_num: int,
) -> dict[str, Any]:
    """Place one random guest order."""
    cart = generate_random_cart(restaurant_id)
    start_time = time.time()

    try:
        order = await client.checkout(cart, guest=generate_random_guest(),
                                      notes=random.choice(NOTES))
        return {
            "order_num": order_num,
            "success": True,
            "order_id": order.id,
            "total": float(order.total_price),
            "time": round(time.time() - start_time, 3),
        }
    except TablesideError as e:
        return {
            "order_num": order_num,
            "success": False,
            "error": f"{e.error}: {e.detail}"[:100],
            "time": round(time.time() - start_time, 3),
        }


async def run_simulation(
    restaurant_id: str,
    num_orders: int = TOTAL_ORDERS,
    base_url: str = API_BASE_URL,
) -> dict[str, Any]:
    """
    Fire ``num_orders`` guest orders concurrently.

    Args:
        restaurant_id: Target restaurant
        num_orders: Number of orders to place
        base_url: API root
    """
    print("=" * 70)
    print("🔥 ORDER RUSH SIMULATION")
    print("=" * 70)
    print(f"📋 Total Orders: {num_orders}")
    print(f"🎯 Target: {base_url} (restaurant {restaurant_id})")
    print(f"⏰ Started: {datetime.now().strftime('%H:%M:%S')}")
    print("=" * 70)

    start_time = time.time()
    async with StorefrontClient(base_url) as client:
        tasks = [send_guest_order(client, restaurant_id, i + 1) for i in range(num_orders)]
        results = await asyncio.gather(*tasks)
    total_time = round(time.time() - start_time, 2)

    successful = [r for r in results if r["success"]]
    failed = [r for r in results if not r["success"]]

    print("\n" + "=" * 70)
    print("📊 SIMULATION RESULTS")
    print("=" * 70)
    print(f"\n✅ Successful Orders: {len(successful)}/{num_orders}")
    print(f"❌ Failed Orders: {len(failed)}/{num_orders}")
    print(f"⏱️  Total Time: {total_time}s")

    if successful:
        avg_time = round(sum(r["time"] for r in successful) / len(successful), 3)
        print(f"\n📈 Performance Metrics:")
        print(f"   Average Response: {avg_time}s")
        print(f"   Fastest: {min(r['time'] for r in successful)}s")
        print(f"   Slowest: {max(r['time'] for r in successful)}s")
        print(f"   💰 Order Value: ${sum(r['total'] for r in successful):.2f}")

    if failed:
        print(f"\n⚠️  Failed Order Details (showing first 5):")
        for f in failed[:5]:
            print(f"   Order #{f['order_num']}: {f['error']}")

    print("=" * 70)
    return {
        "total": num_orders,
        "successful": len(successful),
        "failed": len(failed),
        "total_time": total_time,
        "results": results,
    }


# =============================================================================
# DUPLICATE TRANSITION RACE
# =============================================================================

async def run_race(restaurant_id: str, token: str, base_url: str = API_BASE_URL) -> bool:
    """
    Place one order, then send two identical "confirm" requests at once.

    Exactly one must succeed; the other must be rejected with 409.
    """
    print("\n🏁 Duplicate transition race")
    async with StorefrontClient(base_url) as storefront:
        order = await storefront.checkout(generate_random_cart(restaurant_id),
                                          guest=generate_random_guest())
    print(f"   Order #{order.id} placed")

    headers = {"Authorization": f"Bearer {token}"}
    async with httpx.AsyncClient(base_url=base_url, headers=headers) as client:
        responses = await asyncio.gather(*[
            client.patch(f"/api/orders/{order.id}/status", json={"status": "confirmed"})
            for _ in range(2)
        ])

    codes = sorted(r.status_code for r in responses)
    print(f"   Status codes: {codes}")
    if codes == [200, 409]:
        print("   ✅ One confirmation won, the duplicate was rejected")
        return True
    print("   ❌ Expected exactly one success and one conflict")
    return False


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Order Rush Simulation Script")
    parser.add_argument("--restaurant", required=True, help="Restaurant id")
    parser.add_argument("--orders", type=int, default=TOTAL_ORDERS, help="Number of orders")
    parser.add_argument("--base-url", default=API_BASE_URL, help="API root")
    parser.add_argument("--race", action="store_true", help="Also run the duplicate transition race")
    parser.add_argument("--token", help="Owner token (required with --race)")
    args = parser.parse_args()

    if args.race and not args.token:
        parser.error("--race requires --token")

    asyncio.run(run_simulation(args.restaurant, num_orders=args.orders, base_url=args.base_url))

    if args.race:
        ok = asyncio.run(run_race(args.restaurant, args.token, base_url=args.base_url))
        sys.exit(0 if ok else 1)
