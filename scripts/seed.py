"""
Seed Script

Creates the tables and one restaurant, then prints an owner token for
the kitchen display and the simulation script.

Run from project root:
    python scripts/seed.py --name "Luigi's" --owner owner_1

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
from tableside.core.security import create_access_token
from tableside.database import async_session_maker, engine, init_db
from tableside.models import Restaurant


async def seed(name: str, owner_id: str) -> Restaurant:
    await init_db()
    async with async_session_maker() as session:
        restaurant = Restaurant(name=name, owner_id=owner_id)
        session.add(restaurant)
        await session.commit()
        await session.refresh(restaurant)
    await engine.dispose()
    return restaurant


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Create a restaurant and an owner token")
    parser.add_argument("--name", default="Demo Trattoria", help="Restaurant name")
    parser.add_argument("--owner", default="owner_demo", help="Owner user id")
    args = parser.parse_args()

    setup_logging()
    restaurant = asyncio.run(seed(args.name, args.owner))
    token = create_access_token(args.owner, role="owner")

    print("=" * 70)
    print(f"🍽️  Restaurant: {restaurant.name}")
    print(f"   ID:    {restaurant.id}")
    print(f"   Owner: {restaurant.owner_id}")
    print(f"🔑 Owner token:\n{token}")
    print("=" * 70)
