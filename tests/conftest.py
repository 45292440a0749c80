"""
Shared fixtures: a throwaway SQLite database per test, the FastAPI app
bound to it, and tokens for the restaurant owner and a customer.
"""
import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tableside.core.security import Caller, create_access_token
from tableside.database import build_engine, get_db, init_db
from tableside.main import app
from tableside.models import Restaurant

OWNER_ID = "owner_1"
CUSTOMER_ID = "customer_1"

GUEST = {
    "name": "Jane Doe",
    "phone": "(555) 123-4567",
    "email": "jane@example.com",
}


# ─── Database ──────────────────────────────────────────────────────────────────
@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'orders.db'}")
    await init_db(bind=engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def restaurant(session_factory):
    async with session_factory() as session:
        restaurant = Restaurant(name="Test Trattoria", owner_id=OWNER_ID)
        session.add(restaurant)
        await session.commit()
        await session.refresh(restaurant)
        return restaurant


# ─── Identities ────────────────────────────────────────────────────────────────
@pytest.fixture
def owner():
    return Caller(user_id=OWNER_ID, role="owner")


@pytest.fixture
def customer():
    return Caller(user_id=CUSTOMER_ID)


@pytest.fixture
def owner_headers():
    return {"Authorization": f"Bearer {create_access_token(OWNER_ID, role='owner')}"}


@pytest.fixture
def customer_headers():
    return {"Authorization": f"Bearer {create_access_token(CUSTOMER_ID)}"}


# ─── HTTP ──────────────────────────────────────────────────────────────────────
@pytest_asyncio.fixture
async def client(session_factory):
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def order_payload(restaurant):
    """Build a guest create-order body for the test restaurant."""
    def build(items=None, **overrides):
        payload = {
            "restaurant_id": restaurant.id,
            "items": items or [
                {"name": "Pizza Margherita", "price": 14.99, "quantity": 1},
                {"name": "Garlic Bread", "price": 5.99, "quantity": 3},
            ],
            "guest_info": dict(GUEST),
        }
        payload.update(overrides)
        return payload
    return build
