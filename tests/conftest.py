"""
Pytest configuration and fixtures for backend tests.
"""

import os
from datetime import datetime

# Must be set before the application reads its settings
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["EXPORT_ORDERS_ENABLED"] = "false"
os.environ["JWT_SECRET"] = "test-secret-key-for-session-tokens"
os.environ["TAX_RATE"] = "0"

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from bill_generator.database import Base, get_db
from bill_generator.main import app
from bill_generator.services import reset_services


PASSWORD = "testpass123"

COLA_MENU = {
    "categories": [
        {
            "name": "Drinks",
            "items": [
                {
                    "name": "Cola",
                    "description": "Chilled",
                    "price": [
                        {"size": "Small", "amount": 20},
                        {"size": "Large", "amount": 35},
                    ],
                },
            ],
        },
    ],
}


def restaurant_payload(email: str = "owner@spicegarden.in", **overrides) -> dict:
    payload = {
        "restaurantName": "Spice Garden",
        "address": "12 MG Road, Bengaluru",
        "phone": "+91 9876543210",
        "email": email,
        "password": PASSWORD,
    }
    payload.update(overrides)
    return payload


def parse_timestamp(value: str) -> datetime:
    """ISO timestamp as serialized by the API (may end in Z)."""
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


@pytest_asyncio.fixture
async def db_engine():
    """
    Fresh in-memory SQLite database per test.
    StaticPool keeps every session on the one connection that holds the data.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return async_sessionmaker(bind=db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def client(session_factory):
    """
    HTTP client bound to the app in-process. Each request gets its own
    session on the test database.
    """
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    reset_services()

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as test_client:
        yield test_client

    app.dependency_overrides.clear()


async def signup_and_login(client: AsyncClient, email: str = "owner@spicegarden.in", **overrides) -> dict:
    """
    Register a restaurant and log it in.

    The cookie jar is cleared afterwards so each call site chooses its
    identity explicitly through the returned headers.
    """
    response = await client.post("/restaurants/create", json=restaurant_payload(email, **overrides))
    assert response.status_code == 201, response.text

    response = await client.post("/restaurants/login", json={"email": email, "password": PASSWORD})
    assert response.status_code == 200, response.text
    client.cookies.clear()

    data = response.json()
    return {
        "token": data["token"],
        "headers": bearer(data["token"]),
        "restaurant": data["restaurant"],
    }


@pytest_asyncio.fixture
async def owner(client):
    """A logged-in restaurant."""
    return await signup_and_login(client)


@pytest_asyncio.fixture
async def cola_menu(client, owner):
    """The owner's menu with a Drinks category holding Cola (Small 20, Large 35)."""
    response = await client.post("/menu", json=COLA_MENU, headers=owner["headers"])
    assert response.status_code == 201, response.text
    menu = response.json()
    category = menu["categories"][0]
    return {
        "menu": menu,
        "category_id": category["id"],
        "item_id": category["items"][0]["id"],
    }
