import pytest
import pytest_asyncio
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock

import httpx
from httpx import ASGITransport

from qrorder.api.dependencies import create_access_token
from qrorder.config import Settings
from qrorder.domain import MenuItem, Restaurant, Staff, StaffRole, Table
from qrorder.main import create_app
from qrorder.storage import InMemoryStorage

SECRET = "test-secret"


class FixedClock:
    """Controllable clock for lazy-expiry and business-day tests."""

    def __init__(self, now=None):
        self.now = now or datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)


async def seed_restaurant(storage, allowed_networks=None):
    """Two restaurants: 'main' with tables/menu/staff, 'other' with one table and item."""
    main = Restaurant(
        id="rest-main", name="Café Central", name_fr="Café Central", name_ar="المقهى المركزي",
        timezone="UTC", allowed_networks=list(allowed_networks or []),
    )
    other = Restaurant(id="rest-other", name="Other Place", timezone="UTC")
    await storage.add_restaurant(main)
    await storage.add_restaurant(other)

    table1 = Table(id="table-1", restaurant_id=main.id, table_number=1, table_name="Window")
    table2 = Table(id="table-2", restaurant_id=main.id, table_number=2)
    closed = Table(id="table-closed", restaurant_id=main.id, table_number=3, is_active=False)
    other_table = Table(id="table-other", restaurant_id=other.id, table_number=1)
    for table in (table1, table2, closed, other_table):
        await storage.add_table(table)

    tea = MenuItem(id="item-tea", restaurant_id=main.id, name="Mint Tea", price_cents=250, name_fr="Thé à la menthe")
    tagine = MenuItem(id="item-tagine", restaurant_id=main.id, name="Chicken Tagine", price_cents=1450)
    sold_out = MenuItem(id="item-soldout", restaurant_id=main.id, name="Pastilla", price_cents=1600, available=False)
    foreign = MenuItem(id="item-foreign", restaurant_id=other.id, name="Burger", price_cents=900)
    for item in (tea, tagine, sold_out, foreign):
        await storage.add_menu_item(item)

    waiter_a = Staff(id="staff-amina", restaurant_id=main.id, name="Amina", role=StaffRole.WAITER)
    waiter_b = Staff(id="staff-youssef", restaurant_id=main.id, name="Youssef", role=StaffRole.WAITER)
    cook = Staff(id="staff-karim", restaurant_id=main.id, name="Karim", role=StaffRole.KITCHEN)
    retired = Staff(id="staff-retired", restaurant_id=main.id, name="Omar", role=StaffRole.WAITER, is_active=False)
    for staff in (waiter_a, waiter_b, cook, retired):
        await storage.add_staff(staff)

    return SimpleNamespace(
        restaurant=main, other=other,
        table1=table1, table2=table2, closed_table=closed, other_table=other_table,
        tea=tea, tagine=tagine, sold_out=sold_out, foreign_item=foreign,
        waiter_a=waiter_a, waiter_b=waiter_b, cook=cook, retired=retired,
    )


def admin_headers(restaurant_id="rest-main"):
    token = create_access_token({"restaurant_id": restaurant_id}, SECRET)
    return {"Authorization": f"Bearer {token}"}


def staff_headers(staff, restaurant_id="rest-main"):
    token = create_access_token(
        {"restaurant_id": restaurant_id, "staff_id": staff.id, "role": staff.role.value}, SECRET
    )
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def storage():
    return InMemoryStorage()


@pytest_asyncio.fixture
async def seeded(storage):
    return await seed_restaurant(storage)


@pytest.fixture
def settings():
    return Settings(
        environment="test",
        jwt_secret_key=SECRET,
        frontend_url="http://frontend.test",
        api_url="http://api.test",
        cron_api_key="cron-key",
    )


@pytest.fixture
def app(settings, storage):
    return create_app(settings, storage)


@pytest_asyncio.fixture
async def async_client(app, seeded):
    """Create async HTTP client for testing."""
    async with httpx.AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
    await app.state.stock_dispatcher.drain()


@pytest.fixture
def mock_broadcaster(app, monkeypatch):
    """Replace the domain publish helpers with AsyncMocks."""
    broadcaster = app.state.broadcaster
    for name in (
        "order_created",
        "order_status_changed",
        "menu_item_toggled",
        "sessions_rotated",
        "table_session_issued",
    ):
        monkeypatch.setattr(broadcaster, name, AsyncMock())
    return broadcaster
