"""
Pytest fixtures for BidMarket tests.
Uses SQLite in-memory for unit tests (no PostgreSQL required).
"""
from datetime import datetime, timedelta, timezone

import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import bidmarket.models  # noqa: F401
from bidmarket.database import Base, get_db
from bidmarket.main import app
from bidmarket.models.business import Business
from bidmarket.models.retailer import Retailer
from bidmarket.models.retailer_access import AccessStatus
from bidmarket.routers.auth import _make_token
from bidmarket.services import access_gate, bid_request_store

TEST_DB_URL = "sqlite+aiosqlite:///:memory:"

# Fixture accounts never log in through the API; tokens are minted directly
_UNUSED_HASH = "not-a-real-bcrypt-hash"


@pytest_asyncio.fixture
async def engine():
    # One shared connection so every session sees the same in-memory database
    eng = create_async_engine(
        TEST_DB_URL,
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest_asyncio.fixture
async def db(engine):
    factory = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)
    async with factory() as session:
        yield session


@pytest_asyncio.fixture
async def client(db):
    async def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


# --------------------------------------------------------------------------- #
#  Marketplace accounts                                                        #
# --------------------------------------------------------------------------- #


async def make_business(db: AsyncSession, name: str = "Miller Family Farms") -> Business:
    business = Business(
        name=name,
        email=f"{name.lower().replace(' ', '.')}@farm.test",
        hashed_password=_UNUSED_HASH,
        city="Ames",
        state="IA",
    )
    db.add(business)
    await db.commit()
    return business


async def make_retailer(db: AsyncSession, name: str) -> Retailer:
    retailer = Retailer(
        company_name=name,
        email=f"{name.lower().replace(' ', '.')}@retail.test",
        hashed_password=_UNUSED_HASH,
    )
    db.add(retailer)
    await db.commit()
    return retailer


async def grant_inputs(db: AsyncSession, business: Business, retailer: Retailer) -> None:
    await access_gate.set_access(db, business.id, retailer.id, "inputs", AccessStatus.APPROVED)
    await db.commit()


def auth_header(account_id, role: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {_make_token(account_id, role)}"}


def delivery_date(days: int = 21) -> datetime:
    return datetime.now(tz=timezone.utc) + timedelta(days=days)


# The two-line request used throughout: starting total 10 * 2.00 + 5 * 4.00 = 40.00
SCENARIO_ITEMS = [
    {"category": "CHEMICAL", "product_name": "Product A", "quantity": 10, "unit": "GAL", "starting_price": 2.00},
    {"category": "FERTILIZER", "product_name": "Product B", "quantity": 5, "unit": "TON", "starting_price": 4.00},
]


@pytest_asyncio.fixture
async def business(db):
    return await make_business(db)


@pytest_asyncio.fixture
async def other_business(db):
    return await make_business(db, name="Prairie Wind Ranch")


@pytest_asyncio.fixture
async def retailer_x(db, business):
    retailer = await make_retailer(db, "Prairie Ag Supply")
    await grant_inputs(db, business, retailer)
    return retailer


@pytest_asyncio.fixture
async def retailer_y(db, business):
    retailer = await make_retailer(db, "Heartland Coop")
    await grant_inputs(db, business, retailer)
    return retailer


@pytest_asyncio.fixture
async def outsider(db):
    """A retailer with no access record for any business."""
    return await make_retailer(db, "Unapproved Seed Co")


@pytest_asyncio.fixture
async def open_request(db, business):
    request = await bid_request_store.create_request(
        db, business.id, title="Spring inputs", items=SCENARIO_ITEMS, notes="north shop"
    )
    await db.commit()
    return await bid_request_store.load_request(db, request.id)
