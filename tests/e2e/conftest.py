"""
E2E test fixtures for the TrueLocal backend.

Provides:
- A fresh in-memory SQLite database per test (StaticPool, one connection)
- The real FastAPI app with the DB dependency pointed at that database
- httpx AsyncClient wired via ASGI transport (no network needed)
- Seed data: a customer, a verified provider, a second customer and one
  active listing
- Helpers to mint Bearer tokens and create bookings through the API

Object storage and the completion API are mocked at the service level so
the full route -> service -> DB flow is exercised.
"""

from __future__ import annotations

import uuid
from datetime import date
from decimal import Decimal
from typing import Any, AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.ext.compiler import compiles
from sqlalchemy.pool import StaticPool

from truelocal.models import Base, PricingType, Profile, Service, ServiceStatus, UserType


@compiles(JSONB, "sqlite")
def compile_jsonb_sqlite(type_, compiler, **kw):
    return "JSON"


# A column declared as UUID gets NUMERIC affinity in SQLite, which turns an
# all-digit hex id into a number.
@compiles(UUID, "sqlite")
def compile_uuid_sqlite(type_, compiler, **kw):
    return "CHAR(32)"


# ---------------------------------------------------------------------------
# Test IDs (stable across tests so cross-references work)
# ---------------------------------------------------------------------------

CUSTOMER_ID = uuid.UUID("aaaaaaaa-aaaa-aaaa-aaaa-aaaaaaaaaaaa")
PROVIDER_ID = uuid.UUID("bbbbbbbb-bbbb-bbbb-bbbb-bbbbbbbbbbbb")
OTHER_CUSTOMER_ID = uuid.UUID("cccccccc-cccc-cccc-cccc-cccccccccccc")
SERVICE_ID = uuid.UUID("11111111-1111-1111-1111-111111111111")

SERVICE_TITLE = "Deep House Cleaning"
TEST_DB_URL = "sqlite+aiosqlite:///:memory:"


# ---------------------------------------------------------------------------
# Async engine + session factory (in-memory SQLite)
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture
async def test_engine():
    """One engine (and one shared connection) per test."""
    engine = create_async_engine(TEST_DB_URL, echo=False, poolclass=StaticPool)

    # pysqlite's own transaction handling breaks SAVEPOINT; emit BEGIN ourselves
    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_conn, _):
        dbapi_conn.isolation_level = None
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(test_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind=test_engine, class_=AsyncSession, expire_on_commit=False)


# ---------------------------------------------------------------------------
# Seed data
# ---------------------------------------------------------------------------

async def _seed_data(db: AsyncSession) -> None:
    db.add_all([
        Profile(
            id=CUSTOMER_ID,
            email="casey@test.truelocal.app",
            full_name="Casey Customer",
            user_type=UserType.CUSTOMER,
        ),
        Profile(
            id=PROVIDER_ID,
            email="pat@test.truelocal.app",
            full_name="Pat Provider",
            user_type=UserType.PROVIDER,
            business_name="Pat's Cleaning Co.",
            verified=True,
        ),
        Profile(
            id=OTHER_CUSTOMER_ID,
            email="olive@test.truelocal.app",
            full_name="Olive Outsider",
            user_type=UserType.CUSTOMER,
        ),
    ])
    await db.flush()
    db.add(
        Service(
            id=SERVICE_ID,
            provider_id=PROVIDER_ID,
            title=SERVICE_TITLE,
            description="Top to bottom clean of your home",
            category="Cleaning",
            specific_service="Deep clean",
            pricing_type=PricingType.HOURLY,
            pricing_amount=Decimal("45.00"),
            location_city="Austin",
            location_state="TX",
            availability_days=["monday", "wednesday"],
            features=["Eco-friendly supplies"],
            status=ServiceStatus.ACTIVE,
        )
    )
    await db.flush()


@pytest_asyncio.fixture
async def seeded(session_factory) -> async_sessionmaker[AsyncSession]:
    """Session factory for a database that already holds the seed data."""
    async with session_factory() as db:
        await _seed_data(db)
        await db.commit()
    return session_factory


# ---------------------------------------------------------------------------
# FastAPI test application
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture
async def client(seeded) -> AsyncGenerator[AsyncClient, None]:
    """httpx AsyncClient connected to the real app via ASGI transport."""
    from truelocal.api.deps import get_db
    from truelocal.main import app
    from truelocal.realtime.changeFeed import discard_staged, dispatch_staged

    async def _override_get_db():
        async with seeded() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                discard_staged(session)
                raise
            else:
                await dispatch_staged(session)

    app.dependency_overrides[get_db] = _override_get_db
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def auth_headers(user_id: uuid.UUID) -> dict[str, str]:
    from truelocal.services.auth_service import create_access_token

    return {"Authorization": f"Bearer {create_access_token(user_id)}"}


def booking_payload(**overrides: Any) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "serviceId": str(SERVICE_ID),
        "providerId": str(PROVIDER_ID),
        "customerName": "Casey Customer",
        "customerPhone": "512-555-0100",
        "customerEmail": "casey@test.truelocal.app",
        "serviceAddress": "1 Congress Ave, Austin TX",
        "serviceDetails": "Two bedrooms",
        "bookingDate": date(2025, 3, 20).isoformat(),
        "bookingTime": "10:00",
        "urgency": "normal",
    }
    payload.update(overrides)
    return payload


async def create_booking_via_api(
    client: AsyncClient,
    customer_id: uuid.UUID = CUSTOMER_ID,
    **overrides: Any,
) -> dict[str, Any]:
    resp = await client.post(
        "/api/v1/bookings",
        json=booking_payload(**overrides),
        headers=auth_headers(customer_id),
    )
    assert resp.status_code == 201, resp.text
    return resp.json()
