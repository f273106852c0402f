"""
Pytest fixtures for test database, client, and authentication.

Each test gets a fresh SQLite database file. Every request opens its own
session from the test sessionmaker (commit on success, rollback on error),
the same way get_db behaves in production, so the fixtures never share a
session with the app.
"""

import os

# Must be set before the app (and its settings) are imported
os.environ.setdefault("REDIS_ENABLED", "false")
os.environ.setdefault("EXPIRY_SWEEP_ENABLED", "false")
os.environ.setdefault("ADMIN_PASSWORD", "")

from datetime import datetime, timezone, timedelta
from decimal import Decimal
from typing import AsyncGenerator, Optional

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker

from cinema_booking.main import app
from cinema_booking.db.base import Base
from cinema_booking.db.session import commit_session, get_db, rollback_session
from cinema_booking.core.security import create_access_token, hash_password
from cinema_booking.models.booking import Booking
from cinema_booking.models.showtime import Showtime
from cinema_booking.models.user import User
from cinema_booking.services.interfaces.memory_broadcast import InMemorySeatBroadcaster
from cinema_booking.services.strategy_factory import get_proof_storage, get_seat_broadcaster
from cinema_booking.infrastructure.proof_storage import InlineProofStorage

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64
MOVIE = "Interstellar"


@pytest_asyncio.fixture(scope="function")
async def session_factory(tmp_path) -> AsyncGenerator[async_sessionmaker, None]:
    """Create tables in a throwaway database, yield a sessionmaker, then drop everything."""
    url = os.environ.get("TEST_DATABASE_URL") or f"sqlite+aiosqlite:///{tmp_path / 'cinema_test.db'}"
    engine = create_async_engine(url, echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Short-lived session for service-level tests. Keep it closed before issuing requests."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def broadcaster() -> InMemorySeatBroadcaster:
    return InMemorySeatBroadcaster()


@pytest.fixture
def seat_updates(broadcaster: InMemorySeatBroadcaster) -> list:
    """Every (showtime_id, updates) pair broadcast during the test."""
    received = []
    broadcaster.subscribe(lambda showtime_id, updates: received.append((showtime_id, updates)))
    return received


@pytest_asyncio.fixture(scope="function")
async def client(session_factory, broadcaster) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client with the DB, broadcaster and storage dependencies pointed at test doubles."""

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await commit_session(session)
            except Exception:
                await rollback_session(session)
                raise

    storage = InlineProofStorage()
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_seat_broadcaster] = lambda: broadcaster
    app.dependency_overrides[get_proof_storage] = lambda: storage

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


async def _add(session_factory, obj):
    async with session_factory() as session:
        session.add(obj)
        await session.commit()
        await session.refresh(obj)
    return obj


@pytest_asyncio.fixture
async def test_user(session_factory) -> User:
    """Create a customer account."""
    return await _add(session_factory, User(
        email="test@example.com",
        username="testuser",
        phone="08123456789",
        hashed_password=hash_password("testpassword123"),
        role="user",
    ))


@pytest_asyncio.fixture
async def admin_user(session_factory) -> User:
    return await _add(session_factory, User(
        email="admin@cinema.local",
        username="admin",
        hashed_password=hash_password("adminpassword123"),
        role="admin",
    ))


@pytest_asyncio.fixture
async def auth_headers(test_user: User) -> dict:
    token = create_access_token(data={"sub": str(test_user.id), "role": test_user.role})
    return {"Authorization": f"Bearer {token}"}


@pytest_asyncio.fixture
async def admin_headers(admin_user: User) -> dict:
    token = create_access_token(data={"sub": str(admin_user.id), "role": admin_user.role})
    return {"Authorization": f"Bearer {token}"}


@pytest_asyncio.fixture
async def test_showtime(session_factory) -> Showtime:
    """An evening screening two weeks out."""
    return await _add(session_factory, Showtime(
        movie_title=MOVIE,
        studio="Studio 1",
        starts_at=datetime.now(timezone.utc) + timedelta(days=14),
        ticket_price=Decimal("50000.00"),
        seat_capacity=120,
    ))


class BookingFlow:
    """Drives bookings through the public API the way the frontend and admin console do."""

    def __init__(self, client: AsyncClient, showtime: Showtime, admin_headers: dict, session_factory):
        self.client = client
        self.showtime = showtime
        self.admin_headers = admin_headers
        self.session_factory = session_factory

    async def create(self, seats, headers: Optional[dict] = None, **overrides) -> dict:
        payload = {
            "showtime_id": self.showtime.id,
            "movie_title": self.showtime.movie_title,
            "customer_name": "Budi Santoso",
            "customer_email": "budi@example.com",
            "customer_phone": "08123456789",
            "seat_numbers": seats,
            "total_amount": "100000.00",
        }
        payload.update(overrides)
        response = await self.client.post("/api/v1/bookings/", json=payload, headers=headers or {})
        assert response.status_code == 201, response.text
        return response.json()

    async def upload(self, reference: str, content: bytes = PNG_BYTES, mimetype: str = "image/png"):
        return await self.client.post(
            "/api/v1/bookings/upload-payment",
            data={"booking_reference": reference},
            files={"payment_proof": ("transfer.png", content, mimetype)},
        )

    async def verify(self, booking: dict, action: str = "approve", code: Optional[str] = None):
        return await self.client.post(
            f"/api/v1/admin/bookings/{booking['booking_reference']}/verify",
            json={"action": action, "verification_code": code or booking["verification_code"]},
            headers=self.admin_headers,
        )

    async def awaiting_verification(self, seats, **overrides) -> dict:
        booking = await self.create(seats, **overrides)
        response = await self.upload(booking["booking_reference"])
        assert response.status_code == 200, response.text
        return booking

    async def confirmed(self, seats, **overrides) -> dict:
        booking = await self.awaiting_verification(seats, **overrides)
        response = await self.verify(booking)
        assert response.status_code == 200, response.text
        return response.json()

    async def load(self, reference: str) -> Booking:
        """Read the row straight from the database."""
        async with self.session_factory() as session:
            result = await session.execute(select(Booking).where(Booking.booking_reference == reference))
            return result.scalar_one()


@pytest_asyncio.fixture
async def flow(client, test_showtime, admin_headers, session_factory) -> BookingFlow:
    return BookingFlow(client, test_showtime, admin_headers, session_factory)
