"""
Tests for the expiry sweep that clears abandoned and unreviewed orders.
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from sqlalchemy import select, update

from cinema_booking.core.config import get_settings
from cinema_booking.models.booking import Booking
from cinema_booking.models.bundle_order import BundleOrder
from cinema_booking.services.expiry_service import expire_stale_records
from conftest import MOVIE

NOW = datetime.now(timezone.utc)


def _booking(showtime_id, reference, status, booking_date, payment_date=None):
    return Booking(
        booking_reference=reference,
        verification_code="123456",
        showtime_id=showtime_id,
        movie_title=MOVIE,
        seat_numbers='["A1"]',
        customer_name="Budi",
        customer_email="budi@example.com",
        total_amount=Decimal("50000"),
        status=status,
        booking_date=booking_date,
        payment_date=payment_date,
        payment_proof="inline:x" if payment_date else None,
    )


async def _statuses(session_factory) -> dict:
    async with session_factory() as session:
        rows = (await session.execute(select(Booking.booking_reference, Booking.status))).all()
    return dict(rows)


@pytest.mark.asyncio
async def test_sweep_expires_stale_rows(session_factory, test_showtime):
    old = NOW - timedelta(hours=2)
    async with session_factory() as session:
        session.add_all([
            _booking(test_showtime.id, "BKSTALEPENDING", "pending", old),
            _booking(test_showtime.id, "BKFRESHPENDING", "pending", NOW),
            _booking(test_showtime.id, "BKSTALEREVIEW", "pending_verification", old, payment_date=old),
            _booking(test_showtime.id, "BKFRESHREVIEW", "pending_verification", old, payment_date=NOW),
            _booking(test_showtime.id, "BKCONFIRMED", "confirmed", old, payment_date=old),
        ])
        session.add(BundleOrder(
            order_reference="BUNDLE-1-1",
            bundle_id=1,
            bundle_name="Combo",
            total_price=Decimal("10000"),
            customer_name="Budi",
            customer_email="budi@example.com",
            status="pending",
            order_date=old,
        ))
        await session.commit()

    async with session_factory() as session:
        sweep = await expire_stale_records(session, now=NOW)
        await session.commit()

    assert sweep.cancelled_bookings == 1
    assert sweep.rejected_bookings == 1
    assert sweep.cancelled_bundles == 1
    assert await _statuses(session_factory) == {
        "BKSTALEPENDING": "cancelled",
        "BKFRESHPENDING": "pending",
        "BKSTALEREVIEW": "payment_rejected",
        "BKFRESHREVIEW": "pending_verification",
        "BKCONFIRMED": "confirmed",
    }

    async with session_factory() as session:
        rejected = (await session.execute(
            select(Booking).where(Booking.booking_reference == "BKSTALEREVIEW")
        )).scalar_one()
    assert rejected.verified_by == "system"
    assert rejected.admin_notes.startswith("Expired")


@pytest.mark.asyncio
async def test_zero_ttl_disables_rule(session_factory, test_showtime, monkeypatch):
    monkeypatch.setattr(get_settings(), "PENDING_PAYMENT_TTL_MINUTES", 0)
    old = NOW - timedelta(days=1)
    async with session_factory() as session:
        session.add(_booking(test_showtime.id, "BKOLD", "pending", old))
        await session.commit()

    async with session_factory() as session:
        sweep = await expire_stale_records(session, now=NOW)
        await session.commit()

    assert sweep.total == 0
    assert await _statuses(session_factory) == {"BKOLD": "pending"}


@pytest.mark.asyncio
async def test_admin_can_trigger_sweep(client, admin_headers, session_factory, test_showtime):
    async with session_factory() as session:
        session.add(_booking(test_showtime.id, "BKABANDONED", "pending", NOW - timedelta(hours=3)))
        await session.commit()

    response = await client.post("/api/v1/admin/maintenance/expire", headers=admin_headers)
    assert response.status_code == 200
    assert response.json()["cancelled_bookings"] == 1
    assert await _statuses(session_factory) == {"BKABANDONED": "cancelled"}


class _ApprovalDuringSweep:
    """Session wrapper that approves one booking between the sweep's select and its update."""

    def __init__(self, session, reference):
        self._session = session
        self._reference = reference
        self._statements = 0

    def __getattr__(self, name):
        return getattr(self._session, name)

    async def execute(self, statement, *args, **kwargs):
        self._statements += 1
        if self._statements == 2:
            await self._session.execute(
                update(Booking)
                .where(Booking.booking_reference == self._reference)
                .values(status="confirmed")
            )
        return await self._session.execute(statement, *args, **kwargs)


@pytest.mark.asyncio
async def test_sweep_counts_only_rows_it_moved(session_factory, test_showtime, monkeypatch):
    monkeypatch.setattr(get_settings(), "PENDING_PAYMENT_TTL_MINUTES", 0)
    old = NOW - timedelta(hours=2)
    async with session_factory() as session:
        session.add_all([
            _booking(test_showtime.id, "BKREVIEWA", "pending_verification", old, payment_date=old),
            _booking(test_showtime.id, "BKREVIEWB", "pending_verification", old, payment_date=old),
        ])
        await session.commit()

    async with session_factory() as session:
        sweep = await expire_stale_records(_ApprovalDuringSweep(session, "BKREVIEWA"), now=NOW)
        await session.commit()

    assert sweep.rejected_bookings == 1
    assert await _statuses(session_factory) == {"BKREVIEWA": "confirmed", "BKREVIEWB": "payment_rejected"}
