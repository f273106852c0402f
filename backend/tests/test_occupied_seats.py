"""
Tests for the public seat map and the seat conflict resolver behind it.
"""

import pytest
from httpx import AsyncClient

from cinema_booking.db.session import commit_session
from cinema_booking.models.booking import Booking
from cinema_booking.services import booking_service, seat_service
from conftest import MOVIE


async def _seat_map(client: AsyncClient, showtime_id, **params):
    query = {"showtime_id": showtime_id, "movie_title": MOVIE, **params}
    return await client.get("/api/v1/bookings/occupied-seats", params=query)


@pytest.mark.asyncio
async def test_pending_bookings_do_not_occupy(client: AsyncClient, flow, test_showtime):
    await flow.create(["A1"])
    data = (await _seat_map(client, test_showtime.id)).json()
    assert data["occupied_seats"] == []


@pytest.mark.asyncio
async def test_pending_verification_counts_by_default(client: AsyncClient, flow, test_showtime):
    await flow.awaiting_verification(["A1"])
    await flow.confirmed(["B2", "B1"])

    data = (await _seat_map(client, test_showtime.id)).json()
    assert data["include_pending_verification"] is True
    assert data["occupied_seats"] == ["A1", "B1", "B2"]

    strict = (await _seat_map(client, test_showtime.id, include_pending_verification="false")).json()
    assert strict["occupied_seats"] == ["B1", "B2"]


@pytest.mark.asyncio
async def test_rejected_and_cancelled_seats_are_free(client: AsyncClient, flow, test_showtime, admin_headers):
    rejected = await flow.awaiting_verification(["C1"])
    await flow.verify(rejected, action="reject")
    confirmed = await flow.confirmed(["C2"])
    await client.post(f"/api/v1/admin/bookings/{confirmed['booking_reference']}/cancel", headers=admin_headers)

    data = (await _seat_map(client, test_showtime.id)).json()
    assert data["occupied_seats"] == []


@pytest.mark.asyncio
async def test_seat_map_requires_key(client: AsyncClient):
    response = await client.get("/api/v1/bookings/occupied-seats", params={"movie_title": MOVIE})
    assert response.status_code == 400
    assert response.json()["missing_fields"] == ["showtime_id"]


@pytest.mark.asyncio
async def test_seat_map_is_per_movie(client: AsyncClient, flow, test_showtime):
    await flow.confirmed(["A1"])
    response = await client.get(
        "/api/v1/bookings/occupied-seats",
        params={"showtime_id": test_showtime.id, "movie_title": "Another Movie"},
    )
    assert response.json()["occupied_seats"] == []


@pytest.mark.asyncio
async def test_malformed_rows_are_skipped(session_factory, test_showtime):
    """One unreadable seat list must not hide the seats of every other booking."""
    async with session_factory() as session:
        for i, seats in enumerate(('["A1", "A2"]', '{"seat": "broken"', "A5, A6")):
            session.add(Booking(
                booking_reference=f"BKLEGACY{i}",
                verification_code="123456",
                showtime_id=test_showtime.id,
                movie_title=MOVIE,
                seat_numbers=seats,
                customer_name="Legacy",
                customer_email="legacy@example.com",
                total_amount=0,
                status="confirmed",
            ))
        await session.commit()

    async with session_factory() as session:
        occupied = await seat_service.compute_occupied_seats(
            session, test_showtime.id, MOVIE, include_pending_verification=False
        )
    assert occupied == {"A1", "A2", "A5", "A6"}


def test_union_seat_rows_skips_bad_rows():
    rows = [(1, '["A1"]'), (2, "{oops}"), (3, b"\xff\xfe"), (4, '["A1", "B1"]'), (5, None)]
    assert seat_service.union_seat_rows(rows) == {"A1", "B1"}


@pytest.mark.asyncio
async def test_seat_cache_is_invalidated_after_commit(flow, session_factory, monkeypatch):
    """A seat map read before the commit must not be the last word in the cache."""
    booking = await flow.awaiting_verification(["L1"])
    invalidated = []

    async def record(showtime_id):
        invalidated.append(showtime_id)

    monkeypatch.setattr(booking_service, "invalidate_seat_cache", record)
    async with session_factory() as session:
        await booking_service.verify_payment(
            session, booking["booking_reference"], booking["verification_code"], "approve", "admin"
        )
        assert invalidated == []
        await commit_session(session)

    assert invalidated == [booking["showtime_id"]]
