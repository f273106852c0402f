"""
Tests for door scanning of confirmed tickets.
"""

import json

import pytest
from httpx import AsyncClient

from cinema_booking import main
from cinema_booking.core.config import get_settings
from cinema_booking.db.session import commit_session, rollback_session
from cinema_booking.services import booking_service, strategy_factory
from cinema_booking.services.broadcast_service import RedisSeatBroadcaster
from cinema_booking.services.interfaces.memory_broadcast import InMemorySeatBroadcaster


async def _scan(client: AsyncClient, headers: dict, qr_data):
    return await client.post("/api/v1/bookings/scan-ticket", json={"qr_data": qr_data}, headers=headers)


@pytest.mark.asyncio
async def test_first_scan_marks_ticket_used_and_broadcasts(client: AsyncClient, flow, admin_headers, seat_updates):
    booking = await flow.confirmed(["A1", "A2"])

    response = await _scan(client, admin_headers, booking["qr_code_data"])
    assert response.status_code == 200
    data = response.json()
    assert data["valid"] is True
    assert data["already_used"] is False
    assert data["ticket_info"]["seats"] == ["A1", "A2"]
    assert data["ticket_info"]["booking_reference"] == booking["booking_reference"]

    row = await flow.load(booking["booking_reference"])
    assert row.is_verified is True

    assert len(seat_updates) == 1
    showtime_id, updates = seat_updates[0]
    assert showtime_id == booking["showtime_id"]
    assert [u.seat_number for u in updates] == ["A1", "A2"]
    assert all(u.status == "occupied" and u.action == "ticket_validated" for u in updates)


@pytest.mark.asyncio
async def test_second_scan_reports_first_scan_time(client: AsyncClient, flow, admin_headers, seat_updates):
    booking = await flow.confirmed(["B1"])
    await _scan(client, admin_headers, booking["qr_code_data"])
    row = await flow.load(booking["booking_reference"])

    response = await _scan(client, admin_headers, booking["qr_code_data"])
    data = response.json()
    assert data["valid"] is False
    assert data["already_used"] is True
    assert data["used_at"] is not None
    assert data["ticket_info"]["status"] == "ALREADY_USED"

    # No second write and no second broadcast
    again = await flow.load(booking["booking_reference"])
    assert again.version == row.version
    assert len(seat_updates) == 1


@pytest.mark.asyncio
async def test_scan_accepts_object_payload(client: AsyncClient, flow, admin_headers):
    booking = await flow.confirmed(["C1"])
    response = await _scan(client, admin_headers, json.loads(booking["qr_code_data"]))
    assert response.json()["valid"] is True


@pytest.mark.asyncio
async def test_scan_malformed_qr(client: AsyncClient, admin_headers):
    response = await _scan(client, admin_headers, "{not json")
    assert response.status_code == 200
    data = response.json()
    assert data["valid"] is False
    assert data["already_used"] is False


@pytest.mark.asyncio
async def test_scan_unconfirmed_booking(client: AsyncClient, flow, admin_headers):
    booking = await flow.awaiting_verification(["D1"])
    qr = json.dumps({
        "booking_reference": booking["booking_reference"],
        "verification_code": booking["verification_code"],
    })
    data = (await _scan(client, admin_headers, qr)).json()
    assert data["valid"] is False
    row = await flow.load(booking["booking_reference"])
    assert row.is_verified is False


@pytest.mark.asyncio
async def test_scan_wrong_code(client: AsyncClient, flow, admin_headers):
    booking = await flow.confirmed(["E1"])
    payload = json.loads(booking["qr_code_data"])
    payload["verification_code"] = "000000" if payload["verification_code"] != "000000" else "111111"
    data = (await _scan(client, admin_headers, payload)).json()
    assert data["valid"] is False
    row = await flow.load(booking["booking_reference"])
    assert row.is_verified is False


@pytest.mark.asyncio
async def test_scan_requires_admin(client: AsyncClient, flow, auth_headers):
    booking = await flow.confirmed(["F1"])
    response = await _scan(client, auth_headers, booking["qr_code_data"])
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_used_ticket_cannot_be_cancelled(client: AsyncClient, flow, admin_headers):
    booking = await flow.confirmed(["G1"])
    await _scan(client, admin_headers, booking["qr_code_data"])
    response = await client.post(
        f"/api/v1/admin/bookings/{booking['booking_reference']}/cancel", headers=admin_headers
    )
    assert response.status_code == 409


@pytest.mark.asyncio
async def test_scan_non_ascii_code(client: AsyncClient, flow, admin_headers):
    booking = await flow.confirmed(["H1"])
    payload = json.loads(booking["qr_code_data"])
    payload["verification_code"] = "１２３４５６"
    response = await _scan(client, admin_headers, payload)
    assert response.status_code == 200
    assert response.json()["valid"] is False
    row = await flow.load(booking["booking_reference"])
    assert row.is_verified is False


@pytest.mark.asyncio
async def test_scan_broadcasts_only_after_commit(flow, session_factory, broadcaster, seat_updates):
    booking = await flow.confirmed(["J1"])

    async with session_factory() as session:
        result = await booking_service.scan_ticket(session, booking["qr_code_data"], broadcaster)
        assert result.valid is True
        assert seat_updates == []
        await commit_session(session)

    assert len(seat_updates) == 1
    assert [u.seat_number for u in seat_updates[0][1]] == ["J1"]


@pytest.mark.asyncio
async def test_rolled_back_scan_broadcasts_nothing(flow, session_factory, broadcaster, seat_updates):
    booking = await flow.confirmed(["K1"])

    async with session_factory() as session:
        result = await booking_service.scan_ticket(session, booking["qr_code_data"], broadcaster)
        assert result.valid is True
        await rollback_session(session)

    assert seat_updates == []
    row = await flow.load(booking["booking_reference"])
    assert row.is_verified is False


def test_redis_is_the_default_broadcast_backend():
    backend = get_settings().SEAT_BROADCAST_BACKEND
    assert isinstance(strategy_factory.build_seat_broadcaster(backend), RedisSeatBroadcaster)


@pytest.mark.asyncio
async def test_lifespan_subscribes_to_in_memory_broadcaster(monkeypatch):
    memory = InMemorySeatBroadcaster()
    received = []
    monkeypatch.setattr(strategy_factory, "_broadcaster", memory)
    monkeypatch.setattr(main, "_log_seat_updates", lambda showtime_id, updates: received.append(showtime_id))

    async with main.lifespan(main.app):
        await memory.broadcast(7, [])

    assert received == [7]
