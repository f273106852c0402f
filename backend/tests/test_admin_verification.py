"""
Tests for admin payment verification, including the seat conflict check
that settles overlapping bookings at approval time.
"""

import json

import pytest
from httpx import AsyncClient


def _other_code(code: str) -> str:
    return "000000" if code != "000000" else "111111"


@pytest.mark.asyncio
async def test_approve_confirms_booking(client: AsyncClient, flow):
    booking = await flow.awaiting_verification(["A1", "A2"])
    response = await flow.verify(booking)
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "confirmed"
    assert data["verified_by"] == "admin"
    assert data["verified_at"] is not None
    assert data["is_verified"] is False

    ticket = json.loads(data["qr_code_data"])
    assert ticket["type"] == "CINEMA_TICKET"
    assert ticket["booking_reference"] == booking["booking_reference"]
    assert ticket["verification_code"] == booking["verification_code"]
    assert ticket["seats"] == ["A1", "A2"]


@pytest.mark.asyncio
async def test_reject_payment(client: AsyncClient, flow):
    booking = await flow.awaiting_verification(["A1"])
    response = await flow.verify(booking, action="rejected")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "payment_rejected"
    assert data["admin_notes"]


@pytest.mark.asyncio
async def test_verify_wrong_code_changes_nothing(client: AsyncClient, flow):
    booking = await flow.awaiting_verification(["A1"])
    response = await flow.verify(booking, code=_other_code(booking["verification_code"]))
    assert response.status_code == 400
    assert response.json()["error"] == "invalid_verification_code"

    row = await flow.load(booking["booking_reference"])
    assert row.status == "pending_verification"


@pytest.mark.asyncio
async def test_verify_non_ascii_code(client: AsyncClient, flow):
    booking = await flow.awaiting_verification(["A3"])
    response = await flow.verify(booking, code="é12345")
    assert response.status_code == 400
    assert response.json()["error"] == "invalid_verification_code"

    row = await flow.load(booking["booking_reference"])
    assert row.status == "pending_verification"


@pytest.mark.asyncio
async def test_verify_without_proof_is_not_found(client: AsyncClient, flow):
    """A pending booking with no upload is not in the verification queue."""
    booking = await flow.create(["A1"])
    response = await flow.verify(booking)
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_verify_unknown_action(client: AsyncClient, flow):
    booking = await flow.awaiting_verification(["A1"])
    response = await flow.verify(booking, action="maybe")
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_verify_requires_admin(client: AsyncClient, flow, auth_headers):
    booking = await flow.awaiting_verification(["A1"])
    response = await client.post(
        f"/api/v1/admin/bookings/{booking['booking_reference']}/verify",
        json={"action": "approve", "verification_code": booking["verification_code"]},
        headers=auth_headers,
    )
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_approval_conflict_keeps_second_booking_waiting(client: AsyncClient, flow):
    """
    Two customers paid for overlapping seats. The first approval wins; the
    second fails with the overlapping seats listed and stays reviewable.
    """
    first = await flow.awaiting_verification(["A1", "A2"])
    second = await flow.awaiting_verification(["A2", "A3"], customer_email="other@example.com")

    assert (await flow.verify(first)).status_code == 200

    response = await flow.verify(second)
    assert response.status_code == 409
    body = response.json()
    assert body["error"] == "seat_conflict"
    assert body["conflicting_seats"] == ["A2"]

    row = await flow.load(second["booking_reference"])
    assert row.status == "pending_verification"

    # The admin can still reject it afterwards
    response = await flow.verify(second, action="reject")
    assert response.json()["status"] == "payment_rejected"


@pytest.mark.asyncio
async def test_cancelled_confirmation_frees_seats_for_approval(client: AsyncClient, flow, admin_headers):
    first = await flow.confirmed(["B1"])
    second = await flow.awaiting_verification(["B1"], customer_email="other@example.com")

    response = await client.post(
        f"/api/v1/admin/bookings/{first['booking_reference']}/cancel",
        headers=admin_headers,
    )
    assert response.status_code == 200
    assert response.json()["status"] == "cancelled"

    assert (await flow.verify(second)).status_code == 200


@pytest.mark.asyncio
async def test_rejected_booking_is_terminal(client: AsyncClient, flow, admin_headers):
    booking = await flow.awaiting_verification(["C1"])
    await flow.verify(booking, action="reject")

    assert (await flow.verify(booking)).status_code == 404
    response = await client.post(
        f"/api/v1/admin/bookings/{booking['booking_reference']}/cancel",
        headers=admin_headers,
    )
    assert response.status_code == 409


@pytest.mark.asyncio
async def test_admin_lists(client: AsyncClient, flow, admin_headers):
    waiting = await flow.awaiting_verification(["D1"])
    await flow.create(["D2"])

    pending = await client.get("/api/v1/admin/bookings/pending", headers=admin_headers)
    assert [b["booking_reference"] for b in pending.json()] == [waiting["booking_reference"]]

    payments = await client.get("/api/v1/admin/payments", headers=admin_headers)
    assert len(payments.json()) == 1

    everything = await client.get("/api/v1/admin/bookings", headers=admin_headers)
    assert len(everything.json()) == 2

    # Legacy spelling of the status filter
    legacy = await client.get(
        "/api/v1/admin/bookings", params={"status": "waiting_verification"}, headers=admin_headers
    )
    assert [b["booking_reference"] for b in legacy.json()] == [waiting["booking_reference"]]

    unknown = await client.get("/api/v1/admin/bookings", params={"status": "lost"}, headers=admin_headers)
    assert unknown.status_code == 400


@pytest.mark.asyncio
async def test_payment_image(client: AsyncClient, flow, admin_headers):
    from conftest import PNG_BYTES

    booking = await flow.awaiting_verification(["E1"])
    response = await client.get(
        f"/api/v1/bookings/{booking['booking_reference']}/payment-image", headers=admin_headers
    )
    assert response.status_code == 200
    assert response.content == PNG_BYTES
    assert response.headers["content-type"] == "image/png"


@pytest.mark.asyncio
async def test_end_to_end_ticket_flow(client: AsyncClient, flow, admin_headers):
    """Book, pay, approve, scan; a second scan reports the ticket as used."""
    booking = await flow.create(["A1", "A2"])
    assert (await flow.upload(booking["booking_reference"])).status_code == 200
    confirmed = (await flow.verify(booking)).json()
    assert confirmed["status"] == "confirmed"

    scan = await client.post(
        "/api/v1/bookings/scan-ticket",
        json={"qr_data": confirmed["qr_code_data"]},
        headers=admin_headers,
    )
    assert scan.json()["valid"] is True

    again = await client.post(
        "/api/v1/bookings/scan-ticket",
        json={"qr_data": confirmed["qr_code_data"]},
        headers=admin_headers,
    )
    body = again.json()
    assert body["valid"] is False
    assert body["already_used"] is True
    assert body["used_at"] is not None
