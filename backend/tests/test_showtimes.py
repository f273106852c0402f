"""
Tests for showtime endpoints.
"""

from datetime import datetime, timedelta, timezone

import pytest
from httpx import AsyncClient


@pytest.mark.asyncio
async def test_admin_creates_showtime(client: AsyncClient, admin_headers):
    starts_at = (datetime.now(timezone.utc) + timedelta(days=3)).isoformat()
    response = await client.post("/api/v1/admin/showtimes", json={
        "movie_title": "Dune: Part Two",
        "studio": "Studio 2",
        "starts_at": starts_at,
        "ticket_price": "45000",
        "seat_capacity": 80,
    }, headers=admin_headers)
    assert response.status_code == 201
    data = response.json()
    assert data["movie_title"] == "Dune: Part Two"
    assert data["seat_capacity"] == 80


@pytest.mark.asyncio
async def test_create_showtime_in_past_rejected(client: AsyncClient, admin_headers):
    starts_at = (datetime.now(timezone.utc) - timedelta(hours=1)).isoformat()
    response = await client.post("/api/v1/admin/showtimes", json={
        "movie_title": "Old Movie",
        "starts_at": starts_at,
        "ticket_price": "45000",
        "seat_capacity": 80,
    }, headers=admin_headers)
    assert response.status_code == 400
    assert response.json()["error"] == "validation_error"


@pytest.mark.asyncio
async def test_create_showtime_requires_admin(client: AsyncClient, auth_headers):
    response = await client.post("/api/v1/admin/showtimes", json={
        "movie_title": "Dune: Part Two",
        "starts_at": (datetime.now(timezone.utc) + timedelta(days=3)).isoformat(),
        "ticket_price": "45000",
        "seat_capacity": 80,
    }, headers=auth_headers)
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_list_showtimes(client: AsyncClient, test_showtime):
    response = await client.get("/api/v1/showtimes/")
    assert response.status_code == 200
    data = response.json()
    assert data["total"] == 1
    assert data["showtimes"][0]["id"] == test_showtime.id
    assert data["cached"] is False


@pytest.mark.asyncio
async def test_get_showtime_not_found(client: AsyncClient):
    response = await client.get("/api/v1/showtimes/9999")
    assert response.status_code == 404
    assert response.json()["error"] == "not_found"
