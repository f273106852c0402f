"""
Tests for authentication endpoints: registration and login.
"""

import pytest
from httpx import AsyncClient


@pytest.mark.asyncio
async def test_register_user(client: AsyncClient):
    """Successful registration returns user data."""
    response = await client.post("/api/v1/auth/register", json={
        "email": "new@example.com",
        "username": "newuser",
        "phone": "081299998888",
        "password": "securepassword123",
    })
    assert response.status_code == 201
    data = response.json()
    assert data["email"] == "new@example.com"
    assert data["username"] == "newuser"
    assert data["role"] == "user"
    assert "hashed_password" not in data  # Never expose password hash


@pytest.mark.asyncio
async def test_register_without_email_gets_placeholder(client: AsyncClient):
    response = await client.post("/api/v1/auth/register", json={
        "username": "walkin",
        "phone": "081200001111",
        "password": "securepassword123",
    })
    assert response.status_code == 201
    assert response.json()["email"] == "walkin@no-email.com"


@pytest.mark.asyncio
async def test_register_duplicate_email(client: AsyncClient, test_user):
    """Duplicate email returns 409."""
    response = await client.post("/api/v1/auth/register", json={
        "email": "test@example.com",
        "username": "different",
        "phone": "081200002222",
        "password": "securepassword123",
    })
    assert response.status_code == 409


@pytest.mark.asyncio
async def test_register_duplicate_username(client: AsyncClient, test_user):
    """Duplicate username returns 409."""
    response = await client.post("/api/v1/auth/register", json={
        "email": "different@example.com",
        "username": "testuser",
        "phone": "081200003333",
        "password": "securepassword123",
    })
    assert response.status_code == 409


@pytest.mark.asyncio
async def test_register_weak_password(client: AsyncClient):
    """Password under 6 chars returns 422."""
    response = await client.post("/api/v1/auth/register", json={
        "email": "weak@example.com",
        "username": "weakuser",
        "phone": "081200004444",
        "password": "short",
    })
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_login_with_username(client: AsyncClient, test_user):
    """Valid credentials return JWT token."""
    response = await client.post("/api/v1/auth/login", json={
        "username": "testuser",
        "password": "testpassword123",
    })
    assert response.status_code == 200
    data = response.json()
    assert "access_token" in data
    assert data["token_type"] == "bearer"
    assert data["role"] == "user"


@pytest.mark.asyncio
async def test_login_with_email(client: AsyncClient, test_user):
    response = await client.post("/api/v1/auth/login", json={
        "username": "TEST@example.com",
        "password": "testpassword123",
    })
    assert response.status_code == 200


@pytest.mark.asyncio
async def test_login_admin_role_in_token(client: AsyncClient, admin_user):
    response = await client.post("/api/v1/auth/login", json={
        "username": "admin",
        "password": "adminpassword123",
    })
    assert response.status_code == 200
    assert response.json()["role"] == "admin"


@pytest.mark.asyncio
async def test_login_wrong_password(client: AsyncClient, test_user):
    """Wrong password returns 401."""
    response = await client.post("/api/v1/auth/login", json={
        "username": "testuser",
        "password": "wrongpassword",
    })
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_me_requires_token(client: AsyncClient):
    response = await client.get("/api/v1/auth/me")
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_me_returns_profile(client: AsyncClient, auth_headers):
    response = await client.get("/api/v1/auth/me", headers=auth_headers)
    assert response.status_code == 200
    assert response.json()["username"] == "testuser"


@pytest.mark.asyncio
async def test_admin_routes_reject_customers(client: AsyncClient, auth_headers):
    response = await client.get("/api/v1/admin/bookings", headers=auth_headers)
    assert response.status_code == 403
