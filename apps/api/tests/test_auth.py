"""Tests for session authentication."""

import pytest
from httpx import AsyncClient

from aris.core.security import create_session_token, decode_session_token, secrets_match


def test_session_token_round_trip(test_user, test_org):
    token = create_session_token(
        user_id=test_user.id, org_id=test_org.id, role="admin", token_version=1
    )

    payload = decode_session_token(token)

    assert payload["sub"] == str(test_user.id)
    assert payload["org_id"] == str(test_org.id)
    assert payload["token_version"] == 1


def test_secrets_match():
    assert secrets_match("abc", "abc")
    assert not secrets_match("abd", "abc")
    assert not secrets_match(None, "abc")


@pytest.mark.asyncio
async def test_protected_endpoint_requires_session(client: AsyncClient):
    """Protected endpoints should require authentication."""
    response = await client.get("/auth/me")
    assert response.status_code == 401
    assert response.json() == {"error": "Not authenticated"}


@pytest.mark.asyncio
async def test_garbage_cookie_is_rejected(client: AsyncClient):
    client.cookies.set("crm_session", "not-a-jwt")

    response = await client.get("/pipelines")

    assert response.status_code == 401
    assert response.json() == {"error": "Invalid session"}


@pytest.mark.asyncio
async def test_bumped_token_version_revokes_session(authed_client: AsyncClient, db, test_user):
    test_user.token_version += 1
    db.commit()

    response = await authed_client.get("/auth/me")

    assert response.status_code == 401
    assert response.json() == {"error": "Session revoked"}


@pytest.mark.asyncio
async def test_authed_me_returns_user(authed_client: AsyncClient, test_user, test_org):
    """Authenticated /me should return user and org info."""
    response = await authed_client.get("/auth/me")

    assert response.status_code == 200
    data = response.json()
    assert data["email"] == test_user.email
    assert data["org_slug"] == test_org.slug
    assert data["role"] == "admin"
    assert data["subscription_tier"] == "free"


@pytest.mark.asyncio
async def test_logout_clears_cookie(authed_client: AsyncClient):
    response = await authed_client.post("/auth/logout")

    assert response.status_code == 200
    assert response.json() == {"status": "logged_out"}
    assert "crm_session" in response.headers.get("set-cookie", "")
