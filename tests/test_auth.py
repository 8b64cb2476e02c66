"""Auth dependency tests — bearer extraction, JWT validation, role from DB."""

from __future__ import annotations

import uuid

from jose import jwt

from leave_portal.common.constants import UserRole
from leave_portal.config import settings
from tests.conftest import _seed_user, auth_headers_for, create_access_token


# ── Health ──────────────────────────────────────────────────────────


async def test_health_needs_no_auth(client):
    resp = await client.get("/api/v1/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "healthy"


# ── Bearer / JWT ────────────────────────────────────────────────────


async def test_missing_header_is_401(client):
    resp = await client.get("/api/v1/permissions/me")
    assert resp.status_code == 401


async def test_non_bearer_scheme_is_401(client):
    resp = await client.get(
        "/api/v1/permissions/me", headers={"Authorization": "Basic dXNlcjpwYXNz"},
    )
    assert resp.status_code == 401


async def test_expired_token_is_401(client, db):
    user = await _seed_user(db)
    await db.commit()
    token = create_access_token(user.id, expired=True)
    resp = await client.get(
        "/api/v1/permissions/me", headers={"Authorization": f"Bearer {token}"},
    )
    assert resp.status_code == 401
    assert "expired" in resp.json()["detail"].lower()


async def test_wrong_signature_is_401(client, db):
    user = await _seed_user(db)
    await db.commit()
    token = jwt.encode(
        {"sub": str(user.id), "type": "access"}, "not-the-secret",
        algorithm=settings.JWT_ALGORITHM,
    )
    resp = await client.get(
        "/api/v1/permissions/me", headers={"Authorization": f"Bearer {token}"},
    )
    assert resp.status_code == 401


async def test_refresh_token_is_not_an_access_token(client, db):
    user = await _seed_user(db)
    await db.commit()
    token = create_access_token(user.id, token_type="refresh")
    resp = await client.get(
        "/api/v1/permissions/me", headers={"Authorization": f"Bearer {token}"},
    )
    assert resp.status_code == 401


async def test_unknown_subject_is_401(client):
    token = create_access_token(uuid.uuid4())
    resp = await client.get(
        "/api/v1/permissions/me", headers={"Authorization": f"Bearer {token}"},
    )
    assert resp.status_code == 401


async def test_inactive_user_is_401(client, db):
    user = await _seed_user(db, is_active=False)
    await db.commit()
    resp = await client.get("/api/v1/permissions/me", headers=auth_headers_for(user))
    assert resp.status_code == 401


# ── Role comes from the user row ────────────────────────────────────


async def test_role_claim_in_token_is_ignored(client, org):
    """An employee holding a token that says admin is still an employee."""
    token = create_access_token(org["employee"].id, role=UserRole.admin)
    resp = await client.post(
        "/api/v1/permissions/assign",
        json={
            "user_id": str(org["employee"].id),
            "permission_id": str(org["catalog"]["leave.approve"].id),
        },
        headers={"Authorization": f"Bearer {token}"},
    )
    assert resp.status_code == 403


async def test_route_level_permission_guard(client, org):
    resp = await client.get("/api/v1/authorizations", headers=auth_headers_for(org["employee"]))
    assert resp.status_code == 403
    assert resp.json()["required_permission"] == "authorization.view_all"

    resp = await client.get("/api/v1/authorizations", headers=auth_headers_for(org["admin"]))
    assert resp.status_code == 200
