import httpx
from httpx import AsyncClient
from fastapi import status
import uuid

import pytest

from templepoints.main import app
from templepoints.db import SessionLocal
from templepoints.models.user import ROLE_ADMIN, ROLE_WARD_APPROVER
from templepoints.security import hash_password, verify_password, make_refresh_token, SESSION_COOKIE
from conftest import make_ward, make_user, bearer


def test_password_hashing():
    h = hash_password("supersecret")
    assert h != "supersecret"
    assert verify_password("supersecret", h)
    assert not verify_password("nope", h)


@pytest.mark.asyncio
async def test_login_user_refresh_logout():
    email = f"approver-{uuid.uuid4().hex[:8]}@ward.org"
    async with SessionLocal() as s:
        w = await make_ward(s, "Moroni 1st Ward")
        await make_user(s, ROLE_WARD_APPROVER, ward_id=w.id, email=email, password_hash=hash_password("supersecret"))

    async with AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as ac:
        # login (email lookup is case-insensitive)
        r = await ac.post("/api/login", json={"email": email.upper(), "password": "supersecret"})
        assert r.status_code == 200, r.text
        body = r.json()
        assert body["success"] is True
        assert body["user"]["email"] == email
        assert body["user"]["role"] == ROLE_WARD_APPROVER
        assert body["user"]["ward_id"] == w.id
        tokens = body["tokens"]
        assert "access" in tokens and "refresh" in tokens
        assert SESSION_COOKIE in r.headers.get("set-cookie", "")

        # current user with the access token
        me = await ac.get("/api/user", headers={"Authorization": f"Bearer {tokens['access']}"})
        assert me.status_code == 200
        assert me.json()["email"] == email

        # and with the session cookie
        me = await ac.get("/api/user", headers={"Cookie": f"{SESSION_COOKIE}={tokens['access']}"})
        assert me.status_code == 200

        # a refresh token is not an access token
        me = await ac.get("/api/user", headers={"Authorization": f"Bearer {tokens['refresh']}"})
        assert me.status_code == 401

        # refresh to a new pair
        r = await ac.post("/api/auth/refresh", headers={"Authorization": f"Bearer {tokens['refresh']}"})
        assert r.status_code == 200
        assert set(r.json()) == {"access", "refresh"}
        r = await ac.post("/api/auth/refresh", headers={"Authorization": f"Bearer {tokens['access']}"})
        assert r.status_code == 401

        r = await ac.post("/api/logout")
        assert r.status_code == 200
        assert r.json()["success"] is True


@pytest.mark.asyncio
async def test_login_rejects_bad_credentials():
    email = f"admin-{uuid.uuid4().hex[:8]}@ward.org"
    async with SessionLocal() as s:
        await make_user(s, ROLE_ADMIN, email=email, password_hash=hash_password("supersecret"))

    async with AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as ac:
        r = await ac.post("/api/login", json={"email": email, "password": "wrong"})
        assert r.status_code == status.HTTP_401_UNAUTHORIZED
        assert r.json()["detail"] == "Invalid credentials"
        r = await ac.post("/api/login", json={"email": "nobody@ward.org", "password": "supersecret"})
        assert r.status_code == status.HTTP_401_UNAUTHORIZED


@pytest.mark.asyncio
async def test_auth_status():
    async with SessionLocal() as s:
        admin = await make_user(s, ROLE_ADMIN)

    async with AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as ac:
        r = await ac.get("/api/auth/status")
        assert r.json() == {"authenticated": False, "user": None}

        r = await ac.get("/api/user")
        assert r.status_code == 401

        r = await ac.get("/api/auth/status", headers=bearer(admin))
        body = r.json()
        assert body["authenticated"] is True
        assert body["user"]["id"] == admin.id


@pytest.mark.asyncio
async def test_refresh_for_unknown_token_shapes():
    async with AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as ac:
        assert (await ac.post("/api/auth/refresh")).status_code == 401
        assert (await ac.post("/api/auth/refresh", headers={"Authorization": "Bearer garbage"})).status_code == 401
        r = await ac.post("/api/auth/refresh", headers={"Authorization": f"Bearer {make_refresh_token(7)}"})
        assert r.status_code == 200
