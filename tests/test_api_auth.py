"""Tests for the local-credential auth API."""

import pytest

from helpers import PASSWORD, bearer


@pytest.mark.asyncio
async def test_register_returns_session_without_password(api):
    data = await api.register()
    assert data["message"] == "User registered successfully"
    assert data["token"]
    user = data["user"]
    assert user["email"] == "a@x.com"
    assert user["username"] == "alice"
    assert user["twoFactor"] == {"enabled": False, "backupCodesRemaining": 0}
    assert not any("password" in key.lower() for key in user)


@pytest.mark.asyncio
async def test_register_duplicate_email(api, client):
    await api.register()
    r = await client.post(
        "/api/v1/auth/register",
        json={"email": "A@x.com", "username": "other", "password": PASSWORD},
    )
    assert r.status_code == 400
    assert r.json()["error"] == "duplicate_email"


@pytest.mark.asyncio
async def test_register_duplicate_username(api, client):
    await api.register()
    r = await client.post(
        "/api/v1/auth/register",
        json={"email": "b@x.com", "username": "ALICE", "password": PASSWORD},
    )
    assert r.status_code == 400
    assert r.json()["error"] == "duplicate_username"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "body, kind",
    [
        ({"email": "a@x.com", "username": "alice", "password": "short"}, "weak_password"),
        ({"email": "a@x.com", "username": "alice"}, "missing_field"),
        ({"email": "not-an-email", "username": "alice", "password": PASSWORD}, "validation_error"),
        ({"username": "alice", "password": PASSWORD}, "missing_field"),
    ],
)
async def test_register_validation(client, body, kind):
    r = await client.post("/api/v1/auth/register", json=body)
    assert r.status_code == 400
    assert r.json()["error"] == kind


@pytest.mark.asyncio
async def test_login(api, client):
    await api.register()
    r = await client.post(
        "/api/v1/auth/login", json={"email": "a@x.com", "password": PASSWORD}
    )
    assert r.status_code == 200
    data = r.json()
    assert data["message"] == "Login successful"
    assert data["requiresTwoFactor"] is False
    assert data["user"]["lastLoginAt"] is not None
    assert "tempToken" not in data


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "email, password", [("a@x.com", "wrong-password"), ("nobody@x.com", PASSWORD)]
)
async def test_login_bad_credentials(api, client, email, password):
    await api.register()
    r = await client.post("/api/v1/auth/login", json={"email": email, "password": password})
    assert r.status_code == 401
    assert r.json() == {"error": "invalid_credentials", "detail": "Invalid credentials"}
    assert r.headers["www-authenticate"] == "Bearer"


@pytest.mark.asyncio
async def test_login_missing_fields(client):
    r = await client.post("/api/v1/auth/login", json={"email": "a@x.com"})
    assert r.status_code == 400
    assert r.json()["error"] == "missing_field"


@pytest.mark.asyncio
async def test_me_and_validate(api, client):
    token = (await api.register())["token"]

    r = await client.get("/api/v1/auth/me", headers=bearer(token))
    assert r.status_code == 200
    assert r.json()["user"]["username"] == "alice"

    r = await client.get("/api/v1/auth/validate", headers=bearer(token))
    assert r.status_code == 200
    data = r.json()
    assert data["valid"] is True
    assert data["user"]["email"] == "a@x.com"
    assert data["user"]["twoFactorVerified"] is False


@pytest.mark.asyncio
async def test_me_requires_token(client):
    r = await client.get("/api/v1/auth/me")
    assert r.status_code == 401
    assert r.json()["error"] == "missing_token"

    r = await client.get("/api/v1/auth/me", headers=bearer("garbage"))
    assert r.status_code == 401
    assert r.json()["error"] == "token_malformed"


@pytest.mark.asyncio
async def test_me_for_deleted_user(api, client, authority):
    data = await api.register()
    await authority.store.delete_user(data["user"]["id"])
    r = await client.get("/api/v1/auth/me", headers=bearer(data["token"]))
    assert r.status_code == 404
    assert r.json()["error"] == "user_not_found"


@pytest.mark.asyncio
async def test_update_profile(api, client):
    token = (await api.register())["token"]
    await api.register(email="b@x.com", username="bob")

    r = await client.put(
        "/api/v1/auth/profile", json={"username": "alicia"}, headers=bearer(token)
    )
    assert r.status_code == 200
    assert r.json()["user"]["username"] == "alicia"
    assert r.json()["user"]["email"] == "a@x.com"

    r = await client.put(
        "/api/v1/auth/profile", json={"email": "b@x.com"}, headers=bearer(token)
    )
    assert r.status_code == 400
    assert r.json()["error"] == "email_in_use"


@pytest.mark.asyncio
async def test_change_password(api, client):
    token = (await api.register())["token"]

    r = await client.put(
        "/api/v1/auth/password",
        json={"currentPassword": "wrong-password", "newPassword": "brand-new-pass"},
        headers=bearer(token),
    )
    assert r.status_code == 401

    r = await client.put(
        "/api/v1/auth/password",
        json={"currentPassword": PASSWORD, "newPassword": "short"},
        headers=bearer(token),
    )
    assert r.status_code == 400
    assert r.json()["error"] == "weak_password"

    r = await client.put(
        "/api/v1/auth/password",
        json={"currentPassword": PASSWORD, "newPassword": "brand-new-pass"},
        headers=bearer(token),
    )
    assert r.status_code == 200

    old = await client.post("/api/v1/auth/login", json={"email": "a@x.com", "password": PASSWORD})
    new = await client.post(
        "/api/v1/auth/login", json={"email": "a@x.com", "password": "brand-new-pass"}
    )
    assert old.status_code == 401
    assert new.status_code == 200


@pytest.mark.asyncio
async def test_logout_without_token(client):
    r = await client.post("/api/v1/auth/logout")
    assert r.status_code == 200
    assert r.json() == {"message": "Logged out successfully"}


@pytest.mark.asyncio
async def test_logout_with_bad_token_never_fails(client):
    r = await client.post("/api/v1/auth/logout", headers=bearer("garbage"))
    assert r.status_code == 200
    assert r.json()["revoked"] is False


@pytest.mark.asyncio
async def test_logout_without_provider_tokens(api, client):
    token = (await api.register())["token"]
    r = await client.post("/api/v1/auth/logout", headers=bearer(token))
    assert r.status_code == 200
    assert r.json() == {
        "message": "Logged out successfully but token revocation failed",
        "revoked": False,
        "reason": "No tokens found",
    }


@pytest.mark.asyncio
async def test_revoke_requires_token(client):
    r = await client.post("/api/v1/auth/revoke")
    assert r.status_code == 401


@pytest.mark.asyncio
async def test_revoke_without_provider_tokens(api, client):
    token = (await api.register())["token"]
    r = await client.post("/api/v1/auth/revoke", headers=bearer(token))
    assert r.status_code == 200
    assert r.json() == {
        "success": False,
        "message": "Token revocation failed: No tokens found",
    }


@pytest.mark.asyncio
async def test_login_is_rate_limited(client, monkeypatch):
    from authgate.core.limiter import limiter

    monkeypatch.setattr(limiter, "enabled", True)
    limiter.reset()
    try:
        statuses = []
        for _ in range(11):
            r = await client.post(
                "/api/v1/auth/login", json={"email": "a@x.com", "password": PASSWORD}
            )
            statuses.append(r.status_code)
    finally:
        limiter.reset()
    assert statuses[:10] == [401] * 10
    assert statuses[10] == 429
