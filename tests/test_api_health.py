"""Basic API smoke tests — health, providers listing."""

import pytest


@pytest.mark.asyncio
async def test_health(client):
    r = await client.get("/health")
    assert r.status_code == 200
    data = r.json()
    assert data["status"] == "ok"
    assert "version" in data


@pytest.mark.asyncio
async def test_providers_list(client):
    r = await client.get("/api/v1/auth/providers")
    assert r.status_code == 200
    data = r.json()
    assert data["total"] == 2
    names = [p["name"] for p in data["items"]]
    assert names == ["discord", "github"]
    github = data["items"][1]
    assert github["displayName"] == "GitHub"
    assert github["supportsRevocation"] is True


@pytest.mark.asyncio
async def test_unparseable_body_is_a_400(client):
    r = await client.post(
        "/api/v1/auth/login",
        content=b"{not json",
        headers={"Content-Type": "application/json"},
    )
    assert r.status_code == 400
    assert r.json()["error"] == "validation_error"
