"""Test helpers: a fake OAuth provider transport and request shortcuts."""

from __future__ import annotations

from urllib.parse import parse_qs, urlparse

import httpx
import pyotp
from httpx import AsyncClient

from authgate.core.config import Settings

FRONTEND_URL = "https://front.example.com"
ADMIN_KEY = "test-admin-key"
PASSWORD = "longenough1"


class FakeProviders:
    """GitHub and Discord behind an ``httpx.MockTransport``.

    Flip the ``fail_*`` flags to make the matching provider call fail.
    """

    def __init__(self) -> None:
        self.github_user = {
            "id": 42,
            "login": "octocat",
            "email": "octo@example.com",
            "avatar_url": "https://avatars.example.com/u/42",
        }
        self.github_emails = [
            {"email": "old@example.com", "primary": False, "verified": True},
            {"email": "primary@example.com", "primary": True, "verified": True},
        ]
        self.discord_user = {
            "id": "9001",
            "username": "disco",
            "email": "disco@example.com",
            "avatar": "a1b2c3",
        }
        self.fail_exchange = False
        self.fail_profile = False
        self.fail_revoke = False
        self.requests: list[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        host, path = request.url.host, request.url.path

        if host == "github.com" and path == "/login/oauth/access_token":
            if self.fail_exchange:
                # GitHub answers a bad code with HTTP 200
                return httpx.Response(
                    200,
                    json={
                        "error": "bad_verification_code",
                        "error_description": "The code passed is incorrect or expired.",
                    },
                )
            return httpx.Response(
                200, json={"access_token": "gh-access", "token_type": "bearer", "scope": "user:email"}
            )
        if host == "api.github.com" and path == "/user":
            if self.fail_profile:
                return httpx.Response(401, json={"message": "Bad credentials"})
            return httpx.Response(200, json=self.github_user)
        if host == "api.github.com" and path == "/user/emails":
            return httpx.Response(200, json=self.github_emails)
        if host == "api.github.com" and path.startswith("/applications/"):
            return httpx.Response(500 if self.fail_revoke else 204)

        if host == "discord.com" and path == "/api/oauth2/token":
            if self.fail_exchange:
                return httpx.Response(400, json={"error": "invalid_grant"})
            return httpx.Response(
                200,
                json={
                    "access_token": "dc-access",
                    "refresh_token": "dc-refresh",
                    "token_type": "Bearer",
                    "scope": "identify email",
                },
            )
        if host == "discord.com" and path == "/api/users/@me":
            if self.fail_profile:
                return httpx.Response(401, json={"message": "401: Unauthorized"})
            return httpx.Response(200, json=self.discord_user)
        if host == "discord.com" and path == "/api/oauth2/token/revoke":
            return httpx.Response(500 if self.fail_revoke else 200)

        return httpx.Response(404)

    def calls_to(self, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path == path]

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


def make_settings(**overrides) -> Settings:
    values = dict(
        _env_file=None,
        app_debug=True,
        secret_key="test-secret-key",
        jwt_secret_key="test-jwt-secret",
        bcrypt_rounds=4,
        backend_url="http://test",
        oauth_callback_url=FRONTEND_URL,
        github_client_id="gh-client",
        github_client_secret="gh-secret",
        discord_client_id="dc-client",
        discord_client_secret="dc-secret",
        admin_api_key=ADMIN_KEY,
        rate_limit_enabled=False,
    )
    values.update(overrides)
    return Settings(**values)


def set_cookies(response: httpx.Response) -> dict[str, str]:
    """Map cookie name → raw Set-Cookie header for *response*."""
    cookies = {}
    for header in response.headers.get_list("set-cookie"):
        name = header.split("=", 1)[0].strip()
        cookies[name] = header
    return cookies


def cookie_value(header: str) -> str:
    return header.split(";", 1)[0].split("=", 1)[1].strip('"')


def redirect_query(response: httpx.Response) -> dict[str, str]:
    location = response.headers["location"]
    return {k: v[0] for k, v in parse_qs(urlparse(location).query).items()}


class ApiHelper:
    """Drives common multi-request flows against the test client."""

    def __init__(self, client: AsyncClient) -> None:
        self.client = client

    async def register(
        self, email: str = "a@x.com", username: str = "alice", password: str = PASSWORD
    ) -> dict:
        r = await self.client.post(
            "/api/v1/auth/register",
            json={"email": email, "username": username, "password": password},
        )
        assert r.status_code == 200, r.text
        return r.json()

    async def enable_two_factor(self, token: str) -> tuple[str, list[str]]:
        """Enroll and confirm 2FA. Returns ``(secret, backup_codes)``."""
        r = await self.client.post("/api/v1/auth/2fa/setup", headers=bearer(token))
        assert r.status_code == 200, r.text
        secret = r.json()["secret"]
        r = await self.client.post(
            "/api/v1/auth/2fa/verify-setup",
            json={"token": pyotp.TOTP(secret).now()},
            headers=bearer(token),
        )
        assert r.status_code == 200, r.text
        return secret, r.json()["backupCodes"]

    async def start_oauth(self, provider: str, token: str | None = None) -> httpx.Response:
        headers = bearer(token) if token else {}
        r = await self.client.get(f"/api/v1/auth/oauth/{provider}", headers=headers)
        assert r.status_code == 302, r.text
        return r

    async def callback(
        self,
        provider: str,
        start: httpx.Response,
        *,
        code: str = "good-code",
        state: str | None = None,
        cookies: dict[str, str] | None = None,
    ) -> httpx.Response:
        """Complete a started flow, replaying its cookies the way a browser would.

        *cookies* replaces the replayed cookies when given.
        """
        if cookies is None:
            cookies = {name: cookie_value(h) for name, h in set_cookies(start).items()}
        params = {"code": code, "state": state or redirect_query(start)["state"]}
        cookie_header = "; ".join(f"{k}={v}" for k, v in cookies.items())
        r = await self.client.get(
            f"/api/v1/auth/oauth/{provider}/callback",
            params=params,
            headers={"Cookie": cookie_header} if cookie_header else {},
        )
        assert r.status_code == 302, r.text
        return r


def bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}
