"""pytest fixtures shared across all tests."""

from __future__ import annotations

import os

# The limiter and the cached settings read these at import time
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("APP_DEBUG", "true")
os.environ.setdefault("BCRYPT_ROUNDS", "4")

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402

from authgate.core.config import Settings  # noqa: E402
from authgate.services.authority import Authority  # noqa: E402
from helpers import ApiHelper, FakeProviders, make_settings  # noqa: E402


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def fake_providers() -> FakeProviders:
    return FakeProviders()


@pytest_asyncio.fixture
async def authority(settings, fake_providers):
    """A fresh in-memory authority whose provider calls hit ``fake_providers``."""
    auth = Authority.build(settings, transport=fake_providers.transport)
    yield auth
    await auth.aclose()


@pytest_asyncio.fixture
async def client(authority):
    """HTTPX async test client wired to an app around the test authority."""
    from authgate.api.app import create_app

    app = create_app(authority=authority)
    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as ac:
        yield ac


@pytest.fixture
def api(client) -> ApiHelper:
    return ApiHelper(client)
