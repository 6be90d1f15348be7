"""OAuth broker: authorization URLs, code exchange, profiles, token revocation.

Also owns the pending CSRF states. A state is issued when a flow starts,
lives for ``oauth_state_ttl_seconds`` and is consumed by the first callback
that presents it, whatever that callback's outcome.
"""

from __future__ import annotations

import secrets
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any
from urllib.parse import urlencode

import httpx

from authgate.core.config import Settings, get_settings
from authgate.core.crypto import TokenCipher
from authgate.core.errors import ExchangeFailed, ProfileFetchFailed, UnknownProvider
from authgate.core.logging import get_logger
from authgate.core.registry import ProviderRegistry, get_registry
from authgate.providers.base import BaseProvider, NormalizedProfile, ProviderMetadata
from authgate.store.base import ProviderTokenRecord, ProviderTokenStore, utcnow

logger = get_logger(__name__)


def generate_state() -> str:
    """256 bits of CSRF state, hex encoded."""
    return secrets.token_hex(32)


@dataclass
class PendingOAuthState:
    state: str
    issued_at: datetime
    link_user_id: str | None = None


class PendingStateStore:
    """Single-use CSRF states with lazy expiry."""

    def __init__(
        self, ttl_seconds: int, clock: Callable[[], datetime] = utcnow
    ) -> None:
        self._ttl = timedelta(seconds=ttl_seconds)
        self._clock = clock
        self._pending: dict[str, PendingOAuthState] = {}

    def issue(self, link_user_id: str | None = None) -> PendingOAuthState:
        self.purge_expired()
        pending = PendingOAuthState(
            state=generate_state(), issued_at=self._clock(), link_user_id=link_user_id
        )
        self._pending[pending.state] = pending
        return pending

    def consume(self, state: str | None) -> PendingOAuthState | None:
        if not state:
            return None
        pending = self._pending.pop(state, None)
        if pending is None or self._expired(pending):
            return None
        return pending

    def purge_expired(self) -> int:
        stale = [key for key, pending in self._pending.items() if self._expired(pending)]
        for key in stale:
            del self._pending[key]
        return len(stale)

    def _expired(self, pending: PendingOAuthState) -> bool:
        return self._clock() - pending.issued_at >= self._ttl

    def __len__(self) -> int:
        return len(self._pending)


@dataclass
class ProviderTokens:
    access_token: str
    refresh_token: str | None = None
    token_type: str | None = None
    scope: str | None = None
    raw: dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "ProviderTokens":
        return cls(
            access_token=payload["access_token"],
            refresh_token=payload.get("refresh_token"),
            token_type=payload.get("token_type"),
            scope=payload.get("scope"),
            raw=payload,
        )


@dataclass
class RevocationResult:
    revoked: bool
    reason: str | None = None


class OAuthBroker:
    generate_state = staticmethod(generate_state)

    def __init__(
        self,
        token_store: ProviderTokenStore,
        settings: Settings | None = None,
        *,
        cipher: TokenCipher | None = None,
        registry: ProviderRegistry | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.token_store = token_store
        self.cipher = cipher or TokenCipher.from_settings(self.settings)
        self.registry = registry or get_registry()
        self.states = PendingStateStore(self.settings.oauth_state_ttl_seconds)
        self._client = httpx.AsyncClient(
            timeout=self.settings.provider_timeout, transport=transport
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    # ── Providers ────────────────────────────────────────────────────────────

    def provider(self, name: str) -> BaseProvider:
        provider_cls = self.registry.get(name)
        if provider_cls is None:
            raise UnknownProvider(name)
        client_id, client_secret = self.settings.provider_credentials(name)
        if not client_id or not client_secret:
            raise UnknownProvider(name)
        return provider_cls(client_id, client_secret)

    def configured_providers(self) -> list[ProviderMetadata]:
        configured = []
        for name, provider_cls in sorted(self.registry.all().items()):
            client_id, client_secret = self.settings.provider_credentials(name)
            if client_id and client_secret:
                configured.append(provider_cls.metadata)
        return configured

    # ── Authorization code flow ──────────────────────────────────────────────

    def build_auth_url(self, provider: str, state: str) -> str:
        prov = self.provider(provider)
        params = prov.authorization_params(self.settings.redirect_uri(provider), state)
        return f"{prov.metadata.authorize_url}?{urlencode(params)}"

    async def exchange_code(self, provider: str, code: str) -> ProviderTokens:
        prov = self.provider(provider)
        redirect_uri = self.settings.redirect_uri(provider)
        logger.info("Exchanging authorization code", provider=provider, redirect_uri=redirect_uri)

        try:
            resp = await self._client.post(
                prov.metadata.token_url,
                data=prov.token_request(code, redirect_uri),
                headers={"Accept": "application/json"},
            )
        except httpx.HTTPError as exc:
            logger.warning("Code exchange request failed", provider=provider, error=type(exc).__name__)
            raise ExchangeFailed(
                f"Failed to exchange code for tokens: {type(exc).__name__}"
            ) from exc

        try:
            payload = resp.json()
        except ValueError:
            payload = {}
        if not isinstance(payload, dict):
            payload = {}

        # GitHub reports a bad code as HTTP 200 with an "error" member
        if resp.is_error or "error" in payload or not payload.get("access_token"):
            detail = (
                payload.get("error_description")
                or payload.get("error")
                or f"HTTP {resp.status_code}"
            )
            logger.warning(
                "Code exchange rejected", provider=provider, status=resp.status_code, detail=detail
            )
            raise ExchangeFailed(f"Failed to exchange code for tokens: {detail}")

        logger.info("Code exchange succeeded", provider=provider)
        return ProviderTokens.from_payload(payload)

    async def fetch_profile(self, provider: str, access_token: str) -> NormalizedProfile:
        prov = self.provider(provider)
        try:
            resp = await self._client.get(
                prov.metadata.profile_url, headers=prov.api_headers(access_token)
            )
            resp.raise_for_status()
            profile = prov.normalize(resp.json())
        except httpx.HTTPStatusError as exc:
            logger.warning(
                "Profile request rejected", provider=provider, status=exc.response.status_code
            )
            raise ProfileFetchFailed(
                f"Failed to get user information: HTTP {exc.response.status_code}"
            ) from exc
        except httpx.HTTPError as exc:
            logger.warning("Profile request failed", provider=provider, error=type(exc).__name__)
            raise ProfileFetchFailed(
                f"Failed to get user information: {type(exc).__name__}"
            ) from exc
        except (KeyError, TypeError, ValueError) as exc:
            logger.warning("Profile payload unusable", provider=provider, error=type(exc).__name__)
            raise ProfileFetchFailed("Failed to get user information: unexpected payload") from exc

        profile = await prov.complete_profile(self._client, access_token, profile)
        logger.info(
            "Profile fetched",
            provider=provider,
            provider_id=profile.provider_id,
            has_email=profile.email is not None,
        )
        return profile

    # ── Provider token vault ─────────────────────────────────────────────────

    def seal_tokens(self, tokens: ProviderTokens) -> str:
        return self.cipher.seal_json(
            {"access_token": tokens.access_token, "refresh_token": tokens.refresh_token}
        )

    def open_tokens(self, sealed: str) -> ProviderTokens:
        return ProviderTokens.from_payload(self.cipher.open_json(sealed))

    async def store_tokens(self, user_id: str, provider: str, tokens: ProviderTokens) -> None:
        await self.token_store.put(
            ProviderTokenRecord(
                user_id=user_id,
                provider=provider,
                access_token=self.cipher.seal(tokens.access_token),
                refresh_token=(
                    self.cipher.seal(tokens.refresh_token) if tokens.refresh_token else None
                ),
            )
        )

    async def _revoke_record(self, record: ProviderTokenRecord) -> str | None:
        """Revoke one stored record with its provider. Returns a failure reason or None."""
        try:
            prov = self.provider(record.provider)
        except UnknownProvider:
            return f"{record.provider}: revocation not supported"
        if not prov.metadata.revoke_url:
            return f"{record.provider}: revocation not supported"

        try:
            access_token = self.cipher.open(record.access_token)
            await prov.revoke(self._client, access_token)
        except httpx.HTTPStatusError as exc:
            return f"{record.provider}: HTTP {exc.response.status_code}"
        except (httpx.HTTPError, ValueError) as exc:
            return f"{record.provider}: {type(exc).__name__}"
        return None

    async def revoke(self, user_id: str) -> RevocationResult:
        """Best-effort provider-side revocation of every stored token for *user_id*."""
        records = await self.token_store.list_for_user(user_id)
        if not records:
            logger.info("No provider tokens to revoke", user_id=user_id)
            return RevocationResult(revoked=False, reason="No tokens found")

        failures: list[str] = []
        for record in records:
            reason = await self._revoke_record(record)
            if reason is not None:
                failures.append(reason)
                logger.warning(
                    "Provider token revocation failed",
                    user_id=user_id,
                    provider=record.provider,
                    reason=reason,
                )
                continue
            await self.token_store.discard(user_id, record.provider)
            logger.info("Provider token revoked", user_id=user_id, provider=record.provider)

        if failures:
            return RevocationResult(revoked=False, reason="; ".join(failures))
        return RevocationResult(revoked=True)

    async def forget(self, user_id: str, provider: str) -> None:
        """Drop the stored token for one provider, revoking it first when possible."""
        for record in await self.token_store.list_for_user(user_id):
            if record.provider == provider:
                reason = await self._revoke_record(record)
                if reason is not None:
                    logger.warning(
                        "Revocation on unlink failed", user_id=user_id, provider=provider, reason=reason
                    )
        await self.token_store.discard(user_id, provider)

    async def forget_all(self, user_id: str) -> int:
        return await self.token_store.discard_all(user_id)
