"""Wiring for the identity & session authority.

One ``Authority`` per process holds the store, the token issuer and the
services built on them. The API keeps it on ``app.state.authority``.
"""

from __future__ import annotations

from dataclasses import dataclass

import httpx

from authgate.core.config import Settings, get_settings
from authgate.core.crypto import TokenCipher
from authgate.core.registry import ProviderRegistry
from authgate.core.tokens import TokenIssuer
from authgate.services.accounts import AccountService
from authgate.services.linking import OAuthCallbackFlow
from authgate.services.oauth import OAuthBroker
from authgate.services.two_factor import SecondFactor
from authgate.store.base import IdentityStore, ProviderTokenStore
from authgate.store.memory import MemoryIdentityStore, MemoryProviderTokenStore


@dataclass
class Authority:
    settings: Settings
    store: IdentityStore
    token_store: ProviderTokenStore
    tokens: TokenIssuer
    second_factor: SecondFactor
    broker: OAuthBroker
    accounts: AccountService
    callbacks: OAuthCallbackFlow

    @classmethod
    def build(
        cls,
        settings: Settings | None = None,
        *,
        store: IdentityStore | None = None,
        token_store: ProviderTokenStore | None = None,
        registry: ProviderRegistry | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> "Authority":
        settings = settings or get_settings()
        store = store or MemoryIdentityStore()
        token_store = token_store or MemoryProviderTokenStore()

        tokens = TokenIssuer(settings)
        second_factor = SecondFactor(store, settings)
        broker = OAuthBroker(
            token_store,
            settings,
            cipher=TokenCipher.from_settings(settings),
            registry=registry,
            transport=transport,
        )
        return cls(
            settings=settings,
            store=store,
            token_store=token_store,
            tokens=tokens,
            second_factor=second_factor,
            broker=broker,
            accounts=AccountService(store, tokens, second_factor, broker, settings),
            callbacks=OAuthCallbackFlow(store, broker, tokens, settings),
        )

    async def aclose(self) -> None:
        await self.broker.aclose()
