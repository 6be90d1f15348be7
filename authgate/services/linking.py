"""OAuth callback decision tree: login, link, 2FA challenge or rejection.

``OAuthCallbackFlow.handle`` runs once per provider callback. Gates, in order:

1. the provider reported an error                  → provider_error
2. state absent, not matching the cookie, or not a
   live pending state (replayed / expired)         → invalid_state
3. code exchange failed                            → oauth_failed
4. profile fetch failed                            → oauth_failed
5. look up the user owning (provider, provider id)
6. link intent for an existing user L:
   a. L already has this provider                  → provider_already_linked_to_you
   b. the provider account belongs to someone else → provider_linked_to_different_user
   c. link it                                      → session / temp token, linked=provider
7. login:
   a. a user owns the provider account             → session / temp token
   b. nobody does                                  → account_not_found (never auto-registers)

The pending state is consumed before any gate runs, so a state works once.
The HTTP layer clears both OAuth cookies for every outcome.
"""

from __future__ import annotations

import hmac
from dataclasses import dataclass
from enum import Enum
from urllib.parse import urlencode

from authgate.core.config import Settings, get_settings
from authgate.core.errors import (
    InsufficientTrust,
    ProviderAlreadyLinkedElsewhere,
    TokenError,
    UnknownProvider,
    UpstreamError,
    UserNotFound,
)
from authgate.core.logging import get_logger
from authgate.core.tokens import SessionClaims, TokenIssuer
from authgate.providers.base import NormalizedProfile
from authgate.services.oauth import OAuthBroker, PendingOAuthState, ProviderTokens
from authgate.store.base import IdentityStore, User

logger = get_logger(__name__)

PROVIDER_ERROR = "provider_error"
INVALID_STATE = "invalid_state"
OAUTH_FAILED = "oauth_failed"
OAUTH_ERROR = "oauth_error"
ACCOUNT_NOT_FOUND = "account_not_found"
ACCOUNT_DISABLED = "account_disabled"
PROVIDER_ALREADY_LINKED_TO_YOU = "provider_already_linked_to_you"
PROVIDER_LINKED_TO_DIFFERENT_USER = "provider_linked_to_different_user"


class Outcome(str, Enum):
    ISSUED = "issued"
    REQUIRES_2FA = "requires_2fa"
    ERROR = "error"


@dataclass
class CallbackOutcome:
    outcome: Outcome
    token: str | None = None
    temp_token: str | None = None
    linked: str | None = None
    error: str | None = None
    link_token: str | None = None

    @classmethod
    def failed(cls, error: str, link_token: str | None = None) -> "CallbackOutcome":
        return cls(outcome=Outcome.ERROR, error=error, link_token=link_token)

    def query_params(self) -> dict[str, str]:
        if self.outcome is Outcome.ERROR:
            params = {"error": self.error or OAUTH_ERROR}
            if self.link_token:
                params["linkToken"] = self.link_token
            return params

        if self.outcome is Outcome.REQUIRES_2FA:
            params = {"requiresTwoFactor": "true", "tempToken": self.temp_token or ""}
        else:
            params = {"token": self.token or ""}
        if self.linked:
            params["linked"] = self.linked
        return params

    def redirect_url(self, base_url: str) -> str:
        return f"{base_url.rstrip('/')}/?{urlencode(self.query_params())}"


class OAuthCallbackFlow:
    def __init__(
        self,
        store: IdentityStore,
        broker: OAuthBroker,
        tokens: TokenIssuer,
        settings: Settings | None = None,
    ) -> None:
        self.store = store
        self.broker = broker
        self.tokens = tokens
        self.settings = settings or get_settings()

    def start(
        self, provider: str, token: str | None = None
    ) -> tuple[str, PendingOAuthState]:
        """Begin an authorization code flow and return the provider URL.

        A valid session token makes this a link flow for its user; an unusable
        token is ignored and the flow proceeds as a login. Temp and link
        tokens are refused outright.
        """
        link_user_id = None
        if token:
            try:
                claims = self.tokens.verify(token)
            except TokenError as exc:
                logger.info("OAuth start with unusable token", error=type(exc).__name__)
            else:
                if not isinstance(claims, SessionClaims):
                    raise InsufficientTrust()
                link_user_id = claims.user_id

        # Unknown providers fail before a state is spent
        self.broker.provider(provider)
        pending = self.broker.states.issue(link_user_id)
        url = self.broker.build_auth_url(provider, pending.state)
        logger.info("OAuth flow started", provider=provider, linking=link_user_id is not None)
        return url, pending

    async def handle(
        self,
        provider: str,
        *,
        code: str | None,
        state: str | None,
        error: str | None = None,
        cookie_state: str | None = None,
        cookie_link_user_id: str | None = None,
    ) -> CallbackOutcome:
        try:
            outcome = await self._handle(
                provider,
                code=code,
                state=state,
                error=error,
                cookie_state=cookie_state,
                cookie_link_user_id=cookie_link_user_id,
            )
        except Exception:
            logger.exception("OAuth callback failed unexpectedly", provider=provider)
            outcome = CallbackOutcome.failed(OAUTH_ERROR)

        logger.info(
            "OAuth callback finished",
            provider=provider,
            outcome=outcome.outcome.value,
            error=outcome.error,
            linked=outcome.linked,
        )
        return outcome

    async def _handle(
        self,
        provider: str,
        *,
        code: str | None,
        state: str | None,
        error: str | None,
        cookie_state: str | None,
        cookie_link_user_id: str | None,
    ) -> CallbackOutcome:
        pending = self.broker.states.consume(state)

        if error:
            logger.info("Provider reported an error", provider=provider, provider_error=error)
            return CallbackOutcome.failed(PROVIDER_ERROR)

        if (
            not state
            or not cookie_state
            or not hmac.compare_digest(state.encode(), cookie_state.encode())
            or pending is None
        ):
            return CallbackOutcome.failed(INVALID_STATE)

        link_user_id = pending.link_user_id
        if cookie_link_user_id and cookie_link_user_id != link_user_id:
            # The link target is bound to the state server-side; a cookie cannot move it
            return CallbackOutcome.failed(INVALID_STATE)

        if not code:
            return CallbackOutcome.failed(OAUTH_FAILED)
        try:
            provider_tokens = await self.broker.exchange_code(provider, code)
            profile = await self.broker.fetch_profile(provider, provider_tokens.access_token)
        except (UpstreamError, UnknownProvider):
            return CallbackOutcome.failed(OAUTH_FAILED)

        existing = await self.store.get_by_provider(provider, profile.provider_id)

        if link_user_id:
            link_user = await self.store.get_by_id(link_user_id)
            if link_user is not None:
                return await self._link(link_user, existing, profile, provider_tokens)
            logger.info("Link user no longer exists, treating as login", provider=provider)

        return await self._login(existing, profile, provider_tokens)

    async def _link(
        self,
        link_user: User,
        existing: User | None,
        profile: NormalizedProfile,
        provider_tokens: ProviderTokens,
    ) -> CallbackOutcome:
        provider = profile.provider
        if not link_user.is_active:
            return CallbackOutcome.failed(ACCOUNT_DISABLED)
        if provider in link_user.providers:
            return CallbackOutcome.failed(PROVIDER_ALREADY_LINKED_TO_YOU)
        if existing is not None and existing.id != link_user.id:
            return CallbackOutcome.failed(PROVIDER_LINKED_TO_DIFFERENT_USER)

        try:
            user = await self.store.link_provider(link_user.id, profile.to_link())
        except ProviderAlreadyLinkedElsewhere:
            # Lost a race against another link of the same provider account
            return CallbackOutcome.failed(PROVIDER_LINKED_TO_DIFFERENT_USER)
        except UserNotFound:
            return CallbackOutcome.failed(ACCOUNT_NOT_FOUND)

        await self.broker.store_tokens(user.id, provider, provider_tokens)
        return self._issue(user, linked=provider)

    async def _login(
        self,
        existing: User | None,
        profile: NormalizedProfile,
        provider_tokens: ProviderTokens,
    ) -> CallbackOutcome:
        if existing is None:
            link_token = None
            if self.settings.oauth_offer_link_token:
                link_token = self.tokens.issue_link_intent(
                    profile.provider, profile, self.broker.seal_tokens(provider_tokens)
                )
            return CallbackOutcome.failed(ACCOUNT_NOT_FOUND, link_token=link_token)

        if not existing.is_active:
            return CallbackOutcome.failed(ACCOUNT_DISABLED)

        await self.broker.store_tokens(existing.id, profile.provider, provider_tokens)
        if not existing.requires_two_factor:
            # 2FA logins are recorded once the second factor is verified
            await self.store.record_login(existing.id)
        return self._issue(existing)

    def _issue(self, user: User, linked: str | None = None) -> CallbackOutcome:
        if user.requires_two_factor:
            return CallbackOutcome(
                outcome=Outcome.REQUIRES_2FA,
                temp_token=self.tokens.issue_temp(user),
                linked=linked,
            )
        return CallbackOutcome(
            outcome=Outcome.ISSUED,
            token=self.tokens.issue_session(user),
            linked=linked,
        )
