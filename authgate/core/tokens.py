"""Token issuer: signed, self-contained session credentials.

Three shapes share one signing key and differ in claims and lifetime:

    session      full authentication         (no discriminator)
    temp         password/provider passed,   ``temp2FA: true``
                 second factor still owed
    link intent  pending provider profile    ``type: "link_token"``

``verify`` decodes once and returns a tagged claims object; endpoints then
call ``require_session`` / ``require_temp`` / ``require_link_intent`` so a
token of the wrong shape is rejected with ``InsufficientTrust`` instead of
being trusted by accident.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Union

import jwt

from authgate.core.config import Settings, get_settings
from authgate.core.errors import (
    InsufficientTrust,
    TokenExpired,
    TokenMalformed,
    TokenSignatureInvalid,
)
from authgate.providers.base import NormalizedProfile
from authgate.store.base import User

LINK_TOKEN_TYPE = "link_token"


class TokenKind(str, Enum):
    SESSION = "session"
    TEMP = "temp_2fa"
    LINK_INTENT = "link_intent"


@dataclass(frozen=True)
class SessionClaims:
    user_id: str
    email: str
    username: str
    providers: tuple[str, ...]
    two_factor_verified: bool
    expires_at: datetime
    raw: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)
    kind = TokenKind.SESSION


@dataclass(frozen=True)
class TempClaims:
    user_id: str
    email: str
    username: str
    expires_at: datetime
    raw: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)
    kind = TokenKind.TEMP


@dataclass(frozen=True)
class LinkIntentClaims:
    provider: str
    profile: NormalizedProfile
    sealed_tokens: str | None
    expires_at: datetime
    raw: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)
    kind = TokenKind.LINK_INTENT


Claims = Union[SessionClaims, TempClaims, LinkIntentClaims]


class TokenIssuer:
    def __init__(self, settings: Settings | None = None) -> None:
        self.settings = settings or get_settings()

    # ── Issuance ─────────────────────────────────────────────────────────────

    def _encode(self, payload: dict[str, Any], lifetime_minutes: int) -> str:
        now = datetime.now(timezone.utc)
        payload = {
            **payload,
            "iat": now,
            "exp": now + timedelta(minutes=lifetime_minutes),
            "iss": self.settings.jwt_issuer,
        }
        return jwt.encode(
            payload, self.settings.jwt_secret_key, algorithm=self.settings.jwt_algorithm
        )

    def issue_session(self, user: User, two_factor_verified: bool = False) -> str:
        return self._encode(
            {
                "sub": user.id,
                "email": user.email,
                "username": user.username,
                "providers": user.provider_names(),
                "twoFactorVerified": two_factor_verified,
            },
            self.settings.session_token_expire_minutes,
        )

    def issue_temp(self, user: User) -> str:
        return self._encode(
            {
                "sub": user.id,
                "email": user.email,
                "username": user.username,
                "temp2FA": True,
            },
            self.settings.temp_token_expire_minutes,
        )

    def issue_link_intent(
        self, provider: str, profile: NormalizedProfile, sealed_tokens: str | None = None
    ) -> str:
        return self._encode(
            {
                "type": LINK_TOKEN_TYPE,
                "provider": provider,
                "providerData": profile.to_claims(),
                "tokens": sealed_tokens,
            },
            self.settings.link_token_expire_minutes,
        )

    # ── Verification ─────────────────────────────────────────────────────────

    def decode(self, token: str) -> dict[str, Any]:
        if not token:
            raise TokenMalformed()
        try:
            return jwt.decode(
                token,
                self.settings.jwt_secret_key,
                algorithms=[self.settings.jwt_algorithm],
                options={"require": ["exp", "iat", "iss"]},
                issuer=self.settings.jwt_issuer,
            )
        except jwt.ExpiredSignatureError:
            raise TokenExpired()
        except jwt.InvalidSignatureError:
            raise TokenSignatureInvalid()
        except jwt.InvalidTokenError:
            raise TokenMalformed()

    def verify(self, token: str) -> Claims:
        payload = self.decode(token)
        expires_at = datetime.fromtimestamp(payload["exp"], tz=timezone.utc)

        if payload.get("type") == LINK_TOKEN_TYPE:
            data = payload.get("providerData")
            provider = payload.get("provider")
            if not isinstance(data, dict) or not provider:
                raise TokenMalformed()
            try:
                profile = NormalizedProfile.from_claims(provider, data)
            except (KeyError, TypeError):
                raise TokenMalformed()
            return LinkIntentClaims(
                provider=provider,
                profile=profile,
                sealed_tokens=payload.get("tokens"),
                expires_at=expires_at,
                raw=payload,
            )

        if "type" in payload:
            raise TokenMalformed()

        user_id = payload.get("sub")
        if not user_id:
            raise TokenMalformed()

        if payload.get("temp2FA") is True:
            return TempClaims(
                user_id=user_id,
                email=payload.get("email", ""),
                username=payload.get("username", ""),
                expires_at=expires_at,
                raw=payload,
            )
        if "temp2FA" in payload:
            raise TokenMalformed()

        return SessionClaims(
            user_id=user_id,
            email=payload.get("email", ""),
            username=payload.get("username", ""),
            providers=tuple(payload.get("providers") or ()),
            two_factor_verified=bool(payload.get("twoFactorVerified", False)),
            expires_at=expires_at,
            raw=payload,
        )

    def require_session(self, token: str) -> SessionClaims:
        claims = self.verify(token)
        if not isinstance(claims, SessionClaims):
            raise InsufficientTrust("A full session token is required")
        return claims

    def require_temp(self, token: str) -> TempClaims:
        claims = self.verify(token)
        if not isinstance(claims, TempClaims):
            raise InsufficientTrust("Invalid temporary token")
        return claims

    def require_link_intent(self, token: str) -> LinkIntentClaims:
        claims = self.verify(token)
        if not isinstance(claims, LinkIntentClaims):
            raise InsufficientTrust("Invalid link token")
        return claims
