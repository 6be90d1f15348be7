"""Tests for the token issuer: issuance, verification and shape checks."""

from datetime import datetime, timedelta, timezone

import jwt
import pytest

from authgate.core.errors import (
    InsufficientTrust,
    TokenExpired,
    TokenMalformed,
    TokenSignatureInvalid,
)
from authgate.core.tokens import LinkIntentClaims, SessionClaims, TempClaims, TokenIssuer
from authgate.providers.base import NormalizedProfile
from authgate.store.base import ProviderLink, User
from helpers import make_settings


@pytest.fixture
def issuer():
    return TokenIssuer(make_settings())


@pytest.fixture
def user():
    u = User(id="user-1", email="a@x.com", username="alice")
    u.providers["github"] = ProviderLink(provider="github", provider_id="42")
    return u


def test_session_token_round_trip(issuer, user):
    claims = issuer.verify(issuer.issue_session(user, two_factor_verified=True))
    assert isinstance(claims, SessionClaims)
    assert claims.user_id == "user-1"
    assert claims.email == "a@x.com"
    assert claims.username == "alice"
    assert claims.providers == ("github",)
    assert claims.two_factor_verified is True
    assert claims.expires_at > datetime.now(timezone.utc)


def test_session_token_not_verified_by_default(issuer, user):
    claims = issuer.require_session(issuer.issue_session(user))
    assert claims.two_factor_verified is False


def test_temp_token_is_not_a_session(issuer, user):
    temp = issuer.issue_temp(user)
    assert isinstance(issuer.verify(temp), TempClaims)
    assert issuer.require_temp(temp).user_id == "user-1"
    with pytest.raises(InsufficientTrust):
        issuer.require_session(temp)


def test_session_token_is_not_a_temp_token(issuer, user):
    with pytest.raises(InsufficientTrust):
        issuer.require_temp(issuer.issue_session(user))


def test_link_intent_carries_profile(issuer):
    profile = NormalizedProfile(
        provider="github", provider_id="42", username="octocat", email=None, avatar="https://a/42"
    )
    token = issuer.issue_link_intent("github", profile, sealed_tokens="sealed")
    claims = issuer.require_link_intent(token)
    assert isinstance(claims, LinkIntentClaims)
    assert claims.provider == "github"
    assert claims.profile == profile
    assert claims.sealed_tokens == "sealed"
    with pytest.raises(InsufficientTrust):
        issuer.require_session(token)


def test_expired_token(user):
    issuer = TokenIssuer(make_settings(session_token_expire_minutes=-1))
    with pytest.raises(TokenExpired):
        issuer.verify(issuer.issue_session(user))


def test_wrong_signing_key(issuer, user):
    other = TokenIssuer(make_settings(jwt_secret_key="another-secret"))
    with pytest.raises(TokenSignatureInvalid):
        issuer.verify(other.issue_session(user))


def test_wrong_issuer(issuer, user):
    other = TokenIssuer(make_settings(jwt_issuer="someone-else"))
    with pytest.raises(TokenMalformed):
        issuer.verify(other.issue_session(user))


@pytest.mark.parametrize("token", ["", "garbage", "a.b.c"])
def test_garbage_tokens(issuer, token):
    with pytest.raises(TokenMalformed):
        issuer.verify(token)


def _forge(claims: dict) -> str:
    s = make_settings()
    now = datetime.now(timezone.utc)
    payload = {"iat": now, "exp": now + timedelta(minutes=5), "iss": s.jwt_issuer, **claims}
    return jwt.encode(payload, s.jwt_secret_key, algorithm=s.jwt_algorithm)


@pytest.mark.parametrize(
    "claims",
    [
        {"sub": "user-1", "type": "password_reset"},
        {"sub": "user-1", "temp2FA": False},
        {"email": "a@x.com"},
        {"type": "link_token", "provider": "github"},
    ],
)
def test_unknown_shapes_are_malformed(issuer, claims):
    with pytest.raises(TokenMalformed):
        issuer.verify(_forge(claims))
