"""FastAPI dependency providers."""

from __future__ import annotations

import hmac
from typing import Annotated

from fastapi import Depends, Header, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from authgate.core.errors import MissingToken, NotFoundError
from authgate.core.tokens import SessionClaims
from authgate.services.accounts import AccountService
from authgate.services.authority import Authority
from authgate.store.base import User

bearer_scheme = HTTPBearer(auto_error=False)


def get_authority(request: Request) -> Authority:
    """Return the authority built by the application factory."""
    return request.app.state.authority


def get_accounts(authority: Annotated[Authority, Depends(get_authority)]) -> AccountService:
    return authority.accounts


async def get_optional_token(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
) -> str | None:
    if credentials is None or not credentials.credentials:
        return None
    return credentials.credentials


async def get_bearer_token(
    token: Annotated[str | None, Depends(get_optional_token)],
) -> str:
    """Raise 401 if no ``Authorization: Bearer`` header was sent."""
    if token is None:
        raise MissingToken()
    return token


class CurrentSession:
    """A verified full session: temp and link tokens are rejected."""

    def __init__(self, claims: SessionClaims, user: User) -> None:
        self.claims = claims
        self.user = user

    @property
    def user_id(self) -> str:
        return self.user.id


async def get_current_session(
    token: Annotated[str, Depends(get_bearer_token)],
    accounts: Annotated[AccountService, Depends(get_accounts)],
) -> CurrentSession:
    claims, user = await accounts.session_user(token)
    return CurrentSession(claims, user)


async def require_admin_key(
    authority: Annotated[Authority, Depends(get_authority)],
    x_admin_key: Annotated[str | None, Header()] = None,
) -> None:
    """Guard for the admin routes. They do not exist while no key is configured."""
    expected = authority.settings.admin_api_key
    if not expected:
        raise NotFoundError()
    if not x_admin_key or not hmac.compare_digest(x_admin_key.encode(), expected.encode()):
        raise MissingToken("Admin key required")


AuthorityDep = Annotated[Authority, Depends(get_authority)]
AccountsDep = Annotated[AccountService, Depends(get_accounts)]
SessionDep = Annotated[CurrentSession, Depends(get_current_session)]
