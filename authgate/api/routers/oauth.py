"""OAuth router — provider redirects, callback, and account linking.

The flow start sets two cookies: ``oauth_state`` (CSRF state) and, for a
signed-in caller, ``oauth_link_user``. The callback clears both whatever
the outcome and redirects to ``oauth_callback_url`` with the result in the
query string.
"""

from __future__ import annotations

from fastapi import APIRouter, Cookie, Depends, Request
from fastapi.responses import RedirectResponse

from authgate.api.dependencies import (
    AccountsDep,
    AuthorityDep,
    SessionDep,
    get_optional_token,
)
from authgate.core.limiter import limiter
from authgate.schemas.provider import (
    LinkedProvidersResponse,
    LinkInfoRequest,
    LinkInfoResponse,
    LinkProviderRequest,
    ProviderList,
    ProviderOut,
    UnlinkProviderRequest,
)
from authgate.schemas.user import AuthResponse, LinkedProviderOut, UserOut, UserResponse

router = APIRouter(prefix="/auth", tags=["oauth"])

STATE_COOKIE = "oauth_state"
LINK_USER_COOKIE = "oauth_link_user"


def _cookie_options(secure: bool) -> dict:
    return {"httponly": True, "secure": secure, "samesite": "lax", "path": "/"}


@router.get("/providers", response_model=ProviderList)
async def list_providers(authority: AuthorityDep) -> ProviderList:
    """Providers with client credentials configured."""
    items = [ProviderOut.from_metadata(meta) for meta in authority.broker.configured_providers()]
    return ProviderList(total=len(items), items=items)


@router.get("/oauth/{provider}")
async def start_oauth(
    provider: str,
    authority: AuthorityDep,
    header_token: str | None = Depends(get_optional_token),
    token: str | None = None,
) -> RedirectResponse:
    """Redirect to the provider. A session token (header or ``?token=``) starts a link."""
    auth_url, pending = authority.callbacks.start(provider, header_token or token)

    response = RedirectResponse(auth_url, status_code=302)
    options = _cookie_options(authority.settings.cookie_secure)
    max_age = authority.settings.oauth_state_ttl_seconds
    response.set_cookie(STATE_COOKIE, pending.state, max_age=max_age, **options)
    if pending.link_user_id:
        response.set_cookie(LINK_USER_COOKIE, pending.link_user_id, max_age=max_age, **options)
    return response


@router.get("/oauth/{provider}/callback")
async def oauth_callback(
    provider: str,
    authority: AuthorityDep,
    code: str | None = None,
    state: str | None = None,
    error: str | None = None,
    oauth_state: str | None = Cookie(default=None),
    oauth_link_user: str | None = Cookie(default=None),
) -> RedirectResponse:
    outcome = await authority.callbacks.handle(
        provider,
        code=code,
        state=state,
        error=error,
        cookie_state=oauth_state,
        cookie_link_user_id=oauth_link_user,
    )

    response = RedirectResponse(
        outcome.redirect_url(authority.settings.oauth_callback_url), status_code=302
    )
    options = _cookie_options(authority.settings.cookie_secure)
    response.delete_cookie(STATE_COOKIE, **options)
    response.delete_cookie(LINK_USER_COOKIE, **options)
    return response


# ── Linking ──────────────────────────────────────────────────────────────────

@router.get("/linked-providers", response_model=LinkedProvidersResponse)
async def linked_providers(session: SessionDep, accounts: AccountsDep) -> LinkedProvidersResponse:
    links = await accounts.linked_providers(session.user_id)
    return LinkedProvidersResponse(providers=[LinkedProviderOut.from_link(link) for link in links])


@router.post("/link-info", response_model=LinkInfoResponse)
async def link_info(body: LinkInfoRequest, accounts: AccountsDep) -> LinkInfoResponse:
    """Describe the provider account carried by a link token."""
    return LinkInfoResponse.from_profile(accounts.link_info(body.link_token))


@router.post("/link-provider", response_model=AuthResponse, response_model_exclude_none=True)
@limiter.limit("10/minute")
async def link_provider(
    request: Request, body: LinkProviderRequest, accounts: AccountsDep
) -> AuthResponse:
    """Attach a link token's provider account to the local account proven by email + password."""
    result = await accounts.link_with_credentials(
        body.link_token, body.email, body.password, body.two_factor_code
    )
    return AuthResponse(
        user=UserOut.from_user(result.user),
        token=result.token,
        message=f"{result.linked} account linked successfully",
    )


@router.post("/unlink-provider", response_model=UserResponse, response_model_exclude_none=True)
async def unlink_provider(
    body: UnlinkProviderRequest, session: SessionDep, accounts: AccountsDep
) -> UserResponse:
    user = await accounts.unlink_provider(session.user_id, body.provider)
    return UserResponse(
        user=UserOut.from_user(user),
        message=f"{body.provider} account unlinked successfully",
    )
