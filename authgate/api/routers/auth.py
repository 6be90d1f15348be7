"""Auth router — register, login, session checks, profile, logout."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from authgate.api.dependencies import (
    AccountsDep,
    SessionDep,
    get_bearer_token,
    get_optional_token,
)
from authgate.core.limiter import limiter
from authgate.schemas.user import (
    AuthResponse,
    LoginRequest,
    LogoutResponse,
    MessageResponse,
    PasswordChange,
    ProfileUpdate,
    RegisterRequest,
    RevokeResponse,
    UserOut,
    UserResponse,
    ValidateResponse,
)

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/register", response_model=AuthResponse, response_model_exclude_none=True)
@limiter.limit("10/minute")
async def register(request: Request, body: RegisterRequest, accounts: AccountsDep) -> AuthResponse:
    """Create a local account and return a session token."""
    result = await accounts.register(body.email, body.password, body.username)
    return AuthResponse(
        user=UserOut.from_user(result.user),
        token=result.token,
        message="User registered successfully",
    )


@router.post("/login", response_model=AuthResponse, response_model_exclude_none=True)
@limiter.limit("10/minute")
async def login(request: Request, body: LoginRequest, accounts: AccountsDep) -> AuthResponse:
    """Authenticate with email + password.

    Users with 2FA enabled either send ``twoFactorCode`` along, or receive a
    ``tempToken`` to complete at ``/auth/2fa/verify``.
    """
    result = await accounts.login(body.email, body.password, body.two_factor_code)
    if result.requires_two_factor:
        return AuthResponse(
            requires_two_factor=True,
            temp_token=result.temp_token,
            message="Please provide your 2FA code",
        )
    return AuthResponse(
        user=UserOut.from_user(result.user),
        token=result.token,
        message="Login successful",
    )


@router.get("/validate", response_model=ValidateResponse)
async def validate(session: SessionDep) -> ValidateResponse:
    return ValidateResponse(valid=True, user=session.claims.raw)


@router.get("/me", response_model=UserResponse, response_model_exclude_none=True)
async def get_me(session: SessionDep) -> UserResponse:
    """Return the authenticated user's profile."""
    return UserResponse(user=UserOut.from_user(session.user))


@router.post("/logout", response_model=LogoutResponse, response_model_exclude_none=True)
async def logout(
    accounts: AccountsDep,
    token: str | None = Depends(get_optional_token),
) -> LogoutResponse:
    """Always succeeds; provider tokens are revoked when a session token is sent."""
    result = await accounts.logout(token)
    if result is None:
        return LogoutResponse(message="Logged out successfully")
    if result.revoked:
        return LogoutResponse(
            message="Logged out successfully and tokens revoked", revoked=True
        )
    return LogoutResponse(
        message="Logged out successfully but token revocation failed",
        revoked=False,
        reason=result.reason,
    )


@router.post("/revoke", response_model=RevokeResponse)
async def revoke(
    accounts: AccountsDep,
    token: str = Depends(get_bearer_token),
) -> RevokeResponse:
    result = await accounts.revoke(token)
    if result.revoked:
        return RevokeResponse(success=True, message="Tokens revoked successfully")
    return RevokeResponse(
        success=False, message=f"Token revocation failed: {result.reason}"
    )


@router.put("/profile", response_model=UserResponse, response_model_exclude_none=True)
async def update_profile(
    body: ProfileUpdate, session: SessionDep, accounts: AccountsDep
) -> UserResponse:
    user = await accounts.update_profile(
        session.user_id, username=body.username, email=body.email
    )
    return UserResponse(user=UserOut.from_user(user), message="Profile updated successfully")


@router.put("/password", response_model=MessageResponse)
async def change_password(
    body: PasswordChange, session: SessionDep, accounts: AccountsDep
) -> MessageResponse:
    await accounts.change_password(session.user_id, body.current_password, body.new_password)
    return MessageResponse(message="Password changed successfully")
