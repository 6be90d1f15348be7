"""Two-factor router — TOTP enrollment, login completion, backup codes."""

from __future__ import annotations

from fastapi import APIRouter, Request

from authgate.api.dependencies import AccountsDep, AuthorityDep, SessionDep
from authgate.core.limiter import limiter
from authgate.schemas.two_factor import (
    BackupCodesResponse,
    ReproveRequest,
    SetupResponse,
    StatusResponse,
    VerifyRequest,
    VerifySetupRequest,
    VerifySetupResponse,
)
from authgate.schemas.user import AuthResponse, MessageResponse, UserOut

router = APIRouter(prefix="/auth/2fa", tags=["2fa"])


@router.post("/setup", response_model=SetupResponse)
async def setup(session: SessionDep, authority: AuthorityDep) -> SetupResponse:
    """Start enrollment: a fresh secret, its otpauth URI and a QR code."""
    enrollment = await authority.second_factor.enroll(session.user_id)
    return SetupResponse(
        secret=enrollment.secret,
        otpauth_uri=enrollment.otpauth_uri,
        qr_code=enrollment.qr_code,
        manual_entry_key=enrollment.manual_entry_key,
    )


@router.post("/verify-setup", response_model=VerifySetupResponse)
async def verify_setup(
    body: VerifySetupRequest, session: SessionDep, authority: AuthorityDep
) -> VerifySetupResponse:
    codes = await authority.second_factor.confirm_enrollment(session.user_id, body.token)
    return VerifySetupResponse(
        backup_codes=codes,
        message="2FA enabled successfully. Save these backup codes in a secure location.",
    )


@router.post("/verify", response_model=AuthResponse, response_model_exclude_none=True)
@limiter.limit("10/minute")
async def verify(request: Request, body: VerifyRequest, accounts: AccountsDep) -> AuthResponse:
    """Exchange a temp token plus a TOTP or backup code for a full session."""
    result = await accounts.complete_two_factor(body.temp_token, body.two_factor_code)
    return AuthResponse(
        user=UserOut.from_user(result.user),
        token=result.token,
        message="Login successful",
    )


@router.get("/status", response_model=StatusResponse)
async def status(session: SessionDep, authority: AuthorityDep) -> StatusResponse:
    state = await authority.second_factor.status(session.user_id)
    return StatusResponse(
        enabled=state.enabled, backup_codes_remaining=state.backup_codes_remaining
    )


@router.post("/disable", response_model=MessageResponse)
async def disable(
    body: ReproveRequest, session: SessionDep, authority: AuthorityDep
) -> MessageResponse:
    await authority.second_factor.disable(
        session.user_id, body.current_password, body.two_factor_code
    )
    return MessageResponse(message="2FA disabled successfully")


@router.post("/regenerate-backup-codes", response_model=BackupCodesResponse)
async def regenerate_backup_codes(
    body: ReproveRequest, session: SessionDep, authority: AuthorityDep
) -> BackupCodesResponse:
    codes = await authority.second_factor.regenerate_backup_codes(
        session.user_id, body.current_password, body.two_factor_code
    )
    return BackupCodesResponse(
        backup_codes=codes,
        message="New backup codes generated. Previous codes are no longer valid.",
    )
