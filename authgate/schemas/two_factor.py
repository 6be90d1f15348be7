"""Schemas for the second-factor endpoints."""

from __future__ import annotations

from authgate.schemas.user import CamelModel


class SetupResponse(CamelModel):
    secret: str
    otpauth_uri: str
    qr_code: str
    manual_entry_key: str


class VerifySetupRequest(CamelModel):
    # Historical name: the 6-digit code from the authenticator app
    token: str = ""


class VerifySetupResponse(CamelModel):
    enabled: bool = True
    backup_codes: list[str]
    message: str


class VerifyRequest(CamelModel):
    temp_token: str = ""
    two_factor_code: str = ""


class ReproveRequest(CamelModel):
    current_password: str = ""
    two_factor_code: str = ""


class BackupCodesResponse(CamelModel):
    backup_codes: list[str]
    message: str


class StatusResponse(CamelModel):
    enabled: bool
    backup_codes_remaining: int
