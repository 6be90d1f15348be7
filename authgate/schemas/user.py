"""Schemas for users, local credentials and session tokens.

Wire names are camelCase (``twoFactorCode``, ``tempToken``); Python names stay
snake_case. Request fields default to empty so that missing values reach the
account service and come back as ``missing_field`` errors.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from authgate.store.base import ProviderLink, User


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, from_attributes=True
    )


# ── Requests ─────────────────────────────────────────────────────────────────

class RegisterRequest(CamelModel):
    email: str = ""
    password: str = ""
    username: str = ""


class LoginRequest(CamelModel):
    email: str = ""
    password: str = ""
    two_factor_code: str | None = None


class ProfileUpdate(CamelModel):
    # None = leave unchanged
    username: str | None = None
    email: str | None = None


class PasswordChange(CamelModel):
    current_password: str = ""
    new_password: str = ""


# ── Responses ────────────────────────────────────────────────────────────────

class LinkedProviderOut(CamelModel):
    provider: str
    provider_id: str
    username: str | None = None
    email: str | None = None
    avatar: str | None = None
    linked_at: datetime

    @classmethod
    def from_link(cls, link: ProviderLink) -> "LinkedProviderOut":
        return cls(
            provider=link.provider,
            provider_id=link.provider_id,
            username=link.display_name,
            email=link.email,
            avatar=link.avatar_url,
            linked_at=link.linked_at,
        )


class TwoFactorSummary(CamelModel):
    enabled: bool
    backup_codes_remaining: int


class UserOut(CamelModel):
    """Public view of a user. Never carries the password hash or 2FA secret."""

    id: str
    email: str
    username: str
    is_active: bool
    email_verified: bool
    created_at: datetime
    last_login_at: datetime | None = None
    providers: list[LinkedProviderOut] = []
    two_factor: TwoFactorSummary

    @classmethod
    def from_user(cls, user: User) -> "UserOut":
        return cls(
            id=user.id,
            email=user.email,
            username=user.username,
            is_active=user.is_active,
            email_verified=user.email_verified,
            created_at=user.created_at,
            last_login_at=user.last_login_at,
            providers=[
                LinkedProviderOut.from_link(user.providers[name])
                for name in user.provider_names()
            ],
            two_factor=TwoFactorSummary(
                enabled=user.two_factor.enabled,
                backup_codes_remaining=user.two_factor.backup_codes_remaining,
            ),
        )


class AuthResponse(CamelModel):
    """Result of register, login, 2FA completion and credential linking.

    Either ``token`` is set (full session), or ``requires_two_factor`` is true
    and ``temp_token`` must be exchanged at ``/auth/2fa/verify``.
    """

    user: UserOut | None = None
    token: str | None = None
    requires_two_factor: bool = False
    temp_token: str | None = None
    message: str


class UserResponse(CamelModel):
    user: UserOut
    message: str | None = None


class ValidateResponse(CamelModel):
    valid: bool
    user: dict[str, Any]


class MessageResponse(CamelModel):
    message: str


class LogoutResponse(CamelModel):
    message: str
    revoked: bool | None = None
    reason: str | None = None


class RevokeResponse(CamelModel):
    success: bool
    message: str


class UserList(CamelModel):
    total: int
    items: list[UserOut]
