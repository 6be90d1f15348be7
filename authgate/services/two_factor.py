"""Second factor: TOTP enrollment and verification, single-use backup codes.

Per-user lifecycle::

    DISABLED ──enroll──▶ ENROLLING ──confirm_enrollment──▶ ENABLED
        ▲                                                     │
        └────────── disable (password + valid code) ──────────┘

Backup codes are 8 digits; TOTP codes are 6. ``verify`` tells them apart by
length. Only SHA-256 digests of backup codes are stored; the plaintext codes
are returned once, when generated.
"""

from __future__ import annotations

import base64
import hashlib
import io
import secrets
from dataclasses import dataclass

import pyotp
import qrcode

from authgate.core.config import Settings, get_settings
from authgate.core.errors import (
    AlreadyEnabled,
    InvalidBackupCode,
    InvalidCode,
    InvalidCredentials,
    MissingField,
    NotEnrolling,
    TwoFactorNotEnabled,
    UserNotFound,
)
from authgate.core.logging import get_logger
from authgate.core.passwords import verify_password_async
from authgate.store.base import IdentityStore, User

logger = get_logger(__name__)

BACKUP_CODE_LENGTH = 8
TOTP_SECRET_LENGTH = 32

METHOD_TOTP = "totp"
METHOD_BACKUP_CODE = "backup_code"


def digest_backup_code(code: str) -> str:
    return hashlib.sha256(code.encode()).hexdigest()


def is_backup_code(code: str) -> bool:
    return len(code) == BACKUP_CODE_LENGTH and code.isdigit()


@dataclass
class Enrollment:
    secret: str
    otpauth_uri: str
    qr_code: str            # data:image/png;base64,...
    manual_entry_key: str


@dataclass
class TwoFactorStatus:
    enabled: bool
    backup_codes_remaining: int


class SecondFactor:
    def __init__(self, store: IdentityStore, settings: Settings | None = None) -> None:
        self.store = store
        self.settings = settings or get_settings()

    async def _user(self, user_id: str) -> User:
        user = await self.store.get_by_id(user_id)
        if user is None:
            raise UserNotFound()
        return user

    @staticmethod
    def requires_two_factor(user: User) -> bool:
        return user.two_factor.enabled

    def generate_backup_codes(self) -> list[str]:
        codes: list[str] = []
        while len(codes) < self.settings.backup_code_count:
            code = str(secrets.randbelow(9 * 10 ** (BACKUP_CODE_LENGTH - 1)) + 10 ** (BACKUP_CODE_LENGTH - 1))
            if code not in codes:
                codes.append(code)
        return codes

    def _totp_matches(self, secret: str, code: str) -> bool:
        return pyotp.TOTP(secret).verify(code, valid_window=self.settings.totp_valid_window)

    @staticmethod
    def _qr_data_uri(uri: str) -> str:
        img = qrcode.make(uri)
        buf = io.BytesIO()
        img.save(buf, format="PNG")
        return "data:image/png;base64," + base64.b64encode(buf.getvalue()).decode("ascii")

    # ── Enrollment ───────────────────────────────────────────────────────────

    async def enroll(self, user_id: str) -> Enrollment:
        user = await self._user(user_id)
        if user.two_factor.enabled:
            raise AlreadyEnabled()

        secret = pyotp.random_base32(length=TOTP_SECRET_LENGTH)
        await self.store.begin_two_factor(user_id, secret)

        uri = pyotp.TOTP(secret).provisioning_uri(
            name=user.email, issuer_name=self.settings.totp_issuer
        )
        logger.info("2FA enrollment started", user_id=user_id)
        return Enrollment(
            secret=secret,
            otpauth_uri=uri,
            qr_code=self._qr_data_uri(uri),
            manual_entry_key=secret,
        )

    async def confirm_enrollment(self, user_id: str, code: str) -> list[str]:
        """Enable 2FA after a valid TOTP code. Returns the plaintext backup codes."""
        if not code:
            raise MissingField("token")
        user = await self._user(user_id)
        if user.two_factor.enabled:
            raise AlreadyEnabled()
        secret = user.two_factor.secret
        if secret is None:
            raise NotEnrolling()
        if not self._totp_matches(secret, code.strip()):
            raise InvalidCode()

        codes = self.generate_backup_codes()
        await self.store.enable_two_factor(
            user_id, secret, [digest_backup_code(c) for c in codes]
        )
        logger.info("2FA enabled", user_id=user_id)
        return codes

    # ── Verification ─────────────────────────────────────────────────────────

    async def verify(self, user_id: str, code: str) -> str:
        """Check a TOTP or backup code. Returns the method that matched."""
        user = await self._user(user_id)
        if not user.two_factor.enabled or user.two_factor.secret is None:
            raise TwoFactorNotEnabled()

        code = (code or "").strip()
        if is_backup_code(code):
            if not await self.store.consume_backup_code(user_id, digest_backup_code(code)):
                logger.warning("Backup code rejected", user_id=user_id)
                raise InvalidBackupCode()
            logger.info("Backup code consumed", user_id=user_id)
            return METHOD_BACKUP_CODE

        if not self._totp_matches(user.two_factor.secret, code):
            logger.warning("TOTP rejected", user_id=user_id)
            raise InvalidCode()
        return METHOD_TOTP

    async def _reprove(self, user_id: str, password: str, code: str) -> None:
        """Require the current password and a valid second factor."""
        if not password:
            raise MissingField("currentPassword")
        if not code:
            raise MissingField("twoFactorCode")
        user = await self._user(user_id)
        if not user.two_factor.enabled:
            raise TwoFactorNotEnabled()
        if not await verify_password_async(password, user.password_hash):
            raise InvalidCredentials("Invalid password")
        await self.verify(user_id, code)

    async def disable(self, user_id: str, password: str, code: str) -> None:
        await self._reprove(user_id, password, code)
        await self.store.clear_two_factor(user_id)
        logger.info("2FA disabled", user_id=user_id)

    async def regenerate_backup_codes(self, user_id: str, password: str, code: str) -> list[str]:
        await self._reprove(user_id, password, code)
        codes = self.generate_backup_codes()
        await self.store.replace_backup_codes(user_id, [digest_backup_code(c) for c in codes])
        logger.info("Backup codes regenerated", user_id=user_id)
        return codes

    async def status(self, user_id: str) -> TwoFactorStatus:
        user = await self._user(user_id)
        return TwoFactorStatus(
            enabled=user.two_factor.enabled,
            backup_codes_remaining=user.two_factor.backup_codes_remaining,
        )
