"""Local-credential account flows.

Register, password login (with the 2FA hand-off through a temp token),
profile and password changes, provider management, and logout/revoke. The
OAuth callback lives in ``authgate.services.linking``.
"""

from __future__ import annotations

from dataclasses import dataclass

from authgate.core.config import Settings, get_settings
from authgate.core.errors import (
    AccountDisabled,
    AuthenticationError,
    DuplicateEmail,
    InvalidCredentials,
    MissingField,
    ProviderAlreadyLinkedElsewhere,
    TwoFactorRequired,
    UserNotFound,
    ValidationError,
    WeakPassword,
)
from authgate.core.logging import get_logger
from authgate.core.passwords import hash_password_async, verify_password_async
from authgate.core.tokens import SessionClaims, TokenIssuer
from authgate.providers.base import NormalizedProfile
from authgate.services.oauth import OAuthBroker, RevocationResult
from authgate.services.two_factor import SecondFactor
from authgate.store.base import IdentityStore, ProviderLink, User

logger = get_logger(__name__)


@dataclass
class AuthResult:
    user: User
    token: str | None = None
    temp_token: str | None = None
    linked: str | None = None

    @property
    def requires_two_factor(self) -> bool:
        return self.temp_token is not None


class AccountService:
    def __init__(
        self,
        store: IdentityStore,
        tokens: TokenIssuer,
        second_factor: SecondFactor,
        broker: OAuthBroker,
        settings: Settings | None = None,
    ) -> None:
        self.store = store
        self.tokens = tokens
        self.second_factor = second_factor
        self.broker = broker
        self.settings = settings or get_settings()

    # ── Validation ───────────────────────────────────────────────────────────

    def _check_password(self, password: str, field: str = "password") -> None:
        if not password:
            raise MissingField(field)
        if len(password) < self.settings.password_min_length:
            raise WeakPassword(
                f"Password must be at least {self.settings.password_min_length} characters long"
            )

    @staticmethod
    def _check_email(email: str) -> None:
        if not email or not email.strip():
            raise MissingField("email")
        if "@" not in email:
            raise ValidationError("Invalid email format")

    async def _user(self, user_id: str) -> User:
        user = await self.store.get_by_id(user_id)
        if user is None:
            raise UserNotFound()
        return user

    # ── Registration & login ─────────────────────────────────────────────────

    async def register(self, email: str, password: str, username: str) -> AuthResult:
        self._check_email(email)
        if not username or not username.strip():
            raise MissingField("username")
        self._check_password(password)

        if await self.store.get_by_email(email) is not None:
            raise DuplicateEmail()

        password_hash = await hash_password_async(password, self.settings.bcrypt_rounds)
        user = await self.store.create_user(email, username, password_hash)
        logger.info("User registered", user_id=user.id)
        return AuthResult(user=user, token=self.tokens.issue_session(user))

    async def authenticate(self, email: str, password: str) -> User:
        """Check email/password. Raises InvalidCredentials without saying which part failed."""
        if not email or not password:
            raise InvalidCredentials()
        user = await self.store.get_by_email(email)
        if user is None or not user.is_active:
            raise InvalidCredentials()
        if not await verify_password_async(password, user.password_hash):
            logger.info("Password rejected", user_id=user.id)
            raise InvalidCredentials()
        return user

    async def _finish_login(self, user: User, two_factor_verified: bool) -> AuthResult:
        await self.store.record_login(user.id)
        user = await self._user(user.id)
        logger.info("Login succeeded", user_id=user.id, two_factor=two_factor_verified)
        return AuthResult(
            user=user, token=self.tokens.issue_session(user, two_factor_verified)
        )

    async def login(
        self, email: str, password: str, two_factor_code: str | None = None
    ) -> AuthResult:
        if not email:
            raise MissingField("email")
        if not password:
            raise MissingField("password")
        user = await self.authenticate(email, password)

        if not self.second_factor.requires_two_factor(user):
            return await self._finish_login(user, two_factor_verified=False)

        if not two_factor_code:
            logger.info("Login awaiting second factor", user_id=user.id)
            return AuthResult(user=user, temp_token=self.tokens.issue_temp(user))

        await self.second_factor.verify(user.id, two_factor_code)
        return await self._finish_login(user, two_factor_verified=True)

    async def complete_two_factor(self, temp_token: str, code: str) -> AuthResult:
        if not temp_token or not code:
            raise MissingField("tempToken" if not temp_token else "twoFactorCode")
        claims = self.tokens.require_temp(temp_token)
        user = await self._user(claims.user_id)
        if not user.is_active:
            raise AccountDisabled()
        await self.second_factor.verify(user.id, code)
        return await self._finish_login(user, two_factor_verified=True)

    async def session_user(self, token: str) -> tuple[SessionClaims, User]:
        claims = self.tokens.require_session(token)
        user = await self._user(claims.user_id)
        if not user.is_active:
            raise AccountDisabled()
        return claims, user

    # ── Profile ──────────────────────────────────────────────────────────────

    async def update_profile(
        self, user_id: str, *, username: str | None = None, email: str | None = None
    ) -> User:
        if email is not None:
            self._check_email(email)
        user = await self.store.update_profile(user_id, email=email, username=username)
        logger.info("Profile updated", user_id=user_id)
        return user

    async def change_password(self, user_id: str, current: str, new: str) -> None:
        if not current:
            raise MissingField("currentPassword")
        self._check_password(new, field="newPassword")
        user = await self._user(user_id)
        if not await verify_password_async(current, user.password_hash):
            raise InvalidCredentials("Current password is incorrect")
        new_hash = await hash_password_async(new, self.settings.bcrypt_rounds)
        await self.store.change_password(user_id, new_hash)
        logger.info("Password changed", user_id=user_id)

    # ── Provider links ───────────────────────────────────────────────────────

    async def linked_providers(self, user_id: str) -> list[ProviderLink]:
        user = await self._user(user_id)
        return [user.providers[name] for name in user.provider_names()]

    def link_info(self, link_token: str) -> NormalizedProfile:
        if not link_token:
            raise MissingField("linkToken")
        return self.tokens.require_link_intent(link_token).profile

    async def link_with_credentials(
        self,
        link_token: str,
        email: str,
        password: str,
        two_factor_code: str | None = None,
    ) -> AuthResult:
        """Attach the provider carried by a link token to a local account."""
        for field, value in (("linkToken", link_token), ("email", email), ("password", password)):
            if not value:
                raise MissingField(field)
        claims = self.tokens.require_link_intent(link_token)
        user = await self.authenticate(email, password)

        verified = False
        if self.second_factor.requires_two_factor(user):
            if not two_factor_code:
                raise TwoFactorRequired()
            await self.second_factor.verify(user.id, two_factor_code)
            verified = True

        owner = await self.store.get_by_provider(claims.provider, claims.profile.provider_id)
        if owner is not None and owner.id != user.id:
            raise ProviderAlreadyLinkedElsewhere()
        user = await self.store.link_provider(user.id, claims.profile.to_link())

        if claims.sealed_tokens:
            try:
                provider_tokens = self.broker.open_tokens(claims.sealed_tokens)
            except (ValueError, KeyError):
                logger.warning("Link token carried unreadable provider tokens", user_id=user.id)
            else:
                await self.broker.store_tokens(user.id, claims.provider, provider_tokens)

        logger.info("Provider linked with credentials", user_id=user.id, provider=claims.provider)
        return AuthResult(
            user=user, token=self.tokens.issue_session(user, verified), linked=claims.provider
        )

    async def unlink_provider(self, user_id: str, provider: str) -> User:
        if not provider:
            raise MissingField("provider")
        user = await self.store.unlink_provider(user_id, provider)
        await self.broker.forget(user_id, provider)
        return user

    # ── Logout & admin ───────────────────────────────────────────────────────

    async def logout(self, token: str | None) -> RevocationResult | None:
        """Revoke provider tokens for the bearer of *token*. Never fails."""
        if not token:
            return None
        try:
            claims = self.tokens.require_session(token)
        except AuthenticationError as exc:
            logger.info("Logout with unusable token", error=type(exc).__name__)
            return RevocationResult(revoked=False, reason="Invalid token")
        return await self.broker.revoke(claims.user_id)

    async def revoke(self, token: str) -> RevocationResult:
        claims = self.tokens.require_session(token)
        return await self.broker.revoke(claims.user_id)

    async def delete_user(self, user_id: str) -> None:
        await self.store.delete_user(user_id)
        await self.broker.forget_all(user_id)
