"""In-memory identity store — the reference ``IdentityStore`` implementation.

Four maps are kept in step with each other:

    _users       user id              → User
    _by_email    normalized email     → user id
    _by_username casefolded username  → user id
    _by_provider (provider, ext. id)  → user id   (reverse index of User.providers)

Every mutation takes the ``KeyedLock`` keys it affects, validates, and only then
writes; nothing awaits between the first write and the last one.
"""

from __future__ import annotations

import copy
import hmac
import uuid

from authgate.core.errors import (
    AlreadyEnabled,
    DuplicateEmail,
    DuplicateUsername,
    EmailInUse,
    MissingField,
    NotEnrolling,
    ProviderAlreadyLinkedElsewhere,
    ProviderNotLinked,
    UserNotFound,
)
from authgate.core.logging import get_logger
from authgate.store.base import (
    BackupCode,
    IdentityStore,
    ProviderLink,
    ProviderTokenRecord,
    ProviderTokenStore,
    TwoFactorState,
    User,
    normalize_email,
    username_key,
    utcnow,
)
from authgate.store.locks import KeyedLock

logger = get_logger(__name__)


def _user_key(user_id: str) -> str:
    return f"user:{user_id}"


def _provider_key(provider: str, provider_id: str) -> str:
    return f"provider:{provider}:{provider_id}"


class MemoryIdentityStore(IdentityStore):
    def __init__(self) -> None:
        self._users: dict[str, User] = {}
        self._by_email: dict[str, str] = {}
        self._by_username: dict[str, str] = {}
        self._by_provider: dict[tuple[str, str], str] = {}
        self._locks = KeyedLock()

    # ── Helpers ──────────────────────────────────────────────────────────────

    def _get(self, user_id: str) -> User:
        user = self._users.get(user_id)
        if user is None:
            raise UserNotFound()
        return user

    def _new_id(self) -> str:
        while True:
            user_id = str(uuid.uuid4())
            if user_id not in self._users:
                return user_id

    @staticmethod
    def _snapshot(user: User | None) -> User | None:
        return copy.deepcopy(user) if user is not None else None

    # ── Users ────────────────────────────────────────────────────────────────

    async def create_user(self, email: str, username: str, password_hash: str) -> User:
        for name, value in (("email", email), ("username", username), ("password", password_hash)):
            if not value or not value.strip():
                raise MissingField(name)

        email_norm = normalize_email(email)
        uname_key = username_key(username)

        async with self._locks.hold(f"email:{email_norm}", f"username:{uname_key}"):
            if email_norm in self._by_email:
                raise DuplicateEmail()
            if uname_key in self._by_username:
                raise DuplicateUsername()

            user = User(
                id=self._new_id(),
                email=email_norm,
                username=username.strip(),
                password_hash=password_hash,
            )
            self._users[user.id] = user
            self._by_email[email_norm] = user.id
            self._by_username[uname_key] = user.id

        logger.info("User created", user_id=user.id)
        return self._snapshot(user)

    async def get_by_id(self, user_id: str) -> User | None:
        return self._snapshot(self._users.get(user_id))

    async def get_by_email(self, email: str) -> User | None:
        user_id = self._by_email.get(normalize_email(email))
        return self._snapshot(self._users.get(user_id)) if user_id else None

    async def get_by_username(self, username: str) -> User | None:
        user_id = self._by_username.get(username_key(username))
        return self._snapshot(self._users.get(user_id)) if user_id else None

    async def list_users(self) -> list[User]:
        users = sorted(self._users.values(), key=lambda u: u.created_at)
        return [copy.deepcopy(u) for u in users]

    async def update_profile(
        self, user_id: str, *, email: str | None = None, username: str | None = None
    ) -> User:
        keys = [_user_key(user_id)]
        email_norm = normalize_email(email) if email is not None else None
        uname_key = username_key(username) if username is not None else None
        if email_norm is not None:
            if not email_norm:
                raise MissingField("email")
            keys.append(f"email:{email_norm}")
        if uname_key is not None:
            if not uname_key:
                raise MissingField("username")
            keys.append(f"username:{uname_key}")

        async with self._locks.hold(*keys):
            user = self._get(user_id)

            email_changes = email_norm is not None and email_norm != user.email
            username_changes = uname_key is not None and username.strip() != user.username

            if email_changes and self._by_email.get(email_norm, user_id) != user_id:
                raise EmailInUse()
            if username_changes and self._by_username.get(uname_key, user_id) != user_id:
                raise DuplicateUsername()

            if email_changes:
                del self._by_email[user.email]
                self._by_email[email_norm] = user_id
                user.email = email_norm
                user.email_verified = False
            if username_changes:
                del self._by_username[username_key(user.username)]
                self._by_username[uname_key] = user_id
                user.username = username.strip()

        return self._snapshot(user)

    async def change_password(self, user_id: str, password_hash: str) -> None:
        if not password_hash:
            raise MissingField("password")
        async with self._locks.hold(_user_key(user_id)):
            self._get(user_id).password_hash = password_hash

    async def record_login(self, user_id: str) -> None:
        async with self._locks.hold(_user_key(user_id)):
            self._get(user_id).last_login_at = utcnow()

    async def delete_user(self, user_id: str) -> None:
        async with self._locks.hold(_user_key(user_id)):
            user = self._get(user_id)
            for link in user.providers.values():
                self._by_provider.pop((link.provider, link.provider_id), None)
            self._by_email.pop(user.email, None)
            self._by_username.pop(username_key(user.username), None)
            del self._users[user_id]
        logger.info("User deleted", user_id=user_id)

    # ── Provider links ───────────────────────────────────────────────────────

    async def get_by_provider(self, provider: str, provider_id: str) -> User | None:
        user_id = self._by_provider.get((provider, str(provider_id)))
        return self._snapshot(self._users.get(user_id)) if user_id else None

    async def link_provider(self, user_id: str, link: ProviderLink) -> User:
        pair = (link.provider, str(link.provider_id))
        async with self._locks.hold(_user_key(user_id), _provider_key(*pair)):
            owner = self._by_provider.get(pair)
            if owner is not None and owner != user_id:
                raise ProviderAlreadyLinkedElsewhere()
            user = self._get(user_id)

            previous = user.providers.get(link.provider)
            if previous is not None and previous.provider_id != pair[1]:
                # Same provider, different external account: the old pair is freed
                self._by_provider.pop((previous.provider, previous.provider_id), None)

            stored = copy.deepcopy(link)
            stored.provider_id = pair[1]
            if previous is not None and previous.provider_id == pair[1]:
                stored.linked_at = previous.linked_at
            user.providers[link.provider] = stored
            self._by_provider[pair] = user_id

        logger.info("Provider linked", user_id=user_id, provider=link.provider)
        return self._snapshot(user)

    async def unlink_provider(self, user_id: str, provider: str) -> User:
        async with self._locks.hold(_user_key(user_id)):
            user = self._get(user_id)
            link = user.providers.get(provider)
            if link is None:
                raise ProviderNotLinked()
            del user.providers[provider]
            self._by_provider.pop((link.provider, link.provider_id), None)

        logger.info("Provider unlinked", user_id=user_id, provider=provider)
        return self._snapshot(user)

    # ── Second factor ────────────────────────────────────────────────────────

    async def begin_two_factor(self, user_id: str, secret: str) -> None:
        async with self._locks.hold(_user_key(user_id)):
            user = self._get(user_id)
            if user.two_factor.enabled:
                raise AlreadyEnabled()
            user.two_factor = TwoFactorState(secret=secret)

    async def enable_two_factor(
        self, user_id: str, secret: str, code_digests: list[str]
    ) -> None:
        async with self._locks.hold(_user_key(user_id)):
            user = self._get(user_id)
            if user.two_factor.enabled:
                raise AlreadyEnabled()
            if user.two_factor.secret is None or not hmac.compare_digest(
                user.two_factor.secret, secret
            ):
                # Enrollment restarted between verification and this call
                raise NotEnrolling()
            user.two_factor.enabled = True
            user.two_factor.backup_codes = [BackupCode(digest=d) for d in code_digests]

    async def consume_backup_code(self, user_id: str, digest: str) -> bool:
        async with self._locks.hold(_user_key(user_id)):
            user = self._get(user_id)
            for backup_code in user.two_factor.backup_codes:
                if not backup_code.used and hmac.compare_digest(backup_code.digest, digest):
                    backup_code.used = True
                    backup_code.used_at = utcnow()
                    return True
        return False

    async def replace_backup_codes(self, user_id: str, code_digests: list[str]) -> None:
        async with self._locks.hold(_user_key(user_id)):
            user = self._get(user_id)
            user.two_factor.backup_codes = [BackupCode(digest=d) for d in code_digests]

    async def clear_two_factor(self, user_id: str) -> None:
        async with self._locks.hold(_user_key(user_id)):
            self._get(user_id).two_factor = TwoFactorState()


class MemoryProviderTokenStore(ProviderTokenStore):
    def __init__(self) -> None:
        self._records: dict[tuple[str, str], ProviderTokenRecord] = {}

    async def put(self, record: ProviderTokenRecord) -> None:
        self._records[(record.user_id, record.provider)] = copy.deepcopy(record)

    async def list_for_user(self, user_id: str) -> list[ProviderTokenRecord]:
        return [
            copy.deepcopy(record)
            for (owner, _), record in self._records.items()
            if owner == user_id
        ]

    async def discard(self, user_id: str, provider: str) -> bool:
        return self._records.pop((user_id, provider), None) is not None

    async def discard_all(self, user_id: str) -> int:
        keys = [key for key in self._records if key[0] == user_id]
        for key in keys:
            del self._records[key]
        return len(keys)
