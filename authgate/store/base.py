"""Identity store contract and the records it owns.

The store is the single source of truth for users, their linked provider
accounts and their second-factor state. Implementations must:

* keep ``email`` (case-insensitive) and ``username`` (case-insensitive) unique,
* keep each ``(provider, provider_id)`` pair mapped to at most one user, with
  the reverse index updated in the same step as the user's forward link,
* reject a mutation before touching anything when one of its checks fails,
* hand out detached copies so callers cannot mutate stored state directly.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def normalize_email(email: str) -> str:
    return email.strip().lower()


def username_key(username: str) -> str:
    return username.strip().casefold()


@dataclass
class ProviderLink:
    provider: str
    provider_id: str
    display_name: str | None = None
    email: str | None = None
    avatar_url: str | None = None
    linked_at: datetime = field(default_factory=utcnow)


@dataclass
class BackupCode:
    digest: str             # SHA-256 hex of the 8-digit code
    used: bool = False
    used_at: datetime | None = None


@dataclass
class TwoFactorState:
    enabled: bool = False
    secret: str | None = None
    backup_codes: list[BackupCode] = field(default_factory=list)

    @property
    def enrolling(self) -> bool:
        return self.secret is not None and not self.enabled

    @property
    def backup_codes_remaining(self) -> int:
        return sum(1 for bc in self.backup_codes if not bc.used)


@dataclass
class User:
    id: str
    email: str
    username: str
    password_hash: str | None = field(default=None, repr=False)
    providers: dict[str, ProviderLink] = field(default_factory=dict)
    two_factor: TwoFactorState = field(default_factory=TwoFactorState)
    created_at: datetime = field(default_factory=utcnow)
    last_login_at: datetime | None = None
    is_active: bool = True
    email_verified: bool = False

    @property
    def requires_two_factor(self) -> bool:
        return self.two_factor.enabled

    def provider_names(self) -> list[str]:
        return sorted(self.providers)


@dataclass
class ProviderTokenRecord:
    """OAuth tokens kept for revocation only; both values are Fernet-sealed."""

    user_id: str
    provider: str
    access_token: str
    refresh_token: str | None = None
    stored_at: datetime = field(default_factory=utcnow)


class IdentityStore(ABC):
    """Abstract keyed store for the identity graph."""

    # ── Users ────────────────────────────────────────────────────────────────

    @abstractmethod
    async def create_user(self, email: str, username: str, password_hash: str) -> User:
        """Raises MissingField, DuplicateEmail or DuplicateUsername before any mutation."""

    @abstractmethod
    async def get_by_id(self, user_id: str) -> User | None: ...

    @abstractmethod
    async def get_by_email(self, email: str) -> User | None: ...

    @abstractmethod
    async def get_by_username(self, username: str) -> User | None: ...

    @abstractmethod
    async def list_users(self) -> list[User]: ...

    @abstractmethod
    async def update_profile(
        self, user_id: str, *, email: str | None = None, username: str | None = None
    ) -> User:
        """Raises EmailInUse / DuplicateUsername; index entries swap in one step."""

    @abstractmethod
    async def change_password(self, user_id: str, password_hash: str) -> None: ...

    @abstractmethod
    async def record_login(self, user_id: str) -> None: ...

    @abstractmethod
    async def delete_user(self, user_id: str) -> None:
        """Remove the user together with its email, username and provider index entries."""

    # ── Provider links ───────────────────────────────────────────────────────

    @abstractmethod
    async def get_by_provider(self, provider: str, provider_id: str) -> User | None: ...

    @abstractmethod
    async def link_provider(self, user_id: str, link: ProviderLink) -> User:
        """Raises ProviderAlreadyLinkedElsewhere; re-linking to the same user refreshes metadata."""

    @abstractmethod
    async def unlink_provider(self, user_id: str, provider: str) -> User:
        """Raises ProviderNotLinked; drops the forward and reverse mapping together."""

    # ── Second factor ────────────────────────────────────────────────────────

    @abstractmethod
    async def begin_two_factor(self, user_id: str, secret: str) -> None:
        """Store a fresh, unconfirmed secret. Raises AlreadyEnabled."""

    @abstractmethod
    async def enable_two_factor(
        self, user_id: str, secret: str, code_digests: list[str]
    ) -> None:
        """Flip to enabled if *secret* is still the pending one. Raises NotEnrolling."""

    @abstractmethod
    async def consume_backup_code(self, user_id: str, digest: str) -> bool:
        """Mark a matching unused code as used. True for exactly one caller per code."""

    @abstractmethod
    async def replace_backup_codes(self, user_id: str, code_digests: list[str]) -> None: ...

    @abstractmethod
    async def clear_two_factor(self, user_id: str) -> None: ...


class ProviderTokenStore(ABC):
    """Per-user, per-provider OAuth token records."""

    @abstractmethod
    async def put(self, record: ProviderTokenRecord) -> None: ...

    @abstractmethod
    async def list_for_user(self, user_id: str) -> list[ProviderTokenRecord]: ...

    @abstractmethod
    async def discard(self, user_id: str, provider: str) -> bool: ...

    @abstractmethod
    async def discard_all(self, user_id: str) -> int: ...
