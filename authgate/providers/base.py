"""Base provider contract — every OAuth provider plugin implements this interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, ClassVar

import httpx

from authgate.store.base import ProviderLink

USER_AGENT = "AuthGate-OAuth"


@dataclass
class ProviderMetadata:
    name: str               # Unique slug (e.g. "github"), also the settings prefix
    display_name: str
    authorize_url: str
    token_url: str
    profile_url: str
    scope: str
    revoke_url: str | None = None


@dataclass(frozen=True)
class NormalizedProfile:
    """Provider-agnostic view of the external account."""

    provider: str
    provider_id: str
    username: str | None = None
    email: str | None = None
    avatar: str | None = None

    def to_claims(self) -> dict[str, Any]:
        return {
            "providerId": self.provider_id,
            "username": self.username,
            "email": self.email,
            "avatar": self.avatar,
        }

    @classmethod
    def from_claims(cls, provider: str, data: dict[str, Any]) -> "NormalizedProfile":
        return cls(
            provider=provider,
            provider_id=str(data["providerId"]),
            username=data.get("username"),
            email=data.get("email"),
            avatar=data.get("avatar"),
        )

    def to_link(self) -> ProviderLink:
        return ProviderLink(
            provider=self.provider,
            provider_id=self.provider_id,
            display_name=self.username,
            email=self.email,
            avatar_url=self.avatar,
        )


class BaseProvider(ABC):
    """Abstract base class for OAuth providers.

    Subclass this, set the ``metadata`` class variable, and implement
    ``normalize`` and ``revoke``. The registry auto-discovers any concrete
    subclass found in ``authgate/providers/*.py``.
    """

    metadata: ClassVar[ProviderMetadata]

    def __init__(self, client_id: str, client_secret: str) -> None:
        self.client_id = client_id
        self.client_secret = client_secret

    @property
    def name(self) -> str:
        return self.metadata.name

    def authorization_params(self, redirect_uri: str, state: str) -> dict[str, str]:
        return {
            "client_id": self.client_id,
            "redirect_uri": redirect_uri,
            "scope": self.metadata.scope,
            "state": state,
            "response_type": "code",
        }

    def token_request(self, code: str, redirect_uri: str) -> dict[str, str]:
        return {
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "code": code,
            "redirect_uri": redirect_uri,
            "grant_type": "authorization_code",
        }

    def api_headers(self, access_token: str) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {access_token}",
            "User-Agent": USER_AGENT,
            "Accept": "application/json",
        }

    @abstractmethod
    def normalize(self, payload: dict[str, Any]) -> NormalizedProfile:
        """Map the provider's profile payload onto a ``NormalizedProfile``."""
        ...

    async def complete_profile(
        self, client: httpx.AsyncClient, access_token: str, profile: NormalizedProfile
    ) -> NormalizedProfile:
        """Fill fields the primary profile endpoint left out. Default: nothing to add."""
        return profile

    @abstractmethod
    async def revoke(self, client: httpx.AsyncClient, access_token: str) -> None:
        """Revoke *access_token* with the provider; raise ``httpx.HTTPError`` on failure."""
        ...

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        # Concrete subclasses must declare metadata
        if not getattr(cls, "__abstractmethods__", None):
            if not hasattr(cls, "metadata"):
                raise TypeError(
                    f"Provider {cls.__name__} must define a 'metadata' class variable."
                )
