"""Schemas for OAuth providers and account linking."""

from __future__ import annotations

from authgate.providers.base import NormalizedProfile, ProviderMetadata
from authgate.schemas.user import CamelModel, LinkedProviderOut


class ProviderOut(CamelModel):
    name: str
    display_name: str
    scope: str
    supports_revocation: bool

    @classmethod
    def from_metadata(cls, meta: ProviderMetadata) -> "ProviderOut":
        return cls(
            name=meta.name,
            display_name=meta.display_name,
            scope=meta.scope,
            supports_revocation=meta.revoke_url is not None,
        )


class ProviderList(CamelModel):
    total: int
    items: list[ProviderOut]


class LinkedProvidersResponse(CamelModel):
    providers: list[LinkedProviderOut]


class LinkProviderRequest(CamelModel):
    link_token: str = ""
    email: str = ""
    password: str = ""
    two_factor_code: str | None = None


class LinkInfoRequest(CamelModel):
    link_token: str = ""


class LinkInfoResponse(CamelModel):
    provider: str
    provider_id: str
    username: str | None = None
    email: str | None = None
    avatar: str | None = None

    @classmethod
    def from_profile(cls, profile: NormalizedProfile) -> "LinkInfoResponse":
        return cls(
            provider=profile.provider,
            provider_id=profile.provider_id,
            username=profile.username,
            email=profile.email,
            avatar=profile.avatar,
        )


class UnlinkProviderRequest(CamelModel):
    provider: str = ""
