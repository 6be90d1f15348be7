"""Discord OAuth2 provider."""

from __future__ import annotations

from typing import Any

import httpx

from authgate.providers.base import BaseProvider, NormalizedProfile, ProviderMetadata

_AVATAR_CDN = "https://cdn.discordapp.com/avatars/{user_id}/{avatar}.png"


class DiscordProvider(BaseProvider):
    metadata = ProviderMetadata(
        name="discord",
        display_name="Discord",
        authorize_url="https://discord.com/api/oauth2/authorize",
        token_url="https://discord.com/api/oauth2/token",
        profile_url="https://discord.com/api/users/@me",
        scope="identify email",
        revoke_url="https://discord.com/api/oauth2/token/revoke",
    )

    def normalize(self, payload: dict[str, Any]) -> NormalizedProfile:
        user_id = str(payload["id"])
        avatar_hash = payload.get("avatar")
        return NormalizedProfile(
            provider=self.name,
            provider_id=user_id,
            username=payload.get("username"),
            email=payload.get("email"),
            avatar=_AVATAR_CDN.format(user_id=user_id, avatar=avatar_hash) if avatar_hash else None,
        )

    async def revoke(self, client: httpx.AsyncClient, access_token: str) -> None:
        resp = await client.post(
            self.metadata.revoke_url,
            data={
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "token": access_token,
            },
        )
        resp.raise_for_status()
