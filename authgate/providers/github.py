"""GitHub OAuth app provider."""

from __future__ import annotations

from typing import Any

import httpx

from authgate.core.logging import get_logger
from authgate.providers.base import USER_AGENT, BaseProvider, NormalizedProfile, ProviderMetadata

logger = get_logger(__name__)

_EMAILS_URL = "https://api.github.com/user/emails"


class GitHubProvider(BaseProvider):
    metadata = ProviderMetadata(
        name="github",
        display_name="GitHub",
        authorize_url="https://github.com/login/oauth/authorize",
        token_url="https://github.com/login/oauth/access_token",
        profile_url="https://api.github.com/user",
        scope="user:email",
        revoke_url="https://api.github.com/applications/{client_id}/grant",
    )

    def normalize(self, payload: dict[str, Any]) -> NormalizedProfile:
        return NormalizedProfile(
            provider=self.name,
            provider_id=str(payload["id"]),
            username=payload.get("login"),
            email=payload.get("email"),
            avatar=payload.get("avatar_url"),
        )

    async def complete_profile(
        self, client: httpx.AsyncClient, access_token: str, profile: NormalizedProfile
    ) -> NormalizedProfile:
        # /user omits the email when it is private; /user/emails lists them all
        if profile.email:
            return profile
        try:
            resp = await client.get(_EMAILS_URL, headers=self.api_headers(access_token))
            resp.raise_for_status()
            emails = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("GitHub email lookup failed", error=str(exc))
            return profile
        if not isinstance(emails, list):
            logger.warning("GitHub email lookup returned no list", payload_type=type(emails).__name__)
            return profile

        emails = [e for e in emails if isinstance(e, dict)]
        primary = next((e for e in emails if e.get("primary") and e.get("verified")), None)
        verified = next((e for e in emails if e.get("verified")), None)
        chosen = (primary or verified or {}).get("email")
        logger.debug(
            "GitHub emails fetched",
            total=len(emails),
            found_primary=primary is not None,
            found_verified=verified is not None,
        )
        return NormalizedProfile(
            provider=profile.provider,
            provider_id=profile.provider_id,
            username=profile.username,
            email=chosen,
            avatar=profile.avatar,
        )

    async def revoke(self, client: httpx.AsyncClient, access_token: str) -> None:
        # Grant deletion uses basic auth with the app's own credentials
        url = self.metadata.revoke_url.format(client_id=self.client_id)
        resp = await client.request(
            "DELETE",
            url,
            auth=(self.client_id, self.client_secret),
            headers={"Accept": "application/vnd.github.v3+json", "User-Agent": USER_AGENT},
            json={"access_token": access_token},
        )
        resp.raise_for_status()
