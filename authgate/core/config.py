"""Application configuration via Pydantic BaseSettings."""

import logging
from functools import lru_cache
from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_log = logging.getLogger(__name__)

_DEFAULT_SECRETS = {
    "jwt_secret_key": "change-me-jwt-secret",
    "secret_key": "change-me-in-production",
}

# bcrypt cost below this is only acceptable for tests / local debugging
_MIN_PRODUCTION_BCRYPT_ROUNDS = 12


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_host: str = Field(default="0.0.0.0")
    app_port: int = Field(default=3000)
    app_debug: bool = Field(default=False)
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO"
    )

    # Security — general (Fernet key material for sealed provider tokens)
    secret_key: str = Field(default="change-me-in-production")

    # JWT — session, temporary 2FA and link-intent tokens
    jwt_secret_key: str = Field(default="change-me-jwt-secret")
    jwt_algorithm: str = Field(default="HS256")
    jwt_issuer: str = Field(default="authgate")
    session_token_expire_minutes: int = Field(default=60 * 24)
    temp_token_expire_minutes: int = Field(default=10)
    link_token_expire_minutes: int = Field(default=10)

    # Local credentials
    bcrypt_rounds: int = Field(default=12, ge=4, le=31)
    password_min_length: int = Field(default=8, ge=1)

    # Second factor
    totp_issuer: str = Field(default="AuthGate")
    totp_valid_window: int = Field(
        default=2, ge=0, description="Accepted TOTP drift, in 30 s steps either side"
    )
    backup_code_count: int = Field(default=10, ge=1)

    # OAuth
    backend_url: str = Field(
        default="http://localhost:3000",
        description="Public base URL of this service, used to build redirect URIs",
    )
    oauth_callback_url: str = Field(
        default="https://localhost:8443",
        description="Frontend URL the OAuth callback redirects to",
    )
    oauth_state_ttl_seconds: int = Field(default=600, ge=1)
    oauth_offer_link_token: bool = Field(
        default=True,
        description="Attach a link token when an OAuth login finds no account",
    )
    cookie_secure: bool = Field(default=True)
    provider_timeout: float = Field(
        default=10.0, description="Timeout in seconds for provider HTTP calls"
    )

    discord_client_id: str | None = Field(default=None)
    discord_client_secret: str | None = Field(default=None)
    github_client_id: str | None = Field(default=None)
    github_client_secret: str | None = Field(default=None)

    # Admin endpoints are disabled while this is unset
    admin_api_key: str | None = Field(default=None)

    rate_limit_enabled: bool = Field(default=True)

    # CORS
    cors_allowed_origins: list[str] = Field(
        default=["https://localhost:8443"],
        description="Allowed CORS origins (configure via CORS_ALLOWED_ORIGINS env var)",
    )

    def provider_credentials(self, provider: str) -> tuple[str | None, str | None]:
        """Return ``(client_id, client_secret)`` configured for *provider*."""
        return (
            getattr(self, f"{provider}_client_id", None),
            getattr(self, f"{provider}_client_secret", None),
        )

    def redirect_uri(self, provider: str) -> str:
        return f"{self.backend_url.rstrip('/')}/api/v1/auth/oauth/{provider}/callback"

    @model_validator(mode="after")
    def _warn_weak_settings(self) -> "Settings":
        """Emit a warning when production-dangerous defaults are detected."""
        if not self.app_debug:
            for field, default in _DEFAULT_SECRETS.items():
                if getattr(self, field) == default:
                    _log.warning(
                        "Default secret detected for '%s' — change before deploying to production!",
                        field,
                    )
            if self.bcrypt_rounds < _MIN_PRODUCTION_BCRYPT_ROUNDS:
                _log.warning(
                    "bcrypt_rounds=%d is below %d — passwords are cheap to brute force",
                    self.bcrypt_rounds,
                    _MIN_PRODUCTION_BCRYPT_ROUNDS,
                )
        return self


@lru_cache
def get_settings() -> Settings:
    return Settings()
