"""Tests for core/config.py."""

import pytest
from pydantic import ValidationError

from authgate.core.config import Settings


def test_default_settings(monkeypatch):
    monkeypatch.delenv("BCRYPT_ROUNDS", raising=False)
    s = Settings(_env_file=None)
    assert s.app_port == 3000
    assert s.app_host == "0.0.0.0"
    assert s.log_level == "INFO"
    assert s.session_token_expire_minutes == 1440
    assert s.temp_token_expire_minutes == 10
    assert s.oauth_state_ttl_seconds == 600
    assert s.backup_code_count == 10
    assert s.bcrypt_rounds == 12


def test_redirect_uri_is_built_from_backend_url():
    s = Settings(_env_file=None, backend_url="https://auth.example.com/")
    assert s.redirect_uri("github") == (
        "https://auth.example.com/api/v1/auth/oauth/github/callback"
    )


def test_provider_credentials():
    s = Settings(_env_file=None, github_client_id="id", github_client_secret="secret")
    assert s.provider_credentials("github") == ("id", "secret")
    assert s.provider_credentials("discord") == (None, None)
    assert s.provider_credentials("gitlab") == (None, None)


def test_env_overrides(monkeypatch):
    monkeypatch.setenv("JWT_ISSUER", "other-issuer")
    monkeypatch.setenv("TOTP_VALID_WINDOW", "1")
    s = Settings(_env_file=None)
    assert s.jwt_issuer == "other-issuer"
    assert s.totp_valid_window == 1


def test_bcrypt_rounds_lower_bound():
    with pytest.raises(ValidationError):
        Settings(_env_file=None, bcrypt_rounds=3)
