"""Domain error taxonomy.

Every error carries an HTTP ``status_code`` and a machine-readable ``kind``.
The API layer renders any ``AuthGateError`` as ``{"error": kind, "detail": message}``;
the OAuth callback maps them onto redirect error codes instead.
"""

from __future__ import annotations


class AuthGateError(Exception):
    status_code: int = 400
    kind: str = "error"
    default_message: str = "Request failed"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


# ── Families ─────────────────────────────────────────────────────────────────

class ValidationError(AuthGateError):
    """Malformed or missing input."""
    status_code = 400
    kind = "validation_error"
    default_message = "Invalid input"


class DuplicateError(AuthGateError):
    """Email, username or provider account collision."""
    status_code = 400
    kind = "duplicate"
    default_message = "Already exists"


class AuthenticationError(AuthGateError):
    """Bad credentials, bad second factor, or an unusable token."""
    status_code = 401
    kind = "authentication_failed"
    default_message = "Authentication failed"


class NotFoundError(AuthGateError):
    status_code = 404
    kind = "not_found"
    default_message = "Not found"


class UpstreamError(AuthGateError):
    """An OAuth provider call failed."""
    status_code = 400
    kind = "upstream_error"
    default_message = "Provider request failed"


class PolicyError(AuthGateError):
    status_code = 400
    kind = "policy_violation"
    default_message = "Not allowed"


# ── Validation ───────────────────────────────────────────────────────────────

class MissingField(ValidationError):
    kind = "missing_field"

    def __init__(self, field: str) -> None:
        self.field = field
        super().__init__(f"{field} is required")


class WeakPassword(ValidationError):
    kind = "weak_password"
    default_message = "Password is too short"


# ── Duplicates ───────────────────────────────────────────────────────────────

class DuplicateEmail(DuplicateError):
    kind = "duplicate_email"
    default_message = "Email already registered"


class DuplicateUsername(DuplicateError):
    kind = "duplicate_username"
    default_message = "Username already taken"


class EmailInUse(DuplicateError):
    kind = "email_in_use"
    default_message = "Email already in use"


class ProviderAlreadyLinkedElsewhere(DuplicateError):
    kind = "provider_already_linked_elsewhere"
    default_message = "This provider account is already linked to another user"


# ── Authentication ───────────────────────────────────────────────────────────

class InvalidCredentials(AuthenticationError):
    kind = "invalid_credentials"
    default_message = "Invalid credentials"


class AccountDisabled(AuthenticationError):
    kind = "account_disabled"
    default_message = "Account disabled"


class InvalidCode(AuthenticationError):
    kind = "invalid_code"
    default_message = "Invalid 2FA code"


class InvalidBackupCode(AuthenticationError):
    kind = "invalid_backup_code"
    default_message = "Invalid backup code"


class TwoFactorRequired(AuthenticationError):
    kind = "two_factor_required"
    default_message = "A 2FA code is required"


class MissingToken(AuthenticationError):
    kind = "missing_token"
    default_message = "No token provided"


class TokenError(AuthenticationError):
    kind = "invalid_token"
    default_message = "Invalid token"


class TokenExpired(TokenError):
    kind = "token_expired"
    default_message = "Token expired"


class TokenMalformed(TokenError):
    kind = "token_malformed"
    default_message = "Malformed token"


class TokenSignatureInvalid(TokenError):
    kind = "token_signature_invalid"
    default_message = "Token signature is invalid"


class InsufficientTrust(AuthenticationError):
    kind = "insufficient_trust"
    default_message = "Token is not valid for this operation"


# ── Not found ────────────────────────────────────────────────────────────────

class UserNotFound(NotFoundError):
    kind = "user_not_found"
    default_message = "User not found"


class ProviderNotLinked(NotFoundError):
    kind = "provider_not_linked"
    default_message = "Provider not linked to this user"


class UnknownProvider(NotFoundError):
    kind = "unknown_provider"

    def __init__(self, provider: str) -> None:
        self.provider = provider
        super().__init__(f"Provider {provider!r} not supported")


# ── Upstream ─────────────────────────────────────────────────────────────────

class ExchangeFailed(UpstreamError):
    kind = "exchange_failed"
    default_message = "Failed to exchange code for tokens"


class ProfileFetchFailed(UpstreamError):
    kind = "profile_fetch_failed"
    default_message = "Failed to get user information"


# ── Policy ───────────────────────────────────────────────────────────────────

class AlreadyEnabled(PolicyError):
    kind = "already_enabled"
    default_message = "2FA is already enabled for this user"


class NotEnrolling(PolicyError):
    kind = "not_enrolling"
    default_message = "2FA setup not initiated"


class TwoFactorNotEnabled(PolicyError):
    kind = "two_factor_not_enabled"
    default_message = "2FA is not enabled for this user"
