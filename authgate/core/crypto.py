"""Symmetric sealing for provider OAuth tokens.

Provider access/refresh tokens are kept only so they can be revoked later.
They are stored (and carried inside link tokens) as Fernet ciphertext, with a
key derived from ``settings.secret_key`` via SHA-256 → base64-urlsafe so any
process sharing SECRET_KEY can open them.
"""

from __future__ import annotations

import base64
import hashlib
import json
from typing import Any

from cryptography.fernet import Fernet, InvalidToken

from authgate.core.config import Settings, get_settings


class TokenCipher:
    def __init__(self, secret_key: str) -> None:
        digest = hashlib.sha256(secret_key.encode()).digest()
        self._fernet = Fernet(base64.urlsafe_b64encode(digest))

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "TokenCipher":
        return cls((settings or get_settings()).secret_key)

    def seal(self, value: str) -> str:
        return self._fernet.encrypt(value.encode()).decode()

    def open(self, ciphertext: str) -> str:
        """Decrypt *ciphertext*; raises ``ValueError`` when it was not sealed by this key."""
        try:
            return self._fernet.decrypt(ciphertext.encode()).decode()
        except InvalidToken as exc:
            raise ValueError("ciphertext cannot be opened with this key") from exc

    def seal_json(self, payload: dict[str, Any]) -> str:
        return self.seal(json.dumps(payload, separators=(",", ":")))

    def open_json(self, ciphertext: str) -> dict[str, Any]:
        return json.loads(self.open(ciphertext))
