"""Shared slowapi limiter, keyed by client address."""

from __future__ import annotations

from slowapi import Limiter
from slowapi.util import get_remote_address

from authgate.core.config import get_settings

limiter = Limiter(
    key_func=get_remote_address,
    enabled=get_settings().rate_limit_enabled,
)
