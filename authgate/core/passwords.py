"""Credential verifier: bcrypt password hashing.

bcrypt is deliberately slow; the async wrappers push the work onto a worker
thread so the event loop keeps serving other requests.
"""

from __future__ import annotations

import asyncio

import bcrypt

from authgate.core.config import get_settings


def hash_password(plain: str, rounds: int | None = None) -> str:
    cost = rounds if rounds is not None else get_settings().bcrypt_rounds
    return bcrypt.hashpw(plain.encode(), bcrypt.gensalt(rounds=cost)).decode()


def verify_password(plain: str, hashed: str | None) -> bool:
    if not hashed:
        return False
    try:
        return bcrypt.checkpw(plain.encode(), hashed.encode())
    except ValueError:
        # Malformed hash (e.g. an account without a local password)
        return False


async def hash_password_async(plain: str, rounds: int | None = None) -> str:
    return await asyncio.get_event_loop().run_in_executor(None, hash_password, plain, rounds)


async def verify_password_async(plain: str, hashed: str | None) -> bool:
    return await asyncio.get_event_loop().run_in_executor(None, verify_password, plain, hashed)
