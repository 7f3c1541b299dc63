# Password hashing and one-time tokens.
from __future__ import annotations

from datetime import datetime, timedelta
from uuid import uuid4

from passlib.hash import argon2

from .config import TOKEN_TTL_SECONDS


def hash_password(password: str) -> str:
    """Hash plain password with Argon2."""
    return argon2.hash(password)


def verify_password(password: str, password_hash: str | None) -> bool:
    if not password or not password_hash or not password_hash.startswith("$argon2"):
        return False
    return argon2.verify(password, password_hash)


def new_token() -> str:
    return str(uuid4())


def token_expiry(now: datetime | None = None) -> datetime:
    return (now or datetime.now()) + timedelta(seconds=TOKEN_TTL_SECONDS)
