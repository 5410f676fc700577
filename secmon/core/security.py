"""Operator password hashing and JWT access tokens for the admin API."""

from datetime import UTC, datetime, timedelta
from typing import Any

import bcrypt
import jwt

from secmon.core.config import settings

BCRYPT_ROUNDS = 12

USERNAME_MIN_LEN = 1
USERNAME_MAX_LEN = 255
PASSWORD_MIN_LEN = 8
PASSWORD_MAX_LEN = 128
OPERATOR_ROLES = ("user", "admin")


def hash_password(plain_password: str) -> str:
    """Hash an operator password for storage."""
    # bcrypt only looks at the first 72 bytes
    pw_bytes = plain_password.encode("utf-8")[:72]
    return bcrypt.hashpw(pw_bytes, bcrypt.gensalt(rounds=BCRYPT_ROUNDS)).decode("utf-8")


def verify_password(plain_password: str, hashed: str) -> bool:
    pw_bytes = plain_password.encode("utf-8")[:72]
    try:
        return bcrypt.checkpw(pw_bytes, hashed.encode("utf-8"))
    except (ValueError, TypeError):
        return False


def create_access_token(sub: str | int, role: str, expire_minutes: int | None = None) -> str:
    """Signed token carrying the operator id (sub), role, iat and exp."""
    now = datetime.now(UTC)
    minutes = expire_minutes if expire_minutes is not None else settings.JWT_EXPIRE_MINUTES
    payload: dict[str, Any] = {
        "sub": str(sub),
        "role": role,
        "iat": now,
        "exp": now + timedelta(minutes=minutes),
    }
    return jwt.encode(payload, settings.JWT_SECRET.get_secret_value(), algorithm=settings.JWT_ALGORITHM)


def decode_access_token(token: str) -> dict[str, Any]:
    """
    Decode and validate a token; return its payload.
    Raises jwt.PyJWTError on a bad signature or an expired token.
    """
    return jwt.decode(
        token,
        settings.JWT_SECRET.get_secret_value(),
        algorithms=[settings.JWT_ALGORITHM],
    )
