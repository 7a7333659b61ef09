"""Password hashing and bearer-token issuance."""

from __future__ import annotations

import re
from datetime import timedelta, timezone
from typing import Any

import bcrypt
import jwt

from carehub.config import settings
from carehub.errors import AuthenticationError, BusinessRuleError
from carehub.models.accounts import User
from carehub.models.database import utcnow

PASSWORD_RULE = re.compile(r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d).{8,}$")


def check_password_strength(password: str) -> None:
    if not PASSWORD_RULE.match(password):
        raise BusinessRuleError(
            "Password must be at least 8 characters and contain an uppercase "
            "letter, a lowercase letter and a number"
        )


def hash_password(plain: str) -> str:
    salt = bcrypt.gensalt(rounds=settings.BCRYPT_ROUNDS)
    return bcrypt.hashpw(plain.encode("utf-8"), salt).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        return False


def create_access_token(user: User, expires_minutes: int | None = None) -> str:
    expires = utcnow() + timedelta(
        minutes=expires_minutes or settings.ACCESS_TOKEN_EXPIRE_MINUTES
    )
    payload = {
        "sub": str(user.id),
        "role": user.role,
        "org": str(user.organization_id) if user.organization_id else None,
        "exp": expires.replace(tzinfo=timezone.utc),
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def decode_access_token(token: str) -> dict[str, Any]:
    try:
        return jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except jwt.ExpiredSignatureError as exc:
        raise AuthenticationError("Token has expired") from exc
    except jwt.InvalidTokenError as exc:
        raise AuthenticationError("Invalid token") from exc
