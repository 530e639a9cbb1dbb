"""
Authentication utilities: password hashing, one-time passwords and JWT bearer tokens.
"""
import secrets
import string
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from fastapi import HTTPException, status
from pwdlib import PasswordHash

from backoffice.core import config


_password_hash = PasswordHash.recommended()

SYMBOLS = "!@#$%^&*()-_=+[]{}?"


def hash_password(password: str) -> str:
    """Hash ``password`` with argon2."""
    if not password.strip():
        raise ValueError("Password must not be empty")
    return _password_hash.hash(password)


def verify_password(password: str, hashed: str) -> bool:
    """Return ``True`` if ``password`` matches ``hashed``."""
    try:
        return _password_hash.verify(password, hashed)
    except Exception:
        return False


def generate_password(length: int = 16) -> str:
    """
    Generate a one-time password for a new account.

    Always contains at least one lowercase letter, uppercase letter, digit
    and symbol.
    """
    if length < 12:
        raise ValueError("Generated passwords must be at least 12 characters")
    pools = [string.ascii_lowercase, string.ascii_uppercase, string.digits, SYMBOLS]
    alphabet = "".join(pools)
    chars = [secrets.choice(pool) for pool in pools]
    chars += [secrets.choice(alphabet) for _ in range(length - len(pools))]
    secrets.SystemRandom().shuffle(chars)
    return "".join(chars)


def create_access_token(user_id: int, expires_minutes: Optional[int] = None) -> str:
    """Issue a signed bearer token for ``user_id``."""
    now = datetime.now(timezone.utc)
    expires = now + timedelta(minutes=expires_minutes or config.ACCESS_TOKEN_EXPIRE_MINUTES)
    payload = {"sub": str(user_id), "iat": now, "exp": expires}
    return jwt.encode(payload, config.JWT_SECRET, algorithm=config.JWT_ALGORITHM)


def verify_jwt_token(token: str) -> dict:
    """
    Verify a bearer token and return its payload.

    Raises:
        HTTPException: If token is invalid or expired
    """
    try:
        return jwt.decode(token, config.JWT_SECRET, algorithms=[config.JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token has expired",
            headers={"WWW-Authenticate": "Bearer"},
        )
    except jwt.InvalidTokenError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Invalid token: {str(e)}",
            headers={"WWW-Authenticate": "Bearer"},
        )
