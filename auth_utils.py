"""
Authentication utilities: Password hashing and JWT token management
"""

import jwt
from datetime import datetime, timedelta, timezone
from passlib.context import CryptContext
from typing import Optional
from config.settings import settings

# Password hashing context
pwd_context = CryptContext(
    schemes=["argon2"],
    deprecated="auto"
)

# JWT configuration
ALGORITHM = "HS256"


def hash_password(password: str) -> str:
    """Hash a password using argon2"""
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    """Verify a password against its hash"""
    return pwd_context.verify(password, password_hash)


def token_lifetime_seconds() -> int:
    return settings.jwt_expire_minutes * 60


def create_jwt(account_id: str, username: Optional[str] = None) -> str:
    """Create a JWT token for an account"""
    if not settings.jwt_secret_key:
        raise ValueError("JWT_SECRET_KEY is not set. Cannot create JWT token.")

    payload = {
        "sub": account_id,
        "exp": datetime.now(timezone.utc) + timedelta(seconds=token_lifetime_seconds()),
    }
    if username:
        payload["username"] = username
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=ALGORITHM)


def decode_jwt(token: str) -> Optional[dict]:
    """Decode a JWT token. Returns None if invalid."""
    if not settings.jwt_secret_key:
        raise ValueError("JWT_SECRET_KEY is not set. Cannot decode JWT token.")

    try:
        return jwt.decode(token, settings.jwt_secret_key, algorithms=[ALGORITHM])
    except jwt.ExpiredSignatureError:
        return None
    except jwt.InvalidTokenError:
        return None


def create_expired_jwt(account_id: str, expired_seconds_ago: int = 1) -> str:
    """
    Create an expired JWT token for testing purposes.

    Args:
        account_id: Account ID to include in token
        expired_seconds_ago: How many seconds ago the token should have expired (default: 1)

    Returns:
        Expired JWT token string

    Raises:
        ValueError: If JWT_SECRET_KEY is not set
    """
    if not settings.jwt_secret_key:
        raise ValueError("JWT_SECRET_KEY is not set. Cannot create JWT token.")

    payload = {
        "sub": account_id,
        "exp": datetime.now(timezone.utc) - timedelta(seconds=expired_seconds_ago),
    }
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=ALGORITHM)
