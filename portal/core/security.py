"""
Security Module

Password hashing (passlib/bcrypt), JWT issuance and validation
(python-jose) and generation of one-time codes.

Token payload:
- sub: user id
- client_id: workspace the user signed in to
- workspace_url: subdomain of that workspace
- exp / iat
"""
from datetime import datetime, timedelta
from typing import Optional, Dict, Any
import secrets
from jose import JWTError, jwt
from passlib.context import CryptContext
from portal.config import get_settings

settings = get_settings()

pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=settings.BCRYPT_ROUNDS,
)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    """
    Hash a password using bcrypt.

    Slow on purpose; keep it out of loops.
    """
    return pwd_context.hash(password)


def generate_code() -> str:
    """Unguessable, URL-safe value for verification and reset links."""
    return secrets.token_urlsafe(24)


def create_access_token(data: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    to_encode = data.copy()

    if expires_delta:
        expire = datetime.utcnow() + expires_delta
    else:
        expire = datetime.utcnow() + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)

    to_encode.update({
        "exp": expire,
        "iat": datetime.utcnow()
    })

    return jwt.encode(
        to_encode,
        settings.SECRET_KEY,
        algorithm=settings.ALGORITHM
    )


def create_user_token(user_id: str, client_id: str, workspace_url: str) -> str:
    """Token identifying a user inside one workspace."""
    return create_access_token({
        "sub": user_id,
        "client_id": client_id,
        "workspace_url": workspace_url,
    })


def decode_access_token(token: str) -> Optional[Dict[str, Any]]:
    """
    Decode and verify a JWT token.

    Returns the payload if valid, None if invalid, expired or tampered with.
    """
    try:
        return jwt.decode(
            token,
            settings.SECRET_KEY,
            algorithms=[settings.ALGORITHM]
        )
    except JWTError:
        return None
