"""
Security Utilities
Password hashing and opaque token generation
"""

import secrets
from typing import Optional

from passlib.context import CryptContext

from docvault.core.config import settings

# Password hashing context
pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=settings.BCRYPT_ROUNDS,
)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against a hash"""
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    """Hash a password"""
    return pwd_context.hash(password)


def generate_token(num_bytes: Optional[int] = None) -> str:
    """Unguessable hex token, 256 bits of randomness by default"""
    return secrets.token_hex(num_bytes or settings.SHARE_LINK_TOKEN_BYTES)
