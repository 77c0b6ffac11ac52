"""JWT token generation and validation

This module handles JWT access token creation and validation. Issuing
tokens (login, sessions) is owned by the identity service; DocFlow only
verifies them and needs ``create_access_token`` for tooling and tests.

Token Claims:
- sub: User id (numeric, as string)
- role: "ADMIN" | "MANAGER" | "USER"
- email: User's email address
- iat / exp: Issued-at and expiry timestamps

Algorithm and secret come from settings (JWT_ALGORITHM, JWT_SECRET).
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import jwt

from config import get_settings


def create_access_token(
    user_id: int,
    role: str,
    email: Optional[str] = None,
    expires_minutes: Optional[int] = None,
) -> str:
    """Create a signed access token.

    Args:
        user_id: User's numeric id
        role: User's role
        email: User's email address
        expires_minutes: Override for JWT_EXPIRY_MINUTES

    Returns:
        str: Signed JWT token
    """
    settings = get_settings()
    if expires_minutes is None:
        expires_minutes = settings.JWT_EXPIRY_MINUTES

    now = datetime.now(timezone.utc)
    payload = {
        'sub': str(user_id),
        'role': role,
        'email': email,
        'iat': int(now.timestamp()),
        'exp': int((now + timedelta(minutes=expires_minutes)).timestamp()),
    }

    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def decode_token(token: str) -> Dict[str, Any]:
    """Decode and validate a JWT token.

    Raises:
        jwt.ExpiredSignatureError: If token has expired
        jwt.InvalidTokenError: If token is invalid or tampered
    """
    settings = get_settings()
    return jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
