from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict

import jwt

from core.settings import get_settings


def create_access_token(
    subject: str, extra_claims: Dict[str, Any] | None = None
) -> str:
    """Create a signed JWT access token for a user.

    Args:
        subject: The user's e-mail address, resolved back to a ``User`` row.
        extra_claims: Optional additional claims to include in the token.

    Returns:
        Encoded JWT access token string.
    """

    settings = get_settings()
    expire = datetime.now(timezone.utc) + timedelta(
        minutes=settings.access_token_expires_minutes
    )
    payload: Dict[str, Any] = {"sub": subject, "exp": expire, **(extra_claims or {})}
    return jwt.encode(
        payload,
        settings.jwt_secret.get_secret_value(),
        algorithm=settings.jwt_algorithm,
    )


def decode_token(token: str) -> Dict[str, Any]:
    """Decode and validate a JWT, requiring ``sub`` and ``exp`` claims.

    Raises:
        jwt.PyJWTError: If the token is invalid or expired.
    """

    settings = get_settings()
    return jwt.decode(
        token,
        settings.jwt_secret.get_secret_value(),
        algorithms=[settings.jwt_algorithm],
        options={"require": ["exp", "sub"]},
    )
