"""Session token creation and verification.

Learn: Login itself belongs to the host application; the sync subsystem
only needs to know that a session exists. The host mints a session token
(JWT) after login and hands it to the client; the push channel and the
mutation hooks verify it.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt

from vampsync.config import settings


class TokenError(Exception):
    """Raised when token creation/verification fails."""


def create_session_token(
    user_id: str,
    expires_minutes: Optional[int] = None,
) -> str:
    """Create a JWT session token."""
    now = datetime.now(timezone.utc)
    expires = now + timedelta(
        minutes=expires_minutes or settings.session_token_expire_minutes
    )
    payload = {
        "sub": user_id,
        "type": "session",
        "exp": expires,
        "iat": now,
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def verify_token(token: str) -> dict:
    """Verify and decode a session token.

    Returns the payload dict on success.
    Raises TokenError on failure.
    """
    try:
        payload = jwt.decode(
            token, settings.jwt_secret, algorithms=[settings.jwt_algorithm]
        )
    except jwt.ExpiredSignatureError:
        raise TokenError("Token has expired")
    except jwt.InvalidTokenError as e:
        raise TokenError(f"Invalid token: {e}")
    if payload.get("type") != "session":
        raise TokenError("Not a session token")
    return payload
