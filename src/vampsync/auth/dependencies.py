"""FastAPI auth dependencies.

Learn: Used as Depends() on routes that let external mutators signal
changes. Reading GET /api/versions is open: the snapshot holds only
counters, and polling must keep working while a token is being refreshed.
"""

from typing import Optional

from fastapi import Header, HTTPException

from vampsync.auth.jwt import TokenError, verify_token


class SessionIdentity:
    """The authenticated session making the request."""

    def __init__(self, user_id: str, claims: Optional[dict] = None):
        self.user_id = user_id
        self.claims = claims or {}


async def require_session(
    authorization: Optional[str] = Header(None),
) -> SessionIdentity:
    """Extract the session from a Bearer token (401 if absent or invalid)."""
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(
            status_code=401,
            detail="Authentication required",
            headers={"WWW-Authenticate": "Bearer"},
        )
    try:
        payload = verify_token(authorization[7:])
    except TokenError as e:
        raise HTTPException(
            status_code=401,
            detail=str(e),
            headers={"WWW-Authenticate": "Bearer"},
        )
    return SessionIdentity(user_id=payload["sub"], claims=payload)
