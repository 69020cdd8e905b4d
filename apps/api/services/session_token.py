"""Signed bearer sessions for viewers and catalog administrators."""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import JWTError, jwt

from config import settings


SESSION_TOKEN_TYPE = "stream_session"
SESSION_ISSUER = "streaming-catalog-api"


@dataclass(frozen=True)
class IssuedSession:
    token: str
    expires_at: int


@dataclass(frozen=True)
class SessionClaims:
    user_id: str
    email: Optional[str]
    expires_at: int


def issue_session(user_id: str, email: Optional[str] = None, ttl_hours: Optional[int] = None) -> IssuedSession:
    """Sign a session for ``user_id``; lifetime defaults to JWT_EXPIRATION_HOURS."""
    now = datetime.now(timezone.utc)
    hours = max(int(ttl_hours or settings.JWT_EXPIRATION_HOURS or 24), 1)
    expires_at = int((now + timedelta(hours=hours)).timestamp())
    claims = {
        "sub": user_id,
        "type": SESSION_TOKEN_TYPE,
        "iss": SESSION_ISSUER,
        "iat": int(now.timestamp()),
        "exp": expires_at,
    }
    if email:
        claims["email"] = email
    return IssuedSession(
        token=jwt.encode(claims, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM),
        expires_at=expires_at,
    )


def read_session(token: str) -> SessionClaims:
    """Validate a bearer token. Raises ValueError with a client-safe message."""
    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM],
            issuer=SESSION_ISSUER,
        )
    except JWTError as exc:
        raise ValueError("Invalid or expired session token.") from exc

    if payload.get("type") != SESSION_TOKEN_TYPE:
        raise ValueError("Invalid session token type.")
    user_id = str(payload.get("sub") or "").strip()
    if not user_id:
        raise ValueError("Session token missing subject.")

    return SessionClaims(
        user_id=user_id,
        email=payload.get("email") or None,
        expires_at=int(payload["exp"]),
    )
