"""Google ID token verification for the sign-in flow."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

import httpx

from config import settings

logger = logging.getLogger(__name__)


class GoogleTokenError(ValueError):
    """Raised when a Google ID token cannot be trusted."""


@dataclass(frozen=True)
class GoogleIdentity:
    subject: str
    email: str
    name: Optional[str] = None
    picture: Optional[str] = None


async def verify_google_id_token(
    id_token: str,
    *,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> GoogleIdentity:
    """Validate an ID token against Google's tokeninfo endpoint."""
    token = (id_token or "").strip()
    if not token:
        raise GoogleTokenError("Google ID token is required.")

    try:
        async with httpx.AsyncClient(timeout=settings.GOOGLE_LOGIN_TIMEOUT_SECONDS, transport=transport) as client:
            response = await client.get(settings.GOOGLE_TOKENINFO_URL, params={"id_token": token})
    except httpx.TimeoutException as exc:
        raise GoogleTokenError("Google sign-in timed out.") from exc
    except httpx.HTTPError as exc:
        logger.warning("Google tokeninfo request failed: %s", exc)
        raise GoogleTokenError("Google sign-in is unavailable.") from exc

    if response.status_code != 200:
        raise GoogleTokenError("Invalid Google ID token.")

    try:
        claims = response.json()
    except ValueError as exc:
        raise GoogleTokenError("Invalid Google ID token.") from exc
    if not isinstance(claims, dict):
        raise GoogleTokenError("Invalid Google ID token.")
    audience = str(claims.get("aud") or "")
    if settings.GOOGLE_CLIENT_ID and audience != settings.GOOGLE_CLIENT_ID:
        raise GoogleTokenError("Google ID token was issued for another client.")

    email = str(claims.get("email") or "").strip().lower()
    if not email:
        raise GoogleTokenError("Google ID token has no email claim.")
    if str(claims.get("email_verified", "")).lower() != "true":
        raise GoogleTokenError("Google account email is not verified.")

    return GoogleIdentity(
        subject=str(claims.get("sub") or ""),
        email=email,
        name=claims.get("name"),
        picture=claims.get("picture"),
    )
