"""Bearer session dependencies: viewer scoping and the catalog admin gate."""

from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from database import get_db
from models.user import User
from services.session_token import read_session


auth_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class AuthContext:
    user_id: str
    email: Optional[str] = None


def ensure_user_scope(auth_user_id: str, supplied_user_id: Optional[str]) -> str:
    """Entitlement and payment calls may only name the signed-in user."""
    if supplied_user_id and supplied_user_id != auth_user_id:
        raise HTTPException(status_code=403, detail="user_id does not match authenticated session.")
    return auth_user_id


async def get_auth_context(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(auth_scheme),
) -> AuthContext:
    if credentials is None:
        raise HTTPException(status_code=401, detail="Missing Bearer session token.")
    try:
        claims = read_session(credentials.credentials)
    except ValueError as exc:
        raise HTTPException(status_code=401, detail=str(exc)) from exc
    return AuthContext(user_id=claims.user_id, email=claims.email)


async def require_admin(
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
) -> AuthContext:
    """Catalog writes and ingestion are limited to users flagged ``is_admin``.

    The flag is read per request so revoking it takes effect immediately.
    """
    result = await db.execute(select(User.is_admin).where(User.id == auth.user_id))
    if not result.scalar_one_or_none():
        raise HTTPException(status_code=403, detail="Catalog administrator access required.")
    return auth
