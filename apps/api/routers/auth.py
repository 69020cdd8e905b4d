"""
Authentication router for password and Google sign-in.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from database import get_db
from models.user import User
from routers.auth_scope import AuthContext, get_auth_context
from routers.rate_limit import rate_limit
from services.google_identity import GoogleTokenError, verify_google_id_token
from services.passwords import hash_password, verify_password
from services.session_token import issue_session

router = APIRouter()
logger = logging.getLogger(__name__)


class RegisterRequest(BaseModel):
    username: str = Field(min_length=3, max_length=64)
    email: str = Field(min_length=3, max_length=320)
    password: str = Field(min_length=8, max_length=256)
    name: Optional[str] = None


class LoginRequest(BaseModel):
    username: str = Field(min_length=1, description="Username or email")
    password: str = Field(min_length=1)


class GoogleLoginRequest(BaseModel):
    id_token: str = Field(min_length=1)


class GoogleRegisterRequest(BaseModel):
    id_token: str = Field(min_length=1)
    username: str = Field(min_length=3, max_length=64)


class SessionResponse(BaseModel):
    user_id: str
    username: Optional[str] = None
    email: str
    name: Optional[str] = None
    picture: Optional[str] = None
    is_premium: bool = False
    is_admin: bool = False
    session_token: str
    session_expires_at: int


class CurrentUserResponse(BaseModel):
    user_id: str
    username: Optional[str] = None
    email: str
    name: Optional[str] = None
    picture: Optional[str] = None
    auth_provider: str
    is_premium: bool = False
    is_admin: bool = False


def _session_response(user: User) -> SessionResponse:
    session = issue_session(user.id, user.email)
    return SessionResponse(
        user_id=user.id,
        username=user.username,
        email=user.email,
        name=user.name,
        picture=user.picture,
        is_premium=bool(user.is_premium),
        is_admin=bool(user.is_admin),
        session_token=session.token,
        session_expires_at=session.expires_at,
    )


@router.post("/register", response_model=SessionResponse)
async def register(
    request: RegisterRequest,
    _rate_limit: None = Depends(rate_limit("auth_register", limit=20, window_seconds=3600)),
    db: AsyncSession = Depends(get_db),
):
    """Create a password account. Passwords are stored as salted PBKDF2 hashes."""
    username = request.username.strip()
    email = request.email.strip().lower()
    if "@" not in email:
        raise HTTPException(status_code=400, detail="A valid email is required")
    if "@" in username:
        raise HTTPException(status_code=400, detail="Username cannot contain @")

    existing = await db.execute(
        select(User.id).where(
            or_(
                User.email == email,
                User.username == username,
                User.email == username.lower(),
                User.username == email,
            )
        )
    )
    if existing.first():
        raise HTTPException(status_code=409, detail="User already exists")

    user = User(
        username=username,
        email=email,
        name=request.name or username,
        password_hash=hash_password(request.password),
        auth_provider="password",
    )
    db.add(user)
    try:
        await db.commit()
    except IntegrityError as exc:
        await db.rollback()
        raise HTTPException(status_code=409, detail="User already exists") from exc
    await db.refresh(user)
    logger.info("user_registered user=%s", user.id)
    return _session_response(user)


@router.post("/login", response_model=SessionResponse)
async def login(
    request: LoginRequest,
    _rate_limit: None = Depends(rate_limit("auth_login", limit=30, window_seconds=900)),
    db: AsyncSession = Depends(get_db),
):
    """Sign in with username or email plus password."""
    identifier = request.username.strip()
    if "@" in identifier:
        lookup = User.email == identifier.lower()
    else:
        lookup = User.username == identifier
    result = await db.execute(select(User).where(lookup))
    user = result.scalar_one_or_none()
    if not user or not verify_password(request.password, user.password_hash):
        raise HTTPException(status_code=401, detail="Invalid username or password")
    return _session_response(user)


@router.post("/google-login", response_model=SessionResponse)
async def google_login(
    request: GoogleLoginRequest,
    _rate_limit: None = Depends(rate_limit("auth_google", limit=30, window_seconds=900)),
    db: AsyncSession = Depends(get_db),
):
    """Verify a Google ID token and sign in, creating the account on first use."""
    try:
        identity = await verify_google_id_token(request.id_token)
    except GoogleTokenError as exc:
        raise HTTPException(status_code=401, detail=str(exc)) from exc

    result = await db.execute(select(User).where(User.email == identity.email))
    user = result.scalar_one_or_none()
    if not user:
        user = User(
            email=identity.email,
            name=identity.name,
            picture=identity.picture,
            auth_provider="google",
        )
        db.add(user)
        try:
            await db.commit()
        except IntegrityError:
            await db.rollback()
            result = await db.execute(select(User).where(User.email == identity.email))
            user = result.scalar_one()
        else:
            await db.refresh(user)
            logger.info("user_registered_google user=%s", user.id)
    elif identity.picture and not user.picture:
        user.picture = identity.picture
        await db.commit()
        await db.refresh(user)
    return _session_response(user)


@router.post("/google-register", response_model=SessionResponse)
async def google_register(
    request: GoogleRegisterRequest,
    _rate_limit: None = Depends(rate_limit("auth_google_register", limit=20, window_seconds=3600)),
    db: AsyncSession = Depends(get_db),
):
    """Create a Google account with a chosen username. Existing accounts answer 409."""
    username = request.username.strip()
    if "@" in username:
        raise HTTPException(status_code=400, detail="Username cannot contain @")
    try:
        identity = await verify_google_id_token(request.id_token)
    except GoogleTokenError as exc:
        raise HTTPException(status_code=401, detail=str(exc)) from exc

    existing = await db.execute(select(User.id).where(or_(User.email == identity.email, User.username == username)))
    if existing.first():
        raise HTTPException(status_code=409, detail="User already exists")

    user = User(
        username=username,
        email=identity.email,
        name=identity.name or username,
        picture=identity.picture,
        auth_provider="google",
    )
    db.add(user)
    try:
        await db.commit()
    except IntegrityError as exc:
        await db.rollback()
        raise HTTPException(status_code=409, detail="User already exists") from exc
    await db.refresh(user)
    logger.info("user_registered_google user=%s", user.id)
    return _session_response(user)


@router.get("/me", response_model=CurrentUserResponse)
async def get_current_user(
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    """Get the signed-in user's profile and entitlement flag."""
    result = await db.execute(select(User).where(User.id == auth.user_id))
    user = result.scalar_one_or_none()
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return CurrentUserResponse(
        user_id=user.id,
        username=user.username,
        email=user.email,
        name=user.name,
        picture=user.picture,
        auth_provider=user.auth_provider or "password",
        is_premium=bool(user.is_premium),
        is_admin=bool(user.is_admin),
    )
