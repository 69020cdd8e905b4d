"""Entitlement reads and promo code redemption."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from routers.auth_scope import AuthContext, ensure_user_scope, get_auth_context
from routers.rate_limit import rate_limit
from services.entitlements import apply_promo_code, get_entitlement_summary

router = APIRouter()


class PromoRequest(BaseModel):
    code: str = Field(min_length=1, max_length=64)
    user_id: Optional[str] = None


@router.get("/check-premium/{user_id}")
async def check_premium(
    user_id: str,
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    summary = await get_entitlement_summary(ensure_user_scope(auth.user_id, user_id), db)
    return {"user_id": summary["user_id"], "is_premium": summary["is_premium"]}


@router.get("/check-subscription/{user_id}")
async def check_subscription(
    user_id: str,
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    summary = await get_entitlement_summary(ensure_user_scope(auth.user_id, user_id), db)
    return {
        "user_id": summary["user_id"],
        "active": summary["subscription"] is not None,
        "subscription": summary["subscription"],
    }


@router.get("/access/{user_id}")
async def check_access(
    user_id: str,
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    """Gate playback: premium flag or an active subscription window."""
    return await get_entitlement_summary(ensure_user_scope(auth.user_id, user_id), db)


@router.post("/apply-promo")
async def redeem_promo(
    request: PromoRequest,
    _rate_limit: None = Depends(rate_limit("promo_apply", limit=20, window_seconds=3600)),
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    scoped_user_id = ensure_user_scope(auth.user_id, request.user_id)
    return await apply_promo_code(scoped_user_id, db, request.code)
