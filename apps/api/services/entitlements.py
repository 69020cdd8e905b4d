"""Premium flag, subscription windows and promo code helpers."""

from __future__ import annotations

import calendar
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import HTTPException
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from config import settings
from models.promo_redemption import PromoRedemption
from models.subscription import Subscription
from models.user import User

logger = logging.getLogger(__name__)


PLAN_DURATIONS_MONTHS: Dict[str, int] = {
    "monthly": 1,
    "quarterly": 3,
    "yearly": 12,
}


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes; everything is stored in UTC.
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def add_months(value: datetime, months: int) -> datetime:
    """Calendar month arithmetic, clamping to the last day of shorter months."""
    month_index = value.month - 1 + int(months)
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def plan_months(plan_id: Optional[str]) -> int:
    months = PLAN_DURATIONS_MONTHS.get(str(plan_id or "").strip().lower())
    if not months:
        raise HTTPException(
            status_code=400,
            detail=f"Unknown plan_id. Expected one of: {', '.join(PLAN_DURATIONS_MONTHS)}",
        )
    return months


async def get_user(db: AsyncSession, user_id: str) -> User:
    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user


async def get_active_subscription(
    user_id: str,
    db: AsyncSession,
    now: Optional[datetime] = None,
) -> Optional[Subscription]:
    current = now or datetime.now(timezone.utc)
    result = await db.execute(
        select(Subscription)
        .where(Subscription.user_id == user_id)
        .order_by(Subscription.expires_at.desc())
        .limit(1)
    )
    latest = result.scalar_one_or_none()
    if latest and as_utc(latest.expires_at) > current:
        return latest
    return None


async def grant_subscription(
    db: AsyncSession,
    user_id: str,
    *,
    plan_id: str,
    months: int,
    order_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Subscription:
    """Add a window that starts when the current active window ends."""
    current = now or datetime.now(timezone.utc)
    active = await get_active_subscription(user_id, db, now=current)
    starts_at = as_utc(active.expires_at) if active else current
    subscription = Subscription(
        user_id=user_id,
        plan_id=plan_id,
        order_id=order_id,
        starts_at=starts_at,
        expires_at=add_months(starts_at, months),
    )
    db.add(subscription)
    await db.flush()
    return subscription


def serialize_subscription(subscription: Optional[Subscription]) -> Optional[Dict[str, Any]]:
    if not subscription:
        return None
    starts_at = as_utc(subscription.starts_at)
    expires_at = as_utc(subscription.expires_at)
    return {
        "id": subscription.id,
        "plan_id": subscription.plan_id,
        "starts_at": starts_at.isoformat() if starts_at else None,
        "expires_at": expires_at.isoformat() if expires_at else None,
    }


async def get_entitlement_summary(user_id: str, db: AsyncSession) -> Dict[str, Any]:
    user = await get_user(db, user_id)
    subscription = await get_active_subscription(user_id, db)
    if user.is_premium:
        reason = "premium"
    elif subscription:
        reason = "subscription"
    else:
        reason = "none"
    return {
        "user_id": user.id,
        "is_premium": bool(user.is_premium),
        "subscription": serialize_subscription(subscription),
        "has_access": reason != "none",
        "access_reason": reason,
    }


def _promo_catalog() -> Dict[str, int]:
    return {str(code).strip().upper(): int(months) for code, months in (settings.PROMO_CODES or {}).items()}


async def apply_promo_code(user_id: str, db: AsyncSession, code: str) -> Dict[str, Any]:
    """Redeem a promo code once per user, extending the subscription window."""
    normalized = str(code or "").strip().upper()
    months = _promo_catalog().get(normalized)
    if not normalized or not months or months <= 0:
        raise HTTPException(status_code=400, detail="Invalid promo code")

    await get_user(db, user_id)
    existing = await db.execute(
        select(PromoRedemption.id).where(
            PromoRedemption.user_id == user_id,
            PromoRedemption.code == normalized,
        )
    )
    if existing.scalar_one_or_none():
        raise HTTPException(status_code=400, detail="Promo code already used")

    subscription = await grant_subscription(db, user_id, plan_id=f"promo:{normalized}", months=months)
    db.add(PromoRedemption(user_id=user_id, code=normalized, subscription_id=subscription.id))
    try:
        await db.commit()
    except IntegrityError as exc:
        await db.rollback()
        raise HTTPException(status_code=400, detail="Promo code already used") from exc

    logger.info("promo_redeemed user=%s code=%s months=%s", user_id, normalized, months)
    return {
        "success": True,
        "code": normalized,
        "months": months,
        "subscription": serialize_subscription(subscription),
    }
