"""Order creation and checkout verification against the payment gateway.

Trust boundary: a valid checkout signature proves the client received a
gateway-issued callback for this order. No server-to-server capture lookup is
made before the order is marked paid.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from config import settings
from models.order import Order
from models.subscription import Subscription
from services.entitlements import get_user, grant_subscription, plan_months
from services.providers import BasePaymentGateway

logger = logging.getLogger(__name__)


ORDER_CREATED = "created"
ORDER_PAID = "paid"


@dataclass
class SettlementResult:
    order: Order
    subscription: Optional[Subscription] = None
    already_verified: bool = False


def _plan_price(plan_id: str) -> Optional[int]:
    price = (settings.PLAN_PRICES or {}).get(plan_id)
    return int(price) if price is not None else None


async def create_order(
    gateway: BasePaymentGateway,
    db: AsyncSession,
    *,
    user_id: str,
    amount: Optional[int] = None,
    plan_id: Optional[str] = None,
    currency: Optional[str] = None,
) -> Order:
    """Mint a gateway order and mirror it locally with status ``created``."""
    resolved_plan = str(plan_id).strip().lower() if plan_id else None
    if resolved_plan:
        plan_months(resolved_plan)
        if amount is None:
            amount = _plan_price(resolved_plan)
    if amount is None:
        raise HTTPException(status_code=400, detail="amount or plan_id is required")
    if int(amount) <= 0:
        raise HTTPException(status_code=400, detail="amount must be greater than 0")

    await get_user(db, user_id)
    receipt = f"rcpt_{uuid.uuid4().hex[:24]}"
    gateway_order = await gateway.create_order(
        amount=int(amount),
        currency=(currency or settings.PAYMENT_CURRENCY).upper(),
        receipt=receipt,
        notes={"user_id": user_id, "plan_id": resolved_plan or ""},
    )

    order = Order(
        user_id=user_id,
        provider=gateway.provider_name,
        provider_order_id=gateway_order.order_id,
        amount=gateway_order.amount,
        currency=gateway_order.currency,
        receipt=gateway_order.receipt or receipt,
        plan_id=resolved_plan,
        status=ORDER_CREATED,
    )
    db.add(order)
    await db.commit()
    await db.refresh(order)
    logger.info("order_created user=%s order=%s amount=%s plan=%s", user_id, order.provider_order_id, order.amount, resolved_plan)
    return order


def _resolve_plan(order: Order, supplied_plan: Optional[str]) -> Optional[str]:
    supplied = str(supplied_plan).strip().lower() if supplied_plan else None
    if order.plan_id:
        if supplied and supplied != order.plan_id:
            raise HTTPException(status_code=400, detail="plan_id does not match the order")
        return order.plan_id
    if not supplied:
        return None
    plan_months(supplied)
    price = _plan_price(supplied)
    if price is not None and int(order.amount) < price:
        raise HTTPException(status_code=400, detail="Order amount does not cover the requested plan")
    return supplied


async def verify_payment(
    gateway: BasePaymentGateway,
    db: AsyncSession,
    *,
    user_id: str,
    order_id: str,
    payment_id: str,
    signature: str,
    plan_id: Optional[str] = None,
) -> SettlementResult:
    """Check the checkout signature, then mark the order paid and grant access.

    A mismatched signature leaves the order and the user untouched.
    """
    result = await db.execute(
        select(Order).where(
            Order.provider_order_id == order_id,
            Order.user_id == user_id,
        )
    )
    order = result.scalar_one_or_none()
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")

    if not gateway.verify_payment_signature(order_id, payment_id, signature):
        logger.warning("payment_signature_mismatch user=%s order=%s payment=%s", user_id, order_id, payment_id)
        raise HTTPException(status_code=400, detail="Invalid payment signature")

    if order.status == ORDER_PAID:
        return SettlementResult(order=order, already_verified=True)

    resolved_plan = _resolve_plan(order, plan_id)
    user = await get_user(db, user_id)

    order.status = ORDER_PAID
    order.payment_id = payment_id
    order.paid_at = datetime.now(timezone.utc)
    if resolved_plan:
        order.plan_id = resolved_plan
    user.is_premium = True

    subscription = None
    if resolved_plan:
        subscription = await grant_subscription(
            db,
            user_id,
            plan_id=resolved_plan,
            months=plan_months(resolved_plan),
            order_id=order.id,
        )

    await db.commit()
    await db.refresh(order)
    logger.info("order_paid user=%s order=%s payment=%s plan=%s", user_id, order_id, payment_id, resolved_plan)
    return SettlementResult(order=order, subscription=subscription)
