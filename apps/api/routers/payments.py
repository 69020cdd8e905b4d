"""Payment router: gateway order creation and checkout verification."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from database import get_db
from models.order import Order
from routers.auth_scope import AuthContext, ensure_user_scope, get_auth_context
from routers.provider_errors import provider_http_error
from routers.rate_limit import rate_limit
from services import payments
from services.entitlements import serialize_subscription
from services.providers import BasePaymentGateway, ProviderError, get_payment_gateway

router = APIRouter()
logger = logging.getLogger(__name__)


class CreateOrderRequest(BaseModel):
    user_id: Optional[str] = None
    amount: Optional[int] = Field(default=None, description="Amount in minor units (paise)")
    currency: Optional[str] = Field(default=None, min_length=3, max_length=3)
    plan_id: Optional[str] = None


class VerifyPaymentRequest(BaseModel):
    user_id: Optional[str] = None
    order_id: str = Field(min_length=1)
    payment_id: str = Field(min_length=1)
    signature: str = Field(min_length=1)
    plan_id: Optional[str] = None


def _serialize_order(order: Order) -> Dict[str, Any]:
    return {
        "id": order.id,
        "order_id": order.provider_order_id,
        "amount": order.amount,
        "currency": order.currency,
        "receipt": order.receipt,
        "plan_id": order.plan_id,
        "status": order.status,
        "payment_id": order.payment_id,
    }


@router.post("/create-order")
async def create_order(
    request: CreateOrderRequest,
    _rate_limit: None = Depends(rate_limit("payment_create_order", limit=30, window_seconds=3600)),
    auth: AuthContext = Depends(get_auth_context),
    gateway: BasePaymentGateway = Depends(get_payment_gateway),
    db: AsyncSession = Depends(get_db),
):
    scoped_user_id = ensure_user_scope(auth.user_id, request.user_id)
    try:
        order = await payments.create_order(
            gateway,
            db,
            user_id=scoped_user_id,
            amount=request.amount,
            plan_id=request.plan_id,
            currency=request.currency,
        )
    except ProviderError as exc:
        raise provider_http_error(exc, "Order creation") from exc
    return {
        **_serialize_order(order),
        "key_id": settings.RAZORPAY_KEY_ID,
    }


@router.post("/verify-payment")
async def verify_payment(
    request: VerifyPaymentRequest,
    auth: AuthContext = Depends(get_auth_context),
    gateway: BasePaymentGateway = Depends(get_payment_gateway),
    db: AsyncSession = Depends(get_db),
):
    """Confirm a checkout callback by signature and activate the entitlement."""
    scoped_user_id = ensure_user_scope(auth.user_id, request.user_id)
    try:
        result = await payments.verify_payment(
            gateway,
            db,
            user_id=scoped_user_id,
            order_id=request.order_id,
            payment_id=request.payment_id,
            signature=request.signature,
            plan_id=request.plan_id,
        )
    except ProviderError as exc:
        raise provider_http_error(exc, "Payment verification") from exc
    return {
        "success": True,
        "already_verified": result.already_verified,
        "order": _serialize_order(result.order),
        "subscription": serialize_subscription(result.subscription),
    }
