"""Razorpay client for order creation and checkout signature checks."""

from __future__ import annotations

import hashlib
import hmac
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import httpx

from services.providers.types import GatewayOrder, ProviderError, ProviderNotConfiguredError


def payment_signature(order_id: str, payment_id: str, secret: str) -> str:
    """HMAC-SHA256 hex digest of ``"<order_id>|<payment_id>"`` keyed by the gateway secret."""
    message = f"{order_id}|{payment_id}".encode("utf-8")
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


class BasePaymentGateway(ABC):
    provider_name: str
    configured: bool = True

    @abstractmethod
    async def create_order(
        self,
        *,
        amount: int,
        currency: str,
        receipt: str,
        notes: Optional[Dict[str, str]] = None,
    ) -> GatewayOrder:
        raise NotImplementedError

    @abstractmethod
    def verify_payment_signature(self, order_id: str, payment_id: str, signature: str) -> bool:
        raise NotImplementedError


class RazorpayGateway(BasePaymentGateway):
    """Razorpay Orders API plus local checkout signature verification."""

    provider_name = "razorpay"

    def __init__(
        self,
        *,
        key_id: str,
        key_secret: str,
        base_url: str = "https://api.razorpay.com",
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.key_id = (key_id or "").strip()
        self.key_secret = (key_secret or "").strip()
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport

    @property
    def configured(self) -> bool:
        return bool(self.key_id and self.key_secret)

    async def create_order(
        self,
        *,
        amount: int,
        currency: str,
        receipt: str,
        notes: Optional[Dict[str, str]] = None,
    ) -> GatewayOrder:
        if not self.configured:
            raise ProviderNotConfiguredError(self.provider_name, "RAZORPAY_KEY_ID / RAZORPAY_KEY_SECRET are not configured")
        payload: Dict[str, Any] = {"amount": int(amount), "currency": currency, "receipt": receipt}
        if notes:
            payload["notes"] = notes
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                auth=(self.key_id, self.key_secret),
                timeout=self.timeout,
                transport=self.transport,
            ) as client:
                response = await client.post("/v1/orders", json=payload)
        except httpx.HTTPError as exc:
            raise ProviderError(self.provider_name, f"order creation failed: {exc}") from exc

        try:
            body = response.json()
        except ValueError:
            body = {}
        if response.status_code >= 400:
            error = body.get("error") if isinstance(body, dict) else None
            description = error.get("description") if isinstance(error, dict) else None
            raise ProviderError(
                self.provider_name,
                str(description or f"HTTP {response.status_code}"),
                status_code=response.status_code,
            )
        order_id = str(body.get("id") or "").strip()
        if not order_id:
            raise ProviderError(self.provider_name, "order response missing id")
        return GatewayOrder(
            order_id=order_id,
            amount=int(body.get("amount") or amount),
            currency=str(body.get("currency") or currency),
            status=str(body.get("status") or "created"),
            receipt=body.get("receipt") or receipt,
            raw=body,
        )

    def verify_payment_signature(self, order_id: str, payment_id: str, signature: str) -> bool:
        if not self.key_secret:
            raise ProviderNotConfiguredError(self.provider_name, "RAZORPAY_KEY_SECRET is not configured")
        expected = payment_signature(order_id, payment_id, self.key_secret)
        return hmac.compare_digest(expected.encode("utf-8"), str(signature or "").encode("utf-8"))
