"""Public provider client utilities.

The getters double as FastAPI dependencies so tests can swap in fakes through
``app.dependency_overrides``.
"""

from functools import lru_cache

from config import settings
from services.providers.imagekit import BaseImageHost, ImageKitImageHost
from services.providers.mux import BaseMediaProvider, MuxMediaProvider
from services.providers.razorpay import BasePaymentGateway, RazorpayGateway, payment_signature
from services.providers.types import (
    AssetInfo,
    DirectUpload,
    GatewayOrder,
    HostedImage,
    ProviderError,
    ProviderNotConfiguredError,
    UploadInfo,
)


@lru_cache
def get_media_provider() -> BaseMediaProvider:
    return MuxMediaProvider(
        token_id=settings.MUX_TOKEN_ID,
        token_secret=settings.MUX_TOKEN_SECRET,
        base_url=settings.MUX_API_BASE_URL,
        timeout=settings.PROVIDER_TIMEOUT_SECONDS,
    )


@lru_cache
def get_image_host() -> BaseImageHost:
    return ImageKitImageHost(
        public_key=settings.IMAGEKIT_PUBLIC_KEY,
        private_key=settings.IMAGEKIT_PRIVATE_KEY,
        url_endpoint=settings.IMAGEKIT_URL_ENDPOINT,
        upload_url=settings.IMAGEKIT_UPLOAD_URL,
        auth_expire_seconds=settings.IMAGEKIT_AUTH_EXPIRE_SECONDS,
        timeout=settings.PROVIDER_TIMEOUT_SECONDS,
    )


@lru_cache
def get_payment_gateway() -> BasePaymentGateway:
    return RazorpayGateway(
        key_id=settings.RAZORPAY_KEY_ID,
        key_secret=settings.RAZORPAY_KEY_SECRET,
        base_url=settings.RAZORPAY_API_BASE_URL,
        timeout=settings.PROVIDER_TIMEOUT_SECONDS,
    )


__all__ = [
    "AssetInfo",
    "BaseImageHost",
    "BaseMediaProvider",
    "BasePaymentGateway",
    "DirectUpload",
    "GatewayOrder",
    "HostedImage",
    "ImageKitImageHost",
    "MuxMediaProvider",
    "ProviderError",
    "ProviderNotConfiguredError",
    "RazorpayGateway",
    "UploadInfo",
    "get_image_host",
    "get_media_provider",
    "get_payment_gateway",
    "payment_signature",
]
