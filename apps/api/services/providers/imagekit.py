"""ImageKit client for poster and thumbnail hosting."""

from __future__ import annotations

import hashlib
import hmac
import time
import uuid
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import httpx

from services.providers.types import HostedImage, ProviderError, ProviderNotConfiguredError


class BaseImageHost(ABC):
    provider_name: str
    configured: bool = True

    @abstractmethod
    async def upload(
        self,
        data: bytes,
        *,
        file_name: str,
        content_type: Optional[str] = None,
        folder: Optional[str] = None,
    ) -> HostedImage:
        raise NotImplementedError

    @abstractmethod
    def authentication_parameters(self, token: Optional[str] = None, expire: Optional[int] = None) -> Dict[str, Any]:
        raise NotImplementedError


class ImageKitImageHost(BaseImageHost):
    """Uploads binary payloads through the ImageKit upload API."""

    provider_name = "imagekit"

    def __init__(
        self,
        *,
        public_key: str,
        private_key: str,
        url_endpoint: str = "",
        upload_url: str = "https://upload.imagekit.io/api/v1/files/upload",
        auth_expire_seconds: int = 2400,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.public_key = (public_key or "").strip()
        self.private_key = (private_key or "").strip()
        self.url_endpoint = url_endpoint
        self.upload_url = upload_url
        self.auth_expire_seconds = auth_expire_seconds
        self.timeout = timeout
        self.transport = transport

    @property
    def configured(self) -> bool:
        return bool(self.private_key)

    def _require_private_key(self) -> str:
        if not self.private_key:
            raise ProviderNotConfiguredError(self.provider_name, "IMAGEKIT_PRIVATE_KEY is not configured")
        return self.private_key

    async def upload(
        self,
        data: bytes,
        *,
        file_name: str,
        content_type: Optional[str] = None,
        folder: Optional[str] = None,
    ) -> HostedImage:
        private_key = self._require_private_key()
        form = {
            "fileName": file_name,
            "useUniqueFileName": "true",
            "isPrivateFile": "false",
        }
        if folder:
            form["folder"] = folder
        files = {"file": (file_name, data, content_type or "application/octet-stream")}
        try:
            async with httpx.AsyncClient(auth=(private_key, ""), timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(self.upload_url, data=form, files=files)
        except httpx.HTTPError as exc:
            raise ProviderError(self.provider_name, f"upload failed: {exc}") from exc

        try:
            payload = response.json()
        except ValueError:
            payload = {}
        if response.status_code >= 400:
            message = payload.get("message") if isinstance(payload, dict) else None
            raise ProviderError(
                self.provider_name,
                str(message or f"HTTP {response.status_code}"),
                status_code=response.status_code,
            )
        url = str(payload.get("url") or "").strip()
        if not url:
            raise ProviderError(self.provider_name, "upload response missing url")
        return HostedImage(
            file_id=str(payload.get("fileId") or ""),
            url=url,
            name=str(payload.get("name") or file_name),
            thumbnail_url=payload.get("thumbnailUrl"),
        )

    def authentication_parameters(self, token: Optional[str] = None, expire: Optional[int] = None) -> Dict[str, Any]:
        """Signed parameters that let a browser upload straight to ImageKit."""
        private_key = self._require_private_key()
        token = token or str(uuid.uuid4())
        expire = int(expire or (time.time() + self.auth_expire_seconds))
        signature = hmac.new(
            private_key.encode("utf-8"),
            f"{token}{expire}".encode("utf-8"),
            hashlib.sha1,
        ).hexdigest()
        return {
            "token": token,
            "expire": expire,
            "signature": signature,
            "publicKey": self.public_key,
            "urlEndpoint": self.url_endpoint,
        }
