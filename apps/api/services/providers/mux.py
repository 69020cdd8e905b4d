"""Mux Video client for direct uploads and asset lookups."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import httpx

from services.providers.types import (
    AssetInfo,
    DirectUpload,
    ProviderError,
    ProviderNotConfiguredError,
    UploadInfo,
)


class BaseMediaProvider(ABC):
    provider_name: str
    configured: bool = True

    @abstractmethod
    async def create_direct_upload(self, *, playback_policy: str, cors_origin: str) -> DirectUpload:
        raise NotImplementedError

    @abstractmethod
    async def retrieve_upload(self, upload_id: str) -> UploadInfo:
        raise NotImplementedError

    @abstractmethod
    async def retrieve_asset(self, asset_id: str) -> AssetInfo:
        raise NotImplementedError


def _error_message(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return f"HTTP {response.status_code}"
    error = payload.get("error") if isinstance(payload, dict) else None
    if isinstance(error, dict):
        messages = error.get("messages") or []
        if messages:
            return "; ".join(str(message) for message in messages)
        if error.get("type"):
            return str(error["type"])
    return f"HTTP {response.status_code}"


class MuxMediaProvider(BaseMediaProvider):
    """Talks to the Mux Video REST API with basic token auth."""

    provider_name = "mux"

    def __init__(
        self,
        *,
        token_id: str,
        token_secret: str,
        base_url: str = "https://api.mux.com",
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.token_id = (token_id or "").strip()
        self.token_secret = (token_secret or "").strip()
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport

    @property
    def configured(self) -> bool:
        return bool(self.token_id and self.token_secret)

    async def _request(self, method: str, path: str, payload: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        if not self.configured:
            raise ProviderNotConfiguredError(self.provider_name, "MUX_TOKEN_ID / MUX_TOKEN_SECRET are not configured")
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                auth=(self.token_id, self.token_secret),
                timeout=self.timeout,
                transport=self.transport,
            ) as client:
                response = await client.request(method, path, json=payload)
        except httpx.HTTPError as exc:
            raise ProviderError(self.provider_name, f"request to {path} failed: {exc}") from exc

        if response.status_code >= 400:
            raise ProviderError(self.provider_name, _error_message(response), status_code=response.status_code)
        try:
            body = response.json()
        except ValueError as exc:
            raise ProviderError(self.provider_name, "invalid JSON response", status_code=response.status_code) from exc
        if not isinstance(body, dict):
            raise ProviderError(self.provider_name, "unexpected response body", status_code=response.status_code)
        data = body.get("data") or {}
        if not isinstance(data, dict):
            raise ProviderError(self.provider_name, "unexpected response body", status_code=response.status_code)
        return data

    async def create_direct_upload(self, *, playback_policy: str = "public", cors_origin: str = "*") -> DirectUpload:
        data = await self._request(
            "POST",
            "/video/v1/uploads",
            {
                "new_asset_settings": {"playback_policy": [playback_policy]},
                "cors_origin": cors_origin,
            },
        )
        upload_id = str(data.get("id") or "").strip()
        url = str(data.get("url") or "").strip()
        if not upload_id or not url:
            raise ProviderError(self.provider_name, "direct upload response missing id or url")
        return DirectUpload(upload_id=upload_id, url=url, status=str(data.get("status") or "waiting"))

    async def retrieve_upload(self, upload_id: str) -> UploadInfo:
        data = await self._request("GET", f"/video/v1/uploads/{upload_id}")
        error = data.get("error") or {}
        return UploadInfo(
            upload_id=str(data.get("id") or upload_id),
            status=str(data.get("status") or "waiting"),
            asset_id=data.get("asset_id") or None,
            error_message=error.get("message") if isinstance(error, dict) else None,
        )

    async def retrieve_asset(self, asset_id: str) -> AssetInfo:
        data = await self._request("GET", f"/video/v1/assets/{asset_id}")
        playback_ids: List[str] = [
            str(entry.get("id"))
            for entry in data.get("playback_ids") or []
            if isinstance(entry, dict) and entry.get("id")
        ]
        duration = data.get("duration")
        return AssetInfo(
            asset_id=str(data.get("id") or asset_id),
            status=str(data.get("status") or "preparing"),
            playback_ids=tuple(playback_ids),
            duration_seconds=float(duration) if duration is not None else None,
        )
