"""Provider client contracts."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple


class ProviderError(RuntimeError):
    """Raised when an upstream provider call fails."""

    def __init__(self, provider: str, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(f"{provider}: {message}")
        self.provider = provider
        self.message = message
        self.status_code = status_code


class ProviderNotConfiguredError(ProviderError):
    """Raised when provider credentials are missing."""


@dataclass(frozen=True)
class DirectUpload:
    upload_id: str
    url: str
    status: str


@dataclass(frozen=True)
class UploadInfo:
    upload_id: str
    status: str  # waiting, asset_created, errored, cancelled, timed_out
    asset_id: Optional[str] = None
    error_message: Optional[str] = None


@dataclass(frozen=True)
class AssetInfo:
    asset_id: str
    status: str  # preparing, ready, errored
    playback_ids: Tuple[str, ...] = ()
    duration_seconds: Optional[float] = None

    @property
    def playback_id(self) -> Optional[str]:
        return self.playback_ids[0] if self.playback_ids else None


@dataclass(frozen=True)
class HostedImage:
    file_id: str
    url: str
    name: str
    thumbnail_url: Optional[str] = None


@dataclass(frozen=True)
class GatewayOrder:
    order_id: str
    amount: int
    currency: str
    status: str
    receipt: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict)
