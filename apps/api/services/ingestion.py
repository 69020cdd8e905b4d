"""Two-phase video ingestion: mint a Mux direct upload, then poll until ready.

The client uploads bytes straight to the provider URL, so this process never
handles media. Readiness is learned either by client polling
(``poll_status``) or by the provider webhook; both end in ``finalize``.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Union

from fastapi import HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from config import settings
from models.media_asset import MediaAsset
from models.movie import Movie
from models.series import Episode
from services.providers import BaseMediaProvider

logger = logging.getLogger(__name__)


REQUESTED = "requested"
UPLOADING = "uploading"
PROCESSING = "processing"
READY = "ready"
FAILED = "failed"

ENTRY_TYPES = ("movie", "episode")
FAILED_UPLOAD_STATUSES = ("errored", "cancelled", "timed_out")

CatalogEntry = Union[Movie, Episode]


@dataclass(frozen=True)
class UploadTicket:
    upload_id: str
    url: str
    media_asset_id: str


@dataclass(frozen=True)
class IngestStatus:
    state: str
    asset_id: Optional[str] = None
    playback_id: Optional[str] = None
    error_message: Optional[str] = None

    @property
    def ready(self) -> bool:
        return self.state == READY and bool(self.playback_id)


def _normalize_entry_type(entry_type: Optional[str]) -> str:
    value = str(entry_type or "movie").strip().lower()
    if value not in ENTRY_TYPES:
        raise HTTPException(status_code=400, detail=f"entry_type must be one of: {', '.join(ENTRY_TYPES)}")
    return value


async def load_entry(db: AsyncSession, entry_type: str, entry_id: str) -> CatalogEntry:
    """Fetch the movie or episode row a playback id belongs to."""
    model = Movie if _normalize_entry_type(entry_type) == "movie" else Episode
    result = await db.execute(select(model).where(model.id == entry_id))
    entry = result.scalar_one_or_none()
    if not entry:
        raise HTTPException(status_code=404, detail=f"{model.__name__} not found")
    return entry


async def get_asset_by_upload(db: AsyncSession, upload_id: str) -> Optional[MediaAsset]:
    result = await db.execute(select(MediaAsset).where(MediaAsset.upload_id == upload_id))
    return result.scalar_one_or_none()


def _mark_ready(asset: MediaAsset, *, playback_id: str, provider_asset_id: Optional[str] = None) -> None:
    asset.status = READY
    asset.playback_id = playback_id
    asset.error_message = None
    if provider_asset_id:
        asset.provider_asset_id = provider_asset_id
    if asset.ready_at is None:
        asset.ready_at = datetime.now(timezone.utc)


def _mark_failed(asset: MediaAsset, message: Optional[str]) -> None:
    if asset.status == READY:
        return
    asset.status = FAILED
    asset.playback_id = None
    asset.error_message = message or "Provider reported a failed upload."


async def begin_upload(
    provider: BaseMediaProvider,
    db: AsyncSession,
    *,
    user_id: Optional[str] = None,
    entry_type: Optional[str] = "movie",
    entry_id: Optional[str] = None,
) -> UploadTicket:
    """Mint one provider upload session and record it as an uploading asset.

    Every call bills a new session; there is no idempotency key. Nothing is
    written locally when the provider call fails.
    """
    resolved_type = _normalize_entry_type(entry_type)
    if entry_id:
        await load_entry(db, resolved_type, entry_id)

    upload = await provider.create_direct_upload(
        playback_policy=settings.MUX_PLAYBACK_POLICY,
        cors_origin=settings.MUX_UPLOAD_CORS_ORIGIN,
    )

    asset = MediaAsset(
        user_id=user_id,
        entry_type=resolved_type,
        entry_id=entry_id,
        upload_id=upload.upload_id,
        status=UPLOADING,
    )
    db.add(asset)
    await db.commit()
    await db.refresh(asset)
    logger.info("mux_upload_created upload=%s entry=%s:%s user=%s", upload.upload_id, resolved_type, entry_id, user_id)
    return UploadTicket(upload_id=upload.upload_id, url=upload.url, media_asset_id=asset.id)


async def poll_status(provider: BaseMediaProvider, upload_id: str) -> IngestStatus:
    """Read the provider's view of an upload. Persists nothing."""
    upload = await provider.retrieve_upload(upload_id)
    if upload.status in FAILED_UPLOAD_STATUSES:
        return IngestStatus(state=FAILED, error_message=upload.error_message or f"Upload {upload.status}")
    if not upload.asset_id:
        return IngestStatus(state=UPLOADING)

    asset = await provider.retrieve_asset(upload.asset_id)
    if asset.status == "errored":
        return IngestStatus(state=FAILED, asset_id=asset.asset_id, error_message="Asset encoding failed")
    if asset.status == "ready" and asset.playback_id:
        return IngestStatus(state=READY, asset_id=asset.asset_id, playback_id=asset.playback_id)
    return IngestStatus(state=PROCESSING, asset_id=asset.asset_id)


async def finalize(
    db: AsyncSession,
    *,
    entry_type: str,
    entry_id: str,
    playback_id: str,
    upload_id: Optional[str] = None,
    provider_asset_id: Optional[str] = None,
) -> CatalogEntry:
    """Attach a playback id to a catalog entry and close out its asset record.

    Repeating the call with the same playback id leaves the same final state.
    """
    playback_id = (playback_id or "").strip()
    if not playback_id:
        raise HTTPException(status_code=400, detail="playback_id is required")

    resolved_type = _normalize_entry_type(entry_type)
    entry = await load_entry(db, resolved_type, entry_id)

    asset = await get_asset_by_upload(db, upload_id) if upload_id else None
    if asset and asset.entry_id and (asset.entry_id, asset.entry_type) != (entry_id, resolved_type):
        raise HTTPException(status_code=409, detail="Upload is already linked to another catalog entry")

    entry.mux_playback_id = playback_id
    if isinstance(entry, Movie):
        if upload_id:
            entry.mux_upload_id = upload_id
        if provider_asset_id:
            entry.mux_asset_id = provider_asset_id

    if asset:
        asset.entry_type = resolved_type
        asset.entry_id = entry_id
        _mark_ready(asset, playback_id=playback_id, provider_asset_id=provider_asset_id)

    await db.commit()
    await db.refresh(entry)
    logger.info("catalog_playback_attached entry=%s:%s playback=%s", resolved_type, entry_id, playback_id)
    return entry


def verify_webhook_signature(
    body: bytes,
    header: Optional[str],
    secret: str,
    *,
    tolerance_seconds: int = 300,
    now: Optional[float] = None,
) -> bool:
    """Check a ``Mux-Signature: t=<ts>,v1=<hex>`` header against the raw body."""
    if not header:
        return False
    parts: Dict[str, list] = {}
    for item in header.split(","):
        key, _, value = item.strip().partition("=")
        if key and value:
            parts.setdefault(key, []).append(value)
    timestamps = parts.get("t") or []
    signatures = parts.get("v1") or []
    if not timestamps or not signatures:
        return False
    try:
        timestamp = int(timestamps[0])
    except ValueError:
        return False
    current = time.time() if now is None else now
    if tolerance_seconds and abs(current - timestamp) > tolerance_seconds:
        return False

    signed_payload = f"{timestamp}.".encode("utf-8") + body
    expected = hmac.new(secret.encode("utf-8"), signed_payload, hashlib.sha256).hexdigest()
    return any(hmac.compare_digest(expected, candidate) for candidate in signatures)


async def handle_webhook_event(db: AsyncSession, event: Dict[str, Any]) -> Optional[MediaAsset]:
    """Apply a provider webhook event to the matching asset record."""
    event_type = str(event.get("type") or "")
    data = event.get("data") or {}
    upload_id = data.get("upload_id") if event_type.startswith("video.asset.") else data.get("id")
    if not upload_id:
        logger.info("mux_webhook_ignored type=%s reason=no_upload_id", event_type)
        return None

    asset = await get_asset_by_upload(db, str(upload_id))
    if not asset:
        logger.info("mux_webhook_ignored type=%s upload=%s reason=unknown_upload", event_type, upload_id)
        return None

    if event_type == "video.upload.asset_created":
        if asset.status in (REQUESTED, UPLOADING):
            asset.status = PROCESSING
            asset.provider_asset_id = data.get("asset_id") or asset.provider_asset_id
    elif event_type in ("video.upload.errored", "video.upload.cancelled"):
        error = data.get("error") or {}
        _mark_failed(asset, error.get("message") if isinstance(error, dict) else None)
    elif event_type == "video.asset.errored":
        errors = data.get("errors") or {}
        messages = errors.get("messages") if isinstance(errors, dict) else None
        _mark_failed(asset, "; ".join(messages) if messages else "Asset encoding failed")
    elif event_type == "video.asset.ready":
        playback_ids = [entry.get("id") for entry in data.get("playback_ids") or [] if entry.get("id")]
        if not playback_ids:
            logger.warning("mux_webhook_ready_without_playback upload=%s", upload_id)
            return asset
        if asset.entry_id:
            await finalize(
                db,
                entry_type=asset.entry_type,
                entry_id=asset.entry_id,
                playback_id=playback_ids[0],
                upload_id=asset.upload_id,
                provider_asset_id=data.get("id"),
            )
            await db.refresh(asset)
            return asset
        _mark_ready(asset, playback_id=playback_ids[0], provider_asset_id=data.get("id"))
    else:
        return asset

    await db.commit()
    await db.refresh(asset)
    logger.info("mux_webhook_applied type=%s upload=%s status=%s", event_type, upload_id, asset.status)
    return asset
