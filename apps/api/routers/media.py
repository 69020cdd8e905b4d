"""Video ingestion router: Mux direct uploads, readiness polling and finalize."""

from __future__ import annotations

import json
import logging
from typing import Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import Field
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from database import get_db
from models.movie import Movie
from routers.auth_scope import AuthContext, get_auth_context, require_admin
from routers.camel_model import CamelModel
from routers.provider_errors import provider_http_error
from routers.rate_limit import rate_limit
from services import ingestion
from services.providers import BaseImageHost, BaseMediaProvider, ProviderError, get_image_host, get_media_provider

router = APIRouter()
logger = logging.getLogger(__name__)


class DirectUploadRequest(CamelModel):
    entry_type: Literal["movie", "episode"] = "movie"
    entry_id: Optional[str] = None


class DirectUploadResponse(CamelModel):
    url: str
    upload_id: str
    media_asset_id: str


class AssetStatusResponse(CamelModel):
    ready: bool
    state: str
    asset_id: Optional[str] = None
    playback_id: Optional[str] = None
    error: Optional[str] = None


class FinalizeMovieRequest(CamelModel):
    movie_id: Optional[str] = None
    movie_title: Optional[str] = Field(default=None, max_length=300)
    description: Optional[str] = None
    playback_id: str = Field(min_length=1, max_length=200)
    upload_id: Optional[str] = None
    asset_id: Optional[str] = None


class FinalizeEpisodeRequest(CamelModel):
    episode_id: str = Field(min_length=1)
    playback_id: str = Field(min_length=1, max_length=200)
    upload_id: Optional[str] = None
    asset_id: Optional[str] = None


class FinalizeResponse(CamelModel):
    success: bool = True
    id: str
    playback_id: str


@router.post("/mux-direct-upload", response_model=DirectUploadResponse)
async def create_direct_upload(
    request: Optional[DirectUploadRequest] = None,
    _rate_limit: None = Depends(rate_limit("mux_direct_upload", limit=30, window_seconds=3600)),
    auth: AuthContext = Depends(require_admin),
    provider: BaseMediaProvider = Depends(get_media_provider),
    db: AsyncSession = Depends(get_db),
):
    """Mint a single-use upload URL. Each call creates a new billable session."""
    request = request or DirectUploadRequest()
    try:
        ticket = await ingestion.begin_upload(
            provider,
            db,
            user_id=auth.user_id,
            entry_type=request.entry_type,
            entry_id=request.entry_id,
        )
    except ProviderError as exc:
        raise provider_http_error(exc, "Mux direct upload") from exc
    return DirectUploadResponse(url=ticket.url, upload_id=ticket.upload_id, media_asset_id=ticket.media_asset_id)


@router.get(
    "/mux-asset-status/{upload_id}",
    response_model=AssetStatusResponse,
    response_model_exclude_none=True,
)
async def get_asset_status(
    upload_id: str,
    _auth: AuthContext = Depends(require_admin),
    provider: BaseMediaProvider = Depends(get_media_provider),
):
    """Report whether the upload has become a playable asset. Read-only."""
    logger.debug("Checking Mux asset status for upload %s", upload_id)
    try:
        status = await ingestion.poll_status(provider, upload_id)
    except ProviderError as exc:
        raise provider_http_error(exc, "Mux asset status") from exc
    return AssetStatusResponse(
        ready=status.ready,
        state=status.state,
        asset_id=status.asset_id,
        playback_id=status.playback_id if status.ready else None,
        error=status.error_message,
    )


@router.post("/upload-movie-mux", response_model=FinalizeResponse)
async def finalize_movie(
    request: FinalizeMovieRequest,
    _auth: AuthContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Attach a ready playback id to a movie, creating the movie when no id is given."""
    movie_id = request.movie_id
    if not movie_id:
        title = (request.movie_title or "").strip()
        description = (request.description or "").strip()
        if not title or not description:
            raise HTTPException(status_code=400, detail="Missing required fields")
        movie = Movie(title=title, description=description)
        db.add(movie)
        await db.flush()
        movie_id = movie.id

    entry = await ingestion.finalize(
        db,
        entry_type="movie",
        entry_id=movie_id,
        playback_id=request.playback_id,
        upload_id=request.upload_id,
        provider_asset_id=request.asset_id,
    )
    return FinalizeResponse(id=entry.id, playback_id=entry.mux_playback_id)


@router.post("/upload-episode-mux", response_model=FinalizeResponse)
async def finalize_episode(
    request: FinalizeEpisodeRequest,
    _auth: AuthContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Attach a ready playback id to an existing episode."""
    entry = await ingestion.finalize(
        db,
        entry_type="episode",
        entry_id=request.episode_id,
        playback_id=request.playback_id,
        upload_id=request.upload_id,
        provider_asset_id=request.asset_id,
    )
    return FinalizeResponse(id=entry.id, playback_id=entry.mux_playback_id)


@router.post("/mux-webhook")
async def mux_webhook(request: Request, db: AsyncSession = Depends(get_db)):
    """Finalize uploads from provider push notifications."""
    body = await request.body()
    secret = (settings.MUX_WEBHOOK_SECRET or "").strip()
    if not secret:
        raise HTTPException(status_code=503, detail="Mux webhook secret is not configured.")
    if not ingestion.verify_webhook_signature(
        body,
        request.headers.get("mux-signature"),
        secret,
        tolerance_seconds=settings.MUX_WEBHOOK_TOLERANCE_SECONDS,
    ):
        raise HTTPException(status_code=400, detail="Invalid webhook signature")

    try:
        event = json.loads(body or b"{}")
    except ValueError as exc:
        raise HTTPException(status_code=400, detail="Webhook body must be JSON") from exc
    if not isinstance(event, dict):
        raise HTTPException(status_code=400, detail="Webhook body must be a JSON object")

    asset = await ingestion.handle_webhook_event(db, event)
    return {
        "received": True,
        "type": event.get("type"),
        "mediaAssetId": asset.id if asset else None,
        "status": asset.status if asset else None,
    }


@router.get("/imagekit-auth")
async def imagekit_auth(
    _auth: AuthContext = Depends(get_auth_context),
    host: BaseImageHost = Depends(get_image_host),
):
    """Signed parameters for browser-side ImageKit uploads."""
    try:
        return host.authentication_parameters()
    except ProviderError as exc:
        raise provider_http_error(exc, "ImageKit auth") from exc
