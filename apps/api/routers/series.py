"""Series catalog router."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from pydantic import Field
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from config import settings
from database import get_db
from models.series import Episode, Series
from routers.auth_scope import AuthContext, require_admin
from routers.camel_model import CamelModel
from services.image_relay import relay_image
from services.providers import BaseImageHost, get_image_host

router = APIRouter()
logger = logging.getLogger(__name__)


class EpisodeCreateRequest(CamelModel):
    title: str = Field(min_length=1, max_length=300)
    description: Optional[str] = None
    season_number: int = Field(default=1, ge=1)
    episode_number: int = Field(ge=1)
    playback_id: Optional[str] = None


class EpisodeRead(CamelModel):
    id: str
    series_id: str
    season_number: int
    episode_number: int
    title: str
    description: Optional[str] = None
    playback_id: Optional[str] = None


class SeriesRead(CamelModel):
    id: str
    title: str
    description: Optional[str] = None
    poster_url: Optional[str] = None
    created_at: Optional[datetime] = None


class SeriesDetail(SeriesRead):
    episodes: List[EpisodeRead] = []


class SeriesUploadResponse(CamelModel):
    success: bool = True
    id: str
    image_url: Optional[str] = None
    image_error: Optional[str] = None


def _serialize_series(series: Series) -> SeriesRead:
    return SeriesRead(
        id=series.id,
        title=series.title,
        description=series.description,
        poster_url=series.poster_url,
        created_at=series.created_at,
    )


def _serialize_episode(episode: Episode) -> EpisodeRead:
    return EpisodeRead(
        id=episode.id,
        series_id=episode.series_id,
        season_number=episode.season_number,
        episode_number=episode.episode_number,
        title=episode.title,
        description=episode.description,
        playback_id=episode.mux_playback_id,
    )


async def _get_series(db: AsyncSession, series_id: str) -> Series:
    result = await db.execute(select(Series).where(Series.id == series_id))
    series = result.scalar_one_or_none()
    if not series:
        raise HTTPException(status_code=404, detail="Series not found")
    return series


@router.get("/series", response_model=List[SeriesRead])
async def list_series(db: AsyncSession = Depends(get_db)):
    result = await db.execute(select(Series).order_by(Series.created_at.desc()))
    return [_serialize_series(series) for series in result.scalars().all()]


@router.get("/series/{series_id}", response_model=SeriesDetail)
async def get_series(series_id: str, db: AsyncSession = Depends(get_db)):
    series = await _get_series(db, series_id)
    episodes = await db.execute(
        select(Episode)
        .where(Episode.series_id == series_id)
        .order_by(Episode.season_number.asc(), Episode.episode_number.asc())
    )
    return SeriesDetail(
        **_serialize_series(series).model_dump(),
        episodes=[_serialize_episode(episode) for episode in episodes.scalars().all()],
    )


@router.post("/upload-series", response_model=SeriesUploadResponse)
async def upload_series(
    title: str = Form(..., min_length=1, max_length=300),
    description: Optional[str] = Form(default=None),
    poster: Optional[UploadFile] = File(default=None),
    _auth: AuthContext = Depends(require_admin),
    host: BaseImageHost = Depends(get_image_host),
    db: AsyncSession = Depends(get_db),
):
    """Create a series and relay its poster. Relay failures keep the series row."""
    poster_bytes = None
    if poster is not None:
        poster_bytes = await poster.read()
        if len(poster_bytes) > settings.MAX_POSTER_BYTES:
            raise HTTPException(status_code=413, detail=f"Poster exceeds {settings.MAX_POSTER_BYTES} bytes")

    series = Series(title=title.strip(), description=description)
    db.add(series)
    await db.commit()
    await db.refresh(series)
    response = SeriesUploadResponse(id=series.id)

    if poster_bytes:
        relayed = await relay_image(
            host,
            poster_bytes,
            title=series.title,
            entry_id=series.id,
            original_name=poster.filename,
            content_type=poster.content_type,
        )
        if relayed.ok:
            series.poster_url = relayed.url
            await db.commit()
            response.image_url = relayed.url
        else:
            response.image_error = relayed.error

    logger.info("series_created series=%s poster=%s", series.id, bool(response.image_url))
    return response


@router.post("/series/{series_id}/episodes", response_model=EpisodeRead)
async def create_episode(
    series_id: str,
    request: EpisodeCreateRequest,
    _auth: AuthContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    await _get_series(db, series_id)
    episode = Episode(
        series_id=series_id,
        season_number=request.season_number,
        episode_number=request.episode_number,
        title=request.title.strip(),
        description=request.description,
        mux_playback_id=(request.playback_id or "").strip() or None,
    )
    db.add(episode)
    try:
        await db.commit()
    except IntegrityError as exc:
        await db.rollback()
        raise HTTPException(status_code=409, detail="Episode already exists at that position") from exc
    await db.refresh(episode)
    return _serialize_episode(episode)
