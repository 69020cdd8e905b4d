"""Movie catalog router: listings, inline video streaming and poster relay."""

from __future__ import annotations

import logging
import re
from datetime import datetime
from typing import List, Optional, Tuple

from fastapi import APIRouter, Depends, File, Form, Header, HTTPException, UploadFile
from fastapi.responses import RedirectResponse, Response
from pydantic import Field
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from config import settings
from database import get_db
from models.movie import Movie
from routers.auth_scope import AuthContext, require_admin
from routers.camel_model import CamelModel
from services.image_relay import relay_image
from services.providers import BaseImageHost, get_image_host

router = APIRouter()
logger = logging.getLogger(__name__)

_RANGE_PATTERN = re.compile(r"^bytes=(\d*)-(\d*)$")


class MovieCreateRequest(CamelModel):
    title: str = Field(min_length=1, max_length=300)
    description: Optional[str] = None


class MovieRead(CamelModel):
    id: str
    title: str
    description: Optional[str] = None
    playback_id: Optional[str] = None
    poster_url: Optional[str] = None
    has_trailer: bool = False
    has_video: bool = False
    created_at: Optional[datetime] = None


class MovieIdRead(CamelModel):
    id: str


class AssetRelayResponse(CamelModel):
    success: bool = True
    id: str
    trailer_saved: bool = False
    video_saved: bool = False
    image_url: Optional[str] = None
    image_error: Optional[str] = None


def _serialize_movie(movie: Movie) -> MovieRead:
    return MovieRead(
        id=movie.id,
        title=movie.title,
        description=movie.description,
        playback_id=movie.mux_playback_id,
        poster_url=movie.poster_url,
        has_trailer=movie.trailer_size_bytes is not None,
        has_video=movie.video_size_bytes is not None,
        created_at=movie.created_at,
    )


async def _get_movie(db: AsyncSession, movie_id: str) -> Movie:
    result = await db.execute(select(Movie).where(Movie.id == movie_id))
    movie = result.scalar_one_or_none()
    if not movie:
        raise HTTPException(status_code=404, detail="Movie not found")
    return movie


def _parse_range(header: str, size: int) -> Tuple[int, int]:
    """Resolve a single ``bytes=`` range to inclusive offsets."""
    match = _RANGE_PATTERN.match(header.strip())
    if not match or (not match.group(1) and not match.group(2)):
        raise HTTPException(status_code=416, detail="Invalid Range header", headers={"Content-Range": f"bytes */{size}"})
    start_text, end_text = match.groups()
    if not start_text:
        # Suffix form: last N bytes.
        length = int(end_text)
        start, end = max(size - length, 0), size - 1
    else:
        start = int(start_text)
        end = int(end_text) if end_text else size - 1
    end = min(end, size - 1)
    if start > end or start >= size:
        raise HTTPException(status_code=416, detail="Range not satisfiable", headers={"Content-Range": f"bytes */{size}"})
    return start, end


async def _read_limited(upload: UploadFile, limit: int, label: str) -> bytes:
    data = await upload.read()
    if not data:
        raise HTTPException(status_code=400, detail=f"{label} file is empty")
    if len(data) > limit:
        raise HTTPException(status_code=413, detail=f"{label} exceeds {limit} bytes")
    return data


@router.get("/movies", response_model=List[MovieRead])
async def list_movies(db: AsyncSession = Depends(get_db)):
    result = await db.execute(select(Movie).order_by(Movie.created_at.desc()))
    return [_serialize_movie(movie) for movie in result.scalars().all()]


@router.get("/movie-ids", response_model=List[MovieIdRead])
async def list_movie_ids(db: AsyncSession = Depends(get_db)):
    result = await db.execute(select(Movie.id).order_by(Movie.created_at.asc()))
    return [MovieIdRead(id=movie_id) for movie_id in result.scalars().all()]


@router.post("/movies", response_model=MovieRead)
async def create_movie(
    request: MovieCreateRequest,
    _auth: AuthContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Create catalog metadata ahead of a video upload."""
    movie = Movie(title=request.title.strip(), description=request.description)
    db.add(movie)
    await db.commit()
    await db.refresh(movie)
    return _serialize_movie(movie)


@router.get("/movie/{movie_id}", response_model=MovieRead)
async def get_movie(movie_id: str, db: AsyncSession = Depends(get_db)):
    return _serialize_movie(await _get_movie(db, movie_id))


@router.get("/movie-poster/{movie_id}")
async def get_movie_poster(movie_id: str, db: AsyncSession = Depends(get_db)):
    movie = await _get_movie(db, movie_id)
    if not movie.poster_url:
        raise HTTPException(status_code=404, detail="Poster not available")
    return RedirectResponse(movie.poster_url, status_code=302)


def _ranged_response(data: bytes, media_type: str, range_header: Optional[str]) -> Response:
    size = len(data)
    if not range_header:
        return Response(content=data, media_type=media_type, headers={"Accept-Ranges": "bytes"})

    start, end = _parse_range(range_header, size)
    return Response(
        content=data[start:end + 1],
        status_code=206,
        media_type=media_type,
        headers={
            "Content-Range": f"bytes {start}-{end}/{size}",
            "Accept-Ranges": "bytes",
        },
    )


async def _relay_poster(
    host: BaseImageHost,
    db: AsyncSession,
    movie: Movie,
    poster: UploadFile,
    poster_bytes: bytes,
    title: Optional[str],
    response: AssetRelayResponse,
) -> None:
    relayed = await relay_image(
        host,
        poster_bytes,
        title=title or movie.title,
        entry_id=movie.id,
        original_name=poster.filename,
        content_type=poster.content_type,
    )
    if relayed.ok:
        movie.poster_url = relayed.url
        await db.commit()
        response.image_url = relayed.url
    else:
        response.image_error = relayed.error


def _store_video(movie: Movie, video: UploadFile, data: bytes) -> None:
    movie.video = data
    movie.video_mime_type = video.content_type or "video/mp4"
    movie.video_size_bytes = len(data)


@router.get("/movie-video/{movie_id}")
async def stream_movie_trailer(
    movie_id: str,
    range_header: Optional[str] = Header(default=None, alias="Range"),
    db: AsyncSession = Depends(get_db),
):
    """Serve the inline trailer, honoring single byte ranges."""
    result = await db.execute(select(Movie.trailer, Movie.trailer_mime_type).where(Movie.id == movie_id))
    row = result.first()
    if not row or not row.trailer:
        raise HTTPException(status_code=404, detail="Movie not found or trailer not available")
    return _ranged_response(row.trailer, row.trailer_mime_type or "video/mp4", range_header)


@router.get("/movie-full-video/{movie_id}")
async def stream_movie_video(
    movie_id: str,
    range_header: Optional[str] = Header(default=None, alias="Range"),
    db: AsyncSession = Depends(get_db),
):
    """Serve the inline full-length video for movies not hosted on Mux."""
    result = await db.execute(select(Movie.video, Movie.video_mime_type).where(Movie.id == movie_id))
    row = result.first()
    if not row or not row.video:
        raise HTTPException(status_code=404, detail="Movie not found or video not available")
    return _ranged_response(row.video, row.video_mime_type or "video/mp4", range_header)


@router.post("/upload-movie", response_model=AssetRelayResponse)
async def upload_movie(
    movie_title: Optional[str] = Form(default=None, alias="movieTitle"),
    description: Optional[str] = Form(default=None),
    video: Optional[UploadFile] = File(default=None),
    poster: Optional[UploadFile] = File(default=None),
    _auth: AuthContext = Depends(require_admin),
    host: BaseImageHost = Depends(get_image_host),
    db: AsyncSession = Depends(get_db),
):
    """Create a movie whose full video is stored inline, relaying the poster."""
    title = (movie_title or "").strip()
    if not title or not (description or "").strip() or video is None:
        raise HTTPException(status_code=400, detail="Missing required fields")

    video_bytes = await _read_limited(video, settings.MAX_VIDEO_BYTES, "Video")
    poster_bytes = await _read_limited(poster, settings.MAX_POSTER_BYTES, "Poster") if poster is not None else None

    movie = Movie(title=title, description=description)
    _store_video(movie, video, video_bytes)
    db.add(movie)
    await db.commit()
    await db.refresh(movie)
    logger.info("movie_uploaded movie=%s bytes=%s", movie.id, len(video_bytes))

    response = AssetRelayResponse(id=movie.id, video_saved=True)
    if poster_bytes is not None:
        await _relay_poster(host, db, movie, poster, poster_bytes, title, response)
    return response


@router.post("/upload-movie-video/{movie_id}", response_model=AssetRelayResponse)
async def upload_movie_video(
    movie_id: str,
    video: Optional[UploadFile] = File(default=None),
    poster: Optional[UploadFile] = File(default=None),
    title: Optional[str] = Form(default=None),
    _auth: AuthContext = Depends(require_admin),
    host: BaseImageHost = Depends(get_image_host),
    db: AsyncSession = Depends(get_db),
):
    """Replace a movie's inline video, then relay the poster when one is sent."""
    if video is None:
        raise HTTPException(status_code=400, detail="No video file uploaded")

    movie = await _get_movie(db, movie_id)
    video_bytes = await _read_limited(video, settings.MAX_VIDEO_BYTES, "Video")
    poster_bytes = await _read_limited(poster, settings.MAX_POSTER_BYTES, "Poster") if poster is not None else None

    _store_video(movie, video, video_bytes)
    await db.commit()
    logger.info("video_saved movie=%s bytes=%s", movie_id, len(video_bytes))

    response = AssetRelayResponse(id=movie.id, video_saved=True)
    if poster_bytes is not None:
        await _relay_poster(host, db, movie, poster, poster_bytes, title, response)
    return response


@router.post("/upload-trailer-poster/{movie_id}", response_model=AssetRelayResponse)
@router.post("/upload-movie-trailer/{movie_id}", response_model=AssetRelayResponse)
async def upload_trailer_poster(
    movie_id: str,
    trailer: Optional[UploadFile] = File(default=None),
    poster: Optional[UploadFile] = File(default=None),
    title: Optional[str] = Form(default=None),
    _auth: AuthContext = Depends(require_admin),
    host: BaseImageHost = Depends(get_image_host),
    db: AsyncSession = Depends(get_db),
):
    """
    Store a trailer inline and relay the poster to the image host.

    A failed poster relay still reports success for the trailer write, with
    the failure carried in ``imageError``.
    """
    if trailer is None and poster is None:
        raise HTTPException(status_code=400, detail="No trailer or poster file uploaded")

    movie = await _get_movie(db, movie_id)
    response = AssetRelayResponse(id=movie.id)
    trailer_bytes = await _read_limited(trailer, settings.MAX_TRAILER_BYTES, "Trailer") if trailer is not None else None
    poster_bytes = await _read_limited(poster, settings.MAX_POSTER_BYTES, "Poster") if poster is not None else None

    if trailer_bytes is not None:
        movie.trailer = trailer_bytes
        movie.trailer_mime_type = trailer.content_type or "video/mp4"
        movie.trailer_size_bytes = len(trailer_bytes)
        await db.commit()
        response.trailer_saved = True
        logger.info("trailer_saved movie=%s bytes=%s", movie_id, len(trailer_bytes))

    if poster_bytes is not None:
        await _relay_poster(host, db, movie, poster, poster_bytes, title, response)

    return response
