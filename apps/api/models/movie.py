"""Movie catalog entry model."""

from sqlalchemy import Column, String, DateTime, Integer, LargeBinary, Text
from sqlalchemy.orm import deferred
from sqlalchemy.sql import func
import uuid

from database import Base


class Movie(Base):
    """Movie row; playback comes from Mux, the poster from ImageKit."""

    __tablename__ = "movies"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    mux_upload_id = Column(String, nullable=True, index=True)
    mux_asset_id = Column(String, nullable=True)
    mux_playback_id = Column(String, nullable=True)
    poster_url = Column(String, nullable=True)
    # Trailer and full video bytes live inline; deferred so listings never load them.
    trailer = deferred(Column(LargeBinary, nullable=True))
    trailer_mime_type = Column(String, nullable=True)
    trailer_size_bytes = Column(Integer, nullable=True)
    video = deferred(Column(LargeBinary, nullable=True))
    video_mime_type = Column(String, nullable=True)
    video_size_bytes = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
