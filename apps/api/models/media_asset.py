"""Media asset ingestion record."""

from sqlalchemy import Column, String, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import uuid

from database import Base


ASSET_STATUSES = ("requested", "uploading", "processing", "ready", "failed")


class MediaAsset(Base):
    """One direct upload brokered to Mux and its encoding outcome.

    ``playback_id`` is only ever populated together with ``status == "ready"``.
    """

    __tablename__ = "media_assets"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String, ForeignKey("users.id"), nullable=True, index=True)
    entry_type = Column(String, nullable=False, default="movie")  # movie, episode
    entry_id = Column(String, nullable=True, index=True)
    upload_id = Column(String, nullable=False, unique=True, index=True)
    provider_asset_id = Column(String, nullable=True, index=True)
    playback_id = Column(String, nullable=True)
    status = Column(String, nullable=False, default="requested", index=True)
    error_message = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
    ready_at = Column(DateTime(timezone=True), nullable=True)

    user = relationship("User", back_populates="media_assets")
