"""Promo code redemption model."""

from sqlalchemy import Column, String, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import uuid

from database import Base


class PromoRedemption(Base):
    """Records that a user has spent a promo code; one row per (user, code)."""

    __tablename__ = "promo_redemptions"
    __table_args__ = (UniqueConstraint("user_id", "code", name="uq_promo_user_code"),)

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    code = Column(String, nullable=False)
    subscription_id = Column(String, ForeignKey("subscriptions.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    user = relationship("User", back_populates="promo_redemptions")
