"""Payment order model."""

from sqlalchemy import Column, String, DateTime, ForeignKey, Integer
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import uuid

from database import Base


class Order(Base):
    """Gateway order mirrored locally; status moves created -> paid."""

    __tablename__ = "orders"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    provider = Column(String, nullable=False, default="razorpay")
    provider_order_id = Column(String, nullable=False, unique=True, index=True)
    amount = Column(Integer, nullable=False)  # minor units (paise)
    currency = Column(String, nullable=False)
    receipt = Column(String, nullable=True)
    plan_id = Column(String, nullable=True)
    status = Column(String, nullable=False, default="created", index=True)
    payment_id = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
    paid_at = Column(DateTime(timezone=True), nullable=True)

    user = relationship("User", back_populates="orders")
