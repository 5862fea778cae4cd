"""SQLAlchemy ORM models for users, purchases, rewards and fraud checks"""

import uuid
from datetime import datetime, timezone
from sqlalchemy import Column, String, Boolean, DateTime, Integer, ForeignKey, Numeric, Text, JSON, Enum
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func

Base = declarative_base()


def _new_id() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class User(Base):
    """Customer or admin; customers own a referral code, admins review rewards"""

    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=_new_id)
    identity_provider_id = Column(Text, nullable=True, unique=True)
    role = Column(Enum("customer", "admin", name="role"), nullable=False, default="customer")
    name = Column(Text, nullable=False)
    email = Column(Text, nullable=False, unique=True)
    phone = Column(Text, nullable=True, unique=True)
    referral_code = Column(String(8), nullable=True, unique=True, index=True)  # immutable once assigned
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow, server_default=func.now())


class Purchase(Base):
    """Purchase made with someone's referral code"""

    __tablename__ = "purchases"

    id = Column(String(36), primary_key=True, default=_new_id)
    referrer_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    customer_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    amount = Column(Numeric(10, 2), nullable=False)
    ip_address = Column(Text, nullable=True, index=True)
    status = Column(
        Enum("pending", "completed", "cancelled", name="purchase_status"),
        nullable=False,
        default="pending",
    )
    description = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow, server_default=func.now())

    rewards = relationship("Reward", back_populates="purchase", cascade="all, delete-orphan")


class Reward(Base):
    """Reward owed to a referrer, pending until an admin reviews it"""

    __tablename__ = "rewards"

    id = Column(String(36), primary_key=True, default=_new_id)
    purchase_id = Column(String(36), ForeignKey("purchases.id", ondelete="CASCADE"), nullable=False)
    referrer_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    reward_type = Column(Enum("cash", "discount", "credit", name="reward_type"), nullable=False)
    reward_value = Column(Numeric(10, 2), nullable=False)
    status = Column(
        Enum("pending", "approved", "rejected", name="reward_status"),
        nullable=False,
        default="pending",
    )
    reviewed_by = Column(String(36), ForeignKey("users.id"), nullable=True)
    review_notes = Column(Text, nullable=True)
    reviewed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow, server_default=func.now())

    purchase = relationship("Purchase", back_populates="rewards")


class FraudCheck(Base):
    """Outcome of one purchase validation, kept for admin review and statistics"""

    __tablename__ = "fraud_checks"

    id = Column(String(36), primary_key=True, default=_new_id)
    referral_code = Column(Text, nullable=False)
    ip_address = Column(Text, nullable=True)
    amount = Column(Numeric(10, 2), nullable=False)
    score = Column(Integer, nullable=True)
    accepted = Column(Boolean, nullable=False)
    reason = Column(Text, nullable=True)
    flags = Column(JSON, nullable=False, default=list)
    purchase_id = Column(String(36), ForeignKey("purchases.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, server_default=func.now())
