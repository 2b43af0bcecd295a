"""
Subscription & PaymentMethod Models — recurring collections and saved cards.
"""
import enum
import uuid
from datetime import datetime

from sqlalchemy import Boolean, Column, Date, DateTime, ForeignKey, Integer, String

from ascendancy.database import Base


class SubscriptionStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class Subscription(Base):
    __tablename__ = "subscriptions"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    payment_id = Column(String(36), ForeignKey("payments.id"), unique=True, nullable=False)

    tier = Column(String(50), nullable=False)
    monthly_amount = Column(Integer, nullable=False)     # cents
    total_months = Column(Integer, nullable=False)
    paid_months = Column(Integer, nullable=False, default=0)

    subscriber_id = Column(String(64), nullable=False)
    schedule_id = Column(String(64), nullable=False, index=True)
    start_date = Column(Date, nullable=False)
    collection_day = Column(Integer, nullable=False)

    status = Column(String(16), nullable=False, default=SubscriptionStatus.ACTIVE.value)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class PaymentMethod(Base):
    __tablename__ = "payment_methods"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)

    profile_token = Column(String(64), nullable=False)   # Adumo profile UID
    card_type = Column(String(32))
    last_four_digits = Column(String(4))
    expiry_month = Column(Integer)
    expiry_year = Column(Integer)
    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime, default=datetime.utcnow)
