"""
User Model — One investor identity, keyed by email.
"""
import uuid
from datetime import datetime

from sqlalchemy import Column, String, Integer, DateTime, JSON

from ascendancy.database import Base


class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    email = Column(String(191), unique=True, nullable=False, index=True)
    first_name = Column(String(255), nullable=False)
    last_name = Column(String(255), nullable=False)
    phone = Column(String(20))

    tier = Column(String(50), nullable=False)              # builder | innovator | visionary | cornerstone
    payment_method = Column(String(50), nullable=False)    # lump_sum | deposit_monthly
    amount = Column(Integer, nullable=False, default=0)    # Committed amount in cents
    payment_status = Column(String(20), nullable=False, default="pending")

    progress = Column(JSON, default=dict)                  # Quest progress blob

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
