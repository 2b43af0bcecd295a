"""
Payment Event Model — tamper-evident trail of reconciliation events.
Every event is SHA-256 hashed and chained per merchant reference.
"""
from datetime import datetime

from sqlalchemy import Column, String, Integer, DateTime, JSON

from ascendancy.database import Base


class PaymentEvent(Base):
    __tablename__ = "payment_events"

    id = Column(Integer, primary_key=True, autoincrement=True, index=True)
    merchant_reference = Column(String(64), nullable=False, index=True)

    action = Column(String(40), nullable=False)
    # Actions: INTENT_CREATED, PAYMENT_COMPLETED, PAYMENT_FAILED, PAYMENT_ERROR,
    #          REPLAY_DETECTED, AMOUNT_MISMATCH, SUBSCRIPTION_CREATED,
    #          SUBSCRIPTION_COLLECTION

    payload_hash = Column(String(64))
    previous_hash = Column(String(64))

    ip_address = Column(String(45))
    event_metadata = Column(JSON, default=dict)
    timestamp = Column(DateTime, default=datetime.utcnow)
