"""
Payment, Invoice & Transaction Models — one attempt to pay and its reconciled outcome.
"""
import enum
import uuid
from datetime import datetime

from sqlalchemy import Column, String, Integer, DateTime, JSON, ForeignKey, Text, UniqueConstraint

from ascendancy.database import Base


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    ERROR = "error"


class TransactionSource(str, enum.Enum):
    PAYMENT = "payment"          # one per Payment, keyed by its merchant reference
    COLLECTION = "collection"    # one per subscription collection reference


class Payment(Base):
    __tablename__ = "payments"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)

    merchant_reference = Column(String(64), unique=True, nullable=False, index=True)
    amount = Column(Integer, nullable=False)          # Charged amount in cents
    method = Column(String(20), nullable=False, default="adumo")
    status = Column(String(16), nullable=False, default=PaymentStatus.PENDING.value)

    # Serialized LumpSumIntent | DepositMonthlyIntent
    payment_data = Column(JSON, default=dict)

    gateway_transaction_index = Column(String(64))
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    completed_at = Column(DateTime, nullable=True)


class Invoice(Base):
    __tablename__ = "invoices"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    merchant_reference = Column(String(64), unique=True, nullable=False, index=True)
    payment_id = Column(String(36), ForeignKey("payments.id"), nullable=True)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)

    amount = Column(Integer, nullable=False)
    currency_code = Column(String(3), nullable=False, default="ZAR")
    description = Column(String(255))
    status = Column(String(16), nullable=False, default="unpaid")   # paid | unpaid

    created_at = Column(DateTime, default=datetime.utcnow)


class Transaction(Base):
    """Immutable record of one gateway response."""

    __tablename__ = "transactions"
    __table_args__ = (
        UniqueConstraint("source", "merchant_reference", name="uq_transactions_source_reference"),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    source = Column(String(16), nullable=False, default=TransactionSource.PAYMENT.value)
    merchant_reference = Column(String(64), nullable=False, index=True)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=True, index=True)
    invoice_id = Column(String(36), ForeignKey("invoices.id"), nullable=True)
    payment_id = Column(String(36), ForeignKey("payments.id"), nullable=True)
    subscription_id = Column(String(36), ForeignKey("subscriptions.id"), nullable=True)

    status = Column(String(32), nullable=False)        # AUTHORISED | DECLINED | ...
    amount = Column(Integer, nullable=False)           # cents
    currency_code = Column(String(3), nullable=False, default="ZAR")
    channel = Column(String(16), nullable=False)       # return | webhook | manual | subscription
    transaction_index = Column(String(64))
    card_token = Column(String(255))
    error_code = Column(Integer)
    error_message = Column(String(255))

    raw_token = Column(Text)
    raw_payload = Column(JSON, default=dict)

    created_at = Column(DateTime, default=datetime.utcnow)
