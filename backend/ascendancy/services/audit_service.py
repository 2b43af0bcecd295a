"""
Audit Service — Manages the immutable, hash-chained payment event trail.
"""
import logging
from datetime import datetime
from typing import Optional, Dict

from sqlalchemy.orm import Session

from ascendancy.models.audit import PaymentEvent
from ascendancy.utils.hashing import generate_chain_hash

logger = logging.getLogger(__name__)


class AuditService:
    """Creates tamper-evident payment events with hash chaining."""

    @staticmethod
    def log(
        db: Session,
        merchant_reference: str,
        action: str,
        payload: Optional[Dict] = None,
        ip_address: Optional[str] = None,
        metadata: Optional[Dict] = None,
    ) -> PaymentEvent:
        """Append an event to the chain for a merchant reference.

        Args:
            db: Database session.
            merchant_reference: Payment (or collection) reference the event belongs to.
            action: Action identifier (e.g. INTENT_CREATED, PAYMENT_COMPLETED).
            payload: Data payload to hash.
            ip_address: Client IP.
            metadata: Additional metadata to store.

        Returns:
            The created PaymentEvent.
        """
        last_entry = (
            db.query(PaymentEvent)
            .filter(PaymentEvent.merchant_reference == merchant_reference)
            .order_by(PaymentEvent.id.desc())
            .first()
        )
        previous_hash = last_entry.payload_hash if last_entry else ""

        payload_data = payload or {}
        chain_hash = generate_chain_hash(payload_data, previous_hash)

        entry = PaymentEvent(
            merchant_reference=merchant_reference,
            action=action,
            payload_hash=chain_hash,
            previous_hash=previous_hash,
            ip_address=ip_address,
            event_metadata=metadata or {},
            timestamp=datetime.utcnow(),
        )

        db.add(entry)
        db.commit()
        db.refresh(entry)

        logger.info("%s %s", action, merchant_reference)
        return entry

    @staticmethod
    def get_trail(db: Session, merchant_reference: str) -> list[PaymentEvent]:
        return (
            db.query(PaymentEvent)
            .filter(PaymentEvent.merchant_reference == merchant_reference)
            .order_by(PaymentEvent.id.asc())
            .all()
        )

    @staticmethod
    def verify_chain(db: Session, merchant_reference: str) -> dict:
        """Verify the integrity of the event chain for a merchant reference.

        Returns:
            dict with 'valid' (bool), 'total_entries', and 'broken_at' (if invalid).
        """
        entries = AuditService.get_trail(db, merchant_reference)

        if not entries:
            return {"valid": True, "total_entries": 0, "broken_at": None}

        for i, entry in enumerate(entries):
            expected_prev = entries[i - 1].payload_hash if i > 0 else ""
            if entry.previous_hash != expected_prev:
                return {
                    "valid": False,
                    "total_entries": len(entries),
                    "broken_at": entry.id,
                    "message": f"Chain broken at entry {entry.id} ({entry.action})",
                }

        return {"valid": True, "total_entries": len(entries), "broken_at": None}
