"""
OTP Service — emailed one-time login codes.

Requests answer identically whether or not the email belongs to an investor;
only known investors get a code stored and sent.
"""
import logging
import secrets
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from ascendancy.config import Settings
from ascendancy.exceptions import AuthError
from ascendancy.models.user import User
from ascendancy.services.email_service import EmailService
from ascendancy.services.payment_store import PaymentStore
from ascendancy.utils.validators import normalize_email

logger = logging.getLogger(__name__)

GENERIC_OTP_MESSAGE = "If an account exists for this email, a login code has been sent."


def generate_code() -> str:
    return f"{secrets.randbelow(10 ** 6):06d}"


class OTPService:

    @staticmethod
    def request_code(
        db: Session,
        email: str,
        email_service: EmailService,
        settings: Settings,
        now: Optional[datetime] = None,
    ) -> str:
        """Issue a code when the investor exists. Always returns the generic message."""
        email = normalize_email(email)
        if not email:
            return GENERIC_OTP_MESSAGE

        store = PaymentStore(db)
        user = store.get_user_by_email(email)
        if user is None:
            logger.info("Login code requested for unknown email")
            return GENERIC_OTP_MESSAGE

        now = now or datetime.utcnow()
        code = generate_code()
        store.add_otp(email, code, now + timedelta(minutes=settings.OTP_EXPIRY_MINUTES))

        if not email_service.send_otp(email, code, settings.OTP_EXPIRY_MINUTES):
            logger.error("Login code for user %s could not be emailed", user.id)
        return GENERIC_OTP_MESSAGE

    @staticmethod
    def verify_code(db: Session, email: str, code: str, now: Optional[datetime] = None) -> User:
        """Consume a matching, unexpired, unused code and return its investor."""
        email = normalize_email(email)
        now = now or datetime.utcnow()
        store = PaymentStore(db)

        otp = store.find_valid_otp(email, code.strip(), now)
        user = store.get_user_by_email(email) if otp else None
        if otp is None or user is None:
            raise AuthError("Invalid or expired code")

        otp.used_at = now
        store.commit()
        return user

    @staticmethod
    def purge_expired(db: Session, now: Optional[datetime] = None) -> int:
        deleted = PaymentStore(db).delete_expired_otps(now or datetime.utcnow())
        if deleted:
            logger.info("Purged %d expired login codes", deleted)
        return deleted
