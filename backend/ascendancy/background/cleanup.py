"""Periodic purge of expired login codes."""
import asyncio
import logging

from ascendancy.database import SessionLocal
from ascendancy.services.otp_service import OTPService

logger = logging.getLogger(__name__)


def _purge_once() -> int:
    db = SessionLocal()
    try:
        return OTPService.purge_expired(db)
    finally:
        db.close()


async def otp_cleanup_task(interval_seconds: int):
    """Purge expired OTPs every `interval_seconds` until cancelled."""
    logger.info("OTP cleanup task started (every %ss)", interval_seconds)
    try:
        while True:
            await asyncio.sleep(interval_seconds)
            try:
                await asyncio.to_thread(_purge_once)
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("OTP cleanup failed; retrying next interval")
    except asyncio.CancelledError:
        logger.info("OTP cleanup task stopped")
        raise
