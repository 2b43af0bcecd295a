"""Session tokens for investors who have verified a login code."""

import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import ExpiredSignatureError, JWTError, jwt

from ascendancy.config import Settings
from ascendancy.exceptions import AuthError, ConfigurationError
from ascendancy.models.user import User

SESSION_ALGORITHM = "HS256"
SESSION_TOKEN_TYPE = "session"


def _secret(settings: Settings) -> str:
    if not settings.SESSION_SECRET:
        raise ConfigurationError("SESSION_SECRET is not set")
    return settings.SESSION_SECRET


def create_session_token(user: User, settings: Settings, now: Optional[datetime] = None) -> tuple[str, int]:
    """Return (token, expires_in_seconds)."""
    now = now or datetime.now(timezone.utc)
    expires_in = int(timedelta(days=settings.SESSION_EXPIRY_DAYS).total_seconds())
    payload = {
        "sub": user.id,
        "email": user.email,
        "tier": user.tier,
        "type": SESSION_TOKEN_TYPE,
        "jti": str(uuid.uuid4()),
        "iat": int(now.timestamp()),
        "exp": int(now.timestamp()) + expires_in,
    }
    return jwt.encode(payload, _secret(settings), algorithm=SESSION_ALGORITHM), expires_in


def decode_session_token(token: str, settings: Settings) -> dict:
    """Decode and validate a session token, raising AuthError when it is unusable."""
    try:
        payload = jwt.decode(token, _secret(settings), algorithms=[SESSION_ALGORITHM])
    except ExpiredSignatureError as exc:
        raise AuthError("Session expired") from exc
    except JWTError as exc:
        raise AuthError("Invalid session token") from exc

    if payload.get("type") != SESSION_TOKEN_TYPE or not payload.get("sub"):
        raise AuthError("Invalid session token")
    return payload
