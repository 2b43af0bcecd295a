"""
Shared route dependencies: gateway client, email, and the authenticated investor.
"""
from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from ascendancy.config import get_gateway_config, get_settings
from ascendancy.database import get_db
from ascendancy.exceptions import AuthError
from ascendancy.models.user import User
from ascendancy.services.auth_service import decode_session_token
from ascendancy.services.email_service import EmailService
from ascendancy.services.gateway_client import AdumoClient
from ascendancy.services.payment_store import PaymentStore

bearer_scheme = HTTPBearer(auto_error=False)


def get_gateway_client():
    """One AdumoClient per request, closed afterwards."""
    client = AdumoClient(get_gateway_config())
    try:
        yield client
    finally:
        client.close()


def get_email_service() -> EmailService:
    return EmailService(get_settings())


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> User:
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise AuthError("Authentication required")

    payload = decode_session_token(credentials.credentials, get_settings())
    user = PaymentStore(db).get_user(payload["sub"])
    if user is None:
        raise AuthError("Investor not found")
    return user
