"""
Auth Routes — emailed login codes and the signed-in investor.
"""
from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from ascendancy.config import get_settings
from ascendancy.database import get_db
from ascendancy.models.user import User
from ascendancy.routes.deps import get_current_user, get_email_service
from ascendancy.schemas.schemas import (
    AuthTokenResponse, InvestorProfile, OTPRequest, OTPRequestResponse, OTPVerifyRequest,
)
from ascendancy.services.auth_service import create_session_token
from ascendancy.services.email_service import EmailService
from ascendancy.services.otp_service import OTPService
from ascendancy.utils.rate_limiter import client_ip, otp_request_limiter, otp_verify_limiter
from ascendancy.utils.validators import normalize_email

router = APIRouter(prefix="/api/auth", tags=["Auth"])


@router.post("/request-otp", response_model=OTPRequestResponse)
def request_otp(
    payload: OTPRequest,
    request: Request,
    db: Session = Depends(get_db),
    email_service: EmailService = Depends(get_email_service),
):
    """Send a login code. The response never reveals whether the email is registered."""
    email = normalize_email(payload.email)
    otp_request_limiter.hit(f"email:{email}" if email else f"ip:{client_ip(request)}")

    message = OTPService.request_code(db, email, email_service, get_settings())
    return OTPRequestResponse(message=message)


@router.post("/verify-otp", response_model=AuthTokenResponse)
def verify_otp(payload: OTPVerifyRequest, db: Session = Depends(get_db)):
    otp_verify_limiter.hit(f"email:{normalize_email(payload.email)}")

    user = OTPService.verify_code(db, payload.email, payload.code)
    token, expires_in = create_session_token(user, get_settings())
    return AuthTokenResponse(
        token=token,
        expires_in=expires_in,
        investor=InvestorProfile.model_validate(user),
    )


@router.get("/me", response_model=InvestorProfile)
def me(user: User = Depends(get_current_user)):
    return InvestorProfile.model_validate(user)
