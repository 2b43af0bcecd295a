"""
Subscription Routes — card tokenization, monthly schedule setup, and
collection notifications.
"""
import json
import logging

from fastapi import APIRouter, Depends, Request
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from ascendancy.config import get_gateway_config, get_settings
from ascendancy.database import get_db
from ascendancy.exceptions import AuthError, ConfigurationError, ReplayDetected, ValidationError
from ascendancy.routes.deps import get_gateway_client
from ascendancy.schemas.schemas import (
    CardDetails, MaskedCard, SubscriptionResponse, SubscriptionSetupRequest,
    SubscriptionWebhookPayload, TokenizeCardResponse, WebhookAck,
)
from ascendancy.services.gateway_client import AdumoClient
from ascendancy.services.subscription_service import SubscriptionService
from ascendancy.utils.hashing import verify_body_signature
from ascendancy.utils.rate_limiter import client_ip

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Subscription"])

SIGNATURE_HEADER = "X-Webhook-Signature"


@router.post("/api/adumo/tokenize-card", response_model=TokenizeCardResponse)
def tokenize_card(card: CardDetails, client: AdumoClient = Depends(get_gateway_client)):
    """Exchange card details for Adumo tokens. Card data is never stored."""
    tokenized = client.tokenize_card(card)
    return TokenizeCardResponse(
        card_token=tokenized.card_token,
        profile_token=tokenized.profile_token,
        card=MaskedCard(
            card_type=tokenized.card_type,
            last_four_digits=tokenized.last_four_digits,
            expiry_month=tokenized.expiry_month,
            expiry_year=tokenized.expiry_year,
        ),
    )


@router.post("/api/adumo/create-subscription-from-payment", response_model=SubscriptionResponse)
def create_subscription_from_payment(
    payload: SubscriptionSetupRequest,
    request: Request,
    db: Session = Depends(get_db),
    client: AdumoClient = Depends(get_gateway_client),
):
    subscription = SubscriptionService.setup_from_payment(
        db, client, payload, ip_address=client_ip(request)
    )
    return SubscriptionResponse(
        subscription_id=subscription.id,
        subscriber_id=subscription.subscriber_id,
        schedule_id=subscription.schedule_id,
        monthly_amount=subscription.monthly_amount,
        total_months=subscription.total_months,
        start_date=subscription.start_date,
        status=subscription.status,
    )


@router.post("/api/subscription-webhook", response_model=WebhookAck)
async def subscription_webhook(request: Request, db: Session = Depends(get_db)):
    """Monthly collection outcome, signed with an HMAC of the raw body."""
    secret = get_settings().WEBHOOK_SECRET
    if not secret:
        raise ConfigurationError("WEBHOOK_SECRET is not set")

    raw_body = await request.body()
    if not verify_body_signature(raw_body, request.headers.get(SIGNATURE_HEADER), secret):
        logger.warning("Subscription webhook with a bad signature from %s", client_ip(request))
        raise AuthError("Invalid webhook signature")

    try:
        data = json.loads(raw_body)
        payload = SubscriptionWebhookPayload.model_validate(data)
    except (ValueError, PydanticValidationError) as exc:
        raise ValidationError("Invalid webhook payload") from exc

    try:
        result = await run_in_threadpool(
            SubscriptionService.record_collection, db, payload, data, get_gateway_config().currency
        )
    except ReplayDetected:
        return WebhookAck(message="Collection already processed")

    return WebhookAck(message=result.message)
