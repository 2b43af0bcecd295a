"""
Payment Routes — Tier catalogue, payment intents, and Adumo callbacks.
Handles: hosted-form intents, browser return redirects, server-to-server
webhooks, manual verification and status polling.
"""
import logging
from typing import Optional
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, Request
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from ascendancy.config import get_gateway_config, get_settings
from ascendancy.database import get_db
from ascendancy.exceptions import AuthError, NotFoundError, ReplayDetected, ValidationError
from ascendancy.models.payment import PaymentStatus
from ascendancy.routes.deps import get_gateway_client
from ascendancy.schemas.schemas import (
    ManualVerifyRequest, PaymentIntentRequest, PaymentIntentResponse,
    PaymentStatusResponse, ReconciliationResponse, WebhookAck,
)
from ascendancy.services.assertion_service import extract_assertion
from ascendancy.services.gateway_client import AdumoClient
from ascendancy.services.payment_service import PaymentIntentService
from ascendancy.services.payment_store import PaymentStore
from ascendancy.services.pricing import PricingService
from ascendancy.services.reconciliation_service import (
    CHANNEL_MANUAL, CHANNEL_RETURN, CHANNEL_WEBHOOK, ReconciliationResult, ReconciliationService,
)
from ascendancy.utils.currency import cents_to_decimal_string
from ascendancy.utils.rate_limiter import client_ip, rate_limit

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Payment"])

intent_throttle = rate_limit(requests=5, window=60)


@router.get("/api/tiers")
def list_tiers():
    """Investment tiers with their lump-sum and deposit pricing."""
    return {"tiers": PricingService.catalogue()}


@router.post("/api/create-payment-intent", response_model=PaymentIntentResponse)
def create_payment_intent(
    payload: PaymentIntentRequest,
    request: Request,
    db: Session = Depends(get_db),
    client: AdumoClient = Depends(get_gateway_client),
    _throttle: bool = Depends(intent_throttle),
):
    """Create a pending payment and return the fields to POST to the hosted form."""
    payment, user, form = PaymentIntentService.create_intent(
        db, client, payload, ip_address=client_ip(request)
    )
    return PaymentIntentResponse(
        payment_id=payment.id,
        user_id=user.id,
        merchant_reference=payment.merchant_reference,
        amount=payment.amount,
        url=form.url,
        form_data=form.form_fields,
    )


# ─── Callbacks ───────────────────────────────────────────────────────

async def _read_callback(request: Request) -> tuple[dict, dict]:
    """Body fields (JSON or form-encoded) and query fields of a callback."""
    body: dict = {}
    content_type = request.headers.get("content-type", "")
    if "application/json" in content_type:
        try:
            data = await request.json()
        except ValueError:
            data = None
        if isinstance(data, dict):
            body = data
    elif "form" in content_type:
        form = await request.form()
        body = {key: value for key, value in form.items() if isinstance(value, str)}
    return body, dict(request.query_params)


def _frontend_redirect(path: str, **params) -> RedirectResponse:
    base = get_settings().FRONTEND_BASE_URL.rstrip("/")
    query = urlencode({k: v for k, v in params.items() if v is not None})
    return RedirectResponse(f"{base}{path}?{query}" if query else f"{base}{path}", status_code=303)


def _redirect_for(result: ReconciliationResult) -> RedirectResponse:
    reference = result.merchant_reference
    if result.status == PaymentStatus.COMPLETED.value:
        if result.requires_subscription_setup:
            return _frontend_redirect(
                "/subscription-setup",
                reference=reference,
                paymentId=result.payment_id,
                monthlyAmount=cents_to_decimal_string(result.monthly_amount),
            )
        return _frontend_redirect("/login", payment="success", reference=reference)
    if result.status == PaymentStatus.PENDING.value:
        return _frontend_redirect("/payment-pending", reference=reference)
    return _frontend_redirect("/payment-failed", reference=reference)


def _current_result(db: Session, reference: str) -> ReconciliationResult:
    payment = PaymentStore(db).get_payment_by_reference(reference)
    return ReconciliationService.result_for_payment(db, payment)


@router.api_route("/payment-return", methods=["GET", "POST"], include_in_schema=False)
async def payment_return(request: Request, db: Session = Depends(get_db)):
    """Browser lands here from Adumo; verify, reconcile, and bounce to the frontend."""
    body, query = await _read_callback(request)
    token = extract_assertion(request.headers, body, query)
    if not token:
        logger.warning("Payment return without an assertion from %s", client_ip(request))
        return _frontend_redirect("/payment-failed", reason="verification")

    config = get_gateway_config()
    try:
        result = await run_in_threadpool(
            ReconciliationService.reconcile, db, config, token, CHANNEL_RETURN, client_ip(request)
        )
    except ReplayDetected as exc:
        result = await run_in_threadpool(_current_result, db, exc.merchant_reference)
    except (AuthError, ValidationError, NotFoundError) as exc:
        logger.warning("Payment return rejected: %s", exc.message)
        return _frontend_redirect("/payment-failed", reason="verification")

    return _redirect_for(result)


@router.post("/api/payment-webhook", response_model=WebhookAck)
async def payment_webhook(request: Request, db: Session = Depends(get_db)):
    """Server-to-server notification. Replays and unknown references are acknowledged."""
    body, query = await _read_callback(request)
    token = extract_assertion(request.headers, body, query)
    if not token:
        raise AuthError("Missing payment assertion")

    config = get_gateway_config()
    try:
        result = await run_in_threadpool(
            ReconciliationService.reconcile, db, config, token, CHANNEL_WEBHOOK, client_ip(request)
        )
    except ReplayDetected:
        return WebhookAck(message="Payment already processed")
    except NotFoundError:
        return WebhookAck(message="Unknown reference")

    return WebhookAck(message=f"Payment {result.status}")


@router.post("/api/payment/verify", response_model=ReconciliationResponse)
def verify_payment(
    payload: ManualVerifyRequest,
    request: Request,
    db: Session = Depends(get_db),
):
    """Manual verification for when a redirect or webhook never arrived."""
    message: Optional[str] = None
    try:
        result = ReconciliationService.reconcile(
            db, get_gateway_config(), payload.token, CHANNEL_MANUAL, client_ip(request)
        )
    except ReplayDetected as exc:
        result = _current_result(db, exc.merchant_reference)
        message = "Payment already processed"

    return ReconciliationResponse(
        success=result.status == PaymentStatus.COMPLETED.value,
        status=result.status,
        merchant_reference=result.merchant_reference,
        message=message or f"Payment {result.status}",
        requires_subscription_setup=result.requires_subscription_setup,
        next_step=result.next_step,
    )


@router.get("/api/payment/status/{merchant_reference}", response_model=PaymentStatusResponse)
def payment_status(merchant_reference: str, db: Session = Depends(get_db)):
    payment = PaymentStore(db).get_payment_by_reference(merchant_reference)
    if payment is None:
        raise NotFoundError("Payment not found")

    result = ReconciliationService.result_for_payment(db, payment)
    return PaymentStatusResponse(
        merchant_reference=payment.merchant_reference,
        status=payment.status,
        amount=payment.amount,
        requires_subscription_setup=result.requires_subscription_setup,
        completed_at=payment.completed_at,
    )
