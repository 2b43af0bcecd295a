"""
Reconciliation Service — applies a verified Adumo assertion to the local
Payment it names.

Payments move pending -> completed | failed | error exactly once. Return-URL
redirects, server-to-server webhooks and manual verification all share
`reconcile`; only the webhook channel enforces the amount check.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ascendancy.config import GatewayConfig
from ascendancy.exceptions import AmountMismatch, NotFoundError, ReplayDetected
from ascendancy.models.payment import Payment, PaymentStatus
from ascendancy.schemas.schemas import DepositMonthlyIntent, payment_intent_adapter
from ascendancy.services.assertion_service import GatewayAssertion, verify_assertion
from ascendancy.services.audit_service import AuditService
from ascendancy.services.payment_store import PaymentStore

logger = logging.getLogger(__name__)

CHANNEL_RETURN = "return"
CHANNEL_WEBHOOK = "webhook"
CHANNEL_MANUAL = "manual"


def default_progress(now: datetime) -> dict:
    """Progress record seeded on an investor's first successful payment."""
    return {
        "level": 1,
        "phase": "development",
        "startDate": now.isoformat(),
        "milestones": {"capitalReclaimed": False, "dividendPhase": False},
    }


@dataclass
class ReconciliationResult:
    merchant_reference: str
    payment_id: str
    status: str
    intent_kind: Optional[str] = None
    monthly_amount: int = 0
    requires_subscription_setup: bool = False

    @property
    def next_step(self) -> str:
        if self.status == PaymentStatus.COMPLETED.value:
            return "subscription_setup" if self.requires_subscription_setup else "login"
        if self.status == PaymentStatus.PENDING.value:
            return "wait"
        return "retry"


class ReconciliationService:

    @staticmethod
    def reconcile(
        db: Session,
        config: GatewayConfig,
        token: str,
        channel: str,
        ip_address: Optional[str] = None,
    ) -> ReconciliationResult:
        """Verify `token` and apply its outcome.

        Raises:
            AuthError / ValidationError: the assertion failed verification.
            NotFoundError: no Payment carries the asserted merchant reference.
            ReplayDetected: the Payment was already reconciled.
            AmountMismatch: webhook amount differs from the stored amount.
        """
        assertion = verify_assertion(token, config)
        store = PaymentStore(db)
        reference = assertion.merchant_reference

        payment = store.get_payment_by_reference(reference)
        if payment is None:
            logger.warning(
                "Callback for unknown merchant reference %s via %s", reference, channel,
                extra={"merchant_reference": reference, "channel": channel},
            )
            raise NotFoundError("Payment not found")

        if payment.status != PaymentStatus.PENDING.value or store.get_transaction_by_reference(reference):
            ReconciliationService._log_replay(db, payment, channel, ip_address)
            raise ReplayDetected(reference, payment.status)

        if channel == CHANNEL_WEBHOOK and assertion.amount != payment.amount:
            AuditService.log(
                db, reference, "AMOUNT_MISMATCH",
                payload={"expected": payment.amount, "received": assertion.amount, "channel": channel},
                ip_address=ip_address,
            )
            raise AmountMismatch(reference, payment.amount, assertion.amount)

        try:
            intent = payment_intent_adapter.validate_python(payment.payment_data)
        except PydanticValidationError:
            logger.error("Payment %s has an unreadable intent; marking as error", reference)
            payment.status = PaymentStatus.ERROR.value
            payment.completed_at = datetime.utcnow()
            store.commit()
            AuditService.log(db, reference, "PAYMENT_ERROR", payload={"channel": channel}, ip_address=ip_address)
            return ReconciliationResult(reference, payment.id, payment.status)

        outcome = assertion.outcome
        is_deposit = isinstance(intent, DepositMonthlyIntent)
        result = ReconciliationResult(
            merchant_reference=reference,
            payment_id=payment.id,
            status=outcome,
            intent_kind=intent.kind,
            monthly_amount=intent.monthly_amount if is_deposit else 0,
            requires_subscription_setup=is_deposit and outcome == PaymentStatus.COMPLETED.value,
        )

        if outcome == PaymentStatus.PENDING.value:
            logger.info(
                "Payment %s still pending at gateway (%s)", reference, assertion.status_text,
                extra={"merchant_reference": reference, "channel": channel},
            )
            return result

        try:
            ReconciliationService._apply_outcome(store, payment, intent, assertion, outcome, channel, config.currency)
            store.commit()
        except IntegrityError:
            store.rollback()
            db.refresh(payment)
            ReconciliationService._log_replay(db, payment, channel, ip_address)
            raise ReplayDetected(reference, payment.status)

        action = "PAYMENT_COMPLETED" if outcome == PaymentStatus.COMPLETED.value else "PAYMENT_FAILED"
        AuditService.log(
            db, reference, action,
            payload={
                "channel": channel,
                "amount": assertion.amount,
                "result": assertion.result_code,
                "status": assertion.status_text,
                "transaction_index": assertion.transaction_index,
            },
            ip_address=ip_address,
        )
        return result

    @staticmethod
    def _apply_outcome(
        store: PaymentStore,
        payment: Payment,
        intent,
        assertion: GatewayAssertion,
        outcome: str,
        channel: str,
        currency: str,
    ) -> None:
        now = datetime.utcnow()
        completed = outcome == PaymentStatus.COMPLETED.value
        user = store.get_user(payment.user_id)
        first_success = completed and store.count_completed_payments(payment.user_id) == 0

        invoice = store.get_or_create_invoice(
            payment,
            currency_code=currency,
            description=f"{intent.tier.title()} tier ({intent.kind})",
            paid=completed,
        )
        store.add_transaction(
            merchant_reference=payment.merchant_reference,
            user_id=payment.user_id,
            invoice_id=invoice.id,
            payment_id=payment.id,
            status=(assertion.status_text or outcome).upper(),
            amount=assertion.amount,
            currency_code=currency,
            channel=channel,
            transaction_index=assertion.transaction_index,
            card_token=assertion.card_token,
            error_code=assertion.error_code,
            error_message=assertion.error_message,
            raw_token=assertion.raw_token,
            raw_payload=assertion.claims,
        )

        payment.status = outcome
        payment.completed_at = now
        payment.gateway_transaction_index = assertion.transaction_index

        if user is None:
            return
        if completed:
            user.payment_status = PaymentStatus.COMPLETED.value
            user.tier = intent.tier
            user.payment_method = intent.kind
            # Each completed purchase adds to the commitment; the tier follows the latest one.
            user.amount = intent.total_commitment if first_success else (user.amount or 0) + intent.total_commitment
            if first_success and not user.progress:
                user.progress = default_progress(now)
        elif user.payment_status != PaymentStatus.COMPLETED.value:
            user.payment_status = PaymentStatus.FAILED.value

    @staticmethod
    def _log_replay(db: Session, payment: Payment, channel: str, ip_address: Optional[str]) -> None:
        logger.info(
            "Replay for %s via %s ignored (status=%s)", payment.merchant_reference, channel, payment.status,
            extra={"merchant_reference": payment.merchant_reference, "channel": channel},
        )
        AuditService.log(
            db, payment.merchant_reference, "REPLAY_DETECTED",
            payload={"channel": channel, "status": payment.status},
            ip_address=ip_address,
        )

    @staticmethod
    def result_for_payment(db: Session, payment: Payment) -> ReconciliationResult:
        """Describe a Payment's current state, e.g. after a replay or for status polling."""
        store = PaymentStore(db)
        try:
            intent = payment_intent_adapter.validate_python(payment.payment_data)
        except PydanticValidationError:
            return ReconciliationResult(payment.merchant_reference, payment.id, payment.status)

        is_deposit = isinstance(intent, DepositMonthlyIntent)
        needs_setup = (
            is_deposit
            and payment.status == PaymentStatus.COMPLETED.value
            and store.get_subscription_for_payment(payment.id) is None
        )
        return ReconciliationResult(
            merchant_reference=payment.merchant_reference,
            payment_id=payment.id,
            status=payment.status,
            intent_kind=intent.kind,
            monthly_amount=intent.monthly_amount if is_deposit else 0,
            requires_subscription_setup=needs_setup,
        )
