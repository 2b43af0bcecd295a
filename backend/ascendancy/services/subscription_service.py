"""
Subscription Service — recurring monthly collections after a deposit.

Setup: tokenize (or accept tokens) -> locate the completed deposit Payment ->
create subscriber + schedule at Adumo -> persist Subscription and
PaymentMethod in one commit. Nothing is stored locally if any step fails.

Collections: each signed subscription webhook is logged once per collection
reference and advances paid_months only while the subscription is ACTIVE.
"""
import logging
from dataclasses import dataclass
from datetime import date
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ascendancy.exceptions import NotFoundError, ReplayDetected, ValidationError
from ascendancy.models.payment import PaymentStatus, TransactionSource
from ascendancy.models.subscription import PaymentMethod, Subscription, SubscriptionStatus
from ascendancy.schemas.schemas import (
    DepositMonthlyIntent, SubscriptionSetupRequest, SubscriptionWebhookPayload, payment_intent_adapter,
)
from ascendancy.services.assertion_service import map_outcome
from ascendancy.services.audit_service import AuditService
from ascendancy.services.gateway_client import AdumoClient, SubscriberDetails, TokenizedCard
from ascendancy.services.payment_store import PaymentStore
from ascendancy.utils.currency import to_minor_units

logger = logging.getLogger(__name__)


def next_collection_date(today: date, collection_day: int) -> date:
    """First collection: `collection_day` of the month after `today`."""
    if today.month == 12:
        return date(today.year + 1, 1, collection_day)
    return date(today.year, today.month + 1, collection_day)


@dataclass
class CollectionResult:
    subscription: Optional[Subscription]
    outcome: str
    message: str


class SubscriptionService:

    @staticmethod
    def setup_from_payment(
        db: Session,
        client: AdumoClient,
        request: SubscriptionSetupRequest,
        today: Optional[date] = None,
        ip_address: Optional[str] = None,
    ) -> Subscription:
        """Create the monthly schedule for a completed deposit payment.

        Calling again for the same payment returns the existing Subscription.
        """
        store = PaymentStore(db)
        payment = store.get_payment_by_reference(request.reference)
        if payment is None:
            raise NotFoundError("Payment not found")
        if request.payment_id and request.payment_id != payment.id:
            raise ValidationError(
                "Validation error",
                errors=[{"field": "paymentId", "message": "Payment id does not match the reference"}],
            )
        if payment.status != PaymentStatus.COMPLETED.value:
            raise ValidationError("Payment has not been completed")

        intent = payment_intent_adapter.validate_python(payment.payment_data)
        if not isinstance(intent, DepositMonthlyIntent):
            raise ValidationError("Only deposit payments have a monthly subscription")

        existing = store.get_subscription_for_payment(payment.id)
        if existing is not None:
            logger.info("Subscription for %s already exists", payment.merchant_reference)
            return existing

        card = SubscriptionService._resolve_tokens(client, request)
        user = store.get_user(payment.user_id)
        config = client.config
        start_date = next_collection_date(today or date.today(), config.collection_day)

        created = client.create_subscriber_and_schedule(
            card_token=card.card_token,
            profile_token=card.profile_token,
            monthly_amount=intent.monthly_amount,
            total_months=intent.total_months,
            start_date=start_date,
            collection_day=config.collection_day,
            reference=payment.merchant_reference,
            subscriber=SubscriberDetails(
                first_name=user.first_name,
                last_name=user.last_name,
                email=user.email,
                phone=user.phone,
            ),
        )

        subscription = store.add_subscription(Subscription(
            user_id=user.id,
            payment_id=payment.id,
            tier=intent.tier,
            monthly_amount=intent.monthly_amount,
            total_months=intent.total_months,
            paid_months=0,
            subscriber_id=created.subscriber_id,
            schedule_id=created.schedule_id,
            start_date=start_date,
            collection_day=config.collection_day,
            status=SubscriptionStatus.ACTIVE.value,
        ))
        store.add_payment_method(PaymentMethod(
            user_id=user.id,
            profile_token=card.profile_token,
            card_type=card.card_type,
            last_four_digits=card.last_four_digits,
            expiry_month=card.expiry_month,
            expiry_year=card.expiry_year,
            is_active=True,
        ))
        try:
            store.commit()
        except IntegrityError:
            store.rollback()
            existing = store.get_subscription_for_payment(payment.id)
            if existing is None:
                raise
            return existing

        AuditService.log(
            db, payment.merchant_reference, "SUBSCRIPTION_CREATED",
            payload={
                "subscriber_id": created.subscriber_id,
                "schedule_id": created.schedule_id,
                "monthly_amount": intent.monthly_amount,
                "total_months": intent.total_months,
                "start_date": start_date.isoformat(),
            },
            ip_address=ip_address,
            metadata={"schedule_fallback": created.used_schedule_fallback},
        )
        return subscription

    @staticmethod
    def _resolve_tokens(client: AdumoClient, request: SubscriptionSetupRequest) -> TokenizedCard:
        if request.card is not None:
            return client.tokenize_card(request.card)

        if not request.token_uid or not request.profile_uid:
            raise ValidationError(
                "Validation error",
                errors=[{"field": "card", "message": "Card details or tokenUid and profileUid are required"}],
            )
        masked = request.masked_card
        return TokenizedCard(
            card_token=request.token_uid,
            profile_token=request.profile_uid,
            card_type=masked.card_type if masked else None,
            last_four_digits=masked.last_four_digits if masked else None,
            expiry_month=masked.expiry_month if masked else None,
            expiry_year=masked.expiry_year if masked else None,
        )

    @staticmethod
    def record_collection(
        db: Session,
        payload: SubscriptionWebhookPayload,
        raw_payload: dict,
        currency: str = "ZAR",
    ) -> CollectionResult:
        """Apply one collection notification.

        Raises:
            ReplayDetected: the collection reference was already recorded.
            ValidationError: the amount is not numeric.
        """
        store = PaymentStore(db)
        subscription = store.get_subscription_by_schedule(payload.schedule_id)
        if subscription is None:
            logger.warning(
                "Collection %s for unknown schedule %s", payload.reference, payload.schedule_id,
                extra={"merchant_reference": payload.reference, "schedule_id": payload.schedule_id},
            )
            return CollectionResult(None, PaymentStatus.PENDING.value, "Unknown schedule")

        if store.get_transaction_by_reference(payload.reference, TransactionSource.COLLECTION):
            raise ReplayDetected(payload.reference, subscription.status)

        try:
            amount = to_minor_units(payload.amount)
        except ValueError as exc:
            raise ValidationError(
                "Validation error", errors=[{"field": "amount", "message": "Amount must be numeric"}]
            ) from exc

        outcome = map_outcome(payload.status, None)
        if outcome == PaymentStatus.PENDING.value:
            return CollectionResult(subscription, outcome, "Collection pending")

        # Only an ACTIVE schedule advances; later collections are logged as-is.
        active = subscription.status == SubscriptionStatus.ACTIVE.value
        if active and outcome == PaymentStatus.COMPLETED.value:
            subscription.paid_months = min((subscription.paid_months or 0) + 1, subscription.total_months)
            if subscription.paid_months >= subscription.total_months:
                subscription.status = SubscriptionStatus.COMPLETED.value
        elif active:
            subscription.status = SubscriptionStatus.FAILED.value
        else:
            logger.warning(
                "Collection %s for %s subscription %s recorded without advancing it",
                payload.reference, subscription.status, subscription.id,
                extra={"merchant_reference": payload.reference, "schedule_id": payload.schedule_id},
            )

        try:
            store.add_transaction(
                source=TransactionSource.COLLECTION.value,
                merchant_reference=payload.reference,
                user_id=subscription.user_id,
                subscription_id=subscription.id,
                status=payload.status.upper(),
                amount=amount,
                currency_code=currency,
                channel="subscription",
                raw_payload=raw_payload,
            )
            store.commit()
        except IntegrityError:
            store.rollback()
            raise ReplayDetected(payload.reference, payload.status)

        AuditService.log(
            db, payload.reference, "SUBSCRIPTION_COLLECTION",
            payload={
                "schedule_id": payload.schedule_id,
                "status": payload.status,
                "amount": amount,
                "paid_months": subscription.paid_months,
            },
        )
        message = "Collection recorded" if active else f"Collection recorded; subscription is {subscription.status}"
        return CollectionResult(subscription, outcome, message)
