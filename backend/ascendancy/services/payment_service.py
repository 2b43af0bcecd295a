"""
Payment Intent Service — turns a tier selection into a pending Payment and
the hosted-form fields the browser posts to Adumo.
"""
import logging
from typing import Optional

from sqlalchemy.orm import Session

from ascendancy.models.payment import Payment
from ascendancy.models.user import User
from ascendancy.schemas.schemas import (
    DepositMonthlyIntent, LumpSumIntent, PaymentIntentRequest,
)
from ascendancy.services.audit_service import AuditService
from ascendancy.services.gateway_client import (
    AdumoClient, ReturnUrls, SubscriberDetails, VirtualForm, generate_merchant_reference,
)
from ascendancy.services.payment_store import PaymentStore
from ascendancy.services.pricing import PricingService
from ascendancy.utils.validators import normalize_email

logger = logging.getLogger(__name__)


class PaymentIntentService:

    @staticmethod
    def create_intent(
        db: Session,
        client: AdumoClient,
        request: PaymentIntentRequest,
        ip_address: Optional[str] = None,
    ) -> tuple[Payment, User, VirtualForm]:
        """Validate, persist a pending Payment, and assemble the virtual form.

        Pricing errors raise before anything is written.
        """
        quote = PricingService.quote(request.tier, request.payment_method, request.amount)
        merchant_reference = generate_merchant_reference()

        if request.payment_method == "deposit_monthly":
            intent = DepositMonthlyIntent(
                tier=quote.tier,
                merchant_reference=merchant_reference,
                total_commitment=quote.total_commitment,
                deposit_amount=quote.charge_amount,
                monthly_amount=quote.monthly_amount,
                total_months=quote.total_months,
            )
        else:
            intent = LumpSumIntent(
                tier=quote.tier,
                merchant_reference=merchant_reference,
                total_commitment=quote.total_commitment,
            )

        email = normalize_email(request.email)
        store = PaymentStore(db)
        user = store.upsert_user(
            email=email,
            first_name=request.first_name.strip(),
            last_name=request.last_name.strip(),
            phone=request.phone,
            tier=quote.tier,
            payment_method=request.payment_method,
        )
        payment = store.create_payment(user, merchant_reference, quote.charge_amount, intent.model_dump())

        config = client.config
        form = client.build_virtual_form_payload(
            payment,
            ReturnUrls(success_url=config.return_url, failure_url=config.return_url, notify_url=config.notify_url),
            intent,
            SubscriberDetails(
                first_name=user.first_name,
                last_name=user.last_name,
                email=user.email,
                phone=user.phone,
            ),
        )
        store.commit()

        AuditService.log(
            db, merchant_reference, "INTENT_CREATED",
            payload={"payment_id": payment.id, "amount": payment.amount, "intent": intent.model_dump()},
            ip_address=ip_address,
        )
        logger.info(
            "Payment intent %s created: tier=%s method=%s amount=%s",
            merchant_reference, quote.tier, request.payment_method, quote.charge_amount,
        )
        return payment, user, form
