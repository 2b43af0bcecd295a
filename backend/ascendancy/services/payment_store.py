"""
Payment Store — repository over the SQLAlchemy session for every payment entity.

Unique merchant references on Invoice rows, and per source on Transaction rows,
are enforced by the database; callers treat an IntegrityError on flush/commit
as a replay.
"""
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from ascendancy.models.otp import OTP
from ascendancy.models.payment import Invoice, Payment, PaymentStatus, Transaction, TransactionSource
from ascendancy.models.subscription import PaymentMethod, Subscription
from ascendancy.models.user import User


class PaymentStore:
    def __init__(self, db: Session):
        self.db = db

    def commit(self) -> None:
        self.db.commit()

    def rollback(self) -> None:
        self.db.rollback()

    # ─── Users ────────────────────────────────────────────────────────

    def get_user(self, user_id: str) -> Optional[User]:
        return self.db.query(User).filter(User.id == user_id).first()

    def get_user_by_email(self, email: str) -> Optional[User]:
        return self.db.query(User).filter(User.email == email).first()

    def upsert_user(
        self,
        email: str,
        first_name: str,
        last_name: str,
        phone: Optional[str],
        tier: str,
        payment_method: str,
    ) -> User:
        """Resolve the investor by email, creating them on first intent.

        Contact details are refreshed; tier and method only change while the
        investor has nothing completed, since reconciliation owns those after.
        """
        user = self.get_user_by_email(email)
        if user is None:
            user = User(
                email=email,
                first_name=first_name,
                last_name=last_name,
                phone=phone,
                tier=tier,
                payment_method=payment_method,
                amount=0,
                payment_status=PaymentStatus.PENDING.value,
                progress={},
            )
            self.db.add(user)
            self.db.flush()
            return user

        user.first_name = first_name
        user.last_name = last_name
        if phone:
            user.phone = phone
        if user.payment_status != PaymentStatus.COMPLETED.value:
            user.tier = tier
            user.payment_method = payment_method
        return user

    # ─── Payments ─────────────────────────────────────────────────────

    def create_payment(self, user: User, merchant_reference: str, amount: int, payment_data: dict) -> Payment:
        payment = Payment(
            user_id=user.id,
            merchant_reference=merchant_reference,
            amount=amount,
            method="adumo",
            status=PaymentStatus.PENDING.value,
            payment_data=payment_data,
        )
        self.db.add(payment)
        self.db.flush()
        return payment

    def get_payment_by_reference(self, merchant_reference: str) -> Optional[Payment]:
        return self.db.query(Payment).filter(Payment.merchant_reference == merchant_reference).first()

    def count_completed_payments(self, user_id: str) -> int:
        return (
            self.db.query(Payment)
            .filter(Payment.user_id == user_id, Payment.status == PaymentStatus.COMPLETED.value)
            .count()
        )

    # ─── Invoices & transactions ──────────────────────────────────────

    def get_or_create_invoice(self, payment: Payment, currency_code: str, description: str, paid: bool) -> Invoice:
        invoice = self.db.query(Invoice).filter(Invoice.merchant_reference == payment.merchant_reference).first()
        if invoice is None:
            invoice = Invoice(
                merchant_reference=payment.merchant_reference,
                payment_id=payment.id,
                user_id=payment.user_id,
                amount=payment.amount,
                currency_code=currency_code,
                description=description,
            )
            self.db.add(invoice)
        invoice.status = "paid" if paid else "unpaid"
        self.db.flush()
        return invoice

    def get_transaction_by_reference(
        self, merchant_reference: str, source: TransactionSource = TransactionSource.PAYMENT
    ) -> Optional[Transaction]:
        return (
            self.db.query(Transaction)
            .filter(Transaction.source == source.value, Transaction.merchant_reference == merchant_reference)
            .first()
        )

    def add_transaction(self, **fields) -> Transaction:
        transaction = Transaction(**fields)
        self.db.add(transaction)
        self.db.flush()
        return transaction

    def list_transactions(self, user_id: str) -> list[Transaction]:
        return (
            self.db.query(Transaction)
            .filter(Transaction.user_id == user_id)
            .order_by(Transaction.created_at.desc())
            .all()
        )

    # ─── Subscriptions & saved cards ──────────────────────────────────

    def get_subscription_for_payment(self, payment_id: str) -> Optional[Subscription]:
        return self.db.query(Subscription).filter(Subscription.payment_id == payment_id).first()

    def get_subscription_by_schedule(self, schedule_id: str) -> Optional[Subscription]:
        return self.db.query(Subscription).filter(Subscription.schedule_id == schedule_id).first()

    def get_latest_subscription(self, user_id: str) -> Optional[Subscription]:
        return (
            self.db.query(Subscription)
            .filter(Subscription.user_id == user_id)
            .order_by(Subscription.created_at.desc())
            .first()
        )

    def add_subscription(self, subscription: Subscription) -> Subscription:
        self.db.add(subscription)
        return subscription

    def add_payment_method(self, method: PaymentMethod) -> PaymentMethod:
        self.db.add(method)
        return method

    def list_payment_methods(self, user_id: str, active_only: bool = True) -> list[PaymentMethod]:
        query = self.db.query(PaymentMethod).filter(PaymentMethod.user_id == user_id)
        if active_only:
            query = query.filter(PaymentMethod.is_active.is_(True))
        return query.order_by(PaymentMethod.created_at.desc()).all()

    def get_payment_method(self, user_id: str, method_id: str) -> Optional[PaymentMethod]:
        return (
            self.db.query(PaymentMethod)
            .filter(PaymentMethod.id == method_id, PaymentMethod.user_id == user_id)
            .first()
        )

    # ─── OTP ──────────────────────────────────────────────────────────

    def add_otp(self, email: str, code: str, expires_at: datetime) -> OTP:
        otp = OTP(email=email, code=code, expires_at=expires_at)
        self.db.add(otp)
        self.db.commit()
        return otp

    def find_valid_otp(self, email: str, code: str, now: datetime) -> Optional[OTP]:
        return (
            self.db.query(OTP)
            .filter(
                OTP.email == email,
                OTP.code == code,
                OTP.used_at.is_(None),
                OTP.expires_at > now,
            )
            .order_by(OTP.created_at.desc())
            .first()
        )

    def delete_expired_otps(self, now: datetime) -> int:
        deleted = self.db.query(OTP).filter(OTP.expires_at <= now).delete(synchronize_session=False)
        self.db.commit()
        return deleted
