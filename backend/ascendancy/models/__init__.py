from ascendancy.models.user import User
from ascendancy.models.payment import Payment, Invoice, Transaction, PaymentStatus, TransactionSource
from ascendancy.models.subscription import Subscription, PaymentMethod, SubscriptionStatus
from ascendancy.models.otp import OTP
from ascendancy.models.audit import PaymentEvent

__all__ = [
    "User", "Payment", "Invoice", "Transaction", "PaymentStatus", "TransactionSource",
    "Subscription", "PaymentMethod", "SubscriptionStatus", "OTP", "PaymentEvent",
]
