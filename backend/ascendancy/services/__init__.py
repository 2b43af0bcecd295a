from ascendancy.services.audit_service import AuditService
from ascendancy.services.gateway_client import AdumoClient
from ascendancy.services.otp_service import OTPService
from ascendancy.services.payment_service import PaymentIntentService
from ascendancy.services.payment_store import PaymentStore
from ascendancy.services.pricing import PricingService
from ascendancy.services.reconciliation_service import ReconciliationService
from ascendancy.services.returns_service import ReturnsService
from ascendancy.services.subscription_service import SubscriptionService

__all__ = [
    "AuditService", "AdumoClient", "OTPService", "PaymentIntentService", "PaymentStore",
    "PricingService", "ReconciliationService", "ReturnsService", "SubscriptionService",
]
