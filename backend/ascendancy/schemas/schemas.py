"""
Pydantic Schemas — Request & Response models for API validation,
plus the tagged payment-intent variants stored on each Payment.
"""
from datetime import date, datetime
from typing import Annotated, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, EmailStr, Field, TypeAdapter


class CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


# ──────────────── Payment intents (stored in Payment.payment_data) ────────────────

class LumpSumIntent(BaseModel):
    kind: Literal["lump_sum"] = "lump_sum"
    tier: str
    merchant_reference: str
    total_commitment: int


class DepositMonthlyIntent(BaseModel):
    kind: Literal["deposit_monthly"] = "deposit_monthly"
    tier: str
    merchant_reference: str
    total_commitment: int
    deposit_amount: int
    monthly_amount: int
    total_months: int


PaymentIntent = Annotated[Union[LumpSumIntent, DepositMonthlyIntent], Field(discriminator="kind")]
payment_intent_adapter = TypeAdapter(PaymentIntent)


# ──────────────── Payment ────────────────

class PaymentIntentRequest(CamelModel):
    tier: str = Field(..., description="builder | innovator | visionary | cornerstone")
    payment_method: Literal["lump_sum", "deposit_monthly"] = Field(..., alias="paymentMethod")
    amount: Optional[int] = Field(None, ge=1, description="Amount in cents (required for cornerstone)")
    email: EmailStr
    first_name: str = Field(..., min_length=1, alias="firstName")
    last_name: str = Field(..., min_length=1, alias="lastName")
    phone: Optional[str] = Field(None, max_length=20)


class PaymentIntentResponse(CamelModel):
    payment_id: str = Field(..., alias="paymentId")
    user_id: str = Field(..., alias="userId")
    merchant_reference: str = Field(..., alias="merchantReference")
    amount: int
    url: str
    form_data: Dict[str, str] = Field(..., alias="formData")


class PaymentStatusResponse(CamelModel):
    merchant_reference: str = Field(..., alias="merchantReference")
    status: str
    amount: int
    requires_subscription_setup: bool = Field(False, alias="requiresSubscriptionSetup")
    completed_at: Optional[datetime] = Field(None, alias="completedAt")


class ManualVerifyRequest(CamelModel):
    token: str = Field(..., min_length=10, description="The signed assertion returned by Adumo")


class ReconciliationResponse(CamelModel):
    success: bool
    status: str
    merchant_reference: str = Field(..., alias="merchantReference")
    message: str = ""
    requires_subscription_setup: bool = Field(False, alias="requiresSubscriptionSetup")
    next_step: str = Field("login", alias="nextStep")   # login | subscription_setup | wait | retry


# ──────────────── Adumo card + subscription ────────────────

class CardDetails(CamelModel):
    card_number: str = Field(..., alias="cardNumber")
    expiry_month: int = Field(..., alias="expiryMonth")
    expiry_year: int = Field(..., alias="expiryYear")
    cvv: str
    cardholder_name: str = Field(..., alias="cardholderName")


class MaskedCard(CamelModel):
    card_type: Optional[str] = Field(None, alias="cardType")
    last_four_digits: Optional[str] = Field(None, alias="lastFourDigits")
    expiry_month: Optional[int] = Field(None, alias="expiryMonth")
    expiry_year: Optional[int] = Field(None, alias="expiryYear")


class TokenizeCardResponse(CamelModel):
    success: bool = True
    card_token: str = Field(..., alias="cardToken")
    profile_token: str = Field(..., alias="profileToken")
    card: MaskedCard


class SubscriptionSetupRequest(CamelModel):
    reference: str = Field(..., description="Merchant reference of the completed deposit payment")
    payment_id: Optional[str] = Field(None, alias="paymentId")
    token_uid: Optional[str] = Field(None, alias="tokenUid")
    profile_uid: Optional[str] = Field(None, alias="profileUid")
    card: Optional[CardDetails] = None
    masked_card: Optional[MaskedCard] = Field(None, alias="maskedCard")


class SubscriptionResponse(CamelModel):
    success: bool = True
    subscription_id: str = Field(..., alias="subscriptionId")
    subscriber_id: str = Field(..., alias="subscriberId")
    schedule_id: str = Field(..., alias="scheduleId")
    monthly_amount: int = Field(..., alias="monthlyAmount")
    total_months: int = Field(..., alias="totalMonths")
    start_date: date = Field(..., alias="startDate")
    status: str


class SubscriptionWebhookPayload(CamelModel):
    schedule_id: str = Field(..., alias="scheduleId")
    subscriber_id: Optional[str] = Field(None, alias="subscriberId")
    reference: str
    status: str
    amount: Union[str, int, float]


# ──────────────── Auth ────────────────

class OTPRequest(BaseModel):
    email: str = Field("", max_length=191)


class OTPVerifyRequest(BaseModel):
    email: str = Field(..., max_length=191)
    code: str = Field(..., min_length=6, max_length=6)


class OTPRequestResponse(BaseModel):
    success: bool = True
    message: str


class InvestorProfile(CamelModel):
    model_config = ConfigDict(populate_by_name=True, from_attributes=True)

    id: str
    email: str
    first_name: str = Field(..., alias="firstName")
    last_name: str = Field(..., alias="lastName")
    phone: Optional[str] = None
    tier: str
    payment_method: str = Field(..., alias="paymentMethod")
    amount: int
    payment_status: str = Field(..., alias="paymentStatus")
    progress: Optional[Dict] = None
    created_at: Optional[datetime] = Field(None, alias="createdAt")


class AuthTokenResponse(CamelModel):
    success: bool = True
    token: str
    expires_in: int = Field(..., alias="expiresIn")
    investor: InvestorProfile


# ──────────────── Investor dashboard ────────────────

class TransactionEntry(CamelModel):
    model_config = ConfigDict(populate_by_name=True, from_attributes=True)

    id: str
    merchant_reference: str = Field(..., alias="merchantReference")
    status: str
    amount: int
    currency_code: str = Field(..., alias="currencyCode")
    channel: str
    created_at: datetime = Field(..., alias="createdAt")


class PaymentMethodEntry(CamelModel):
    model_config = ConfigDict(populate_by_name=True, from_attributes=True)

    id: str
    card_type: Optional[str] = Field(None, alias="cardType")
    last_four_digits: Optional[str] = Field(None, alias="lastFourDigits")
    expiry_month: Optional[int] = Field(None, alias="expiryMonth")
    expiry_year: Optional[int] = Field(None, alias="expiryYear")
    is_active: bool = Field(..., alias="isActive")


class DividendPayout(CamelModel):
    year: int
    amount: int


class QuestProgressResponse(CamelModel):
    tier: str
    payment_status: str = Field(..., alias="paymentStatus")
    total_invested: int = Field(..., alias="totalInvested")
    capital_reclaimed_month: int = Field(..., alias="capitalReclaimedMonth")
    annual_dividend: int = Field(..., alias="annualDividend")
    dividends: List[DividendPayout]
    total_collected: int = Field(..., alias="totalCollected")
    return_on_belief: int = Field(..., alias="returnOnBelief")
    progress: Dict = {}
    subscription: Optional[Dict] = None


# ──────────────── Generic ────────────────

class WebhookAck(BaseModel):
    received: bool = True
    message: str = ""
