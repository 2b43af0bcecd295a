"""
Adumo Online API client.

Provides methods for:
- OAuth client-credentials token acquisition
- Card tokenization
- Subscriber and payment-schedule creation
- Virtual payment form assembly (signed assertion + hosted form fields)

The client never persists anything; callers store the identifiers it returns.
"""
import logging
import time
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Optional

import httpx
from jose import jwt

from ascendancy.config import GatewayConfig
from ascendancy.exceptions import AuthError, GatewayError, ValidationError
from ascendancy.models.payment import Payment
from ascendancy.schemas.schemas import CardDetails, DepositMonthlyIntent, PaymentIntent
from ascendancy.utils.currency import cents_to_decimal_string
from ascendancy.utils.validators import detect_card_type, validate_card

logger = logging.getLogger(__name__)

ASSERTION_ALGORITHM = "HS256"

OAUTH_PATH = "/oauth/token"
TOKENIZE_PATH = "/products/tokenization/v1/card"
SUBSCRIBERS_PATH = "/products/subscriptions/v1/subscribers"


def generate_merchant_reference() -> str:
    """Globally unique merchant reference, e.g. ASC-20261018-3F9A1C2B7D4E."""
    return f"ASC-{datetime.utcnow():%Y%m%d}-{uuid.uuid4().hex[:12].upper()}"


@dataclass
class TokenizedCard:
    card_token: str
    profile_token: str
    card_type: Optional[str] = None
    last_four_digits: Optional[str] = None
    expiry_month: Optional[int] = None
    expiry_year: Optional[int] = None


@dataclass
class SubscriberSchedule:
    subscriber_id: str
    schedule_id: str
    used_schedule_fallback: bool = False


@dataclass
class SubscriberDetails:
    first_name: str
    last_name: str
    email: str
    phone: Optional[str] = None


@dataclass
class ReturnUrls:
    success_url: str
    failure_url: str
    notify_url: str


@dataclass
class VirtualForm:
    url: str
    form_fields: dict[str, str] = field(default_factory=dict)


class AdumoClient:
    """Synchronous client for the Adumo Online REST APIs."""

    def __init__(self, config: GatewayConfig, transport: Optional[httpx.BaseTransport] = None):
        self.config = config
        self._http = httpx.Client(
            base_url=config.api_base_url,
            timeout=config.timeout_seconds,
            transport=transport,
        )
        self._access_token: Optional[str] = None
        self._token_expires_at = 0.0

    def close(self) -> None:
        self._http.close()

    # =========================================================================
    # Transport
    # =========================================================================

    def _request(
        self,
        method: str,
        path: str,
        json_data: Optional[dict] = None,
        params: Optional[dict] = None,
    ) -> dict:
        """Authenticated request. Non-2xx responses raise GatewayError."""
        headers = {
            "Authorization": f"Bearer {self.get_oauth_token()}",
            "Content-Type": "application/json",
        }
        try:
            response = self._http.request(method, path, headers=headers, json=json_data, params=params)
        except httpx.HTTPError as exc:
            raise GatewayError(f"Adumo request to {path} failed: {exc}") from exc

        data = _json_or_empty(response)
        if not response.is_success:
            logger.error("Adumo API error on %s: %s - %s", path, response.status_code, data)
            raise GatewayError(
                data.get("message") or data.get("error_description") or "Adumo request rejected",
                status_code=response.status_code,
                response_data=data,
            )
        return data

    # =========================================================================
    # OAuth
    # =========================================================================

    def get_oauth_token(self) -> str:
        """Client-credentials exchange. Cached until shortly before expiry."""
        if self._access_token and time.monotonic() < self._token_expires_at:
            return self._access_token

        try:
            response = self._http.post(
                OAUTH_PATH,
                params={
                    "grant_type": "client_credentials",
                    "client_id": self.config.client_id,
                    "client_secret": self.config.client_secret,
                },
            )
        except httpx.HTTPError as exc:
            raise GatewayError(f"Adumo OAuth request failed: {exc}") from exc

        data = _json_or_empty(response)
        if response.status_code in (400, 401, 403):
            logger.error("Adumo rejected client credentials (%s)", response.status_code)
            raise AuthError("Payment provider authentication failed")
        if not response.is_success or not data.get("access_token"):
            raise GatewayError(
                "Adumo OAuth token unavailable",
                status_code=response.status_code,
                response_data=data,
            )

        expires_in = int(data.get("expires_in") or 300)
        self._access_token = data["access_token"]
        self._token_expires_at = time.monotonic() + max(expires_in - 60, 0)
        return self._access_token

    # =========================================================================
    # Tokenization
    # =========================================================================

    def tokenize_card(self, card: CardDetails) -> TokenizedCard:
        """Exchange raw card details for a card token and profile token.

        Raises:
            ValidationError: malformed card fields (checked before any network call).
            GatewayError: Adumo rejected the card or returned no tokens.
        """
        errors = validate_card(
            card.card_number, card.expiry_month, card.expiry_year, card.cvv, card.cardholder_name
        )
        if errors:
            raise ValidationError("Invalid card details", errors=errors)

        number = "".join(ch for ch in card.card_number if ch.isdigit())
        expiry_year = card.expiry_year if card.expiry_year >= 100 else card.expiry_year + 2000
        data = self._request(
            "POST",
            TOKENIZE_PATH,
            json_data={
                "merchantUid": self.config.merchant_id,
                "applicationUid": self.config.application_id,
                "cardNumber": number,
                "expiryMonth": card.expiry_month,
                "expiryYear": expiry_year,
                "cvv": card.cvv,
                "cardHolderFullName": card.cardholder_name.strip(),
            },
        )

        card_token = data.get("tokenUid") or data.get("token")
        profile_token = data.get("profileUid") or data.get("puid")
        if not card_token or not profile_token:
            raise GatewayError("Adumo tokenization returned no token", response_data=data)

        return TokenizedCard(
            card_token=card_token,
            profile_token=profile_token,
            card_type=data.get("cardType") or detect_card_type(number),
            last_four_digits=number[-4:],
            expiry_month=card.expiry_month,
            expiry_year=expiry_year,
        )

    # =========================================================================
    # Subscriptions
    # =========================================================================

    def create_subscriber_and_schedule(
        self,
        card_token: str,
        profile_token: str,
        monthly_amount: int,
        total_months: int,
        start_date: date,
        collection_day: int,
        reference: str,
        subscriber: SubscriberDetails,
    ) -> SubscriberSchedule:
        """Two-phase subscriber creation.

        Phase one creates the subscriber with the schedule attached. When the
        response carries no schedule id, phase two creates the schedule
        explicitly against the new subscriber.
        """
        schedule = self._schedule_body(monthly_amount, total_months, start_date, collection_day)
        data = self._request(
            "POST",
            SUBSCRIBERS_PATH,
            json_data={
                "merchantUid": self.config.merchant_id,
                "applicationUid": self.config.application_id,
                "accountNumber": reference,
                "firstName": subscriber.first_name,
                "lastName": subscriber.last_name,
                "email": subscriber.email,
                "mobileNumber": subscriber.phone or "",
                "tokenUid": card_token,
                "profileUid": profile_token,
                "schedule": schedule,
            },
        )

        subscriber_id = data.get("subscriberUid") or data.get("id")
        if not subscriber_id:
            raise GatewayError("Adumo subscriber creation returned no subscriber id", response_data=data)

        schedule_id = data.get("scheduleUid") or (data.get("schedule") or {}).get("uid")
        if schedule_id:
            return SubscriberSchedule(subscriber_id=subscriber_id, schedule_id=schedule_id)

        logger.info("Subscriber %s created without a schedule; creating schedule explicitly", subscriber_id)
        schedule_id = self._create_schedule_fallback(subscriber_id, schedule)
        return SubscriberSchedule(subscriber_id=subscriber_id, schedule_id=schedule_id, used_schedule_fallback=True)

    def _create_schedule_fallback(self, subscriber_id: str, schedule: dict) -> str:
        data = self._request("POST", f"{SUBSCRIBERS_PATH}/{subscriber_id}/schedules", json_data=schedule)
        schedule_id = data.get("scheduleUid") or data.get("id")
        if not schedule_id:
            raise GatewayError("Adumo schedule creation returned no schedule id", response_data=data)
        return schedule_id

    def _schedule_body(self, monthly_amount: int, total_months: int, start_date: date, collection_day: int) -> dict:
        end_date = _add_months(start_date, total_months - 1)
        return {
            "frequency": "MONTHLY",
            "collectionDay": collection_day,
            "collectionValue": cents_to_decimal_string(monthly_amount),
            "currencyCode": self.config.currency,
            "numberOfCollections": total_months,
            "startDate": start_date.isoformat(),
            "endDate": end_date.isoformat(),
        }

    # =========================================================================
    # Virtual payment form
    # =========================================================================

    def sign_assertion(self, merchant_reference: str, amount: int, now: Optional[datetime] = None) -> str:
        """HS256 assertion binding the form to this merchant, application, amount and reference."""
        now = now or datetime.now(timezone.utc)
        claims = {
            "iss": self.config.issuer,
            "cuid": self.config.merchant_id,
            "auid": self.config.application_id,
            "amount": cents_to_decimal_string(amount),
            "mref": merchant_reference,
            "jti": uuid.uuid4().hex,
            "iat": int(now.timestamp()),
            "exp": int((now + timedelta(minutes=self.config.assertion_ttl_minutes)).timestamp()),
        }
        return jwt.encode(claims, self.config.jwt_secret, algorithm=ASSERTION_ALGORITHM)

    def build_virtual_form_payload(
        self,
        payment: Payment,
        return_urls: ReturnUrls,
        intent: PaymentIntent,
        subscriber: SubscriberDetails,
    ) -> VirtualForm:
        """Fields for a browser POST to the hosted Adumo form."""
        merchant_reference = payment.merchant_reference
        amount = payment.amount
        payment_id = payment.id
        decimal_amount = cents_to_decimal_string(amount)
        is_deposit = isinstance(intent, DepositMonthlyIntent)
        description = f"{intent.tier.title()} tier {'deposit' if is_deposit else 'investment'}"

        fields = {
            "MerchantID": self.config.merchant_id,
            "ApplicationID": self.config.application_id,
            "MerchantReference": merchant_reference,
            "Amount": decimal_amount,
            "txtCurrencyCode": self.config.currency,
            "Token": self.sign_assertion(merchant_reference, amount),
            "RedirectSuccessfulURL": return_urls.success_url,
            "RedirectFailedURL": return_urls.failure_url,
            "NotificationURL": return_urls.notify_url,
            "Recipient": f"{subscriber.first_name} {subscriber.last_name}".strip(),
            "EmailAddress": subscriber.email,
            "ItemRef1": intent.tier.upper(),
            "ItemDescr1": description,
            "ItemAmount1": decimal_amount,
            "Quantity1": "1",
            "ShippingCost": "0.00",
            "Variable1": payment_id,
            "Variable2": intent.kind,
        }
        if subscriber.phone:
            fields["MobileNumber"] = subscriber.phone

        if is_deposit:
            fields.update({
                "RecurringEnabled": "true",
                "RecurringFrequency": "MONTHLY",
                "RecurringCollectionDay": str(self.config.collection_day),
                "RecurringCollectionValue": cents_to_decimal_string(intent.monthly_amount),
                "RecurringNumberOfCollections": str(intent.total_months),
            })

        return VirtualForm(url=self.config.form_url, form_fields=fields)


def _json_or_empty(response: httpx.Response) -> dict:
    try:
        data = response.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


def _add_months(day: date, months: int) -> date:
    month_index = day.month - 1 + months
    year = day.year + month_index // 12
    month = month_index % 12 + 1
    # Collection days are capped at 28 so every month has the day
    return date(year, month, min(day.day, 28))
