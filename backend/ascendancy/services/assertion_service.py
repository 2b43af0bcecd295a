"""
Assertion Service — extracts and verifies the signed JWT Adumo attaches to
return-URL redirects and server-to-server notifications, and maps its result
into a local payment outcome.
"""
import logging
from dataclasses import dataclass, field
from typing import Mapping, Optional

from jose import ExpiredSignatureError, JWTError, jwt

from ascendancy.config import GatewayConfig
from ascendancy.exceptions import AuthError, ValidationError
from ascendancy.models.payment import PaymentStatus
from ascendancy.utils.currency import to_minor_units

logger = logging.getLogger(__name__)

# Body/query field names that may carry the assertion, matched case-insensitively
ASSERTION_FIELDS = ("_responsetoken", "responsetoken", "token", "jwt", "_token")

REQUIRED_CLAIMS = ("cuid", "auid", "mref", "amount", "result")

SUCCESS_STATUSES = {"AUTHORISED", "AUTHORIZED", "SETTLED", "APPROVED", "SUCCESS", "SUCCESSFUL", "COMPLETED"}
FAILURE_STATUSES = {"DECLINED", "FAILED", "FAILURE", "CANCELLED", "CANCELED", "REJECTED", "ERROR", "REVERSED", "VOIDED"}
PENDING_STATUSES = {"PENDING", "PROCESSING", "IN_PROGRESS", "3DSECURE", "AWAITING_3DS"}


@dataclass
class GatewayAssertion:
    merchant_id: str
    application_id: str
    merchant_reference: str
    amount: int                       # cents
    result_code: int
    status_text: Optional[str] = None
    transaction_index: Optional[str] = None
    card_token: Optional[str] = None
    profile_token: Optional[str] = None
    error_code: Optional[int] = None
    error_message: Optional[str] = None
    raw_token: str = ""
    claims: dict = field(default_factory=dict)

    @property
    def outcome(self) -> str:
        return map_outcome(self.status_text, self.result_code)


def extract_assertion(
    headers: Mapping[str, str],
    body: Optional[Mapping] = None,
    query: Optional[Mapping] = None,
) -> Optional[str]:
    """Find the assertion: Authorization header, then body fields, then query fields."""
    for name, value in headers.items():
        if name.lower() == "authorization" and value:
            scheme, _, credentials = value.partition(" ")
            if scheme.lower() == "bearer" and credentials.strip():
                return credentials.strip()

    for source in (body, query):
        if not source:
            continue
        lowered = {str(k).lower(): v for k, v in source.items()}
        for name in ASSERTION_FIELDS:
            value = lowered.get(name)
            if isinstance(value, str) and value.strip():
                return value.strip()
    return None


def verify_assertion(token: str, config: GatewayConfig) -> GatewayAssertion:
    """Verify signature, expiry and required claims, then pin merchant/application ids.

    Raises AuthError for any signature, expiry or identity problem and
    ValidationError when a required claim is missing or malformed.
    """
    try:
        raw_claims = jwt.decode(
            token,
            config.jwt_secret,
            algorithms=["HS256"],
            options={"verify_aud": False, "leeway": config.assertion_leeway_seconds},
        )
    except ExpiredSignatureError as exc:
        raise AuthError("Payment assertion has expired") from exc
    except JWTError as exc:
        raise AuthError("Invalid payment assertion") from exc

    claims = {str(k).lower().lstrip("_"): v for k, v in raw_claims.items()}
    missing = [name for name in REQUIRED_CLAIMS if claims.get(name) in (None, "")]
    if missing:
        raise ValidationError(
            "Invalid payment assertion",
            errors=[{"field": name, "message": "Required claim missing"} for name in missing],
        )

    if str(claims["cuid"]) != config.merchant_id or str(claims["auid"]) != config.application_id:
        logger.warning("Assertion for %s carries foreign merchant/application ids", claims.get("mref"))
        raise AuthError("Payment assertion was not issued for this merchant")

    try:
        amount = to_minor_units(claims["amount"])
        result_code = int(claims["result"])
    except (TypeError, ValueError) as exc:
        raise ValidationError("Invalid payment assertion") from exc

    error_code = claims.get("error_code")
    return GatewayAssertion(
        merchant_id=str(claims["cuid"]),
        application_id=str(claims["auid"]),
        merchant_reference=str(claims["mref"]),
        amount=amount,
        result_code=result_code,
        status_text=claims.get("status"),
        transaction_index=_optional_str(claims.get("tx_index") or claims.get("transactionindex")),
        card_token=_optional_str(claims.get("tkn")),
        profile_token=_optional_str(claims.get("puid")),
        error_code=int(error_code) if str(error_code or "").lstrip("-").isdigit() else None,
        error_message=_optional_str(claims.get("error_message")),
        raw_token=token,
        claims=raw_claims,
    )


def map_outcome(status_text: Optional[str], result_code: Optional[int]) -> str:
    """Collapse Adumo's status text and result code into completed | failed | pending.

    The textual status wins whenever it is recognised; the numeric code
    (0 success, negative failure, positive warning) decides otherwise.
    """
    if status_text:
        status = str(status_text).strip().upper()
        if status in SUCCESS_STATUSES:
            return PaymentStatus.COMPLETED.value
        if status in FAILURE_STATUSES:
            return PaymentStatus.FAILED.value
        if status in PENDING_STATUSES:
            return PaymentStatus.PENDING.value

    if result_code is None:
        return PaymentStatus.PENDING.value
    if result_code == 0:
        return PaymentStatus.COMPLETED.value
    if result_code < 0:
        return PaymentStatus.FAILED.value
    return PaymentStatus.PENDING.value


def _optional_str(value) -> Optional[str]:
    if value in (None, ""):
        return None
    return str(value)
