from ascendancy.utils.hashing import generate_hash, generate_chain_hash, sign_body, verify_body_signature
from ascendancy.utils.currency import cents_to_decimal_string, to_minor_units
from ascendancy.utils.validators import validate_card, luhn_valid, normalize_email

__all__ = [
    "generate_hash", "generate_chain_hash", "sign_body", "verify_body_signature",
    "cents_to_decimal_string", "to_minor_units",
    "validate_card", "luhn_valid", "normalize_email",
]
