"""
Validators for card and contact fields, applied before anything reaches Adumo.
"""
import re
from datetime import date
from typing import Optional


def normalize_email(email: str | None) -> str:
    return (email or "").strip().lower()


def luhn_valid(number: str) -> bool:
    """Luhn checksum over a digit string."""
    digits = [int(d) for d in number]
    checksum = 0
    for i, digit in enumerate(reversed(digits)):
        if i % 2 == 1:
            digit *= 2
            if digit > 9:
                digit -= 9
        checksum += digit
    return checksum % 10 == 0


def detect_card_type(number: str) -> str:
    if number.startswith("4"):
        return "VISA"
    if re.match(r"^(5[1-5]|2[2-7])", number):
        return "MASTERCARD"
    if re.match(r"^3[47]", number):
        return "AMEX"
    return "UNKNOWN"


def validate_card(
    number: str,
    expiry_month: int,
    expiry_year: int,
    cvv: str,
    holder: str,
    today: Optional[date] = None,
) -> list[dict]:
    """Return a list of field errors (empty when the card looks valid)."""
    today = today or date.today()
    errors: list[dict] = []
    cleaned = re.sub(r"[\s-]", "", number or "")

    if not re.fullmatch(r"\d{12,19}", cleaned) or not luhn_valid(cleaned):
        errors.append({"field": "cardNumber", "message": "Invalid card number"})
    if not 1 <= int(expiry_month or 0) <= 12:
        errors.append({"field": "expiryMonth", "message": "Expiry month must be 1-12"})
    else:
        year = int(expiry_year or 0)
        if year < 100:
            year += 2000
        if (year, int(expiry_month)) < (today.year, today.month):
            errors.append({"field": "expiryYear", "message": "Card has expired"})
    if not re.fullmatch(r"\d{3,4}", (cvv or "").strip()):
        errors.append({"field": "cvv", "message": "CVV must be 3 or 4 digits"})
    if not (holder or "").strip():
        errors.append({"field": "cardholderName", "message": "Cardholder name is required"})
    return errors
