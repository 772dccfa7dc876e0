"""Field format validators used by step validation.

Every validator takes the raw submitted value and returns ``None`` when the
value is acceptable, or the user-facing error message otherwise.
"""

from __future__ import annotations

import re
from typing import Any, Callable, Dict, Optional

from .constants import CREDIT_CARD_MAX_DIGITS, CREDIT_CARD_MIN_DIGITS

_NON_DIGITS = re.compile(r"[^0-9]")
_CVV = re.compile(r"[0-9]{3,4}")
_EMAIL = re.compile(r"[^\s@]+@[^\s@]+\.[^\s@]+")

FieldValidator = Callable[[Any], Optional[str]]


def luhn_check(card_number: str) -> bool:
    """Return ``True`` if ``card_number`` passes the mod-10 checksum."""
    if not card_number or _NON_DIGITS.search(card_number):
        return False
    if not CREDIT_CARD_MIN_DIGITS <= len(card_number) <= CREDIT_CARD_MAX_DIGITS:
        return False

    total = 0
    for index, char in enumerate(reversed(card_number)):
        digit = int(char)
        if index % 2 == 1:
            digit *= 2
            if digit > 9:
                digit -= 9
        total += digit
    return total % 10 == 0


def validate_credit_card(value: Any) -> Optional[str]:
    if not luhn_check(_NON_DIGITS.sub("", str(value))):
        return "Invalid card number"
    return None


def validate_expiry(value: Any) -> Optional[str]:
    # year is neither range- nor recency-checked
    parts = str(value).split("/")
    if len(parts) != 2 or not parts[1].strip():
        return "Invalid expiry date format (MM/YY)"
    try:
        month = int(parts[0])
    except ValueError:
        return "Invalid expiry date format (MM/YY)"
    if not 1 <= month <= 12:
        return "Invalid expiry date format (MM/YY)"
    return None


def validate_cvv(value: Any) -> Optional[str]:
    if not _CVV.fullmatch(str(value)):
        return "Invalid CVV format"
    return None


FORMAT_VALIDATORS: Dict[str, FieldValidator] = {
    "credit_card": validate_credit_card,
    "expiry": validate_expiry,
    "cvv": validate_cvv,
}


def validate_field_format(value: Any, format_name: str) -> Optional[str]:
    """Dispatch ``value`` to the validator registered for ``format_name``."""
    validator = FORMAT_VALIDATORS.get(format_name)
    if validator is None:
        return None
    return validator(value)


def is_valid_email(value: Any) -> bool:
    return isinstance(value, str) and _EMAIL.fullmatch(value) is not None


def is_missing(value: Any) -> bool:
    """Return ``True`` for values that do not satisfy a required rule."""
    if value is None or value is False:
        return True
    return isinstance(value, str) and value.strip() == ""


def below_minimum(value: Any, minimum: float) -> bool:
    """Return ``True`` when ``value`` is not a number of at least ``minimum``."""
    if isinstance(value, bool):
        return True
    try:
        return float(value) < minimum
    except (TypeError, ValueError):
        return True
