"""
Canonical external formats: account numbers and timestamps.
"""

import re
from datetime import datetime, timezone

from bankcore.core.exceptions import InvalidRequestError

_ACCOUNT_NUMBER_SEPARATORS = re.compile(r"[\s-]")
_ACCOUNT_NUMBER = re.compile(r"[0-9]{12}")
_SIMPLE_PASSWORD = re.compile(r"[0-9]{6}")


def normalize_account_number(value: str) -> str:
    """
    Strip hyphens and whitespace and check the result is exactly 12 digits.

    >>> normalize_account_number("1234-5678-9012")
    '123456789012'
    """
    digits = _ACCOUNT_NUMBER_SEPARATORS.sub("", value or "")
    if not _ACCOUNT_NUMBER.fullmatch(digits):
        raise InvalidRequestError("Account number must be 12 digits")
    return digits


def format_account_number(value: str) -> str:
    """Render a stored account number as NNNN-NNNN-NNNN."""
    if not value:
        return value
    digits = _ACCOUNT_NUMBER_SEPARATORS.sub("", value)
    if len(digits) != 12:
        return value
    return f"{digits[0:4]}-{digits[4:8]}-{digits[8:12]}"


def is_valid_simple_password(value) -> bool:
    return isinstance(value, str) and bool(_SIMPLE_PASSWORD.fullmatch(value))


def utcnow() -> datetime:
    """Naive UTC timestamp, the form every DateTime column stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_utc_naive(value: datetime) -> datetime:
    """Convert an aware datetime to naive UTC; naive values are taken as UTC."""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)
