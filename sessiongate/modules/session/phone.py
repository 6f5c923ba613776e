"""
Phone number normalization and validation.

Validation is delegated to the phonenumbers library (libphonenumber port).
Region corrections are applied only to the number that gets validated; the
adapter receives the digits of the plain normalized number.
"""

import logging
import re
from typing import Protocol

import phonenumbers

logger = logging.getLogger(__name__)

# Mobile numbers written with the legacy Mexican "1" after the country code
# validate only once it is dropped.
REGION_PREFIX_CORRECTIONS = {
    "+521": "+52",
}

_NON_DIGITS = re.compile(r"\D")


class PhoneValidator(Protocol):
    """Protocol for phone validators."""

    def is_valid(self, number: str) -> bool:
        """Return True if the E.164-style number is valid."""
        ...


class LibPhoneNumberValidator:
    """Validator backed by phonenumbers."""

    def is_valid(self, number: str) -> bool:
        try:
            parsed = phonenumbers.parse(number, None, keep_raw_input=True)
        except phonenumbers.NumberParseException as e:
            logger.debug(f"Unparseable phone number {number!r}: {e}")
            return False
        return phonenumbers.is_valid_number(parsed)


def normalize_phone_number(raw: str) -> str:
    """
    Strip everything except digits and a leading '+', then ensure the '+'.

    "52 (155) 1234-5678" -> "+5215512345678"
    """
    raw = raw.strip()
    digits = _NON_DIGITS.sub("", raw)
    return f"+{digits}"


def apply_region_corrections(number: str) -> str:
    """Apply national-prefix corrections to a normalized number."""
    for prefix, replacement in REGION_PREFIX_CORRECTIONS.items():
        if number.startswith(prefix):
            return replacement + number[len(prefix):]
    return number


def digits_only(number: str) -> str:
    return _NON_DIGITS.sub("", number)
