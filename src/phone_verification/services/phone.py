"""Phone number parsing on top of ``phonenumbers``."""

from __future__ import annotations

import logging

import phonenumbers
from phonenumbers import NumberParseException

from phone_verification.services.masking import mask_phone_number

logger = logging.getLogger(__name__)


def normalize_phone_number(raw: str, default_region: str | None = None) -> str | None:
    """Return *raw* in E.164 format, or ``None`` if it is not a valid number.

    Without a *default_region* the number must carry its country code.
    """
    if not raw or not raw.strip():
        return None
    try:
        parsed = phonenumbers.parse(raw, default_region)
    except NumberParseException as exc:
        logger.warning("Phone number parsing failed for %s: %s", mask_phone_number(raw), exc)
        return None
    if not phonenumbers.is_valid_number(parsed):
        return None
    return phonenumbers.format_number(parsed, phonenumbers.PhoneNumberFormat.E164)


def to_national_digits(e164: str) -> str | None:
    """Convert an E.164 number to its national significant digits.

    ``+905551234567`` → ``5551234567``.  This is the local dialing format
    SMS providers such as NetGSM expect.
    """
    try:
        parsed = phonenumbers.parse(e164, None)
    except NumberParseException:
        return None
    return phonenumbers.national_significant_number(parsed)
