"""PII redaction applied before phone numbers reach logs or audit entries."""

VISIBLE_DIGITS = 3


def mask_phone_number(phone_number: str | None) -> str:
    """Mask all but the last three characters: ``**********567``.

    Values shorter than four characters are masked entirely.
    """
    if not phone_number:
        return ""
    if len(phone_number) <= VISIBLE_DIGITS:
        return "*" * len(phone_number)
    return "*" * (len(phone_number) - VISIBLE_DIGITS) + phone_number[-VISIBLE_DIGITS:]
