"""SMS text for verification codes, one template per purpose."""

from phone_verification.models.verification import VerificationPurpose

_TEMPLATES: dict[VerificationPurpose, str] = {
    VerificationPurpose.LOGIN: "Your login verification code is {code}.",
    VerificationPurpose.REGISTRATION: "Welcome! Your registration verification code is {code}.",
    VerificationPurpose.PHONE_CHANGE: (
        "Your verification code to change your phone number is {code}."
    ),
    VerificationPurpose.STAFF_INVITATION: "Your staff invitation verification code is {code}.",
    VerificationPurpose.APPOINTMENT_CONFIRMATION: (
        "Your appointment confirmation code is {code}."
    ),
    VerificationPurpose.APPOINTMENT_REMINDER: "Your appointment verification code is {code}.",
    VerificationPurpose.PASSWORD_RESET: "Your password reset verification code is {code}.",
}


def verification_message(
    code: str, purpose: VerificationPurpose, expiry_minutes: int
) -> str:
    """Build the SMS body for *code* issued for *purpose*."""
    body = _TEMPLATES[purpose].format(code=code)
    return f"{body}\n\nThis code is valid for {expiry_minutes} minutes. Do not share it."
