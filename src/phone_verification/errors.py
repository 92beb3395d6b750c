"""Domain errors raised by the verification services.

Every failure is a :class:`VerificationError` carrying one member of the
closed :class:`ErrorKind` set.  Callers branch on ``exc.kind`` rather than
on exception subclasses.
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    # Wire code stays PHONE_INVALID, the code existing API clients match on
    INVALID_PHONE_NUMBER = "PHONE_INVALID"
    COOLDOWN_ACTIVE = "COOLDOWN_ACTIVE"
    DAILY_LIMIT_EXCEEDED = "DAILY_LIMIT_EXCEEDED"
    VERIFICATION_CODE_EXPIRED = "VERIFICATION_CODE_EXPIRED"
    VERIFICATION_CODE_INVALID = "VERIFICATION_CODE_INVALID"
    VERIFICATION_MAX_ATTEMPTS = "VERIFICATION_MAX_ATTEMPTS"


STATUS_CODES: dict[ErrorKind, int] = {
    ErrorKind.INVALID_PHONE_NUMBER: 400,
    ErrorKind.COOLDOWN_ACTIVE: 429,
    ErrorKind.DAILY_LIMIT_EXCEEDED: 429,
    ErrorKind.VERIFICATION_CODE_EXPIRED: 400,
    ErrorKind.VERIFICATION_CODE_INVALID: 400,
    ErrorKind.VERIFICATION_MAX_ATTEMPTS: 429,
}


class VerificationError(Exception):
    """A verification failure the caller should translate into a response."""

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        *,
        retry_after: int | None = None,
        attempts_remaining: int | None = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.retry_after = retry_after
        self.attempts_remaining = attempts_remaining

    @property
    def status_code(self) -> int:
        return STATUS_CODES[self.kind]

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"code": self.kind.value, "message": self.message}
        if self.retry_after is not None:
            body["retry_after"] = self.retry_after
        if self.attempts_remaining is not None:
            body["attempts_remaining"] = self.attempts_remaining
        return body

    def __repr__(self) -> str:
        return f"<VerificationError kind={self.kind.name} message={self.message!r}>"

    # ── Constructors ─────────────────────────────────────

    @classmethod
    def invalid_phone_number(cls) -> VerificationError:
        return cls(ErrorKind.INVALID_PHONE_NUMBER, "Invalid phone number format")

    @classmethod
    def cooldown_active(cls, remaining_seconds: int) -> VerificationError:
        return cls(
            ErrorKind.COOLDOWN_ACTIVE,
            "Please wait before requesting another code",
            retry_after=remaining_seconds,
        )

    @classmethod
    def daily_limit_exceeded(cls) -> VerificationError:
        return cls(ErrorKind.DAILY_LIMIT_EXCEEDED, "Daily request limit exceeded")

    @classmethod
    def code_expired(cls) -> VerificationError:
        return cls(ErrorKind.VERIFICATION_CODE_EXPIRED, "Verification code has expired")

    @classmethod
    def code_invalid(cls, attempts_remaining: int) -> VerificationError:
        return cls(
            ErrorKind.VERIFICATION_CODE_INVALID,
            "Invalid verification code",
            attempts_remaining=attempts_remaining,
        )

    @classmethod
    def max_attempts(cls) -> VerificationError:
        return cls(
            ErrorKind.VERIFICATION_MAX_ATTEMPTS,
            "Maximum verification attempts exceeded",
        )
