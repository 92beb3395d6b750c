"""SQLAlchemy PhoneVerification model."""

import enum
import uuid
from datetime import UTC, datetime

from sqlalchemy import Boolean, DateTime, Enum, Index, Integer, String, text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Shared declarative base for all ORM models."""


class VerificationPurpose(str, enum.Enum):
    """Business context a code is issued for; scopes the one-active-code rule."""

    LOGIN = "LOGIN"
    REGISTRATION = "REGISTRATION"
    PHONE_CHANGE = "PHONE_CHANGE"
    STAFF_INVITATION = "STAFF_INVITATION"
    APPOINTMENT_CONFIRMATION = "APPOINTMENT_CONFIRMATION"
    APPOINTMENT_REMINDER = "APPOINTMENT_REMINDER"
    PASSWORD_RESET = "PASSWORD_RESET"


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes read back from SQLite."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


class PhoneVerification(Base):
    """One issued verification code.

    Only the hash of the code is stored.  ``is_used`` flips to ``True`` when
    the code is consumed, exhausted, superseded or invalidated, and never
    flips back.
    """

    __tablename__ = "phone_verifications"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    user_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    phone_number: Mapped[str] = mapped_column(String(32), nullable=False)
    code_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    purpose: Mapped[VerificationPurpose] = mapped_column(
        Enum(VerificationPurpose, name="verification_purpose"), nullable=False
    )
    is_used: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    max_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=3)
    ip_address: Mapped[str | None] = mapped_column(String(64), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(String(512), nullable=True)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    verified_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC)
    )

    __table_args__ = (
        Index("ix_phone_verifications_phone_purpose", "phone_number", "purpose"),
        Index("ix_phone_verifications_expires_at", "expires_at"),
        Index("ix_phone_verifications_ip_created", "ip_address", "created_at"),
        Index("ix_phone_verifications_user_id", "user_id"),
        # At most one unused code per (phone, purpose), across service instances
        Index(
            "uq_phone_verifications_active",
            "phone_number",
            "purpose",
            unique=True,
            postgresql_where=text("is_used = false"),
            sqlite_where=text("is_used = 0"),
        ),
    )

    def is_expired(self, now: datetime) -> bool:
        return as_utc(self.expires_at) <= now

    def __repr__(self) -> str:
        return (
            f"<PhoneVerification id={self.id} purpose={self.purpose.value} "
            f"used={self.is_used} attempts={self.attempts}/{self.max_attempts}>"
        )
