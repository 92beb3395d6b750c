"""Code validator — consumes a submitted code against the stored record."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from phone_verification.config import VerificationConfig
from phone_verification.database.audit_repository import AuditLogRepository
from phone_verification.database.repository import PhoneVerificationRepository
from phone_verification.errors import VerificationError
from phone_verification.models.verification import (
    PhoneVerification,
    VerificationPurpose,
    as_utc,
)
from phone_verification.services.codes import verify_code
from phone_verification.services.masking import mask_phone_number

logger = logging.getLogger(__name__)

AUDIT_ACTION = "PHONE_VERIFY"
AUDIT_ENTITY = "PhoneVerification"


@dataclass
class VerificationResult:
    """Value object returned by successful issuance or validation."""

    success: bool
    message: str


class CodeValidator:
    """Checks a plaintext code, counting every attempt against the record.

    Every state change is committed before an error is raised, so a failed
    submission still consumes an attempt.
    """

    def __init__(
        self,
        session: AsyncSession,
        repository: PhoneVerificationRepository,
        audit_repository: AuditLogRepository,
        config: VerificationConfig,
        clock: Callable[[], datetime],
    ) -> None:
        self._session = session
        self._repo = repository
        self._audit = audit_repository
        self._config = config
        self._clock = clock

    async def validate(
        self,
        phone_number: str,
        code: str,
        purpose: VerificationPurpose,
        *,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> VerificationResult:
        """Validate *code* for an already-normalized *phone_number*."""
        masked = mask_phone_number(phone_number)

        verification = await self._repo.find_latest(phone_number, purpose, lock=True)
        if verification is None:
            verification = await self._grace_candidate(phone_number, purpose)

        if verification.attempts >= verification.max_attempts:
            await self._repo.mark_as_used(verification.id)
            await self._session.commit()
            logger.warning(
                "Max verification attempts already reached for %s (%s)",
                masked,
                purpose.value,
            )
            raise VerificationError.max_attempts()

        is_match = verify_code(code, verification.code_hash)

        new_attempts = await self._repo.increment_attempts(verification.id)
        if new_attempts is None:
            await self._session.commit()
            raise await self._concurrent_update_error(verification.id)

        if not is_match:
            attempts_remaining = verification.max_attempts - new_attempts
            logger.warning(
                "Invalid verification code for %s (%s), attempt %d, %d remaining",
                masked,
                purpose.value,
                new_attempts,
                attempts_remaining,
            )
            await self._record(
                verification,
                ip_address,
                user_agent,
                action="code_failed",
                attempts=new_attempts,
                attemptsRemaining=attempts_remaining,
            )
            if attempts_remaining <= 0:
                await self._repo.mark_as_used(verification.id)
                await self._session.commit()
                raise VerificationError.max_attempts()
            await self._session.commit()
            raise VerificationError.code_invalid(attempts_remaining)

        if not await self._repo.mark_as_verified(verification.id):
            # Consumed by a concurrent request between our read and write
            await self._session.commit()
            raise VerificationError.code_expired()

        await self._record(
            verification,
            ip_address,
            user_agent,
            action="code_verified",
            attempts=new_attempts,
        )
        await self._session.commit()

        logger.info(
            "Phone verification successful for %s (%s) after %d attempt(s)",
            masked,
            purpose.value,
            new_attempts,
        )
        return VerificationResult(success=True, message="Phone number verified successfully")

    # ── Private helpers ──────────────────────────────────

    async def _grace_candidate(
        self, phone_number: str, purpose: VerificationPurpose
    ) -> PhoneVerification:
        """Fall back to a just-expired record when the grace policy allows it."""
        masked = mask_phone_number(phone_number)
        recent = await self._repo.find_most_recent(phone_number, purpose)
        if recent is None:
            logger.warning("No verification code found for %s (%s)", masked, purpose.value)
            raise VerificationError.code_expired()

        overdue = self._clock() - as_utc(recent.expires_at)
        grace = timedelta(minutes=self._config.expiry_grace_minutes)
        if self._config.expiry_grace_enabled and timedelta(0) < overdue < grace:
            logger.info(
                "Accepting attempt on code for %s (%s) within grace window, expired %ds ago",
                masked,
                purpose.value,
                int(overdue.total_seconds()),
            )
            return recent

        logger.warning(
            "Verification code expired for %s (%s), %ds ago",
            masked,
            purpose.value,
            int(overdue.total_seconds()),
        )
        raise VerificationError.code_expired()

    async def _concurrent_update_error(self, verification_id: str) -> VerificationError:
        current = await self._repo.get(verification_id)
        if current is not None and current.attempts >= current.max_attempts:
            return VerificationError.max_attempts()
        return VerificationError.code_expired()

    async def _record(
        self,
        verification: PhoneVerification,
        ip_address: str | None,
        user_agent: str | None,
        **details,
    ) -> None:
        await self._audit.create(
            user_id=verification.user_id,
            action=AUDIT_ACTION,
            entity=AUDIT_ENTITY,
            entity_id=verification.id,
            details={
                "phoneNumber": mask_phone_number(verification.phone_number),
                "purpose": verification.purpose.value,
                **details,
            },
            ip_address=ip_address,
            user_agent=user_agent,
        )
