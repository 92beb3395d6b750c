"""Phone verification service — issues codes and delegates validation.

Issuance flow
-------------
1. Normalize the phone number to E.164.
2. Enforce the daily quotas and the resend cooldown.
3. Invalidate any unused code for ``(phone_number, purpose)``.
4. Store the hash of a freshly generated code and write an audit entry.
5. Commit, then hand the plaintext code to the SMS gateway.

Delivery is best-effort: gateway failures are logged and the stored code
stays valid.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from functools import partial

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from phone_verification.config import VerificationConfig, verification_config
from phone_verification.database.audit_repository import AuditLogRepository
from phone_verification.database.repository import (
    PhoneVerificationRepository,
    VerificationStats,
)
from phone_verification.errors import VerificationError
from phone_verification.models.verification import PhoneVerification, VerificationPurpose
from phone_verification.services.code_validator import (
    AUDIT_ACTION,
    AUDIT_ENTITY,
    CodeValidator,
    VerificationResult,
)
from phone_verification.services.codes import generate_secure_code, hash_code
from phone_verification.services.masking import mask_phone_number
from phone_verification.services.message_templates import verification_message
from phone_verification.services.phone import normalize_phone_number
from phone_verification.services.rate_guard import RateGuard
from phone_verification.services.sms_gateway import SMSGateway

logger = logging.getLogger(__name__)


class PhoneVerificationService:
    """Entry point for issuing, validating and maintaining verification codes.

    One instance wraps one ``AsyncSession``; create a new service per
    request.  The service commits its own state transitions.
    """

    def __init__(
        self,
        session: AsyncSession,
        sms_gateway: SMSGateway,
        config: VerificationConfig = verification_config,
        *,
        clock: Callable[[], datetime] | None = None,
        code_generator: Callable[[], str] | None = None,
    ) -> None:
        self._session = session
        self._sms = sms_gateway
        self._config = config
        self._clock = clock or (lambda: datetime.now(UTC))
        self._generate_code = code_generator or partial(
            generate_secure_code, config.code_length
        )

        self._repo = PhoneVerificationRepository(session, self._clock)
        self._audit = AuditLogRepository(session, self._clock)
        self._guard = RateGuard(self._repo, config, self._clock)
        self._validator = CodeValidator(
            session, self._repo, self._audit, config, self._clock
        )

    # ── Issuance ─────────────────────────────────────────

    async def send_verification_code(
        self,
        phone_number: str,
        purpose: VerificationPurpose | str,
        *,
        user_id: str | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> VerificationResult:
        """Issue a new code for *phone_number* and dispatch it by SMS.

        Raises
        ------
        VerificationError
            ``INVALID_PHONE_NUMBER``, ``DAILY_LIMIT_EXCEEDED`` or
            ``COOLDOWN_ACTIVE``.
        """
        purpose = VerificationPurpose(purpose)
        normalized = self._normalize(phone_number)
        masked = mask_phone_number(normalized)

        try:
            await self._guard.check_daily_limits(normalized, ip_address)
            await self._guard.check_cooldown(normalized, purpose)

            superseded = await self._repo.invalidate_existing(normalized, purpose)
            if superseded:
                logger.info("Invalidated %d previous code(s) for %s", superseded, masked)

            code = self._generate_code()
            verification = await self._repo.create(
                phone_number=normalized,
                code_hash=hash_code(code),
                purpose=purpose,
                expires_at=self._clock() + timedelta(minutes=self._config.code_expiry_minutes),
                max_attempts=self._config.max_attempts,
                user_id=user_id,
                ip_address=ip_address,
                user_agent=user_agent,
            )
            await self._audit.create(
                user_id=user_id,
                action=AUDIT_ACTION,
                entity=AUDIT_ENTITY,
                entity_id=verification.id,
                details={
                    "phoneNumber": masked,
                    "purpose": purpose.value,
                    "action": "code_sent",
                },
                ip_address=ip_address,
                user_agent=user_agent,
            )
            await self._session.commit()
        except IntegrityError:
            # Another instance issued a code for the same key concurrently
            await self._session.rollback()
            logger.warning("Concurrent issuance for %s (%s) rejected", masked, purpose.value)
            raise VerificationError.cooldown_active(
                max(1, self._guard.cooldown_seconds())
            ) from None
        except Exception:
            await self._session.rollback()
            raise

        logger.info(
            "Verification code issued for %s (%s), expires %s",
            masked,
            purpose.value,
            verification.expires_at.isoformat(),
        )

        await self._dispatch(normalized, code, purpose)

        return VerificationResult(success=True, message="Verification code sent successfully")

    async def _dispatch(self, phone_number: str, code: str, purpose: VerificationPurpose) -> None:
        """Send the code by SMS; failures never reach the caller."""
        masked = mask_phone_number(phone_number)
        message = verification_message(code, purpose, self._config.code_expiry_minutes)
        try:
            result = await self._sms.send_sms(phone_number, message)
        except Exception:
            logger.exception("SMS gateway %s raised for %s", self._sms.name, masked)
            return

        if result.success:
            logger.info(
                "Verification SMS sent to %s via %s (message %s)",
                masked,
                self._sms.name,
                result.message_id,
            )
        else:
            logger.error(
                "Verification SMS to %s via %s failed: %s",
                masked,
                self._sms.name,
                result.error or "unknown error",
            )

    # ── Validation ───────────────────────────────────────

    async def verify_code(
        self,
        phone_number: str,
        code: str,
        purpose: VerificationPurpose | str,
        *,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> VerificationResult:
        """Validate *code* against the latest record for the key.

        Raises
        ------
        VerificationError
            ``INVALID_PHONE_NUMBER``, ``VERIFICATION_CODE_EXPIRED``,
            ``VERIFICATION_CODE_INVALID`` or ``VERIFICATION_MAX_ATTEMPTS``.
        """
        purpose = VerificationPurpose(purpose)
        normalized = self._normalize(phone_number)
        try:
            return await self._validator.validate(
                normalized,
                code.strip(),
                purpose,
                ip_address=ip_address,
                user_agent=user_agent,
            )
        except VerificationError:
            raise
        except Exception:
            await self._session.rollback()
            raise

    # ── Maintenance ──────────────────────────────────────

    async def cleanup_expired_verifications(self) -> int:
        """Delete finished records older than the retention period."""
        cutoff = self._clock() - timedelta(hours=self._config.cleanup_retention_hours)
        count = await self._repo.cleanup(cutoff)
        await self._session.commit()
        if count:
            logger.info("Cleaned up %d expired verification code(s)", count)
        return count

    async def invalidate_user_verifications(self, user_id: str) -> int:
        """Mark every unused code owned by *user_id* as used."""
        count = await self._repo.invalidate_user_verifications(user_id)
        await self._session.commit()
        logger.info("Invalidated %d verification code(s) for user %s", count, user_id)
        return count

    async def get_verification_stats(
        self,
        phone_number: str | None = None,
        purpose: VerificationPurpose | str | None = None,
    ) -> VerificationStats:
        normalized = self._normalize(phone_number) if phone_number else None
        purpose = VerificationPurpose(purpose) if purpose else None
        return await self._repo.get_stats(normalized, purpose)

    async def get_verification_history(
        self, phone_number: str, limit: int = 10
    ) -> list[PhoneVerification]:
        return await self._repo.get_verification_history(self._normalize(phone_number), limit)

    # ── Private helpers ──────────────────────────────────

    def _normalize(self, phone_number: str) -> str:
        normalized = normalize_phone_number(phone_number, self._config.phone_default_region)
        if normalized is None:
            logger.info("Rejected invalid phone number %s", mask_phone_number(phone_number))
            raise VerificationError.invalid_phone_number()
        return normalized
