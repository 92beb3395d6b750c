"""Verification repository — data access layer for issued codes.

Every read-modify-write the services depend on is a single conditional
statement, so correctness holds across concurrent service instances without
in-process locking.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime

from sqlalchemy import and_, case, delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from phone_verification.models.verification import PhoneVerification, VerificationPurpose


@dataclass
class DailyRequestCounts:
    """Codes issued since the start of the current daily window."""

    phone_count: int
    ip_count: int


@dataclass
class VerificationStats:
    """Aggregate counts over a filtered set of verification records."""

    total: int
    successful: int
    expired: int
    failed: int

    @property
    def success_rate(self) -> float:
        if not self.total:
            return 0.0
        return round(self.successful / self.total * 100, 2)


class PhoneVerificationRepository:
    """Encapsulates all database queries related to verification codes."""

    def __init__(
        self,
        session: AsyncSession,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._session = session
        self._clock = clock or (lambda: datetime.now(UTC))

    async def create(
        self,
        *,
        phone_number: str,
        code_hash: str,
        purpose: VerificationPurpose,
        expires_at: datetime,
        max_attempts: int,
        user_id: str | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> PhoneVerification:
        """Insert a fresh, unused record and flush it to the database.

        Raises ``IntegrityError`` if another unused record exists for the
        same ``(phone_number, purpose)``.
        """
        verification = PhoneVerification(
            user_id=user_id,
            phone_number=phone_number,
            code_hash=code_hash,
            purpose=purpose,
            is_used=False,
            attempts=0,
            max_attempts=max_attempts,
            ip_address=ip_address,
            user_agent=user_agent,
            expires_at=expires_at,
            created_at=self._clock(),
        )
        self._session.add(verification)
        await self._session.flush()
        return verification

    async def get(self, verification_id: str) -> PhoneVerification | None:
        return await self._session.get(
            PhoneVerification, verification_id, populate_existing=True
        )

    async def find_latest(
        self, phone_number: str, purpose: VerificationPurpose, *, lock: bool = False
    ) -> PhoneVerification | None:
        """Return the newest unused, unexpired record for the key."""
        stmt = (
            select(PhoneVerification)
            .where(
                PhoneVerification.phone_number == phone_number,
                PhoneVerification.purpose == purpose,
                PhoneVerification.is_used.is_(False),
                PhoneVerification.expires_at > self._clock(),
            )
            .order_by(PhoneVerification.created_at.desc())
            .limit(1)
            .execution_options(populate_existing=True)
        )
        if lock:
            stmt = stmt.with_for_update()
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def find_most_recent(
        self, phone_number: str, purpose: VerificationPurpose
    ) -> PhoneVerification | None:
        """Return the newest unused record for the key, expired or not."""
        stmt = (
            select(PhoneVerification)
            .where(
                PhoneVerification.phone_number == phone_number,
                PhoneVerification.purpose == purpose,
                PhoneVerification.is_used.is_(False),
            )
            .order_by(PhoneVerification.created_at.desc())
            .limit(1)
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def mark_as_used(self, verification_id: str) -> None:
        stmt = (
            update(PhoneVerification)
            .where(PhoneVerification.id == verification_id)
            .values(is_used=True)
        )
        await self._session.execute(stmt)

    async def mark_as_verified(self, verification_id: str) -> bool:
        """Consume an unused record.  Returns ``False`` if it was already used."""
        stmt = (
            update(PhoneVerification)
            .where(
                PhoneVerification.id == verification_id,
                PhoneVerification.is_used.is_(False),
            )
            .values(is_used=True, verified_at=self._clock())
        )
        result = await self._session.execute(stmt)
        return result.rowcount > 0

    async def increment_attempts(self, verification_id: str) -> int | None:
        """Add one attempt and return the new count.

        The update only applies while the record is unused and below its
        attempt limit; ``None`` means a concurrent caller got there first.
        """
        stmt = (
            update(PhoneVerification)
            .where(
                PhoneVerification.id == verification_id,
                PhoneVerification.is_used.is_(False),
                PhoneVerification.attempts < PhoneVerification.max_attempts,
            )
            .values(attempts=PhoneVerification.attempts + 1)
            .returning(PhoneVerification.attempts)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def invalidate_existing(
        self, phone_number: str, purpose: VerificationPurpose
    ) -> int:
        """Mark every unused record for the key as used (expired ones included)."""
        stmt = (
            update(PhoneVerification)
            .where(
                PhoneVerification.phone_number == phone_number,
                PhoneVerification.purpose == purpose,
                PhoneVerification.is_used.is_(False),
            )
            .values(is_used=True)
        )
        result = await self._session.execute(stmt)
        return result.rowcount

    async def invalidate_user_verifications(self, user_id: str) -> int:
        stmt = (
            update(PhoneVerification)
            .where(
                PhoneVerification.user_id == user_id,
                PhoneVerification.is_used.is_(False),
            )
            .values(is_used=True)
        )
        result = await self._session.execute(stmt)
        return result.rowcount

    async def count_daily_requests(
        self, phone_number: str, ip_address: str | None = None, *, since: datetime
    ) -> DailyRequestCounts:
        """Count codes issued since *since* for the phone and, if given, the IP."""
        phone_stmt = select(func.count(PhoneVerification.id)).where(
            PhoneVerification.phone_number == phone_number,
            PhoneVerification.created_at >= since,
        )
        phone_count = (await self._session.execute(phone_stmt)).scalar_one()

        ip_count = 0
        if ip_address:
            ip_stmt = select(func.count(PhoneVerification.id)).where(
                PhoneVerification.ip_address == ip_address,
                PhoneVerification.created_at >= since,
            )
            ip_count = (await self._session.execute(ip_stmt)).scalar_one()

        return DailyRequestCounts(phone_count=phone_count, ip_count=ip_count)

    async def cleanup(self, older_than: datetime) -> int:
        """Delete finished (used or expired) records created before *older_than*."""
        stmt = delete(PhoneVerification).where(
            PhoneVerification.created_at < older_than,
            or_(
                PhoneVerification.is_used.is_(True),
                PhoneVerification.expires_at < self._clock(),
            ),
        )
        result = await self._session.execute(stmt)
        return result.rowcount

    async def get_stats(
        self,
        phone_number: str | None = None,
        purpose: VerificationPurpose | None = None,
    ) -> VerificationStats:
        now = self._clock()
        unverified = PhoneVerification.verified_at.is_(None)
        exhausted = PhoneVerification.attempts >= PhoneVerification.max_attempts

        stmt = select(
            func.count(PhoneVerification.id),
            func.count(PhoneVerification.verified_at),
            func.coalesce(
                func.sum(
                    case(
                        (
                            and_(
                                unverified,
                                ~exhausted,
                                PhoneVerification.expires_at < now,
                            ),
                            1,
                        ),
                        else_=0,
                    )
                ),
                0,
            ),
            func.coalesce(
                func.sum(case((and_(unverified, exhausted), 1), else_=0)), 0
            ),
        )
        if phone_number:
            stmt = stmt.where(PhoneVerification.phone_number == phone_number)
        if purpose:
            stmt = stmt.where(PhoneVerification.purpose == purpose)

        total, successful, expired, failed = (await self._session.execute(stmt)).one()
        return VerificationStats(
            total=total, successful=successful, expired=expired, failed=failed
        )

    async def get_verification_history(
        self, phone_number: str, limit: int = 10
    ) -> list[PhoneVerification]:
        stmt = (
            select(PhoneVerification)
            .where(PhoneVerification.phone_number == phone_number)
            .order_by(PhoneVerification.created_at.desc())
            .limit(limit)
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())
