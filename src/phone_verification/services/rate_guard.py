"""Rate & cooldown guard — daily quotas and minimum resend interval."""

from __future__ import annotations

import logging
import math
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from zoneinfo import ZoneInfo

from phone_verification.config import VerificationConfig
from phone_verification.database.repository import PhoneVerificationRepository
from phone_verification.errors import VerificationError
from phone_verification.models.verification import (
    PhoneVerification,
    VerificationPurpose,
    as_utc,
)
from phone_verification.services.masking import mask_phone_number

logger = logging.getLogger(__name__)


class RateGuard:
    """Rejects issuance requests that exceed quotas or arrive too soon.

    Counters are derived from stored records on every call; nothing is
    cached in memory.
    """

    def __init__(
        self,
        repository: PhoneVerificationRepository,
        config: VerificationConfig,
        clock: Callable[[], datetime],
    ) -> None:
        self._repo = repository
        self._config = config
        self._clock = clock
        self._tz = ZoneInfo(config.daily_window_timezone)

    def day_start(self) -> datetime:
        """Midnight of the current calendar day in the configured timezone, as UTC."""
        local_now = self._clock().astimezone(self._tz)
        midnight = local_now.replace(hour=0, minute=0, second=0, microsecond=0)
        return midnight.astimezone(UTC)

    async def check_daily_limits(
        self, phone_number: str, ip_address: str | None = None
    ) -> None:
        counts = await self._repo.count_daily_requests(
            phone_number, ip_address, since=self.day_start()
        )

        if counts.phone_count >= self._config.daily_limit_per_phone:
            logger.warning(
                "Daily phone verification limit reached for %s (%d/%d)",
                mask_phone_number(phone_number),
                counts.phone_count,
                self._config.daily_limit_per_phone,
            )
            raise VerificationError.daily_limit_exceeded()

        if ip_address and counts.ip_count >= self._config.daily_limit_per_ip:
            logger.warning(
                "Daily IP verification limit reached for %s (%d/%d)",
                ip_address,
                counts.ip_count,
                self._config.daily_limit_per_ip,
            )
            raise VerificationError.daily_limit_exceeded()

    async def check_cooldown(
        self, phone_number: str, purpose: VerificationPurpose
    ) -> PhoneVerification | None:
        """Raise if the active code for the key is younger than the cooldown.

        Returns the active record (if any) so the caller can supersede it.
        """
        active = await self._repo.find_latest(phone_number, purpose, lock=True)
        if active is None:
            return None

        cooldown = timedelta(minutes=self._config.cooldown_minutes)
        elapsed = self._clock() - as_utc(active.created_at)
        if elapsed < cooldown:
            remaining = math.ceil((cooldown - elapsed).total_seconds())
            logger.info(
                "Cooldown active for %s (%s), %ds remaining",
                mask_phone_number(phone_number),
                purpose.value,
                remaining,
            )
            raise VerificationError.cooldown_active(remaining)

        return active

    def cooldown_seconds(self) -> int:
        return math.ceil(self._config.cooldown_minutes * 60)
