"""Cleanup script — purges finished verification codes (run periodically, e.g. from cron)."""

import asyncio

from phone_verification.database.engine import async_session_factory, init_db
from phone_verification.services.sms_gateway import ConsoleSMSGateway
from phone_verification.services.verification_service import PhoneVerificationService


async def cleanup() -> None:
    """Delete used/expired codes older than the retention period."""
    await init_db()
    async with async_session_factory() as session:
        service = PhoneVerificationService(session, ConsoleSMSGateway())
        count = await service.cleanup_expired_verifications()
    print(f"🧹 Removed {count} finished verification code(s).")


if __name__ == "__main__":
    asyncio.run(cleanup())
