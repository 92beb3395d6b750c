"""Shared fixtures: in-memory database, controllable clock, recording SMS gateway."""

from __future__ import annotations

import re
from datetime import UTC, datetime, timedelta

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from phone_verification.config import VerificationConfig
from phone_verification.models.audit_log import AuditLog  # noqa: F401
from phone_verification.models.verification import Base
from phone_verification.services.sms_gateway import SMSGateway, SMSResult
from phone_verification.services.verification_service import PhoneVerificationService

PHONE = "+905551234567"

# ── In-memory test database ─────────────────────────────
_test_engine = create_async_engine("sqlite+aiosqlite://", echo=False)
_test_session_factory = async_sessionmaker(_test_engine, expire_on_commit=False)


class FrozenClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class RecordingSMSGateway(SMSGateway):
    """Gateway that keeps every message instead of sending it."""

    def __init__(self, result: SMSResult | None = None) -> None:
        self.sent: list[tuple[str, str]] = []
        self._result = result or SMSResult(success=True, message_id="test-1")

    @property
    def name(self) -> str:
        return "recording"

    async def send_sms(self, phone_number: str, message: str) -> SMSResult:
        self.sent.append((phone_number, message))
        return self._result

    def last_code(self) -> str:
        return re.search(r"\b(\d{6})\b", self.sent[-1][1]).group(1)


@pytest_asyncio.fixture
async def db_session():
    """Create tables in a fresh in-memory DB and yield a session."""
    async with _test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with _test_session_factory() as session:
        yield session

    # Tear down
    async with _test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
def session_factory():
    return _test_session_factory


@pytest.fixture
def clock():
    return FrozenClock(datetime(2026, 3, 10, 9, 0, tzinfo=UTC))


@pytest.fixture
def sms_gateway():
    return RecordingSMSGateway()


@pytest.fixture
def config():
    return VerificationConfig(
        cooldown_minutes=2,
        daily_limit_per_phone=5,
        daily_limit_per_ip=8,
    )


@pytest.fixture
def make_service(db_session, sms_gateway, config, clock):
    """Build a service over the test session; keyword args override defaults."""

    def _make(**overrides) -> PhoneVerificationService:
        return PhoneVerificationService(
            overrides.pop("session", db_session),
            overrides.pop("sms_gateway", sms_gateway),
            overrides.pop("config", config),
            clock=overrides.pop("clock", clock),
            **overrides,
        )

    return _make
