"""Tests for the PhoneVerificationRepository."""

from datetime import timedelta

import pytest
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from phone_verification.database.repository import PhoneVerificationRepository
from phone_verification.models.verification import VerificationPurpose

PHONE = "+905551234567"


async def _create(repo: PhoneVerificationRepository, clock, **overrides):
    fields = dict(
        phone_number=PHONE,
        code_hash="hash",
        purpose=VerificationPurpose.LOGIN,
        expires_at=clock() + timedelta(minutes=10),
        max_attempts=3,
    )
    fields.update(overrides)
    return await repo.create(**fields)


@pytest.mark.asyncio
async def test_find_latest_returns_active_record(db_session: AsyncSession, clock):
    repo = PhoneVerificationRepository(db_session, clock)
    created = await _create(repo, clock)

    found = await repo.find_latest(PHONE, VerificationPurpose.LOGIN)
    assert found is not None
    assert found.id == created.id
    assert found.attempts == 0
    assert found.is_used is False


@pytest.mark.asyncio
async def test_find_latest_ignores_other_purpose(db_session: AsyncSession, clock):
    repo = PhoneVerificationRepository(db_session, clock)
    await _create(repo, clock)

    assert await repo.find_latest(PHONE, VerificationPurpose.REGISTRATION) is None


@pytest.mark.asyncio
async def test_find_latest_skips_expired_but_find_most_recent_does_not(
    db_session: AsyncSession, clock
):
    repo = PhoneVerificationRepository(db_session, clock)
    created = await _create(repo, clock)
    clock.advance(minutes=11)

    assert await repo.find_latest(PHONE, VerificationPurpose.LOGIN) is None
    recent = await repo.find_most_recent(PHONE, VerificationPurpose.LOGIN)
    assert recent is not None
    assert recent.id == created.id


@pytest.mark.asyncio
async def test_second_unused_record_for_key_is_rejected(db_session: AsyncSession, clock):
    repo = PhoneVerificationRepository(db_session, clock)
    await _create(repo, clock)

    with pytest.raises(IntegrityError):
        await _create(repo, clock)
    await db_session.rollback()


@pytest.mark.asyncio
async def test_invalidate_existing_allows_new_record(db_session: AsyncSession, clock):
    repo = PhoneVerificationRepository(db_session, clock)
    first = await _create(repo, clock)

    assert await repo.invalidate_existing(PHONE, VerificationPurpose.LOGIN) == 1
    second = await _create(repo, clock)

    assert (await repo.get(first.id)).is_used is True
    assert (await repo.find_latest(PHONE, VerificationPurpose.LOGIN)).id == second.id


@pytest.mark.asyncio
async def test_increment_attempts_stops_at_limit(db_session: AsyncSession, clock):
    repo = PhoneVerificationRepository(db_session, clock)
    record = await _create(repo, clock, max_attempts=2)

    assert await repo.increment_attempts(record.id) == 1
    assert await repo.increment_attempts(record.id) == 2
    assert await repo.increment_attempts(record.id) is None
    assert (await repo.get(record.id)).attempts == 2


@pytest.mark.asyncio
async def test_increment_attempts_refuses_used_record(db_session: AsyncSession, clock):
    repo = PhoneVerificationRepository(db_session, clock)
    record = await _create(repo, clock)
    await repo.mark_as_used(record.id)

    assert await repo.increment_attempts(record.id) is None


@pytest.mark.asyncio
async def test_mark_as_verified_only_once(db_session: AsyncSession, clock):
    repo = PhoneVerificationRepository(db_session, clock)
    record = await _create(repo, clock)

    assert await repo.mark_as_verified(record.id) is True
    assert await repo.mark_as_verified(record.id) is False

    stored = await repo.get(record.id)
    assert stored.is_used is True
    assert stored.verified_at is not None


@pytest.mark.asyncio
async def test_count_daily_requests_by_phone_and_ip(db_session: AsyncSession, clock):
    repo = PhoneVerificationRepository(db_session, clock)
    day_start = clock().replace(hour=0)

    await _create(repo, clock, ip_address="10.0.0.1")
    await repo.invalidate_existing(PHONE, VerificationPurpose.LOGIN)
    await _create(repo, clock, ip_address="10.0.0.1")
    await _create(repo, clock, phone_number="+905551234568", ip_address="10.0.0.1")

    counts = await repo.count_daily_requests(PHONE, "10.0.0.1", since=day_start)
    assert counts.phone_count == 2
    assert counts.ip_count == 3

    counts = await repo.count_daily_requests(PHONE, since=day_start)
    assert counts.ip_count == 0

    counts = await repo.count_daily_requests(
        PHONE, "10.0.0.1", since=day_start + timedelta(days=1)
    )
    assert counts.phone_count == 0
    assert counts.ip_count == 0


@pytest.mark.asyncio
async def test_cleanup_removes_only_old_finished_records(db_session: AsyncSession, clock):
    repo = PhoneVerificationRepository(db_session, clock)
    old = await _create(repo, clock)
    await repo.mark_as_used(old.id)

    clock.advance(days=2)
    active = await _create(repo, clock)

    removed = await repo.cleanup(clock() - timedelta(hours=24))
    assert removed == 1
    assert await repo.get(old.id) is None
    assert await repo.get(active.id) is not None


@pytest.mark.asyncio
async def test_invalidate_user_verifications(db_session: AsyncSession, clock):
    repo = PhoneVerificationRepository(db_session, clock)
    mine = await _create(repo, clock, user_id="user-1")
    other = await _create(
        repo, clock, user_id="user-1", purpose=VerificationPurpose.PHONE_CHANGE
    )
    theirs = await _create(repo, clock, phone_number="+905551234568", user_id="user-2")

    assert await repo.invalidate_user_verifications("user-1") == 2
    assert (await repo.get(mine.id)).is_used is True
    assert (await repo.get(other.id)).is_used is True
    assert (await repo.get(theirs.id)).is_used is False


@pytest.mark.asyncio
async def test_get_verification_history_newest_first(db_session: AsyncSession, clock):
    repo = PhoneVerificationRepository(db_session, clock)
    first = await _create(repo, clock)
    await repo.invalidate_existing(PHONE, VerificationPurpose.LOGIN)
    clock.advance(minutes=5)
    second = await _create(repo, clock)

    history = await repo.get_verification_history(PHONE, limit=5)
    assert [record.id for record in history] == [second.id, first.id]
