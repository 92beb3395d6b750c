"""Audit log repository."""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from phone_verification.models.audit_log import AuditLog


class AuditLogRepository:
    """Writes and reads audit entries in the caller's transaction."""

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
        action: str,
        entity: str,
        details: dict[str, Any],
        user_id: str | None = None,
        entity_id: str | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> AuditLog:
        entry = AuditLog(
            user_id=user_id,
            action=action,
            entity=entity,
            entity_id=entity_id,
            details=details,
            ip_address=ip_address,
            user_agent=user_agent,
            created_at=self._clock(),
        )
        self._session.add(entry)
        await self._session.flush()
        return entry

    async def list_for_entity(self, entity: str, entity_id: str) -> list[AuditLog]:
        stmt = (
            select(AuditLog)
            .where(AuditLog.entity == entity, AuditLog.entity_id == entity_id)
            .order_by(AuditLog.created_at)
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())
