"""Database engine and async session factory.

Statement parameters carry phone numbers and client IPs, so engines are
always built with ``hide_parameters=True``; SQL echo is controlled by
``settings.database_echo`` rather than the general debug flag.
"""

from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from phone_verification.config import settings
from phone_verification.models.audit_log import AuditLog  # noqa: F401  (registers table)
from phone_verification.models.verification import Base


def build_engine(database_url: str, *, echo: bool = False) -> AsyncEngine:
    """Create an async engine that never logs bound parameters."""
    return create_async_engine(database_url, echo=echo, hide_parameters=True)


engine = build_engine(settings.database_url, echo=settings.database_echo)

async_session_factory = async_sessionmaker(engine, expire_on_commit=False)


async def init_db(bind: AsyncEngine = engine) -> None:
    """Create the verification and audit tables if they don't exist."""
    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency: one session per request, rolled back on error."""
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
