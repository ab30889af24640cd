"""
Database engine and session factory.
"""

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from referral_ledger.config.settings import settings
from referral_ledger.models import Base


def create_engine_from_settings(url: str | None = None) -> AsyncEngine:
    """Create async engine for the configured database."""
    return create_async_engine(
        url or settings.database_url,
        echo=settings.database_echo,
        pool_pre_ping=True,
    )


def create_session_maker(
    engine: AsyncEngine,
) -> async_sessionmaker[AsyncSession]:
    """Create session maker bound to engine."""
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


async def init_models(engine: AsyncEngine) -> None:
    """Create all tables (checkfirst)."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all, checkfirst=True)


async_engine = create_engine_from_settings()
async_session_maker = create_session_maker(async_engine)
