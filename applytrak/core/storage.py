"""Database connection and storage utilities."""

from datetime import UTC, datetime

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.orm import DeclarativeBase, sessionmaker

from applytrak.core.config import settings

engine: AsyncEngine = create_async_engine(
    str(settings.database_url),
    echo=False,
    pool_pre_ping=True,
)

async_session = sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


def utc_now() -> datetime:
    """Return current UTC time as timezone-naive datetime for DB storage."""
    return datetime.now(UTC).replace(tzinfo=None)


async def init_models(bind: AsyncEngine | None = None) -> None:
    """Create tables for all registered models."""
    # Register tables on Base.metadata
    import applytrak.models  # noqa: F401

    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
