"""SQLAlchemy async session management."""

import logging
from collections.abc import AsyncGenerator

from sqlalchemy import event, select
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from kiddos.config import Settings, get_settings
from kiddos.db.models import Base, Setting

logger = logging.getLogger(__name__)

CACHE_DURATION_KEY = "cache_duration_minutes"
VIDEOS_PER_CHANNEL_KEY = "videos_per_channel"
REFRESH_IN_PROGRESS_KEY = "refresh_in_progress"

_engine: AsyncEngine | None = None
_sessionmaker: async_sessionmaker[AsyncSession] | None = None


def create_engine_for(url: str, busy_timeout: float = 30.0) -> AsyncEngine:
    """Create an async engine, enabling foreign keys for SQLite."""
    # Ensure SQLite URLs use async driver
    if url.startswith("sqlite:///"):
        url = url.replace("sqlite:///", "sqlite+aiosqlite:///")

    if not url.startswith("sqlite"):
        return create_async_engine(url, future=True)

    engine = create_async_engine(
        url, future=True, connect_args={"timeout": busy_timeout}
    )

    # Cascading deletes from channels rely on SQLite enforcing foreign keys
    @event.listens_for(engine.sync_engine, "connect")
    def _enable_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    return engine


def get_engine() -> AsyncEngine:
    """Get or create the async database engine."""
    global _engine
    if _engine:
        return _engine
    settings = get_settings()
    _engine = create_engine_for(
        settings.database_url, settings.sqlite_busy_timeout_seconds
    )
    return _engine


def get_sessionmaker() -> async_sessionmaker[AsyncSession]:
    """Get or create the async session maker."""
    global _sessionmaker
    if _sessionmaker:
        return _sessionmaker
    _sessionmaker = async_sessionmaker(get_engine(), expire_on_commit=False)
    return _sessionmaker


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Dependency for FastAPI routes to get an async database session."""
    async with get_sessionmaker()() as session:
        yield session


def default_settings(settings: Settings) -> dict[str, str]:
    """Values the settings table is seeded with."""
    return {
        CACHE_DURATION_KEY: str(settings.cache_duration_minutes_default),
        VIDEOS_PER_CHANNEL_KEY: str(settings.videos_per_channel_default),
        REFRESH_IN_PROGRESS_KEY: "false",
    }


async def init_db(engine: AsyncEngine | None = None, settings: Settings | None = None) -> None:
    """Create tables and insert any missing default settings.

    Existing settings are left untouched, so running this on every startup
    is safe.
    """
    engine = engine or get_engine()
    settings = settings or get_settings()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    sessionmaker = async_sessionmaker(engine, expire_on_commit=False)
    async with sessionmaker() as db:
        result = await db.execute(select(Setting.key))
        existing = set(result.scalars().all())
        missing = {
            key: value
            for key, value in default_settings(settings).items()
            if key not in existing
        }
        for key, value in missing.items():
            db.add(Setting(key=key, value=value))
        await db.commit()

    if missing:
        logger.info(f"Seeded default settings: {', '.join(sorted(missing))}")


async def dispose_engine() -> None:
    """Dispose the engine singleton on shutdown."""
    global _engine, _sessionmaker
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _sessionmaker = None
