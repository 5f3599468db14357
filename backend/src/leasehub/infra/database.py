"""Async database engine and session management.

SQLite (aiosqlite) in development and tests, Postgres (asyncpg) in
production. Pool sizing and the SQLite lock timeout come from ``Settings``.
"""

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from leasehub.app.config import Settings, get_settings


class Base(DeclarativeBase):
    """SQLAlchemy declarative base for all models."""
    pass


def is_sqlite(database_url: str) -> bool:
    return database_url.startswith("sqlite")


def engine_kwargs(settings: Settings) -> dict:
    """``create_async_engine`` keyword arguments for the configured driver."""
    if is_sqlite(settings.database_url):
        return {
            "echo": settings.db_echo,
            "connect_args": {
                "check_same_thread": False,
                "timeout": settings.sqlite_busy_timeout_seconds,
            },
        }
    return {
        "echo": settings.db_echo,
        "pool_size": settings.db_pool_size,
        "max_overflow": settings.db_max_overflow,
        "pool_pre_ping": True,
    }


settings = get_settings()

engine = create_async_engine(settings.database_url, **engine_kwargs(settings))

async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def get_db():
    """FastAPI dependency: yield an async database session."""
    async with async_session() as session:
        yield session


async def init_db():
    """Create the matching tables for local dev. Production schema is migrated."""
    import leasehub.domain.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    if is_sqlite(settings.database_url):
        async with engine.begin() as conn:
            await conn.execute(text("PRAGMA journal_mode=WAL"))
            await conn.execute(
                text(f"PRAGMA busy_timeout={settings.sqlite_busy_timeout_seconds * 1000}")
            )
