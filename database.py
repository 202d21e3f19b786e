"""
Database connection and session management
Supports lite mode with SQLite for local development and tests
"""
import os
from datetime import datetime, timezone
from typing import AsyncGenerator
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import NullPool
from sqlalchemy import JSON, event, text
import structlog

from config import get_settings

logger = structlog.get_logger()
settings = get_settings()


def get_database_url() -> str:
    """Get database URL based on mode and environment"""
    # Hosted environments provide DATABASE_URL
    env_db_url = os.environ.get("DATABASE_URL") or settings.database_url_override
    if env_db_url:
        # postgres:// and postgresql:// need the asyncpg driver
        if env_db_url.startswith("postgres://"):
            env_db_url = env_db_url.replace("postgres://", "postgresql+asyncpg://", 1)
        elif env_db_url.startswith("postgresql://"):
            env_db_url = env_db_url.replace("postgresql://", "postgresql+asyncpg://", 1)
        return env_db_url

    # Lite mode uses SQLite
    if settings.lite_mode:
        return f"sqlite+aiosqlite:///{settings.sqlite_path}"

    # Default PostgreSQL connection
    return settings.database_url


# Create async engine
database_url = get_database_url()
is_sqlite = database_url.startswith("sqlite")

engine_kwargs = {
    "echo": settings.debug,
}

if is_sqlite:
    # aiosqlite connections are bound to the event loop that opened them
    engine_kwargs["poolclass"] = NullPool
else:
    engine_kwargs.update({
        "pool_size": 5,
        "max_overflow": 10,
        "pool_pre_ping": True,
    })

engine = create_async_engine(database_url, **engine_kwargs)

if is_sqlite:
    @event.listens_for(engine.sync_engine, "connect")
    def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
        """SQLite only honours ON DELETE CASCADE with foreign_keys enabled"""
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

# Session factory
async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    """Base class for all models"""
    pass


# GeoJSON and other documents: JSONB on PostgreSQL, JSON elsewhere
JSONType = JSON().with_variant(JSONB(), "postgresql")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


async def init_db():
    """Initialize database connection and create tables"""
    async with engine.begin() as conn:
        # Import models to register them with Base
        from models import user, polygon, forest_layer, user_session  # noqa: F401

        # Create all tables
        await conn.run_sync(Base.metadata.create_all)

    db_type = "SQLite" if is_sqlite else "PostgreSQL"
    logger.info(f"Database initialized ({db_type})")


async def reset_db():
    """Drop and recreate all tables"""
    async with engine.begin() as conn:
        from models import user, polygon, forest_layer, user_session  # noqa: F401

        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    logger.info("Database reset")


async def close_db():
    """Close database connections"""
    await engine.dispose()
    logger.info("Database connections closed")


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Dependency to get database session"""
    async with async_session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


async def check_db_connection() -> bool:
    """Check if database is accessible"""
    try:
        async with async_session_maker() as session:
            await session.execute(text("SELECT 1"))
            return True
    except Exception as e:
        logger.error("Database connection failed", error=str(e))
        return False
