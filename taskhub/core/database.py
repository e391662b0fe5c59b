"""
Database engine configuration
Uses SQLAlchemy with async support
"""

from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine, AsyncEngine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import NullPool
from typing import Any, Optional
import logging

from .config import Settings, get_settings, to_async_database_url

logger = logging.getLogger(__name__)


def create_engine(database_url: Optional[str] = None, settings: Optional[Settings] = None, **overrides: Any) -> AsyncEngine:
    """Create an async engine with pooling parameters suited to the dialect"""
    settings = settings or get_settings()
    url = to_async_database_url(database_url or settings.DATABASE_URL)
    is_sqlite = url.startswith("sqlite")

    if is_sqlite:
        # SQLite doesn't support connection pooling parameters
        options = {
            "echo": settings.DATABASE_ECHO,
            "poolclass": NullPool,
        }
    else:
        options = {
            "echo": settings.DATABASE_ECHO,
            "pool_size": settings.DATABASE_POOL_SIZE,
            "max_overflow": settings.DATABASE_MAX_OVERFLOW,
            "pool_timeout": settings.DATABASE_POOL_TIMEOUT,
            "pool_pre_ping": True,  # Verify connections before use
        }
        if settings.ENVIRONMENT == "test":
            options = {"echo": settings.DATABASE_ECHO, "poolclass": NullPool}
    options.update(overrides)

    engine = create_async_engine(url, **options)
    if is_sqlite:
        _enable_sqlite_foreign_keys(engine)
    logger.debug("Engine created for dialect %s", engine.dialect.name)
    return engine


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


def _enable_sqlite_foreign_keys(engine: AsyncEngine) -> None:
    # SQLite only enforces foreign keys when asked to, per connection
    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


async def init_db(engine: AsyncEngine) -> None:
    """Create all tables"""
    from taskhub.models import Base

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables created successfully")


async def drop_db(engine: AsyncEngine) -> None:
    """Drop all tables"""
    from taskhub.models import Base

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    logger.info("Database tables dropped")


async def close_db(engine: AsyncEngine) -> None:
    """Close database connections"""
    await engine.dispose()
    logger.info("Database connections closed")
