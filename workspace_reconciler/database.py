"""Database connection and session management."""

import logging

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from tenacity import before_sleep_log, retry, stop_after_attempt, wait_exponential

from .config import get_settings

logger = logging.getLogger(__name__)

settings = get_settings()

# SQLite pools do not accept sizing options
engine_options = {} if settings.database_url.startswith("sqlite") else {"pool_size": 20, "max_overflow": 10}

# Create async engine
engine = create_async_engine(
    settings.database_url,
    echo=settings.log_level == "DEBUG",
    pool_pre_ping=True,
    **engine_options,
)

# Create session factory
async_session = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def get_db() -> AsyncSession:
    """
    Get database session.

    Usage:
        async def route(db: AsyncSession = Depends(get_db)):
            result = await db.execute(...)
    """
    async with async_session() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


@retry(
    stop=stop_after_attempt(settings.db_connect_retries),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    before_sleep=before_sleep_log(logger, logging.WARNING),
    reraise=True,
)
async def init_db():
    """Initialize database (create tables), retrying while the database is unreachable."""
    from .models.database import Base

    logger.info("Initializing database...")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    logger.info("✓ Database initialized")


async def check_db():
    """Run a trivial query, raising if the database cannot be reached."""
    async with engine.connect() as conn:
        await conn.execute(text("SELECT 1"))


async def close_db():
    """Close database connection."""
    logger.info("Closing database connection...")
    await engine.dispose()
    logger.info("✓ Database connection closed")
