"""
Database Session Management
PostgreSQL connection and session handling
"""

from typing import Any, AsyncGenerator, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from docvault.core.config import settings
from docvault.core.logging import get_logger
from docvault.db.base import Base

logger = get_logger(__name__)

# Engine
engine: Optional[AsyncEngine] = None
async_session_maker: Optional[async_sessionmaker[AsyncSession]] = None


def _engine_options(url: str) -> Dict[str, Any]:
    if url.startswith("sqlite"):
        # SQLite drivers reject pool sizing arguments
        return {"echo": settings.DEBUG}
    return {
        "echo": settings.DEBUG,
        "pool_pre_ping": True,
        "pool_size": settings.POSTGRES_POOL_SIZE,
        "max_overflow": settings.POSTGRES_MAX_OVERFLOW,
    }


def register_models() -> None:
    """Import all SQLAlchemy models so they're registered with Base"""
    from docvault.db import models  # noqa: F401
    from docvault.models import access_request, audit_log, encryption, permission, share_link  # noqa: F401


async def init_db(database_url: Optional[str] = None, create_tables: Optional[bool] = None) -> None:
    """Initialize database engine and create tables"""
    global engine, async_session_maker

    url = database_url or settings.DATABASE_URL
    logger.info(f"Connecting to database at {url.split('@')[-1]}")

    engine = create_async_engine(url, **_engine_options(url))
    async_session_maker = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    register_models()

    # Create tables (use Alembic for production migrations)
    if create_tables is None:
        create_tables = settings.ENVIRONMENT in ("development", "test")
    if create_tables:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables created")


async def close_db() -> None:
    """Close database connections"""
    global engine, async_session_maker

    if engine:
        await engine.dispose()
        engine = None
        async_session_maker = None
        logger.info("Database connection closed")


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Get database session (dependency injection)"""
    if async_session_maker is None:
        raise RuntimeError("Database not initialized; call init_db() first")

    async with async_session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
