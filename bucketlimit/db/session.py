"""Async database session management for SQLAlchemy 2.0+."""

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from bucketlimit.core.config import settings
from bucketlimit.core.logging import get_logger
from bucketlimit.db.models import BucketTables, bucket_tables

logger = get_logger(__name__)


def get_async_engine(database_url: str | None = None) -> AsyncEngine:
    """Create an async engine for the limit and token tables.

    Args:
        database_url: Optional database URL. Uses settings if not provided.
    """
    url = database_url or settings.database_url
    engine = create_async_engine(url, echo=settings.db_echo, pool_pre_ping=True)
    logger.info(f"Created async engine for {engine.url.render_as_string(hide_password=True)}")
    return engine


def get_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create a session factory bound to the engine."""
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def init_db(engine: AsyncEngine, tables: BucketTables | None = None) -> None:
    """Create the limit and token tables if missing.

    Args:
        engine: Engine to create the tables with
        tables: Table pair to create (default names if not provided)
    """
    tables = tables or bucket_tables()
    async with engine.begin() as conn:
        await conn.run_sync(tables.metadata.create_all)
