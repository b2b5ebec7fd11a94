from __future__ import annotations

import logging
from typing import AsyncGenerator, Dict

from sqlalchemy import event, inspect
from sqlalchemy.exc import NoSuchTableError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.types import TypeEngine

from config.settings import settings

logger = logging.getLogger(__name__)


def enable_sqlite_foreign_keys(engine: AsyncEngine) -> AsyncEngine:
    """SQLite ignores ``ON DELETE CASCADE`` unless each connection opts in."""
    if engine.dialect.name != "sqlite":
        return engine

    @event.listens_for(engine.sync_engine, "connect")
    def _foreign_keys_on(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    return engine


# -----------------------------------------------------------------------------
# Database Engine
# -----------------------------------------------------------------------------
engine = enable_sqlite_foreign_keys(create_async_engine(
    settings.DATABASE_URL,
    echo=settings.SQL_ECHO,
    future=True,
))

AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    pass


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency: one session per request, rolled back on error."""
    async with AsyncSessionLocal() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise


# -----------------------------------------------------------------------------
# Reflection
# -----------------------------------------------------------------------------
async def reflect_column_types(db: AsyncSession, entity_name: str) -> Dict[str, TypeEngine]:
    """Column name to SQLAlchemy type for a table or view, ``{}`` if unknown.

    ``entity_name`` may be schema qualified (``schema.table``).
    """
    schema, _, table_name = entity_name.rpartition(".")

    def _columns(sync_session):
        inspector = inspect(sync_session.connection())
        return inspector.get_columns(table_name, schema=schema or None)

    try:
        columns = await db.run_sync(_columns)
    except NoSuchTableError:
        logger.debug(f"No columns reflected for {entity_name}")
        return {}
    return {c["name"]: c["type"] for c in columns}


# -----------------------------------------------------------------------------
# Lifecycle
# -----------------------------------------------------------------------------
async def init_db():
    """Create missing tables for every model registered on ``Base``."""
    async with engine.begin() as conn:
        try:
            await conn.run_sync(Base.metadata.create_all)
        except Exception as e:
            logger.warning(f"Could not create tables: {e}")


async def close_db():
    await engine.dispose()
