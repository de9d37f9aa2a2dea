"""
Database session configuration.

Async SQLAlchemy engine and session factory for the fee ledger. PostgreSQL
(asyncpg) is the production target; SQLite (aiosqlite) is accepted for local
runs and tests, in which case connection pool sizing is skipped and foreign
keys are switched on per connection.
"""

from sqlalchemy import event
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base
from fee_ledger.app.core.config import settings


def is_sqlite_url(database_url: str) -> bool:
    return make_url(database_url).get_backend_name() == "sqlite"


def enable_sqlite_foreign_keys(sync_engine) -> None:
    """Turn on FK enforcement for every new SQLite connection of an engine."""

    @event.listens_for(sync_engine, "connect")
    def _set_sqlite_pragma(dbapi_conn, connection_record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


def build_engine(database_url: str, echo: bool = False):
    """Create the async engine, applying pool sizing only where the dialect supports it."""
    if is_sqlite_url(database_url):
        sqlite_engine = create_async_engine(database_url, echo=echo, future=True)
        enable_sqlite_foreign_keys(sqlite_engine.sync_engine)
        return sqlite_engine

    return create_async_engine(
        database_url,
        echo=echo,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        pool_pre_ping=True,
        future=True,
    )


engine = build_engine(settings.database_url, echo=settings.db_echo)

# Ledger operations commit explicitly while holding the obligation lock,
# so objects must stay readable after commit.
AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)

Base = declarative_base()


async def get_db():
    """
    FastAPI dependency for database sessions.

    Yields one session per request; anything left uncommitted is rolled back
    when the session closes.
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()
