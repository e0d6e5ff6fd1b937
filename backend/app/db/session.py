"""SQLite session and engine."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import NullPool

from app.config import get_settings

Base = declarative_base()

_settings = get_settings()
# SQLAlchemy async needs sqlite+aiosqlite and path as URL.
# No pooling: an aiosqlite connection is bound to the loop that opened it.
_db_url = f"sqlite+aiosqlite:///{_settings.db_path}"
_engine = create_async_engine(_db_url, echo=False, poolclass=NullPool)
_async_session = async_sessionmaker(
    _engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
)


@event.listens_for(_engine.sync_engine, "connect")
def _enable_foreign_keys(dbapi_connection, connection_record) -> None:
    """SQLite ignores FOREIGN KEY constraints unless enabled per connection."""
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


async def init_db() -> None:
    """Create tables if they do not exist."""
    _settings.db_path.parent.mkdir(parents=True, exist_ok=True)
    async with _engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


@asynccontextmanager
async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield an async session (context manager)."""
    async with _async_session() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency that yields an async session."""
    async with get_session() as session:
        yield session
