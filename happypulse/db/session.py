# happypulse/db/session.py
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker, DeclarativeBase

from happypulse.core.config import settings

# Event store engine (users, events, surveys, notifications)
engine = create_async_engine(
    settings.DATABASE_URL,
    echo=settings.APP_ENV == "development",
    pool_pre_ping=True,
)

# Word-frequency index engine. Shares the event store unless configured apart.
if settings.index_database_url == settings.DATABASE_URL:
    index_engine = engine
else:
    index_engine = create_async_engine(
        settings.index_database_url,
        echo=settings.APP_ENV == "development",
        pool_pre_ping=True,
    )

# Session factories
AsyncSessionLocal = sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False
)
IndexSessionLocal = sessionmaker(
    index_engine, class_=AsyncSession, expire_on_commit=False
)


class Base(DeclarativeBase):
    """Base class for event-store ORM models."""
    pass


class IndexBase(DeclarativeBase):
    """Base class for the derived word-frequency index."""
    pass


async def create_all() -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    async with index_engine.begin() as conn:
        await conn.run_sync(IndexBase.metadata.create_all)


async def get_db() -> AsyncSession:
    """FastAPI dependency: yields an event-store session."""
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


async def get_index_db() -> AsyncSession:
    """FastAPI dependency: yields a word-index session."""
    async with IndexSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()
