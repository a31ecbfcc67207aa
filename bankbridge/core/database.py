"""Async database configuration."""

from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import (
    create_async_engine,
    async_sessionmaker,
    AsyncSession,
)
from sqlalchemy.orm import DeclarativeBase

from bankbridge.core.config import DATABASE_URL, DB_ECHO


class Base(DeclarativeBase):
    """SQLAlchemy declarative base."""
    pass


def _engine_options(url: str) -> dict:
    # SQLite pools don't take sizing arguments
    if url.startswith("sqlite"):
        return {}
    return {"pool_size": 5, "max_overflow": 10, "pool_pre_ping": True}


engine = create_async_engine(
    DATABASE_URL,
    echo=DB_ECHO,
    **_engine_options(DATABASE_URL),
)

async_session_factory = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency that provides a database session scoped to one request.

    Commits when the handler returns normally, rolls back otherwise.
    """
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def init_models() -> None:
    """Create tables that don't exist yet."""
    # Registers the mapped classes on Base.metadata
    from bankbridge.models import bank  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
