"""Database configuration for the durable cache backend."""

from typing import Tuple

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import declarative_base

DEFAULT_DATABASE_URL = "sqlite+aiosqlite:///./miningstats.db"

Base = declarative_base()


def create_session_maker(database_url: str = DEFAULT_DATABASE_URL) -> Tuple[AsyncEngine, async_sessionmaker]:
    """Create an engine and a session factory bound to it."""
    engine = create_async_engine(database_url, echo=False)
    session_maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    return engine, session_maker


async def init_db(engine: AsyncEngine):
    """Create all tables that do not exist yet."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
