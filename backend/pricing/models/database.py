"""Database configuration and session management."""

import os

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import declarative_base

DATABASE_URL = os.environ.get("PRICING_DATABASE_URL", "sqlite+aiosqlite:///./pricing.db")

engine = create_async_engine(DATABASE_URL, echo=False)
async_session_maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

Base = declarative_base()


def create_session_factory(url: str):
    """Build an engine and session factory for a database other than the default."""
    custom_engine = create_async_engine(url, echo=False)
    return custom_engine, async_sessionmaker(custom_engine, class_=AsyncSession, expire_on_commit=False)


async def init_db(target_engine: AsyncEngine = None):
    """Initialize the database, creating all tables."""
    async with (target_engine or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
