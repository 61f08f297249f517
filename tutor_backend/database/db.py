"""
Async Database Session Management

PostgreSQL engine and session factory shared by the billing module.
The session factory is exposed as ``async_db_session`` so callers can use
either ``async with async_db_session() as session`` or
``async with async_db_session.begin() as session``.
"""

import logging
import uuid
from typing import Annotated, AsyncGenerator

from fastapi import Depends
from sqlalchemy import URL
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from tutor_backend.common.model import MappedBase
from tutor_backend.core.conf import settings

logger = logging.getLogger(__name__)


def create_database_url() -> URL:
    """Build the asyncpg connection URL from settings."""
    return URL.create(
        drivername='postgresql+asyncpg',
        username=settings.DATABASE_USER,
        password=settings.DATABASE_PASSWORD,
        host=settings.DATABASE_HOST,
        port=settings.DATABASE_PORT,
        database=settings.DATABASE_SCHEMA,
    )


def create_async_engine_and_session(url: str | URL) -> tuple[AsyncEngine, async_sessionmaker[AsyncSession]]:
    """
    Create the async engine and its session factory.

    Args:
        url: Database connection URL

    Returns:
        Tuple of (engine, session factory)
    """
    engine = create_async_engine(
        url,
        echo=settings.DATABASE_ECHO,
        echo_pool=settings.DATABASE_POOL_ECHO,
        future=True,
        pool_size=settings.DATABASE_POOL_SIZE,
        max_overflow=settings.DATABASE_MAX_OVERFLOW,
        pool_pre_ping=True,
    )
    db_session = async_sessionmaker(bind=engine, class_=AsyncSession, autoflush=False, expire_on_commit=False)
    return engine, db_session


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Session dependency for FastAPI routes."""
    async with async_db_session() as session:
        yield session


async def get_db_transaction() -> AsyncGenerator[AsyncSession, None]:
    """Transactional session dependency for FastAPI routes."""
    async with async_db_session.begin() as session:
        yield session


async def create_tables() -> None:
    """Create all tables registered on the declarative base."""
    import tutor_backend.app.billing.model  # noqa: F401

    async with async_engine.begin() as conn:
        await conn.run_sync(MappedBase.metadata.create_all)
    logger.info('[DB] Tables created')


async def drop_tables() -> None:
    """Drop all tables registered on the declarative base."""
    import tutor_backend.app.billing.model  # noqa: F401

    async with async_engine.begin() as conn:
        await conn.run_sync(MappedBase.metadata.drop_all)


def uuid4_str() -> str:
    """Random UUID string for primary keys."""
    return str(uuid.uuid4())


SQLALCHEMY_DATABASE_URL = create_database_url()

async_engine, async_db_session = create_async_engine_and_session(SQLALCHEMY_DATABASE_URL)

CurrentSession = Annotated[AsyncSession, Depends(get_db)]
CurrentSessionTransaction = Annotated[AsyncSession, Depends(get_db_transaction)]
