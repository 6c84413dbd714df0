"""
Database engine, sessions and units of work.
"""

from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, AsyncIterator

from fastapi import Request
from loguru import logger
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from tfootwear.core.config import settings


class Base(DeclarativeBase):
    """Declarative base for all ORM models."""


class Database:
    """
    Owner of the async engine and session factory.

    One instance is created at application startup and shared by
    every request handler through ``app.state``.

    Usage:
        database = Database(settings.database_url)
        await database.create_all()
        async with database.session() as session:
            ...
        await database.dispose()
    """

    def __init__(self, url: str, **engine_kwargs: Any) -> None:
        self.url = url
        self.engine: AsyncEngine = create_async_engine(url, **engine_kwargs)
        self.session_factory = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

    def session(self) -> AsyncSession:
        """Open a new session."""
        return self.session_factory()

    async def create_all(self) -> None:
        """Create tables for every registered model."""
        # Register models on the metadata before creating tables
        from tfootwear import models  # noqa: F401

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def drop_all(self) -> None:
        """Drop every table."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)

    async def dispose(self) -> None:
        """Close all pooled connections."""
        await self.engine.dispose()


def create_database() -> Database:
    """Build the production database handle from settings."""
    return Database(
        settings.database_url,
        echo=settings.database_echo,
        pool_size=settings.database_pool_size,
        max_overflow=settings.database_max_overflow,
        pool_pre_ping=True,
    )


async def init_db(database: Database) -> None:
    """Create schema on startup."""
    await database.create_all()
    logger.info("Database schema ready")


async def close_db(database: Database) -> None:
    """Release engine resources on shutdown."""
    await database.dispose()
    logger.info("Database connections closed")


async def get_db(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency yielding a request-scoped session."""
    database: Database = request.app.state.database
    async with database.session() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise


@asynccontextmanager
async def atomic(session: AsyncSession) -> AsyncIterator[AsyncSession]:
    """
    Run a block as a single unit of work.

    The outermost block commits on success and rolls back on any
    exception. Nested blocks join the enclosing unit, so a service
    may call another service's atomic method without committing early.
    """
    depth = session.info.get("atomic_depth", 0)
    session.info["atomic_depth"] = depth + 1
    try:
        yield session
        if depth == 0:
            await session.commit()
    except BaseException:
        if depth == 0:
            await session.rollback()
        raise
    finally:
        session.info["atomic_depth"] = depth
