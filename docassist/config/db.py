import uuid
from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy import pool, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from docassist.settings import settings as s
from docassist.utils.logging_config import logger

engine = create_async_engine(
    str(s.DATABASE_URL),
    pool_pre_ping=True,
    pool_recycle=3600,
    pool_size=20,
    max_overflow=20,
    echo=s.DEBUG,
)

SessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    autocommit=False,
    autoflush=False,
    expire_on_commit=False,
)


def create_worker_engine() -> AsyncEngine:
    """
    Engine for celery tasks. Each task runs its own event loop, so pooled
    connections must not outlive it.
    """
    return create_async_engine(
        str(s.DATABASE_URL), poolclass=pool.NullPool, echo=s.DEBUG
    )


def create_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=bind,
        class_=AsyncSession,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
    )


@asynccontextmanager
async def tenant_session(
    session_factory: async_sessionmaker[AsyncSession], tenant_id: uuid.UUID | str
) -> AsyncIterator[AsyncSession]:
    """
    Opens a session whose transaction carries the RLS tenant context.

    Queries issued through it must still filter on tenant_id explicitly;
    the 'app.current_tenant' setting only backs that up on PostgreSQL.
    """
    async with session_factory() as session:
        try:
            if session.bind is not None and session.bind.dialect.name == "postgresql":
                # is_local=true scopes the setting to the current transaction.
                await session.execute(
                    text("SELECT set_config('app.current_tenant', :tenant_id, true)"),
                    {"tenant_id": str(tenant_id)},
                )
            yield session
        except SQLAlchemyError:
            await session.rollback()
            raise


async def check_db_connection():
    try:
        async with SessionLocal() as session:
            await session.execute(text("SELECT 1"))
            logger.info("Database connection successful")
    except Exception as e:
        logger.error(f"Database connection error: {e}")
        raise
