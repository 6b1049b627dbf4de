from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import (AsyncEngine, AsyncSession, async_sessionmaker,
                                    create_async_engine)

from rentbot.core.config import make_async_db_url

log = logging.getLogger(__name__)

SessionMaker = async_sessionmaker[AsyncSession]


def create_engine(database_url: str) -> AsyncEngine:
    url = make_async_db_url(database_url)
    if url.startswith("sqlite"):
        engine = create_async_engine(url, connect_args={"timeout": 30})
    else:
        engine = create_async_engine(url, pool_pre_ping=True)
    log.info("db_engine_initialized dialect=%s", engine.dialect.name)
    return engine


def create_sessionmaker(engine: AsyncEngine) -> SessionMaker:
    return async_sessionmaker(engine, expire_on_commit=False)


async def create_schema(engine: AsyncEngine) -> None:
    """Create all tables; used for SQLite deployments and tests (PostgreSQL goes through alembic)."""
    from rentbot.db import models  # noqa: F401
    from rentbot.db.base import Base

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

