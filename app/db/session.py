import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from app.core.config import settings
from app.core.exceptions import ServiceError, TransientFailure

logger = logging.getLogger(__name__)

# pool_pre_ping: check connection is alive before use (avoids "connection is closed" errors
# when DB or network closed idle connections).
# pool_recycle: discard connections after this many seconds to avoid stale connections.
# timeout: connect timeout for asyncpg, busy timeout for sqlite; both bound how long a
# request waits on the store.
engine = create_async_engine(
    settings.database_url,
    echo=False,
    future=True,
    pool_pre_ping=True,
    pool_recycle=300,
    connect_args={"timeout": settings.store_timeout_seconds},
)

AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
)

Base = declarative_base()


async def get_db() -> AsyncSession:
    async with AsyncSessionLocal() as session:
        yield session


@asynccontextmanager
async def store_guard(db: AsyncSession, operation: str) -> AsyncIterator[None]:
    """Roll back on any failure; report store outages as TransientFailure so callers can retry."""
    try:
        yield
    except ServiceError:
        await db.rollback()
        raise
    except (OperationalError, InterfaceError, asyncio.TimeoutError) as exc:
        logger.exception("Store unavailable during %s", operation)
        await db.rollback()
        raise TransientFailure() from exc
