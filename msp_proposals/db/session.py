"""
Async engine and the per-request session dependency.

One request is one unit of work: an item edit, the recomputed totals and
any approval change are committed together, or not at all.
"""

from typing import Any, AsyncGenerator, Dict
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from msp_proposals.core.config import settings


def _engine_options(url: str) -> Dict[str, Any]:
    # SQLite uses a single-connection pool; sizing only applies to servers
    if url.startswith("sqlite"):
        return {}
    return {"pool_size": 10, "max_overflow": 20, "pool_pre_ping": True}


engine = create_async_engine(
    settings.async_database_url,
    echo=settings.DEBUG,
    **_engine_options(settings.async_database_url),
)

# Services re-read proposals after flushing, so instances must stay usable
# after commit; autoflush is off so a half-edited item is never written early.
AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency yielding a session for one request.

    Commits when the route returns; rolls back when it raises, including
    gate failures and refused approval decisions.
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
