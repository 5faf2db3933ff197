from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession

from libs.db.config import get_session_factory


async def get_async_db() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency that yields an async database session.

    One session per request: checkout and cancellation each run as a single
    unit of work on it.
    """
    async with get_session_factory()() as session:
        try:
            yield session
        finally:
            await session.close()
