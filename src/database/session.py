import logging
from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession

from src.database.engine import async_session

logger = logging.getLogger(__name__)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency that yields a request-scoped database session.

    Dispute operations commit inside their own unit of work; the final commit
    here only flushes work done outside of one (read-only requests are no-ops).
    """
    async with async_session() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            if session.in_transaction():
                logger.debug("Rolling back request session after error")
            await session.rollback()
            raise
