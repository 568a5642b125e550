"""Celery tasks for deal dispute SLA monitoring."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from celery_app import celery
from src.database.engine import async_session

logger = logging.getLogger(__name__)


async def _sweep_sla_breaches_async(
    session_factory: async_sessionmaker[AsyncSession] = async_session,
    now: datetime | None = None,
) -> dict:
    """Stamp every overdue, unresolved dispute as breached (idempotent)."""
    from src.modules.dispute.service import DealDisputeService

    async with session_factory() as session:
        svc = DealDisputeService.for_session(session, session_factory)
        breached = await svc.scan_sla_breaches(now=now)

    return {"breached": len(breached), "dispute_ids": [str(i) for i in breached]}


@celery.task(name="src.modules.dispute.tasks.sweep_sla_breaches")
def sweep_sla_breaches():
    """Record SLA breaches for overdue deal disputes."""
    stats = asyncio.run(_sweep_sla_breaches_async())
    logger.info("sweep_sla_breaches complete: %s", stats)
    return stats
