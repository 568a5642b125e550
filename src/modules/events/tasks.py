"""Celery tasks for event outbox processing."""

from __future__ import annotations

import asyncio
import logging

from celery_app import celery
from src.config import settings
from src.database.engine import async_session
from src.modules.events.handlers import registry
from src.modules.events.outbox_processor import OutboxProcessor

logger = logging.getLogger(__name__)


@celery.task(name="src.modules.events.tasks.process_outbox")
def process_outbox():
    """Deliver a batch of pending outbox events to registered listeners."""
    processor = OutboxProcessor(async_session, registry)
    stats = asyncio.run(processor.process_batch(batch_size=settings.event_outbox_batch_size))
    logger.debug("process_outbox complete: %s", stats)
    return stats
