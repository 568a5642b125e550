"""Pytest fixtures for deal dispute tests.

Each test gets its own file-backed SQLite database built from the ORM
metadata. Publishers are passed to the engine explicitly; nothing is patched
globally.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

import src.models  # noqa: F401
from src.database.base import Base
from src.modules.dispute.service import DealDisputeService
from src.modules.dispute.store import DisputeStore
from src.modules.escrow.ledger import EscrowLedger
from tests.helpers import Deal, RecordingPublisher, seed_deal

# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def engine(tmp_path):
    test_engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'disputes.db'}")
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as db_session:
        yield db_session


@pytest_asyncio.fixture
async def deal(session_factory) -> Deal:
    return await seed_deal(session_factory)


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


@pytest.fixture
def publisher() -> RecordingPublisher:
    return RecordingPublisher()


@pytest.fixture
def service(session, publisher) -> DealDisputeService:
    return DealDisputeService(
        DisputeStore(session),
        EscrowLedger(session),
        publisher,
        max_attachments=5,
        auto_escalate=True,
    )
