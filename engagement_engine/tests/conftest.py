"""
Pytest Configuration and Shared Fixtures for Engagement Engine Tests.

This module provides fixtures for all tests, supporting:
- Async test execution with pytest-asyncio
- A fresh InMemoryStore per test
- An HCP profile factory with per-channel engagement overrides
- Settings isolated from the environment and .env files
- A mock asyncpg pool for testing the PostgreSQL store without a database
- Constraint manager and execution planner wired to the in-memory store
- Seeded optimization results and a deterministic outcome strategy
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional
from unittest.mock import AsyncMock, Mock

import pytest

from engagement_engine.core.config import Settings
from engagement_engine.models.enums import Channel
from engagement_engine.models.schemas import (
    AllocationInput,
    ChannelEngagement,
    HCPProfile,
    OptimizationAllocation,
    OptimizationResult,
)
from engagement_engine.services.constraint_manager import ConstraintManager
from engagement_engine.services.execution_planner import ExecutionPlanner
from engagement_engine.services.outcome_strategy import (
    OutcomeStrategy,
    SimulatedOutcomeStrategy,
)
from engagement_engine.storage.memory import InMemoryStore


# ============================================================
# PYTEST HOOKS
# ============================================================

def pytest_configure(config) -> None:
    """
    Custom markers:
    - slow: long-running tests (deselect with -m "not slow")
    - integration: tests that need a real PostgreSQL database
    """
    config.addinivalue_line(
        'markers',
        'slow: marks tests as slow (deselect with -m "not slow")'
    )
    config.addinivalue_line(
        'markers',
        'integration: marks tests requiring a PostgreSQL database'
    )


# ============================================================
# CONFIGURATION FIXTURES
# ============================================================

@pytest.fixture
def settings() -> Settings:
    """Default settings, ignoring the process environment's DATABASE_URL and .env."""
    return Settings(_env_file=None, database_url=None, simulation_seed=42)


# ============================================================
# STORE AND SERVICE FIXTURES
# ============================================================

@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def manager(store: InMemoryStore, settings: Settings) -> ConstraintManager:
    return ConstraintManager(store, settings)


@pytest.fixture
def planner(
    store: InMemoryStore, manager: ConstraintManager, settings: Settings
) -> ExecutionPlanner:
    return ExecutionPlanner(store, manager, SimulatedOutcomeStrategy(seed=42), settings)


# ============================================================
# SAMPLE DATA FIXTURES
# ============================================================

@pytest.fixture
def make_hcp() -> Callable[..., HCPProfile]:
    """
    Factory for HCP profiles.

    Channels not given in `channels` get an empty snapshot, which classifies
    as dark.

    Usage:
        hcp = make_hcp("hcp-1", preference=Channel.EMAIL,
                       channels={Channel.EMAIL: {"score": 85, "totalTouches": 2}})
    """
    def _make(
        hcp_id: str = 'hcp-1',
        preference: Optional[Channel] = None,
        channels: Optional[Dict[Channel, Dict[str, Any]]] = None,
        specialty: Optional[str] = 'Cardiology',
        first_name: str = 'Ada',
        last_name: str = 'Lovelace',
    ) -> HCPProfile:
        engagements: List[ChannelEngagement] = [
            ChannelEngagement(channel=channel, **fields)
            for channel, fields in (channels or {}).items()
        ]
        return HCPProfile(
            id=hcp_id,
            firstName=first_name,
            lastName=last_name,
            specialty=specialty,
            channelPreference=preference,
            channelEngagements=engagements,
        )

    return _make


# ============================================================
# DATABASE MOCK FIXTURES
# ============================================================

@pytest.fixture
def mock_db_pool() -> AsyncMock:
    """
    Mock asyncpg connection pool.

    pool.acquire() returns an async context manager yielding a connection
    whose execute / executemany / fetch / fetchrow / fetchval are AsyncMocks
    and whose transaction() is an async context manager.

    Usage:
        conn = mock_db_pool.acquire.return_value.__aenter__.return_value
        conn.fetchrow.return_value = {'id': 'plan-1', ...}
    """
    pool = AsyncMock()

    conn = AsyncMock()
    conn.execute = AsyncMock(return_value='UPDATE 1')
    conn.fetch = AsyncMock(return_value=[])
    conn.fetchrow = AsyncMock(return_value=None)
    conn.fetchval = AsyncMock(return_value=None)
    conn.executemany = AsyncMock(return_value=None)

    transaction_context = AsyncMock()
    transaction_context.__aenter__ = AsyncMock(return_value=None)
    transaction_context.__aexit__ = AsyncMock(return_value=None)
    conn.transaction = Mock(return_value=transaction_context)

    acquire_context = AsyncMock()
    acquire_context.__aenter__ = AsyncMock(return_value=conn)
    acquire_context.__aexit__ = AsyncMock(return_value=None)
    pool.acquire = Mock(return_value=acquire_context)

    pool.close = AsyncMock(return_value=None)

    return pool


# ============================================================
# EXECUTION FIXTURES
# ============================================================

class FixedOutcomeStrategy(OutcomeStrategy):
    """Outcome = predictedLift x factor, for deterministic execution tests."""

    name = "fixed"

    def __init__(self, factor: float = 1.0):
        self.factor = factor

    async def get_outcome(self, allocation: OptimizationAllocation) -> float:
        return allocation.predictedLift * self.factor


@pytest.fixture
def fixed_outcome(planner: ExecutionPlanner) -> Callable[[float], None]:
    """
    Swap the planner's outcome strategy for a fixed multiple of the prediction.

    Usage:
        fixed_outcome(0.5)   # every allocation delivers half its predicted lift
    """
    def _apply(factor: float = 1.0) -> None:
        planner.outcome_strategy = FixedOutcomeStrategy(factor)

    return _apply


@pytest.fixture
def seed_result(planner: ExecutionPlanner) -> Callable[..., Awaitable[OptimizationResult]]:
    """
    Factory storing an optimization result with `count` allocations, one HCP
    each, planned an hour apart from 2026-03-02 09:00 UTC.

    Usage:
        result = await seed_result(count=3, cost=100.0, lift=10.0)
    """
    async def _seed(
        count: int = 3,
        cost: float = 100.0,
        lift: float = 10.0,
        channel: Channel = Channel.EMAIL,
        rep_id: Optional[str] = None,
    ) -> OptimizationResult:
        start = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)
        inputs = [
            AllocationInput(
                hcpId=f'hcp-{i}',
                channel=channel,
                actionType='reach_out',
                plannedDate=start + timedelta(hours=i),
                estimatedCost=cost,
                predictedLift=lift,
                confidence=0.8,
                repId=rep_id,
            )
            for i in range(count)
        ]
        result, _ = await planner.create_optimization_result(inputs, name='Q1 optimization')
        return result

    return _seed
