"""
FastAPI dependency injection module for the Engagement Engine backend.

Key Dependencies Provided:
- get_settings_dependency / SettingsDep: the cached Settings singleton
- get_store_dependency / StoreDep: the process-wide EngagementStore
  (PostgresStore when DATABASE_URL is set, InMemoryStore otherwise)
- get_constraint_manager / ConstraintManagerDep
- get_execution_planner / ExecutionPlannerDep
- get_optimization_monitor / OptimizationMonitorDep

Every dependency is a thin function so tests can swap it out:

    app.dependency_overrides[get_store_dependency] = lambda: InMemoryStore()

Usage:
    @router.post("/{plan_id}/book")
    async def book(plan_id: str, planner: ExecutionPlannerDep) -> BookingResult:
        return await planner.book_resources(plan_id)
"""

import logging
from typing import Annotated, Optional

from fastapi import Depends

from engagement_engine.core.config import Settings, get_settings
from engagement_engine.services.constraint_manager import ConstraintManager
from engagement_engine.services.execution_planner import ExecutionPlanner
from engagement_engine.services.optimization_monitor import OptimizationMonitor
from engagement_engine.services.outcome_strategy import (
    OutcomeStrategy,
    build_outcome_strategy,
)
from engagement_engine.storage.base import EngagementStore
from engagement_engine.storage.memory import InMemoryStore
from engagement_engine.storage.postgres import PostgresStore


logger = logging.getLogger(__name__)


# Process-wide store and outcome strategy; built on first use
_store: Optional[EngagementStore] = None
_outcome_strategy: Optional[OutcomeStrategy] = None


# =============================================================================
# Settings Dependency
# =============================================================================

def get_settings_dependency() -> Settings:
    """
    Return the Settings singleton instance.

    Note:
        This is a thin wrapper around get_settings() to enable FastAPI's
        dependency override mechanism for testing.
    """
    return get_settings()


SettingsDep = Annotated[Settings, Depends(get_settings_dependency)]


# =============================================================================
# Store Dependency
# =============================================================================

def get_store() -> EngagementStore:
    """
    Return the process-wide store, creating it on first call.

    Returns:
        EngagementStore: PostgresStore when DATABASE_URL is configured,
        otherwise an InMemoryStore.
    """
    global _store

    if _store is None:
        if get_settings().database_url:
            _store = PostgresStore()
            logger.info("Using PostgreSQL store")
        else:
            _store = InMemoryStore()
            logger.info("DATABASE_URL not set, using in-memory store")
    return _store


def reset_store() -> None:
    """Forget the process-wide store and outcome strategy (tests, shutdown)."""
    global _store, _outcome_strategy
    _store = None
    _outcome_strategy = None


def get_store_dependency() -> EngagementStore:
    return get_store()


StoreDep = Annotated[EngagementStore, Depends(get_store_dependency)]


# =============================================================================
# Service Dependencies
# =============================================================================

def get_outcome_strategy(store: StoreDep, settings: SettingsDep) -> OutcomeStrategy:
    # Kept across requests so a seeded simulation keeps advancing
    global _outcome_strategy

    if _outcome_strategy is None:
        _outcome_strategy = build_outcome_strategy(settings, store)
    return _outcome_strategy


OutcomeStrategyDep = Annotated[OutcomeStrategy, Depends(get_outcome_strategy)]


def get_constraint_manager(store: StoreDep, settings: SettingsDep) -> ConstraintManager:
    return ConstraintManager(store, settings)


ConstraintManagerDep = Annotated[ConstraintManager, Depends(get_constraint_manager)]


def get_execution_planner(
    store: StoreDep,
    constraints: ConstraintManagerDep,
    outcome_strategy: OutcomeStrategyDep,
    settings: SettingsDep,
) -> ExecutionPlanner:
    return ExecutionPlanner(store, constraints, outcome_strategy, settings)


ExecutionPlannerDep = Annotated[ExecutionPlanner, Depends(get_execution_planner)]


def get_optimization_monitor(planner: ExecutionPlannerDep) -> OptimizationMonitor:
    return OptimizationMonitor(planner)


OptimizationMonitorDep = Annotated[OptimizationMonitor, Depends(get_optimization_monitor)]
