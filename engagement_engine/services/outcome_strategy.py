"""
Outcome Strategies

Decides the actual lift of an allocation when the execution planner runs it.

Key Components:
- OutcomeStrategy: interface the planner depends on
- SimulatedOutcomeStrategy: predicted lift scaled by a random factor whose
  spread shrinks as the predictor's confidence grows
- RecordedOutcomeStrategy: outcomes reported by the fulfilment side and
  stored against the allocation; a missing outcome fails the allocation

Usage:
    strategy = build_outcome_strategy(settings, store)
    outcome = await strategy.get_outcome(allocation)
"""

import logging
from abc import ABC, abstractmethod
from typing import Optional

import numpy as np

from engagement_engine.core.config import Settings
from engagement_engine.core.exceptions import OutcomeUnavailableError
from engagement_engine.models.schemas import OptimizationAllocation
from engagement_engine.storage.base import EngagementStore


logger = logging.getLogger(__name__)


# Spread of the random factor at confidence 0
MAX_VARIANCE = 0.5


class OutcomeStrategy(ABC):
    """Produces the actual outcome of one executed allocation."""

    name: str = "base"

    @abstractmethod
    async def get_outcome(self, allocation: OptimizationAllocation) -> float:
        """
        Returns:
            float: Non-negative actual lift.

        Raises:
            OutcomeUnavailableError: When no outcome can be produced.
        """


class SimulatedOutcomeStrategy(OutcomeStrategy):
    """
    predictedLift x (1 + (u - 0.5) x variance), variance = (1 - confidence) x 0.5,
    with u drawn uniformly from [0, 1). Floored at zero.
    """

    name = "simulated"

    def __init__(self, seed: Optional[int] = None):
        self.rng = np.random.default_rng(seed)

    def simulate(self, predicted_lift: float, confidence: float) -> float:
        variance = (1 - confidence) * MAX_VARIANCE
        factor = 1 + (self.rng.random() - 0.5) * variance
        return max(0.0, float(predicted_lift * factor))

    async def get_outcome(self, allocation: OptimizationAllocation) -> float:
        return self.simulate(allocation.predictedLift, allocation.confidence)


class RecordedOutcomeStrategy(OutcomeStrategy):
    name = "recorded"

    def __init__(self, store: EngagementStore):
        self.store = store

    async def get_outcome(self, allocation: OptimizationAllocation) -> float:
        outcome = await self.store.get_reported_outcome(allocation.id)
        if outcome is None:
            raise OutcomeUnavailableError(
                f"No outcome reported for allocation {allocation.id}"
            )
        return max(0.0, outcome)


def build_outcome_strategy(settings: Settings, store: EngagementStore) -> OutcomeStrategy:
    """Strategy selected by OUTCOME_STRATEGY ("simulated" or "recorded")."""
    if settings.outcome_strategy == RecordedOutcomeStrategy.name:
        return RecordedOutcomeStrategy(store)
    if settings.outcome_strategy != SimulatedOutcomeStrategy.name:
        logger.warning(
            f"Unknown outcome strategy '{settings.outcome_strategy}', using simulated"
        )
    return SimulatedOutcomeStrategy(settings.simulation_seed)
