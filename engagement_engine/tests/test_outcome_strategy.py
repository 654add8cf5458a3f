"""
Outcome Strategy Tests

Test Coverage:
- Simulated outcomes: spread bounded by confidence, zero floor, seeded
  determinism
- Recorded outcomes: reported values, missing outcomes
- Strategy selection from settings
"""

import pytest

from engagement_engine.core.exceptions import OutcomeUnavailableError
from engagement_engine.models.enums import Channel
from engagement_engine.models.schemas import OptimizationAllocation
from engagement_engine.services.outcome_strategy import (
    RecordedOutcomeStrategy,
    SimulatedOutcomeStrategy,
    build_outcome_strategy,
)


def _allocation(lift: float = 20.0, confidence: float = 0.6) -> OptimizationAllocation:
    return OptimizationAllocation(
        id='a-1', resultId='res-1', hcpId='hcp-1', channel=Channel.EMAIL,
        actionType='reach_out', plannedDate='2026-03-02T09:00:00Z',
        predictedLift=lift, confidence=confidence,
    )


# =============================================================================
# Test Class: TestSimulatedOutcomeStrategy
# =============================================================================

class TestSimulatedOutcomeStrategy:

    @pytest.mark.parametrize('confidence', [0.0, 0.6, 0.95])
    def test_spread_shrinks_with_confidence(self, confidence: float) -> None:
        """
        Every draw lies within lift x (1 +/- (1 - confidence) x 0.25).
        """
        # Arrange
        strategy = SimulatedOutcomeStrategy(seed=7)
        half_width = (1 - confidence) * 0.25

        # Act
        outcomes = [strategy.simulate(20.0, confidence) for _ in range(500)]

        # Assert
        assert min(outcomes) >= 20.0 * (1 - half_width)
        assert max(outcomes) <= 20.0 * (1 + half_width)

    def test_full_confidence_is_exact(self) -> None:
        strategy = SimulatedOutcomeStrategy(seed=7)
        assert strategy.simulate(12.5, 1.0) == pytest.approx(12.5)

    def test_floored_at_zero(self) -> None:
        strategy = SimulatedOutcomeStrategy(seed=7)

        assert strategy.simulate(-10.0, 0.2) == 0.0
        assert strategy.simulate(0.0, 0.2) == 0.0

    def test_same_seed_same_sequence(self) -> None:
        first = SimulatedOutcomeStrategy(seed=42)
        second = SimulatedOutcomeStrategy(seed=42)

        assert [first.simulate(10.0, 0.5) for _ in range(5)] == [
            second.simulate(10.0, 0.5) for _ in range(5)
        ]

    def test_different_seeds_differ(self) -> None:
        first = SimulatedOutcomeStrategy(seed=1)
        second = SimulatedOutcomeStrategy(seed=2)

        assert [first.simulate(10.0, 0.5) for _ in range(5)] != [
            second.simulate(10.0, 0.5) for _ in range(5)
        ]

    @pytest.mark.asyncio
    async def test_outcome_uses_allocation_prediction(self) -> None:
        strategy = SimulatedOutcomeStrategy(seed=3)
        outcome = await strategy.get_outcome(_allocation(lift=40.0, confidence=0.6))
        assert 40.0 * 0.9 <= outcome <= 40.0 * 1.1


# =============================================================================
# Test Class: TestRecordedOutcomeStrategy
# =============================================================================

@pytest.mark.asyncio
class TestRecordedOutcomeStrategy:

    async def test_reported_outcome(self, store) -> None:
        await store.record_outcome('a-1', 14.0)
        strategy = RecordedOutcomeStrategy(store)

        assert await strategy.get_outcome(_allocation()) == pytest.approx(14.0)

    async def test_missing_outcome_raises(self, store) -> None:
        strategy = RecordedOutcomeStrategy(store)

        with pytest.raises(OutcomeUnavailableError):
            await strategy.get_outcome(_allocation())


# =============================================================================
# Test Class: TestBuildOutcomeStrategy
# =============================================================================

class TestBuildOutcomeStrategy:

    def test_default_is_simulated(self, settings, store) -> None:
        assert isinstance(build_outcome_strategy(settings, store), SimulatedOutcomeStrategy)

    def test_recorded(self, settings, store) -> None:
        settings = settings.model_copy(update={'outcome_strategy': 'recorded'})
        assert isinstance(build_outcome_strategy(settings, store), RecordedOutcomeStrategy)

    def test_unknown_falls_back_to_simulated(self, settings, store) -> None:
        settings = settings.model_copy(update={'outcome_strategy': 'oracle'})
        assert isinstance(build_outcome_strategy(settings, store), SimulatedOutcomeStrategy)
