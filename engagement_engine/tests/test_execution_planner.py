"""
Execution Planner Tests

Test Coverage:
- Plan creation from an optimization result
- Booking (capacity, budget, partial failures) and the release round trip
- Execution with completed and failed allocations, cancellation tokens
- Status transitions and their rejections
- Progress, execution report, rebalance suggestion and rebalance
"""

from datetime import datetime, timezone
from typing import List
from unittest.mock import AsyncMock

import pytest

from engagement_engine.core.exceptions import InvalidStateTransitionError, NotFoundError
from engagement_engine.models.enums import AllocationStatus, Channel, PlanStatus, RebalanceTrigger
from engagement_engine.models.schemas import (
    AllocationInput,
    BudgetAllocation,
    ChannelCapacity,
    OptimizationAllocation,
)
from engagement_engine.services.execution_planner import CancellationToken, ExecutionPlanner
from engagement_engine.services.outcome_strategy import OutcomeStrategy, RecordedOutcomeStrategy


class OrderRecordingStrategy(OutcomeStrategy):
    """Delivers the predicted lift and remembers the order HCPs were run in."""

    name = "recording"

    def __init__(self) -> None:
        self.hcp_ids: List[str] = []

    async def get_outcome(self, allocation: OptimizationAllocation) -> float:
        self.hcp_ids.append(allocation.hcpId)
        return allocation.predictedLift


async def _capacity(store, daily_limit: int = 50) -> None:
    await store.upsert_channel_capacity(ChannelCapacity(channel=Channel.EMAIL, dailyLimit=daily_limit))


async def _budget(store, amount: float = 1000.0) -> BudgetAllocation:
    return await store.save_budget_allocation(
        BudgetAllocation(campaignId="camp-q1", channel=Channel.EMAIL, allocatedAmount=amount)
    )


async def _booked_plan(planner, seed_result, count: int = 3):
    result = await seed_result(count=count)
    plan = await planner.create_plan(result.id, "Q1 push", campaign_id="camp-q1")
    booking = await planner.book_resources(plan.id)
    return plan, booking


# =============================================================================
# Test Class: TestCancellationToken
# =============================================================================

class TestCancellationToken:

    def test_explicit_cancel(self) -> None:
        token = CancellationToken()
        assert token.cancelled is False
        token.cancel()
        assert token.cancelled is True

    def test_deadline(self) -> None:
        assert CancellationToken(timeout_seconds=0).cancelled is True
        assert CancellationToken(timeout_seconds=3600).cancelled is False


# =============================================================================
# Test Class: TestPlanCreation
# =============================================================================

@pytest.mark.asyncio
class TestPlanCreation:

    async def test_create_plan_totals(self, planner, seed_result) -> None:
        result = await seed_result(count=3, cost=100.0, lift=10.0)
        plan = await planner.create_plan(result.id, "Q1 push")

        assert plan.status == PlanStatus.DRAFT
        assert plan.totalActions == 3
        assert plan.budgetAllocated == pytest.approx(300)
        assert plan.predictedTotalLift == pytest.approx(30)
        assert plan.scheduledEndAt == datetime(2026, 3, 2, 11, 0, tzinfo=timezone.utc)

    async def test_unknown_result(self, planner) -> None:
        with pytest.raises(NotFoundError):
            await planner.create_plan("missing", "Nope")

    async def test_list_and_scheduled_actions(self, planner, store, seed_result, make_hcp) -> None:
        await store.upsert_hcp(make_hcp("hcp-0", first_name="Grace", last_name="Hopper"))
        result = await seed_result(count=2)
        await planner.create_plan(result.id, "Q1 push")

        assert len(await planner.list_plans(result_id=result.id)) == 1
        assert await planner.list_plans(status=PlanStatus.EXECUTING) == []

        actions = await planner.get_scheduled_actions(result.id)
        assert [a.hcpName for a in actions] == ["Grace Hopper", "hcp-1"]

    async def test_delete_only_drafts(self, planner, store, seed_result) -> None:
        await _capacity(store)
        plan, _ = await _booked_plan(planner, seed_result)

        with pytest.raises(InvalidStateTransitionError) as exc_info:
            await planner.delete_plan(plan.id)
        assert exc_info.value.current_status == "scheduled"

        await planner.release_resources(plan.id)
        await planner.delete_plan(plan.id)
        with pytest.raises(NotFoundError):
            await planner.get_plan(plan.id)


# =============================================================================
# Test Class: TestBooking
# =============================================================================

@pytest.mark.asyncio
class TestBooking:

    async def test_book_all(self, planner, store, seed_result) -> None:
        await _capacity(store)
        budget = await _budget(store)

        plan, booking = await _booked_plan(planner, seed_result)

        assert booking.success is True
        assert booking.bookedCount == 3
        assert booking.budgetCommitted == pytest.approx(300)
        assert booking.capacityBooked == {"email": 3}
        assert (await planner.get_plan(plan.id)).status == PlanStatus.SCHEDULED

        capacity = await store.get_channel_capacity(Channel.EMAIL)
        assert capacity.dailyUsed == 3
        stored_budget = await store.get_budget_allocation(budget.id)
        assert stored_budget.committedAmount == pytest.approx(300)

        allocations = await store.list_allocations(plan.resultId)
        assert {a.status for a in allocations} == {AllocationStatus.BOOKED}
        assert {a.budgetAllocationId for a in allocations} == {budget.id}

    async def test_partial_booking(self, planner, store, seed_result) -> None:
        await _capacity(store, daily_limit=2)
        plan, booking = await _booked_plan(planner, seed_result)

        assert booking.success is False
        assert booking.bookedCount == 2
        assert booking.failedCount == 1
        assert booking.errors[0].reason == "Channel email capacity exhausted"
        assert (await planner.get_plan(plan.id)).status == PlanStatus.SCHEDULED

    async def test_nothing_booked_stays_draft(self, planner, store, seed_result) -> None:
        await _capacity(store, daily_limit=0)
        plan, booking = await _booked_plan(planner, seed_result)

        assert booking.bookedCount == 0
        assert (await planner.get_plan(plan.id)).status == PlanStatus.DRAFT

    async def test_insufficient_budget(self, planner, store, seed_result) -> None:
        await _capacity(store)
        await _budget(store, amount=150.0)

        _, booking = await _booked_plan(planner, seed_result)

        assert booking.bookedCount == 1
        assert booking.failedCount == 2
        assert booking.errors[0].reason.startswith("Insufficient budget")
        capacity = await store.get_channel_capacity(Channel.EMAIL)
        assert capacity.dailyUsed == 1

    async def test_error_after_capacity_gives_it_back(
        self, planner, manager, store, seed_result
    ) -> None:
        """
        An error while committing budget is reported per allocation and leaves
        no capacity held.
        """
        # Arrange
        await _capacity(store)
        await _budget(store)
        manager.commit_budget = AsyncMock(side_effect=RuntimeError("db blip"))

        # Act
        plan, booking = await _booked_plan(planner, seed_result)

        # Assert
        assert booking.bookedCount == 0
        assert [e.reason for e in booking.errors] == ["db blip"] * 3
        assert (await store.get_channel_capacity(Channel.EMAIL)).dailyUsed == 0
        allocations = await store.list_allocations(plan.resultId)
        assert {a.status for a in allocations} == {AllocationStatus.PLANNED}
        assert (await planner.get_plan(plan.id)).status == PlanStatus.DRAFT

    async def test_error_after_budget_gives_everything_back(
        self, planner, store, seed_result
    ) -> None:
        """
        An error writing the booked status releases every capacity row and the
        budget commitment the booking took.
        """
        # Arrange
        await _capacity(store)
        await store.upsert_channel_capacity(
            ChannelCapacity(channel=Channel.EMAIL, repId="rep-1", dailyLimit=5)
        )
        budget = await _budget(store)
        store.update_allocation = AsyncMock(side_effect=RuntimeError("db blip"))
        result = await seed_result(count=2, rep_id="rep-1")
        plan = await planner.create_plan(result.id, "Q1 push", campaign_id="camp-q1")

        # Act
        booking = await planner.book_resources(plan.id)

        # Assert
        assert booking.failedCount == 2
        assert (await store.get_channel_capacity(Channel.EMAIL)).dailyUsed == 0
        assert (await store.get_channel_capacity(Channel.EMAIL, "rep-1")).dailyUsed == 0
        assert (await store.get_budget_allocation(budget.id)).committedAmount == 0

    async def test_release_restores_counters(self, planner, store, seed_result) -> None:
        await _capacity(store)
        budget = await _budget(store)
        plan, _ = await _booked_plan(planner, seed_result)

        released = await planner.release_resources(plan.id)

        assert released.status == PlanStatus.DRAFT
        assert (await store.get_channel_capacity(Channel.EMAIL)).dailyUsed == 0
        assert (await store.get_budget_allocation(budget.id)).committedAmount == 0
        allocations = await store.list_allocations(plan.resultId)
        assert {a.status for a in allocations} == {AllocationStatus.PLANNED}
        assert {a.budgetAllocationId for a in allocations} == {None}

    async def test_book_completed_plan_rejected(self, planner, store, seed_result, fixed_outcome) -> None:
        fixed_outcome(1.0)
        await _capacity(store)
        plan, _ = await _booked_plan(planner, seed_result)
        await planner.execute_plan(plan.id)

        with pytest.raises(InvalidStateTransitionError):
            await planner.book_resources(plan.id)
        with pytest.raises(InvalidStateTransitionError):
            await planner.release_resources(plan.id)


# =============================================================================
# Test Class: TestExecution
# =============================================================================

@pytest.mark.asyncio
class TestExecution:

    async def test_execute_to_completion(self, planner, store, seed_result, fixed_outcome) -> None:
        fixed_outcome(1.0)
        await _capacity(store)
        budget = await _budget(store)
        plan, _ = await _booked_plan(planner, seed_result)

        report = await planner.execute_plan(plan.id)

        assert report.status == PlanStatus.COMPLETED
        assert report.completedActions == 3
        assert report.pendingActions == 0
        assert report.progressPercent == 100
        assert report.actualOutcome == pytest.approx(30)
        assert report.outcomeVariance == pytest.approx(0)
        assert report.budgetSpent == pytest.approx(300)
        assert report.aborted is False

        stored_budget = await store.get_budget_allocation(budget.id)
        assert stored_budget.spentAmount == pytest.approx(300)
        assert stored_budget.committedAmount == pytest.approx(0)

        contact = await store.get_contact_limits("hcp-0")
        assert contact.touchesThisMonth == 1
        assert contact.lastContactChannel == Channel.EMAIL

    async def test_execute_draft_rejected(self, planner, seed_result) -> None:
        result = await seed_result()
        plan = await planner.create_plan(result.id, "Q1 push")

        with pytest.raises(InvalidStateTransitionError) as exc_info:
            await planner.execute_plan(plan.id)
        assert exc_info.value.current_status == "draft"

    async def test_unknown_plan(self, planner) -> None:
        with pytest.raises(NotFoundError):
            await planner.execute_plan("missing")

    async def test_cancelled_token_pauses_plan(self, planner, store, seed_result, fixed_outcome) -> None:
        fixed_outcome(1.0)
        await _capacity(store)
        plan, _ = await _booked_plan(planner, seed_result)
        token = CancellationToken()
        token.cancel()

        report = await planner.execute_plan(plan.id, token)

        assert report.aborted is True
        assert report.status == PlanStatus.PAUSED
        booked = await store.list_allocations(plan.resultId, [AllocationStatus.BOOKED])
        assert len(booked) == 3

        resumed = await planner.execute_plan(plan.id)
        assert resumed.status == PlanStatus.COMPLETED
        assert resumed.completedActions == 3

    async def test_missing_recorded_outcomes_fail(self, store, manager, settings, seed_result) -> None:
        planner = ExecutionPlanner(store, manager, RecordedOutcomeStrategy(store), settings)
        await _capacity(store)
        budget = await _budget(store)
        result = await seed_result()
        plan = await planner.create_plan(result.id, "Q1 push", campaign_id="camp-q1")
        await planner.book_resources(plan.id)

        first = (await store.list_allocations(result.id))[0]
        await store.record_outcome(first.id, 12.5)

        report = await planner.execute_plan(plan.id)

        assert report.completedActions == 1
        assert report.failedActions == 2
        assert report.status == PlanStatus.COMPLETED
        assert report.actualOutcome == pytest.approx(12.5)
        assert (await store.get_channel_capacity(Channel.EMAIL)).dailyUsed == 1

        stored_budget = await store.get_budget_allocation(budget.id)
        assert stored_budget.spentAmount == pytest.approx(100)
        assert stored_budget.committedAmount == pytest.approx(0)

    async def test_error_recording_completion_fails_one_allocation(
        self, planner, store, seed_result, fixed_outcome
    ) -> None:
        """
        A store error while recording a completion fails that allocation only;
        the run continues and the plan still completes.
        """
        # Arrange
        fixed_outcome(1.0)
        await _capacity(store)
        budget = await _budget(store)
        plan, _ = await _booked_plan(planner, seed_result)

        increment_contact = store.increment_contact
        calls: List[str] = []

        async def flaky_increment(hcp_id, channel, contacted_at):
            calls.append(hcp_id)
            if len(calls) == 1:
                raise RuntimeError("db blip")
            return await increment_contact(hcp_id, channel, contacted_at)

        store.increment_contact = flaky_increment

        # Act
        report = await planner.execute_plan(plan.id)

        # Assert
        assert report.status == PlanStatus.COMPLETED
        assert report.completedActions == 2
        assert report.failedActions == 1
        assert report.budgetSpent == pytest.approx(200)

        statuses = {a.hcpId: a.status for a in await store.list_allocations(plan.resultId)}
        assert statuses == {
            "hcp-0": AllocationStatus.FAILED,
            "hcp-1": AllocationStatus.COMPLETED,
            "hcp-2": AllocationStatus.COMPLETED,
        }
        assert (await store.get_channel_capacity(Channel.EMAIL)).dailyUsed == 2
        stored_budget = await store.get_budget_allocation(budget.id)
        assert stored_budget.spentAmount == pytest.approx(200)
        assert stored_budget.committedAmount == pytest.approx(0)

    async def test_error_counting_completion_fails_one_allocation(
        self, planner, store, seed_result, fixed_outcome
    ) -> None:
        # Arrange: the first completed-counter update raises
        fixed_outcome(1.0)
        await _capacity(store)
        plan, _ = await _booked_plan(planner, seed_result)

        adjust_plan_counters = store.adjust_plan_counters
        calls: List[int] = []

        async def flaky_adjust(plan_id, **counters):
            calls.append(counters.get("completed", 0))
            if len(calls) == 1:
                raise RuntimeError("db blip")
            return await adjust_plan_counters(plan_id, **counters)

        store.adjust_plan_counters = flaky_adjust

        # Act
        report = await planner.execute_plan(plan.id)

        # Assert
        assert report.status == PlanStatus.COMPLETED
        assert report.completedActions + report.failedActions == 3
        assert report.failedActions == 1
        failed = await store.list_allocations(plan.resultId, [AllocationStatus.FAILED])
        assert [a.hcpId for a in failed] == ["hcp-0"]

    async def test_runs_by_date_then_priority(self, store, manager, settings) -> None:
        """
        Allocations run in planned-date order; within one date the higher
        priority goes first.
        """
        # Arrange
        strategy = OrderRecordingStrategy()
        planner = ExecutionPlanner(store, manager, strategy, settings)
        nine = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)
        eight = datetime(2026, 3, 2, 8, 0, tzinfo=timezone.utc)
        inputs = [
            AllocationInput(hcpId="low", channel=Channel.EMAIL, actionType="reach_out",
                            plannedDate=nine, predictedLift=5, priority=1),
            AllocationInput(hcpId="high", channel=Channel.EMAIL, actionType="reach_out",
                            plannedDate=nine, predictedLift=5, priority=9),
            AllocationInput(hcpId="mid", channel=Channel.EMAIL, actionType="reach_out",
                            plannedDate=nine, predictedLift=5, priority=5),
            AllocationInput(hcpId="early", channel=Channel.EMAIL, actionType="reach_out",
                            plannedDate=eight, predictedLift=5, priority=0),
        ]
        result, _ = await planner.create_optimization_result(inputs)
        plan = await planner.create_plan(result.id, "Ordered")
        await planner.book_resources(plan.id)

        # Act
        report = await planner.execute_plan(plan.id)

        # Assert
        assert report.completedActions == 4
        assert strategy.hcp_ids == ["early", "high", "mid", "low"]

    async def test_underperformers_in_report(self, planner, store, seed_result, fixed_outcome) -> None:
        fixed_outcome(0.5)
        await _capacity(store)
        plan, _ = await _booked_plan(planner, seed_result)

        report = await planner.execute_plan(plan.id)

        assert len(report.underperformingHcps) == 3
        assert report.underperformingHcps[0].variance == pytest.approx(-5)
        assert report.topPerformingChannels[0].channel == Channel.EMAIL
        assert report.topPerformingChannels[0].avgOutcome == pytest.approx(5)


# =============================================================================
# Test Class: TestStatusChanges
# =============================================================================

@pytest.mark.asyncio
class TestStatusChanges:

    async def test_pause_requires_executing(self, planner, store, seed_result) -> None:
        await _capacity(store)
        plan, _ = await _booked_plan(planner, seed_result)

        with pytest.raises(InvalidStateTransitionError) as exc_info:
            await planner.pause_plan(plan.id)
        assert exc_info.value.current_status == "scheduled"

        with pytest.raises(InvalidStateTransitionError):
            await planner.resume_plan(plan.id)

    async def test_cancel_releases_pending(self, planner, store, seed_result) -> None:
        await _capacity(store)
        budget = await _budget(store)
        plan, _ = await _booked_plan(planner, seed_result)

        cancelled = await planner.cancel_plan(plan.id)

        assert cancelled.status == PlanStatus.CANCELLED
        assert cancelled.actualEndAt is not None
        allocations = await store.list_allocations(plan.resultId)
        assert {a.status for a in allocations} == {AllocationStatus.CANCELLED}
        assert (await store.get_channel_capacity(Channel.EMAIL)).dailyUsed == 0
        assert (await store.get_budget_allocation(budget.id)).committedAmount == 0

        with pytest.raises(InvalidStateTransitionError):
            await planner.cancel_plan(plan.id)

    async def test_progress(self, planner, store, seed_result) -> None:
        await _capacity(store)
        plan, _ = await _booked_plan(planner, seed_result)

        progress = await planner.get_plan_progress(plan.id)

        assert progress.pendingActions == 3
        assert progress.progressPercent == 0
        assert progress.budgetRemaining == pytest.approx(300)


# =============================================================================
# Test Class: TestRebalance
# =============================================================================

@pytest.mark.asyncio
class TestRebalance:

    async def _executing_plan(self, planner, store, seed_result, fixed_outcome):
        # 12 allocations, 10 bookable: the run leaves 2 planned and the plan executing
        fixed_outcome(0.5)
        await _capacity(store, daily_limit=10)
        plan, booking = await _booked_plan(planner, seed_result, count=12)
        assert booking.bookedCount == 10
        report = await planner.execute_plan(plan.id)
        assert report.status == PlanStatus.EXECUTING
        return plan

    async def test_suggestion_for_underperforming_plan(
        self, planner, store, seed_result, fixed_outcome
    ) -> None:
        plan = await self._executing_plan(planner, store, seed_result, fixed_outcome)

        suggestion = await planner.suggest_rebalance(plan.id)

        assert suggestion.reason == (
            "Performance 50% of predicted. 100% of actions significantly deviated."
        )
        assert suggestion.currentPerformance == pytest.approx(50)
        assert suggestion.projectedPerformance == pytest.approx(57.5)
        assert suggestion.actionsToModify == 1
        assert suggestion.confidence == pytest.approx(0.7)

    async def test_no_suggestion_with_too_few_outcomes(
        self, planner, store, seed_result, fixed_outcome
    ) -> None:
        fixed_outcome(0.5)
        await _capacity(store, daily_limit=2)
        plan, _ = await _booked_plan(planner, seed_result, count=3)
        await planner.execute_plan(plan.id)

        assert await planner.suggest_rebalance(plan.id) is None

    async def test_rebalance_with_replacements(
        self, planner, store, seed_result, fixed_outcome
    ) -> None:
        plan = await self._executing_plan(planner, store, seed_result, fixed_outcome)
        replacement = AllocationInput(
            hcpId="hcp-new",
            channel=Channel.PHONE,
            actionType="follow_up",
            plannedDate=datetime(2026, 3, 3, 9, 0, tzinfo=timezone.utc),
            estimatedCost=40.0,
            predictedLift=8.0,
        )

        updated = await planner.rebalance_plan(
            plan.id, RebalanceTrigger.OUTCOME_DEVIATION, "Low lift", [replacement]
        )

        assert updated.status == PlanStatus.EXECUTING
        assert updated.totalActions == 11
        assert updated.rebalanceCount == 1
        assert updated.lastRebalanceTrigger == RebalanceTrigger.OUTCOME_DEVIATION
        assert updated.lastRebalanceReason == "Low lift"
        assert updated.budgetAllocated == pytest.approx(1040)

        planned = await store.list_allocations(plan.resultId, [AllocationStatus.PLANNED])
        assert [a.hcpId for a in planned] == ["hcp-new"]

    async def test_rebalance_without_replacements_completes(
        self, planner, store, seed_result, fixed_outcome
    ) -> None:
        plan = await self._executing_plan(planner, store, seed_result, fixed_outcome)

        updated = await planner.rebalance_plan(plan.id)

        assert updated.totalActions == 10
        assert updated.status == PlanStatus.COMPLETED
        assert updated.lastRebalanceTrigger == RebalanceTrigger.MANUAL

    async def test_rebalance_draft_rejected(self, planner, seed_result) -> None:
        result = await seed_result()
        plan = await planner.create_plan(result.id, "Q1 push")

        with pytest.raises(InvalidStateTransitionError):
            await planner.rebalance_plan(plan.id)
        assert await planner.suggest_rebalance(plan.id) is None
