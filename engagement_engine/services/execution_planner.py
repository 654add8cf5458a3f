"""
Execution Planner Service

Turns an optimization result (a batch of scored, costed allocations) into an
execution plan and drives it through its life cycle:

    draft -> scheduled -> executing <-> paused -> completed
    any non-terminal status -> cancelled

Key Components:
- Booking: each planned allocation is checked by the ConstraintManager, then
  consumes channel (and rep) capacity and commits its cost against the plan's
  campaign budget. Failures are collected per allocation and never abort the
  batch.
- Execution: booked allocations run in planned-date order (higher priority
  first on ties). The OutcomeStrategy decides each actual lift. Completion
  records spend and the HCP contact; failure returns the booked resources.
- Cancellation: a CancellationToken is checked before every allocation. An
  aborted run leaves the remaining allocations booked and pauses the plan.
- Rebalance: suggestion from completed outcomes, and a rebalance that cancels
  pending allocations and optionally attaches replacements.

Every status change goes through the store's compare-and-set update, so an
invalid transition is rejected before anything is mutated and two concurrent
callers can never both win the same transition.

Usage:
    planner = ExecutionPlanner(store, ConstraintManager(store))
    plan = await planner.create_plan(result_id, "Q1 push", campaign_id="camp-q1")
    await planner.book_resources(plan.id)
    report = await planner.execute_plan(plan.id)
"""

import logging
import time
from typing import Dict, Iterable, List, Optional, Tuple

import pandas as pd

from engagement_engine.core.clock import utcnow
from engagement_engine.core.config import Settings, get_settings
from engagement_engine.core.exceptions import (
    InvalidStateTransitionError,
    NotFoundError,
    OutcomeUnavailableError,
)
from engagement_engine.models.enums import (
    AllocationStatus,
    PlanStatus,
    RebalanceTrigger,
    ViolationSeverity,
)
from engagement_engine.models.schemas import (
    AllocationInput,
    BookingError,
    BookingResult,
    ChannelPerformance,
    ExecutionPlan,
    ExecutionReport,
    OptimizationAllocation,
    OptimizationResult,
    PlanProgress,
    ProposedAction,
    RebalanceSuggestion,
    ScheduledAction,
    UnderperformingHcp,
)
from engagement_engine.services.channel_health import round_half_up
from engagement_engine.services.constraint_manager import ConstraintManager
from engagement_engine.services.outcome_strategy import (
    OutcomeStrategy,
    build_outcome_strategy,
)
from engagement_engine.storage.base import EngagementStore


logger = logging.getLogger(__name__)


TERMINAL_STATUSES = (PlanStatus.COMPLETED, PlanStatus.CANCELLED)
NON_TERMINAL_STATUSES = tuple(s for s in PlanStatus if s not in TERMINAL_STATUSES)
BOOKABLE_STATUSES = (PlanStatus.DRAFT, PlanStatus.EXECUTING, PlanStatus.PAUSED)
REBALANCEABLE_STATUSES = (PlanStatus.EXECUTING, PlanStatus.PAUSED)

PENDING_ALLOCATIONS = (AllocationStatus.PLANNED, AllocationStatus.BOOKED)
HELD_ALLOCATIONS = (AllocationStatus.BOOKED, AllocationStatus.EXECUTING)

# Outcome shortfall below which an allocation is reported as underperforming
UNDERPERFORMANCE_VARIANCE = -0.05
TOP_CHANNELS = 5
TOP_UNDERPERFORMERS = 10

REBALANCE_IMPROVEMENT_PCT = 15
REBALANCE_CONFIDENCE = 0.7
MODIFY_SHARE = 0.3
ADD_SHARE = 0.1
REMOVE_SHARE = 0.1


class CancellationToken:
    """
    Abort signal for a long-running plan execution.

    Cancelled explicitly with cancel(), or implicitly once the optional
    deadline passes.
    """

    def __init__(self, timeout_seconds: Optional[float] = None):
        self._cancelled = False
        self._deadline = (
            time.monotonic() + timeout_seconds if timeout_seconds is not None else None
        )

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        if self._cancelled:
            return True
        return self._deadline is not None and time.monotonic() >= self._deadline


class ExecutionPlanner:
    """Plan life cycle over an EngagementStore and a ConstraintManager."""

    def __init__(
        self,
        store: EngagementStore,
        constraints: ConstraintManager,
        outcome_strategy: Optional[OutcomeStrategy] = None,
        settings: Optional[Settings] = None,
    ):
        self.store = store
        self.constraints = constraints
        self.settings = settings or get_settings()
        self.outcome_strategy = outcome_strategy or build_outcome_strategy(self.settings, store)

    # =========================================================================
    # Helpers
    # =========================================================================

    async def get_plan(self, plan_id: str) -> ExecutionPlan:
        plan = await self.store.get_plan(plan_id)
        if plan is None:
            raise NotFoundError("Plan", plan_id)
        return plan

    async def _transition(
        self,
        plan_id: str,
        expected: Iterable[PlanStatus],
        message: str,
        **changes,
    ) -> ExecutionPlan:
        """Compare-and-set a plan update; raises when the status does not allow it."""
        updated = await self.store.update_plan(plan_id, expected_statuses=expected, **changes)
        if updated is None:
            current = await self.get_plan(plan_id)
            raise InvalidStateTransitionError(message, current.status.value)
        return updated

    async def _hcp_names(self, allocations: List[OptimizationAllocation]) -> Dict[str, str]:
        ids = list(dict.fromkeys(a.hcpId for a in allocations))
        if not ids:
            return {}
        return {hcp.id: hcp.fullName for hcp in await self.store.list_hcps(ids)}

    async def _release_allocation_resources(self, allocation: OptimizationAllocation) -> None:
        await self.constraints.release_capacity(allocation.channel)
        if allocation.repId:
            await self.constraints.release_capacity(allocation.channel, rep_id=allocation.repId)
        if allocation.budgetAllocationId and allocation.estimatedCost > 0:
            await self.constraints.release_budget(
                allocation.estimatedCost, allocation.budgetAllocationId
            )

    # =========================================================================
    # Results and Plans
    # =========================================================================

    async def create_optimization_result(
        self, allocations: List[AllocationInput], name: Optional[str] = None
    ) -> Tuple[OptimizationResult, List[OptimizationAllocation]]:
        """Persist a batch of allocations produced by an upstream optimizer."""
        result = OptimizationResult(name=name)
        rows = [
            OptimizationAllocation(resultId=result.id, **item.model_dump())
            for item in allocations
        ]
        await self.store.save_optimization_result(result, rows)
        logger.info(f"Stored optimization result {result.id} with {len(rows)} allocations")
        return result, rows

    async def create_plan(
        self,
        result_id: str,
        name: str,
        description: Optional[str] = None,
        scheduled_start_at=None,
        campaign_id: Optional[str] = None,
    ) -> ExecutionPlan:
        """
        Create a draft plan from an optimization result.

        Raises:
            NotFoundError: If the result does not exist.
        """
        result = await self.store.get_optimization_result(result_id)
        if result is None:
            raise NotFoundError("Optimization result", result_id)

        allocations = await self.store.list_allocations(result_id)
        plan = ExecutionPlan(
            resultId=result_id,
            name=name,
            description=description,
            campaignId=campaign_id,
            scheduledStartAt=scheduled_start_at,
            scheduledEndAt=max((a.plannedDate for a in allocations), default=None),
            totalActions=len(allocations),
            budgetAllocated=sum(a.estimatedCost for a in allocations),
            predictedTotalLift=sum(a.predictedLift for a in allocations),
        )
        created = await self.store.create_plan(plan)
        logger.info(
            f"Created plan {created.id} from result {result_id} "
            f"({created.totalActions} actions, budget {created.budgetAllocated:.2f})"
        )
        return created

    async def list_plans(
        self,
        status: Optional[PlanStatus] = None,
        result_id: Optional[str] = None,
        limit: int = 50,
    ) -> List[ExecutionPlan]:
        statuses = [status] if status else None
        return await self.store.list_plans(statuses=statuses, result_id=result_id, limit=limit)

    async def get_scheduled_actions(self, result_id: str) -> List[ScheduledAction]:
        """All allocations of a result in execution order, with HCP names."""
        allocations = await self.store.list_allocations(result_id)
        names = await self._hcp_names(allocations)
        return [
            ScheduledAction(
                allocationId=a.id,
                hcpId=a.hcpId,
                hcpName=names.get(a.hcpId, a.hcpId),
                channel=a.channel,
                actionType=a.actionType,
                plannedDate=a.plannedDate,
                windowStart=a.windowStart,
                windowEnd=a.windowEnd,
                estimatedCost=a.estimatedCost,
                predictedLift=a.predictedLift,
                priority=a.priority,
                status=a.status,
            )
            for a in allocations
        ]

    async def delete_plan(self, plan_id: str) -> None:
        plan = await self.get_plan(plan_id)
        if plan.status != PlanStatus.DRAFT:
            raise InvalidStateTransitionError("Can only delete draft plans", plan.status.value)
        if not await self.store.delete_plan(plan_id, PlanStatus.DRAFT):
            current = await self.get_plan(plan_id)
            raise InvalidStateTransitionError("Can only delete draft plans", current.status.value)
        logger.info(f"Deleted plan {plan_id}")

    # =========================================================================
    # Booking
    # =========================================================================

    async def _book_allocation(
        self, plan: ExecutionPlan, allocation: OptimizationAllocation
    ) -> Optional[str]:
        """Book one allocation. Returns the refusal reason, or None when booked."""
        check = await self.constraints.check_constraints(ProposedAction(
            hcpId=allocation.hcpId,
            channel=allocation.channel,
            actionType=allocation.actionType,
            plannedDate=allocation.plannedDate,
            estimatedCost=allocation.estimatedCost or None,
            campaignId=plan.campaignId,
            repId=allocation.repId,
        ))
        if not check.passed:
            blocking = next(
                (v for v in check.violations if v.severity == ViolationSeverity.ERROR), None
            )
            return blocking.reason if blocking else "Constraint check failed"

        channel = allocation.channel
        if not await self.constraints.consume_capacity(channel):
            return f"Channel {channel.value} capacity exhausted"

        # What this booking holds so far; given back on refusal or error
        held = allocation.model_copy(update={"repId": None, "budgetAllocationId": None})
        reason: Optional[str] = None
        try:
            if allocation.repId:
                if await self.constraints.consume_capacity(channel, rep_id=allocation.repId):
                    held = held.model_copy(update={"repId": allocation.repId})
                else:
                    reason = f"Channel {channel.value} capacity exhausted for rep {allocation.repId}"

            if reason is None and plan.campaignId and allocation.estimatedCost > 0:
                budget = await self.constraints.resolve_budget_allocation(plan.campaignId, channel)
                if budget is not None:
                    if await self.constraints.commit_budget(allocation.estimatedCost, budget.id):
                        held = held.model_copy(update={"budgetAllocationId": budget.id})
                    else:
                        reason = "Insufficient budget"

            if reason is None:
                booked = await self.store.update_allocation(
                    allocation.id,
                    expected_statuses=[AllocationStatus.PLANNED],
                    status=AllocationStatus.BOOKED,
                    budgetAllocationId=held.budgetAllocationId,
                )
                if booked is None:
                    reason = "Allocation is no longer planned"
        except Exception:
            await self._release_allocation_resources(held)
            raise

        if reason is not None:
            await self._release_allocation_resources(held)
        return reason

    async def book_resources(self, plan_id: str) -> BookingResult:
        """
        Book every planned allocation of a plan.

        From draft the plan becomes scheduled when at least one allocation was
        booked. From executing or paused the plan status is left alone.
        """
        plan = await self.get_plan(plan_id)
        if plan.status not in BOOKABLE_STATUSES:
            raise InvalidStateTransitionError(
                "Can only book resources for draft, executing or paused plans",
                plan.status.value,
            )

        allocations = await self.store.list_allocations(
            plan.resultId, [AllocationStatus.PLANNED]
        )

        errors: List[BookingError] = []
        booked_count = 0
        budget_committed = 0.0
        capacity_booked: Dict[str, int] = {}

        for allocation in allocations:
            try:
                reason = await self._book_allocation(plan, allocation)
            except Exception as exc:
                logger.exception(f"Booking failed for allocation {allocation.id}")
                reason = str(exc) or "Unknown error"

            if reason is not None:
                logger.warning(f"Skipped allocation {allocation.id}: {reason}")
                errors.append(BookingError(allocationId=allocation.id, reason=reason))
                continue

            booked_count += 1
            budget_committed += allocation.estimatedCost
            key = allocation.channel.value
            capacity_booked[key] = capacity_booked.get(key, 0) + 1

        if booked_count > 0 and plan.status == PlanStatus.DRAFT:
            scheduled = await self.store.update_plan(
                plan_id, expected_statuses=[PlanStatus.DRAFT], status=PlanStatus.SCHEDULED
            )
            if scheduled is None:
                logger.warning(f"Plan {plan_id} left draft while booking")

        logger.info(
            f"Booked {booked_count}/{len(allocations)} allocations for plan {plan_id}"
        )
        return BookingResult(
            success=not errors,
            bookedCount=booked_count,
            failedCount=len(errors),
            errors=errors,
            budgetCommitted=budget_committed,
            capacityBooked=capacity_booked,
        )

    async def release_resources(self, plan_id: str) -> ExecutionPlan:
        """Return booked and executing allocations to planned and the plan to draft."""
        plan = await self.get_plan(plan_id)
        if plan.status in TERMINAL_STATUSES:
            raise InvalidStateTransitionError(
                "Cannot release resources of a finished plan", plan.status.value
            )

        released = 0
        for allocation in await self.store.list_allocations(plan.resultId, HELD_ALLOCATIONS):
            reverted = await self.store.update_allocation(
                allocation.id,
                expected_statuses=HELD_ALLOCATIONS,
                status=AllocationStatus.PLANNED,
                budgetAllocationId=None,
            )
            if reverted is not None:
                await self._release_allocation_resources(allocation)
                released += 1

        updated = await self._transition(
            plan_id,
            NON_TERMINAL_STATUSES,
            "Cannot release resources of a finished plan",
            status=PlanStatus.DRAFT,
        )
        logger.info(f"Released {released} allocations of plan {plan_id}")
        return updated

    # =========================================================================
    # Execution
    # =========================================================================

    async def _fail_allocation(self, allocation: OptimizationAllocation) -> None:
        await self.store.update_allocation(
            allocation.id, status=AllocationStatus.FAILED, executedAt=utcnow()
        )
        await self._release_allocation_resources(allocation)

    async def _run_allocation(self, plan_id: str, allocation: OptimizationAllocation) -> bool:
        """
        Execute one claimed allocation and count it on the plan.

        Any error, including one while recording the completion, fails the
        allocation instead: a recorded spend is reversed, its resources are
        released and the plan's failed counter moves. Returns True when the
        allocation completed.
        """
        spent = False
        try:
            outcome = await self.outcome_strategy.get_outcome(allocation)
            now = utcnow()
            if allocation.budgetAllocationId and allocation.estimatedCost > 0:
                await self.constraints.record_spend(
                    allocation.estimatedCost, allocation.budgetAllocationId
                )
                spent = True
            await self.constraints.record_contact(allocation.hcpId, allocation.channel, now)
            await self.store.update_allocation(
                allocation.id,
                status=AllocationStatus.COMPLETED,
                executedAt=now,
                actualOutcome=outcome,
            )
            await self.store.adjust_plan_counters(
                plan_id, completed=1, spent=allocation.estimatedCost, actual_lift=outcome
            )
            return True
        except OutcomeUnavailableError as exc:
            logger.warning(f"Allocation {allocation.id} failed: {exc}")
        except Exception:
            logger.exception(f"Allocation {allocation.id} failed during execution")

        try:
            if spent:
                # back to committed, then released with the rest
                await self.constraints.record_spend(
                    -allocation.estimatedCost, allocation.budgetAllocationId
                )
            await self._fail_allocation(allocation)
            await self.store.adjust_plan_counters(plan_id, failed=1)
        except Exception:
            logger.exception(f"Could not record failure of allocation {allocation.id}")
        return False

    async def execute_plan(
        self, plan_id: str, token: Optional[CancellationToken] = None
    ) -> ExecutionReport:
        """
        Run every booked allocation of a scheduled or paused plan.

        Per-allocation failures mark that allocation failed and the loop
        continues. The plan completes once completed + failed reaches
        totalActions.

        Args:
            plan_id: Plan to execute.
            token: Optional abort signal, checked before each allocation.

        Returns:
            ExecutionReport: Cumulative report; `aborted` when the token fired.
        """
        plan = await self.get_plan(plan_id)
        plan = await self._transition(
            plan_id,
            [PlanStatus.SCHEDULED, PlanStatus.PAUSED],
            "Plan must be scheduled or paused to execute",
            status=PlanStatus.EXECUTING,
            actualStartAt=plan.actualStartAt or utcnow(),
        )
        logger.info(f"Executing plan {plan_id}")

        allocations = await self.store.list_allocations(
            plan.resultId, [AllocationStatus.BOOKED]
        )
        aborted = False
        completed = failed = 0

        for allocation in allocations:
            if token is not None and token.cancelled:
                aborted = True
                break

            claimed = await self.store.update_allocation(
                allocation.id,
                expected_statuses=[AllocationStatus.BOOKED],
                status=AllocationStatus.EXECUTING,
            )
            if claimed is None:
                continue

            if await self._run_allocation(plan_id, claimed):
                completed += 1
            else:
                failed += 1

        plan = await self.get_plan(plan_id)
        if aborted:
            await self.store.update_plan(
                plan_id, expected_statuses=[PlanStatus.EXECUTING], status=PlanStatus.PAUSED
            )
            logger.warning(f"Execution of plan {plan_id} aborted, plan paused")
        elif plan.completedActions + plan.failedActions >= plan.totalActions:
            await self.store.update_plan(
                plan_id,
                expected_statuses=[PlanStatus.EXECUTING],
                status=PlanStatus.COMPLETED,
                actualEndAt=utcnow(),
            )
            logger.info(f"Plan {plan_id} completed")

        logger.info(
            f"Plan {plan_id} run finished: {completed} completed, {failed} failed"
        )
        return await self.get_execution_report(plan_id, aborted=aborted)

    # =========================================================================
    # Status Changes
    # =========================================================================

    async def pause_plan(self, plan_id: str) -> ExecutionPlan:
        plan = await self._transition(
            plan_id, [PlanStatus.EXECUTING], "Can only pause executing plans",
            status=PlanStatus.PAUSED,
        )
        logger.info(f"Paused plan {plan_id}")
        return plan

    async def resume_plan(self, plan_id: str) -> ExecutionPlan:
        plan = await self._transition(
            plan_id, [PlanStatus.PAUSED], "Can only resume paused plans",
            status=PlanStatus.EXECUTING,
        )
        logger.info(f"Resumed plan {plan_id}")
        return plan

    async def cancel_plan(self, plan_id: str) -> ExecutionPlan:
        """Cancel the plan, then cancel its pending allocations and free their resources."""
        plan = await self.get_plan(plan_id)
        if plan.status in TERMINAL_STATUSES:
            raise InvalidStateTransitionError(
                f"Cannot cancel a {plan.status.value} plan", plan.status.value
            )

        cancelled = await self._transition(
            plan_id,
            NON_TERMINAL_STATUSES,
            "Cannot cancel a finished plan",
            status=PlanStatus.CANCELLED,
            actualEndAt=utcnow(),
        )
        count, _, _ = await self._cancel_pending_allocations(plan.resultId)
        logger.info(f"Cancelled plan {plan_id} and {count} pending allocations")
        return cancelled

    async def _cancel_pending_allocations(
        self, result_id: str
    ) -> Tuple[int, float, float]:
        """Cancel planned and booked allocations. Returns (count, cost, predicted lift)."""
        count = 0
        cost = lift = 0.0
        for allocation in await self.store.list_allocations(result_id, PENDING_ALLOCATIONS):
            updated = await self.store.update_allocation(
                allocation.id,
                expected_statuses=PENDING_ALLOCATIONS,
                status=AllocationStatus.CANCELLED,
            )
            if updated is None:
                continue
            if allocation.status == AllocationStatus.BOOKED:
                await self._release_allocation_resources(allocation)
            count += 1
            cost += allocation.estimatedCost
            lift += allocation.predictedLift
        return count, cost, lift

    # =========================================================================
    # Progress and Reporting
    # =========================================================================

    async def get_plan_progress(self, plan_id: str) -> PlanProgress:
        plan = await self.get_plan(plan_id)
        return PlanProgress(
            planId=plan.id,
            status=plan.status,
            totalActions=plan.totalActions,
            completedActions=plan.completedActions,
            failedActions=plan.failedActions,
            pendingActions=max(0, plan.totalActions - plan.completedActions - plan.failedActions),
            progressPercent=plan.progressPercent,
            budgetSpent=plan.budgetSpent,
            budgetRemaining=plan.budgetAllocated - plan.budgetSpent,
        )

    async def get_execution_report(self, plan_id: str, aborted: bool = False) -> ExecutionReport:
        """
        Execution report over the plan's completed allocations.

        predictedOutcome is the predicted lift of the completed allocations, so
        outcomeVariance compares like with like.
        """
        plan = await self.get_plan(plan_id)
        completed = await self.store.list_allocations(
            plan.resultId, [AllocationStatus.COMPLETED]
        )
        names = await self._hcp_names(completed)

        total_predicted = sum(a.predictedLift for a in completed)
        total_actual = sum(a.actualOutcome or 0.0 for a in completed)

        top_channels: List[ChannelPerformance] = []
        if completed:
            df = pd.DataFrame(
                [{"channel": a.channel, "outcome": a.actualOutcome or 0.0} for a in completed]
            )
            grouped = (
                df.groupby("channel", sort=False)["outcome"]
                .agg(["count", "mean"])
                .sort_values("mean", ascending=False, kind="stable")
                .head(TOP_CHANNELS)
            )
            top_channels = [
                ChannelPerformance(
                    channel=channel, completedActions=int(row["count"]), avgOutcome=float(row["mean"])
                )
                for channel, row in grouped.iterrows()
            ]

        underperforming = []
        for a in completed:
            outcome = a.actualOutcome or 0.0
            variance = outcome - a.predictedLift
            if variance < UNDERPERFORMANCE_VARIANCE:
                underperforming.append(UnderperformingHcp(
                    allocationId=a.id,
                    hcpId=a.hcpId,
                    hcpName=names.get(a.hcpId, a.hcpId),
                    expectedLift=a.predictedLift,
                    actualLift=outcome,
                    variance=variance,
                ))
        underperforming.sort(key=lambda u: u.variance)

        return ExecutionReport(
            planId=plan.id,
            status=plan.status,
            totalActions=plan.totalActions,
            completedActions=plan.completedActions,
            failedActions=plan.failedActions,
            pendingActions=max(0, plan.totalActions - plan.completedActions - plan.failedActions),
            progressPercent=plan.progressPercent,
            predictedOutcome=total_predicted,
            actualOutcome=total_actual,
            outcomeVariance=total_actual - total_predicted if total_predicted > 0 else None,
            budgetAllocated=plan.budgetAllocated,
            budgetSpent=plan.budgetSpent,
            budgetRemaining=plan.budgetAllocated - plan.budgetSpent,
            topPerformingChannels=top_channels,
            underperformingHcps=underperforming[:TOP_UNDERPERFORMERS],
            aborted=aborted,
        )

    # =========================================================================
    # Rebalancing
    # =========================================================================

    async def suggest_rebalance(self, plan_id: str) -> Optional[RebalanceSuggestion]:
        """
        Rebalance suggestion for an executing or paused plan.

        Needs at least rebalance_min_completed completed allocations. Flags the
        plan when actual/predicted lift falls below the performance ratio, or
        when too many allocations individually deviate from their prediction.
        """
        plan = await self.get_plan(plan_id)
        if plan.status not in REBALANCEABLE_STATUSES:
            return None

        completed = await self.store.list_allocations(
            plan.resultId, [AllocationStatus.COMPLETED]
        )
        if len(completed) < self.settings.rebalance_min_completed:
            return None

        total_predicted = sum(a.predictedLift for a in completed)
        total_actual = sum(a.actualOutcome or 0.0 for a in completed)
        deviations = sum(
            1 for a in completed
            if a.actualOutcome is not None
            and a.predictedLift > 0
            and abs((a.actualOutcome - a.predictedLift) / a.predictedLift)
            > self.settings.rebalance_allocation_deviation
        )

        ratio = total_actual / total_predicted if total_predicted > 0 else 1.0
        deviation_rate = deviations / len(completed)

        if (
            ratio >= self.settings.rebalance_performance_ratio
            and deviation_rate <= self.settings.rebalance_deviation_share
        ):
            return None

        pending = len(await self.store.list_allocations(plan.resultId, PENDING_ALLOCATIONS))
        return RebalanceSuggestion(
            planId=plan.id,
            trigger=RebalanceTrigger.OUTCOME_DEVIATION,
            reason=(
                f"Performance {round_half_up(ratio * 100)}% of predicted. "
                f"{round_half_up(deviation_rate * 100)}% of actions significantly deviated."
            ),
            currentPerformance=total_actual,
            projectedPerformance=total_actual * (1 + REBALANCE_IMPROVEMENT_PCT / 100),
            improvementPercent=REBALANCE_IMPROVEMENT_PCT,
            actionsToModify=round_half_up(pending * MODIFY_SHARE),
            actionsToAdd=round_half_up(pending * ADD_SHARE),
            actionsToRemove=round_half_up(pending * REMOVE_SHARE),
            estimatedCostChange=0.0,
            confidence=REBALANCE_CONFIDENCE,
        )

    async def rebalance_plan(
        self,
        plan_id: str,
        trigger: RebalanceTrigger = RebalanceTrigger.MANUAL,
        reason: Optional[str] = None,
        replacement_allocations: Optional[List[AllocationInput]] = None,
    ) -> ExecutionPlan:
        """
        Cancel the plan's pending allocations and attach optional replacements.

        totalActions drops by the cancelled count and grows by the replacement
        count. Replacements arrive as planned and need a booking pass. A plan
        left with nothing pending and every action accounted for completes.
        """
        plan = await self.get_plan(plan_id)
        if plan.status not in REBALANCEABLE_STATUSES:
            raise InvalidStateTransitionError(
                "Can only rebalance executing or paused plans", plan.status.value
            )
        if await self.store.get_optimization_result(plan.resultId) is None:
            raise NotFoundError("Optimization result", plan.resultId)

        cancelled, cancelled_cost, cancelled_lift = await self._cancel_pending_allocations(
            plan.resultId
        )

        added: List[OptimizationAllocation] = []
        if replacement_allocations:
            added = await self.store.add_allocations([
                OptimizationAllocation(resultId=plan.resultId, **item.model_dump())
                for item in replacement_allocations
            ])

        await self.store.adjust_plan_counters(
            plan_id,
            total=len(added) - cancelled,
            predicted_lift=sum(a.predictedLift for a in added) - cancelled_lift,
        )

        current = await self.get_plan(plan_id)
        changes = {
            "rebalanceCount": current.rebalanceCount + 1,
            "lastRebalanceAt": utcnow(),
            "lastRebalanceTrigger": trigger,
            "lastRebalanceReason": reason,
            "budgetAllocated": max(
                0.0, current.budgetAllocated - cancelled_cost + sum(a.estimatedCost for a in added)
            ),
        }
        if not added and current.completedActions + current.failedActions >= current.totalActions:
            changes["status"] = PlanStatus.COMPLETED
            changes["actualEndAt"] = utcnow()

        updated = await self._transition(
            plan_id,
            REBALANCEABLE_STATUSES,
            "Can only rebalance executing or paused plans",
            **changes,
        )
        logger.info(
            f"Rebalanced plan {plan_id} ({trigger.value}): cancelled {cancelled}, "
            f"added {len(added)}"
        )
        return updated
