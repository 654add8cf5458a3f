"""
In-memory implementation of the EngagementStore.

Used when DATABASE_URL is unset and throughout the test suite. Every
read-check-write runs under the asyncio.Lock of the resource key it touches
(capacity row, budget row, HCP, allocation, plan), so concurrent coroutines
never lose updates. Values handed out are deep copies; callers can never
mutate stored state by accident.
"""

import asyncio
import logging
from collections import defaultdict
from datetime import date, datetime
from typing import Any, Dict, Hashable, Iterable, List, Optional, Tuple

from engagement_engine.core.clock import utcnow
from engagement_engine.models.enums import (
    AllocationStatus,
    CapacityPeriod,
    Channel,
    PlanStatus,
)
from engagement_engine.models.schemas import (
    BudgetAllocation,
    ChannelCapacity,
    ComplianceWindow,
    ExecutionPlan,
    HCPProfile,
    HcpContactLimits,
    JobRun,
    MessageExposure,
    MessageTheme,
    OptimizationAllocation,
    OptimizationResult,
    TerritoryAssignment,
)
from engagement_engine.storage.base import EngagementStore


logger = logging.getLogger(__name__)


CapacityKey = Tuple[Channel, Optional[str]]


def _fits(used: int, limit: Optional[int], delta: int) -> bool:
    return limit is None or used + delta <= limit


class InMemoryStore(EngagementStore):
    """Process-local store with one asyncio.Lock per resource key."""

    def __init__(self) -> None:
        self._hcps: Dict[str, HCPProfile] = {}
        self._themes: Dict[str, MessageTheme] = {}
        self._exposures: Dict[Tuple[str, str], List[MessageExposure]] = defaultdict(list)
        self._capacity: Dict[CapacityKey, ChannelCapacity] = {}
        self._contact_limits: Dict[str, HcpContactLimits] = {}
        self._windows: Dict[str, ComplianceWindow] = {}
        self._budgets: Dict[str, BudgetAllocation] = {}
        self._territories: Dict[str, TerritoryAssignment] = {}
        self._results: Dict[str, OptimizationResult] = {}
        self._allocations: Dict[str, OptimizationAllocation] = {}
        self._plans: Dict[str, ExecutionPlan] = {}
        self._outcomes: Dict[str, float] = {}
        self._job_runs: Dict[Tuple[str, date], JobRun] = {}
        self._locks: Dict[Hashable, asyncio.Lock] = defaultdict(asyncio.Lock)

    def _lock(self, *key: Hashable) -> asyncio.Lock:
        return self._locks[key]

    # =========================================================================
    # HCP Profiles
    # =========================================================================

    async def get_hcp(self, hcp_id: str) -> Optional[HCPProfile]:
        hcp = self._hcps.get(hcp_id)
        return hcp.model_copy(deep=True) if hcp else None

    async def list_hcps(self, hcp_ids: Optional[Iterable[str]] = None) -> List[HCPProfile]:
        if hcp_ids is None:
            return [h.model_copy(deep=True) for h in self._hcps.values()]
        return [
            self._hcps[hcp_id].model_copy(deep=True)
            for hcp_id in hcp_ids
            if hcp_id in self._hcps
        ]

    async def count_hcps(self) -> int:
        return len(self._hcps)

    async def upsert_hcp(self, hcp: HCPProfile) -> HCPProfile:
        self._hcps[hcp.id] = hcp.model_copy(deep=True)
        return hcp

    # =========================================================================
    # Message Themes and Exposures
    # =========================================================================

    async def list_message_themes(self, active_only: bool = False) -> List[MessageTheme]:
        return [
            t.model_copy()
            for t in self._themes.values()
            if t.isActive or not active_only
        ]

    async def upsert_message_theme(self, theme: MessageTheme) -> MessageTheme:
        self._themes[theme.id] = theme.model_copy()
        return theme

    def _with_theme(self, exposure: MessageExposure) -> MessageExposure:
        copy = exposure.model_copy(deep=True)
        theme = self._themes.get(exposure.messageThemeId)
        if theme is not None:
            copy.themeName = theme.name
            copy.themeCategory = theme.category
        return copy

    async def get_message_exposures(self, hcp_id: str) -> List[MessageExposure]:
        latest = [
            history[-1]
            for (owner, _), history in self._exposures.items()
            if owner == hcp_id and history
        ]
        return [self._with_theme(e) for e in latest]

    async def get_latest_exposure(
        self, hcp_id: str, theme_id: str
    ) -> Optional[MessageExposure]:
        history = self._exposures.get((hcp_id, theme_id))
        if not history:
            return None
        return self._with_theme(history[-1])

    async def save_message_exposure(self, exposure: MessageExposure) -> MessageExposure:
        async with self._lock("exposure", exposure.hcpId, exposure.messageThemeId):
            self._exposures[(exposure.hcpId, exposure.messageThemeId)].append(
                exposure.model_copy(deep=True)
            )
        return self._with_theme(exposure)

    # =========================================================================
    # Channel Capacity
    # =========================================================================

    async def get_channel_capacity(
        self, channel: Channel, rep_id: Optional[str] = None
    ) -> Optional[ChannelCapacity]:
        row = self._capacity.get((channel, rep_id))
        if row is None or not row.isActive:
            return None
        return row.model_copy()

    async def list_channel_capacity(self) -> List[ChannelCapacity]:
        rows = [r.model_copy() for r in self._capacity.values() if r.isActive]
        return sorted(rows, key=lambda r: (r.channel.value, r.repId or ""))

    async def upsert_channel_capacity(self, capacity: ChannelCapacity) -> ChannelCapacity:
        key = (capacity.channel, capacity.repId)
        async with self._lock("capacity", *key):
            existing = self._capacity.get(key)
            stored = capacity.model_copy(update={"updatedAt": utcnow()})
            if existing is not None:
                stored.id = existing.id
            self._capacity[key] = stored
        return stored.model_copy()

    async def adjust_capacity_usage(
        self,
        channel: Channel,
        rep_id: Optional[str],
        delta: int,
        enforce_limits: bool = True,
    ) -> Optional[ChannelCapacity]:
        key = (channel, rep_id)
        async with self._lock("capacity", *key):
            row = self._capacity.get(key)
            if row is None or not row.isActive:
                return None

            if delta > 0 and enforce_limits:
                if not (
                    _fits(row.dailyUsed, row.dailyLimit, delta)
                    and _fits(row.weeklyUsed, row.weeklyLimit, delta)
                    and _fits(row.monthlyUsed, row.monthlyLimit, delta)
                ):
                    return None

            row.dailyUsed = max(0, row.dailyUsed + delta)
            row.weeklyUsed = max(0, row.weeklyUsed + delta)
            row.monthlyUsed = max(0, row.monthlyUsed + delta)
            row.updatedAt = utcnow()
            return row.model_copy()

    async def reset_capacity_usage(
        self, period: CapacityPeriod, channel: Optional[Channel] = None
    ) -> int:
        field = f"{period.value}Used"
        touched = 0
        for key, row in list(self._capacity.items()):
            if channel is not None and row.channel != channel:
                continue
            async with self._lock("capacity", *key):
                setattr(row, field, 0)
                row.updatedAt = utcnow()
            touched += 1
        return touched

    # =========================================================================
    # HCP Contact Limits
    # =========================================================================

    async def get_contact_limits(self, hcp_id: str) -> Optional[HcpContactLimits]:
        limits = self._contact_limits.get(hcp_id)
        return limits.model_copy(deep=True) if limits else None

    async def list_contact_limits(self) -> List[HcpContactLimits]:
        return [row.model_copy(deep=True) for row in self._contact_limits.values()]

    async def upsert_contact_limits(self, limits: HcpContactLimits) -> HcpContactLimits:
        async with self._lock("contact", limits.hcpId):
            stored = limits.model_copy(deep=True, update={"updatedAt": utcnow()})
            self._contact_limits[limits.hcpId] = stored
        return stored.model_copy(deep=True)

    async def increment_contact(
        self, hcp_id: str, channel: Channel, contacted_at: datetime
    ) -> HcpContactLimits:
        async with self._lock("contact", hcp_id):
            row = self._contact_limits.get(hcp_id)
            if row is None:
                row = HcpContactLimits(hcpId=hcp_id)
                self._contact_limits[hcp_id] = row
            row.touchesThisWeek += 1
            row.touchesThisMonth += 1
            row.lastContactAt = contacted_at
            row.lastContactChannel = channel
            row.updatedAt = utcnow()
            return row.model_copy(deep=True)

    async def reset_contact_counters(self, period: CapacityPeriod) -> int:
        if period == CapacityPeriod.DAILY:
            return 0
        field = "touchesThisWeek" if period == CapacityPeriod.WEEKLY else "touchesThisMonth"
        for hcp_id, row in list(self._contact_limits.items()):
            async with self._lock("contact", hcp_id):
                setattr(row, field, 0)
                row.updatedAt = utcnow()
        return len(self._contact_limits)

    # =========================================================================
    # Compliance Windows
    # =========================================================================

    async def list_compliance_windows(self, active_only: bool = False) -> List[ComplianceWindow]:
        windows = [
            w.model_copy(deep=True)
            for w in self._windows.values()
            if w.isActive or not active_only
        ]
        return sorted(windows, key=lambda w: w.startDate)

    async def get_compliance_window(self, window_id: str) -> Optional[ComplianceWindow]:
        window = self._windows.get(window_id)
        return window.model_copy(deep=True) if window else None

    async def save_compliance_window(self, window: ComplianceWindow) -> ComplianceWindow:
        self._windows[window.id] = window.model_copy(deep=True)
        return window

    async def delete_compliance_window(self, window_id: str) -> bool:
        return self._windows.pop(window_id, None) is not None

    # =========================================================================
    # Budget Allocations
    # =========================================================================

    async def list_budget_allocations(
        self,
        campaign_id: Optional[str] = None,
        channel: Optional[Channel] = None,
        active_only: bool = True,
    ) -> List[BudgetAllocation]:
        rows = []
        for budget in self._budgets.values():
            if active_only and not budget.isActive:
                continue
            if campaign_id is not None and budget.campaignId != campaign_id:
                continue
            if channel is not None and budget.channel != channel:
                continue
            rows.append(budget.model_copy())
        return rows

    async def get_budget_allocation(self, budget_id: str) -> Optional[BudgetAllocation]:
        budget = self._budgets.get(budget_id)
        return budget.model_copy() if budget else None

    async def save_budget_allocation(self, budget: BudgetAllocation) -> BudgetAllocation:
        async with self._lock("budget", budget.id):
            stored = budget.model_copy(update={"updatedAt": utcnow()})
            self._budgets[budget.id] = stored
        return stored.model_copy()

    async def delete_budget_allocation(self, budget_id: str) -> bool:
        async with self._lock("budget", budget_id):
            return self._budgets.pop(budget_id, None) is not None

    async def adjust_budget(
        self,
        budget_id: str,
        committed_delta: float = 0.0,
        spent_delta: float = 0.0,
        require_available: bool = False,
    ) -> Optional[BudgetAllocation]:
        async with self._lock("budget", budget_id):
            row = self._budgets.get(budget_id)
            if row is None:
                return None
            if require_available and committed_delta > row.available:
                return None
            row.committedAmount = max(0.0, row.committedAmount + committed_delta)
            row.spentAmount = max(0.0, row.spentAmount + spent_delta)
            row.updatedAt = utcnow()
            return row.model_copy()

    # =========================================================================
    # Territory Assignments
    # =========================================================================

    async def list_territory_assignments(
        self,
        hcp_id: Optional[str] = None,
        rep_id: Optional[str] = None,
        active_only: bool = True,
    ) -> List[TerritoryAssignment]:
        return [
            a.model_copy()
            for a in self._territories.values()
            if (a.isActive or not active_only)
            and (hcp_id is None or a.hcpId == hcp_id)
            and (rep_id is None or a.repId == rep_id)
        ]

    async def save_territory_assignment(
        self, assignment: TerritoryAssignment
    ) -> TerritoryAssignment:
        self._territories[assignment.id] = assignment.model_copy()
        return assignment

    async def delete_territory_assignment(self, assignment_id: str) -> bool:
        return self._territories.pop(assignment_id, None) is not None

    # =========================================================================
    # Optimization Results and Allocations
    # =========================================================================

    async def get_optimization_result(self, result_id: str) -> Optional[OptimizationResult]:
        result = self._results.get(result_id)
        return result.model_copy() if result else None

    async def save_optimization_result(
        self,
        result: OptimizationResult,
        allocations: List[OptimizationAllocation],
    ) -> OptimizationResult:
        self._results[result.id] = result.model_copy()
        for allocation in allocations:
            self._allocations[allocation.id] = allocation.model_copy()
        return result

    async def list_allocations(
        self,
        result_id: str,
        statuses: Optional[Iterable[AllocationStatus]] = None,
    ) -> List[OptimizationAllocation]:
        wanted = set(statuses) if statuses is not None else None
        rows = [
            a.model_copy()
            for a in self._allocations.values()
            if a.resultId == result_id and (wanted is None or a.status in wanted)
        ]
        return sorted(rows, key=lambda a: (a.plannedDate, -a.priority))

    async def get_allocation(self, allocation_id: str) -> Optional[OptimizationAllocation]:
        allocation = self._allocations.get(allocation_id)
        return allocation.model_copy() if allocation else None

    async def update_allocation(
        self,
        allocation_id: str,
        expected_statuses: Optional[Iterable[AllocationStatus]] = None,
        **changes: Any,
    ) -> Optional[OptimizationAllocation]:
        async with self._lock("allocation", allocation_id):
            row = self._allocations.get(allocation_id)
            if row is None:
                return None
            if expected_statuses is not None and row.status not in set(expected_statuses):
                return None
            updated = row.model_copy(update=changes)
            self._allocations[allocation_id] = updated
            return updated.model_copy()

    async def add_allocations(
        self, allocations: List[OptimizationAllocation]
    ) -> List[OptimizationAllocation]:
        for allocation in allocations:
            self._allocations[allocation.id] = allocation.model_copy()
        return allocations

    # =========================================================================
    # Execution Plans
    # =========================================================================

    async def create_plan(self, plan: ExecutionPlan) -> ExecutionPlan:
        self._plans[plan.id] = plan.model_copy()
        return plan

    async def get_plan(self, plan_id: str) -> Optional[ExecutionPlan]:
        plan = self._plans.get(plan_id)
        return plan.model_copy() if plan else None

    async def list_plans(
        self,
        statuses: Optional[Iterable[PlanStatus]] = None,
        result_id: Optional[str] = None,
        limit: int = 50,
    ) -> List[ExecutionPlan]:
        wanted = set(statuses) if statuses is not None else None
        plans = [
            p.model_copy()
            for p in self._plans.values()
            if (wanted is None or p.status in wanted)
            and (result_id is None or p.resultId == result_id)
        ]
        plans.sort(key=lambda p: p.createdAt, reverse=True)
        return plans[:limit]

    async def update_plan(
        self,
        plan_id: str,
        expected_statuses: Optional[Iterable[PlanStatus]] = None,
        **changes: Any,
    ) -> Optional[ExecutionPlan]:
        async with self._lock("plan", plan_id):
            row = self._plans.get(plan_id)
            if row is None:
                return None
            if expected_statuses is not None and row.status not in set(expected_statuses):
                return None
            changes.setdefault("updatedAt", utcnow())
            updated = row.model_copy(update=changes)
            self._plans[plan_id] = updated
            return updated.model_copy()

    async def adjust_plan_counters(
        self,
        plan_id: str,
        completed: int = 0,
        failed: int = 0,
        total: int = 0,
        spent: float = 0.0,
        actual_lift: float = 0.0,
        predicted_lift: float = 0.0,
    ) -> Optional[ExecutionPlan]:
        async with self._lock("plan", plan_id):
            row = self._plans.get(plan_id)
            if row is None:
                return None
            row.completedActions = max(0, row.completedActions + completed)
            row.failedActions = max(0, row.failedActions + failed)
            row.totalActions = max(0, row.totalActions + total)
            row.budgetSpent = max(0.0, row.budgetSpent + spent)
            row.actualTotalLift = max(0.0, row.actualTotalLift + actual_lift)
            row.predictedTotalLift = max(0.0, row.predictedTotalLift + predicted_lift)
            row.updatedAt = utcnow()
            return row.model_copy()

    async def delete_plan(self, plan_id: str, expected_status: PlanStatus) -> bool:
        async with self._lock("plan", plan_id):
            row = self._plans.get(plan_id)
            if row is None or row.status != expected_status:
                return False
            del self._plans[plan_id]
            return True

    # =========================================================================
    # Fulfilment Outcomes and Job State
    # =========================================================================

    async def record_outcome(self, allocation_id: str, outcome: float) -> None:
        self._outcomes[allocation_id] = outcome

    async def get_reported_outcome(self, allocation_id: str) -> Optional[float]:
        return self._outcomes.get(allocation_id)

    async def get_job_run(self, job_name: str, run_date: date) -> Optional[JobRun]:
        run = self._job_runs.get((job_name, run_date))
        return run.model_copy(deep=True) if run else None

    async def mark_job_run(self, run: JobRun) -> JobRun:
        self._job_runs[(run.jobName, run.runDate)] = run.model_copy(deep=True)
        logger.debug(f"Recorded job run {run.jobName} for {run.runDate}")
        return run
