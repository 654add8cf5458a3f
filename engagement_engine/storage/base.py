"""
Persistence interface for the Engagement Engine.

The decision services never talk to a database directly. They consume the
narrow, keyed interface below, which has two implementations:

- InMemoryStore (storage/memory.py): process-local state guarded by one
  asyncio.Lock per resource key. Used when DATABASE_URL is unset and in tests.
- PostgresStore (storage/postgres.py): asyncpg-backed, one conditional
  UPDATE ... RETURNING per counter mutation.

Counter Mutation Contract:
- adjust_capacity_usage, adjust_budget, increment_contact and
  adjust_plan_counters are atomic read-check-write operations on a single
  resource key. Two concurrent callers can never lose an update.
- Counters never go below zero.
- update_allocation / update_plan accept `expected_statuses`. The update is
  applied only if the current status is one of them (compare-and-set); the
  method returns None otherwise.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime
from typing import Any, Iterable, List, Optional

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


class EngagementStore(ABC):
    """Keyed CRUD plus atomic counter mutations for all standing state."""

    # =========================================================================
    # HCP Profiles
    # =========================================================================

    @abstractmethod
    async def get_hcp(self, hcp_id: str) -> Optional[HCPProfile]:
        ...

    @abstractmethod
    async def list_hcps(self, hcp_ids: Optional[Iterable[str]] = None) -> List[HCPProfile]:
        """All profiles, or only those whose id is in `hcp_ids` (input order kept)."""

    @abstractmethod
    async def count_hcps(self) -> int:
        ...

    @abstractmethod
    async def upsert_hcp(self, hcp: HCPProfile) -> HCPProfile:
        ...

    # =========================================================================
    # Message Themes and Exposures
    # =========================================================================

    @abstractmethod
    async def list_message_themes(self, active_only: bool = False) -> List[MessageTheme]:
        ...

    @abstractmethod
    async def upsert_message_theme(self, theme: MessageTheme) -> MessageTheme:
        ...

    @abstractmethod
    async def get_message_exposures(self, hcp_id: str) -> List[MessageExposure]:
        """Latest exposure per theme for an HCP, with theme name and category filled."""

    @abstractmethod
    async def get_latest_exposure(
        self, hcp_id: str, theme_id: str
    ) -> Optional[MessageExposure]:
        ...

    @abstractmethod
    async def save_message_exposure(self, exposure: MessageExposure) -> MessageExposure:
        ...

    # =========================================================================
    # Channel Capacity
    # =========================================================================

    @abstractmethod
    async def get_channel_capacity(
        self, channel: Channel, rep_id: Optional[str] = None
    ) -> Optional[ChannelCapacity]:
        """Active capacity row keyed by (channel, rep_id). rep_id None is the channel row."""

    @abstractmethod
    async def list_channel_capacity(self) -> List[ChannelCapacity]:
        ...

    @abstractmethod
    async def upsert_channel_capacity(self, capacity: ChannelCapacity) -> ChannelCapacity:
        ...

    @abstractmethod
    async def adjust_capacity_usage(
        self,
        channel: Channel,
        rep_id: Optional[str],
        delta: int,
        enforce_limits: bool = True,
    ) -> Optional[ChannelCapacity]:
        """
        Add `delta` to the daily, weekly and monthly used counters of one row.

        With `enforce_limits`, a positive delta is applied only if every
        non-null limit still holds afterwards. Negative deltas floor at zero.

        Returns:
            The updated row, or None when the row does not exist or the
            delta did not fit.
        """

    @abstractmethod
    async def reset_capacity_usage(
        self, period: CapacityPeriod, channel: Optional[Channel] = None
    ) -> int:
        """Zero one period's used counter. Returns the number of rows touched."""

    # =========================================================================
    # HCP Contact Limits
    # =========================================================================

    @abstractmethod
    async def get_contact_limits(self, hcp_id: str) -> Optional[HcpContactLimits]:
        ...

    @abstractmethod
    async def list_contact_limits(self) -> List[HcpContactLimits]:
        ...

    @abstractmethod
    async def upsert_contact_limits(self, limits: HcpContactLimits) -> HcpContactLimits:
        ...

    @abstractmethod
    async def increment_contact(
        self, hcp_id: str, channel: Channel, contacted_at: datetime
    ) -> HcpContactLimits:
        """Increment weekly and monthly touches and stamp last contact. Creates the row if missing."""

    @abstractmethod
    async def reset_contact_counters(self, period: CapacityPeriod) -> int:
        ...

    # =========================================================================
    # Compliance Windows
    # =========================================================================

    @abstractmethod
    async def list_compliance_windows(self, active_only: bool = False) -> List[ComplianceWindow]:
        ...

    @abstractmethod
    async def get_compliance_window(self, window_id: str) -> Optional[ComplianceWindow]:
        ...

    @abstractmethod
    async def save_compliance_window(self, window: ComplianceWindow) -> ComplianceWindow:
        ...

    @abstractmethod
    async def delete_compliance_window(self, window_id: str) -> bool:
        ...

    # =========================================================================
    # Budget Allocations
    # =========================================================================

    @abstractmethod
    async def list_budget_allocations(
        self,
        campaign_id: Optional[str] = None,
        channel: Optional[Channel] = None,
        active_only: bool = True,
    ) -> List[BudgetAllocation]:
        ...

    @abstractmethod
    async def get_budget_allocation(self, budget_id: str) -> Optional[BudgetAllocation]:
        ...

    @abstractmethod
    async def save_budget_allocation(self, budget: BudgetAllocation) -> BudgetAllocation:
        ...

    @abstractmethod
    async def delete_budget_allocation(self, budget_id: str) -> bool:
        ...

    @abstractmethod
    async def adjust_budget(
        self,
        budget_id: str,
        committed_delta: float = 0.0,
        spent_delta: float = 0.0,
        require_available: bool = False,
    ) -> Optional[BudgetAllocation]:
        """
        Atomically shift committed and spent amounts of one budget row.

        With `require_available`, the change is applied only if the row's
        available amount (allocated - spent - committed) covers
        `committed_delta`. Both amounts floor at zero.

        Returns:
            The updated row, or None when missing or refused.
        """

    # =========================================================================
    # Territory Assignments
    # =========================================================================

    @abstractmethod
    async def list_territory_assignments(
        self,
        hcp_id: Optional[str] = None,
        rep_id: Optional[str] = None,
        active_only: bool = True,
    ) -> List[TerritoryAssignment]:
        ...

    @abstractmethod
    async def save_territory_assignment(
        self, assignment: TerritoryAssignment
    ) -> TerritoryAssignment:
        ...

    @abstractmethod
    async def delete_territory_assignment(self, assignment_id: str) -> bool:
        ...

    # =========================================================================
    # Optimization Results and Allocations
    # =========================================================================

    @abstractmethod
    async def get_optimization_result(self, result_id: str) -> Optional[OptimizationResult]:
        ...

    @abstractmethod
    async def save_optimization_result(
        self,
        result: OptimizationResult,
        allocations: List[OptimizationAllocation],
    ) -> OptimizationResult:
        ...

    @abstractmethod
    async def list_allocations(
        self,
        result_id: str,
        statuses: Optional[Iterable[AllocationStatus]] = None,
    ) -> List[OptimizationAllocation]:
        """Allocations of a result ordered by planned date, then descending priority."""

    @abstractmethod
    async def get_allocation(self, allocation_id: str) -> Optional[OptimizationAllocation]:
        ...

    @abstractmethod
    async def update_allocation(
        self,
        allocation_id: str,
        expected_statuses: Optional[Iterable[AllocationStatus]] = None,
        **changes: Any,
    ) -> Optional[OptimizationAllocation]:
        ...

    @abstractmethod
    async def add_allocations(
        self, allocations: List[OptimizationAllocation]
    ) -> List[OptimizationAllocation]:
        ...

    # =========================================================================
    # Execution Plans
    # =========================================================================

    @abstractmethod
    async def create_plan(self, plan: ExecutionPlan) -> ExecutionPlan:
        ...

    @abstractmethod
    async def get_plan(self, plan_id: str) -> Optional[ExecutionPlan]:
        ...

    @abstractmethod
    async def list_plans(
        self,
        statuses: Optional[Iterable[PlanStatus]] = None,
        result_id: Optional[str] = None,
        limit: int = 50,
    ) -> List[ExecutionPlan]:
        """Plans ordered by creation time, newest first."""

    @abstractmethod
    async def update_plan(
        self,
        plan_id: str,
        expected_statuses: Optional[Iterable[PlanStatus]] = None,
        **changes: Any,
    ) -> Optional[ExecutionPlan]:
        ...

    @abstractmethod
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
        """Atomically add deltas to a plan's progress counters (floored at zero)."""

    @abstractmethod
    async def delete_plan(self, plan_id: str, expected_status: PlanStatus) -> bool:
        ...

    # =========================================================================
    # Fulfilment Outcomes and Job State
    # =========================================================================

    @abstractmethod
    async def record_outcome(self, allocation_id: str, outcome: float) -> None:
        """Store an outcome reported by the fulfilment side for an allocation."""

    @abstractmethod
    async def get_reported_outcome(self, allocation_id: str) -> Optional[float]:
        ...

    @abstractmethod
    async def get_job_run(self, job_name: str, run_date: date) -> Optional[JobRun]:
        ...

    @abstractmethod
    async def mark_job_run(self, run: JobRun) -> JobRun:
        ...

    async def close(self) -> None:
        """Release any resources held by the store."""
        return None
