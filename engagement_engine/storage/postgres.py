"""
PostgreSQL implementation of the EngagementStore.

Uses the asyncpg pool from core/database.py. Counter and status mutations are
single conditional UPDATE ... RETURNING statements (see sql/resource_queries.py
and sql/builders.py), so concurrent requests racing for the same capacity
slot, budget pool or plan transition are serialized by PostgreSQL row locks.
Multi-row writes (a result plus its allocations) run in conn.transaction().

Row Mapping:
- Model fields are camelCase; columns are the snake_case equivalent
  (repId -> rep_id, maxTouchesPerMonth -> max_touches_per_month).
- jsonb columns are serialized with json.dumps and parsed back on read.
"""

import json
import logging
import re
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Type, TypeVar

from pydantic import BaseModel
from pydantic_core import to_jsonable_python

from engagement_engine.core.clock import utcnow
from engagement_engine.core.database import (
    execute_command,
    execute_query,
    execute_query_one,
    get_db_pool,
)
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
from engagement_engine.sql import plan_queries, resource_queries
from engagement_engine.sql.builders import (
    build_filtered_select,
    build_insert_query,
    build_update_query,
)
from engagement_engine.storage.base import EngagementStore


logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

# Fields stored as jsonb
_JSON_FIELDS = {
    "channelEngagements",
    "channelLimits",
    "affectedHcpIds",
    "affectedSpecialties",
    "affectedTerritories",
    "details",
}

# Fields that are joined in on read and never written
_READ_ONLY_FIELDS = {"themeName", "themeCategory"}

_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")


def _snake(name: str) -> str:
    return _CAMEL_BOUNDARY.sub("_", name).lower()


def _to_db(field: str, value: Any) -> Any:
    if value is None:
        return None
    if field in _JSON_FIELDS:
        return json.dumps(to_jsonable_python(value))
    if isinstance(value, Enum):
        return value.value
    return value


def _model_columns(
    model: BaseModel, exclude: Iterable[str] = ()
) -> Tuple[List[str], List[Any]]:
    """Column names and parameter values for every stored field of a model."""
    skipped = set(exclude) | _READ_ONLY_FIELDS
    columns: List[str] = []
    values: List[Any] = []
    for field in type(model).model_fields:
        if field in skipped:
            continue
        columns.append(_snake(field))
        values.append(_to_db(field, getattr(model, field)))
    return columns, values


def _from_record(model_cls: Type[ModelT], record: Any) -> ModelT:
    """Build a model from an asyncpg Record (or any mapping)."""
    keys = set(record.keys())
    data: Dict[str, Any] = {}
    for field in model_cls.model_fields:
        column = _snake(field)
        if column not in keys:
            continue
        value = record[column]
        if field in _JSON_FIELDS and isinstance(value, str):
            value = json.loads(value)
        data[field] = value
    return model_cls.model_validate(data)


def _changes_to_columns(changes: Dict[str, Any]) -> Tuple[List[str], List[Any]]:
    columns = [_snake(field) for field in changes]
    values = [_to_db(field, value) for field, value in changes.items()]
    return columns, values


def _status_values(statuses: Iterable[Enum]) -> List[str]:
    return [s.value if isinstance(s, Enum) else str(s) for s in statuses]


def _row_count(status: str) -> int:
    """Parse the affected-row count out of an asyncpg status string like 'DELETE 1'."""
    try:
        return int(status.split()[-1])
    except (AttributeError, IndexError, ValueError):
        return 0


class PostgresStore(EngagementStore):
    """asyncpg-backed store. Stateless apart from the shared pool."""

    async def _fetch(self, query: str, *args: Any) -> List[Any]:
        return await execute_query(query, *args)

    async def _fetchrow(self, query: str, *args: Any) -> Optional[Any]:
        return await execute_query_one(query, *args)

    async def _execute(self, query: str, *args: Any) -> str:
        return await execute_command(query, *args)

    async def _insert(
        self,
        table: str,
        model: ModelT,
        conflict_target: Optional[str] = None,
        exclude: Iterable[str] = (),
        update_columns: Optional[Sequence[str]] = None,
    ) -> ModelT:
        columns, values = _model_columns(model, exclude)
        query = build_insert_query(table, columns, conflict_target, update_columns)
        row = await self._fetchrow(query, *values)
        return _from_record(type(model), row) if row is not None else model

    async def _update(
        self,
        table: str,
        model_cls: Type[ModelT],
        key: str,
        changes: Dict[str, Any],
        expected_statuses: Optional[Iterable[Enum]] = None,
    ) -> Optional[ModelT]:
        columns, values = _changes_to_columns(changes)
        guard = expected_statuses is not None
        query = build_update_query(table, "id", columns, guard_status=guard)
        args: List[Any] = [key, *values]
        if guard:
            args.append(_status_values(expected_statuses))
        row = await self._fetchrow(query, *args)
        return _from_record(model_cls, row) if row is not None else None

    # =========================================================================
    # HCP Profiles
    # =========================================================================

    async def get_hcp(self, hcp_id: str) -> Optional[HCPProfile]:
        row = await self._fetchrow(plan_queries.GET_HCP, hcp_id)
        return _from_record(HCPProfile, row) if row else None

    async def list_hcps(self, hcp_ids: Optional[Iterable[str]] = None) -> List[HCPProfile]:
        if hcp_ids is None:
            rows = await self._fetch(plan_queries.LIST_HCPS)
            return [_from_record(HCPProfile, r) for r in rows]

        ids = list(hcp_ids)
        rows = await self._fetch(plan_queries.LIST_HCPS_BY_ID, ids)
        by_id = {r["id"]: _from_record(HCPProfile, r) for r in rows}
        return [by_id[i] for i in ids if i in by_id]

    async def count_hcps(self) -> int:
        row = await self._fetchrow(plan_queries.COUNT_HCPS)
        return int(row[0]) if row else 0

    async def upsert_hcp(self, hcp: HCPProfile) -> HCPProfile:
        return await self._insert("hcp_profiles", hcp, conflict_target="(id)")

    # =========================================================================
    # Message Themes and Exposures
    # =========================================================================

    async def list_message_themes(self, active_only: bool = False) -> List[MessageTheme]:
        query = (
            plan_queries.LIST_ACTIVE_MESSAGE_THEMES
            if active_only
            else plan_queries.LIST_MESSAGE_THEMES
        )
        return [_from_record(MessageTheme, r) for r in await self._fetch(query)]

    async def upsert_message_theme(self, theme: MessageTheme) -> MessageTheme:
        return await self._insert("message_themes", theme, conflict_target="(id)")

    async def get_message_exposures(self, hcp_id: str) -> List[MessageExposure]:
        rows = await self._fetch(plan_queries.LATEST_EXPOSURES_FOR_HCP, hcp_id)
        return [_from_record(MessageExposure, r) for r in rows]

    async def get_latest_exposure(
        self, hcp_id: str, theme_id: str
    ) -> Optional[MessageExposure]:
        row = await self._fetchrow(plan_queries.LATEST_EXPOSURE, hcp_id, theme_id)
        return _from_record(MessageExposure, row) if row else None

    async def save_message_exposure(self, exposure: MessageExposure) -> MessageExposure:
        saved = await self._insert("message_exposures", exposure)
        saved.themeName = exposure.themeName
        saved.themeCategory = exposure.themeCategory
        return saved

    # =========================================================================
    # Channel Capacity
    # =========================================================================

    async def get_channel_capacity(
        self, channel: Channel, rep_id: Optional[str] = None
    ) -> Optional[ChannelCapacity]:
        row = await self._fetchrow(
            resource_queries.GET_CHANNEL_CAPACITY, channel.value, rep_id
        )
        return _from_record(ChannelCapacity, row) if row else None

    async def list_channel_capacity(self) -> List[ChannelCapacity]:
        rows = await self._fetch(resource_queries.LIST_CHANNEL_CAPACITY)
        return [_from_record(ChannelCapacity, r) for r in rows]

    async def upsert_channel_capacity(self, capacity: ChannelCapacity) -> ChannelCapacity:
        columns, _ = _model_columns(capacity)
        return await self._insert(
            "channel_capacity",
            capacity,
            conflict_target="(channel, COALESCE(rep_id, ''))",
            update_columns=[c for c in columns if c not in ("id", "channel", "rep_id")],
        )

    async def adjust_capacity_usage(
        self,
        channel: Channel,
        rep_id: Optional[str],
        delta: int,
        enforce_limits: bool = True,
    ) -> Optional[ChannelCapacity]:
        row = await self._fetchrow(
            resource_queries.ADJUST_CAPACITY_USAGE,
            channel.value,
            rep_id,
            delta,
            enforce_limits,
        )
        return _from_record(ChannelCapacity, row) if row else None

    async def reset_capacity_usage(
        self, period: CapacityPeriod, channel: Optional[Channel] = None
    ) -> int:
        query = resource_queries.get_capacity_reset_query(period, channel is not None)
        args = (channel.value,) if channel is not None else ()
        return _row_count(await self._execute(query, *args))

    # =========================================================================
    # HCP Contact Limits
    # =========================================================================

    async def get_contact_limits(self, hcp_id: str) -> Optional[HcpContactLimits]:
        row = await self._fetchrow(resource_queries.GET_CONTACT_LIMITS, hcp_id)
        return _from_record(HcpContactLimits, row) if row else None

    async def list_contact_limits(self) -> List[HcpContactLimits]:
        rows = await self._fetch(resource_queries.LIST_CONTACT_LIMITS)
        return [_from_record(HcpContactLimits, r) for r in rows]

    async def upsert_contact_limits(self, limits: HcpContactLimits) -> HcpContactLimits:
        return await self._insert(
            "hcp_contact_limits", limits, conflict_target="(hcp_id)"
        )

    async def increment_contact(
        self, hcp_id: str, channel: Channel, contacted_at: datetime
    ) -> HcpContactLimits:
        row = await self._fetchrow(
            resource_queries.INCREMENT_CONTACT, hcp_id, channel.value, contacted_at
        )
        return _from_record(HcpContactLimits, row)

    async def reset_contact_counters(self, period: CapacityPeriod) -> int:
        if period == CapacityPeriod.DAILY:
            return 0
        query = resource_queries.get_contact_reset_query(period)
        return _row_count(await self._execute(query))

    # =========================================================================
    # Compliance Windows
    # =========================================================================

    async def list_compliance_windows(self, active_only: bool = False) -> List[ComplianceWindow]:
        query = (
            resource_queries.LIST_ACTIVE_COMPLIANCE_WINDOWS
            if active_only
            else resource_queries.LIST_COMPLIANCE_WINDOWS
        )
        return [_from_record(ComplianceWindow, r) for r in await self._fetch(query)]

    async def get_compliance_window(self, window_id: str) -> Optional[ComplianceWindow]:
        row = await self._fetchrow(resource_queries.GET_COMPLIANCE_WINDOW, window_id)
        return _from_record(ComplianceWindow, row) if row else None

    async def save_compliance_window(self, window: ComplianceWindow) -> ComplianceWindow:
        return await self._insert("compliance_windows", window, conflict_target="(id)")

    async def delete_compliance_window(self, window_id: str) -> bool:
        status = await self._execute(resource_queries.DELETE_COMPLIANCE_WINDOW, window_id)
        return _row_count(status) > 0

    # =========================================================================
    # Budget Allocations
    # =========================================================================

    async def list_budget_allocations(
        self,
        campaign_id: Optional[str] = None,
        channel: Optional[Channel] = None,
        active_only: bool = True,
    ) -> List[BudgetAllocation]:
        query = resource_queries.get_budget_list_query(
            campaign_id is not None, channel is not None, active_only
        )
        args: List[Any] = []
        if campaign_id is not None:
            args.append(campaign_id)
        if channel is not None:
            args.append(channel.value)
        rows = await self._fetch(query, *args)
        return [_from_record(BudgetAllocation, r) for r in rows]

    async def get_budget_allocation(self, budget_id: str) -> Optional[BudgetAllocation]:
        row = await self._fetchrow(resource_queries.GET_BUDGET_ALLOCATION, budget_id)
        return _from_record(BudgetAllocation, row) if row else None

    async def save_budget_allocation(self, budget: BudgetAllocation) -> BudgetAllocation:
        return await self._insert("budget_allocations", budget, conflict_target="(id)")

    async def delete_budget_allocation(self, budget_id: str) -> bool:
        status = await self._execute(resource_queries.DELETE_BUDGET_ALLOCATION, budget_id)
        return _row_count(status) > 0

    async def adjust_budget(
        self,
        budget_id: str,
        committed_delta: float = 0.0,
        spent_delta: float = 0.0,
        require_available: bool = False,
    ) -> Optional[BudgetAllocation]:
        row = await self._fetchrow(
            resource_queries.ADJUST_BUDGET,
            budget_id,
            float(committed_delta),
            float(spent_delta),
            require_available,
        )
        return _from_record(BudgetAllocation, row) if row else None

    # =========================================================================
    # Territory Assignments
    # =========================================================================

    async def list_territory_assignments(
        self,
        hcp_id: Optional[str] = None,
        rep_id: Optional[str] = None,
        active_only: bool = True,
    ) -> List[TerritoryAssignment]:
        filters: List[Tuple[str, str]] = []
        args: List[Any] = []
        if hcp_id is not None:
            filters.append(("hcp_id", "="))
            args.append(hcp_id)
        if rep_id is not None:
            filters.append(("rep_id", "="))
            args.append(rep_id)
        if active_only:
            filters.append(("is_active", "="))
            args.append(True)
        query = build_filtered_select("territory_assignments", filters, order_by="rep_id, hcp_id")
        rows = await self._fetch(query, *args)
        return [_from_record(TerritoryAssignment, r) for r in rows]

    async def save_territory_assignment(
        self, assignment: TerritoryAssignment
    ) -> TerritoryAssignment:
        return await self._insert(
            "territory_assignments", assignment, conflict_target="(id)"
        )

    async def delete_territory_assignment(self, assignment_id: str) -> bool:
        status = await self._execute(
            resource_queries.DELETE_TERRITORY_ASSIGNMENT, assignment_id
        )
        return _row_count(status) > 0

    # =========================================================================
    # Optimization Results and Allocations
    # =========================================================================

    async def get_optimization_result(self, result_id: str) -> Optional[OptimizationResult]:
        row = await self._fetchrow(plan_queries.GET_OPTIMIZATION_RESULT, result_id)
        return _from_record(OptimizationResult, row) if row else None

    async def save_optimization_result(
        self,
        result: OptimizationResult,
        allocations: List[OptimizationAllocation],
    ) -> OptimizationResult:
        result_columns, result_values = _model_columns(result)
        pool = await get_db_pool()
        async with pool.acquire() as conn:
            async with conn.transaction():
                await conn.execute(
                    build_insert_query("optimization_results", result_columns),
                    *result_values,
                )
                if allocations:
                    columns, _ = _model_columns(allocations[0])
                    await conn.executemany(
                        build_insert_query("optimization_allocations", columns),
                        [_model_columns(a)[1] for a in allocations],
                    )
        logger.info(
            f"Saved optimization result {result.id} with {len(allocations)} allocations"
        )
        return result

    async def list_allocations(
        self,
        result_id: str,
        statuses: Optional[Iterable[AllocationStatus]] = None,
    ) -> List[OptimizationAllocation]:
        if statuses is None:
            rows = await self._fetch(plan_queries.LIST_ALLOCATIONS, result_id)
        else:
            rows = await self._fetch(
                plan_queries.LIST_ALLOCATIONS_BY_STATUS,
                result_id,
                _status_values(statuses),
            )
        return [_from_record(OptimizationAllocation, r) for r in rows]

    async def get_allocation(self, allocation_id: str) -> Optional[OptimizationAllocation]:
        row = await self._fetchrow(plan_queries.GET_ALLOCATION, allocation_id)
        return _from_record(OptimizationAllocation, row) if row else None

    async def update_allocation(
        self,
        allocation_id: str,
        expected_statuses: Optional[Iterable[AllocationStatus]] = None,
        **changes: Any,
    ) -> Optional[OptimizationAllocation]:
        return await self._update(
            "optimization_allocations",
            OptimizationAllocation,
            allocation_id,
            changes,
            expected_statuses,
        )

    async def add_allocations(
        self, allocations: List[OptimizationAllocation]
    ) -> List[OptimizationAllocation]:
        if not allocations:
            return []
        columns, _ = _model_columns(allocations[0])
        pool = await get_db_pool()
        async with pool.acquire() as conn:
            async with conn.transaction():
                await conn.executemany(
                    build_insert_query("optimization_allocations", columns),
                    [_model_columns(a)[1] for a in allocations],
                )
        return allocations

    # =========================================================================
    # Execution Plans
    # =========================================================================

    async def create_plan(self, plan: ExecutionPlan) -> ExecutionPlan:
        return await self._insert("execution_plans", plan)

    async def get_plan(self, plan_id: str) -> Optional[ExecutionPlan]:
        row = await self._fetchrow(plan_queries.GET_PLAN, plan_id)
        return _from_record(ExecutionPlan, row) if row else None

    async def list_plans(
        self,
        statuses: Optional[Iterable[PlanStatus]] = None,
        result_id: Optional[str] = None,
        limit: int = 50,
    ) -> List[ExecutionPlan]:
        query = plan_queries.get_plan_list_query(statuses is not None, result_id is not None)
        args: List[Any] = []
        if statuses is not None:
            args.append(_status_values(statuses))
        if result_id is not None:
            args.append(result_id)
        args.append(limit)
        rows = await self._fetch(query, *args)
        return [_from_record(ExecutionPlan, r) for r in rows]

    async def update_plan(
        self,
        plan_id: str,
        expected_statuses: Optional[Iterable[PlanStatus]] = None,
        **changes: Any,
    ) -> Optional[ExecutionPlan]:
        changes.setdefault("updatedAt", utcnow())
        return await self._update(
            "execution_plans", ExecutionPlan, plan_id, changes, expected_statuses
        )

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
        row = await self._fetchrow(
            plan_queries.ADJUST_PLAN_COUNTERS,
            plan_id,
            completed,
            failed,
            total,
            float(spent),
            float(actual_lift),
            float(predicted_lift),
        )
        return _from_record(ExecutionPlan, row) if row else None

    async def delete_plan(self, plan_id: str, expected_status: PlanStatus) -> bool:
        status = await self._execute(
            plan_queries.DELETE_PLAN_IF_STATUS, plan_id, expected_status.value
        )
        return _row_count(status) > 0

    # =========================================================================
    # Fulfilment Outcomes and Job State
    # =========================================================================

    async def record_outcome(self, allocation_id: str, outcome: float) -> None:
        await self._execute(plan_queries.UPSERT_OUTCOME, allocation_id, float(outcome))

    async def get_reported_outcome(self, allocation_id: str) -> Optional[float]:
        row = await self._fetchrow(plan_queries.GET_OUTCOME, allocation_id)
        return float(row["outcome"]) if row else None

    async def get_job_run(self, job_name: str, run_date: date) -> Optional[JobRun]:
        row = await self._fetchrow(plan_queries.GET_JOB_RUN, job_name, run_date)
        return _from_record(JobRun, row) if row else None

    async def mark_job_run(self, run: JobRun) -> JobRun:
        return await self._insert(
            "job_runs", run, conflict_target="(job_name, run_date)"
        )
