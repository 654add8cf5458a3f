"""
FastAPI router for execution plans.

Key Endpoints:
- POST /plans/results - Store an optimization result (batch of allocations)
- POST /plans - Create a draft plan from an optimization result
- GET /plans - List plans, optionally by status or result
- GET /plans/{plan_id} - Plan detail
- DELETE /plans/{plan_id} - Delete a draft plan
- POST /plans/{plan_id}/book - Book capacity and budget for planned allocations
- POST /plans/{plan_id}/release - Return booked resources, plan back to draft
- POST /plans/{plan_id}/execute - Run booked allocations, returns the execution report
- POST /plans/{plan_id}/pause | /resume | /cancel - Life-cycle transitions
- GET /plans/{plan_id}/progress | /report | /actions - Progress and reporting
- GET /plans/{plan_id}/rebalance-suggestion - Suggestion from completed outcomes
- POST /plans/{plan_id}/rebalance - Cancel pending allocations, attach replacements
- POST /plans/allocations/{allocation_id}/outcome - Report an actual outcome

Unknown plans and results map to 404 and invalid transitions to 409 through
the application exception handlers.
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Query

from engagement_engine.core.dependencies import ExecutionPlannerDep, StoreDep
from engagement_engine.core.exceptions import NotFoundError
from engagement_engine.models.enums import PlanStatus
from engagement_engine.models.schemas import (
    BookingResult,
    ExecuteRequest,
    ExecutionPlan,
    ExecutionReport,
    OptimizationAllocation,
    OptimizationResultCreate,
    OptimizationResultResponse,
    OutcomeReport,
    PlanCreateRequest,
    PlanProgress,
    RebalanceRequest,
    RebalanceSuggestion,
    ScheduledAction,
)
from engagement_engine.services.execution_planner import CancellationToken


# =============================================================================
# Module Configuration
# =============================================================================

logger = logging.getLogger(__name__)

DEFAULT_LIST_LIMIT: int = 50

MAX_LIST_LIMIT: int = 500


router = APIRouter()


# =============================================================================
# Optimization Results
# =============================================================================

@router.post("/results", response_model=OptimizationResultResponse, status_code=201)
async def create_optimization_result(
    request: OptimizationResultCreate, planner: ExecutionPlannerDep
) -> OptimizationResultResponse:
    result, allocations = await planner.create_optimization_result(
        request.allocations, request.name
    )
    return OptimizationResultResponse(result=result, allocations=allocations)


@router.post("/allocations/{allocation_id}/outcome", response_model=OptimizationAllocation)
async def report_outcome(
    allocation_id: str, report: OutcomeReport, store: StoreDep
) -> OptimizationAllocation:
    """
    Record the actual lift of an allocation as reported by the fulfilment side.

    The recorded outcome strategy reads it when the allocation executes.
    """
    allocation = await store.get_allocation(allocation_id)
    if allocation is None:
        raise NotFoundError("Allocation", allocation_id)

    await store.record_outcome(allocation_id, report.outcome)
    logger.info(f"Outcome {report.outcome} reported for allocation {allocation_id}")
    return allocation


# =============================================================================
# Plan CRUD
# =============================================================================

@router.post("", response_model=ExecutionPlan, status_code=201)
async def create_plan(request: PlanCreateRequest, planner: ExecutionPlannerDep) -> ExecutionPlan:
    return await planner.create_plan(
        request.resultId,
        request.name,
        request.description,
        request.scheduledStartAt,
        request.campaignId,
    )


@router.get("", response_model=List[ExecutionPlan])
async def list_plans(
    planner: ExecutionPlannerDep,
    status: Optional[PlanStatus] = Query(default=None),
    result_id: Optional[str] = Query(default=None, alias="resultId"),
    limit: int = Query(default=DEFAULT_LIST_LIMIT, ge=1, le=MAX_LIST_LIMIT),
) -> List[ExecutionPlan]:
    return await planner.list_plans(status, result_id, limit)


@router.get("/{plan_id}", response_model=ExecutionPlan)
async def get_plan(plan_id: str, planner: ExecutionPlannerDep) -> ExecutionPlan:
    return await planner.get_plan(plan_id)


@router.delete("/{plan_id}", status_code=204)
async def delete_plan(plan_id: str, planner: ExecutionPlannerDep) -> None:
    await planner.delete_plan(plan_id)


# =============================================================================
# Resources and Execution
# =============================================================================

@router.post("/{plan_id}/book", response_model=BookingResult)
async def book_resources(plan_id: str, planner: ExecutionPlannerDep) -> BookingResult:
    return await planner.book_resources(plan_id)


@router.post("/{plan_id}/release", response_model=ExecutionPlan)
async def release_resources(plan_id: str, planner: ExecutionPlannerDep) -> ExecutionPlan:
    return await planner.release_resources(plan_id)


@router.post("/{plan_id}/execute", response_model=ExecutionReport)
async def execute_plan(
    plan_id: str,
    planner: ExecutionPlannerDep,
    request: Optional[ExecuteRequest] = None,
) -> ExecutionReport:
    """
    Execute every booked allocation of a scheduled or paused plan.

    With timeoutSeconds set, execution stops once the deadline passes and
    the plan is left paused with the remaining allocations still booked.
    """
    timeout = request.timeoutSeconds if request else None
    return await planner.execute_plan(plan_id, CancellationToken(timeout))


@router.post("/{plan_id}/pause", response_model=ExecutionPlan)
async def pause_plan(plan_id: str, planner: ExecutionPlannerDep) -> ExecutionPlan:
    return await planner.pause_plan(plan_id)


@router.post("/{plan_id}/resume", response_model=ExecutionPlan)
async def resume_plan(plan_id: str, planner: ExecutionPlannerDep) -> ExecutionPlan:
    return await planner.resume_plan(plan_id)


@router.post("/{plan_id}/cancel", response_model=ExecutionPlan)
async def cancel_plan(plan_id: str, planner: ExecutionPlannerDep) -> ExecutionPlan:
    return await planner.cancel_plan(plan_id)


# =============================================================================
# Progress and Reporting
# =============================================================================

@router.get("/{plan_id}/progress", response_model=PlanProgress)
async def get_progress(plan_id: str, planner: ExecutionPlannerDep) -> PlanProgress:
    return await planner.get_plan_progress(plan_id)


@router.get("/{plan_id}/report", response_model=ExecutionReport)
async def get_report(plan_id: str, planner: ExecutionPlannerDep) -> ExecutionReport:
    return await planner.get_execution_report(plan_id)


@router.get("/{plan_id}/actions", response_model=List[ScheduledAction])
async def get_scheduled_actions(
    plan_id: str, planner: ExecutionPlannerDep
) -> List[ScheduledAction]:
    plan = await planner.get_plan(plan_id)
    return await planner.get_scheduled_actions(plan.resultId)


# =============================================================================
# Rebalancing
# =============================================================================

@router.get("/{plan_id}/rebalance-suggestion", response_model=Optional[RebalanceSuggestion])
async def get_rebalance_suggestion(
    plan_id: str, planner: ExecutionPlannerDep
) -> Optional[RebalanceSuggestion]:
    """null when the plan is performing or has too few completed allocations."""
    return await planner.suggest_rebalance(plan_id)


@router.post("/{plan_id}/rebalance", response_model=ExecutionPlan)
async def rebalance_plan(
    plan_id: str,
    planner: ExecutionPlannerDep,
    request: Optional[RebalanceRequest] = None,
) -> ExecutionPlan:
    request = request or RebalanceRequest()
    return await planner.rebalance_plan(
        plan_id, request.trigger, request.reason, request.replacementAllocations
    )
