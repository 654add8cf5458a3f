"""
FastAPI router for operating constraints.

Key Endpoints:
- POST /constraints/check - Evaluate a proposed action against every constraint
- GET /constraints/summary - Capacity, budget, compliance and contact-limit overview
- POST /constraints/capacity/{consume,release,reset} - Capacity counter mutations
- POST /constraints/budget/{commit,release,spend} - Budget counter mutations
- POST /constraints/contacts/record - Record a completed contact
- GET /constraints/contacts/{hcp_id}/eligibility - Contact eligibility on a channel
- CRUD under /constraints/capacity, /windows, /budgets, /territories, /contact-limits

Violations are returned as data (passed=false), never as HTTP errors. Counter
mutations that do not fit return success=false with the current state.
"""

import logging
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, HTTPException, Query

from engagement_engine.core.dependencies import ConstraintManagerDep
from engagement_engine.models.enums import CapacityPeriod, Channel
from engagement_engine.models.schemas import (
    BudgetAdjustRequest,
    BudgetAdjustResponse,
    BudgetAllocation,
    CapacityAdjustRequest,
    CapacityAdjustResponse,
    ChannelCapacity,
    ComplianceWindow,
    ConstraintCheckResult,
    ConstraintSummary,
    ContactEligibility,
    ContactRecordRequest,
    CountResponse,
    HcpContactLimits,
    ProposedAction,
    TerritoryAssignment,
)
from engagement_engine.services.constraint_manager import ConstraintManager


logger = logging.getLogger(__name__)

router = APIRouter()


def _not_found(entity: str, entity_id: str) -> HTTPException:
    return HTTPException(status_code=404, detail=f"{entity} {entity_id} not found")


# =============================================================================
# Check and Summary
# =============================================================================

@router.post("/check", response_model=ConstraintCheckResult)
async def check_constraints(
    action: ProposedAction, manager: ConstraintManagerDep
) -> ConstraintCheckResult:
    return await manager.check_constraints(action)


@router.get("/summary", response_model=ConstraintSummary)
async def get_summary(manager: ConstraintManagerDep) -> ConstraintSummary:
    return await manager.get_constraint_summary()


# =============================================================================
# Capacity
# =============================================================================

@router.get("/capacity", response_model=List[ChannelCapacity])
async def list_capacity(manager: ConstraintManagerDep) -> List[ChannelCapacity]:
    return await manager.list_channel_capacity()


@router.put("/capacity", response_model=ChannelCapacity)
async def upsert_capacity(
    capacity: ChannelCapacity, manager: ConstraintManagerDep
) -> ChannelCapacity:
    """Create or replace the capacity row for a (channel, rep) pair."""
    return await manager.upsert_channel_capacity(capacity)


@router.post("/capacity/consume", response_model=CapacityAdjustResponse)
async def consume_capacity(
    request: CapacityAdjustRequest, manager: ConstraintManagerDep
) -> CapacityAdjustResponse:
    success = await manager.consume_capacity(request.channel, request.amount, request.repId)
    return CapacityAdjustResponse(
        success=success,
        capacity=await manager.get_channel_capacity(request.channel, request.repId),
    )


@router.post("/capacity/release", response_model=CapacityAdjustResponse)
async def release_capacity(
    request: CapacityAdjustRequest, manager: ConstraintManagerDep
) -> CapacityAdjustResponse:
    await manager.release_capacity(request.channel, request.amount, request.repId)
    return CapacityAdjustResponse(
        success=True,
        capacity=await manager.get_channel_capacity(request.channel, request.repId),
    )


@router.post("/capacity/reset", response_model=CountResponse)
async def reset_capacity(
    manager: ConstraintManagerDep,
    period: CapacityPeriod = Query(..., description="Counter period to zero"),
    channel: Optional[Channel] = Query(default=None),
) -> CountResponse:
    return CountResponse(count=await manager.reset_capacity(period, channel))


# =============================================================================
# Budget
# =============================================================================

async def _budget_response(
    manager: ConstraintManager, budget_id: str, success: bool
) -> BudgetAdjustResponse:
    return BudgetAdjustResponse(
        success=success, budget=await manager.get_budget_allocation(budget_id)
    )


async def _require_budget(manager: ConstraintManager, budget_id: str) -> None:
    if await manager.get_budget_allocation(budget_id) is None:
        raise _not_found("Budget allocation", budget_id)


@router.post("/budget/commit", response_model=BudgetAdjustResponse)
async def commit_budget(
    request: BudgetAdjustRequest, manager: ConstraintManagerDep
) -> BudgetAdjustResponse:
    await _require_budget(manager, request.budgetAllocationId)
    success = await manager.commit_budget(request.amount, request.budgetAllocationId)
    return await _budget_response(manager, request.budgetAllocationId, success)


@router.post("/budget/release", response_model=BudgetAdjustResponse)
async def release_budget(
    request: BudgetAdjustRequest, manager: ConstraintManagerDep
) -> BudgetAdjustResponse:
    await _require_budget(manager, request.budgetAllocationId)
    await manager.release_budget(request.amount, request.budgetAllocationId)
    return await _budget_response(manager, request.budgetAllocationId, True)


@router.post("/budget/spend", response_model=BudgetAdjustResponse)
async def record_spend(
    request: BudgetAdjustRequest, manager: ConstraintManagerDep
) -> BudgetAdjustResponse:
    await _require_budget(manager, request.budgetAllocationId)
    await manager.record_spend(
        request.amount, request.budgetAllocationId, request.releaseCommitment
    )
    return await _budget_response(manager, request.budgetAllocationId, True)


@router.get("/budgets", response_model=List[BudgetAllocation])
async def list_budgets(
    manager: ConstraintManagerDep,
    campaign_id: Optional[str] = Query(default=None, alias="campaignId"),
) -> List[BudgetAllocation]:
    return await manager.list_budget_allocations(campaign_id)


@router.post("/budgets", response_model=BudgetAllocation)
async def save_budget(
    budget: BudgetAllocation, manager: ConstraintManagerDep
) -> BudgetAllocation:
    return await manager.save_budget_allocation(budget)


@router.get("/budgets/{budget_id}", response_model=BudgetAllocation)
async def get_budget(budget_id: str, manager: ConstraintManagerDep) -> BudgetAllocation:
    budget = await manager.get_budget_allocation(budget_id)
    if budget is None:
        raise _not_found("Budget allocation", budget_id)
    return budget


@router.delete("/budgets/{budget_id}", status_code=204)
async def delete_budget(budget_id: str, manager: ConstraintManagerDep) -> None:
    if not await manager.delete_budget_allocation(budget_id):
        raise _not_found("Budget allocation", budget_id)


# =============================================================================
# Contact Limits
# =============================================================================

@router.post("/contacts/record", response_model=HcpContactLimits)
async def record_contact(
    request: ContactRecordRequest, manager: ConstraintManagerDep
) -> HcpContactLimits:
    return await manager.record_contact(request.hcpId, request.channel, request.contactedAt)


@router.get("/contacts/{hcp_id}/eligibility", response_model=ContactEligibility)
async def get_contact_eligibility(
    hcp_id: str,
    manager: ConstraintManagerDep,
    channel: Channel = Query(...),
    as_of: Optional[datetime] = Query(default=None, alias="asOf"),
) -> ContactEligibility:
    return await manager.can_contact_hcp(hcp_id, channel, as_of)


@router.post("/contacts/reset", response_model=CountResponse)
async def reset_contact_counters(
    manager: ConstraintManagerDep,
    period: CapacityPeriod = Query(...),
) -> CountResponse:
    return CountResponse(count=await manager.reset_contact_counters(period))


@router.get("/contact-limits", response_model=List[HcpContactLimits])
async def list_contact_limits(manager: ConstraintManagerDep) -> List[HcpContactLimits]:
    return await manager.list_contact_limits()


@router.put("/contact-limits", response_model=HcpContactLimits)
async def upsert_contact_limits(
    limits: HcpContactLimits, manager: ConstraintManagerDep
) -> HcpContactLimits:
    return await manager.upsert_contact_limits(limits)


@router.get("/contact-limits/{hcp_id}", response_model=HcpContactLimits)
async def get_contact_limits(hcp_id: str, manager: ConstraintManagerDep) -> HcpContactLimits:
    limits = await manager.get_contact_limits(hcp_id)
    if limits is None:
        raise _not_found("Contact limits for HCP", hcp_id)
    return limits


# =============================================================================
# Compliance Windows
# =============================================================================

@router.get("/windows", response_model=List[ComplianceWindow])
async def list_windows(
    manager: ConstraintManagerDep,
    active_now: bool = Query(default=False, alias="activeNow"),
) -> List[ComplianceWindow]:
    if active_now:
        return await manager.get_active_windows()
    return await manager.list_compliance_windows()


@router.get("/windows/upcoming", response_model=List[ComplianceWindow])
async def list_upcoming_windows(
    manager: ConstraintManagerDep,
    days_ahead: int = Query(default=30, ge=1, le=365, alias="daysAhead"),
) -> List[ComplianceWindow]:
    return await manager.get_upcoming_windows(days_ahead)


@router.post("/windows", response_model=ComplianceWindow)
async def save_window(
    window: ComplianceWindow, manager: ConstraintManagerDep
) -> ComplianceWindow:
    saved = await manager.save_compliance_window(window)
    logger.info(f"Saved compliance window {saved.id} ({saved.name})")
    return saved


@router.get("/windows/{window_id}", response_model=ComplianceWindow)
async def get_window(window_id: str, manager: ConstraintManagerDep) -> ComplianceWindow:
    window = await manager.get_compliance_window(window_id)
    if window is None:
        raise _not_found("Compliance window", window_id)
    return window


@router.delete("/windows/{window_id}", status_code=204)
async def delete_window(window_id: str, manager: ConstraintManagerDep) -> None:
    if not await manager.delete_compliance_window(window_id):
        raise _not_found("Compliance window", window_id)


# =============================================================================
# Territory Assignments
# =============================================================================

@router.get("/territories", response_model=List[TerritoryAssignment])
async def list_territories(
    manager: ConstraintManagerDep,
    hcp_id: Optional[str] = Query(default=None, alias="hcpId"),
) -> List[TerritoryAssignment]:
    if hcp_id:
        return await manager.get_assigned_reps(hcp_id)
    return await manager.list_territory_assignments()


@router.post("/territories", response_model=TerritoryAssignment)
async def save_territory(
    assignment: TerritoryAssignment, manager: ConstraintManagerDep
) -> TerritoryAssignment:
    return await manager.save_territory_assignment(assignment)


@router.delete("/territories/{assignment_id}", status_code=204)
async def delete_territory(assignment_id: str, manager: ConstraintManagerDep) -> None:
    if not await manager.delete_territory_assignment(assignment_id):
        raise _not_found("Territory assignment", assignment_id)
