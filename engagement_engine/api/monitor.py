"""
FastAPI router for the optimization monitor.

Key Endpoints:
- POST /monitor/run - Analyse active execution plans and return insights,
  alerts, per-plan metrics and rebalance recommendations
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Query

from engagement_engine.core.dependencies import OptimizationMonitorDep
from engagement_engine.models.schemas import MonitorReport


logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/run", response_model=MonitorReport)
async def run_monitor(
    monitor: OptimizationMonitorDep,
    plan_ids: Optional[List[str]] = Query(default=None, alias="planId"),
    check_rebalance: bool = Query(default=True, alias="checkRebalance"),
) -> MonitorReport:
    """
    Run the monitor over every scheduled, executing or paused plan, or only
    the plans named by repeated planId query parameters.

    A failed run is reported with success=false rather than an HTTP error.
    """
    report = await monitor.run_monitor(plan_ids, check_rebalance)
    logger.info(
        f"Monitor run: {len(report.planMetrics)} plans, {len(report.alerts)} alerts"
    )
    return report
