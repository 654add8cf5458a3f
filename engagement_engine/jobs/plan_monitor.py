"""
Daily Optimization Monitor Job.

Runs the OptimizationMonitor over every scheduled, executing or paused plan
once per day and records the run in the store's job_runs state.

Idempotency:
- Never runs twice for the same date unless force=True.
- The run is only recorded after a successful monitor pass, so a failed
  run can simply be retried.

Usage:
    from engagement_engine.jobs.plan_monitor import run_daily_plan_monitor

    # Monitor today's plans (UTC date)
    result = await run_daily_plan_monitor()

    # Re-run even if today's run already happened
    result = await run_daily_plan_monitor(force=True)
"""

import asyncio
import logging
from datetime import date
from typing import Any, Dict, Optional

from engagement_engine.core.clock import utcnow
from engagement_engine.core.config import get_settings
from engagement_engine.core.dependencies import get_store
from engagement_engine.models.schemas import JobRun
from engagement_engine.services.constraint_manager import ConstraintManager
from engagement_engine.services.execution_planner import ExecutionPlanner
from engagement_engine.services.optimization_monitor import OptimizationMonitor
from engagement_engine.storage.base import EngagementStore


logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

JOB_NAME = "plan_monitor"


def build_monitor(store: EngagementStore) -> OptimizationMonitor:
    settings = get_settings()
    planner = ExecutionPlanner(store, ConstraintManager(store, settings), settings=settings)
    return OptimizationMonitor(planner)


async def run_daily_plan_monitor(
    run_date: Optional[date] = None,
    force: bool = False,
    store: Optional[EngagementStore] = None,
) -> Dict[str, Any]:
    """
    Run the optimization monitor once for `run_date`.

    Args:
        run_date: Date the run is recorded under (default: today, UTC).
        force: Run even if a run for this date is already recorded.
        store: Store to monitor (default: the process-wide store).

    Returns:
        Dict with the following keys:
        - success: bool indicating if the monitor pass succeeded
        - date: The run date as string
        - skipped: True when the date was already processed
        - reason: Explanation if skipped
        - summary, alerts, recommendations: Monitor results when run
        - error: Error message if unsuccessful
    """
    target_date = run_date or utcnow().date()
    store = store or get_store()

    if not force:
        existing = await store.get_job_run(JOB_NAME, target_date)
        if existing:
            logger.info(f"Plan monitor already ran for {target_date}, skipping")
            return {
                'success': True,
                'skipped': True,
                'reason': 'Already ran',
                'date': str(target_date),
            }

    report = await build_monitor(store).run_monitor()
    if not report.success:
        logger.error(f"Plan monitor failed for {target_date}: {report.summary}")
        return {
            'success': False,
            'error': report.summary,
            'date': str(target_date),
        }

    details = {
        'plans': report.portfolioHealth.totalPlans,
        'underperforming': report.portfolioHealth.underperformingPlans,
        'alerts': len(report.alerts),
        'recommendations': len(report.recommendations),
    }
    await store.mark_job_run(JobRun(jobName=JOB_NAME, runDate=target_date, details=details))
    logger.info(f"Plan monitor completed for {target_date}: {report.summary}")

    return {
        'success': True,
        'skipped': False,
        'date': str(target_date),
        'summary': report.summary,
        'alerts': details['alerts'],
        'recommendations': details['recommendations'],
    }


if __name__ == "__main__":
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    print(asyncio.run(run_daily_plan_monitor()))
