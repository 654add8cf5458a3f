"""
Daily Counter Reset Job.

Zeroes rolling capacity and contact counters at period boundaries:
- daily capacity counters every day
- weekly capacity and contact counters on Mondays
- monthly capacity and contact counters on the first of the month

Each date is processed once; force=True re-runs it.

Usage:
    from engagement_engine.jobs.counter_reset import run_counter_reset

    result = await run_counter_reset()
"""

import asyncio
import logging
from datetime import date
from typing import Any, Dict, List, Optional

from engagement_engine.core.clock import utcnow
from engagement_engine.core.config import get_settings
from engagement_engine.core.dependencies import get_store
from engagement_engine.models.enums import CapacityPeriod
from engagement_engine.models.schemas import JobRun
from engagement_engine.services.constraint_manager import ConstraintManager
from engagement_engine.storage.base import EngagementStore


logger = logging.getLogger(__name__)


JOB_NAME = "counter_reset"


def periods_due(run_date: date) -> List[CapacityPeriod]:
    """Counter periods that start on `run_date`."""
    periods = [CapacityPeriod.DAILY]
    if run_date.weekday() == 0:
        periods.append(CapacityPeriod.WEEKLY)
    if run_date.day == 1:
        periods.append(CapacityPeriod.MONTHLY)
    return periods


async def run_counter_reset(
    run_date: Optional[date] = None,
    force: bool = False,
    store: Optional[EngagementStore] = None,
) -> Dict[str, Any]:
    target_date = run_date or utcnow().date()
    store = store or get_store()

    if not force and await store.get_job_run(JOB_NAME, target_date):
        return {
            'success': True,
            'skipped': True,
            'reason': 'Already ran',
            'date': str(target_date),
        }

    manager = ConstraintManager(store, get_settings())
    details: Dict[str, Any] = {}
    for period in periods_due(target_date):
        details[f'capacity_{period.value}'] = await manager.reset_capacity(period)
        # Contact counters only roll weekly and monthly
        if period != CapacityPeriod.DAILY:
            details[f'contacts_{period.value}'] = await manager.reset_contact_counters(period)

    await store.mark_job_run(JobRun(jobName=JOB_NAME, runDate=target_date, details=details))
    logger.info(f"Counter reset completed for {target_date}: {details}")

    return {
        'success': True,
        'skipped': False,
        'date': str(target_date),
        'reset': details,
    }


if __name__ == "__main__":
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    print(asyncio.run(run_counter_reset()))
