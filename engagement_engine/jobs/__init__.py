"""
Scheduled jobs for the Engagement Engine.

- plan_monitor: daily optimization monitor pass over active execution plans
- counter_reset: zeroes daily, weekly and monthly capacity and contact counters

Idempotency:
Every job records its run in the store's job_runs state keyed by
(job name, date) and skips a date it has already processed. A force flag
(force=True) re-runs a date on purpose.

Each job can also be run directly:
    python -m engagement_engine.jobs.plan_monitor
"""

from engagement_engine.jobs.plan_monitor import run_daily_plan_monitor
from engagement_engine.jobs.counter_reset import run_counter_reset

__all__ = [
    'run_daily_plan_monitor',
    'run_counter_reset',
]
