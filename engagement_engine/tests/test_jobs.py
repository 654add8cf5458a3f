"""
Pytest test module for the scheduled jobs in engagement_engine.jobs.

Tests cover:
- Daily plan monitor job: run recording, idempotency, force re-run, failures
- Counter reset job: period boundaries, counter zeroing, idempotency

Both jobs receive an explicit InMemoryStore so no process-wide state leaks
between tests.
"""

from datetime import date
from unittest.mock import AsyncMock

import pytest

from engagement_engine.jobs.counter_reset import JOB_NAME as RESET_JOB
from engagement_engine.jobs.counter_reset import periods_due, run_counter_reset
from engagement_engine.jobs.plan_monitor import JOB_NAME as MONITOR_JOB
from engagement_engine.jobs.plan_monitor import run_daily_plan_monitor
from engagement_engine.models.enums import CapacityPeriod, Channel
from engagement_engine.models.schemas import ChannelCapacity, HcpContactLimits, JobRun


MONDAY = date(2026, 3, 2)
WEDNESDAY = date(2026, 3, 4)
FIRST_OF_MONTH = date(2026, 4, 1)


# =============================================================================
# Test Class: TestPlanMonitorJob
# =============================================================================

@pytest.mark.asyncio
class TestPlanMonitorJob:
    """Tests for run_daily_plan_monitor."""

    async def test_records_successful_run(self, store) -> None:
        """
        Test that a successful monitor pass is returned and recorded.
        """
        # Act
        result = await run_daily_plan_monitor(run_date=MONDAY, store=store)

        # Assert
        assert result['success'] is True
        assert result['skipped'] is False
        assert result['date'] == '2026-03-02'
        assert result['summary'] == "No active execution plans to monitor"
        assert result['alerts'] == 0
        assert result['recommendations'] == 0

        run = await store.get_job_run(MONITOR_JOB, MONDAY)
        assert run is not None
        assert run.details['plans'] == 0

    async def test_skips_when_already_ran(self, store) -> None:
        """
        Test that a second run for the same date is skipped.
        """
        # Arrange
        await store.mark_job_run(JobRun(jobName=MONITOR_JOB, runDate=MONDAY))

        # Act
        result = await run_daily_plan_monitor(run_date=MONDAY, store=store)

        # Assert
        assert result['success'] is True
        assert result['skipped'] is True
        assert result['reason'] == 'Already ran'

    async def test_force_reruns(self, store) -> None:
        # Arrange
        await store.mark_job_run(JobRun(jobName=MONITOR_JOB, runDate=MONDAY))

        # Act
        result = await run_daily_plan_monitor(run_date=MONDAY, force=True, store=store)

        # Assert
        assert result['skipped'] is False
        assert 'summary' in result

    async def test_failure_is_not_recorded(self, store) -> None:
        """
        Test that a failed pass reports the error and leaves the date open
        for a retry.
        """
        # Arrange
        store.list_plans = AsyncMock(side_effect=RuntimeError("connection lost"))

        # Act
        result = await run_daily_plan_monitor(run_date=MONDAY, store=store)

        # Assert
        assert result['success'] is False
        assert result['error'] == "Optimization monitoring failed: connection lost"
        assert await store.get_job_run(MONITOR_JOB, MONDAY) is None


# =============================================================================
# Test Class: TestPeriodsDue
# =============================================================================

class TestPeriodsDue:

    @pytest.mark.parametrize('run_date,expected', [
        (WEDNESDAY, [CapacityPeriod.DAILY]),
        (MONDAY, [CapacityPeriod.DAILY, CapacityPeriod.WEEKLY]),
        (FIRST_OF_MONTH, [CapacityPeriod.DAILY, CapacityPeriod.MONTHLY]),
        (date(2026, 6, 1), [CapacityPeriod.DAILY, CapacityPeriod.WEEKLY, CapacityPeriod.MONTHLY]),
    ])
    def test_periods(self, run_date, expected) -> None:
        assert periods_due(run_date) == expected


# =============================================================================
# Test Class: TestCounterResetJob
# =============================================================================

@pytest.mark.asyncio
class TestCounterResetJob:
    """Tests for run_counter_reset."""

    async def _seed_counters(self, store) -> None:
        await store.upsert_channel_capacity(ChannelCapacity(
            channel=Channel.EMAIL, dailyLimit=10, weeklyLimit=40, monthlyLimit=100,
            dailyUsed=5, weeklyUsed=20, monthlyUsed=60,
        ))
        await store.upsert_contact_limits(HcpContactLimits(
            hcpId='hcp-1', touchesThisWeek=2, touchesThisMonth=6,
        ))

    async def test_midweek_resets_daily_only(self, store) -> None:
        """
        Test that a plain weekday only zeroes daily capacity.
        """
        # Arrange
        await self._seed_counters(store)

        # Act
        result = await run_counter_reset(run_date=WEDNESDAY, store=store)

        # Assert
        assert result['reset'] == {'capacity_daily': 1}
        capacity = await store.get_channel_capacity(Channel.EMAIL)
        assert capacity.dailyUsed == 0
        assert capacity.weeklyUsed == 20
        limits = await store.get_contact_limits('hcp-1')
        assert limits.touchesThisWeek == 2

    async def test_monday_resets_weekly_counters(self, store) -> None:
        # Arrange
        await self._seed_counters(store)

        # Act
        result = await run_counter_reset(run_date=MONDAY, store=store)

        # Assert
        assert result['reset'] == {
            'capacity_daily': 1,
            'capacity_weekly': 1,
            'contacts_weekly': 1,
        }
        capacity = await store.get_channel_capacity(Channel.EMAIL)
        assert capacity.weeklyUsed == 0
        assert capacity.monthlyUsed == 60
        limits = await store.get_contact_limits('hcp-1')
        assert limits.touchesThisWeek == 0
        assert limits.touchesThisMonth == 6

    async def test_first_of_month_resets_monthly_counters(self, store) -> None:
        # Arrange
        await self._seed_counters(store)

        # Act
        await run_counter_reset(run_date=FIRST_OF_MONTH, store=store)

        # Assert
        capacity = await store.get_channel_capacity(Channel.EMAIL)
        assert capacity.monthlyUsed == 0
        limits = await store.get_contact_limits('hcp-1')
        assert limits.touchesThisMonth == 0

    async def test_idempotent_per_date(self, store) -> None:
        """
        Test that the same date is processed once unless forced.
        """
        # Arrange
        await self._seed_counters(store)
        await run_counter_reset(run_date=WEDNESDAY, store=store)
        capacity = await store.get_channel_capacity(Channel.EMAIL)
        await store.upsert_channel_capacity(capacity.model_copy(update={'dailyUsed': 3}))

        # Act
        skipped = await run_counter_reset(run_date=WEDNESDAY, store=store)

        # Assert
        assert skipped['skipped'] is True
        assert (await store.get_channel_capacity(Channel.EMAIL)).dailyUsed == 3

        forced = await run_counter_reset(run_date=WEDNESDAY, force=True, store=store)
        assert forced['skipped'] is False
        assert (await store.get_channel_capacity(Channel.EMAIL)).dailyUsed == 0

        run = await store.get_job_run(RESET_JOB, WEDNESDAY)
        assert run.details == {'capacity_daily': 1}
