"""
Optimization Monitor Tests

Test Coverage:
- Empty portfolio
- Underperforming plans: insights, critical alerts, rebalance recommendations
- Overperforming and insufficient-data plans
- High failure rate and portfolio-wide alerts
- Plan filtering and failure reporting
"""

from unittest.mock import AsyncMock

import pytest

from engagement_engine.models.enums import Channel, PerformanceStatus, WarningSeverity
from engagement_engine.models.schemas import ChannelCapacity
from engagement_engine.services.optimization_monitor import OptimizationMonitor
from engagement_engine.services.outcome_strategy import RecordedOutcomeStrategy


pytestmark = pytest.mark.asyncio


@pytest.fixture
def monitor(planner) -> OptimizationMonitor:
    return OptimizationMonitor(planner)


async def _executing_plan(planner, store, seed_result, count: int = 12, daily_limit: int = 10):
    """Book `daily_limit` of `count` allocations and run them; the plan stays executing."""
    await store.upsert_channel_capacity(
        ChannelCapacity(channel=Channel.EMAIL, dailyLimit=daily_limit)
    )
    result = await seed_result(count=count)
    plan = await planner.create_plan(result.id, "Q1 push")
    await planner.book_resources(plan.id)
    await planner.execute_plan(plan.id)
    return plan


async def test_no_active_plans(monitor) -> None:
    report = await monitor.run_monitor()

    assert report.success is True
    assert report.summary == "No active execution plans to monitor"
    assert report.portfolioHealth.totalPlans == 0


async def test_underperforming_plan(monitor, planner, store, seed_result, fixed_outcome) -> None:
    fixed_outcome(0.5)
    plan = await _executing_plan(planner, store, seed_result)

    report = await monitor.run_monitor()

    assert report.success is True
    metrics = report.planMetrics[0]
    assert metrics.performanceStatus == PerformanceStatus.UNDERPERFORMING
    assert metrics.liftVariancePercent == pytest.approx(-50)
    assert metrics.requiresRebalance is True

    assert report.insights[0].type == "underperformance"
    assert report.insights[0].severity == WarningSeverity.CRITICAL
    assert [a.title for a in report.alerts] == [
        'Critical Underperformance in "Q1 push"',
        "Portfolio Underperformance Alert",
    ]
    assert report.alerts[0].message == "Plan is achieving 50.0% of predicted lift"

    assert len(report.recommendations) == 1
    assert report.recommendations[0].planId == plan.id
    assert report.recommendations[0].estimatedImpact == 15

    health = report.portfolioHealth
    assert health.executingPlans == 1
    assert health.underperformingPlans == 1
    assert health.avgPerformance == pytest.approx(50)
    assert report.summary == (
        "Analyzed 1 execution plans. 1 plans currently executing. "
        "1 plans underperforming. Average performance: 50.0% of predicted. "
        "1 rebalance recommendations generated."
    )


async def test_rebalance_check_disabled(monitor, planner, store, seed_result, fixed_outcome) -> None:
    fixed_outcome(0.5)
    await _executing_plan(planner, store, seed_result)

    report = await monitor.run_monitor(check_rebalance=False)

    assert report.recommendations == []


async def test_overperforming_plan(monitor, planner, store, seed_result, fixed_outcome) -> None:
    fixed_outcome(1.5)
    await _executing_plan(planner, store, seed_result)

    report = await monitor.run_monitor()

    assert report.planMetrics[0].performanceStatus == PerformanceStatus.OVERPERFORMING
    assert report.insights[0].type == "overperformance"
    assert report.insights[0].severity == WarningSeverity.INFO
    assert report.alerts == []


async def test_too_few_outcomes_is_on_track(monitor, planner, store, seed_result, fixed_outcome) -> None:
    fixed_outcome(0.1)
    await _executing_plan(planner, store, seed_result, count=3, daily_limit=2)

    report = await monitor.run_monitor()

    assert report.planMetrics[0].performanceStatus == PerformanceStatus.ON_TRACK
    assert report.insights == []


async def test_high_failure_rate(monitor, planner, store, seed_result) -> None:
    planner.outcome_strategy = RecordedOutcomeStrategy(store)
    await _executing_plan(planner, store, seed_result)

    report = await monitor.run_monitor()

    assert [a.title for a in report.alerts] == ['High Failure Rate in "Q1 push"']
    assert report.alerts[0].message == "10 actions (83.3%) have failed"


async def test_filter_by_plan_ids(monitor, planner, store, seed_result, fixed_outcome) -> None:
    fixed_outcome(1.0)
    plan = await _executing_plan(planner, store, seed_result)

    assert (await monitor.run_monitor(plan_ids=["other"])).portfolioHealth.totalPlans == 0
    assert (await monitor.run_monitor(plan_ids=[plan.id])).portfolioHealth.totalPlans == 1


async def test_failure_is_reported(monitor, store) -> None:
    store.list_plans = AsyncMock(side_effect=RuntimeError("connection lost"))

    report = await monitor.run_monitor()

    assert report.success is False
    assert report.summary == "Optimization monitoring failed: connection lost"
