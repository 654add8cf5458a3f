"""
Optimization Monitor Service

Watches active execution plans (scheduled, executing, paused) and compares
their completed outcomes against the predicted lift.

Performance Status (needs MIN_COMPLETED_FOR_ANALYSIS completed allocations):
- underperforming: actual/predicted < 0.8 (critical below 0.6)
- overperforming:  actual/predicted > 1.2
- on_track:        otherwise, or not enough data

A run produces per-plan metrics, insights, alerts (critical underperformance,
failure rate above 10%, more than half the portfolio underperforming) and
rebalance recommendations taken from ExecutionPlanner.suggest_rebalance.

Usage:
    monitor = OptimizationMonitor(planner)
    report = await monitor.run_monitor()
"""

import logging
from typing import List, Optional, Sequence

from engagement_engine.models.enums import (
    AllocationStatus,
    PerformanceStatus,
    PlanStatus,
    WarningSeverity,
)
from engagement_engine.models.schemas import (
    ExecutionPlan,
    MonitorAlert,
    MonitorInsight,
    MonitorReport,
    OptimizationRecommendation,
    PlanPerformanceMetrics,
    PortfolioHealth,
)
from engagement_engine.services.execution_planner import ExecutionPlanner


logger = logging.getLogger(__name__)


UNDERPERFORMANCE_THRESHOLD = 0.8
CRITICAL_UNDERPERFORMANCE_THRESHOLD = 0.6
OVERPERFORMANCE_THRESHOLD = 1.2
REBALANCE_VARIANCE_THRESHOLD = 0.2
MIN_COMPLETED_FOR_ANALYSIS = 10
FAILURE_RATE_ALERT = 0.1
PORTFOLIO_UNDERPERFORMING_SHARE = 0.5

MONITORED_STATUSES = (PlanStatus.EXECUTING, PlanStatus.PAUSED, PlanStatus.SCHEDULED)
MAX_MONITORED_PLANS = 500


def _performance_ratio(metrics: PlanPerformanceMetrics) -> float:
    return metrics.actualLift / max(metrics.predictedLift, 0.01)


class OptimizationMonitor:
    """Portfolio-level performance monitoring over an ExecutionPlanner."""

    def __init__(self, planner: ExecutionPlanner):
        self.planner = planner
        self.store = planner.store

    async def analyze_plan_performance(self, plan: ExecutionPlan) -> PlanPerformanceMetrics:
        completed = await self.store.list_allocations(
            plan.resultId, [AllocationStatus.COMPLETED]
        )
        predicted = sum(a.predictedLift for a in completed)
        actual = sum(a.actualOutcome or 0.0 for a in completed)

        variance = actual - predicted
        variance_pct = variance / predicted * 100 if predicted > 0 else 0.0

        status = PerformanceStatus.ON_TRACK
        if predicted > 0 and len(completed) >= MIN_COMPLETED_FOR_ANALYSIS:
            ratio = actual / predicted
            if ratio < UNDERPERFORMANCE_THRESHOLD:
                status = PerformanceStatus.UNDERPERFORMING
            elif ratio > OVERPERFORMANCE_THRESHOLD:
                status = PerformanceStatus.OVERPERFORMING

        requires_rebalance = (
            status == PerformanceStatus.UNDERPERFORMING
            and abs(variance_pct) > REBALANCE_VARIANCE_THRESHOLD * 100
        )

        return PlanPerformanceMetrics(
            planId=plan.id,
            planName=plan.name,
            status=plan.status,
            totalActions=plan.totalActions,
            completedActions=plan.completedActions,
            failedActions=plan.failedActions,
            progressPercent=(
                plan.completedActions / plan.totalActions * 100 if plan.totalActions > 0 else 0.0
            ),
            predictedLift=predicted,
            actualLift=actual,
            liftVariance=variance,
            liftVariancePercent=variance_pct,
            budgetUtilization=(
                plan.budgetSpent / plan.budgetAllocated * 100 if plan.budgetAllocated > 0 else 0.0
            ),
            failureRate=(
                plan.failedActions / plan.totalActions * 100 if plan.totalActions > 0 else 0.0
            ),
            performanceStatus=status,
            requiresRebalance=requires_rebalance,
        )

    async def _active_plans(self, plan_ids: Optional[Sequence[str]]) -> List[ExecutionPlan]:
        plans = await self.store.list_plans(statuses=MONITORED_STATUSES, limit=MAX_MONITORED_PLANS)
        if plan_ids:
            wanted = set(plan_ids)
            plans = [p for p in plans if p.id in wanted]
        return plans

    async def run_monitor(
        self,
        plan_ids: Optional[Sequence[str]] = None,
        check_rebalance: bool = True,
    ) -> MonitorReport:
        """
        Analyse active plans and build the monitor report.

        Args:
            plan_ids: Restrict the run to these plans.
            check_rebalance: Ask the planner for rebalance suggestions on plans
                that require one.
        """
        try:
            return await self._run(plan_ids, check_rebalance)
        except Exception as exc:
            logger.exception("Optimization monitor run failed")
            return MonitorReport(
                success=False,
                summary=f"Optimization monitoring failed: {exc}",
                portfolioHealth=PortfolioHealth(
                    totalPlans=0, executingPlans=0, underperformingPlans=0, avgPerformance=0
                ),
            )

    async def _run(
        self, plan_ids: Optional[Sequence[str]], check_rebalance: bool
    ) -> MonitorReport:
        plans = await self._active_plans(plan_ids)
        if not plans:
            return MonitorReport(
                success=True,
                summary="No active execution plans to monitor",
                portfolioHealth=PortfolioHealth(
                    totalPlans=0, executingPlans=0, underperformingPlans=0, avgPerformance=0
                ),
            )

        logger.info(f"Analyzing {len(plans)} execution plans")

        insights: List[MonitorInsight] = []
        alerts: List[MonitorAlert] = []
        metrics_list: List[PlanPerformanceMetrics] = []
        recommendations: List[OptimizationRecommendation] = []

        for plan in plans:
            metrics = await self.analyze_plan_performance(plan)
            metrics_list.append(metrics)
            lift_metrics = {
                "predictedLift": metrics.predictedLift,
                "actualLift": metrics.actualLift,
                "variance": metrics.liftVariance,
            }

            if metrics.performanceStatus == PerformanceStatus.UNDERPERFORMING:
                ratio = _performance_ratio(metrics)
                critical = ratio < CRITICAL_UNDERPERFORMANCE_THRESHOLD
                insights.append(MonitorInsight(
                    type="underperformance",
                    title=f'Plan "{plan.name}" Underperforming',
                    description=(
                        f"Execution plan is achieving {abs(metrics.liftVariancePercent):.1f}% "
                        f"below predicted outcomes"
                    ),
                    severity=WarningSeverity.CRITICAL if critical else WarningSeverity.WARNING,
                    planId=plan.id,
                    metrics=lift_metrics,
                    recommendation="Consider rebalancing the plan to improve outcomes",
                ))
                if critical:
                    alerts.append(MonitorAlert(
                        severity=WarningSeverity.CRITICAL,
                        title=f'Critical Underperformance in "{plan.name}"',
                        message=f"Plan is achieving {ratio * 100:.1f}% of predicted lift",
                        planIds=[plan.id],
                        suggestedActions=["Rebalance Plan", "Pause Plan"],
                    ))

                if metrics.requiresRebalance and check_rebalance:
                    suggestion = await self.planner.suggest_rebalance(plan.id)
                    if suggestion:
                        recommendations.append(OptimizationRecommendation(
                            planId=plan.id,
                            planName=plan.name,
                            reason=suggestion.reason,
                            confidence=suggestion.confidence,
                            estimatedImpact=suggestion.improvementPercent,
                            actionsToModify=suggestion.actionsToModify,
                            actionsToAdd=suggestion.actionsToAdd,
                            actionsToRemove=suggestion.actionsToRemove,
                            budgetChange=suggestion.estimatedCostChange,
                        ))

            elif metrics.performanceStatus == PerformanceStatus.OVERPERFORMING:
                insights.append(MonitorInsight(
                    type="overperformance",
                    title=f'Plan "{plan.name}" Exceeding Expectations',
                    description=(
                        f"Execution plan is achieving {abs(metrics.liftVariancePercent):.1f}% "
                        f"above predicted outcomes"
                    ),
                    severity=WarningSeverity.INFO,
                    planId=plan.id,
                    metrics=lift_metrics,
                    recommendation="Consider expanding the plan or applying learnings to other plans",
                ))

            if metrics.failedActions > metrics.totalActions * FAILURE_RATE_ALERT:
                alerts.append(MonitorAlert(
                    severity=WarningSeverity.WARNING,
                    title=f'High Failure Rate in "{plan.name}"',
                    message=(
                        f"{metrics.failedActions} actions ({metrics.failureRate:.1f}%) have failed"
                    ),
                    planIds=[plan.id],
                    suggestedActions=["Investigate Failures", "Pause Plan"],
                ))

        underperforming = sum(
            1 for m in metrics_list if m.performanceStatus == PerformanceStatus.UNDERPERFORMING
        )
        health = PortfolioHealth(
            totalPlans=len(metrics_list),
            executingPlans=sum(1 for m in metrics_list if m.status == PlanStatus.EXECUTING),
            underperformingPlans=underperforming,
            avgPerformance=(
                sum(_performance_ratio(m) for m in metrics_list) / len(metrics_list) * 100
            ),
        )

        if underperforming > len(metrics_list) * PORTFOLIO_UNDERPERFORMING_SHARE:
            alerts.append(MonitorAlert(
                severity=WarningSeverity.CRITICAL,
                title="Portfolio Underperformance Alert",
                message=(
                    f"{underperforming} of {len(metrics_list)} plans are underperforming. "
                    f"Consider portfolio-wide review."
                ),
                planIds=[
                    m.planId for m in metrics_list
                    if m.performanceStatus == PerformanceStatus.UNDERPERFORMING
                ],
                suggestedActions=["Review Portfolio"],
            ))

        return MonitorReport(
            success=True,
            summary=_summary(health, recommendations),
            insights=insights,
            alerts=alerts,
            planMetrics=metrics_list,
            recommendations=recommendations,
            portfolioHealth=health,
        )


def _summary(health: PortfolioHealth, recommendations: List[OptimizationRecommendation]) -> str:
    parts = [f"Analyzed {health.totalPlans} execution plans."]
    if health.executingPlans > 0:
        parts.append(f"{health.executingPlans} plans currently executing.")
    if health.underperformingPlans > 0:
        parts.append(f"{health.underperformingPlans} plans underperforming.")
    if health.avgPerformance > 0:
        parts.append(f"Average performance: {health.avgPerformance:.1f}% of predicted.")
    if recommendations:
        parts.append(f"{len(recommendations)} rebalance recommendations generated.")
    return " ".join(parts)
