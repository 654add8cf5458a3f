"""
Constraint Manager Service

Validates proposed HCP touches against the standing resource rows and owns
every mutation of their counters.

Checks (each independent; order only affects which violation is listed first):
1. Capacity    - channel (and rep) daily/weekly/monthly used vs. limit.
                 error when exhausted, warning above capacity_warning_pct.
2. Contact     - do-not-contact flag, monthly (and optional weekly) touch
                 cap, per-channel cooldown. error.
3. Compliance  - active blackout windows matching channel, HCP scope and the
                 planned date. error.
4. Budget      - estimated cost vs. allocated - spent - committed for the
                 campaign/channel. error when insufficient, warning above
                 budget_warning_pct. Runs only with a cost and a campaign.
5. Territory   - rep without an active assignment to the HCP. warning.

A check result has passed=True iff no violation has severity `error`.

Counter mutations (consume/release capacity, commit/release budget, record
spend, record contact) are delegated to the store's atomic operations, so
two concurrent bookings can never oversubscribe the same row.

Usage:
    manager = ConstraintManager(store, settings)
    result = await manager.check_constraints(ProposedAction(...))
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Set, Tuple

from engagement_engine.core.clock import days_between, ensure_aware, utcnow
from engagement_engine.core.config import Settings, get_settings
from engagement_engine.models.enums import (
    CapacityHealth,
    CapacityPeriod,
    Channel,
    ConstraintType,
    ViolationSeverity,
    WindowType,
)
from engagement_engine.models.schemas import (
    BudgetAllocation,
    BudgetChannelSummary,
    BudgetStatus,
    BudgetSummary,
    CapacityStatus,
    CapacitySummaryItem,
    ChannelCapacity,
    ComplianceSummary,
    ComplianceWindow,
    ComplianceWindowSummary,
    ConstraintCheckResult,
    ConstraintSummary,
    ConstraintViolation,
    ContactEligibility,
    ContactLimitSummary,
    HCPProfile,
    HcpContactLimits,
    ProposedAction,
    TerritoryAssignment,
)
from engagement_engine.services.channel_health import format_number
from engagement_engine.storage.base import EngagementStore


logger = logging.getLogger(__name__)


# Reported as maxTouches when an HCP has no contact-limit row
UNLIMITED_TOUCHES = 999

CAPACITY_WARNING_STATUS_PCT = 70.0
CAPACITY_CRITICAL_STATUS_PCT = 90.0
NEAR_LIMIT_SHARE = 0.8
UPCOMING_WINDOW_DAYS = 30


def _limits_and_usage(row: ChannelCapacity) -> List[Tuple[int, Optional[int]]]:
    return [
        (row.dailyUsed, row.dailyLimit),
        (row.weeklyUsed, row.weeklyLimit),
        (row.monthlyUsed, row.monthlyLimit),
    ]


def capacity_utilization(row: ChannelCapacity) -> float:
    """
    Highest used/limit ratio across daily, weekly and monthly, in percent.

    Null limits are skipped and a zero limit counts as fully used.
    0 when the row has no limits at all.
    """
    ratios = [
        used / limit * 100 if limit > 0 else 100.0
        for used, limit in _limits_and_usage(row)
        if limit is not None
    ]
    return max(ratios) if ratios else 0.0


def capacity_status(row: ChannelCapacity) -> CapacityStatus:
    available = all(
        limit is None or used < limit for used, limit in _limits_and_usage(row)
    )
    return CapacityStatus(
        channel=row.channel,
        repId=row.repId,
        dailyUsed=row.dailyUsed,
        dailyLimit=row.dailyLimit,
        weeklyUsed=row.weeklyUsed,
        weeklyLimit=row.weeklyLimit,
        monthlyUsed=row.monthlyUsed,
        monthlyLimit=row.monthlyLimit,
        utilizationPct=capacity_utilization(row),
        available=available,
    )


def budget_status(rows: List[BudgetAllocation]) -> BudgetStatus:
    allocated = sum(r.allocatedAmount for r in rows)
    spent = sum(r.spentAmount for r in rows)
    committed = sum(r.committedAmount for r in rows)
    return BudgetStatus(
        totalAllocated=allocated,
        totalSpent=spent,
        totalCommitted=committed,
        available=allocated - spent - committed,
        utilizationPct=(spent + committed) / allocated * 100 if allocated > 0 else 0.0,
    )


def _next_month_start(as_of: datetime) -> datetime:
    if as_of.month == 12:
        return datetime(as_of.year + 1, 1, 1, tzinfo=timezone.utc)
    return datetime(as_of.year, as_of.month + 1, 1, tzinfo=timezone.utc)


def _next_week_start(as_of: datetime) -> datetime:
    monday = as_of.date() + timedelta(days=7 - as_of.weekday())
    return datetime(monday.year, monday.month, monday.day, tzinfo=timezone.utc)


def _isoformat(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


class ConstraintManager:
    """
    Constraint checks and counter mutations over an EngagementStore.

    Stateless apart from the store and settings, so one instance can be
    shared across requests.
    """

    def __init__(self, store: EngagementStore, settings: Optional[Settings] = None):
        self.store = store
        self.settings = settings or get_settings()

    # =========================================================================
    # Capacity
    # =========================================================================

    async def get_channel_capacity(
        self, channel: Channel, rep_id: Optional[str] = None
    ) -> Optional[CapacityStatus]:
        row = await self.store.get_channel_capacity(channel, rep_id)
        return capacity_status(row) if row else None

    async def list_channel_capacity(self) -> List[ChannelCapacity]:
        return await self.store.list_channel_capacity()

    async def upsert_channel_capacity(self, capacity: ChannelCapacity) -> ChannelCapacity:
        return await self.store.upsert_channel_capacity(capacity)

    async def consume_capacity(
        self, channel: Channel, amount: int = 1, rep_id: Optional[str] = None
    ) -> bool:
        """
        Use `amount` units of capacity on the (channel, rep) row.

        A channel without a capacity row is unconstrained and always succeeds.

        Returns:
            bool: False when the amount would exceed any non-null limit.
        """
        row = await self.store.get_channel_capacity(channel, rep_id)
        if row is None:
            return True

        updated = await self.store.adjust_capacity_usage(channel, rep_id, amount, enforce_limits=True)
        if updated is None:
            logger.warning(
                f"Capacity refused channel={channel.value} rep={rep_id} amount={amount}"
            )
            return False
        return True

    async def release_capacity(
        self, channel: Channel, amount: int = 1, rep_id: Optional[str] = None
    ) -> None:
        await self.store.adjust_capacity_usage(channel, rep_id, -amount, enforce_limits=False)

    async def reset_capacity(
        self, period: CapacityPeriod, channel: Optional[Channel] = None
    ) -> int:
        """Zero one period's counters, for one channel or all. Returns rows touched."""
        count = await self.store.reset_capacity_usage(period, channel)
        logger.info(f"Reset {period.value} capacity on {count} rows")
        return count

    # =========================================================================
    # HCP Contact Limits
    # =========================================================================

    async def can_contact_hcp(
        self,
        hcp_id: str,
        channel: Channel,
        as_of: Optional[datetime] = None,
    ) -> ContactEligibility:
        """
        Contact eligibility of an HCP on a channel at `as_of` (default now).

        Cooldown days are counted from the last contact to `as_of`.
        """
        when = ensure_aware(as_of) if as_of else utcnow()
        limits = await self.store.get_contact_limits(hcp_id)

        if limits is None:
            return ContactEligibility(
                eligible=True, currentTouches=0, maxTouches=UNLIMITED_TOUCHES
            )

        if limits.doNotContact:
            return ContactEligibility(
                eligible=False,
                reason=limits.doNotContactReason or "HCP has opted out of contact",
                currentTouches=0,
                maxTouches=0,
            )

        current = limits.touchesThisMonth
        maximum = (
            limits.maxTouchesPerMonth
            if limits.maxTouchesPerMonth is not None
            else self.settings.default_max_touches_per_month
        )

        if current >= maximum:
            return ContactEligibility(
                eligible=False,
                reason=f"Monthly contact limit reached ({current}/{maximum})",
                currentTouches=current,
                maxTouches=maximum,
                nextEligibleDate=_next_month_start(when),
            )

        if limits.maxTouchesPerWeek is not None and limits.touchesThisWeek >= limits.maxTouchesPerWeek:
            return ContactEligibility(
                eligible=False,
                reason=(
                    f"Weekly contact limit reached "
                    f"({limits.touchesThisWeek}/{limits.maxTouchesPerWeek})"
                ),
                currentTouches=current,
                maxTouches=maximum,
                nextEligibleDate=_next_week_start(when),
            )

        channel_limit = limits.channelLimits.get(channel)
        if (
            channel_limit is not None
            and limits.lastContactAt is not None
            and limits.lastContactChannel == channel
        ):
            elapsed = max(0, days_between(limits.lastContactAt, when))
            if elapsed < channel_limit.minDaysBetween:
                return ContactEligibility(
                    eligible=False,
                    reason=(
                        f"Cooldown period not met for {channel.value} "
                        f"({elapsed}/{channel_limit.minDaysBetween} days)"
                    ),
                    currentTouches=current,
                    maxTouches=maximum,
                    cooldownDaysRemaining=channel_limit.minDaysBetween - elapsed,
                    nextEligibleDate=(
                        limits.lastContactAt + timedelta(days=channel_limit.minDaysBetween)
                    ),
                )

        return ContactEligibility(eligible=True, currentTouches=current, maxTouches=maximum)

    async def get_next_eligible_date(
        self, hcp_id: str, channel: Channel, as_of: Optional[datetime] = None
    ) -> Optional[datetime]:
        """None when the HCP is already eligible (or no date can be derived)."""
        eligibility = await self.can_contact_hcp(hcp_id, channel, as_of)
        if eligibility.eligible:
            return None
        return eligibility.nextEligibleDate

    async def record_contact(
        self, hcp_id: str, channel: Channel, contacted_at: Optional[datetime] = None
    ) -> HcpContactLimits:
        return await self.store.increment_contact(
            hcp_id, channel, ensure_aware(contacted_at) if contacted_at else utcnow()
        )

    async def reset_contact_counters(self, period: CapacityPeriod) -> int:
        count = await self.store.reset_contact_counters(period)
        logger.info(f"Reset {period.value} contact counters on {count} HCPs")
        return count

    async def get_contact_limits(self, hcp_id: str) -> Optional[HcpContactLimits]:
        return await self.store.get_contact_limits(hcp_id)

    async def list_contact_limits(self) -> List[HcpContactLimits]:
        return await self.store.list_contact_limits()

    async def upsert_contact_limits(self, limits: HcpContactLimits) -> HcpContactLimits:
        return await self.store.upsert_contact_limits(limits)

    # =========================================================================
    # Compliance Windows
    # =========================================================================

    async def _hcp_territories(self, hcp_id: str) -> Set[str]:
        assignments = await self.store.list_territory_assignments(hcp_id=hcp_id)
        return {a.territory for a in assignments if a.territory}

    async def _window_matches_hcp(
        self,
        window: ComplianceWindow,
        hcp_id: Optional[str],
        hcp: Optional[HCPProfile],
    ) -> bool:
        scopes = (window.affectedHcpIds, window.affectedSpecialties, window.affectedTerritories)
        if all(scope is None for scope in scopes):
            return True
        if hcp_id is None:
            return False

        if window.affectedHcpIds and hcp_id in window.affectedHcpIds:
            return True
        if window.affectedSpecialties and hcp and hcp.specialty in window.affectedSpecialties:
            return True
        if window.affectedTerritories:
            territories = await self._hcp_territories(hcp_id)
            if territories.intersection(window.affectedTerritories):
                return True
        return False

    async def find_blocking_window(
        self,
        channel: Channel,
        when: datetime,
        hcp_id: Optional[str] = None,
        hcp: Optional[HCPProfile] = None,
    ) -> Optional[ComplianceWindow]:
        """First active blackout window covering channel, HCP and instant."""
        if hcp is None and hcp_id is not None:
            hcp = await self.store.get_hcp(hcp_id)

        for window in await self.get_active_windows(when):
            if window.windowType != WindowType.BLACKOUT:
                continue
            if window.channel is not None and window.channel != channel:
                continue
            if await self._window_matches_hcp(window, hcp_id, hcp):
                return window
        return None

    async def is_in_blackout(
        self, channel: Channel, when: datetime, hcp_id: Optional[str] = None
    ) -> bool:
        return await self.find_blocking_window(channel, ensure_aware(when), hcp_id) is not None

    async def get_active_windows(self, when: Optional[datetime] = None) -> List[ComplianceWindow]:
        moment = ensure_aware(when) if when else utcnow()
        windows = await self.store.list_compliance_windows(active_only=True)
        return [w for w in windows if w.startDate <= moment <= w.endDate]

    async def get_upcoming_windows(
        self, days_ahead: int = UPCOMING_WINDOW_DAYS, as_of: Optional[datetime] = None
    ) -> List[ComplianceWindow]:
        """Active windows starting between now and `days_ahead` days from now."""
        now = ensure_aware(as_of) if as_of else utcnow()
        horizon = now + timedelta(days=days_ahead)
        windows = await self.store.list_compliance_windows(active_only=True)
        upcoming = [w for w in windows if now <= w.startDate <= horizon]
        return sorted(upcoming, key=lambda w: w.startDate)

    async def list_compliance_windows(self) -> List[ComplianceWindow]:
        return await self.store.list_compliance_windows()

    async def get_compliance_window(self, window_id: str) -> Optional[ComplianceWindow]:
        return await self.store.get_compliance_window(window_id)

    async def save_compliance_window(self, window: ComplianceWindow) -> ComplianceWindow:
        return await self.store.save_compliance_window(window)

    async def delete_compliance_window(self, window_id: str) -> bool:
        return await self.store.delete_compliance_window(window_id)

    # =========================================================================
    # Budget
    # =========================================================================

    async def get_budget_status(
        self, campaign_id: Optional[str] = None, channel: Optional[Channel] = None
    ) -> BudgetStatus:
        rows = await self.store.list_budget_allocations(campaign_id, channel, active_only=True)
        return budget_status(rows)

    async def _campaign_budget_rows(
        self, campaign_id: str, channel: Channel
    ) -> List[BudgetAllocation]:
        rows = await self.store.list_budget_allocations(campaign_id, channel, active_only=True)
        if rows:
            return rows
        campaign_rows = await self.store.list_budget_allocations(campaign_id, active_only=True)
        return [r for r in campaign_rows if r.channel is None]

    async def resolve_budget_allocation(
        self, campaign_id: str, channel: Channel
    ) -> Optional[BudgetAllocation]:
        """
        Budget row to commit against: the (campaign, channel) row, else the
        campaign-wide row with no channel.
        """
        rows = await self._campaign_budget_rows(campaign_id, channel)
        return rows[0] if rows else None

    async def commit_budget(self, amount: float, budget_id: str) -> bool:
        """Reserve `amount`; refused when it exceeds the row's available amount."""
        updated = await self.store.adjust_budget(
            budget_id, committed_delta=amount, require_available=True
        )
        if updated is None:
            logger.warning(f"Budget commit refused budget={budget_id} amount={amount}")
            return False
        return True

    async def release_budget(self, amount: float, budget_id: str) -> None:
        await self.store.adjust_budget(budget_id, committed_delta=-amount)

    async def record_spend(
        self, amount: float, budget_id: str, release_commitment: bool = True
    ) -> None:
        await self.store.adjust_budget(
            budget_id,
            committed_delta=-amount if release_commitment else 0.0,
            spent_delta=amount,
        )

    async def list_budget_allocations(self, campaign_id: Optional[str] = None) -> List[BudgetAllocation]:
        return await self.store.list_budget_allocations(campaign_id, active_only=False)

    async def get_budget_allocation(self, budget_id: str) -> Optional[BudgetAllocation]:
        return await self.store.get_budget_allocation(budget_id)

    async def save_budget_allocation(self, budget: BudgetAllocation) -> BudgetAllocation:
        return await self.store.save_budget_allocation(budget)

    async def delete_budget_allocation(self, budget_id: str) -> bool:
        return await self.store.delete_budget_allocation(budget_id)

    # =========================================================================
    # Territory
    # =========================================================================

    async def get_assigned_reps(self, hcp_id: str) -> List[TerritoryAssignment]:
        return await self.store.list_territory_assignments(hcp_id=hcp_id)

    async def can_rep_contact_hcp(self, rep_id: str, hcp_id: str) -> bool:
        assignments = await self.store.list_territory_assignments(hcp_id=hcp_id, rep_id=rep_id)
        return bool(assignments)

    async def list_territory_assignments(self) -> List[TerritoryAssignment]:
        return await self.store.list_territory_assignments()

    async def save_territory_assignment(self, assignment: TerritoryAssignment) -> TerritoryAssignment:
        return await self.store.save_territory_assignment(assignment)

    async def delete_territory_assignment(self, assignment_id: str) -> bool:
        return await self.store.delete_territory_assignment(assignment_id)

    # =========================================================================
    # Constraint Check
    # =========================================================================

    def _capacity_violation(
        self, status: CapacityStatus, channel: Channel, warnings: List[str]
    ) -> Optional[ConstraintViolation]:
        label = channel.value if status.repId is None else f"{channel.value} (rep {status.repId})"

        if not status.available:
            return ConstraintViolation(
                constraintType=ConstraintType.CAPACITY,
                reason=f"Channel {label} capacity exhausted",
                severity=ViolationSeverity.ERROR,
                details={
                    "repId": status.repId,
                    "dailyUsed": status.dailyUsed,
                    "dailyLimit": status.dailyLimit,
                    "weeklyUsed": status.weeklyUsed,
                    "weeklyLimit": status.weeklyLimit,
                    "monthlyUsed": status.monthlyUsed,
                    "monthlyLimit": status.monthlyLimit,
                },
            )
        if status.utilizationPct > self.settings.capacity_warning_pct:
            warnings.append(f"Channel {label} capacity at {status.utilizationPct:.1f}%")
        return None

    async def check_constraints(self, action: ProposedAction) -> ConstraintCheckResult:
        """
        Run every constraint check for one proposed action.

        Violations are returned as data; nothing is raised for a failed check.
        """
        violations: List[ConstraintViolation] = []
        warnings: List[str] = []
        channel = action.channel
        planned = action.plannedDate

        # 1. Capacity
        channel_capacity = await self.get_channel_capacity(channel)
        rep_capacity = (
            await self.get_channel_capacity(channel, action.repId) if action.repId else None
        )
        for status in (channel_capacity, rep_capacity):
            if status is None:
                continue
            violation = self._capacity_violation(status, channel, warnings)
            if violation:
                violations.append(violation)

        # 2. Contact limits
        eligibility = await self.can_contact_hcp(action.hcpId, channel, planned)
        if not eligibility.eligible:
            violations.append(ConstraintViolation(
                constraintType=ConstraintType.CONTACT_LIMIT,
                reason=eligibility.reason or "Contact limit reached",
                severity=ViolationSeverity.ERROR,
                details={
                    "currentTouches": eligibility.currentTouches,
                    "maxTouches": eligibility.maxTouches,
                    "cooldownDaysRemaining": eligibility.cooldownDaysRemaining,
                    "nextEligibleDate": _isoformat(eligibility.nextEligibleDate),
                },
            ))

        # 3. Compliance blackouts
        window = await self.find_blocking_window(channel, planned, action.hcpId)
        if window is not None:
            violations.append(ConstraintViolation(
                constraintType=ConstraintType.COMPLIANCE,
                constraintId=window.id,
                reason=f"Channel {channel.value} is in blackout period: {window.name}",
                severity=ViolationSeverity.ERROR,
                details={
                    "windowName": window.name,
                    "reason": window.reason,
                    "endDate": _isoformat(window.endDate),
                },
            ))

        # 4. Budget
        # A campaign without budget rows is unconstrained
        budget = None
        if action.campaignId:
            rows = await self._campaign_budget_rows(action.campaignId, channel)
            if rows:
                budget = budget_status(rows)
        if action.estimatedCost and budget is not None:
            if action.estimatedCost > budget.available:
                violations.append(ConstraintViolation(
                    constraintType=ConstraintType.BUDGET,
                    reason=(
                        f"Insufficient budget: {format_number(action.estimatedCost)} required, "
                        f"{format_number(budget.available)} available"
                    ),
                    severity=ViolationSeverity.ERROR,
                    details={
                        "required": action.estimatedCost,
                        "available": budget.available,
                        "allocated": budget.totalAllocated,
                        "spent": budget.totalSpent,
                        "committed": budget.totalCommitted,
                    },
                ))
            elif budget.utilizationPct > self.settings.budget_warning_pct:
                warnings.append(f"Budget utilization at {budget.utilizationPct:.1f}%")

        # 5. Territory
        if action.repId and not await self.can_rep_contact_hcp(action.repId, action.hcpId):
            violations.append(ConstraintViolation(
                constraintType=ConstraintType.TERRITORY,
                reason=f"Rep {action.repId} not assigned to HCP {action.hcpId}",
                severity=ViolationSeverity.WARNING,
            ))

        passed = not any(v.severity == ViolationSeverity.ERROR for v in violations)
        return ConstraintCheckResult(
            passed=passed,
            violations=violations,
            warnings=warnings,
            capacityStatus=channel_capacity or rep_capacity,
            budgetStatus=budget,
        )

    # =========================================================================
    # Summary
    # =========================================================================

    async def get_constraint_summary(self, as_of: Optional[datetime] = None) -> ConstraintSummary:
        """Dashboard roll-up of capacity, budget, compliance and contact limits."""
        now = ensure_aware(as_of) if as_of else utcnow()

        capacity_items = []
        for row in await self.store.list_channel_capacity():
            utilization = capacity_utilization(row)
            if utilization >= CAPACITY_CRITICAL_STATUS_PCT:
                health = CapacityHealth.CRITICAL
            elif utilization >= CAPACITY_WARNING_STATUS_PCT:
                health = CapacityHealth.WARNING
            else:
                health = CapacityHealth.HEALTHY
            capacity_items.append(CapacitySummaryItem(
                channel=row.channel,
                repId=row.repId,
                dailyUsed=row.dailyUsed,
                dailyLimit=row.dailyLimit,
                weeklyUsed=row.weeklyUsed,
                weeklyLimit=row.weeklyLimit,
                monthlyUsed=row.monthlyUsed,
                monthlyLimit=row.monthlyLimit,
                utilizationPct=utilization,
                status=health,
            ))

        budget_rows = await self.store.list_budget_allocations(active_only=True)
        totals = budget_status(budget_rows)
        by_channel: Dict[str, List[float]] = {}
        for row in budget_rows:
            key = row.channel.value if row.channel else "unspecified"
            entry = by_channel.setdefault(key, [0.0, 0.0])
            entry[0] += row.allocatedAmount
            entry[1] += row.spentAmount

        active_windows = await self.get_active_windows(now)
        upcoming_windows = await self.get_upcoming_windows(UPCOMING_WINDOW_DAYS, now)

        affected = 0
        for window in active_windows:
            if window.affectedHcpIds is not None:
                affected += len(window.affectedHcpIds)
            else:
                affected = await self.store.count_hcps()
                break

        contact_rows = await self.store.list_contact_limits()
        at_limit = near_limit = 0
        utilization_total = 0.0
        for limits in contact_rows:
            maximum = (
                limits.maxTouchesPerMonth
                if limits.maxTouchesPerMonth is not None
                else self.settings.default_max_touches_per_month
            )
            touches = limits.touchesThisMonth
            if touches >= maximum:
                at_limit += 1
            elif touches >= maximum * NEAR_LIMIT_SHARE:
                near_limit += 1
            utilization_total += touches / maximum * 100 if maximum > 0 else 100.0

        return ConstraintSummary(
            capacity=capacity_items,
            budget=BudgetSummary(
                totalAllocated=totals.totalAllocated,
                totalSpent=totals.totalSpent,
                totalCommitted=totals.totalCommitted,
                utilizationPct=totals.utilizationPct,
                byChannel=[
                    BudgetChannelSummary(
                        channel=key, allocated=values[0], spent=values[1],
                        remaining=values[0] - values[1],
                    )
                    for key, values in by_channel.items()
                ],
            ),
            compliance=ComplianceSummary(
                activeBlackouts=sum(
                    1 for w in active_windows if w.windowType == WindowType.BLACKOUT
                ),
                upcomingBlackouts=sum(
                    1 for w in upcoming_windows if w.windowType == WindowType.BLACKOUT
                ),
                affectedHcpCount=affected,
                windows=[
                    ComplianceWindowSummary(
                        id=w.id,
                        name=w.name,
                        windowType=w.windowType,
                        startDate=w.startDate,
                        endDate=w.endDate,
                        affectedCount=(
                            len(w.affectedHcpIds) if w.affectedHcpIds is not None else affected
                        ),
                    )
                    for w in active_windows
                ],
            ),
            contactLimits=ContactLimitSummary(
                hcpsAtLimit=at_limit,
                hcpsNearLimit=near_limit,
                avgUtilization=utilization_total / len(contact_rows) if contact_rows else 0.0,
            ),
        )
