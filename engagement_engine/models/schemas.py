"""
Pydantic models for the Engagement Engine.

This module provides type-safe validation and serialization for the domain
entities (HCP profiles, standing resource rows, execution plans and
allocations), the derived decision outputs (channel health, next best actions,
constraint check results, saturation context, execution reports) and the API
request bodies.

Field names are camelCase to match the JSON contracts consumed by dashboards.
All models use Pydantic v2 syntax. Datetime fields accept naive values and
normalize them to UTC.
"""

from datetime import date, datetime
from typing import Annotated, Any, Dict, List, Optional
from uuid import uuid4

from pydantic import (
    AfterValidator,
    BaseModel,
    ConfigDict,
    Field,
    computed_field,
    model_validator,
)

from engagement_engine.core.clock import ensure_aware, utcnow
from engagement_engine.models.enums import (
    ActionType,
    AdoptionStage,
    AllocationStatus,
    CapacityHealth,
    Channel,
    ConstraintType,
    HealthStatus,
    MsiDirection,
    PerformanceStatus,
    PlanStatus,
    RebalanceTrigger,
    SaturationRiskLevel,
    SaturationWarningType,
    Urgency,
    ViolationSeverity,
    WarningSeverity,
    WindowType,
)


UtcDatetime = Annotated[datetime, AfterValidator(ensure_aware)]


def _new_id() -> str:
    return str(uuid4())


# =============================================================================
# HCP Profile
# =============================================================================


class ChannelEngagement(BaseModel):
    """
    Engagement snapshot for one channel of one HCP.

    `lastContactDays` may be given directly; otherwise it is derived from
    `lastContact` at classification time.
    """
    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "channel": "email",
                "score": 85,
                "totalTouches": 2,
                "responseRate": 40,
                "lastContactDays": 12,
            }
        }
    )

    channel: Channel
    score: float = Field(default=0, ge=0, le=100, description="Affinity score 0-100")
    totalTouches: int = Field(default=0, ge=0)
    responseRate: float = Field(default=0, ge=0, description="Response rate in percent")
    lastContactDays: Optional[int] = Field(default=None, ge=0)
    lastContact: Optional[UtcDatetime] = None


class HCPProfile(BaseModel):
    """
    Healthcare provider profile, read-only to the engine.

    Holds exactly one engagement snapshot per channel: duplicates are rejected
    and missing channels are filled with empty snapshots.
    """

    id: str = Field(..., min_length=1)
    npi: Optional[str] = Field(default=None, description="External identifier")
    firstName: str = ""
    lastName: str = ""
    specialty: Optional[str] = None
    tier: Optional[str] = None
    channelPreference: Optional[Channel] = None
    channelEngagements: List[ChannelEngagement] = Field(default_factory=list)

    @model_validator(mode="after")
    def _one_snapshot_per_channel(self) -> "HCPProfile":
        seen = set()
        for engagement in self.channelEngagements:
            if engagement.channel in seen:
                raise ValueError(
                    f"Duplicate engagement snapshot for channel {engagement.channel.value}"
                )
            seen.add(engagement.channel)

        for channel in Channel:
            if channel not in seen:
                self.channelEngagements.append(ChannelEngagement(channel=channel))
        return self

    @property
    def fullName(self) -> str:
        return f"{self.firstName} {self.lastName}".strip()


# =============================================================================
# Channel Health
# =============================================================================


class HealthThresholds(BaseModel):
    """Thresholds for channel health classification."""

    staleThresholdDays: int = 60
    blockedResponseRate: float = 10
    blockedMinTouches: int = 5
    opportunityMinScore: float = 70
    opportunityMaxTouches: int = 3
    activeMinResponseRate: float = 30
    activeMaxDaysSinceContact: int = 30


class ChannelHealth(BaseModel):
    """Derived health of one channel. Recomputed on demand, never persisted."""

    channel: Channel
    status: HealthStatus
    score: float
    lastContactDays: Optional[int] = None
    totalTouches: int
    responseRate: float
    reasoning: str


class CohortChannelHealth(BaseModel):
    """Status distribution (percent per status) for one channel across a cohort."""

    channel: Channel
    distribution: Dict[str, int]
    totalHcps: int
    primaryIssue: Optional[HealthStatus] = None
    recommendation: str


class HealthSummary(BaseModel):
    healthyChannels: int
    issueChannels: int
    opportunityChannels: int
    primaryRecommendation: str


# =============================================================================
# Next Best Action
# =============================================================================


class NBAConfig(BaseModel):
    """Next-best-action generation configuration."""

    prioritizeOpportunities: bool = True
    addressBlocked: bool = True
    reEngageThresholdDays: int = 60
    minConfidenceThreshold: int = Field(default=40, ge=0, le=100)


class NBAMetrics(BaseModel):
    channelScore: float
    responseRate: float
    lastContactDays: Optional[int] = None
    totalTouches: int = 0


class NextBestAction(BaseModel):
    """
    Single recommended channel/action for an HCP.

    Confidence is an integer in [0, 100].
    """
    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "hcpId": "hcp-001",
                "hcpName": "Jane Doe",
                "recommendedChannel": "email",
                "actionType": "expand",
                "confidence": 100,
                "reasoning": "High affinity (score: 85) with limited engagement (2 touches). "
                             "Significant growth potential. (Aligned with stated channel preference)",
                "urgency": "high",
                "suggestedTiming": "Within the next week - capitalize on affinity while engagement is fresh",
                "channelHealth": "opportunity",
                "metrics": {
                    "channelScore": 85,
                    "responseRate": 0,
                    "lastContactDays": None,
                    "totalTouches": 2,
                },
            }
        }
    )

    hcpId: str
    hcpName: str = ""
    recommendedChannel: Channel
    actionType: ActionType
    confidence: int = Field(..., ge=0, le=100)
    reasoning: str
    urgency: Urgency
    suggestedTiming: str
    channelHealth: HealthStatus
    metrics: NBAMetrics


class NBASummary(BaseModel):
    totalActions: int
    byUrgency: Dict[str, int]
    byActionType: Dict[str, int]
    byChannel: Dict[str, int]
    avgConfidence: int


# =============================================================================
# Constraint Manager
# =============================================================================


class ProposedAction(BaseModel):
    """Action submitted to the constraint manager for validation."""
    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "hcpId": "hcp-001",
                "channel": "rep_visit",
                "actionType": "reach_out",
                "plannedDate": "2026-03-02T09:00:00Z",
                "estimatedCost": 150.0,
                "campaignId": "camp-q1",
                "repId": "rep-17",
            }
        }
    )

    hcpId: str
    channel: Channel
    actionType: str
    plannedDate: UtcDatetime = Field(default_factory=utcnow)
    estimatedCost: Optional[float] = Field(default=None, ge=0)
    campaignId: Optional[str] = None
    repId: Optional[str] = None


class ConstraintViolation(BaseModel):
    constraintType: ConstraintType
    constraintId: Optional[str] = None
    reason: str
    severity: ViolationSeverity
    details: Optional[Dict[str, Any]] = None


class CapacityStatus(BaseModel):
    """Usage of one channel capacity row. A None limit is unlimited."""

    channel: Channel
    repId: Optional[str] = None
    dailyUsed: int = 0
    dailyLimit: Optional[int] = None
    weeklyUsed: int = 0
    weeklyLimit: Optional[int] = None
    monthlyUsed: int = 0
    monthlyLimit: Optional[int] = None
    utilizationPct: float = 0.0
    available: bool = True


class BudgetStatus(BaseModel):
    """Aggregate of active budget rows. available = allocated - spent - committed."""

    totalAllocated: float = 0.0
    totalSpent: float = 0.0
    totalCommitted: float = 0.0
    available: float = 0.0
    utilizationPct: float = 0.0


class ConstraintCheckResult(BaseModel):
    """
    Outcome of checking one proposed action.

    `passed` is true iff no violation has severity `error`.
    """

    passed: bool
    violations: List[ConstraintViolation] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    capacityStatus: Optional[CapacityStatus] = None
    budgetStatus: Optional[BudgetStatus] = None


class ContactEligibility(BaseModel):
    eligible: bool
    reason: Optional[str] = None
    currentTouches: int = 0
    maxTouches: int = 0
    cooldownDaysRemaining: Optional[int] = None
    nextEligibleDate: Optional[UtcDatetime] = None


# =============================================================================
# Standing Resource Entities
# =============================================================================


class ChannelCapacity(BaseModel):
    """
    Capacity counters for a channel, optionally scoped to one rep.

    Keyed by (channel, repId); repId None is the channel-wide row.
    """

    id: str = Field(default_factory=_new_id)
    channel: Channel
    repId: Optional[str] = None
    dailyLimit: Optional[int] = Field(default=None, ge=0)
    weeklyLimit: Optional[int] = Field(default=None, ge=0)
    monthlyLimit: Optional[int] = Field(default=None, ge=0)
    dailyUsed: int = Field(default=0, ge=0)
    weeklyUsed: int = Field(default=0, ge=0)
    monthlyUsed: int = Field(default=0, ge=0)
    isActive: bool = True
    updatedAt: Optional[UtcDatetime] = None


class ChannelLimit(BaseModel):
    """Per-channel contact rule inside an HCP's contact limits."""

    maxPerWeek: Optional[int] = Field(default=None, ge=0)
    maxPerMonth: Optional[int] = Field(default=None, ge=0)
    minDaysBetween: int = Field(default=0, ge=0)


class HcpContactLimits(BaseModel):
    """
    Contact frequency state for one HCP. A None monthly max falls back to the
    configured default.
    """

    hcpId: str
    maxTouchesPerWeek: Optional[int] = Field(default=None, ge=0)
    maxTouchesPerMonth: Optional[int] = Field(default=None, ge=0)
    touchesThisWeek: int = Field(default=0, ge=0)
    touchesThisMonth: int = Field(default=0, ge=0)
    lastContactAt: Optional[UtcDatetime] = None
    lastContactChannel: Optional[Channel] = None
    channelLimits: Dict[Channel, ChannelLimit] = Field(default_factory=dict)
    doNotContact: bool = False
    doNotContactReason: Optional[str] = None
    updatedAt: Optional[UtcDatetime] = None


class ComplianceWindow(BaseModel):
    """
    Date range during which contact is restricted.

    Null scope fields (channel, affected ids, specialties, territories) mean
    "applies to all".
    """

    id: str = Field(default_factory=_new_id)
    name: str
    description: Optional[str] = None
    channel: Optional[Channel] = None
    windowType: WindowType = WindowType.BLACKOUT
    startDate: UtcDatetime
    endDate: UtcDatetime
    affectedHcpIds: Optional[List[str]] = None
    affectedSpecialties: Optional[List[str]] = None
    affectedTerritories: Optional[List[str]] = None
    reason: Optional[str] = None
    isActive: bool = True

    @model_validator(mode="after")
    def _end_after_start(self) -> "ComplianceWindow":
        if self.endDate < self.startDate:
            raise ValueError("endDate must not precede startDate")
        return self


class BudgetAllocation(BaseModel):
    """Budget pool for a campaign and (optionally) a channel."""

    id: str = Field(default_factory=_new_id)
    campaignId: Optional[str] = None
    channel: Optional[Channel] = None
    allocatedAmount: float = Field(..., ge=0)
    spentAmount: float = Field(default=0.0, ge=0)
    committedAmount: float = Field(default=0.0, ge=0)
    periodStart: Optional[UtcDatetime] = None
    periodEnd: Optional[UtcDatetime] = None
    isActive: bool = True
    updatedAt: Optional[UtcDatetime] = None

    @property
    def available(self) -> float:
        return self.allocatedAmount - self.spentAmount - self.committedAmount


class TerritoryAssignment(BaseModel):
    """Rep to HCP mapping."""

    id: str = Field(default_factory=_new_id)
    repId: str
    repName: str = ""
    repEmail: Optional[str] = None
    hcpId: str
    assignmentType: str = "primary"
    territory: Optional[str] = None
    region: Optional[str] = None
    isActive: bool = True


# =============================================================================
# Message Saturation
# =============================================================================


class MessageTheme(BaseModel):
    id: str = Field(default_factory=_new_id)
    name: str
    category: Optional[str] = "general"
    isActive: bool = True


class MessageExposure(BaseModel):
    """
    Exposure of one HCP to one message theme, with its derived MSI.

    `msi`, `msiDirection` and `saturationRisk` are filled in when the exposure
    is recorded.
    """

    hcpId: str
    messageThemeId: str
    themeName: Optional[str] = None
    themeCategory: Optional[str] = None
    touchFrequency: int = Field(default=0, ge=0)
    uniqueChannels: int = Field(default=1, ge=0)
    channelDiversity: Optional[float] = Field(default=None, ge=0, le=1)
    engagementRate: Optional[float] = Field(default=None, ge=0)
    engagementDecay: Optional[float] = None
    adoptionStage: Optional[AdoptionStage] = None
    msi: Optional[float] = Field(default=None, ge=0, le=100)
    msiDirection: Optional[MsiDirection] = None
    saturationRisk: Optional[SaturationRiskLevel] = None
    measuredAt: UtcDatetime = Field(default_factory=utcnow)


class MsiComponents(BaseModel):
    frequencyComponent: float
    diversityComponent: float
    decayComponent: float
    stageModifier: float


class ThemeRef(BaseModel):
    id: str
    name: str
    msi: float
    category: Optional[str] = None


class HcpSaturationSummary(BaseModel):
    """Per-HCP saturation roll-up over all theme exposures."""

    hcpId: str
    hcpName: Optional[str] = None
    overallMsi: float
    themesAtRisk: int
    totalThemes: int
    topSaturatedTheme: Optional[ThemeRef] = None
    exposures: List[MessageExposure]
    riskLevel: SaturationRiskLevel
    recommendedAction: Optional[str] = None


class SaturationWarning(BaseModel):
    type: SaturationWarningType
    severity: WarningSeverity
    themeId: str
    themeName: str
    currentMsi: float
    message: str
    recommendedAction: str
    alternativeThemes: Optional[List[ThemeRef]] = None


class ThemeScoreModifier(BaseModel):
    themeId: str
    themeName: str
    scoreAdjustment: int
    reason: str
    msi: float
    riskLevel: SaturationRiskLevel


class DecayPoint(BaseModel):
    day: int
    projectedMsi: float


class ThemeSimulationResult(BaseModel):
    themeId: str
    themeName: str
    currentMsi: float
    projectedMsi: int
    msiChange: int
    pauseDays: int
    riskLevelBefore: SaturationRiskLevel
    riskLevelAfter: SaturationRiskLevel
    recommendation: str
    decayCurve: List[DecayPoint]


class SuggestedTheme(BaseModel):
    id: str
    name: str
    msi: float
    category: Optional[str] = "general"
    reason: str


class BlockedTheme(BaseModel):
    id: str
    name: str
    msi: float
    reason: str


class SaturationContext(BaseModel):
    warnings: List[SaturationWarning]
    themeModifiers: List[ThemeScoreModifier]
    suggestedThemes: List[SuggestedTheme]
    blockedThemes: List[BlockedTheme]
    overallSaturationRisk: SaturationRiskLevel
    confidenceAdjustment: int


class SaturationAwareNBA(NextBestAction):
    saturationContext: Optional[SaturationContext] = None


class SaturationBreakdown(BaseModel):
    hcpsWithSaturationData: int
    bySaturationRisk: Dict[str, int]
    totalWarnings: int
    criticalWarnings: int
    blockedThemes: int
    suggestedOpportunities: int


class SaturationAwareSummary(BaseModel):
    totalActions: int
    byUrgency: Dict[str, int]
    avgConfidence: int
    saturationSummary: SaturationBreakdown


class ThemeRecommendation(BaseModel):
    theme: MessageTheme
    msi: float
    reason: str


class RecommendedThemes(BaseModel):
    recommended: List[ThemeRecommendation]
    avoid: List[ThemeRecommendation]


class ThemeBlockStatus(BaseModel):
    blocked: bool
    reason: Optional[str] = None
    msi: Optional[float] = None


# =============================================================================
# Constraint-Aware NBA
# =============================================================================


class ConstrainedNBA(NextBestAction):
    """NBA annotated with the constraint check of its recommended channel."""

    constraintCheck: ConstraintCheckResult
    isExecutable: bool
    blockedReason: Optional[str] = None
    alternativeChannel: Optional[Channel] = None


class ViolationCount(BaseModel):
    type: ConstraintType
    count: int


class ConstraintAwareNBASummary(NBASummary):
    executableActions: int
    blockedActions: int
    constraintViolations: List[ViolationCount]


# =============================================================================
# Constraint Summary
# =============================================================================


class CapacitySummaryItem(BaseModel):
    channel: Channel
    repId: Optional[str] = None
    dailyUsed: int
    dailyLimit: Optional[int] = None
    weeklyUsed: int
    weeklyLimit: Optional[int] = None
    monthlyUsed: int
    monthlyLimit: Optional[int] = None
    utilizationPct: float
    status: CapacityHealth


class BudgetChannelSummary(BaseModel):
    channel: str
    allocated: float
    spent: float
    remaining: float


class BudgetSummary(BaseModel):
    totalAllocated: float
    totalSpent: float
    totalCommitted: float
    utilizationPct: float
    byChannel: List[BudgetChannelSummary]


class ComplianceWindowSummary(BaseModel):
    id: str
    name: str
    windowType: WindowType
    startDate: UtcDatetime
    endDate: UtcDatetime
    affectedCount: Optional[int] = None


class ComplianceSummary(BaseModel):
    activeBlackouts: int
    upcomingBlackouts: int
    affectedHcpCount: int
    windows: List[ComplianceWindowSummary]


class ContactLimitSummary(BaseModel):
    hcpsAtLimit: int
    hcpsNearLimit: int
    avgUtilization: float


class ConstraintSummary(BaseModel):
    capacity: List[CapacitySummaryItem]
    budget: BudgetSummary
    compliance: ComplianceSummary
    contactLimits: ContactLimitSummary


# =============================================================================
# Optimization Results, Allocations and Execution Plans
# =============================================================================


class OptimizationResult(BaseModel):
    """Batch of scored, costed allocations that a plan is created from."""

    id: str = Field(default_factory=_new_id)
    name: Optional[str] = None
    createdAt: UtcDatetime = Field(default_factory=utcnow)


class OptimizationAllocation(BaseModel):
    """
    One planned touch within a result.

    `confidence` is the predictor's confidence in `predictedLift`, in [0, 1].
    `budgetAllocationId` records the budget row committed at booking time.
    """

    id: str = Field(default_factory=_new_id)
    resultId: str
    hcpId: str
    channel: Channel
    actionType: str
    plannedDate: UtcDatetime
    windowStart: Optional[UtcDatetime] = None
    windowEnd: Optional[UtcDatetime] = None
    estimatedCost: float = Field(default=0.0, ge=0)
    predictedLift: float = Field(default=0.0, ge=0)
    confidence: float = Field(default=0.7, ge=0, le=1)
    priority: int = 0
    repId: Optional[str] = None
    status: AllocationStatus = AllocationStatus.PLANNED
    budgetAllocationId: Optional[str] = None
    actualOutcome: Optional[float] = Field(default=None, ge=0)
    executedAt: Optional[UtcDatetime] = None


class ExecutionPlan(BaseModel):
    """Execution plan created from an optimization result."""

    id: str = Field(default_factory=_new_id)
    resultId: str
    name: str
    description: Optional[str] = None
    campaignId: Optional[str] = None
    status: PlanStatus = PlanStatus.DRAFT
    scheduledStartAt: Optional[UtcDatetime] = None
    scheduledEndAt: Optional[UtcDatetime] = None
    actualStartAt: Optional[UtcDatetime] = None
    actualEndAt: Optional[UtcDatetime] = None
    totalActions: int = Field(default=0, ge=0)
    completedActions: int = Field(default=0, ge=0)
    failedActions: int = Field(default=0, ge=0)
    budgetAllocated: float = Field(default=0.0, ge=0)
    budgetSpent: float = Field(default=0.0, ge=0)
    predictedTotalLift: float = Field(default=0.0, ge=0)
    actualTotalLift: float = Field(default=0.0, ge=0)
    rebalanceCount: int = Field(default=0, ge=0)
    lastRebalanceAt: Optional[UtcDatetime] = None
    lastRebalanceTrigger: Optional[RebalanceTrigger] = None
    lastRebalanceReason: Optional[str] = None
    createdAt: UtcDatetime = Field(default_factory=utcnow)
    updatedAt: UtcDatetime = Field(default_factory=utcnow)

    @computed_field
    @property
    def progressPercent(self) -> int:
        if self.totalActions <= 0:
            return 0
        return round(self.completedActions / self.totalActions * 100)


class ScheduledAction(BaseModel):
    allocationId: str
    hcpId: str
    hcpName: str
    channel: Channel
    actionType: str
    plannedDate: UtcDatetime
    windowStart: Optional[UtcDatetime] = None
    windowEnd: Optional[UtcDatetime] = None
    estimatedCost: float
    predictedLift: float
    priority: int
    status: AllocationStatus


class BookingError(BaseModel):
    allocationId: str
    reason: str


class BookingResult(BaseModel):
    success: bool
    bookedCount: int
    failedCount: int
    errors: List[BookingError]
    budgetCommitted: float
    capacityBooked: Dict[str, int]


class PlanProgress(BaseModel):
    planId: str
    status: PlanStatus
    totalActions: int
    completedActions: int
    failedActions: int
    pendingActions: int
    progressPercent: int
    budgetSpent: float
    budgetRemaining: float


class ChannelPerformance(BaseModel):
    channel: Channel
    completedActions: int
    avgOutcome: float


class UnderperformingHcp(BaseModel):
    allocationId: str
    hcpId: str
    hcpName: str
    expectedLift: float
    actualLift: float
    variance: float


class ExecutionReport(BaseModel):
    """
    Execution summary for a plan.

    `aborted` is set when a run stopped early on a cancellation token.
    """

    planId: str
    status: PlanStatus
    totalActions: int
    completedActions: int
    failedActions: int
    pendingActions: int
    progressPercent: int
    predictedOutcome: float
    actualOutcome: float
    outcomeVariance: Optional[float] = None
    budgetAllocated: float
    budgetSpent: float
    budgetRemaining: float
    topPerformingChannels: List[ChannelPerformance]
    underperformingHcps: List[UnderperformingHcp]
    aborted: bool = False
    generatedAt: UtcDatetime = Field(default_factory=utcnow)


class RebalanceSuggestion(BaseModel):
    planId: str
    trigger: RebalanceTrigger
    reason: str
    currentPerformance: float
    projectedPerformance: float
    improvementPercent: float
    actionsToModify: int
    actionsToAdd: int
    actionsToRemove: int
    estimatedCostChange: float
    confidence: float
    suggestedAt: UtcDatetime = Field(default_factory=utcnow)


# =============================================================================
# Optimization Monitor
# =============================================================================


class PlanPerformanceMetrics(BaseModel):
    planId: str
    planName: str
    status: PlanStatus
    totalActions: int
    completedActions: int
    failedActions: int
    progressPercent: float
    predictedLift: float
    actualLift: float
    liftVariance: float
    liftVariancePercent: float
    budgetUtilization: float
    failureRate: float
    performanceStatus: PerformanceStatus
    requiresRebalance: bool


class MonitorInsight(BaseModel):
    type: str
    title: str
    description: str
    severity: WarningSeverity
    planId: str
    metrics: Dict[str, float]
    recommendation: str


class MonitorAlert(BaseModel):
    severity: WarningSeverity
    title: str
    message: str
    planIds: List[str] = Field(default_factory=list)
    suggestedActions: List[str] = Field(default_factory=list)


class OptimizationRecommendation(BaseModel):
    type: str = "rebalance"
    planId: str
    planName: str
    reason: str
    confidence: float
    estimatedImpact: float
    actionsToModify: int
    actionsToAdd: int
    actionsToRemove: int
    budgetChange: float


class PortfolioHealth(BaseModel):
    totalPlans: int
    executingPlans: int
    underperformingPlans: int
    avgPerformance: float


class MonitorReport(BaseModel):
    success: bool
    summary: str
    insights: List[MonitorInsight] = Field(default_factory=list)
    alerts: List[MonitorAlert] = Field(default_factory=list)
    planMetrics: List[PlanPerformanceMetrics] = Field(default_factory=list)
    recommendations: List[OptimizationRecommendation] = Field(default_factory=list)
    portfolioHealth: PortfolioHealth
    generatedAt: UtcDatetime = Field(default_factory=utcnow)


class JobRun(BaseModel):
    """Idempotency record for scheduled jobs."""

    jobName: str
    runDate: date
    completedAt: UtcDatetime = Field(default_factory=utcnow)
    details: Dict[str, Any] = Field(default_factory=dict)


# =============================================================================
# API Request Bodies
# =============================================================================


class ClassifyRequest(BaseModel):
    hcp: HCPProfile
    thresholds: Optional[HealthThresholds] = None


class CohortClassifyRequest(BaseModel):
    hcps: List[HCPProfile]
    thresholds: Optional[HealthThresholds] = None


class NBARequest(BaseModel):
    hcp: HCPProfile
    channelHealth: Optional[List[ChannelHealth]] = None
    config: Optional[NBAConfig] = None


class NBABatchRequest(BaseModel):
    hcps: List[HCPProfile]
    config: Optional[NBAConfig] = None
    limit: Optional[int] = Field(default=None, ge=1)
    actionableOnly: bool = False


class PrioritizeRequest(BaseModel):
    nbas: List[NextBestAction]
    limit: Optional[int] = Field(default=None, ge=1)


class SimulatePauseRequest(BaseModel):
    exposure: MessageExposure
    pauseDays: int = Field(..., ge=0, le=365)


class ConstraintAwareNBARequest(BaseModel):
    hcpIds: List[str] = Field(..., min_length=1)
    campaignId: Optional[str] = None
    repId: Optional[str] = None
    config: Optional[NBAConfig] = None
    includeBlocked: bool = True


class CapacityAdjustRequest(BaseModel):
    channel: Channel
    amount: int = Field(default=1, ge=1)
    repId: Optional[str] = None


class BudgetAdjustRequest(BaseModel):
    budgetAllocationId: str
    amount: float = Field(..., ge=0)
    releaseCommitment: bool = True


class ContactRecordRequest(BaseModel):
    hcpId: str
    channel: Channel
    contactedAt: Optional[UtcDatetime] = None


class AllocationInput(BaseModel):
    hcpId: str
    channel: Channel
    actionType: str
    plannedDate: UtcDatetime
    windowStart: Optional[UtcDatetime] = None
    windowEnd: Optional[UtcDatetime] = None
    estimatedCost: float = Field(default=0.0, ge=0)
    predictedLift: float = Field(default=0.0, ge=0)
    confidence: float = Field(default=0.7, ge=0, le=1)
    priority: int = 0
    repId: Optional[str] = None


class OptimizationResultCreate(BaseModel):
    name: Optional[str] = None
    allocations: List[AllocationInput] = Field(..., min_length=1)


class PlanCreateRequest(BaseModel):
    resultId: str
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    scheduledStartAt: Optional[UtcDatetime] = None
    campaignId: Optional[str] = None


class RebalanceRequest(BaseModel):
    trigger: RebalanceTrigger = RebalanceTrigger.MANUAL
    reason: Optional[str] = None
    replacementAllocations: Optional[List[AllocationInput]] = None


class ExecuteRequest(BaseModel):
    timeoutSeconds: Optional[float] = Field(default=None, gt=0)


class SaturationAwareNBARequest(BaseModel):
    hcpIds: List[str] = Field(..., min_length=1)
    config: Optional[NBAConfig] = None
    limit: Optional[int] = Field(default=None, ge=1)
    prioritizeLowSaturation: bool = True


class OutcomeReport(BaseModel):
    """Actual lift reported by the fulfilment side for one allocation."""

    outcome: float = Field(..., ge=0)


# =============================================================================
# API Response Envelopes
# =============================================================================

class SaturationAwareNBAResponse(BaseModel):
    nbas: List[SaturationAwareNBA]
    summary: SaturationAwareSummary


class ConstraintAwareNBAResponse(BaseModel):
    nbas: List[ConstrainedNBA]
    summary: ConstraintAwareNBASummary


class OptimizationResultResponse(BaseModel):
    result: OptimizationResult
    allocations: List[OptimizationAllocation]


class CountResponse(BaseModel):
    count: int


class CapacityAdjustResponse(BaseModel):
    success: bool
    capacity: Optional[CapacityStatus] = None


class BudgetAdjustResponse(BaseModel):
    success: bool
    budget: Optional[BudgetAllocation] = None
