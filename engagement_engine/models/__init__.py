"""
Package initialization file for engagement engine models.

Re-exports the enumerations and the most used Pydantic schemas so other
modules can import them from engagement_engine.models directly.

Usage:
    from engagement_engine.models import Channel, HCPProfile, NextBestAction
"""

# =============================================================================
# Enums
# =============================================================================

from engagement_engine.models.enums import (
    # Channel health and NBA
    Channel,
    HealthStatus,
    ActionType,
    Urgency,
    # Message saturation
    SaturationRiskLevel,
    MsiDirection,
    AdoptionStage,
    SaturationWarningType,
    WarningSeverity,
    # Constraints
    ViolationSeverity,
    ConstraintType,
    CapacityPeriod,
    CapacityHealth,
    WindowType,
    # Execution plans
    PlanStatus,
    AllocationStatus,
    RebalanceTrigger,
    PerformanceStatus,
)


# =============================================================================
# Schemas
# =============================================================================

from engagement_engine.models.schemas import (
    # -------------------------------------------------------------------------
    # HCP profile and channel health
    # -------------------------------------------------------------------------
    ChannelEngagement,
    HCPProfile,
    HealthThresholds,
    ChannelHealth,
    CohortChannelHealth,
    HealthSummary,

    # -------------------------------------------------------------------------
    # Next best action
    # -------------------------------------------------------------------------
    NBAConfig,
    NextBestAction,
    NBASummary,
    SaturationAwareNBA,
    ConstrainedNBA,

    # -------------------------------------------------------------------------
    # Constraints and standing resources
    # -------------------------------------------------------------------------
    ProposedAction,
    ConstraintViolation,
    ConstraintCheckResult,
    ChannelCapacity,
    HcpContactLimits,
    ComplianceWindow,
    BudgetAllocation,
    TerritoryAssignment,

    # -------------------------------------------------------------------------
    # Message saturation
    # -------------------------------------------------------------------------
    MessageTheme,
    MessageExposure,
    HcpSaturationSummary,

    # -------------------------------------------------------------------------
    # Execution plans and monitoring
    # -------------------------------------------------------------------------
    OptimizationResult,
    OptimizationAllocation,
    ExecutionPlan,
    ExecutionReport,
    RebalanceSuggestion,
    MonitorReport,
    JobRun,
)


__all__ = [
    # Enums
    "Channel",
    "HealthStatus",
    "ActionType",
    "Urgency",
    "SaturationRiskLevel",
    "MsiDirection",
    "AdoptionStage",
    "SaturationWarningType",
    "WarningSeverity",
    "ViolationSeverity",
    "ConstraintType",
    "CapacityPeriod",
    "CapacityHealth",
    "WindowType",
    "PlanStatus",
    "AllocationStatus",
    "RebalanceTrigger",
    "PerformanceStatus",
    # Schemas
    "ChannelEngagement",
    "HCPProfile",
    "HealthThresholds",
    "ChannelHealth",
    "CohortChannelHealth",
    "HealthSummary",
    "NBAConfig",
    "NextBestAction",
    "NBASummary",
    "SaturationAwareNBA",
    "ConstrainedNBA",
    "ProposedAction",
    "ConstraintViolation",
    "ConstraintCheckResult",
    "ChannelCapacity",
    "HcpContactLimits",
    "ComplianceWindow",
    "BudgetAllocation",
    "TerritoryAssignment",
    "MessageTheme",
    "MessageExposure",
    "HcpSaturationSummary",
    "OptimizationResult",
    "OptimizationAllocation",
    "ExecutionPlan",
    "ExecutionReport",
    "RebalanceSuggestion",
    "MonitorReport",
    "JobRun",
]
