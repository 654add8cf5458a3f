"""
Enumeration definitions for the Engagement Engine backend.

All enums inherit from both `str` and `Enum` so they serialize as plain strings
in pydantic models and API responses, and compare equal to their raw values.
"""

from enum import Enum


class Channel(str, Enum):
    """
    Outreach channels an HCP can be engaged through.

    Every HCP profile carries exactly one engagement snapshot per channel.
    """
    EMAIL = "email"
    PHONE = "phone"
    REP_VISIT = "rep_visit"
    WEBINAR = "webinar"
    CONFERENCE = "conference"
    DIGITAL_AD = "digital_ad"


class HealthStatus(str, Enum):
    """
    Per-channel health classification.

    - active: recent engagement with positive response rate
    - declining: engagement trending down, or stale
    - dark: low historical engagement, underutilized channel
    - blocked: high touch frequency with low response (being ignored)
    - opportunity: high affinity score but underutilized
    """
    ACTIVE = "active"
    DECLINING = "declining"
    DARK = "dark"
    BLOCKED = "blocked"
    OPPORTUNITY = "opportunity"


class ActionType(str, Enum):
    """
    Next-best-action types.
    """
    REACH_OUT = "reach_out"
    FOLLOW_UP = "follow_up"
    RE_ENGAGE = "re_engage"
    EXPAND = "expand"
    MAINTAIN = "maintain"
    REDUCE_FREQUENCY = "reduce_frequency"


class Urgency(str, Enum):
    """
    Urgency of a recommendation. Ordering for prioritization is
    high < medium < low.
    """
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class SaturationRiskLevel(str, Enum):
    """
    Message saturation risk derived from MSI.

    - low: 0-25
    - medium: 26-50
    - high: 51-75
    - critical: 76-100
    """
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class MsiDirection(str, Enum):
    """Trend of a theme's MSI versus its previous measurement."""
    INCREASING = "increasing"
    STABLE = "stable"
    DECREASING = "decreasing"


class AdoptionStage(str, Enum):
    """
    HCP adoption stage. Later stages fatigue faster.
    """
    AWARENESS = "awareness"
    CONSIDERATION = "consideration"
    TRIAL = "trial"
    LOYALTY = "loyalty"


class SaturationWarningType(str, Enum):
    """
    Per-theme saturation warning.

    - do_not_push: MSI >= 80
    - shift_to_alternative: MSI 65-79
    - approaching_saturation: MSI 50-64
    - safe_to_reinforce: MSI 20-49
    - underexposed: MSI < 20
    """
    DO_NOT_PUSH = "do_not_push"
    SHIFT_TO_ALTERNATIVE = "shift_to_alternative"
    APPROACHING_SATURATION = "approaching_saturation"
    SAFE_TO_REINFORCE = "safe_to_reinforce"
    UNDEREXPOSED = "underexposed"


class WarningSeverity(str, Enum):
    """Severity of a saturation warning or monitor insight."""
    CRITICAL = "critical"
    WARNING = "warning"
    INFO = "info"


class ViolationSeverity(str, Enum):
    """
    Constraint violation severity. Only `error` makes a check fail.
    """
    ERROR = "error"
    WARNING = "warning"


class ConstraintType(str, Enum):
    """Constraint dimension that produced a violation."""
    CAPACITY = "capacity"
    CONTACT_LIMIT = "contact_limit"
    COMPLIANCE = "compliance"
    BUDGET = "budget"
    TERRITORY = "territory"


class CapacityPeriod(str, Enum):
    """Counter period used when resetting capacity or contact counters."""
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class CapacityHealth(str, Enum):
    """
    Capacity status shown in the constraint summary.

    - healthy: utilization below 70%
    - warning: 70% to 89%
    - critical: 90% and above
    """
    HEALTHY = "healthy"
    WARNING = "warning"
    CRITICAL = "critical"


class WindowType(str, Enum):
    """
    Compliance window type. Only blackout windows block contact.
    """
    BLACKOUT = "blackout"
    RESTRICTED = "restricted"
    PREFERRED = "preferred"


class PlanStatus(str, Enum):
    """
    Execution plan life cycle.

    draft -> scheduled -> executing <-> paused -> completed, with cancelled
    reachable from any non-terminal status.
    """
    DRAFT = "draft"
    SCHEDULED = "scheduled"
    EXECUTING = "executing"
    PAUSED = "paused"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class AllocationStatus(str, Enum):
    """
    Allocation life cycle.

    planned -> booked -> executing -> completed | failed, or cancelled from
    planned | booked.
    """
    PLANNED = "planned"
    BOOKED = "booked"
    EXECUTING = "executing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class RebalanceTrigger(str, Enum):
    """Why a plan is being rebalanced."""
    OUTCOME_DEVIATION = "outcome_deviation"
    CONSTRAINT_CHANGE = "constraint_change"
    BUDGET_CHANGE = "budget_change"
    MANUAL = "manual"


class PerformanceStatus(str, Enum):
    """Plan performance relative to predicted lift."""
    ON_TRACK = "on_track"
    UNDERPERFORMING = "underperforming"
    OVERPERFORMING = "overperforming"
