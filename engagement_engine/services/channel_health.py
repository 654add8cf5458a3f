"""
Channel Health Classifier Service

Turns one HCP's raw per-channel engagement counters into exactly one health
status per channel, chosen by the first matching rule in priority order:

1. blocked     - responseRate < blockedResponseRate AND totalTouches >= blockedMinTouches
2. opportunity - score >= opportunityMinScore AND totalTouches < opportunityMaxTouches
3. active      - responseRate >= activeMinResponseRate AND a known
                 lastContactDays <= activeMaxDaysSinceContact
4. declining   - lastContactDays > staleThresholdDays, OR
                 (responseRate < activeMinResponseRate AND totalTouches > 0)
5. dark        - default

Classification is a pure function of the snapshot, the thresholds and the
"as of" instant used to derive days since contact. Results are never
persisted; they are recomputed on demand.

Cohort aggregation (status distribution per channel across many HCPs) uses
pandas.
"""

import math
from datetime import datetime
from typing import Dict, List, Optional, Sequence

import pandas as pd

from engagement_engine.core.clock import days_between, utcnow
from engagement_engine.core.config import Settings
from engagement_engine.models.enums import Channel, HealthStatus
from engagement_engine.models.schemas import (
    ChannelEngagement,
    ChannelHealth,
    CohortChannelHealth,
    HCPProfile,
    HealthSummary,
    HealthThresholds,
)


DEFAULT_THRESHOLDS = HealthThresholds()

# Statuses considered problems in cohort views, in tie-break order
ISSUE_STATUSES = (HealthStatus.BLOCKED, HealthStatus.DECLINING, HealthStatus.DARK)


def thresholds_from_settings(settings: Settings) -> HealthThresholds:
    """Build classification thresholds from application settings."""
    return HealthThresholds(
        staleThresholdDays=settings.health_stale_threshold_days,
        blockedResponseRate=settings.health_blocked_response_rate,
        blockedMinTouches=settings.health_blocked_min_touches,
        opportunityMinScore=settings.health_opportunity_min_score,
        opportunityMaxTouches=settings.health_opportunity_max_touches,
        activeMinResponseRate=settings.health_active_min_response_rate,
        activeMaxDaysSinceContact=settings.health_active_max_days_since_contact,
    )


def format_number(value: float) -> str:
    """Render a number the way it appears in reasoning text (40 not 40.0)."""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def days_since_contact(
    engagement: ChannelEngagement, as_of: Optional[datetime] = None
) -> Optional[int]:
    """
    Whole days since the last contact on a channel.

    An explicit lastContactDays wins; otherwise it is derived from the
    lastContact instant. None when the channel was never contacted.
    """
    if engagement.lastContactDays is not None:
        return engagement.lastContactDays
    if engagement.lastContact is None:
        return None
    return max(0, days_between(engagement.lastContact, as_of or utcnow()))


def _health_reasoning(
    status: HealthStatus,
    engagement: ChannelEngagement,
    last_contact_days: Optional[int],
    thresholds: HealthThresholds,
) -> str:
    rate = format_number(engagement.responseRate)
    touches = engagement.totalTouches

    if status == HealthStatus.BLOCKED:
        return (
            f"Low response rate ({rate}%) despite {touches} touches. "
            f"HCP may be ignoring this channel."
        )
    if status == HealthStatus.OPPORTUNITY:
        return (
            f"High affinity score ({format_number(engagement.score)}) but only "
            f"{touches} touches. Potential for increased engagement."
        )
    if status == HealthStatus.ACTIVE:
        return (
            f"Healthy engagement with {rate}% response rate. "
            f"Last contact {last_contact_days} days ago."
        )
    if status == HealthStatus.DECLINING:
        if last_contact_days is not None and last_contact_days > thresholds.staleThresholdDays:
            return f"No contact in {last_contact_days} days. Channel may be going dormant."
        return f"Response rate dropped to {rate}%. Engagement trending down."

    if touches == 0:
        return "No historical engagement on this channel."
    return f"Minimal engagement: {touches} touches with {rate}% response."


def classify_channel(
    engagement: ChannelEngagement,
    thresholds: Optional[HealthThresholds] = None,
    as_of: Optional[datetime] = None,
) -> ChannelHealth:
    """
    Classify a single channel snapshot.

    Args:
        engagement: The channel's engagement snapshot.
        thresholds: Classification thresholds (defaults if None).
        as_of: Instant used to derive days since contact from lastContact.

    Returns:
        ChannelHealth with exactly one status and its reasoning.
    """
    t = thresholds or DEFAULT_THRESHOLDS
    last_days = days_since_contact(engagement, as_of)
    rate = engagement.responseRate
    touches = engagement.totalTouches

    if rate < t.blockedResponseRate and touches >= t.blockedMinTouches:
        status = HealthStatus.BLOCKED
    elif engagement.score >= t.opportunityMinScore and touches < t.opportunityMaxTouches:
        status = HealthStatus.OPPORTUNITY
    elif (
        rate >= t.activeMinResponseRate
        and last_days is not None
        and last_days <= t.activeMaxDaysSinceContact
    ):
        status = HealthStatus.ACTIVE
    elif last_days is not None and last_days > t.staleThresholdDays:
        status = HealthStatus.DECLINING
    elif rate < t.activeMinResponseRate and touches > 0:
        status = HealthStatus.DECLINING
    else:
        status = HealthStatus.DARK

    return ChannelHealth(
        channel=engagement.channel,
        status=status,
        score=engagement.score,
        lastContactDays=last_days,
        totalTouches=touches,
        responseRate=rate,
        reasoning=_health_reasoning(status, engagement, last_days, t),
    )


def classify_channel_health(
    hcp: HCPProfile,
    thresholds: Optional[HealthThresholds] = None,
    as_of: Optional[datetime] = None,
) -> List[ChannelHealth]:
    """Classify every channel of an HCP, in the profile's snapshot order."""
    return [
        classify_channel(engagement, thresholds, as_of)
        for engagement in hcp.channelEngagements
    ]


def get_health_summary(results: Sequence[ChannelHealth]) -> HealthSummary:
    """
    Summarize one HCP's channel health into counts and a primary recommendation.
    """
    healthy = sum(1 for r in results if r.status == HealthStatus.ACTIVE)
    issues = sum(
        1 for r in results
        if r.status in (HealthStatus.BLOCKED, HealthStatus.DECLINING)
    )
    opportunities = [r for r in results if r.status == HealthStatus.OPPORTUNITY]

    if opportunities:
        channels = ", ".join(r.channel.value for r in opportunities)
        recommendation = f"Expand engagement on {channels}."
    elif issues > healthy:
        recommendation = "Multiple channels need attention. Consider re-engagement strategy."
    elif healthy >= 4:
        recommendation = "Strong multi-channel engagement. Maintain current strategy."
    else:
        recommendation = "Focus on strengthening top-performing channels."

    return HealthSummary(
        healthyChannels=healthy,
        issueChannels=issues,
        opportunityChannels=len(opportunities),
        primaryRecommendation=recommendation,
    )


# =============================================================================
# Cohort View
# =============================================================================


def _primary_issue(counts: Dict[HealthStatus, int]) -> Optional[HealthStatus]:
    primary: Optional[HealthStatus] = None
    best = 0
    for status in ISSUE_STATUSES:
        if counts[status] > best:
            best = counts[status]
            primary = status
    return primary


def _cohort_recommendation(
    channel: Channel,
    distribution: Dict[str, int],
    primary_issue: Optional[HealthStatus],
) -> str:
    readable = channel.value.replace("_", " ")

    if distribution[HealthStatus.OPPORTUNITY.value] > 30:
        return (
            f"{distribution[HealthStatus.OPPORTUNITY.value]}% of cohort shows "
            f"opportunity for increased {readable} engagement."
        )
    if primary_issue == HealthStatus.BLOCKED:
        return (
            f"{distribution['blocked']}% blocked - consider reducing frequency "
            f"or changing messaging approach."
        )
    if primary_issue == HealthStatus.DECLINING:
        return f"{distribution['declining']}% declining - re-engagement campaign recommended."
    if primary_issue == HealthStatus.DARK:
        return f"{distribution['dark']}% dark - channel may be underutilized for this segment."
    if distribution[HealthStatus.ACTIVE.value] > 50:
        return f"Channel healthy with {distribution['active']}% active engagement."
    return "Mixed health - review individual HCP needs."


def classify_cohort_channel_health(
    hcps: Sequence[HCPProfile],
    thresholds: Optional[HealthThresholds] = None,
    as_of: Optional[datetime] = None,
) -> List[CohortChannelHealth]:
    """
    Per-channel status distribution across a cohort of HCPs.

    Percentages are rounded half up. An empty cohort yields an empty list.
    """
    if not hcps:
        return []

    rows = [
        {"channel": result.channel.value, "status": result.status.value}
        for hcp in hcps
        for result in classify_channel_health(hcp, thresholds, as_of)
    ]
    df = pd.DataFrame(rows)

    counts = (
        pd.crosstab(df["channel"], df["status"])
        .reindex(
            index=[c.value for c in Channel],
            columns=[s.value for s in HealthStatus],
            fill_value=0,
        )
        .fillna(0)
        .astype(int)
    )
    total = len(hcps)

    cohort: List[CohortChannelHealth] = []
    for channel in Channel:
        channel_counts = {
            status: int(counts.at[channel.value, status.value]) for status in HealthStatus
        }
        distribution = {
            status.value: round_half_up(channel_counts[status] / total * 100)
            for status in HealthStatus
        }
        primary = _primary_issue(channel_counts)
        cohort.append(
            CohortChannelHealth(
                channel=channel,
                distribution=distribution,
                totalHcps=total,
                primaryIssue=primary,
                recommendation=_cohort_recommendation(channel, distribution, primary),
            )
        )

    return cohort
