"""
Next Best Action (NBA) Engine

Generates one engagement recommendation per HCP from its channel health.

Decision Flow:
1. If the HCP's stated preferred channel is blocked (and addressBlocked is on),
   shift to the best-ranked channel that is neither blocked nor dark.
2. Otherwise rank channels: opportunity first (if prioritizeOpportunities),
   then declining, then by descending score. Ties keep list order.
3. Map the top channel's status to an action:
   - opportunity -> expand, min(90, score + 15), high
   - declining   -> re_engage, 75, high
   - blocked     -> alternative reach_out, else reduce_frequency
   - active      -> maintain, or follow_up when contacted < 14 days ago
   - dark        -> substitute an active/opportunity channel, else reach_out
                    on the stated preference at 45
4. +10 confidence (capped at 100) when the selected channel is the stated
   preference.

The constraint-aware variants validate recommendations through the
ConstraintManager and try alternative channels when the primary one is
blocked by a hard constraint.
"""

import logging
from typing import Dict, List, Optional, Sequence

from engagement_engine.core.config import Settings
from engagement_engine.models.enums import ActionType, HealthStatus, Urgency, ViolationSeverity
from engagement_engine.models.schemas import (
    ChannelHealth,
    ConstrainedNBA,
    ConstraintAwareNBASummary,
    ConstraintCheckResult,
    HCPProfile,
    HealthThresholds,
    NBAConfig,
    NBAMetrics,
    NBASummary,
    NextBestAction,
    ProposedAction,
    ViolationCount,
)
from engagement_engine.services.channel_health import classify_channel_health, format_number
from engagement_engine.services.constraint_manager import ConstraintManager


logger = logging.getLogger(__name__)


# =============================================================================
# Action Type Metadata
# priority: 1 = highest
# =============================================================================

ACTION_TYPE_CONFIG: Dict[ActionType, Dict[str, object]] = {
    ActionType.REACH_OUT: {
        "label": "Reach Out",
        "description": "Initiate contact through preferred channel",
        "priority": 3,
    },
    ActionType.FOLLOW_UP: {
        "label": "Follow Up",
        "description": "Continue recent conversation or engagement",
        "priority": 2,
    },
    ActionType.RE_ENGAGE: {
        "label": "Re-engage",
        "description": "Win back HCP through strategic outreach",
        "priority": 1,
    },
    ActionType.EXPAND: {
        "label": "Expand",
        "description": "Leverage high-affinity channel with growth potential",
        "priority": 2,
    },
    ActionType.MAINTAIN: {
        "label": "Maintain",
        "description": "Continue successful engagement pattern",
        "priority": 4,
    },
    ActionType.REDUCE_FREQUENCY: {
        "label": "Reduce Frequency",
        "description": "Scale back on overused channel",
        "priority": 3,
    },
}

DEFAULT_CONFIG = NBAConfig()

URGENCY_ORDER: Dict[Urgency, int] = {
    Urgency.HIGH: 0,
    Urgency.MEDIUM: 1,
    Urgency.LOW: 2,
}

# Channel order tried by the constraint-aware generator
CONSTRAINT_STATUS_PRIORITY: Dict[HealthStatus, int] = {
    HealthStatus.OPPORTUNITY: 1,
    HealthStatus.ACTIVE: 2,
    HealthStatus.DECLINING: 3,
    HealthStatus.DARK: 4,
    HealthStatus.BLOCKED: 5,
}

PREFERENCE_BOOST = 10
PREFERENCE_SUFFIX = " (Aligned with stated channel preference)"
FOLLOW_UP_WINDOW_DAYS = 14


def config_from_settings(settings: Settings) -> NBAConfig:
    """Build the default NBA configuration from application settings."""
    return NBAConfig(
        prioritizeOpportunities=settings.nba_prioritize_opportunities,
        addressBlocked=settings.nba_address_blocked,
        reEngageThresholdDays=settings.nba_re_engage_threshold_days,
        minConfidenceThreshold=settings.nba_min_confidence_threshold,
    )


def _build_nba(
    hcp: HCPProfile,
    selected: ChannelHealth,
    action_type: ActionType,
    confidence: float,
    reasoning: str,
    urgency: Urgency,
    suggested_timing: str,
) -> NextBestAction:
    if selected.channel == hcp.channelPreference:
        confidence = min(100, confidence + PREFERENCE_BOOST)
        reasoning += PREFERENCE_SUFFIX

    return NextBestAction(
        hcpId=hcp.id,
        hcpName=hcp.fullName,
        recommendedChannel=selected.channel,
        actionType=action_type,
        confidence=int(round(max(0, min(100, confidence)))),
        reasoning=reasoning,
        urgency=urgency,
        suggestedTiming=suggested_timing,
        channelHealth=selected.status,
        metrics=NBAMetrics(
            channelScore=selected.score,
            responseRate=selected.responseRate,
            lastContactDays=selected.lastContactDays,
            totalTouches=selected.totalTouches,
        ),
    )


def _rank_channels(health: Sequence[ChannelHealth], config: NBAConfig) -> List[ChannelHealth]:
    def sort_key(h: ChannelHealth):
        opportunity_rank = 0
        if config.prioritizeOpportunities and h.status != HealthStatus.OPPORTUNITY:
            opportunity_rank = 1
        declining_rank = 0 if h.status == HealthStatus.DECLINING else 1
        return (opportunity_rank, declining_rank, -h.score)

    return sorted(health, key=sort_key)


def _find_alternative(
    ranked: Sequence[ChannelHealth], exclude_channel
) -> Optional[ChannelHealth]:
    for candidate in ranked:
        if candidate.status in (HealthStatus.BLOCKED, HealthStatus.DARK):
            continue
        if candidate.channel == exclude_channel:
            continue
        return candidate
    return None


# =============================================================================
# NBA Generation
# =============================================================================


def generate_nba(
    hcp: HCPProfile,
    channel_health: Optional[Sequence[ChannelHealth]] = None,
    config: Optional[NBAConfig] = None,
    thresholds: Optional[HealthThresholds] = None,
) -> NextBestAction:
    """
    Generate the next best action for a single HCP.

    Args:
        hcp: HCP profile with one engagement snapshot per channel.
        channel_health: Pre-computed health; classified from the profile if None.
        config: NBA configuration (defaults if None).
        thresholds: Classification thresholds used when health is computed here.

    Returns:
        NextBestAction with confidence in [0, 100].
    """
    cfg = config or DEFAULT_CONFIG
    health = list(channel_health) if channel_health else classify_channel_health(hcp, thresholds)
    ranked = _rank_channels(health, cfg)

    preferred = next((h for h in health if h.channel == hcp.channelPreference), None)
    if cfg.addressBlocked and preferred is not None and preferred.status == HealthStatus.BLOCKED:
        alternative = _find_alternative(ranked, hcp.channelPreference)
        if alternative is not None:
            return _build_nba(
                hcp,
                alternative,
                ActionType.REACH_OUT,
                min(70, alternative.score),
                f"Preferred channel ({hcp.channelPreference.value}) is blocked. "
                f"Shifting to {alternative.channel.value} which shows "
                f"{alternative.status.value} status.",
                Urgency.MEDIUM,
                "Within 2 weeks - test alternative channel receptivity",
            )

    top = ranked[0]
    selected = top
    rate = format_number(top.responseRate)

    if top.status == HealthStatus.OPPORTUNITY:
        action_type = ActionType.EXPAND
        confidence = min(90, top.score + 15)
        reasoning = (
            f"High affinity (score: {format_number(top.score)}) with limited engagement "
            f"({top.totalTouches} touches). Significant growth potential."
        )
        urgency = Urgency.HIGH
        timing = "Within the next week - capitalize on affinity while engagement is fresh"

    elif top.status == HealthStatus.DECLINING:
        action_type = ActionType.RE_ENGAGE
        confidence = 75
        if top.lastContactDays is not None and top.lastContactDays > cfg.reEngageThresholdDays:
            reasoning = (
                f"No contact in {top.lastContactDays} days. "
                f"Re-engagement is critical to prevent relationship loss."
            )
        else:
            reasoning = f"Response rate dropped to {rate}%. Proactive outreach recommended."
        urgency = Urgency.HIGH
        timing = "ASAP - declining engagement requires immediate attention"

    elif top.status == HealthStatus.BLOCKED:
        if cfg.addressBlocked:
            alternative = _find_alternative(ranked, top.channel)
            if alternative is not None:
                selected = alternative
                action_type = ActionType.REACH_OUT
                confidence = min(70, alternative.score)
                reasoning = (
                    f"Primary channel blocked ({top.channel.value}). Shifting to "
                    f"{alternative.channel.value} which shows {alternative.status.value} status."
                )
                urgency = Urgency.MEDIUM
                timing = "Within 2 weeks - test alternative channel receptivity"
            else:
                action_type = ActionType.REDUCE_FREQUENCY
                confidence = 60
                reasoning = (
                    "All channels showing low engagement. Recommend reducing "
                    "frequency and refreshing content strategy."
                )
                urgency = Urgency.LOW
                timing = "Next quarter - allow cooling period before re-approaching"
        else:
            action_type = ActionType.REDUCE_FREQUENCY
            confidence = 50
            reasoning = (
                f"Channel shows signs of fatigue ({rate}% response rate). "
                f"Consider messaging refresh."
            )
            urgency = Urgency.MEDIUM
            timing = "Within 1 month - develop new content before next outreach"

    elif top.status == HealthStatus.ACTIVE:
        action_type = ActionType.MAINTAIN
        confidence = min(95, top.score + 20)
        reasoning = f"Strong engagement ({rate}% response rate). Continue current cadence."
        urgency = Urgency.LOW
        timing = "Regular cadence - maintain successful engagement pattern"

        if top.lastContactDays is not None and top.lastContactDays < FOLLOW_UP_WINDOW_DAYS:
            action_type = ActionType.FOLLOW_UP
            reasoning = (
                f"Recent engagement ({top.lastContactDays} days ago) with strong "
                f"response. Follow up recommended."
            )
            timing = "Within 3-5 days - capitalize on recent interaction"

    else:
        substitute = next(
            (
                c for c in ranked
                if c.status in (HealthStatus.ACTIVE, HealthStatus.OPPORTUNITY)
            ),
            None,
        )
        if substitute is not None:
            selected = substitute
            action_type = (
                ActionType.EXPAND
                if substitute.status == HealthStatus.OPPORTUNITY
                else ActionType.REACH_OUT
            )
            confidence = min(75, substitute.score)
            reasoning = (
                f"Using {substitute.channel.value} ({substitute.status.value}) "
                f"instead of underutilized channels."
            )
            urgency = Urgency.MEDIUM
            timing = "Within 2 weeks - establish presence on responsive channel"
        else:
            selected = preferred or health[0]
            preference = hcp.channelPreference.value if hcp.channelPreference else "none"
            action_type = ActionType.REACH_OUT
            confidence = 45
            reasoning = (
                f"Limited engagement history. Starting with stated preference ({preference})."
            )
            urgency = Urgency.LOW
            timing = "Flexible - test engagement receptivity with low-pressure outreach"

    return _build_nba(hcp, selected, action_type, confidence, reasoning, urgency, timing)


def generate_nbas(
    hcps: Sequence[HCPProfile],
    config: Optional[NBAConfig] = None,
    thresholds: Optional[HealthThresholds] = None,
) -> List[NextBestAction]:
    """Generate one NBA per HCP, in input order."""
    return [generate_nba(hcp, None, config, thresholds) for hcp in hcps]


def generate_nba_for_channel(
    hcp: HCPProfile,
    channel_health: ChannelHealth,
    config: Optional[NBAConfig] = None,
) -> NextBestAction:
    """
    Build the recommendation for one specific channel, without ranking.

    Used by the constraint-aware generator when trying channels in turn.
    """
    cfg = config or DEFAULT_CONFIG
    ch = channel_health
    rate = format_number(ch.responseRate)

    if ch.status == HealthStatus.OPPORTUNITY:
        action_type = ActionType.EXPAND
        confidence = min(90, ch.score + 15)
        reasoning = (
            f"High affinity (score: {format_number(ch.score)}) with limited engagement. "
            f"Significant growth potential."
        )
        urgency = Urgency.HIGH
        timing = "Within the next week"
    elif ch.status == HealthStatus.DECLINING:
        action_type = ActionType.RE_ENGAGE
        confidence = 75
        if ch.lastContactDays is not None and ch.lastContactDays > cfg.reEngageThresholdDays:
            reasoning = f"No contact in {ch.lastContactDays} days. Re-engagement is critical."
        else:
            reasoning = f"Response rate dropped to {rate}%. Proactive outreach recommended."
        urgency = Urgency.HIGH
        timing = "ASAP"
    elif ch.status == HealthStatus.BLOCKED:
        action_type = ActionType.REDUCE_FREQUENCY
        confidence = 50
        reasoning = f"Channel shows signs of fatigue ({rate}% response rate)."
        urgency = Urgency.MEDIUM
        timing = "Within 1 month"
    elif ch.status == HealthStatus.ACTIVE:
        if ch.lastContactDays is not None and ch.lastContactDays < FOLLOW_UP_WINDOW_DAYS:
            action_type = ActionType.FOLLOW_UP
        else:
            action_type = ActionType.MAINTAIN
        confidence = min(95, ch.score + 20)
        reasoning = f"Strong engagement ({rate}% response rate). Continue current cadence."
        urgency = Urgency.LOW
        timing = "Regular cadence"
    else:
        action_type = ActionType.REACH_OUT
        confidence = 45
        reasoning = f"Limited engagement history on {ch.channel.value}."
        urgency = Urgency.LOW
        timing = "Flexible"

    return _build_nba(hcp, ch, action_type, confidence, reasoning, urgency, timing)


# =============================================================================
# Prioritization and Summaries
# =============================================================================


def prioritize_nbas(
    nbas: Sequence[NextBestAction], limit: Optional[int] = None
) -> List[NextBestAction]:
    """
    Sort by urgency (high first), then by descending confidence.

    The sort is stable, so equal keys keep their input order. A `limit` of
    None or 0 returns every recommendation; the API rejects 0 before it
    gets here.
    """
    ordered = sorted(nbas, key=lambda n: (URGENCY_ORDER[n.urgency], -n.confidence))
    return ordered[:limit] if limit else ordered


def filter_actionable_nbas(
    nbas: Sequence[NextBestAction], config: Optional[NBAConfig] = None
) -> List[NextBestAction]:
    """Keep recommendations at or above the configured minimum confidence."""
    threshold = (config or DEFAULT_CONFIG).minConfidenceThreshold
    return [n for n in nbas if n.confidence >= threshold]


def get_nba_summary(nbas: Sequence[NextBestAction]) -> NBASummary:
    by_urgency = {u.value: 0 for u in Urgency}
    by_action_type: Dict[str, int] = {}
    by_channel: Dict[str, int] = {}
    total_confidence = 0

    for nba in nbas:
        by_urgency[nba.urgency.value] += 1
        by_action_type[nba.actionType.value] = by_action_type.get(nba.actionType.value, 0) + 1
        channel = nba.recommendedChannel.value
        by_channel[channel] = by_channel.get(channel, 0) + 1
        total_confidence += nba.confidence

    return NBASummary(
        totalActions=len(nbas),
        byUrgency=by_urgency,
        byActionType=by_action_type,
        byChannel=by_channel,
        avgConfidence=round(total_confidence / len(nbas)) if nbas else 0,
    )


# =============================================================================
# Constraint-Aware Generation
# =============================================================================


def _proposed_action(
    nba: NextBestAction, campaign_id: Optional[str], rep_id: Optional[str]
) -> ProposedAction:
    return ProposedAction(
        hcpId=nba.hcpId,
        channel=nba.recommendedChannel,
        actionType=nba.actionType.value,
        campaignId=campaign_id,
        repId=rep_id,
    )


def _constrained(
    nba: NextBestAction,
    check: ConstraintCheckResult,
    executable: bool,
    blocked_reason: Optional[str] = None,
) -> ConstrainedNBA:
    return ConstrainedNBA(
        **nba.model_dump(),
        constraintCheck=check,
        isExecutable=executable,
        blockedReason=blocked_reason,
    )


def _violation_reasons(check: ConstraintCheckResult) -> str:
    return "; ".join(v.reason for v in check.violations)


async def validate_nba_constraints(
    manager: ConstraintManager,
    nba: NextBestAction,
    campaign_id: Optional[str] = None,
    rep_id: Optional[str] = None,
) -> ConstrainedNBA:
    """Check an existing recommendation against the current constraints."""
    check = await manager.check_constraints(_proposed_action(nba, campaign_id, rep_id))
    blocked_reason = None if check.passed else _violation_reasons(check)
    return _constrained(nba, check, check.passed, blocked_reason)


async def validate_nbas_with_constraints(
    manager: ConstraintManager,
    nbas: Sequence[NextBestAction],
    campaign_id: Optional[str] = None,
    rep_id: Optional[str] = None,
    include_blocked: bool = False,
) -> List[ConstrainedNBA]:
    """
    Validate a batch sequentially.

    Checks run one after another so that every check sees a consistent view
    of the counters. Blocked recommendations are dropped unless
    `include_blocked` is set.
    """
    validated = []
    for nba in nbas:
        validated.append(await validate_nba_constraints(manager, nba, campaign_id, rep_id))

    if include_blocked:
        return validated
    return [n for n in validated if n.isExecutable]


async def generate_constraint_aware_nba(
    manager: ConstraintManager,
    hcp: HCPProfile,
    channel_health: Optional[Sequence[ChannelHealth]] = None,
    config: Optional[NBAConfig] = None,
    campaign_id: Optional[str] = None,
    rep_id: Optional[str] = None,
    thresholds: Optional[HealthThresholds] = None,
) -> ConstrainedNBA:
    """
    Generate a recommendation that respects capacity, contact limits,
    compliance, budget and territory constraints. Health is classified with
    `thresholds` when `channel_health` is not given.

    Channels are tried in status order opportunity, active, declining, dark,
    blocked (then by descending score). The first candidate that passes wins.
    A candidate with only warning-level violations is still executable and
    carries the warnings as its blocked reason. When every channel has a hard
    violation, the unconstrained recommendation is returned as non-executable.
    """
    cfg = config or DEFAULT_CONFIG
    health = (
        list(channel_health) if channel_health else classify_channel_health(hcp, thresholds)
    )

    candidates = sorted(
        health, key=lambda h: (CONSTRAINT_STATUS_PRIORITY[h.status], -h.score)
    )

    for candidate in candidates:
        nba = generate_nba_for_channel(hcp, candidate, cfg)
        check = await manager.check_constraints(_proposed_action(nba, campaign_id, rep_id))

        if check.passed:
            return _constrained(nba, check, True)

        has_error = any(v.severity == ViolationSeverity.ERROR for v in check.violations)
        if not has_error:
            return _constrained(nba, check, True, "; ".join(check.warnings))

    logger.info(f"All channels constrained for HCP {hcp.id}")
    primary = generate_nba(hcp, health, cfg)
    check = await manager.check_constraints(_proposed_action(primary, campaign_id, rep_id))
    return _constrained(primary, check, False, _violation_reasons(check))


def get_constraint_aware_nba_summary(nbas: Sequence[ConstrainedNBA]) -> ConstraintAwareNBASummary:
    """NBA summary plus executable/blocked counts and violations by type."""
    base = get_nba_summary(nbas)
    blocked = [n for n in nbas if not n.isExecutable]

    violation_counts: Dict[str, int] = {}
    for nba in blocked:
        for violation in nba.constraintCheck.violations:
            key = violation.constraintType.value
            violation_counts[key] = violation_counts.get(key, 0) + 1

    return ConstraintAwareNBASummary(
        **base.model_dump(),
        executableActions=len(nbas) - len(blocked),
        blockedActions=len(blocked),
        constraintViolations=[
            ViolationCount(type=t, count=c) for t, c in violation_counts.items()
        ],
    )
