"""
Saturation-Aware NBA Overlay

Layers Message Saturation Index (MSI) context on top of a channel-health NBA.

Key Components:
- Per-theme saturation warnings and score modifiers
- Aggregate confidence adjustment from the HCP's mean MSI
- Suggested (low MSI or unexposed) and blocked (MSI >= 65) themes
- Theme pause simulation and optimal pause duration
- Saturation-aware prioritization and summary

MSI Thresholds:
    >= 80  do_not_push            (critical, score -50)
    >= 65  shift_to_alternative   (warning,  score -30)
    >= 50  approaching_saturation (warning,  score -15)
    <  20  underexposed           (info,     score +20)
    else   safe_to_reinforce      (info,     score 0)

The overlay never changes the recommended channel. It adjusts confidence
(clamped to [0, 100]), extends the reasoning and may escalate urgency to
high when the HCP's overall saturation risk is critical.
"""

import math
from typing import Dict, List, Mapping, Optional, Sequence

import numpy as np

from engagement_engine.models.enums import (
    SaturationRiskLevel,
    SaturationWarningType,
    Urgency,
    WarningSeverity,
)
from engagement_engine.models.schemas import (
    BlockedTheme,
    DecayPoint,
    HCPProfile,
    HealthThresholds,
    HcpSaturationSummary,
    MessageExposure,
    MessageTheme,
    NBAConfig,
    RecommendedThemes,
    SaturationAwareNBA,
    SaturationAwareSummary,
    SaturationBreakdown,
    SaturationContext,
    SaturationWarning,
    SuggestedTheme,
    ThemeBlockStatus,
    ThemeRecommendation,
    ThemeRef,
    ThemeScoreModifier,
    ThemeSimulationResult,
)
from engagement_engine.services.channel_health import round_half_up
from engagement_engine.services.message_saturation import msi_to_risk_level
from engagement_engine.services.nba_engine import URGENCY_ORDER, generate_nba


# =============================================================================
# Thresholds and Adjustments
# =============================================================================

DO_NOT_PUSH_MSI = 80
SHIFT_ALTERNATIVE_MSI = 65
APPROACHING_SATURATION_MSI = 50
SAFE_THRESHOLD_MSI = 40
UNDEREXPOSED_MSI = 20

SCORE_ADJUSTMENT_CRITICAL = -50
SCORE_ADJUSTMENT_HIGH = -30
SCORE_ADJUSTMENT_ELEVATED = -15
SCORE_ADJUSTMENT_OPTIMAL = 0
SCORE_ADJUSTMENT_UNDEREXPOSED = 20

# MSI points recovered per day a theme is paused
MSI_DAILY_DECAY_RATE = 0.4
MSI_FLOOR = 5

MAX_ALTERNATIVE_THEMES = 3
MAX_UNEXPOSED_SUGGESTIONS = 2

RISK_ORDER: Dict[SaturationRiskLevel, int] = {
    SaturationRiskLevel.CRITICAL: 0,
    SaturationRiskLevel.HIGH: 1,
    SaturationRiskLevel.MEDIUM: 2,
    SaturationRiskLevel.LOW: 3,
}


def _theme_name(exposure: MessageExposure, default: str = "Unknown") -> str:
    return exposure.themeName or default


# =============================================================================
# Warnings and Modifiers
# =============================================================================


def generate_saturation_warning(
    exposure: MessageExposure,
    other_exposures: Optional[Sequence[MessageExposure]] = None,
) -> SaturationWarning:
    """
    Classify one theme exposure into a saturation warning.

    Alternatives (other themes with MSI below 40, lowest first, at most 3)
    are attached only to do_not_push and shift_to_alternative warnings.
    """
    msi = exposure.msi or 0
    name = _theme_name(exposure, "Unknown Theme")
    shown = round_half_up(msi)

    if msi >= DO_NOT_PUSH_MSI:
        warning_type = SaturationWarningType.DO_NOT_PUSH
        severity = WarningSeverity.CRITICAL
        message = (
            f'STOP: "{name}" is critically saturated (MSI: {shown}). '
            f"Further messaging will damage engagement."
        )
        action = "Immediately pause this theme. Shift to alternative messaging strategies."
    elif msi >= SHIFT_ALTERNATIVE_MSI:
        warning_type = SaturationWarningType.SHIFT_TO_ALTERNATIVE
        severity = WarningSeverity.WARNING
        message = (
            f'WARNING: "{name}" is approaching saturation (MSI: {shown}). '
            f"Consider rotating to alternatives."
        )
        action = "Reduce frequency by 50% and introduce alternative themes."
    elif msi >= APPROACHING_SATURATION_MSI:
        warning_type = SaturationWarningType.APPROACHING_SATURATION
        severity = WarningSeverity.WARNING
        message = (
            f'CAUTION: "{name}" showing early fatigue signs (MSI: {shown}). '
            f"Monitor engagement closely."
        )
        action = "Diversify channels and track engagement response rates."
    elif msi < UNDEREXPOSED_MSI:
        warning_type = SaturationWarningType.UNDEREXPOSED
        severity = WarningSeverity.INFO
        message = (
            f'OPPORTUNITY: "{name}" is underexposed (MSI: {shown}). '
            f"Safe to increase touchpoints."
        )
        action = "Increase touch frequency to build awareness without saturation risk."
    else:
        warning_type = SaturationWarningType.SAFE_TO_REINFORCE
        severity = WarningSeverity.INFO
        message = (
            f'SAFE: "{name}" is in optimal range (MSI: {shown}). '
            f"Continue current strategy."
        )
        action = "Maintain current cadence. Monitor for changes."

    alternatives = None
    if warning_type in (SaturationWarningType.DO_NOT_PUSH, SaturationWarningType.SHIFT_TO_ALTERNATIVE):
        candidates = [
            e for e in (other_exposures or [])
            if e.messageThemeId != exposure.messageThemeId
            and e.msi is not None
            and e.msi < SAFE_THRESHOLD_MSI
        ]
        candidates.sort(key=lambda e: e.msi)
        alternatives = [
            ThemeRef(
                id=e.messageThemeId,
                name=_theme_name(e),
                msi=e.msi,
                category=e.themeCategory or "general",
            )
            for e in candidates[:MAX_ALTERNATIVE_THEMES]
        ]

    return SaturationWarning(
        type=warning_type,
        severity=severity,
        themeId=exposure.messageThemeId,
        themeName=name,
        currentMsi=msi,
        message=message,
        recommendedAction=action,
        alternativeThemes=alternatives,
    )


def generate_hcp_saturation_warnings(
    exposures: Sequence[MessageExposure],
) -> List[SaturationWarning]:
    """Warnings for every scored exposure, most saturated first."""
    warnings = [
        generate_saturation_warning(e, exposures) for e in exposures if e.msi is not None
    ]
    return sorted(warnings, key=lambda w: -w.currentMsi)


def calculate_theme_modifier(exposure: MessageExposure) -> ThemeScoreModifier:
    msi = exposure.msi or 0

    if msi >= DO_NOT_PUSH_MSI:
        adjustment = SCORE_ADJUSTMENT_CRITICAL
        reason = "Theme critically saturated - strongly penalized"
    elif msi >= SHIFT_ALTERNATIVE_MSI:
        adjustment = SCORE_ADJUSTMENT_HIGH
        reason = "Theme approaching saturation - penalized"
    elif msi >= APPROACHING_SATURATION_MSI:
        adjustment = SCORE_ADJUSTMENT_ELEVATED
        reason = "Theme showing early fatigue - slightly penalized"
    elif msi < UNDEREXPOSED_MSI:
        adjustment = SCORE_ADJUSTMENT_UNDEREXPOSED
        reason = "Theme underexposed - boosted as opportunity"
    else:
        adjustment = SCORE_ADJUSTMENT_OPTIMAL
        reason = "Theme in optimal range - no adjustment"

    return ThemeScoreModifier(
        themeId=exposure.messageThemeId,
        themeName=_theme_name(exposure),
        scoreAdjustment=adjustment,
        reason=reason,
        msi=msi,
        riskLevel=msi_to_risk_level(msi),
    )


def calculate_confidence_adjustment(exposures: Sequence[MessageExposure]) -> int:
    """
    Confidence delta from the mean MSI across all exposures (unscored count as 0).
    """
    if not exposures:
        return 0

    avg_msi = sum(e.msi or 0 for e in exposures) / len(exposures)
    if avg_msi >= 70:
        return -20
    if avg_msi >= 55:
        return -10
    if avg_msi >= 40:
        return -5
    if avg_msi < 25:
        return 10
    return 0


# =============================================================================
# Theme Pause Simulation
# =============================================================================


def _project_msi(current_msi: float, days, decay_rate: float):
    return np.maximum(MSI_FLOOR, current_msi - decay_rate * days)


def simulate_theme_pause(
    exposure: MessageExposure,
    pause_days: int,
    decay_rate: float = MSI_DAILY_DECAY_RATE,
) -> ThemeSimulationResult:
    """
    Project a theme's MSI after pausing it for `pause_days`.

    Decay is linear: projected = max(5, current - decay_rate * days). The
    curve is sampled every max(1, pause_days // 10) days and always ends on
    the last day.
    """
    current = exposure.msi or 0
    projected = float(_project_msi(current, pause_days, decay_rate))

    before = msi_to_risk_level(current)
    after = msi_to_risk_level(projected)

    step = max(1, pause_days // 10)
    days = np.arange(0, pause_days + 1, step)
    if days[-1] != pause_days:
        days = np.append(days, pause_days)
    curve = [
        DecayPoint(day=int(day), projectedMsi=float(value))
        for day, value in zip(days, _project_msi(current, days, decay_rate))
    ]

    if projected < SAFE_THRESHOLD_MSI <= current:
        recommendation = (
            f"Pausing for {pause_days} days will bring MSI below safe threshold. Recommended."
        )
    elif after != before:
        verdict = (
            "Recommended."
            if after in (SaturationRiskLevel.LOW, SaturationRiskLevel.MEDIUM)
            else "Partial improvement."
        )
        recommendation = f"Pausing will move from {before.value} to {after.value} risk. {verdict}"
    elif current - projected > 10:
        recommendation = (
            f"Significant MSI reduction ({round_half_up(current - projected)} points). "
            f"Worth considering."
        )
    else:
        recommendation = "Limited impact expected. Consider longer pause or alternative strategies."

    return ThemeSimulationResult(
        themeId=exposure.messageThemeId,
        themeName=_theme_name(exposure),
        currentMsi=current,
        projectedMsi=round_half_up(projected),
        msiChange=round_half_up(projected - current),
        pauseDays=pause_days,
        riskLevelBefore=before,
        riskLevelAfter=after,
        recommendation=recommendation,
        decayCurve=curve,
    )


def calculate_optimal_pause_duration(
    current_msi: float,
    target_msi: float = SAFE_THRESHOLD_MSI,
    decay_rate: float = MSI_DAILY_DECAY_RATE,
) -> int:
    """Days of pause needed to reach `target_msi`; 0 when already there."""
    if current_msi <= target_msi:
        return 0
    # rounding first keeps float noise (e.g. 50.000000001) from adding a day
    return math.ceil(round((current_msi - target_msi) / decay_rate, 6))


# =============================================================================
# Saturation-Aware NBA
# =============================================================================


def _suggested_themes(
    summary: HcpSaturationSummary, all_themes: Optional[Sequence[MessageTheme]]
) -> List[SuggestedTheme]:
    low = [
        e for e in summary.exposures
        if e.msi is not None and e.msi < SAFE_THRESHOLD_MSI
    ]
    low.sort(key=lambda e: e.msi)
    suggested = [
        SuggestedTheme(
            id=e.messageThemeId,
            name=_theme_name(e),
            msi=e.msi,
            category=e.themeCategory or "general",
            reason="Underexposed opportunity" if e.msi < UNDEREXPOSED_MSI else "Safe to reinforce",
        )
        for e in low[:MAX_ALTERNATIVE_THEMES]
    ]

    if all_themes:
        exposed = {e.messageThemeId for e in summary.exposures}
        fresh = [t for t in all_themes if t.isActive and t.id not in exposed]
        suggested.extend(
            SuggestedTheme(
                id=t.id,
                name=t.name,
                msi=0,
                category=t.category or "general",
                reason="Not yet exposed - fresh opportunity",
            )
            for t in fresh[:MAX_UNEXPOSED_SUGGESTIONS]
        )
    return suggested


def _blocked_themes(summary: HcpSaturationSummary) -> List[BlockedTheme]:
    saturated = [
        e for e in summary.exposures
        if (e.msi or 0) >= SHIFT_ALTERNATIVE_MSI
    ]
    saturated.sort(key=lambda e: -e.msi)
    return [
        BlockedTheme(
            id=e.messageThemeId,
            name=_theme_name(e),
            msi=e.msi,
            reason=(
                "BLOCKED: Critical saturation"
                if e.msi >= DO_NOT_PUSH_MSI
                else "WARNING: High saturation"
            ),
        )
        for e in saturated
    ]


def generate_saturation_aware_nba(
    hcp: HCPProfile,
    saturation_summary: Optional[HcpSaturationSummary],
    all_themes: Optional[Sequence[MessageTheme]] = None,
    config: Optional[NBAConfig] = None,
    thresholds: Optional[HealthThresholds] = None,
) -> SaturationAwareNBA:
    """
    Generate the channel NBA and overlay the HCP's saturation context.

    Without saturation data the base NBA is returned unchanged (no
    saturationContext).
    """
    base = generate_nba(hcp, None, config, thresholds)

    if saturation_summary is None or not saturation_summary.exposures:
        return SaturationAwareNBA(**base.model_dump())

    exposures = saturation_summary.exposures
    warnings = generate_hcp_saturation_warnings(exposures)
    modifiers = [calculate_theme_modifier(e) for e in exposures if e.msi is not None]
    adjustment = calculate_confidence_adjustment(exposures)
    suggested = _suggested_themes(saturation_summary, all_themes)
    blocked = _blocked_themes(saturation_summary)

    confidence = max(0, min(100, base.confidence + adjustment))

    reasoning = base.reasoning
    critical_count = sum(1 for w in warnings if w.severity == WarningSeverity.CRITICAL)
    if critical_count:
        reasoning += f" | SATURATION ALERT: {critical_count} theme(s) blocked due to fatigue."
    elif blocked:
        reasoning += f" | Saturation: {len(blocked)} theme(s) should be avoided."

    urgency = base.urgency
    if saturation_summary.riskLevel == SaturationRiskLevel.CRITICAL and urgency != Urgency.HIGH:
        urgency = Urgency.HIGH
        reasoning += " High saturation risk requires immediate attention."

    payload = base.model_dump()
    payload.update(confidence=confidence, reasoning=reasoning, urgency=urgency)
    return SaturationAwareNBA(
        **payload,
        saturationContext=SaturationContext(
            warnings=warnings,
            themeModifiers=modifiers,
            suggestedThemes=suggested,
            blockedThemes=blocked,
            overallSaturationRisk=saturation_summary.riskLevel,
            confidenceAdjustment=adjustment,
        ),
    )


def generate_saturation_aware_nbas(
    hcps: Sequence[HCPProfile],
    saturation_summaries: Mapping[str, Optional[HcpSaturationSummary]],
    all_themes: Optional[Sequence[MessageTheme]] = None,
    config: Optional[NBAConfig] = None,
    thresholds: Optional[HealthThresholds] = None,
) -> List[SaturationAwareNBA]:
    return [
        generate_saturation_aware_nba(
            hcp, saturation_summaries.get(hcp.id), all_themes, config, thresholds
        )
        for hcp in hcps
    ]


def _overall_risk(nba: SaturationAwareNBA) -> SaturationRiskLevel:
    if nba.saturationContext is None:
        return SaturationRiskLevel.LOW
    return nba.saturationContext.overallSaturationRisk


def prioritize_saturation_aware_nbas(
    nbas: Sequence[SaturationAwareNBA],
    limit: Optional[int] = None,
    prioritize_low_saturation: bool = True,
) -> List[SaturationAwareNBA]:
    """
    Lower saturation risk first (when enabled), then urgency, then confidence.

    NBAs without saturation data count as low risk. A `limit` of None or 0
    returns every recommendation.
    """
    def sort_key(nba: SaturationAwareNBA):
        risk_rank = -RISK_ORDER[_overall_risk(nba)] if prioritize_low_saturation else 0
        return (risk_rank, URGENCY_ORDER[nba.urgency], -nba.confidence)

    ordered = sorted(nbas, key=sort_key)
    return ordered[:limit] if limit else ordered


def get_saturation_aware_summary(nbas: Sequence[SaturationAwareNBA]) -> SaturationAwareSummary:
    by_urgency = {u.value: 0 for u in Urgency}
    by_risk = {r.value: 0 for r in SaturationRiskLevel}
    total_confidence = 0
    with_data = total_warnings = critical_warnings = blocked = suggested = 0

    for nba in nbas:
        by_urgency[nba.urgency.value] += 1
        total_confidence += nba.confidence

        context = nba.saturationContext
        if context is None:
            continue
        with_data += 1
        by_risk[context.overallSaturationRisk.value] += 1
        total_warnings += len(context.warnings)
        critical_warnings += sum(
            1 for w in context.warnings if w.severity == WarningSeverity.CRITICAL
        )
        blocked += len(context.blockedThemes)
        suggested += len(context.suggestedThemes)

    return SaturationAwareSummary(
        totalActions=len(nbas),
        byUrgency=by_urgency,
        avgConfidence=round(total_confidence / len(nbas)) if nbas else 0,
        saturationSummary=SaturationBreakdown(
            hcpsWithSaturationData=with_data,
            bySaturationRisk=by_risk,
            totalWarnings=total_warnings,
            criticalWarnings=critical_warnings,
            blockedThemes=blocked,
            suggestedOpportunities=suggested,
        ),
    )


# =============================================================================
# Theme Helpers
# =============================================================================


def get_recommended_themes(
    saturation_summary: HcpSaturationSummary,
    all_themes: Sequence[MessageTheme],
) -> RecommendedThemes:
    """Split active themes into recommended (low MSI) and avoid (MSI >= 65)."""
    exposure_by_theme = {e.messageThemeId: e for e in saturation_summary.exposures}
    recommended: List[ThemeRecommendation] = []
    avoid: List[ThemeRecommendation] = []

    for theme in all_themes:
        if not theme.isActive:
            continue
        exposure = exposure_by_theme.get(theme.id)
        msi = (exposure.msi if exposure else None) or 0

        if msi >= DO_NOT_PUSH_MSI:
            avoid.append(ThemeRecommendation(
                theme=theme, msi=msi, reason="BLOCKED: Critical saturation. Do not use."
            ))
        elif msi >= SHIFT_ALTERNATIVE_MSI:
            avoid.append(ThemeRecommendation(
                theme=theme, msi=msi, reason="WARNING: Approaching saturation. Use sparingly."
            ))
        elif msi < UNDEREXPOSED_MSI:
            reason = (
                "Not yet exposed. Fresh opportunity."
                if msi == 0
                else "Underexposed. Safe to increase."
            )
            recommended.append(ThemeRecommendation(theme=theme, msi=msi, reason=reason))
        elif msi < SAFE_THRESHOLD_MSI:
            recommended.append(ThemeRecommendation(
                theme=theme, msi=msi, reason="Optimal range. Safe to continue."
            ))

    recommended.sort(key=lambda r: r.msi)
    avoid.sort(key=lambda r: -r.msi)
    return RecommendedThemes(recommended=recommended, avoid=avoid)


def is_theme_blocked(
    theme_id: str, saturation_summary: Optional[HcpSaturationSummary]
) -> ThemeBlockStatus:
    if saturation_summary is None:
        return ThemeBlockStatus(blocked=False)

    exposure = next(
        (e for e in saturation_summary.exposures if e.messageThemeId == theme_id), None
    )
    if exposure is None or exposure.msi is None:
        return ThemeBlockStatus(blocked=False)

    if exposure.msi >= DO_NOT_PUSH_MSI:
        return ThemeBlockStatus(
            blocked=True,
            reason=(
                f'Theme "{exposure.themeName}" is critically saturated '
                f"(MSI: {round_half_up(exposure.msi)}). Further messaging will damage engagement."
            ),
            msi=exposure.msi,
        )
    return ThemeBlockStatus(blocked=False, msi=exposure.msi)
