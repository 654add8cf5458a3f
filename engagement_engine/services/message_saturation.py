"""
Message Saturation Index (MSI) Service

Scores how saturated an HCP is with one message theme, on a 0-100 scale.

MSI Components:
- frequency: touches relative to the adoption-stage threshold, 0-40
- diversity: low channel diversity raises saturation, 0-20
- decay: declining engagement raises saturation, 0-40
The component sum is scaled by an adoption-stage modifier (later stages
fatigue faster) and clamped to [0, 100].

Risk Levels:
- critical: >= 76
- high:     >= 51
- medium:   >= 26
- low:      otherwise

Usage:
    exposure = await record_message_exposure(store, exposure)
    summary = await get_hcp_saturation_summary(store, "hcp-001")
"""

import logging
from typing import Dict, Optional, Sequence

from engagement_engine.models.enums import AdoptionStage, MsiDirection, SaturationRiskLevel
from engagement_engine.models.schemas import (
    HcpSaturationSummary,
    MessageExposure,
    MsiComponents,
    ThemeRef,
)
from engagement_engine.storage.base import EngagementStore


logger = logging.getLogger(__name__)


# Touches tolerated before saturation, per adoption stage
STAGE_THRESHOLDS: Dict[AdoptionStage, float] = {
    AdoptionStage.AWARENESS: 20,
    AdoptionStage.CONSIDERATION: 15,
    AdoptionStage.TRIAL: 12,
    AdoptionStage.LOYALTY: 8,
}

STAGE_MODIFIERS: Dict[AdoptionStage, float] = {
    AdoptionStage.AWARENESS: 0.7,
    AdoptionStage.CONSIDERATION: 0.85,
    AdoptionStage.TRIAL: 0.9,
    AdoptionStage.LOYALTY: 1.1,
}

DEFAULT_STAGE = AdoptionStage.CONSIDERATION
DEFAULT_CHANNEL_DIVERSITY = 0.5
DIRECTION_CHANGE_THRESHOLD = 5

RISK_RECOMMENDATIONS: Dict[SaturationRiskLevel, Optional[str]] = {
    SaturationRiskLevel.CRITICAL: (
        "Immediate message rotation required. Consider shifting to alternative themes."
    ),
    SaturationRiskLevel.HIGH: "Reduce touch frequency and diversify messaging channels.",
    SaturationRiskLevel.MEDIUM: "Monitor engagement closely and prepare alternative messaging.",
    SaturationRiskLevel.LOW: None,
}


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def msi_to_risk_level(msi: float) -> SaturationRiskLevel:
    if msi >= 76:
        return SaturationRiskLevel.CRITICAL
    if msi >= 51:
        return SaturationRiskLevel.HIGH
    if msi >= 26:
        return SaturationRiskLevel.MEDIUM
    return SaturationRiskLevel.LOW


def determine_msi_direction(current_msi: float, previous_msi: Optional[float]) -> MsiDirection:
    """Trend versus the previous measurement; stable when there is none."""
    if previous_msi is None:
        return MsiDirection.STABLE
    change = current_msi - previous_msi
    if change > DIRECTION_CHANGE_THRESHOLD:
        return MsiDirection.INCREASING
    if change < -DIRECTION_CHANGE_THRESHOLD:
        return MsiDirection.DECREASING
    return MsiDirection.STABLE


def calculate_msi_components(
    touch_frequency: int,
    channel_diversity: Optional[float] = None,
    engagement_decay: Optional[float] = None,
    adoption_stage: Optional[AdoptionStage] = None,
) -> MsiComponents:
    """
    Break an exposure into its MSI components.

    Args:
        touch_frequency: Times the HCP was exposed to the theme.
        channel_diversity: 0-1 entropy of channels used (0.5 when unknown).
        engagement_decay: Engagement decline rate; positive means declining.
            A range of -25..+25 maps onto the 0-40 decay component.
        adoption_stage: HCP adoption stage (consideration when unknown).
    """
    stage = adoption_stage or DEFAULT_STAGE
    threshold = STAGE_THRESHOLDS[stage]

    diversity = DEFAULT_CHANNEL_DIVERSITY if channel_diversity is None else channel_diversity
    decay = engagement_decay or 0

    return MsiComponents(
        frequencyComponent=_clamp(touch_frequency / threshold * 25, 0, 40),
        diversityComponent=_clamp((1 - diversity) * 20, 0, 20),
        decayComponent=_clamp((decay + 25) / 50 * 40, 0, 40),
        stageModifier=STAGE_MODIFIERS[stage],
    )


def calculate_msi(components: MsiComponents) -> float:
    raw = components.frequencyComponent + components.diversityComponent + components.decayComponent
    return _clamp(raw * components.stageModifier, 0, 100)


def score_exposure(
    exposure: MessageExposure, previous_msi: Optional[float] = None
) -> MessageExposure:
    """Return a copy of the exposure with msi, msiDirection and saturationRisk filled."""
    components = calculate_msi_components(
        exposure.touchFrequency,
        exposure.channelDiversity,
        exposure.engagementDecay,
        exposure.adoptionStage,
    )
    msi = calculate_msi(components)
    return exposure.model_copy(
        update={
            "msi": msi,
            "msiDirection": determine_msi_direction(msi, previous_msi),
            "saturationRisk": msi_to_risk_level(msi),
        }
    )


def build_saturation_summary(
    hcp_id: str,
    exposures: Sequence[MessageExposure],
    hcp_name: Optional[str] = None,
) -> Optional[HcpSaturationSummary]:
    """
    Roll an HCP's latest theme exposures up into one saturation summary.

    overallMsi is the mean over exposures that carry an MSI. Returns None
    when the HCP has no exposures.
    """
    if not exposures:
        return None

    scored = [e for e in exposures if e.msi is not None]
    overall = sum(e.msi for e in scored) / len(scored) if scored else 0.0

    themes_at_risk = sum(
        1 for e in exposures
        if e.saturationRisk in (SaturationRiskLevel.HIGH, SaturationRiskLevel.CRITICAL)
    )

    top_theme = None
    if scored:
        top = max(scored, key=lambda e: e.msi)
        top_theme = ThemeRef(
            id=top.messageThemeId,
            name=top.themeName or "Unknown",
            msi=top.msi,
            category=top.themeCategory,
        )

    risk = msi_to_risk_level(overall)
    return HcpSaturationSummary(
        hcpId=hcp_id,
        hcpName=hcp_name,
        overallMsi=overall,
        themesAtRisk=themes_at_risk,
        totalThemes=len(exposures),
        topSaturatedTheme=top_theme,
        exposures=list(exposures),
        riskLevel=risk,
        recommendedAction=RISK_RECOMMENDATIONS[risk],
    )


# =============================================================================
# Store-backed Operations
# =============================================================================


async def record_message_exposure(
    store: EngagementStore, exposure: MessageExposure
) -> MessageExposure:
    """
    Score and persist a new exposure measurement.

    The direction is computed against the latest stored measurement for the
    same HCP and theme.
    """
    previous = await store.get_latest_exposure(exposure.hcpId, exposure.messageThemeId)
    scored = score_exposure(exposure, previous.msi if previous else None)
    saved = await store.save_message_exposure(scored)
    logger.info(
        f"Recorded exposure hcp={exposure.hcpId} theme={exposure.messageThemeId} "
        f"msi={saved.msi:.1f} risk={saved.saturationRisk.value}"
    )
    return saved


async def get_hcp_saturation_summary(
    store: EngagementStore, hcp_id: str
) -> Optional[HcpSaturationSummary]:
    exposures = await store.get_message_exposures(hcp_id)
    if not exposures:
        return None
    hcp = await store.get_hcp(hcp_id)
    return build_saturation_summary(hcp_id, exposures, hcp.fullName if hcp else None)
