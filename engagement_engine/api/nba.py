"""
FastAPI router for next-best-action recommendations.

Key Endpoints:
- POST /nba/generate - Recommendation for one HCP profile
- POST /nba/batch - Recommendations for many profiles, prioritized
- POST /nba/prioritize - Order existing recommendations by urgency, confidence
- POST /nba/summary - Counts by urgency, action type and channel
- GET /nba/action-types - Action type labels, descriptions and priorities
- GET /nba/hcps/{hcp_id} - Recommendation for a stored HCP
- POST /nba/saturation-aware - Recommendations with message-saturation context
- POST /nba/simulate-pause - Project a theme's MSI after a pause
- POST /nba/constraint-aware - Recommendations that respect operating constraints

Recommendation config defaults to the configured NBA settings.
"""

import logging
from typing import Any, Dict, List, Optional, Sequence

from fastapi import APIRouter

from engagement_engine.core.config import Settings
from engagement_engine.core.dependencies import (
    ConstraintManagerDep,
    SettingsDep,
    StoreDep,
)
from engagement_engine.core.exceptions import NotFoundError
from engagement_engine.models.schemas import (
    ConstraintAwareNBARequest,
    ConstraintAwareNBAResponse,
    HCPProfile,
    NBABatchRequest,
    NBAConfig,
    NBARequest,
    NBASummary,
    NextBestAction,
    PrioritizeRequest,
    SaturationAwareNBARequest,
    SaturationAwareNBAResponse,
    SimulatePauseRequest,
    ThemeSimulationResult,
)
from engagement_engine.services.channel_health import thresholds_from_settings
from engagement_engine.services.message_saturation import get_hcp_saturation_summary
from engagement_engine.services.nba_engine import (
    ACTION_TYPE_CONFIG,
    config_from_settings,
    filter_actionable_nbas,
    generate_constraint_aware_nba,
    generate_nba,
    generate_nbas,
    get_constraint_aware_nba_summary,
    get_nba_summary,
    prioritize_nbas,
)
from engagement_engine.services.saturation_nba import (
    generate_saturation_aware_nbas,
    get_saturation_aware_summary,
    prioritize_saturation_aware_nbas,
    simulate_theme_pause,
)
from engagement_engine.storage.base import EngagementStore


logger = logging.getLogger(__name__)

router = APIRouter()


# =============================================================================
# Helper Functions
# =============================================================================

def _config(config: Optional[NBAConfig], settings: Settings) -> NBAConfig:
    return config or config_from_settings(settings)


async def _load_hcps(store: EngagementStore, hcp_ids: Sequence[str]) -> List[HCPProfile]:
    """Stored profiles in request order; any unknown id is a 404."""
    found = {hcp.id: hcp for hcp in await store.list_hcps(hcp_ids)}
    for hcp_id in hcp_ids:
        if hcp_id not in found:
            raise NotFoundError("HCP", hcp_id)
    return [found[hcp_id] for hcp_id in hcp_ids]


# =============================================================================
# Recommendation Endpoints
# =============================================================================

@router.post("/generate", response_model=NextBestAction)
async def generate(request: NBARequest, settings: SettingsDep) -> NextBestAction:
    return generate_nba(
        request.hcp,
        request.channelHealth,
        _config(request.config, settings),
        thresholds_from_settings(settings),
    )


@router.post("/batch", response_model=List[NextBestAction])
async def generate_batch(request: NBABatchRequest, settings: SettingsDep) -> List[NextBestAction]:
    """
    Generate one recommendation per profile, then prioritize.

    With actionableOnly set, recommendations below the minimum confidence
    threshold are dropped before the limit is applied.
    """
    config = _config(request.config, settings)
    nbas = generate_nbas(request.hcps, config, thresholds_from_settings(settings))
    if request.actionableOnly:
        nbas = filter_actionable_nbas(nbas, config)

    prioritized = prioritize_nbas(nbas, request.limit)
    logger.info(f"Generated {len(nbas)} NBAs for {len(request.hcps)} HCPs")
    return prioritized


@router.post("/prioritize", response_model=List[NextBestAction])
async def prioritize(request: PrioritizeRequest) -> List[NextBestAction]:
    return prioritize_nbas(request.nbas, request.limit)


@router.post("/summary", response_model=NBASummary)
async def summarize(nbas: List[NextBestAction]) -> NBASummary:
    return get_nba_summary(nbas)


@router.get("/action-types", response_model=Dict[str, Dict[str, Any]])
async def list_action_types() -> Dict[str, Dict[str, Any]]:
    """Label, description and default priority (1 = highest) per action type."""
    return {action.value: dict(info) for action, info in ACTION_TYPE_CONFIG.items()}


@router.get("/hcps/{hcp_id}", response_model=NextBestAction)
async def generate_for_stored_hcp(
    hcp_id: str, store: StoreDep, settings: SettingsDep
) -> NextBestAction:
    hcp = await store.get_hcp(hcp_id)
    if hcp is None:
        raise NotFoundError("HCP", hcp_id)
    return generate_nba(
        hcp, None, config_from_settings(settings), thresholds_from_settings(settings)
    )


# =============================================================================
# Message Saturation Overlay
# =============================================================================

@router.post("/saturation-aware", response_model=SaturationAwareNBAResponse)
async def generate_saturation_aware(
    request: SaturationAwareNBARequest, store: StoreDep, settings: SettingsDep
) -> SaturationAwareNBAResponse:
    """
    Recommendations for stored HCPs, adjusted by their message exposures.

    HCPs without exposure data get a plain recommendation with no
    saturation context.
    """
    hcps = await _load_hcps(store, request.hcpIds)
    summaries = {
        hcp.id: await get_hcp_saturation_summary(store, hcp.id) for hcp in hcps
    }
    themes = await store.list_message_themes()

    nbas = generate_saturation_aware_nbas(
        hcps, summaries, themes, _config(request.config, settings),
        thresholds_from_settings(settings),
    )
    prioritized = prioritize_saturation_aware_nbas(
        nbas, request.limit, request.prioritizeLowSaturation
    )
    return SaturationAwareNBAResponse(
        nbas=prioritized,
        summary=get_saturation_aware_summary(nbas),
    )


@router.post("/simulate-pause", response_model=ThemeSimulationResult)
async def simulate_pause(
    request: SimulatePauseRequest, settings: SettingsDep
) -> ThemeSimulationResult:
    return simulate_theme_pause(
        request.exposure, request.pauseDays, settings.msi_daily_decay_rate
    )


# =============================================================================
# Constraint-Aware Recommendations
# =============================================================================

@router.post("/constraint-aware", response_model=ConstraintAwareNBAResponse)
async def generate_constraint_aware(
    request: ConstraintAwareNBARequest,
    store: StoreDep,
    manager: ConstraintManagerDep,
    settings: SettingsDep,
) -> ConstraintAwareNBAResponse:
    """
    Recommendations for stored HCPs that fall back to the next viable
    channel when the preferred one is constrained.

    HCPs are validated one after another so each check sees the counters
    left by the previous one.
    """
    hcps = await _load_hcps(store, request.hcpIds)
    config = _config(request.config, settings)

    nbas = []
    for hcp in hcps:
        nbas.append(await generate_constraint_aware_nba(
            manager, hcp, None, config, request.campaignId, request.repId,
            thresholds_from_settings(settings),
        ))

    summary = get_constraint_aware_nba_summary(nbas)
    if not request.includeBlocked:
        nbas = [n for n in nbas if n.isExecutable]

    logger.info(
        f"Constraint-aware NBAs: {summary.executableActions} executable, "
        f"{summary.blockedActions} blocked"
    )
    return ConstraintAwareNBAResponse(nbas=nbas, summary=summary)
