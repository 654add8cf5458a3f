"""
FastAPI router for HCP profiles and message exposure data.

Key Endpoints:
- PUT /hcps - Create or replace an HCP profile
- GET /hcps - List profiles
- GET /hcps/{hcp_id} - One profile
- GET /hcps/themes/all | PUT /hcps/themes - Message themes
- POST /hcps/exposures - Score and record a message exposure measurement
- GET /hcps/{hcp_id}/saturation - Per-HCP Message Saturation Index summary
- GET /hcps/{hcp_id}/themes/recommended - Themes to use and to avoid
- GET /hcps/{hcp_id}/themes/{theme_id}/blocked - Whether a theme is blocked

The engine only reads profiles; these endpoints let an upstream system keep
the store in sync.
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Query

from engagement_engine.core.dependencies import StoreDep
from engagement_engine.core.exceptions import NotFoundError
from engagement_engine.models.schemas import (
    HCPProfile,
    HcpSaturationSummary,
    MessageExposure,
    MessageTheme,
    RecommendedThemes,
    ThemeBlockStatus,
)
from engagement_engine.services.message_saturation import (
    get_hcp_saturation_summary,
    record_message_exposure,
)
from engagement_engine.services.saturation_nba import get_recommended_themes, is_theme_blocked


logger = logging.getLogger(__name__)

router = APIRouter()


# =============================================================================
# Profiles
# =============================================================================

@router.put("", response_model=HCPProfile)
async def upsert_hcp(hcp: HCPProfile, store: StoreDep) -> HCPProfile:
    return await store.upsert_hcp(hcp)


@router.get("", response_model=List[HCPProfile])
async def list_hcps(
    store: StoreDep,
    hcp_ids: Optional[List[str]] = Query(default=None, alias="id"),
) -> List[HCPProfile]:
    return await store.list_hcps(hcp_ids or None)


# =============================================================================
# Message Themes and Exposures
# =============================================================================

@router.get("/themes/all", response_model=List[MessageTheme])
async def list_themes(
    store: StoreDep,
    active_only: bool = Query(default=False, alias="activeOnly"),
) -> List[MessageTheme]:
    return await store.list_message_themes(active_only)


@router.put("/themes", response_model=MessageTheme)
async def upsert_theme(theme: MessageTheme, store: StoreDep) -> MessageTheme:
    return await store.upsert_message_theme(theme)


@router.post("/exposures", response_model=MessageExposure, status_code=201)
async def record_exposure(exposure: MessageExposure, store: StoreDep) -> MessageExposure:
    """Compute MSI, risk level and trend direction, then store the measurement."""
    return await record_message_exposure(store, exposure)


# =============================================================================
# Per-HCP Views
# =============================================================================

@router.get("/{hcp_id}", response_model=HCPProfile)
async def get_hcp(hcp_id: str, store: StoreDep) -> HCPProfile:
    hcp = await store.get_hcp(hcp_id)
    if hcp is None:
        raise NotFoundError("HCP", hcp_id)
    return hcp


async def _saturation_summary(store, hcp_id: str) -> HcpSaturationSummary:
    summary = await get_hcp_saturation_summary(store, hcp_id)
    if summary is None:
        raise NotFoundError("Message exposures for HCP", hcp_id)
    return summary


@router.get("/{hcp_id}/saturation", response_model=HcpSaturationSummary)
async def get_saturation(hcp_id: str, store: StoreDep) -> HcpSaturationSummary:
    return await _saturation_summary(store, hcp_id)


@router.get("/{hcp_id}/themes/recommended", response_model=RecommendedThemes)
async def get_theme_recommendations(hcp_id: str, store: StoreDep) -> RecommendedThemes:
    summary = await _saturation_summary(store, hcp_id)
    return get_recommended_themes(summary, await store.list_message_themes())


@router.get("/{hcp_id}/themes/{theme_id}/blocked", response_model=ThemeBlockStatus)
async def get_theme_block_status(hcp_id: str, theme_id: str, store: StoreDep) -> ThemeBlockStatus:
    return is_theme_blocked(theme_id, await get_hcp_saturation_summary(store, hcp_id))
