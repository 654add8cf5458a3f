"""
FastAPI router for channel health classification.

Key Endpoints:
- POST /channel-health/classify - Classify every channel of one HCP
- POST /channel-health/cohort - Per-channel status distribution for a cohort
- POST /channel-health/summary - Healthy / issue / opportunity counts for one HCP
- GET /channel-health/hcps/{hcp_id} - Classify a stored HCP profile

Thresholds default to the configured values; a request may override them.
"""

import logging
from typing import List

from fastapi import APIRouter, HTTPException

from engagement_engine.core.dependencies import SettingsDep, StoreDep
from engagement_engine.models.schemas import (
    ChannelHealth,
    ClassifyRequest,
    CohortChannelHealth,
    CohortClassifyRequest,
    HealthSummary,
)
from engagement_engine.services.channel_health import (
    classify_channel_health,
    classify_cohort_channel_health,
    get_health_summary,
    thresholds_from_settings,
)


logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/classify", response_model=List[ChannelHealth])
async def classify(request: ClassifyRequest, settings: SettingsDep) -> List[ChannelHealth]:
    thresholds = request.thresholds or thresholds_from_settings(settings)
    return classify_channel_health(request.hcp, thresholds)


@router.post("/cohort", response_model=List[CohortChannelHealth])
async def classify_cohort(
    request: CohortClassifyRequest, settings: SettingsDep
) -> List[CohortChannelHealth]:
    """
    Per-channel percentage of HCPs in each health status.

    An empty cohort returns an empty list.
    """
    thresholds = request.thresholds or thresholds_from_settings(settings)
    results = classify_cohort_channel_health(request.hcps, thresholds)
    logger.info(f"Classified cohort of {len(request.hcps)} HCPs")
    return results


@router.post("/summary", response_model=HealthSummary)
async def summarize(request: ClassifyRequest, settings: SettingsDep) -> HealthSummary:
    thresholds = request.thresholds or thresholds_from_settings(settings)
    return get_health_summary(classify_channel_health(request.hcp, thresholds))


@router.get("/hcps/{hcp_id}", response_model=List[ChannelHealth])
async def classify_stored_hcp(
    hcp_id: str, store: StoreDep, settings: SettingsDep
) -> List[ChannelHealth]:
    hcp = await store.get_hcp(hcp_id)
    if hcp is None:
        raise HTTPException(status_code=404, detail=f"HCP {hcp_id} not found")
    return classify_channel_health(hcp, thresholds_from_settings(settings))
