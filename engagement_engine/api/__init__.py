"""
API package initialization.

This package contains FastAPI router modules for the Engagement Engine:
- channel_health: Per-channel health classification and cohort views
- nba: Next-best-action recommendations (plain, saturation-aware, constraint-aware)
- constraints: Capacity, contact limits, compliance windows, budgets and territories
- plans: Optimization results and the execution plan life cycle
- monitor: Portfolio performance monitoring
- hcps: HCP profiles, message themes and exposures
"""

from fastapi import APIRouter

# Import router modules
from engagement_engine.api.channel_health import router as channel_health_router
from engagement_engine.api.nba import router as nba_router
from engagement_engine.api.constraints import router as constraints_router
from engagement_engine.api.plans import router as plans_router
from engagement_engine.api.monitor import router as monitor_router
from engagement_engine.api.hcps import router as hcps_router

# Create main API router
api_router = APIRouter()

# Include all sub-routers
api_router.include_router(channel_health_router, prefix="/channel-health", tags=["channel-health"])
api_router.include_router(nba_router, prefix="/nba", tags=["nba"])
api_router.include_router(constraints_router, prefix="/constraints", tags=["constraints"])
api_router.include_router(plans_router, prefix="/plans", tags=["plans"])
api_router.include_router(monitor_router, prefix="/monitor", tags=["monitor"])
api_router.include_router(hcps_router, prefix="/hcps", tags=["hcps"])

# Export all routers for selective imports
__all__ = [
    "api_router",
    "channel_health_router",
    "nba_router",
    "constraints_router",
    "plans_router",
    "monitor_router",
    "hcps_router",
]
