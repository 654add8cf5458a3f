"""
Core infrastructure package for the Engagement Engine backend.

Provides:
- Configuration management via pydantic-settings
- Async PostgreSQL connectivity via asyncpg (optional)
- The service exception taxonomy

FastAPI dependencies live in engagement_engine.core.dependencies and are not
re-exported here, so importing configuration never pulls in the services.

Usage:
    from engagement_engine.core import get_settings, NotFoundError
"""

# =============================================================================
# Re-exports from engagement_engine.core.config
# =============================================================================
from engagement_engine.core.config import Settings, get_settings

# =============================================================================
# Re-exports from engagement_engine.core.database
# =============================================================================
from engagement_engine.core.database import init_db, close_db, create_schema, get_db_pool

# =============================================================================
# Re-exports from engagement_engine.core.exceptions
# =============================================================================
from engagement_engine.core.exceptions import (
    EngagementEngineError,
    InvalidStateTransitionError,
    NotFoundError,
    OutcomeUnavailableError,
)

__all__ = [
    'Settings',
    'get_settings',
    'init_db',
    'close_db',
    'create_schema',
    'get_db_pool',
    'EngagementEngineError',
    'InvalidStateTransitionError',
    'NotFoundError',
    'OutcomeUnavailableError',
]
