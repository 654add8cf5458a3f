"""
Persistence layer for the Engagement Engine.

- base: EngagementStore interface
- memory: InMemoryStore (no DATABASE_URL, tests)
- postgres: PostgresStore (asyncpg)
"""

from engagement_engine.storage.base import EngagementStore
from engagement_engine.storage.memory import InMemoryStore
from engagement_engine.storage.postgres import PostgresStore

__all__ = ["EngagementStore", "InMemoryStore", "PostgresStore"]
