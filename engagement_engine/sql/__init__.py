"""
SQL Query Module for the Engagement Engine.

Provides parameterized SQL for the PostgreSQL store:
- schema: DDL for every table the store uses
- builders: INSERT ... ON CONFLICT, UPDATE and filtered SELECT builders
- resource_queries: capacity, contact limit, budget, compliance and territory queries
- plan_queries: HCP, exposure, optimization result, allocation, plan and job-run queries

Counter and status mutations are single conditional UPDATE ... RETURNING
statements, so a mutation that would break a limit returns no row instead of
writing.

Example usage:
    from engagement_engine.sql import get_schema_ddl, build_insert_query
"""

from engagement_engine.sql.builders import (
    build_filtered_select,
    build_insert_query,
    build_update_query,
)
from engagement_engine.sql.schema import get_schema_ddl

__all__ = [
    'build_filtered_select',
    'build_insert_query',
    'build_update_query',
    'get_schema_ddl',
]
