"""
Generic parameterized statement builders shared by the query modules.

All builders emit asyncpg-style positional placeholders ($1, $2, ...).
Table and column names come from code, never from request data.
"""

import re
from typing import List, Optional, Sequence, Tuple


def build_insert_query(
    table: str,
    columns: Sequence[str],
    conflict_target: Optional[str] = None,
    update_columns: Optional[Sequence[str]] = None,
) -> str:
    """
    Build an INSERT ... RETURNING * statement, optionally as an upsert.

    Args:
        table: Target table.
        columns: Column names in parameter order.
        conflict_target: ON CONFLICT target, e.g. "(id)". None for a plain insert.
        update_columns: Columns overwritten on conflict. Defaults to every
            column except those in the conflict target.

    Returns:
        str: Parameterized SQL.

    Example:
        >>> build_insert_query("job_runs", ["job_name", "run_date"], "(job_name, run_date)")
    """
    placeholders = ", ".join(f"${i}" for i in range(1, len(columns) + 1))
    query = f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({placeholders})"

    if conflict_target:
        if update_columns is None:
            key_columns = set(re.findall(r"\w+", conflict_target))
            update_columns = [c for c in columns if c not in key_columns]
        if update_columns:
            assignments = ", ".join(f"{c} = EXCLUDED.{c}" for c in update_columns)
            query += f" ON CONFLICT {conflict_target} DO UPDATE SET {assignments}"
        else:
            query += f" ON CONFLICT {conflict_target} DO NOTHING"

    return query + " RETURNING *"


def build_update_query(
    table: str,
    key_column: str,
    columns: Sequence[str],
    guard_status: bool = False,
) -> str:
    """
    Build a keyed UPDATE ... RETURNING * statement.

    Parameter layout: $1 is the key, then one parameter per column, then
    (with `guard_status`) a text[] of acceptable current statuses. The
    guarded form is the compare-and-set used for life-cycle transitions:
    no row is returned when the status did not match.
    """
    assignments = ", ".join(f"{c} = ${i}" for i, c in enumerate(columns, start=2))
    query = f"UPDATE {table} SET {assignments} WHERE {key_column} = $1"
    if guard_status:
        query += f" AND status = ANY(${len(columns) + 2}::text[])"
    return query + " RETURNING *"


def build_filtered_select(
    table: str,
    filters: Sequence[Tuple[str, str]],
    order_by: Optional[str] = None,
    limit: bool = False,
) -> str:
    """
    Build SELECT * with AND-ed conditions.

    Args:
        filters: (column, operator) pairs; each consumes one parameter, e.g.
            ("status", "= ANY") becomes "status = ANY($1)".
        order_by: ORDER BY clause body.
        limit: Append "LIMIT $n" consuming one more parameter.
    """
    conditions: List[str] = []
    for index, (column, operator) in enumerate(filters, start=1):
        if operator.endswith("ANY"):
            conditions.append(f"{column} {operator}(${index})")
        else:
            conditions.append(f"{column} {operator} ${index}")

    query = f"SELECT * FROM {table}"
    if conditions:
        query += " WHERE " + " AND ".join(conditions)
    if order_by:
        query += f" ORDER BY {order_by}"
    if limit:
        query += f" LIMIT ${len(filters) + 1}"
    return query
