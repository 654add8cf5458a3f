"""
SQL for standing resource rows mutated by the constraint manager.

Every counter mutation is one conditional UPDATE ... RETURNING statement, so
the read-check-write happens inside PostgreSQL under the row lock. A statement
that returns no row means "not applied" (missing row or check failed).

Counter formulas:
    capacity fits      = limit IS NULL OR used + delta <= limit (per period)
    budget available   = allocated_amount - spent_amount - committed_amount
    floors             = GREATEST(0, counter + delta)
"""

from typing import Dict

from engagement_engine.models.enums import CapacityPeriod


# =============================================================================
# Channel Capacity
# =============================================================================

GET_CHANNEL_CAPACITY = """
    SELECT * FROM channel_capacity
    WHERE channel = $1
      AND rep_id IS NOT DISTINCT FROM $2
      AND is_active = TRUE
"""

LIST_CHANNEL_CAPACITY = """
    SELECT * FROM channel_capacity
    WHERE is_active = TRUE
    ORDER BY channel, rep_id NULLS FIRST
"""

# $1 channel, $2 rep_id, $3 delta, $4 enforce_limits
ADJUST_CAPACITY_USAGE = """
    UPDATE channel_capacity
    SET daily_used = GREATEST(0, daily_used + $3),
        weekly_used = GREATEST(0, weekly_used + $3),
        monthly_used = GREATEST(0, monthly_used + $3),
        updated_at = NOW()
    WHERE channel = $1
      AND rep_id IS NOT DISTINCT FROM $2
      AND is_active = TRUE
      AND (
          NOT $4 OR $3 <= 0 OR (
              (daily_limit IS NULL OR daily_used + $3 <= daily_limit)
              AND (weekly_limit IS NULL OR weekly_used + $3 <= weekly_limit)
              AND (monthly_limit IS NULL OR monthly_used + $3 <= monthly_limit)
          )
      )
    RETURNING *
"""

_CAPACITY_RESET_COLUMNS: Dict[CapacityPeriod, str] = {
    CapacityPeriod.DAILY: "daily_used",
    CapacityPeriod.WEEKLY: "weekly_used",
    CapacityPeriod.MONTHLY: "monthly_used",
}


def get_capacity_reset_query(period: CapacityPeriod, by_channel: bool) -> str:
    """
    Zero one period's counter. With `by_channel`, $1 restricts to a channel.
    """
    column = _CAPACITY_RESET_COLUMNS[period]
    query = f"UPDATE channel_capacity SET {column} = 0, updated_at = NOW()"
    if by_channel:
        query += " WHERE channel = $1"
    return query


# =============================================================================
# HCP Contact Limits
# =============================================================================

GET_CONTACT_LIMITS = "SELECT * FROM hcp_contact_limits WHERE hcp_id = $1"

LIST_CONTACT_LIMITS = "SELECT * FROM hcp_contact_limits ORDER BY hcp_id"

# $1 hcp_id, $2 channel, $3 contacted_at
INCREMENT_CONTACT = """
    INSERT INTO hcp_contact_limits (
        hcp_id, touches_this_week, touches_this_month,
        last_contact_at, last_contact_channel, updated_at
    )
    VALUES ($1, 1, 1, $3, $2, NOW())
    ON CONFLICT (hcp_id) DO UPDATE SET
        touches_this_week = hcp_contact_limits.touches_this_week + 1,
        touches_this_month = hcp_contact_limits.touches_this_month + 1,
        last_contact_at = EXCLUDED.last_contact_at,
        last_contact_channel = EXCLUDED.last_contact_channel,
        updated_at = NOW()
    RETURNING *
"""

_CONTACT_RESET_COLUMNS: Dict[CapacityPeriod, str] = {
    CapacityPeriod.WEEKLY: "touches_this_week",
    CapacityPeriod.MONTHLY: "touches_this_month",
}


def get_contact_reset_query(period: CapacityPeriod) -> str:
    """Zero weekly or monthly touch counters for every HCP."""
    column = _CONTACT_RESET_COLUMNS[period]
    return f"UPDATE hcp_contact_limits SET {column} = 0, updated_at = NOW()"


# =============================================================================
# Budget Allocations
# =============================================================================

GET_BUDGET_ALLOCATION = "SELECT * FROM budget_allocations WHERE id = $1"

DELETE_BUDGET_ALLOCATION = "DELETE FROM budget_allocations WHERE id = $1"

# $1 id, $2 committed_delta, $3 spent_delta, $4 require_available
ADJUST_BUDGET = """
    UPDATE budget_allocations
    SET committed_amount = GREATEST(0, committed_amount + $2),
        spent_amount = GREATEST(0, spent_amount + $3),
        updated_at = NOW()
    WHERE id = $1
      AND (NOT $4 OR $2 <= allocated_amount - spent_amount - committed_amount)
    RETURNING *
"""


def get_budget_list_query(by_campaign: bool, by_channel: bool, active_only: bool) -> str:
    """
    List budget rows. Parameters are consumed in order: campaign_id (if
    `by_campaign`), then channel (if `by_channel`).
    """
    conditions = []
    index = 1
    if active_only:
        conditions.append("is_active = TRUE")
    if by_campaign:
        conditions.append(f"campaign_id = ${index}")
        index += 1
    if by_channel:
        conditions.append(f"channel = ${index}")

    query = "SELECT * FROM budget_allocations"
    if conditions:
        query += " WHERE " + " AND ".join(conditions)
    return query + " ORDER BY period_start DESC NULLS LAST, id"


# =============================================================================
# Compliance Windows and Territory Assignments
# =============================================================================

LIST_COMPLIANCE_WINDOWS = "SELECT * FROM compliance_windows ORDER BY start_date"

LIST_ACTIVE_COMPLIANCE_WINDOWS = """
    SELECT * FROM compliance_windows WHERE is_active = TRUE ORDER BY start_date
"""

GET_COMPLIANCE_WINDOW = "SELECT * FROM compliance_windows WHERE id = $1"

DELETE_COMPLIANCE_WINDOW = "DELETE FROM compliance_windows WHERE id = $1"

DELETE_TERRITORY_ASSIGNMENT = "DELETE FROM territory_assignments WHERE id = $1"
