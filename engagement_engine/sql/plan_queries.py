"""
SQL for optimization results, allocations, execution plans, profiles,
message exposures, reported outcomes and job state.

Ordering Rules:
    allocations - planned_date ASC, priority DESC (execution order)
    plans       - created_at DESC (newest first)
    exposures   - latest measurement per theme (DISTINCT ON)
"""


# =============================================================================
# HCP Profiles and Message Exposures
# =============================================================================

GET_HCP = "SELECT * FROM hcp_profiles WHERE id = $1"

LIST_HCPS = "SELECT * FROM hcp_profiles ORDER BY id"

LIST_HCPS_BY_ID = "SELECT * FROM hcp_profiles WHERE id = ANY($1::text[])"

COUNT_HCPS = "SELECT COUNT(*) FROM hcp_profiles"

LIST_MESSAGE_THEMES = "SELECT * FROM message_themes ORDER BY name"

LIST_ACTIVE_MESSAGE_THEMES = """
    SELECT * FROM message_themes WHERE is_active = TRUE ORDER BY name
"""

LATEST_EXPOSURES_FOR_HCP = """
    SELECT DISTINCT ON (e.message_theme_id)
        e.*,
        t.name AS theme_name,
        t.category AS theme_category
    FROM message_exposures e
    LEFT JOIN message_themes t ON t.id = e.message_theme_id
    WHERE e.hcp_id = $1
    ORDER BY e.message_theme_id, e.measured_at DESC, e.id DESC
"""

LATEST_EXPOSURE = """
    SELECT
        e.*,
        t.name AS theme_name,
        t.category AS theme_category
    FROM message_exposures e
    LEFT JOIN message_themes t ON t.id = e.message_theme_id
    WHERE e.hcp_id = $1 AND e.message_theme_id = $2
    ORDER BY e.measured_at DESC, e.id DESC
    LIMIT 1
"""


# =============================================================================
# Optimization Results and Allocations
# =============================================================================

GET_OPTIMIZATION_RESULT = "SELECT * FROM optimization_results WHERE id = $1"

LIST_ALLOCATIONS = """
    SELECT * FROM optimization_allocations
    WHERE result_id = $1
    ORDER BY planned_date ASC, priority DESC
"""

LIST_ALLOCATIONS_BY_STATUS = """
    SELECT * FROM optimization_allocations
    WHERE result_id = $1 AND status = ANY($2::text[])
    ORDER BY planned_date ASC, priority DESC
"""

GET_ALLOCATION = "SELECT * FROM optimization_allocations WHERE id = $1"


# =============================================================================
# Execution Plans
# =============================================================================

GET_PLAN = "SELECT * FROM execution_plans WHERE id = $1"

DELETE_PLAN_IF_STATUS = """
    DELETE FROM execution_plans WHERE id = $1 AND status = $2
"""

# $1 id, $2 completed, $3 failed, $4 total, $5 spent, $6 actual_lift, $7 predicted_lift
ADJUST_PLAN_COUNTERS = """
    UPDATE execution_plans
    SET completed_actions = GREATEST(0, completed_actions + $2),
        failed_actions = GREATEST(0, failed_actions + $3),
        total_actions = GREATEST(0, total_actions + $4),
        budget_spent = GREATEST(0, budget_spent + $5),
        actual_total_lift = GREATEST(0, actual_total_lift + $6),
        predicted_total_lift = GREATEST(0, predicted_total_lift + $7),
        updated_at = NOW()
    WHERE id = $1
    RETURNING *
"""


def get_plan_list_query(by_status: bool, by_result: bool) -> str:
    """
    List plans newest first. Parameters in order: statuses text[] (if
    `by_status`), result_id (if `by_result`), then the limit.
    """
    conditions = []
    index = 1
    if by_status:
        conditions.append(f"status = ANY(${index}::text[])")
        index += 1
    if by_result:
        conditions.append(f"result_id = ${index}")
        index += 1

    query = "SELECT * FROM execution_plans"
    if conditions:
        query += " WHERE " + " AND ".join(conditions)
    return query + f" ORDER BY created_at DESC LIMIT ${index}"


# =============================================================================
# Reported Outcomes and Job State
# =============================================================================

UPSERT_OUTCOME = """
    INSERT INTO allocation_outcomes (allocation_id, outcome, reported_at)
    VALUES ($1, $2, NOW())
    ON CONFLICT (allocation_id) DO UPDATE SET
        outcome = EXCLUDED.outcome,
        reported_at = EXCLUDED.reported_at
"""

GET_OUTCOME = "SELECT outcome FROM allocation_outcomes WHERE allocation_id = $1"

GET_JOB_RUN = "SELECT * FROM job_runs WHERE job_name = $1 AND run_date = $2"
