"""
PostgreSQL DDL for the Engagement Engine standing state.

Tables:
    hcp_profiles               - HCP identity plus per-channel engagement snapshots (jsonb)
    message_themes             - Messaging themes
    message_exposures          - Append-only MSI measurements per HCP/theme
    channel_capacity           - Capacity counters keyed by (channel, rep_id)
    hcp_contact_limits         - Contact frequency state per HCP
    compliance_windows         - Blackout / restricted / preferred windows
    budget_allocations         - Budget pools per campaign/channel
    territory_assignments      - Rep to HCP mapping
    optimization_results       - Allocation batches
    optimization_allocations   - Individual planned touches
    execution_plans            - Plan life cycle state
    allocation_outcomes        - Outcomes reported by the fulfilment side
    job_runs                   - Idempotency state for scheduled jobs

Counters carry CHECK (>= 0) constraints so a faulty caller can never drive
them negative.
"""

from typing import List


SCHEMA_STATEMENTS: List[str] = [
    """
    CREATE TABLE IF NOT EXISTS hcp_profiles (
        id TEXT PRIMARY KEY,
        npi TEXT,
        first_name TEXT NOT NULL DEFAULT '',
        last_name TEXT NOT NULL DEFAULT '',
        specialty TEXT,
        tier TEXT,
        channel_preference TEXT,
        channel_engagements JSONB NOT NULL DEFAULT '[]'::jsonb
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS message_themes (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        category TEXT DEFAULT 'general',
        is_active BOOLEAN NOT NULL DEFAULT TRUE
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS message_exposures (
        id BIGSERIAL PRIMARY KEY,
        hcp_id TEXT NOT NULL,
        message_theme_id TEXT NOT NULL,
        touch_frequency INTEGER NOT NULL DEFAULT 0 CHECK (touch_frequency >= 0),
        unique_channels INTEGER NOT NULL DEFAULT 1,
        channel_diversity DOUBLE PRECISION,
        engagement_rate DOUBLE PRECISION,
        engagement_decay DOUBLE PRECISION,
        adoption_stage TEXT,
        msi DOUBLE PRECISION,
        msi_direction TEXT,
        saturation_risk TEXT,
        measured_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_message_exposures_hcp_theme
        ON message_exposures (hcp_id, message_theme_id, measured_at DESC)
    """,
    """
    CREATE TABLE IF NOT EXISTS channel_capacity (
        id TEXT PRIMARY KEY,
        channel TEXT NOT NULL,
        rep_id TEXT,
        daily_limit INTEGER,
        weekly_limit INTEGER,
        monthly_limit INTEGER,
        daily_used INTEGER NOT NULL DEFAULT 0 CHECK (daily_used >= 0),
        weekly_used INTEGER NOT NULL DEFAULT 0 CHECK (weekly_used >= 0),
        monthly_used INTEGER NOT NULL DEFAULT 0 CHECK (monthly_used >= 0),
        is_active BOOLEAN NOT NULL DEFAULT TRUE,
        updated_at TIMESTAMPTZ
    )
    """,
    """
    CREATE UNIQUE INDEX IF NOT EXISTS uq_channel_capacity_key
        ON channel_capacity (channel, COALESCE(rep_id, ''))
    """,
    """
    CREATE TABLE IF NOT EXISTS hcp_contact_limits (
        hcp_id TEXT PRIMARY KEY,
        max_touches_per_week INTEGER,
        max_touches_per_month INTEGER,
        touches_this_week INTEGER NOT NULL DEFAULT 0 CHECK (touches_this_week >= 0),
        touches_this_month INTEGER NOT NULL DEFAULT 0 CHECK (touches_this_month >= 0),
        last_contact_at TIMESTAMPTZ,
        last_contact_channel TEXT,
        channel_limits JSONB NOT NULL DEFAULT '{}'::jsonb,
        do_not_contact BOOLEAN NOT NULL DEFAULT FALSE,
        do_not_contact_reason TEXT,
        updated_at TIMESTAMPTZ
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS compliance_windows (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        description TEXT,
        channel TEXT,
        window_type TEXT NOT NULL DEFAULT 'blackout',
        start_date TIMESTAMPTZ NOT NULL,
        end_date TIMESTAMPTZ NOT NULL,
        affected_hcp_ids JSONB,
        affected_specialties JSONB,
        affected_territories JSONB,
        reason TEXT,
        is_active BOOLEAN NOT NULL DEFAULT TRUE,
        CHECK (end_date >= start_date)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS budget_allocations (
        id TEXT PRIMARY KEY,
        campaign_id TEXT,
        channel TEXT,
        allocated_amount DOUBLE PRECISION NOT NULL CHECK (allocated_amount >= 0),
        spent_amount DOUBLE PRECISION NOT NULL DEFAULT 0 CHECK (spent_amount >= 0),
        committed_amount DOUBLE PRECISION NOT NULL DEFAULT 0 CHECK (committed_amount >= 0),
        period_start TIMESTAMPTZ,
        period_end TIMESTAMPTZ,
        is_active BOOLEAN NOT NULL DEFAULT TRUE,
        updated_at TIMESTAMPTZ
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS territory_assignments (
        id TEXT PRIMARY KEY,
        rep_id TEXT NOT NULL,
        rep_name TEXT NOT NULL DEFAULT '',
        rep_email TEXT,
        hcp_id TEXT NOT NULL,
        assignment_type TEXT NOT NULL DEFAULT 'primary',
        territory TEXT,
        region TEXT,
        is_active BOOLEAN NOT NULL DEFAULT TRUE
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS optimization_results (
        id TEXT PRIMARY KEY,
        name TEXT,
        created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS optimization_allocations (
        id TEXT PRIMARY KEY,
        result_id TEXT NOT NULL REFERENCES optimization_results (id) ON DELETE CASCADE,
        hcp_id TEXT NOT NULL,
        channel TEXT NOT NULL,
        action_type TEXT NOT NULL,
        planned_date TIMESTAMPTZ NOT NULL,
        window_start TIMESTAMPTZ,
        window_end TIMESTAMPTZ,
        estimated_cost DOUBLE PRECISION NOT NULL DEFAULT 0 CHECK (estimated_cost >= 0),
        predicted_lift DOUBLE PRECISION NOT NULL DEFAULT 0 CHECK (predicted_lift >= 0),
        confidence DOUBLE PRECISION NOT NULL DEFAULT 0.7,
        priority INTEGER NOT NULL DEFAULT 0,
        rep_id TEXT,
        status TEXT NOT NULL DEFAULT 'planned',
        budget_allocation_id TEXT,
        actual_outcome DOUBLE PRECISION,
        executed_at TIMESTAMPTZ
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_optimization_allocations_result
        ON optimization_allocations (result_id, status)
    """,
    """
    CREATE TABLE IF NOT EXISTS execution_plans (
        id TEXT PRIMARY KEY,
        result_id TEXT NOT NULL REFERENCES optimization_results (id),
        name TEXT NOT NULL,
        description TEXT,
        campaign_id TEXT,
        status TEXT NOT NULL DEFAULT 'draft',
        scheduled_start_at TIMESTAMPTZ,
        scheduled_end_at TIMESTAMPTZ,
        actual_start_at TIMESTAMPTZ,
        actual_end_at TIMESTAMPTZ,
        total_actions INTEGER NOT NULL DEFAULT 0 CHECK (total_actions >= 0),
        completed_actions INTEGER NOT NULL DEFAULT 0 CHECK (completed_actions >= 0),
        failed_actions INTEGER NOT NULL DEFAULT 0 CHECK (failed_actions >= 0),
        budget_allocated DOUBLE PRECISION NOT NULL DEFAULT 0,
        budget_spent DOUBLE PRECISION NOT NULL DEFAULT 0 CHECK (budget_spent >= 0),
        predicted_total_lift DOUBLE PRECISION NOT NULL DEFAULT 0,
        actual_total_lift DOUBLE PRECISION NOT NULL DEFAULT 0,
        rebalance_count INTEGER NOT NULL DEFAULT 0,
        last_rebalance_at TIMESTAMPTZ,
        last_rebalance_trigger TEXT,
        last_rebalance_reason TEXT,
        created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS allocation_outcomes (
        allocation_id TEXT PRIMARY KEY,
        outcome DOUBLE PRECISION NOT NULL CHECK (outcome >= 0),
        reported_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS job_runs (
        job_name TEXT NOT NULL,
        run_date DATE NOT NULL,
        completed_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        details JSONB NOT NULL DEFAULT '{}'::jsonb,
        PRIMARY KEY (job_name, run_date)
    )
    """,
]


def get_schema_ddl() -> str:
    """Return all DDL statements as one script, in dependency order."""
    return ";\n".join(statement.strip() for statement in SCHEMA_STATEMENTS) + ";"
