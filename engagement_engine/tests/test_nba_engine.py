"""
NBA Decision Engine Tests

Test Coverage:
- End-to-end recommendation for an opportunity channel matching the preference
- Blocked preferred channel, declining, active and dark fallbacks
- Confidence bounds and the preference boost cap
- Prioritization order, filtering and summaries
- Constraint-aware generation over the in-memory store
"""

from datetime import timedelta

import pytest

from engagement_engine.core.clock import utcnow
from engagement_engine.models.enums import (
    ActionType,
    Channel,
    ConstraintType,
    HealthStatus,
    Urgency,
)
from engagement_engine.models.schemas import (
    ComplianceWindow,
    HcpContactLimits,
    HealthThresholds,
    NBAConfig,
    NBAMetrics,
    NextBestAction,
)
from engagement_engine.services.nba_engine import (
    filter_actionable_nbas,
    generate_constraint_aware_nba,
    generate_nba,
    get_constraint_aware_nba_summary,
    get_nba_summary,
    prioritize_nbas,
    validate_nbas_with_constraints,
)


OPPORTUNITY = {"score": 85, "totalTouches": 2}
ACTIVE_RECENT = {"score": 60, "totalTouches": 10, "responseRate": 50, "lastContactDays": 7}
BLOCKED = {"score": 40, "totalTouches": 8, "responseRate": 2}


def _nba(confidence: int, urgency: Urgency, hcp_id: str = "hcp") -> NextBestAction:
    return NextBestAction(
        hcpId=hcp_id,
        recommendedChannel=Channel.EMAIL,
        actionType=ActionType.REACH_OUT,
        confidence=confidence,
        reasoning="",
        urgency=urgency,
        suggestedTiming="",
        channelHealth=HealthStatus.DARK,
        metrics=NBAMetrics(channelScore=0, responseRate=0),
    )


# =============================================================================
# Test Class: TestGenerateNBA
# =============================================================================

class TestGenerateNBA:

    def test_opportunity_on_preferred_channel(self, make_hcp) -> None:
        hcp = make_hcp(preference=Channel.EMAIL, channels={Channel.EMAIL: OPPORTUNITY})
        nba = generate_nba(hcp)

        assert nba.actionType == ActionType.EXPAND
        assert nba.recommendedChannel == Channel.EMAIL
        assert nba.urgency == Urgency.HIGH
        assert nba.confidence == 100
        assert nba.reasoning.endswith("(Aligned with stated channel preference)")
        assert nba.hcpName == "Ada Lovelace"

    def test_blocked_preference_shifts_channel(self, make_hcp) -> None:
        hcp = make_hcp(
            preference=Channel.EMAIL,
            channels={Channel.EMAIL: BLOCKED, Channel.PHONE: ACTIVE_RECENT},
        )
        nba = generate_nba(hcp)

        assert nba.recommendedChannel == Channel.PHONE
        assert nba.actionType == ActionType.REACH_OUT
        assert nba.confidence == 60
        assert nba.urgency == Urgency.MEDIUM
        assert nba.reasoning.startswith("Preferred channel (email) is blocked")

    def test_declining_ranks_before_active(self, make_hcp) -> None:
        hcp = make_hcp(channels={
            Channel.PHONE: ACTIVE_RECENT,
            Channel.EMAIL: {"score": 30, "totalTouches": 10, "responseRate": 40,
                            "lastContactDays": 90},
        })
        nba = generate_nba(hcp)

        assert nba.recommendedChannel == Channel.EMAIL
        assert nba.actionType == ActionType.RE_ENGAGE
        assert nba.confidence == 75
        assert nba.reasoning.startswith("No contact in 90 days")

    def test_active_recent_contact_follows_up(self, make_hcp) -> None:
        hcp = make_hcp(channels={Channel.PHONE: ACTIVE_RECENT})
        nba = generate_nba(hcp)

        assert nba.actionType == ActionType.FOLLOW_UP
        assert nba.confidence == 80
        assert nba.urgency == Urgency.LOW

    def test_all_dark_reaches_out_on_preference(self, make_hcp) -> None:
        hcp = make_hcp(preference=Channel.WEBINAR)
        nba = generate_nba(hcp)

        assert nba.recommendedChannel == Channel.WEBINAR
        assert nba.actionType == ActionType.REACH_OUT
        assert nba.confidence == 55
        assert nba.urgency == Urgency.LOW

    def test_all_blocked_reduces_frequency(self, make_hcp) -> None:
        hcp = make_hcp(channels={channel: BLOCKED for channel in Channel})
        nba = generate_nba(hcp)

        assert nba.actionType == ActionType.REDUCE_FREQUENCY
        assert nba.confidence == 60

    def test_address_blocked_off(self, make_hcp) -> None:
        hcp = make_hcp(channels={channel: BLOCKED for channel in Channel})
        nba = generate_nba(hcp, config=NBAConfig(addressBlocked=False))

        assert nba.actionType == ActionType.REDUCE_FREQUENCY
        assert nba.confidence == 50
        assert nba.urgency == Urgency.MEDIUM

    @pytest.mark.parametrize("score", [0, 50, 85, 100])
    def test_confidence_within_bounds(self, make_hcp, score) -> None:
        hcp = make_hcp(
            preference=Channel.EMAIL,
            channels={Channel.EMAIL: {"score": score, "totalTouches": 1}},
        )
        nba = generate_nba(hcp)
        assert 0 <= nba.confidence <= 100


# =============================================================================
# Test Class: TestPrioritization
# =============================================================================

class TestPrioritization:

    def test_urgency_then_confidence(self) -> None:
        nbas = [_nba(70, Urgency.HIGH), _nba(85, Urgency.HIGH), _nba(90, Urgency.LOW)]
        ordered = prioritize_nbas(nbas)
        assert [n.confidence for n in ordered] == [85, 70, 90]

    def test_stable_for_equal_keys(self) -> None:
        nbas = [_nba(50, Urgency.MEDIUM, "a"), _nba(50, Urgency.MEDIUM, "b")]
        assert [n.hcpId for n in prioritize_nbas(nbas)] == ["a", "b"]

    def test_limit(self) -> None:
        nbas = [_nba(c, Urgency.LOW) for c in (10, 20, 30)]
        assert [n.confidence for n in prioritize_nbas(nbas, limit=2)] == [30, 20]

    def test_zero_limit_keeps_everything(self) -> None:
        nbas = [_nba(c, Urgency.LOW) for c in (10, 20, 30)]
        assert len(prioritize_nbas(nbas, limit=0)) == 3

    def test_filter_actionable(self) -> None:
        nbas = [_nba(39, Urgency.LOW), _nba(40, Urgency.LOW)]
        assert [n.confidence for n in filter_actionable_nbas(nbas)] == [40]


class TestSummary:

    def test_empty_summary(self) -> None:
        summary = get_nba_summary([])
        assert summary.totalActions == 0
        assert summary.avgConfidence == 0
        assert summary.byUrgency == {"high": 0, "medium": 0, "low": 0}
        assert summary.byActionType == {}
        assert summary.byChannel == {}

    def test_counts_and_rounded_average(self) -> None:
        summary = get_nba_summary([_nba(70, Urgency.HIGH), _nba(85, Urgency.LOW)])
        assert summary.totalActions == 2
        assert summary.byUrgency == {"high": 1, "medium": 0, "low": 1}
        assert summary.byActionType == {"reach_out": 2}
        assert summary.avgConfidence == 78


# =============================================================================
# Test Class: TestConstraintAwareNBA
# =============================================================================

@pytest.mark.asyncio
class TestConstraintAwareNBA:

    async def test_falls_back_to_next_viable_channel(self, store, manager, make_hcp) -> None:
        hcp = make_hcp(channels={Channel.EMAIL: OPPORTUNITY, Channel.PHONE: ACTIVE_RECENT})
        await store.save_compliance_window(ComplianceWindow(
            name="Email freeze",
            channel=Channel.EMAIL,
            startDate=utcnow() - timedelta(days=1),
            endDate=utcnow() + timedelta(days=1),
        ))

        nba = await generate_constraint_aware_nba(manager, hcp)

        assert nba.isExecutable is True
        assert nba.recommendedChannel == Channel.PHONE
        assert nba.actionType == ActionType.FOLLOW_UP

    async def test_health_thresholds_are_applied(self, manager, make_hcp) -> None:
        hcp = make_hcp(channels={Channel.EMAIL: OPPORTUNITY})

        default = await generate_constraint_aware_nba(manager, hcp)
        strict = await generate_constraint_aware_nba(
            manager, hcp, thresholds=HealthThresholds(opportunityMinScore=90)
        )

        assert default.actionType == ActionType.EXPAND
        assert strict.recommendedChannel == Channel.EMAIL
        assert strict.actionType == ActionType.RE_ENGAGE

    async def test_all_channels_constrained(self, store, manager, make_hcp) -> None:
        hcp = make_hcp(channels={Channel.EMAIL: OPPORTUNITY})
        await store.upsert_contact_limits(HcpContactLimits(hcpId=hcp.id, doNotContact=True))

        nba = await generate_constraint_aware_nba(manager, hcp)

        assert nba.isExecutable is False
        assert nba.recommendedChannel == Channel.EMAIL
        assert nba.blockedReason == "HCP has opted out of contact"

        summary = get_constraint_aware_nba_summary([nba])
        assert summary.blockedActions == 1
        assert summary.executableActions == 0
        assert summary.constraintViolations[0].type == ConstraintType.CONTACT_LIMIT

    async def test_batch_drops_blocked_unless_requested(self, store, manager, make_hcp) -> None:
        await store.upsert_contact_limits(HcpContactLimits(hcpId="hcp-2", doNotContact=True))
        nbas = [
            generate_nba(make_hcp("hcp-1", channels={Channel.EMAIL: OPPORTUNITY})),
            generate_nba(make_hcp("hcp-2", channels={Channel.EMAIL: OPPORTUNITY})),
        ]

        executable = await validate_nbas_with_constraints(manager, nbas)
        everything = await validate_nbas_with_constraints(manager, nbas, include_blocked=True)

        assert [n.hcpId for n in executable] == ["hcp-1"]
        assert [n.isExecutable for n in everything] == [True, False]
