"""
Channel Health Classifier Tests

Test Coverage:
- Rule priority (blocked > opportunity > active > declining > dark)
- Days since contact derived from a last-contact instant
- One result per channel, in snapshot order
- Per-HCP health summary recommendations
- Cohort distributions, primary issue and recommendations
"""

from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from engagement_engine.models.enums import Channel, HealthStatus
from engagement_engine.models.schemas import ChannelEngagement, HCPProfile, HealthThresholds
from engagement_engine.services.channel_health import (
    classify_channel,
    classify_channel_health,
    classify_cohort_channel_health,
    format_number,
    get_health_summary,
    round_half_up,
)


AS_OF = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _snapshot(**fields) -> ChannelEngagement:
    return ChannelEngagement(channel=Channel.EMAIL, **fields)


# =============================================================================
# Test Class: TestClassifyChannel
# =============================================================================

class TestClassifyChannel:
    """Single-snapshot classification and its reasoning text."""

    def test_blocked_wins_over_opportunity(self) -> None:
        # Lowered thresholds so one snapshot satisfies both rules
        thresholds = HealthThresholds(blockedMinTouches=2, opportunityMaxTouches=3)
        result = classify_channel(
            _snapshot(score=90, totalTouches=2, responseRate=5), thresholds
        )
        assert result.status == HealthStatus.BLOCKED
        assert result.reasoning == (
            "Low response rate (5%) despite 2 touches. HCP may be ignoring this channel."
        )

    def test_opportunity(self) -> None:
        result = classify_channel(_snapshot(score=85, totalTouches=2))
        assert result.status == HealthStatus.OPPORTUNITY
        assert "High affinity score (85)" in result.reasoning

    def test_active_requires_recent_contact(self) -> None:
        result = classify_channel(
            _snapshot(score=50, totalTouches=10, responseRate=40, lastContactDays=10)
        )
        assert result.status == HealthStatus.ACTIVE
        assert result.reasoning == (
            "Healthy engagement with 40% response rate. Last contact 10 days ago."
        )

    def test_active_requires_known_last_contact(self) -> None:
        result = classify_channel(_snapshot(score=50, totalTouches=10, responseRate=40))
        assert result.status == HealthStatus.DARK
        assert result.lastContactDays is None

    def test_declining_when_stale(self) -> None:
        result = classify_channel(
            _snapshot(score=50, totalTouches=10, responseRate=40, lastContactDays=90)
        )
        assert result.status == HealthStatus.DECLINING
        assert result.reasoning == "No contact in 90 days. Channel may be going dormant."

    def test_declining_on_low_response(self) -> None:
        result = classify_channel(
            _snapshot(score=50, totalTouches=4, responseRate=20, lastContactDays=10)
        )
        assert result.status == HealthStatus.DECLINING
        assert result.reasoning == "Response rate dropped to 20%. Engagement trending down."

    def test_dark_without_history(self) -> None:
        result = classify_channel(_snapshot())
        assert result.status == HealthStatus.DARK
        assert result.reasoning == "No historical engagement on this channel."

    def test_days_derived_from_last_contact_instant(self) -> None:
        result = classify_channel(
            _snapshot(
                score=50,
                totalTouches=10,
                responseRate=50,
                lastContact=AS_OF - timedelta(days=5, hours=3),
            ),
            as_of=AS_OF,
        )
        assert result.lastContactDays == 5
        assert result.status == HealthStatus.ACTIVE

    @pytest.mark.parametrize(
        "fields",
        [
            {},
            {"score": 100, "totalTouches": 0},
            {"score": 0, "totalTouches": 50, "responseRate": 0},
            {"score": 60, "totalTouches": 3, "responseRate": 30, "lastContactDays": 30},
            {"score": 60, "totalTouches": 3, "responseRate": 30, "lastContactDays": 61},
        ],
    )
    def test_exactly_one_status(self, fields) -> None:
        result = classify_channel(_snapshot(**fields))
        assert result.status in set(HealthStatus)


class TestClassifyChannelHealth:

    def test_one_result_per_channel_in_snapshot_order(self, make_hcp) -> None:
        hcp = make_hcp(channels={
            Channel.PHONE: {"score": 85, "totalTouches": 1},
            Channel.EMAIL: {"score": 40, "totalTouches": 8, "responseRate": 2},
        })
        results = classify_channel_health(hcp)

        assert len(results) == len(Channel)
        assert results[0].channel == Channel.PHONE
        assert results[0].status == HealthStatus.OPPORTUNITY
        assert results[1].channel == Channel.EMAIL
        assert results[1].status == HealthStatus.BLOCKED
        assert {r.channel for r in results} == set(Channel)

    def test_duplicate_snapshot_rejected(self) -> None:
        with pytest.raises(ValidationError):
            HCPProfile(
                id="hcp-dup",
                channelEngagements=[
                    ChannelEngagement(channel=Channel.EMAIL),
                    ChannelEngagement(channel=Channel.EMAIL, score=10),
                ],
            )


# =============================================================================
# Test Class: TestHealthSummary
# =============================================================================

class TestHealthSummary:

    def test_opportunity_recommendation(self, make_hcp) -> None:
        hcp = make_hcp(channels={Channel.EMAIL: {"score": 85, "totalTouches": 2}})
        summary = get_health_summary(classify_channel_health(hcp))

        assert summary.opportunityChannels == 1
        assert summary.healthyChannels == 0
        assert summary.primaryRecommendation == "Expand engagement on email."

    def test_issues_outnumber_healthy(self, make_hcp) -> None:
        hcp = make_hcp(channels={
            Channel.EMAIL: {"totalTouches": 8, "responseRate": 2},
            Channel.PHONE: {"totalTouches": 3, "responseRate": 15, "lastContactDays": 5},
        })
        summary = get_health_summary(classify_channel_health(hcp))

        assert summary.issueChannels == 2
        assert summary.primaryRecommendation.startswith("Multiple channels need attention")

    def test_strong_multi_channel(self, make_hcp) -> None:
        active = {"score": 60, "totalTouches": 10, "responseRate": 50, "lastContactDays": 7}
        hcp = make_hcp(channels={
            Channel.EMAIL: active,
            Channel.PHONE: active,
            Channel.REP_VISIT: active,
            Channel.WEBINAR: active,
        })
        summary = get_health_summary(classify_channel_health(hcp))

        assert summary.healthyChannels == 4
        assert summary.primaryRecommendation.startswith("Strong multi-channel engagement")

    def test_empty_results(self) -> None:
        summary = get_health_summary([])
        assert summary.healthyChannels == 0
        assert summary.issueChannels == 0
        assert summary.primaryRecommendation == "Focus on strengthening top-performing channels."


# =============================================================================
# Test Class: TestCohortChannelHealth
# =============================================================================

class TestCohortChannelHealth:

    def test_empty_cohort(self) -> None:
        assert classify_cohort_channel_health([]) == []

    def test_distribution_and_recommendations(self, make_hcp) -> None:
        opportunity = {Channel.EMAIL: {"score": 85, "totalTouches": 2}}
        hcps = [
            make_hcp("hcp-1", channels=opportunity),
            make_hcp("hcp-2", channels=opportunity),
            make_hcp("hcp-3"),
        ]
        cohort = {c.channel: c for c in classify_cohort_channel_health(hcps)}

        email = cohort[Channel.EMAIL]
        assert email.totalHcps == 3
        assert email.distribution["opportunity"] == 67
        assert email.distribution["dark"] == 33
        assert email.recommendation == (
            "67% of cohort shows opportunity for increased email engagement."
        )

        rep_visit = cohort[Channel.REP_VISIT]
        assert rep_visit.primaryIssue == HealthStatus.DARK
        assert rep_visit.recommendation == (
            "100% dark - channel may be underutilized for this segment."
        )


class TestFormatting:

    def test_round_half_up(self) -> None:
        assert round_half_up(2.5) == 3
        assert round_half_up(66.66) == 67
        assert round_half_up(33.33) == 33

    def test_format_number(self) -> None:
        assert format_number(40.0) == "40"
        assert format_number(12.5) == "12.5"
        assert format_number(7) == "7"
