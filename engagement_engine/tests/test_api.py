"""
HTTP API Tests

Runs the FastAPI app through TestClient with the store and settings
dependencies overridden by the per-test fixtures.

Test Coverage:
- Health and root endpoints
- Error mapping: unknown entities -> 404, invalid transitions -> 409,
  unexpected errors -> 500
- Channel health classification and NBA generation
- Constraint checks against stored contact limits
- Optimization result -> plan -> book -> execute flow
"""

from typing import Iterator
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from engagement_engine.core.dependencies import (
    get_settings_dependency,
    get_store_dependency,
    reset_store,
)
from engagement_engine.main import app
from engagement_engine.models.enums import Channel


@pytest.fixture
def client(store, settings) -> Iterator[TestClient]:
    reset_store()
    app.dependency_overrides[get_store_dependency] = lambda: store
    app.dependency_overrides[get_settings_dependency] = lambda: settings
    yield TestClient(app)
    app.dependency_overrides.clear()
    reset_store()


def _allocation(hcp_id: str, hour: int) -> dict:
    return {
        "hcpId": hcp_id,
        "channel": "email",
        "actionType": "reach_out",
        "plannedDate": f"2026-03-02T{hour:02d}:00:00Z",
        "estimatedCost": 50,
        "predictedLift": 10,
        "confidence": 0.8,
    }


# =============================================================================
# Test Class: TestHealth
# =============================================================================

class TestHealth:

    def test_health(self, client) -> None:
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}

    def test_root(self, client) -> None:
        body = client.get("/").json()

        assert body["name"] == "Engagement Engine API"
        assert body["docs"] == "/docs"


# =============================================================================
# Test Class: TestErrorMapping
# =============================================================================

class TestErrorMapping:

    def test_unknown_plan_is_404(self, client) -> None:
        response = client.get("/plans/missing")

        assert response.status_code == 404
        assert response.json() == {"detail": "Plan missing not found"}

    def test_unknown_hcp_is_404(self, client) -> None:
        assert client.get("/hcps/nobody").status_code == 404

    def test_invalid_transition_is_409(self, client) -> None:
        """
        Pausing a draft plan is rejected with the plan's current status.
        """
        # Arrange
        result = client.post(
            "/plans/results", json={"allocations": [_allocation("hcp-1", 9)]}
        ).json()
        plan = client.post(
            "/plans", json={"resultId": result["result"]["id"], "name": "Q1 push"}
        ).json()

        # Act
        response = client.post(f"/plans/{plan['id']}/pause")

        # Assert
        assert response.status_code == 409
        assert response.json() == {
            "detail": "Can only pause executing plans. Current status: draft",
            "currentStatus": "draft",
        }

    def test_unexpected_error_is_500(self, store, settings) -> None:
        reset_store()
        store.list_plans = AsyncMock(side_effect=RuntimeError("connection lost"))
        app.dependency_overrides[get_store_dependency] = lambda: store
        app.dependency_overrides[get_settings_dependency] = lambda: settings
        try:
            response = TestClient(app, raise_server_exceptions=False).get("/plans")
        finally:
            app.dependency_overrides.clear()
            reset_store()

        assert response.status_code == 500
        assert response.json() == {"detail": "Internal server error"}

    def test_invalid_body_is_422(self, client) -> None:
        response = client.post("/plans/results", json={"allocations": []})
        assert response.status_code == 422

    def test_zero_prioritize_limit_is_422(self, client) -> None:
        response = client.post("/nba/prioritize", json={"nbas": [], "limit": 0})
        assert response.status_code == 422


# =============================================================================
# Test Class: TestRecommendationEndpoints
# =============================================================================

class TestRecommendationEndpoints:

    def test_classify(self, client, make_hcp) -> None:
        hcp = make_hcp(channels={Channel.EMAIL: {"score": 85, "totalTouches": 2}})

        response = client.post(
            "/channel-health/classify", json={"hcp": hcp.model_dump(mode="json")}
        )

        assert response.status_code == 200
        statuses = {h["channel"]: h["status"] for h in response.json()}
        assert statuses["email"] == "opportunity"
        assert statuses["phone"] == "dark"

    def test_generate_nba(self, client, make_hcp) -> None:
        hcp = make_hcp(
            preference=Channel.EMAIL,
            channels={Channel.EMAIL: {"score": 85, "totalTouches": 2}},
        )

        response = client.post("/nba/generate", json={"hcp": hcp.model_dump(mode="json")})

        assert response.status_code == 200
        nba = response.json()
        assert nba["recommendedChannel"] == "email"
        assert nba["actionType"] == "expand"
        assert nba["urgency"] == "high"
        assert nba["hcpName"] == "Ada Lovelace"

    def test_action_types(self, client) -> None:
        types = client.get("/nba/action-types").json()

        assert set(types) == {
            "reach_out", "follow_up", "re_engage", "expand", "maintain", "reduce_frequency",
        }
        assert types["re_engage"] == {
            "label": "Re-engage",
            "description": "Win back HCP through strategic outreach",
            "priority": 1,
        }

    @pytest.mark.parametrize("path", ["/nba/saturation-aware", "/nba/constraint-aware"])
    def test_health_settings_reach_stored_hcp_endpoints(
        self, client, settings, make_hcp, path
    ) -> None:
        """
        A stricter configured opportunity score changes the classification
        behind both stored-HCP recommendation endpoints.
        """
        # Arrange
        hcp = make_hcp(channels={Channel.EMAIL: {"score": 85, "totalTouches": 2}})
        client.put("/hcps", json=hcp.model_dump(mode="json"))
        strict = settings.model_copy(update={"health_opportunity_min_score": 90})
        app.dependency_overrides[get_settings_dependency] = lambda: strict

        # Act
        response = client.post(path, json={"hcpIds": ["hcp-1"]})

        # Assert
        assert response.status_code == 200
        nba = response.json()["nbas"][0]
        assert nba["recommendedChannel"] == "email"
        assert nba["actionType"] == "re_engage"

    def test_generate_for_stored_hcp(self, client, make_hcp) -> None:
        hcp = make_hcp(channels={Channel.EMAIL: {"score": 85, "totalTouches": 2}})
        assert client.put("/hcps", json=hcp.model_dump(mode="json")).status_code == 200

        response = client.get("/nba/hcps/hcp-1")

        assert response.status_code == 200
        assert response.json()["hcpId"] == "hcp-1"


# =============================================================================
# Test Class: TestConstraintEndpoints
# =============================================================================

class TestConstraintEndpoints:

    def test_check_passes_without_constraints(self, client) -> None:
        response = client.post(
            "/constraints/check",
            json={"hcpId": "hcp-1", "channel": "email", "actionType": "reach_out"},
        )

        assert response.status_code == 200
        assert response.json()["passed"] is True

    def test_do_not_contact_blocks(self, client) -> None:
        # Arrange
        client.put(
            "/constraints/contact-limits",
            json={"hcpId": "hcp-1", "doNotContact": True, "doNotContactReason": "Opted out"},
        )

        # Act
        response = client.post(
            "/constraints/check",
            json={"hcpId": "hcp-1", "channel": "email", "actionType": "reach_out"},
        )

        # Assert
        body = response.json()
        assert body["passed"] is False
        assert body["violations"][0]["constraintType"] == "contact_limit"

    def test_missing_contact_limits_is_404(self, client) -> None:
        assert client.get("/constraints/contact-limits/hcp-9").status_code == 404


# =============================================================================
# Test Class: TestPlanFlow
# =============================================================================

class TestPlanFlow:

    def test_create_book_execute(self, client, make_hcp) -> None:
        """
        A stored result becomes a plan that is booked, executed to completion
        and reported on.
        """
        # Arrange
        client.put("/hcps", json=make_hcp("hcp-1", first_name="Grace", last_name="Hopper")
                   .model_dump(mode="json"))
        created = client.post("/plans/results", json={
            "name": "Q1 optimization",
            "allocations": [_allocation("hcp-1", 9), _allocation("hcp-2", 10)],
        })
        assert created.status_code == 201
        result_id = created.json()["result"]["id"]

        plan = client.post("/plans", json={"resultId": result_id, "name": "Q1 push"})
        assert plan.status_code == 201
        plan_id = plan.json()["id"]
        assert plan.json()["status"] == "draft"
        assert plan.json()["totalActions"] == 2

        actions = client.get(f"/plans/{plan_id}/actions").json()
        assert [a["hcpName"] for a in actions] == ["Grace Hopper", "hcp-2"]

        # Act
        booking = client.post(f"/plans/{plan_id}/book").json()
        report = client.post(f"/plans/{plan_id}/execute").json()

        # Assert
        assert booking["success"] is True
        assert booking["bookedCount"] == 2
        assert report["status"] == "completed"
        assert report["completedActions"] == 2
        assert report["progressPercent"] == 100

        progress = client.get(f"/plans/{plan_id}/progress").json()
        assert progress["pendingActions"] == 0

        listed = client.get("/plans", params={"status": "completed"}).json()
        assert [p["id"] for p in listed] == [plan_id]

    def test_delete_draft(self, client) -> None:
        result = client.post(
            "/plans/results", json={"allocations": [_allocation("hcp-1", 9)]}
        ).json()
        plan = client.post(
            "/plans", json={"resultId": result["result"]["id"], "name": "Q1 push"}
        ).json()

        assert client.delete(f"/plans/{plan['id']}").status_code == 204
        assert client.get(f"/plans/{plan['id']}").status_code == 404

    def test_monitor_run(self, client) -> None:
        response = client.post("/monitor/run")

        assert response.status_code == 200
        assert response.json()["summary"] == "No active execution plans to monitor"
