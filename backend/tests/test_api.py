from __future__ import annotations

import json
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient

from config_advisor.core.config import settings
from config_advisor.core.deps import _service_from_state
from config_advisor.core.exceptions import ConfigAdvisorException
from config_advisor.main import create_app
from config_advisor.services.advisor import build_recommendation_service

ORG_ID = "00D000000000001"
PROPOSED = {"object_name": "Invoice__c", "fields": [{"name": "DueOn__c", "type": "text"}]}


class _NamingGenerator:
    def generate(self, prompt: str, *, json_mode: bool = False) -> str:
        if "field names" in prompt:
            return json.dumps({"recommendedName": "Due_On__c", "rationale": "snake case", "confidence": 0.8})
        return "{}"


@pytest.fixture
def client(session_factory, metadata, monkeypatch):
    monkeypatch.setattr(settings, "RECALC_ENABLED", False)
    service = build_recommendation_service(
        session_factory=session_factory, metadata=metadata, generator=_NamingGenerator()
    )
    with TestClient(create_app(service)) as test_client:
        yield test_client


def _generate(client: TestClient) -> dict:
    response = client.post(
        "/api/recommendations/",
        json={"ticket_id": "TCK-1", "org_id": ORG_ID, "proposed_changes": PROPOSED},
    )
    assert response.status_code == 200
    return response.json()


def test_generate_then_read_from_cache(client) -> None:
    fresh = _generate(client)
    cached = client.post("/api/recommendations/", json={"ticket_id": "TCK-1", "org_id": ORG_ID}).json()

    assert fresh["from_cache"] is False
    assert "naming-DueOn__c" in [r["id"] for r in fresh["recommendations"]]
    assert cached["from_cache"] is True
    assert [r["id"] for r in cached["recommendations"]] == [r["id"] for r in fresh["recommendations"]]


def test_feedback_for_unknown_recommendation_returns_404(client) -> None:
    response = client.post(
        "/api/recommendations/feedback",
        json={"ticket_id": "TCK-1", "recommendation_id": "naming-Ghost__c", "action": "accepted"},
    )

    assert response.status_code == 404
    body = response.json()
    assert body["error_code"] == "RECOMMENDATION_NOT_FOUND"
    assert body["details"]["recommendation_id"] == "naming-Ghost__c"


def test_feedback_flows_into_stats_and_exports(client) -> None:
    _generate(client)

    feedback = client.post(
        "/api/recommendations/feedback",
        json={"ticket_id": "TCK-1", "recommendation_id": "naming-DueOn__c", "action": "accepted"},
    )
    stats = client.get("/api/recommendations/stats", params={"org_id": ORG_ID})
    export = client.get("/api/recommendations/analytics/export", params={"format": "csv"})

    assert feedback.status_code == 200
    assert feedback.json()["status"] == "APPROVED"
    assert stats.json()["acceptance_rate"] == 1.0
    assert stats.json()["total_recommendations"] >= 1
    assert export.headers["content-type"].startswith("text/csv")
    assert export.text.splitlines()[0] == "Date,Type,Action,TicketId,RecommendationId"


def test_export_rejects_unknown_format(client) -> None:
    response = client.get("/api/recommendations/analytics/export", params={"format": "xml"})

    assert response.status_code == 422


def test_conflict_check(client) -> None:
    response = client.post(
        "/api/recommendations/conflicts",
        json={"org_id": ORG_ID, "proposed_changes": {"object_name": "Invoice__c", "fields": [{"name": "Status__c"}]}},
    )

    body = response.json()
    assert response.status_code == 200
    assert body["has_conflicts"] is True
    assert body["critical_count"] == 1
    assert body["conflicts"][0]["severity"] == "critical"


def test_recalculation_is_queued_and_history_recorded(client) -> None:
    queued = client.post(
        "/api/recommendations/recalculate",
        json={"ticket_id": "TCK-2", "org_id": ORG_ID, "proposed_changes": PROPOSED},
    )
    _generate(client)
    history = client.get("/api/recommendations/TCK-1/history")

    assert queued.status_code == 202
    assert queued.json() == {"ticket_id": "TCK-2", "state": "queued", "last_error": None}
    assert len(history.json()) == 1
    assert history.json()[0]["trigger_type"] == "manual"


def test_dashboard(client) -> None:
    _generate(client)

    response = client.get("/api/recommendations/analytics")

    assert response.status_code == 200
    assert response.json()["overview"]["active_tickets"] == 1


def test_websocket_replays_latest_set(client) -> None:
    fresh = _generate(client)

    with client.websocket_connect("/ws/recommendations") as websocket:
        connected = websocket.receive_json()
        websocket.send_json({"type": "subscribe", "ticket_id": "TCK-1"})
        replay = websocket.receive_json()

    assert connected["type"] == "connected"
    assert replay["type"] == "recommendation-update"
    assert replay["from_cache"] is True
    assert [r["id"] for r in replay["data"]] == [r["id"] for r in fresh["recommendations"]]


def test_missing_service_is_reported_as_unavailable() -> None:
    with pytest.raises(ConfigAdvisorException) as exc_info:
        _service_from_state(SimpleNamespace())

    assert exc_info.value.status_code == 503
    assert exc_info.value.error_code == "SERVICE_UNAVAILABLE"
