from __future__ import annotations

import asyncio
import json

import pytest

from config_advisor.core.exceptions import NotFoundError, RecommendationNotFound
from config_advisor.models.enums import FeedbackAction, FeedbackStatus, TicketRecalcState
from config_advisor.schemas.feedback import FeedbackRecord, FeedbackSubmission
from config_advisor.services.advisor import build_recommendation_service
from config_advisor.services.feedback import HIGH_ACCEPTANCE_PREFIX, adjust_confidence

ORG_ID = "00D000000000001"
PROPOSED = {"object_name": "Invoice__c", "fields": [{"name": "DueOn__c", "type": "text"}]}


class _NamingOnlyGenerator:
    def __init__(self) -> None:
        self.calls = 0

    def generate(self, prompt: str, *, json_mode: bool = False) -> str:
        self.calls += 1
        if "field names" in prompt:
            return json.dumps({"recommendedName": "Due_On__c", "rationale": "snake case", "confidence": 0.8})
        return "{}"


@pytest.fixture
def generator() -> _NamingOnlyGenerator:
    return _NamingOnlyGenerator()


@pytest.fixture
def service(session_factory, metadata, generator):
    return build_recommendation_service(session_factory=session_factory, metadata=metadata, generator=generator)


def test_recommendations_are_generated_then_served_from_cache(service, generator) -> None:
    fresh = asyncio.run(service.get_recommendations("TCK-1", ORG_ID, PROPOSED))
    calls_after_first = generator.calls
    cached = asyncio.run(service.get_recommendations("TCK-1", ORG_ID))

    assert fresh.from_cache is False
    assert "naming-DueOn__c" in {r.id for r in fresh.recommendations}
    assert cached.from_cache is True
    assert [r.id for r in cached.recommendations] == [r.id for r in fresh.recommendations]
    assert generator.calls == calls_after_first


def test_force_refresh_bypasses_stored_set(service) -> None:
    asyncio.run(service.get_recommendations("TCK-1", ORG_ID, PROPOSED))

    refreshed = asyncio.run(service.get_recommendations("TCK-1", ORG_ID, force_refresh=True))

    assert refreshed.from_cache is False


def test_unknown_ticket_without_changes_runs_a_cycle(service) -> None:
    response = asyncio.run(service.get_recommendations("TCK-NEW", ORG_ID))

    assert response.from_cache is False
    assert response.recommendations == []


def test_feedback_for_unknown_recommendation_is_rejected(service) -> None:
    with pytest.raises(RecommendationNotFound) as exc_info:
        service.submit_feedback(
            FeedbackSubmission(ticket_id="TCK-1", recommendation_id="naming-Ghost__c", action=FeedbackAction.accepted)
        )

    assert exc_info.value.status_code == 404
    assert exc_info.value.details == {"ticket_id": "TCK-1", "recommendation_id": "naming-Ghost__c"}


def test_feedback_is_recorded_and_analytics_refreshed(service) -> None:
    asyncio.run(service.get_recommendations("TCK-1", ORG_ID, PROPOSED))
    assert service.analytics.get_acceptance_metrics("naming").total == 0

    record = service.submit_feedback(
        FeedbackSubmission(ticket_id="TCK-1", recommendation_id="naming-DueOn__c", action=FeedbackAction.accepted)
    )

    assert record.status == FeedbackStatus.approved
    assert service.analytics.get_acceptance_metrics("naming").total == 1
    assert service.store.get_pattern_weights("TCK-1") == {"naming": pytest.approx(0.9)}


def test_check_conflicts_counts_by_severity(service) -> None:
    result = service.check_conflicts(ORG_ID, {"object_name": "Invoice__c", "fields": [{"name": "Status__c"}]})

    assert result.has_conflicts is True
    assert result.critical_count == 1
    assert result.medium_count == 1
    assert result.critical_count + result.high_count + result.medium_count + result.low_count == len(result.conflicts)


def test_check_conflicts_uses_stored_naming_convention(service) -> None:
    service.analyze_org_patterns(ORG_ID, "TCK-1")
    proposed = {"object_name": "Invoice__c", "fields": [{"name": "DueOn__c"}]}

    without_ticket = service.check_conflicts(ORG_ID, proposed)
    with_ticket = service.check_conflicts(ORG_ID, proposed, ticket_id="TCK-1")

    assert without_ticket.low_count == 0
    assert with_ticket.low_count == 1


def test_improve_uses_stored_set_by_default(service) -> None:
    asyncio.run(service.get_recommendations("TCK-1", ORG_ID, PROPOSED))

    improved = service.improve_recommendations("TCK-1")

    assert [r.id for r in improved] == [r.id for r in service.store.get_recommendations("TCK-1")]


def test_improve_without_stored_set_is_not_found(service) -> None:
    with pytest.raises(NotFoundError) as exc_info:
        service.improve_recommendations("TCK-NONE")

    assert exc_info.value.status_code == 404


def test_learning_is_applied_once_across_cycles_and_improve(service) -> None:
    # 8 accepted, 2 rejected naming recommendations from earlier tickets.
    for code in "AAAARAAAAR":
        service.store.add_feedback(
            FeedbackRecord(
                ticket_id="TCK-0",
                item_id="naming-Old__c",
                item_type="naming",
                status=FeedbackStatus.approved if code == "A" else FeedbackStatus.rejected,
            )
        )

    fresh = asyncio.run(service.get_recommendations("TCK-1", ORG_ID, PROPOSED))
    [base] = [r for r in fresh.recommendations if r.id == "naming-DueOn__c"]
    assert HIGH_ACCEPTANCE_PREFIX not in base.description

    service.improve_recommendations("TCK-1")
    improved = service.improve_recommendations("TCK-1")

    [stored] = [r for r in service.store.get_recommendations("TCK-1") if r.id == "naming-DueOn__c"]
    assert stored.description.count(HIGH_ACCEPTANCE_PREFIX) == 1
    assert stored.learning_applied is True
    assert stored.confidence == pytest.approx(adjust_confidence(base.confidence, 0.8))
    assert improved == service.store.get_recommendations("TCK-1")
    cached = asyncio.run(service.get_recommendations("TCK-1", ORG_ID))
    assert cached.from_cache is True
    assert stored in cached.recommendations


def test_queue_and_live_recalculation_requests(service) -> None:
    assert service.queue_recalculation("TCK-1", ORG_ID, PROPOSED) == TicketRecalcState.queued

    async def scenario():
        client_id = await service.broadcaster.register(_noop_send)
        await service.broadcaster.handle_message(client_id, {"type": "update", "ticket_id": "TCK-2", "org_id": ORG_ID})
        await service.broadcaster.handle_message(client_id, {"type": "recalculate", "ticket_id": "TCK-3"})

    asyncio.run(scenario())

    assert service.coordinator.state("TCK-2") == TicketRecalcState.queued
    assert service.coordinator.state("TCK-3") == TicketRecalcState.idle
    assert service.coordinator.pending_count() == 2


def test_subscribe_and_unsubscribe(service) -> None:
    received = []

    async def send(payload):
        received.append(payload["type"])

    async def scenario():
        client_id = await service.subscribe(send, "TCK-1", ORG_ID)
        await service.get_recommendations("TCK-1", ORG_ID, PROPOSED)
        service.unsubscribe(client_id, "TCK-1")
        await service.get_recommendations("TCK-1", ORG_ID, PROPOSED)
        service.unsubscribe(client_id)
        return client_id

    asyncio.run(scenario())

    assert received.count("recommendation-update") == 1
    assert received[0] == "connected"
    assert service.broadcaster.client_count() == 0


async def _noop_send(_payload) -> None:
    return None
