from __future__ import annotations

import csv
import io
import json

import pytest

from config_advisor.core.exceptions import BadRequestError
from config_advisor.models.enums import (
    FeedbackStatus,
    RecommendationCategory,
    RecommendationImpact,
    RecommendationType,
    TriggerType,
)
from config_advisor.schemas.feedback import FeedbackRecord
from config_advisor.schemas.recommendation import RecalculationHistoryEntry, Recommendation
from config_advisor.services.analytics import RecommendationAnalytics
from config_advisor.services.feedback import FeedbackProcessor


def _record(status: FeedbackStatus, item_type: str = "naming", modified_data: str | None = None) -> FeedbackRecord:
    return FeedbackRecord(
        ticket_id="TCK-1",
        item_id=f"{item_type}-1",
        item_type=item_type,
        status=status,
        modified_data=modified_data,
    )


def _modified(original: str, modified: str) -> FeedbackRecord:
    return _record(FeedbackStatus.modified, modified_data=json.dumps({"original": original, "modified": modified}))


def _rec(rec_id: str, rec_type: RecommendationType, category: RecommendationCategory, confidence: float):
    return Recommendation(
        id=rec_id,
        type=rec_type,
        category=category,
        title=rec_id,
        description=rec_id,
        confidence=confidence,
        impact=RecommendationImpact.medium,
    )


@pytest.fixture
def analytics(store) -> RecommendationAnalytics:
    return RecommendationAnalytics(store, FeedbackProcessor(store))


def test_feedback_rates_sum_to_one(store, analytics) -> None:
    for status in [FeedbackStatus.approved] * 3 + [FeedbackStatus.rejected] * 2:
        store.add_feedback(_record(status))
    store.add_feedback(_modified("DueDate__c", "Due_Date__c"))
    store.add_feedback(_record(FeedbackStatus.approved, item_type="fieldType"))

    metrics = analytics.get_feedback_metrics()

    assert metrics.total_feedback == 7
    assert metrics.acceptance_rate + metrics.rejection_rate + metrics.modification_rate == pytest.approx(1.0)
    assert metrics.acceptance_rate == pytest.approx(4 / 7)
    assert metrics.pattern_accuracy == {"naming": pytest.approx(0.5), "fieldType": 1.0}


def test_empty_feedback_has_zero_rates(analytics) -> None:
    metrics = analytics.get_feedback_metrics()

    assert metrics.total_feedback == 0
    assert metrics.acceptance_rate == 0.0
    assert metrics.common_modifications == []


def test_common_modifications_skip_malformed_records(store, analytics) -> None:
    store.add_feedback(_modified("DueDate__c", "Due_Date__c"))
    store.add_feedback(_modified("DueDate__c", "Due_Date__c"))
    store.add_feedback(_modified("Amt__c", "Amount__c"))
    store.add_feedback(_record(FeedbackStatus.modified, modified_data="{broken"))
    store.add_feedback(_record(FeedbackStatus.modified, modified_data=json.dumps(["no", "dict"])))

    metrics = analytics.get_feedback_metrics()

    assert metrics.total_feedback == 5
    top = metrics.common_modifications[0]
    assert (top.original, top.modified, top.frequency) == ("DueDate__c", "Due_Date__c", 2)
    assert sum(m.frequency for m in metrics.common_modifications) == 3


def test_acceptance_metrics_use_real_counts(store, analytics) -> None:
    store.add_feedback(_record(FeedbackStatus.approved, item_type="validation"))
    store.add_feedback(_record(FeedbackStatus.rejected, item_type="validation"))
    store.add_feedback(_record(FeedbackStatus.approved, item_type="naming"))

    metrics = analytics.get_acceptance_metrics("validation")

    assert (metrics.total, metrics.accepted, metrics.rejected, metrics.modified) == (2, 1, 1, 0)
    assert analytics.get_acceptance_metrics().total == 3


def test_record_feedback_evicts_only_affected_entries(store, analytics) -> None:
    store.add_feedback(_record(FeedbackStatus.approved, item_type="naming"))
    store.add_feedback(_record(FeedbackStatus.approved, item_type="fieldType"))
    assert analytics.get_feedback_metrics().total_feedback == 2
    assert analytics.get_acceptance_metrics("naming").total == 1
    assert analytics.get_acceptance_metrics("fieldType").total == 1

    store.add_feedback(_record(FeedbackStatus.rejected, item_type="naming"))
    store.add_feedback(_record(FeedbackStatus.rejected, item_type="fieldType"))
    assert analytics.get_feedback_metrics().total_feedback == 2

    analytics.record_feedback("naming")

    assert analytics.get_feedback_metrics().total_feedback == 4
    assert analytics.get_acceptance_metrics("naming").total == 2
    # entries for other types stay cached until their own feedback arrives
    assert analytics.get_acceptance_metrics("fieldType").total == 1


def test_pattern_accuracy_precision_and_recall(analytics) -> None:
    predicted = [
        {"type": "naming", "pattern": "snake_case__c"},
        {"type": "naming", "pattern": "PascalCase__c"},
        {"type": "fieldType", "name": "Due_Date__c"},
    ]
    actual = [
        {"type": "naming", "pattern": "snake_case__c"},
        {"type": "fieldType", "name": "Due_Date__c"},
        {"type": "fieldType", "name": "Amount__c"},
    ]

    results = {r.pattern_type: r for r in analytics.monitor_pattern_accuracy(predicted, actual)}

    naming = results["naming"]
    assert (naming.precision, naming.recall) == (0.5, 1.0)
    assert naming.accuracy == pytest.approx(2 / 3)
    field_type = results["fieldType"]
    assert (field_type.precision, field_type.recall) == (1.0, 0.5)
    assert results["validation"].accuracy == 0.0
    assert "conflict" not in results
    assert analytics.get_dashboard_metrics().pattern_accuracy[0].pattern_type == "naming"


def test_recommendation_stats_are_scoped_to_org(store, analytics) -> None:
    store.store_recommendations(
        "TCK-1",
        "org-a",
        [
            _rec("naming-A__c", RecommendationType.naming, RecommendationCategory.suggestion, 0.6),
            _rec("conflict-1", RecommendationType.conflict, RecommendationCategory.error, 0.95),
        ],
    )
    store.store_recommendations(
        "TCK-2", "org-b", [_rec("naming-B__c", RecommendationType.naming, RecommendationCategory.warning, 0.2)]
    )
    store.add_feedback(_record(FeedbackStatus.approved))

    stats = analytics.recommendation_stats("org-a")

    assert stats.total_recommendations == 2
    assert stats.by_type == {"naming": 1, "conflict": 1}
    assert stats.by_category == {"suggestion": 1, "error": 1}
    assert stats.average_confidence == pytest.approx(0.775)
    assert stats.acceptance_rate == 1.0


def test_recommendation_changes_evict_stats(store, analytics) -> None:
    store.store_recommendations(
        "TCK-1", "org-a", [_rec("naming-A__c", RecommendationType.naming, RecommendationCategory.suggestion, 0.6)]
    )
    assert analytics.recommendation_stats("org-a").total_recommendations == 1

    store.store_recommendations("TCK-1", "org-a", [])
    assert analytics.recommendation_stats("org-a").total_recommendations == 1
    analytics.invalidate_recommendations("TCK-1")

    assert analytics.recommendation_stats("org-a").total_recommendations == 0


def test_dashboard_metrics(store, analytics) -> None:
    store.store_recommendations(
        "TCK-1", "org-a", [_rec("naming-A__c", RecommendationType.naming, RecommendationCategory.suggestion, 0.6)]
    )
    store.store_recommendations("TCK-2", "org-a", [])
    for status in [FeedbackStatus.rejected] * 3 + [FeedbackStatus.approved] * 3:
        store.add_feedback(_record(status))
    store.add_recalculation_history(
        RecalculationHistoryEntry(
            ticket_id="TCK-1", trigger_type=TriggerType.manual, added_count=1, removed_count=0, modified_count=0
        )
    )

    dashboard = analytics.get_dashboard_metrics()

    assert dashboard.overview.total_recommendations == 1
    assert dashboard.overview.active_tickets == 1
    assert dashboard.overview.overall_acceptance == pytest.approx(0.5)
    assert dashboard.by_type["naming"].total == 6
    assert dashboard.by_time_range.today.total == 6
    assert dashboard.by_time_range.this_month.total == 6
    [trend] = dashboard.trending
    assert trend.type == "naming"
    assert trend.change == pytest.approx(1.0)
    assert dashboard.learning_progress.iteration_count == 1
    assert dashboard.learning_progress.feedback_incorporated == 6
    # dashboard trends are read-only
    assert analytics.feedback.strategy_offset("naming") == 0.0


def test_csv_export(store, analytics) -> None:
    store.add_feedback(_record(FeedbackStatus.approved))
    store.add_feedback(_record(FeedbackStatus.rejected, item_type="fieldType"))

    rows = list(csv.reader(io.StringIO(analytics.export_analytics("csv"))))

    assert rows[0] == ["Date", "Type", "Action", "TicketId", "RecommendationId"]
    assert [row[1:] for row in rows[1:]] == [
        ["naming", "APPROVED", "TCK-1", "naming-1"],
        ["fieldType", "REJECTED", "TCK-1", "fieldType-1"],
    ]


def test_json_export_and_unknown_format(store, analytics) -> None:
    store.add_feedback(_record(FeedbackStatus.approved))

    exported = json.loads(analytics.export_analytics("json"))

    assert exported["stats"]["total_feedback"] == 1
    assert len(exported["history"]) == 1
    assert exported["recalculations"] == []
    assert "export_date" in exported
    with pytest.raises(BadRequestError):
        analytics.export_analytics("xml")
