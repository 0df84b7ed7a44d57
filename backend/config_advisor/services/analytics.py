"""Aggregated feedback, accuracy and dashboard metrics with short-lived caching."""

from __future__ import annotations

import csv
import datetime as dt
import io
import json
import logging
from collections import Counter
from typing import Any, Hashable, Literal

from config_advisor.core.cache import ExpiringCache
from config_advisor.core.config import settings
from config_advisor.core.exceptions import BadRequestError
from config_advisor.models.enums import FeedbackStatus, RecommendationType
from config_advisor.schemas.analytics import (
    AcceptanceMetrics,
    CommonModification,
    DashboardMetrics,
    DashboardOverview,
    FeedbackMetrics,
    LearningMetrics,
    PatternAccuracy,
    TimeRangeMetrics,
    TrendSummary,
)
from config_advisor.schemas.feedback import FeedbackRecord
from config_advisor.schemas.recommendation import RecommendationStats, utcnow
from config_advisor.services.feedback import FeedbackProcessor, modification_key, parse_modification
from config_advisor.services.store import RecommendationStore

logger = logging.getLogger(__name__)

LOW_ACCURACY_THRESHOLD = 0.7
COMMON_MODIFICATION_LIMIT = 10
PATTERN_TYPES = [t.value for t in RecommendationType if t != RecommendationType.conflict]


def _iso(value: dt.datetime | None) -> str | None:
    return value.isoformat() if value else None


def _rate(part: int, total: int) -> float:
    return part / total if total else 0.0


def acceptance_from_records(records: list[FeedbackRecord]) -> AcceptanceMetrics:
    statuses = Counter(r.status for r in records)
    total = len(records)
    accepted = statuses.get(FeedbackStatus.approved, 0)
    rejected = statuses.get(FeedbackStatus.rejected, 0)
    modified = statuses.get(FeedbackStatus.modified, 0)
    return AcceptanceMetrics(
        total=total,
        accepted=accepted,
        rejected=rejected,
        modified=modified,
        acceptance_rate=_rate(accepted, total),
        rejection_rate=_rate(rejected, total),
        modification_rate=_rate(modified, total),
    )


def patterns_match(left: dict[str, Any], right: dict[str, Any]) -> bool:
    if left.get("pattern") is not None and left.get("pattern") == right.get("pattern"):
        return True
    return left.get("name") is not None and left.get("name") == right.get("name") and left.get("type") == right.get("type")


class RecommendationAnalytics:
    def __init__(
        self,
        store: RecommendationStore,
        feedback: FeedbackProcessor | None = None,
        *,
        cache: ExpiringCache | None = None,
    ) -> None:
        self.store = store
        self.feedback = feedback
        self._cache = cache or ExpiringCache(settings.ANALYTICS_CACHE_SECONDS)
        self._last_pattern_accuracy: list[PatternAccuracy] = []

    # ----- cache maintenance -----

    def record_feedback(self, item_type: str) -> None:
        """Drop every cached metric that new feedback of ``item_type`` can change."""

        def stale(key: Hashable) -> bool:
            if not isinstance(key, tuple) or not key:
                return False
            if key[0] == "acceptance":
                return key[1] in (None, item_type)
            return key[0] in {"feedback", "dashboard", "stats"}

        evicted = self._cache.evict(stale)
        logger.debug("Evicted %d analytics entries after %s feedback", evicted, item_type)

    def invalidate_recommendations(self, ticket_id: str) -> None:
        evicted = self._cache.evict(lambda key: isinstance(key, tuple) and key[0] in {"dashboard", "stats"})
        logger.debug("Evicted %d analytics entries after recommendation set change for %s", evicted, ticket_id)

    # ----- metrics -----

    def get_feedback_metrics(
        self, start: dt.datetime | None = None, end: dt.datetime | None = None
    ) -> FeedbackMetrics:
        return self._cache.get_or_set(
            ("feedback", _iso(start), _iso(end)),
            lambda: self._compute_feedback_metrics(start, end),
        )

    def _compute_feedback_metrics(self, start: dt.datetime | None, end: dt.datetime | None) -> FeedbackMetrics:
        records = self.store.list_feedback(start=start, end=end)
        overall = acceptance_from_records(records)

        by_type: dict[str, list[FeedbackRecord]] = {}
        for record in records:
            by_type.setdefault(record.item_type, []).append(record)
        accuracy = {
            item_type: _rate(sum(1 for r in items if r.status == FeedbackStatus.approved), len(items))
            for item_type, items in by_type.items()
        }

        pairs: Counter[tuple[str, str]] = Counter()
        skipped = 0
        for record in records:
            if record.status != FeedbackStatus.modified or not record.modified_data:
                continue
            modification = parse_modification(record)
            if modification is None:
                skipped += 1
                continue
            pairs[(modification_key(modification.original), modification_key(modification.modified))] += 1
        if skipped:
            logger.warning("Skipped %d malformed modification records", skipped)

        return FeedbackMetrics(
            total_feedback=overall.total,
            acceptance_rate=overall.acceptance_rate,
            rejection_rate=overall.rejection_rate,
            modification_rate=overall.modification_rate,
            pattern_accuracy=accuracy,
            common_modifications=[
                CommonModification(original=original, modified=modified, frequency=count)
                for (original, modified), count in pairs.most_common(COMMON_MODIFICATION_LIMIT)
            ],
        )

    def get_acceptance_metrics(
        self,
        recommendation_type: str | None = None,
        start: dt.datetime | None = None,
        end: dt.datetime | None = None,
    ) -> AcceptanceMetrics:
        return self._cache.get_or_set(
            ("acceptance", recommendation_type, _iso(start), _iso(end)),
            lambda: acceptance_from_records(
                self.store.list_feedback(item_type=recommendation_type, start=start, end=end)
            ),
        )

    def monitor_pattern_accuracy(
        self, predicted: list[dict[str, Any]], actual: list[dict[str, Any]]
    ) -> list[PatternAccuracy]:
        results: list[PatternAccuracy] = []
        for pattern_type in PATTERN_TYPES:
            predicted_of_type = [p for p in predicted if p.get("type") == pattern_type]
            actual_of_type = [a for a in actual if a.get("type") == pattern_type]
            matches = sum(1 for p in predicted_of_type if any(patterns_match(p, a) for a in actual_of_type))
            total = len(predicted_of_type) + len(actual_of_type)
            accuracy = 2 * matches / total if total else 0.0
            results.append(
                PatternAccuracy(
                    pattern_type=pattern_type,
                    predicted_count=len(predicted_of_type),
                    actual_count=len(actual_of_type),
                    accuracy=accuracy,
                    precision=_rate(matches, len(predicted_of_type)),
                    recall=_rate(matches, len(actual_of_type)),
                )
            )
            if total and accuracy < LOW_ACCURACY_THRESHOLD:
                logger.warning("Low pattern accuracy for %s: %.1f%%", pattern_type, accuracy * 100)
        self._last_pattern_accuracy = results
        self._cache.evict(lambda key: key == ("dashboard",))
        return results

    def recommendation_stats(self, org_id: str) -> RecommendationStats:
        return self._cache.get_or_set(("stats", org_id), lambda: self._compute_stats(org_id))

    def _compute_stats(self, org_id: str) -> RecommendationStats:
        recommendations = [rec for _ticket, recs in self.store.list_recommendation_sets(org_id) for rec in recs]
        by_type = Counter(rec.type.value for rec in recommendations)
        by_category = Counter(rec.category.value for rec in recommendations)
        average = sum(rec.confidence for rec in recommendations) / len(recommendations) if recommendations else 0.0
        return RecommendationStats(
            org_id=org_id,
            total_recommendations=len(recommendations),
            by_type=dict(by_type),
            by_category=dict(by_category),
            average_confidence=average,
            acceptance_rate=self.get_feedback_metrics().acceptance_rate,
        )

    def get_dashboard_metrics(self) -> DashboardMetrics:
        return self._cache.get_or_set(("dashboard",), self._compute_dashboard)

    def _compute_dashboard(self) -> DashboardMetrics:
        now = utcnow()
        records = self.store.list_feedback()
        sets = self.store.list_recommendation_sets()
        recommendations = [rec for _ticket, recs in sets for rec in recs]

        overview = DashboardOverview(
            total_recommendations=len(recommendations),
            active_tickets=sum(1 for _ticket, recs in sets if recs),
            average_confidence=(
                sum(rec.confidence for rec in recommendations) / len(recommendations) if recommendations else 0.0
            ),
            overall_acceptance=acceptance_from_records(records).acceptance_rate,
        )

        by_type: dict[str, list[FeedbackRecord]] = {}
        for record in records:
            by_type.setdefault(record.item_type, []).append(record)

        today_start = now.replace(hour=0, minute=0, second=0, microsecond=0)
        time_ranges = TimeRangeMetrics(
            today=acceptance_from_records(self.store.list_feedback(start=today_start, end=now)),
            this_week=acceptance_from_records(self.store.list_feedback(start=now - dt.timedelta(days=7), end=now)),
            this_month=acceptance_from_records(self.store.list_feedback(start=now - dt.timedelta(days=30), end=now)),
        )

        trending: list[TrendSummary] = []
        if self.feedback is not None:
            for item_type in sorted(by_type):
                trend = self.feedback.analyze_feedback_trends(item_type, adjust=False)
                trending.append(TrendSummary(type=item_type, trend=trend.trend, change=trend.acceptance_change))

        changes = [t.change for t in trending]
        learning = LearningMetrics(
            iteration_count=len(self.store.list_recalculation_history()),
            improvement_rate=sum(changes) / len(changes) if changes else 0.0,
            feedback_incorporated=len(records),
            pattern_refinements=self.store.count_analyses(),
            confidence_adjustments=self.store.count_pattern_weights(),
        )

        return DashboardMetrics(
            overview=overview,
            by_type={item_type: acceptance_from_records(items) for item_type, items in by_type.items()},
            by_time_range=time_ranges,
            trending=trending,
            pattern_accuracy=list(self._last_pattern_accuracy),
            learning_progress=learning,
        )

    def export_analytics(
        self,
        format: Literal["json", "csv"] = "json",
        start: dt.datetime | None = None,
        end: dt.datetime | None = None,
    ) -> str:
        records = self.store.list_feedback(start=start, end=end)
        if format == "json":
            return json.dumps(
                {
                    "stats": self.get_feedback_metrics(start, end).model_dump(mode="json"),
                    "history": [r.model_dump(mode="json") for r in records],
                    "recalculations": [h.model_dump(mode="json") for h in self.store.list_recalculation_history()],
                    "export_date": utcnow().isoformat(),
                },
                indent=2,
            )
        if format != "csv":
            raise BadRequestError(f"Unsupported export format: {format}")

        buffer = io.StringIO()
        writer = csv.writer(buffer, lineterminator="\n")
        writer.writerow(["Date", "Type", "Action", "TicketId", "RecommendationId"])
        for record in records:
            writer.writerow(
                [record.created_at.isoformat(), record.item_type, record.status.value, record.ticket_id, record.item_id]
            )
        return buffer.getvalue()
