"""Feedback recording and the learning loop that re-scores recommendations."""

from __future__ import annotations

import datetime as dt
import json
import logging
from collections import Counter
from threading import Lock
from typing import Any

from config_advisor.core.cache import ExpiringCache
from config_advisor.core.config import settings
from config_advisor.models.enums import (
    FeedbackAction,
    FeedbackStatus,
    RecommendationCategory,
    TrendDirection,
)
from config_advisor.schemas.feedback import (
    FeedbackRecord,
    FeedbackSubmission,
    FeedbackTrend,
    LearningData,
    Modification,
)
from config_advisor.schemas.recommendation import Recommendation, clamp, utcnow
from config_advisor.services.store import RecommendationStore

logger = logging.getLogger(__name__)

LEARNING_RATE = 0.1
MIN_FEEDBACK_SAMPLES = 5
LOW_ACCEPTANCE_RATE = 0.3
HIGH_ACCEPTANCE_RATE = 0.8
CONFIDENCE_FLOOR = 0.1
CONFIDENCE_CEILING = 0.95
COMMON_MODIFICATION_SHARE = 0.3
SIGNIFICANT_TREND_DELTA = 0.2
STRATEGY_OFFSET = 0.05
LOW_ACCEPTANCE_PREFIX = "[Low acceptance rate] "
HIGH_ACCEPTANCE_PREFIX = "[Highly recommended] "


def calculate_new_weight(action: FeedbackAction, current_confidence: float) -> float:
    if action == FeedbackAction.accepted:
        return min(1.0, current_confidence + LEARNING_RATE)
    if action == FeedbackAction.rejected:
        return max(0.0, current_confidence - LEARNING_RATE * 2)
    return max(0.3, current_confidence - LEARNING_RATE * 0.5)


def adjust_confidence(base_confidence: float, acceptance_rate: float) -> float:
    adjusted = base_confidence + (acceptance_rate - 0.5) * 0.3
    return clamp(adjusted, CONFIDENCE_FLOOR, CONFIDENCE_CEILING)


def adjust_confidence_from_feedback(
    current_confidence: float,
    action: FeedbackAction,
    similar_accepted: int,
    similar_rejected: int,
) -> float:
    if action == FeedbackAction.accepted:
        adjustment = 0.05
    elif action == FeedbackAction.rejected:
        adjustment = -0.05
    else:
        adjustment = -0.02

    historical_rate = similar_accepted / max(1, similar_accepted + similar_rejected)
    if historical_rate > 0.7:
        adjustment += 0.03
    elif historical_rate < 0.3:
        adjustment -= 0.03
    return clamp(current_confidence + adjustment)


def detect_change_type(recommendation: Recommendation, modified: Any) -> str:
    if not isinstance(modified, dict):
        return "value"
    changes = [
        name
        for name in ("title", "description", "type", "category")
        if name in modified and modified[name] != getattr(recommendation, name)
    ]
    return ",".join(changes) or "unknown"


def modification_key(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value, sort_keys=True, default=str)


def parse_modification(record: FeedbackRecord) -> Modification | None:
    """Decode a MODIFIED record's payload; ``None`` when it is missing or malformed."""
    if record.status != FeedbackStatus.modified or not record.modified_data:
        return None
    try:
        data = json.loads(record.modified_data)
    except (TypeError, ValueError):
        return None
    if not isinstance(data, dict) or "modified" not in data:
        return None
    return Modification(original=data.get("original"), modified=data.get("modified"), reason=record.reason)


def find_common_modification(modifications: list[Modification]) -> str | None:
    if not modifications:
        return None
    counts = Counter(modification_key(m.modified) for m in modifications)
    value, count = counts.most_common(1)[0]
    if count >= len(modifications) * COMMON_MODIFICATION_SHARE:
        return value
    return None


def calculate_trend(recommendation_type: str, records: list[FeedbackRecord]) -> FeedbackTrend:
    """Compare acceptance between the older and newer half of ``records`` (arrival order)."""
    if len(records) < 2:
        return FeedbackTrend(recommendation_type=recommendation_type, sample_size=len(records))
    middle = len(records) // 2
    first, second = records[:middle], records[middle:]
    first_rate = sum(1 for r in first if r.status == FeedbackStatus.approved) / len(first)
    second_rate = sum(1 for r in second if r.status == FeedbackStatus.approved) / len(second)
    change = second_rate - first_rate
    significant = abs(change) > SIGNIFICANT_TREND_DELTA
    if not significant:
        direction = TrendDirection.stable
    elif change > 0:
        direction = TrendDirection.improving
    else:
        direction = TrendDirection.declining
    return FeedbackTrend(
        recommendation_type=recommendation_type,
        sample_size=len(records),
        first_half_acceptance=first_rate,
        second_half_acceptance=second_rate,
        acceptance_change=change,
        significant_change=significant,
        trend=direction,
    )


class FeedbackProcessor:
    def __init__(self, store: RecommendationStore, *, cache: ExpiringCache | None = None) -> None:
        self.store = store
        self._learning_cache = cache or ExpiringCache(settings.LEARNING_CACHE_SECONDS)
        self._strategy_offsets: dict[str, float] = {}
        self._lock = Lock()

    def process_feedback(
        self,
        ticket_id: str,
        recommendation: Recommendation,
        feedback: FeedbackSubmission,
    ) -> FeedbackRecord:
        item_type = recommendation.type.value
        record = self.store.add_feedback(
            FeedbackRecord(
                ticket_id=ticket_id,
                item_id=recommendation.id,
                item_type=item_type,
                status=feedback.action.status,
                reason=feedback.reason,
                modified_data=self._modified_payload(recommendation, feedback),
                created_at=feedback.timestamp,
            )
        )

        weight = calculate_new_weight(feedback.action, recommendation.confidence)
        if not self.store.update_pattern_weight(ticket_id, item_type, weight):
            logger.debug("No pattern analysis for ticket %s; weight for %s not stored", ticket_id, item_type)

        self.analyze_feedback_trends(item_type)
        self.invalidate_learning_data(item_type)
        logger.info(
            "Feedback recorded ticket=%s recommendation=%s action=%s weight=%.2f",
            ticket_id,
            recommendation.id,
            feedback.action.value,
            weight,
        )
        return record

    @staticmethod
    def _modified_payload(recommendation: Recommendation, feedback: FeedbackSubmission) -> str | None:
        if feedback.action == FeedbackAction.modified:
            return json.dumps(
                {
                    "original": recommendation.description,
                    "modified": feedback.modified_value,
                    "change_type": detect_change_type(recommendation, feedback.modified_value),
                },
                default=str,
            )
        if feedback.modified_value is None:
            return None
        return json.dumps(feedback.modified_value, default=str)

    def track_approved(self, ticket_id: str, recommendation: Recommendation) -> FeedbackRecord:
        return self.process_feedback(
            ticket_id,
            recommendation,
            FeedbackSubmission(ticket_id=ticket_id, recommendation_id=recommendation.id, action=FeedbackAction.accepted),
        )

    def track_rejected(
        self, ticket_id: str, recommendation: Recommendation, reason: str | None = None
    ) -> FeedbackRecord:
        return self.process_feedback(
            ticket_id,
            recommendation,
            FeedbackSubmission(
                ticket_id=ticket_id,
                recommendation_id=recommendation.id,
                action=FeedbackAction.rejected,
                reason=reason,
            ),
        )

    def track_modified(
        self,
        ticket_id: str,
        recommendation: Recommendation,
        modified_value: Any,
        reason: str | None = None,
    ) -> FeedbackRecord:
        return self.process_feedback(
            ticket_id,
            recommendation,
            FeedbackSubmission(
                ticket_id=ticket_id,
                recommendation_id=recommendation.id,
                action=FeedbackAction.modified,
                modified_value=modified_value,
                reason=reason,
            ),
        )

    # ----- trends -----

    def analyze_feedback_trends(self, recommendation_type: str, *, adjust: bool = True) -> FeedbackTrend:
        window_start = utcnow() - dt.timedelta(days=settings.FEEDBACK_TREND_WINDOW_DAYS)
        newest_first = self.store.list_feedback(
            item_type=recommendation_type,
            start=window_start,
            limit=settings.FEEDBACK_TREND_SAMPLE_SIZE,
            newest_first=True,
        )
        trend = calculate_trend(recommendation_type, list(reversed(newest_first)))
        if adjust and trend.significant_change:
            self.adjust_recommendation_strategy(recommendation_type, trend)
        return trend

    def adjust_recommendation_strategy(self, recommendation_type: str, trend: FeedbackTrend) -> None:
        offset = STRATEGY_OFFSET if trend.trend == TrendDirection.improving else -STRATEGY_OFFSET
        with self._lock:
            self._strategy_offsets[recommendation_type] = offset
        logger.info(
            "Strategy for %s adjusted by %+.2f (acceptance change %.2f)",
            recommendation_type,
            offset,
            trend.acceptance_change,
        )

    def strategy_offset(self, recommendation_type: str) -> float:
        with self._lock:
            return self._strategy_offsets.get(recommendation_type, 0.0)

    # ----- learning data -----

    def get_pattern_learning_data(self, recommendation_type: str) -> LearningData:
        return self._learning_cache.get_or_set(
            ("learning", recommendation_type),
            lambda: self._load_learning_data(recommendation_type),
        )

    def _load_learning_data(self, recommendation_type: str) -> LearningData:
        records = self.store.list_feedback(item_type=recommendation_type)
        accepted = sum(1 for r in records if r.status == FeedbackStatus.approved)
        modifications = [m for m in (parse_modification(r) for r in records) if m is not None]
        return LearningData(
            pattern_id=recommendation_type,
            feedback_count=len(records),
            acceptance_rate=accepted / len(records) if records else 0.0,
            modifications=modifications,
        )

    def invalidate_learning_data(self, recommendation_type: str | None = None) -> None:
        if recommendation_type is None:
            self._learning_cache.clear()
            return
        self._learning_cache.evict(lambda key: key == ("learning", recommendation_type))

    def improve_recommendations(self, ticket_id: str, recommendations: list[Recommendation]) -> list[Recommendation]:
        learning: dict[str, LearningData] = {}
        for rec in recommendations:
            if rec.type.value not in learning:
                learning[rec.type.value] = self.get_pattern_learning_data(rec.type.value)

        improved: list[Recommendation] = []
        for rec in recommendations:
            data = learning[rec.type.value]
            if rec.learning_applied or data.feedback_count < MIN_FEEDBACK_SAMPLES:
                improved.append(rec)
                continue

            confidence = adjust_confidence(rec.confidence, data.acceptance_rate)
            confidence = clamp(confidence + self.strategy_offset(rec.type.value), CONFIDENCE_FLOOR, CONFIDENCE_CEILING)
            category = rec.category
            description = rec.description
            if data.acceptance_rate < LOW_ACCEPTANCE_RATE:
                category = RecommendationCategory.suggestion
                description = f"{LOW_ACCEPTANCE_PREFIX}{description}"
            elif data.acceptance_rate >= HIGH_ACCEPTANCE_RATE:
                if category == RecommendationCategory.suggestion:
                    category = RecommendationCategory.warning
                description = f"{HIGH_ACCEPTANCE_PREFIX}{description}"

            common = find_common_modification(data.modifications)
            if common:
                description = f"{description} Note: Users often modify this to {common}"

            improved.append(
                rec.model_copy(
                    update={
                        "confidence": confidence,
                        "category": category,
                        "description": description,
                        "learning_applied": True,
                    }
                )
            )
        logger.debug("Improved %d recommendations for ticket %s", len(improved), ticket_id)
        return improved
