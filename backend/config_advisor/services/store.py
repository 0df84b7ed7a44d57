"""Persistence collaborator for analyses, recommendation sets, feedback and history."""

from __future__ import annotations

import datetime as dt
import logging
from typing import Callable, Protocol

from pydantic import ValidationError
from sqlalchemy import func, select
from sqlalchemy.orm import Session, sessionmaker

from config_advisor.models.analysis import Analysis, utcnow
from config_advisor.models.approval_item import ApprovalItem
from config_advisor.models.recalculation_history import RecalculationHistory
from config_advisor.models.recommendation_set import RecommendationSet
from config_advisor.schemas.feedback import FeedbackRecord
from config_advisor.schemas.patterns import OrgPatterns
from config_advisor.schemas.recommendation import Recommendation, RecalculationHistoryEntry

logger = logging.getLogger(__name__)


class RecommendationStore(Protocol):
    def save_analysis(
        self, ticket_id: str, org_id: str, patterns: OrgPatterns, *, score: float, confidence: float
    ) -> str: ...

    def get_latest_patterns(self, ticket_id: str) -> OrgPatterns | None: ...

    def update_pattern_weight(self, ticket_id: str, recommendation_type: str, weight: float) -> bool: ...

    def get_pattern_weights(self, ticket_id: str) -> dict[str, float]: ...

    def count_analyses(self) -> int: ...

    def count_pattern_weights(self) -> int: ...

    def store_recommendations(self, ticket_id: str, org_id: str, recommendations: list[Recommendation]) -> None: ...

    def update_recommendations(self, ticket_id: str, recommendations: list[Recommendation]) -> bool: ...

    def save_recalculation(
        self,
        ticket_id: str,
        org_id: str,
        recommendations: list[Recommendation],
        entry: RecalculationHistoryEntry,
        *,
        should_abort: Callable[[], bool] | None = None,
    ) -> bool: ...

    def get_recommendations(self, ticket_id: str) -> list[Recommendation]: ...

    def list_recommendation_sets(self, org_id: str | None = None) -> list[tuple[str, list[Recommendation]]]: ...

    def add_feedback(self, record: FeedbackRecord) -> FeedbackRecord: ...

    def list_feedback(
        self,
        *,
        item_type: str | None = None,
        start: dt.datetime | None = None,
        end: dt.datetime | None = None,
        limit: int | None = None,
        newest_first: bool = False,
    ) -> list[FeedbackRecord]: ...

    def add_recalculation_history(self, entry: RecalculationHistoryEntry) -> None: ...

    def list_recalculation_history(self, ticket_id: str | None = None) -> list[RecalculationHistoryEntry]: ...


class SqlRecommendationStore:
    """SQLAlchemy-backed store; every call runs in its own short session."""

    def __init__(self, session_factory: sessionmaker) -> None:
        self._session_factory = session_factory

    def _session(self) -> Session:
        return self._session_factory()

    @staticmethod
    def _latest_analysis(db: Session, ticket_id: str) -> Analysis | None:
        return db.execute(
            select(Analysis)
            .where(Analysis.ticket_id == ticket_id)
            .order_by(Analysis.created_at.desc(), Analysis.updated_at.desc())
            .limit(1)
        ).scalar_one_or_none()

    # ----- pattern analyses -----

    def save_analysis(
        self, ticket_id: str, org_id: str, patterns: OrgPatterns, *, score: float, confidence: float
    ) -> str:
        with self._session() as db:
            record = Analysis(
                ticket_id=ticket_id,
                org_id=org_id,
                findings=patterns.model_dump(mode="json"),
                pattern_weights={},
                score=score,
                confidence=confidence,
            )
            db.add(record)
            db.commit()
            return record.id

    def get_latest_patterns(self, ticket_id: str) -> OrgPatterns | None:
        with self._session() as db:
            record = self._latest_analysis(db, ticket_id)
            if record is None or not record.findings:
                return None
            try:
                return OrgPatterns.model_validate(record.findings)
            except ValidationError as exc:
                logger.warning("Stored patterns for ticket %s are unreadable: %s", ticket_id, exc)
                return None

    def update_pattern_weight(self, ticket_id: str, recommendation_type: str, weight: float) -> bool:
        with self._session() as db:
            record = self._latest_analysis(db, ticket_id)
            if record is None:
                return False
            weights = dict(record.pattern_weights or {})
            weights[recommendation_type] = weight
            record.pattern_weights = weights
            db.commit()
            return True

    def get_pattern_weights(self, ticket_id: str) -> dict[str, float]:
        with self._session() as db:
            record = self._latest_analysis(db, ticket_id)
            return dict(record.pattern_weights or {}) if record else {}

    def count_analyses(self) -> int:
        with self._session() as db:
            return int(db.execute(select(func.count(Analysis.id))).scalar_one())

    def count_pattern_weights(self) -> int:
        with self._session() as db:
            rows = db.execute(select(Analysis.pattern_weights)).scalars().all()
            return sum(len(weights or {}) for weights in rows)

    # ----- recommendation sets -----

    @staticmethod
    def _write_set(db: Session, ticket_id: str, org_id: str, recommendations: list[Recommendation]) -> None:
        payload = [rec.model_dump(mode="json") for rec in recommendations]
        record = db.get(RecommendationSet, ticket_id)
        if record is None:
            db.add(RecommendationSet(ticket_id=ticket_id, org_id=org_id, recommendations=payload))
        else:
            record.org_id = org_id
            record.recommendations = payload
            record.updated_at = utcnow()

    def store_recommendations(self, ticket_id: str, org_id: str, recommendations: list[Recommendation]) -> None:
        with self._session() as db:
            self._write_set(db, ticket_id, org_id, recommendations)
            db.commit()

    def update_recommendations(self, ticket_id: str, recommendations: list[Recommendation]) -> bool:
        """Replace the recommendations of an existing set, keeping its org."""
        with self._session() as db:
            record = db.get(RecommendationSet, ticket_id)
            if record is None:
                return False
            self._write_set(db, ticket_id, record.org_id, recommendations)
            db.commit()
            return True

    def save_recalculation(
        self,
        ticket_id: str,
        org_id: str,
        recommendations: list[Recommendation],
        entry: RecalculationHistoryEntry,
        *,
        should_abort: Callable[[], bool] | None = None,
    ) -> bool:
        """Write the new set and its history row in one transaction.

        ``should_abort`` is checked right before the commit; when it returns true
        the session is rolled back and nothing is written.
        """
        with self._session() as db:
            self._write_set(db, ticket_id, org_id, recommendations)
            db.add(self._history_row(entry))
            if should_abort is not None and should_abort():
                db.rollback()
                return False
            db.commit()
            return True

    def get_recommendations(self, ticket_id: str) -> list[Recommendation]:
        with self._session() as db:
            record = db.get(RecommendationSet, ticket_id)
            if record is None:
                return []
            return [Recommendation.model_validate(item) for item in record.recommendations or []]

    def list_recommendation_sets(self, org_id: str | None = None) -> list[tuple[str, list[Recommendation]]]:
        with self._session() as db:
            query = select(RecommendationSet).order_by(RecommendationSet.updated_at.desc())
            if org_id:
                query = query.where(RecommendationSet.org_id == org_id)
            rows = db.execute(query).scalars().all()
            return [
                (row.ticket_id, [Recommendation.model_validate(item) for item in row.recommendations or []])
                for row in rows
            ]

    # ----- feedback -----

    def add_feedback(self, record: FeedbackRecord) -> FeedbackRecord:
        with self._session() as db:
            item = ApprovalItem(
                ticket_id=record.ticket_id,
                item_id=record.item_id,
                item_type=record.item_type,
                status=record.status,
                reason=record.reason,
                modified_data=record.modified_data,
                created_at=record.created_at,
            )
            db.add(item)
            db.commit()
            return FeedbackRecord.model_validate(item)

    def list_feedback(
        self,
        *,
        item_type: str | None = None,
        start: dt.datetime | None = None,
        end: dt.datetime | None = None,
        limit: int | None = None,
        newest_first: bool = False,
    ) -> list[FeedbackRecord]:
        query = select(ApprovalItem)
        if item_type:
            query = query.where(ApprovalItem.item_type == item_type)
        if start is not None:
            query = query.where(ApprovalItem.created_at >= start)
        if end is not None:
            query = query.where(ApprovalItem.created_at <= end)
        query = query.order_by(ApprovalItem.id.desc() if newest_first else ApprovalItem.id.asc())
        if limit is not None:
            query = query.limit(limit)
        with self._session() as db:
            return [FeedbackRecord.model_validate(row) for row in db.execute(query).scalars().all()]

    # ----- recalculation history -----

    @staticmethod
    def _history_row(entry: RecalculationHistoryEntry) -> RecalculationHistory:
        return RecalculationHistory(
            ticket_id=entry.ticket_id,
            trigger_type=entry.trigger_type,
            added_count=entry.added_count,
            removed_count=entry.removed_count,
            modified_count=entry.modified_count,
            overall_confidence=entry.overall_confidence,
            created_at=entry.created_at,
        )

    def add_recalculation_history(self, entry: RecalculationHistoryEntry) -> None:
        with self._session() as db:
            db.add(self._history_row(entry))
            db.commit()

    def list_recalculation_history(self, ticket_id: str | None = None) -> list[RecalculationHistoryEntry]:
        query = select(RecalculationHistory).order_by(RecalculationHistory.id.asc())
        if ticket_id:
            query = query.where(RecalculationHistory.ticket_id == ticket_id)
        with self._session() as db:
            return [RecalculationHistoryEntry.model_validate(row) for row in db.execute(query).scalars().all()]
