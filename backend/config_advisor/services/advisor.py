"""Inbound facade over the recommendation components."""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy.orm import sessionmaker

from config_advisor.core.exceptions import NotFoundError, RecommendationNotFound
from config_advisor.db.session import SessionLocal
from config_advisor.integrations.salesforce.client import MetadataClient, SalesforceMetadataClient
from config_advisor.models.enums import ConflictSeverity, TicketRecalcState, TriggerType
from config_advisor.schemas.events import InboundMessage
from config_advisor.schemas.feedback import FeedbackRecord, FeedbackSubmission
from config_advisor.schemas.patterns import OrgPatterns
from config_advisor.schemas.recommendation import (
    ConflictCheckResult,
    RecalculationContext,
    Recommendation,
    RecommendationsResponse,
    RecommendationStats,
)
from config_advisor.services.ai import OllamaTextGenerator, TextGenerator
from config_advisor.services.analytics import RecommendationAnalytics
from config_advisor.services.broadcaster import SendFn, UpdateBroadcaster
from config_advisor.services.conflicts import ConflictDetector
from config_advisor.services.engine import RecommendationEngine
from config_advisor.services.feedback import FeedbackProcessor
from config_advisor.services.patterns import PatternAnalyzer, dominant_naming_convention
from config_advisor.services.recalculation import RecalculationCoordinator
from config_advisor.services.store import RecommendationStore, SqlRecommendationStore

logger = logging.getLogger(__name__)


class RecommendationService:
    def __init__(
        self,
        *,
        store: RecommendationStore,
        analyzer: PatternAnalyzer,
        detector: ConflictDetector,
        feedback: FeedbackProcessor,
        analytics: RecommendationAnalytics,
        broadcaster: UpdateBroadcaster,
        coordinator: RecalculationCoordinator,
    ) -> None:
        self.store = store
        self.analyzer = analyzer
        self.detector = detector
        self.feedback = feedback
        self.analytics = analytics
        self.broadcaster = broadcaster
        self.coordinator = coordinator
        if broadcaster.on_recalculate is None:
            broadcaster.on_recalculate = self._handle_live_recalculate

    def analyze_org_patterns(self, org_id: str, ticket_id: str) -> OrgPatterns:
        return self.analyzer.analyze_org_patterns(org_id, ticket_id)

    async def get_recommendations(
        self,
        ticket_id: str,
        org_id: str,
        proposed_changes: dict[str, Any] | None = None,
        *,
        force_refresh: bool = False,
    ) -> RecommendationsResponse:
        """Serve the stored set when nothing new was proposed; otherwise run a cycle now."""
        if proposed_changes is None and not force_refresh:
            cached = self.store.get_recommendations(ticket_id)
            if cached:
                return RecommendationsResponse(ticket_id=ticket_id, recommendations=cached, from_cache=True)

        result = await self.coordinator.run_now(
            RecalculationContext(
                ticket_id=ticket_id,
                org_id=org_id,
                proposed_changes=proposed_changes,
                trigger_type=TriggerType.manual,
            )
        )
        return RecommendationsResponse(ticket_id=ticket_id, recommendations=result.recommendations, from_cache=False)

    def check_conflicts(
        self,
        org_id: str,
        proposed_changes: dict[str, Any],
        existing_metadata: dict[str, Any] | None = None,
        *,
        ticket_id: str | None = None,
    ) -> ConflictCheckResult:
        convention = None
        if ticket_id:
            convention = dominant_naming_convention(self.store.get_latest_patterns(ticket_id))
        conflicts = self.detector.detect_conflicts(
            org_id, proposed_changes, existing_metadata, naming_convention=convention
        )
        counts = {severity: 0 for severity in ConflictSeverity}
        for conflict in conflicts:
            counts[conflict.severity] += 1
        return ConflictCheckResult(
            conflicts=conflicts,
            has_conflicts=bool(conflicts),
            critical_count=counts[ConflictSeverity.critical],
            high_count=counts[ConflictSeverity.high],
            medium_count=counts[ConflictSeverity.medium],
            low_count=counts[ConflictSeverity.low],
        )

    def submit_feedback(self, submission: FeedbackSubmission) -> FeedbackRecord:
        recommendation = next(
            (rec for rec in self.store.get_recommendations(submission.ticket_id) if rec.id == submission.recommendation_id),
            None,
        )
        if recommendation is None:
            logger.warning(
                "Feedback for unknown recommendation ticket=%s recommendation=%s",
                submission.ticket_id,
                submission.recommendation_id,
            )
            raise RecommendationNotFound(submission.ticket_id, submission.recommendation_id)
        record = self.feedback.process_feedback(submission.ticket_id, recommendation, submission)
        self.analytics.record_feedback(recommendation.type.value)
        return record

    def improve_recommendations(
        self, ticket_id: str, recommendations: list[Recommendation] | None = None
    ) -> list[Recommendation]:
        """Apply feedback learning.

        Without an explicit list the stored set is improved and saved back, so
        later reads serve the improved set. Already improved recommendations
        are left as they are.
        """
        if recommendations is not None:
            return self.feedback.improve_recommendations(ticket_id, recommendations)

        current = self.store.get_recommendations(ticket_id)
        if not current:
            raise NotFoundError(f"No recommendations found for ticket {ticket_id}", details={"ticket_id": ticket_id})
        improved = self.feedback.improve_recommendations(ticket_id, current)
        if improved != current:
            self.store.update_recommendations(ticket_id, improved)
            self.analytics.invalidate_recommendations(ticket_id)
        return improved

    def get_recommendation_stats(self, org_id: str) -> RecommendationStats:
        return self.analytics.recommendation_stats(org_id)

    def queue_recalculation(
        self,
        ticket_id: str,
        org_id: str,
        proposed_changes: dict[str, Any] | None = None,
        trigger_type: TriggerType = TriggerType.manual,
    ) -> TicketRecalcState:
        self.coordinator.queue_recalculation(
            RecalculationContext(
                ticket_id=ticket_id,
                org_id=org_id,
                proposed_changes=proposed_changes,
                trigger_type=trigger_type,
            )
        )
        return self.coordinator.state(ticket_id)

    async def subscribe(self, send: SendFn, ticket_id: str, org_id: str | None = None) -> str:
        client_id = await self.broadcaster.register(send)
        await self.broadcaster.subscribe(client_id, ticket_id, org_id)
        return client_id

    def unsubscribe(self, client_id: str, ticket_id: str | None = None) -> None:
        if ticket_id is None:
            self.broadcaster.unregister(client_id)
        else:
            self.broadcaster.unsubscribe(client_id, ticket_id)

    def _handle_live_recalculate(self, client_id: str, message: InboundMessage) -> None:
        if not message.org_id:
            logger.info("Ignoring live recalculation from %s without org_id", client_id)
            return
        proposed = message.data if isinstance(message.data, dict) else None
        trigger = TriggerType.context_change if message.type == "update" else TriggerType.manual
        self.queue_recalculation(message.ticket_id, message.org_id, proposed, trigger)


def build_recommendation_service(
    *,
    session_factory: sessionmaker | None = None,
    metadata: MetadataClient | None = None,
    generator: TextGenerator | None = None,
) -> RecommendationService:
    store = SqlRecommendationStore(session_factory or SessionLocal)
    metadata = metadata or SalesforceMetadataClient()
    generator = generator or OllamaTextGenerator()

    analyzer = PatternAnalyzer(metadata, store)
    detector = ConflictDetector(metadata)
    feedback = FeedbackProcessor(store)
    analytics = RecommendationAnalytics(store, feedback)
    broadcaster = UpdateBroadcaster()
    coordinator = RecalculationCoordinator(
        analyzer=analyzer,
        engine=RecommendationEngine(generator),
        detector=detector,
        store=store,
        broadcaster=broadcaster,
        analytics=analytics,
    )
    return RecommendationService(
        store=store,
        analyzer=analyzer,
        detector=detector,
        feedback=feedback,
        analytics=analytics,
        broadcaster=broadcaster,
        coordinator=coordinator,
    )
