"""Recommendation, feedback and analytics endpoints."""

from __future__ import annotations

import datetime as dt
import logging
from typing import Any, Literal

from fastapi import APIRouter, Body, Depends, Query
from fastapi.responses import Response
from pydantic import BaseModel, Field

from config_advisor.core.deps import get_recommendation_service
from config_advisor.models.enums import TicketRecalcState, TriggerType
from config_advisor.schemas.analytics import AcceptanceMetrics, DashboardMetrics, FeedbackMetrics, PatternAccuracy
from config_advisor.schemas.feedback import FeedbackRecord, FeedbackSubmission
from config_advisor.schemas.patterns import OrgPatterns
from config_advisor.schemas.recommendation import (
    ConflictCheckResult,
    RecalculationHistoryEntry,
    Recommendation,
    RecommendationsResponse,
    RecommendationStats,
)
from config_advisor.services.advisor import RecommendationService

router = APIRouter()
logger = logging.getLogger(__name__)

_EXPORT_MEDIA_TYPES = {"json": "application/json", "csv": "text/csv"}


class AnalyzeRequest(BaseModel):
    org_id: str = Field(min_length=1)
    ticket_id: str = Field(min_length=1)


class RecommendationsRequest(BaseModel):
    ticket_id: str = Field(min_length=1)
    org_id: str = Field(min_length=1)
    proposed_changes: dict[str, Any] | None = None
    force_refresh: bool = False


class ConflictCheckRequest(BaseModel):
    org_id: str = Field(min_length=1)
    proposed_changes: dict[str, Any]
    existing_metadata: dict[str, Any] | None = None
    ticket_id: str | None = None


class RecalculateRequest(BaseModel):
    ticket_id: str = Field(min_length=1)
    org_id: str = Field(min_length=1)
    proposed_changes: dict[str, Any] | None = None
    trigger_type: TriggerType = TriggerType.manual


class RecalculateResponse(BaseModel):
    ticket_id: str
    state: TicketRecalcState
    last_error: str | None = None


class PatternAccuracyRequest(BaseModel):
    predicted: list[dict[str, Any]] = Field(default_factory=list)
    actual: list[dict[str, Any]] = Field(default_factory=list)


@router.post("/analyze", response_model=OrgPatterns)
def analyze_patterns(
    payload: AnalyzeRequest,
    service: RecommendationService = Depends(get_recommendation_service),
) -> OrgPatterns:
    return service.analyze_org_patterns(payload.org_id, payload.ticket_id)


@router.post("/", response_model=RecommendationsResponse)
async def get_recommendations(
    payload: RecommendationsRequest,
    service: RecommendationService = Depends(get_recommendation_service),
) -> RecommendationsResponse:
    return await service.get_recommendations(
        payload.ticket_id,
        payload.org_id,
        payload.proposed_changes,
        force_refresh=payload.force_refresh,
    )


@router.post("/conflicts", response_model=ConflictCheckResult)
def check_conflicts(
    payload: ConflictCheckRequest,
    service: RecommendationService = Depends(get_recommendation_service),
) -> ConflictCheckResult:
    return service.check_conflicts(
        payload.org_id,
        payload.proposed_changes,
        payload.existing_metadata,
        ticket_id=payload.ticket_id,
    )


@router.post("/feedback", response_model=FeedbackRecord)
def submit_feedback(
    payload: FeedbackSubmission,
    service: RecommendationService = Depends(get_recommendation_service),
) -> FeedbackRecord:
    return service.submit_feedback(payload)


@router.post("/{ticket_id}/improve", response_model=list[Recommendation])
def improve_recommendations(
    ticket_id: str,
    recommendations: list[Recommendation] | None = Body(default=None),
    service: RecommendationService = Depends(get_recommendation_service),
) -> list[Recommendation]:
    return service.improve_recommendations(ticket_id, recommendations)


@router.get("/stats", response_model=RecommendationStats)
def get_stats(
    org_id: str = Query(..., min_length=1),
    service: RecommendationService = Depends(get_recommendation_service),
) -> RecommendationStats:
    return service.get_recommendation_stats(org_id)


@router.post("/recalculate", response_model=RecalculateResponse, status_code=202)
async def queue_recalculation(
    payload: RecalculateRequest,
    service: RecommendationService = Depends(get_recommendation_service),
) -> RecalculateResponse:
    state = service.queue_recalculation(
        payload.ticket_id,
        payload.org_id,
        payload.proposed_changes,
        payload.trigger_type,
    )
    return RecalculateResponse(
        ticket_id=payload.ticket_id,
        state=state,
        last_error=service.coordinator.last_error(payload.ticket_id),
    )


@router.get("/{ticket_id}/history", response_model=list[RecalculationHistoryEntry])
def get_recalculation_history(
    ticket_id: str,
    service: RecommendationService = Depends(get_recommendation_service),
) -> list[RecalculationHistoryEntry]:
    return service.store.list_recalculation_history(ticket_id)


@router.get("/analytics", response_model=DashboardMetrics)
def get_dashboard(service: RecommendationService = Depends(get_recommendation_service)) -> DashboardMetrics:
    return service.analytics.get_dashboard_metrics()


@router.get("/analytics/feedback", response_model=FeedbackMetrics)
def get_feedback_metrics(
    start: dt.datetime | None = Query(default=None),
    end: dt.datetime | None = Query(default=None),
    service: RecommendationService = Depends(get_recommendation_service),
) -> FeedbackMetrics:
    return service.analytics.get_feedback_metrics(start, end)


@router.get("/analytics/acceptance", response_model=AcceptanceMetrics)
def get_acceptance_metrics(
    type: str | None = Query(default=None),
    start: dt.datetime | None = Query(default=None),
    end: dt.datetime | None = Query(default=None),
    service: RecommendationService = Depends(get_recommendation_service),
) -> AcceptanceMetrics:
    return service.analytics.get_acceptance_metrics(type, start, end)


@router.post("/analytics/pattern-accuracy", response_model=list[PatternAccuracy])
def monitor_pattern_accuracy(
    payload: PatternAccuracyRequest,
    service: RecommendationService = Depends(get_recommendation_service),
) -> list[PatternAccuracy]:
    return service.analytics.monitor_pattern_accuracy(payload.predicted, payload.actual)


@router.get("/analytics/export")
def export_analytics(
    format: Literal["json", "csv"] = Query(default="json"),
    start: dt.datetime | None = Query(default=None),
    end: dt.datetime | None = Query(default=None),
    service: RecommendationService = Depends(get_recommendation_service),
) -> Response:
    body = service.analytics.export_analytics(format, start, end)
    logger.info("Exported analytics as %s (%d bytes)", format, len(body))
    return Response(content=body, media_type=_EXPORT_MEDIA_TYPES[format])
