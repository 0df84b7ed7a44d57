"""Common FastAPI dependencies."""

from __future__ import annotations

from fastapi import Request, WebSocket

from config_advisor.core.exceptions import ConfigAdvisorException
from config_advisor.services.advisor import RecommendationService


def _service_from_state(state) -> RecommendationService:
    service = getattr(state, "recommendation_service", None)
    if service is None:
        raise ConfigAdvisorException(
            "Recommendation service is not ready",
            error_code="SERVICE_UNAVAILABLE",
            status_code=503,
        )
    return service


def get_recommendation_service(request: Request) -> RecommendationService:
    return _service_from_state(request.app.state)


def get_ws_recommendation_service(websocket: WebSocket) -> RecommendationService:
    return _service_from_state(websocket.app.state)
