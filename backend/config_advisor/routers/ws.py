"""Live recommendation updates over WebSocket."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect

from config_advisor.core.deps import get_ws_recommendation_service
from config_advisor.services.advisor import RecommendationService

router = APIRouter()
logger = logging.getLogger(__name__)


@router.websocket("/ws/recommendations")
async def recommendation_updates(
    websocket: WebSocket,
    service: RecommendationService = Depends(get_ws_recommendation_service),
) -> None:
    await websocket.accept()
    client_id = await service.broadcaster.register(websocket.send_json)
    try:
        while True:
            raw = await websocket.receive_text()
            await service.broadcaster.handle_message(client_id, raw)
    except WebSocketDisconnect:
        logger.debug("WebSocket client %s went away", client_id)
    finally:
        service.broadcaster.unregister(client_id)
