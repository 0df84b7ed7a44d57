from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from config_advisor.core.config import settings
from config_advisor.core.exceptions import ConfigAdvisorException
from config_advisor.core.logging import setup_logging
from config_advisor.routers import recommendations, ws
from config_advisor.services.advisor import RecommendationService, build_recommendation_service


def create_app(service: RecommendationService | None = None) -> FastAPI:
    setup_logging(settings.LOG_LEVEL)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if getattr(app.state, "recommendation_service", None) is None:
            app.state.recommendation_service = build_recommendation_service()
        coordinator = app.state.recommendation_service.coordinator
        await coordinator.start()
        try:
            yield
        finally:
            await coordinator.stop()
            app.state.recommendation_service.broadcaster.close()

    app = FastAPI(title=settings.APP_NAME, lifespan=lifespan)
    app.state.recommendation_service = service
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(recommendations.router, prefix="/api/recommendations", tags=["recommendations"])
    app.include_router(ws.router, tags=["live-updates"])

    @app.exception_handler(ConfigAdvisorException)
    async def handle_advisor_exception(_: Request, exc: ConfigAdvisorException) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    return app


app = create_app()
