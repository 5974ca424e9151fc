"""
HTTP read layer for entity state timelines.

Endpoints:
- GET /health
- GET /timeline?vehicleId=..&startDate=..&endDate=..

Usage:
    state-timeline serve
"""
from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger

from state_timeline.config import TimelineConfig
from state_timeline.errors import DependencyFailureError, InvalidInputError
from state_timeline.query import TimelineQuery
from state_timeline.service import EventSource, TimelineService
from state_timeline.store import FileSystemStore


def _envelope(success: bool, message: str, data: list | None) -> dict:
    return {"success": success, "message": message, "data": data}


def create_app(config: TimelineConfig | None = None, store: EventSource | None = None) -> FastAPI:
    config = config or TimelineConfig.from_env()
    service = TimelineService(
        store if store is not None else FileSystemStore(config.store_dir),
        parallel_reads=config.parallel_reads,
    )

    app = FastAPI(title="State Timeline API", version="0.1.0")
    app.state.service = service
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET"],
        allow_headers=["*"],
    )

    @app.exception_handler(InvalidInputError)
    async def _invalid_input(request: Request, error: InvalidInputError) -> JSONResponse:
        logger.warning("Rejected timeline request {}: {}", request.url.query, error)
        return JSONResponse(status_code=400, content=_envelope(False, str(error), None))

    @app.exception_handler(DependencyFailureError)
    async def _dependency_failure(request: Request, error: DependencyFailureError) -> JSONResponse:
        return JSONResponse(status_code=500, content=_envelope(False, str(error), None))

    @app.get("/health")
    def health() -> dict:
        return {"status": "ok"}

    @app.get("/timeline")
    def get_timeline(request: Request) -> dict:
        query = TimelineQuery.parse(request.query_params)
        logger.info(
            "Timeline request received for entity {} from {} to {}",
            query.entity_id,
            query.start.isoformat(),
            query.end.isoformat(),
        )
        timeline = request.app.state.service.generate_timeline(query.entity_id, query.start, query.end)
        return _envelope(True, "Timeline retrieved successfully.", [interval.to_dict() for interval in timeline])

    return app
