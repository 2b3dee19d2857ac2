"""
FastAPI application exposing the funnel analysis pipeline.
"""

import logging
from typing import Optional

from fastapi import APIRouter, FastAPI, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .. import __version__
from ..config.loader import AppSettings, load_settings
from ..core.pipeline import MALFORMED_BODY, RequestPipeline
from ..storage.models import (
    DEFAULT_FREQUENCY_PENALTY,
    DEFAULT_MAX_TOKENS,
    DEFAULT_PRESENCE_PENALTY,
    DEFAULT_TEMPERATURE,
    DEFAULT_TOP_P,
)
from ..storage.repository import initialize_schema

logger = logging.getLogger(__name__)

APP_VERSION = __version__


def create_app(
    settings: Optional[AppSettings] = None,
    pipeline: Optional[RequestPipeline] = None
) -> FastAPI:
    """Build the application.

    Args:
        settings: Loaded settings; read from the environment when omitted
        pipeline: Pre-built pipeline, mainly for tests

    Returns:
        Configured FastAPI instance
    """
    settings = settings or load_settings()
    if pipeline is None:
        initialize_schema(settings.db_path)
        pipeline = RequestPipeline(settings)

    app = FastAPI(title="Funnel Lab", version=APP_VERSION)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["authorization", "x-client-info", "apikey", "content-type"],
    )
    app.state.settings = settings
    app.state.pipeline = pipeline
    app.include_router(_build_router())
    return app


def _build_router() -> APIRouter:
    router = APIRouter()

    @router.post("/funnel-analysis")
    async def analyze_funnel(request: Request) -> JSONResponse:
        try:
            payload = await request.json()
        except ValueError:
            logger.info("Funnel analysis request with malformed JSON body")
            payload = MALFORMED_BODY

        pipeline: RequestPipeline = request.app.state.pipeline
        result = await run_in_threadpool(
            pipeline.handle, request.headers.get("authorization"), payload
        )
        return JSONResponse(status_code=result.status_code, content=result.body)

    @router.get("/funnel-analysis/config")
    async def funnel_analysis_config(request: Request) -> dict:
        settings: AppSettings = request.app.state.settings
        return {
            "feature": settings.feature.name,
            "cacheEnabled": settings.cache.enabled,
            "cacheTtlHours": settings.cache.ttl_hours,
            "defaultModel": settings.provider.default_model,
            "timeoutSeconds": settings.provider.timeout_seconds,
            "defaults": {
                "temperature": DEFAULT_TEMPERATURE,
                "topP": DEFAULT_TOP_P,
                "maxTokens": DEFAULT_MAX_TOKENS,
                "frequencyPenalty": DEFAULT_FREQUENCY_PENALTY,
                "presencePenalty": DEFAULT_PRESENCE_PENALTY,
            },
        }

    @router.get("/health")
    async def health() -> dict:
        return {"status": "healthy", "version": APP_VERSION}

    return router
