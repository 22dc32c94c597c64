from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from skin_analyzer.config import AnalyzerSettings, load_settings
from skin_analyzer.routes.health import router as health_router
from skin_analyzer.routes.v1 import router as v1_router
from skin_analyzer.services.analyzer import SkinAnalyzer
from skin_analyzer.store.result_store import PersistentResultStore

logger = logging.getLogger("skin-analyzer")


def _parse_cors_origins(raw: Optional[str]) -> list[str]:
    if not raw:
        return ["*"]
    parts = [p.strip() for p in raw.split(",")]
    return [p for p in parts if p]


def _setup_logging() -> None:
    level = (os.getenv("LOG_LEVEL") or "INFO").upper()
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def create_app(
    *,
    settings: Optional[AnalyzerSettings] = None,
    analyzer: Optional[SkinAnalyzer] = None,
) -> FastAPI:
    _setup_logging()
    settings = settings or (analyzer.settings if analyzer else load_settings())
    analyzer = analyzer or SkinAnalyzer(settings)
    result_store = PersistentResultStore(default_ttl_days=settings.result_ttl_days)

    if not analyzer.client.configured:
        logger.error("Webhook URL not configured. Set SKIN_ANALYZER_WEBHOOK_URL.")

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await result_store.initialize()
        yield
        cancelled = analyzer.gates.cancel_all()
        if cancelled:
            logger.info("shutdown_cancelled_in_flight count=%s", cancelled)
        await result_store.close()

    app = FastAPI(title="Skin Analyzer", version="0.1.0", lifespan=lifespan)
    app.state.analyzer = analyzer
    app.state.result_store = result_store

    origins = _parse_cors_origins(os.getenv("CORS_ORIGINS"))
    allow_all = "*" in origins
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if allow_all else origins,
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
        max_age=86400,
    )

    app.include_router(health_router)
    app.include_router(v1_router, prefix="/v1")

    return app


app = create_app()
