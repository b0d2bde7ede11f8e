"""ADLENS: FastAPI Application Entry Point.

Advertising diagnostics: classification, findings, creative categories
and alerts over synced performance data.
"""

import os
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from app.database import init_db, check_connection, db_url, mask_url
from app.scheduler.jobs import start_scheduler, stop_scheduler
from app.api.analysis_routes import router as analysis_router
from app.api.client_routes import router as client_router
from app.api.ingest_routes import router as ingest_router
from app.core.config_store import config_cache
from app.core.logging import get_logger

logger = get_logger("main")

IS_SERVERLESS = bool(
    os.environ.get("VERCEL") or os.environ.get("AWS_LAMBDA_FUNCTION_NAME")
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle."""
    logger.info("🚀 ADLENS starting up...")
    if check_connection():
        try:
            init_db()
        except Exception as e:
            logger.error(f"❌ Table creation failed: {e}")
    else:
        logger.error("❌ Database NOT connected, endpoints will fail")
    if not IS_SERVERLESS:
        start_scheduler()
    yield
    if not IS_SERVERLESS:
        stop_scheduler()
    logger.info("ADLENS shut down")


app = FastAPI(
    title="ADLENS",
    description="Ad performance diagnostics: entity classification, period-over-period findings, creative categories and alerts.",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    started = time.perf_counter()
    response = await call_next(request)
    logger.info(
        f"{request.method} {request.url.path}",
        extra={
            "status_code": response.status_code,
            "duration_ms": round((time.perf_counter() - started) * 1000, 1),
        },
    )
    return response


app.include_router(client_router)
app.include_router(ingest_router)
app.include_router(analysis_router)


@app.get("/health", tags=["System"])
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "service": "adlens",
        "version": "1.0.0",
        "database": "postgresql" if db_url.startswith("postgresql") else "sqlite",
        "database_url": mask_url(db_url),
        "engine_config_cache": {
            k: v for k, v in config_cache.stats().items() if k != "keys"
        },
    }
