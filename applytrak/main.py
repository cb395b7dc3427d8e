"""ApplyTrak - Job application tracker with cloud sync, conflict resolution and backups."""

import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from applytrak.core.config import settings
from applytrak.core.redis_client import close_redis
from applytrak.core.storage import init_models
from applytrak.routers import applications_router, backups_router, conflicts_router
from applytrak.services.auto_backup_service import auto_backup_service

log_level = os.getenv("LOG_LEVEL", "INFO").upper()
logging.basicConfig(
    level=getattr(logging, log_level, logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    logger.info("Initializing application...")
    await init_models()

    if settings.auto_backup_enabled:
        logger.info("Starting auto backup...")
        await auto_backup_service.start()

    logger.info("Application initialized")

    yield

    logger.info("Shutting down...")
    await auto_backup_service.stop()
    await close_redis()
    logger.info("Shutdown complete")


app = FastAPI(
    title="ApplyTrak",
    description="Job application tracker with cloud sync, conflict resolution and backups",
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

app.include_router(applications_router)
app.include_router(conflicts_router)
app.include_router(backups_router)


@app.get("/api")
async def api_info():
    """API information endpoint."""
    return {
        "message": "ApplyTrak API",
        "version": "1.0.0",
        "docs": "/docs",
        "status": "active",
        "auto_backup_enabled": settings.auto_backup_enabled,
        "cloud_configured": settings.cloud_api_url is not None,
    }


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "service": "applytrak",
        "auto_backup": auto_backup_service.get_status(),
    }
