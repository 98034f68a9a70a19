"""Health Routes - Liveness and service information (no actor header needed)"""
from fastapi import APIRouter

from ...config.settings import settings
from ...repositories.mongo_client import health_check

APP_NAME = "Ticket Workflow Engine"
APP_VERSION = "1.0.0"

router = APIRouter(tags=["Health"])


@router.get("/health")
async def health():
    """Health including database connectivity; degraded when MongoDB is unreachable"""
    mongo = health_check()
    return {
        "status": "healthy" if mongo.get("status") == "healthy" else "degraded",
        "version": APP_VERSION,
        "environment": settings.environment,
        "mongo": mongo,
    }


@router.get("/")
async def root():
    return {
        "name": APP_NAME,
        "version": APP_VERSION,
        "docs": "/api/docs" if settings.debug else None,
    }
