"""API Routes module"""
from fastapi import APIRouter

from .schemas import router as schemas_router
from .tickets import router as tickets_router
from .directory import router as directory_router
from .blobs import router as blobs_router

# Main API router
api_router = APIRouter()

# Include all route modules
api_router.include_router(schemas_router, prefix="/schemas", tags=["Schemas"])
api_router.include_router(tickets_router, prefix="/tickets", tags=["Tickets"])
api_router.include_router(directory_router, prefix="/directory", tags=["Directory"])
api_router.include_router(blobs_router, prefix="/blobs", tags=["Blobs"])

__all__ = ["api_router"]
