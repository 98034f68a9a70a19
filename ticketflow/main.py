"""
Ticket Workflow Engine - FastAPI Application

Wires middleware, error handlers and routers over the schema store,
the ticket engine, the directory and blob metadata.
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from pymongo.errors import PyMongoError

from .config.settings import settings
from .api.routes import api_router
from .api.routes.health import router as health_router, APP_NAME, APP_VERSION
from .api.middleware import CorrelationIdMiddleware, register_error_handlers
from .repositories.mongo_client import create_indexes, close_connection
from .utils.logger import setup_logging, get_logger

setup_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Ensure indexes on startup; close the MongoDB client on shutdown."""
    logger.info(f"Starting {APP_NAME} {APP_VERSION} ({settings.environment})")
    try:
        create_indexes()
    except PyMongoError as e:
        # The API still starts; /health reports the database as degraded
        logger.error(f"Failed to create indexes: {e}")

    yield

    close_connection()
    logger.info(f"{APP_NAME} stopped")


def create_app() -> FastAPI:
    """Build the FastAPI application."""
    docs_enabled = settings.debug
    application = FastAPI(
        title=APP_NAME,
        description="Schema-driven ticket workflows with conditional forms and reviews",
        version=APP_VERSION,
        lifespan=lifespan,
        docs_url="/api/docs" if docs_enabled else None,
        redoc_url="/api/redoc" if docs_enabled else None,
        openapi_url="/api/openapi.json" if docs_enabled else None,
    )

    # allow_credentials must be False when every origin is allowed
    allow_all = settings.cors_origins.strip() == "*"
    application.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if allow_all else settings.cors_origins_list,
        allow_credentials=not allow_all,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Correlation-Id"],
    )
    application.add_middleware(CorrelationIdMiddleware)

    register_error_handlers(application)

    application.include_router(health_router)
    application.include_router(api_router, prefix="/api/v1")
    return application


app = create_app()
