"""FastAPI application entry point with global error handling."""
from __future__ import annotations

import os
import sys

# Add src/ to Python path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from core.config import get_settings
from core.logging_config import get_logger, setup_logging
from core.exceptions import (
    BrokerageError,
    ConflictError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from api.routes import analytics, deals, health, inquiries, properties

LOGGER = get_logger(__name__)
SETTINGS = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan handler.

    Sets up logging, validates the database, and logs startup/shutdown events.
    Missing tables are created; the app still starts if the database is down
    so health checks can report it.
    """
    setup_logging(level=SETTINGS.log_level, json_format=SETTINGS.log_format == "json")

    LOGGER.info(
        "API application starting",
        extra={"extra_data": {
            "environment": SETTINGS.environment,
            "view_dedup_window_minutes": SETTINGS.view_dedup_window_minutes,
            "default_commission_rate": str(SETTINGS.default_commission_rate),
        }}
    )

    try:
        from core.db import init_db, validate_database
        db_status = validate_database()

        if db_status["status"] == "error":
            LOGGER.error(
                "Database validation failed - app will start without database",
                extra={"extra_data": {"errors": db_status["errors"], "database_url": db_status["database_url"]}}
            )
        elif db_status["status"] == "missing_tables":
            LOGGER.warning(
                "Missing database tables detected - attempting to create",
                extra={"extra_data": {"missing": db_status["tables_missing"]}}
            )
            init_result = init_db()
            if init_result["status"] == "error":
                LOGGER.error(
                    "Failed to create missing tables",
                    extra={"extra_data": {"error": init_result.get("error")}}
                )
        else:
            LOGGER.info("Database validation passed")
    except Exception as e:
        LOGGER.error(f"Database validation error during startup: {e} - app will start anyway")

    yield
    LOGGER.info("API application shutting down")


def _error_response(status_code: int, error: str, exc: Exception) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": error, "message": str(exc)})


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application instance with:
        - CORS middleware
        - Global exception handlers
        - All API routes
    """
    application = FastAPI(
        title="Brokerage Engine",
        description="Property listings, buyer inquiries, deals and view analytics",
        version="1.0.0",
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # -------------------------------------------------------------------------
    # CORS Middleware
    # -------------------------------------------------------------------------
    application.add_middleware(
        CORSMiddleware,
        allow_origins=SETTINGS.get_allowed_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # -------------------------------------------------------------------------
    # Global Exception Handlers
    # -------------------------------------------------------------------------

    @application.exception_handler(NotFoundError)
    async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
        """Unknown deal, property, inquiry or agent id."""
        LOGGER.info(f"Not found: {exc}", extra={"extra_data": {"path": request.url.path}})
        return _error_response(404, "not_found", exc)

    @application.exception_handler(InvalidStateError)
    async def invalid_state_handler(request: Request, exc: InvalidStateError) -> JSONResponse:
        """Illegal lifecycle transition."""
        LOGGER.warning(f"Invalid state: {exc}", extra={"extra_data": {"path": request.url.path}})
        return _error_response(409, "invalid_state", exc)

    @application.exception_handler(ConflictError)
    async def conflict_handler(request: Request, exc: ConflictError) -> JSONResponse:
        LOGGER.warning(f"Conflict: {exc}", extra={"extra_data": {"path": request.url.path}})
        return _error_response(409, "conflict", exc)

    @application.exception_handler(ValidationError)
    async def validation_handler(request: Request, exc: ValidationError) -> JSONResponse:
        """Handle validation errors."""
        LOGGER.warning(f"Validation error: {exc}", extra={"extra_data": {"path": request.url.path}})
        return _error_response(400, "validation_error", exc)

    @application.exception_handler(BrokerageError)
    async def app_error_handler(request: Request, exc: BrokerageError) -> JSONResponse:
        """Handle all other application errors."""
        LOGGER.error(f"Application error: {exc}", exc_info=True)
        return _error_response(500, "application_error", exc)

    # -------------------------------------------------------------------------
    # Include Routers
    # -------------------------------------------------------------------------
    application.include_router(health.router, prefix="/health", tags=["Health"])
    application.include_router(properties.router, prefix="/properties", tags=["Properties"])
    application.include_router(inquiries.router, prefix="/inquiries", tags=["Inquiries"])
    application.include_router(deals.router, prefix="/deals", tags=["Deals"])
    application.include_router(analytics.router, prefix="/analytics", tags=["Analytics"])

    return application


# Create the application instance
app = create_app()

LOGGER.info("API application initialized")
