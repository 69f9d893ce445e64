"""
Cordova CMS Backend - FastAPI Application Factory
===================================================

What:  Creates and configures the FastAPI application instance.
How:   create_app() wires middleware, exception handlers, the health route
       and every registered resource controller around one database handle.
Who:   uvicorn serves `cms.main:app`; tests call create_app() with their own
       database handle.

Lifecycle:
    Startup:
    1. Initialize logging
    2. Ensure each resource's unique identifier index exists
    3. Log startup complete

    Shutdown:
    1. Close the Motor client (if this app created it)
    2. Log shutdown complete
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import APIRouter, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from motor.motor_asyncio import AsyncIOMotorDatabase
from starlette.exceptions import HTTPException as StarletteHTTPException

from cms import __version__
from cms.config import settings
from cms.controllers import register_controllers
from cms.database import close_client, get_database, sanitize_mongodb_url
from cms.exceptions import (
    CMSError,
    ConflictError,
    NotFoundError,
    StoreError,
    ValidationError,
)
from cms.middleware.logging import RequestLoggingMiddleware
from cms.middleware.request_id import (
    REQUEST_ID_HEADER,
    UNEXPECTED_ERROR_CODE,
    UNEXPECTED_ERROR_MESSAGE,
    RequestIDMiddleware,
    request_id_var,
)
from cms.routes import health

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Logging Configuration
# ══════════════════════════════════════════════════════════════════════════

def setup_logging() -> None:
    """
    Configure logging for the entire application.

    Format: %(asctime)s [%(levelname)s] %(name)s: %(message)s
    Called once during startup, before any other initialization.
    """
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )

    # Driver and server loggers are chatty at INFO
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("pymongo").setLevel(logging.WARNING)
    logging.getLogger("motor").setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Application Lifespan (Startup & Shutdown)
# ══════════════════════════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    # ── Startup ───────────────────────────────────────────────────────────
    setup_logging()
    logger.info("=" * 60)
    logger.info("Cordova CMS backend starting up...")
    logger.info(
        "MongoDB: %s / %s",
        sanitize_mongodb_url(settings.mongodb_url),
        settings.mongodb_database,
    )

    # A failure is logged and the server still starts. The DAO refuses
    # writes with a StoreError until a later write manages to create the
    # index, so no two documents can ever share an id.
    for controller in app.state.controllers:
        try:
            await controller.config.dao.ensure_indexes()
            logger.info(
                "Resource /%s ready (unique index on %s)",
                controller.config.name,
                controller.config.id_field,
            )
        except StoreError as e:
            logger.error(
                "Could not create indexes for %s: %s | Context: %s",
                controller.config.name, e.message, e.context,
            )

    logger.info("Server ready at http://%s:%d", settings.backend_host, settings.backend_port)
    logger.info("=" * 60)

    yield

    # ── Shutdown ──────────────────────────────────────────────────────────
    logger.info("Cordova CMS backend shutting down...")
    if app.state.owns_client:
        close_client()
    logger.info("Shutdown complete.")


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

def error_response(
    status_code: int, error: str, message: str, details=None, headers=None
) -> JSONResponse:
    content = {
        "error": error,
        "message": message,
        "request_id": request_id_var.get(""),
    }
    if details:
        content["details"] = details
    return JSONResponse(status_code=status_code, content=content, headers=headers)


# Codes for errors raised by routing itself (unknown path, wrong method)
HTTP_ERROR_CODES = {
    404: NotFoundError.code,
    405: "method_not_allowed",
}


def register_exception_handlers(app: FastAPI) -> None:
    """
    Map the exception taxonomy to HTTP responses.

    Handler table:
        ValidationError / RequestValidationError → 400
        NotFoundError                            → 404
        ConflictError                            → 409
        StoreError                               → 500 (generic message)
        CMSError (base)                          → 500
        HTTPException (routing: 404 / 405)       → its own status
        Exception (fallback)                     → 500

    No handler ever puts a driver message or stack trace in the body.
    """

    @app.exception_handler(ValidationError)
    async def handle_validation_error(request: Request, exc: ValidationError):
        logger.warning("[%s] Validation error: %s", request_id_var.get(""), exc.message)
        return error_response(400, exc.code, exc.message, exc.context)

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation_error(request: Request, exc: RequestValidationError):
        logger.warning("[%s] Request validation error: %s", request_id_var.get(""), exc.errors())
        return error_response(
            400,
            ValidationError.code,
            "Request is malformed",
            {"errors": [".".join(str(p) for p in err.get("loc", ())) for err in exc.errors()]},
        )

    @app.exception_handler(NotFoundError)
    async def handle_not_found(request: Request, exc: NotFoundError):
        return error_response(404, exc.code, exc.message)

    @app.exception_handler(ConflictError)
    async def handle_conflict(request: Request, exc: ConflictError):
        logger.info("[%s] Conflict: %s", request_id_var.get(""), exc.message)
        return error_response(409, exc.code, exc.message)

    @app.exception_handler(StoreError)
    async def handle_store_error(request: Request, exc: StoreError):
        logger.error(
            "[%s] Store error: %s | Context: %s", request_id_var.get(""), exc.message, exc.context
        )
        return error_response(500, exc.code, "An internal error occurred. Please try again later.")

    @app.exception_handler(CMSError)
    async def handle_cms_error(request: Request, exc: CMSError):
        logger.error(
            "[%s] Application error: %s | Context: %s",
            request_id_var.get(""), exc.message, exc.context,
        )
        return error_response(500, exc.code, "An internal error occurred. Please try again later.")

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(request: Request, exc: StarletteHTTPException):
        return error_response(
            exc.status_code,
            HTTP_ERROR_CODES.get(exc.status_code, "http_error"),
            str(exc.detail),
            headers=exc.headers,
        )

    # Fallback for errors raised outside RequestIDMiddleware, which answers
    # unexpected errors from inside the app itself.
    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        logger.error(
            "[%s] Unexpected error: %s", request_id_var.get(""), str(exc), exc_info=True
        )
        return error_response(500, UNEXPECTED_ERROR_CODE, UNEXPECTED_ERROR_MESSAGE)


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app(database: Optional[AsyncIOMotorDatabase] = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        database: Database handle to serve from. Defaults to the configured
                  MongoDB database; the shared client is then closed on
                  shutdown.
    """
    app = FastAPI(
        title="Cordova CMS API",
        description="CRUD endpoints for CMS resources stored in MongoDB.",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    app.state.owns_client = database is None
    app.state.database = get_database() if database is None else database

    # ── Register Middleware ───────────────────────────────────────────────
    # Executes in reverse order of addition: RequestID → Logging → GZip → CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=[REQUEST_ID_HEADER, "X-Total-Count"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=500)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)

    # ── Register Exception Handlers ───────────────────────────────────────
    register_exception_handlers(app)

    # ── Register Routes ───────────────────────────────────────────────────
    app.include_router(health.router)

    resources = APIRouter()
    app.state.controllers = register_controllers(resources, app.state.database)
    app.include_router(resources)

    return app


app = create_app()
