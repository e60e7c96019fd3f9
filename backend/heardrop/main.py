"""
HEARDROP Backend — FastAPI Application Factory
================================================

What:  Creates and configures the FastAPI application instance.
How:   create_app() registers middleware, exception handlers and routers and
       returns the app; the lifespan handles startup checks and shutdown.
Who:   uvicorn (`uvicorn heardrop.main:app`) and the test suite.

Application Architecture:
    ┌──────────────────────────────────────────────────────────┐
    │                       FastAPI App                         │
    │                                                           │
    │  Middleware Chain:                                        │
    │  ┌────────────┐ ┌──────────┐ ┌─────────┐ ┌─────┐ ┌──────┐ │
    │  │ Rate Limit │→│  Req ID  │→│ Logging │→│ GZip│→│ CORS │ │
    │  └────────────┘ └──────────┘ └─────────┘ └─────┘ └──────┘ │
    │                                                           │
    │  Routers:                                                 │
    │  auth · brands · shops · drops · spots · journeys · me    │
    │  admin · files · health                                   │
    │                                                           │
    │  Exception Handlers:                                      │
    │  400 validation · 401 auth · 403 permission · 404 · 409   │
    │  423 locked · 429 rate limit · 503 upstream · 500         │
    └──────────────────────────────────────────────────────────┘

Lifecycle:
    Startup:  logging → config check (warn only) → storage directory
    Shutdown: dispose the database engine
"""

import logging
import sys
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncGenerator, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from heardrop import __version__
from heardrop.config import settings
from heardrop.database import dispose_engine
from heardrop.exceptions import (
    AccountLockedError,
    AuthenticationError,
    CircuitBreakerOpenError,
    ConflictError,
    DatabaseError,
    FileStorageError,
    HeardropError,
    NotFoundError,
    PermissionDeniedError,
    RateLimitExceededError,
    UpstreamServiceError,
    ValidationError,
)
from heardrop.middleware.logging import RequestLoggingMiddleware
from heardrop.middleware.rate_limit import RateLimitMiddleware
from heardrop.middleware.request_id import RequestIDMiddleware, request_id_var
from heardrop.routes import admin, auth, brands, contact, drops, files, health, journeys, me, shops, spots

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Structured Logging Configuration
# ══════════════════════════════════════════════════════════════════════════

def setup_logging() -> None:
    """
    Configure logging for the entire application.

    Format: %(asctime)s [%(levelname)s] %(name)s: %(message)s
    Request IDs are added by the handlers and middleware that log per request.
    """
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )

    # Third-party libraries log every operation at DEBUG/INFO
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Application Lifespan (Startup & Shutdown)
# ══════════════════════════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Startup: logging, provider configuration check, storage directory.
    Shutdown: close pooled database connections.

    Missing provider keys only disable the features that need them (maps,
    artwork), so they are logged as warnings and the server still starts.
    """
    # ── Startup ───────────────────────────────────────────────────────────
    setup_logging()
    logger.info("=" * 60)
    logger.info("HEARDROP Backend starting up (v%s)...", __version__)

    try:
        settings.validate_required_for_production()
    except ValueError as e:
        logger.warning("%s", str(e))

    storage = Path(settings.storage_root)
    storage.mkdir(parents=True, exist_ok=True)
    logger.info("Storage directory: %s", storage.resolve())

    logger.info("Server ready at http://%s:%d", settings.backend_host, settings.backend_port)
    logger.info("API docs: http://%s:%d/docs", settings.backend_host, settings.backend_port)
    logger.info("=" * 60)

    yield

    # ── Shutdown ──────────────────────────────────────────────────────────
    logger.info("HEARDROP Backend shutting down...")
    await dispose_engine()
    logger.info("Shutdown complete.")


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

def _error_body(error: str, message: str, details: Optional[Dict] = None) -> Dict:
    body = {"error": error, "message": message, "request_id": request_id_var.get("")}
    if details:
        body["details"] = details
    return body


def register_exception_handlers(app: FastAPI) -> None:
    """
    Map the HeardropError hierarchy onto HTTP responses.

    Handler hierarchy:
        ValidationError         → 400 Bad Request
        AuthenticationError     → 401 Unauthorized
        PermissionDeniedError   → 403 Forbidden
        NotFoundError           → 404 Not Found
        ConflictError           → 409 Conflict
        AccountLockedError      → 423 Locked (+ Retry-After)
        RateLimitExceededError  → 429 Too Many Requests (+ Retry-After)
        UpstreamServiceError    → 503 Service Unavailable
        CircuitBreakerOpenError → 503 Service Unavailable (+ Retry-After)
        FileStorageError        → 500
        DatabaseError           → 500 (generic message)
        HeardropError (base)    → 500
        Exception (fallback)    → 500

    Every body has the same shape: {error, message, details?, request_id}.
    Stack traces, SQL and file paths are logged server-side only.
    """

    @app.exception_handler(ValidationError)
    async def handle_validation_error(request: Request, exc: ValidationError):
        logger.warning("[%s] Validation error: %s", request_id_var.get(""), exc.message)
        return JSONResponse(
            status_code=400,
            content=_error_body("validation_error", exc.message, exc.context),
        )

    @app.exception_handler(AuthenticationError)
    async def handle_authentication_error(request: Request, exc: AuthenticationError):
        return JSONResponse(
            status_code=401,
            content=_error_body("authentication_required", exc.message),
            headers={"WWW-Authenticate": "Bearer"},
        )

    @app.exception_handler(PermissionDeniedError)
    async def handle_permission_denied(request: Request, exc: PermissionDeniedError):
        logger.warning(
            "[%s] Permission denied: %s %s", request_id_var.get(""), request.method, request.url.path
        )
        return JSONResponse(
            status_code=403,
            content=_error_body("permission_denied", exc.message),
        )

    @app.exception_handler(NotFoundError)
    async def handle_not_found(request: Request, exc: NotFoundError):
        return JSONResponse(
            status_code=404,
            content=_error_body("not_found", exc.message),
        )

    @app.exception_handler(ConflictError)
    async def handle_conflict(request: Request, exc: ConflictError):
        return JSONResponse(
            status_code=409,
            content=_error_body("conflict", exc.message, exc.context),
        )

    @app.exception_handler(AccountLockedError)
    async def handle_account_locked(request: Request, exc: AccountLockedError):
        logger.warning("[%s] Login refused (%s locked)", request_id_var.get(""), exc.scope)
        return JSONResponse(
            status_code=423,
            content=_error_body("account_locked", exc.message, exc.context),
            headers={"Retry-After": str(exc.retry_after)},
        )

    @app.exception_handler(RateLimitExceededError)
    async def handle_rate_limit(request: Request, exc: RateLimitExceededError):
        return JSONResponse(
            status_code=429,
            content=_error_body("rate_limit_exceeded", exc.message, exc.context),
            headers={"Retry-After": str(exc.retry_after)},
        )

    @app.exception_handler(CircuitBreakerOpenError)
    async def handle_circuit_breaker(request: Request, exc: CircuitBreakerOpenError):
        logger.warning("[%s] Circuit breaker open: %s", request_id_var.get(""), exc.service)
        return JSONResponse(
            status_code=503,
            content=_error_body(
                "service_unavailable", exc.message, {"recovery_time": exc.recovery_time}
            ),
            headers={"Retry-After": str(exc.recovery_time)},
        )

    @app.exception_handler(UpstreamServiceError)
    async def handle_upstream_error(request: Request, exc: UpstreamServiceError):
        logger.error("[%s] Upstream service error: %s", request_id_var.get(""), exc.message)
        headers = {}
        if exc.retry_after:
            headers["Retry-After"] = str(exc.retry_after)
        return JSONResponse(
            status_code=503,
            content=_error_body("upstream_service_error", exc.message, exc.context),
            headers=headers,
        )

    @app.exception_handler(DatabaseError)
    async def handle_database_error(request: Request, exc: DatabaseError):
        rid = request_id_var.get("")
        logger.error("[%s] Database error: %s | Context: %s", rid, exc.message, exc.context)
        return JSONResponse(
            status_code=500,
            content=_error_body(
                "server_error", "An internal error occurred. Please try again later."
            ),
        )

    @app.exception_handler(FileStorageError)
    async def handle_file_storage_error(request: Request, exc: FileStorageError):
        rid = request_id_var.get("")
        logger.error("[%s] File storage error: %s | Context: %s", rid, exc.message, exc.context)
        return JSONResponse(
            status_code=500,
            content=_error_body("server_error", exc.message),
        )

    @app.exception_handler(HeardropError)
    async def handle_heardrop_error(request: Request, exc: HeardropError):
        rid = request_id_var.get("")
        logger.error("[%s] Unhandled application error: %s", rid, exc.message)
        return JSONResponse(
            status_code=500,
            content=_error_body("server_error", exc.message),
        )

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        """Catch-all: generic 500 with the request ID; the trace is logged only."""
        rid = request_id_var.get("")
        logger.error("[%s] Unexpected error: %s", rid, str(exc), exc_info=True)
        return JSONResponse(
            status_code=500,
            content=_error_body(
                "internal_server_error",
                "An unexpected error occurred. Please try again or contact support.",
            ),
        )


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Tests build their own instance through this factory and override the
    database session dependency.
    """
    app = FastAPI(
        title="HEARDROP API",
        description=(
            "Streetwear discovery backend: brand directory, shop locator with map "
            "clustering, drops calendar with reminders, Street Spotted feed, "
            "walking journeys and the admin back-office."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # ── Register Middleware ───────────────────────────────────────────────
    # Executes in reverse order of addition: RateLimit runs first, CORS last.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "X-Total-Count", "Retry-After"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=500)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(RateLimitMiddleware)

    # ── Register Exception Handlers ───────────────────────────────────────
    register_exception_handlers(app)

    # ── Register Routes ───────────────────────────────────────────────────
    app.include_router(health.router)
    app.include_router(auth.router)
    app.include_router(brands.router)
    app.include_router(shops.router)
    app.include_router(drops.router)
    app.include_router(spots.router)
    app.include_router(journeys.router)
    app.include_router(me.router)
    app.include_router(contact.router)
    app.include_router(admin.router)
    app.include_router(files.router)

    return app


# uvicorn imports `heardrop.main:app`
app = create_app()
