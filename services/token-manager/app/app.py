"""
Token Manager - Main FastAPI Application.

Admin API for Augment access-token records: session login, token CRUD,
bulk import and validation, session-cookie import, public pool sharing and
credit reporting.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import settings
from .database import init_db
from .dependencies import close_clients
from .exceptions import TokenManagerError
from .logging_config import get_logger, setup_logging
from .metrics import track_request_metrics
from .middleware import PrometheusMiddleware, RequestIDMiddleware
from .responses import error_response
from .routers import auth, credits, health, sessions, tokens

# Setup logging
setup_logging(
    log_level=settings.LOG_LEVEL,
    service_name="token-manager",
    use_json=settings.LOG_JSON,
)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan context manager.

    Handles startup and shutdown events for the application.
    """
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")
    logger.info(f"Storage backend: {settings.STORAGE_BACKEND}")
    logger.info(f"Debug mode: {settings.DEBUG}")

    if not settings.uses_redis_storage:
        init_db()
        logger.info("Database schema ready")

    yield

    logger.info(f"Shutting down {settings.APP_NAME}...")
    await close_clients()
    logger.info("Outbound connections closed")


# Initialize FastAPI app
app = FastAPI(
    title=settings.APP_NAME,
    description="Admin API for managing Augment access tokens",
    version=settings.APP_VERSION,
    docs_url="/api/docs" if settings.DEBUG else None,
    redoc_url="/api/redoc" if settings.DEBUG else None,
    lifespan=lifespan,
)

app.add_middleware(PrometheusMiddleware, track_func=track_request_metrics)
app.add_middleware(RequestIDMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.get_cors_origins(),
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "X-Request-ID"],
    max_age=86400,
)

app.include_router(health.router)
app.include_router(auth.router)
app.include_router(sessions.router)
app.include_router(tokens.router)
app.include_router(credits.router)


# Exception handlers


@app.exception_handler(TokenManagerError)
async def token_manager_error_handler(request: Request, exc: TokenManagerError):
    """Render service errors in the standard error envelope."""
    if exc.status_code >= 500:
        logger.error(
            f"{request.method} {request.url.path} failed: {exc.message}",
            extra={"extra_fields": exc.details} if exc.details else None,
        )
    else:
        logger.info(f"{request.method} {request.url.path} rejected: {exc.message}")
    return error_response(exc.message, exc.status_code)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Render framework HTTP errors (404, 405, 429) in the standard envelope."""
    message = exc.detail
    if exc.status_code == 404 and exc.detail == "Not Found":
        message = "Route not found"
    return error_response(str(message), exc.status_code, headers=getattr(exc, "headers", None))


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Report request validation failures as 400 with the offending fields."""
    details = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        details.append(f"{location}: {error.get('msg')}" if location else str(error.get("msg")))
    return error_response(f"Validation failed: {', '.join(details)}", 400)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle all unhandled exceptions."""
    logger.exception(f"Unhandled error on {request.method} {request.url.path}: {exc}")
    return error_response("Internal server error", 500)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("app.app:app", host=settings.HOST, port=settings.PORT, reload=settings.DEBUG)
