"""
Main FastAPI Application

Entry point for the workspace portal API.
Configures middleware, routes, error handlers, and startup/shutdown events.
"""
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
import time
from contextlib import asynccontextmanager

from portal import __version__
from portal.config import get_settings
from portal.database import engine, init_db
from portal.middleware.workspace import WorkspaceMiddleware
from portal.middleware.session import SessionMiddleware, RedisSessionStore
from portal.middleware.rate_limit import RateLimitMiddleware
from portal.services.redis import get_redis_client
from portal.utils.logging import setup_logging, get_logger
from portal.core.exceptions import ServerResponseError
from portal.core.i18n import t, negotiate_language

from portal.api.endpoints import authentication

settings = get_settings()

API_PREFIX = "/api/v1"

setup_logging(
    log_level=settings.LOG_LEVEL,
    json_format=(settings.ENVIRONMENT == "production")
)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"Starting application in {settings.ENVIRONMENT} mode")

    if settings.ENVIRONMENT == "development":
        logger.warning("Initializing database tables (dev mode)")
        init_db()

    logger.info("Application startup complete")

    yield

    logger.info("Shutting down application")
    engine.dispose()
    app.state.redis.close()
    logger.info("Application shutdown complete")


app = FastAPI(
    title="Workspace Portal",
    description="Multi-tenant workspace registration and authentication API",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

# Shared Redis client for sessions and rate limiting. Middleware reads
# these from app.state on every request.
app.state.redis = get_redis_client()
app.state.session_store = RedisSessionStore(app.state.redis)


# ============================================================================
# MIDDLEWARE CONFIGURATION
# ============================================================================

allowed_origins = [
    f"{settings.URL_SCHEME}://{settings.BASE_DOMAIN}",
]

# Session cookies need credentialed CORS, which rules out "*" as origin.
# Workspace subdomains are matched by regex instead.
app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_origin_regex=rf"{settings.URL_SCHEME}://[a-z0-9-]+\.{settings.BASE_DOMAIN.replace('.', '[.]')}",
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def add_process_time_header(request: Request, call_next):
    """Add X-Process-Time header to track request duration."""
    start_time = time.time()
    response = await call_next(request)
    process_time = time.time() - start_time
    response.headers["X-Process-Time"] = str(process_time)
    return response


# Added last = runs first: rate limit, then session, then workspace
app.add_middleware(WorkspaceMiddleware)
app.add_middleware(SessionMiddleware)
app.add_middleware(RateLimitMiddleware)


# ============================================================================
# EXCEPTION HANDLERS
# ============================================================================

@app.exception_handler(ServerResponseError)
async def server_response_error_handler(request: Request, exc: ServerResponseError):
    """Render caller-facing failures as {status, message, reason}."""
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict(),
        headers=exc.headers or {}
    )


INVALID_PROPERTIES_BY_PATH = {
    f"{API_PREFIX}{authentication.router.prefix}{path}": key
    for path, key in authentication.INVALID_PROPERTIES_MESSAGES.items()
}


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError):
    """
    Malformed request bodies are reported like any other validation
    failure: 403, the operation's *InvalidProperties message, and
    pydantic's messages keyed by the (camelCase) field name.
    """
    lng = negotiate_language(request.headers.get("Accept-Language"))
    reason = {}
    for error in exc.errors():
        location = [str(part) for part in error.get("loc", ()) if part not in ("body", "query", "header")]
        field = location[-1] if location else "request"
        reason.setdefault(field, []).append(error.get("msg", ""))

    message_key = INVALID_PROPERTIES_BY_PATH.get(
        request.url.path.rstrip("/"), "validation.requestInvalidProperties"
    )
    return JSONResponse(
        status_code=403,
        content={
            "status": 403,
            "message": t(message_key, lng),
            "reason": reason,
        }
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """
    Catch-all exception handler.

    Logs full details but only exposes them to the client in debug mode.
    """
    logger.error(
        f"Unhandled exception: {type(exc).__name__}: {str(exc)}",
        exc_info=True,
        extra={
            "workspace_url": getattr(request.state, "workspace_url", None)
        }
    )

    lng = negotiate_language(request.headers.get("Accept-Language"))
    content = {"status": 500, "message": t("validation.internalError", lng)}
    if settings.DEBUG:
        content["detail"] = str(exc)
        content["type"] = type(exc).__name__

    return JSONResponse(status_code=500, content=content)


# ============================================================================
# ROUTES
# ============================================================================

@app.get("/health", tags=["health"])
async def health_check():
    """Health check endpoint for load balancers."""
    return {
        "status": "healthy",
        "environment": settings.ENVIRONMENT,
        "version": __version__
    }


app.include_router(authentication.router, prefix=API_PREFIX)


if __name__ == "__main__":
    import uvicorn

    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Debug: {settings.DEBUG}")
    logger.info(f"Database: {settings.DATABASE_URL.split('@')[1] if '@' in settings.DATABASE_URL else 'configured'}")

    uvicorn.run(
        "portal.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower()
    )
