"""
api/main.py -- FastAPI application entry point.

Run with:      uvicorn api.main:app --reload
               python main.py serve

Middleware stack (outermost to innermost):
  1. CORSMiddleware -- adds CORS headers for the configured SPA origins
  2. log_requests   -- one log line per request with latency

Lifespan builds the object graph once at startup -- store, token codec,
mailer, auth service -- from Settings and hangs it on app.state. Routes and
dependencies read app.state; nothing below api/ reads settings itself.
Shutdown drains queued emails and disposes of the DB pool.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from concurrent.futures import ThreadPoolExecutor
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from api.models import ErrorDetail, ErrorResponse, FieldError, HealthResponse
from api.routes.v1.auth import router as auth_router
from auth.errors import AuthError, BadRequest
from auth.models import AuthConfig
from auth.service import AuthService
from auth.store import UserStore
from auth.tokens import TokenCodec
from core.config import get_settings
from notify.email import build_email_sender
from notify.mailer import Mailer
from notify.render import EmailRenderer

__version__ = "0.1.0"

settings = get_settings()

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("starter.api")


# ---------------------------------------------------------------------------
# Lifespan -- modern startup / shutdown pattern (replaces @app.on_event)
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build the service graph on startup and tear it down on shutdown.

    Startup order: store first (everything else needs it), then the mailer,
    then the service that ties them together.
    """
    logger.info("API starting up (environment=%s)", settings.environment)
    app.state.user_store = UserStore(settings.database_url)

    app.state.mailer = Mailer(
        build_email_sender(settings),
        EmailRenderer(settings.app_name, settings.app_url),
        admin_email=settings.admin_email,
        environment=settings.environment,
        notify_admins=settings.is_deployed,
        executor=ThreadPoolExecutor(max_workers=4, thread_name_prefix="mailer"),
    )

    config = AuthConfig.from_settings(settings)
    app.state.auth_service = AuthService(app.state.user_store, TokenCodec(config), config, app.state.mailer)
    logger.info("Auth initialized (signing secret configured=%s)", bool(config.secret))

    yield

    app.state.mailer.shutdown()
    app.state.user_store.close()
    logger.info("API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title=f"{settings.app_name} API",
    description="Email/password authentication, roles, and password reset.",
    version=__version__,
    lifespan=lifespan,
    # Schema browsing only outside staging/production.
    docs_url=None if settings.is_deployed else "/docs",
    redoc_url=None,
)

# ---------------------------------------------------------------------------
# Middleware stack
# ---------------------------------------------------------------------------

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=3600,
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    ms = (time.perf_counter() - start) * 1000
    logger.info(
        "%s %s %d %.1fms %s",
        request.method,
        request.url.path,
        response.status_code,
        ms,
        request.client.host if request.client else "unknown",
    )
    return response


# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(auth_router, prefix="/trpc", tags=["Auth"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so API clients can parse
# errors uniformly without inspecting status codes to choose a schema.
# ---------------------------------------------------------------------------


@app.exception_handler(AuthError)
async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    """Render a typed service error with its stable code and HTTP status.

    exc.reason (internal cause) is logged by the service and never sent.
    """
    fields = [FieldError(**f) for f in exc.fields] if isinstance(exc, BadRequest) and exc.fields else None
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            error=ErrorDetail(code=exc.code, message=exc.message, fields=fields),
        ).model_dump(exclude_none=True),
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Turn request validation failures into a 400 bad_request.

    message is the first field error; fields lists every one of them.
    """
    fields = [_field_error(err) for err in exc.errors()]
    error = BadRequest(fields[0]["message"] if fields else None, fields=fields)
    return await auth_error_handler(request, error)


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Return a structured error for HTTP exceptions, including router 404 and 405.

    Registered for Starlette's HTTPException, which FastAPI's subclasses, so
    framework-raised errors get the same envelope as route-raised ones.
    """
    if isinstance(exc.detail, dict):
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.detail},
        )
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            error=ErrorDetail(
                code=f"http_{exc.status_code}",
                message=str(exc.detail),
            )
        ).model_dump(exclude_none=True),
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    The raw exception goes to the log only, never to the response body.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content=ErrorResponse(
            error=ErrorDetail(
                code="internal_error",
                message="An unexpected error occurred.",
            )
        ).model_dump(exclude_none=True),
    )


def _field_error(err: dict) -> dict:
    # Drop the "body"/"query" prefix from loc; keep nested paths dotted.
    loc = [str(p) for p in err.get("loc", ()) if p not in ("body", "query", "path", "header")]
    ctx_error = (err.get("ctx") or {}).get("error")
    message = str(ctx_error) if err.get("type") == "value_error" and ctx_error else err.get("msg", "Invalid value")
    return {"field": ".".join(loc) or "body", "message": message}


# ---------------------------------------------------------------------------
# Health endpoint
#
# Defined directly in main.py (not in a router) so it is always reachable
# regardless of router registration state.
# ---------------------------------------------------------------------------


@app.get("/health", tags=["Health"])
def health(request: Request) -> HealthResponse:
    """Return liveness, version, and database reachability."""
    db_ok = request.app.state.user_store.ping()
    return HealthResponse(
        version=__version__,
        components={"app": "ok", "database": "ok" if db_ok else "error"},
    )
