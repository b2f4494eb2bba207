"""
api/main.py -- FastAPI application entry point for OpsMind Auth.

Exposes the credential lifecycle (signup, OTP verification, login, sessions)
and the administrator surface over HTTP.

Run with:      uvicorn asgi:app --reload
               python main.py serve

Middleware stack (outermost to innermost):
  1. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  2. CORSMiddleware        -- adds CORS headers for allowed browser origins
  3. SlowAPIMiddleware     -- enforces per-route rate limits from api.limiter

Lifespan handles startup (store, seed data, services, OTP purge task) and
shutdown (cancel purge task, dispose engine) symmetrically.
"""

from __future__ import annotations

import asyncio
import logging
import time
import traceback
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from admin.seed import seed_all
from admin.service import AdminService
from admin.store import AdminStore
from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.admin import router as admin_router
from api.routes.auth import router as auth_router
from auth.challenges import OTPManager
from auth.errors import DomainError
from auth.guard import AccessGuard
from auth.service import AuthService
from auth.store import CredentialStore
from auth.tokens import TokenIssuer
from core.config import Settings, get_settings
from core.mailer import Mailer, build_mailer

VERSION = "1.0.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("opsmind.api")


# ---------------------------------------------------------------------------
# Service wiring
# ---------------------------------------------------------------------------


def configure_state(app: FastAPI, settings: Settings, credentials: CredentialStore, mailer: Mailer) -> None:
    """Build every service from its collaborators and attach them to app.state.

    Pattern: Composition root. This is the only place that knows how the
    pieces fit together; routes read finished services from app.state. Tests
    call it with an in-memory store and a recording mailer.
    """
    issuer = TokenIssuer(settings.secret_key, default_ttl_seconds=settings.token_expire_seconds)
    otp_manager = OTPManager(
        credentials,
        mailer,
        code_length=settings.otp_length,
        expiry_minutes=settings.otp_expiry_minutes,
    )
    admin_store = AdminStore(credentials.engine)

    app.state.settings = settings
    app.state.credentials = credentials
    app.state.admin_store = admin_store
    app.state.mailer = mailer
    app.state.token_issuer = issuer
    app.state.otp_manager = otp_manager
    app.state.auth_service = AuthService(
        credentials,
        otp_manager,
        issuer,
        allowed_domains=settings.allowed_email_domain_list,
        token_ttl_seconds=settings.token_expire_seconds,
    )
    app.state.guard = AccessGuard(credentials, issuer)
    app.state.admin_service = AdminService(credentials, admin_store)


# ---------------------------------------------------------------------------
# Background purge task
# ---------------------------------------------------------------------------


async def _purge_loop(app: FastAPI, interval_seconds: int) -> None:
    """Delete expired or used OTP challenges every interval_seconds.

    Runs as a background asyncio task started in lifespan startup. The sweep
    itself is blocking SQL, so it runs in a worker thread. CancelledError from
    task.cancel() during shutdown propagates out of asyncio.sleep and unwinds
    the coroutine cleanly. A failed sweep is logged and retried next interval.
    """
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            await asyncio.to_thread(app.state.otp_manager.purge)
        except SQLAlchemyError:
            logger.exception("OTP purge failed")


# ---------------------------------------------------------------------------
# Lifespan -- modern startup / shutdown pattern (replaces @app.on_event)
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application-level resources across the full server lifetime.

    Startup order matters:
      1. Store first -- creates tables and the role rows.
      2. Services second -- they all take the store.
      3. Seed third -- needs the admin store built by configure_state().
      4. Purge task last -- references app.state.otp_manager.
    """
    # Startup
    logger.info("OpsMind Auth starting up")
    settings = get_settings()
    credentials = CredentialStore(settings.database_url)
    configure_state(app, settings, credentials, build_mailer(settings))
    seed_all(credentials, app.state.admin_store, settings)
    app.state.purge_task = asyncio.create_task(_purge_loop(app, settings.otp_purge_interval_seconds))

    yield

    # Shutdown
    app.state.purge_task.cancel()
    app.state.credentials.close()
    logger.info("OpsMind Auth shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

_settings = get_settings()

app = FastAPI(
    title="OpsMind Auth API",
    description="OTP-verified signup and login, JWT sessions, and role-based access control.",
    version=VERSION,
    lifespan=lifespan,
    # Interactive docs only in development; the schema lists every admin route.
    docs_url="/docs" if _settings.debug else None,
    redoc_url="/redoc" if _settings.debug else None,
)

# ---------------------------------------------------------------------------
# Middleware stack
#
# Register in the order you want the request to encounter them:
# TrustedHost -> CORS -> SlowAPI.
# ---------------------------------------------------------------------------

app.add_middleware(
    TrustedHostMiddleware,
    allowed_hosts=_settings.allowed_host_list,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.cors_origin_list,
    allow_methods=["GET", "POST", "PATCH", "DELETE"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=3600,
)

app.add_middleware(SlowAPIMiddleware)

# Attach the shared limiter to app.state so SlowAPIMiddleware can locate it.
# SlowAPI looks for app.state.limiter by convention.
app.state.limiter = limiter


# ---------------------------------------------------------------------------
# Request logging middleware
#
# Pattern: Interceptor / Chain of Responsibility. Every request passes through
# this coroutine before reaching any route handler. Bodies are never logged --
# they carry passwords and OTP codes.
# ---------------------------------------------------------------------------


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

app.include_router(auth_router, tags=["Auth"])
app.include_router(admin_router, tags=["Admin"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so API clients can parse
# errors uniformly without inspecting status codes to choose a schema.
# ---------------------------------------------------------------------------


def _error(status_code: int, code: str, message: str, detail: str | None = None, errors=None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(
            error=ErrorDetail(code=code, message=message, detail=detail, errors=errors or [])
        ).model_dump(),
    )


@app.exception_handler(DomainError)
async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    """Expected failures raised by the services. Message and code are user-safe by construction."""
    return _error(exc.status_code, exc.code, exc.message, errors=exc.errors)


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 with a structured error when a rate limit is exceeded.

    Retry-After tells clients exactly how many seconds to wait before retrying.
    """
    retry_after = int(getattr(exc, "retry_after", 60))
    response = _error(429, "rate_limited", "Too many requests. Please try again later.", detail=str(exc))
    response.headers["Retry-After"] = str(retry_after)
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 400 validation_failed with one "field: problem" line per error."""
    errors = []
    for err in exc.errors():
        location = ".".join(str(part) for part in err.get("loc", ()) if part != "body")
        errors.append(f"{location}: {err.get('msg', 'invalid')}" if location else err.get("msg", "invalid"))
    return _error(400, "validation_failed", "Validation failed", errors=errors)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Structured errors for framework-raised HTTP exceptions (404 route, 405 method, ...)."""
    return _error(exc.status_code, f"http_{exc.status_code}", str(exc.detail))


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    Security note: the traceback goes to the log, and into the response only
    when DEBUG=true. Production clients receive a generic message.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    detail = None
    if get_settings().debug:
        detail = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    return _error(500, "internal_error", "An unexpected error occurred.", detail=detail)


# ---------------------------------------------------------------------------
# Health endpoint
#
# Defined directly in main.py (not in a router) so it is always reachable
# regardless of router registration state. No rate limit applied -- health
# checks from load balancers and monitoring systems must not be throttled.
# ---------------------------------------------------------------------------


@app.get("/health", response_model=HealthResponse, tags=["Health"])
def health(request: Request) -> JSONResponse:
    """Return liveness plus a database round-trip check."""
    credentials: CredentialStore = request.app.state.credentials
    try:
        database_ok = credentials.ping()
    except SQLAlchemyError:
        logger.exception("Health check: database unreachable")
        database_ok = False
    if database_ok:
        return JSONResponse(status_code=200, content=HealthResponse(version=VERSION).model_dump())
    return JSONResponse(
        status_code=503,
        content=HealthResponse(
            status="degraded", message="Auth service is running", database="unavailable", version=VERSION
        ).model_dump(),
    )
