"""
api/main.py -- FastAPI application entry point for dogrun-auth.

Exposes login, revoke and signup over HTTP and puts every other route behind
bearer-token authentication.

Run with:  uvicorn asgi:app --reload

Middleware stack (outermost to innermost):
  1. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  2. CORSMiddleware        -- adds CORS headers for allowed browser origins
  3. log_requests          -- one access log line per request, with latency
  4. SlowAPIMiddleware     -- enforces per-route rate limits from api.limiter
  5. authenticate          -- validates the bearer token unless the path is public

Lifespan builds the engine, creates missing tables, wires the services into
app.state, and disposes of the engine's connection pool on shutdown.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from starlette.concurrency import run_in_threadpool
from starlette.exceptions import HTTPException as StarletteHTTPException

from accounts.provisioning import DogOwnerProvisioning, DogrunManagerProvisioning, OrganizationProvisioning
from accounts.store import AccountStore
from api.limiter import limiter
from api.models import ErrorResponse, HealthResponse
from api.routes.accounts import router as accounts_router
from api.routes.auth import router as auth_router
from auth.passwords import CredentialHasher
from auth.service import LoginService, RevokeService
from auth.store import CredentialStore, SessionStore
from auth.tokens import TokenIssuer, TokenValidator
from core.config import Settings, get_settings
from core.database import create_db_engine, init_schema
from core.errors import ClientError, ErrorKind, Service, ServiceError
from core.transaction import TransactionCoordinator

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("dogrun.api")

settings = get_settings()

# Exact paths reachable without a bearer token.
PUBLIC_PATHS: frozenset[str] = frozenset(
    {
        "/auth/dogowner/token",
        "/auth/dogrunmg/token",
        "/dogowner/signUp",
        "/org/contract",
        "/health",
    }
)

# ---------------------------------------------------------------------------
# Service wiring
# ---------------------------------------------------------------------------


def wire_services(app: FastAPI, engine: Engine, settings: Settings) -> None:
    """Build every store and service once and publish them on app.state.

    Route handlers read their service from request.app.state; nothing below
    the API layer reads settings or app state itself.
    """
    sessions = SessionStore(engine)
    credentials = CredentialStore(engine)
    accounts = AccountStore(engine)
    hasher = CredentialHasher(rounds=settings.bcrypt_rounds)
    issuer = TokenIssuer(settings.secret_key, settings.token_expire_hours)
    coordinator = TransactionCoordinator(engine)

    app.state.engine = engine
    app.state.token_validator = TokenValidator(settings.secret_key, sessions)
    app.state.login_service = LoginService(credentials, sessions, hasher, issuer)
    app.state.revoke_service = RevokeService(sessions)
    app.state.dog_owner_provisioning = DogOwnerProvisioning(accounts, credentials, coordinator, hasher, issuer)
    app.state.dogrun_manager_provisioning = DogrunManagerProvisioning(
        accounts, credentials, coordinator, hasher, issuer
    )
    app.state.organization_provisioning = OrganizationProvisioning(accounts, credentials, coordinator, hasher, issuer)


# ---------------------------------------------------------------------------
# Lifespan -- modern startup / shutdown pattern (replaces @app.on_event)
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage the engine and services across the full server lifetime.

    Everything before yield runs on startup; everything after yield runs on
    shutdown.
    """
    logger.info("dogrun-auth API starting up")
    engine = create_db_engine(settings.database_url)
    init_schema(engine)
    wire_services(app, engine, settings)
    logger.info("Database ready and services wired")

    yield

    engine.dispose()
    logger.info("dogrun-auth API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="dogrun-auth API",
    description="Authentication, session and account provisioning for the dog-run platform.",
    version="0.1.0",
    lifespan=lifespan,
)

# Attach the shared limiter to app.state so SlowAPIMiddleware can locate it.
# SlowAPI looks for app.state.limiter by convention.
app.state.limiter = limiter


def _error_response(exc: ServiceError) -> JSONResponse:
    trace = None
    if settings.debug and exc.__cause__ is not None:
        trace = repr(exc.__cause__)
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(code=exc.code, message=exc.message, trace=trace).model_dump(exclude_none=True),
    )


# ---------------------------------------------------------------------------
# Middleware stack
#
# Every add_middleware() / @app.middleware() call wraps everything registered
# before it, so registration runs innermost first: authenticate, SlowAPI,
# request logging, CORS, TrustedHost.
# ---------------------------------------------------------------------------


@app.middleware("http")
async def authenticate(request: Request, call_next):
    """Validate the bearer token and publish its claims on request.state.

    Public paths and CORS preflight requests pass through untouched. The
    validator does a blocking database read, so it runs in the thread pool.
    Rejections are answered here; the route handler never runs.
    """
    if request.method == "OPTIONS" or request.url.path in PUBLIC_PATHS:
        return await call_next(request)

    validator: TokenValidator = request.app.state.token_validator
    try:
        claims = await run_in_threadpool(validator.validate, request.headers.get("Authorization"))
    except ServiceError as exc:
        return _error_response(exc)
    request.state.claims = claims
    return await call_next(request)


app.add_middleware(SlowAPIMiddleware)


# ---------------------------------------------------------------------------
# Request logging middleware
#
# Pattern: Interceptor / Chain of Responsibility. Every request passes through
# this coroutine before reaching any route handler. We capture wall-clock time
# before and after call_next so we can report latency on every response,
# including those rejected by the authentication middleware.
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


app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=["GET", "POST"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=3600,
)

app.add_middleware(TrustedHostMiddleware, allowed_hosts=settings.allowed_hosts)

# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(auth_router, tags=["Auth"])
app.include_router(accounts_router, tags=["Accounts"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so API clients can parse
# errors uniformly without inspecting status codes to choose a schema.
# ---------------------------------------------------------------------------


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    """Translate a classified failure into its status code and wire code.

    Client errors are expected traffic and logged at INFO; server errors are
    logged at ERROR together with their cause.
    """
    if isinstance(exc, ClientError):
        logger.info("%s %s rejected: %r", request.method, request.url.path, exc)
    else:
        logger.error("%s %s failed: %r (cause: %r)", request.method, request.url.path, exc, exc.__cause__)
    return _error_response(exc)


@app.exception_handler(RateLimitExceeded)
def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 with a structured error when a rate limit is exceeded.

    Retry-After tells clients exactly how many seconds to wait before retrying.
    """
    retry_after = int(getattr(exc, "retry_after", 60))
    response = JSONResponse(
        status_code=429,
        content=ErrorResponse(
            code=f"{int(Service.AUTH)}-{int(ErrorKind.CLIENT)}",
            message="Too many requests.",
            trace=str(exc.detail) if settings.debug else None,
        ).model_dump(exclude_none=True),
    )
    response.headers["Retry-After"] = str(retry_after)
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 422 with structured error when the request body fails validation."""
    return JSONResponse(
        status_code=422,
        content=ErrorResponse(
            code=f"{int(Service.OTHER)}-{int(ErrorKind.CLIENT)}",
            message="Request validation failed.",
            trace=str(exc.errors()) if settings.debug else None,
        ).model_dump(exclude_none=True),
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Return a structured error for routing failures (404, 405) and other HTTP exceptions."""
    kind = ErrorKind.CLIENT if exc.status_code < 500 else ErrorKind.SERVER
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(code=f"{int(Service.OTHER)}-{int(kind)}", message=str(exc.detail)).model_dump(
            exclude_none=True
        ),
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    The raw exception is written to the log only, never to the response body.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content=ErrorResponse(
            code=f"{int(Service.OTHER)}-{int(ErrorKind.SERVER)}",
            message="An unexpected error occurred.",
        ).model_dump(exclude_none=True),
    )


# ---------------------------------------------------------------------------
# Health endpoint
#
# Defined directly in main.py (not in a router) so it is always reachable
# regardless of router registration state. No rate limit and no token --
# health checks from load balancers must not be throttled.
# ---------------------------------------------------------------------------


@app.get("/health", tags=["Health"])
def health(request: Request) -> JSONResponse:
    """Report liveness; 503 when the database cannot answer a trivial query."""
    engine: Engine = request.app.state.engine
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        logger.error("Health check database probe failed: %s", exc)
        return JSONResponse(status_code=503, content=HealthResponse(status="unavailable").model_dump())
    return JSONResponse(content=HealthResponse().model_dump())
