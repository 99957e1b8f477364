"""
api/main.py -- FastAPI application entry point for ReviewDesk.

Serves the admin API (projects, videos, comments, key dates, sales, users)
and the public share-link API used by client viewers.

Run with:      uvicorn asgi:app --reload

Middleware stack (outermost to innermost):
  1. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  2. CORSMiddleware        -- adds CORS headers for allowed browser origins
  3. SlowAPIMiddleware     -- enforces per-route rate limits from api.limiter

Lifespan opens the stores, the Redis cache and the mailer on startup and
closes them in reverse order on shutdown.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.openapi.docs import get_redoc_html, get_swagger_ui_html
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from sqlalchemy.exc import SQLAlchemyError

from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.auth import router as auth_router
from api.routes.v1.comments import router as comments_router
from api.routes.v1.content import router as content_router
from api.routes.v1.key_dates import router as key_dates_router
from api.routes.v1.projects import router as projects_router
from api.routes.v1.sales import router as sales_router
from api.routes.v1.sales import tracking_router as sales_tracking_router
from api.routes.v1.share import router as share_router
from api.routes.v1.videos import router as videos_router
from auth.dependencies import require_admin
from auth.models import User
from auth.store import UserStore
from cache.store import KeyedCache
from core.config import get_settings
from notify.mailer import Mailer
from review.store import ReviewStore
from sales.store import SalesStore

VERSION = "0.3.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("reviewdesk.api")

_settings = get_settings()


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Open shared resources on startup, close them on shutdown.

    The cache comes first: auth dependencies consult it for revoked tokens,
    so it must exist before any store serves a request.
    """
    logger.info("ReviewDesk API starting up")
    app.state.cache = KeyedCache.from_url(_settings.redis_url)
    if not app.state.cache.ping():
        logger.warning("Redis unreachable at startup -- share sessions and lockouts will fail until it returns")
    app.state.user_store = UserStore()
    app.state.review = ReviewStore()
    app.state.sales = SalesStore()
    app.state.mailer = Mailer(_settings)
    logger.info(
        "Stores initialized (users=%s, smtp_configured=%s)",
        app.state.user_store.has_users(),
        app.state.mailer.is_configured(),
    )

    yield

    app.state.sales.close()
    app.state.review.close()
    app.state.user_store.close()
    app.state.cache.close()
    logger.info("ReviewDesk API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="ReviewDesk API",
    description="Client video review and approval, with quotes, invoices and payments.",
    version=VERSION,
    lifespan=lifespan,
    # Built-in /docs and /redoc are replaced by admin-only routes below.
    docs_url=None,
    redoc_url=None,
)

# ---------------------------------------------------------------------------
# Middleware stack
#
# Register in the order the request should encounter them:
# TrustedHost -> CORS -> SlowAPI.
# ---------------------------------------------------------------------------

app.add_middleware(TrustedHostMiddleware, allowed_hosts=_settings.allowed_hosts)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=3600,
)

app.add_middleware(SlowAPIMiddleware)

# SlowAPI looks for app.state.limiter by convention.
app.state.limiter = limiter


# ---------------------------------------------------------------------------
# Request logging middleware
# ---------------------------------------------------------------------------


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    ms = (time.perf_counter() - start) * 1000
    # Content tokens are bearer credentials; keep them out of the access log.
    path = request.url.path
    if path.startswith("/api/v1/content/"):
        path = "/api/v1/content/<token>"
    logger.info(
        "%s %s %d %.1fms %s",
        request.method,
        path,
        response.status_code,
        ms,
        request.client.host if request.client else "unknown",
    )
    return response


# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(auth_router, prefix="/api/v1", tags=["Auth"])
app.include_router(projects_router, prefix="/api/v1", tags=["Projects"])
app.include_router(videos_router, prefix="/api/v1", tags=["Videos"])
app.include_router(comments_router, prefix="/api/v1", tags=["Comments"])
app.include_router(key_dates_router, prefix="/api/v1", tags=["Key Dates"])
app.include_router(share_router, prefix="/api/v1", tags=["Share"])
app.include_router(content_router, prefix="/api/v1", tags=["Content"])
app.include_router(sales_router, prefix="/api/v1", tags=["Sales"])
app.include_router(sales_tracking_router, prefix="/api/v1", tags=["Sales"])


# ---------------------------------------------------------------------------
# Admin-only API documentation
# ---------------------------------------------------------------------------


@app.get("/docs", include_in_schema=False)
async def docs(user: User = Depends(require_admin)):
    """Swagger UI -- requires an admin session."""
    return get_swagger_ui_html(openapi_url="/openapi.json", title="ReviewDesk API")


@app.get("/redoc", include_in_schema=False)
async def redoc(user: User = Depends(require_admin)):
    """ReDoc UI -- requires an admin session."""
    return get_redoc_html(openapi_url="/openapi.json", title="ReviewDesk API")


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same {"error": {...}} envelope.
# ---------------------------------------------------------------------------


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """429 with Retry-After when a slowapi route limit is exceeded."""
    retry_after = int(getattr(exc, "retry_after", 60))
    response = JSONResponse(
        status_code=429,
        content=ErrorResponse(
            error=ErrorDetail(
                code="rate_limited",
                message="Too many requests.",
                detail=str(exc),
            )
        ).model_dump(),
    )
    response.headers["Retry-After"] = str(retry_after)
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=422,
        content=ErrorResponse(
            error=ErrorDetail(
                code="validation_error",
                message="Request validation failed.",
                detail=str(exc.errors()),
            )
        ).model_dump(),
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Structured error for HTTPException.

    A dict detail is used as the error body as-is. Headers set on the
    exception (Retry-After on lockouts) are passed through.
    """
    if isinstance(exc.detail, dict):
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.detail},
            headers=exc.headers,
        )
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            error=ErrorDetail(
                code=f"http_{exc.status_code}",
                message=str(exc.detail),
            )
        ).model_dump(),
        headers=exc.headers,
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all for unexpected errors. The traceback goes to the log only."""
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content=ErrorResponse(
            error=ErrorDetail(
                code="internal_error",
                message="An unexpected error occurred.",
            )
        ).model_dump(),
    )


# ---------------------------------------------------------------------------
# Health endpoint
#
# Not rate limited: load balancers poll it.
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", include_in_schema=True, tags=["Health"])
def health(request: Request) -> JSONResponse:
    """Liveness plus a per-component check of the database and Redis."""
    components: dict[str, str] = {}
    try:
        request.app.state.review.ping()
        components["database"] = "ok"
    except SQLAlchemyError:
        logger.exception("Database health check failed")
        components["database"] = "error"
    components["cache"] = "ok" if request.app.state.cache.ping() else "error"
    components["email"] = "configured" if request.app.state.mailer.is_configured() else "disabled"

    healthy = components["database"] == "ok" and components["cache"] == "ok"
    body = HealthResponse(status="ok" if healthy else "degraded", version=VERSION, components=components)
    return JSONResponse(status_code=200 if healthy else 503, content=body.model_dump())
