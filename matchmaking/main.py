from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import APIRouter, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response

import matchmaking.models  # noqa: F401

from matchmaking.core.config import settings
from matchmaking.core.database import async_session_factory, engine
from matchmaking.core.errors import (
    MatchingError,
    global_exception_handler,
    http_exception_handler,
    matching_error_handler,
)
from matchmaking.core.sentry import init_sentry
from matchmaking.modules.matching.notifications import (
    CompositeEmitter,
    LogNotificationEmitter,
    NotificationBroker,
)
from matchmaking.modules.matching.router import router as matching_router
from matchmaking.modules.matching.service import build_matching_service

# ── Sentry: must be initialised BEFORE the FastAPI app is created ──────────────
init_sentry(settings.SENTRY_DSN, settings.SENTRY_ENVIRONMENT, settings.APP_VERSION)

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    logger.info("Starting matching API", env=settings.APP_ENV)
    broker = NotificationBroker()
    app.state.notification_broker = broker
    # Raises NotConfigured on bad scoring weights, which aborts startup.
    app.state.matching_service = build_matching_service(
        settings,
        async_session_factory,
        emitter=CompositeEmitter([LogNotificationEmitter(), broker]),
    )
    yield
    logger.info("Shutting down matching API")
    await engine.dispose()


_is_prod = settings.APP_ENV == "production"

app = FastAPI(
    title="Advisory Matching API",
    version=settings.APP_VERSION or "0.1.0",
    docs_url=None if _is_prod else "/docs",
    redoc_url=None if _is_prod else "/redoc",
    openapi_url=None if _is_prod else "/openapi.json",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.FRONTEND_URL],
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "Accept", "X-Request-ID"],
)

app.add_exception_handler(MatchingError, matching_error_handler)  # type: ignore[arg-type]
app.add_exception_handler(HTTPException, http_exception_handler)  # type: ignore[arg-type]
app.add_exception_handler(Exception, global_exception_handler)


@app.middleware("http")
async def add_version_header(request: Request, call_next) -> Response:
    response = await call_next(request)
    response.headers["X-API-Version"] = "v1"
    return response


@app.get("/health")
async def health_check() -> dict:
    """Probes the database behind the interest ledger."""
    from sqlalchemy import text

    try:
        async with async_session_factory() as db:
            await db.execute(text("SELECT 1"))
        database = {"status": "healthy"}
    except Exception as exc:  # noqa: BLE001
        database = {"status": "unhealthy", "error": str(exc)}

    overall = "healthy" if database["status"] == "healthy" else "degraded"
    return {"status": overall, "service": "advisory-matching", "checks": {"database": database}}


# ── /v1 versioned router ──────────────────────────────────────────────────────

api_v1 = APIRouter(prefix="/v1")
api_v1.include_router(matching_router)

app.include_router(api_v1)
