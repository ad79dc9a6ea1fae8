"""
Split Bill - Main FastAPI Application
"""
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.responses import JSONResponse

from splitbill.core.config import settings
from splitbill.core.logging import setup_logging, get_logger
from splitbill.core.middleware import setup_middleware, setup_exception_handlers
from splitbill.api.routes import router as api_router
from splitbill.db.database import engine, init_db
from splitbill.state_machine.session_store import InMemorySessionStore, get_session_store

# Setup logging before anything else
setup_logging(
    level="DEBUG" if settings.DEBUG else "INFO",
    json_format=not settings.DEBUG,
    app_name=settings.APP_NAME
)

logger = get_logger(__name__)


def _parse_allowed_origins(raw: str) -> list[str]:
    """Parse comma-separated CORS origins string into a clean list."""
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


_OPENAPI_TAGS = [
    {"name": "USSD", "description": "Gateway callback for the bill-splitting dialogue, plus session diagnostics."},
    {"name": "Bills", "description": "Create bills and look them up by id, creator or member."},
    {"name": "Payments", "description": "Mock payment endpoint that marks a member as paid."},
    {"name": "SMS", "description": "Direct single and bulk SMS sends through the configured provider."},
]


app = FastAPI(
    title=settings.APP_NAME,
    version="1.0.0",
    description=(
        "Split a bill between friends from a feature phone. "
        "A USSD dialogue collects the amount and the members, "
        "then every member is told their share by SMS."
    ),
    openapi_tags=_OPENAPI_TAGS,
    openapi_url="/openapi.json",
)

# Setup middleware (correlation ID, request logging)
setup_middleware(app)
setup_exception_handlers(app)

allowed_origins = _parse_allowed_origins(settings.ALLOWED_ORIGINS)

if not allowed_origins and settings.DEBUG:
    allowed_origins = [
        "http://localhost",
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]

if allowed_origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "X-Correlation-ID"],
    )

app.include_router(api_router, prefix="/api")


@app.on_event("startup")
async def startup() -> None:
    """Initialize database tables and the session sweeper"""
    logger.info(
        "Starting application",
        extra_data={
            "app_name": settings.APP_NAME,
            "session_backend": settings.USSD_SESSION_BACKEND,
            "sms_provider": settings.SMS_PROVIDER,
        }
    )
    await init_db()
    logger.info("Database tables initialized")

    store = get_session_store()
    if isinstance(store, InMemorySessionStore):
        store.start_sweeper(settings.USSD_SESSION_SWEEP_INTERVAL_SECONDS)


@app.on_event("shutdown")
async def shutdown() -> None:
    """Cleanup on shutdown"""
    logger.info("Shutting down application")
    store = get_session_store()
    if isinstance(store, InMemorySessionStore):
        await store.stop_sweeper()

    from splitbill.core.redis_client import close_redis
    await close_redis()
    await engine.dispose()
    logger.info("Database connections disposed")


@app.get(
    "/health",
    summary="Liveness probe",
    description="Cheap check that the process is up. Does not touch the database or Redis.",
    tags=["Health"],
)
async def health_check() -> dict[str, str]:
    return {"status": "healthy"}


@app.get(
    "/health/ready",
    summary="Readiness probe",
    description=(
        "Checks the database and, with the Redis session backend, Redis. "
        "Returns 503 with status=degraded when a dependency is down."
    ),
    responses={
        200: {
            "description": "All dependencies are reachable",
            "content": {
                "application/json": {
                    "example": {"status": "healthy", "db": "ok", "redis": "skipped"}
                }
            },
        },
        503: {
            "description": "At least one dependency is unavailable",
            "content": {
                "application/json": {
                    "example": {"status": "degraded", "db": "error: db_unavailable", "redis": "ok"}
                }
            },
        },
    },
    tags=["Health"],
)
async def readiness_check() -> JSONResponse:
    from splitbill.domain.services.health_service import check_readiness

    result = await check_readiness()
    status_code = 200 if result["status"] == "healthy" else 503
    return JSONResponse(content=result, status_code=status_code)
