"""
Health checks for the readiness probe.

Liveness (/health) never touches dependencies; readiness checks the
database and, when sessions live in Redis, Redis as well.
"""
from typing import Any

from sqlalchemy import text

from splitbill.core.config import settings
from splitbill.core.logging import get_logger
from splitbill.core.redis_client import get_redis
from splitbill.db.database import AsyncSessionLocal

logger = get_logger(__name__)

_STATUS_HEALTHY = "healthy"
_STATUS_DEGRADED = "degraded"

_CHECK_OK = "ok"
_CHECK_SKIPPED = "skipped"

# Error strings carry no infrastructure details
_ERROR_DB = "error: db_unavailable"
_ERROR_REDIS = "error: redis_unavailable"


async def _check_db() -> str:
    try:
        async with AsyncSessionLocal() as session:
            await session.execute(text("SELECT 1"))
        return _CHECK_OK
    except Exception as e:
        logger.warning("DB health check failed", extra_data={"error": str(e)})
        return _ERROR_DB


async def _check_redis() -> str:
    if settings.USSD_SESSION_BACKEND != "redis":
        return _CHECK_SKIPPED
    try:
        client = await get_redis()
        await client.ping()
        return _CHECK_OK
    except Exception as e:
        logger.warning("Redis health check failed", extra_data={"error": str(e)})
        return _ERROR_REDIS


async def check_readiness() -> dict[str, Any]:
    """
    Check every dependency.

    Returns {"status": "healthy" | "degraded", "db": ..., "redis": ...}
    where each check is "ok", "skipped" or "error: ...".
    """
    checks = {
        "db": await _check_db(),
        "redis": await _check_redis(),
    }

    all_ok = all(v in (_CHECK_OK, _CHECK_SKIPPED) for v in checks.values())
    overall_status = _STATUS_HEALTHY if all_ok else _STATUS_DEGRADED

    if not all_ok:
        logger.warning("Readiness check degraded", extra_data=checks)

    return {"status": overall_status, **checks}
