"""Health and readiness endpoints."""

import structlog
from fastapi import APIRouter
from fastapi.responses import JSONResponse

from src.config import settings

logger = structlog.get_logger()

router = APIRouter(tags=["health"])


@router.get("/health")
async def health() -> dict:
    from src.main import get_uptime

    return {
        "status": "healthy",
        "version": settings.app_version,
        "uptime_seconds": get_uptime(),
    }


async def _check_redis() -> bool:
    try:
        import redis.asyncio as aioredis

        r = aioredis.from_url(settings.redis_url)
        try:
            await r.ping()
        finally:
            await r.aclose()
        return True
    except Exception:
        logger.warning("redis_check_failed", exc_info=True)
        return False


@router.get("/ready")
async def ready() -> JSONResponse:
    from src.db.database import check_db

    db_ok = await check_db()

    # Redis only matters when it backs the velocity counters
    redis_required = settings.velocity_backend == "redis"
    redis_ok = await _check_redis() if redis_required else None

    all_ready = db_ok and (redis_ok is not False)
    return JSONResponse(
        status_code=200 if all_ready else 503,
        content={
            "status": "ready" if all_ready else "degraded",
            "database": db_ok,
            "redis": redis_ok,
        },
    )
