"""Shared FastAPI dependencies: the risk engine and the caller identity."""

from dataclasses import dataclass, replace

import structlog
from fastapi import Depends, Header, HTTPException

from src.config import settings
from src.domains.fraud.config import RiskConfig
from src.domains.fraud.engine import RiskEngine, build_risk_engine

logger = structlog.get_logger()

_engine: RiskEngine | None = None
_redis = None


@dataclass(frozen=True)
class Identity:
    """Caller identity as forwarded by the upstream auth gateway."""

    user_id: int
    role: str = "user"


def _service_risk_config() -> RiskConfig:
    config = RiskConfig.from_env()
    velocity = replace(config.velocity, backend=settings.velocity_backend)
    return replace(
        config,
        velocity=velocity,
        detector_failure_policy=settings.detector_failure_policy,
    )


def get_risk_engine() -> RiskEngine:
    """Return the process-wide engine, building it on first use."""
    global _engine, _redis
    if _engine is None:
        from src.db.database import async_session_factory

        if settings.velocity_backend == "redis":
            import redis.asyncio as aioredis

            _redis = aioredis.from_url(settings.redis_url)
        _engine = build_risk_engine(async_session_factory, _service_risk_config(), redis=_redis)
    return _engine


async def close_risk_engine() -> None:
    global _engine, _redis
    if _redis is not None:
        await _redis.aclose()
        logger.info("velocity_redis_closed")
    _engine = None
    _redis = None


async def get_identity(
    x_user_id: int | None = Header(default=None),
    x_user_role: str | None = Header(default=None),
) -> Identity | None:
    """Identity headers are set by the auth gateway; absent means anonymous."""
    if x_user_id is None:
        return None
    return Identity(user_id=x_user_id, role=x_user_role or "user")


async def require_admin(
    identity: Identity | None = Depends(get_identity),  # noqa: B008
) -> Identity:
    """Gate for blacklist and alert management routes."""
    if identity is None:
        raise HTTPException(status_code=401, detail="Authentication required")
    if identity.role.upper() != "ADMIN":
        raise PermissionError("Admin role required")
    return identity
