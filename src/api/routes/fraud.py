"""Risk evaluation, blacklist and fraud alert endpoints."""

from fastapi import APIRouter, Depends, Query

from src.api.dependencies import Identity, get_risk_engine, require_admin
from src.domains.fraud.engine import RiskEngine
from src.domains.fraud.models import (
    AlertType,
    BlacklistRequest,
    EntityType,
    EvaluationRequest,
    PaymentMismatchRequest,
    ResolveAlertRequest,
    Severity,
)

router = APIRouter(prefix="/api/v1/fraud", tags=["fraud"])


@router.post("/evaluate")
async def evaluate_activity(
    request: EvaluationRequest,
    engine: RiskEngine = Depends(get_risk_engine),  # noqa: B008
) -> dict:
    result = await engine.evaluate(request)
    return {
        "is_risky": result.is_risky,
        "risk_score": result.risk_score,
        "risk_level": result.risk_level.value,
        "should_block": result.should_block,
        "alerts": result.alerts,
    }


@router.post("/payment-mismatch")
async def report_payment_mismatch(
    request: PaymentMismatchRequest,
    engine: RiskEngine = Depends(get_risk_engine),  # noqa: B008
) -> dict:
    alert = await engine.check_payment_mismatch(
        user_id=request.user_id,
        expected_amount=request.expected_amount,
        actual_amount=request.actual_amount,
        payment_method=request.payment_method,
        metadata=request.metadata,
    )
    return {
        "mismatch": alert is not None,
        "alert": alert.model_dump(mode="json") if alert else None,
    }


@router.post("/blacklist", status_code=201)
async def add_to_blacklist(
    request: BlacklistRequest,
    engine: RiskEngine = Depends(get_risk_engine),  # noqa: B008
    identity: Identity = Depends(require_admin),  # noqa: B008
) -> dict:
    entry = await engine.add_to_blacklist(
        entity_type=request.entity_type,
        entity_value=request.entity_value,
        reason=request.reason,
        added_by=identity.user_id,
        expires_at=request.expires_at,
    )
    return entry.model_dump(mode="json")


@router.get("/blacklist", dependencies=[Depends(require_admin)])
async def list_blacklist(
    engine: RiskEngine = Depends(get_risk_engine),  # noqa: B008
    entity_type: EntityType | None = None,
    active_only: bool = True,
    limit: int = Query(default=50, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
) -> dict:
    entries = await engine.list_blacklist(
        entity_type=entity_type, active_only=active_only, limit=limit, offset=offset
    )
    return {
        "items": [e.model_dump(mode="json") for e in entries],
        "limit": limit,
        "offset": offset,
    }


@router.post("/blacklist/{entry_id}/deactivate", dependencies=[Depends(require_admin)])
async def deactivate_blacklist_entry(
    entry_id: int,
    engine: RiskEngine = Depends(get_risk_engine),  # noqa: B008
) -> dict:
    entry = await engine.deactivate_blacklist_entry(entry_id)
    return entry.model_dump(mode="json")


@router.get("/alerts", dependencies=[Depends(require_admin)])
async def list_alerts(
    engine: RiskEngine = Depends(get_risk_engine),  # noqa: B008
    severity: Severity | None = None,
    alert_type: AlertType | None = None,
    resolved: bool | None = None,
    user_id: int | None = None,
    limit: int = Query(default=50, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
) -> dict:
    alerts, total = await engine.list_alerts(
        severity=severity,
        alert_type=alert_type,
        resolved=resolved,
        user_id=user_id,
        limit=limit,
        offset=offset,
    )
    return {
        "items": [a.model_dump(mode="json") for a in alerts],
        "total": total,
        "limit": limit,
        "offset": offset,
    }


@router.post("/alerts/{alert_id}/resolve")
async def resolve_alert(
    alert_id: str,
    request: ResolveAlertRequest,
    engine: RiskEngine = Depends(get_risk_engine),  # noqa: B008
    identity: Identity = Depends(require_admin),  # noqa: B008
) -> dict:
    alert = await engine.resolve_alert(alert_id, identity.user_id, request.resolution)
    return alert.model_dump(mode="json")


@router.get("/policy")
async def get_policy(
    engine: RiskEngine = Depends(get_risk_engine),  # noqa: B008
) -> dict:
    """Return the thresholds and velocity limits the engine is running with."""
    config = engine.config
    return {
        "thresholds": {
            "low": config.thresholds.low,
            "medium": config.thresholds.medium,
            "high": config.thresholds.high,
            "critical": config.thresholds.critical,
        },
        "velocity": {
            "backend": config.velocity.backend,
            "score": config.velocity.score,
            "limits": {
                activity_type.value: {
                    "max_count": limit.max_count,
                    "window_minutes": limit.window_minutes,
                }
                for activity_type, limit in config.velocity.limits.items()
            },
        },
        "detector_failure_policy": config.detector_failure_policy,
    }
