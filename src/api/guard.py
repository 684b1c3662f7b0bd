"""Route guard that evaluates risk before a sensitive endpoint runs.

Usage::

    @router.post("/withdrawals")
    async def withdraw(check=Depends(fraud_guard(ActivityType.WITHDRAWAL))): ...
"""

import structlog
from fastapi import Depends, HTTPException, Request, Response
from pydantic import ValidationError

from src.api.dependencies import Identity, get_identity, get_risk_engine
from src.config import settings
from src.domains.fraud.engine import RiskEngine
from src.domains.fraud.exceptions import EvaluationError
from src.domains.fraud.models import ActivityType, EvaluationRequest, EvaluationResult, Location

logger = structlog.get_logger()

BLOCK_RESPONSE = {
    "error": "Activity blocked due to security concerns",
    "code": "FRAUD_DETECTION_BLOCK",
}
UNAVAILABLE_RESPONSE = {
    "error": "Security check unavailable, please retry later",
    "code": "FRAUD_DETECTION_UNAVAILABLE",
}


def _parse_location(raw: str | None) -> Location | None:
    if not raw:
        return None
    try:
        return Location.model_validate_json(raw)
    except ValidationError:
        logger.debug("invalid_location_header_ignored")
        return None


def build_evaluation_request(
    request: Request, identity: Identity, activity_type: ActivityType
) -> EvaluationRequest:
    headers = request.headers
    return EvaluationRequest(
        user_id=identity.user_id,
        activity_type=activity_type,
        ip_address=request.client.host if request.client else None,
        user_agent=headers.get("user-agent"),
        device_fingerprint=headers.get("x-device-fingerprint"),
        session_id=headers.get("x-session-id"),
        location=_parse_location(headers.get("x-user-location")),
        metadata={
            "endpoint": request.url.path,
            "method": request.method,
            "query": dict(request.query_params),
            "role": identity.role,
        },
    )


def fraud_guard(activity_type: ActivityType, fail_open: bool | None = None):
    """Build a dependency that blocks the route when the action scores as critical.

    ``fail_open`` decides what happens when the evaluation itself fails:
    proceed (True) or answer 503 (False). Defaults to
    ``settings.fraud_guard_fail_open``.
    """

    async def dependency(
        request: Request,
        response: Response,
        identity: Identity | None = Depends(get_identity),  # noqa: B008
        engine: RiskEngine = Depends(get_risk_engine),  # noqa: B008
    ) -> EvaluationResult | None:
        if identity is None:
            return None

        eval_request = build_evaluation_request(request, identity, activity_type)
        try:
            result = await engine.evaluate(eval_request)
        except EvaluationError:
            proceed = settings.fraud_guard_fail_open if fail_open is None else fail_open
            logger.warning(
                "fraud_guard_evaluation_failed",
                user_id=identity.user_id,
                activity_type=activity_type.value,
                fail_open=proceed,
            )
            if proceed:
                return None
            raise HTTPException(status_code=503, detail=UNAVAILABLE_RESPONSE) from None

        if result.should_block:
            logger.warning(
                "activity_blocked",
                user_id=identity.user_id,
                activity_type=activity_type.value,
                risk_score=result.risk_score,
            )
            raise HTTPException(status_code=403, detail=BLOCK_RESPONSE)

        if result.is_risky:
            response.headers["X-Risk-Level"] = "HIGH"
            response.headers["X-Risk-Score"] = str(result.risk_score)

        request.state.fraud_check = result
        return result

    return dependency
