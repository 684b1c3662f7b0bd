"""Fraud alert pipeline: severity and type classification, persistence."""

from datetime import datetime

import structlog

from .config import PaymentMismatchSettings, RiskThresholds
from .models import (
    ActivityType,
    AlertType,
    EvaluationRequest,
    FraudAlert,
    ScoringContext,
    Severity,
    Signal,
    SignalKind,
)
from .stores import AlertStore

logger = structlog.get_logger()

# Checked in order; the first matching kind decides the alert type
_ALERT_TYPE_PRIORITY: list[tuple[frozenset[SignalKind], AlertType]] = [
    (frozenset({SignalKind.VELOCITY}), AlertType.VELOCITY_CHECK),
    (frozenset({SignalKind.IMPOSSIBLE_TRAVEL}), AlertType.IP_CHANGE),
    (frozenset({SignalKind.NEW_DEVICE}), AlertType.DEVICE_CHANGE),
]


def classify_severity(score: int, thresholds: RiskThresholds) -> Severity:
    """Map a composite score to alert severity.

    MEDIUM is the fallthrough for scores between the medium and high
    thresholds; it has no comparison of its own.
    """
    if score >= thresholds.critical:
        return Severity.CRITICAL
    if score >= thresholds.high:
        return Severity.HIGH
    if score < thresholds.medium:
        return Severity.LOW
    return Severity.MEDIUM


def classify_alert_type(activity_type: ActivityType, signals: list[Signal]) -> AlertType:
    kinds = {s.kind for s in signals}
    if activity_type == ActivityType.PAYMENT and SignalKind.PAYMENT_MISMATCH in kinds:
        return AlertType.PAYMENT_MISMATCH
    for matching, alert_type in _ALERT_TYPE_PRIORITY:
        if kinds & matching:
            return alert_type
    return AlertType.SUSPICIOUS_ACTIVITY


def build_alert_metadata(request: EvaluationRequest, risk_score: int) -> dict:
    metadata = {
        "activity_type": request.activity_type.value,
        "risk_score": risk_score,
        "ip_address": request.ip_address,
        "user_agent": request.user_agent,
        "location": request.location.model_dump() if request.location else None,
    }
    metadata.update(request.metadata)
    return metadata


async def create_alert(
    context: ScoringContext,
    request: EvaluationRequest,
    store: AlertStore,
    thresholds: RiskThresholds,
    now: datetime,
) -> FraudAlert | None:
    """Persist a fraud alert for a risky evaluation; no-op otherwise."""
    if not context.is_risky:
        return None

    signals = context.signals
    severity = classify_severity(context.risk_score, thresholds)
    alert_type = classify_alert_type(request.activity_type, signals)

    alert = await store.add(
        user_id=request.user_id,
        alert_type=alert_type,
        severity=severity,
        description="; ".join(s.message for s in signals),
        metadata=build_alert_metadata(request, context.risk_score),
        risk_score=context.risk_score,
        now=now,
        ip_address=request.ip_address,
        user_agent=request.user_agent,
    )

    logger.warning(
        "fraud_alert_created",
        alert_id=alert.id,
        user_id=request.user_id,
        alert_type=alert_type.value,
        severity=severity.value,
        risk_score=context.risk_score,
    )
    return alert


def _format_amount(value: float) -> str:
    # Whole amounts render without a trailing ".0"
    return str(int(value)) if float(value).is_integer() else str(value)


async def create_payment_mismatch_alert(
    user_id: int,
    expected_amount: float,
    actual_amount: float,
    payment_method: str,
    store: AlertStore,
    settings: PaymentMismatchSettings,
    now: datetime,
    metadata: dict | None = None,
) -> FraudAlert | None:
    """Record a PAYMENT_MISMATCH alert when the amounts differ beyond tolerance."""
    difference = abs(expected_amount - actual_amount)
    if difference <= settings.tolerance:
        return None

    alert_metadata = {
        "expected_amount": expected_amount,
        "actual_amount": actual_amount,
        "payment_method": payment_method,
        "difference": difference,
    }
    alert_metadata.update(metadata or {})

    alert = await store.add(
        user_id=user_id,
        alert_type=AlertType.PAYMENT_MISMATCH,
        severity=Severity.HIGH,
        description=(
            f"Payment amount mismatch: expected {_format_amount(expected_amount)}, "
            f"received {_format_amount(actual_amount)}"
        ),
        metadata=alert_metadata,
        risk_score=settings.risk_score,
        now=now,
    )

    logger.warning(
        "payment_mismatch_alert_created",
        alert_id=alert.id,
        user_id=user_id,
        payment_method=payment_method,
        difference=round(difference, 2),
    )
    return alert
