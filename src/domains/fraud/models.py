"""Pydantic models for the fraud domain."""

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, Field


class ActivityType(StrEnum):
    LOGIN = "LOGIN"
    PAYMENT = "PAYMENT"
    ORDER_PLACE = "ORDER_PLACE"
    PROFILE_UPDATE = "PROFILE_UPDATE"
    PASSWORD_CHANGE = "PASSWORD_CHANGE"
    WITHDRAWAL = "WITHDRAWAL"
    REFUND = "REFUND"


class AlertType(StrEnum):
    PAYMENT_MISMATCH = "PAYMENT_MISMATCH"
    SUSPICIOUS_ACTIVITY = "SUSPICIOUS_ACTIVITY"
    VELOCITY_CHECK = "VELOCITY_CHECK"
    IP_CHANGE = "IP_CHANGE"
    DEVICE_CHANGE = "DEVICE_CHANGE"
    UNUSUAL_TRANSACTION = "UNUSUAL_TRANSACTION"


class Severity(StrEnum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class EntityType(StrEnum):
    EMAIL = "EMAIL"
    PHONE = "PHONE"
    IP = "IP"
    DEVICE = "DEVICE"
    BANK_ACCOUNT = "BANK_ACCOUNT"


class RiskLevel(StrEnum):
    NONE = "none"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class SignalKind(StrEnum):
    BLACKLISTED_IP = "blacklisted_ip"
    BLACKLISTED_DEVICE = "blacklisted_device"
    VELOCITY = "velocity"
    IMPOSSIBLE_TRAVEL = "impossible_travel"
    NEW_DEVICE = "new_device"
    NEW_USER_AGENT = "new_user_agent"
    FLAGGED_HISTORY = "flagged_history"
    PAYMENT_MISMATCH = "payment_mismatch"


class Location(BaseModel):
    country: str | None = None
    city: str | None = None
    lat: float | None = None
    lng: float | None = None


class EvaluationRequest(BaseModel):
    user_id: int
    activity_type: ActivityType
    ip_address: str | None = None
    user_agent: str | None = None
    device_fingerprint: str | None = None
    location: Location | None = None
    session_id: str | None = None
    metadata: dict = Field(default_factory=dict)


class Signal(BaseModel):
    """One reason a detector raised the score."""

    kind: SignalKind
    message: str
    score: int = Field(ge=0)


class DetectorResult(BaseModel):
    detector: str
    score: int = 0
    signals: list[Signal] = []
    failed: bool = False

    @property
    def triggered(self) -> bool:
        return bool(self.signals)


class ScoringContext(BaseModel):
    """Composite score and policy decision for one evaluation."""

    risk_score: int = Field(ge=0, le=100)
    raw_score: int = Field(ge=0)
    risk_level: RiskLevel
    is_risky: bool
    should_block: bool
    detector_results: list[DetectorResult] = []

    @property
    def signals(self) -> list[Signal]:
        return [s for r in self.detector_results for s in r.signals]

    @property
    def alerts(self) -> list[str]:
        return [s.message for s in self.signals]


class EvaluationResult(BaseModel):
    is_risky: bool
    risk_score: int = Field(ge=0, le=100)
    alerts: list[str] = []
    should_block: bool
    risk_level: RiskLevel = RiskLevel.NONE
    signals: list[Signal] = []


class ActivityRecord(BaseModel):
    id: str
    user_id: int
    activity_type: str
    timestamp: datetime
    ip_address: str | None = None
    user_agent: str | None = None
    device_fingerprint: str | None = None
    location: Location | None = None
    session_id: str | None = None
    risk_score: int = Field(ge=0, le=100)
    flagged: bool = False
    metadata: dict = Field(default_factory=dict)

    @classmethod
    def from_row(cls, row) -> "ActivityRecord":
        return cls(
            id=row.id,
            user_id=row.user_id,
            activity_type=row.activity_type,
            timestamp=row.created_at,
            ip_address=row.ip_address,
            user_agent=row.user_agent,
            device_fingerprint=row.device_fingerprint,
            location=row.location,
            session_id=row.session_id,
            risk_score=row.risk_score,
            flagged=row.flagged,
            metadata=row.metadata_ or {},
        )


class FraudAlert(BaseModel):
    id: str
    user_id: int | None = None
    alert_type: AlertType
    severity: Severity
    description: str
    metadata: dict = Field(default_factory=dict)
    risk_score: int = Field(ge=0, le=100)
    resolved: bool = False
    resolved_by: int | None = None
    resolved_at: datetime | None = None
    resolution: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_row(cls, row) -> "FraudAlert":
        return cls(
            id=row.id,
            user_id=row.user_id,
            alert_type=row.alert_type,
            severity=row.severity,
            description=row.description,
            metadata=row.metadata_ or {},
            risk_score=row.risk_score,
            resolved=row.is_resolved,
            resolved_by=row.resolved_by,
            resolved_at=row.resolved_at,
            resolution=row.resolution,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )


class BlacklistEntry(BaseModel):
    id: int | None = None
    entity_type: EntityType
    entity_value: str
    reason: str
    added_by: int
    is_active: bool = True
    expires_at: datetime | None = None
    created_at: datetime | None = None

    @classmethod
    def from_row(cls, row) -> "BlacklistEntry":
        return cls(
            id=row.id,
            entity_type=row.entity_type,
            entity_value=row.entity_value,
            reason=row.reason,
            added_by=row.added_by,
            is_active=row.is_active,
            expires_at=row.expires_at,
            created_at=row.created_at,
        )


class BlacklistRequest(BaseModel):
    entity_type: EntityType
    entity_value: str = Field(min_length=1)
    reason: str = Field(min_length=1)
    expires_at: datetime | None = None


class PaymentMismatchRequest(BaseModel):
    user_id: int
    expected_amount: float
    actual_amount: float
    payment_method: str
    metadata: dict | None = None


class ResolveAlertRequest(BaseModel):
    resolution: str = Field(min_length=1)
