"""Fraud detection domain."""

from .config import RiskConfig, default_config
from .engine import RiskEngine, build_risk_engine
from .exceptions import (
    AlertAlreadyResolvedError,
    AlertNotFoundError,
    BlacklistEntryNotFoundError,
    EvaluationError,
    RiskEngineError,
)
from .models import (
    ActivityType,
    AlertType,
    EntityType,
    EvaluationRequest,
    EvaluationResult,
    FraudAlert,
    Location,
    Severity,
)
from .scorer import CompositeScorer

__all__ = [
    "ActivityType",
    "AlertAlreadyResolvedError",
    "AlertNotFoundError",
    "AlertType",
    "BlacklistEntryNotFoundError",
    "CompositeScorer",
    "EntityType",
    "EvaluationError",
    "EvaluationRequest",
    "EvaluationResult",
    "FraudAlert",
    "Location",
    "RiskConfig",
    "RiskEngine",
    "RiskEngineError",
    "Severity",
    "build_risk_engine",
    "default_config",
]
