"""Risk engine policy: thresholds, velocity limits and detector weights.

Every section is a frozen dataclass so one ``RiskConfig`` can be shared by
concurrent evaluations; build variants with ``dataclasses.replace``.
"""

import os
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from types import MappingProxyType

from .models import ActivityType


@dataclass(frozen=True)
class RiskThresholds:
    low: int = 30
    medium: int = 60
    high: int = 80
    critical: int = 95
    max_score: int = 100


@dataclass(frozen=True)
class VelocityLimit:
    max_count: int
    window_minutes: int


def _default_velocity_limits() -> Mapping[ActivityType, VelocityLimit]:
    return MappingProxyType(
        {
            ActivityType.LOGIN: VelocityLimit(max_count=10, window_minutes=60),
            ActivityType.PAYMENT: VelocityLimit(max_count=5, window_minutes=30),
            ActivityType.ORDER_PLACE: VelocityLimit(max_count=20, window_minutes=60),
            ActivityType.WITHDRAWAL: VelocityLimit(max_count=3, window_minutes=120),
        }
    )


@dataclass(frozen=True)
class VelocitySettings:
    limits: Mapping[ActivityType, VelocityLimit] = field(default_factory=_default_velocity_limits)
    score: int = 30
    # "log" or "redis"
    backend: str = "log"
    redis_key_prefix: str = "risk:velocity"

    def limit_for(self, activity_type: ActivityType) -> VelocityLimit | None:
        return self.limits.get(activity_type)


@dataclass(frozen=True)
class BlacklistSettings:
    ip_score: int = 50
    device_score: int = 40


@dataclass(frozen=True)
class LocationSettings:
    impossible_travel_hours: float = 12.0
    score: int = 25


@dataclass(frozen=True)
class DeviceSettings:
    history_limit: int = 20
    new_device_score: int = 15
    new_user_agent_score: int = 10


@dataclass(frozen=True)
class BehaviorSettings:
    lookback_days: int = 7
    score_per_flag: int = 5


@dataclass(frozen=True)
class PaymentMismatchSettings:
    tolerance: float = 0.01
    risk_score: int = 75


@dataclass(frozen=True)
class RiskConfig:
    thresholds: RiskThresholds = field(default_factory=RiskThresholds)
    velocity: VelocitySettings = field(default_factory=VelocitySettings)
    blacklist: BlacklistSettings = field(default_factory=BlacklistSettings)
    location: LocationSettings = field(default_factory=LocationSettings)
    device: DeviceSettings = field(default_factory=DeviceSettings)
    behavior: BehaviorSettings = field(default_factory=BehaviorSettings)
    payment_mismatch: PaymentMismatchSettings = field(default_factory=PaymentMismatchSettings)
    # "propagate" or "isolate"
    detector_failure_policy: str = "propagate"

    def with_velocity_limit(
        self, activity_type: ActivityType, max_count: int, window_minutes: int
    ) -> "RiskConfig":
        """Return a copy with one velocity policy replaced."""
        limits = dict(self.velocity.limits)
        limits[activity_type] = VelocityLimit(max_count=max_count, window_minutes=window_minutes)
        velocity = replace(self.velocity, limits=MappingProxyType(limits))
        return replace(self, velocity=velocity)

    @classmethod
    def from_env(cls) -> "RiskConfig":
        """Load config with env var overrides. Env vars use FRAUD_ prefix."""
        config = cls()

        thresholds = config.thresholds
        if v := os.getenv("FRAUD_MEDIUM_THRESHOLD"):
            thresholds = replace(thresholds, medium=int(v))
        if v := os.getenv("FRAUD_HIGH_THRESHOLD"):
            thresholds = replace(thresholds, high=int(v))
        if v := os.getenv("FRAUD_CRITICAL_THRESHOLD"):
            thresholds = replace(thresholds, critical=int(v))
        config = replace(config, thresholds=thresholds)

        if v := os.getenv("FRAUD_LOGIN_COUNT_MAX"):
            login = config.velocity.limits[ActivityType.LOGIN]
            config = config.with_velocity_limit(ActivityType.LOGIN, int(v), login.window_minutes)
        if v := os.getenv("FRAUD_PAYMENT_COUNT_MAX"):
            payment = config.velocity.limits[ActivityType.PAYMENT]
            config = config.with_velocity_limit(
                ActivityType.PAYMENT, int(v), payment.window_minutes
            )

        if v := os.getenv("FRAUD_IMPOSSIBLE_TRAVEL_HOURS"):
            config = replace(
                config, location=replace(config.location, impossible_travel_hours=float(v))
            )

        return config


# Module-level default instance
default_config = RiskConfig()
