"""Risk signal detectors.

``build_detectors`` wires the five detectors against the stores in
evaluation order; individual classes are exported for direct use.
"""

from ..config import RiskConfig
from ..stores import ActivityLogStore, BlacklistStore
from .base import Detector
from .behavior import BehaviorHistoryDetector
from .blacklist import BlacklistDetector
from .device import DeviceAnomalyDetector
from .location import LocationAnomalyDetector
from .velocity import LogScanCounter, RedisWindowCounter, VelocityCounter, VelocityDetector


def build_detectors(
    activity_log: ActivityLogStore,
    blacklist: BlacklistStore,
    config: RiskConfig,
    velocity_counter: VelocityCounter | None = None,
) -> list[Detector]:
    counter = velocity_counter or LogScanCounter(activity_log)
    return [
        BlacklistDetector(blacklist, config),
        VelocityDetector(counter, config),
        LocationAnomalyDetector(activity_log, config),
        DeviceAnomalyDetector(activity_log, config),
        BehaviorHistoryDetector(activity_log, config),
    ]


__all__ = [
    "BehaviorHistoryDetector",
    "BlacklistDetector",
    "Detector",
    "DeviceAnomalyDetector",
    "LocationAnomalyDetector",
    "LogScanCounter",
    "RedisWindowCounter",
    "VelocityCounter",
    "VelocityDetector",
    "build_detectors",
]
