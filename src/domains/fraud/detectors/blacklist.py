"""Blacklisted IP and device detection."""

from datetime import datetime

from ..config import RiskConfig
from ..models import DetectorResult, EntityType, EvaluationRequest, SignalKind
from ..stores import BlacklistStore
from .base import Detector


class BlacklistDetector(Detector):
    """Scores requests whose IP or device fingerprint is actively banned."""

    detector_id = "blacklist"

    def __init__(self, blacklist: BlacklistStore, config: RiskConfig) -> None:
        self._blacklist = blacklist
        self._settings = config.blacklist

    async def evaluate(self, request: EvaluationRequest, now: datetime) -> DetectorResult:
        signals = []

        if request.ip_address:
            entry = await self._blacklist.find_active(EntityType.IP, request.ip_address, now)
            if entry:
                signals.append(
                    self._signal(
                        SignalKind.BLACKLISTED_IP,
                        "IP address is blacklisted",
                        self._settings.ip_score,
                    )
                )

        if request.device_fingerprint:
            entry = await self._blacklist.find_active(
                EntityType.DEVICE, request.device_fingerprint, now
            )
            if entry:
                signals.append(
                    self._signal(
                        SignalKind.BLACKLISTED_DEVICE,
                        "Device is blacklisted",
                        self._settings.device_score,
                    )
                )

        return self._result(signals) if signals else self._no_signal()
