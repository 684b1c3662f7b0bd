"""New device and new user agent detection."""

from datetime import datetime

from ..config import RiskConfig
from ..models import DetectorResult, EvaluationRequest, SignalKind
from ..stores import ActivityLogStore
from .base import Detector


class DeviceAnomalyDetector(Detector):
    """Compares the request against devices seen in the user's recent history."""

    detector_id = "device_anomaly"

    def __init__(self, activity_log: ActivityLogStore, config: RiskConfig) -> None:
        self._activity_log = activity_log
        self._settings = config.device

    async def evaluate(self, request: EvaluationRequest, now: datetime) -> DetectorResult:
        if not request.device_fingerprint and not request.user_agent:
            return self._no_signal()

        history = await self._activity_log.recent(request.user_id, self._settings.history_limit)
        known_devices = {r.device_fingerprint for r in history if r.device_fingerprint}
        known_agents = {r.user_agent for r in history if r.user_agent}

        signals = []
        if request.device_fingerprint and request.device_fingerprint not in known_devices:
            signals.append(
                self._signal(
                    SignalKind.NEW_DEVICE,
                    "New device detected",
                    self._settings.new_device_score,
                )
            )
        if request.user_agent and request.user_agent not in known_agents:
            signals.append(
                self._signal(
                    SignalKind.NEW_USER_AGENT,
                    "New user agent detected",
                    self._settings.new_user_agent_score,
                )
            )

        return self._result(signals) if signals else self._no_signal()
