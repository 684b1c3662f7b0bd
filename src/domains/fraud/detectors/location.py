"""Impossible-travel detection from consecutive activity countries."""

from datetime import UTC, datetime

from ..config import RiskConfig
from ..models import DetectorResult, EvaluationRequest, SignalKind
from ..stores import ActivityLogStore
from .base import Detector


def _as_utc(value: datetime) -> datetime:
    # Some drivers hand back naive timestamps for timezone-aware columns
    return value if value.tzinfo else value.replace(tzinfo=UTC)


class LocationAnomalyDetector(Detector):
    """Flags a country change since the last located activity in under N hours."""

    detector_id = "location_anomaly"

    def __init__(self, activity_log: ActivityLogStore, config: RiskConfig) -> None:
        self._activity_log = activity_log
        self._settings = config.location

    async def evaluate(self, request: EvaluationRequest, now: datetime) -> DetectorResult:
        if request.location is None or not request.location.country:
            return self._no_signal()

        previous = await self._activity_log.latest_with_location(request.user_id)
        if previous is None or previous.location is None:
            return self._no_signal()

        previous_country = previous.location.country
        current_country = request.location.country
        if previous_country == current_country:
            return self._no_signal()

        hours = (_as_utc(now) - _as_utc(previous.timestamp)).total_seconds() / 3600
        if hours >= self._settings.impossible_travel_hours:
            return self._no_signal()

        return self._result(
            [
                self._signal(
                    SignalKind.IMPOSSIBLE_TRAVEL,
                    f"Impossible travel detected: {previous_country} to {current_country} "
                    f"in {hours:.1f} hours",
                    self._settings.score,
                )
            ]
        )
