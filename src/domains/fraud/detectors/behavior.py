"""Behavioral history: recently flagged activity raises the score."""

from datetime import datetime, timedelta

from ..config import RiskConfig
from ..models import DetectorResult, EvaluationRequest, SignalKind
from ..stores import ActivityLogStore
from .base import Detector


class BehaviorHistoryDetector(Detector):
    detector_id = "behavior_history"

    def __init__(self, activity_log: ActivityLogStore, config: RiskConfig) -> None:
        self._activity_log = activity_log
        self._settings = config.behavior

    async def evaluate(self, request: EvaluationRequest, now: datetime) -> DetectorResult:
        since = now - timedelta(days=self._settings.lookback_days)
        flagged = await self._activity_log.count_flagged_since(request.user_id, since)
        if flagged == 0:
            return self._no_signal()

        # Uncapped here; the composite score is clamped later
        return self._result(
            [
                self._signal(
                    SignalKind.FLAGGED_HISTORY,
                    f"User has {flagged} flagged activities in the last "
                    f"{self._settings.lookback_days} days",
                    flagged * self._settings.score_per_flag,
                )
            ]
        )
