"""Unit tests for flagged-history scoring."""

from datetime import timedelta

import pytest

from src.domains.fraud.config import RiskConfig
from src.domains.fraud.detectors.behavior import BehaviorHistoryDetector
from src.domains.fraud.models import ActivityType, EvaluationRequest, SignalKind
from tests.conftest import NOW

CONFIG = RiskConfig()
REQUEST = EvaluationRequest(user_id=9, activity_type=ActivityType.PAYMENT)


class TestBehaviorHistoryDetector:
    @pytest.mark.asyncio
    async def test_clean_history(self, activity_log):
        activity_log.seed(9, "LOGIN", NOW - timedelta(days=1))
        result = await BehaviorHistoryDetector(activity_log, CONFIG).evaluate(REQUEST, NOW)
        assert result.score == 0

    @pytest.mark.asyncio
    async def test_scores_each_flagged_activity(self, activity_log):
        for days in (1, 2, 3):
            activity_log.seed(9, "LOGIN", NOW - timedelta(days=days), flagged=True)
        result = await BehaviorHistoryDetector(activity_log, CONFIG).evaluate(REQUEST, NOW)
        assert result.score == 15
        assert result.signals[0].kind == SignalKind.FLAGGED_HISTORY
        assert result.signals[0].message == "User has 3 flagged activities in the last 7 days"

    @pytest.mark.asyncio
    async def test_ignores_flags_outside_lookback(self, activity_log):
        activity_log.seed(9, "LOGIN", NOW - timedelta(days=8), flagged=True)
        result = await BehaviorHistoryDetector(activity_log, CONFIG).evaluate(REQUEST, NOW)
        assert result.score == 0

    @pytest.mark.asyncio
    async def test_contribution_is_uncapped(self, activity_log):
        for minutes in range(30):
            activity_log.seed(9, "LOGIN", NOW - timedelta(minutes=minutes + 1), flagged=True)
        result = await BehaviorHistoryDetector(activity_log, CONFIG).evaluate(REQUEST, NOW)
        assert result.score == 150
