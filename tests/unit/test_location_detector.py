"""Unit tests for impossible-travel detection."""

from datetime import timedelta

import pytest

from src.domains.fraud.config import RiskConfig
from src.domains.fraud.detectors.location import LocationAnomalyDetector
from src.domains.fraud.models import ActivityType, EvaluationRequest, Location, SignalKind
from tests.conftest import NOW
from tests.fakes import InMemoryActivityLog

CONFIG = RiskConfig()


def _make_request(country: str | None) -> EvaluationRequest:
    return EvaluationRequest(
        user_id=7,
        activity_type=ActivityType.LOGIN,
        location=Location(country=country) if country else None,
    )


@pytest.fixture
def detector(activity_log):
    return LocationAnomalyDetector(activity_log, CONFIG)


class TestLocationAnomalyDetector:
    @pytest.mark.asyncio
    async def test_no_location_on_request(self, detector, activity_log):
        activity_log.seed(7, "LOGIN", NOW - timedelta(hours=1), country="US")
        result = await detector.evaluate(_make_request(None), NOW)
        assert result.score == 0

    @pytest.mark.asyncio
    async def test_no_history(self, detector):
        result = await detector.evaluate(_make_request("US"), NOW)
        assert result.score == 0

    @pytest.mark.asyncio
    async def test_same_country(self, detector, activity_log):
        activity_log.seed(7, "LOGIN", NOW - timedelta(minutes=5), country="US")
        result = await detector.evaluate(_make_request("US"), NOW)
        assert not result.triggered

    @pytest.mark.asyncio
    async def test_country_change_within_window(self, detector, activity_log):
        activity_log.seed(7, "LOGIN", NOW - timedelta(hours=2), country="US")
        result = await detector.evaluate(_make_request("RU"), NOW)
        assert result.score == 25
        assert result.signals[0].kind == SignalKind.IMPOSSIBLE_TRAVEL
        assert result.signals[0].message == "Impossible travel detected: US to RU in 2.0 hours"

    @pytest.mark.asyncio
    async def test_country_change_after_window(self, detector, activity_log):
        activity_log.seed(7, "LOGIN", NOW - timedelta(hours=12), country="US")
        result = await detector.evaluate(_make_request("FR"), NOW)
        assert result.score == 0

    @pytest.mark.asyncio
    async def test_uses_most_recent_located_record(self, detector, activity_log):
        activity_log.seed(7, "LOGIN", NOW - timedelta(hours=20), country="FR")
        activity_log.seed(7, "LOGIN", NOW - timedelta(hours=3), country="US")
        activity_log.seed(7, "PAYMENT", NOW - timedelta(hours=1))
        result = await detector.evaluate(_make_request("FR"), NOW)
        assert "US to FR in 3.0 hours" in result.signals[0].message

    @pytest.mark.asyncio
    async def test_ignores_other_users(self, detector, activity_log):
        activity_log.seed(8, "LOGIN", NOW - timedelta(hours=1), country="US")
        result = await detector.evaluate(_make_request("RU"), NOW)
        assert result.score == 0

    @pytest.mark.asyncio
    async def test_naive_history_timestamp_treated_as_utc(self):
        activity_log = InMemoryActivityLog()
        record = activity_log.seed(7, "LOGIN", NOW - timedelta(hours=1), country="US")
        record.timestamp = record.timestamp.replace(tzinfo=None)
        detector = LocationAnomalyDetector(activity_log, CONFIG)
        result = await detector.evaluate(_make_request("DE"), NOW)
        assert "in 1.0 hours" in result.signals[0].message
