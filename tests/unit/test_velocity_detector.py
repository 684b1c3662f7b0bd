"""Unit tests for velocity limiting and its counting backends."""

from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.domains.fraud.config import RiskConfig, VelocityLimit
from src.domains.fraud.detectors.velocity import (
    LogScanCounter,
    RedisWindowCounter,
    VelocityDetector,
)
from src.domains.fraud.models import ActivityType, EvaluationRequest, SignalKind

CONFIG = RiskConfig()
NOW = datetime(2026, 1, 15, 14, 0, 0, tzinfo=UTC)


def _make_request(activity_type=ActivityType.LOGIN) -> EvaluationRequest:
    return EvaluationRequest(user_id=42, activity_type=activity_type)


def _counter(count: int):
    counter = MagicMock()
    counter.count_prior = AsyncMock(return_value=count)
    return counter


class TestVelocityDetector:
    @pytest.mark.asyncio
    async def test_below_limit(self):
        detector = VelocityDetector(_counter(9), CONFIG)
        result = await detector.evaluate(_make_request(), NOW)
        assert not result.triggered
        assert result.score == 0

    @pytest.mark.asyncio
    async def test_at_limit(self):
        detector = VelocityDetector(_counter(10), CONFIG)
        result = await detector.evaluate(_make_request(), NOW)
        assert result.score == 30
        assert result.signals[0].kind == SignalKind.VELOCITY
        assert result.signals[0].message == "High velocity: 10 LOGIN activities in 60 minutes"

    @pytest.mark.asyncio
    async def test_withdrawal_policy(self):
        detector = VelocityDetector(_counter(3), CONFIG)
        result = await detector.evaluate(_make_request(ActivityType.WITHDRAWAL), NOW)
        assert result.score == 30
        assert "3 WITHDRAWAL activities in 120 minutes" in result.signals[0].message

    @pytest.mark.asyncio
    async def test_payment_policy_below(self):
        detector = VelocityDetector(_counter(4), CONFIG)
        result = await detector.evaluate(_make_request(ActivityType.PAYMENT), NOW)
        assert result.score == 0

    @pytest.mark.asyncio
    async def test_unconfigured_type_contributes_nothing(self):
        counter = _counter(500)
        detector = VelocityDetector(counter, CONFIG)
        result = await detector.evaluate(_make_request(ActivityType.PROFILE_UPDATE), NOW)
        assert result.score == 0
        counter.count_prior.assert_not_called()

    @pytest.mark.asyncio
    async def test_uses_injected_policy(self):
        config = CONFIG.with_velocity_limit(ActivityType.LOGIN, max_count=2, window_minutes=5)
        detector = VelocityDetector(_counter(2), config)
        result = await detector.evaluate(_make_request(), NOW)
        assert result.score == 30
        assert "in 5 minutes" in result.signals[0].message


class TestLogScanCounter:
    @pytest.mark.asyncio
    async def test_counts_trailing_window(self):
        activity_log = MagicMock()
        activity_log.count_since = AsyncMock(return_value=4)
        counter = LogScanCounter(activity_log)

        count = await counter.count_prior(
            42, ActivityType.PAYMENT, VelocityLimit(max_count=5, window_minutes=30), NOW
        )

        assert count == 4
        activity_log.count_since.assert_awaited_once_with(
            42, "PAYMENT", NOW - timedelta(minutes=30)
        )


def _mock_redis(execute_result):
    pipe = MagicMock()
    pipe.execute = AsyncMock(return_value=execute_result)
    redis = MagicMock()
    redis.pipeline.return_value.__aenter__.return_value = pipe
    redis.pipeline.return_value.__aexit__.return_value = False
    return redis, pipe


class TestRedisWindowCounter:
    @pytest.mark.asyncio
    async def test_increments_current_bucket_and_sums_window(self):
        limit = VelocityLimit(max_count=5, window_minutes=3)
        redis, pipe = _mock_redis([2, True, [b"4", None, b"2"]])
        counter = RedisWindowCounter(redis, key_prefix="test")

        count = await counter.count_prior(42, ActivityType.LOGIN, limit, NOW)

        # 6 in the window including this request
        assert count == 5
        redis.pipeline.assert_called_once_with(transaction=True)

        bucket = int(NOW.timestamp()) // 60
        current_key = f"test:42:LOGIN:{bucket}"
        pipe.incr.assert_called_once_with(current_key)
        pipe.expire.assert_called_once_with(current_key, 4 * 60)
        pipe.mget.assert_called_once_with(
            [f"test:42:LOGIN:{bucket - 2}", f"test:42:LOGIN:{bucket - 1}", current_key]
        )

    @pytest.mark.asyncio
    async def test_first_request_counts_zero(self):
        limit = VelocityLimit(max_count=5, window_minutes=2)
        redis, _ = _mock_redis([1, True, [None, b"1"]])
        counter = RedisWindowCounter(redis)
        assert await counter.count_prior(42, ActivityType.LOGIN, limit, NOW) == 0

    @pytest.mark.asyncio
    async def test_feeds_velocity_detector(self):
        limit = VelocityLimit(max_count=3, window_minutes=2)
        config = CONFIG.with_velocity_limit(
            ActivityType.WITHDRAWAL, limit.max_count, limit.window_minutes
        )
        redis, _ = _mock_redis([1, True, [b"3", b"1"]])
        detector = VelocityDetector(RedisWindowCounter(redis), config)

        result = await detector.evaluate(_make_request(ActivityType.WITHDRAWAL), NOW)

        assert result.score == 30
        assert "3 WITHDRAWAL activities in 2 minutes" in result.signals[0].message

    @pytest.mark.asyncio
    async def test_release_decrements_current_bucket(self):
        redis, _ = _mock_redis([])
        redis.decr = AsyncMock()
        counter = RedisWindowCounter(redis, key_prefix="test")

        await counter.release(42, ActivityType.LOGIN, NOW)

        bucket = int(NOW.timestamp()) // 60
        redis.decr.assert_awaited_once_with(f"test:42:LOGIN:{bucket}")
