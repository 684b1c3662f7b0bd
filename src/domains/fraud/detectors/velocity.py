"""Velocity limiting: too many actions of one type in a trailing window."""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta

import structlog

from ..config import RiskConfig, VelocityLimit
from ..models import ActivityType, DetectorResult, EvaluationRequest, SignalKind
from ..stores import ActivityLogStore
from .base import Detector

logger = structlog.get_logger()


class VelocityCounter(ABC):
    """Counts a user's earlier actions of one type inside the window."""

    @abstractmethod
    async def count_prior(
        self,
        user_id: int,
        activity_type: ActivityType,
        limit: VelocityLimit,
        now: datetime,
    ) -> int: ...

    async def release(self, user_id: int, activity_type: ActivityType, now: datetime) -> None:
        """Undo the count taken at ``now`` for an action that was never logged."""
        return None


class LogScanCounter(VelocityCounter):
    """Counts rows in the activity log.

    Concurrent requests from one user can all read the same sub-limit count
    before any of them is logged; use RedisWindowCounter where that matters.
    """

    def __init__(self, activity_log: ActivityLogStore) -> None:
        self._activity_log = activity_log

    async def count_prior(
        self,
        user_id: int,
        activity_type: ActivityType,
        limit: VelocityLimit,
        now: datetime,
    ) -> int:
        since = now - timedelta(minutes=limit.window_minutes)
        return await self._activity_log.count_since(user_id, activity_type.value, since)


class RedisWindowCounter(VelocityCounter):
    """Sliding window of per-minute buckets, incremented atomically.

    Each call increments the current minute's bucket and reads every bucket
    in the window inside one MULTI/EXEC, so two concurrent requests always
    observe different totals. The current request is subtracted to report
    only earlier actions. The increment stands for the activity record the
    engine is about to write; ``release`` takes it back when that write
    never happens.
    """

    def __init__(self, redis, key_prefix: str = "risk:velocity") -> None:
        self._redis = redis
        self._key_prefix = key_prefix

    def _key(self, user_id: int, activity_type: ActivityType, bucket: int) -> str:
        return f"{self._key_prefix}:{user_id}:{activity_type.value}:{bucket}"

    async def count_prior(
        self,
        user_id: int,
        activity_type: ActivityType,
        limit: VelocityLimit,
        now: datetime,
    ) -> int:
        current_bucket = int(now.timestamp()) // 60
        first_bucket = current_bucket - limit.window_minutes + 1
        keys = [
            self._key(user_id, activity_type, bucket)
            for bucket in range(first_bucket, current_bucket + 1)
        ]
        current_key = keys[-1]

        async with self._redis.pipeline(transaction=True) as pipe:
            pipe.incr(current_key)
            pipe.expire(current_key, (limit.window_minutes + 1) * 60)
            pipe.mget(keys)
            results = await pipe.execute()

        total = sum(int(value) for value in results[2] if value is not None)
        return max(total - 1, 0)

    async def release(self, user_id: int, activity_type: ActivityType, now: datetime) -> None:
        bucket = int(now.timestamp()) // 60
        await self._redis.decr(self._key(user_id, activity_type, bucket))


class VelocityDetector(Detector):
    detector_id = "velocity"

    def __init__(self, counter: VelocityCounter, config: RiskConfig) -> None:
        self._counter = counter
        self._settings = config.velocity

    async def evaluate(self, request: EvaluationRequest, now: datetime) -> DetectorResult:
        limit = self._settings.limit_for(request.activity_type)
        if limit is None:
            return self._no_signal()

        count = await self._counter.count_prior(request.user_id, request.activity_type, limit, now)
        if count < limit.max_count:
            return self._no_signal()

        logger.info(
            "velocity_limit_reached",
            user_id=request.user_id,
            activity_type=request.activity_type.value,
            count=count,
            max_count=limit.max_count,
            window_minutes=limit.window_minutes,
        )
        return self._result(
            [
                self._signal(
                    SignalKind.VELOCITY,
                    f"High velocity: {count} {request.activity_type.value} activities "
                    f"in {limit.window_minutes} minutes",
                    self._settings.score,
                )
            ]
        )
