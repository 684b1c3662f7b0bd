"""Risk evaluation pipeline: detectors -> score -> log -> alert."""

from collections.abc import Callable
from datetime import UTC, datetime

import structlog

from .alerts import create_alert, create_payment_mismatch_alert
from .config import RiskConfig, default_config
from .detectors import (
    LogScanCounter,
    RedisWindowCounter,
    VelocityCounter,
    VelocityDetector,
    build_detectors,
)
from .exceptions import DetectorError, EvaluationError
from .models import (
    AlertType,
    BlacklistEntry,
    DetectorResult,
    EntityType,
    EvaluationRequest,
    EvaluationResult,
    FraudAlert,
    Severity,
)
from .scorer import CompositeScorer
from .stores import ActivityLogStore, AlertStore, BlacklistStore, SessionFactory

logger = structlog.get_logger()


def _utcnow() -> datetime:
    return datetime.now(UTC)


class RiskEngine:
    """Public entry point of the risk engine.

    ``evaluate`` always logs the activity, including for blocked actions, so
    later evaluations reason over the full history; a fraud alert is written
    after the activity only when the score is risky. The two writes are
    separate commits.
    """

    def __init__(
        self,
        activity_log: ActivityLogStore,
        blacklist: BlacklistStore,
        alerts: AlertStore,
        config: RiskConfig | None = None,
        velocity_counter: VelocityCounter | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._config = config or default_config
        self._activity_log = activity_log
        self._blacklist = blacklist
        self._alerts = alerts
        self._clock = clock or _utcnow
        self._velocity_counter = velocity_counter or LogScanCounter(activity_log)
        self._scorer = CompositeScorer(
            build_detectors(activity_log, blacklist, self._config, self._velocity_counter),
            self._config,
        )

    @property
    def config(self) -> RiskConfig:
        return self._config

    async def evaluate(self, request: EvaluationRequest) -> EvaluationResult:
        """Score a user action, record it, and alert when risky.

        Raises EvaluationError when a detector or the store fails; no
        partial score is ever returned. If the activity was not logged, the
        velocity count taken for it is released.
        """
        now = self._clock()
        completed: list[DetectorResult] = []
        logged = False
        try:
            context = await self._scorer.score(request, now)
            completed = context.detector_results
            await self._activity_log.append(
                request,
                risk_score=context.risk_score,
                flagged=context.is_risky,
                timestamp=now,
            )
            logged = True
            alert = await create_alert(
                context, request, self._alerts, self._config.thresholds, now
            )
        except Exception as exc:
            logger.exception(
                "risk_evaluation_failed",
                user_id=request.user_id,
                activity_type=request.activity_type.value,
                activity_logged=logged,
            )
            if not logged:
                if isinstance(exc, DetectorError):
                    completed = exc.completed
                await self._release_velocity(request, now, completed)
            raise EvaluationError(f"Risk evaluation failed: {exc}") from exc

        logger.info(
            "activity_evaluated",
            user_id=request.user_id,
            activity_type=request.activity_type.value,
            risk_score=context.risk_score,
            is_risky=context.is_risky,
            should_block=context.should_block,
            alert_created=alert is not None,
        )

        return EvaluationResult(
            is_risky=context.is_risky,
            risk_score=context.risk_score,
            alerts=context.alerts,
            should_block=context.should_block,
            risk_level=context.risk_level,
            signals=context.signals,
        )

    async def _release_velocity(
        self, request: EvaluationRequest, now: datetime, completed: list[DetectorResult]
    ) -> None:
        counted = any(
            r.detector == VelocityDetector.detector_id and not r.failed for r in completed
        )
        if not counted or self._config.velocity.limit_for(request.activity_type) is None:
            return
        try:
            await self._velocity_counter.release(request.user_id, request.activity_type, now)
        except Exception:
            logger.warning(
                "velocity_release_failed",
                user_id=request.user_id,
                activity_type=request.activity_type.value,
                exc_info=True,
            )

    async def add_to_blacklist(
        self,
        entity_type: EntityType,
        entity_value: str,
        reason: str,
        added_by: int,
        expires_at: datetime | None = None,
    ) -> BlacklistEntry:
        """Insert a ban. Identical active entries may coexist."""
        entry = await self._blacklist.add(
            entity_type=entity_type,
            entity_value=entity_value,
            reason=reason,
            added_by=added_by,
            expires_at=expires_at,
            now=self._clock(),
        )
        logger.info(
            "blacklist_entry_added",
            entity_type=entity_type.value,
            added_by=added_by,
            expires_at=expires_at.isoformat() if expires_at else None,
        )
        return entry

    async def deactivate_blacklist_entry(self, entry_id: int) -> BlacklistEntry:
        entry = await self._blacklist.deactivate(entry_id, now=self._clock())
        logger.info("blacklist_entry_deactivated", entry_id=entry_id)
        return entry

    async def list_blacklist(
        self,
        entity_type: EntityType | None = None,
        active_only: bool = True,
        limit: int = 50,
        offset: int = 0,
    ) -> list[BlacklistEntry]:
        return await self._blacklist.list_entries(
            now=self._clock(),
            entity_type=entity_type,
            active_only=active_only,
            limit=limit,
            offset=offset,
        )

    async def check_payment_mismatch(
        self,
        user_id: int,
        expected_amount: float,
        actual_amount: float,
        payment_method: str,
        metadata: dict | None = None,
    ) -> FraudAlert | None:
        """Alert directly on an amount mismatch; bypasses scoring and the activity log."""
        return await create_payment_mismatch_alert(
            user_id=user_id,
            expected_amount=expected_amount,
            actual_amount=actual_amount,
            payment_method=payment_method,
            store=self._alerts,
            settings=self._config.payment_mismatch,
            now=self._clock(),
            metadata=metadata,
        )

    async def list_alerts(
        self,
        severity: Severity | None = None,
        alert_type: AlertType | None = None,
        resolved: bool | None = None,
        user_id: int | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[FraudAlert], int]:
        return await self._alerts.list_alerts(
            severity=severity,
            alert_type=alert_type,
            resolved=resolved,
            user_id=user_id,
            limit=limit,
            offset=offset,
        )

    async def resolve_alert(self, alert_id: str, resolved_by: int, resolution: str) -> FraudAlert:
        return await self._alerts.resolve(alert_id, resolved_by, resolution, now=self._clock())


def build_risk_engine(
    session_factory: SessionFactory,
    config: RiskConfig | None = None,
    redis=None,
) -> RiskEngine:
    """Wire a RiskEngine against SQL stores, using Redis velocity buckets when configured."""
    cfg = config or default_config
    activity_log = ActivityLogStore(session_factory)

    velocity_counter: VelocityCounter | None = None
    if cfg.velocity.backend == "redis":
        if redis is None:
            raise ValueError("velocity backend 'redis' requires a Redis client")
        velocity_counter = RedisWindowCounter(redis, key_prefix=cfg.velocity.redis_key_prefix)
    elif cfg.velocity.backend != "log":
        raise ValueError(f"Unknown velocity backend: {cfg.velocity.backend}")

    logger.info(
        "risk_engine_initialized",
        velocity_backend=cfg.velocity.backend,
        detector_failure_policy=cfg.detector_failure_policy,
    )
    return RiskEngine(
        activity_log=activity_log,
        blacklist=BlacklistStore(session_factory),
        alerts=AlertStore(session_factory),
        config=cfg,
        velocity_counter=velocity_counter,
    )
