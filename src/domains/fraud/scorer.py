"""Composite scoring: run detectors concurrently, sum, clamp, classify."""

import asyncio
from datetime import datetime

import structlog

from .config import RiskConfig, RiskThresholds, default_config
from .detectors import Detector
from .exceptions import DetectorError
from .models import DetectorResult, EvaluationRequest, RiskLevel, ScoringContext

logger = structlog.get_logger()

FAILURE_POLICIES = ("propagate", "isolate")


def clamp_score(raw_score: int, thresholds: RiskThresholds) -> int:
    return max(0, min(raw_score, thresholds.max_score))


def classify_risk_level(score: int, thresholds: RiskThresholds) -> RiskLevel:
    if score >= thresholds.critical:
        return RiskLevel.CRITICAL
    if score >= thresholds.high:
        return RiskLevel.HIGH
    if score >= thresholds.medium:
        return RiskLevel.MEDIUM
    if score >= thresholds.low:
        return RiskLevel.LOW
    return RiskLevel.NONE


class CompositeScorer:
    """Merges detector contributions into one bounded score and a decision.

    Detectors are independent and read-only, so they are awaited together.
    Under the ``propagate`` policy the first detector failure is raised as
    DetectorError once all detectors have settled, and no score is produced;
    under ``isolate`` a failing detector contributes zero and is logged.
    """

    def __init__(self, detectors: list[Detector], config: RiskConfig | None = None) -> None:
        self._detectors = list(detectors)
        self._config = config or default_config
        if self._config.detector_failure_policy not in FAILURE_POLICIES:
            raise ValueError(
                f"Unknown detector failure policy: {self._config.detector_failure_policy}"
            )

    @property
    def detectors(self) -> list[Detector]:
        return list(self._detectors)

    async def score(self, request: EvaluationRequest, now: datetime) -> ScoringContext:
        results = await self._run_detectors(request, now)
        thresholds = self._config.thresholds

        raw_score = sum(r.score for r in results)
        risk_score = clamp_score(raw_score, thresholds)

        context = ScoringContext(
            risk_score=risk_score,
            raw_score=raw_score,
            risk_level=classify_risk_level(risk_score, thresholds),
            is_risky=risk_score >= thresholds.medium,
            should_block=risk_score >= thresholds.critical,
            detector_results=results,
        )

        logger.info(
            "risk_scored",
            user_id=request.user_id,
            activity_type=request.activity_type.value,
            risk_score=risk_score,
            raw_score=raw_score,
            risk_level=context.risk_level.value,
            triggered=[r.detector for r in results if r.triggered],
        )
        return context

    async def _run_detectors(
        self, request: EvaluationRequest, now: datetime
    ) -> list[DetectorResult]:
        coros = [detector.evaluate(request, now) for detector in self._detectors]

        # Every detector settles before a failure is raised
        outcomes = await asyncio.gather(*coros, return_exceptions=True)
        for outcome in outcomes:
            if isinstance(outcome, BaseException) and not isinstance(outcome, Exception):
                raise outcome

        if self._config.detector_failure_policy == "propagate":
            completed = [o for o in outcomes if isinstance(o, DetectorResult)]
            for detector, outcome in zip(self._detectors, outcomes, strict=True):
                if isinstance(outcome, Exception):
                    raise DetectorError(detector.detector_id, completed) from outcome
            return completed

        results: list[DetectorResult] = []
        for detector, outcome in zip(self._detectors, outcomes, strict=True):
            if isinstance(outcome, Exception):
                logger.warning(
                    "detector_failed_isolated",
                    detector=detector.detector_id,
                    user_id=request.user_id,
                    error=str(outcome),
                )
                results.append(DetectorResult(detector=detector.detector_id, failed=True))
            else:
                results.append(outcome)
        return results
