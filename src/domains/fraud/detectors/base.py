"""Abstract base class for risk signal detectors."""

from abc import ABC, abstractmethod
from datetime import datetime

from ..models import DetectorResult, EvaluationRequest, Signal, SignalKind


class Detector(ABC):
    """Base class for all detectors.

    Detectors are async and read-only: they inspect one signal for the
    request, query the stores they were built with, and return a partial
    score. Finding nothing is the normal outcome, not an error.
    """

    detector_id: str

    @abstractmethod
    async def evaluate(self, request: EvaluationRequest, now: datetime) -> DetectorResult:
        """Evaluate this detector and return its contribution."""
        ...

    def _no_signal(self) -> DetectorResult:
        return DetectorResult(detector=self.detector_id)

    def _result(self, signals: list[Signal]) -> DetectorResult:
        return DetectorResult(
            detector=self.detector_id,
            score=sum(s.score for s in signals),
            signals=signals,
        )

    @staticmethod
    def _signal(kind: SignalKind, message: str, score: int) -> Signal:
        return Signal(kind=kind, message=message, score=score)
