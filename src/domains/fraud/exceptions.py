"""Risk engine exceptions.

All inherit from RiskEngineError so the API can map them with one handler.
"""


class RiskEngineError(Exception):
    status_code: int = 500
    message: str = "Risk engine error"

    def __init__(self, message: str | None = None):
        self.message = message or self.__class__.message
        super().__init__(self.message)


class EvaluationError(RiskEngineError):
    """A detector or store failed, so no score was produced."""

    status_code = 503
    message = "Risk evaluation could not be completed"


class AlertNotFoundError(RiskEngineError, LookupError):
    status_code = 404
    message = "Fraud alert not found"


class AlertAlreadyResolvedError(RiskEngineError):
    status_code = 409
    message = "Fraud alert is already resolved"


class BlacklistEntryNotFoundError(RiskEngineError, LookupError):
    status_code = 404
    message = "Blacklist entry not found"


class DetectorError(RiskEngineError):
    """A detector raised under the ``propagate`` policy.

    ``completed`` holds the results of the detectors that finished, so the
    caller can undo side effects such as velocity reservations.
    """

    status_code = 503
    message = "Risk detector failed"

    def __init__(self, detector: str, completed: list | None = None):
        super().__init__(f"Detector {detector} failed")
        self.detector = detector
        self.completed = completed or []
