"""
Error types raised by the grading engine.

Every error derives from GradingError so callers can catch the whole
family at an API boundary and map it to a client response.
"""

from typing import Any


class GradingError(Exception):
    """Base class for all grading engine errors."""


class NotFoundError(GradingError):
    """Raised when a session, record, submission or question does not resolve."""

    def __init__(self, entity: str, identifier: Any):
        self.entity = entity
        self.identifier = identifier
        super().__init__(f"{entity} not found: {identifier}")


class InvalidStateTransitionError(GradingError):
    """Raised when an operation is not allowed in the session's current state."""

    def __init__(self, message: str, current: Any = None, target: Any = None):
        self.current = current
        self.target = target
        super().__init__(message)


class GradingIncompleteError(GradingError):
    """Raised when a session is completed while records are still unscored."""

    def __init__(self, session_id: Any, pending: int):
        self.session_id = session_id
        self.pending = pending
        super().__init__(
            f"Session {session_id} still has {pending} ungraded record(s)"
        )


class InvalidScoreError(GradingError):
    """Raised when a score falls outside 0..question points."""

    def __init__(self, score: Any, max_points: Any):
        self.score = score
        self.max_points = max_points
        super().__init__(f"Score {score} is outside the allowed range 0..{max_points}")


class InvalidConfidenceError(GradingError):
    """Raised when a confidence value falls outside 0.0..1.0."""

    def __init__(self, confidence: Any):
        self.confidence = confidence
        super().__init__(f"Confidence {confidence} is outside the allowed range 0.0..1.0")


class AggregationError(GradingError):
    """Raised when a total is requested for a session that is not fully graded."""

    def __init__(self, session_id: Any, progress: float):
        self.session_id = session_id
        self.progress = progress
        super().__init__(
            f"Cannot aggregate session {session_id}: grading progress is {progress:.2f}"
        )


class ScorerError(GradingError):
    """
    Raised when the external AI scorer fails for a single record.

    The failure is scoped to that record; sibling records keep grading.
    """

    def __init__(
        self,
        message: str,
        record_id: Any = None,
        cause: Exception | None = None,
        retryable: bool = False,
    ):
        self.record_id = record_id
        self.cause = cause
        self.retryable = retryable
        super().__init__(message)
