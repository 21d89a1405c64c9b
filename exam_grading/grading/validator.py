"""
Score validation module.

Checks every externally supplied score and confidence before it touches a
record, and checks that the record is still open for grading.
"""

from decimal import Decimal, InvalidOperation
from typing import Any

from exam_grading.errors import (
    InvalidConfidenceError,
    InvalidScoreError,
    InvalidStateTransitionError,
)
from exam_grading.models import (
    GradingSession,
    Question,
    QuestionGradingRecord,
    ScoringMethod,
    SessionStatus,
)


class ScoreValidator:
    """
    Validates scoring input at the coordinator boundary.

    Checks:
    1. Scores are numbers within 0..question points
    2. Confidence values are within 0.0..1.0
    3. The owning session is still IN_PROGRESS
    4. Objective questions are only scored automatically
    """

    MIN_CONFIDENCE = 0.0
    MAX_CONFIDENCE = 1.0

    def validate_score(self, score: Any, question: Question) -> Decimal:
        """
        Validate a score against a question's point value.

        Args:
            score: Proposed score (int, float, str or Decimal).
            question: The question being scored.

        Returns:
            The score as a Decimal.

        Raises:
            InvalidScoreError: If the score is not a number or out of bounds.
        """
        if score is None or isinstance(score, bool):
            raise InvalidScoreError(score, question.points)
        try:
            value = score if isinstance(score, Decimal) else Decimal(str(score))
        except (InvalidOperation, ValueError) as e:
            raise InvalidScoreError(score, question.points) from e

        if not value.is_finite() or value < 0 or value > question.points:
            raise InvalidScoreError(score, question.points)
        return value

    def validate_confidence(self, confidence: Any) -> float:
        """
        Validate an AI confidence value.

        Raises:
            InvalidConfidenceError: If confidence is not a number in 0.0..1.0.
        """
        if confidence is None or isinstance(confidence, bool):
            raise InvalidConfidenceError(confidence)
        try:
            value = float(confidence)
        except (TypeError, ValueError) as e:
            raise InvalidConfidenceError(confidence) from e

        # NaN fails both comparisons
        if not (self.MIN_CONFIDENCE <= value <= self.MAX_CONFIDENCE):
            raise InvalidConfidenceError(confidence)
        return value

    def validate_gradable(
        self,
        session: GradingSession,
        record: QuestionGradingRecord,
        method: ScoringMethod,
    ) -> None:
        """
        Ensure a record may receive a score by the given method.

        Raises:
            InvalidStateTransitionError: If the session is closed, or a manual
                or AI score targets an objective question.
        """
        if session.status != SessionStatus.IN_PROGRESS:
            raise InvalidStateTransitionError(
                f"Session {session.id} is {session.status.value}; "
                "records can only be graded while IN_PROGRESS",
                current=session.status,
            )

        if method != ScoringMethod.AUTO and record.is_objective:
            raise InvalidStateTransitionError(
                f"Record {record.id} is an objective question and is graded automatically; "
                f"{method.value} scoring is not allowed",
                current=record.scoring_method,
                target=method,
            )
