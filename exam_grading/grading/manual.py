"""
Human grading of subjective questions.
"""

import logging
from typing import Any
from uuid import UUID

from exam_grading.grading.validator import ScoreValidator
from exam_grading.models import QuestionGradingRecord, ScoringMethod
from exam_grading.store import GradingStore

logger = logging.getLogger(__name__)


class ManualGradingCoordinator:
    """
    Applies a grader's score, verdict and feedback to a record.

    Last writer wins: an AI-assisted score is replaced outright, including
    its confidence, which promotes the record to human-reviewed.
    """

    def __init__(self, store: GradingStore, validator: ScoreValidator | None = None):
        self._store = store
        self._validator = validator or ScoreValidator()

    def grade(
        self,
        record_id: UUID,
        score: Any,
        is_correct: bool,
        feedback: str | None = None,
    ) -> QuestionGradingRecord:
        """
        Record a manual score.

        Args:
            record_id: Record to grade.
            score: Points awarded, 0..question points.
            is_correct: Grader's verdict.
            feedback: Optional comment for the student.

        Returns:
            The updated record.

        Raises:
            NotFoundError: If the record does not exist.
            InvalidScoreError: If the score is out of bounds.
            InvalidStateTransitionError: If the session is closed or the
                question is objective.
        """
        with self._store.atomic():
            record = self._store.get_record(record_id)
            session = self._store.get_session(record.session_id)
            self._validator.validate_gradable(session, record, ScoringMethod.MANUAL)
            value = self._validator.validate_score(score, record.question)

            previous_method = record.scoring_method
            record.apply_score(
                score=value,
                is_correct=is_correct,
                method=ScoringMethod.MANUAL,
                feedback=feedback,
            )
            session.touch()

        logger.info(
            "Manual grade applied: record_id=%s, score=%s, is_correct=%s, previous_method=%s",
            record_id,
            value,
            is_correct,
            previous_method.value,
        )
        return record
