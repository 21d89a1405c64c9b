"""
Automatic grading of objective questions.

Pure comparison of the selected choice against the correct choice. No
external resource is involved, so the result is always reproducible.
"""

import logging
from decimal import Decimal

from exam_grading.models import QuestionGradingRecord, ScoringMethod

logger = logging.getLogger(__name__)


class AutoGrader:
    """Scores single-choice answers with full confidence."""

    CONFIDENCE = 1.0

    def can_grade(self, record: QuestionGradingRecord) -> bool:
        return record.is_objective

    def grade(self, record: QuestionGradingRecord) -> QuestionGradingRecord:
        """
        Score an objective record in place.

        An unanswered objective question counts as incorrect. Calling this
        twice on unchanged inputs yields the same score and verdict.

        Args:
            record: Record of an objective question.

        Returns:
            The same record, scored.

        Raises:
            ValueError: If the record's question is not objective.
        """
        question = record.question
        if not question.is_objective:
            raise ValueError(f"AutoGrader cannot score subjective question {question.id}")

        selected = record.answer.selected_choice
        is_correct = selected is not None and selected == question.correct_choice
        score = question.points if is_correct else Decimal(0)

        record.apply_score(
            score=score,
            is_correct=is_correct,
            method=ScoringMethod.AUTO,
            confidence=self.CONFIDENCE,
        )

        logger.debug(
            "Auto-graded record: record_id=%s, question_id=%s, score=%s, is_correct=%s",
            record.id,
            question.id,
            score,
            is_correct,
        )
        return record
