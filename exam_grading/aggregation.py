"""
Score aggregation and reporting queries.

Totals are only published for fully graded sessions. Cross-session
figures (correct rate, average score, per-method statistics) only look at
current sessions, so superseded versions never skew them.
"""

import logging
from decimal import Decimal
from uuid import UUID

from exam_grading.config import Settings, get_settings
from exam_grading.errors import AggregationError
from exam_grading.models import (
    GradingSession,
    MethodStatistics,
    QuestionGradingRecord,
    ScoreStatistics,
    ScoringMethod,
)
from exam_grading.store import GradingStore

logger = logging.getLogger(__name__)


class ScoreAggregator:
    """Computes session totals, grading progress and per-question figures."""

    def __init__(self, store: GradingStore, settings: Settings | None = None):
        self._store = store
        self._settings = settings or get_settings()

    # ==========================================================================
    # Session Progress and Totals
    # ==========================================================================

    def grading_progress(self, session_id: UUID) -> float:
        """
        Fraction of the session's records that have a score.

        Returns:
            Value in 0.0..1.0; 0.0 for a session without records.
        """
        records = self._store.records_for_session(session_id)
        if not records:
            return 0.0
        graded = sum(1 for r in records if r.is_graded)
        return graded / len(records)

    def pending_count(self, session_id: UUID) -> int:
        return sum(1 for r in self._store.records_for_session(session_id) if not r.is_graded)

    def is_all_questions_graded(self, session_id: UUID) -> bool:
        """True iff no record of the session has a null score."""
        return self.pending_count(session_id) == 0

    def calculate_and_update_total_score(self, session: GradingSession) -> Decimal:
        """
        Sum the session's record scores into ``session.total_score``.

        Args:
            session: Session to total.

        Returns:
            The stored total.

        Raises:
            AggregationError: If grading progress is below 1.0.
        """
        with self._store.atomic():
            progress = self.grading_progress(session.id)
            if progress < 1.0:
                raise AggregationError(session.id, progress)

            records = self._store.records_for_session(session.id)
            total = sum((r.score for r in records if r.score is not None), Decimal(0))
            session.total_score = total
            session.touch()

        logger.debug("Total score calculated: session_id=%s, total=%s", session.id, total)
        return total

    # ==========================================================================
    # Per-Session Reporting
    # ==========================================================================

    def score_statistics(self, session_id: UUID) -> ScoreStatistics:
        """Summarise a session's scores; ungraded records contribute nothing."""
        records = self._store.records_for_session(session_id)
        graded = [r for r in records if r.score is not None]

        total = sum((r.score for r in graded if r.score is not None), Decimal(0))
        max_possible = sum((r.question.points for r in records), Decimal(0))
        average = float(total) / len(graded) if graded else 0.0

        return ScoreStatistics(
            total_score=total,
            max_possible_score=max_possible,
            average_score=self._round(average),
            correct_count=sum(1 for r in records if r.is_correct),
            total_count=len(records),
        )

    def incorrect_records(self, session_id: UUID) -> list[QuestionGradingRecord]:
        return [r for r in self._store.records_for_session(session_id) if r.is_correct is False]

    # ==========================================================================
    # Cross-Session Reporting
    # ==========================================================================

    def correct_rate(self, question_id: UUID) -> float:
        """
        Graded-correct over graded-total for a question across current sessions.

        Returns:
            Rate in 0.0..1.0; 0.0 when nobody has been graded yet.
        """
        graded = [r for r in self._store.find_records_by_question(question_id) if r.is_graded]
        if not graded:
            return 0.0
        correct = sum(1 for r in graded if r.is_correct)
        return self._round(correct / len(graded))

    def average_score(self, question_id: UUID) -> float:
        """Mean score for a question across current sessions; 0.0 when ungraded."""
        scores = [
            r.score for r in self._store.find_records_by_question(question_id) if r.score is not None
        ]
        if not scores:
            return 0.0
        return self._round(float(sum(scores, Decimal(0))) / len(scores))

    def statistics_by_method(self, method: ScoringMethod) -> MethodStatistics:
        """Count, correct count, average score and confidence for one scoring method."""
        records = [r for r in self._store.find_records_by_method(method) if r.is_graded]
        scores = [float(r.score) for r in records if r.score is not None]
        confidences = [r.confidence_score for r in records if r.confidence_score is not None]

        return MethodStatistics(
            scoring_method=method,
            count=len(records),
            correct_count=sum(1 for r in records if r.is_correct),
            average_score=self._round(sum(scores) / len(scores)) if scores else 0.0,
            average_confidence=(
                self._round(sum(confidences) / len(confidences)) if confidences else None
            ),
        )

    def _round(self, value: float) -> float:
        return round(value, self._settings.score_decimal_places)
