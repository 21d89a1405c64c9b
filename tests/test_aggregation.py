"""
Unit tests for score aggregation and store queries.
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from exam_grading.engine import GradingEngine
from exam_grading.errors import InvalidStateTransitionError, NotFoundError
from exam_grading.models import ScoringMethod, Submission


@pytest.fixture
def graded_session(engine: GradingEngine, sample_submission: Submission):
    """An IN_PROGRESS session with one AI-assisted and one manual subjective score."""
    session = engine.sessions.start_grading(sample_submission.id)
    first, second = [r for r in engine.store.records_for_session(session.id) if not r.is_objective]
    engine.ai.grade(first.id, score=12, is_correct=False, confidence=0.55, analysis_note="Vague")
    engine.manual.grade(second.id, score=20, is_correct=True)
    return session


class TestScoreAggregator:
    """Tests for ScoreAggregator."""

    def test_progress_of_fresh_session(self, engine: GradingEngine, sample_submission: Submission) -> None:
        session = engine.sessions.start_grading(sample_submission.id)

        assert engine.aggregator.grading_progress(session.id) == pytest.approx(0.6)
        assert engine.aggregator.pending_count(session.id) == 2
        assert not engine.aggregator.is_all_questions_graded(session.id)

    def test_progress_of_unknown_session(self, engine: GradingEngine) -> None:
        with pytest.raises(NotFoundError):
            engine.aggregator.grading_progress(uuid4())

    def test_score_statistics(self, engine: GradingEngine, graded_session) -> None:
        stats = engine.aggregator.score_statistics(graded_session.id)

        assert stats.total_score == Decimal("42")
        assert stats.max_possible_score == Decimal("70")
        assert stats.correct_count == 2
        assert stats.total_count == 5
        assert stats.average_score == pytest.approx(8.4)
        assert stats.percentage_score == pytest.approx(60.0)

    def test_incorrect_records(self, engine: GradingEngine, graded_session) -> None:
        incorrect = engine.aggregator.incorrect_records(graded_session.id)

        assert len(incorrect) == 3
        assert all(r.is_correct is False for r in incorrect)

    def test_correct_rate(self, engine: GradingEngine, graded_session, objective_questions) -> None:
        assert engine.aggregator.correct_rate(objective_questions[0].id) == 1.0
        assert engine.aggregator.correct_rate(objective_questions[1].id) == 0.0
        assert engine.aggregator.correct_rate(uuid4()) == 0.0

    def test_statistics_by_method(self, engine: GradingEngine, graded_session) -> None:
        auto = engine.aggregator.statistics_by_method(ScoringMethod.AUTO)
        ai = engine.aggregator.statistics_by_method(ScoringMethod.AI_ASSISTED)
        manual = engine.aggregator.statistics_by_method(ScoringMethod.MANUAL)

        assert (auto.count, auto.correct_count) == (3, 1)
        assert auto.average_confidence == 1.0
        assert (ai.count, ai.correct_count) == (1, 0)
        assert ai.average_score == pytest.approx(12.0)
        assert ai.average_confidence == pytest.approx(0.55)
        assert manual.count == 1
        assert manual.average_confidence is None


class TestStoreQueries:
    """Tests for GradingStore lookups over current sessions."""

    def test_find_low_confidence(self, engine: GradingEngine, graded_session) -> None:
        low = engine.store.find_low_confidence(engine.settings.low_confidence_threshold)

        assert len(low) == 1
        assert low[0].scoring_method == ScoringMethod.AI_ASSISTED

    def test_find_needing_review(self, engine: GradingEngine, graded_session) -> None:
        review = engine.store.find_needing_review(engine.settings.low_confidence_threshold)

        assert [r.score for r in review] == [Decimal("12")]

    def test_find_pending_manual(self, engine: GradingEngine, sample_submission: Submission) -> None:
        session = engine.sessions.start_grading(sample_submission.id)
        pending = engine.store.find_pending_manual()

        assert len(pending) == 2
        assert all(r.session_id == session.id for r in pending)

    def test_record_for_question(self, engine: GradingEngine, graded_session, subjective_questions) -> None:
        record = engine.store.record_for_question(graded_session.id, subjective_questions[1].id)

        assert record.score == Decimal("20")
        with pytest.raises(NotFoundError):
            engine.store.record_for_question(graded_session.id, uuid4())

    def test_records_in_exam_order(self, engine: GradingEngine, graded_session) -> None:
        records = engine.store.records_for_session(graded_session.id)

        assert [r.question.order for r in records] == [0, 1, 2, 3, 4]

    def test_delete_record(self, engine: GradingEngine, graded_session) -> None:
        record = engine.store.records_for_session(graded_session.id)[0]

        engine.store.delete_record(record.id)

        assert engine.store.find_record(record.id) is None
        assert len(engine.store.records_for_session(graded_session.id)) == 4

    def test_delete_record_of_completed_session(self, engine: GradingEngine, graded_session) -> None:
        engine.sessions.complete_grading(graded_session.id)
        record = engine.store.records_for_session(graded_session.id)[0]

        with pytest.raises(InvalidStateTransitionError):
            engine.store.delete_record(record.id)
