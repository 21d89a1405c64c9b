"""
Unit tests for the grading session lifecycle.
"""

import threading
from datetime import timedelta
from decimal import Decimal
from uuid import uuid4

import pytest

from exam_grading.catalog import InMemoryCatalog
from exam_grading.errors import (
    AggregationError,
    GradingIncompleteError,
    InvalidStateTransitionError,
    NotFoundError,
)
from exam_grading.models import (
    ScoringMethod,
    SessionStatus,
    Submission,
    SubmissionAnswer,
    utcnow,
)
from exam_grading.regrade import RegradeVersioner
from exam_grading.session import GradingSessionManager
from exam_grading.store import GradingStore


def _grade_subjective(store: GradingStore, session_id) -> None:
    for record in store.records_for_session(session_id):
        if not record.is_graded:
            record.apply_score(Decimal("15"), True, ScoringMethod.MANUAL)


class TestStartGrading:
    """Tests for starting a grading session."""

    def test_start_creates_records(self, manager: GradingSessionManager, sample_submission: Submission) -> None:
        session = manager.start_grading(sample_submission.id)
        records = manager.get_records(session.id)

        assert session.status == SessionStatus.IN_PROGRESS
        assert session.version == 1
        assert session.previous_session_id is None
        assert len(records) == 5

        objective = [r for r in records if r.is_objective]
        subjective = [r for r in records if not r.is_objective]

        assert all(r.scoring_method == ScoringMethod.AUTO and r.is_graded for r in objective)
        assert [r.is_correct for r in objective] == [True, False, False]
        assert all(r.scoring_method == ScoringMethod.MANUAL and r.score is None for r in subjective)

    def test_start_is_idempotent(self, manager: GradingSessionManager, sample_submission: Submission) -> None:
        first = manager.start_grading(sample_submission.id)
        second = manager.start_grading(sample_submission.id)

        assert first.id == second.id
        assert len(manager.find_history(sample_submission.id)) == 1

    def test_start_after_completion_rejected(
        self, manager: GradingSessionManager, store: GradingStore, sample_submission: Submission
    ) -> None:
        session = manager.start_grading(sample_submission.id)
        _grade_subjective(store, session.id)
        manager.complete_grading(session.id)

        with pytest.raises(InvalidStateTransitionError, match="regrade"):
            manager.start_grading(sample_submission.id)

    def test_unknown_submission(self, manager: GradingSessionManager) -> None:
        with pytest.raises(NotFoundError, match="Submission"):
            manager.start_grading(uuid4())

    def test_answer_to_unknown_question(self, exam_id, objective_questions) -> None:
        submission = Submission(
            exam_id=exam_id,
            answers=(SubmissionAnswer(question_id=uuid4(), selected_choice=1),),
        )
        catalog = InMemoryCatalog(questions=objective_questions, submissions=[submission])
        manager = GradingSessionManager(catalog, GradingStore())

        with pytest.raises(NotFoundError, match="Question"):
            manager.start_grading(submission.id)

    def test_concurrent_start_creates_one_session(
        self, manager: GradingSessionManager, sample_submission: Submission
    ) -> None:
        barrier = threading.Barrier(8)
        results = []

        def worker() -> None:
            barrier.wait()
            results.append(manager.start_grading(sample_submission.id).id)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(set(results)) == 1
        assert len(manager.find_history(sample_submission.id)) == 1


class TestCompleteGrading:
    """Tests for completing a grading session."""

    def test_incomplete_session_rejected(
        self, manager: GradingSessionManager, sample_submission: Submission
    ) -> None:
        session = manager.start_grading(sample_submission.id)

        assert manager.aggregator.grading_progress(session.id) == pytest.approx(0.6)

        with pytest.raises(GradingIncompleteError) as exc_info:
            manager.complete_grading(session.id)

        assert exc_info.value.pending == 2
        assert session.status == SessionStatus.IN_PROGRESS
        assert session.total_score is None

    def test_complete_publishes_total(
        self, manager: GradingSessionManager, store: GradingStore, sample_submission: Submission
    ) -> None:
        session = manager.start_grading(sample_submission.id)
        _grade_subjective(store, session.id)
        before = utcnow()

        completed = manager.complete_grading(session.id, comment="Well done")

        # 10 (one correct objective) + 2 x 15
        assert completed.total_score == Decimal("40")
        assert completed.total_score == sum(r.score for r in manager.get_records(session.id))
        assert completed.status == SessionStatus.COMPLETED
        assert completed.scoring_comment == "Well done"
        assert completed.graded_at is not None
        assert completed.graded_at >= before

    def test_complete_twice_rejected(
        self, manager: GradingSessionManager, store: GradingStore, sample_submission: Submission
    ) -> None:
        session = manager.start_grading(sample_submission.id)
        _grade_subjective(store, session.id)
        manager.complete_grading(session.id)

        with pytest.raises(InvalidStateTransitionError):
            manager.complete_grading(session.id)

    def test_unknown_session(self, manager: GradingSessionManager) -> None:
        with pytest.raises(NotFoundError):
            manager.complete_grading(uuid4())

    def test_aggregation_requires_full_progress(
        self, manager: GradingSessionManager, sample_submission: Submission
    ) -> None:
        session = manager.start_grading(sample_submission.id)

        with pytest.raises(AggregationError):
            manager.aggregator.calculate_and_update_total_score(session)


class TestSessionQueries:
    """Tests for session lookups."""

    def test_find_latest_and_current(
        self, manager: GradingSessionManager, sample_submission: Submission
    ) -> None:
        session = manager.start_grading(sample_submission.id)

        assert manager.find_latest(sample_submission.id).id == session.id
        assert manager.find_current(sample_submission.id).id == session.id

    def test_find_latest_without_sessions(self, manager: GradingSessionManager) -> None:
        with pytest.raises(NotFoundError):
            manager.find_latest(uuid4())

        assert manager.find_current(uuid4()) is None

    def test_status_and_range_queries(
        self, manager: GradingSessionManager, store: GradingStore, sample_submission: Submission
    ) -> None:
        session = manager.start_grading(sample_submission.id)
        assert manager.count_by_status(SessionStatus.IN_PROGRESS) == 1

        _grade_subjective(store, session.id)
        manager.complete_grading(session.id)

        assert manager.count_by_status(SessionStatus.IN_PROGRESS) == 0
        assert [s.id for s in manager.find_by_status(SessionStatus.COMPLETED)] == [session.id]

        now = utcnow()
        assert manager.find_by_graded_range(now - timedelta(minutes=1), now) == [session]
        assert manager.find_by_graded_range(now + timedelta(minutes=1), now + timedelta(minutes=2)) == []
        assert manager.find_by_total_score_range(Decimal("30"), Decimal("50")) == [session]
        assert manager.find_by_total_score_range(Decimal("41"), Decimal("100")) == []

    def test_delete_session_frees_submission(
        self, manager: GradingSessionManager, store: GradingStore, sample_submission: Submission
    ) -> None:
        session = manager.start_grading(sample_submission.id)
        record_ids = [r.id for r in manager.get_records(session.id)]

        manager.delete_session(session.id)

        with pytest.raises(NotFoundError):
            manager.get_session(session.id)
        assert all(store.find_record(rid) is None for rid in record_ids)
        assert manager.find_current(sample_submission.id) is None

        restarted = manager.start_grading(sample_submission.id)
        assert restarted.id != session.id
        assert restarted.version == 1

    def test_restart_after_deleting_regrade_continues_versions(
        self, manager: GradingSessionManager, store: GradingStore, sample_submission: Submission
    ) -> None:
        first = manager.start_grading(sample_submission.id)
        _grade_subjective(store, first.id)
        manager.complete_grading(first.id)
        second = RegradeVersioner(manager).start_regrading(first.id)

        manager.delete_session(second.id)
        restarted = manager.start_grading(sample_submission.id)

        assert restarted.version == 2
        assert restarted.previous_session_id == first.id
        history = manager.find_history(sample_submission.id)
        assert [s.version for s in history] == [2, 1]
        assert first.status == SessionStatus.REGRADED


class TestEmptySubmission:
    """Tests for a submission without answers."""

    def test_empty_session_cannot_complete(self, exam_id, objective_questions) -> None:
        submission = Submission(exam_id=exam_id)
        catalog = InMemoryCatalog(questions=objective_questions, submissions=[submission])
        manager = GradingSessionManager(catalog, GradingStore())

        session = manager.start_grading(submission.id)

        assert manager.get_records(session.id) == []
        assert manager.aggregator.grading_progress(session.id) == 0.0
        with pytest.raises(AggregationError):
            manager.complete_grading(session.id)
        assert session.status == SessionStatus.IN_PROGRESS
