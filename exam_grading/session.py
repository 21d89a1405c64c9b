"""
Grading session manager - the lifecycle orchestrator.

Creates sessions and their records, drives the AutoGrader for objective
questions, and gates completion on every record having a score.
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Iterable
from uuid import UUID

from exam_grading.aggregation import ScoreAggregator
from exam_grading.catalog import SubmissionSource
from exam_grading.config import Settings, get_settings
from exam_grading.errors import (
    GradingIncompleteError,
    InvalidStateTransitionError,
    NotFoundError,
)
from exam_grading.grading.auto import AutoGrader
from exam_grading.models import (
    GradingSession,
    Question,
    QuestionGradingRecord,
    ScoringMethod,
    SessionStatus,
    Submission,
    SubmissionAnswer,
    utcnow,
)
from exam_grading.store import GradingStore

logger = logging.getLogger(__name__)


class GradingSessionManager:
    """
    Starts, completes and looks up grading sessions.

    Objective records are scored the moment they are created. Subjective
    records start unscored with the MANUAL method and wait for a human
    or AI-assisted score.
    """

    def __init__(
        self,
        source: SubmissionSource,
        store: GradingStore,
        settings: Settings | None = None,
        auto_grader: AutoGrader | None = None,
        aggregator: ScoreAggregator | None = None,
    ):
        """
        Initialize the session manager.

        Args:
            source: Read-only access to submissions and questions.
            store: Session and record storage.
            settings: Configuration settings. Uses global settings if not provided.
            auto_grader: Objective scorer. A default instance is created if omitted.
            aggregator: Totals and progress. Built on the same store if omitted.
        """
        self._source = source
        self._store = store
        self._settings = settings or get_settings()
        self._auto_grader = auto_grader or AutoGrader()
        self._aggregator = aggregator or ScoreAggregator(store, self._settings)

    @property
    def store(self) -> GradingStore:
        return self._store

    @property
    def aggregator(self) -> ScoreAggregator:
        return self._aggregator

    # ==========================================================================
    # Lifecycle
    # ==========================================================================

    def start_grading(self, submission_id: UUID) -> GradingSession:
        """
        Start the first grading pass for a submission.

        Idempotent: if the submission already has an IN_PROGRESS session it
        is returned unchanged.

        Args:
            submission_id: Submission to grade.

        Returns:
            The IN_PROGRESS session.

        Raises:
            NotFoundError: If the submission, or a question it answers, does not exist.
            InvalidStateTransitionError: If the submission's grading is already
                COMPLETED; a regrade must be requested instead.
        """
        logger.info("Start grading requested: submission_id=%s", submission_id)

        submission = self._get_submission(submission_id)

        current = self._store.current_session(submission_id)
        if current is not None:
            return self._existing_or_raise(current)

        session = GradingSession(submission_id=submission.id, exam_id=submission.exam_id)
        records = self.create_records(session, self._resolve_answers(submission))

        stored, created = self._store.create_if_absent(session, records)
        if not created:
            # Lost a race against a concurrent start for the same submission
            return self._existing_or_raise(stored)

        logger.info(
            "Grading session started: session_id=%s, submission_id=%s, records=%d, auto_graded=%d",
            stored.id,
            submission_id,
            len(records),
            sum(1 for r in records if r.is_graded),
        )
        return stored

    def complete_grading(self, session_id: UUID, comment: str | None = None) -> GradingSession:
        """
        Publish a session's total and mark it COMPLETED.

        Args:
            session_id: Session to complete.
            comment: Optional overall grading comment.

        Returns:
            The completed session.

        Raises:
            NotFoundError: If the session does not exist.
            InvalidStateTransitionError: If the session is not IN_PROGRESS.
            GradingIncompleteError: If any record is still unscored.
            AggregationError: If the session has no records to total.
        """
        logger.info("Complete grading requested: session_id=%s", session_id)

        with self._store.atomic():
            session = self._store.get_session(session_id)

            if session.status != SessionStatus.IN_PROGRESS:
                raise InvalidStateTransitionError(
                    f"Session {session_id} is {session.status.value}; only IN_PROGRESS "
                    "sessions can be completed",
                    current=session.status,
                    target=SessionStatus.COMPLETED,
                )

            pending = self._aggregator.pending_count(session_id)
            if pending:
                raise GradingIncompleteError(session_id, pending)

            self._aggregator.calculate_and_update_total_score(session)
            session.status = SessionStatus.COMPLETED
            session.scoring_comment = comment
            session.graded_at = utcnow()
            session.touch()

        logger.info(
            "Grading completed: session_id=%s, version=%d, total_score=%s",
            session_id,
            session.version,
            session.total_score,
        )
        return session

    def create_records(
        self,
        session: GradingSession,
        pairs: Iterable[tuple[Question, SubmissionAnswer]],
    ) -> list[QuestionGradingRecord]:
        """
        Build the records of a new session.

        Objective records come back already scored by the AutoGrader;
        subjective records come back unscored with the MANUAL method.
        """
        records: list[QuestionGradingRecord] = []
        for question, answer in pairs:
            record = QuestionGradingRecord(
                session_id=session.id,
                question=question,
                answer=answer,
                scoring_method=ScoringMethod.MANUAL,
            )
            if self._auto_grader.can_grade(record):
                self._auto_grader.grade(record)
            records.append(record)
        return records

    def delete_session(self, session_id: UUID) -> None:
        """Administrative removal of a session and all of its records."""
        logger.info("Delete session requested: session_id=%s", session_id)
        self._store.delete_session(session_id)

    # ==========================================================================
    # Queries
    # ==========================================================================

    def get_session(self, session_id: UUID) -> GradingSession:
        return self._store.get_session(session_id)

    def get_records(self, session_id: UUID) -> list[QuestionGradingRecord]:
        return self._store.records_for_session(session_id)

    def find_latest(self, submission_id: UUID) -> GradingSession:
        """
        Return the highest version for a submission.

        Raises:
            NotFoundError: If the submission has never been graded.
        """
        session = self._store.latest_session(submission_id)
        if session is None:
            raise NotFoundError("GradingSession for submission", submission_id)
        return session

    def find_current(self, submission_id: UUID) -> GradingSession | None:
        return self._store.current_session(submission_id)

    def find_history(self, submission_id: UUID) -> list[GradingSession]:
        """All versions for a submission, newest first."""
        return self._store.sessions_for_submission(submission_id)

    def find_by_status(self, status: SessionStatus) -> list[GradingSession]:
        sessions = self._store.sessions(status)
        return sorted(sessions, key=lambda s: s.graded_at or s.created_at, reverse=True)

    def count_by_status(self, status: SessionStatus) -> int:
        return len(self._store.sessions(status))

    def find_by_graded_range(self, start: datetime, end: datetime) -> list[GradingSession]:
        return self._store.sessions_graded_between(start, end)

    def find_by_total_score_range(self, minimum: Decimal, maximum: Decimal) -> list[GradingSession]:
        return self._store.sessions_with_total_between(minimum, maximum)

    # ==========================================================================
    # Helpers
    # ==========================================================================

    def _get_submission(self, submission_id: UUID) -> Submission:
        submission = self._source.get_submission(submission_id)
        if submission is None:
            raise NotFoundError("Submission", submission_id)
        return submission

    def _resolve_answers(self, submission: Submission) -> list[tuple[Question, SubmissionAnswer]]:
        """Pair each answer with its question from the submission's exam."""
        questions = {q.id: q for q in self._source.get_questions(submission.exam_id)}

        pairs: list[tuple[Question, SubmissionAnswer]] = []
        for answer in submission.answers:
            question = questions.get(answer.question_id)
            if question is None:
                raise NotFoundError("Question", answer.question_id)
            pairs.append((question, answer))
        return pairs

    def _existing_or_raise(self, current: GradingSession) -> GradingSession:
        if current.status == SessionStatus.IN_PROGRESS:
            logger.warning(
                "Grading already in progress: submission_id=%s, session_id=%s",
                current.submission_id,
                current.id,
            )
            return current

        raise InvalidStateTransitionError(
            f"Submission {current.submission_id} already has a {current.status.value} "
            f"session (version {current.version}); request a regrade instead",
            current=current.status,
            target=SessionStatus.IN_PROGRESS,
        )
