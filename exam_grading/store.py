"""
In-process storage for grading sessions and their records.

The store owns the "at most one current session per submission" rule.
Each submission has a single active slot; sessions enter it only through
create_if_absent (first pass) or replace_current (regrade), both of which
run under the store lock, so two racing callers cannot both win.
"""

import logging
import threading
from datetime import datetime
from decimal import Decimal
from typing import Callable, Iterator
from uuid import UUID

from exam_grading.errors import InvalidStateTransitionError, NotFoundError
from exam_grading.models import (
    GradingSession,
    QuestionGradingRecord,
    ScoringMethod,
    SessionStatus,
)

logger = logging.getLogger(__name__)

RecordPredicate = Callable[[QuestionGradingRecord], bool]


class GradingStore:
    """
    Thread-safe repository of sessions and records.

    Objects are returned by reference, like an ORM identity map. Callers
    that read and then write must do so inside ``atomic()``.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._sessions: dict[UUID, GradingSession] = {}
        self._records: dict[UUID, QuestionGradingRecord] = {}
        self._records_by_session: dict[UUID, list[UUID]] = {}
        # submission_id -> id of its IN_PROGRESS or COMPLETED session
        self._active: dict[UUID, UUID] = {}

    def atomic(self) -> threading.RLock:
        """Return the store lock for use as a context manager."""
        return self._lock

    # ==========================================================================
    # Writes
    # ==========================================================================

    def create_if_absent(
        self,
        session: GradingSession,
        records: list[QuestionGradingRecord],
    ) -> tuple[GradingSession, bool]:
        """
        Insert a session unless its submission already has a current one.

        The session's version is assigned here, one above the highest
        version in the submission's history, so a submission whose current
        session was deleted never repeats a version number.

        Returns:
            Tuple of (session now occupying the slot, whether it was created).
        """
        with self._lock:
            existing_id = self._active.get(session.submission_id)
            if existing_id is not None:
                return self._sessions[existing_id], False

            latest = self.latest_session(session.submission_id)
            if latest is not None:
                session.version = latest.version + 1
                session.previous_session_id = latest.id

            self._insert(session, records)
            self._active[session.submission_id] = session.id
            return session, True

    def replace_current(
        self,
        expected_session_id: UUID,
        successor: GradingSession,
        records: list[QuestionGradingRecord],
    ) -> GradingSession:
        """
        Supersede the current COMPLETED session with its successor.

        Compare-and-swap on the submission's active slot: fails unless the
        expected session is both current and COMPLETED at the moment of
        the swap.

        Raises:
            NotFoundError: If the expected session does not exist.
            InvalidStateTransitionError: If it is not the current COMPLETED session.
        """
        with self._lock:
            original = self.get_session(expected_session_id)

            if original.status != SessionStatus.COMPLETED:
                raise InvalidStateTransitionError(
                    f"Session {original.id} is {original.status.value}; "
                    "only a COMPLETED session can be regraded",
                    current=original.status,
                    target=SessionStatus.REGRADED,
                )

            if self._active.get(original.submission_id) != original.id:
                raise InvalidStateTransitionError(
                    f"Session {original.id} is no longer the current session "
                    f"of submission {original.submission_id}",
                    current=original.status,
                    target=SessionStatus.REGRADED,
                )

            original.status = SessionStatus.REGRADED
            original.touch()

            self._insert(successor, records)
            self._active[successor.submission_id] = successor.id
            return successor

    def delete_session(self, session_id: UUID) -> None:
        """Remove a session and its records; frees the active slot if it was current."""
        with self._lock:
            session = self.get_session(session_id)
            for record_id in self._records_by_session.pop(session_id, []):
                self._records.pop(record_id, None)
            del self._sessions[session_id]
            if self._active.get(session.submission_id) == session_id:
                del self._active[session.submission_id]
        logger.info("Deleted session: session_id=%s", session_id)

    def delete_record(self, record_id: UUID) -> None:
        """Remove a single record from an IN_PROGRESS session."""
        with self._lock:
            record = self.get_record(record_id)
            session = self.get_session(record.session_id)
            if session.status != SessionStatus.IN_PROGRESS:
                raise InvalidStateTransitionError(
                    f"Cannot delete records of a {session.status.value} session",
                    current=session.status,
                )
            del self._records[record_id]
            self._records_by_session[record.session_id].remove(record_id)
            session.touch()
        logger.info("Deleted record: record_id=%s", record_id)

    def _insert(self, session: GradingSession, records: list[QuestionGradingRecord]) -> None:
        if session.id in self._sessions:
            raise InvalidStateTransitionError(f"Session {session.id} already exists")
        self._sessions[session.id] = session
        self._records_by_session[session.id] = []
        for record in records:
            if record.session_id != session.id:
                raise ValueError(f"Record {record.id} does not belong to session {session.id}")
            self._records[record.id] = record
            self._records_by_session[session.id].append(record.id)

    # ==========================================================================
    # Session Reads
    # ==========================================================================

    def find_session(self, session_id: UUID) -> GradingSession | None:
        with self._lock:
            return self._sessions.get(session_id)

    def get_session(self, session_id: UUID) -> GradingSession:
        session = self.find_session(session_id)
        if session is None:
            raise NotFoundError("GradingSession", session_id)
        return session

    def current_session(self, submission_id: UUID) -> GradingSession | None:
        """Return the submission's IN_PROGRESS or COMPLETED session, if any."""
        with self._lock:
            session_id = self._active.get(submission_id)
            return self._sessions[session_id] if session_id is not None else None

    def sessions_for_submission(self, submission_id: UUID) -> list[GradingSession]:
        """Return the submission's full history, newest version first."""
        with self._lock:
            sessions = [s for s in self._sessions.values() if s.submission_id == submission_id]
        return sorted(sessions, key=lambda s: s.version, reverse=True)

    def latest_session(self, submission_id: UUID) -> GradingSession | None:
        history = self.sessions_for_submission(submission_id)
        return history[0] if history else None

    def sessions(self, status: SessionStatus | None = None) -> list[GradingSession]:
        with self._lock:
            sessions = list(self._sessions.values())
        if status is not None:
            sessions = [s for s in sessions if s.status == status]
        return sessions

    def sessions_graded_between(self, start: datetime, end: datetime) -> list[GradingSession]:
        sessions = [
            s for s in self.sessions() if s.graded_at is not None and start <= s.graded_at <= end
        ]
        return sorted(sessions, key=lambda s: s.graded_at or s.created_at, reverse=True)

    def sessions_with_total_between(self, minimum: Decimal, maximum: Decimal) -> list[GradingSession]:
        return [
            s
            for s in self.sessions()
            if s.total_score is not None and minimum <= s.total_score <= maximum
        ]

    # ==========================================================================
    # Record Reads
    # ==========================================================================

    def find_record(self, record_id: UUID) -> QuestionGradingRecord | None:
        with self._lock:
            return self._records.get(record_id)

    def get_record(self, record_id: UUID) -> QuestionGradingRecord:
        record = self.find_record(record_id)
        if record is None:
            raise NotFoundError("QuestionGradingRecord", record_id)
        return record

    def records_for_session(self, session_id: UUID) -> list[QuestionGradingRecord]:
        """Return a session's records in exam order."""
        with self._lock:
            if session_id not in self._sessions:
                raise NotFoundError("GradingSession", session_id)
            records = [self._records[rid] for rid in self._records_by_session[session_id]]
        return sorted(records, key=lambda r: r.question.order)

    def record_for_question(self, session_id: UUID, question_id: UUID) -> QuestionGradingRecord:
        for record in self.records_for_session(session_id):
            if record.question_id == question_id:
                return record
        raise NotFoundError("QuestionGradingRecord", f"session={session_id}, question={question_id}")

    def iter_records(self, current_only: bool = True) -> Iterator[QuestionGradingRecord]:
        """
        Iterate over records, by default only those of non-superseded sessions.
        """
        with self._lock:
            if current_only:
                session_ids = list(self._active.values())
            else:
                session_ids = list(self._sessions)
            records = [
                self._records[rid]
                for sid in session_ids
                for rid in self._records_by_session.get(sid, [])
            ]
        return iter(records)

    def find_records(
        self, predicate: RecordPredicate, current_only: bool = True
    ) -> list[QuestionGradingRecord]:
        return [r for r in self.iter_records(current_only) if predicate(r)]

    def find_records_by_question(
        self, question_id: UUID, current_only: bool = True
    ) -> list[QuestionGradingRecord]:
        return self.find_records(lambda r: r.question_id == question_id, current_only)

    def find_records_by_method(
        self, method: ScoringMethod, current_only: bool = True
    ) -> list[QuestionGradingRecord]:
        records = self.find_records(lambda r: r.scoring_method == method, current_only)
        return sorted(records, key=lambda r: r.created_at, reverse=True)

    def find_pending_manual(self) -> list[QuestionGradingRecord]:
        """Unscored MANUAL records of current sessions."""
        return self.find_records(
            lambda r: r.scoring_method == ScoringMethod.MANUAL and not r.is_graded
        )

    def find_low_confidence(self, threshold: float) -> list[QuestionGradingRecord]:
        """AI-assisted records of current sessions whose confidence is below threshold."""
        records = self.find_records(
            lambda r: r.scoring_method == ScoringMethod.AI_ASSISTED
            and r.has_low_confidence(threshold)
        )
        return sorted(records, key=lambda r: r.confidence_score or 0.0)

    def find_needing_review(self, threshold: float) -> list[QuestionGradingRecord]:
        return self.find_records(lambda r: r.needs_review(threshold))
