"""
Regrade versioning.

State machine per submission:

    IN_PROGRESS --complete--> COMPLETED --regrade--> REGRADED (terminal)
                                            |
                                            +--> new version, IN_PROGRESS

A regrade never edits the superseded session. It appends a new version
whose records are reseeded from the original's question/answer pairs.
"""

import logging
from uuid import UUID

from exam_grading.errors import InvalidStateTransitionError
from exam_grading.models import GradingSession, Question, SessionStatus, SubmissionAnswer
from exam_grading.session import GradingSessionManager

logger = logging.getLogger(__name__)


class RegradeVersioner:
    """Supersedes a completed session with the next version."""

    def __init__(self, manager: GradingSessionManager):
        self._manager = manager
        self._store = manager.store

    def start_regrading(self, original_session_id: UUID) -> GradingSession:
        """
        Supersede a COMPLETED session and open the next version.

        Objective records of the new version are re-run through the
        AutoGrader; subjective records are reset to unscored/MANUAL.

        Args:
            original_session_id: The current COMPLETED session.

        Returns:
            The new IN_PROGRESS session at ``original.version + 1``.

        Raises:
            NotFoundError: If the session does not exist.
            InvalidStateTransitionError: If the session is IN_PROGRESS (a
                regrade is already underway) or already REGRADED.
        """
        logger.info("Regrade requested: original_session_id=%s", original_session_id)

        original = self._store.get_session(original_session_id)
        self._check_regradable(original)

        pairs: list[tuple[Question, SubmissionAnswer]] = [
            (r.question, r.answer) for r in self._store.records_for_session(original.id)
        ]

        successor = GradingSession(
            submission_id=original.submission_id,
            exam_id=original.exam_id,
            version=original.version + 1,
            previous_session_id=original.id,
        )
        records = self._manager.create_records(successor, pairs)

        # Re-checks status and currency under the store lock
        self._store.replace_current(original.id, successor, records)

        logger.info(
            "Regrade session created: new_session_id=%s, version=%d, auto_graded=%d, pending=%d",
            successor.id,
            successor.version,
            sum(1 for r in records if r.is_graded),
            sum(1 for r in records if not r.is_graded),
        )
        return successor

    def _check_regradable(self, original: GradingSession) -> None:
        if original.status == SessionStatus.IN_PROGRESS:
            raise InvalidStateTransitionError(
                f"Session {original.id} is still IN_PROGRESS; a regrade is already underway "
                "or grading has not been completed",
                current=original.status,
                target=SessionStatus.REGRADED,
            )

        if original.status == SessionStatus.REGRADED:
            current = self._store.current_session(original.submission_id)
            hint = f"; current session is {current.id}" if current is not None else ""
            raise InvalidStateTransitionError(
                f"Session {original.id} was already superseded{hint}",
                current=original.status,
                target=SessionStatus.REGRADED,
            )
