"""
AI-assisted grading of subjective questions.

The scorer itself lives outside this package. This module defines the
contract it must honour, calls it with a timeout, validates whatever it
returns, and stores the result as an advisory AI_ASSISTED score that a
human can later overwrite.
"""

import logging
import threading
from concurrent.futures import Future
from concurrent.futures import TimeoutError as FuturesTimeoutError
from datetime import datetime
from typing import Any, Protocol
from uuid import UUID

from pydantic import ValidationError

from exam_grading.config import Settings, get_settings
from exam_grading.errors import (
    InvalidConfidenceError,
    InvalidScoreError,
    InvalidStateTransitionError,
    ScorerError,
)
from exam_grading.grading.validator import ScoreValidator
from exam_grading.models import (
    AIScoringOutcome,
    AIScoringRequest,
    AIScoringResponse,
    QuestionGradingRecord,
    ScoringFailure,
    ScoringMethod,
    SessionStatus,
)
from exam_grading.store import GradingStore

logger = logging.getLogger(__name__)


class ExternalScorer(Protocol):
    """Any callable that scores one free-text answer."""

    def __call__(self, request: AIScoringRequest) -> AIScoringResponse:
        ...


def _is_human_graded(record: QuestionGradingRecord) -> bool:
    return record.scoring_method == ScoringMethod.MANUAL and record.is_graded


class AIAssistedGradingCoordinator:
    """
    Records machine-proposed scores on subjective records.

    Each record is scored independently: a failing or slow scorer call
    only leaves that record ungraded. An AI score never replaces a
    manual one.
    """

    def __init__(
        self,
        store: GradingStore,
        settings: Settings | None = None,
        validator: ScoreValidator | None = None,
    ):
        self._store = store
        self._settings = settings or get_settings()
        self._validator = validator or ScoreValidator()

    def grade(
        self,
        record_id: UUID,
        score: Any,
        is_correct: bool,
        confidence: Any,
        analysis_note: str | None = None,
    ) -> QuestionGradingRecord:
        """
        Store an AI-proposed score on a record.

        Args:
            record_id: Record to grade.
            score: Proposed points, 0..question points.
            is_correct: Proposed verdict.
            confidence: Scorer certainty, 0.0..1.0.
            analysis_note: Scorer's explanation, kept as feedback.

        Returns:
            The updated record.

        Raises:
            NotFoundError: If the record does not exist.
            InvalidScoreError: If the score is out of bounds.
            InvalidConfidenceError: If the confidence is out of bounds.
            InvalidStateTransitionError: If the session is closed, the
                question is objective, or the record already has a manual score.
        """
        return self._apply(record_id, score, is_correct, confidence, analysis_note)

    def build_request(self, record: QuestionGradingRecord) -> AIScoringRequest:
        return AIScoringRequest(
            question_id=record.question_id,
            answer_text=record.answer.answer_text or "",
            reference_answer=record.question.reference_answer,
        )

    def score_with(self, record_id: UUID, scorer: ExternalScorer) -> QuestionGradingRecord:
        """
        Ask the external scorer for one record and store its proposal.

        The call runs on its own worker thread and is bounded by
        ``ai_scorer_timeout_seconds`` from the moment it starts. A timed-out
        call is abandoned, not cancelled; its late answer is discarded.
        The proposal is also discarded if the record was graded by anyone
        else while the scorer was running.

        Raises:
            ScorerError: If the scorer fails, times out, returns a malformed
                response, or the record changed during the call.
            InvalidScoreError: If the proposed score is out of bounds.
            InvalidConfidenceError: If the proposed confidence is out of bounds.
            InvalidStateTransitionError: If the record already has a manual score.
        """
        with self._store.atomic():
            record = self._store.get_record(record_id)
            self._check_not_human_graded(record)
            request = self.build_request(record)
            snapshot = record.updated_at

        response = self._call_scorer(record_id, scorer, request)

        return self._apply(
            record_id,
            score=response.score,
            is_correct=response.is_correct,
            confidence=response.confidence_score,
            analysis_note=response.analysis_note,
            expected_updated_at=snapshot,
        )

    def score_session(
        self,
        session_id: UUID,
        scorer: ExternalScorer,
        include_graded: bool = False,
    ) -> AIScoringOutcome:
        """
        Run the external scorer over a session's subjective records.

        Failures are collected per record and never stop the loop.
        Manually graded records are never sent to the scorer.

        Args:
            session_id: Session to score.
            scorer: External scorer callable.
            include_graded: Also re-score records that already have an AI score.

        Returns:
            AIScoringOutcome listing scored and failed records.

        Raises:
            NotFoundError: If the session does not exist.
            InvalidStateTransitionError: If the session is not IN_PROGRESS.
        """
        session = self._store.get_session(session_id)
        if session.status != SessionStatus.IN_PROGRESS:
            raise InvalidStateTransitionError(
                f"Session {session_id} is {session.status.value}; only IN_PROGRESS sessions can be scored",
                current=session.status,
            )

        targets = [
            r
            for r in self._store.records_for_session(session_id)
            if not r.is_objective
            and not _is_human_graded(r)
            and (include_graded or not r.is_graded)
        ]

        scored: list[UUID] = []
        failures: list[ScoringFailure] = []

        for record in targets:
            try:
                self.score_with(record.id, scorer)
                scored.append(record.id)
            except ScorerError as e:
                logger.warning("AI scoring failed: record_id=%s, error=%s", record.id, e)
                failures.append(
                    ScoringFailure(record_id=record.id, message=str(e), retryable=e.retryable)
                )
            except (InvalidScoreError, InvalidConfidenceError) as e:
                logger.warning("AI scorer proposal rejected: record_id=%s, error=%s", record.id, e)
                failures.append(ScoringFailure(record_id=record.id, message=str(e)))

        logger.info(
            "AI scoring pass finished: session_id=%s, scored=%d, failed=%d",
            session_id,
            len(scored),
            len(failures),
        )
        return AIScoringOutcome(
            session_id=session_id, scored=tuple(scored), failures=tuple(failures)
        )

    def _apply(
        self,
        record_id: UUID,
        score: Any,
        is_correct: bool,
        confidence: Any,
        analysis_note: str | None,
        expected_updated_at: datetime | None = None,
    ) -> QuestionGradingRecord:
        with self._store.atomic():
            record = self._store.get_record(record_id)
            session = self._store.get_session(record.session_id)

            if expected_updated_at is not None and (
                record.updated_at != expected_updated_at or _is_human_graded(record)
            ):
                raise ScorerError(
                    f"Record {record_id} was graded while the AI scorer was running; "
                    "proposal discarded",
                    record_id=record_id,
                )

            self._validator.validate_gradable(session, record, ScoringMethod.AI_ASSISTED)
            self._check_not_human_graded(record)
            value = self._validator.validate_score(score, record.question)
            certainty = self._validator.validate_confidence(confidence)

            record.apply_score(
                score=value,
                is_correct=is_correct,
                method=ScoringMethod.AI_ASSISTED,
                confidence=certainty,
                feedback=analysis_note,
            )
            session.touch()

        if record.has_low_confidence(self._settings.low_confidence_threshold):
            logger.warning(
                "Low-confidence AI grade: record_id=%s, score=%s, confidence=%.2f",
                record_id,
                value,
                certainty,
            )
        else:
            logger.info(
                "AI grade applied: record_id=%s, score=%s, confidence=%.2f",
                record_id,
                value,
                certainty,
            )
        return record

    def _check_not_human_graded(self, record: QuestionGradingRecord) -> None:
        if _is_human_graded(record):
            raise InvalidStateTransitionError(
                f"Record {record.id} has a manual score; AI scores cannot replace it",
                current=ScoringMethod.MANUAL,
                target=ScoringMethod.AI_ASSISTED,
            )

    def _call_scorer(
        self, record_id: UUID, scorer: ExternalScorer, request: AIScoringRequest
    ) -> AIScoringResponse:
        timeout = self._settings.ai_scorer_timeout_seconds
        future: Future = Future()

        def run() -> None:
            if not future.set_running_or_notify_cancel():
                return
            try:
                future.set_result(scorer(request))
            except Exception as e:
                future.set_exception(e)

        threading.Thread(target=run, name=f"ai-scorer-{record_id}", daemon=True).start()

        try:
            raw = future.result(timeout=timeout)
        except FuturesTimeoutError as e:
            raise ScorerError(
                f"AI scorer timed out after {timeout}s",
                record_id=record_id,
                cause=e,
                retryable=True,
            ) from e
        except ScorerError:
            raise
        except Exception as e:
            raise ScorerError(
                f"AI scorer failed: {e}", record_id=record_id, cause=e, retryable=False
            ) from e

        if isinstance(raw, AIScoringResponse):
            return raw
        try:
            return AIScoringResponse.model_validate(raw)
        except ValidationError as e:
            raise ScorerError(
                f"Malformed AI scorer response: {e.error_count()} error(s)",
                record_id=record_id,
                cause=e,
            ) from e
