"""
Pydantic models for the Exam Grading Engine.

These models define the schemas for:
- Questions, answers and submissions consumed from the exam side
- Grading sessions and per-question grading records
- The external AI scorer request/response contract
- Reporting aggregates

Inputs from collaborators are frozen. Sessions and records are mutable
and re-validated on every assignment.
"""

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    computed_field,
    field_validator,
    model_validator,
)


def utcnow() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def to_decimal(v: Any) -> Any:
    """Convert numeric values to Decimal for precision."""
    if v is None or isinstance(v, Decimal):
        return v
    if isinstance(v, bool):
        return v
    if isinstance(v, (int, float, str)):
        return Decimal(str(v))
    return v


# ==============================================================================
# Enumerations
# ==============================================================================


class QuestionType(str, Enum):
    """Kind of question, which decides how its records are scored."""

    OBJECTIVE = "OBJECTIVE"  # Single choice, scored by AutoGrader
    SUBJECTIVE = "SUBJECTIVE"  # Free text, scored manually or AI-assisted


class SessionStatus(str, Enum):
    """Lifecycle status of a grading session."""

    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    REGRADED = "REGRADED"  # Superseded by a newer version, read-only


class ScoringMethod(str, Enum):
    """Process that produced a record's current score."""

    AUTO = "AUTO"
    MANUAL = "MANUAL"
    AI_ASSISTED = "AI_ASSISTED"


# ==============================================================================
# Exam Side Models (read-only)
# ==============================================================================


class Question(BaseModel):
    """
    Question metadata as seen by the grading engine.

    Objective questions must carry the correct choice. The reference
    answer of a subjective question is only used as review context.
    """

    model_config = ConfigDict(frozen=True)

    id: UUID = Field(default_factory=uuid4)

    exam_id: UUID = Field(
        ...,
        description="Exam whose question set contains this question",
    )

    points: Decimal = Field(
        ...,
        gt=0,
        description="Points awarded for a fully correct answer",
    )

    question_type: QuestionType = Field(
        ...,
        description="Objective (single choice) or subjective (free text)",
    )

    correct_choice: int | None = Field(
        default=None,
        description="Correct choice number for objective questions",
    )

    reference_answer: str | None = Field(
        default=None,
        description="Model answer for subjective questions",
    )

    order: int = Field(
        default=0,
        ge=0,
        description="Position of the question in the exam",
    )

    @field_validator("points", mode="before")
    @classmethod
    def convert_to_decimal(cls, v: Any) -> Any:
        return to_decimal(v)

    @model_validator(mode="after")
    def validate_correct_choice(self) -> "Question":
        """Objective questions cannot be graded without a correct choice."""
        if self.question_type == QuestionType.OBJECTIVE and self.correct_choice is None:
            raise ValueError(f"Objective question {self.id} has no correct choice")
        return self

    @property
    def is_objective(self) -> bool:
        return self.question_type == QuestionType.OBJECTIVE


class SubmissionAnswer(BaseModel):
    """A student's answer to one question: a selected choice or free text."""

    model_config = ConfigDict(frozen=True)

    id: UUID = Field(default_factory=uuid4)
    question_id: UUID
    selected_choice: int | None = None
    answer_text: str | None = None


class Submission(BaseModel):
    """
    A student's finalized set of answers for one exam instance.

    Each question may be answered at most once.
    """

    model_config = ConfigDict(frozen=True)

    id: UUID = Field(default_factory=uuid4)
    exam_id: UUID
    student_id: str | None = None
    answers: tuple[SubmissionAnswer, ...] = ()
    submitted_at: datetime = Field(default_factory=utcnow)

    @model_validator(mode="after")
    def validate_unique_questions(self) -> "Submission":
        """Ensure no question is answered twice."""
        seen: set[UUID] = set()
        for answer in self.answers:
            if answer.question_id in seen:
                raise ValueError(f"Question {answer.question_id} is answered more than once")
            seen.add(answer.question_id)
        return self


# ==============================================================================
# Grading Models
# ==============================================================================


class GradingSession(BaseModel):
    """
    One versioned grading attempt for a submission.

    Sessions form an append-only chain per submission. Only the highest
    version that is not REGRADED is current.
    """

    model_config = ConfigDict(validate_assignment=True)

    id: UUID = Field(default_factory=uuid4)
    submission_id: UUID
    exam_id: UUID

    status: SessionStatus = Field(default=SessionStatus.IN_PROGRESS)

    version: int = Field(
        default=1,
        ge=1,
        description="Position in the submission's regrade chain, starting at 1",
    )

    total_score: Decimal | None = Field(
        default=None,
        description="Sum of record scores, set on completion",
    )

    scoring_comment: str | None = None

    graded_at: datetime | None = Field(
        default=None,
        description="When grading of this version was completed",
    )

    previous_session_id: UUID | None = Field(
        default=None,
        description="Session this version superseded",
    )

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @field_validator("total_score", mode="before")
    @classmethod
    def convert_to_decimal(cls, v: Any) -> Any:
        return to_decimal(v)

    @property
    def is_completed(self) -> bool:
        return self.status == SessionStatus.COMPLETED

    @property
    def is_in_progress(self) -> bool:
        return self.status == SessionStatus.IN_PROGRESS

    @property
    def is_superseded(self) -> bool:
        return self.status == SessionStatus.REGRADED

    @property
    def is_regrade(self) -> bool:
        """Whether this session was produced by a regrade request."""
        return self.version > 1

    def touch(self) -> None:
        self.updated_at = utcnow()


class QuestionGradingRecord(BaseModel):
    """
    The scored outcome for one question within a session.

    A record moves between scoring methods over its lifetime
    (for example AI_ASSISTED to MANUAL), so the method is a field
    rather than a subtype. Confidence is only kept for AUTO and
    AI_ASSISTED scores.
    """

    model_config = ConfigDict(validate_assignment=True)

    id: UUID = Field(default_factory=uuid4)
    session_id: UUID
    question: Question
    answer: SubmissionAnswer

    score: Decimal | None = Field(
        default=None,
        ge=0,
        description="Awarded points, unset until graded",
    )

    is_correct: bool | None = None

    scoring_method: ScoringMethod = Field(default=ScoringMethod.MANUAL)

    confidence_score: float | None = Field(
        default=None,
        ge=0.0,
        le=1.0,
        description="Scorer certainty for AUTO and AI_ASSISTED scores",
    )

    feedback: str | None = None
    graded_at: datetime | None = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @field_validator("score", mode="before")
    @classmethod
    def convert_to_decimal(cls, v: Any) -> Any:
        return to_decimal(v)

    @model_validator(mode="after")
    def validate_score_range(self) -> "QuestionGradingRecord":
        """Ensure the awarded score never exceeds the question's points."""
        if self.score is not None and self.score > self.question.points:
            raise ValueError(
                f"Score ({self.score}) cannot exceed question points ({self.question.points})"
            )
        if self.answer.question_id != self.question.id:
            raise ValueError("Answer does not belong to the record's question")
        return self

    @property
    def question_id(self) -> UUID:
        return self.question.id

    @property
    def is_objective(self) -> bool:
        return self.question.is_objective

    @property
    def is_graded(self) -> bool:
        return self.score is not None

    @property
    def score_ratio(self) -> Decimal:
        """Fraction of the question's points awarded, 0 when ungraded."""
        if self.score is None:
            return Decimal(0)
        return self.score / self.question.points

    def has_low_confidence(self, threshold: float) -> bool:
        return self.confidence_score is not None and self.confidence_score < threshold

    def needs_review(self, threshold: float) -> bool:
        """
        Whether a human should look at this record.

        True for AI-assisted scores below the confidence threshold and
        for partial credit.
        """
        if self.scoring_method == ScoringMethod.AI_ASSISTED and self.has_low_confidence(threshold):
            return True
        return self.score is not None and 0 < self.score < self.question.points

    def apply_score(
        self,
        score: Decimal,
        is_correct: bool,
        method: ScoringMethod,
        confidence: float | None = None,
        feedback: str | None = None,
    ) -> None:
        """Overwrite the scoring fields in one step; no merge with prior values."""
        now = utcnow()
        self.score = score
        self.is_correct = is_correct
        self.scoring_method = method
        self.confidence_score = confidence
        self.feedback = feedback
        self.graded_at = now
        self.updated_at = now

    def reset(self) -> None:
        """Return the record to the unscored, pending-manual state."""
        self.score = None
        self.is_correct = None
        self.scoring_method = ScoringMethod.MANUAL
        self.confidence_score = None
        self.feedback = None
        self.graded_at = None
        self.updated_at = utcnow()


# ==============================================================================
# External AI Scorer Contract
# ==============================================================================


class AIScoringRequest(BaseModel):
    """Request sent to the external AI scorer for one free-text answer."""

    model_config = ConfigDict(frozen=True)

    question_id: UUID
    answer_text: str
    reference_answer: str | None = None


class AIScoringResponse(BaseModel):
    """
    Response returned by the external AI scorer.

    Score and confidence bounds are checked by the coordinator against
    the question before anything is stored.
    """

    model_config = ConfigDict(frozen=True)

    score: Decimal
    is_correct: bool
    confidence_score: float
    analysis_note: str | None = None

    @field_validator("score", mode="before")
    @classmethod
    def convert_to_decimal(cls, v: Any) -> Any:
        return to_decimal(v)


class ScoringFailure(BaseModel):
    """A single record the external scorer could not grade."""

    model_config = ConfigDict(frozen=True)

    record_id: UUID
    message: str
    retryable: bool = False


class AIScoringOutcome(BaseModel):
    """Result of running the external scorer over a session's pending records."""

    model_config = ConfigDict(frozen=True)

    session_id: UUID
    scored: tuple[UUID, ...] = ()
    failures: tuple[ScoringFailure, ...] = ()

    @computed_field  # type: ignore[prop-decorator]
    @property
    def failed_count(self) -> int:
        return len(self.failures)


# ==============================================================================
# Reporting Models
# ==============================================================================


class ScoreStatistics(BaseModel):
    """Score summary for one session."""

    model_config = ConfigDict(frozen=True)

    total_score: Decimal
    max_possible_score: Decimal
    average_score: float
    correct_count: int
    total_count: int

    @computed_field  # type: ignore[prop-decorator]
    @property
    def percentage_score(self) -> float:
        """Calculate overall percentage score."""
        if self.max_possible_score == 0:
            return 0.0
        return float(self.total_score / self.max_possible_score * 100)


class MethodStatistics(BaseModel):
    """Aggregate figures for records scored by one method across current sessions."""

    model_config = ConfigDict(frozen=True)

    scoring_method: ScoringMethod
    count: int
    correct_count: int
    average_score: float
    average_confidence: float | None = None
