"""
Grading bundle loading.

A bundle is a single JSON document holding an exam's questions, one
submission, and optional grades to apply, so the engine can be driven
from the command line without an outer application.
"""

from enum import Enum
from pathlib import Path
from typing import Any
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from exam_grading.catalog import InMemoryCatalog
from exam_grading.models import Question, QuestionType, Submission, SubmissionAnswer, to_decimal


class BundleError(Exception):
    """Raised when a bundle file cannot be read or is malformed."""

    def __init__(self, message: str, file_path: str | Path, cause: Exception | None = None):
        self.file_path = str(file_path)
        self.cause = cause
        super().__init__(f"Failed to load bundle '{file_path}': {message}")


class GradeMethod(str, Enum):
    """How a bundle grade entry is applied."""

    MANUAL = "manual"
    AI = "ai"


class QuestionEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: UUID = Field(default_factory=uuid4)
    points: Any
    question_type: QuestionType
    correct_choice: int | None = None
    reference_answer: str | None = None
    order: int = 0


class SubmissionEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: UUID = Field(default_factory=uuid4)
    student_id: str | None = None
    answers: tuple[SubmissionAnswer, ...] = ()


class GradeEntry(BaseModel):
    """A manual or AI-assisted grade for one question of the submission."""

    model_config = ConfigDict(frozen=True)

    question_id: UUID
    method: GradeMethod = GradeMethod.MANUAL
    score: Any
    is_correct: bool
    confidence: float | None = None
    feedback: str | None = None

    @field_validator("score", mode="before")
    @classmethod
    def convert_to_decimal(cls, v: Any) -> Any:
        return to_decimal(v)


class GradingBundle(BaseModel):
    """
    Questions, a submission and the grades to apply to it.

    ``grades`` are applied to the first grading pass, ``regrades`` to the
    version opened by a regrade.
    """

    model_config = ConfigDict(frozen=True)

    exam_id: UUID = Field(default_factory=uuid4)
    questions: tuple[QuestionEntry, ...] = Field(..., min_length=1)
    submission: SubmissionEntry
    grades: tuple[GradeEntry, ...] = ()
    regrades: tuple[GradeEntry, ...] = ()

    def build_questions(self) -> list[Question]:
        return [
            Question(
                id=q.id,
                exam_id=self.exam_id,
                points=q.points,
                question_type=q.question_type,
                correct_choice=q.correct_choice,
                reference_answer=q.reference_answer,
                order=q.order,
            )
            for q in self.questions
        ]

    def build_submission(self) -> Submission:
        return Submission(
            id=self.submission.id,
            exam_id=self.exam_id,
            student_id=self.submission.student_id,
            answers=self.submission.answers,
        )

    def to_catalog(self) -> tuple[InMemoryCatalog, Submission]:
        """Build a catalog holding the bundle's questions and submission."""
        submission = self.build_submission()
        catalog = InMemoryCatalog(questions=self.build_questions(), submissions=[submission])
        return catalog, submission


def load_bundle(file_path: Path) -> GradingBundle:
    """
    Read and validate a bundle file.

    Raises:
        BundleError: If the file is missing, unreadable or invalid.
    """
    if not file_path.exists():
        raise BundleError("File does not exist", file_path)
    if not file_path.is_file():
        raise BundleError("Path is not a file", file_path)

    try:
        content = file_path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise BundleError(f"Cannot read file: {e}", file_path, cause=e) from e

    try:
        bundle = GradingBundle.model_validate_json(content)
        # Surface question/submission rule violations at load time
        bundle.build_questions()
        bundle.build_submission()
    except ValidationError as e:
        raise BundleError(f"Invalid bundle: {e}", file_path, cause=e) from e
    return bundle
