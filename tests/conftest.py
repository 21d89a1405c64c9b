"""
Pytest configuration and fixtures.

Provides common test fixtures for all test modules.
"""

import json
import tempfile
from decimal import Decimal
from pathlib import Path
from typing import Any, Generator
from uuid import UUID, uuid4

import pytest

from exam_grading.catalog import InMemoryCatalog
from exam_grading.config import Settings
from exam_grading.engine import GradingEngine
from exam_grading.models import Question, QuestionType, Submission, SubmissionAnswer
from exam_grading.session import GradingSessionManager
from exam_grading.store import GradingStore


# ==============================================================================
# Directory Fixtures
# ==============================================================================


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


# ==============================================================================
# Settings Fixtures
# ==============================================================================


@pytest.fixture
def test_settings() -> Settings:
    """Create test settings with a short scorer timeout."""
    return Settings(
        low_confidence_threshold=0.8,
        ai_scorer_timeout_seconds=2.0,
        score_decimal_places=2,
        log_level="DEBUG",
    )


# ==============================================================================
# Exam Fixtures
# ==============================================================================


@pytest.fixture
def exam_id() -> UUID:
    return uuid4()


@pytest.fixture
def objective_questions(exam_id: UUID) -> list[Question]:
    """Three single-choice questions worth 10 points each, correct choice 2."""
    return [
        Question(
            exam_id=exam_id,
            points=Decimal("10"),
            question_type=QuestionType.OBJECTIVE,
            correct_choice=2,
            order=i,
        )
        for i in range(3)
    ]


@pytest.fixture
def subjective_questions(exam_id: UUID) -> list[Question]:
    """Two free-text questions worth 20 points each."""
    return [
        Question(
            exam_id=exam_id,
            points=Decimal("20"),
            question_type=QuestionType.SUBJECTIVE,
            reference_answer="Photosynthesis converts light energy into chemical energy.",
            order=3 + i,
        )
        for i in range(2)
    ]


@pytest.fixture
def sample_submission(
    exam_id: UUID,
    objective_questions: list[Question],
    subjective_questions: list[Question],
) -> Submission:
    """
    Submission with one correct, one wrong and one unanswered objective
    answer, plus two free-text answers.
    """
    first, second, third = objective_questions
    return Submission(
        exam_id=exam_id,
        student_id="student-42",
        answers=(
            SubmissionAnswer(question_id=first.id, selected_choice=2),
            SubmissionAnswer(question_id=second.id, selected_choice=1),
            SubmissionAnswer(question_id=third.id, selected_choice=None),
            SubmissionAnswer(
                question_id=subjective_questions[0].id,
                answer_text="Plants turn sunlight into sugar.",
            ),
            SubmissionAnswer(
                question_id=subjective_questions[1].id,
                answer_text="Chlorophyll absorbs light.",
            ),
        ),
    )


@pytest.fixture
def catalog(
    objective_questions: list[Question],
    subjective_questions: list[Question],
    sample_submission: Submission,
) -> InMemoryCatalog:
    return InMemoryCatalog(
        questions=objective_questions + subjective_questions,
        submissions=[sample_submission],
    )


# ==============================================================================
# Engine Fixtures
# ==============================================================================


@pytest.fixture
def store() -> GradingStore:
    return GradingStore()


@pytest.fixture
def manager(
    catalog: InMemoryCatalog, store: GradingStore, test_settings: Settings
) -> GradingSessionManager:
    return GradingSessionManager(catalog, store, settings=test_settings)


@pytest.fixture
def engine(catalog: InMemoryCatalog, test_settings: Settings) -> GradingEngine:
    return GradingEngine(catalog, test_settings)


# ==============================================================================
# Bundle Fixtures
# ==============================================================================


@pytest.fixture
def sample_bundle_data() -> dict[str, Any]:
    """A bundle with two objective and one subjective question."""
    q1, q2, q3 = (str(uuid4()) for _ in range(3))
    return {
        "questions": [
            {"id": q1, "points": 5, "question_type": "OBJECTIVE", "correct_choice": 3, "order": 1},
            {"id": q2, "points": 5, "question_type": "OBJECTIVE", "correct_choice": 1, "order": 2},
            {
                "id": q3,
                "points": 10,
                "question_type": "SUBJECTIVE",
                "reference_answer": "Newton's second law: F = ma",
                "order": 3,
            },
        ],
        "submission": {
            "student_id": "student-7",
            "answers": [
                {"question_id": q1, "selected_choice": 3},
                {"question_id": q2, "selected_choice": 4},
                {"question_id": q3, "answer_text": "Force equals mass times acceleration"},
            ],
        },
        "grades": [
            {
                "question_id": q3,
                "method": "ai",
                "score": 7,
                "is_correct": True,
                "confidence": 0.65,
                "feedback": "Correct statement, no units discussed",
            }
        ],
        "regrades": [
            {
                "question_id": q3,
                "score": "9.5",
                "is_correct": True,
                "feedback": "Reviewed by instructor",
            }
        ],
    }


@pytest.fixture
def sample_bundle_file(temp_dir: Path, sample_bundle_data: dict[str, Any]) -> Path:
    file_path = temp_dir / "bundle.json"
    file_path.write_text(json.dumps(sample_bundle_data), encoding="utf-8")
    return file_path
