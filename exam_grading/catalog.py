"""
Read-only access to submissions and exam questions.

The grading engine never writes to the exam side. SubmissionSource is
the seam an outer application implements on top of its own storage;
InMemoryCatalog is the implementation used by the CLI and the tests.
"""

import threading
from typing import Iterable, Protocol
from uuid import UUID

from exam_grading.models import Question, Submission


class SubmissionSource(Protocol):
    """Lookup interface for finalized submissions and their exam's questions."""

    def get_submission(self, submission_id: UUID) -> Submission | None:
        ...

    def get_questions(self, exam_id: UUID) -> list[Question]:
        ...


class InMemoryCatalog:
    """Dictionary-backed SubmissionSource."""

    def __init__(
        self,
        questions: Iterable[Question] = (),
        submissions: Iterable[Submission] = (),
    ):
        self._lock = threading.Lock()
        self._questions: dict[UUID, Question] = {}
        self._submissions: dict[UUID, Submission] = {}
        for question in questions:
            self.add_question(question)
        for submission in submissions:
            self.add_submission(submission)

    def add_question(self, question: Question) -> Question:
        with self._lock:
            self._questions[question.id] = question
        return question

    def add_submission(self, submission: Submission) -> Submission:
        with self._lock:
            self._submissions[submission.id] = submission
        return submission

    def get_submission(self, submission_id: UUID) -> Submission | None:
        with self._lock:
            return self._submissions.get(submission_id)

    def get_questions(self, exam_id: UUID) -> list[Question]:
        """Return the exam's questions in exam order."""
        with self._lock:
            questions = [q for q in self._questions.values() if q.exam_id == exam_id]
        return sorted(questions, key=lambda q: q.order)
