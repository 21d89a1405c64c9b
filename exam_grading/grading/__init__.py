"""
Record Grading Module.

The three scoring methods a record can receive: automatic for objective
questions, manual and AI-assisted for subjective ones.
"""

from exam_grading.grading.ai_assisted import AIAssistedGradingCoordinator, ExternalScorer
from exam_grading.grading.auto import AutoGrader
from exam_grading.grading.manual import ManualGradingCoordinator
from exam_grading.grading.validator import ScoreValidator

__all__ = [
    "AIAssistedGradingCoordinator",
    "AutoGrader",
    "ExternalScorer",
    "ManualGradingCoordinator",
    "ScoreValidator",
]
