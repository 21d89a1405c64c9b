"""
Grading engine - wires the grading components around one store.
"""

from exam_grading.aggregation import ScoreAggregator
from exam_grading.catalog import SubmissionSource
from exam_grading.config import Settings, get_settings
from exam_grading.grading import (
    AIAssistedGradingCoordinator,
    AutoGrader,
    ManualGradingCoordinator,
    ScoreValidator,
)
from exam_grading.regrade import RegradeVersioner
from exam_grading.session import GradingSessionManager
from exam_grading.store import GradingStore


class GradingEngine:
    """
    Single entry point for an outer application.

    Every component shares the same store, so the current-session rule
    and record locking hold across all of them.
    """

    def __init__(
        self,
        source: SubmissionSource,
        settings: Settings | None = None,
        store: GradingStore | None = None,
    ):
        """
        Initialize the grading engine.

        Args:
            source: Read-only access to submissions and questions.
            settings: Configuration settings. Uses global settings if not provided.
            store: Existing store to attach to. A fresh one is created if omitted.
        """
        self.settings = settings or get_settings()
        self.store = store or GradingStore()

        validator = ScoreValidator()
        self.aggregator = ScoreAggregator(self.store, self.settings)
        self.sessions = GradingSessionManager(
            source,
            self.store,
            settings=self.settings,
            auto_grader=AutoGrader(),
            aggregator=self.aggregator,
        )
        self.manual = ManualGradingCoordinator(self.store, validator)
        self.ai = AIAssistedGradingCoordinator(self.store, self.settings, validator)
        self.regrader = RegradeVersioner(self.sessions)
