"""
Exam Grading Engine - versioned grading sessions for exam submissions.

This package turns per-question student answers into scored records,
aggregates them into a session total, and supports regrading while
keeping every superseded session for audit.
"""

__version__ = "1.0.0"
__author__ = "Exam Grading Team"
