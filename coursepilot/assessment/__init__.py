"""
CoursePilot Assessment - Grading rules and attempt lifecycle.

This module provides:
- Scoring: per-question-type rules and assessment totals
- AttemptSession / AssessmentRunner: attempt state machine and persistence
"""

from .scoring import (
    Grade,
    SCORERS,
    grade_answers,
    normalize_text,
    score_question,
    validate_answer,
)

from .session import (
    AttemptState,
    AttemptSession,
    AssessmentRunner,
    attempts_remaining,
    best_attempt,
    presentation_order,
)

__all__ = [
    # Scoring
    "Grade",
    "SCORERS",
    "grade_answers",
    "normalize_text",
    "score_question",
    "validate_answer",
    # Session
    "AttemptState",
    "AttemptSession",
    "AssessmentRunner",
    "attempts_remaining",
    "best_attempt",
    "presentation_order",
]
