"""
Error taxonomy for CoursePilot.

Every error carries the offending identifier so callers can render a
message without inspecting engine internals.
"""

from typing import Optional


class CoursePilotError(Exception):
    """Base class for all engine errors."""

    def __init__(self, message: str, identifier: Optional[str] = None):
        super().__init__(message)
        self.identifier = identifier


# -----------------------------------------------------------------------------
# Content / progression
# -----------------------------------------------------------------------------

class MalformedContentError(CoursePilotError):
    """Content tree violates ordering or parent constraints."""


class ContentNotFoundError(CoursePilotError):
    """Course or assessment id unknown to the content provider."""


class EmptyCourseError(CoursePilotError):
    """Course has no lessons to navigate."""


class OutOfRangeError(CoursePilotError):
    """Position indices do not address a lesson in the tree."""

    def __init__(self, module_index: int, lesson_index: int, identifier: Optional[str] = None):
        super().__init__(
            f"Position ({module_index}, {lesson_index}) is out of range for course {identifier}",
            identifier,
        )
        self.module_index = module_index
        self.lesson_index = lesson_index


class UnknownLessonError(CoursePilotError):
    """Lesson id does not belong to the course tree."""


# -----------------------------------------------------------------------------
# Assessment
# -----------------------------------------------------------------------------

class IncompleteSubmissionError(CoursePilotError):
    """Submission is missing answers and the assessment requires all of them."""

    def __init__(self, assessment_id: str, missing_question_ids: list[str]):
        super().__init__(
            f"Assessment {assessment_id} requires answers for: {', '.join(missing_question_ids)}",
            assessment_id,
        )
        self.missing_question_ids = missing_question_ids


class AttemptsExhaustedError(CoursePilotError):
    """Learner has used every allowed attempt."""

    def __init__(self, assessment_id: str, learner_id: str, max_attempts: int):
        super().__init__(
            f"Learner {learner_id} has used all {max_attempts} attempts for assessment {assessment_id}",
            assessment_id,
        )
        self.learner_id = learner_id
        self.max_attempts = max_attempts


class NoGradableQuestionsError(CoursePilotError):
    """Assessment has no auto-gradable questions, so no score exists."""


class InvalidAnswerError(CoursePilotError):
    """Answer has the wrong shape for its question, or names an unknown question."""


class InvalidStateError(CoursePilotError):
    """Attempt state machine transition is not allowed from the current state."""


class AttemptAlreadyGradedError(CoursePilotError):
    """Attempt results are immutable once written."""
