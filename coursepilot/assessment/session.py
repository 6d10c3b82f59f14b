"""
Attempt sessions - The NotStarted -> InProgress -> Submitted -> Graded lifecycle.

Provides:
- AttemptSession: local answer capture and state transitions for one attempt
- AssessmentRunner: starts attempts against the progress store, grades
  them, and records a passing attempt as lesson completion
"""

import logging
import random
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Mapping, Optional

from coursepilot.classroom.progress import ProgressStoreAdapter
from coursepilot.errors import (
    IncompleteSubmissionError,
    InvalidAnswerError,
    InvalidStateError,
    NoGradableQuestionsError,
)
from coursepilot.schemas import Assessment, Attempt, AttemptResult, ProgressRecord

from .scoring import grade_answers, validate_answer


logger = logging.getLogger(__name__)


class AttemptState(str, Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    SUBMITTED = "submitted"
    GRADED = "graded"


def presentation_order(assessment: Assessment, seed: Optional[str] = None) -> list:
    """Questions in display order; shuffled per seed when the assessment asks for it."""
    questions = list(assessment.questions)
    if assessment.shuffle_questions:
        random.Random(seed).shuffle(questions)
    return questions


def attempts_remaining(assessment: Assessment, attempts: list[Attempt]) -> int:
    return max(assessment.max_attempts - len(attempts), 0)


def best_attempt(attempts: list[Attempt]) -> Optional[Attempt]:
    """Highest-scoring graded attempt; earliest wins ties."""
    graded = [a for a in attempts if a.graded and a.score is not None]
    if not graded:
        return None
    return max(graded, key=lambda a: (a.score, -a.attempt_number))


class AttemptSession:
    """
    One learner's pass through an assessment.

    Answers accumulate locally until submission. The session never reads
    a clock to end itself; the caller's timer calls `expire()`.
    """

    def __init__(self, assessment: Assessment, learner_id: str):
        self.assessment = assessment
        self.learner_id = learner_id
        self.state = AttemptState.NOT_STARTED
        self.attempt: Optional[Attempt] = None
        self.questions: list = []
        self.submitted_at: Optional[datetime] = None
        self.expired = False
        self.result: Optional[AttemptResult] = None
        self._answers: dict[str, Any] = {}

    def _require(self, state: AttemptState, action: str):
        if self.state != state:
            raise InvalidStateError(
                f"Cannot {action} attempt on {self.assessment.id} while {self.state.value}",
                self.assessment.id,
            )

    # -------------------------------------------------------------------------
    # Transitions
    # -------------------------------------------------------------------------

    def begin(self, attempt: Attempt):
        """NotStarted -> InProgress, once the attempt slot is reserved."""
        self._require(AttemptState.NOT_STARTED, "begin")
        self.attempt = attempt
        seed = f"{self.learner_id}:{self.assessment.id}:{attempt.attempt_number}"
        self.questions = presentation_order(self.assessment, seed)
        self.state = AttemptState.IN_PROGRESS

    def capture_answer(self, question_id: str, answer: Any):
        """
        Record or replace the answer to one question.

        Raises:
            InvalidAnswerError: Unknown question or wrong answer shape
        """
        self._require(AttemptState.IN_PROGRESS, "answer")
        question = self.assessment.get_question(question_id)
        if question is None:
            raise InvalidAnswerError(
                f"Question {question_id} is not part of assessment {self.assessment.id}",
                question_id,
            )
        self._answers[question_id] = validate_answer(question, answer)

    def clear_answer(self, question_id: str):
        self._require(AttemptState.IN_PROGRESS, "answer")
        self._answers.pop(question_id, None)

    def missing_question_ids(self) -> list[str]:
        return [q.id for q in self.assessment.questions if q.id not in self._answers]

    def submit(self):
        """
        InProgress -> Submitted on explicit submission.

        Raises:
            IncompleteSubmissionError: If every answer is required and some
                are missing; the session stays in progress
        """
        self._require(AttemptState.IN_PROGRESS, "submit")
        missing = self.missing_question_ids()
        if self.assessment.require_all_questions and missing:
            raise IncompleteSubmissionError(self.assessment.id, missing)
        self._close()

    def expire(self):
        """InProgress -> Submitted when the time limit runs out, with whatever was answered."""
        self._require(AttemptState.IN_PROGRESS, "expire")
        self.expired = True
        self._close()

    def _close(self):
        self.submitted_at = datetime.now(timezone.utc)
        self.state = AttemptState.SUBMITTED

    def score(self) -> AttemptResult:
        """
        Result of a submitted attempt, leaving the session submitted.

        Raises:
            NoGradableQuestionsError: If nothing can be auto-graded
        """
        self._require(AttemptState.SUBMITTED, "grade")
        grade = grade_answers(self.assessment, self._answers)

        started_at = self.attempt.started_at
        return AttemptResult(
            learner_id=self.learner_id,
            assessment_id=self.assessment.id,
            attempt_number=self.attempt.attempt_number,
            score=grade.score,
            passed=grade.passed,
            question_results=tuple(grade.question_results),
            answers=dict(self._answers),
            needs_manual_review=grade.needs_manual_review,
            expired=self.expired,
            started_at=started_at,
            submitted_at=self.submitted_at,
            time_taken_minutes=round((self.submitted_at - started_at).total_seconds() / 60, 2),
        )

    def mark_graded(self, result: AttemptResult):
        """Submitted -> Graded, once `result` is safely stored."""
        self._require(AttemptState.SUBMITTED, "grade")
        self.result = result
        self.state = AttemptState.GRADED

    def grade(self) -> AttemptResult:
        """
        Submitted -> Graded.

        Raises:
            NoGradableQuestionsError: If nothing can be auto-graded
        """
        result = self.score()
        self.mark_graded(result)
        return result

    # -------------------------------------------------------------------------
    # Accessors
    # -------------------------------------------------------------------------

    @property
    def answers(self) -> dict[str, Any]:
        return dict(self._answers)

    @property
    def deadline(self) -> Optional[datetime]:
        """When the caller should call `expire()`, if the assessment is timed."""
        if self.attempt is None or self.assessment.time_limit_minutes is None:
            return None
        return self.attempt.started_at + timedelta(minutes=self.assessment.time_limit_minutes)


class AssessmentRunner:
    """Start, submit and grade attempts against a progress store."""

    def __init__(self, store: ProgressStoreAdapter):
        self.store = store

    def start_attempt(self, assessment: Assessment, learner_id: str) -> AttemptSession:
        """
        Reserve the next attempt and open a session for it.

        Raises:
            NoGradableQuestionsError: If nothing can be auto-graded; no
                attempt is used up
            AttemptsExhaustedError: If `max_attempts` attempts already exist
        """
        if assessment.gradable_points <= 0:
            raise NoGradableQuestionsError(
                f"Assessment {assessment.id} has no auto-gradable questions",
                assessment.id,
            )
        session = AttemptSession(assessment, learner_id)
        attempt = self.store.create_attempt(learner_id, assessment.id, assessment.max_attempts)
        session.begin(attempt)
        return session

    def submit_answers(self, session: AttemptSession, answers: Optional[Mapping[str, Any]] = None):
        """Capture any given answers, then submit."""
        for question_id, answer in (answers or {}).items():
            session.capture_answer(question_id, answer)
        session.submit()

    def expire(self, session: AttemptSession):
        session.expire()

    def grade(self, session: AttemptSession) -> AttemptResult:
        """
        Grade a submitted session and persist the result.

        The session only becomes graded once the result is stored, so a
        failed save can be retried. A pass on an assessment linked to a
        lesson is recorded as that lesson's completion.
        """
        result = session.score()
        self.store.save_attempt_result(result)
        session.mark_graded(result)
        logger.info(
            f"Graded attempt {result.attempt_number} of {result.assessment_id} for "
            f"{result.learner_id}: {result.score:.1f} ({'passed' if result.passed else 'failed'})"
        )

        assessment = session.assessment
        if result.passed and assessment.lesson_id:
            self.store.upsert_progress(ProgressRecord(
                learner_id=result.learner_id,
                lesson_id=assessment.lesson_id,
                course_id=assessment.course_id,
                module_id=assessment.module_id,
                completed=True,
                time_spent_minutes=result.time_taken_minutes or 0,
            ))
        return result

    def attempts(self, assessment: Assessment, learner_id: str) -> list[Attempt]:
        return self.store.list_attempts(learner_id, assessment.id)

    def attempts_remaining(self, assessment: Assessment, learner_id: str) -> int:
        return attempts_remaining(assessment, self.attempts(assessment, learner_id))
