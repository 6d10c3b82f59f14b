"""Attempt lifecycle tests: state machine, attempt limits, persistence."""

import sqlite3
from datetime import datetime, timedelta, timezone

import pytest

from coursepilot.assessment import (
    AssessmentRunner,
    AttemptSession,
    AttemptState,
    attempts_remaining,
    best_attempt,
    presentation_order,
)
from coursepilot.errors import (
    AttemptsExhaustedError,
    IncompleteSubmissionError,
    InvalidAnswerError,
    InvalidStateError,
    NoGradableQuestionsError,
)
from coursepilot.schemas import Assessment, Attempt, EssayQuestion, MatchingQuestion, TrueFalseQuestion


@pytest.fixture
def runner(store) -> AssessmentRunner:
    return AssessmentRunner(store)


def _true_false_assessment(**kwargs) -> Assessment:
    return Assessment(
        id=kwargs.pop("id", "tf"),
        questions=[
            TrueFalseQuestion(id=f"t{i}", prompt="?", correct_answer=True)
            for i in range(1, 5)
        ],
        **kwargs,
    )


class TestStateMachine:
    """Transitions of a single session."""

    def test_start_enters_in_progress(self, runner, mixed_assessment):
        session = runner.start_attempt(mixed_assessment, "u1")
        assert session.state == AttemptState.IN_PROGRESS
        assert session.attempt.attempt_number == 1

    def test_new_session_not_started(self, mixed_assessment):
        session = AttemptSession(mixed_assessment, "u1")
        assert session.state == AttemptState.NOT_STARTED
        with pytest.raises(InvalidStateError):
            session.capture_answer("q1", 2)

    def test_capture_replaces_answer(self, runner, mixed_assessment):
        session = runner.start_attempt(mixed_assessment, "u1")
        session.capture_answer("q1", 0)
        session.capture_answer("q1", 2)
        assert session.answers == {"q1": 2}
        assert session.state == AttemptState.IN_PROGRESS

    def test_clear_answer(self, runner, mixed_assessment):
        session = runner.start_attempt(mixed_assessment, "u1")
        session.capture_answer("q1", 2)
        session.clear_answer("q1")
        assert session.missing_question_ids() == ["q1", "q2"]

    def test_unknown_question(self, runner, mixed_assessment):
        session = runner.start_attempt(mixed_assessment, "u1")
        with pytest.raises(InvalidAnswerError) as exc:
            session.capture_answer("nope", 1)
        assert exc.value.identifier == "nope"

    def test_bad_answer_shape(self, runner, mixed_assessment):
        session = runner.start_attempt(mixed_assessment, "u1")
        with pytest.raises(InvalidAnswerError):
            session.capture_answer("q1", "C")

    def test_grade_before_submit(self, runner, mixed_assessment):
        session = runner.start_attempt(mixed_assessment, "u1")
        with pytest.raises(InvalidStateError):
            session.grade()

    def test_no_answers_after_submit(self, runner, mixed_assessment):
        session = runner.start_attempt(mixed_assessment, "u1")
        runner.submit_answers(session, {"q1": 2})
        assert session.state == AttemptState.SUBMITTED
        with pytest.raises(InvalidStateError):
            session.capture_answer("q1", 1)
        with pytest.raises(InvalidStateError):
            session.submit()

    def test_grade_once(self, runner, mixed_assessment):
        session = runner.start_attempt(mixed_assessment, "u1")
        runner.submit_answers(session, {"q1": 2})
        runner.grade(session)
        assert session.state == AttemptState.GRADED
        with pytest.raises(InvalidStateError):
            session.grade()


class TestSubmission:
    """Submission guard and time-limit expiry."""

    def test_require_all_blocks_incomplete(self, runner):
        assessment = _true_false_assessment(require_all_questions=True)
        session = runner.start_attempt(assessment, "u1")
        session.capture_answer("t1", True)
        with pytest.raises(IncompleteSubmissionError) as exc:
            session.submit()
        assert exc.value.missing_question_ids == ["t2", "t3", "t4"]
        assert session.state == AttemptState.IN_PROGRESS

    def test_resubmit_after_completing(self, runner):
        assessment = _true_false_assessment(require_all_questions=True)
        session = runner.start_attempt(assessment, "u1")
        with pytest.raises(IncompleteSubmissionError):
            runner.submit_answers(session, {"t1": True})
        runner.submit_answers(session, {"t2": True, "t3": True, "t4": False})
        assert session.state == AttemptState.SUBMITTED

    def test_partial_submission_allowed_by_default(self, runner):
        session = runner.start_attempt(_true_false_assessment(), "u1")
        runner.submit_answers(session, {"t1": True})
        result = runner.grade(session)
        assert result.score == 25

    def test_expiry_skips_guard(self, runner):
        assessment = _true_false_assessment(require_all_questions=True, time_limit_minutes=10)
        session = runner.start_attempt(assessment, "u1")
        session.capture_answer("t1", True)
        runner.expire(session)
        result = runner.grade(session)
        assert result.expired
        assert result.score == 25

    def test_deadline(self, runner):
        session = runner.start_attempt(_true_false_assessment(time_limit_minutes=10), "u1")
        assert session.deadline == session.attempt.started_at + timedelta(minutes=10)

    def test_untimed_has_no_deadline(self, runner, mixed_assessment):
        assert runner.start_attempt(mixed_assessment, "u1").deadline is None


class TestAttemptLimits:
    """max_attempts enforcement through the store."""

    def test_two_existing_allows_third(self, runner, store, mixed_assessment):
        store.create_attempt("u1", "a1", 3)
        store.create_attempt("u1", "a1", 3)
        session = runner.start_attempt(mixed_assessment, "u1")
        assert session.attempt.attempt_number == 3

    def test_three_existing_exhausted(self, runner, store, mixed_assessment):
        for _ in range(3):
            store.create_attempt("u1", "a1", 3)
        with pytest.raises(AttemptsExhaustedError):
            runner.start_attempt(mixed_assessment, "u1")

    def test_attempts_remaining(self, runner, mixed_assessment):
        assert runner.attempts_remaining(mixed_assessment, "u1") == 3
        runner.start_attempt(mixed_assessment, "u1")
        assert runner.attempts_remaining(mixed_assessment, "u1") == 2
        assert attempts_remaining(mixed_assessment, []) == 3


class TestGrading:
    """Grading results and their side effects."""

    def test_mixed_assessment_end_to_end(self, runner, store, mixed_assessment):
        session = runner.start_attempt(mixed_assessment, "u1")
        runner.submit_answers(session, {"q1": 2, "q2": "My essay"})
        result = runner.grade(session)

        assert result.score == 100
        assert result.passed
        assert result.needs_manual_review
        assert result.result_for("q2").needs_manual_review
        assert result.result_for("q1").correct
        assert result.time_taken_minutes >= 0

        stored = store.get_attempt_result("u1", "a1", 1)
        assert stored.passed
        assert stored.answers["q2"] == "My essay"

    def test_new_attempt_leaves_previous_result(self, runner, store, mixed_assessment):
        first = runner.start_attempt(mixed_assessment, "u1")
        runner.submit_answers(first, {"q1": 0})
        first_result = runner.grade(first)

        second = runner.start_attempt(mixed_assessment, "u1")
        runner.submit_answers(second, {"q1": 2})
        runner.grade(second)

        assert store.get_attempt_result("u1", "a1", 1) == first_result
        assert not store.get_attempt_result("u1", "a1", 1).passed
        assert store.get_attempt_result("u1", "a1", 2).passed

    def test_essay_only_rejected_before_reserving(self, runner, store):
        assessment = Assessment(id="essay-only", max_attempts=1, questions=[EssayQuestion(id="e", prompt="?")])
        with pytest.raises(NoGradableQuestionsError):
            runner.start_attempt(assessment, "u1")
        assert store.list_attempts("u1", "essay-only") == []
        assert runner.attempts_remaining(assessment, "u1") == 1

    def test_essay_only_session_cannot_be_graded(self):
        assessment = Assessment(id="essay-only", questions=[EssayQuestion(id="e", prompt="?")])
        session = AttemptSession(assessment, "u1")
        started_at = datetime.now(timezone.utc)
        session.begin(Attempt(learner_id="u1", assessment_id="essay-only", attempt_number=1, started_at=started_at))
        session.capture_answer("e", "text")
        session.submit()
        with pytest.raises(NoGradableQuestionsError):
            session.grade()
        assert session.state == AttemptState.SUBMITTED

    def test_failed_save_can_be_retried(self, runner, store, monkeypatch):
        assessment = _true_false_assessment(
            id="quiz", course_id="c1", module_id="m2", lesson_id="l-quiz", passing_score=50
        )
        session = runner.start_attempt(assessment, "u1")
        runner.submit_answers(session, {"t1": True, "t2": True})

        def locked(result):
            raise sqlite3.OperationalError("database is locked")

        with monkeypatch.context() as patch:
            patch.setattr(store, "save_attempt_result", locked)
            with pytest.raises(sqlite3.OperationalError):
                runner.grade(session)
        assert session.state == AttemptState.SUBMITTED
        assert not store.list_attempts("u1", "quiz")[0].graded

        result = runner.grade(session)
        assert session.state == AttemptState.GRADED
        assert store.get_attempt_result("u1", "quiz", 1) == result
        assert store.get_progress("u1", "l-quiz").completed

    def test_matching_answer_reloads_as_graded(self, runner, store):
        assessment = Assessment(
            id="match",
            questions=[
                MatchingQuestion(
                    id="m", prompt="Pair them", left_items=["A", "B"], right_items=["x", "y"], pairs={0: 1, 1: 0}
                )
            ],
        )
        session = runner.start_attempt(assessment, "u1")
        runner.submit_answers(session, {"m": {0: 1, 1: 0}})
        result = runner.grade(session)

        stored = store.get_attempt_result("u1", "match", 1)
        assert stored.answers == {"m": {0: 1, 1: 0}}
        assert stored == result

    def test_pass_records_lesson_completion(self, runner, store):
        assessment = _true_false_assessment(
            id="quiz", course_id="c1", module_id="m2", lesson_id="l-quiz", passing_score=50
        )
        session = runner.start_attempt(assessment, "u1")
        runner.submit_answers(session, {"t1": True, "t2": True})
        runner.grade(session)

        record = store.get_progress("u1", "l-quiz")
        assert record.completed
        assert record.module_id == "m2"

    def test_fail_records_nothing(self, runner, store):
        assessment = _true_false_assessment(
            id="quiz", course_id="c1", module_id="m2", lesson_id="l-quiz", passing_score=50
        )
        session = runner.start_attempt(assessment, "u1")
        runner.submit_answers(session, {"t1": False})
        runner.grade(session)
        assert store.get_progress("u1", "l-quiz") is None

    def test_best_attempt(self, runner, mixed_assessment):
        for answer in (0, 2, 2):
            session = runner.start_attempt(mixed_assessment, "u1")
            runner.submit_answers(session, {"q1": answer})
            runner.grade(session)
        best = best_attempt(runner.attempts(mixed_assessment, "u1"))
        assert best.attempt_number == 2
        assert best_attempt([]) is None


class TestPresentationOrder:

    def test_unshuffled_keeps_order(self, mixed_assessment):
        assert [q.id for q in presentation_order(mixed_assessment, "seed")] == ["q1", "q2"]

    def test_shuffle_is_deterministic_per_seed(self):
        assessment = _true_false_assessment(shuffle_questions=True)
        first = [q.id for q in presentation_order(assessment, "u1:tf:1")]
        again = [q.id for q in presentation_order(assessment, "u1:tf:1")]
        assert first == again
        assert sorted(first) == ["t1", "t2", "t3", "t4"]

    def test_session_uses_presentation_order(self, runner):
        assessment = _true_false_assessment(shuffle_questions=True)
        session = runner.start_attempt(assessment, "u1")
        expected = presentation_order(assessment, f"u1:tf:{session.attempt.attempt_number}")
        assert [q.id for q in session.questions] == [q.id for q in expected]
