"""ProgressStore tests: upserts, attempts and enrollments."""

import threading
from datetime import datetime, timezone

import pytest

from coursepilot.errors import AttemptAlreadyGradedError, AttemptsExhaustedError, InvalidStateError
from coursepilot.schemas import AttemptResult, ProgressRecord, QuestionResult


def _progress(lesson_id: str = "l1", **kwargs) -> ProgressRecord:
    return ProgressRecord(learner_id="u1", lesson_id=lesson_id, course_id="c1", module_id="m1", **kwargs)


def _result(attempt_number: int, score: float = 80, passed: bool = True) -> AttemptResult:
    return AttemptResult(
        learner_id="u1",
        assessment_id="a1",
        attempt_number=attempt_number,
        score=score,
        passed=passed,
        question_results=(
            QuestionResult(question_id="q1", answered=True, correct=passed, points_possible=1,
                           points_awarded=1 if passed else 0),
        ),
        answers={"q1": 2},
        submitted_at=datetime.now(timezone.utc),
    )


class TestLessonProgress:
    """Completion records keyed by (learner, lesson)."""

    def test_missing_record(self, store):
        assert store.get_progress("u1", "l1") is None

    def test_database_created(self, tmp_path):
        from coursepilot.classroom import ProgressStore
        path = tmp_path / "nested" / "progress.db"
        ProgressStore(path)
        assert path.exists()

    def test_start_lesson_creates_incomplete_record(self, store):
        record = store.start_lesson("u1", "c1", "m1", "l1")
        assert record.completed is False
        assert store.get_progress("u1", "l1") == record

    def test_start_lesson_keeps_completion(self, store):
        store.upsert_progress(_progress(completed=True, time_spent_minutes=3))
        record = store.start_lesson("u1", "c1", "m1", "l1")
        assert record.completed is True
        assert record.time_spent_minutes == 3

    def test_upsert_sets_completed_at(self, store):
        record = store.upsert_progress(_progress(completed=True))
        assert record.completed_at is not None

    def test_upsert_keeps_first_completion(self, store):
        first = store.upsert_progress(_progress(completed=True, time_spent_minutes=2))
        second = store.upsert_progress(_progress(completed=True, time_spent_minutes=3))
        assert second.completed_at == first.completed_at
        assert second.time_spent_minutes == 5

    def test_upsert_never_uncompletes(self, store):
        store.upsert_progress(_progress(completed=True))
        record = store.upsert_progress(_progress(completed=False, time_spent_minutes=1))
        assert record.completed is True

    def test_list_progress_scoped_to_course(self, store):
        store.upsert_progress(_progress("l1", completed=True))
        store.upsert_progress(_progress("l2"))
        store.upsert_progress(ProgressRecord(learner_id="u1", lesson_id="x", course_id="c2", module_id="m9"))
        store.upsert_progress(ProgressRecord(learner_id="u2", lesson_id="l1", course_id="c1", module_id="m1"))
        records = store.list_progress("u1", "c1")
        assert [r.lesson_id for r in records] == ["l1", "l2"]


class TestAttempts:
    """Count-checked attempt reservations and write-once results."""

    def test_numbers_increase(self, store):
        first = store.create_attempt("u1", "a1", 3)
        second = store.create_attempt("u1", "a1", 3)
        assert (first.attempt_number, second.attempt_number) == (1, 2)
        assert not first.graded

    def test_third_of_three_allowed(self, store):
        store.create_attempt("u1", "a1", 3)
        store.create_attempt("u1", "a1", 3)
        third = store.create_attempt("u1", "a1", 3)
        assert third.attempt_number == 3

    def test_exhausted(self, store):
        for _ in range(3):
            store.create_attempt("u1", "a1", 3)
        with pytest.raises(AttemptsExhaustedError) as exc:
            store.create_attempt("u1", "a1", 3)
        assert exc.value.identifier == "a1"
        assert exc.value.max_attempts == 3
        assert len(store.list_attempts("u1", "a1")) == 3

    def test_limits_are_per_learner(self, store):
        store.create_attempt("u1", "a1", 1)
        assert store.create_attempt("u2", "a1", 1).attempt_number == 1

    def test_concurrent_starts_respect_limit(self, store):
        outcomes = []
        lock = threading.Lock()

        def start():
            try:
                attempt = store.create_attempt("u1", "a1", 2)
                with lock:
                    outcomes.append(attempt.attempt_number)
            except AttemptsExhaustedError:
                with lock:
                    outcomes.append(None)

        threads = [threading.Thread(target=start) for _ in range(6)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert sorted(n for n in outcomes if n is not None) == [1, 2]
        assert outcomes.count(None) == 4

    def test_save_and_read_result(self, store):
        store.create_attempt("u1", "a1", 3)
        store.save_attempt_result(_result(1))

        attempts = store.list_attempts("u1", "a1")
        assert attempts[0].graded
        assert attempts[0].score == 80
        assert attempts[0].passed is True

        loaded = store.get_attempt_result("u1", "a1", 1)
        assert loaded.score == 80
        assert loaded.question_results[0].correct is True
        assert loaded.answers == {"q1": 2}

    def test_result_is_write_once(self, store):
        store.create_attempt("u1", "a1", 3)
        store.save_attempt_result(_result(1))
        with pytest.raises(AttemptAlreadyGradedError):
            store.save_attempt_result(_result(1, score=10, passed=False))
        assert store.get_attempt_result("u1", "a1", 1).score == 80

    def test_result_needs_reservation(self, store):
        with pytest.raises(InvalidStateError):
            store.save_attempt_result(_result(1))

    def test_ungraded_result_is_none(self, store):
        store.create_attempt("u1", "a1", 3)
        assert store.get_attempt_result("u1", "a1", 1) is None


class TestEnrollments:
    """Course-level progress row."""

    def test_missing(self, store):
        assert store.get_enrollment("u1", "c1") is None

    def test_update_creates(self, store):
        enrollment = store.update_enrollment("u1", "c1", 40)
        assert enrollment.progress_percentage == 40
        assert enrollment.completed_at is None
        assert enrollment.enrolled_at is not None

    def test_completion_time_kept(self, store):
        done = store.update_enrollment("u1", "c1", 100)
        again = store.update_enrollment("u1", "c1", 100)
        assert done.completed_at is not None
        assert again.completed_at == done.completed_at
        assert again.enrolled_at == done.enrolled_at
