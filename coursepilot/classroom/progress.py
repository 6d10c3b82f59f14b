"""
ProgressStore - Learner progress in a SQLite database.

Stores per-learner state separately from course content:
- Lesson completion records (one per learner and lesson)
- Assessment attempts and their results
- Course enrollments

Writes that must not race are single statements or IMMEDIATE
transactions, so concurrent callers cannot duplicate a record or
exceed an attempt limit.
"""

import json
import logging
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Protocol

from coursepilot.config import DEFAULT_PROGRESS_DB
from coursepilot.errors import (
    AttemptAlreadyGradedError,
    AttemptsExhaustedError,
    InvalidStateError,
)
from coursepilot.schemas import Attempt, AttemptResult, Enrollment, ProgressRecord


logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _parse_dt(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


class ProgressStoreAdapter(Protocol):
    """Storage contract the progression engine and assessment runner rely on."""

    def get_progress(self, learner_id: str, lesson_id: str) -> Optional[ProgressRecord]: ...

    def upsert_progress(self, record: ProgressRecord) -> ProgressRecord: ...

    def list_progress(self, learner_id: str, course_id: str) -> list[ProgressRecord]: ...

    def create_attempt(self, learner_id: str, assessment_id: str, max_attempts: int) -> Attempt: ...

    def list_attempts(self, learner_id: str, assessment_id: str) -> list[Attempt]: ...

    def save_attempt_result(self, result: AttemptResult) -> AttemptResult: ...


class ProgressStore:
    """
    SQLite implementation of ProgressStoreAdapter.

    Each method opens its own connection, so one store may be shared
    between threads.
    """

    def __init__(self, db_path: Optional[Path] = None, timeout: float = 10.0):
        """
        Initialize progress store.

        Args:
            db_path: Path to progress.db (default: ~/.coursepilot/progress.db)
            timeout: Seconds to wait on a locked database
        """
        self.db_path = Path(db_path) if db_path else DEFAULT_PROGRESS_DB
        self.timeout = timeout
        self._ensure_database()

    def _ensure_database(self):
        """Create database and tables if they don't exist."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        conn = sqlite3.connect(str(self.db_path), timeout=self.timeout)
        try:
            conn.executescript("""
                CREATE TABLE IF NOT EXISTS lesson_progress (
                    learner_id TEXT NOT NULL,
                    lesson_id TEXT NOT NULL,
                    course_id TEXT NOT NULL,
                    module_id TEXT NOT NULL,
                    completed INTEGER NOT NULL DEFAULT 0,
                    completed_at TEXT,
                    time_spent_minutes REAL NOT NULL DEFAULT 0,
                    PRIMARY KEY (learner_id, lesson_id)
                );

                CREATE TABLE IF NOT EXISTS assessment_attempts (
                    learner_id TEXT NOT NULL,
                    assessment_id TEXT NOT NULL,
                    attempt_number INTEGER NOT NULL,
                    started_at TEXT NOT NULL,
                    completed_at TEXT,
                    score REAL,
                    passed INTEGER,
                    result JSON,
                    UNIQUE (learner_id, assessment_id, attempt_number)
                );

                CREATE TABLE IF NOT EXISTS enrollments (
                    learner_id TEXT NOT NULL,
                    course_id TEXT NOT NULL,
                    enrolled_at TEXT NOT NULL,
                    last_accessed_at TEXT,
                    progress_percentage INTEGER NOT NULL DEFAULT 0,
                    completed_at TEXT,
                    PRIMARY KEY (learner_id, course_id)
                );

                CREATE INDEX IF NOT EXISTS idx_lesson_progress_course
                ON lesson_progress(learner_id, course_id);
            """)
            conn.commit()
        finally:
            conn.close()

    def _get_connection(self) -> sqlite3.Connection:
        """Get a new database connection."""
        conn = sqlite3.connect(str(self.db_path), timeout=self.timeout)
        conn.row_factory = sqlite3.Row
        return conn

    # -------------------------------------------------------------------------
    # Lesson Progress
    # -------------------------------------------------------------------------

    @staticmethod
    def _row_to_progress(row: sqlite3.Row) -> ProgressRecord:
        return ProgressRecord(
            learner_id=row["learner_id"],
            lesson_id=row["lesson_id"],
            course_id=row["course_id"],
            module_id=row["module_id"],
            completed=bool(row["completed"]),
            completed_at=_parse_dt(row["completed_at"]),
            time_spent_minutes=row["time_spent_minutes"],
        )

    def get_progress(self, learner_id: str, lesson_id: str) -> Optional[ProgressRecord]:
        """Get the progress record for one lesson, or None before first interaction."""
        conn = self._get_connection()
        try:
            row = conn.execute(
                """SELECT * FROM lesson_progress
                   WHERE learner_id = ? AND lesson_id = ?""",
                (learner_id, lesson_id)
            ).fetchone()
            return self._row_to_progress(row) if row else None
        finally:
            conn.close()

    def start_lesson(self, learner_id: str, course_id: str, module_id: str, lesson_id: str) -> ProgressRecord:
        """Create an incomplete record on first interaction; existing records are untouched."""
        conn = self._get_connection()
        try:
            conn.execute(
                """INSERT INTO lesson_progress (learner_id, lesson_id, course_id, module_id)
                   VALUES (?, ?, ?, ?)
                   ON CONFLICT(learner_id, lesson_id) DO NOTHING""",
                (learner_id, lesson_id, course_id, module_id)
            )
            conn.commit()
            row = conn.execute(
                "SELECT * FROM lesson_progress WHERE learner_id = ? AND lesson_id = ?",
                (learner_id, lesson_id)
            ).fetchone()
            return self._row_to_progress(row)
        finally:
            conn.close()

    def upsert_progress(self, record: ProgressRecord) -> ProgressRecord:
        """
        Atomically merge a record into the (learner, lesson) row.

        On conflict, `completed` never reverts to false, the first
        `completed_at` is kept, and `time_spent_minutes` accumulates.

        Returns:
            The stored record after the merge
        """
        completed_at = record.completed_at
        if record.completed and completed_at is None:
            completed_at = _now()

        conn = self._get_connection()
        try:
            conn.execute(
                """INSERT INTO lesson_progress
                     (learner_id, lesson_id, course_id, module_id,
                      completed, completed_at, time_spent_minutes)
                   VALUES (?, ?, ?, ?, ?, ?, ?)
                   ON CONFLICT(learner_id, lesson_id) DO UPDATE SET
                     completed = MAX(completed, excluded.completed),
                     completed_at = COALESCE(completed_at, excluded.completed_at),
                     time_spent_minutes = time_spent_minutes + excluded.time_spent_minutes""",
                (
                    record.learner_id,
                    record.lesson_id,
                    record.course_id,
                    record.module_id,
                    int(record.completed),
                    completed_at.isoformat() if completed_at else None,
                    record.time_spent_minutes,
                )
            )
            conn.commit()
            row = conn.execute(
                "SELECT * FROM lesson_progress WHERE learner_id = ? AND lesson_id = ?",
                (record.learner_id, record.lesson_id)
            ).fetchone()
            return self._row_to_progress(row)
        finally:
            conn.close()

    def list_progress(self, learner_id: str, course_id: str) -> list[ProgressRecord]:
        """Get all progress records of a learner within one course."""
        conn = self._get_connection()
        try:
            cursor = conn.execute(
                """SELECT * FROM lesson_progress
                   WHERE learner_id = ? AND course_id = ?
                   ORDER BY rowid""",
                (learner_id, course_id)
            )
            return [self._row_to_progress(row) for row in cursor.fetchall()]
        finally:
            conn.close()

    # -------------------------------------------------------------------------
    # Assessment Attempts
    # -------------------------------------------------------------------------

    @staticmethod
    def _row_to_attempt(row: sqlite3.Row) -> Attempt:
        return Attempt(
            learner_id=row["learner_id"],
            assessment_id=row["assessment_id"],
            attempt_number=row["attempt_number"],
            started_at=_parse_dt(row["started_at"]),
            completed_at=_parse_dt(row["completed_at"]),
            score=row["score"],
            passed=None if row["passed"] is None else bool(row["passed"]),
        )

    def create_attempt(self, learner_id: str, assessment_id: str, max_attempts: int) -> Attempt:
        """
        Reserve the next attempt number, refusing once `max_attempts` exist.

        The count check and the insert share one IMMEDIATE transaction.

        Raises:
            AttemptsExhaustedError: If the learner has no attempts left
        """
        conn = self._get_connection()
        conn.isolation_level = None
        try:
            conn.execute("BEGIN IMMEDIATE")
            row = conn.execute(
                """SELECT COUNT(*) AS n, COALESCE(MAX(attempt_number), 0) AS last
                   FROM assessment_attempts
                   WHERE learner_id = ? AND assessment_id = ?""",
                (learner_id, assessment_id)
            ).fetchone()
            if row["n"] >= max_attempts:
                conn.execute("ROLLBACK")
                logger.info(
                    f"Refused attempt for {learner_id} on {assessment_id}: "
                    f"{row['n']}/{max_attempts} used"
                )
                raise AttemptsExhaustedError(assessment_id, learner_id, max_attempts)

            attempt = Attempt(
                learner_id=learner_id,
                assessment_id=assessment_id,
                attempt_number=row["last"] + 1,
                started_at=_now(),
            )
            conn.execute(
                """INSERT INTO assessment_attempts
                     (learner_id, assessment_id, attempt_number, started_at)
                   VALUES (?, ?, ?, ?)""",
                (learner_id, assessment_id, attempt.attempt_number, attempt.started_at.isoformat())
            )
            conn.execute("COMMIT")
        except sqlite3.Error:
            if conn.in_transaction:
                conn.execute("ROLLBACK")
            raise
        finally:
            conn.close()

        logger.info(f"Started attempt {attempt.attempt_number}/{max_attempts} for {learner_id} on {assessment_id}")
        return attempt

    def list_attempts(self, learner_id: str, assessment_id: str) -> list[Attempt]:
        """Get all attempts of a learner for one assessment, oldest first."""
        conn = self._get_connection()
        try:
            cursor = conn.execute(
                """SELECT * FROM assessment_attempts
                   WHERE learner_id = ? AND assessment_id = ?
                   ORDER BY attempt_number""",
                (learner_id, assessment_id)
            )
            return [self._row_to_attempt(row) for row in cursor.fetchall()]
        finally:
            conn.close()

    def save_attempt_result(self, result: AttemptResult) -> AttemptResult:
        """
        Write the graded result onto its reserved attempt, exactly once.

        Raises:
            InvalidStateError: If the attempt was never reserved
            AttemptAlreadyGradedError: If the attempt already has a result
        """
        completed_at = result.submitted_at or _now()
        conn = self._get_connection()
        try:
            cursor = conn.execute(
                """UPDATE assessment_attempts
                   SET completed_at = ?, score = ?, passed = ?, result = ?
                   WHERE learner_id = ? AND assessment_id = ? AND attempt_number = ?
                     AND completed_at IS NULL""",
                (
                    completed_at.isoformat(),
                    result.score,
                    int(result.passed),
                    result.model_dump_json(),
                    result.learner_id,
                    result.assessment_id,
                    result.attempt_number,
                )
            )
            conn.commit()
            if cursor.rowcount == 1:
                return result

            exists = conn.execute(
                """SELECT 1 FROM assessment_attempts
                   WHERE learner_id = ? AND assessment_id = ? AND attempt_number = ?""",
                (result.learner_id, result.assessment_id, result.attempt_number)
            ).fetchone()
        finally:
            conn.close()

        if exists:
            raise AttemptAlreadyGradedError(
                f"Attempt {result.attempt_number} of {result.assessment_id} is already graded",
                result.assessment_id,
            )
        raise InvalidStateError(
            f"Attempt {result.attempt_number} of {result.assessment_id} was never started",
            result.assessment_id,
        )

    def get_attempt_result(self, learner_id: str, assessment_id: str, attempt_number: int) -> Optional[AttemptResult]:
        """Get the stored result of a graded attempt."""
        conn = self._get_connection()
        try:
            row = conn.execute(
                """SELECT result FROM assessment_attempts
                   WHERE learner_id = ? AND assessment_id = ? AND attempt_number = ?""",
                (learner_id, assessment_id, attempt_number)
            ).fetchone()
        finally:
            conn.close()
        if not row or not row["result"]:
            return None
        return AttemptResult.model_validate(json.loads(row["result"]))

    # -------------------------------------------------------------------------
    # Enrollments
    # -------------------------------------------------------------------------

    @staticmethod
    def _row_to_enrollment(row: sqlite3.Row) -> Enrollment:
        return Enrollment(
            learner_id=row["learner_id"],
            course_id=row["course_id"],
            enrolled_at=_parse_dt(row["enrolled_at"]),
            last_accessed_at=_parse_dt(row["last_accessed_at"]),
            progress_percentage=row["progress_percentage"],
            completed_at=_parse_dt(row["completed_at"]),
        )

    def get_enrollment(self, learner_id: str, course_id: str) -> Optional[Enrollment]:
        conn = self._get_connection()
        try:
            row = conn.execute(
                "SELECT * FROM enrollments WHERE learner_id = ? AND course_id = ?",
                (learner_id, course_id)
            ).fetchone()
            return self._row_to_enrollment(row) if row else None
        finally:
            conn.close()

    def update_enrollment(self, learner_id: str, course_id: str, progress_percentage: int) -> Enrollment:
        """
        Record course progress on the enrollment, enrolling on first call.

        `completed_at` is set the first time progress reaches 100.
        """
        now = _now().isoformat()
        completed_at = now if progress_percentage >= 100 else None
        conn = self._get_connection()
        try:
            conn.execute(
                """INSERT INTO enrollments
                     (learner_id, course_id, enrolled_at, last_accessed_at,
                      progress_percentage, completed_at)
                   VALUES (?, ?, ?, ?, ?, ?)
                   ON CONFLICT(learner_id, course_id) DO UPDATE SET
                     last_accessed_at = excluded.last_accessed_at,
                     progress_percentage = excluded.progress_percentage,
                     completed_at = COALESCE(completed_at, excluded.completed_at)""",
                (learner_id, course_id, now, now, progress_percentage, completed_at)
            )
            conn.commit()
            row = conn.execute(
                "SELECT * FROM enrollments WHERE learner_id = ? AND course_id = ?",
                (learner_id, course_id)
            ).fetchone()
            return self._row_to_enrollment(row)
        finally:
            conn.close()
