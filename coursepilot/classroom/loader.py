"""
ContentLoader - Load course content from a compiled catalog.db.

Provides read-only access to:
- Courses, modules and lessons, assembled into a ContentTree
- Assessments with their ordered questions
- Catalog metadata
"""

import json
import logging
import sqlite3
from pathlib import Path
from typing import Optional, Protocol

from pydantic import TypeAdapter

from coursepilot.errors import ContentNotFoundError
from coursepilot.schemas import Assessment, Course, Lesson, LessonType, Module, Question

from .tree import ContentTree


logger = logging.getLogger(__name__)

_question_adapter = TypeAdapter(Question)


# -----------------------------------------------------------------------------
# SQLite Schema
# -----------------------------------------------------------------------------

SCHEMA = """
CREATE TABLE IF NOT EXISTS courses (
    id TEXT PRIMARY KEY,
    title TEXT NOT NULL,
    description TEXT
);

CREATE TABLE IF NOT EXISTS modules (
    id TEXT PRIMARY KEY,
    course_id TEXT NOT NULL REFERENCES courses(id),
    title TEXT,
    module_order INTEGER NOT NULL,
    is_required INTEGER NOT NULL DEFAULT 1,
    estimated_minutes INTEGER
);

CREATE TABLE IF NOT EXISTS lessons (
    id TEXT PRIMARY KEY,
    module_id TEXT NOT NULL REFERENCES modules(id),
    title TEXT,
    lesson_order INTEGER NOT NULL,
    lesson_type TEXT NOT NULL DEFAULT 'text',
    is_required INTEGER NOT NULL DEFAULT 1,
    estimated_minutes INTEGER NOT NULL DEFAULT 0,
    assessment_id TEXT
);

CREATE TABLE IF NOT EXISTS assessments (
    id TEXT PRIMARY KEY,
    title TEXT,
    passing_score REAL NOT NULL,
    max_attempts INTEGER NOT NULL,
    time_limit_minutes INTEGER,
    shuffle_questions INTEGER NOT NULL DEFAULT 0,
    require_all_questions INTEGER NOT NULL DEFAULT 0,
    course_id TEXT,
    module_id TEXT,
    lesson_id TEXT
);

CREATE TABLE IF NOT EXISTS questions (
    id TEXT NOT NULL,
    assessment_id TEXT NOT NULL REFERENCES assessments(id),
    question_order INTEGER NOT NULL,
    question_type TEXT NOT NULL,
    payload JSON NOT NULL,
    PRIMARY KEY (assessment_id, id)
);

CREATE TABLE IF NOT EXISTS metadata (
    key TEXT PRIMARY KEY,
    value TEXT
);

CREATE INDEX IF NOT EXISTS idx_modules_course ON modules(course_id, module_order);
CREATE INDEX IF NOT EXISTS idx_lessons_module ON lessons(module_id, lesson_order);
CREATE INDEX IF NOT EXISTS idx_questions_assessment ON questions(assessment_id, question_order);
"""


class ContentProvider(Protocol):
    """Content source the course player and assessment runner read from."""

    def get_course_tree(self, course_id: str) -> ContentTree: ...

    def get_assessment(self, assessment_id: str) -> Assessment: ...


class ContentLoader:
    """
    Load catalog data from SQLite database.

    Thread-safe for read operations. Each method creates a new connection.
    """

    def __init__(self, db_path: str | Path):
        """
        Initialize loader with path to catalog.db.

        Args:
            db_path: Path to catalog.db file
        """
        self.db_path = Path(db_path)
        if not self.db_path.exists():
            raise FileNotFoundError(f"Catalog database not found: {db_path}")

    def _get_connection(self) -> sqlite3.Connection:
        """Get a new database connection."""
        conn = sqlite3.connect(str(self.db_path))
        conn.row_factory = sqlite3.Row
        return conn

    # -------------------------------------------------------------------------
    # Metadata
    # -------------------------------------------------------------------------

    def get_metadata(self, key: str) -> Optional[str]:
        """Get metadata value by key."""
        conn = self._get_connection()
        try:
            row = conn.execute("SELECT value FROM metadata WHERE key = ?", (key,)).fetchone()
            return row["value"] if row else None
        finally:
            conn.close()

    # -------------------------------------------------------------------------
    # Courses
    # -------------------------------------------------------------------------

    def list_courses(self) -> list[Course]:
        """Get all courses without their modules."""
        conn = self._get_connection()
        try:
            cursor = conn.execute("SELECT id, title, description FROM courses ORDER BY title")
            return [
                Course(id=row["id"], title=row["title"], description=row["description"])
                for row in cursor.fetchall()
            ]
        finally:
            conn.close()

    def get_course_tree(self, course_id: str) -> ContentTree:
        """
        Load a course with its modules and lessons.

        Raises:
            ContentNotFoundError: If the course does not exist
            MalformedContentError: If stored ordering is invalid
        """
        conn = self._get_connection()
        try:
            row = conn.execute(
                "SELECT id, title, description FROM courses WHERE id = ?", (course_id,)
            ).fetchone()
            if not row:
                raise ContentNotFoundError(f"Course not found: {course_id}", course_id)
            course = Course(id=row["id"], title=row["title"], description=row["description"])

            modules = [
                Module(
                    id=m["id"],
                    course_id=m["course_id"],
                    order=m["module_order"],
                    title=m["title"] or "",
                    required=bool(m["is_required"]),
                    estimated_minutes=m["estimated_minutes"],
                )
                for m in conn.execute(
                    """SELECT id, course_id, title, module_order, is_required, estimated_minutes
                       FROM modules WHERE course_id = ?
                       ORDER BY module_order""",
                    (course_id,)
                ).fetchall()
            ]

            lessons = [
                Lesson(
                    id=r["id"],
                    module_id=r["module_id"],
                    order=r["lesson_order"],
                    title=r["title"] or "",
                    type=LessonType(r["lesson_type"]),
                    required=bool(r["is_required"]),
                    estimated_minutes=r["estimated_minutes"],
                    assessment_id=r["assessment_id"],
                )
                for r in conn.execute(
                    """SELECT l.id, l.module_id, l.title, l.lesson_order, l.lesson_type,
                              l.is_required, l.estimated_minutes, l.assessment_id
                       FROM lessons l
                       JOIN modules m ON l.module_id = m.id
                       WHERE m.course_id = ?
                       ORDER BY m.module_order, l.lesson_order""",
                    (course_id,)
                ).fetchall()
            ]
        finally:
            conn.close()

        logger.debug(f"Loaded course {course_id}: {len(modules)} modules, {len(lessons)} lessons")
        return ContentTree.from_rows(course, modules, lessons)

    # -------------------------------------------------------------------------
    # Assessments
    # -------------------------------------------------------------------------

    def get_assessment(self, assessment_id: str) -> Assessment:
        """
        Load an assessment with its questions in order.

        Raises:
            ContentNotFoundError: If the assessment does not exist
        """
        conn = self._get_connection()
        try:
            row = conn.execute("SELECT * FROM assessments WHERE id = ?", (assessment_id,)).fetchone()
            if not row:
                raise ContentNotFoundError(f"Assessment not found: {assessment_id}", assessment_id)
            question_rows = conn.execute(
                """SELECT id, question_type, payload FROM questions
                   WHERE assessment_id = ?
                   ORDER BY question_order""",
                (assessment_id,)
            ).fetchall()
        finally:
            conn.close()

        questions = [
            _question_adapter.validate_python({
                **json.loads(q["payload"]),
                "id": q["id"],
                "type": q["question_type"],
            })
            for q in question_rows
        ]

        return Assessment(
            id=row["id"],
            title=row["title"] or "",
            passing_score=row["passing_score"],
            max_attempts=row["max_attempts"],
            time_limit_minutes=row["time_limit_minutes"],
            shuffle_questions=bool(row["shuffle_questions"]),
            require_all_questions=bool(row["require_all_questions"]),
            course_id=row["course_id"],
            module_id=row["module_id"],
            lesson_id=row["lesson_id"],
            questions=questions,
        )
