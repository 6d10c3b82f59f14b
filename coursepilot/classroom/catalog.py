"""
Catalog compilation - Validate a course catalog document and write catalog.db.

A catalog document (YAML or JSON) lists courses with nested modules and
lessons, plus assessments with their questions. Missing `order` values
are taken from list position.
"""

import json
import logging
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Any

import yaml
from pydantic import TypeAdapter

from coursepilot.schemas import Assessment, Course, Lesson, Module, Question

from .loader import SCHEMA
from .tree import ContentTree


logger = logging.getLogger(__name__)

_question_adapter = TypeAdapter(Question)


def load_catalog_file(path: str | Path) -> dict[str, Any]:
    """
    Read a catalog document from disk.

    Files ending in .json are parsed as JSON, anything else as YAML.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Catalog file not found: {path}")
    with open(path, "r", encoding="utf-8") as f:
        if path.suffix == ".json":
            return json.load(f)
        return yaml.safe_load(f) or {}


# -----------------------------------------------------------------------------
# Parsing
# -----------------------------------------------------------------------------

def parse_course(data: dict[str, Any]) -> ContentTree:
    """Build a validated ContentTree from a nested course entry."""
    modules = []
    for m_pos, m_data in enumerate(data.get("modules", []), start=1):
        lessons = []
        for l_pos, l_data in enumerate(m_data.get("lessons", []), start=1):
            lesson_fields = dict(l_data)
            lesson_fields.setdefault("order", l_pos)
            lesson_fields["module_id"] = m_data["id"]
            lessons.append(Lesson.model_validate(lesson_fields))

        module_fields = {k: v for k, v in m_data.items() if k != "lessons"}
        module_fields.setdefault("order", m_pos)
        module_fields["course_id"] = data["id"]
        modules.append(Module.model_validate({**module_fields, "lessons": lessons}))

    course_fields = {k: v for k, v in data.items() if k != "modules"}
    return ContentTree(Course.model_validate({**course_fields, "modules": modules}))


def parse_catalog(catalog: dict[str, Any]) -> tuple[list[ContentTree], list[Assessment]]:
    """Validate every course and assessment in a catalog document."""
    trees = [parse_course(c) for c in catalog.get("courses", [])]
    assessments = [Assessment.model_validate(a) for a in catalog.get("assessments", [])]
    return trees, assessments


def check_integrity(trees: list[ContentTree], assessments: list[Assessment]) -> list[str]:
    """
    Run cross-reference checks that single-model validation cannot.

    Returns:
        List of human-readable issues (empty when consistent)
    """
    issues = []
    assessment_ids = {a.id for a in assessments}
    lessons = {}
    for tree in trees:
        for lesson in tree.lessons():
            if lesson.id in lessons:
                issues.append(f"Lesson id {lesson.id} used in more than one course")
            lessons[lesson.id] = (tree.id, lesson)

    for tree in trees:
        if tree.is_empty:
            issues.append(f"Course {tree.id} has no lessons")
        for lesson in tree.lessons():
            if lesson.assessment_id and lesson.assessment_id not in assessment_ids:
                issues.append(f"Lesson {lesson.id} references unknown assessment {lesson.assessment_id}")

    for assessment in assessments:
        if not any(q.auto_gradable for q in assessment.questions):
            issues.append(f"Assessment {assessment.id} has no auto-gradable questions")
        if assessment.lesson_id:
            if assessment.lesson_id not in lessons:
                issues.append(f"Assessment {assessment.id} references unknown lesson {assessment.lesson_id}")
            else:
                course_id, lesson = lessons[assessment.lesson_id]
                if assessment.course_id and assessment.course_id != course_id:
                    issues.append(f"Assessment {assessment.id} course_id does not match lesson {lesson.id}")
                if assessment.module_id and assessment.module_id != lesson.module_id:
                    issues.append(f"Assessment {assessment.id} module_id does not match lesson {lesson.id}")

    return issues


# -----------------------------------------------------------------------------
# Writing
# -----------------------------------------------------------------------------

def _insert_course(conn: sqlite3.Connection, tree: ContentTree):
    course = tree.course
    conn.execute(
        "INSERT INTO courses (id, title, description) VALUES (?, ?, ?)",
        (course.id, course.title, course.description)
    )
    for module in course.modules:
        conn.execute(
            """INSERT INTO modules (id, course_id, title, module_order, is_required, estimated_minutes)
               VALUES (?, ?, ?, ?, ?, ?)""",
            (module.id, course.id, module.title, module.order, int(module.required), module.estimated_minutes)
        )
        for lesson in module.lessons:
            conn.execute(
                """INSERT INTO lessons
                     (id, module_id, title, lesson_order, lesson_type,
                      is_required, estimated_minutes, assessment_id)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    lesson.id, module.id, lesson.title, lesson.order, lesson.type.value,
                    int(lesson.required), lesson.estimated_minutes, lesson.assessment_id,
                )
            )


def _insert_assessment(conn: sqlite3.Connection, assessment: Assessment):
    conn.execute(
        """INSERT INTO assessments
             (id, title, passing_score, max_attempts, time_limit_minutes,
              shuffle_questions, require_all_questions, course_id, module_id, lesson_id)
           VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
        (
            assessment.id, assessment.title, assessment.passing_score, assessment.max_attempts,
            assessment.time_limit_minutes, int(assessment.shuffle_questions),
            int(assessment.require_all_questions), assessment.course_id,
            assessment.module_id, assessment.lesson_id,
        )
    )
    for position, question in enumerate(assessment.questions, start=1):
        payload = _question_adapter.dump_python(question, mode="json", exclude={"id", "type"})
        conn.execute(
            """INSERT INTO questions (id, assessment_id, question_order, question_type, payload)
               VALUES (?, ?, ?, ?, ?)""",
            (question.id, assessment.id, position, question.type, json.dumps(payload, ensure_ascii=False))
        )


def compile_catalog(catalog: dict[str, Any], db_path: str | Path, overwrite: bool = True) -> dict[str, Any]:
    """
    Validate a catalog document and write it to a fresh catalog.db.

    Args:
        catalog: Parsed catalog document
        db_path: Output database path
        overwrite: Remove an existing database first

    Returns:
        Stats dict with counts and the list of integrity issues

    Raises:
        MalformedContentError: If a course tree is malformed
        pydantic.ValidationError: If an entry fails schema validation
    """
    trees, assessments = parse_catalog(catalog)
    issues = check_integrity(trees, assessments)
    for issue in issues:
        logger.warning(f"Integrity issue: {issue}")

    db_path = Path(db_path)
    db_path.parent.mkdir(parents=True, exist_ok=True)
    if db_path.exists() and overwrite:
        db_path.unlink()
        logger.info(f"Removed existing database: {db_path}")

    conn = sqlite3.connect(str(db_path))
    try:
        conn.executescript(SCHEMA)
        for tree in trees:
            _insert_course(conn, tree)
        for assessment in assessments:
            _insert_assessment(conn, assessment)
        conn.execute(
            "INSERT OR REPLACE INTO metadata (key, value) VALUES (?, ?)",
            ("compiled_at", datetime.now().isoformat())
        )
        conn.commit()
    finally:
        conn.close()

    stats = {
        "courses": len(trees),
        "modules": sum(len(t.modules) for t in trees),
        "lessons": sum(t.total_lessons for t in trees),
        "assessments": len(assessments),
        "questions": sum(len(a.questions) for a in assessments),
        "estimated_minutes": sum(t.total_estimated_minutes for t in trees),
        "issues": issues,
    }
    logger.info(
        f"Compiled {stats['courses']} courses, {stats['lessons']} lessons, "
        f"{stats['assessments']} assessments into {db_path}"
    )
    return stats
