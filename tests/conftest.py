"""Shared fixtures for CoursePilot tests."""

import pytest

from coursepilot.classroom import ContentLoader, ContentTree, ProgressStore, compile_catalog
from coursepilot.schemas import (
    Assessment,
    Course,
    EssayQuestion,
    Lesson,
    Module,
    MultipleChoiceQuestion,
)


def make_tree(course_id: str, lesson_counts: list[int]) -> ContentTree:
    """Course with one module per entry, holding that many lessons."""
    modules = []
    for m_idx, count in enumerate(lesson_counts, start=1):
        module_id = f"{course_id}-m{m_idx}"
        lessons = tuple(
            Lesson(
                id=f"{module_id}-l{l_idx}",
                module_id=module_id,
                order=l_idx,
                title=f"Lesson {m_idx}.{l_idx}",
                estimated_minutes=10,
            )
            for l_idx in range(1, count + 1)
        )
        modules.append(Module(id=module_id, course_id=course_id, order=m_idx, lessons=lessons))
    return ContentTree(Course(id=course_id, title=f"Course {course_id}", modules=tuple(modules)))


@pytest.fixture
def tree() -> ContentTree:
    """Two modules: two lessons, then one."""
    return make_tree("c1", [2, 1])


@pytest.fixture
def store(tmp_path) -> ProgressStore:
    return ProgressStore(tmp_path / "progress.db")


@pytest.fixture
def mixed_assessment() -> Assessment:
    """One multiple choice worth 10 points and one essay worth 5."""
    return Assessment(
        id="a1",
        title="Module check",
        passing_score=70,
        max_attempts=3,
        questions=[
            MultipleChoiceQuestion(
                id="q1",
                prompt="Which one?",
                options=["A", "B", "C", "D"],
                correct_index=2,
                points=10,
            ),
            EssayQuestion(id="q2", prompt="Explain.", points=5),
        ],
    )


@pytest.fixture
def catalog() -> dict:
    return {
        "courses": [
            {
                "id": "medicare-101",
                "title": "Medicare Basics",
                "description": "Foundations for new agents",
                "modules": [
                    {
                        "id": "mod-parts",
                        "title": "Parts of Medicare",
                        "lessons": [
                            {"id": "les-a", "title": "Part A", "type": "video", "estimated_minutes": 15},
                            {"id": "les-b", "title": "Part B", "type": "text", "estimated_minutes": 10},
                        ],
                    },
                    {
                        "id": "mod-check",
                        "title": "Checkpoint",
                        "lessons": [
                            {
                                "id": "les-quiz",
                                "title": "Parts quiz",
                                "type": "quiz",
                                "estimated_minutes": 20,
                                "assessment_id": "quiz-parts",
                            },
                        ],
                    },
                ],
            }
        ],
        "assessments": [
            {
                "id": "quiz-parts",
                "title": "Parts quiz",
                "passing_score": 80,
                "max_attempts": 2,
                "time_limit_minutes": 15,
                "course_id": "medicare-101",
                "module_id": "mod-check",
                "lesson_id": "les-quiz",
                "questions": [
                    {
                        "id": "q-hospital",
                        "type": "multiple_choice",
                        "prompt": "Which part covers hospital stays?",
                        "options": ["Part A", "Part B", "Part D"],
                        "correct_index": 0,
                        "points": 2,
                    },
                    {
                        "id": "q-outpatient",
                        "type": "true_false",
                        "prompt": "Part B covers outpatient care.",
                        "correct_answer": True,
                    },
                    {
                        "id": "q-match",
                        "type": "matching",
                        "prompt": "Match each part to its coverage.",
                        "left_items": ["Part A", "Part D"],
                        "right_items": ["Drugs", "Hospital"],
                        "pairs": {"0": 1, "1": 0},
                    },
                    {
                        "id": "q-reflect",
                        "type": "essay",
                        "prompt": "Describe a client scenario.",
                        "rubric": "Mentions enrollment periods",
                    },
                ],
            }
        ],
    }


@pytest.fixture
def loader(tmp_path, catalog) -> ContentLoader:
    db_path = tmp_path / "catalog.db"
    compile_catalog(catalog, db_path)
    return ContentLoader(db_path)


@pytest.fixture
def tree_factory():
    return make_tree
