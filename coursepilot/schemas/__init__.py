"""
CoursePilot Schemas - Pydantic models for the course progression engine.

This module exports all schema classes for:
- Content: courses, modules, lessons
- Progress: completion records, enrollments
- Assessment: question variants, assessments, attempts and results
"""

# Content schemas
from .content import (
    LessonType,
    Lesson,
    Module,
    Course,
)

# Progress schemas
from .progress import (
    LessonState,
    ProgressRecord,
    Enrollment,
)

# Assessment schemas
from .assessment import (
    QuestionType,
    MultipleChoiceQuestion,
    MultipleSelectQuestion,
    TrueFalseQuestion,
    FillBlankQuestion,
    ShortAnswerQuestion,
    EssayQuestion,
    MatchingQuestion,
    OrderingQuestion,
    Question,
    TRUE_FALSE_OPTIONS,
    Assessment,
    Attempt,
    QuestionResult,
    AttemptResult,
)

__all__ = [
    # Content
    'LessonType',
    'Lesson',
    'Module',
    'Course',
    # Progress
    'LessonState',
    'ProgressRecord',
    'Enrollment',
    # Assessment
    'QuestionType',
    'MultipleChoiceQuestion',
    'MultipleSelectQuestion',
    'TrueFalseQuestion',
    'FillBlankQuestion',
    'ShortAnswerQuestion',
    'EssayQuestion',
    'MatchingQuestion',
    'OrderingQuestion',
    'Question',
    'TRUE_FALSE_OPTIONS',
    'Assessment',
    'Attempt',
    'QuestionResult',
    'AttemptResult',
]
