"""
Course content schemas for CoursePilot.

Defines Pydantic models for the content hierarchy:
- Course -> ordered Modules -> ordered Lessons

Content models are frozen: a loaded course is never patched in place,
it is rebuilt from the content provider instead.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class LessonType(str, Enum):
    TEXT = "text"
    VIDEO = "video"
    QUIZ = "quiz"              # references an assessment
    ASSIGNMENT = "assignment"


class Lesson(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    module_id: str
    order: int                 # 1-based within module
    title: str = ""
    type: LessonType = LessonType.TEXT
    required: bool = True
    estimated_minutes: int = Field(default=0, ge=0)
    assessment_id: Optional[str] = None  # quiz lessons only


class Module(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    course_id: str
    order: int                 # 1-based within course
    title: str = ""
    required: bool = True
    estimated_minutes: Optional[int] = Field(default=None, ge=0)
    lessons: tuple[Lesson, ...] = ()

    @property
    def lesson_ids(self) -> list[str]:
        return [lesson.id for lesson in self.lessons]


class Course(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    description: Optional[str] = None
    modules: tuple[Module, ...] = ()

    @property
    def module_ids(self) -> list[str]:
        return [module.id for module in self.modules]
