"""
Progress tracking schemas for CoursePilot.

Defines Pydantic models for learner progress including:
- Per-lesson completion records
- Course enrollments
- Derived lesson state for navigation display
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class LessonState(str, Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class ProgressRecord(BaseModel):
    """One per (learner, lesson); upserted, never duplicated."""
    learner_id: str
    lesson_id: str
    course_id: str
    module_id: str
    completed: bool = False
    completed_at: Optional[datetime] = None
    time_spent_minutes: float = Field(default=0, ge=0)


class Enrollment(BaseModel):
    learner_id: str
    course_id: str
    enrolled_at: datetime
    last_accessed_at: Optional[datetime] = None
    progress_percentage: int = Field(default=0, ge=0, le=100)
    completed_at: Optional[datetime] = None
