"""
Assessment schemas for CoursePilot.

Defines Pydantic models for graded assessments including:
- Eight question variants, discriminated by `type`
- Assessment policy (passing score, attempts, time limit)
- Attempt reservations and immutable attempt results
"""

from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Literal, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class QuestionType(str, Enum):
    MULTIPLE_CHOICE = "multiple_choice"
    MULTIPLE_SELECT = "multiple_select"
    TRUE_FALSE = "true_false"
    FILL_BLANK = "fill_blank"
    SHORT_ANSWER = "short_answer"
    ESSAY = "essay"
    MATCHING = "matching"
    ORDERING = "ordering"


# -----------------------------------------------------------------------------
# Question types
# -----------------------------------------------------------------------------

class QuestionBase(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    type: str
    prompt: str
    points: float = Field(default=1, gt=0)
    explanation: Optional[str] = None

    @property
    def auto_gradable(self) -> bool:
        return True


class MultipleChoiceQuestion(QuestionBase):
    type: Literal["multiple_choice"] = "multiple_choice"
    options: list[str] = Field(..., min_length=2)
    correct_index: int = Field(..., ge=0)

    @model_validator(mode="after")
    def _check_correct_index(self):
        if self.correct_index >= len(self.options):
            raise ValueError(f"correct_index {self.correct_index} outside {len(self.options)} options")
        return self


class MultipleSelectQuestion(QuestionBase):
    type: Literal["multiple_select"] = "multiple_select"
    options: list[str] = Field(..., min_length=2)
    correct_indices: list[int] = Field(..., min_length=1)

    @model_validator(mode="after")
    def _check_correct_indices(self):
        if len(set(self.correct_indices)) != len(self.correct_indices):
            raise ValueError("correct_indices contains duplicates")
        for index in self.correct_indices:
            if not 0 <= index < len(self.options):
                raise ValueError(f"correct index {index} outside {len(self.options)} options")
        return self


TRUE_FALSE_OPTIONS = ("True", "False")


class TrueFalseQuestion(QuestionBase):
    """Two-option multiple choice; answers are booleans."""
    type: Literal["true_false"] = "true_false"
    correct_answer: bool

    @property
    def options(self) -> tuple[str, str]:
        return TRUE_FALSE_OPTIONS


class FillBlankQuestion(QuestionBase):
    type: Literal["fill_blank"] = "fill_blank"
    accepted_answers: list[str] = Field(..., min_length=1)

    @field_validator("accepted_answers")
    @classmethod
    def _no_blank_answers(cls, v: list[str]) -> list[str]:
        if any(not answer.strip() for answer in v):
            raise ValueError("accepted answers must not be blank")
        return v


class ShortAnswerQuestion(FillBlankQuestion):
    type: Literal["short_answer"] = "short_answer"


class EssayQuestion(QuestionBase):
    """Never auto-graded; always routed to manual review."""
    type: Literal["essay"] = "essay"
    rubric: Optional[str] = None

    @property
    def auto_gradable(self) -> bool:
        return False


class MatchingQuestion(QuestionBase):
    """
    Two parallel item lists with a designated pairing.
    `pairs` maps left-item index -> right-item index.
    """
    type: Literal["matching"] = "matching"
    left_items: list[str] = Field(..., min_length=1)
    right_items: list[str] = Field(..., min_length=1)
    pairs: dict[int, int] = Field(..., min_length=1)

    @model_validator(mode="after")
    def _check_pairs(self):
        if len(set(self.pairs.values())) != len(self.pairs):
            raise ValueError("pairs must match each right item at most once")
        for left, right in self.pairs.items():
            if not 0 <= left < len(self.left_items):
                raise ValueError(f"left index {left} outside {len(self.left_items)} items")
            if not 0 <= right < len(self.right_items):
                raise ValueError(f"right index {right} outside {len(self.right_items)} items")
        return self


class OrderingQuestion(QuestionBase):
    """`items` is the designated correct order."""
    type: Literal["ordering"] = "ordering"
    items: list[str] = Field(..., min_length=2)

    @field_validator("items")
    @classmethod
    def _unique_items(cls, v: list[str]) -> list[str]:
        if len(set(v)) != len(v):
            raise ValueError("ordering items must be unique")
        return v


Question = Annotated[
    Union[
        MultipleChoiceQuestion,
        MultipleSelectQuestion,
        TrueFalseQuestion,
        FillBlankQuestion,
        ShortAnswerQuestion,
        EssayQuestion,
        MatchingQuestion,
        OrderingQuestion,
    ],
    Field(discriminator="type"),
]


# -----------------------------------------------------------------------------
# Assessment
# -----------------------------------------------------------------------------

class Assessment(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    title: str = ""
    passing_score: float = Field(default=70, ge=0, le=100)
    max_attempts: int = Field(default=3, ge=1)
    time_limit_minutes: Optional[int] = Field(default=None, gt=0)
    questions: list[Question] = []
    shuffle_questions: bool = False
    require_all_questions: bool = False
    # Where a pass is recorded as lesson completion
    course_id: Optional[str] = None
    module_id: Optional[str] = None
    lesson_id: Optional[str] = None

    @field_validator("questions")
    @classmethod
    def _unique_question_ids(cls, v: list) -> list:
        seen = set()
        for question in v:
            if question.id in seen:
                raise ValueError(f"duplicate question id: {question.id}")
            seen.add(question.id)
        return v

    @model_validator(mode="after")
    def _check_lesson_link(self):
        if self.lesson_id and not (self.course_id and self.module_id):
            raise ValueError("lesson_id requires course_id and module_id")
        return self

    def get_question(self, question_id: str):
        for question in self.questions:
            if question.id == question_id:
                return question
        return None

    @property
    def gradable_points(self) -> float:
        return sum(q.points for q in self.questions if q.auto_gradable)


# -----------------------------------------------------------------------------
# Attempts
# -----------------------------------------------------------------------------

class Attempt(BaseModel):
    """Stored attempt row; score fields stay empty until graded."""
    learner_id: str
    assessment_id: str
    attempt_number: int = Field(..., ge=1)
    started_at: datetime
    completed_at: Optional[datetime] = None
    score: Optional[float] = None
    passed: Optional[bool] = None

    @property
    def graded(self) -> bool:
        return self.completed_at is not None


class QuestionResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    question_id: str
    answered: bool
    correct: Optional[bool]        # None while awaiting manual review
    needs_manual_review: bool = False
    points_awarded: float = 0
    points_possible: float
    explanation: Optional[str] = None


def _int_keys(mapping: Mapping) -> dict:
    return {int(k) if isinstance(k, str) and k.isdigit() else k: value for k, value in mapping.items()}


class AttemptResult(BaseModel):
    """Outcome of one graded attempt. Never mutated after creation."""
    model_config = ConfigDict(frozen=True)

    learner_id: str
    assessment_id: str
    attempt_number: int = Field(..., ge=1)
    score: float = Field(..., ge=0, le=100)
    passed: bool
    question_results: tuple[QuestionResult, ...]
    answers: dict[str, Any] = {}
    needs_manual_review: bool = False
    expired: bool = False
    started_at: Optional[datetime] = None
    submitted_at: Optional[datetime] = None
    time_taken_minutes: Optional[float] = None

    @field_validator("answers", mode="before")
    @classmethod
    def _restore_matching_keys(cls, v: Any) -> Any:
        # Matching answers are the only mappings; JSON stores their int keys as strings
        if not isinstance(v, Mapping):
            return v
        return {
            question_id: _int_keys(answer) if isinstance(answer, Mapping) else answer
            for question_id, answer in v.items()
        }

    def result_for(self, question_id: str) -> Optional[QuestionResult]:
        for result in self.question_results:
            if result.question_id == question_id:
                return result
        return None
