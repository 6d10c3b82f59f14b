"""
Scoring - Pure grading rules for every question type.

Answers are first checked for shape (`validate_answer`), then scored
all-or-nothing per question. Essays are never auto-graded: they are
flagged for manual review and left out of the score entirely.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Mapping

from coursepilot.errors import InvalidAnswerError, NoGradableQuestionsError
from coursepilot.schemas import (
    Assessment,
    EssayQuestion,
    FillBlankQuestion,
    MatchingQuestion,
    MultipleChoiceQuestion,
    MultipleSelectQuestion,
    OrderingQuestion,
    QuestionResult,
    QuestionType,
    TrueFalseQuestion,
)


logger = logging.getLogger(__name__)


def normalize_text(text: str) -> str:
    """Trim and case-fold free-text answers before comparison."""
    return text.strip().casefold()


def _is_index(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


# -----------------------------------------------------------------------------
# Answer validation
# -----------------------------------------------------------------------------

def _choice_answer(question: MultipleChoiceQuestion, answer: Any) -> int:
    if not _is_index(answer) or not 0 <= answer < len(question.options):
        raise InvalidAnswerError(
            f"Question {question.id} expects one option index below {len(question.options)}, got {answer!r}",
            question.id,
        )
    return answer


def _select_answer(question: MultipleSelectQuestion, answer: Any) -> list[int]:
    if isinstance(answer, (str, bytes, Mapping)) or not hasattr(answer, "__iter__"):
        raise InvalidAnswerError(f"Question {question.id} expects a collection of option indices", question.id)
    chosen = set()
    for index in answer:
        if not _is_index(index) or not 0 <= index < len(question.options):
            raise InvalidAnswerError(
                f"Question {question.id} has no option {index!r}",
                question.id,
            )
        chosen.add(index)
    return sorted(chosen)


def _true_false_answer(question: TrueFalseQuestion, answer: Any) -> bool:
    if not isinstance(answer, bool):
        raise InvalidAnswerError(f"Question {question.id} expects true or false, got {answer!r}", question.id)
    return answer


def _text_answer(question, answer: Any) -> str:
    if not isinstance(answer, str):
        raise InvalidAnswerError(f"Question {question.id} expects text, got {type(answer).__name__}", question.id)
    return answer


def _matching_answer(question: MatchingQuestion, answer: Any) -> dict[int, int]:
    if not isinstance(answer, Mapping):
        raise InvalidAnswerError(f"Question {question.id} expects a left -> right mapping", question.id)
    pairs = {}
    for left, right in answer.items():
        # JSON round-trips turn integer keys into strings
        if isinstance(left, str) and left.isdigit():
            left = int(left)
        if not _is_index(left) or not 0 <= left < len(question.left_items):
            raise InvalidAnswerError(f"Question {question.id} has no left item {left!r}", question.id)
        if not _is_index(right) or not 0 <= right < len(question.right_items):
            raise InvalidAnswerError(f"Question {question.id} has no right item {right!r}", question.id)
        pairs[left] = right
    return pairs


def _ordering_answer(question: OrderingQuestion, answer: Any) -> list[str]:
    if isinstance(answer, (str, bytes, Mapping)) or not hasattr(answer, "__iter__"):
        raise InvalidAnswerError(f"Question {question.id} expects a sequence of items", question.id)
    sequence = list(answer)
    if not all(isinstance(item, str) for item in sequence) or sorted(sequence) != sorted(question.items):
        raise InvalidAnswerError(
            f"Question {question.id} expects a permutation of its {len(question.items)} items",
            question.id,
        )
    return sequence


_VALIDATORS: dict[str, Callable[[Any, Any], Any]] = {
    QuestionType.MULTIPLE_CHOICE.value: _choice_answer,
    QuestionType.MULTIPLE_SELECT.value: _select_answer,
    QuestionType.TRUE_FALSE.value: _true_false_answer,
    QuestionType.FILL_BLANK.value: _text_answer,
    QuestionType.SHORT_ANSWER.value: _text_answer,
    QuestionType.ESSAY.value: _text_answer,
    QuestionType.MATCHING.value: _matching_answer,
    QuestionType.ORDERING.value: _ordering_answer,
}


def validate_answer(question, answer: Any) -> Any:
    """
    Check an answer's shape and return its canonical form.

    Raises:
        InvalidAnswerError: If the answer cannot belong to the question
    """
    return _VALIDATORS[question.type](question, answer)


# -----------------------------------------------------------------------------
# Scoring rules
# -----------------------------------------------------------------------------

def _score_choice(question: MultipleChoiceQuestion, answer: int) -> bool:
    return answer == question.correct_index


def _score_select(question: MultipleSelectQuestion, answer: list[int]) -> bool:
    # exact set equality, no partial credit
    return set(answer) == set(question.correct_indices)


def _score_true_false(question: TrueFalseQuestion, answer: bool) -> bool:
    return answer == question.correct_answer


def _score_text(question: FillBlankQuestion, answer: str) -> bool:
    submitted = normalize_text(answer)
    return any(submitted == normalize_text(accepted) for accepted in question.accepted_answers)


def _score_matching(question: MatchingQuestion, answer: dict[int, int]) -> bool:
    return answer == dict(question.pairs)


def _score_ordering(question: OrderingQuestion, answer: list[str]) -> bool:
    return list(answer) == list(question.items)


SCORERS: dict[str, Callable[[Any, Any], bool]] = {
    QuestionType.MULTIPLE_CHOICE.value: _score_choice,
    QuestionType.MULTIPLE_SELECT.value: _score_select,
    QuestionType.TRUE_FALSE.value: _score_true_false,
    QuestionType.FILL_BLANK.value: _score_text,
    QuestionType.SHORT_ANSWER.value: _score_text,
    QuestionType.MATCHING.value: _score_matching,
    QuestionType.ORDERING.value: _score_ordering,
}


def score_question(question, answer: Any = None, answered: bool = True) -> QuestionResult:
    """
    Score one question.

    Args:
        question: Any question variant
        answer: Canonical answer from `validate_answer`
        answered: False when the learner left the question blank

    Returns:
        QuestionResult; essays come back with `correct=None` and
        `needs_manual_review=True`
    """
    if isinstance(question, EssayQuestion):
        return QuestionResult(
            question_id=question.id,
            answered=answered,
            correct=None,
            needs_manual_review=True,
            points_awarded=0,
            points_possible=question.points,
            explanation=question.explanation,
        )

    correct = answered and SCORERS[question.type](question, answer)
    return QuestionResult(
        question_id=question.id,
        answered=answered,
        correct=correct,
        points_awarded=question.points if correct else 0,
        points_possible=question.points,
        explanation=question.explanation,
    )


# -----------------------------------------------------------------------------
# Assessment totals
# -----------------------------------------------------------------------------

@dataclass
class Grade:
    """Score and verdict for a set of answers."""
    score: float
    passed: bool
    question_results: list[QuestionResult]

    @property
    def needs_manual_review(self) -> bool:
        return any(r.needs_manual_review for r in self.question_results)

    @property
    def correct_count(self) -> int:
        return sum(1 for r in self.question_results if r.correct)


def grade_answers(assessment: Assessment, answers: Mapping[str, Any]) -> Grade:
    """
    Score canonical answers against an assessment.

    score = 100 * correct auto-gradable points / all auto-gradable points;
    passed = score >= passing_score.

    Raises:
        NoGradableQuestionsError: If no question can be auto-graded
    """
    possible = assessment.gradable_points
    if possible <= 0:
        raise NoGradableQuestionsError(
            f"Assessment {assessment.id} has no auto-gradable questions",
            assessment.id,
        )

    results = []
    for question in assessment.questions:
        answered = question.id in answers
        results.append(score_question(question, answers.get(question.id), answered))

    earned = sum(r.points_awarded for r in results)
    score = 100 * earned / possible
    passed = score >= assessment.passing_score
    logger.debug(f"Graded {assessment.id}: {earned}/{possible} points, score {score:.1f}")
    return Grade(score=score, passed=passed, question_results=results)
