"""
Navigator - Course progression, resume position and progress percentages.

Provides:
- Resume position from completion records
- Next/previous/jump navigation over a ContentTree
- Course and module progress percentages
- Idempotent completion recording
- CoursePlayer: one learner's view of one course

Positions are explicit values passed to and returned from every call;
nothing here remembers a "current lesson".
"""

import logging
import math
from dataclasses import dataclass
from typing import Iterable, Optional

from coursepilot.errors import EmptyCourseError, OutOfRangeError
from coursepilot.schemas import Enrollment, Lesson, LessonState, Module, ProgressRecord

from .loader import ContentProvider
from .progress import ProgressStoreAdapter, ProgressStore
from .tree import ContentTree, Position


logger = logging.getLogger(__name__)


def completed_lesson_ids(records: Iterable[ProgressRecord]) -> set[str]:
    """Lesson IDs with a completed record."""
    return {r.lesson_id for r in records if r.completed}


def _percent(done: int, total: int) -> int:
    """
    Whole percent, rounded half up; zero when there is nothing to do.

    Only a fully completed set reports 100.
    """
    if total <= 0:
        return 0
    percent = int(math.floor(100 * done / total + 0.5))
    if done < total:
        return min(percent, 99)
    return percent


# -----------------------------------------------------------------------------
# Position
# -----------------------------------------------------------------------------

def resume_position(tree: ContentTree, records: Iterable[ProgressRecord]) -> Position:
    """
    Position of the first lesson without a completed record.

    Returns the last lesson's position when everything is completed.

    Raises:
        EmptyCourseError: If the course has no lessons
    """
    positions = tree.positions()
    if not positions:
        raise EmptyCourseError(f"Course {tree.id} has no lessons", tree.id)

    completed = completed_lesson_ids(records)
    for position in positions:
        if tree.lesson_at(position).id not in completed:
            return position
    return positions[-1]


def advance(tree: ContentTree, position: Position) -> Position:
    """Next lesson in traversal order; the final lesson maps to itself."""
    positions = tree.positions()
    idx = tree.ordinal(position)
    if idx + 1 >= len(positions):
        return position
    return positions[idx + 1]


def retreat(tree: ContentTree, position: Position) -> Position:
    """Previous lesson in traversal order; the first lesson maps to itself."""
    positions = tree.positions()
    idx = tree.ordinal(position)
    if idx == 0:
        return position
    return positions[idx - 1]


def jump_to(tree: ContentTree, module_index: int, lesson_index: int) -> Position:
    """
    Direct navigation to a lesson.

    Raises:
        OutOfRangeError: If the indices do not address a lesson
    """
    position = Position(module_index, lesson_index)
    if not tree.is_valid(position):
        raise OutOfRangeError(module_index, lesson_index, tree.id)
    return position


def is_first(tree: ContentTree, position: Position) -> bool:
    return tree.ordinal(position) == 0


def is_last(tree: ContentTree, position: Position) -> bool:
    return tree.ordinal(position) == tree.total_lessons - 1


# -----------------------------------------------------------------------------
# Progress
# -----------------------------------------------------------------------------

def course_progress_percent(tree: ContentTree, records: Iterable[ProgressRecord]) -> int:
    """Percent of the course's lessons completed (0 for an empty course)."""
    completed = completed_lesson_ids(records)
    done = sum(1 for lesson in tree.lessons() if lesson.id in completed)
    return _percent(done, tree.total_lessons)


def module_progress_percent(module: Module, records: Iterable[ProgressRecord]) -> int:
    """Percent of one module's lessons completed (0 for an empty module)."""
    completed = completed_lesson_ids(records)
    done = sum(1 for lesson in module.lessons if lesson.id in completed)
    return _percent(done, len(module.lessons))


def record_completion(
    store: ProgressStoreAdapter,
    tree: ContentTree,
    learner_id: str,
    lesson_id: str,
    time_spent_minutes: float = 0,
) -> ProgressRecord:
    """
    Mark a lesson completed for a learner.

    Repeated calls keep `completed_at` from the first completion and add
    `time_spent_minutes` to the stored total.

    Raises:
        UnknownLessonError: If the lesson is not part of the course
    """
    position = tree.locate(lesson_id)
    module = tree.modules[position.module_index]
    record = store.upsert_progress(ProgressRecord(
        learner_id=learner_id,
        lesson_id=lesson_id,
        course_id=tree.id,
        module_id=module.id,
        completed=True,
        time_spent_minutes=time_spent_minutes,
    ))
    logger.info(
        f"Recorded completion of {lesson_id} for {learner_id} "
        f"({record.time_spent_minutes} min total)"
    )
    return record


# -----------------------------------------------------------------------------
# Navigation Tree
# -----------------------------------------------------------------------------

@dataclass
class NavigationLesson:
    """Lesson with navigation metadata."""
    lesson: Lesson
    position: Position
    state: LessonState
    is_current: bool
    time_spent_minutes: float


@dataclass
class NavigationModule:
    """Module with lessons and navigation metadata."""
    module: Module
    lessons: list[NavigationLesson]
    completed_count: int
    total_count: int

    @property
    def percent(self) -> int:
        return _percent(self.completed_count, self.total_count)


def navigation_tree(
    tree: ContentTree,
    records: Iterable[ProgressRecord],
    current: Optional[Position] = None,
) -> list[NavigationModule]:
    """
    Full course tree annotated with per-lesson state.

    A lesson with a record that is not completed is in progress.
    """
    by_lesson = {r.lesson_id: r for r in records}

    result = []
    for m_idx, module in enumerate(tree.modules):
        nav_lessons = []
        completed_count = 0
        for l_idx, lesson in enumerate(module.lessons):
            record = by_lesson.get(lesson.id)
            if record is None:
                state = LessonState.NOT_STARTED
            elif record.completed:
                state = LessonState.COMPLETED
                completed_count += 1
            else:
                state = LessonState.IN_PROGRESS

            position = Position(m_idx, l_idx)
            nav_lessons.append(NavigationLesson(
                lesson=lesson,
                position=position,
                state=state,
                is_current=position == current,
                time_spent_minutes=record.time_spent_minutes if record else 0,
            ))

        result.append(NavigationModule(
            module=module,
            lessons=nav_lessons,
            completed_count=completed_count,
            total_count=len(module.lessons),
        ))
    return result


def course_summary(tree: ContentTree, records: Iterable[ProgressRecord]) -> dict:
    """Progress summary for display."""
    records = list(records)
    completed = completed_lesson_ids(records)
    lessons = list(tree.lessons())
    done = [lesson for lesson in lessons if lesson.id in completed]
    remaining = [lesson for lesson in lessons if lesson.id not in completed]
    lesson_ids = {lesson.id for lesson in lessons}

    return {
        "course_id": tree.id,
        "total_lessons": len(lessons),
        "completed": len(done),
        "completion_percent": course_progress_percent(tree, records),
        "total_time_minutes": sum(r.time_spent_minutes for r in records if r.lesson_id in lesson_ids),
        "remaining_estimated_minutes": sum(lesson.estimated_minutes for lesson in remaining),
        "required_remaining": sum(1 for lesson in remaining if lesson.required),
        "modules": [
            {
                "id": module.id,
                "title": module.title,
                "percent": module_progress_percent(module, records),
            }
            for module in tree.modules
        ],
        "resume_position": resume_position(tree, records) if lessons else None,
    }


# -----------------------------------------------------------------------------
# Course Player
# -----------------------------------------------------------------------------

class CoursePlayer:
    """
    One learner's session over one course.

    Combines a ContentProvider (content) with a ProgressStore (learner
    state). The tree is loaded once; call `reload()` after authoring
    changes instead of editing it.
    """

    def __init__(
        self,
        content: ContentProvider,
        store: ProgressStore,
        learner_id: str,
        course_id: str,
    ):
        self.content = content
        self.store = store
        self.learner_id = learner_id
        self.course_id = course_id
        self.tree = content.get_course_tree(course_id)

    def reload(self) -> ContentTree:
        """Rebuild the content tree from the provider."""
        self.tree = self.content.get_course_tree(self.course_id)
        return self.tree

    def records(self) -> list[ProgressRecord]:
        return self.store.list_progress(self.learner_id, self.course_id)

    # -------------------------------------------------------------------------
    # Navigation
    # -------------------------------------------------------------------------

    def resume(self) -> Position:
        return resume_position(self.tree, self.records())

    def advance(self, position: Position) -> Position:
        return advance(self.tree, position)

    def retreat(self, position: Position) -> Position:
        return retreat(self.tree, position)

    def jump_to(self, module_index: int, lesson_index: int) -> Position:
        return jump_to(self.tree, module_index, lesson_index)

    def lesson(self, position: Position) -> Lesson:
        return self.tree.lesson_at(position)

    def navigation_tree(self, current: Optional[Position] = None) -> list[NavigationModule]:
        return navigation_tree(self.tree, self.records(), current)

    # -------------------------------------------------------------------------
    # Progress
    # -------------------------------------------------------------------------

    def open_lesson(self, position: Position) -> ProgressRecord:
        """Create the lesson's record on first visit."""
        lesson = self.tree.lesson_at(position)
        return self.store.start_lesson(
            self.learner_id, self.course_id, lesson.module_id, lesson.id
        )

    def record_completion(self, lesson_id: str, time_spent_minutes: float = 0) -> ProgressRecord:
        """Complete a lesson and refresh the enrollment's progress percentage."""
        record = record_completion(self.store, self.tree, self.learner_id, lesson_id, time_spent_minutes)
        self.update_enrollment()
        return record

    def update_enrollment(self) -> Enrollment:
        percent = self.progress_percent()
        enrollment = self.store.update_enrollment(self.learner_id, self.course_id, percent)
        if percent == 100:
            logger.info(f"Learner {self.learner_id} completed course {self.course_id}")
        return enrollment

    def progress_percent(self) -> int:
        return course_progress_percent(self.tree, self.records())

    def module_percent(self, module_index: int) -> int:
        if not 0 <= module_index < len(self.tree.modules):
            raise OutOfRangeError(module_index, 0, self.course_id)
        return module_progress_percent(self.tree.modules[module_index], self.records())

    def is_complete(self) -> bool:
        completed = completed_lesson_ids(self.records())
        return not self.tree.is_empty and all(lesson.id in completed for lesson in self.tree.lessons())

    def summary(self) -> dict:
        return course_summary(self.tree, self.records())
