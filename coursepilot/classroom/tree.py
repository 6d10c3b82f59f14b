"""
ContentTree - Validated, read-only Course -> Module -> Lesson hierarchy.

Provides:
- Order validation (1..n within each parent, no duplicates)
- Traversal order over all lessons
- Position lookup in both directions
"""

import logging
from dataclasses import dataclass
from typing import Iterable, Iterator, Optional

from coursepilot.errors import MalformedContentError, OutOfRangeError, UnknownLessonError
from coursepilot.schemas import Course, Lesson, Module


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Position:
    """0-based (module, lesson) indices into a ContentTree."""
    module_index: int
    lesson_index: int


def _check_order(parent_id: str, kind: str, items: list) -> list:
    """Sort children by `order` and require exactly 1..n."""
    orders = [item.order for item in items]
    bad = [o for o in orders if o < 1]
    if bad:
        raise MalformedContentError(
            f"{kind} in {parent_id} has non-positive order value(s): {bad}",
            parent_id,
        )
    if len(set(orders)) != len(orders):
        dupes = sorted({o for o in orders if orders.count(o) > 1})
        raise MalformedContentError(
            f"{kind} in {parent_id} has duplicate order value(s): {dupes}",
            parent_id,
        )
    ordered = sorted(items, key=lambda item: item.order)
    expected = list(range(1, len(ordered) + 1))
    if [item.order for item in ordered] != expected:
        raise MalformedContentError(
            f"{kind} in {parent_id} must be ordered 1..{len(ordered)}, got {sorted(orders)}",
            parent_id,
        )
    return ordered


class ContentTree:
    """
    Immutable course hierarchy with a precomputed traversal order.

    Build a new tree after any authoring change; trees are never patched.
    """

    def __init__(self, course: Course):
        modules = []
        for module in _check_order(course.id, "Modules", list(course.modules)):
            if module.course_id != course.id:
                raise MalformedContentError(
                    f"Module {module.id} belongs to course {module.course_id}, not {course.id}",
                    module.id,
                )
            for lesson in module.lessons:
                if lesson.module_id != module.id:
                    raise MalformedContentError(
                        f"Lesson {lesson.id} belongs to module {lesson.module_id}, not {module.id}",
                        lesson.id,
                    )
            lessons = _check_order(module.id, "Lessons", list(module.lessons))
            modules.append(module.model_copy(update={"lessons": tuple(lessons)}))

        self.course = course.model_copy(update={"modules": tuple(modules)})
        self._order: list[Position] = []
        self._index: dict[str, Position] = {}
        for m_idx, module in enumerate(self.course.modules):
            for l_idx, lesson in enumerate(module.lessons):
                if lesson.id in self._index:
                    raise MalformedContentError(
                        f"Lesson {lesson.id} appears more than once in course {course.id}",
                        lesson.id,
                    )
                position = Position(m_idx, l_idx)
                self._order.append(position)
                self._index[lesson.id] = position

        empty = [m.id for m in self.course.modules if not m.lessons]
        if empty:
            logger.warning(f"Course {course.id} has modules without lessons: {empty}")

    @classmethod
    def from_rows(
        cls,
        course: Course,
        modules: Iterable[Module],
        lessons: Iterable[Lesson],
    ) -> "ContentTree":
        """
        Assemble a tree from flat module and lesson rows.

        Args:
            course: Course record (its own `modules` are ignored)
            modules: Module rows for the course (their `lessons` are ignored)
            lessons: Lesson rows for those modules

        Raises:
            MalformedContentError: On bad ordering or orphan lessons
        """
        modules = list(modules)
        by_module: dict[str, list[Lesson]] = {m.id: [] for m in modules}
        for lesson in lessons:
            if lesson.module_id not in by_module:
                raise MalformedContentError(
                    f"Lesson {lesson.id} references unknown module {lesson.module_id}",
                    lesson.id,
                )
            by_module[lesson.module_id].append(lesson)

        nested = [m.model_copy(update={"lessons": tuple(by_module[m.id])}) for m in modules]
        return cls(course.model_copy(update={"modules": tuple(nested)}))

    # -------------------------------------------------------------------------
    # Accessors
    # -------------------------------------------------------------------------

    @property
    def id(self) -> str:
        return self.course.id

    @property
    def modules(self) -> tuple[Module, ...]:
        return self.course.modules

    @property
    def total_lessons(self) -> int:
        return len(self._order)

    @property
    def total_estimated_minutes(self) -> int:
        return sum(lesson.estimated_minutes for lesson in self.lessons())

    @property
    def is_empty(self) -> bool:
        return not self._order

    def lessons(self) -> Iterator[Lesson]:
        """All lessons in traversal order."""
        for module in self.course.modules:
            yield from module.lessons

    def positions(self) -> list[Position]:
        """All lesson positions in traversal order."""
        return list(self._order)

    def lesson_at(self, position: Position) -> Lesson:
        if not self.is_valid(position):
            raise OutOfRangeError(position.module_index, position.lesson_index, self.id)
        return self.course.modules[position.module_index].lessons[position.lesson_index]

    def module_at(self, position: Position) -> Module:
        self.lesson_at(position)
        return self.course.modules[position.module_index]

    def get_module(self, module_id: str) -> Optional[Module]:
        for module in self.course.modules:
            if module.id == module_id:
                return module
        return None

    def get_lesson(self, lesson_id: str) -> Optional[Lesson]:
        position = self._index.get(lesson_id)
        return self.lesson_at(position) if position is not None else None

    def locate(self, lesson_id: str) -> Position:
        """Position of a lesson; raises UnknownLessonError if absent."""
        if lesson_id not in self._index:
            raise UnknownLessonError(f"Lesson {lesson_id} is not part of course {self.id}", lesson_id)
        return self._index[lesson_id]

    def ordinal(self, position: Position) -> int:
        """0-based index of a position in traversal order."""
        self.lesson_at(position)
        return self._order.index(position)

    def is_valid(self, position: Position) -> bool:
        modules = self.course.modules
        if not 0 <= position.module_index < len(modules):
            return False
        return 0 <= position.lesson_index < len(modules[position.module_index].lessons)
